"""Quick demo script for the GStreamer negotiation flow.

Runs one offer negotiation against a local ``webrtcbin`` and prints the
resulting SDP, candidates included.  Useful for checking that the GStreamer
WebRTC plugins are installed and that candidate gathering works on this host.

Examples
--------
Print an offer using the default test-pattern pipeline::

    python scripts/demo_negotiation.py

Use a STUN server and a longer gathering window::

    python scripts/demo_negotiation.py --stun stun://stun.l.google.com:19302 --quiescence 0.5

Pass ``--hold`` to keep the pipeline alive until Ctrl+C.
"""

from __future__ import annotations

import argparse
import signal
import sys
import time
from typing import Iterable

from rtcbridge.config import NegotiationSettings
from rtcbridge.errors import BridgeError
from rtcbridge.negotiation import Negotiator
from rtcbridge.runtime.gst_adapter import DEFAULT_PIPELINE, GstWebRTCEngine
from rtcbridge.utils.logging import configure_logging


def parse_args(argv: Iterable[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="rtcbridge offer demo")
    parser.add_argument("--pipeline", default=DEFAULT_PIPELINE, help="gst-launch description")
    parser.add_argument("--stun", default=None, help="STUN server URI for webrtcbin")
    parser.add_argument("--max-candidates", type=int, default=16)
    parser.add_argument(
        "--quiescence",
        type=float,
        default=0.1,
        help="Seconds without a new candidate before gathering stops.",
    )
    parser.add_argument("--hold", action="store_true", help="Keep the session alive until interrupted.")
    return parser.parse_args(argv)


def main(argv: Iterable[str] | None = None) -> int:
    args = parse_args(argv)
    configure_logging()

    negotiator = Negotiator(
        lambda: GstWebRTCEngine(args.pipeline, stun_server=args.stun),
        settings=NegotiationSettings(
            gather_max_items=args.max_candidates,
            gather_quiescence=args.quiescence,
        ),
    )

    try:
        result = negotiator.request_offer()
    except BridgeError as exc:
        print(f"negotiation failed: {exc}", file=sys.stderr)
        negotiator.shutdown()
        return 1

    print(result.sdp)
    print(f"# session {result.session_id}, {result.candidate_count} candidate(s)", file=sys.stderr)

    stop_requested = not args.hold

    def _handle_signal(signum, frame):  # type: ignore[override]
        nonlocal stop_requested
        stop_requested = True

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)

    try:
        while not stop_requested:
            time.sleep(0.1)
    finally:
        negotiator.shutdown()

    return 0


if __name__ == "__main__":
    sys.exit(main())
