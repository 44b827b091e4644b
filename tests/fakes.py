"""In-memory media engine and sample descriptions shared by the tests."""

from __future__ import annotations

import threading
from typing import List, Optional, Sequence, Tuple

from rtcbridge.errors import EngineNegotiationFailure
from rtcbridge.rtc.rendezvous import Rendezvous
from rtcbridge.rtc.webrtc import SdpType, SessionDescription
from rtcbridge.runtime.engine import (
    EVENT_ICE_CANDIDATE,
    EVENT_LOCAL_DESCRIPTION,
    EVENT_NEGOTIATION_NEEDED,
    EVENT_NEW_TRANSCEIVER,
    MediaEngine,
)

OFFER_SDP = (
    "v=0\r\n"
    "o=- 1 1 IN IP4 0.0.0.0\r\n"
    "s=-\r\n"
    "t=0 0\r\n"
    "a=group:BUNDLE video0 audio1\r\n"
    "m=video 9 UDP/TLS/RTP/SAVPF 96\r\n"
    "c=IN IP4 0.0.0.0\r\n"
    "a=mid:video0\r\n"
    "a=rtpmap:96 VP8/90000\r\n"
    "m=audio 9 UDP/TLS/RTP/SAVPF 97\r\n"
    "c=IN IP4 0.0.0.0\r\n"
    "a=mid:audio1\r\n"
    "a=rtpmap:97 OPUS/48000/2\r\n"
)

ANSWER_SDP = OFFER_SDP.replace("o=- 1 1", "o=- 2 1")

HOST_CANDIDATE = "candidate:1 1 UDP 2122252543 192.168.0.91 55827 typ host"
SRFLX_CANDIDATE = "candidate:2 1 UDP 1686052863 203.0.113.7 61000 typ srflx raddr 192.168.0.91 rport 55827"


class FakeEngine(MediaEngine):
    """
    In-memory media engine.

    Completes create_offer/create_answer immediately unless ``auto_complete`` is
    off, and emits ``local_candidates`` synchronously once a local description
    has been set.
    """

    def __init__(
        self,
        *,
        offer_sdp: str = OFFER_SDP,
        answer_sdp: str = ANSWER_SDP,
        local_candidates: Sequence[Tuple[int, str]] = (),
        auto_complete: bool = True,
        fail_create: bool = False,
        apply_local: bool = True,
        negotiation_needed_on_start: bool = False,
    ) -> None:
        super().__init__()
        self.offer_sdp = offer_sdp
        self.answer_sdp = answer_sdp
        self.local_candidates = list(local_candidates)
        self.auto_complete = auto_complete
        self.fail_create = fail_create
        self.apply_local = apply_local
        self.negotiation_needed_on_start = negotiation_needed_on_start

        self.started = False
        self.stopped = False
        self.local: Optional[SessionDescription] = None
        self.remote: Optional[SessionDescription] = None
        self.remote_candidates: List[Tuple[int, str]] = []
        self.created: List[SdpType] = []
        self.pending: List[Rendezvous] = []
        self.create_requested = threading.Event()

    def start(self) -> None:
        self.started = True
        if self.negotiation_needed_on_start:
            self._emit(EVENT_NEGOTIATION_NEEDED)
        self._emit(EVENT_NEW_TRANSCEIVER, {"media_line_index": 0})

    def stop(self) -> None:
        self.stopped = True

    def _create(self, sdp_type: SdpType, sdp: str) -> Rendezvous:
        self.created.append(sdp_type)
        rendezvous: Rendezvous = Rendezvous(f"create-{sdp_type.value}")
        if self.fail_create:
            rendezvous.reject(EngineNegotiationFailure(f"could not create {sdp_type.value}"))
        elif self.auto_complete:
            rendezvous.resolve(SessionDescription(sdp_type, sdp))
        else:
            self.pending.append(rendezvous)
        self.create_requested.set()
        return rendezvous

    def create_offer(self) -> Rendezvous:
        return self._create(SdpType.OFFER, self.offer_sdp)

    def create_answer(self) -> Rendezvous:
        return self._create(SdpType.ANSWER, self.answer_sdp)

    def set_local_description(self, description: SessionDescription) -> None:
        if not self.apply_local:
            return
        self.local = description
        self._emit(EVENT_LOCAL_DESCRIPTION)
        for mline, candidate in self.local_candidates:
            self.emit_candidate(mline, candidate)

    def set_remote_description(self, description: SessionDescription) -> None:
        self.remote = description

    def get_local_description(self) -> Optional[SessionDescription]:
        return self.local

    def add_remote_candidate(self, media_line_index: int, candidate_text: str) -> None:
        self.remote_candidates.append((media_line_index, candidate_text))

    def emit_candidate(self, mline: int, candidate: str) -> None:
        self._emit(EVENT_ICE_CANDIDATE, {"media_line_index": mline, "candidate": candidate})

    def emit_negotiation_needed(self) -> None:
        self._emit(EVENT_NEGOTIATION_NEEDED)


class EngineFactory:
    """Hands out prepared engines in order, then default ones."""

    def __init__(self, *engines: FakeEngine) -> None:
        self.queued = list(engines)
        self.built: List[FakeEngine] = []

    def __call__(self) -> FakeEngine:
        engine = self.queued.pop(0) if self.queued else FakeEngine()
        self.built.append(engine)
        return engine
