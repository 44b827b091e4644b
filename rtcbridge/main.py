"""
Bridge process entrypoint.

Resolves the configuration profile, initialises logging and GStreamer, and
serves the request surface with uvicorn.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from .api.server import create_app
from .api.state import BridgeState
from .config import BridgeConfig, load_config
from .errors import ConfigError
from .utils.gst import GST_IMPORT_ERROR, ensure_gst_initialised, gst_available
from .utils.logging import configure_logging

LOG = logging.getLogger(__name__)


async def serve(config: BridgeConfig) -> None:
    """
    Run the request surface inside an asyncio loop until interrupted.
    """

    import uvicorn

    state = BridgeState(config=config)

    @asynccontextmanager
    async def app_lifespan(_app) -> AsyncIterator[None]:
        LOG.info("Bridge starting (profile=%s)", config.profile)
        if gst_available():
            ensure_gst_initialised()
        else:
            LOG.warning(
                "GStreamer runtime is not available; offers will fail until it is installed. (%s)",
                GST_IMPORT_ERROR,
            )
        try:
            yield
        finally:
            LOG.info("Bridge shutting down")

    app = create_app(state=state, lifespan=app_lifespan)
    server_config = uvicorn.Config(
        app=app,
        host=config.host,
        port=config.port,
        log_config=None,
        log_level=config.log_level.lower(),
        reload=False,
    )
    server = uvicorn.Server(config=server_config)
    await server.serve()


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="WebRTC negotiation bridge")
    parser.add_argument("--profile", default=None, help="configuration profile to load")
    parser.add_argument("--config", default=None, help="path to a profiles YAML file")
    parser.add_argument("--host", default=None, help="bind host for the API server")
    parser.add_argument("--port", type=int, default=None, help="bind port for the API server")
    parser.add_argument("--log-level", default=None, help="root log level (DEBUG, INFO, ...)")
    parser.add_argument("--static-dir", default=None, help="directory served under /static")
    return parser.parse_args(argv)


def resolve_config(args: argparse.Namespace) -> BridgeConfig:
    config = load_config(args.profile, args.config)
    if args.host:
        config.host = args.host
    if args.port:
        config.port = args.port
    if args.log_level:
        config.log_level = args.log_level
    if args.static_dir:
        config.static_dir = args.static_dir
    return config


def run(argv: Optional[list[str]] = None) -> None:
    args = parse_args(argv)
    try:
        config = resolve_config(args)
    except ConfigError as exc:
        raise SystemExit(f"rtcbridge: {exc}") from exc
    configure_logging(config.log_level)

    try:
        asyncio.run(serve(config))
    except KeyboardInterrupt:
        LOG.info("Bridge interrupted by user.")


if __name__ == "__main__":
    run()
