"""
Shared bridge state container.
"""

from __future__ import annotations

import functools
import logging
from dataclasses import dataclass, field
from typing import Optional

from ..config import BridgeConfig, EngineSettings
from ..negotiation import Negotiator
from ..runtime.engine import EngineFactory, MediaEngine
from ..runtime.gst_adapter import GstWebRTCEngine
from ..session import SessionRegistry
from ..utils.gst import gst_available

LOG = logging.getLogger(__name__)


def build_engine(settings: EngineSettings) -> MediaEngine:
    return GstWebRTCEngine(
        settings.pipeline,
        bundle_policy=settings.bundle_policy,
        stun_server=settings.stun_server,
    )


@dataclass
class BridgeState:
    """
    Aggregated state shared between the API and the negotiation core.
    """

    config: BridgeConfig = field(default_factory=BridgeConfig)
    engine_factory: Optional[EngineFactory] = None
    registry: SessionRegistry = field(default_factory=SessionRegistry)
    negotiator: Negotiator = field(init=False)

    def __post_init__(self) -> None:
        factory = self.engine_factory or functools.partial(build_engine, self.config.engine)
        self.negotiator = Negotiator(
            factory,
            registry=self.registry,
            settings=self.config.negotiation,
        )

    @property
    def active_profile(self) -> str:
        return self.config.profile

    @property
    def engine_available(self) -> bool:
        if self.engine_factory is not None:
            return True
        return gst_available()

    def snapshot(self) -> dict:
        session = self.registry.current()
        return {
            "profile": self.active_profile,
            "engineAvailable": self.engine_available,
            "phase": session.phase.value if session is not None else None,
            "sessionId": session.session_id if session is not None else None,
        }

    def shutdown(self) -> None:
        LOG.info("Closing active sessions")
        self.negotiator.shutdown()
