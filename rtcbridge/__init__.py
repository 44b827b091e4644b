"""
WebRTC negotiation bridge.

Mediates the offer/answer handshake between a browser peer and a locally
managed GStreamer ``webrtcbin``: it produces session descriptions, merges the
locally gathered ICE candidates into them, validates remote descriptions
before they reach the engine, and forwards trickled remote candidates.
"""

from __future__ import annotations

from .config import BridgeConfig, NegotiationSettings, load_config
from .negotiation import Ack, NegotiationResult, Negotiator
from .session import NegotiationPhase, Session, SessionRegistry

__version__ = "0.1.0"

__all__ = [
    "Ack",
    "BridgeConfig",
    "NegotiationPhase",
    "NegotiationResult",
    "NegotiationSettings",
    "Negotiator",
    "Session",
    "SessionRegistry",
    "load_config",
]
