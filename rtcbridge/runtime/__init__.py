"""
Media engine adapters bridging the negotiation core to executable backends.
"""

from __future__ import annotations

from .engine import EngineFactory, MediaEngine
from .gst_adapter import GstWebRTCEngine

__all__ = [
    "EngineFactory",
    "GstWebRTCEngine",
    "MediaEngine",
]
