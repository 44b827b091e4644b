"""
HTTP request surface for the negotiation bridge.
"""

from __future__ import annotations

from .server import create_app
from .state import BridgeState

__all__ = ["BridgeState", "create_app"]
