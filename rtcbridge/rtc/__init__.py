"""
WebRTC value types and the primitives used to hand engine events to request
handlers.
"""

from __future__ import annotations

from .rendezvous import CandidateChannel, Rendezvous
from .webrtc import IceCandidate, SdpType, SessionDescription

__all__ = ["CandidateChannel", "IceCandidate", "Rendezvous", "SdpType", "SessionDescription"]
