"""
Value types exchanged between the negotiation core and the media engine.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class SdpType(str, Enum):
    """Role of a session description in the offer/answer exchange."""

    OFFER = "offer"
    ANSWER = "answer"


@dataclass(frozen=True)
class SessionDescription:
    """An SDP payload tagged with its offer/answer role."""

    type: SdpType
    sdp: str


@dataclass(frozen=True)
class IceCandidate:
    """
    A candidate attribute bound to the media line it was gathered for.

    ``candidate_text`` is the raw attribute value, i.e. everything after
    ``a=`` (``candidate:...``).
    """

    media_line_index: int
    candidate_text: str

    def __post_init__(self) -> None:
        if int(self.media_line_index) < 0:
            raise ValueError("media_line_index must be non-negative")


__all__ = ["IceCandidate", "SdpType", "SessionDescription"]
