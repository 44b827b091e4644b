"""
SDP document model and ICE candidate translation.
"""

from __future__ import annotations

from .candidate import (
    CandidateAttribute,
    CandidateTransport,
    CandidateType,
    parse_candidate,
    serialize_candidate,
)
from .document import (
    MediaSection,
    SdpDocument,
    SdpLine,
    extract_candidates,
    inject_candidates,
    parse_sdp,
    serialize_sdp,
    validate_sdp,
)

__all__ = [
    "CandidateAttribute",
    "CandidateTransport",
    "CandidateType",
    "MediaSection",
    "SdpDocument",
    "SdpLine",
    "extract_candidates",
    "inject_candidates",
    "parse_candidate",
    "parse_sdp",
    "serialize_candidate",
    "serialize_sdp",
    "validate_sdp",
]
