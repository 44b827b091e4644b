"""
ICE candidate attribute translator.

Converts the compact ``candidate:`` attribute value emitted by browsers and by
the media engine into a structured :class:`CandidateAttribute`, and back.  Two
positional shapes are recognised::

    <foundation> <component> <transport> <priority> <address> <port> typ host ...
    <foundation> <component> <transport> <priority> <address> <port> typ <type> raddr <addr> rport <port> ...

Anything past the recognised shape (``generation``, ``network-id`` and other
extension tokens) is ignored.
"""

from __future__ import annotations

import ipaddress
import re
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Union

from ..errors import MalformedCandidate

CANDIDATE_PREFIX = "candidate:"

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]

_U32_MAX = 2**32 - 1
_U64_MAX = 2**64 - 1
_DIGITS = re.compile(r"[0-9]+")


class CandidateTransport(str, Enum):
    """Transport protocols allowed in a candidate attribute."""

    UDP = "UDP"
    TCP = "TCP"


class CandidateType(str, Enum):
    """Candidate types as spelled after the ``typ`` token."""

    HOST = "host"
    SERVER_REFLEXIVE = "srflx"
    PEER_REFLEXIVE = "prflx"
    RELAY = "relay"


_EXTENDED_TYPES = {
    "srflx": CandidateType.SERVER_REFLEXIVE,
    "prflx": CandidateType.PEER_REFLEXIVE,
    "relay": CandidateType.RELAY,
}


@dataclass(frozen=True)
class CandidateAttribute:
    """
    Structured form of a single ICE candidate attribute.

    Host candidates never carry a related address; every other type must carry
    both ``related_address`` and ``related_port``.
    """

    foundation: str
    component_id: int
    transport: CandidateTransport
    priority: int
    address: IPAddress
    port: int
    type: CandidateType
    related_address: Optional[IPAddress] = None
    related_port: Optional[int] = None

    def __post_init__(self) -> None:
        has_related = self.related_address is not None or self.related_port is not None
        if self.type is CandidateType.HOST:
            if has_related:
                raise MalformedCandidate("host candidates cannot carry raddr/rport")
        elif self.related_address is None or self.related_port is None:
            raise MalformedCandidate(f"{self.type.value} candidates require raddr and rport")

    def __str__(self) -> str:
        return serialize_candidate(self)


def _parse_uint(token: str, name: str, maximum: int) -> int:
    if not _DIGITS.fullmatch(token):
        raise MalformedCandidate(f"{name} must be an unsigned integer, got {token!r}")
    value = int(token)
    if value > maximum:
        raise MalformedCandidate(f"{name} out of range: {token}")
    return value


def _parse_transport(token: str) -> CandidateTransport:
    lowered = token.lower()
    if lowered == "udp":
        return CandidateTransport.UDP
    if lowered == "tcp":
        return CandidateTransport.TCP
    raise MalformedCandidate(f"Unknown ICE transport type {token!r}")


def _parse_address(token: str, name: str) -> IPAddress:
    try:
        return ipaddress.ip_address(token)
    except ValueError:
        raise MalformedCandidate(f"{name} is not an IP literal: {token!r}") from None


def _split(raw: str) -> List[str]:
    text = raw.strip()
    if text.startswith("a="):
        text = text[2:]
    if text.startswith(CANDIDATE_PREFIX):
        text = text[len(CANDIDATE_PREFIX):]
    return text.split()


def parse_candidate(raw: str) -> CandidateAttribute:
    """
    Translate a raw candidate attribute value into a :class:`CandidateAttribute`.

    Raises :class:`MalformedCandidate` for any unrecognised shape or field.
    Callers on the offer/answer path treat that as "skip this candidate".
    """

    parts = _split(raw)
    if len(parts) < 8 or parts[6] != "typ":
        raise MalformedCandidate("Could not parse line into valid ice candidate.")

    foundation, component_id, transport, priority, address, port = parts[:6]
    if parts[7] == "host":
        candidate_type = CandidateType.HOST
        related_address = None
        related_port = None
    elif len(parts) >= 12 and parts[8] == "raddr" and parts[10] == "rport":
        candidate_type = _EXTENDED_TYPES.get(parts[7].lower())
        if candidate_type is None:
            raise MalformedCandidate(f"Unknown candidate type value {parts[7]!r}")
        related_address = _parse_address(parts[9], "raddr")
        related_port = _parse_uint(parts[11], "rport", _U32_MAX)
    else:
        raise MalformedCandidate("Could not parse line into valid ice candidate.")

    return CandidateAttribute(
        foundation=foundation,
        component_id=_parse_uint(component_id, "component", _U32_MAX),
        transport=_parse_transport(transport),
        priority=_parse_uint(priority, "priority", _U64_MAX),
        address=_parse_address(address, "address"),
        port=_parse_uint(port, "port", _U32_MAX),
        type=candidate_type,
        related_address=related_address,
        related_port=related_port,
    )


def try_parse_candidate(raw: str) -> Optional[CandidateAttribute]:
    try:
        return parse_candidate(raw)
    except MalformedCandidate:
        return None


def serialize_candidate(candidate: CandidateAttribute) -> str:
    """Render ``candidate`` as an attribute value, including the ``candidate:`` prefix."""

    fields = [
        f"{CANDIDATE_PREFIX}{candidate.foundation}",
        str(candidate.component_id),
        candidate.transport.value,
        str(candidate.priority),
        str(candidate.address),
        str(candidate.port),
        "typ",
        candidate.type.value,
    ]
    if candidate.type is not CandidateType.HOST:
        fields.extend(
            ["raddr", str(candidate.related_address), "rport", str(candidate.related_port)]
        )
    return " ".join(fields)


__all__ = [
    "CANDIDATE_PREFIX",
    "CandidateAttribute",
    "CandidateTransport",
    "CandidateType",
    "parse_candidate",
    "serialize_candidate",
    "try_parse_candidate",
]
