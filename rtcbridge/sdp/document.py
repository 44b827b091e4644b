"""
Text-level SDP document model.

Session descriptions are kept as ordered lines so that anything the engine or
the browser wrote survives a parse/serialise cycle untouched.  Media sections
are addressable by their zero-based position, which is the same index ICE uses
for ``sdpMLineIndex``.

Every document passes through :func:`validate_sdp` before it is modelled.  The
validator is deliberately stricter than the media engine's own parser: feeding
structurally broken SDP to the engine can take the whole process down, so bad
input has to be rejected here.
"""

from __future__ import annotations

import copy
import logging
import re
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Tuple

from ..errors import MalformedCandidate, MalformedSdp
from ..rtc.webrtc import IceCandidate
from .candidate import parse_candidate, serialize_candidate

LOG = logging.getLogger(__name__)

CRLF = "\r\n"
PREFIX_ATTRIBUTE = "a="
PREFIX_ATTRIBUTE_CANDIDATE = "a=candidate:"

SESSION_LINE_TYPES = frozenset("vosiuepcbtrzkam")
MEDIA_LINE_TYPES = frozenset("icbkam")

_LINE = re.compile(r"([a-z])=(.*)")
_TOKEN = re.compile(r"[!#$%&'*+\-.0-9A-Z^_`a-z{|}~]+")
_DIGITS = re.compile(r"[0-9]+")
_MEDIA_PORT = re.compile(r"([0-9]+)(?:/([0-9]+))?")
_PROTO = re.compile(r"[A-Za-z0-9]+(?:/[A-Za-z0-9]+)*")


@dataclass(frozen=True)
class SdpLine:
    """One ``<type>=<value>`` line."""

    type: str
    value: str

    def __post_init__(self) -> None:
        if any(char in self.value for char in "\r\n\x00"):
            raise MalformedSdp(f"{self.type}= value contains a line terminator")

    @property
    def attribute(self) -> Optional[Tuple[str, Optional[str]]]:
        if self.type != "a":
            return None
        name, sep, value = self.value.partition(":")
        return name, (value if sep else None)

    def __str__(self) -> str:
        return f"{self.type}={self.value}"


@dataclass
class MediaSection:
    """An ``m=`` line and every line that follows it up to the next one."""

    header: str
    lines: List[SdpLine] = field(default_factory=list)

    @property
    def kind(self) -> str:
        return self.header.split()[0]

    @property
    def port(self) -> int:
        return int(self.header.split()[1].split("/")[0])

    @property
    def protocol(self) -> str:
        return self.header.split()[2]

    @property
    def formats(self) -> List[str]:
        return self.header.split()[3:]

    @property
    def attributes(self) -> List[Tuple[str, Optional[str]]]:
        return [line.attribute for line in self.lines if line.type == "a"]  # type: ignore[misc]

    def attribute_values(self, name: str) -> List[str]:
        return [value or "" for key, value in self.attributes if key == name]

    @property
    def candidates(self) -> List[str]:
        return [f"candidate:{value}" for value in self.attribute_values("candidate")]

    def iter_lines(self) -> Iterable[SdpLine]:
        yield SdpLine("m", self.header)
        yield from self.lines


@dataclass
class SdpDocument:
    """Session-level lines followed by an ordered list of media sections."""

    session: List[SdpLine] = field(default_factory=list)
    media: List[MediaSection] = field(default_factory=list)

    @classmethod
    def parse(cls, raw: str) -> "SdpDocument":
        return parse_sdp(raw)

    def copy(self) -> "SdpDocument":
        return copy.deepcopy(self)

    def iter_lines(self) -> Iterable[SdpLine]:
        yield from self.session
        for section in self.media:
            yield from section.iter_lines()

    def inject(self, candidates: Iterable[IceCandidate]) -> "SdpDocument":
        return inject_candidates(self, candidates)

    def serialize(self) -> str:
        return serialize_sdp(self)

    def __str__(self) -> str:
        return self.serialize()


# ---------------------------------------------------------------------- validation


def _iter_raw_lines(raw: str) -> Iterable[Tuple[int, str]]:
    for number, line in enumerate(raw.split("\n"), start=1):
        if line.endswith("\r"):
            line = line[:-1]
        if not line.strip():
            continue
        yield number, line


def _check_origin(value: str, number: int) -> None:
    parts = value.split(" ")
    if len(parts) != 6 or not all(parts):
        raise MalformedSdp("o= requires six space separated fields", number)
    _, session_id, session_version, nettype, addrtype, address = parts
    if not _DIGITS.fullmatch(session_id) or not _DIGITS.fullmatch(session_version):
        raise MalformedSdp("o= session id and version must be numeric", number)
    if not (_TOKEN.fullmatch(nettype) and _TOKEN.fullmatch(addrtype) and address):
        raise MalformedSdp("o= has an invalid network description", number)


def _check_connection(value: str, number: int) -> None:
    parts = value.split(" ")
    if len(parts) != 3 or not all(_TOKEN.fullmatch(part) for part in parts[:2]) or not parts[2]:
        raise MalformedSdp("c= requires <nettype> <addrtype> <address>", number)


def _check_timing(value: str, number: int) -> None:
    parts = value.split(" ")
    if len(parts) != 2 or not all(_DIGITS.fullmatch(part) for part in parts):
        raise MalformedSdp("t= requires numeric <start> <stop>", number)


def _check_bandwidth(value: str, number: int) -> None:
    bwtype, sep, amount = value.partition(":")
    if not sep or not _TOKEN.fullmatch(bwtype) or not _DIGITS.fullmatch(amount):
        raise MalformedSdp("b= requires <bwtype>:<bandwidth>", number)


def _check_media(value: str, number: int) -> None:
    parts = value.split(" ")
    if len(parts) < 4 or not all(parts):
        raise MalformedSdp("m= requires <media> <port> <proto> <fmt> ...", number)
    kind, port, proto, *formats = parts
    if not _TOKEN.fullmatch(kind):
        raise MalformedSdp(f"invalid media type {kind!r}", number)
    port_match = _MEDIA_PORT.fullmatch(port)
    if not port_match or int(port_match.group(1)) > 65535:
        raise MalformedSdp(f"invalid media port {port!r}", number)
    if not _PROTO.fullmatch(proto):
        raise MalformedSdp(f"invalid media protocol {proto!r}", number)
    if not all(_TOKEN.fullmatch(fmt) for fmt in formats):
        raise MalformedSdp("invalid media format list", number)


def _check_attribute(value: str, number: int) -> None:
    name = value.partition(":")[0]
    if not _TOKEN.fullmatch(name):
        raise MalformedSdp(f"invalid attribute name {name!r}", number)


_CHECKS = {
    "o": _check_origin,
    "c": _check_connection,
    "t": _check_timing,
    "b": _check_bandwidth,
    "m": _check_media,
    "a": _check_attribute,
}


def validate_sdp(raw: str) -> List[SdpLine]:
    """
    Check ``raw`` against the SDP grammar and return its lines.

    Raises :class:`MalformedSdp` on the first violation.  Blank lines are
    tolerated and dropped.
    """

    if not isinstance(raw, str) or not raw.strip():
        raise MalformedSdp("empty session description")
    if "\x00" in raw:
        raise MalformedSdp("session description contains NUL bytes")

    lines: List[SdpLine] = []
    in_media = False
    has_timing = False
    for number, text in _iter_raw_lines(raw):
        match = _LINE.fullmatch(text)
        if not match:
            raise MalformedSdp(f"expected <type>=<value>, got {text[:40]!r}", number)
        line_type, value = match.groups()
        if "\r" in value:
            raise MalformedSdp("stray carriage return", number)

        position = len(lines)
        expected = "vos"[position] if position < 3 else None
        if expected is not None and line_type != expected:
            raise MalformedSdp(f"expected {expected}= line, got {line_type}=", number)
        if line_type == "v" and (position != 0 or value != "0"):
            raise MalformedSdp("only one v=0 line is allowed, at the top", number)

        allowed = MEDIA_LINE_TYPES if in_media else SESSION_LINE_TYPES
        if line_type not in allowed:
            scope = "media" if in_media else "session"
            raise MalformedSdp(f"{line_type}= line not allowed at {scope} level", number)

        if line_type != "s" and not value:
            raise MalformedSdp(f"{line_type}= line has no value", number)
        check = _CHECKS.get(line_type)
        if check is not None:
            check(value, number)

        if line_type == "t":
            has_timing = True
        elif line_type == "m":
            if not has_timing:
                raise MalformedSdp("missing t= line before first media section", number)
            in_media = True
        lines.append(SdpLine(line_type, value))

    if len(lines) < 3:
        raise MalformedSdp("session description requires v=, o= and s= lines")
    if not has_timing:
        raise MalformedSdp("missing t= line")
    return lines


# ---------------------------------------------------------------------- model operations


def parse_sdp(raw: str) -> SdpDocument:
    """Validate ``raw`` and split it into session lines and media sections."""

    document = SdpDocument()
    current: Optional[MediaSection] = None
    for line in validate_sdp(raw):
        if line.type == "m":
            current = MediaSection(header=line.value)
            document.media.append(current)
        elif current is None:
            document.session.append(line)
        else:
            current.lines.append(line)
    return document


def inject_candidates(document: SdpDocument, candidates: Iterable[IceCandidate]) -> SdpDocument:
    """
    Return a copy of ``document`` with ``candidates`` appended as ``a=candidate``
    lines to the media section each one names.

    Candidates pointing at a missing media section, or whose text cannot be
    translated, are skipped without failing the batch.
    """

    result = document.copy()
    injected = 0
    for candidate in candidates:
        index = int(candidate.media_line_index)
        if index >= len(result.media):
            LOG.warning(
                "Skipping candidate for missing media line %s (document has %s): %s",
                index,
                len(result.media),
                candidate.candidate_text,
            )
            continue
        try:
            parsed = parse_candidate(candidate.candidate_text)
        except MalformedCandidate as exc:
            LOG.warning("Skipping untranslatable candidate %r: %s", candidate.candidate_text, exc)
            continue
        result.media[index].lines.append(SdpLine("a", serialize_candidate(parsed)))
        injected += 1
    LOG.debug("Injected %s candidate(s) into session description", injected)
    return result


def extract_candidates(raw: str) -> List[str]:
    """
    Return every candidate attribute in ``raw`` with the leading ``a=`` removed,
    in source order.  Lines are split the same way :func:`validate_sdp` splits them,
    on LF with an optional trailing CR.  For example::

        a=candidate:3719404024 1 udp 2122260223 192.168.0.91 55827 typ host generation 0

    yields ``candidate:3719404024 1 udp 2122260223 192.168.0.91 55827 typ host generation 0``.
    """

    return [
        line[len(PREFIX_ATTRIBUTE):]
        for _, line in _iter_raw_lines(raw)
        if line.startswith(PREFIX_ATTRIBUTE_CANDIDATE)
    ]


def serialize_sdp(document: SdpDocument) -> str:
    """Render ``document`` with CRLF line endings and no empty lines."""

    text = CRLF.join(str(line) for line in document.iter_lines()) + CRLF
    doubled = CRLF + CRLF
    while doubled in text:
        text = text.replace(doubled, CRLF)
    return text


__all__ = [
    "MediaSection",
    "SdpDocument",
    "SdpLine",
    "extract_candidates",
    "inject_candidates",
    "parse_sdp",
    "serialize_sdp",
    "validate_sdp",
]
