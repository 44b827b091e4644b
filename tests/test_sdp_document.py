import pytest

from rtcbridge.errors import MalformedSdp
from rtcbridge.rtc.webrtc import IceCandidate
from rtcbridge.sdp.document import (
    MediaSection,
    SdpDocument,
    SdpLine,
    extract_candidates,
    inject_candidates,
    parse_sdp,
    serialize_sdp,
    validate_sdp,
)

from fakes import HOST_CANDIDATE, OFFER_SDP, SRFLX_CANDIDATE


def test_parse_splits_session_and_media_sections() -> None:
    document = parse_sdp(OFFER_SDP)

    assert [line.type for line in document.session] == ["v", "o", "s", "t", "a"]
    assert [section.kind for section in document.media] == ["video", "audio"]
    assert document.media[0].port == 9
    assert document.media[0].protocol == "UDP/TLS/RTP/SAVPF"
    assert document.media[1].formats == ["97"]
    assert document.media[0].attribute_values("mid") == ["video0"]


def test_parse_accepts_lf_line_endings_and_blank_lines() -> None:
    raw = OFFER_SDP.replace("\r\n", "\n").replace("s=-\n", "s=-\n\n")

    document = parse_sdp(raw)

    assert len(document.media) == 2


def test_serialize_uses_crlf_without_empty_lines() -> None:
    document = parse_sdp(OFFER_SDP.replace("\r\n", "\n"))
    document.media[0].lines.append(SdpLine("a", "x-extra"))

    text = serialize_sdp(document)

    assert text.endswith("\r\n")
    assert "\r\n\r\n" not in text
    assert "\n" not in text.replace("\r\n", "")
    assert text.startswith("v=0\r\no=- 1 1 IN IP4 0.0.0.0\r\n")


def test_unmodified_document_serializes_to_its_input() -> None:
    assert parse_sdp(OFFER_SDP).serialize() == OFFER_SDP


@pytest.mark.parametrize(
    "raw",
    [
        "",
        "   \r\n",
        OFFER_SDP.replace("v=0\r\n", ""),
        OFFER_SDP.replace("v=0", "v=1"),
        OFFER_SDP.replace("o=- 1 1 IN IP4 0.0.0.0\r\n", ""),
        OFFER_SDP.replace("t=0 0\r\n", ""),
        OFFER_SDP.replace("t=0 0", "t=now"),
        OFFER_SDP.replace("m=audio 9 UDP/TLS/RTP/SAVPF 97", "m=audio 70000 UDP/TLS/RTP/SAVPF 97"),
        OFFER_SDP.replace("m=audio 9 UDP/TLS/RTP/SAVPF 97", "m=audio 9"),
        OFFER_SDP.replace("a=mid:audio1", "this is not sdp"),
        OFFER_SDP.replace("a=mid:audio1", "x=unknown"),
        OFFER_SDP.replace("a=mid:audio1", "s=late session name"),
        OFFER_SDP.replace("a=mid:audio1", "a="),
        OFFER_SDP.replace("o=- 1 1", "o=- one 1"),
        OFFER_SDP + "v=0\r\n",
        OFFER_SDP.replace("s=-", "s=-\x00"),
    ],
)
def test_validate_rejects_malformed_descriptions(raw: str) -> None:
    with pytest.raises(MalformedSdp):
        validate_sdp(raw)


def test_malformed_sdp_reports_line_number() -> None:
    with pytest.raises(MalformedSdp) as excinfo:
        validate_sdp(OFFER_SDP.replace("t=0 0", "t=soon"))

    assert excinfo.value.line_number == 4
    assert "line 4" in str(excinfo.value)


def test_extract_candidates_in_source_order() -> None:
    raw = OFFER_SDP.replace(
        "a=mid:video0\r\n",
        "a=mid:video0\r\n"
        "a=candidate:1 1 udp 2122260223 192.168.0.91 55827 typ host generation 0\r\n"
        "a=candidate:2 1 udp 1686052607 203.0.113.7 61000 typ srflx raddr 192.168.0.91 rport 55827\r\n",
    ).replace(
        "a=mid:audio1\r\n",
        "a=mid:audio1\r\na=candidate:3 1 tcp 1518280447 192.168.0.91 9 typ host tcptype active\r\n",
    )

    assert extract_candidates(raw) == [
        "candidate:1 1 udp 2122260223 192.168.0.91 55827 typ host generation 0",
        "candidate:2 1 udp 1686052607 203.0.113.7 61000 typ srflx raddr 192.168.0.91 rport 55827",
        "candidate:3 1 tcp 1518280447 192.168.0.91 9 typ host tcptype active",
    ]


def test_extract_candidates_ignores_other_attributes() -> None:
    assert extract_candidates(OFFER_SDP) == []


def test_inject_candidates_into_first_section_only() -> None:
    document = parse_sdp(OFFER_SDP)

    injected = inject_candidates(
        document,
        [IceCandidate(0, HOST_CANDIDATE), IceCandidate(0, SRFLX_CANDIDATE)],
    )

    assert injected.media[0].candidates == [HOST_CANDIDATE, SRFLX_CANDIDATE]
    assert injected.media[1].lines == document.media[1].lines
    assert injected.session == document.session
    assert document.media[0].candidates == []


def test_inject_skips_out_of_range_media_line() -> None:
    document = parse_sdp(OFFER_SDP)

    injected = inject_candidates(document, [IceCandidate(5, HOST_CANDIDATE)])

    assert injected.serialize() == document.serialize()


def test_inject_skips_untranslatable_candidates() -> None:
    document = parse_sdp(OFFER_SDP)

    injected = document.inject(
        [
            IceCandidate(1, "candidate:1 1 udp 100 e3c2f1a0.local 5000 typ host"),
            IceCandidate(1, "garbage"),
            IceCandidate(1, HOST_CANDIDATE.replace("UDP", "udp")),
        ]
    )

    assert injected.media[1].candidates == [HOST_CANDIDATE]
    assert injected.media[0].candidates == []


def test_injected_lines_are_normalised() -> None:
    document = parse_sdp(OFFER_SDP)

    injected = inject_candidates(
        document,
        [IceCandidate(0, "candidate:1 1 udp 2122252543 192.168.0.91 55827 typ host generation 0")],
    )

    assert "a=candidate:1 1 UDP 2122252543 192.168.0.91 55827 typ host\r\n" in injected.serialize()


@pytest.mark.parametrize("separator", ["\u2028", "\x85", "\x0b", "\x0c", "\x1e"])
def test_extract_candidates_splits_lines_like_the_validator(separator: str) -> None:
    raw = OFFER_SDP.replace(
        "a=mid:video0",
        f"a=mid:video0{separator}a=candidate:9 1 udp 1 10.6.6.6 666 typ host",
    )

    assert parse_sdp(raw).media[0].candidates == []
    assert extract_candidates(raw) == []


def test_extract_candidates_handles_lf_only_input() -> None:
    raw = OFFER_SDP.replace("\r\n", "\n").replace(
        "a=mid:audio1\n", f"a=mid:audio1\na={HOST_CANDIDATE}\n"
    )

    assert extract_candidates(raw) == [HOST_CANDIDATE]


@pytest.mark.parametrize("value", ["x-extra\n", "x-extra\r", "x\r\nm=audio 9 RTP/AVP 0", "x\x00"])
def test_line_values_cannot_carry_terminators(value: str) -> None:
    with pytest.raises(MalformedSdp):
        SdpLine("a", value)


def test_serialize_hand_built_document() -> None:
    document = SdpDocument(
        session=[SdpLine("v", "0"), SdpLine("o", "- 7 7 IN IP4 127.0.0.1"), SdpLine("s", ""), SdpLine("t", "0 0")],
        media=[MediaSection("audio 9 RTP/AVP 0", [SdpLine("a", "sendrecv")])],
    )

    text = serialize_sdp(document)

    assert text == "v=0\r\no=- 7 7 IN IP4 127.0.0.1\r\ns=\r\nt=0 0\r\nm=audio 9 RTP/AVP 0\r\na=sendrecv\r\n"
    assert "\r\n\r\n" not in text


def test_media_header_with_terminator_is_rejected_on_serialize() -> None:
    document = SdpDocument(
        session=[SdpLine("v", "0")],
        media=[MediaSection("audio 9 RTP/AVP 0\n", [])],
    )

    with pytest.raises(MalformedSdp):
        serialize_sdp(document)
