"""Tests for CGI output -> HTTP response reconstruction (response.py)."""

import pytest

from wagi.exceptions import MalformedHeaderError, MissingResponseHeadersError, ProtocolError
from wagi.response import HeaderKind, ResponseParser, classify_header, parse_output, parse_status, reconstruct_response
from wagi.streams import StdioBuffers

# ============================================================================
# Whole outputs
# ============================================================================


class TestParseOutput:
    def test_content_type_and_body(self) -> None:
        response = parse_output(b"content-type: text/plain\n\nhello")

        assert response.status_code == 200
        assert response.reason is None
        assert response.headers == [("Content-Type", "text/plain")]
        assert response.body == b"hello"

    def test_status_with_reason(self) -> None:
        response = parse_output(b"status: 404 Not Found\ncontent-type: text/plain\n\nmissing")

        assert response.status_code == 404
        assert response.reason == "Not Found"
        assert response.content_type == "text/plain"
        assert response.body == b"missing"

    def test_multiword_reason_kept_whole(self) -> None:
        response = parse_output(b"Status: 418 I'm a teapot\nContent-Type: text/plain\n\n")
        assert response.status_code == 418
        assert response.reason == "I'm a teapot"

    def test_location_only_redirect(self) -> None:
        response = parse_output(b"status: 302\nlocation: https://example.com/next\n\n")

        assert response.status_code == 302
        assert response.reason is None
        assert response.get_all("Location") == ["https://example.com/next"]
        assert response.body == b""

    def test_location_values_comma_split(self) -> None:
        response = parse_output(b"location: /a, /b\n\n")
        assert response.get_all("location") == ["/a", "/b"]

    def test_generic_headers_forwarded(self) -> None:
        response = parse_output(b"content-type: text/html\nX-Custom: one, two\nX-Custom: three\n\n<p/>")
        assert response.get_all("X-Custom") == ["one", "two", "three"]

    def test_header_value_split_at_first_colon_only(self) -> None:
        response = parse_output(b"content-type: text/plain\nX-Link: http://example.com:8080/x\n\n")
        assert response.get_header("x-link") == "http://example.com:8080/x"

    def test_crlf_line_endings(self) -> None:
        response = parse_output(b"Content-Type: text/plain\r\n\r\nbody\r\n")
        assert response.content_type == "text/plain"
        assert response.body == b"body\r\n"

    def test_body_preserved_byte_for_byte(self) -> None:
        body = b"line one\n\nline three\r\n\x00mid\xff\n"
        response = parse_output(b"content-type: application/octet-stream\n\n" + body)
        assert response.body == body

    def test_trailing_nul_padding_stripped(self) -> None:
        response = parse_output(b"content-type: text/plain\x00\n\nhello\x00\x00\x00")
        assert response.content_type == "text/plain"
        assert response.body == b"hello"

    def test_last_status_wins(self) -> None:
        response = parse_output(b"status: 201\nstatus: 202 Accepted\ncontent-type: text/plain\n\n")
        assert response.status_code == 202


# ============================================================================
# Failures
# ============================================================================


class TestParseOutputErrors:
    def test_no_headers(self) -> None:
        with pytest.raises(MissingResponseHeadersError, match="location or content-type"):
            parse_output(b"\nhello")

    def test_status_alone_is_not_sufficient(self) -> None:
        with pytest.raises(MissingResponseHeadersError):
            parse_output(b"status: 200 OK\n\nhello")

    def test_empty_output(self) -> None:
        with pytest.raises(MissingResponseHeadersError):
            parse_output(b"")

    def test_header_line_without_colon(self) -> None:
        with pytest.raises(MalformedHeaderError) as exc_info:
            parse_output(b"content-type: text/plain\nnot a header\n\n")
        assert exc_info.value.line == "not a header"
        assert exc_info.value.context == {"line": "not a header"}

    @pytest.mark.parametrize("status", ["abc", "99", "1000", ""])
    def test_invalid_status(self, status: str) -> None:
        with pytest.raises(MalformedHeaderError):
            parse_output(f"status: {status}\ncontent-type: text/plain\n\n".encode())

    def test_errors_are_protocol_errors(self) -> None:
        with pytest.raises(ProtocolError):
            parse_output(b"x-only: 1\n\n")


# ============================================================================
# Line classification
# ============================================================================


class TestClassifyHeader:
    @pytest.mark.parametrize(
        ("line", "kind"),
        [
            ("Location: /x", HeaderKind.LOCATION),
            ("CONTENT-TYPE: text/plain", HeaderKind.CONTENT_TYPE),
            ("status: 200", HeaderKind.STATUS),
            ("X-Other: y", HeaderKind.GENERIC),
        ],
    )
    def test_kinds(self, line: str, kind: HeaderKind) -> None:
        assert classify_header(line).kind is kind

    def test_name_and_value_trimmed(self) -> None:
        header = classify_header("  X-Name  :   spaced value  ")
        assert header.name == "X-Name"
        assert header.value == "spaced value"

    def test_empty_name(self) -> None:
        with pytest.raises(MalformedHeaderError):
            classify_header(": value")

    def test_parse_status_without_reason(self) -> None:
        assert parse_status("204") == (204, "")


# ============================================================================
# Incremental parsing
# ============================================================================


class TestResponseParser:
    def test_feed_line_by_line(self) -> None:
        parser = ResponseParser()
        for line in [b"content-type: text/plain\n", b"\n", b"a\n", b"b"]:
            parser.feed(line)
        assert parser.finish().body == b"a\nb"

    async def test_reconstruct_from_stream(self, stdio: StdioBuffers) -> None:
        await stdio.stdout.write(b"status: 201 Created\ncontent-type: application/json\n\n{}")
        response = await reconstruct_response(stdio.stdout)
        assert response.status_code == 201
        assert response.reason == "Created"
        assert response.body == b"{}"
