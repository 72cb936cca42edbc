"""Reconstruction of an HTTP response from a module's CGI output.

Module stdout is a header block, a blank line, then the body:

    status: 404 Not Found
    content-type: text/plain

    missing

Recognised headers:
    location      -> Location (comma-split values)
    content-type  -> Content-Type
    status        -> status code and optional reason phrase
    anything else -> forwarded as-is (comma-split values)

At least one of location/content-type is required; without either the
module produced no usable response.
"""

from __future__ import annotations

import io
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from wagi._logging import get_logger
from wagi.constants import DEFAULT_STATUS_CODE
from wagi.exceptions import MalformedHeaderError, MissingResponseHeadersError
from wagi.models import OutwardResponse

if TYPE_CHECKING:
    from wagi.streams import StreamBuffer

logger = get_logger(__name__)


class HeaderKind(Enum):
    LOCATION = "location"
    CONTENT_TYPE = "content-type"
    STATUS = "status"
    GENERIC = "generic"


_KINDS_BY_NAME = {kind.value: kind for kind in HeaderKind if kind is not HeaderKind.GENERIC}


@dataclass(frozen=True)
class CgiHeaderLine:
    """One ``name: value`` line from the header block."""

    kind: HeaderKind
    name: str
    value: str

    def values(self) -> list[str]:
        """Comma-split value list."""
        return [item.strip() for item in self.value.split(",")]


def classify_header(line: str) -> CgiHeaderLine:
    """Split a header line at its first ':' and classify the name.

    Raises:
        MalformedHeaderError: No ':' or an empty name
    """
    name, sep, value = line.partition(":")
    name = name.strip()
    if not sep or not name:
        raise MalformedHeaderError(f"Module produced a malformed header line: {line!r}", line)
    kind = _KINDS_BY_NAME.get(name.lower(), HeaderKind.GENERIC)
    return CgiHeaderLine(kind=kind, name=name, value=value.strip())


def parse_status(value: str) -> tuple[int, str]:
    """Parse ``"404 Not Found"`` into ``(404, "Not Found")``."""
    code, _, reason = value.partition(" ")
    try:
        status = int(code)
    except ValueError:
        raise MalformedHeaderError(f"Module produced an invalid status: {value!r}", value) from None
    if not 100 <= status <= 999:  # noqa: PLR2004
        raise MalformedHeaderError(f"Module produced an out-of-range status: {value!r}", value)
    return status, reason.strip()


class ResponseParser:
    """Incremental parser fed one stdout line at a time.

    Lines keep their terminators; the body is reproduced byte-for-byte.
    """

    def __init__(self) -> None:
        self._header_lines: list[str] = []
        self._body = bytearray()
        self._in_body = False

    def feed(self, line: bytes) -> None:
        if self._in_body:
            self._body += line
            return
        text = line.rstrip(b"\r\n").strip(b"\0").decode(errors="replace")
        if not text:
            self._in_body = True
            return
        self._header_lines.append(text)

    def finish(self) -> OutwardResponse:
        """Build the response.

        Raises:
            MissingResponseHeadersError: Neither Location nor Content-Type present
            MalformedHeaderError: A header line or status could not be parsed
        """
        headers: list[tuple[str, str]] = []
        status_code = DEFAULT_STATUS_CODE
        reason = ""
        sufficient = False

        for line in self._header_lines:
            header = classify_header(line)
            match header.kind:
                case HeaderKind.LOCATION:
                    headers.extend(("Location", value) for value in header.values())
                    sufficient = True
                case HeaderKind.CONTENT_TYPE:
                    headers.append(("Content-Type", header.value))
                    sufficient = True
                case HeaderKind.STATUS:
                    status_code, reason = parse_status(header.value)
                case HeaderKind.GENERIC:
                    headers.extend((header.name, value) for value in header.values())

        if not sufficient:
            raise MissingResponseHeadersError("Module did not produce either location or content-type headers")

        return OutwardResponse(
            status_code=status_code,
            reason=reason or None,
            headers=headers,
            body=bytes(self._body).rstrip(b"\0"),
        )


def parse_output(output: bytes) -> OutwardResponse:
    """Parse a complete CGI output buffer."""
    parser = ResponseParser()
    for line in io.BytesIO(output):
        parser.feed(line)
    return parser.finish()


async def reconstruct_response(stdout: StreamBuffer) -> OutwardResponse:
    """Read a module's stdout back and build the outward response."""
    parser = ResponseParser()
    async for line in stdout.read_lines():
        parser.feed(line)
    response = parser.finish()
    logger.debug(f"Module responded {response.status_code} with {len(response.body)} body bytes")
    return response
