"""Outbound HTTP capability for modules, gated by an allowlist and a quota.

Modules reach the network only through the ``wasi_experimental_http`` host
functions defined here.  Every call is checked against the handler's allowed
hosts and the per-request call budget before the injected ``httpx.Client``
sees it.  Policy refusals are returned to the guest as error codes; they
never trap and never fail the request on the host side.

Guest ABI (all integers are u32, pointers into the guest's exported memory):

    req(url_ptr, url_len, method_ptr, method_len,
        headers_ptr, headers_len, body_ptr, body_len,
        status_code_ptr, handle_ptr) -> err
    close(handle) -> err
    header_get(handle, name_ptr, name_len, value_ptr, value_len, written_ptr) -> err
    headers_get_all(handle, buf_ptr, buf_len, written_ptr) -> err
    body_read(handle, buf_ptr, buf_len, read_ptr) -> err

Header blocks crossing the boundary are "name:value\\n" lines.  The status
code is written as a u16, handles and byte counts as u32.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass
from enum import IntEnum
from typing import TYPE_CHECKING

import httpx
from wasmtime import FuncType, Memory, ValType

from wagi._logging import get_logger
from wagi.constants import OUTBOUND_HTTP_MODULE
from wagi.exceptions import HostNotAllowedError, OutboundPolicyError, RequestQuotaExceededError

if TYPE_CHECKING:
    from wasmtime import Caller, Linker

logger = get_logger(__name__)

_DEFAULT_PORTS = {"http": 80, "https": 443}


class HttpErrorCode(IntEnum):
    """Error codes returned to the guest."""

    SUCCESS = 0
    INVALID_HANDLE = 1
    MEMORY_NOT_FOUND = 2
    MEMORY_ACCESS_ERROR = 3
    BUFFER_TOO_SMALL = 4
    HEADER_NOT_FOUND = 5
    UTF8_ERROR = 6
    DESTINATION_NOT_ALLOWED = 7
    INVALID_METHOD = 8
    INVALID_ENCODING = 9
    INVALID_URL = 10
    REQUEST_ERROR = 11
    RUNTIME_ERROR = 12
    TOO_MANY_SESSIONS = 13


class _GuestMemoryError(Exception):
    """Guest pointer/length fell outside exported memory."""

    def __init__(self, code: HttpErrorCode):
        super().__init__(code.name)
        self.code = code


@dataclass(frozen=True)
class AllowedHost:
    """One allowlist entry.

    A bare host ("example.com") matches on host name alone; a URI
    ("https://example.com:8443") also pins the scheme and, when given, the port.
    """

    host: str
    scheme: str | None = None
    port: int | None = None

    @classmethod
    def parse(cls, entry: str) -> AllowedHost:
        entry = entry.strip()
        if "://" not in entry:
            return cls(host=entry.rstrip("/").lower())
        url = httpx.URL(entry)
        return cls(host=url.host.lower(), scheme=url.scheme.lower(), port=url.port)

    def matches(self, url: httpx.URL) -> bool:
        if url.host.lower() != self.host:
            return False
        if self.scheme is not None and url.scheme.lower() != self.scheme:
            return False
        if self.port is not None:
            target_port = url.port if url.port is not None else _DEFAULT_PORTS.get(url.scheme.lower())
            return target_port == self.port
        return True


@dataclass
class _OpenResponse:
    response: httpx.Response
    offset: int = 0


def encode_headers(headers: httpx.Headers) -> bytes:
    return "".join(f"{name}:{value}\n" for name, value in headers.multi_items()).encode()


def decode_headers(raw: bytes) -> list[tuple[str, str]]:
    """Parse a "name:value\\n" block; lines without ':' are skipped."""
    headers: list[tuple[str, str]] = []
    for line in raw.decode().splitlines():
        name, sep, value = line.partition(":")
        if sep and name:
            headers.append((name.strip(), value.strip()))
    return headers


class OutboundHttpMediator:
    """Polices and performs a module's outbound HTTP calls for one request.

    One mediator is created per request; its call counter is never shared.

    Attributes:
        allowed_hosts: Parsed allowlist entries
        max_requests: Calls allowed for this request
        request_count: Calls performed so far
    """

    def __init__(self, allowed_hosts: list[str], max_requests: int, client: httpx.Client) -> None:
        self.allowed_hosts = [AllowedHost.parse(entry) for entry in allowed_hosts]
        self.max_requests = max_requests
        self.request_count = 0
        self._client = client
        self._responses: dict[int, _OpenResponse] = {}
        self._next_handle = 1

    # -------------------------------------------------------------------------
    # Policy
    # -------------------------------------------------------------------------

    def is_allowed(self, url: httpx.URL | str) -> bool:
        target = httpx.URL(url)
        return any(allowed.matches(target) for allowed in self.allowed_hosts)

    def send(self, request: httpx.Request) -> httpx.Response:
        """Perform ``request`` if policy permits.

        Raises:
            HostNotAllowedError: Destination is not in the allowlist
            RequestQuotaExceededError: The per-request budget is spent
            httpx.HTTPError: Transport failure in the client
        """
        if not self.is_allowed(request.url):
            raise HostNotAllowedError(str(request.url))
        if self.request_count >= self.max_requests:
            raise RequestQuotaExceededError(self.max_requests)

        self.request_count += 1
        logger.debug(
            f"Outbound {request.method} {request.url} ({self.request_count}/{self.max_requests})",
        )
        response = self._client.send(request)
        response.read()
        return response

    def close(self) -> None:
        """Drop responses the guest never closed."""
        for open_response in self._responses.values():
            open_response.response.close()
        self._responses.clear()

    # -------------------------------------------------------------------------
    # Host function binding
    # -------------------------------------------------------------------------

    def link(self, linker: Linker) -> None:
        """Define the outbound HTTP host functions on ``linker``."""
        i32 = ValType.i32()
        bindings = [
            ("req", 10, self._req),
            ("close", 1, self._close),
            ("header_get", 6, self._header_get),
            ("headers_get_all", 4, self._headers_get_all),
            ("body_read", 4, self._body_read),
        ]
        for name, arity, func in bindings:
            linker.define_func(
                OUTBOUND_HTTP_MODULE,
                name,
                FuncType([i32] * arity, [i32]),
                func,
                access_caller=True,
            )

    def _req(
        self,
        caller: Caller,
        url_ptr: int,
        url_len: int,
        method_ptr: int,
        method_len: int,
        headers_ptr: int,
        headers_len: int,
        body_ptr: int,
        body_len: int,
        status_code_ptr: int,
        handle_ptr: int,
    ) -> int:
        try:
            memory = _memory(caller)
            url = _read(caller, memory, url_ptr, url_len).decode()
            method = _read(caller, memory, method_ptr, method_len).decode()
            headers = decode_headers(_read(caller, memory, headers_ptr, headers_len))
            body = _read(caller, memory, body_ptr, body_len)
        except _GuestMemoryError as e:
            return e.code
        except UnicodeDecodeError:
            return HttpErrorCode.UTF8_ERROR

        if not method or not method.isalpha():
            return HttpErrorCode.INVALID_METHOD
        try:
            request = self._client.build_request(method.upper(), url, headers=headers, content=body or None)
        except (httpx.InvalidURL, httpx.UnsupportedProtocol):
            return HttpErrorCode.INVALID_URL
        except ValueError as e:
            # non-ASCII header names or values
            logger.warning(f"Rejected outbound request to {url}: {e}")
            return HttpErrorCode.INVALID_ENCODING

        try:
            response = self.send(request)
        except OutboundPolicyError as e:
            logger.warning(f"Refused outbound call: {e.message}", extra=e.context)
            if isinstance(e, RequestQuotaExceededError):
                return HttpErrorCode.TOO_MANY_SESSIONS
            return HttpErrorCode.DESTINATION_NOT_ALLOWED
        except httpx.HTTPError as e:
            logger.warning(f"Outbound call to {url} failed: {e}")
            return HttpErrorCode.REQUEST_ERROR

        try:
            _check_bounds(caller, memory, status_code_ptr, 2)
            _check_bounds(caller, memory, handle_ptr, 4)
        except _GuestMemoryError as e:
            response.close()
            return e.code

        handle = self._next_handle
        self._next_handle += 1
        self._responses[handle] = _OpenResponse(response)
        memory.write(caller, struct.pack("<H", response.status_code), status_code_ptr)
        memory.write(caller, struct.pack("<I", handle), handle_ptr)
        return HttpErrorCode.SUCCESS

    def _close(self, caller: Caller, handle: int) -> int:
        open_response = self._responses.pop(handle, None)
        if open_response is None:
            return HttpErrorCode.INVALID_HANDLE
        open_response.response.close()
        return HttpErrorCode.SUCCESS

    def _header_get(
        self,
        caller: Caller,
        handle: int,
        name_ptr: int,
        name_len: int,
        value_ptr: int,
        value_len: int,
        written_ptr: int,
    ) -> int:
        open_response = self._responses.get(handle)
        if open_response is None:
            return HttpErrorCode.INVALID_HANDLE
        try:
            memory = _memory(caller)
            name = _read(caller, memory, name_ptr, name_len).decode()
        except _GuestMemoryError as e:
            return e.code
        except UnicodeDecodeError:
            return HttpErrorCode.UTF8_ERROR

        value = open_response.response.headers.get(name)
        if value is None:
            return HttpErrorCode.HEADER_NOT_FOUND
        return _write_buffer(caller, memory, value.encode(), value_ptr, value_len, written_ptr)

    def _headers_get_all(self, caller: Caller, handle: int, buf_ptr: int, buf_len: int, written_ptr: int) -> int:
        open_response = self._responses.get(handle)
        if open_response is None:
            return HttpErrorCode.INVALID_HANDLE
        try:
            memory = _memory(caller)
        except _GuestMemoryError as e:
            return e.code
        data = encode_headers(open_response.response.headers)
        return _write_buffer(caller, memory, data, buf_ptr, buf_len, written_ptr)

    def _body_read(self, caller: Caller, handle: int, buf_ptr: int, buf_len: int, read_ptr: int) -> int:
        open_response = self._responses.get(handle)
        if open_response is None:
            return HttpErrorCode.INVALID_HANDLE
        try:
            memory = _memory(caller)
        except _GuestMemoryError as e:
            return e.code

        content = open_response.response.content
        chunk = content[open_response.offset : open_response.offset + buf_len]
        try:
            _check_bounds(caller, memory, buf_ptr, len(chunk))
            _check_bounds(caller, memory, read_ptr, 4)
            if chunk:
                memory.write(caller, chunk, buf_ptr)
            memory.write(caller, struct.pack("<I", len(chunk)), read_ptr)
        except _GuestMemoryError as e:
            return e.code
        open_response.offset += len(chunk)
        return HttpErrorCode.SUCCESS


# =============================================================================
# Guest memory helpers
# =============================================================================


def _memory(caller: Caller) -> Memory:
    memory = caller.get("memory")
    if not isinstance(memory, Memory):
        raise _GuestMemoryError(HttpErrorCode.MEMORY_NOT_FOUND)
    return memory


def _check_bounds(caller: Caller, memory: Memory, ptr: int, length: int) -> None:
    if ptr < 0 or length < 0 or ptr + length > memory.data_len(caller):
        raise _GuestMemoryError(HttpErrorCode.MEMORY_ACCESS_ERROR)


def _read(caller: Caller, memory: Memory, ptr: int, length: int) -> bytes:
    if length == 0:
        return b""
    _check_bounds(caller, memory, ptr, length)
    return bytes(memory.read(caller, ptr, ptr + length))


def _write_buffer(caller: Caller, memory: Memory, data: bytes, ptr: int, capacity: int, written_ptr: int) -> int:
    if len(data) > capacity:
        return HttpErrorCode.BUFFER_TOO_SMALL
    try:
        _check_bounds(caller, memory, ptr, len(data))
        _check_bounds(caller, memory, written_ptr, 4)
    except _GuestMemoryError as e:
        return e.code
    if data:
        memory.write(caller, data, ptr)
    memory.write(caller, struct.pack("<I", len(data)), written_ptr)
    return HttpErrorCode.SUCCESS
