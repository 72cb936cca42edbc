"""Projection of an inbound HTTP request onto a CGI process environment.

The variable names and their derivations are the wire contract between the
gateway and every module it runs; changing an entry here breaks modules.
Projection is deterministic and total: the same request always yields the
same variables in the same order.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from urllib.parse import unquote_plus

from wagi.constants import (
    CGI_VERSION,
    DEFAULT_SERVER_PORT,
    DROPPED_HEADERS,
    SERVER_SOFTWARE,
    WILDCARD_ROUTE_SUFFIX,
)
from wagi.models import InboundRequest

HTTP_VAR_PREFIX = "HTTP_"


def header_var_name(header: str) -> str:
    """CGI variable name for an HTTP header (``X-Foo`` -> ``HTTP_X_FOO``)."""
    return HTTP_VAR_PREFIX + header.upper().replace("-", "_")


def full_url(request: InboundRequest) -> str:
    authority = request.host if request.port is None else f"{request.host}:{request.port}"
    query = f"?{request.query}" if request.query else ""
    return f"{request.scheme}://{authority}{request.path}{query}"


def relative_path(route: str | None, path: str) -> str:
    """Portion of ``path`` beyond a wildcard route's fixed prefix.

    ``relative_path("/foo/...", "/foo/bar/baz") == "/bar/baz"``.  Routes
    without the wildcard suffix, and paths outside the prefix, yield "".
    """
    if not route or not route.endswith(WILDCARD_ROUTE_SUFFIX):
        return ""
    prefix = route.removesuffix(WILDCARD_ROUTE_SUFFIX)
    if not path.startswith(prefix):
        return ""
    return path[len(prefix) :]


def project_headers(headers: list[tuple[str, str]]) -> list[tuple[str, str]]:
    """HTTP_* variables for inbound headers.

    Repeated headers are folded into one comma-joined value in arrival
    order; Authorization and Connection never reach the module.
    """
    folded: dict[str, list[str]] = {}
    for name, value in headers:
        if name.lower() in DROPPED_HEADERS:
            continue
        folded.setdefault(header_var_name(name), []).append(value)
    return [(key, ",".join(values)) for key, values in folded.items()]


def project_environment(request: InboundRequest, script_name: str) -> list[tuple[str, str]]:
    """Build the CGI variable set for ``request``.

    Args:
        request: Inbound request
        script_name: Module identifier, exposed as SCRIPT_NAME

    Returns:
        Ordered (name, value) pairs with unique names
    """
    env: list[tuple[str, str]] = [("AUTH_TYPE", "")]

    if request.body:
        env.append(("CONTENT_LENGTH", str(len(request.body))))

    remote = request.client_address or ""
    env.extend(
        [
            ("CONTENT_TYPE", request.content_type or ""),
            ("X_FULL_URL", full_url(request)),
            ("GATEWAY_INTERFACE", CGI_VERSION),
            ("X_MATCHED_ROUTE", request.matched_route or ""),
            ("PATH_INFO", request.path),
            ("PATH_TRANSLATED", request.path),
            ("QUERY_STRING", request.query),
            ("REMOTE_ADDR", remote),
            ("REMOTE_HOST", remote),
            ("REMOTE_USER", ""),
            ("REQUEST_METHOD", request.method),
            ("SCRIPT_NAME", script_name),
            ("SERVER_NAME", request.host),
            ("SERVER_PORT", str(request.port if request.port is not None else DEFAULT_SERVER_PORT)),
            ("SERVER_PROTOCOL", request.scheme),
            ("SERVER_SOFTWARE", SERVER_SOFTWARE),
            ("X_RELATIVE_PATH", relative_path(request.matched_route, request.path)),
        ]
    )
    env.extend(project_headers(request.headers))
    return env


def project_args(request: InboundRequest) -> list[str]:
    """Argument vector: query segments split on '&' and percent-decoded."""
    if not request.query:
        return []
    return [unquote_plus(segment) for segment in request.query.split("&")]


# =============================================================================
# Reverse mapping
# =============================================================================


@dataclass(frozen=True)
class RecoveredRequest:
    """Request fields recoverable from a projected environment."""

    method: str
    path: str
    query_string: str
    headers: list[tuple[str, str]] = field(default_factory=list)


def recover_request(env: list[tuple[str, str]]) -> RecoveredRequest:
    """Rebuild method, path, query and headers from a projected environment.

    Header names come back lower-cased with '_' mapped to '-'; folded
    duplicates come back as one comma-joined header.
    """
    values = dict(env)
    headers = [
        (key.removeprefix(HTTP_VAR_PREFIX).lower().replace("_", "-"), value)
        for key, value in env
        if key.startswith(HTTP_VAR_PREFIX)
    ]
    return RecoveredRequest(
        method=values.get("REQUEST_METHOD", ""),
        path=values.get("PATH_INFO", ""),
        query_string=values.get("QUERY_STRING", ""),
        headers=headers,
    )
