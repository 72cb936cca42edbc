"""Constants for the wagi gateway protocol and limits."""

from typing import Final

# ============================================================================
# CGI protocol
# ============================================================================

CGI_VERSION: Final[str] = "CGI/1.1"
"""Value of GATEWAY_INTERFACE."""

SERVER_SOFTWARE: Final[str] = "Wagi/1"
"""Value of SERVER_SOFTWARE."""

DEFAULT_SERVER_PORT: Final[int] = 80
"""SERVER_PORT when the inbound request carries no explicit port."""

WILDCARD_ROUTE_SUFFIX: Final[str] = "/..."
"""Route suffix that makes the remainder of the path available as X_RELATIVE_PATH."""

DROPPED_HEADERS: Final[frozenset[str]] = frozenset({"authorization", "connection"})
"""Inbound headers never projected into HTTP_* variables (lower-cased)."""

DEFAULT_STATUS_CODE: Final[int] = 200

# ============================================================================
# Module execution
# ============================================================================

DEFAULT_ENTRY_POINT: Final[str] = "_start"
"""Exported function invoked when a handler names no entry point."""

DEFAULT_MAX_HTTP_REQUESTS: Final[int] = 10
"""Outbound HTTP calls a module may make per request, unless configured."""

DEFAULT_HTTP_TIMEOUT_SECONDS: Final[float] = 30.0
"""Timeout for each outbound HTTP call made on behalf of a module."""

OUTBOUND_HTTP_MODULE: Final[str] = "wasi_experimental_http"
"""Import namespace of the outbound HTTP host functions."""

STDIO_DIR_PREFIX: Final[str] = "wagi-stdio-"
"""Prefix for the per-request temporary directory backing stdio."""
