"""Exception hierarchy for wagi.

All exceptions inherit from WagiError and carry an ErrorKind tag, so callers
(the transport layer, the CLI) branch on ``exc.kind`` rather than on message
text.

Hierarchy:
    WagiError (base)
    ├── ConfigurationError              kind=CONFIGURATION
    │   ├── EntryPointNotFoundError     ← entry point not exported
    │   ├── OutboundHttpNotAllowedError ← module needs outbound HTTP, no allowed hosts
    │   ├── UnknownModuleError          ← resolver has no such module
    │   └── VolumeNotFoundError         ← volume host directory missing
    ├── ExecutionError                  kind=EXECUTION
    │   ├── ModuleLinkError             ← instantiation failed
    │   └── ModuleTrapError             ← trap or non-zero proc_exit
    ├── ProtocolError                   kind=PROTOCOL
    │   ├── MissingResponseHeadersError ← neither location nor content-type
    │   └── MalformedHeaderError        ← unparseable header line
    └── OutboundPolicyError             kind=OUTBOUND_POLICY
        ├── HostNotAllowedError         ← destination not in allowlist
        └── RequestQuotaExceededError   ← per-request call budget spent

Configuration, execution and protocol errors are fatal to the request and
never retried (module calls are not assumed idempotent).  Outbound policy
errors are reported to the module as a host-call error code and never reach
the transport layer.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Any, ClassVar

if TYPE_CHECKING:
    from wagi.models import ExecutionResult


class ErrorKind(str, Enum):
    """Classification of a request failure."""

    CONFIGURATION = "configuration"
    EXECUTION = "execution"
    PROTOCOL = "protocol"
    OUTBOUND_POLICY = "outbound_policy"


class WagiError(Exception):
    """Base exception for all wagi errors with structured context.

    Attributes:
        message: Human-readable error message
        context: Dictionary of structured error context for logging/debugging
    """

    kind: ClassVar[ErrorKind]

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}


# =============================================================================
# Configuration errors
# =============================================================================


class ConfigurationError(WagiError):
    """The handler's deployment configuration cannot serve this module."""

    kind = ErrorKind.CONFIGURATION


class EntryPointNotFoundError(ConfigurationError):
    """The module does not export the configured entry point as a function."""

    def __init__(self, entry_point: str, module_id: str):
        super().__init__(
            f"function {entry_point} is not exported by {module_id}",
            context={"entry_point": entry_point, "module_id": module_id},
        )
        self.entry_point = entry_point
        self.module_id = module_id


class OutboundHttpNotAllowedError(ConfigurationError):
    """The module imports the outbound HTTP capability but no hosts are allowed."""


class UnknownModuleError(ConfigurationError):
    """The module resolver has no module for the requested identifier."""


class VolumeNotFoundError(ConfigurationError):
    """A handler volume names a host directory that does not exist."""

    def __init__(self, alias: str, host_dir: str):
        super().__init__(
            f"Volume {alias} host directory not found: {host_dir}",
            context={"alias": alias, "host_dir": host_dir},
        )
        self.alias = alias
        self.host_dir = host_dir


# =============================================================================
# Execution errors
# =============================================================================


class ExecutionError(WagiError):
    """The module could not be run to completion.

    Attributes:
        result: Timing, exit classification and stderr of the failed
            invocation, when it got far enough to produce them
    """

    kind = ErrorKind.EXECUTION

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        *,
        result: ExecutionResult | None = None,
    ):
        super().__init__(message, context)
        self.result = result

    @property
    def exit_code(self) -> int | None:
        return self.result.exit_code if self.result is not None else None

    @property
    def stderr(self) -> str:
        return self.result.stderr if self.result is not None else ""


class ModuleLinkError(ExecutionError):
    """Instantiation failed for a reason other than a missing outbound HTTP link."""


class ModuleTrapError(ExecutionError):
    """The entry point trapped or exited with a non-zero status."""


# =============================================================================
# Protocol errors
# =============================================================================


class ProtocolError(WagiError):
    """The module ran, but its output is not a valid CGI response."""

    kind = ErrorKind.PROTOCOL


class MissingResponseHeadersError(ProtocolError):
    """The header block had neither Location nor Content-Type."""


class MalformedHeaderError(ProtocolError):
    """A header line could not be parsed."""

    def __init__(self, message: str, line: str):
        super().__init__(message, context={"line": line})
        self.line = line


# =============================================================================
# Outbound policy errors
# =============================================================================


class OutboundPolicyError(WagiError):
    """An outbound HTTP call from the module was refused by policy."""

    kind = ErrorKind.OUTBOUND_POLICY


class HostNotAllowedError(OutboundPolicyError):
    """Destination is not in the handler's allowed hosts."""

    def __init__(self, url: str):
        super().__init__(f"Destination not allowed: {url}", context={"url": url})
        self.url = url


class RequestQuotaExceededError(OutboundPolicyError):
    """The module already made the maximum number of outbound calls for this request."""

    def __init__(self, max_requests: int):
        super().__init__(
            f"Outbound HTTP request limit of {max_requests} reached",
            context={"max_requests": max_requests},
        )
        self.max_requests = max_requests
