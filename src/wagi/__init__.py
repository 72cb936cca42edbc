"""wagi: WebAssembly modules as CGI-style HTTP request handlers.

Each request runs a module in a fresh WASI sandbox.  The request is projected
onto CGI variables, an argument vector and stdin; the module's stdout is
parsed back into a response.

Quick Start:
    ```python
    from pathlib import Path

    from wagi import FileModuleResolver, HandlerConfig, InboundRequest, WagiHost

    host = WagiHost(FileModuleResolver(Path("modules")))
    response = await host.respond(
        InboundRequest(method="GET", path="/hello", query_string="?name=world"),
        HandlerConfig(module="hello.wasm"),
    )
    print(response.status_code, response.body)
    ```

Outbound HTTP:
    Modules importing ``wasi_experimental_http`` need an allowlist:

    ```python
    HandlerConfig(
        module="fetch.wasm",
        allowed_hosts=["https://api.example.com"],
        max_http_requests=3,
    )
    ```

Requirements:
    - Python 3.12+
    - wasmtime
"""

from wagi.config import HandlerConfig
from wagi.exceptions import (
    ConfigurationError,
    EntryPointNotFoundError,
    ErrorKind,
    ExecutionError,
    HostNotAllowedError,
    MalformedHeaderError,
    MissingResponseHeadersError,
    ModuleLinkError,
    ModuleTrapError,
    OutboundHttpNotAllowedError,
    OutboundPolicyError,
    ProtocolError,
    RequestQuotaExceededError,
    UnknownModuleError,
    VolumeNotFoundError,
    WagiError,
)
from wagi.host import WagiHost, error_response
from wagi.models import ExecutionResult, ExitClassification, InboundRequest, OutwardResponse
from wagi.resolver import FileModuleResolver, ModuleHandle, ModuleResolver
from wagi.settings import Settings

__all__ = [
    "ConfigurationError",
    "EntryPointNotFoundError",
    "ErrorKind",
    "ExecutionError",
    "ExecutionResult",
    "ExitClassification",
    "FileModuleResolver",
    "HandlerConfig",
    "HostNotAllowedError",
    "InboundRequest",
    "MalformedHeaderError",
    "MissingResponseHeadersError",
    "ModuleHandle",
    "ModuleLinkError",
    "ModuleResolver",
    "ModuleTrapError",
    "OutboundHttpNotAllowedError",
    "OutboundPolicyError",
    "OutwardResponse",
    "ProtocolError",
    "RequestQuotaExceededError",
    "Settings",
    "UnknownModuleError",
    "VolumeNotFoundError",
    "WagiError",
    "WagiHost",
    "error_response",
]

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("wagi")
except PackageNotFoundError:
    __version__ = "0.0.0.dev0"
