"""WagiHost - serves one HTTP request by running a WebAssembly module.

Example:
    ```python
    from pathlib import Path

    from wagi import FileModuleResolver, HandlerConfig, InboundRequest, WagiHost

    host = WagiHost(FileModuleResolver(Path("modules")))
    handler = HandlerConfig(module="hello.wasm", route="/hello/...")
    response = await host.respond(InboundRequest(path="/hello/world"), handler)
    ```

Per request:
    stdio buffers -> request body to stdin -> sandbox config -> engine
    -> stderr logged -> stdout parsed -> OutwardResponse

Nothing is shared between requests except the resolver's compiled modules.
"""

from __future__ import annotations

from collections.abc import Callable
from functools import partial
from typing import TYPE_CHECKING

import httpx

from wagi._logging import get_logger
from wagi.engine import ExecutionEngine
from wagi.exceptions import ErrorKind, WagiError
from wagi.models import OutwardResponse
from wagi.response import reconstruct_response
from wagi.sandbox import build_sandbox_config
from wagi.settings import Settings
from wagi.streams import stdio_buffers

if TYPE_CHECKING:
    from wagi.config import HandlerConfig
    from wagi.models import InboundRequest
    from wagi.resolver import ModuleResolver

logger = get_logger(__name__)

_ERROR_STATUS = {
    ErrorKind.CONFIGURATION: 500,
    ErrorKind.EXECUTION: 500,
    ErrorKind.PROTOCOL: 502,
    ErrorKind.OUTBOUND_POLICY: 500,
}


def error_response(exc: WagiError) -> OutwardResponse:
    """Render a request failure as a plain-text 5xx response."""
    return OutwardResponse(
        status_code=_ERROR_STATUS[exc.kind],
        headers=[("Content-Type", "text/plain; charset=utf-8")],
        body=f"{exc.message}\n".encode(),
    )


class WagiHost:
    """Runs WAGI handlers.

    Args:
        resolver: Supplies compiled modules; treated as read-only and shared
        settings: Runtime settings (defaults read from WAGI_* env vars). Supplies
            the entry point and outbound call quota for handlers that leave
            them unset.
        http_client_factory: Creates the client for module outbound HTTP.
            Defaults to httpx.Client with settings.http_timeout_seconds.
    """

    def __init__(
        self,
        resolver: ModuleResolver,
        settings: Settings | None = None,
        http_client_factory: Callable[[], httpx.Client] | None = None,
    ) -> None:
        self.resolver = resolver
        self.settings = settings or Settings()
        factory = http_client_factory or partial(httpx.Client, timeout=self.settings.http_timeout_seconds)
        self.engine = ExecutionEngine(http_client_factory=factory)

    async def process_request(self, request: InboundRequest, handler: HandlerConfig) -> OutwardResponse:
        """Run ``handler`` for ``request`` and return the module's response.

        Raises:
            ConfigurationError: Entry point missing, outbound HTTP not allowed,
                volume directory missing,
                or module unknown
            ExecutionError: Module failed to link, trapped or exited non-zero
            ProtocolError: Module output is not a valid CGI response
        """
        handle = self.resolver.resolve(handler.module)

        async with stdio_buffers() as stdio:
            await stdio.stdin.write(request.body)
            config = build_sandbox_config(request, handler, stdio, self.settings)
            await self.engine.execute(handle, config)
            return await reconstruct_response(stdio.stdout)

    async def respond(self, request: InboundRequest, handler: HandlerConfig) -> OutwardResponse:
        """Like process_request(), but failures become 5xx responses."""
        try:
            return await self.process_request(request, handler)
        except WagiError as e:
            entry_point = handler.resolved_entry_point(self.settings)
            logger.error(
                f"{e.kind.value} error serving {request.method} {request.path}: {e.message}",
                extra={"module_id": handler.module, "entry_point": entry_point, **e.context},
            )
            return error_response(e)
