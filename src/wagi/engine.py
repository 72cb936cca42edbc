"""Execution engine: links, instantiates and invokes a module for one request.

Lifecycle of execute():
    1. Check the entry point is an exported function
    2. Check outbound HTTP imports against the handler's policy
    3. Check every volume host directory exists
    4. Fresh Store + Linker (WASI, plus outbound HTTP when hosts are allowed)
    5. Instantiate and call the entry point in a worker thread, timed
    6. Drain stderr into the log, whatever the outcome
    7. Raise the classified failure, or return the ExecutionResult

The guest call cannot be pre-empted.  A hung module holds its own request's
worker thread until it returns; wall-clock cutoffs are a deployment concern.
Cancelling execute() therefore waits for the guest call to return before the
outbound HTTP client is closed and CancelledError propagates.
"""

from __future__ import annotations

import asyncio
import contextlib
import time
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

import httpx
from wasmtime import ExitTrap, Linker, Store, Trap, WasmtimeError

from wagi._logging import get_logger
from wagi.constants import OUTBOUND_HTTP_MODULE
from wagi.exceptions import (
    EntryPointNotFoundError,
    ModuleLinkError,
    ModuleTrapError,
    OutboundHttpNotAllowedError,
    VolumeNotFoundError,
)
from wagi.models import ExecutionResult, ExitClassification
from wagi.outbound_http import OutboundHttpMediator

if TYPE_CHECKING:
    from wagi.resolver import ModuleHandle
    from wagi.sandbox import SandboxConfig
    from wagi.streams import StreamBuffer

logger = get_logger(__name__)


@dataclass
class _Invocation:
    classification: ExitClassification
    elapsed_seconds: float
    exit_code: int | None = None
    error: Exception | None = None


async def drain_stderr(stream: StreamBuffer, module_id: str, entry_point: str) -> str:
    """Log every stderr line of a module and return them joined.

    Trailing NUL padding is stripped from each line.
    """
    lines: list[str] = []
    async for raw in stream.read_lines():
        line = raw.decode(errors="replace").rstrip("\r\n").rstrip("\0")
        logger.error(
            f"Error from Module {module_id} Function {entry_point}. Error:{line}",
            extra={"module_id": module_id, "entry_point": entry_point},
        )
        lines.append(line)
    return "\n".join(lines)


class ExecutionEngine:
    """Runs modules inside a WASI sandbox.

    Stateless across requests: every execute() call builds its own Store,
    Linker, instance and outbound HTTP mediator.

    Args:
        http_client_factory: Creates the client behind outbound HTTP calls.
            Called only for requests whose handler allows outbound hosts;
            the client is closed when the request finishes.
    """

    def __init__(self, http_client_factory: Callable[[], httpx.Client] = httpx.Client) -> None:
        self._http_client_factory = http_client_factory

    async def execute(self, handle: ModuleHandle, config: SandboxConfig) -> ExecutionResult:
        """Run ``config.entry_point`` of ``handle`` under ``config``.

        Raises:
            EntryPointNotFoundError: Entry point is not an exported function
            OutboundHttpNotAllowedError: Module imports outbound HTTP, no allowed hosts
            VolumeNotFoundError: A volume host directory does not exist
            ModuleLinkError: Sandbox setup or instantiation failed
            ModuleTrapError: Entry point trapped or exited non-zero
        """
        module_id = handle.module_id
        entry_point = config.entry_point
        context = {"module_id": module_id, "entry_point": entry_point}

        if not handle.exports_function(entry_point):
            raise EntryPointNotFoundError(entry_point, module_id)

        http_imports = handle.imports_from(OUTBOUND_HTTP_MODULE)
        if http_imports and not config.outbound_http_enabled:
            raise OutboundHttpNotAllowedError(
                "Allowed Hosts must be configured for modules making HTTP requests",
                context={**context, "imports": http_imports},
            )

        for alias, host_dir in config.volumes.items():
            if not Path(host_dir).is_dir():
                raise VolumeNotFoundError(alias, host_dir)

        try:
            with self._outbound_http(config) as mediator:
                worker = asyncio.ensure_future(asyncio.to_thread(self._invoke, handle, config, mediator))
                try:
                    invocation = await asyncio.shield(worker)
                except asyncio.CancelledError:
                    # The guest keeps running; its client and stdio must outlive it.
                    await asyncio.wait([worker])
                    raise
        finally:
            stderr = await drain_stderr(config.stdio.stderr, module_id, entry_point)
        result = ExecutionResult(
            elapsed_seconds=invocation.elapsed_seconds,
            exit_classification=invocation.classification,
            exit_code=invocation.exit_code,
            stderr=stderr,
        )

        if invocation.error is not None:
            diagnostic = str(invocation.error)
            if invocation.classification is ExitClassification.LINKAGE_FAILURE:
                raise ModuleLinkError(
                    f"Failed to instantiate {module_id}: {diagnostic}", context, result=result
                ) from invocation.error
            raise ModuleTrapError(
                f"Module {module_id} Function {entry_point} failed: {diagnostic}", context, result=result
            ) from invocation.error

        logger.debug(
            f"Call Module {module_id} Function {entry_point} Complete in {result.elapsed_seconds:.6f} seconds",
            extra=context,
        )
        return result

    @contextlib.contextmanager
    def _outbound_http(self, config: SandboxConfig) -> Iterator[OutboundHttpMediator | None]:
        if not config.outbound_http_enabled:
            yield None
            return
        with self._http_client_factory() as client:
            mediator = OutboundHttpMediator(config.allowed_hosts, config.max_http_requests, client)
            try:
                yield mediator
            finally:
                mediator.close()

    def _invoke(
        self,
        handle: ModuleHandle,
        config: SandboxConfig,
        mediator: OutboundHttpMediator | None,
    ) -> _Invocation:
        """Blocking part of execute(); runs on a worker thread."""
        start = time.perf_counter()
        try:
            store = Store(handle.engine)
            store.set_wasi(config.to_wasi_config())
            if config.memory_limit_bytes is not None:
                store.set_limits(memory_size=config.memory_limit_bytes)

            linker = Linker(handle.engine)
            linker.define_wasi()
            if mediator is not None:
                mediator.link(linker)

            instance = linker.instantiate(store, handle.module)
        except Trap as e:
            # start section trapped
            return _Invocation(ExitClassification.TRAP, time.perf_counter() - start, error=e)
        except WasmtimeError as e:
            return _Invocation(ExitClassification.LINKAGE_FAILURE, time.perf_counter() - start, error=e)

        entry = instance.exports(store)[config.entry_point]
        try:
            entry(store)  # type: ignore[operator]
        except ExitTrap as e:
            elapsed = time.perf_counter() - start
            if e.code == 0:
                return _Invocation(ExitClassification.SUCCESS, elapsed, exit_code=0)
            return _Invocation(ExitClassification.TRAP, elapsed, exit_code=e.code, error=e)
        except (Trap, WasmtimeError) as e:
            return _Invocation(ExitClassification.TRAP, time.perf_counter() - start, error=e)

        return _Invocation(ExitClassification.SUCCESS, time.perf_counter() - start)
