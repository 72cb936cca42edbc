"""Shared pytest fixtures for wagi tests.

Modules are compiled from WAT text (see wat_modules.py) with the same
wasmtime Engine the host runs them on.  Outbound HTTP goes through
httpx.MockTransport; no test touches the network.
"""

from collections.abc import AsyncIterator, Callable
from pathlib import Path

import httpx
import pytest
from wasmtime import Engine, Module

from wagi import HandlerConfig, ModuleHandle, Settings, UnknownModuleError, WagiHost
from wagi.resolver import create_engine
from wagi.streams import StdioBuffers, stdio_buffers

UPSTREAM_BODY = b"hello from upstream"


# ============================================================================
# Module resolution
# ============================================================================


class StaticResolver:
    """Resolver backed by a dict of WAT sources, compiled on add()."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        self.modules: dict[str, ModuleHandle] = {}

    def add(self, module_id: str, wat: str) -> ModuleHandle:
        handle = ModuleHandle(module_id=module_id, engine=self.engine, module=Module(self.engine, wat))
        self.modules[module_id] = handle
        return handle

    def resolve(self, module_id: str) -> ModuleHandle:
        try:
            return self.modules[module_id]
        except KeyError:
            raise UnknownModuleError(f"Module not found: {module_id}") from None


@pytest.fixture
def engine() -> Engine:
    return create_engine()


@pytest.fixture
def resolver(engine: Engine) -> StaticResolver:
    return StaticResolver(engine)


# ============================================================================
# Outbound HTTP
# ============================================================================


def upstream_handler(request: httpx.Request) -> httpx.Response:
    """Canned upstream: 200 with a fixed body and an echo of the request path."""
    return httpx.Response(
        200,
        headers={"content-type": "text/plain", "x-upstream-path": request.url.path},
        content=UPSTREAM_BODY,
    )


@pytest.fixture
def upstream_requests() -> list[httpx.Request]:
    """Requests that reached the mock upstream, in order."""
    return []


@pytest.fixture
def http_client_factory(upstream_requests: list[httpx.Request]) -> Callable[[], httpx.Client]:
    def handler(request: httpx.Request) -> httpx.Response:
        upstream_requests.append(request)
        return upstream_handler(request)

    return lambda: httpx.Client(transport=httpx.MockTransport(handler))


# ============================================================================
# Host
# ============================================================================


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(modules_dir=tmp_path)


@pytest.fixture
def host(
    resolver: StaticResolver,
    settings: Settings,
    http_client_factory: Callable[[], httpx.Client],
) -> WagiHost:
    return WagiHost(resolver, settings=settings, http_client_factory=http_client_factory)


@pytest.fixture
def handler() -> HandlerConfig:
    return HandlerConfig(module="test.wasm")


@pytest.fixture
async def stdio() -> AsyncIterator[StdioBuffers]:
    async with stdio_buffers() as buffers:
        yield buffers
