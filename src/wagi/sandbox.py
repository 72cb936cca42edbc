"""Assembly of a module's sandbox configuration for one request."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from wasmtime import WasiConfig

from wagi._logging import get_logger
from wagi.constants import DEFAULT_ENTRY_POINT
from wagi.environment import project_args, project_environment
from wagi.settings import Settings

if TYPE_CHECKING:
    from wagi.config import HandlerConfig
    from wagi.models import InboundRequest
    from wagi.streams import StdioBuffers

logger = get_logger(__name__)


@dataclass(frozen=True)
class SandboxConfig:
    """Everything the engine needs to run one request. Never reused."""

    stdio: StdioBuffers
    args: list[str] = field(default_factory=list)
    env: list[tuple[str, str]] = field(default_factory=list)
    volumes: dict[str, str] = field(default_factory=dict)
    entry_point: str = DEFAULT_ENTRY_POINT
    allowed_hosts: list[str] = field(default_factory=list)
    max_http_requests: int = 0
    memory_limit_bytes: int | None = None

    @property
    def outbound_http_enabled(self) -> bool:
        return bool(self.allowed_hosts)

    def to_wasi_config(self) -> WasiConfig:
        """Bind stdio, argv, env and preopened directories for the guest."""
        wasi = WasiConfig()
        wasi.argv = list(self.args)
        wasi.env = list(self.env)
        wasi.stdin_file = self.stdio.stdin.wasi_path
        wasi.stdout_file = self.stdio.stdout.wasi_path
        wasi.stderr_file = self.stdio.stderr.wasi_path
        for alias, host_dir in self.volumes.items():
            wasi.preopen_dir(host_dir, alias)
        return wasi


def merge_environment(env: list[tuple[str, str]], extra: dict[str, str]) -> list[tuple[str, str]]:
    """Apply deployment overrides to a projected environment.

    Colliding keys are replaced in place; new keys are appended.
    """
    merged = list(env)
    index = {key: i for i, (key, _) in enumerate(merged)}
    for key, value in extra.items():
        if key in index:
            merged[index[key]] = (key, value)
        else:
            index[key] = len(merged)
            merged.append((key, value))
    return merged


def build_sandbox_config(
    request: InboundRequest,
    handler: HandlerConfig,
    stdio: StdioBuffers,
    settings: Settings | None = None,
) -> SandboxConfig:
    """Combine the projected request with the handler's deployment settings.

    Handler fields left unset take their defaults from ``settings``.
    """
    settings = settings or Settings()
    env = merge_environment(project_environment(request, handler.module), handler.environment)
    for alias, host_dir in handler.volumes.items():
        logger.debug(f"Mounting {host_dir} at {alias}", extra={"module_id": handler.module})

    return SandboxConfig(
        stdio=stdio,
        args=project_args(request),
        env=env,
        volumes=dict(handler.volumes),
        entry_point=handler.resolved_entry_point(settings),
        allowed_hosts=list(handler.allowed_hosts),
        max_http_requests=handler.resolved_max_http_requests(settings),
        memory_limit_bytes=handler.memory_limit_bytes,
    )
