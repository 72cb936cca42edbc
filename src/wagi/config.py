"""Per-handler deployment configuration for wagi.

A HandlerConfig describes how one route is served: which module and entry
point to run, what the module may see of the host filesystem, extra
environment, and its outbound HTTP policy.

Example:
    ```python
    from wagi import HandlerConfig, WagiHost

    handler = HandlerConfig(
        module="hello.wasm",
        route="/hello/...",
        volumes={"/data": "/srv/hello-data"},
        allowed_hosts=["https://api.example.com"],
        max_http_requests=2,
    )
    ```
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field

if TYPE_CHECKING:
    from wagi.settings import Settings


class HandlerConfig(BaseModel):
    """Configuration for one WAGI handler.

    Attributes:
        module: Module identifier passed to the resolver and exposed as SCRIPT_NAME.
        entry_point: Exported function to invoke. None falls back to
            Settings.default_entry_point ("_start" unless overridden).
        route: Route pattern the handler is mounted on; a "/..." suffix makes
            the rest of the path available as X_RELATIVE_PATH.
        volumes: Guest mount alias -> host directory. Not checked for path
            traversal; whoever loads the configuration owns that.
        environment: Extra environment variables. A key that collides with a
            CGI variable replaces its value.
        allowed_hosts: Destinations the module may call over outbound HTTP.
            Empty disables the capability entirely.
        max_http_requests: Outbound HTTP calls allowed per request. None
            falls back to Settings.default_max_http_requests.
        memory_limit_bytes: Cap on guest linear memory. None leaves the
            engine default.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
    )

    module: str = Field(min_length=1, description="Module identifier")
    entry_point: str | None = Field(
        default=None,
        min_length=1,
        description="Exported function to invoke (None: Settings.default_entry_point)",
    )
    route: str | None = Field(default=None, description="Route pattern this handler serves")

    # Sandbox
    volumes: dict[str, str] = Field(default_factory=dict, description="Mount alias -> host directory")
    environment: dict[str, str] = Field(default_factory=dict, description="Extra environment variables")

    # Outbound HTTP
    allowed_hosts: list[str] = Field(default_factory=list, description="Allowed outbound destinations")
    max_http_requests: int | None = Field(
        default=None,
        ge=0,
        description="Outbound HTTP calls per request (None: Settings.default_max_http_requests)",
    )

    # Quotas
    memory_limit_bytes: int | None = Field(default=None, ge=1, description="Guest linear memory cap")

    def resolved_entry_point(self, settings: Settings) -> str:
        return self.entry_point or settings.default_entry_point

    def resolved_max_http_requests(self, settings: Settings) -> int:
        if self.max_http_requests is None:
            return settings.default_max_http_requests
        return self.max_http_requests
