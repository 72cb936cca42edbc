"""Runtime configuration from environment variables."""

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

from wagi import constants


class Settings(BaseSettings):
    """Process-wide runtime configuration.

    All settings can be overridden via environment variables with WAGI_ prefix.
    Example: WAGI_MODULES_DIR=/srv/modules
    """

    model_config = SettingsConfigDict(
        env_prefix="WAGI_",
        extra="ignore",
    )

    # Module resolution
    modules_dir: Path = Path(".")
    wasm_cache: bool = False
    """Enable wasmtime's on-disk compiled code cache."""

    # Handler defaults
    default_entry_point: str = constants.DEFAULT_ENTRY_POINT
    default_max_http_requests: int = constants.DEFAULT_MAX_HTTP_REQUESTS

    # Outbound HTTP client
    http_timeout_seconds: float = constants.DEFAULT_HTTP_TIMEOUT_SECONDS
