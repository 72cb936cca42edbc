"""Unit tests for HandlerConfig and Settings.

No mocks - uses real environment variables via monkeypatch.
"""

from pathlib import Path

import pytest
from pydantic import ValidationError

from wagi import HandlerConfig, Settings

# ============================================================================
# HandlerConfig
# ============================================================================


class TestHandlerConfig:
    def test_defaults(self) -> None:
        """HandlerConfig needs only a module."""
        config = HandlerConfig(module="hello.wasm")
        assert config.entry_point is None
        assert config.route is None
        assert config.volumes == {}
        assert config.environment == {}
        assert config.allowed_hosts == []
        assert config.max_http_requests is None
        assert config.memory_limit_bytes is None

    def test_module_required(self) -> None:
        with pytest.raises(ValidationError):
            HandlerConfig()  # type: ignore[call-arg]
        with pytest.raises(ValidationError):
            HandlerConfig(module="")

    def test_empty_entry_point_rejected(self) -> None:
        with pytest.raises(ValidationError):
            HandlerConfig(module="m.wasm", entry_point="")

    def test_max_http_requests_range(self) -> None:
        assert HandlerConfig(module="m.wasm", max_http_requests=0).max_http_requests == 0
        with pytest.raises(ValidationError):
            HandlerConfig(module="m.wasm", max_http_requests=-1)

    def test_memory_limit_positive(self) -> None:
        with pytest.raises(ValidationError):
            HandlerConfig(module="m.wasm", memory_limit_bytes=0)

    def test_unknown_field_rejected(self) -> None:
        with pytest.raises(ValidationError):
            HandlerConfig(module="m.wasm", timeout=5)  # type: ignore[call-arg]

    def test_frozen(self) -> None:
        config = HandlerConfig(module="m.wasm")
        with pytest.raises(ValidationError):
            config.module = "other.wasm"  # type: ignore[misc]


# ============================================================================
# Settings
# ============================================================================


class TestSettings:
    def test_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        for field in Settings.model_fields:
            monkeypatch.delenv(f"WAGI_{field.upper()}", raising=False)
        settings = Settings()
        assert settings.modules_dir == Path(".")
        assert settings.wasm_cache is False
        assert settings.default_entry_point == "_start"
        assert settings.default_max_http_requests == 10
        assert settings.http_timeout_seconds == 30.0

    def test_env_override(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        monkeypatch.setenv("WAGI_MODULES_DIR", str(tmp_path))
        monkeypatch.setenv("WAGI_WASM_CACHE", "true")
        monkeypatch.setenv("WAGI_DEFAULT_MAX_HTTP_REQUESTS", "2")
        monkeypatch.setenv("WAGI_HTTP_TIMEOUT_SECONDS", "1.5")

        settings = Settings()

        assert settings.modules_dir == tmp_path
        assert settings.wasm_cache is True
        assert settings.default_max_http_requests == 2
        assert settings.http_timeout_seconds == 1.5

    def test_handler_defaults_come_from_settings(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("WAGI_DEFAULT_ENTRY_POINT", "handle_request")
        monkeypatch.setenv("WAGI_DEFAULT_MAX_HTTP_REQUESTS", "3")
        settings = Settings()

        implicit = HandlerConfig(module="m.wasm")
        assert implicit.resolved_entry_point(settings) == "handle_request"
        assert implicit.resolved_max_http_requests(settings) == 3

        explicit = HandlerConfig(module="m.wasm", entry_point="_start", max_http_requests=0)
        assert explicit.resolved_entry_point(settings) == "_start"
        assert explicit.resolved_max_http_requests(settings) == 0
