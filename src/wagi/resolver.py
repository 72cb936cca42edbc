"""Module resolution: module identifier -> compiled WebAssembly module.

The gateway only borrows ModuleHandles; compiling and caching belong to the
resolver.  FileModuleResolver is the default, resolving identifiers against a
directory and keeping one compiled Module per file until the file changes.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from wasmtime import Config, Engine, FuncType, Module, WasmtimeError

from wagi._logging import get_logger
from wagi.exceptions import UnknownModuleError

if TYPE_CHECKING:
    from wagi.settings import Settings

logger = get_logger(__name__)


@dataclass(frozen=True)
class ModuleHandle:
    """A compiled module and the engine it was compiled for. Read-only."""

    module_id: str
    engine: Engine
    module: Module

    def exports_function(self, name: str) -> bool:
        """Whether the module exports ``name`` as a function."""
        return any(export.name == name and isinstance(export.type, FuncType) for export in self.module.exports)

    def imports_from(self, namespace: str) -> list[str]:
        """Names the module imports from ``namespace``."""
        return [imp.name or "" for imp in self.module.imports if imp.module == namespace]


class ModuleResolver(Protocol):
    """Anything that can turn a module identifier into a ModuleHandle."""

    def resolve(self, module_id: str) -> ModuleHandle: ...


def create_engine(*, cache: bool = False) -> Engine:
    config = Config()
    if cache:
        config.cache = True
    return Engine(config)


class FileModuleResolver:
    """Resolves module identifiers to files under ``modules_dir``.

    Compiled modules are cached by path and recompiled when the file's
    mtime or size changes.  Safe to share between concurrent requests.
    """

    def __init__(self, modules_dir: Path, engine: Engine | None = None) -> None:
        self.modules_dir = modules_dir
        self.engine = engine or create_engine()
        self._cache: dict[Path, tuple[tuple[int, int], Module]] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: Settings) -> FileModuleResolver:
        return cls(settings.modules_dir, engine=create_engine(cache=settings.wasm_cache))

    def resolve(self, module_id: str) -> ModuleHandle:
        path = (self.modules_dir / module_id).resolve()
        if not path.is_relative_to(self.modules_dir.resolve()):
            raise UnknownModuleError(f"Module outside modules directory: {module_id}", context={"path": str(path)})
        try:
            stat = path.stat()
        except FileNotFoundError as e:
            raise UnknownModuleError(f"Module not found: {module_id}", context={"path": str(path)}) from e
        fingerprint = (stat.st_mtime_ns, stat.st_size)

        with self._lock:
            cached = self._cache.get(path)
            if cached is not None and cached[0] == fingerprint:
                return ModuleHandle(module_id=module_id, engine=self.engine, module=cached[1])

            logger.info(f"Compiling module {module_id}", extra={"path": str(path)})
            try:
                module = Module.from_file(self.engine, str(path))
            except WasmtimeError as e:
                raise UnknownModuleError(
                    f"Module {module_id} is not a valid WebAssembly module: {e}",
                    context={"path": str(path)},
                ) from e
            self._cache[path] = (fingerprint, module)

        return ModuleHandle(module_id=module_id, engine=self.engine, module=module)

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()
