"""Tests for module resolution (resolver.py)."""

import os
from pathlib import Path

import pytest
from wasmtime import Engine, Module, wat2wasm

from tests.wat_modules import output_module, outbound_http_module
from wagi import FileModuleResolver, Settings, UnknownModuleError
from wagi.resolver import ModuleHandle

HELLO_WAT = output_module(b"content-type: text/plain\n\nhello")


def write_module(path: Path, wat: str) -> Path:
    path.write_bytes(bytes(wat2wasm(wat)))
    return path


class TestFileModuleResolver:
    def test_resolve(self, tmp_path: Path) -> None:
        write_module(tmp_path / "hello.wasm", HELLO_WAT)
        resolver = FileModuleResolver(tmp_path)

        handle = resolver.resolve("hello.wasm")

        assert handle.module_id == "hello.wasm"
        assert handle.engine is resolver.engine
        assert handle.exports_function("_start")

    def test_cached_until_file_changes(self, tmp_path: Path) -> None:
        path = write_module(tmp_path / "hello.wasm", HELLO_WAT)
        resolver = FileModuleResolver(tmp_path)

        first = resolver.resolve("hello.wasm")
        assert resolver.resolve("hello.wasm").module is first.module

        write_module(path, output_module(b"content-type: text/plain\n\nchanged, and longer"))
        stat = path.stat()
        os.utime(path, ns=(stat.st_atime_ns, stat.st_mtime_ns + 1_000_000_000))
        assert resolver.resolve("hello.wasm").module is not first.module

    def test_clear(self, tmp_path: Path) -> None:
        write_module(tmp_path / "hello.wasm", HELLO_WAT)
        resolver = FileModuleResolver(tmp_path)
        first = resolver.resolve("hello.wasm")

        resolver.clear()

        assert resolver.resolve("hello.wasm").module is not first.module

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(UnknownModuleError, match="Module not found: absent.wasm"):
            FileModuleResolver(tmp_path).resolve("absent.wasm")

    def test_outside_modules_dir(self, tmp_path: Path) -> None:
        modules_dir = tmp_path / "modules"
        modules_dir.mkdir()
        write_module(tmp_path / "secret.wasm", HELLO_WAT)

        with pytest.raises(UnknownModuleError, match="outside modules directory"):
            FileModuleResolver(modules_dir).resolve("../secret.wasm")

    def test_invalid_module(self, tmp_path: Path) -> None:
        (tmp_path / "broken.wasm").write_bytes(b"\x00asm garbage")

        with pytest.raises(UnknownModuleError, match="not a valid WebAssembly module"):
            FileModuleResolver(tmp_path).resolve("broken.wasm")

    def test_from_settings(self, tmp_path: Path) -> None:
        resolver = FileModuleResolver.from_settings(Settings(modules_dir=tmp_path))
        assert resolver.modules_dir == tmp_path
        assert isinstance(resolver.engine, Engine)


class TestModuleHandle:
    def test_imports_from(self, tmp_path: Path) -> None:
        write_module(tmp_path / "fetch.wasm", outbound_http_module("https://example.com/"))
        handle = FileModuleResolver(tmp_path).resolve("fetch.wasm")

        assert sorted(handle.imports_from("wasi_experimental_http")) == ["body_read", "close", "req"]
        assert handle.imports_from("env") == []

    def test_exports_function_ignores_memory(self, engine: Engine) -> None:
        handle = ModuleHandle("m.wasm", engine, Module(engine, HELLO_WAT))
        assert handle.exports_function("_start")
        assert not handle.exports_function("memory")
        assert not handle.exports_function("missing")
