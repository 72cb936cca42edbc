"""Tests for scoped stdio buffers (streams.py)."""

from pathlib import Path

import pytest

from wagi.streams import StdioBuffers, StreamBuffer, stdio_buffers


class TestStreamBuffer:
    async def test_write_then_read_back(self, tmp_path: Path) -> None:
        buffer = StreamBuffer(tmp_path / "stream")
        await buffer.write(b"payload \x00\xff")
        assert await buffer.read_all() == b"payload \x00\xff"
        assert await buffer.size() == 10

    async def test_created_empty(self, tmp_path: Path) -> None:
        buffer = StreamBuffer(tmp_path / "stream")
        assert Path(buffer.wasi_path).exists()
        assert await buffer.read_all() == b""

    async def test_write_replaces_contents(self, tmp_path: Path) -> None:
        buffer = StreamBuffer(tmp_path / "stream")
        await buffer.write(b"first, longer")
        await buffer.write(b"second")
        assert await buffer.read_all() == b"second"

    async def test_read_lines_keeps_terminators(self, tmp_path: Path) -> None:
        buffer = StreamBuffer(tmp_path / "stream")
        await buffer.write(b"a\nb\r\nc")
        lines = [line async for line in buffer.read_lines()]
        assert lines == [b"a\n", b"b\r\n", b"c"]


class TestStdioBuffers:
    async def test_three_distinct_streams(self, stdio: StdioBuffers) -> None:
        paths = {stdio.stdin.wasi_path, stdio.stdout.wasi_path, stdio.stderr.wasi_path}
        assert len(paths) == 3

    async def test_released_on_normal_exit(self) -> None:
        async with stdio_buffers() as stdio:
            await stdio.stdin.write(b"body")
            root = Path(stdio.stdin.wasi_path).parent
            assert root.is_dir()
        assert not root.exists()

    async def test_released_on_exception(self) -> None:
        with pytest.raises(RuntimeError, match="boom"):
            async with stdio_buffers() as stdio:
                root = Path(stdio.stdout.wasi_path).parent
                raise RuntimeError("boom")
        assert not root.exists()

    async def test_not_shared_between_scopes(self) -> None:
        async with stdio_buffers() as first, stdio_buffers() as second:
            await first.stdout.write(b"one")
            assert await second.stdout.read_all() == b""
