"""Scoped stdio buffers for one module invocation.

WASI binds a guest's stdin/stdout/stderr to host files, so each request gets
a private temporary directory holding three files.  The directory is removed
when the ``stdio_buffers()`` context exits, whatever the exit path.

Callers only rely on the write-then-read-back contract: the request body is
written to stdin before invocation, and stdout/stderr are read back after
the module returns.  ``wasi_path`` exists solely for the engine's WASI
binding.
"""

from __future__ import annotations

import shutil
import tempfile
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

import aiofiles
import aiofiles.os

from wagi._logging import get_logger
from wagi.constants import STDIO_DIR_PREFIX

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

logger = get_logger(__name__)


class StreamBuffer:
    """A single byte stream standing in for one stdio descriptor."""

    def __init__(self, path: Path) -> None:
        self._path = path
        self._path.touch()

    @property
    def wasi_path(self) -> str:
        """Host path the sandbox binds this stream to."""
        return str(self._path)

    async def write(self, data: bytes) -> None:
        """Replace the buffer contents with ``data``."""
        async with aiofiles.open(self._path, "wb") as f:
            await f.write(data)
            await f.flush()

    async def read_all(self) -> bytes:
        async with aiofiles.open(self._path, "rb") as f:
            return await f.read()

    async def read_lines(self) -> AsyncIterator[bytes]:
        """Yield lines in order, line terminators included."""
        async with aiofiles.open(self._path, "rb") as f:
            async for line in f:
                yield line

    async def size(self) -> int:
        stat = await aiofiles.os.stat(self._path)
        return stat.st_size


@dataclass(frozen=True)
class StdioBuffers:
    """The three stdio streams of one request."""

    stdin: StreamBuffer
    stdout: StreamBuffer
    stderr: StreamBuffer


@asynccontextmanager
async def stdio_buffers() -> AsyncIterator[StdioBuffers]:
    """Acquire fresh stdio buffers, deleting their backing store on exit."""
    root = Path(tempfile.mkdtemp(prefix=STDIO_DIR_PREFIX))
    try:
        yield StdioBuffers(
            stdin=StreamBuffer(root / "stdin"),
            stdout=StreamBuffer(root / "stdout"),
            stderr=StreamBuffer(root / "stderr"),
        )
    finally:
        shutil.rmtree(root, ignore_errors=True)
        logger.debug("Released stdio buffers", extra={"stdio_dir": str(root)})
