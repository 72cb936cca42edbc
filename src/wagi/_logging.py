"""Logging for wagi.

The library logger ("wagi") carries only a NullHandler; handlers belong to
the embedding application.  WAGI_LOG_LEVEL sets its level.

configure_logging() is for the CLI.  It adds one queue-backed handler whose
listener thread writes to stderr with click.echo, so a request task never
waits on stderr while its module's stderr lines are being logged.  A full
queue drops records.  Records logged with a ``module_id`` extra are tagged
with the module and entry point:

    ERROR [2026-02-25 10:02:54] wagi.host - execution error serving GET /: ... (hello.wasm:_start)
"""

import contextlib
import logging
import logging.handlers
import os
import queue

import click

LIBRARY_LOGGER_NAME: str = "wagi"

logging.getLogger(LIBRARY_LOGGER_NAME).addHandler(logging.NullHandler())

_env_level = logging.getLevelNamesMapping().get(os.environ.get("WAGI_LOG_LEVEL", "").strip().upper())
if _env_level:  # NOTSET and unknown names leave the level alone
    logging.getLogger(LIBRARY_LOGGER_NAME).setLevel(_env_level)

_FMT = "%(levelname)s [%(asctime)s] %(name)s - %(message)s"
_DATEFMT = "%Y-%m-%d %H:%M:%S"
_QUEUE_CAPACITY = 4096


class ModuleFormatter(logging.Formatter):
    """Appends ``(module_id:entry_point)`` to records that name a module."""

    def __init__(self) -> None:
        super().__init__(fmt=_FMT, datefmt=_DATEFMT)

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        module_id = getattr(record, "module_id", None)
        if module_id is None:
            return message
        entry_point = getattr(record, "entry_point", None)
        return f"{message} ({module_id}:{entry_point})" if entry_point else f"{message} ({module_id})"


class _StderrHandler(logging.Handler):
    """Runs on the listener thread; errors are red, the rest dim."""

    def __init__(self) -> None:
        super().__init__()
        self.formatter = ModuleFormatter()

    def emit(self, record: logging.LogRecord) -> None:
        try:
            if record.levelno >= logging.ERROR:
                styled = click.style(self.format(record), fg="red")
            else:
                styled = click.style(self.format(record), dim=True)
            click.echo(styled, err=True)
        except BlockingIOError:
            pass
        except Exception:  # noqa: BLE001
            self.handleError(record)


class _QueuedStderrHandler(logging.handlers.QueueHandler):
    def __init__(self) -> None:
        records: queue.Queue[logging.LogRecord] = queue.Queue(maxsize=_QUEUE_CAPACITY)
        super().__init__(records)
        self._listener = logging.handlers.QueueListener(records, _StderrHandler())
        self._listener.start()

    def prepare(self, record: logging.LogRecord) -> logging.LogRecord:
        return record

    def enqueue(self, record: logging.LogRecord) -> None:
        with contextlib.suppress(queue.Full):
            self.queue.put_nowait(record)

    def close(self) -> None:
        self._listener.stop()
        super().close()


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def configure_logging(*, quiet: bool = False) -> None:
    """Send library logs to stderr for the CLI.

    Idempotent.  ``quiet`` limits output to errors (module stderr and
    request failures); otherwise WAGI_LOG_LEVEL, or WARNING, applies.
    """
    lib_logger = logging.getLogger(LIBRARY_LOGGER_NAME)
    if not any(isinstance(h, _QueuedStderrHandler) for h in lib_logger.handlers):
        lib_logger.addHandler(_QueuedStderrHandler())
    if quiet:
        lib_logger.setLevel(logging.ERROR)
