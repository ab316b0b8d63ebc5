"""Process-wide logging setup for termmux.

Console output goes to stderr so it never interleaves with channel output
on stdout. When a data dir is configured, two files are written under
{data_dir}/logs/: {process}.log (rotated daily) and {process}-current.log
(rotated by size).

Library code only ever calls get_logger(__name__); the CLI calls
setup_process_logging() once.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler, TimedRotatingFileHandler
from pathlib import Path

from . import config

LOG_FORMAT = "[%(asctime)s] [{process}] [%(levelname)s] %(name)s: %(message)s"
DAILY_BACKUPS = 14
SIZE_LIMIT = 5 * 1024 * 1024
SIZE_BACKUPS = 5

# Frame-level chatter at DEBUG drowns out our own messages
_NOISY_LOGGERS = ("websockets", "asyncio")

_current_process: str | None = None


class FlushingStreamHandler(logging.StreamHandler):
    """StreamHandler that flushes after every emit."""

    def emit(self, record):
        super().emit(record)
        self.flush()


def _log_dir() -> Path | None:
    try:
        return config.data_dir() / "logs"
    except RuntimeError:
        return None


def _file_handlers(log_dir: Path, process_name: str, formatter: logging.Formatter) -> list[logging.Handler]:
    log_dir.mkdir(parents=True, exist_ok=True)

    daily = TimedRotatingFileHandler(
        log_dir / f"{process_name}.log",
        when="midnight",
        backupCount=DAILY_BACKUPS,
        encoding="utf-8",
    )
    daily.suffix = "%Y-%m-%d"

    # Catches a runaway session within a single day
    current = RotatingFileHandler(
        log_dir / f"{process_name}-current.log",
        maxBytes=SIZE_LIMIT,
        backupCount=SIZE_BACKUPS,
        encoding="utf-8",
    )

    for handler in (daily, current):
        handler.setFormatter(formatter)
    return [daily, current]


def setup_process_logging(
    process_name: str,
    level: int = logging.INFO,
    console: bool = True,
    file: bool = True,
) -> logging.Logger:
    """
    Configure the root logger for this process. Safe to call again; the
    previous handlers are closed and replaced.

    Args:
        process_name: Tag included in every line (e.g. "termmux")
        level: Minimum log level (default INFO)
        console: Whether to log to stderr
        file: Whether to log to rotating files (skipped without a data dir)

    Returns:
        The root logger
    """
    global _current_process
    _current_process = process_name

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    root.setLevel(level)

    fmt = LOG_FORMAT.format(process=process_name)
    handlers: list[logging.Handler] = []

    if console:
        console_handler = FlushingStreamHandler(sys.stderr)
        console_handler.setFormatter(logging.Formatter(fmt, datefmt="%H:%M:%S"))
        handlers.append(console_handler)

    log_dir = _log_dir() if file else None
    if log_dir is not None:
        handlers.extend(_file_handlers(log_dir, process_name, logging.Formatter(fmt, datefmt="%Y-%m-%d %H:%M:%S")))

    for handler in handlers:
        handler.setLevel(level)
        root.addHandler(handler)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.INFO))

    return root


def get_logger(name: str) -> logging.Logger:
    """Call at module level: logger = get_logger(__name__)"""
    return logging.getLogger(name)
