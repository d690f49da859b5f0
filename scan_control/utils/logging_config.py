"""Logging configuration for the protocol compiler entrypoints.

Library modules only ever call ``logging.getLogger(__name__)``; handlers
are installed once by the driver script through ``setup_logging``.

    - Console handler on stderr (stdout carries protocol text)
    - Optional file handler with size or time rotation
    - Human or JSON line format
    - Contextual fields (pattern, job, reps) via push_context / log_context

Format examples:
    Human: 2026-03-02T09:14:07.112Z | INFO     | pattern=grid | Wrote 412 commands
    JSON:  {"t":"2026-03-02T09:14:07.112Z","lvl":"INFO","pattern":"grid","msg":"..."}

Context uses contextvars.  Repeated setup_logging() calls replace the
handlers instead of stacking them.
"""

import contextvars
import json
import logging
import logging.handlers
import sys
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

_context_var: contextvars.ContextVar[Dict[str, Any]] = contextvars.ContextVar(
    'scan_logging_context', default={}
)

# Handlers installed by setup_logging (replaced on the next call)
_handlers: List[logging.Handler] = []

_COLORS = {
    'DEBUG': '\033[36m',
    'INFO': '\033[32m',
    'WARNING': '\033[33m',
    'ERROR': '\033[31m',
    'CRITICAL': '\033[35m',
}
_RESET = '\033[0m'


class ContextFormatter(logging.Formatter):
    """Formatter that appends the current context fields.

    Parameters
    ----------
    fmt_mode : str
        ``"human"`` or ``"json"``.
    use_color : bool
        Colour the level name (only when the stream is a TTY).
    """

    def __init__(self, fmt_mode: str = "human", use_color: bool = True):
        super().__init__()
        if fmt_mode not in ("human", "json"):
            raise ValueError(f"Unknown log format: {fmt_mode}. Use 'human' or 'json'.")
        self.fmt_mode = fmt_mode
        self.use_color = use_color and sys.stderr.isatty()

    def format(self, record: logging.LogRecord) -> str:
        context = _context_var.get()
        ts = datetime.fromtimestamp(record.created, tz=timezone.utc)
        ts_str = ts.strftime('%Y-%m-%dT%H:%M:%S.%f')[:-3] + 'Z'

        if self.fmt_mode == "json":
            payload = {'t': ts_str, 'lvl': record.levelname, 'name': record.name}
            payload.update(context)
            payload['msg'] = record.getMessage()
            if record.exc_info:
                payload['exc'] = self.formatException(record.exc_info)
            return json.dumps(payload, default=str)

        level = f"{record.levelname:8s}"
        if self.use_color:
            level = f"{_COLORS.get(record.levelname, '')}{level}{_RESET}"

        parts = [ts_str, '|', level, '|']
        if context:
            parts.append(' '.join(f"{k}={v}" for k, v in context.items()))
            parts.append('|')
        parts.append(record.getMessage())
        line = ' '.join(parts)

        if record.exc_info:
            line += '\n' + self.formatException(record.exc_info)
        return line


def setup_logging(
    log_level: str = "INFO",
    log_file: Optional[str] = None,
    *,
    json_format: bool = False,
    color: bool = True,
    rotate: Optional[Dict[str, Any]] = None,
    context: Optional[Dict[str, Any]] = None,
) -> List[logging.Handler]:
    """Configure the root logger.

    Parameters
    ----------
    log_level : str
        "DEBUG", "INFO", "WARNING", "ERROR" or "CRITICAL".
    log_file : str, optional
        Also log to this file.
    json_format : bool
        JSON lines instead of the human format (console and file).
    color : bool
        ANSI colours on the console.
    rotate : dict, optional
        File rotation, e.g. ``{"mode": "size", "max_bytes": 5_000_000,
        "backup_count": 3}`` or ``{"mode": "time", "when": "D"}``.
    context : dict, optional
        Initial contextual fields.

    Returns
    -------
    list[logging.Handler]
        Installed handlers.
    """
    root = logging.getLogger()
    while _handlers:
        handler = _handlers.pop()
        root.removeHandler(handler)
        handler.close()

    root.setLevel(getattr(logging, log_level.upper()))
    fmt_mode = "json" if json_format else "human"

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(ContextFormatter(fmt_mode, use_color=color))
    handlers: List[logging.Handler] = [console]

    if log_file:
        file_handler = _create_file_handler(log_file, rotate)
        file_handler.setFormatter(ContextFormatter(fmt_mode, use_color=False))
        handlers.append(file_handler)

    for handler in handlers:
        root.addHandler(handler)
    _handlers.extend(handlers)

    if context:
        push_context(**context)

    logging.captureWarnings(True)
    return handlers


def _create_file_handler(
    log_file: str, rotate: Optional[Dict[str, Any]],
) -> logging.Handler:
    """Create file handler with optional rotation."""
    Path(log_file).parent.mkdir(parents=True, exist_ok=True)

    if not rotate:
        return logging.FileHandler(log_file)

    mode = rotate.get('mode', 'size')
    if mode == 'size':
        return logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=rotate.get('max_bytes', 5_000_000),
            backupCount=rotate.get('backup_count', 3),
        )
    if mode == 'time':
        return logging.handlers.TimedRotatingFileHandler(
            log_file,
            when=rotate.get('when', 'D'),
            interval=rotate.get('interval', 1),
            backupCount=rotate.get('backup_count', 7),
        )
    raise ValueError(f"Unknown rotation mode: {mode}. Use 'size' or 'time'.")


def push_context(**kwargs: Any) -> None:
    """Add contextual fields to all subsequent log records.

    Examples
    --------
    >>> push_context(pattern="grid")
    >>> logger.info("Compiling")  # -> "... | pattern=grid | Compiling"
    """
    _context_var.set({**_context_var.get(), **kwargs})


@contextmanager
def log_context(**kwargs: Any) -> Iterator[None]:
    """Scope contextual fields to a ``with`` block."""
    token = _context_var.set({**_context_var.get(), **kwargs})
    try:
        yield
    finally:
        _context_var.reset(token)


def install_excepthook() -> None:
    """Log uncaught exceptions (except Ctrl+C) before the interpreter exits."""

    def log_exception(exc_type, exc_value, exc_traceback):
        if issubclass(exc_type, KeyboardInterrupt):
            sys.__excepthook__(exc_type, exc_value, exc_traceback)
            return
        logging.getLogger(__name__).critical(
            "Uncaught exception",
            exc_info=(exc_type, exc_value, exc_traceback),
        )

    sys.excepthook = log_exception
