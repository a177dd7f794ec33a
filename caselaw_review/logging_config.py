"""
Logging for the Case-Law Review pipeline.

Two sinks are written:
- logs/debug_flow.txt: every message of a session, timestamped to the
  millisecond, for tracing one run through the stages
- logs/processing.log: standard logging records (plus stdout in DEBUG_MODE)

Import the helpers from here rather than using logging directly:
    from caselaw_review.logging_config import debug_log, info, warning, error, Timer

Prefix debug messages with the component in brackets, e.g.
debug_log("[INVOKER] Flex attempt 2/3 for deepseek/deepseek-v3.2").
"""

import logging
import sys
import time
from datetime import datetime

from caselaw_review.config import (
    DEBUG_LOG_FILE,
    DEBUG_MODE,
    LOG_DATE_FORMAT,
    LOG_FILE,
    LOG_FORMAT,
    LOGS_DIR,
)


class _FlowLog:
    """
    Session trace in debug_flow.txt.

    Opened lazily on the first message, so importing the package touches no
    files. An unwritable log directory turns the trace off for the session.
    """

    def __init__(self, path=DEBUG_LOG_FILE):
        self.path = path
        self._handle = None
        self._unavailable = False

    def _ensure_open(self) -> bool:
        if self._handle is not None:
            return True
        if self._unavailable:
            return False
        try:
            LOGS_DIR.mkdir(parents=True, exist_ok=True)
            self._handle = open(self.path, 'a', encoding='utf-8')
        except OSError:
            self._unavailable = True
            return False
        self._handle.write(f"=== Session started {datetime.now().isoformat()} ===\n")
        return True

    def append(self, message: str):
        if not self._ensure_open():
            return
        stamp = datetime.now().strftime("%H:%M:%S.%f")[:-3]
        self._handle.write(f"[{stamp}] {message}\n")
        self._handle.flush()

    def close(self):
        if self._handle is None:
            return
        self._handle.write(f"=== Session ended {datetime.now().isoformat()} ===\n\n")
        self._handle.close()
        self._handle = None


_flow_log = _FlowLog()


def _build_logger() -> logging.Logger:
    logger = logging.getLogger('CaseLawReview')
    logger.setLevel(logging.DEBUG if DEBUG_MODE else logging.INFO)
    if logger.handlers:
        return logger

    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
    handlers: list[logging.Handler] = []
    try:
        LOGS_DIR.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(LOG_FILE, encoding='utf-8', delay=True))
    except OSError:
        pass  # read-only install location
    if DEBUG_MODE:
        handlers.append(logging.StreamHandler(sys.stdout))

    for handler in handlers:
        handler.setLevel(logging.DEBUG)
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    return logger


_logger = _build_logger()


def format_duration(duration_ms: float) -> str:
    """Human-readable duration: milliseconds below one second, seconds above."""
    if duration_ms < 1000:
        return f"{duration_ms:.0f} ms"
    return f"{duration_ms / 1000:.1f} seconds"


class Timer:
    """
    Times a block and logs how long it took.

    Usage:
        with Timer("Stage 3 (Review skeleton)"):
            outcome = await build_review_skeleton(cards, documents, context)

    duration_ms is set when the block exits, whether or not it raised.
    """

    def __init__(self, operation_name: str, auto_log: bool = True):
        self.operation_name = operation_name
        self.auto_log = auto_log
        self.start_time: float | None = None
        self.duration_ms: float | None = None

    def __enter__(self):
        if self.auto_log:
            debug_log(f"{self.operation_name} started")
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.duration_ms = (time.perf_counter() - self.start_time) * 1000
        if self.auto_log:
            outcome = "failed after" if exc_type is not None else "finished in"
            debug_log(f"{self.operation_name} {outcome} {format_duration(self.duration_ms)}")
        return False


def debug_log(message: str):
    """Trace message: always in debug_flow.txt, on the console only in DEBUG_MODE."""
    _flow_log.append(message)
    _logger.debug(message)


def info(message: str):
    _flow_log.append(f"[INFO] {message}")
    _logger.info(message)


def warning(message: str):
    _flow_log.append(f"[WARNING] {message}")
    _logger.warning(message)


def error(message: str, exc_info: bool = False):
    """
    Log an error.

    Args:
        message: The error message
        exc_info: Attach the current traceback (honoured in DEBUG_MODE only)
    """
    _flow_log.append(f"[ERROR] {message}")
    _logger.error(message, exc_info=exc_info and DEBUG_MODE)


def close_debug_log():
    """Flush and close debug_flow.txt; a later message reopens it."""
    _flow_log.close()


__all__ = [
    'debug_log',
    'info',
    'warning',
    'error',
    'close_debug_log',
    'format_duration',
    'Timer',
    'DEBUG_MODE',
]
