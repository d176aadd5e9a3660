"""
Simple asynchronous logging for vaultsearch.
"""

import os
import time
import traceback
from pathlib import Path
from typing import Optional
from contextlib import contextmanager

import yaml
from loguru import logger as loguru_logger


class AsyncLogger:
    """
    Asynchronous logger with a flat format.

    Format: timestamp | level | component | message
    Structured context goes in keyword arguments, never inside the message.
    """

    # Single file sink shared by every instance
    _handler_id = None
    log_file = "vaultsearch.log"

    def __init__(self, component: str, debug_mode: bool = False):
        self.component = component
        self.debug_mode = debug_mode
        self._setup_async_handler()

    def _setup_async_handler(self):
        """
        Register the shared loguru file sink once.

        - enqueue=True keeps callers non-blocking
        - rotation at 10 MB, zipped
        """
        if AsyncLogger._handler_id is None:
            AsyncLogger._handler_id = loguru_logger.add(
                AsyncLogger.log_file,
                format="{time:YYYY-MM-DD HH:mm:ss.SSS} | {level} | {extra[component]} | {message}",
                rotation="10 MB",
                compression="zip",
                enqueue=True,
            )

    def log(self, level: str, message: str, **context):
        """Log a message bound to this component."""
        loguru_logger.bind(component=self.component, **context).log(level, message)

    def debug(self, message: str, **context):
        self.log("DEBUG", message, **context)

    def info(self, message: str, **context):
        self.log("INFO", message, **context)

    def warning(self, message: str, **context):
        self.log("WARNING", message, **context)

    def error(self, message: str, include_trace: Optional[bool] = None, **context):
        """
        Log at ERROR level with an optional stack trace.

        Args:
            message: Error message
            include_trace: Whether to attach the current traceback (None = follow debug_mode)
            **context: Additional context
        """
        should_include_trace = include_trace if include_trace is not None else self.debug_mode

        if should_include_trace:
            context["stack_trace"] = traceback.format_exc()

        self.log("ERROR", message, **context)


class PerformanceLogger:
    """
    Logger specialised in timings.
    """

    def __init__(self):
        self.logger = AsyncLogger("performance")

    @contextmanager
    def measure(self, operation: str, **context):
        """
        Context manager that logs the duration of an operation.

        Usage:
        ```
        with perf_logger.measure("build_lexical_index", candidates=len(paths)):
            engine.build_from_candidates(paths)
        ```
        """
        start = time.perf_counter()
        try:
            yield
        finally:
            duration = time.perf_counter() - start
            self.logger.info(
                "Operation completed", operation=operation, duration_ms=duration * 1000, **context
            )


def _get_debug_mode() -> bool:
    """Read debug_mode from the .vaultsearch file or the VAULTSEARCH_DEBUG variable."""
    config_path = Path(".vaultsearch")
    if config_path.is_file():
        try:
            with open(config_path, encoding="utf-8") as f:
                config = yaml.safe_load(f) or {}
            return bool(config.get("logging", {}).get("debug_mode", False))
        except (OSError, yaml.YAMLError, AttributeError):
            # Settings reports a broken config file; logging must still come up
            pass

    return os.getenv("VAULTSEARCH_DEBUG", "false").lower() == "true"


logger = AsyncLogger("vaultsearch", debug_mode=_get_debug_mode())
