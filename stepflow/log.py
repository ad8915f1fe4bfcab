"""Structured logging setup and the per-run logger handed to functions."""

import logging
import sys
from typing import Any, List, Optional, Tuple

import structlog

logger = structlog.get_logger(__name__)

_LEVELS = ("debug", "info", "warning", "error", "critical", "exception")


def configure_logging(level: str = "INFO", fmt: str = "console") -> None:
    """Route structlog through stdlib logging with console or JSON rendering."""
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level.upper(), logging.INFO),
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_logger_name,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    if fmt == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())

    formatter = structlog.stdlib.ProcessorFormatter(processor=renderer)
    for handler in logging.root.handlers:
        handler.setFormatter(formatter)


class ProxyLogger:
    """
    Logger exposed to functions as ``ctx.logger``.

    Replayed code runs on every pass, so calls made while the proxy is
    disabled (during memoization) are dropped.  Once enabled, calls are
    buffered and only written out by ``flush`` at the end of the pass.
    """

    def __init__(self, wrapped: Optional[Any] = None):
        self._wrapped = wrapped if wrapped is not None else structlog.get_logger("stepflow.function")
        self._enabled = False
        self._buffer: List[Tuple[str, str, dict]] = []

    @property
    def enabled(self) -> bool:
        return self._enabled

    def enable(self) -> None:
        self._enabled = True

    def disable(self) -> None:
        self._enabled = False

    def _log(self, level: str, event: str, **kwargs: Any) -> None:
        if not self._enabled:
            return
        self._buffer.append((level, event, kwargs))

    def debug(self, event: str, **kwargs: Any) -> None:
        self._log("debug", event, **kwargs)

    def info(self, event: str, **kwargs: Any) -> None:
        self._log("info", event, **kwargs)

    def warning(self, event: str, **kwargs: Any) -> None:
        self._log("warning", event, **kwargs)

    warn = warning

    def error(self, event: str, **kwargs: Any) -> None:
        self._log("error", event, **kwargs)

    def critical(self, event: str, **kwargs: Any) -> None:
        self._log("critical", event, **kwargs)

    def flush(self) -> None:
        """Write out every buffered call; safe to call more than once."""
        pending, self._buffer = self._buffer, []
        for level, event, kwargs in pending:
            method = getattr(self._wrapped, level if level in _LEVELS else "info")
            try:
                method(event, **kwargs)
            except Exception as e:
                logger.error("function_log_flush_failed", error=str(e))

    def __len__(self) -> int:
        return len(self._buffer)
