"""
Structured logging configuration using structlog.

Produces JSON logs in production, human-readable colored logs in development.
Per-operation context (endpoint, identifier) is carried in structlog
contextvars and merged into every record, stdlib ones included.
"""

import logging
import sys
from contextlib import contextmanager
from typing import Any, Callable, Iterator, Optional, TextIO

import structlog

from .config import settings


def setup_logging(log_level: Optional[str] = None, stream: Optional[TextIO] = None) -> None:
    """Configure structlog for structured JSON logging.

    Args:
        log_level: Override log level (default: from settings.log_level)
        stream: Output stream (default: stdout)
    """
    level = getattr(logging, (log_level or settings.log_level).upper(), logging.INFO)
    is_dev = level == logging.DEBUG

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if is_dev:
        renderer = structlog.dev.ConsoleRenderer()
    else:
        shared_processors.append(structlog.processors.format_exc_info)
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    # Module loggers are stdlib; the pre-chain gives them the bound context too
    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    # Every RPC call would otherwise log twice
    for name in ("httpcore", "httpx"):
        logging.getLogger(name).setLevel(logging.WARNING)


@contextmanager
def log_context(**values: Any) -> Iterator[Callable[..., None]]:
    """
    Bind `values` onto every log line emitted inside the block.

    Yields a `bind(**more)` function for keys that only become known later
    (an identifier after submission). Everything bound here is removed on
    exit, whether the block returns or raises.
    """
    bound = set(values)
    structlog.contextvars.bind_contextvars(**values)

    def bind(**more: Any) -> None:
        bound.update(more)
        structlog.contextvars.bind_contextvars(**more)

    try:
        yield bind
    finally:
        structlog.contextvars.unbind_contextvars(*bound)
