"""
Structured logging for the personalization service, built on structlog.

Console output with colors in development, one JSON object per line in
production. Every event carries the static ``service`` field plus whatever
request context (request_id, session_id) the tracing middleware has bound.

Usage:
    from core.logging import configure_logging, get_logger

    configure_logging(json_logs=True, log_level="INFO")
    logger = get_logger(__name__)
    logger.info("Interest vector computed", session_id="abc", signal_count=5)
"""

import logging
import sys
import time
from contextlib import contextmanager
from typing import Any, Iterator, List, Optional

import structlog
from structlog.types import EventDict, Processor, WrappedLogger


SERVICE_NAME = "content-personalization"

# Chatty third-party loggers: storage clients and the ASGI access log
QUIET_LOGGERS = ("httpx", "httpcore", "hpack", "urllib3", "uvicorn.access")


def _service_fields(service: str) -> Processor:
    def add_service(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
        event_dict.setdefault("service", service)
        return event_dict
    return add_service


def build_processors(json_logs: bool, include_timestamp: bool = True,
                     service: str = SERVICE_NAME) -> List[Processor]:
    """Processor chain shared by both output modes, ending in the renderer."""
    processors: List[Processor] = []
    if include_timestamp:
        processors.append(structlog.processors.TimeStamper(fmt="iso", utc=True))
    processors += [
        structlog.contextvars.merge_contextvars,
        _service_fields(service),
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]
    if json_logs:
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer(
            colors=True,
            exception_formatter=structlog.dev.plain_traceback,
        ))
    return processors


def configure_logging(
    json_logs: bool = False,
    log_level: str = "INFO",
    include_timestamp: bool = True,
    service: str = SERVICE_NAME,
) -> None:
    """
    Configure structlog and the stdlib root logger.

    Args:
        json_logs: JSON lines (production) instead of the colored console renderer
        log_level: Minimum level name, e.g. "DEBUG" or "WARNING"
        include_timestamp: Prefix events with an ISO-8601 UTC timestamp
        service: Value of the ``service`` field attached to every event
    """
    structlog.configure(
        processors=build_processors(json_logs, include_timestamp, service),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper()),
        force=True,
    )
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: Optional[str] = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def bind_context(**kwargs: Any) -> None:
    """Attach request-scoped fields (request_id, session_id) to later events."""
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()


def unbind_context(*keys: str) -> None:
    structlog.contextvars.unbind_contextvars(*keys)


@contextmanager
def log_budget(
    logger: structlog.stdlib.BoundLogger,
    operation: str,
    budget_ms: float,
    **fields: Any,
) -> Iterator[dict]:
    """
    Time a block and warn when it overruns its latency budget.

    The yielded dict receives ``elapsed_ms`` once the block exits, also when
    the block raises.

    Usage:
        with log_budget(logger, "assemble_page", 300, session_id=sid) as timing:
            ...
        timing["elapsed_ms"]
    """
    timing: dict = {"elapsed_ms": 0.0}
    start = time.perf_counter()
    try:
        yield timing
    finally:
        timing["elapsed_ms"] = (time.perf_counter() - start) * 1000
        if timing["elapsed_ms"] > budget_ms:
            logger.warning(
                "Latency budget exceeded",
                operation=operation,
                elapsed_ms=round(timing["elapsed_ms"], 2),
                budget_ms=budget_ms,
                **fields,
            )


class LoggerMixin:
    """
    Gives a class a ``logger`` named after it.

    Usage:
        class SignalStore(LoggerMixin):
            def append(self, signal):
                self.logger.debug("Signal stored", signal_id=signal.signal_id)
    """

    @property
    def logger(self) -> structlog.stdlib.BoundLogger:
        return get_logger(self.__class__.__name__)
