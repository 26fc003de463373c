"""
Structured logging configuration using structlog.

JSON lines for deployed keepers (cloud log collectors parse them), colored
console output when running at DEBUG from a terminal. The CLI logs to
stderr so its report on stdout stays readable.
"""

import logging
import sys
from typing import IO, Any, Iterable, Optional

import structlog

SERVICE_NAME = "dca-keeper"

# Per-request client logs would repeat every RPC call of a discovery scan.
NOISY_LOGGERS = ("uvicorn.access", "httpcore", "httpx")

# Process-wide fields set once at startup. Held here rather than in contextvars
# so request handlers and background tasks started later still see them.
_run_context: dict[str, Any] = {}


def _add_service(_: Any, __: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    event_dict.setdefault("service", SERVICE_NAME)
    return event_dict


def _add_run_context(_: Any, __: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    for key, value in _run_context.items():
        event_dict.setdefault(key, value)
    return event_dict


def _pre_chain(json_logs: bool) -> list[structlog.types.Processor]:
    chain: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        _add_service,
        _add_run_context,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]
    if json_logs:
        chain.append(structlog.processors.format_exc_info)
    return chain


def setup_logging(
    log_level: Optional[str] = "INFO",
    json_logs: Optional[bool] = None,
    stream: Optional[IO[str]] = None,
    quiet: Iterable[str] = NOISY_LOGGERS,
) -> None:
    """Configure structlog and route stdlib logging through it.

    Args:
        log_level: Level name, normally ``Settings.log_level``
        json_logs: Force JSON (True) or console (False) rendering. Defaults to
            console at DEBUG and JSON otherwise.
        stream: Output stream, stdout by default
        quiet: Loggers capped at WARNING
    """
    level = logging.getLevelName((log_level or "INFO").upper())
    if not isinstance(level, int):
        level = logging.INFO
    if json_logs is None:
        json_logs = level != logging.DEBUG

    pre_chain = _pre_chain(json_logs)
    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    renderer: structlog.types.Processor = (
        structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer()
    )
    # foreign_pre_chain gives plain ``logging`` records the same fields as structlog events.
    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=pre_chain,
        processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
    )

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(level)

    for name in quiet:
        logging.getLogger(name).setLevel(logging.WARNING)


def bind_run_context(**values: Any) -> None:
    """Attach keeper-wide fields (network, executor, trigger source) to every log line."""
    _run_context.update({k: v for k, v in values.items() if v is not None})
