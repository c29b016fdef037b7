from __future__ import annotations

import logging
import sys
from typing import Any, Literal, TypeAlias

import structlog

LoggingLevel: TypeAlias = Literal["normal", "debug", "verbose"]

_LEVELS: dict[str, int] = {
    "normal": logging.INFO,
    "debug": logging.DEBUG,
    "verbose": logging.DEBUG,
}

_verbose = False


def setup_logging(level: LoggingLevel = "normal", *, json: bool = False) -> None:
    global _verbose
    _verbose = level == "verbose"
    renderer: Any
    if json:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="%H:%M:%S"),
            _drop_verbose,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(_LEVELS[level]),
        logger_factory=_stderr_logger,
        cache_logger_on_first_use=False,
    )


def _stderr_logger(*args: Any) -> structlog.PrintLogger:
    # sys.stderr is looked up per call so redirected streams are honoured.
    return structlog.PrintLogger(sys.stderr)


def _drop_verbose(
    logger: Any, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    # `verbose=True` marks chatty events that only show at the verbose level.
    if event_dict.pop("verbose", False) and not _verbose:
        raise structlog.DropEvent
    return event_dict


def get_logger(name: str | None = None) -> Any:
    if name is None:
        return structlog.get_logger()
    return structlog.get_logger(name)


def bind_message_context(**fields: Any) -> None:
    structlog.contextvars.bind_contextvars(
        **{key: value for key, value in fields.items() if value is not None}
    )


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()
