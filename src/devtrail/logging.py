"""Logging utilities.

Every record is stamped with the session, the producer writing to the session log and
the loop iteration. The three live in one context variable, so a judge or worker task
inherits the session and iteration of the loop that spawned it and only overrides its
own producer name.
"""

from __future__ import annotations

import contextlib
import contextvars
import dataclasses
import logging
from typing import Any, Iterator

from rich.logging import RichHandler


@dataclasses.dataclass(frozen=True)
class LogContext:
    session: str = "-"
    producer: str = "-"
    iteration: str = "-"


_context: contextvars.ContextVar[LogContext] = contextvars.ContextVar("devtrail_log_context", default=LogContext())


class ContextFilter(logging.Filter):
    """Copy the current :class:`LogContext` onto each record."""

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003
        ctx = _context.get()
        record.session = ctx.session  # type: ignore[attr-defined]
        record.producer = ctx.producer  # type: ignore[attr-defined]
        record.iteration = ctx.iteration  # type: ignore[attr-defined]
        return True


def current_context() -> LogContext:
    return _context.get()


@contextlib.contextmanager
def session_context(*, session_id: str, producer: str | None = None) -> Iterator[LogContext]:
    """Bind a session (and optionally a producer) for the duration of the block.

    The iteration is reset; the loop sets it again as it advances.
    """

    ctx = LogContext(session=session_id, producer=producer or _context.get().producer)
    token = _context.set(ctx)
    try:
        yield ctx
    finally:
        _context.reset(token)


def set_producer(producer: str) -> None:
    """Name the producer for the rest of the current task."""

    _context.set(dataclasses.replace(_context.get(), producer=producer))


def set_iteration(iteration: int) -> None:
    """Record the loop iteration for the rest of the current task and the tasks it spawns."""

    _context.set(dataclasses.replace(_context.get(), iteration=str(iteration)))


def configure_logging(level: str = "INFO") -> None:
    """Install the rich console handler on the root logger.

    Calling this again replaces the handler installed by the previous call.

    Args:
        level: Logging level name.
    """

    handler = RichHandler(rich_tracebacks=True, show_time=True, show_level=True)
    handler.set_name("devtrail")
    handler.addFilter(ContextFilter())
    handler.setFormatter(
        logging.Formatter(
            fmt="session=%(session)s producer=%(producer)s iter=%(iteration)s %(name)s: %(message)s",
        )
    )

    root = logging.getLogger()
    root.setLevel(level)
    for existing in [h for h in root.handlers if h.get_name() == "devtrail"]:
        root.removeHandler(existing)
    root.addHandler(handler)


def get_logger(name: str) -> logging.Logger:
    """Get a module logger."""

    return logging.getLogger(name)


def log_exception(logger: logging.Logger, msg: str, **context: Any) -> None:
    """Log the active exception with ``key=value`` context appended to the message."""

    if context:
        fields = " ".join(f"{k}={v!r}" for k, v in context.items())
        logger.exception("%s (%s)", msg, fields)
    else:
        logger.exception("%s", msg)
