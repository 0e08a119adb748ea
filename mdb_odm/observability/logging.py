"""
Logging helpers for MDB_ODM.

Log records emitted through ``get_logger`` carry the current correlation ID
and whatever repository context is active, so a single save or query can be
followed across the repository, query and connection loggers.
"""

import contextvars
import logging
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from typing import Any

_correlation_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "mdb_odm_correlation_id", default=None
)
_repository_context: contextvars.ContextVar[dict[str, Any] | None] = contextvars.ContextVar(
    "mdb_odm_repository_context", default=None
)


def get_correlation_id() -> str | None:
    return _correlation_id.get()


def set_correlation_id(correlation_id: str | None = None) -> str:
    """Bind a correlation ID to the current context, generating one when omitted."""
    correlation_id = correlation_id or uuid.uuid4().hex
    _correlation_id.set(correlation_id)
    return correlation_id


def clear_correlation_id() -> None:
    _correlation_id.set(None)


def set_repository_context(repository: str | None = None, **values: Any) -> None:
    """
    Replace the repository context attached to log records.

    Args:
        repository: Collection name the current work is about
        **values: Extra fields such as ``connection`` or ``document_id``
    """
    _repository_context.set({"repository": repository, **values})


def clear_repository_context() -> None:
    _repository_context.set(None)


@contextmanager
def repository_context(repository: str, **values: Any) -> Iterator[dict[str, Any]]:
    """
    Layer repository context on top of the current one for the enclosed block.

    Nested blocks see the merged context; the outer context is restored on exit.

    Usage:
        with repository_context("articles", connection="default"):
            logger.info("saving")
    """
    merged = {**(_repository_context.get() or {}), "repository": repository, **values}
    token = _repository_context.set(merged)
    try:
        yield merged
    finally:
        _repository_context.reset(token)


def get_logging_context() -> dict[str, Any]:
    """Snapshot of the fields added to every contextual log record."""
    context: dict[str, Any] = {"timestamp": datetime.now().isoformat()}
    correlation_id = _correlation_id.get()
    if correlation_id:
        context["correlation_id"] = correlation_id
    context.update(_repository_context.get() or {})
    return context


class ContextualLoggerAdapter(logging.LoggerAdapter):
    """Adds the logging context to each record; explicit ``extra`` wins on conflict."""

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        kwargs["extra"] = {**get_logging_context(), **(kwargs.get("extra") or {})}
        return msg, kwargs


def get_logger(name: str) -> ContextualLoggerAdapter:
    return ContextualLoggerAdapter(logging.getLogger(name), {})


def log_operation(
    logger: logging.Logger,
    operation: str,
    level: int = logging.INFO,
    success: bool = True,
    duration_ms: float | None = None,
    **context: Any,
) -> None:
    """
    Log the outcome of a repository or query operation.

    The message reads ``Operation: <name>`` or ``Operation failed: <name>``,
    followed by the duration when known. Everything else goes into the record's
    extra fields.
    """
    extra = get_logging_context()
    extra["operation"] = operation
    extra["success"] = success

    message = f"Operation: {operation}" if success else f"Operation failed: {operation}"
    if duration_ms is not None:
        extra["duration_ms"] = round(duration_ms, 2)
        message = f"{message} (duration: {duration_ms:.2f}ms)"

    extra.update(context)
    logger.log(level, message, extra=extra)
