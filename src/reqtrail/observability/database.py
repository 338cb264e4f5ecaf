"""SQLAlchemy instrumentation feeding the request log context.

Every statement executed while a request is in flight increments the request's
query counter and leaves a debug breadcrumb with its duration.
"""

import time
from typing import Any

from sqlalchemy import event
from sqlalchemy.engine import Engine

from reqtrail.observability.constants import MAX_TRACED_STATEMENT_LENGTH
from reqtrail.observability.context import increment_db_queries, log

_START_KEY = "reqtrail_query_start"


def _shorten(statement: str) -> str:
    statement = " ".join(statement.split())
    if len(statement) > MAX_TRACED_STATEMENT_LENGTH:
        return statement[:MAX_TRACED_STATEMENT_LENGTH] + "..."
    return statement


def _before_cursor_execute(
    conn: Any,
    cursor: Any,  # noqa: ARG001
    statement: str,  # noqa: ARG001
    parameters: Any,  # noqa: ARG001
    context: Any,  # noqa: ARG001
    executemany: bool,  # noqa: ARG001
) -> None:
    conn.info.setdefault(_START_KEY, []).append(time.perf_counter())


def _after_cursor_execute(
    conn: Any,
    cursor: Any,  # noqa: ARG001
    statement: str,
    parameters: Any,  # noqa: ARG001
    context: Any,  # noqa: ARG001
    executemany: bool,  # noqa: ARG001
) -> None:
    starts = conn.info.get(_START_KEY)
    elapsed_ms = 0
    if starts:
        elapsed_ms = int((time.perf_counter() - starts.pop()) * 1000)

    increment_db_queries()
    log.debug(f"DB {elapsed_ms}ms: {_shorten(statement)}")


def instrument_engine(engine: Engine) -> Engine:
    """Attach query counting and tracing listeners to an engine.

    Safe to call more than once for the same engine.

    Args:
        engine: The SQLAlchemy engine to instrument.

    Returns:
        The same engine, for chaining.
    """
    if not event.contains(engine, "before_cursor_execute", _before_cursor_execute):
        event.listen(engine, "before_cursor_execute", _before_cursor_execute)
    if not event.contains(engine, "after_cursor_execute", _after_cursor_execute):
        event.listen(engine, "after_cursor_execute", _after_cursor_execute)
    return engine
