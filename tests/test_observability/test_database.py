"""Tests for SQLAlchemy query instrumentation."""

import pytest
from sqlalchemy import create_engine, text

from reqtrail.observability.context import request_scope
from reqtrail.observability.database import instrument_engine
from reqtrail.observability.models import LogContext


@pytest.fixture
def engine():
    """In-memory SQLite engine with query instrumentation."""
    engine = instrument_engine(create_engine("sqlite://"))
    with engine.begin() as conn:
        conn.execute(text("CREATE TABLE todos (id INTEGER PRIMARY KEY, title TEXT)"))
    yield engine
    engine.dispose()


def test_queries_are_counted(engine):
    context = LogContext(request_id="req-db")

    with request_scope(context), engine.begin() as conn:
        conn.execute(text("INSERT INTO todos (title) VALUES ('write tests')"))
        conn.execute(text("SELECT * FROM todos"))

    assert context.db_queries_count == 2


def test_queries_leave_debug_breadcrumbs(engine):
    context = LogContext(request_id="req-db")

    with request_scope(context), engine.connect() as conn:
        conn.execute(text("SELECT   id,\n  title FROM todos"))

    assert len(context.trace) == 1
    entry = context.trace[0]
    assert entry.level == "debug"
    assert entry.message.startswith("DB ")
    assert entry.message.endswith("ms: SELECT id, title FROM todos")


def test_long_statements_are_truncated(engine):
    context = LogContext(request_id="req-db")
    columns = ", ".join(f"{i} AS c{i}" for i in range(100))

    with request_scope(context), engine.connect() as conn:
        conn.execute(text(f"SELECT {columns}"))

    message = context.trace[0].message
    assert message.endswith("...")
    assert len(message.split(": ", 1)[1]) == 203


def test_queries_outside_request_are_ignored(engine):
    with engine.connect() as conn:
        result = conn.execute(text("SELECT COUNT(*) FROM todos")).scalar()

    assert result == 0


def test_instrumentation_is_idempotent(engine):
    instrument_engine(engine)
    context = LogContext(request_id="req-db")

    with request_scope(context), engine.connect() as conn:
        conn.execute(text("SELECT 1"))

    assert context.db_queries_count == 1
