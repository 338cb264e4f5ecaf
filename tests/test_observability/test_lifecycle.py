"""Tests for request lifecycle finalization and emission."""

import asyncio

import pytest
from structlog.testing import capture_logs

from reqtrail.observability.lifecycle import (
    fail_request,
    finish_request,
    should_track_request,
    start_request,
)
from reqtrail.observability.models import LogContext


class DomainError(Exception):
    """Application error carrying an HTTP status and error code."""

    def __init__(self, message: str, status_code: int, error_code: str):
        self.status_code = status_code
        self.error_code = error_code
        super().__init__(message)


class BrokenLogger:
    """Logger whose every method fails, like a sink with a broken pipe."""

    def __getattr__(self, name):
        def fail(*args, **kwargs):
            raise OSError("sink unavailable")

        return fail


@pytest.fixture
def context() -> LogContext:
    return start_request(
        method="GET", url="/api/todos", ip="10.0.0.1", user_agent="pytest"
    )


class TestShouldTrackRequest:
    """Tests for the request inclusion filter."""

    @pytest.mark.parametrize(
        ("path", "expected"),
        [
            ("/api/todos", True),
            ("/api/organizations/acme/members", True),
            ("/api/auth/session", False),
            ("/api/auth/session/refresh", False),
            ("/api/health", False),
            ("/api/auth/sign-in", True),
            ("/_nuxt/app.js", False),
            ("/favicon.ico", False),
            ("/", False),
        ],
    )
    def test_default_filter(self, path, expected):
        assert should_track_request(path) is expected

    def test_custom_filter(self):
        assert should_track_request("/v2/items", ["/v2/"], []) is True
        assert should_track_request("/v2/items", ["/v2/"], ["/v2/items"]) is False


class TestStartRequest:
    """Tests for creating a request's log context."""

    def test_identity_fields(self, context):
        assert context.request_id.startswith("req-")
        assert len(context.request_id) == len("req-") + 12
        assert context.method == "GET"
        assert context.url == "/api/todos"
        assert context.ip == "10.0.0.1"
        assert context.user_agent == "pytest"
        assert context.start_time > 0
        assert context.end_time is None
        assert context.db_queries_count == 0
        assert context.trace == []

    def test_request_ids_are_unique(self):
        ids = {start_request("GET", "/api/x").request_id for _ in range(500)}
        assert len(ids) == 500


class TestFinishRequest:
    """Tests for normal completion."""

    def test_kept_request_is_logged(self, context, keep_all_sampler):
        with capture_logs() as logs:
            emitted = finish_request(context, 200, keep_all_sampler)

        assert emitted is True
        assert len(logs) == 1
        entry = logs[0]
        assert entry["log_level"] == "info"
        assert entry["event"] == f"GET /api/todos 200 {context.duration_ms}ms"
        assert entry["request_id"] == context.request_id
        assert entry["status_code"] == 200
        assert entry["sampled"] is True
        assert entry["sampling_reason"] == "random"
        assert entry["db_queries_count"] == 0
        assert entry["trace"] == []

    def test_finalizes_timings(self, context, keep_all_sampler):
        context.start_time -= 40

        finish_request(context, 201, keep_all_sampler)

        assert context.end_time >= context.start_time
        assert context.duration_ms == context.end_time - context.start_time
        assert context.duration_ms >= 40
        assert context.status_code == 201

    def test_dropped_request_is_not_logged(self, context, drop_all_sampler):
        with capture_logs() as logs:
            emitted = finish_request(context, 200, drop_all_sampler)

        assert emitted is False
        assert logs == []
        assert context.sampled is False
        assert context.sampling_reason == "all"

    @pytest.mark.parametrize(
        ("status_code", "level"), [(404, "warning"), (409, "warning"), (502, "error")]
    )
    def test_error_status_logged_at_mapped_level(
        self, context, drop_all_sampler, status_code, level
    ):
        with capture_logs() as logs:
            finish_request(context, status_code, drop_all_sampler)

        assert len(logs) == 1
        assert logs[0]["log_level"] == level
        assert logs[0]["sampling_reason"] == "error"

    def test_development_keeps_everything(self, context, drop_all_sampler):
        with capture_logs() as logs:
            finish_request(context, 200, drop_all_sampler, development=True)

        assert len(logs) == 1
        assert logs[0]["sampling_reason"] == "all"
        assert drop_all_sampler.tracker.sample_count == 0

    def test_without_context_does_nothing(self, keep_all_sampler):
        with capture_logs() as logs:
            assert finish_request(None, 200, keep_all_sampler) is False

        assert logs == []

    def test_skipped_after_error_path(self, context, keep_all_sampler):
        with capture_logs() as logs:
            fail_request(context, RuntimeError("boom"))
            emitted = finish_request(context, 500, keep_all_sampler)

        assert emitted is False
        assert len(logs) == 1

    def test_unset_fields_are_omitted(self, context, keep_all_sampler):
        with capture_logs() as logs:
            finish_request(context, 200, keep_all_sampler)

        assert "user_id" not in logs[0]
        assert "org_id" not in logs[0]
        assert "error" not in logs[0]

    def test_emission_failure_is_swallowed(self, context, keep_all_sampler, capsys):
        emitted = finish_request(context, 200, keep_all_sampler, log=BrokenLogger())

        assert emitted is True
        assert "log.emit.failed" in capsys.readouterr().err


class TestFailRequest:
    """Tests for error completion."""

    def test_unhandled_error_logged_immediately(self, context):
        with capture_logs() as logs:
            emitted = fail_request(context, RuntimeError("database is gone"))

        assert emitted is True
        assert len(logs) == 1
        entry = logs[0]
        assert entry["log_level"] == "error"
        assert entry["event"].startswith("GET /api/todos 500 ")
        assert entry["event"].endswith("ms ERROR: database is gone")
        assert entry["status_code"] == 500
        assert entry["error"] == {"message": "database is gone"}
        assert entry["sampled"] is True
        assert entry["sampling_reason"] == "error"

    def test_status_and_code_from_exception(self, context):
        with capture_logs() as logs:
            fail_request(context, DomainError("no access", 403, "PERMISSION_DENIED"))

        assert context.status_code == 403
        assert context.error.code == "PERMISSION_DENIED"
        assert logs[0]["log_level"] == "error"

    def test_stack_only_in_development(self, context):
        try:
            raise ValueError("bad input")
        except ValueError as exc:
            error = exc

        fail_request(context, error)
        assert context.error.stack is None

        dev_context = start_request("POST", "/api/todos")
        fail_request(dev_context, error, development=True)
        assert "ValueError: bad input" in dev_context.error.stack

    def test_is_idempotent(self, context):
        with capture_logs() as logs:
            assert fail_request(context, RuntimeError("first")) is True
            assert fail_request(context, RuntimeError("second")) is False

        assert len(logs) == 1
        assert context.error.message == "first"

    def test_without_context_logs_minimal_record(self):
        with capture_logs() as logs:
            emitted = fail_request(None, RuntimeError("early"), url="/login")

        assert emitted is True
        assert logs == [
            {
                "event": "Request error: early",
                "log_level": "error",
                "error": {"message": "early"},
                "status_code": 500,
                "url": "/login",
            }
        ]

    def test_cancellation_is_logged_as_server_error(self, context):
        with capture_logs() as logs:
            emitted = fail_request(context, asyncio.CancelledError())

        assert emitted is True
        assert len(logs) == 1
        assert logs[0]["log_level"] == "error"
        assert logs[0]["status_code"] == 500
        assert context.error.message == "CancelledError"

    def test_message_falls_back_to_exception_type(self, context):
        fail_request(context, KeyError())

        assert context.error.message == "KeyError"

    def test_emission_failure_is_swallowed(self, context, capsys):
        emitted = fail_request(context, RuntimeError("boom"), log=BrokenLogger())

        assert emitted is True
        assert "log.emit.failed" in capsys.readouterr().err
