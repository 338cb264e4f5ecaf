"""Request lifecycle: create, finalize and emit the per-request log line.

A request moves through ``STARTED -> IN_FLIGHT -> COMPLETING`` and ends either
LOGGED or SUPPRESSED. Normal completion goes through the tail sampling policy;
error completion always logs, immediately, and marks the context so that a
later normal completion does not log the same request twice.
"""

import sys
import traceback
from collections.abc import Iterable
from typing import Any, Optional

import structlog

from reqtrail.observability.constants import LogEvents
from reqtrail.observability.logger import get_logger, log_with_context
from reqtrail.observability.models import ErrorInfo, LogContext, generate_request_id
from reqtrail.observability.sampling import TailSampler, severity_for_status

DEFAULT_INCLUDE_PREFIXES = ("/api/",)
DEFAULT_EXCLUDE_PREFIXES = ("/api/auth/session", "/api/health")

logger = get_logger(__name__)


def should_track_request(
    path: str,
    include_prefixes: Iterable[str] = DEFAULT_INCLUDE_PREFIXES,
    exclude_prefixes: Iterable[str] = DEFAULT_EXCLUDE_PREFIXES,
) -> bool:
    """Check whether a request path gets a log context.

    Static assets and high-frequency, low-value endpoints (session probes,
    health checks) are skipped; they never reach the sampling policy.
    """
    if not any(path.startswith(prefix) for prefix in include_prefixes):
        return False
    return not any(path.startswith(prefix) for prefix in exclude_prefixes)


def start_request(
    method: str,
    url: str,
    ip: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> LogContext:
    """Create the log context for a new request."""
    return LogContext(
        request_id=generate_request_id(),
        method=method,
        url=url,
        ip=ip,
        user_agent=user_agent,
    )


def _emit(
    log: structlog.stdlib.BoundLogger, level: str, message: str, record: dict[str, Any]
) -> None:
    """Write one log line; failures never reach the request path."""
    try:
        log_with_context(log, level, message, **record)
    except Exception as exc:
        # Not routed through structlog: the logging pipeline is what failed
        try:
            sys.stderr.write(f"{LogEvents.LOG_EMIT_FAILED}: {exc!r} ({message})\n")
        except Exception:
            pass


def _summary(context: LogContext) -> str:
    return (
        f"{context.method} {context.url} {context.status_code} "
        f"{context.duration_ms}ms"
    )


def finish_request(
    context: Optional[LogContext],
    status_code: int,
    sampler: TailSampler,
    development: bool = False,
    log: Optional[structlog.stdlib.BoundLogger] = None,
) -> bool:
    """Normal completion: finalize, sample and (maybe) emit the request log.

    Args:
        context: The request's log context, if one was created.
        status_code: Final response status code.
        sampler: The tail sampler to consult.
        development: Keep every request instead of sampling.
        log: Logger to emit through (module logger by default).

    Returns:
        True if a log line was emitted.
    """
    if context is None:
        return False

    # Already logged by the error path
    if context.error is not None:
        return False

    context.finalize(status_code)

    if development:
        decision = sampler.should_sample_request_dev(context)
    else:
        decision = sampler.should_sample_request(context)
    context.sampled = decision.should_log
    context.sampling_reason = decision.reason

    if not decision.should_log:
        return False

    _emit(
        log or logger,
        severity_for_status(context.status_code),
        _summary(context),
        context.to_log_record(),
    )
    return True


def _error_status(exc: BaseException) -> int:
    status_code = getattr(exc, "status_code", None)
    if isinstance(status_code, int) and not isinstance(status_code, bool):
        return status_code
    return 500


def _error_info(exc: BaseException, development: bool) -> ErrorInfo:
    code = getattr(exc, "error_code", None) or getattr(exc, "code", None)
    stack = None
    if development:
        stack = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    return ErrorInfo(
        message=str(exc) or type(exc).__name__,
        stack=stack,
        code=str(code) if code is not None else None,
    )


def fail_request(
    context: Optional[LogContext],
    exc: BaseException,
    url: Optional[str] = None,
    development: bool = False,
    log: Optional[structlog.stdlib.BoundLogger] = None,
) -> bool:
    """Error completion: record the error and log it immediately.

    Errors bypass sampling entirely. Calling this twice for the same context
    logs only once. Without a context (untracked path or a failure before the
    context existed) a minimal record is logged instead of dropping the error.

    Args:
        context: The request's log context, if one was created.
        exc: The exception that ended the request.
        url: Request URL, used for the context-free record.
        development: Include the stack trace.
        log: Logger to emit through (module logger by default).

    Returns:
        True if a log line was emitted.
    """
    log = log or logger
    error = _error_info(exc, development)
    status_code = _error_status(exc)

    if context is None:
        _emit(
            log,
            "error",
            f"Request error: {error.message}",
            {
                "error": error.model_dump(exclude_none=True),
                "status_code": status_code,
                "url": url,
            },
        )
        return True

    if context.error is not None:
        return False

    context.error = error
    context.finalize(status_code)
    context.sampled = True
    context.sampling_reason = "error"

    _emit(
        log,
        "error",
        f"{_summary(context)} ERROR: {error.message}",
        context.to_log_record(),
    )
    return True
