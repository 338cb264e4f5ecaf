"""Observability layer for reqtrail.

This module provides request-scoped log contexts, tail sampling of request
logs, and structured logging.

Usage:
    from reqtrail.observability import add_user_context, log

    add_user_context(user.id, role=user.role)
    log.info("invitation sent")

Note:
    Some items are not exported here to avoid circular imports:
    - register_exception_handlers: import from reqtrail.observability.handlers
    - instrument_engine: import from reqtrail.observability.database
"""

from reqtrail.observability.constants import REQUEST_ID_HEADER
from reqtrail.observability.context import (
    add_items_processed,
    add_org_context,
    add_user_context,
    bind_session_context,
    get_request_context,
    increment_db_queries,
    log,
    log_context_var,
    mark_impersonated,
    request_scope,
    run_with_context,
    set_request_context,
    trace,
)
from reqtrail.observability.logger import configure_logging, get_logger
from reqtrail.observability.middleware import RequestContextMiddleware
from reqtrail.observability.models import (
    ErrorInfo,
    LogContext,
    SamplingDecision,
    SessionPrincipal,
    TraceEntry,
)
from reqtrail.observability.percentile import PercentileTracker
from reqtrail.observability.sampling import (
    TailSampler,
    get_sampler,
    severity_for_status,
    should_sample_request,
    should_sample_request_dev,
)

__all__ = [
    "REQUEST_ID_HEADER",
    "ErrorInfo",
    "LogContext",
    "PercentileTracker",
    "RequestContextMiddleware",
    "SamplingDecision",
    "SessionPrincipal",
    "TailSampler",
    "TraceEntry",
    "add_items_processed",
    "add_org_context",
    "add_user_context",
    "bind_session_context",
    "configure_logging",
    "get_logger",
    "get_request_context",
    "get_sampler",
    "increment_db_queries",
    "log",
    "log_context_var",
    "mark_impersonated",
    "request_scope",
    "run_with_context",
    "set_request_context",
    "severity_for_status",
    "should_sample_request",
    "should_sample_request_dev",
    "trace",
]
