"""Request-scoped log context.

Binds a mutable ``LogContext`` to the current execution context with a
``ContextVar`` so that any code running within a request (including code
resumed after an ``await``) can enrich it without the context being passed
around explicitly. Concurrent requests each see only their own context.

Every function here is a silent no-op when no context is bound: observability
must never break the request it observes.
"""

import contextvars
import inspect
from collections.abc import Awaitable, Iterator
from contextlib import contextmanager
from typing import Any, Callable, Optional, TypeVar

from reqtrail.observability.models import (
    LogContext,
    SessionPrincipal,
    TraceEntry,
    TraceLevel,
    now_ms,
)

T = TypeVar("T")

# Context variable for the active log context - async-safe across concurrent requests
log_context_var: contextvars.ContextVar[Optional[LogContext]] = contextvars.ContextVar(
    "log_context", default=None
)


def get_request_context() -> Optional[LogContext]:
    """Get the log context bound to the current request.

    Returns:
        The active log context, or None outside of any request scope.
    """
    return log_context_var.get()


def _call_bound(context: LogContext, fn: Callable[..., T], args: Any, kwargs: Any) -> T:
    log_context_var.set(context)
    return fn(*args, **kwargs)


async def _await_bound(context: LogContext, awaitable: Awaitable[T]) -> T:
    with request_scope(context):
        return await awaitable


def run_with_context(
    context: LogContext, fn: Callable[..., Any], *args: Any, **kwargs: Any
) -> Any:
    """Run ``fn`` with ``context`` bound as the active log context.

    ``fn`` runs in a copy of the current ``contextvars.Context``, so the
    binding disappears once it returns and nested calls restore the outer
    context. If ``fn`` returns an awaitable (e.g. ``fn`` is a coroutine
    function), the returned awaitable re-binds ``context`` while it runs.

    Args:
        context: The log context to bind.
        fn: The callable to run.
        *args: Positional arguments for ``fn``.
        **kwargs: Keyword arguments for ``fn``.

    Returns:
        Whatever ``fn`` returns, or an awaitable wrapping it.
    """
    result = contextvars.copy_context().run(_call_bound, context, fn, args, kwargs)
    if inspect.isawaitable(result):
        return _await_bound(context, result)
    return result


@contextmanager
def request_scope(context: LogContext) -> Iterator[LogContext]:
    """Bind ``context`` for the enclosed block, restoring the previous binding on exit."""
    token = log_context_var.set(context)
    try:
        yield context
    finally:
        log_context_var.reset(token)


def set_request_context(**updates: Any) -> None:
    """Shallow-merge fields into the active log context.

    Unknown field names are ignored, as is any attempt to replace a request ID
    that has already been assigned.
    """
    ctx = log_context_var.get()
    if ctx is None:
        return

    for field, value in updates.items():
        if field not in LogContext.model_fields:
            continue
        if field == "request_id" and ctx.request_id and value != ctx.request_id:
            continue
        setattr(ctx, field, value)


def add_user_context(
    user_id: str, email: Optional[str] = None, role: Optional[str] = None
) -> None:
    """Record the authenticated user on the active log context.

    The email is accepted but never written to the log.
    """
    set_request_context(user_id=user_id, user_role=role)


def add_org_context(
    org_id: str, slug: Optional[str] = None, role: Optional[str] = None
) -> None:
    """Record the active organization and the user's role in it."""
    set_request_context(org_id=org_id, org_slug=slug, org_role=role)


def mark_impersonated(impersonator_id: str) -> None:
    """Flag the request as made by an admin impersonating the current user."""
    set_request_context(is_impersonated=True, impersonator_id=impersonator_id)


def bind_session_context(session: SessionPrincipal) -> None:
    """Enrich the active log context from a resolved session."""
    add_user_context(session.user_id, email=session.email, role=session.role)

    if session.impersonated_by:
        mark_impersonated(session.impersonated_by)

    if session.organization_id:
        add_org_context(
            session.organization_id,
            slug=session.organization_slug,
            role=session.organization_role,
        )


def increment_db_queries(count: int = 1) -> None:
    """Add ``count`` to the number of database queries made by this request."""
    ctx = log_context_var.get()
    if ctx is not None:
        ctx.db_queries_count += count


def add_items_processed(count: int) -> None:
    """Add ``count`` to the number of business items this request handled."""
    ctx = log_context_var.get()
    if ctx is not None:
        ctx.items_processed = (ctx.items_processed or 0) + count


def trace(level: TraceLevel, message: str) -> None:
    """Append a breadcrumb to the active request's trace."""
    ctx = log_context_var.get()
    if ctx is None:
        return

    ctx.trace.append(
        TraceEntry.model_construct(
            level=level, message=message, offset_ms=now_ms() - ctx.start_time
        )
    )


class _TraceLogger:
    """Logger-like facade that records breadcrumbs on the request trace.

    Example:
        >>> from reqtrail.observability.context import log
        >>> log.warn("Email not sent - service not configured")
    """

    def debug(self, message: str) -> None:
        trace("debug", message)

    def info(self, message: str) -> None:
        trace("info", message)

    def warn(self, message: str) -> None:
        trace("warn", message)

    warning = warn


log = _TraceLogger()
