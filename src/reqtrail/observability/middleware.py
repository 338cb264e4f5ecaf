"""FastAPI middleware for request observability.

Creates the per-request log context, keeps it bound while the request is
handled and emits the tail-sampled request log when it completes.
"""

import asyncio
from collections.abc import Iterable
from typing import Optional

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from reqtrail.observability.constants import REQUEST_ID_HEADER
from reqtrail.observability.context import request_scope
from reqtrail.observability.lifecycle import (
    DEFAULT_EXCLUDE_PREFIXES,
    DEFAULT_INCLUDE_PREFIXES,
    fail_request,
    finish_request,
    should_track_request,
    start_request,
)
from reqtrail.observability.sampling import TailSampler, get_sampler


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Middleware that owns the request log lifecycle.

    For tracked paths it:
    1. Creates a log context with a fresh request ID
    2. Stores it on ``request.state.log_context`` for exception handlers
    3. Binds it in a ContextVar for async-safe access by collaborators,
       and binds the request ID into structlog contextvars
    4. Logs failures immediately and re-raises them unchanged
    5. Otherwise applies tail sampling and emits the request log
    6. Returns the request ID in the X-Request-ID response header
    """

    def __init__(
        self,
        app: ASGIApp,
        sampler: Optional[TailSampler] = None,
        development: bool = False,
        include_prefixes: Optional[Iterable[str]] = None,
        exclude_prefixes: Optional[Iterable[str]] = None,
    ) -> None:
        """Initialize the middleware.

        Args:
            app: The ASGI application.
            sampler: Tail sampler; the process-wide sampler if omitted.
            development: Keep every request log and include stack traces.
            include_prefixes: Path prefixes that get a log context.
            exclude_prefixes: Path prefixes skipped even if included.
        """
        super().__init__(app)
        self.sampler = sampler or get_sampler()
        self.development = development
        self.include_prefixes = tuple(
            DEFAULT_INCLUDE_PREFIXES if include_prefixes is None else include_prefixes
        )
        self.exclude_prefixes = tuple(
            DEFAULT_EXCLUDE_PREFIXES if exclude_prefixes is None else exclude_prefixes
        )

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        """Process the request inside its log context.

        Args:
            request: The incoming HTTP request.
            call_next: The next middleware/handler in the chain.

        Returns:
            The response, with the request ID header on tracked paths.
        """
        path = request.url.path
        if not should_track_request(path, self.include_prefixes, self.exclude_prefixes):
            return await call_next(request)

        url = path
        if request.url.query:
            url = f"{path}?{request.url.query}"

        context = start_request(
            method=request.method,
            url=url,
            ip=self._get_client_ip(request),
            user_agent=request.headers.get("user-agent"),
        )
        request.state.log_context = context

        # Bind to structlog context for all log entries made during the request
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=context.request_id)

        try:
            with request_scope(context):
                try:
                    response = await call_next(request)
                except (Exception, asyncio.CancelledError) as exc:
                    fail_request(context, exc, development=self.development)
                    raise

                finish_request(
                    context,
                    response.status_code,
                    self.sampler,
                    development=self.development,
                )
        finally:
            structlog.contextvars.clear_contextvars()

        response.headers[REQUEST_ID_HEADER] = context.request_id
        return response

    def _get_client_ip(self, request: Request) -> Optional[str]:
        """Extract client IP from request, considering proxies.

        Args:
            request: The incoming HTTP request.

        Returns:
            The client IP address, if known.
        """
        # Check X-Forwarded-For header (set by reverse proxies)
        forwarded_for = request.headers.get("x-forwarded-for")
        if forwarded_for:
            # Take the first IP (original client)
            return forwarded_for.split(",")[0].strip()

        # Check X-Real-IP header (nginx convention)
        real_ip = request.headers.get("x-real-ip")
        if real_ip:
            return real_ip

        # Fallback to direct client
        if request.client:
            return request.client.host

        return None
