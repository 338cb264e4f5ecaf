"""Global exception handlers for error capture and logging."""

from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from reqtrail.observability.constants import REQUEST_ID_HEADER
from reqtrail.observability.lifecycle import fail_request
from reqtrail.observability.models import LogContext


def _get_log_context(request: Request) -> Optional[LogContext]:
    """Get the log context the middleware stored on the request, if any."""
    return getattr(request.state, "log_context", None)


def register_exception_handlers(app: FastAPI, development: bool = False) -> None:
    """Register global exception handlers on the FastAPI app.

    Args:
        app: The FastAPI application instance.
        development: Include stack traces in logged errors.
    """

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        """Log unhandled exceptions and return a generic error.

        The middleware has normally logged the error already; this handler only
        emits a record for requests that had no log context.

        Args:
            request: The incoming request.
            exc: The unhandled exception.

        Returns:
            JSON response with generic error message (no details exposed).
        """
        context = _get_log_context(request)
        fail_request(
            context,
            exc,
            url=str(request.url.path),
            development=development,
        )

        content: dict[str, Optional[str]] = {
            "detail": "An internal error occurred. Please try again later.",
        }
        headers: dict[str, str] = {}
        if context is not None:
            content["request_id"] = context.request_id
            headers[REQUEST_ID_HEADER] = context.request_id

        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=content,
            headers=headers,
        )
