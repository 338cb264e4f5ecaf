"""Constants for observability layer."""

# HTTP header carrying the request ID back to the client
REQUEST_ID_HEADER = "X-Request-ID"

# Service identifier for logs
SERVICE_NAME = "reqtrail"

# Prefix for generated request IDs
REQUEST_ID_PREFIX = "req-"

# Maximum length of a SQL statement kept in a trace breadcrumb
MAX_TRACED_STATEMENT_LENGTH = 200


# Log event names following the pattern: {domain}.{action}.{result}
class LogEvents:
    """Standardized log event names."""

    # Application lifecycle events
    APP_STARTED = "app.started"
    APP_STOPPED = "app.stopped"

    # Observability-internal events
    LOG_EMIT_FAILED = "log.emit.failed"


# Fields hidden by the development console renderer
DEV_HIDDEN_FIELDS = frozenset(
    {
        "start_time",
        "end_time",
        "ip",
        "user_agent",
        "sampled",
        "sampling_reason",
    }
)
