"""Data models for the per-request log context."""

import time
import uuid
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from reqtrail.observability.constants import REQUEST_ID_PREFIX

TraceLevel = Literal["debug", "info", "warn"]
SamplingReason = Literal["error", "slow", "random", "all"]


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def generate_request_id() -> str:
    """Generate a unique request ID, e.g. ``req-3f9a0c1b2d4e``."""
    return f"{REQUEST_ID_PREFIX}{uuid.uuid4().hex[:12]}"


class ErrorInfo(BaseModel):
    """Error captured when a request fails."""

    message: str
    stack: Optional[str] = None
    code: Optional[str] = None


class TraceEntry(BaseModel):
    """Breadcrumb recorded while a request is being handled."""

    level: TraceLevel
    message: str
    offset_ms: int = Field(description="Milliseconds since request start")


class LogContext(BaseModel):
    """Structured record accumulated over the lifetime of one request.

    Collaborators enrich it through the helpers in
    ``reqtrail.observability.context``; the lifecycle glue finalizes it and
    emits it as a single log line when the request is sampled.
    """

    model_config = ConfigDict(validate_assignment=False)

    # Request lifecycle
    request_id: str = ""
    start_time: int = Field(default_factory=now_ms)
    end_time: Optional[int] = None
    duration_ms: Optional[int] = None

    # HTTP
    method: str = ""
    url: str = ""
    status_code: Optional[int] = None
    ip: Optional[str] = None
    user_agent: Optional[str] = None

    # User
    user_id: Optional[str] = None
    user_role: Optional[str] = None

    # Organization
    org_id: Optional[str] = None
    org_slug: Optional[str] = None
    org_role: Optional[str] = None

    # Impersonation
    is_impersonated: bool = False
    impersonator_id: Optional[str] = None

    # Business metrics
    db_queries_count: int = 0
    items_processed: Optional[int] = None

    # Error (if request failed)
    error: Optional[ErrorInfo] = None

    # Breadcrumbs accumulated during the request
    trace: list[TraceEntry] = Field(default_factory=list)

    # Tail sampling
    sampled: Optional[bool] = None
    sampling_reason: Optional[SamplingReason] = None

    def finalize(self, status_code: Optional[int] = None) -> None:
        """Stamp the end time, duration and (optionally) the status code."""
        self.end_time = max(now_ms(), self.start_time)
        self.duration_ms = self.end_time - self.start_time
        if status_code is not None:
            self.status_code = status_code

    def to_log_record(self) -> dict[str, Any]:
        """Serialize for emission, dropping fields that were never set."""
        return self.model_dump(exclude_none=True)


class SamplingDecision(BaseModel):
    """Outcome of the tail sampling policy for one request."""

    model_config = ConfigDict(frozen=True)

    should_log: bool
    reason: SamplingReason


class SessionPrincipal(BaseModel):
    """Resolved session of an authenticated request.

    Produced by the authentication layer; only the fields relevant to request
    logging are carried here.
    """

    user_id: str
    email: Optional[str] = None
    role: Optional[str] = None
    impersonated_by: Optional[str] = None
    organization_id: Optional[str] = None
    organization_slug: Optional[str] = None
    organization_role: Optional[str] = None
