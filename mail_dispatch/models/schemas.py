"""Request/response Pydantic models for the HTTP front end."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class HealthResponse(BaseModel):
    """Response model for GET /health."""

    service: str
    version: str
    status: str
    uptime_seconds: float
    queue_depth: int
    circuit_breaker: dict[str, Any]
    rate_limiter: dict[str, Any]


class QueueDepthResponse(BaseModel):
    """Response model for GET /queue."""

    depth: int


class EmailMessage(BaseModel):
    """Outbound message handed to delivery providers."""

    to: str = Field(..., min_length=1, max_length=320)
    subject: str = Field(..., min_length=1, max_length=998)
    body: str = Field(..., min_length=1)

    @field_validator("to", "subject", mode="before")
    @classmethod
    def strip_whitespace(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip()
        return v


class SendRequest(EmailMessage):
    """Body of POST /send.

    The key is accepted as ``idempotency_key`` or ``idempotencyKey``.
    """

    model_config = ConfigDict(populate_by_name=True)

    idempotency_key: str | None = Field(default=None, alias="idempotencyKey", min_length=1, max_length=200)

    def to_message(self) -> EmailMessage:
        return EmailMessage(to=self.to, subject=self.subject, body=self.body)
