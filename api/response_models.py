"""
Pydantic request/response models for the gateway endpoints.

These give FastAPI the type information for accurate OpenAPI schemas.
Upstream records are passed through untouched, so their payloads are
typed as Any.
"""

from typing import Any

from pydantic import BaseModel, Field

# ==== Envelopes ====


class ErrorResponse(BaseModel):
    """Structured error body; detail is truncated and optional."""

    error: str = Field(description="Short public error message")
    detail: str | None = Field(default=None, description="Bounded diagnostic detail")


class DataResponse(BaseModel):
    """Simple proxy envelope: {data}."""

    data: Any = Field(default=None, description="Upstream payload")


class ListResponse(BaseModel):
    """List proxy envelope, with a warning when results were degraded to empty."""

    data: list[Any] = Field(default_factory=list)
    warning: str | None = None


class TimelineEventModel(BaseModel):
    id: str
    timestamp: str
    kind: str = Field(description="status, document, comment or assignment")
    action: str
    summary: str
    actor: str
    status: str | None = None
    meta: dict[str, Any] = Field(default_factory=dict)


class TimelineResponse(BaseModel):
    """Aggregated feed; partial is true when some sources failed."""

    data: list[TimelineEventModel]
    count: int
    partial: bool = False
    errors: list[str] | None = None


class OkResponse(BaseModel):
    ok: bool = True


class MeResponse(BaseModel):
    ok: bool = True
    user: dict[str, Any] | None = None


# ==== Request bodies ====


class LoginRequest(BaseModel):
    email: str = Field(min_length=1)
    password: str = Field(min_length=1)


class NoteCreateRequest(BaseModel):
    note: str = Field(min_length=1, description="Note text")
    visibility: str | None = None


class ParticipantCreateRequest(BaseModel):
    contact_id: str | int = Field(alias="contactId")
    role: str = ""

    model_config = {"populate_by_name": True}
