"""
BidBoard Backend - Pydantic Request/Response Schemas
=====================================================

What:  The HTTP contract for the applications API.
How:   FastAPI validates request bodies against these models (422 on shape
       errors) and serializes responses from domain snapshots.
Who:   Route handlers in routes/applications.py and routes/health.py.

Schemas are separate from the domain snapshots: the API can rename or hide
fields (metadata is exposed as `metadata`, never the ORM's `metadata_`)
without touching the lifecycle engine.
"""

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, model_validator

from bidboard.domain.types import (
    ApplicationContent,
    ApplicationPage,
    FinalTerms,
)


# ══════════════════════════════════════════════════════════════════════════
# Request Models
# ══════════════════════════════════════════════════════════════════════════


class ApplicationSubmitRequest(BaseModel):
    """Body of POST /api/projects/{project_id}/applications."""
    cover_letter: str = Field(min_length=50, max_length=2000, description="Pitch to the client")
    proposed_rate: Optional[Decimal] = Field(default=None, ge=0, description="Proposed rate")
    proposed_timeline: Optional[int] = Field(default=None, gt=0, description="Estimated days")
    availability_start: Optional[date] = Field(default=None, description="Earliest start date")
    relevant_experience: Optional[str] = Field(default=None, max_length=5000)

    def to_content(self) -> ApplicationContent:
        return ApplicationContent(**self.model_dump())


class EvaluateRequest(BaseModel):
    priority_score: Optional[Decimal] = Field(default=None, ge=0, le=100)
    client_feedback: Optional[str] = Field(default=None, min_length=10, max_length=1000)
    evaluation_metadata: Optional[Dict[str, Any]] = Field(
        default=None,
        description="Free-form review notes merged into the application's metadata",
    )


class ApproveRequest(BaseModel):
    """
    Final terms for an accept.

    rate_negotiation_notes only makes sense next to a final_rate; sending
    notes alone is rejected.
    """
    final_rate: Optional[Decimal] = Field(default=None, gt=0)
    rate_negotiation_notes: Optional[str] = Field(default=None, max_length=500)
    client_feedback: Optional[str] = Field(default=None, min_length=10, max_length=1000)

    @model_validator(mode="after")
    def notes_need_rate(self) -> "ApproveRequest":
        if self.rate_negotiation_notes is not None and self.final_rate is None:
            raise ValueError("rate_negotiation_notes requires final_rate")
        return self

    def to_final_terms(self) -> FinalTerms:
        return FinalTerms(**self.model_dump())


class RejectRequest(BaseModel):
    rejection_reason: str = Field(min_length=10, max_length=500)
    client_feedback: Optional[str] = Field(default=None, min_length=10, max_length=1000)


class WithdrawRequest(BaseModel):
    reason: Optional[str] = Field(default=None, min_length=5, max_length=300)


# ══════════════════════════════════════════════════════════════════════════
# Response Models
# ══════════════════════════════════════════════════════════════════════════


class ApplicationResponse(BaseModel):
    id: uuid.UUID
    professional_id: uuid.UUID
    project_id: uuid.UUID
    cover_letter: str
    proposed_rate: Optional[Decimal] = None
    proposed_timeline: Optional[int] = None
    availability_start: Optional[date] = None
    relevant_experience: Optional[str] = None
    status: str = Field(description="pending, under_review, accepted, rejected, withdrawn, expired")
    priority_score: Decimal
    reviewed_at: Optional[datetime] = None
    reviewed_by: Optional[uuid.UUID] = None
    rejection_reason: Optional[str] = None
    client_feedback: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class PageInfoResponse(BaseModel):
    current_page: int
    per_page: int
    total_pages: int
    total_count: int
    has_next: bool
    has_prev: bool

    model_config = {"from_attributes": True}


class StatusSummaryResponse(BaseModel):
    """
    Counts per status (all six present, zero-filled), their total, and
    accepted / (accepted + rejected) rounded to two places.
    """
    counts: Dict[str, int]
    total: int
    success_rate: float


class ApplicationListResponse(BaseModel):
    applications: List[ApplicationResponse]
    pagination: PageInfoResponse
    status_summary: StatusSummaryResponse

    @classmethod
    def from_page(cls, page: ApplicationPage) -> "ApplicationListResponse":
        summary = page.status_summary
        return cls(
            applications=[ApplicationResponse.model_validate(item) for item in page.items],
            pagination=PageInfoResponse.model_validate(page.page_info),
            status_summary=StatusSummaryResponse(
                counts={status.value: count for status, count in summary.counts.items()},
                total=summary.total,
                success_rate=summary.success_rate,
            ),
        )


class PriorityScoreResponse(BaseModel):
    application_id: uuid.UUID
    priority_score: Decimal


# ══════════════════════════════════════════════════════════════════════════
# Error / Health Models
# ══════════════════════════════════════════════════════════════════════════


class ErrorResponse(BaseModel):
    """
    Error body shared by every endpoint.

    Example:
        {
            "error": "conflict_assignment",
            "message": "Another application has already been accepted for this project",
            "details": {"project_id": "..."},
            "request_id": "550e8400-e29b-41d4-a716-446655440000"
        }
    """
    error: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error description")
    details: Optional[dict] = Field(default=None, description="Additional error context")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class HealthResponse(BaseModel):
    status: str = Field(description="Overall service status: healthy, degraded, unhealthy")
    version: str = Field(description="Application version")
    database: str = Field(description="Database connectivity: connected, disconnected")
    notifier: str = Field(description="Notifier status: available, circuit_open")
    pending_notifications: int = Field(description="Deliveries still in flight")
    uptime_seconds: float = Field(description="Seconds since service started")
