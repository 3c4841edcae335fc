"""
BidBoard Backend - Domain Types
================================

What:  Enumerations and immutable snapshots the lifecycle engine reasons about.
How:   Frozen Pydantic models. The repository converts ORM rows into these
       snapshots; the state machine, scorer and access guard only ever see
       snapshots, so they run without a database.
Who:   Everything above the repository layer.

Aggregates reference each other by id only. An ApplicationSnapshot knows its
project_id, never the Project itself.
"""

import uuid
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ApplicationStatus(str, Enum):
    PENDING = "pending"
    UNDER_REVIEW = "under_review"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    WITHDRAWN = "withdrawn"
    EXPIRED = "expired"


# Statuses from which an application can still move
OPEN_STATUSES = frozenset({ApplicationStatus.PENDING, ApplicationStatus.UNDER_REVIEW})

TERMINAL_STATUSES = frozenset({
    ApplicationStatus.ACCEPTED,
    ApplicationStatus.REJECTED,
    ApplicationStatus.WITHDRAWN,
    ApplicationStatus.EXPIRED,
})


class ProjectStatus(str, Enum):
    DRAFT = "draft"
    OPEN = "open"
    IN_REVIEW = "in_review"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    ON_HOLD = "on_hold"
    DISPUTED = "disputed"


# Project statuses in which a client may still pick a winner
CLAIMABLE_PROJECT_STATUSES = frozenset({ProjectStatus.OPEN, ProjectStatus.IN_REVIEW})


class ActorRole(str, Enum):
    PROFESSIONAL = "professional"
    CLIENT = "client"
    ADMIN = "admin"
    SYSTEM = "system"


class NotificationEvent(str, Enum):
    APPLICATION_RECEIVED = "application_received"
    APPLICATION_UNDER_REVIEW = "application_under_review"
    APPLICATION_ACCEPTED = "application_accepted"
    APPLICATION_REJECTED = "application_rejected"
    APPLICATION_WITHDRAWN = "application_withdrawn"
    APPLICATION_EXPIRED = "application_expired"


class _Snapshot(BaseModel):
    model_config = ConfigDict(frozen=True, from_attributes=True)


class Actor(_Snapshot):
    """The authenticated caller, resolved upstream and passed explicitly."""
    id: uuid.UUID
    role: ActorRole


class ApplicationContent(_Snapshot):
    """What a professional submits."""
    cover_letter: str = Field(min_length=50, max_length=2000)
    proposed_rate: Optional[Decimal] = Field(default=None, ge=0)
    proposed_timeline: Optional[int] = Field(default=None, gt=0)
    availability_start: Optional[date] = None
    relevant_experience: Optional[str] = None


class ApplicationSnapshot(_Snapshot):
    id: uuid.UUID
    professional_id: uuid.UUID
    project_id: uuid.UUID
    cover_letter: str
    proposed_rate: Optional[Decimal] = None
    proposed_timeline: Optional[int] = None
    availability_start: Optional[date] = None
    relevant_experience: Optional[str] = None
    status: ApplicationStatus
    priority_score: Decimal
    reviewed_at: Optional[datetime] = None
    reviewed_by: Optional[uuid.UUID] = None
    rejection_reason: Optional[str] = None
    client_feedback: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    updated_at: Optional[datetime] = None


class ProjectSnapshot(_Snapshot):
    id: uuid.UUID
    client_id: uuid.UUID
    title: str = ""
    status: ProjectStatus
    budget_max: Optional[Decimal] = None
    assigned_professional_id: Optional[uuid.UUID] = None
    final_amount: Optional[Decimal] = None
    application_deadline: Optional[datetime] = None
    application_count: int = 0


class TrackRecord(_Snapshot):
    """A professional's history, as far as scoring cares."""
    professional_id: uuid.UUID
    experience_years: int = 0
    average_rating: Optional[Decimal] = None
    completion_rate: Optional[Decimal] = None


class FinalTerms(_Snapshot):
    """What the client settles on when approving."""
    final_rate: Optional[Decimal] = Field(default=None, gt=0)
    rate_negotiation_notes: Optional[str] = None
    client_feedback: Optional[str] = None


class ApplicationFilters(_Snapshot):
    status: Optional[ApplicationStatus] = None
    project_id: Optional[uuid.UUID] = None
    professional_id: Optional[uuid.UUID] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    rate_min: Optional[Decimal] = None
    rate_max: Optional[Decimal] = None


class Pagination(_Snapshot):
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=10, ge=1)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


class ListScope(_Snapshot):
    """
    Server-side row filter derived from the actor.

    Both fields None means unrestricted (admin).
    """
    professional_id: Optional[uuid.UUID] = None
    client_id: Optional[uuid.UUID] = None


class PageInfo(_Snapshot):
    current_page: int
    per_page: int
    total_pages: int
    total_count: int
    has_next: bool
    has_prev: bool


class StatusSummary(_Snapshot):
    counts: Dict[ApplicationStatus, int]
    total: int
    success_rate: float


class ApplicationPage(_Snapshot):
    items: List[ApplicationSnapshot]
    page_info: PageInfo
    status_summary: StatusSummary


class SiblingRejection(_Snapshot):
    """One application rejected by an accept cascade."""
    application_id: uuid.UUID
    professional_id: uuid.UUID
