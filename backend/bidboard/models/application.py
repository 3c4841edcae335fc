"""
BidBoard Backend - Application SQLAlchemy Model
================================================

What:  ORM model for the `applications` table: one professional's bid on one project.
How:   Inherits from the shared DeclarativeBase; Alembic reads this for migrations.
Who:   Only the SQLAlchemy repository touches rows; everything above it works
       on ApplicationSnapshot.

Table Design:
    - UUID primary key generated in Python (portable across PostgreSQL and SQLite)
    - professional_id / project_id are plain UUID columns, no ORM relationships;
      the professional and the project belong to other aggregates
    - unique (professional_id, project_id): one bid per professional per project
    - status stored as short VARCHAR values of ApplicationStatus
    - priority_score NUMERIC(5, 2) in [0, 100], a cache of the scorer's output
    - metadata JSON bag (JSONB on PostgreSQL); attribute is `metadata_` because
      `metadata` is reserved on declarative classes

Query Patterns:
    - List for a professional: WHERE professional_id = :id ORDER BY priority_score DESC
    - List for a client: JOIN projects ON project_id WHERE projects.client_id = :id
    - Accept cascade: UPDATE ... WHERE project_id = :p AND status IN (open statuses)
"""

import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Optional

from sqlalchemy import (
    JSON,
    Date,
    DateTime,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from bidboard.database import Base
from bidboard.domain.types import ApplicationStatus


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Application(Base):
    """
    Lifecycle:
        1. Created on submission (status = 'pending', priority_score = baseline)
        2. Moved only through guarded conditional UPDATEs issued by the repository
        3. Never deleted; terminal statuses are the end of the road
    """

    __tablename__ = "applications"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )

    professional_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        nullable=False,
        comment="Author of the bid (users.id of a professional)",
    )

    project_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        nullable=False,
        comment="Project the bid targets",
    )

    # ── Proposal ──────────────────────────────────────────────────────────
    cover_letter: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        comment="50 to 2000 characters",
    )

    proposed_rate: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(10, 2),
        nullable=True,
    )

    proposed_timeline: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        comment="Proposed timeline in days",
    )

    availability_start: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    relevant_experience: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # ── Lifecycle ─────────────────────────────────────────────────────────
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=ApplicationStatus.PENDING.value,
        server_default=text("'pending'"),
        comment="pending, under_review, accepted, rejected, withdrawn, expired",
    )

    priority_score: Mapped[Decimal] = mapped_column(
        Numeric(5, 2),
        nullable=False,
        default=Decimal("50"),
        server_default=text("50"),
        comment="Cached output of the priority scorer, 0 to 100",
    )

    reviewed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    reviewed_by: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)

    rejection_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    client_feedback: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    metadata_: Mapped[Dict[str, Any]] = mapped_column(
        "metadata",
        JSON().with_variant(JSONB(), "postgresql"),
        nullable=False,
        default=dict,
    )

    # ── Timestamps ────────────────────────────────────────────────────────
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    __table_args__ = (
        UniqueConstraint(
            "professional_id", "project_id", name="uq_applications_professional_project"
        ),
        Index("idx_applications_project_status", "project_id", "status"),
        Index("idx_applications_professional_id", "professional_id"),
        Index("idx_applications_priority_score", "priority_score"),
    )

    def __repr__(self) -> str:
        return (
            f"<Application(id={self.id}, project_id={self.project_id}, "
            f"status='{self.status}')>"
        )
