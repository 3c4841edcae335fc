"""
BidBoard Backend - Project SQLAlchemy Model
============================================

What:  ORM model for the `projects` table.
Who:   Owned by the project aggregate. The lifecycle engine reads it and writes
       exactly four columns: assigned_professional_id, status and final_amount
       (the accept claim) and application_count (submission).

The accept claim is a conditional UPDATE on this row:
    UPDATE projects
       SET assigned_professional_id = :pro, status = 'in_progress', final_amount = :amt
     WHERE id = :id AND assigned_professional_id IS NULL AND status IN ('open', 'in_review')
Zero affected rows means another accept already won.
"""

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import DateTime, Index, Integer, Numeric, String, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

from bidboard.database import Base
from bidboard.domain.types import ProjectStatus


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Project(Base):
    __tablename__ = "projects"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    client_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        nullable=False,
        comment="Owner of the project (users.id of a client)",
    )

    title: Mapped[str] = mapped_column(String(200), nullable=False, default="")

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=ProjectStatus.DRAFT.value,
        server_default=text("'draft'"),
    )

    budget_max: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)

    assigned_professional_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        nullable=True,
    )

    final_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)

    application_deadline: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    application_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default=text("0"),
    )

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
        Index("idx_projects_client_id", "client_id"),
        Index("idx_projects_assigned_professional_id", "assigned_professional_id"),
    )

    def __repr__(self) -> str:
        return f"<Project(id={self.id}, status='{self.status}')>"
