"""
BidBoard Backend - Abstract Repository Interface
=================================================

What:  The persistence contract the lifecycle coordinator consumes.
How:   Concrete implementations inherit from Repository and implement every
       method. One repository instance wraps one unit of work; commit() and
       rollback() end it.
Who:   ApplicationService receives a Repository per call.

Conditional writes:
    claim_project, reserve_application_slot, transition_application and
    reject_open_siblings are guarded writes. Their WHERE clause restates the
    precondition the caller checked on its snapshot, and the return value
    reports whether the precondition still held at write time. They are the
    only concurrency primitive the coordinator uses; no in-process locks.

Contract:
    - Reads return frozen snapshots (or None), never ORM rows
    - Writes never commit on their own
    - Implementation-specific errors propagate unchanged except where a method
      documents a translation (duplicate insert → DuplicateApplicationError)
"""

import uuid
from abc import ABC, abstractmethod
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

from bidboard.domain.types import (
    ApplicationContent,
    ApplicationFilters,
    ApplicationSnapshot,
    ApplicationStatus,
    ListScope,
    Pagination,
    ProjectSnapshot,
    SiblingRejection,
    TrackRecord,
)


class Repository(ABC):

    # ── Reads ─────────────────────────────────────────────────────────────
    @abstractmethod
    async def get_application(self, application_id: uuid.UUID) -> Optional[ApplicationSnapshot]:
        ...

    @abstractmethod
    async def find_application(
        self, professional_id: uuid.UUID, project_id: uuid.UUID
    ) -> Optional[ApplicationSnapshot]:
        ...

    @abstractmethod
    async def get_project(self, project_id: uuid.UUID) -> Optional[ProjectSnapshot]:
        ...

    @abstractmethod
    async def get_track_record(self, professional_id: uuid.UUID) -> Optional[TrackRecord]:
        ...

    @abstractmethod
    async def list_applications(
        self,
        scope: ListScope,
        filters: ApplicationFilters,
        pagination: Pagination,
    ) -> Tuple[List[ApplicationSnapshot], int]:
        """
        One page of applications inside `scope` matching `filters`, ordered by
        priority_score DESC, created_at DESC, plus the total match count.
        """
        ...

    @abstractmethod
    async def count_by_status(self, scope: ListScope) -> Dict[ApplicationStatus, int]:
        """Application counts per status inside `scope` (filters not applied)."""
        ...

    # ── Writes ────────────────────────────────────────────────────────────
    @abstractmethod
    async def add_application(
        self,
        professional_id: uuid.UUID,
        project_id: uuid.UUID,
        content: ApplicationContent,
        priority_score: Decimal,
        now: datetime,
    ) -> ApplicationSnapshot:
        """
        Insert a pending application.

        Raises:
            DuplicateApplicationError: the (professional, project) pair exists
        """
        ...

    @abstractmethod
    async def reserve_application_slot(self, project_id: uuid.UUID, now: datetime) -> bool:
        """
        Increment the project's application_count if it is still open and
        unassigned. False means the project closed in the meantime.
        """
        ...

    @abstractmethod
    async def claim_project(
        self,
        project_id: uuid.UUID,
        professional_id: uuid.UUID,
        final_amount: Optional[Decimal],
        now: datetime,
    ) -> bool:
        """
        Assign the project if no professional is assigned yet and it is still
        in a claimable status. False means another accept won.
        """
        ...

    @abstractmethod
    async def transition_application(
        self,
        application_id: uuid.UUID,
        sources: FrozenSet[ApplicationStatus],
        target: ApplicationStatus,
        changes: Dict[str, Any],
        now: datetime,
    ) -> bool:
        """
        Set status = target (plus `changes`, keyed by model attribute name)
        if the current status is one of `sources`. False means the status
        moved since it was read.
        """
        ...

    @abstractmethod
    async def update_application_fields(
        self,
        application_id: uuid.UUID,
        expected_status: ApplicationStatus,
        changes: Dict[str, Any],
        now: datetime,
    ) -> bool:
        """
        Update non-status fields if the status is still `expected_status`.
        """
        ...

    @abstractmethod
    async def reject_open_siblings(
        self,
        project_id: uuid.UUID,
        winner_id: uuid.UUID,
        reviewer_id: uuid.UUID,
        reason: str,
        now: datetime,
    ) -> List[SiblingRejection]:
        """Reject every other pending/under_review application of the project."""
        ...

    @abstractmethod
    async def update_priority_score(self, application_id: uuid.UUID, score: Decimal) -> bool:
        """Write priority_score alone; status and updated_at are left as they are."""
        ...

    # ── Unit of work ──────────────────────────────────────────────────────
    @abstractmethod
    async def commit(self) -> None:
        ...

    @abstractmethod
    async def rollback(self) -> None:
        ...
