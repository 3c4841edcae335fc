"""
BidBoard Backend - SQLAlchemy Repository
=========================================

What:  Repository implementation over an AsyncSession.
How:   Reads use select() with populate_existing so a row touched by an
       earlier bulk UPDATE in the same session is re-read, not served stale
       from the identity map. Guarded writes are single UPDATE statements
       whose WHERE clause carries the precondition; `rowcount` says whether
       it held.
Who:   Built per request by the route dependency (or by tests) around one
       session; handed to ApplicationService.

Query plans:
    claim_project            UPDATE projects ... WHERE id = :id
                             AND assigned_professional_id IS NULL
                             AND status IN ('open', 'in_review')
    reject_open_siblings     SELECT id, professional_id ... then
                             UPDATE applications ... WHERE project_id = :p
                             AND id <> :winner AND status IN ('pending', 'under_review')
                             (runs after the claim, which holds the project row lock)
"""

import logging
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

from sqlalchemy import desc, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from bidboard.domain.types import (
    CLAIMABLE_PROJECT_STATUSES,
    OPEN_STATUSES,
    ApplicationContent,
    ApplicationFilters,
    ApplicationSnapshot,
    ApplicationStatus,
    ListScope,
    Pagination,
    ProjectSnapshot,
    ProjectStatus,
    SiblingRejection,
    TrackRecord,
)
from bidboard.exceptions import DuplicateApplicationError
from bidboard.models.application import Application
from bidboard.models.professional import ProfessionalProfile
from bidboard.models.project import Project
from bidboard.repositories.base import Repository

logger = logging.getLogger(__name__)


def _values(statuses) -> List[str]:
    return sorted(ApplicationStatus(s).value for s in statuses)


def _columns(changes: Dict[str, Any]) -> Dict[Any, Any]:
    # Keyed by mapped attribute so renamed columns (metadata_) resolve
    return {getattr(Application, key): value for key, value in changes.items()}


def application_to_snapshot(row: Application) -> ApplicationSnapshot:
    return ApplicationSnapshot(
        id=row.id,
        professional_id=row.professional_id,
        project_id=row.project_id,
        cover_letter=row.cover_letter,
        proposed_rate=row.proposed_rate,
        proposed_timeline=row.proposed_timeline,
        availability_start=row.availability_start,
        relevant_experience=row.relevant_experience,
        status=ApplicationStatus(row.status),
        priority_score=row.priority_score,
        reviewed_at=row.reviewed_at,
        reviewed_by=row.reviewed_by,
        rejection_reason=row.rejection_reason,
        client_feedback=row.client_feedback,
        metadata=dict(row.metadata_ or {}),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def project_to_snapshot(row: Project) -> ProjectSnapshot:
    return ProjectSnapshot(
        id=row.id,
        client_id=row.client_id,
        title=row.title,
        status=ProjectStatus(row.status),
        budget_max=row.budget_max,
        assigned_professional_id=row.assigned_professional_id,
        final_amount=row.final_amount,
        application_deadline=row.application_deadline,
        application_count=row.application_count,
    )


class SqlAlchemyRepository(Repository):

    def __init__(self, session: AsyncSession):
        self.session = session

    # ── Reads ─────────────────────────────────────────────────────────────
    async def get_application(self, application_id: uuid.UUID) -> Optional[ApplicationSnapshot]:
        result = await self.session.execute(
            select(Application)
            .where(Application.id == application_id)
            .execution_options(populate_existing=True)
        )
        row = result.scalar_one_or_none()
        return application_to_snapshot(row) if row is not None else None

    async def find_application(
        self, professional_id: uuid.UUID, project_id: uuid.UUID
    ) -> Optional[ApplicationSnapshot]:
        result = await self.session.execute(
            select(Application)
            .where(
                Application.professional_id == professional_id,
                Application.project_id == project_id,
            )
            .execution_options(populate_existing=True)
        )
        row = result.scalar_one_or_none()
        return application_to_snapshot(row) if row is not None else None

    async def get_project(self, project_id: uuid.UUID) -> Optional[ProjectSnapshot]:
        result = await self.session.execute(
            select(Project)
            .where(Project.id == project_id)
            .execution_options(populate_existing=True)
        )
        row = result.scalar_one_or_none()
        return project_to_snapshot(row) if row is not None else None

    async def get_track_record(self, professional_id: uuid.UUID) -> Optional[TrackRecord]:
        result = await self.session.execute(
            select(ProfessionalProfile).where(
                ProfessionalProfile.professional_id == professional_id
            )
        )
        row = result.scalar_one_or_none()
        if row is None:
            return None
        return TrackRecord(
            professional_id=row.professional_id,
            experience_years=row.experience_years or 0,
            average_rating=row.average_rating,
            completion_rate=row.completion_rate,
        )

    def _scoped(self, query, scope: ListScope):
        if scope.professional_id is not None:
            query = query.where(Application.professional_id == scope.professional_id)
        if scope.client_id is not None:
            query = query.join(Project, Project.id == Application.project_id).where(
                Project.client_id == scope.client_id
            )
        return query

    def _filtered(self, query, filters: ApplicationFilters, scope: ListScope):
        if filters.status is not None:
            query = query.where(Application.status == filters.status.value)
        if filters.project_id is not None:
            query = query.where(Application.project_id == filters.project_id)
        # A professional's scope already pins professional_id
        if filters.professional_id is not None and scope.professional_id is None:
            query = query.where(Application.professional_id == filters.professional_id)
        if filters.date_from is not None:
            query = query.where(Application.created_at >= filters.date_from)
        if filters.date_to is not None:
            query = query.where(Application.created_at <= filters.date_to)
        if filters.rate_min is not None:
            query = query.where(Application.proposed_rate >= filters.rate_min)
        if filters.rate_max is not None:
            query = query.where(Application.proposed_rate <= filters.rate_max)
        return query

    async def list_applications(
        self,
        scope: ListScope,
        filters: ApplicationFilters,
        pagination: Pagination,
    ) -> Tuple[List[ApplicationSnapshot], int]:
        query = self._filtered(self._scoped(select(Application), scope), filters, scope)
        query = (
            query.order_by(desc(Application.priority_score), desc(Application.created_at))
            .limit(pagination.limit)
            .offset(pagination.offset)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(query)
        rows = list(result.scalars().all())

        count_query = self._filtered(
            self._scoped(select(func.count(Application.id)), scope), filters, scope
        )
        count_result = await self.session.execute(count_query)
        total = count_result.scalar() or 0

        return [application_to_snapshot(row) for row in rows], total

    async def count_by_status(self, scope: ListScope) -> Dict[ApplicationStatus, int]:
        query = self._scoped(
            select(Application.status, func.count(Application.id)), scope
        ).group_by(Application.status)
        result = await self.session.execute(query)
        return {ApplicationStatus(status): count for status, count in result.all()}

    # ── Writes ────────────────────────────────────────────────────────────
    async def add_application(
        self,
        professional_id: uuid.UUID,
        project_id: uuid.UUID,
        content: ApplicationContent,
        priority_score: Decimal,
        now: datetime,
    ) -> ApplicationSnapshot:
        row = Application(
            id=uuid.uuid4(),
            professional_id=professional_id,
            project_id=project_id,
            cover_letter=content.cover_letter,
            proposed_rate=content.proposed_rate,
            proposed_timeline=content.proposed_timeline,
            availability_start=content.availability_start,
            relevant_experience=content.relevant_experience,
            status=ApplicationStatus.PENDING.value,
            priority_score=priority_score,
            metadata_={},
            created_at=now,
            updated_at=now,
        )
        self.session.add(row)
        try:
            await self.session.flush()
        except IntegrityError as e:
            logger.info(
                "Duplicate application rejected by constraint: professional=%s project=%s",
                professional_id,
                project_id,
            )
            raise DuplicateApplicationError(
                context={
                    "professional_id": str(professional_id),
                    "project_id": str(project_id),
                    "constraint_error": type(e.orig).__name__ if e.orig is not None else None,
                },
            ) from e
        return application_to_snapshot(row)

    async def reserve_application_slot(self, project_id: uuid.UUID, now: datetime) -> bool:
        result = await self.session.execute(
            update(Project)
            .where(
                Project.id == project_id,
                Project.status == ProjectStatus.OPEN.value,
                Project.assigned_professional_id.is_(None),
            )
            .values(application_count=Project.application_count + 1, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def claim_project(
        self,
        project_id: uuid.UUID,
        professional_id: uuid.UUID,
        final_amount: Optional[Decimal],
        now: datetime,
    ) -> bool:
        result = await self.session.execute(
            update(Project)
            .where(
                Project.id == project_id,
                Project.assigned_professional_id.is_(None),
                Project.status.in_(sorted(s.value for s in CLAIMABLE_PROJECT_STATUSES)),
            )
            .values(
                assigned_professional_id=professional_id,
                status=ProjectStatus.IN_PROGRESS.value,
                final_amount=final_amount,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def transition_application(
        self,
        application_id: uuid.UUID,
        sources: FrozenSet[ApplicationStatus],
        target: ApplicationStatus,
        changes: Dict[str, Any],
        now: datetime,
    ) -> bool:
        result = await self.session.execute(
            update(Application)
            .where(
                Application.id == application_id,
                Application.status.in_(_values(sources)),
            )
            .values({Application.status: target.value, Application.updated_at: now, **_columns(changes)})
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def update_application_fields(
        self,
        application_id: uuid.UUID,
        expected_status: ApplicationStatus,
        changes: Dict[str, Any],
        now: datetime,
    ) -> bool:
        result = await self.session.execute(
            update(Application)
            .where(
                Application.id == application_id,
                Application.status == expected_status.value,
            )
            .values({Application.updated_at: now, **_columns(changes)})
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def reject_open_siblings(
        self,
        project_id: uuid.UUID,
        winner_id: uuid.UUID,
        reviewer_id: uuid.UUID,
        reason: str,
        now: datetime,
    ) -> List[SiblingRejection]:
        # RETURNING reports exactly the rows this UPDATE changed, so a sibling
        # withdrawn concurrently is neither rejected nor reported
        result = await self.session.execute(
            update(Application)
            .where(
                Application.project_id == project_id,
                Application.id != winner_id,
                Application.status.in_(_values(OPEN_STATUSES)),
            )
            .values(
                status=ApplicationStatus.REJECTED.value,
                reviewed_at=now,
                reviewed_by=reviewer_id,
                rejection_reason=reason,
                updated_at=now,
            )
            .returning(Application.id, Application.professional_id)
            .execution_options(synchronize_session=False)
        )
        return [
            SiblingRejection(application_id=app_id, professional_id=pro_id)
            for app_id, pro_id in result.all()
        ]

    async def update_priority_score(self, application_id: uuid.UUID, score: Decimal) -> bool:
        # updated_at pinned to itself so the column onupdate does not fire
        result = await self.session.execute(
            update(Application)
            .where(Application.id == application_id)
            .values(priority_score=score, updated_at=Application.updated_at)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    # ── Unit of work ──────────────────────────────────────────────────────
    async def commit(self) -> None:
        await self.session.commit()

    async def rollback(self) -> None:
        await self.session.rollback()
