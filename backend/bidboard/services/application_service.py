"""
BidBoard Backend - Application Service (Lifecycle Coordinator)
===============================================================

What:  Every operation on a bid: submit, list, read, evaluate, approve,
       reject, withdraw, recompute score, expire.
How:   Each operation is one unit of work over the Repository it is handed:
       load snapshots → access guard → state machine → guarded writes →
       commit → dispatch notifications. No ORM rows, no in-process locks.
Who:   Called by route handlers (and tests) with a Repository per request.

Accept flow (approve):
    ┌──────────┐   ┌─────────────┐   ┌──────────────┐   ┌──────────────┐   ┌────────┐
    │  Load +  │──▶│ Claim       │──▶│ Accept       │──▶│ Reject open  │──▶│ Commit │
    │  guard   │   │ project     │   │ application  │   │ siblings     │   │ notify │
    └──────────┘   │ (0 rows →   │   │ (0 rows →    │   └──────────────┘   └────────┘
                   │  conflict)  │   │  conflict)   │
                   └─────────────┘   └──────────────┘

    Two approves racing on one project both pass the snapshot checks; only
    one claim UPDATE matches `assigned_professional_id IS NULL`. The loser
    rolls back and gets ConflictAssignmentError.

Error Handling Strategy:
    BidBoardError subclasses roll back and propagate unchanged. Anything
    else raised inside a unit of work rolls back, is logged with exc_info
    and is re-raised as PersistenceError (internal details stay in the log).
    A unit of work that exceeds settings.operation_timeout_seconds is
    cancelled, rolled back and reported as OperationTimeoutError.
"""

import asyncio
import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, TypeVar

from bidboard.config import settings
from bidboard.domain.access import Intent, authorize, list_scope
from bidboard.domain.scoring import as_utc, clamp_score, compute_priority_score
from bidboard.domain.state_machine import is_terminal, sources_for, validate_transition
from bidboard.domain.types import (
    Actor,
    ApplicationContent,
    ApplicationFilters,
    ApplicationPage,
    ApplicationSnapshot,
    ApplicationStatus,
    FinalTerms,
    NotificationEvent,
    PageInfo,
    Pagination,
    ProjectSnapshot,
    ProjectStatus,
    StatusSummary,
)
from bidboard.exceptions import (
    BidBoardError,
    ConflictAssignmentError,
    DuplicateApplicationError,
    ForbiddenError,
    InvalidStateTransitionError,
    NotFoundError,
    OperationTimeoutError,
    PersistenceError,
    ProjectNotOpenError,
    ValidationError,
)
from bidboard.repositories.base import Repository
from bidboard.services.notifier import NotificationDispatcher, notification_dispatcher

logger = logging.getLogger(__name__)

T = TypeVar("T")

# (recipient, event, payload) queued during a unit of work, sent after commit
Notification = Tuple[uuid.UUID, NotificationEvent, Dict[str, Any]]

MIN_REJECTION_REASON = 10
MIN_WITHDRAWAL_REASON = 5


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _payload(application: ApplicationSnapshot, **extra: Any) -> Dict[str, Any]:
    payload = {
        "application_id": str(application.id),
        "project_id": str(application.project_id),
    }
    payload.update(extra)
    return payload


class ApplicationService:
    """
    Lifecycle coordinator for applications.

    Stateless apart from its collaborators: the dispatcher, a clock and the
    timeout. Every public method receives the Repository explicitly, so each
    call is its own unit of work.
    """

    def __init__(
        self,
        dispatcher: NotificationDispatcher,
        clock: Callable[[], datetime] = _utcnow,
        timeout: Optional[float] = None,
    ):
        self.dispatcher = dispatcher
        self._clock = clock
        self.timeout = timeout if timeout is not None else settings.operation_timeout_seconds

    # ══════════════════════════════════════════════════════════════════════
    # Unit of work plumbing
    # ══════════════════════════════════════════════════════════════════════

    async def _run(
        self,
        repo: Repository,
        operation: str,
        work: Callable[[], Awaitable[T]],
    ) -> T:
        # work() must end at repo.commit(): results are read back before it,
        # so a timeout or failure seen here always means nothing was saved
        try:
            return await asyncio.wait_for(work(), timeout=self.timeout)
        except asyncio.TimeoutError:
            await repo.rollback()
            logger.error("%s exceeded %.1fs and was rolled back", operation, self.timeout)
            raise OperationTimeoutError(operation=operation, timeout=self.timeout)
        except BidBoardError:
            await repo.rollback()
            raise
        except Exception as e:
            await repo.rollback()
            logger.error("%s failed: %s", operation, e, exc_info=True)
            raise PersistenceError(
                context={"operation": operation, "error_type": type(e).__name__}
            ) from e

    def _notify(self, notifications: List[Notification]) -> None:
        for user_id, event, payload in notifications:
            self.dispatcher.dispatch(user_id, event.value, payload)

    async def _load(
        self, repo: Repository, application_id: uuid.UUID
    ) -> Tuple[ApplicationSnapshot, ProjectSnapshot]:
        application = await repo.get_application(application_id)
        if application is None:
            raise NotFoundError(resource="Application", resource_id=str(application_id))
        project = await repo.get_project(application.project_id)
        if project is None:
            raise NotFoundError(resource="Project", resource_id=str(application.project_id))
        return application, project

    async def _reload(self, repo: Repository, application_id: uuid.UUID) -> ApplicationSnapshot:
        application = await repo.get_application(application_id)
        if application is None:
            raise NotFoundError(resource="Application", resource_id=str(application_id))
        return application

    async def _stale_transition(
        self,
        repo: Repository,
        application: ApplicationSnapshot,
        target: ApplicationStatus,
        actor: Actor,
    ) -> InvalidStateTransitionError:
        # The guarded write matched nothing: report the status actually stored now
        current = await repo.get_application(application.id)
        observed = current.status if current is not None else application.status
        logger.info(
            "Application %s moved to %s before %s could be applied",
            application.id,
            observed.value,
            target.value,
        )
        return InvalidStateTransitionError(
            current=observed.value,
            target=target.value,
            role=actor.role.value,
            context={"application_id": str(application.id)},
        )

    async def _transition(
        self,
        repo: Repository,
        actor: Actor,
        application: ApplicationSnapshot,
        target: ApplicationStatus,
        changes: Dict[str, Any],
        now: datetime,
    ) -> None:
        validate_transition(application.status, target, actor.role)
        applied = await repo.transition_application(
            application.id, frozenset({application.status}), target, changes, now
        )
        if not applied:
            raise await self._stale_transition(repo, application, target, actor)

    # ══════════════════════════════════════════════════════════════════════
    # Submit
    # ══════════════════════════════════════════════════════════════════════

    async def submit(
        self,
        repo: Repository,
        professional_id: uuid.UUID,
        project_id: uuid.UUID,
        content: ApplicationContent,
    ) -> ApplicationSnapshot:
        """
        Create a pending application for (professional, project).

        Raises:
            NotFoundError: the project does not exist
            ForbiddenError: the professional owns the project
            ProjectNotOpenError: project not open, already assigned or past its deadline
            DuplicateApplicationError: the professional already applied
        """
        notifications: List[Notification] = []

        async def work() -> ApplicationSnapshot:
            now = self._clock()
            project = await repo.get_project(project_id)
            if project is None:
                raise NotFoundError(resource="Project", resource_id=str(project_id))
            if project.client_id == professional_id:
                raise ForbiddenError(
                    message="You cannot apply to your own project",
                    context={"project_id": str(project_id)},
                )
            if project.status != ProjectStatus.OPEN or project.assigned_professional_id is not None:
                raise ProjectNotOpenError(
                    context={"project_id": str(project_id), "project_status": project.status.value}
                )
            if project.application_deadline is not None and as_utc(now) > as_utc(
                project.application_deadline
            ):
                raise ProjectNotOpenError(
                    message="The application deadline for this project has passed",
                    context={"project_id": str(project_id)},
                )
            if await repo.find_application(professional_id, project_id) is not None:
                raise DuplicateApplicationError(
                    context={"professional_id": str(professional_id), "project_id": str(project_id)}
                )

            # Guarded on "still open and unassigned" so a submit cannot land after an accept cascade
            if not await repo.reserve_application_slot(project_id, now):
                raise ProjectNotOpenError(context={"project_id": str(project_id)})

            application = await repo.add_application(
                professional_id,
                project_id,
                content,
                Decimal(str(settings.baseline_priority_score)),
                now,
            )
            await repo.commit()

            logger.info(
                "Application %s submitted by %s for project %s",
                application.id,
                professional_id,
                project_id,
            )
            notifications.append((
                project.client_id,
                NotificationEvent.APPLICATION_RECEIVED,
                _payload(application, professional_id=str(professional_id)),
            ))
            return application

        application = await self._run(repo, "submit application", work)
        self._notify(notifications)
        return application

    # ══════════════════════════════════════════════════════════════════════
    # Reads
    # ══════════════════════════════════════════════════════════════════════

    async def list(
        self,
        repo: Repository,
        actor: Actor,
        filters: Optional[ApplicationFilters] = None,
        pagination: Optional[Pagination] = None,
    ) -> ApplicationPage:
        """
        One page of the applications the actor may see, plus a status summary.

        The row filter comes from the actor's role; request filters only
        narrow it further.
        """
        filters = filters or ApplicationFilters()
        pagination = pagination or Pagination(limit=settings.default_page_size)
        if pagination.limit > settings.max_page_size:
            pagination = Pagination(page=pagination.page, limit=settings.max_page_size)

        async def work() -> ApplicationPage:
            scope = list_scope(actor)
            items, total_count = await repo.list_applications(scope, filters, pagination)
            counts = await repo.count_by_status(scope)
            total_pages = (total_count + pagination.limit - 1) // pagination.limit
            page_info = PageInfo(
                current_page=pagination.page,
                per_page=pagination.limit,
                total_pages=total_pages,
                total_count=total_count,
                has_next=pagination.page < total_pages,
                has_prev=pagination.page > 1,
            )
            return ApplicationPage(
                items=items,
                page_info=page_info,
                status_summary=self._summarize(counts),
            )

        return await self._run(repo, "list applications", work)

    @staticmethod
    def _summarize(counts: Dict[ApplicationStatus, int]) -> StatusSummary:
        filled = {status: counts.get(status, 0) for status in ApplicationStatus}
        decided = filled[ApplicationStatus.ACCEPTED] + filled[ApplicationStatus.REJECTED]
        success_rate = filled[ApplicationStatus.ACCEPTED] / decided if decided else 0.0
        return StatusSummary(
            counts=filled,
            total=sum(filled.values()),
            success_rate=round(success_rate, 2),
        )

    async def get(
        self, repo: Repository, actor: Actor, application_id: uuid.UUID
    ) -> ApplicationSnapshot:
        async def work() -> ApplicationSnapshot:
            application, project = await self._load(repo, application_id)
            authorize(actor, Intent.READ, application, project.client_id)
            return application

        return await self._run(repo, "get application", work)

    # ══════════════════════════════════════════════════════════════════════
    # Client review
    # ══════════════════════════════════════════════════════════════════════

    async def evaluate(
        self,
        repo: Repository,
        actor: Actor,
        application_id: uuid.UUID,
        score: Optional[Decimal] = None,
        feedback: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> ApplicationSnapshot:
        """
        Record the owning client's review.

        pending moves to under_review; under_review is re-evaluated in place.
        Terminal applications raise InvalidStateTransitionError.
        """
        if score is not None:
            score = Decimal(str(score))
            if not Decimal("0") <= score <= Decimal("100"):
                raise ValidationError(message="Score must be between 0 and 100", field="score")
        notifications: List[Notification] = []

        async def work() -> ApplicationSnapshot:
            now = self._clock()
            application, project = await self._load(repo, application_id)
            authorize(actor, Intent.EVALUATE, application, project.client_id)

            changes: Dict[str, Any] = {
                "reviewed_at": now,
                "reviewed_by": actor.id,
                "metadata_": {**application.metadata, **(metadata or {})},
            }
            if score is not None:
                changes["priority_score"] = clamp_score(score)
            if feedback is not None:
                changes["client_feedback"] = feedback

            target = ApplicationStatus.UNDER_REVIEW
            if is_terminal(application.status):
                raise InvalidStateTransitionError(
                    current=application.status.value,
                    target=target.value,
                    role=actor.role.value,
                )
            if application.status == ApplicationStatus.PENDING:
                await self._transition(repo, actor, application, target, changes, now)
                notifications.append((
                    application.professional_id,
                    NotificationEvent.APPLICATION_UNDER_REVIEW,
                    _payload(application),
                ))
            else:
                applied = await repo.update_application_fields(
                    application.id, ApplicationStatus.UNDER_REVIEW, changes, now
                )
                if not applied:
                    raise await self._stale_transition(repo, application, target, actor)

            result = await self._reload(repo, application.id)
            await repo.commit()
            logger.info("Application %s evaluated by %s", application.id, actor.id)
            return result

        result = await self._run(repo, "evaluate application", work)
        self._notify(notifications)
        return result

    async def approve(
        self,
        repo: Repository,
        actor: Actor,
        application_id: uuid.UUID,
        final_terms: Optional[FinalTerms] = None,
    ) -> ApplicationSnapshot:
        """
        Accept one application and close the project to everyone else.

        The project claim, the accept and the sibling rejections commit
        together or not at all.

        Raises:
            ForbiddenError: actor does not own the project
            ConflictAssignmentError: the project was assigned by another accept
            InvalidStateTransitionError: the application is not open
        """
        final_terms = final_terms or FinalTerms()
        notifications: List[Notification] = []

        async def work() -> ApplicationSnapshot:
            now = self._clock()
            application, project = await self._load(repo, application_id)
            authorize(actor, Intent.APPROVE, application, project.client_id)
            if project.assigned_professional_id is not None:
                logger.info(
                    "Approve of %s refused: project %s already assigned",
                    application.id,
                    project.id,
                )
                raise ConflictAssignmentError(project_id=str(project.id))
            validate_transition(application.status, ApplicationStatus.ACCEPTED, actor.role)

            final_amount = final_terms.final_rate
            if final_amount is None:
                final_amount = application.proposed_rate

            if not await repo.claim_project(project.id, application.professional_id, final_amount, now):
                logger.info("Lost accept race on project %s (claim)", project.id)
                await repo.rollback()
                raise ConflictAssignmentError(project_id=str(project.id))

            metadata = dict(application.metadata)
            if final_terms.final_rate is not None and final_terms.final_rate != application.proposed_rate:
                metadata["final_negotiated_rate"] = str(final_terms.final_rate)
                if final_terms.rate_negotiation_notes:
                    metadata["rate_negotiation_notes"] = final_terms.rate_negotiation_notes
            changes: Dict[str, Any] = {
                "reviewed_at": now,
                "reviewed_by": actor.id,
                "metadata_": metadata,
            }
            if final_terms.client_feedback is not None:
                changes["client_feedback"] = final_terms.client_feedback

            accepted = await repo.transition_application(
                application.id,
                sources_for(ApplicationStatus.ACCEPTED),
                ApplicationStatus.ACCEPTED,
                changes,
                now,
            )
            if not accepted:
                logger.info("Lost accept race on project %s (application %s moved)", project.id, application.id)
                await repo.rollback()
                raise ConflictAssignmentError(project_id=str(project.id))

            rejected = await repo.reject_open_siblings(
                project.id, application.id, actor.id, settings.sibling_rejection_reason, now
            )
            result = await self._reload(repo, application.id)
            await repo.commit()

            logger.info(
                "Application %s accepted for project %s; %d sibling(s) rejected",
                application.id,
                project.id,
                len(rejected),
            )
            notifications.append((
                application.professional_id,
                NotificationEvent.APPLICATION_ACCEPTED,
                _payload(application, final_amount=str(final_amount) if final_amount is not None else None),
            ))
            if settings.notify_rejected_siblings:
                for sibling in rejected:
                    notifications.append((
                        sibling.professional_id,
                        NotificationEvent.APPLICATION_REJECTED,
                        {
                            "application_id": str(sibling.application_id),
                            "project_id": str(project.id),
                            "reason": settings.sibling_rejection_reason,
                        },
                    ))
            return result

        result = await self._run(repo, "approve application", work)
        self._notify(notifications)
        return result

    async def reject(
        self,
        repo: Repository,
        actor: Actor,
        application_id: uuid.UUID,
        reason: str,
        feedback: Optional[str] = None,
    ) -> ApplicationSnapshot:
        if reason is None or len(reason.strip()) < MIN_REJECTION_REASON:
            raise ValidationError(
                message=f"A rejection reason of at least {MIN_REJECTION_REASON} characters is required",
                field="reason",
            )
        notifications: List[Notification] = []

        async def work() -> ApplicationSnapshot:
            now = self._clock()
            application, project = await self._load(repo, application_id)
            authorize(actor, Intent.REJECT, application, project.client_id)
            changes: Dict[str, Any] = {
                "reviewed_at": now,
                "reviewed_by": actor.id,
                "rejection_reason": reason.strip(),
            }
            if feedback is not None:
                changes["client_feedback"] = feedback
            await self._transition(repo, actor, application, ApplicationStatus.REJECTED, changes, now)
            result = await self._reload(repo, application.id)
            await repo.commit()

            logger.info("Application %s rejected by %s", application.id, actor.id)
            notifications.append((
                application.professional_id,
                NotificationEvent.APPLICATION_REJECTED,
                _payload(application, reason=reason.strip()),
            ))
            return result

        result = await self._run(repo, "reject application", work)
        self._notify(notifications)
        return result

    # ══════════════════════════════════════════════════════════════════════
    # Professional, admin and system intents
    # ══════════════════════════════════════════════════════════════════════

    async def withdraw(
        self,
        repo: Repository,
        actor: Actor,
        application_id: uuid.UUID,
        reason: Optional[str] = None,
    ) -> ApplicationSnapshot:
        if reason is not None and len(reason.strip()) < MIN_WITHDRAWAL_REASON:
            raise ValidationError(
                message=f"A withdrawal reason must be at least {MIN_WITHDRAWAL_REASON} characters",
                field="reason",
            )
        notifications: List[Notification] = []

        async def work() -> ApplicationSnapshot:
            now = self._clock()
            application, project = await self._load(repo, application_id)
            authorize(actor, Intent.WITHDRAW, application, project.client_id)
            metadata = {**application.metadata, "withdrawn_at": now.isoformat()}
            if reason is not None:
                metadata["withdrawal_reason"] = reason.strip()
            await self._transition(
                repo, actor, application, ApplicationStatus.WITHDRAWN, {"metadata_": metadata}, now
            )
            result = await self._reload(repo, application.id)
            await repo.commit()

            logger.info("Application %s withdrawn by its author", application.id)
            notifications.append((
                project.client_id,
                NotificationEvent.APPLICATION_WITHDRAWN,
                _payload(application, professional_id=str(application.professional_id)),
            ))
            return result

        result = await self._run(repo, "withdraw application", work)
        self._notify(notifications)
        return result

    async def recompute_score(
        self, repo: Repository, actor: Actor, application_id: uuid.UUID
    ) -> Decimal:
        """Recalculate and store priority_score. Never touches status."""

        async def work() -> Decimal:
            now = self._clock()
            application, project = await self._load(repo, application_id)
            authorize(actor, Intent.RECOMPUTE_SCORE, application, project.client_id)
            track_record = await repo.get_track_record(application.professional_id)
            score = compute_priority_score(application, track_record, project.budget_max, now)
            if not await repo.update_priority_score(application.id, score):
                raise NotFoundError(resource="Application", resource_id=str(application.id))
            await repo.commit()
            logger.info("Priority score of %s recomputed: %s", application.id, score)
            return score

        return await self._run(repo, "recompute priority score", work)

    async def expire(
        self, repo: Repository, actor: Actor, application_id: uuid.UUID
    ) -> ApplicationSnapshot:
        notifications: List[Notification] = []

        async def work() -> ApplicationSnapshot:
            now = self._clock()
            application, project = await self._load(repo, application_id)
            authorize(actor, Intent.EXPIRE, application, project.client_id)
            await self._transition(repo, actor, application, ApplicationStatus.EXPIRED, {}, now)
            result = await self._reload(repo, application.id)
            await repo.commit()

            logger.info("Application %s expired", application.id)
            notifications.append((
                application.professional_id,
                NotificationEvent.APPLICATION_EXPIRED,
                _payload(application),
            ))
            return result

        result = await self._run(repo, "expire application", work)
        self._notify(notifications)
        return result


# ── Singleton Instance ────────────────────────────────────────────────────
application_service = ApplicationService(notification_dispatcher)
