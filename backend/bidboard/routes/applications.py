"""
BidBoard Backend - Application Route Handlers
==============================================

What:  HTTP surface of the application lifecycle.
How:   Each handler resolves the Actor and a Repository through dependencies,
       converts the body to domain input and calls ApplicationService.
       Errors are raised as BidBoardError subclasses and rendered by the
       global handlers in main.py.
Who:   Called by the marketplace frontend and back-office tools through the
       identity gateway (which sets X-Actor-Id / X-Actor-Role).

Caching:
    Application data changes with every review step, so responses are
    marked `Cache-Control: no-store`.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Body, Depends, Query, Response

from bidboard.config import settings
from bidboard.domain.types import (
    Actor,
    ActorRole,
    ApplicationFilters,
    ApplicationStatus,
    Pagination,
)
from bidboard.exceptions import ForbiddenError
from bidboard.repositories.base import Repository
from bidboard.routes.deps import get_actor, get_application_service, get_repository
from bidboard.schemas.application import (
    ApplicationListResponse,
    ApplicationResponse,
    ApplicationSubmitRequest,
    ApproveRequest,
    ErrorResponse,
    EvaluateRequest,
    PriorityScoreResponse,
    RejectRequest,
    WithdrawRequest,
)
from bidboard.services.application_service import ApplicationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Applications"])

_ERRORS = {
    401: {"description": "Missing actor identity", "model": ErrorResponse},
    403: {"description": "Not allowed", "model": ErrorResponse},
    404: {"description": "Application or project not found", "model": ErrorResponse},
}
_CONFLICT = {409: {"description": "State conflict", "model": ErrorResponse}}


def _no_store(response: Response) -> None:
    response.headers["Cache-Control"] = "no-store"


@router.post(
    "/projects/{project_id}/applications",
    response_model=ApplicationResponse,
    status_code=201,
    responses={**_ERRORS, **_CONFLICT},
    summary="Submit an application to a project",
)
async def submit_application(
    project_id: UUID,
    body: ApplicationSubmitRequest,
    response: Response,
    actor: Actor = Depends(get_actor),
    repo: Repository = Depends(get_repository),
    service: ApplicationService = Depends(get_application_service),
) -> ApplicationResponse:
    if actor.role != ActorRole.PROFESSIONAL:
        raise ForbiddenError(
            message="Only professionals can submit applications",
            context={"actor_role": actor.role.value},
        )
    application = await service.submit(repo, actor.id, project_id, body.to_content())
    _no_store(response)
    return ApplicationResponse.model_validate(application)


@router.get(
    "/applications",
    response_model=ApplicationListResponse,
    responses=_ERRORS,
    summary="List applications visible to the caller",
    description=(
        "Professionals see their own applications, clients see applications on "
        "their projects, admins see everything. Ordered by priority score, then "
        "newest first."
    ),
)
async def list_applications(
    response: Response,
    status: Optional[ApplicationStatus] = Query(default=None),
    project_id: Optional[UUID] = Query(default=None),
    professional_id: Optional[UUID] = Query(
        default=None, description="Ignored for professionals (always their own id)"
    ),
    date_from: Optional[datetime] = Query(default=None, description="created_at lower bound"),
    date_to: Optional[datetime] = Query(default=None, description="created_at upper bound"),
    rate_min: Optional[Decimal] = Query(default=None, ge=0),
    rate_max: Optional[Decimal] = Query(default=None, ge=0),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=settings.default_page_size, ge=1, le=settings.max_page_size),
    actor: Actor = Depends(get_actor),
    repo: Repository = Depends(get_repository),
    service: ApplicationService = Depends(get_application_service),
) -> ApplicationListResponse:
    filters = ApplicationFilters(
        status=status,
        project_id=project_id,
        professional_id=professional_id,
        date_from=date_from,
        date_to=date_to,
        rate_min=rate_min,
        rate_max=rate_max,
    )
    result = await service.list(repo, actor, filters, Pagination(page=page, limit=limit))
    response.headers["X-Total-Count"] = str(result.page_info.total_count)
    _no_store(response)
    return ApplicationListResponse.from_page(result)


@router.get(
    "/applications/{application_id}",
    response_model=ApplicationResponse,
    responses=_ERRORS,
    summary="Get one application",
)
async def get_application(
    application_id: UUID,
    response: Response,
    actor: Actor = Depends(get_actor),
    repo: Repository = Depends(get_repository),
    service: ApplicationService = Depends(get_application_service),
) -> ApplicationResponse:
    application = await service.get(repo, actor, application_id)
    _no_store(response)
    return ApplicationResponse.model_validate(application)


@router.put(
    "/applications/{application_id}/evaluate",
    response_model=ApplicationResponse,
    responses={**_ERRORS, **_CONFLICT},
    summary="Review an application (pending → under_review)",
)
async def evaluate_application(
    application_id: UUID,
    body: EvaluateRequest,
    actor: Actor = Depends(get_actor),
    repo: Repository = Depends(get_repository),
    service: ApplicationService = Depends(get_application_service),
) -> ApplicationResponse:
    application = await service.evaluate(
        repo,
        actor,
        application_id,
        score=body.priority_score,
        feedback=body.client_feedback,
        metadata=body.evaluation_metadata,
    )
    return ApplicationResponse.model_validate(application)


@router.put(
    "/applications/{application_id}/approve",
    response_model=ApplicationResponse,
    responses={**_ERRORS, **_CONFLICT},
    summary="Accept an application and close the project to other bids",
    description=(
        "Assigns the project to the applicant and rejects every other open "
        "application on it. 409 conflict_assignment means another application "
        "was accepted first; re-fetch before retrying."
    ),
)
async def approve_application(
    application_id: UUID,
    body: Optional[ApproveRequest] = Body(default=None),
    actor: Actor = Depends(get_actor),
    repo: Repository = Depends(get_repository),
    service: ApplicationService = Depends(get_application_service),
) -> ApplicationResponse:
    final_terms = body.to_final_terms() if body is not None else None
    application = await service.approve(repo, actor, application_id, final_terms)
    return ApplicationResponse.model_validate(application)


@router.put(
    "/applications/{application_id}/reject",
    response_model=ApplicationResponse,
    responses={**_ERRORS, **_CONFLICT},
    summary="Reject an application",
)
async def reject_application(
    application_id: UUID,
    body: RejectRequest,
    actor: Actor = Depends(get_actor),
    repo: Repository = Depends(get_repository),
    service: ApplicationService = Depends(get_application_service),
) -> ApplicationResponse:
    application = await service.reject(
        repo, actor, application_id, body.rejection_reason, body.client_feedback
    )
    return ApplicationResponse.model_validate(application)


@router.put(
    "/applications/{application_id}/withdraw",
    response_model=ApplicationResponse,
    responses={**_ERRORS, **_CONFLICT},
    summary="Withdraw your own application",
)
async def withdraw_application(
    application_id: UUID,
    body: Optional[WithdrawRequest] = Body(default=None),
    actor: Actor = Depends(get_actor),
    repo: Repository = Depends(get_repository),
    service: ApplicationService = Depends(get_application_service),
) -> ApplicationResponse:
    reason = body.reason if body is not None else None
    application = await service.withdraw(repo, actor, application_id, reason)
    return ApplicationResponse.model_validate(application)


@router.put(
    "/applications/{application_id}/expire",
    response_model=ApplicationResponse,
    responses={**_ERRORS, **_CONFLICT},
    summary="Expire an open application (system actor only)",
)
async def expire_application(
    application_id: UUID,
    actor: Actor = Depends(get_actor),
    repo: Repository = Depends(get_repository),
    service: ApplicationService = Depends(get_application_service),
) -> ApplicationResponse:
    application = await service.expire(repo, actor, application_id)
    return ApplicationResponse.model_validate(application)


@router.post(
    "/applications/{application_id}/calculate-priority",
    response_model=PriorityScoreResponse,
    responses=_ERRORS,
    summary="Recompute the application's priority score",
)
async def calculate_priority(
    application_id: UUID,
    actor: Actor = Depends(get_actor),
    repo: Repository = Depends(get_repository),
    service: ApplicationService = Depends(get_application_service),
) -> PriorityScoreResponse:
    score = await service.recompute_score(repo, actor, application_id)
    return PriorityScoreResponse(application_id=application_id, priority_score=score)
