"""
BidBoard Backend - Route Dependencies
======================================

What:  FastAPI dependencies shared by the application routes.
How:   get_actor reads the identity the gateway forwarded; get_repository
       wraps the request's session; get_application_service returns the
       process-wide coordinator. Tests swap any of them through
       app.dependency_overrides.
"""

import uuid
from typing import Optional

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from bidboard.database import get_db_session
from bidboard.domain.types import Actor, ActorRole
from bidboard.exceptions import AuthenticationError
from bidboard.repositories.base import Repository
from bidboard.repositories.sqlalchemy_repository import SqlAlchemyRepository
from bidboard.services.application_service import ApplicationService, application_service


async def get_actor(
    x_actor_id: Optional[str] = Header(default=None),
    x_actor_role: Optional[str] = Header(default=None),
) -> Actor:
    """
    Resolve the caller from X-Actor-Id / X-Actor-Role.

    Authentication happens upstream; this only refuses requests the gateway
    did not stamp (missing header, non-UUID id, unknown role).
    """
    if not x_actor_id or not x_actor_role:
        raise AuthenticationError()
    try:
        actor_id = uuid.UUID(x_actor_id)
        role = ActorRole(x_actor_role.strip().lower())
    except ValueError:
        raise AuthenticationError(context={"actor_role": x_actor_role})
    return Actor(id=actor_id, role=role)


async def get_repository(session: AsyncSession = Depends(get_db_session)) -> Repository:
    return SqlAlchemyRepository(session)


def get_application_service() -> ApplicationService:
    return application_service
