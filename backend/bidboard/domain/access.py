"""
BidBoard Backend - Access Guard
================================

What:  Capability checks deciding who may read or mutate an application.
How:   Pure functions over (actor, intent, application, project owner id).

Capabilities:
    professional   read, withdraw              own applications only
    client         read, evaluate, approve,    applications on own projects
                   reject, recompute_score
    admin          read, recompute_score       every application
    system         expire                      every application

List queries get the same rule as a row filter (see list_scope). The filter
is derived from the actor alone, so request filters cannot widen it.
"""

import uuid
from enum import Enum
from typing import Dict, FrozenSet

from bidboard.domain.types import Actor, ActorRole, ApplicationSnapshot, ListScope
from bidboard.exceptions import ForbiddenError


class Intent(str, Enum):
    READ = "read"
    EVALUATE = "evaluate"
    APPROVE = "approve"
    REJECT = "reject"
    WITHDRAW = "withdraw"
    RECOMPUTE_SCORE = "recompute_score"
    EXPIRE = "expire"


_AUTHOR_INTENTS = frozenset({Intent.READ, Intent.WITHDRAW})
_OWNER_INTENTS = frozenset({
    Intent.READ,
    Intent.EVALUATE,
    Intent.APPROVE,
    Intent.REJECT,
    Intent.RECOMPUTE_SCORE,
})
_GLOBAL_INTENTS: Dict[ActorRole, FrozenSet[Intent]] = {
    ActorRole.ADMIN: frozenset({Intent.READ, Intent.RECOMPUTE_SCORE}),
    ActorRole.SYSTEM: frozenset({Intent.EXPIRE}),
}


def can_access(
    actor: Actor,
    intent: Intent,
    application: ApplicationSnapshot,
    project_client_id: uuid.UUID,
) -> bool:
    if actor.role == ActorRole.PROFESSIONAL:
        return intent in _AUTHOR_INTENTS and application.professional_id == actor.id
    if actor.role == ActorRole.CLIENT:
        return intent in _OWNER_INTENTS and project_client_id == actor.id
    return intent in _GLOBAL_INTENTS.get(actor.role, frozenset())


def authorize(
    actor: Actor,
    intent: Intent,
    application: ApplicationSnapshot,
    project_client_id: uuid.UUID,
) -> None:
    """Raise ForbiddenError unless the actor holds the capability."""
    if not can_access(actor, intent, application, project_client_id):
        raise ForbiddenError(
            message=f"You are not allowed to {intent.value.replace('_', ' ')} this application",
            context={
                "actor_id": str(actor.id),
                "actor_role": actor.role.value,
                "application_id": str(application.id),
                "intent": intent.value,
            },
        )


def list_scope(actor: Actor) -> ListScope:
    """Row filter applied to every list query made by this actor."""
    if actor.role == ActorRole.PROFESSIONAL:
        return ListScope(professional_id=actor.id)
    if actor.role == ActorRole.CLIENT:
        return ListScope(client_id=actor.id)
    if actor.role == ActorRole.ADMIN:
        return ListScope()
    raise ForbiddenError(
        message="You are not allowed to list applications",
        context={"actor_id": str(actor.id), "actor_role": actor.role.value},
    )
