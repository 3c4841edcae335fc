"""
BidBoard Backend - Application State Machine
=============================================

What:  The legal status edges of an application and who may drive each one.
How:   A static edge table keyed by (from, to) with the set of roles allowed
       to request it. Pure functions over (current, target, role); project
       ownership and authorship are the access guard's job.

    pending ──────────────► under_review
       │                        │
       ├──► accepted ◄──────────┤       client (project owner)
       ├──► rejected ◄──────────┤       client (project owner)
       ├──► withdrawn ◄─────────┤       professional (author)
       └──► expired ◄───────────┘       system (deadline policy)

accepted, rejected, withdrawn and expired are terminal.
"""

from typing import Dict, FrozenSet, Tuple

from bidboard.domain.types import (
    TERMINAL_STATUSES,
    ActorRole,
    ApplicationStatus,
)
from bidboard.exceptions import InvalidStateTransitionError

S = ApplicationStatus

TRANSITIONS: Dict[Tuple[ApplicationStatus, ApplicationStatus], FrozenSet[ActorRole]] = {
    (S.PENDING, S.UNDER_REVIEW): frozenset({ActorRole.CLIENT}),
}
for _source in (S.PENDING, S.UNDER_REVIEW):
    TRANSITIONS[(_source, S.ACCEPTED)] = frozenset({ActorRole.CLIENT})
    TRANSITIONS[(_source, S.REJECTED)] = frozenset({ActorRole.CLIENT})
    TRANSITIONS[(_source, S.WITHDRAWN)] = frozenset({ActorRole.PROFESSIONAL})
    TRANSITIONS[(_source, S.EXPIRED)] = frozenset({ActorRole.SYSTEM})


def is_legal(current: ApplicationStatus, target: ApplicationStatus, role: ActorRole) -> bool:
    return role in TRANSITIONS.get((current, target), frozenset())


def validate_transition(
    current: ApplicationStatus,
    target: ApplicationStatus,
    role: ActorRole,
) -> None:
    """
    Raise InvalidStateTransitionError unless (current → target) is an edge
    the given role may request.
    """
    if not is_legal(current, target, role):
        raise InvalidStateTransitionError(
            current=ApplicationStatus(current).value,
            target=ApplicationStatus(target).value,
            role=ActorRole(role).value,
        )


def sources_for(target: ApplicationStatus) -> FrozenSet[ApplicationStatus]:
    """Every status from which `target` is reachable in one edge."""
    return frozenset(src for (src, dst) in TRANSITIONS if dst == target)


def is_terminal(status: ApplicationStatus) -> bool:
    return status in TERMINAL_STATUSES

