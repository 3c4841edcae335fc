"""
BidBoard Backend - Access Guard Unit Tests
===========================================

What we test:
    ✅ Author professional may read and withdraw only their own application
    ✅ Owning client may read, evaluate, approve, reject, recompute
    ✅ Admin reads everything and may recompute; system may only expire
    ✅ List scope is derived from the actor alone
"""

import uuid
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from bidboard.domain.access import Intent, authorize, can_access, list_scope
from bidboard.domain.types import Actor, ActorRole, ApplicationSnapshot, ApplicationStatus, ListScope
from bidboard.exceptions import ForbiddenError

AUTHOR = uuid.uuid4()
OWNER = uuid.uuid4()

APPLICATION = ApplicationSnapshot(
    id=uuid.uuid4(),
    professional_id=AUTHOR,
    project_id=uuid.uuid4(),
    cover_letter="x" * 60,
    status=ApplicationStatus.PENDING,
    priority_score=Decimal("50"),
    created_at=datetime(2024, 1, 15, tzinfo=timezone.utc),
)


def actor(role, actor_id=None):
    return Actor(id=actor_id or uuid.uuid4(), role=role)


class TestCanAccess:

    @pytest.mark.parametrize("intent", [Intent.READ, Intent.WITHDRAW])
    def test_author_allowed(self, intent):
        assert can_access(actor(ActorRole.PROFESSIONAL, AUTHOR), intent, APPLICATION, OWNER)

    @pytest.mark.parametrize("intent", [Intent.EVALUATE, Intent.APPROVE, Intent.REJECT, Intent.RECOMPUTE_SCORE, Intent.EXPIRE])
    def test_author_denied_client_intents(self, intent):
        assert not can_access(actor(ActorRole.PROFESSIONAL, AUTHOR), intent, APPLICATION, OWNER)

    def test_other_professional_cannot_read(self):
        assert not can_access(actor(ActorRole.PROFESSIONAL), Intent.READ, APPLICATION, OWNER)

    @pytest.mark.parametrize(
        "intent",
        [Intent.READ, Intent.EVALUATE, Intent.APPROVE, Intent.REJECT, Intent.RECOMPUTE_SCORE],
    )
    def test_owner_allowed(self, intent):
        assert can_access(actor(ActorRole.CLIENT, OWNER), intent, APPLICATION, OWNER)

    def test_owner_cannot_withdraw(self):
        assert not can_access(actor(ActorRole.CLIENT, OWNER), Intent.WITHDRAW, APPLICATION, OWNER)

    def test_other_client_denied(self):
        assert not can_access(actor(ActorRole.CLIENT), Intent.READ, APPLICATION, OWNER)

    def test_admin_reads_and_recomputes_only(self):
        admin = actor(ActorRole.ADMIN)
        allowed = {intent for intent in Intent if can_access(admin, intent, APPLICATION, OWNER)}
        assert allowed == {Intent.READ, Intent.RECOMPUTE_SCORE}

    def test_system_only_expires(self):
        system = actor(ActorRole.SYSTEM)
        allowed = {intent for intent in Intent if can_access(system, intent, APPLICATION, OWNER)}
        assert allowed == {Intent.EXPIRE}


class TestAuthorize:

    def test_raises_forbidden_with_context(self):
        intruder = actor(ActorRole.PROFESSIONAL)
        with pytest.raises(ForbiddenError) as exc_info:
            authorize(intruder, Intent.WITHDRAW, APPLICATION, OWNER)
        assert exc_info.value.context["intent"] == "withdraw"
        assert exc_info.value.context["actor_id"] == str(intruder.id)


class TestListScope:

    def test_professional_sees_own(self):
        assert list_scope(actor(ActorRole.PROFESSIONAL, AUTHOR)) == ListScope(professional_id=AUTHOR)

    def test_client_sees_own_projects(self):
        assert list_scope(actor(ActorRole.CLIENT, OWNER)) == ListScope(client_id=OWNER)

    def test_admin_unrestricted(self):
        assert list_scope(actor(ActorRole.ADMIN)) == ListScope()

    def test_system_cannot_list(self):
        with pytest.raises(ForbiddenError):
            list_scope(actor(ActorRole.SYSTEM))
