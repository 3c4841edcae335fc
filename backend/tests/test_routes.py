"""
BidBoard Backend - HTTP Route Tests
====================================

What we test:
    ✅ Health endpoint
    ✅ Actor headers required (401), role checks (403)
    ✅ Submit / list / get / approve / reject / withdraw / calculate-priority
    ✅ Domain errors mapped to status codes and error codes
    ✅ Request-body validation rejected before the service runs (422)
"""

import uuid

import pytest

from bidboard.domain.types import ApplicationStatus
from conftest import COVER_LETTER


def headers(actor_id, role):
    return {"X-Actor-Id": str(actor_id), "X-Actor-Role": role}


SUBMIT_BODY = {"cover_letter": COVER_LETTER, "proposed_rate": "800", "proposed_timeline": 21}


class TestHealth:

    @pytest.mark.asyncio
    async def test_health_is_healthy(self, test_client):
        response = await test_client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["database"] == "connected"
        assert data["notifier"] == "available"

    @pytest.mark.asyncio
    async def test_request_id_is_echoed(self, test_client):
        response = await test_client.get("/health", headers={"X-Request-ID": "trace-123"})
        assert response.headers["X-Request-ID"] == "trace-123"


class TestIdentity:

    @pytest.mark.asyncio
    async def test_missing_headers_401(self, test_client):
        response = await test_client.get("/api/applications")
        assert response.status_code == 401
        assert response.json()["error"] == "unauthenticated"

    @pytest.mark.asyncio
    async def test_unknown_role_401(self, test_client):
        response = await test_client.get(
            "/api/applications", headers=headers(uuid.uuid4(), "superuser")
        )
        assert response.status_code == 401


class TestSubmitRoute:

    @pytest.mark.asyncio
    async def test_professional_submits(self, test_client, seed, notifier, service):
        project = await seed.project()
        professional_id = uuid.uuid4()

        response = await test_client.post(
            f"/api/projects/{project.id}/applications",
            json=SUBMIT_BODY,
            headers=headers(professional_id, "professional"),
        )

        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "pending"
        assert data["professional_id"] == str(professional_id)
        assert response.headers["Cache-Control"] == "no-store"

        await service.dispatcher.drain(timeout=5)
        assert notifier.events_for(project.client_id) == ["application_received"]

    @pytest.mark.asyncio
    async def test_client_cannot_submit(self, test_client, seed):
        project = await seed.project()
        response = await test_client.post(
            f"/api/projects/{project.id}/applications",
            json=SUBMIT_BODY,
            headers=headers(uuid.uuid4(), "client"),
        )
        assert response.status_code == 403
        assert response.json()["error"] == "forbidden"

    @pytest.mark.asyncio
    async def test_short_cover_letter_422(self, test_client, seed):
        project = await seed.project()
        response = await test_client.post(
            f"/api/projects/{project.id}/applications",
            json={"cover_letter": "too short"},
            headers=headers(uuid.uuid4(), "professional"),
        )
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_duplicate_409(self, test_client, seed):
        project = await seed.project()
        professional = headers(uuid.uuid4(), "professional")
        url = f"/api/projects/{project.id}/applications"

        first = await test_client.post(url, json=SUBMIT_BODY, headers=professional)
        second = await test_client.post(url, json=SUBMIT_BODY, headers=professional)

        assert first.status_code == 201
        assert second.status_code == 409
        assert second.json()["error"] == "duplicate_application"

    @pytest.mark.asyncio
    async def test_unknown_project_404(self, test_client):
        response = await test_client.post(
            f"/api/projects/{uuid.uuid4()}/applications",
            json=SUBMIT_BODY,
            headers=headers(uuid.uuid4(), "professional"),
        )
        assert response.status_code == 404
        assert response.json()["error"] == "not_found"


class TestReadRoutes:

    @pytest.mark.asyncio
    async def test_list_for_client(self, test_client, seed):
        project = await seed.project()
        for _ in range(3):
            await seed.application(project)

        response = await test_client.get(
            "/api/applications",
            params={"limit": 2},
            headers=headers(project.client_id, "client"),
        )

        assert response.status_code == 200
        data = response.json()
        assert len(data["applications"]) == 2
        assert data["pagination"]["total_count"] == 3
        assert data["pagination"]["has_next"] is True
        assert data["status_summary"]["counts"]["pending"] == 3
        assert data["status_summary"]["counts"]["accepted"] == 0
        assert response.headers["X-Total-Count"] == "3"

    @pytest.mark.asyncio
    async def test_list_filters_by_status(self, test_client, seed):
        project = await seed.project()
        await seed.application(project)

        response = await test_client.get(
            "/api/applications",
            params={"status": "accepted"},
            headers=headers(project.client_id, "client"),
        )

        assert response.status_code == 200
        assert response.json()["applications"] == []

    @pytest.mark.asyncio
    async def test_get_by_author(self, test_client, seed):
        project = await seed.project()
        application = await seed.application(project)

        response = await test_client.get(
            f"/api/applications/{application.id}",
            headers=headers(application.professional_id, "professional"),
        )

        assert response.status_code == 200
        assert response.json()["id"] == str(application.id)

    @pytest.mark.asyncio
    async def test_get_by_stranger_403(self, test_client, seed):
        project = await seed.project()
        application = await seed.application(project)

        response = await test_client.get(
            f"/api/applications/{application.id}",
            headers=headers(uuid.uuid4(), "professional"),
        )
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_unknown_application_404(self, test_client):
        response = await test_client.get(
            f"/api/applications/{uuid.uuid4()}",
            headers=headers(uuid.uuid4(), "admin"),
        )
        assert response.status_code == 404


class TestLifecycleRoutes:

    @pytest.mark.asyncio
    async def test_approve_then_second_approve_conflicts(self, test_client, seed, db):
        project = await seed.project()
        winner = await seed.application(project)
        other = await seed.application(project)
        client = headers(project.client_id, "client")

        first = await test_client.put(f"/api/applications/{winner.id}/approve", headers=client)
        second = await test_client.put(f"/api/applications/{other.id}/approve", headers=client)

        assert first.status_code == 200
        assert first.json()["status"] == "accepted"
        assert second.status_code == 409
        assert second.json()["error"] == "conflict_assignment"
        assert (await db.application(other.id)).status == ApplicationStatus.REJECTED

    @pytest.mark.asyncio
    async def test_approve_with_negotiated_rate(self, test_client, seed):
        project = await seed.project()
        application = await seed.application(project)

        response = await test_client.put(
            f"/api/applications/{application.id}/approve",
            json={"final_rate": "750", "rate_negotiation_notes": "Agreed after call"},
            headers=headers(project.client_id, "client"),
        )

        assert response.status_code == 200
        assert response.json()["metadata"]["final_negotiated_rate"] == "750"

    @pytest.mark.asyncio
    async def test_notes_without_rate_422(self, test_client, seed):
        project = await seed.project()
        application = await seed.application(project)

        response = await test_client.put(
            f"/api/applications/{application.id}/approve",
            json={"rate_negotiation_notes": "Agreed after call"},
            headers=headers(project.client_id, "client"),
        )
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_evaluate_moves_to_under_review(self, test_client, seed):
        project = await seed.project()
        application = await seed.application(project)

        response = await test_client.put(
            f"/api/applications/{application.id}/evaluate",
            json={"priority_score": "72.5", "client_feedback": "Strong portfolio, asking for refs"},
            headers=headers(project.client_id, "client"),
        )

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "under_review"
        assert data["reviewed_by"] == str(project.client_id)

    @pytest.mark.asyncio
    async def test_reject_short_reason_422(self, test_client, seed):
        project = await seed.project()
        application = await seed.application(project)

        response = await test_client.put(
            f"/api/applications/{application.id}/reject",
            json={"rejection_reason": "no"},
            headers=headers(project.client_id, "client"),
        )
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_reject_then_withdraw_is_invalid_transition(self, test_client, seed):
        project = await seed.project()
        application = await seed.application(project)

        rejected = await test_client.put(
            f"/api/applications/{application.id}/reject",
            json={"rejection_reason": "Budget does not fit this project"},
            headers=headers(project.client_id, "client"),
        )
        withdrawn = await test_client.put(
            f"/api/applications/{application.id}/withdraw",
            headers=headers(application.professional_id, "professional"),
        )

        assert rejected.status_code == 200
        assert rejected.json()["rejection_reason"] == "Budget does not fit this project"
        assert withdrawn.status_code == 409
        body = withdrawn.json()
        assert body["error"] == "invalid_state_transition"
        assert body["details"]["current_status"] == "rejected"

    @pytest.mark.asyncio
    async def test_withdraw_by_stranger_403(self, test_client, seed):
        project = await seed.project()
        application = await seed.application(project)

        response = await test_client.put(
            f"/api/applications/{application.id}/withdraw",
            json={"reason": "Booked elsewhere"},
            headers=headers(uuid.uuid4(), "professional"),
        )
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_expire_requires_system(self, test_client, seed):
        project = await seed.project()
        application = await seed.application(project)
        url = f"/api/applications/{application.id}/expire"

        as_client = await test_client.put(url, headers=headers(project.client_id, "client"))
        as_system = await test_client.put(url, headers=headers(uuid.uuid4(), "system"))

        assert as_client.status_code == 403
        assert as_system.status_code == 200
        assert as_system.json()["status"] == "expired"

    @pytest.mark.asyncio
    async def test_calculate_priority(self, test_client, seed):
        project = await seed.project()
        application = await seed.application(project)
        await seed.profile(application.professional_id)

        response = await test_client.post(
            f"/api/applications/{application.id}/calculate-priority",
            headers=headers(project.client_id, "client"),
        )

        assert response.status_code == 200
        data = response.json()
        assert data["application_id"] == str(application.id)
        assert 0 <= float(data["priority_score"]) <= 100
