"""
tests/test_api_routes.py — FastAPI Route Integration Tests
============================================================
Runs the real app against the in-memory SQLite engine through
``dependency_overrides``.  Covers:
- Scheduler endpoints and their response shapes
- 400 on malformed bodies, 404 on unknown ids
- Bearer auth (401) and the user_roles admin cross-check (403)
- CORS preflight
"""

from __future__ import annotations

import uuid
from datetime import timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import select
from sqlalchemy.orm import Session

from conftest import (
    NOW,
    add_chapter,
    add_penalty,
    add_professional,
    add_review,
    add_rotation,
    grant_role,
    make_token,
)
from council.api.deps import get_config, get_engine, get_push_dispatcher
from council.api.main import app
from council.config import CouncilConfig
from council.constants import utcnow
from council.database.models import BehaviorEvent, PenaltyAppeal, UserPenalty
from council.services import behavior_service

TEST_CONFIG = CouncilConfig(
    service_name="Council (test)",
    rotation_period_days=180,
    reminder_after_hours=48,
)


@pytest.fixture
def client(db_engine, push):
    app.dependency_overrides[get_engine] = lambda: db_engine
    app.dependency_overrides[get_config] = lambda: TEST_CONFIG
    app.dependency_overrides[get_push_dispatcher] = lambda: push
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()


@pytest.fixture
def member(db_engine) -> uuid.UUID:
    return add_professional(db_engine, add_chapter(db_engine), name="Marta")


@pytest.fixture
def admin(db_engine) -> uuid.UUID:
    admin_id = uuid.uuid4()
    grant_role(db_engine, admin_id)
    return admin_id


def _auth(user_id) -> dict:
    return {"Authorization": f"Bearer {make_token(user_id)}"}


# ===========================================================================
# Health & CORS
# ===========================================================================
class TestHealthAndCors:
    def test_health_returns_ok(self, client):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}

    def test_preflight_allows_any_origin(self, client):
        resp = client.options(
            "/api/analyze-behavior",
            headers={
                "Origin": "https://dashboard.example.org",
                "Access-Control-Request-Method": "POST",
                "Access-Control-Request-Headers": "content-type",
            },
        )
        assert resp.status_code == 200
        assert resp.headers["access-control-allow-origin"] == "*"

    def test_unexpected_error_returns_json_500(self, client, member, monkeypatch):
        def boom(*args, **kwargs):
            raise ValueError("unknown event type 'legacy_ping'")

        monkeypatch.setattr(behavior_service, "analyze_behavior", boom)

        resp = client.post("/api/analyze-behavior", json={"professionalId": str(member)})

        assert resp.status_code == 500
        assert resp.json() == {"detail": "Internal server error"}


# ===========================================================================
# Scheduler endpoints
# ===========================================================================
class TestAnalyzeBehavior:
    def test_returns_result_payload(self, client, db_engine, member):
        with Session(db_engine) as session:
            for i in range(11):
                session.add(BehaviorEvent(
                    professional_id=member,
                    event_type="offer_contact",
                    metadata_={},
                    occurred_at=utcnow() - timedelta(minutes=i),
                ))
            session.commit()

        resp = client.post("/api/analyze-behavior", json={"professionalId": str(member)})

        assert resp.status_code == 200
        body = resp.json()
        assert body["professionalId"] == str(member)
        assert body["riskScore"] == 15
        assert body["alertTriggered"] is False
        assert [f["type"] for f in body["riskFactors"]] == ["high_contacts"]
        assert body["eventsAnalyzed"] == 11

    def test_missing_professional_id_is_400(self, client):
        resp = client.post("/api/analyze-behavior", json={})
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Invalid request"

    def test_malformed_uuid_is_400(self, client):
        resp = client.post("/api/analyze-behavior", json={"professionalId": "not-a-uuid"})
        assert resp.status_code == 400

    def test_unknown_professional_is_404(self, client):
        resp = client.post("/api/analyze-behavior", json={"professionalId": str(uuid.uuid4())})
        assert resp.status_code == 404


class TestRotateCommittee:
    def test_reports_rotated_and_skipped(self, client, db_engine):
        staffed = add_chapter(db_engine, "Braga")
        for points in (30, 20, 10):
            add_professional(db_engine, staffed, points=points)
        thin = add_chapter(db_engine, "Evora")
        for _ in range(2):
            add_professional(db_engine, thin)
        add_professional(db_engine, thin, blocked=True)

        resp = client.post("/api/rotate-committee")

        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        by_chapter = {r["chapterId"]: r for r in body["rotations"]}
        assert by_chapter[str(staffed)]["status"] == "rotated"
        assert [m["points"] for m in by_chapter[str(staffed)]["committee"]] == [30, 20, 10]
        assert by_chapter[str(thin)]["status"] == "skipped"
        assert by_chapter[str(thin)]["reason"] == "less than 3 eligible members"

    def test_nothing_to_do(self, client):
        resp = client.post("/api/rotate-committee")
        assert resp.json() == {"success": True, "rotations": []}


class TestProcessExpulsionVotes:
    def test_summary_payload(self, client):
        resp = client.post("/api/process-expulsion-votes")
        assert resp.status_code == 200
        body = resp.json()
        assert body["auto_expulsions"] == 0
        assert body["reminders_sent"] == 0
        assert body["message"].startswith("Process complete.")


# ===========================================================================
# Event ingestion
# ===========================================================================
class TestEvents:
    def test_requires_token(self, client):
        resp = client.post("/api/events", json={"event_type": "offer_view"})
        assert resp.status_code == 401

    def test_rejects_garbage_token(self, client):
        resp = client.post(
            "/api/events",
            json={"event_type": "offer_view"},
            headers={"Authorization": "Bearer invalid"},
        )
        assert resp.status_code == 401

    def test_records_event_for_caller(self, client, db_engine, member):
        resp = client.post(
            "/api/events",
            json={"event_type": "offer_contact", "context_id": "offer-7"},
            headers=_auth(member),
        )
        assert resp.status_code == 201
        with Session(db_engine) as session:
            row = session.scalar(select(BehaviorEvent))
            assert row.professional_id == member
            assert row.context_id == "offer-7"

    def test_unknown_event_type_is_400(self, client, member):
        resp = client.post("/api/events", json={"event_type": "teleport"}, headers=_auth(member))
        assert resp.status_code == 400

    def test_caller_without_profile_is_404(self, client):
        resp = client.post(
            "/api/events", json={"event_type": "offer_view"}, headers=_auth(uuid.uuid4())
        )
        assert resp.status_code == 404


# ===========================================================================
# Committee votes
# ===========================================================================
class TestVotes:
    @pytest.fixture
    def case(self, db_engine):
        chapter = add_chapter(db_engine)
        judges = [add_professional(db_engine, chapter, points=9 - i) for i in range(3)]
        add_rotation(db_engine, chapter, judges, next_rotation_at=NOW.replace(year=2099))
        accused = add_professional(db_engine, chapter, name="Accused")
        review = add_review(
            db_engine, accused,
            created_at=NOW,
            auto_expire_at=NOW.replace(year=2099),
        )
        return {"judges": judges, "accused": accused, "review": review}

    def _vote(self, client, case, voter, vote="expel"):
        return client.post(
            f"/api/expulsion-reviews/{case['review']}/votes",
            json={"vote": vote, "reasoning": "Repeated off-platform payments"},
            headers=_auth(voter),
        )

    def test_member_can_vote_once(self, client, case):
        first = self._vote(client, case, case["judges"][0])
        assert first.status_code == 201
        assert first.json()["vote"] == "expel"

        second = self._vote(client, case, case["judges"][0], "absolve")
        assert second.status_code == 409

    def test_non_member_is_403(self, client, case):
        assert self._vote(client, case, case["accused"]).status_code == 403

    def test_seated_judge_cannot_vote_on_own_review(self, client, db_engine, case):
        judge = case["judges"][0]
        own = add_review(
            db_engine, judge,
            created_at=NOW,
            auto_expire_at=NOW.replace(year=2099),
        )
        resp = client.post(
            f"/api/expulsion-reviews/{own}/votes",
            json={"vote": "absolve"},
            headers=_auth(judge),
        )
        assert resp.status_code == 403

    def test_unknown_review_is_404(self, client, case):
        resp = client.post(
            f"/api/expulsion-reviews/{uuid.uuid4()}/votes",
            json={"vote": "expel"},
            headers=_auth(case["judges"][0]),
        )
        assert resp.status_code == 404

    def test_invalid_choice_is_400(self, client, case):
        assert self._vote(client, case, case["judges"][1], "abstain").status_code == 400


# ===========================================================================
# Appeals (bearer user)
# ===========================================================================
class TestAppeals:
    def test_file_own_appeal(self, client, db_engine, member):
        penalty = add_penalty(db_engine, member)
        resp = client.post(
            "/api/appeals",
            json={"penalty_id": str(penalty), "reason": "I was ill"},
            headers=_auth(member),
        )
        assert resp.status_code == 201
        assert resp.json() == {"success": True}

        mine = client.get("/api/appeals/mine", headers=_auth(member)).json()["appeals"]
        assert len(mine) == 1
        assert mine[0]["status"] == "pending"

    def test_cannot_appeal_someone_elses_penalty(self, client, db_engine, member):
        other = add_professional(db_engine, name="Other")
        penalty = add_penalty(db_engine, other)
        resp = client.post(
            "/api/appeals",
            json={"penalty_id": str(penalty), "reason": "Not fair"},
            headers=_auth(member),
        )
        assert resp.status_code == 403

    def test_second_open_appeal_is_409(self, client, db_engine, member):
        penalty = add_penalty(db_engine, member)
        body = {"penalty_id": str(penalty), "reason": "Please"}
        assert client.post("/api/appeals", json=body, headers=_auth(member)).status_code == 201
        assert client.post("/api/appeals", json=body, headers=_auth(member)).status_code == 409

    def test_unknown_penalty_is_404(self, client, member):
        resp = client.post(
            "/api/appeals",
            json={"penalty_id": str(uuid.uuid4()), "reason": "?"},
            headers=_auth(member),
        )
        assert resp.status_code == 404

    def test_empty_reason_is_400(self, client, db_engine, member):
        penalty = add_penalty(db_engine, member)
        resp = client.post(
            "/api/appeals",
            json={"penalty_id": str(penalty), "reason": ""},
            headers=_auth(member),
        )
        assert resp.status_code == 400


# ===========================================================================
# Admin
# ===========================================================================
class TestAdminAuthGuards:
    ADMIN_GET_ENDPOINTS = [
        "/api/admin/appeals",
        "/api/admin/risk-scores",
        "/api/admin/violations",
        "/api/admin/expulsion-reviews",
    ]

    @pytest.mark.parametrize("endpoint", ADMIN_GET_ENDPOINTS)
    def test_rejects_no_auth(self, client, endpoint):
        assert client.get(endpoint).status_code == 401

    @pytest.mark.parametrize("endpoint", ADMIN_GET_ENDPOINTS)
    def test_rejects_non_admin(self, client, member, endpoint):
        resp = client.get(endpoint, headers=_auth(member))
        assert resp.status_code == 403
        assert resp.json() == {"detail": "Not admin"}

    @pytest.mark.parametrize("endpoint", ADMIN_GET_ENDPOINTS)
    def test_admin_allowed(self, client, admin, endpoint):
        assert client.get(endpoint, headers=_auth(admin)).status_code == 200

    def test_other_role_is_not_admin(self, client, db_engine):
        moderator = uuid.uuid4()
        grant_role(db_engine, moderator, "moderator")
        assert client.get("/api/admin/appeals", headers=_auth(moderator)).status_code == 403


class TestAdminAppeals:
    @pytest.fixture
    def appeal(self, client, db_engine, member):
        penalty = add_penalty(db_engine, member)
        client.post(
            "/api/appeals",
            json={"penalty_id": str(penalty), "reason": "Family emergency"},
            headers=_auth(member),
        )
        with Session(db_engine) as session:
            appeal_id = session.scalar(select(PenaltyAppeal.id))
        return {"id": appeal_id, "penalty": penalty}

    def test_approve_deactivates_penalty(self, client, db_engine, admin, appeal):
        resp = client.patch(
            f"/api/admin/appeals/{appeal['id']}",
            json={"status": "approved", "admin_response": "Verified"},
            headers=_auth(admin),
        )
        assert resp.status_code == 200
        assert resp.json()["status"] == "approved"
        with Session(db_engine) as session:
            assert session.get(UserPenalty, appeal["penalty"]).is_active is False

    def test_decided_appeal_is_409(self, client, admin, appeal):
        url = f"/api/admin/appeals/{appeal['id']}"
        client.patch(url, json={"status": "rejected"}, headers=_auth(admin))
        resp = client.patch(url, json={"status": "approved"}, headers=_auth(admin))
        assert resp.status_code == 409

    def test_back_to_pending_is_400(self, client, admin, appeal):
        resp = client.patch(
            f"/api/admin/appeals/{appeal['id']}",
            json={"status": "pending"},
            headers=_auth(admin),
        )
        assert resp.status_code == 400

    def test_unknown_status_is_400(self, client, admin, appeal):
        resp = client.patch(
            f"/api/admin/appeals/{appeal['id']}",
            json={"status": "escalated"},
            headers=_auth(admin),
        )
        assert resp.status_code == 400

    def test_unknown_appeal_is_404(self, client, admin):
        resp = client.patch(
            f"/api/admin/appeals/{uuid.uuid4()}",
            json={"status": "approved"},
            headers=_auth(admin),
        )
        assert resp.status_code == 404

    def test_list_filters_by_status(self, client, admin, appeal):
        pending = client.get("/api/admin/appeals?status=pending", headers=_auth(admin)).json()
        assert [a["id"] for a in pending["appeals"]] == [str(appeal["id"])]
        approved = client.get("/api/admin/appeals?status=approved", headers=_auth(admin)).json()
        assert approved["appeals"] == []


class TestAdminDashboards:
    def test_risk_history_after_analysis(self, client, admin, member):
        client.post("/api/analyze-behavior", json={"professionalId": str(member)})
        resp = client.get(f"/api/admin/risk-scores/{member}/history", headers=_auth(admin))
        assert resp.status_code == 200
        assert len(resp.json()["history"]) == 1

        scores = client.get("/api/admin/risk-scores", headers=_auth(admin)).json()
        assert [s["professional_id"] for s in scores["risk_scores"]] == [str(member)]

    def test_expulsion_reviews_listed(self, client, db_engine, admin, member):
        add_review(db_engine, member, created_at=NOW, auto_expire_at=NOW + timedelta(days=7))
        body = client.get("/api/admin/expulsion-reviews?status=pending", headers=_auth(admin)).json()
        assert len(body["reviews"]) == 1
        assert body["reviews"][0]["votes_for_expulsion"] == 0
