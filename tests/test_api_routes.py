"""
tests/test_api_routes.py — FastAPI Route Integration Tests
============================================================
Integration tests for the public, member and admin routes using the
FastAPI TestClient against the in-memory SQLite engine.

These tests verify:
- Auth guards (401 missing/invalid token, 403 non-admin)
- The uniform {"error", "details"?} error body
- Wire format (camelCase) of the settlement endpoints
"""

from __future__ import annotations

import jwt
import pytest

from conftest import auth, make_admin_token, make_mission, make_reward, make_token, make_user


# ===========================================================================
# Health & public
# ===========================================================================
class TestHealthEndpoint:
    def test_health_returns_ok(self, client):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}


class TestPublicEndpoints:
    def test_missions(self, client, db_engine):
        mid = make_mission(db_engine, name="Clip of the week")
        resp = client.get("/api/ze-club/missions")
        assert resp.status_code == 200
        assert [m["id"] for m in resp.json()] == [mid]
        assert resp.json()[0]["isAvailable"] is True

    def test_rewards_anonymous(self, client, db_engine):
        make_reward(db_engine, cost=100)
        body = client.get("/api/ze-club/rewards").json()
        assert body[0]["isLocked"] is True
        assert body[0]["lockedReason"] == "Sign in to claim"

    def test_rewards_with_viewer(self, client, db_engine):
        uid = make_user(db_engine, experience=700)
        make_reward(db_engine, cost=100)
        body = client.get("/api/ze-club/rewards", headers=auth(make_token(uid))).json()
        assert body[0]["isLocked"] is False
        assert body[0]["finalCost"] == 90

    def test_rewards_with_bad_token(self, client):
        resp = client.get("/api/ze-club/rewards", headers=auth("garbage"))
        assert resp.status_code == 401

    def test_leaderboard(self, client, db_engine):
        make_user(db_engine, experience=10)
        top = make_user(db_engine, experience=500)
        body = client.get("/api/ze-club/leaderboard").json()
        assert body[0]["id"] == top

    def test_hero(self, client):
        body = client.get("/api/site-settings/hero").json()
        assert "heroVideoUrl" in body
        assert body["defaultHeroPosterUrl"]


# ===========================================================================
# Auth guards
# ===========================================================================
class TestAuthGuards:
    ADMIN_GET_ENDPOINTS = [
        "/api/admin/submissions",
        "/api/admin/redemption-requests",
        "/api/admin/audit",
    ]

    MEMBER_GET_ENDPOINTS = [
        "/api/ze-club/user/dashboard",
        "/api/ze-club/user-redemptions",
        "/api/auth/me",
    ]

    @pytest.mark.parametrize("endpoint", ADMIN_GET_ENDPOINTS)
    def test_admin_no_token_returns_401(self, client, endpoint):
        resp = client.get(endpoint)
        assert resp.status_code == 401
        assert resp.json() == {"error": "Missing token"}

    @pytest.mark.parametrize("endpoint", ADMIN_GET_ENDPOINTS)
    def test_admin_non_admin_returns_403(self, client, endpoint):
        resp = client.get(endpoint, headers=auth(make_token(5)))
        assert resp.status_code == 403

    @pytest.mark.parametrize("endpoint", ADMIN_GET_ENDPOINTS)
    def test_admin_token_passes(self, client, endpoint):
        resp = client.get(endpoint, headers=auth(make_admin_token()))
        assert resp.status_code == 200

    @pytest.mark.parametrize("endpoint", MEMBER_GET_ENDPOINTS)
    def test_member_no_token_returns_401(self, client, endpoint):
        assert client.get(endpoint).status_code == 401

    def test_wrong_secret_returns_401(self, client):
        forged = jwt.encode({"sub": "1", "roles": ["admin"]}, "x" * 40, algorithm="HS256")
        resp = client.get("/api/admin/audit", headers=auth(forged))
        assert resp.status_code == 401

    def test_non_numeric_subject_returns_401(self, client):
        from zeclub.api.deps import JWT_ALGORITHM, JWT_SECRET

        token = jwt.encode({"sub": "abc", "roles": ["admin"]}, JWT_SECRET, algorithm=JWT_ALGORITHM)
        assert client.get("/api/auth/me", headers=auth(token)).status_code == 401

    def test_me(self, client):
        body = client.get("/api/auth/me", headers=auth(make_admin_token(7))).json()
        assert body["id"] == 7
        assert body["isAdmin"] is True


# ===========================================================================
# Member flows
# ===========================================================================
class TestMemberFlows:
    def test_upload_then_duplicate(self, client, db_engine):
        uid = make_user(db_engine)
        mid = make_mission(db_engine)
        payload = {"missionId": mid, "fileUrl": "https://cdn.example.com/p.png"}

        first = client.post("/api/ze-club/missions/upload", json=payload,
                            headers=auth(make_token(uid)))
        second = client.post("/api/ze-club/missions/upload", json=payload,
                             headers=auth(make_token(uid)))

        assert first.status_code == 201
        assert first.json()["submission"]["status"] == "pending"
        assert second.status_code == 409
        assert "error" in second.json()

    def test_redemption_with_idempotency_key(self, client, db_engine):
        uid = make_user(db_engine, ze_coins=250)
        rid = make_reward(db_engine, cost=100, stock=3)
        payload = {
            "rewardId": rid,
            "contactName": "Ada",
            "contactEmail": "ada@example.com",
            "contactPhone": "555-123-4567",
            "address": "1 Club Street",
        }
        headers = {**auth(make_token(uid)), "Idempotency-Key": "abc-123"}

        first = client.post("/api/ze-club/redemption-requests", json=payload, headers=headers)
        again = client.post("/api/ze-club/redemption-requests", json=payload, headers=headers)

        assert first.status_code == 200
        assert first.json()["requestId"] == again.json()["requestId"]
        assert again.json()["replayed"] is True

        dashboard = client.get("/api/ze-club/user/dashboard", headers=auth(make_token(uid)))
        assert dashboard.json()["zeCoins"] == 150
        mine = client.get("/api/ze-club/user-redemptions", headers=auth(make_token(uid)))
        assert len(mine.json()) == 1

    def test_redemption_insufficient_balance_body(self, client, db_engine):
        uid = make_user(db_engine, ze_coins=10)
        rid = make_reward(db_engine, cost=100)
        resp = client.post(
            "/api/ze-club/redemption-requests",
            json={
                "rewardId": rid,
                "contactName": "Ada",
                "contactEmail": "ada@example.com",
                "contactPhone": "5551234567",
                "address": "1 Club Street",
            },
            headers=auth(make_token(uid)),
        )
        assert resp.status_code == 409
        assert resp.json() == {
            "error": "Insufficient ZE Coins",
            "details": {"required": 100, "current": 10},
        }

    def test_redemption_locked_is_403(self, client, db_engine):
        uid = make_user(db_engine, ze_coins=1000)
        rid = make_reward(db_engine, cost=100, required_rank="Vanguard")
        resp = client.post(
            "/api/ze-club/redemption-requests",
            json={
                "rewardId": rid,
                "contactName": "Ada",
                "contactEmail": "ada@example.com",
                "contactPhone": "5551234567",
                "address": "1 Club Street",
            },
            headers=auth(make_token(uid)),
        )
        assert resp.status_code == 403
        assert resp.json()["error"] == "Requires Vanguard rank"

    def test_body_validation_is_400(self, client, db_engine):
        uid = make_user(db_engine)
        resp = client.post(
            "/api/ze-club/redemption-requests",
            json={"contactName": "Ada"},
            headers=auth(make_token(uid)),
        )
        assert resp.status_code == 400
        assert resp.json()["error"] == "Validation failed"

    def test_overlong_idempotency_key_is_400(self, client, db_engine):
        uid = make_user(db_engine, ze_coins=250)
        rid = make_reward(db_engine, cost=100, stock=3)
        resp = client.post(
            "/api/ze-club/redemption-requests",
            json={
                "rewardId": rid,
                "contactName": "Ada",
                "contactEmail": "ada@example.com",
                "contactPhone": "5551234567",
                "address": "1 Club Street",
            },
            headers={**auth(make_token(uid)), "Idempotency-Key": "k" * 101},
        )
        assert resp.status_code == 400
        assert resp.json()["error"] == "Validation failed"
        dashboard = client.get("/api/ze-club/user/dashboard", headers=auth(make_token(uid)))
        assert dashboard.json()["zeCoins"] == 250


class TestFirstContact:
    def test_unknown_member_gets_a_dashboard(self, client):
        resp = client.get("/api/ze-club/user/dashboard", headers=auth(make_token(4242)))
        assert resp.status_code == 200
        body = resp.json()
        assert (body["experience"], body["zeCoins"], body["rank"]) == (0, 0, "Rookie")
        assert body["zeTag"]

    def test_unknown_member_can_submit_proof(self, client, db_engine):
        mid = make_mission(db_engine)
        resp = client.post(
            "/api/ze-club/missions/upload",
            json={"missionId": mid, "fileUrl": "https://cdn.example.com/p.png"},
            headers=auth(make_token(4243)),
        )
        assert resp.status_code == 201

    def test_token_without_email_is_400(self, client):
        from zeclub.api.deps import JWT_ALGORITHM, JWT_SECRET

        token = jwt.encode({"sub": "4244"}, JWT_SECRET, algorithm=JWT_ALGORITHM)
        resp = client.get("/api/ze-club/user/dashboard", headers=auth(token))
        assert resp.status_code == 400


class TestProfile:
    def test_check_and_change_ze_tag(self, client, db_engine):
        make_user(db_engine, ze_tag="striker")
        uid = make_user(db_engine, ze_tag="keeper")
        me = auth(make_token(uid))

        taken = client.get("/api/user/profile/check-zetag?zeTag=striker", headers=me)
        assert taken.json() == {"available": False, "zeTag": "striker"}
        free = client.get("/api/user/profile/check-zetag?zeTag=winger", headers=me)
        assert free.json()["available"] is True

        changed = client.patch("/api/user/profile/change-zetag", json={"zeTag": "winger"},
                               headers=me)
        assert changed.json() == {"success": True, "zeTag": "winger"}
        assert client.get("/api/ze-club/user/dashboard", headers=me).json()["zeTag"] == "winger"

    def test_change_to_taken_tag_is_409(self, client, db_engine):
        make_user(db_engine, ze_tag="striker")
        uid = make_user(db_engine)
        resp = client.patch("/api/user/profile/change-zetag", json={"zeTag": "striker"},
                            headers=auth(make_token(uid)))
        assert resp.status_code == 409
        assert resp.json() == {"error": "This ZE Tag is already taken"}

    def test_bad_format_is_400(self, client, db_engine):
        uid = make_user(db_engine)
        resp = client.patch("/api/user/profile/change-zetag", json={"zeTag": "a b"},
                            headers=auth(make_token(uid)))
        assert resp.status_code == 400


# ===========================================================================
# Admin settlement
# ===========================================================================
class TestAdminSettlement:
    def _pending(self, client, db_engine, *, experience=90, points=15):
        uid = make_user(db_engine, experience=experience, ze_coins=experience)
        mid = make_mission(db_engine, points=points)
        resp = client.post(
            "/api/ze-club/missions/upload",
            json={"missionId": mid, "fileUrl": "https://cdn.example.com/p.png"},
            headers=auth(make_token(uid)),
        )
        return uid, resp.json()["submission"]["id"]

    def test_verify_then_revert(self, client, db_engine):
        uid, sid = self._pending(client, db_engine)
        admin = auth(make_admin_token())

        verify = client.patch(
            "/api/admin/submissions/verify",
            json={"submissionId": sid, "status": "approved"},
            headers=admin,
        )
        assert verify.status_code == 200
        assert "message" in verify.json()

        revert = client.post(
            "/api/admin/submissions/revert",
            json={"submissionId": sid, "revertReason": "duplicate proof"},
            headers=admin,
        )
        assert revert.status_code == 200
        assert revert.json()["details"] == {
            "pointsDeducted": 15,
            "newBalance": 90,
            "newExperience": 90,
            "oldRank": "Contender",
            "newRank": "Rookie",
            "rankChanged": True,
        }

    def test_revert_pending_is_409(self, client, db_engine):
        _, sid = self._pending(client, db_engine)
        resp = client.post(
            "/api/admin/submissions/revert",
            json={"submissionId": sid, "revertReason": "nope"},
            headers=auth(make_admin_token()),
        )
        assert resp.status_code == 409

    def test_verify_bad_status_is_400(self, client, db_engine):
        _, sid = self._pending(client, db_engine)
        resp = client.patch(
            "/api/admin/submissions/verify",
            json={"submissionId": sid, "status": "maybe"},
            headers=auth(make_admin_token()),
        )
        assert resp.status_code == 400

    def test_verify_missing_submission_is_404(self, client):
        resp = client.patch(
            "/api/admin/submissions/verify",
            json={"submissionId": 404, "status": "approved"},
            headers=auth(make_admin_token()),
        )
        assert resp.status_code == 404
        assert resp.json() == {"error": "Submission not found"}

    def test_non_admin_cannot_verify(self, client, db_engine):
        uid, sid = self._pending(client, db_engine)
        resp = client.patch(
            "/api/admin/submissions/verify",
            json={"submissionId": sid, "status": "approved"},
            headers=auth(make_token(uid)),
        )
        assert resp.status_code == 403


class TestAdminRedemptions:
    def test_cancel_with_refund(self, client, db_engine):
        uid = make_user(db_engine, ze_coins=100)
        rid = make_reward(db_engine, cost=100, stock=1)
        created = client.post(
            "/api/ze-club/redemption-requests",
            json={
                "rewardId": rid,
                "contactName": "Ada",
                "contactEmail": "ada@example.com",
                "contactPhone": "5551234567",
                "address": "1 Club Street",
            },
            headers=auth(make_token(uid)),
        ).json()

        resp = client.patch(
            f"/api/admin/redemption-requests/{created['requestId']}",
            json={"status": "cancelled", "refund": True, "adminNotes": "Out of sizes"},
            headers=auth(make_admin_token()),
        )

        assert resp.status_code == 200
        request = resp.json()["redemptionRequest"]
        assert request["status"] == "cancelled"
        assert request["refundedAt"] is not None
        dashboard = client.get("/api/ze-club/user/dashboard", headers=auth(make_token(uid)))
        assert dashboard.json()["zeCoins"] == 100

        listing = client.get(
            "/api/admin/redemption-requests?status=cancelled",
            headers=auth(make_admin_token()),
        )
        assert [r["id"] for r in listing.json()] == [created["requestId"]]


class TestAdminCatalogue:
    def test_mission_lifecycle(self, client):
        admin = auth(make_admin_token())
        created = client.post(
            "/api/admin/missions",
            json={"name": "Stream", "description": "Go live", "points": 20, "featured": True},
            headers=admin,
        )
        assert created.status_code == 201
        mid = created.json()["id"]

        patched = client.patch(f"/api/admin/missions/{mid}", json={"points": 25}, headers=admin)
        assert patched.json()["points"] == 25

        off = client.patch(f"/api/admin/missions/{mid}/active", json={"active": False},
                           headers=admin)
        assert off.json()["active"] is False

        deleted = client.delete(f"/api/admin/missions/{mid}", headers=admin)
        assert deleted.json()["mission"]["isDeleted"] is True

    def test_reward_lifecycle(self, client):
        admin = auth(make_admin_token())
        created = client.post(
            "/api/admin/rewards",
            json={"name": "Cap", "description": "Club cap", "cost": 40, "stock": 3,
                  "exclusiveToTop3": True},
            headers=admin,
        )
        assert created.status_code == 201
        assert created.json()["exclusiveToTop3"] is True
        rid = created.json()["id"]

        patched = client.patch(f"/api/admin/rewards/{rid}", json={"stock": 9}, headers=admin)
        assert patched.json()["stock"] == 9

        assert client.delete(f"/api/admin/rewards/{rid}", headers=admin).status_code == 200
        assert client.patch(f"/api/admin/rewards/{rid}", json={"stock": 1},
                            headers=admin).status_code == 404

    def test_role_toggle_and_audit(self, client, db_engine):
        target = make_user(db_engine)
        admin = auth(make_admin_token())
        resp = client.patch(f"/api/admin/users/{target}/admin", json={"action": "add"},
                            headers=admin)
        assert resp.json()["user"]["isAdmin"] is True

        audit = client.get("/api/admin/audit?targetTable=users", headers=admin).json()
        assert audit[0]["actionType"] == "ROLE_CHANGE"
        assert audit[0]["targetId"] == str(target)

    def test_hero_update(self, client):
        admin = auth(make_admin_token())
        resp = client.patch(
            "/api/admin/site-settings/hero",
            json={"heroPosterUrl": "https://cdn.example.com/poster.jpg"},
            headers=admin,
        )
        assert resp.status_code == 200
        public = client.get("/api/site-settings/hero").json()
        assert public["heroPosterUrl"] == "https://cdn.example.com/poster.jpg"

    @pytest.mark.parametrize("body", [{"points": None}, {"isTimeLimited": None}, {"name": None}])
    def test_mission_null_fields_are_400(self, client, db_engine, body):
        mid = make_mission(db_engine)
        resp = client.patch(f"/api/admin/missions/{mid}", json=body,
                            headers=auth(make_admin_token()))
        assert resp.status_code == 400
        assert resp.json()["error"] == "Fields cannot be null"

    def test_mission_optional_field_can_be_cleared(self, client, db_engine):
        mid = make_mission(db_engine, max_completions=3)
        resp = client.patch(f"/api/admin/missions/{mid}", json={"maxCompletions": None},
                            headers=auth(make_admin_token()))
        assert resp.status_code == 200
        assert resp.json()["maxCompletions"] is None

    @pytest.mark.parametrize("body", [{"cost": None}, {"stock": None}, {"requiredRank": None}])
    def test_reward_null_fields_are_400(self, client, db_engine, body):
        rid = make_reward(db_engine)
        resp = client.patch(f"/api/admin/rewards/{rid}", json=body,
                            headers=auth(make_admin_token()))
        assert resp.status_code == 400
        assert resp.json()["error"] == "Fields cannot be null"


# ===========================================================================
# Admin access follows the stored flag
# ===========================================================================
class TestAdminMembership:
    def test_grant_and_revoke_take_effect_without_new_token(self, client, db_engine):
        target = make_user(db_engine)
        admin = auth(make_admin_token())
        member = auth(make_token(target))

        assert client.get("/api/admin/submissions", headers=member).status_code == 403

        client.patch(f"/api/admin/users/{target}/admin", json={"action": "add"}, headers=admin)
        assert client.get("/api/admin/submissions", headers=member).status_code == 200

        client.patch(f"/api/admin/users/{target}/admin", json={"action": "remove"},
                     headers=admin)
        assert client.get("/api/admin/submissions", headers=member).status_code == 403
        stale = auth(make_token(target, roles=["user", "admin"]))
        assert client.get("/api/admin/submissions", headers=stale).status_code == 403

    def test_me_reports_stored_flag(self, client, db_engine):
        target = make_user(db_engine)
        stale = auth(make_token(target, roles=["user", "admin"]))
        assert client.get("/api/auth/me", headers=stale).json()["isAdmin"] is False

    def test_search_then_grant(self, client, db_engine):
        target = make_user(db_engine, name="Ada Lovelace", ze_tag="ada_l")
        make_user(db_engine, name="Alan Turing")
        admin = auth(make_admin_token())

        found = client.get("/api/admin/users/search?q=lovelace", headers=admin).json()["users"]
        assert [u["id"] for u in found] == [target]
        assert client.get("/api/admin/users/search?q=", headers=admin).json() == {"users": []}

        client.patch(f"/api/admin/users/{target}/admin", json={"action": "add"}, headers=admin)
        admins = client.get("/api/admin/users/admins", headers=admin).json()["admins"]
        assert [u["id"] for u in admins] == [target]

    @pytest.mark.parametrize("endpoint", ["/api/admin/users/search?q=a", "/api/admin/users/admins"])
    def test_user_lookup_requires_admin(self, client, db_engine, endpoint):
        uid = make_user(db_engine)
        assert client.get(endpoint, headers=auth(make_token(uid))).status_code == 403
