"""Tests for the team endpoints: lifecycle, invites, joins, roles and settings."""

from __future__ import annotations

import re

import pytest

from conftest import identity, run
from services.errors import DuplicateJoinCodeError


def _create_team(client, auth, user_id="u1", name="Alpha"):
    resp = client.post("/api/teams", json={"name": name, "description": "First team"}, headers=auth(user_id))
    assert resp.status_code == 201, resp.text
    return resp.json()["data"]


class TestCreateTeam:
    def test_creator_is_sole_admin_with_join_code(self, client, auth):
        team = _create_team(client, auth)
        assert team["name"] == "Alpha"
        assert re.fullmatch(r"[A-Z0-9]{6}", team["join_code"])
        assert team["member_count"] == 1
        assert team["members"][0]["user_id"] == "u1"
        assert team["members"][0]["role"] == "admin"
        assert team["members"][0]["user"]["name"] == "Ada Admin"
        assert team["settings"] == {"allow_member_invites": False, "default_role": "member", "visibility": "private"}

    def test_blank_name_is_rejected(self, client, auth):
        resp = client.post("/api/teams", json={"name": "   "}, headers=auth("u1"))
        assert resp.status_code == 400
        body = resp.json()
        assert body["success"] is False
        assert body["error_kind"] == "validation_error"

    def test_missing_name_is_a_validation_error(self, client, auth):
        resp = client.post("/api/teams", json={}, headers=auth("u1"))
        assert resp.status_code == 400
        assert resp.json()["error_kind"] == "validation_error"

    def test_requires_authentication(self, client):
        resp = client.post("/api/teams", json={"name": "Alpha"})
        assert resp.status_code == 401
        assert resp.json()["error_kind"] == "unauthorized"

    def test_invalid_token(self, client):
        resp = client.get("/api/teams/my-teams", headers={"Authorization": "Bearer not-a-jwt"})
        assert resp.status_code == 401

    def test_records_team_created(self, client, auth):
        team = _create_team(client, auth)
        resp = client.get(f"/api/teams/{team['id']}/activities", headers=auth("u1"))
        actions = [a["action"] for a in resp.json()["data"]]
        assert actions == ["team_created"]


class TestJoinCodeGeneration:
    def test_collision_is_retried(self, container):
        service = container.team_service
        codes = iter(["AAAAAA", "AAAAAA", "BBBBBB"])
        service.generate_join_code = lambda: next(codes)

        first, _ = run(service.create_team("One", None, identity("u1")))
        second, _ = run(service.create_team("Two", None, identity("u1")))
        assert first.join_code == "AAAAAA"
        assert second.join_code == "BBBBBB"

    def test_gives_up_after_max_attempts(self, container):
        service = container.team_service
        service.generate_join_code = lambda: "AAAAAA"
        run(service.create_team("One", None, identity("u1")))
        with pytest.raises(DuplicateJoinCodeError):
            run(service.create_team("Two", None, identity("u1")))


class TestReadTeams:
    def test_get_team_members_only(self, client, auth):
        team = _create_team(client, auth)
        assert client.get(f"/api/teams/{team['id']}", headers=auth("u1")).status_code == 200

        resp = client.get(f"/api/teams/{team['id']}", headers=auth("u3"))
        assert resp.status_code == 403
        assert resp.json()["error_kind"] == "forbidden"

    def test_get_unknown_team(self, client, auth):
        resp = client.get("/api/teams/does-not-exist", headers=auth("u1"))
        assert resp.status_code == 404
        assert resp.json()["error_kind"] == "not_found"

    def test_my_teams_and_directory(self, client, auth):
        alpha = _create_team(client, auth, "u1", "Alpha")
        _create_team(client, auth, "u2", "Beta")

        mine = client.get("/api/teams/my-teams", headers=auth("u1")).json()["data"]
        assert [t["id"] for t in mine] == [alpha["id"]]

        directory = client.get("/api/teams", headers=auth("u3")).json()["data"]
        assert {t["name"] for t in directory} == {"Alpha", "Beta"}

    def test_projects_listing(self, client, auth, store):
        team = _create_team(client, auth)
        run(store.insert("projects", {"team_id": team["id"], "name": "Launch", "status": "active", "progress": 40}))
        run(store.insert("projects", {"team_id": "other", "name": "Elsewhere"}))

        resp = client.get(f"/api/teams/{team['id']}/projects", headers=auth("u1"))
        assert [p["name"] for p in resp.json()["data"]] == ["Launch"]
        assert client.get(f"/api/teams/{team['id']}/projects", headers=auth("u3")).status_code == 403


class TestInvite:
    def test_invite_by_email(self, client, auth):
        team = _create_team(client, auth)
        resp = client.post(
            f"/api/teams/{team['id']}/invite",
            json={"email": "Ben@Example.com", "role": "member"},
            headers=auth("u1"),
        )
        assert resp.status_code == 200, resp.text
        body = resp.json()
        assert body["data"]["member_count"] == 2
        assert "warnings" not in body

        activities = client.get(f"/api/teams/{team['id']}/activities", headers=auth("u1")).json()["data"]
        joined = [a for a in activities if a["action"] == "member_joined"]
        assert len(joined) == 1
        assert joined[0]["metadata"] == {"invited_user": "u2", "role": "member"}
        assert joined[0]["user"]["id"] == "u1"

    def test_unknown_email(self, client, auth):
        team = _create_team(client, auth)
        resp = client.post(f"/api/teams/{team['id']}/invite", json={"email": "nobody@example.com"}, headers=auth("u1"))
        assert resp.status_code == 404

    def test_non_admin_cannot_invite(self, client, auth):
        team = _create_team(client, auth)
        client.post(f"/api/teams/{team['id']}/join", headers=auth("u2"))
        resp = client.post(f"/api/teams/{team['id']}/invite", json={"email": "cleo@example.com"}, headers=auth("u2"))
        assert resp.status_code == 403

    def test_invite_existing_member(self, client, auth):
        team = _create_team(client, auth)
        resp = client.post(f"/api/teams/{team['id']}/invite", json={"email": "ada@example.com"}, headers=auth("u1"))
        assert resp.status_code == 400
        assert resp.json()["error_kind"] == "conflict"

    def test_malformed_email(self, client, auth):
        team = _create_team(client, auth)
        resp = client.post(f"/api/teams/{team['id']}/invite", json={"email": "not-an-email"}, headers=auth("u1"))
        assert resp.status_code == 400


class TestJoin:
    def test_join_twice(self, client, auth):
        team = _create_team(client, auth)
        first = client.post(f"/api/teams/{team['id']}/join", headers=auth("u2"))
        assert first.status_code == 200
        assert first.json()["data"]["member_count"] == 2

        second = client.post(f"/api/teams/{team['id']}/join", headers=auth("u2"))
        assert second.status_code == 400
        assert second.json()["error_kind"] == "conflict"

        members = client.get(f"/api/teams/{team['id']}", headers=auth("u1")).json()["data"]["members"]
        assert [m["user_id"] for m in members] == ["u1", "u2"]

    def test_join_unknown_team(self, client, auth):
        resp = client.post("/api/teams/missing/join", headers=auth("u2"))
        assert resp.status_code == 404

    def test_join_by_code(self, client, auth):
        team = _create_team(client, auth)
        resp = client.post("/api/teams/join-code", json={"join_code": team["join_code"].lower()}, headers=auth("u2"))
        assert resp.status_code == 200
        assert resp.json()["data"]["id"] == team["id"]

    def test_join_by_unknown_code(self, client, auth):
        resp = client.post("/api/teams/join-code", json={"join_code": "ZZZZZZ"}, headers=auth("u2"))
        assert resp.status_code == 404


class TestRolesAndRemoval:
    def test_update_role(self, client, auth):
        team = _create_team(client, auth)
        client.post(f"/api/teams/{team['id']}/join", headers=auth("u2"))
        resp = client.put(f"/api/teams/{team['id']}/members/u2/role", json={"role": "viewer"}, headers=auth("u1"))
        assert resp.status_code == 200
        roles = {m["user_id"]: m["role"] for m in resp.json()["data"]["members"]}
        assert roles == {"u1": "admin", "u2": "viewer"}

    def test_update_role_invalid_value(self, client, auth):
        team = _create_team(client, auth)
        resp = client.put(f"/api/teams/{team['id']}/members/u1/role", json={"role": "owner"}, headers=auth("u1"))
        assert resp.status_code == 400

    def test_remove_member(self, client, auth):
        team = _create_team(client, auth)
        client.post(f"/api/teams/{team['id']}/join", headers=auth("u2"))
        resp = client.delete(f"/api/teams/{team['id']}/members/u2", headers=auth("u1"))
        assert resp.status_code == 200
        assert resp.json()["message"] == "Member removed successfully"

    def test_last_admin_cannot_leave(self, client, auth):
        team = _create_team(client, auth)
        resp = client.delete(f"/api/teams/{team['id']}/members/u1", headers=auth("u1"))
        assert resp.status_code == 400
        assert resp.json()["error_kind"] == "last_admin_guard"


class TestSettings:
    def test_admin_updates_default_role(self, client, auth):
        team = _create_team(client, auth)
        resp = client.put(
            f"/api/teams/{team['id']}/settings",
            json={"allow_member_invites": True, "default_role": "viewer", "visibility": "public"},
            headers=auth("u1"),
        )
        assert resp.status_code == 200
        assert resp.json()["data"]["settings"]["default_role"] == "viewer"

        joined = client.post(f"/api/teams/{team['id']}/join", headers=auth("u2")).json()["data"]
        roles = {m["user_id"]: m["role"] for m in joined["members"]}
        assert roles["u2"] == "viewer"

    def test_settings_update_is_not_audited(self, client, auth):
        team = _create_team(client, auth)
        client.put(f"/api/teams/{team['id']}/settings", json={"visibility": "public"}, headers=auth("u1"))
        activities = client.get(f"/api/teams/{team['id']}/activities", headers=auth("u1")).json()["data"]
        assert [a["action"] for a in activities] == ["team_created"]

    def test_non_admin_cannot_update(self, client, auth):
        team = _create_team(client, auth)
        client.post(f"/api/teams/{team['id']}/join", headers=auth("u2"))
        resp = client.put(f"/api/teams/{team['id']}/settings", json={"visibility": "public"}, headers=auth("u2"))
        assert resp.status_code == 403

    def test_admin_default_role_is_not_allowed(self, client, auth):
        team = _create_team(client, auth)
        resp = client.put(f"/api/teams/{team['id']}/settings", json={"default_role": "admin"}, headers=auth("u1"))
        assert resp.status_code == 400


class TestHealth:
    def test_health(self, client):
        body = client.get("/health").json()
        assert body["status"] == "healthy"
        assert body["storage"] == "memory"
