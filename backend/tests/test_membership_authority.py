"""Tests for membership invariants: at least one admin, no duplicate members."""

from __future__ import annotations

import asyncio

import pytest

from conftest import identity, run, team_record
from models.team_models import TeamRole
from services.errors import (
    AlreadyMemberError, ForbiddenError, LastAdminGuardError,
    MemberNotFoundError, TeamNotFoundError,
)


def _insert_team(store, team_id, members):
    run(store.insert("teams", team_record(team_id, members)))


def _members(container, team_id):
    team = run(container.membership_authority.load_team(team_id))
    return {m.user_id: m.role for m in team.members}


def _activity_count(store, team_id):
    return run(store.count("activities", {"team_id": team_id}))


class TestMembershipChecks:
    def test_is_member_and_is_admin(self, container, store):
        _insert_team(store, "t1", [("u1", "admin"), ("u2", "member")])
        authority = container.membership_authority
        assert run(authority.is_member("t1", "u2")) is True
        assert run(authority.is_member("t1", "u3")) is False
        assert run(authority.is_admin("t1", "u1")) is True
        assert run(authority.is_admin("t1", "u2")) is False

    def test_unknown_team(self, container):
        with pytest.raises(TeamNotFoundError):
            run(container.membership_authority.is_member("missing", "u1"))


class TestRemoveMember:
    def test_two_admins_then_last_admin_guard(self, container, store):
        """U1 leaves a two-admin team; U2, now the only admin, cannot."""
        _insert_team(store, "t1", [("u1", "admin"), ("u2", "admin")])
        service = container.team_service

        run(service.remove_member("t1", identity("u1"), "u1"))
        assert _members(container, "t1") == {"u2": "admin"}

        with pytest.raises(LastAdminGuardError):
            run(service.remove_member("t1", identity("u2"), "u2"))
        assert _members(container, "t1") == {"u2": "admin"}

    def test_rejected_removal_writes_nothing(self, container, store):
        _insert_team(store, "t1", [("u1", "admin"), ("u2", "member")])
        with pytest.raises(LastAdminGuardError):
            run(container.team_service.remove_member("t1", identity("u1"), "u1"))
        assert _members(container, "t1") == {"u1": "admin", "u2": "member"}
        assert _activity_count(store, "t1") == 0

    def test_member_cannot_remove_others(self, container, store):
        _insert_team(store, "t1", [("u1", "admin"), ("u2", "member"), ("u4", "viewer")])
        with pytest.raises(ForbiddenError):
            run(container.team_service.remove_member("t1", identity("u2"), "u4"))

    def test_member_can_leave(self, container, store):
        _insert_team(store, "t1", [("u1", "admin"), ("u2", "member")])
        _, outcome = run(container.team_service.remove_member("t1", identity("u2"), "u2"))
        assert _members(container, "t1") == {"u1": "admin"}
        assert outcome.activity.action == "member_left"
        assert outcome.activity.metadata == {"member_id": "u2"}

    def test_admin_removal_records_remover(self, container, store):
        _insert_team(store, "t1", [("u1", "admin"), ("u2", "member")])
        _, outcome = run(container.team_service.remove_member("t1", identity("u1"), "u2"))
        assert outcome.activity.metadata == {"member_id": "u2", "removed_by": "u1"}

    def test_removing_a_non_member(self, container, store):
        _insert_team(store, "t1", [("u1", "admin")])
        with pytest.raises(MemberNotFoundError):
            run(container.team_service.remove_member("t1", identity("u1"), "u3"))

    def test_concurrent_self_leave_keeps_one_admin(self, container, store):
        _insert_team(store, "t1", [("u1", "admin"), ("u2", "admin")])
        service = container.team_service

        async def both_leave():
            return await asyncio.gather(
                service.remove_member("t1", identity("u1"), "u1"),
                service.remove_member("t1", identity("u2"), "u2"),
                return_exceptions=True,
            )

        results = run(both_leave())
        failures = [r for r in results if isinstance(r, Exception)]
        assert len(failures) == 1
        assert isinstance(failures[0], LastAdminGuardError)
        assert list(_members(container, "t1").values()) == ["admin"]


class TestAddMember:
    def test_join_twice_conflicts(self, container, store):
        _insert_team(store, "t1", [("u1", "admin")])
        run(container.team_service.join_team("t1", identity("u2")))
        with pytest.raises(AlreadyMemberError):
            run(container.team_service.join_team("t1", identity("u2")))
        assert _members(container, "t1") == {"u1": "admin", "u2": "member"}

    def test_concurrent_joins_add_once(self, container, store):
        _insert_team(store, "t1", [("u1", "admin")])
        service = container.team_service

        async def join_twice():
            return await asyncio.gather(
                service.join_team("t1", identity("u2")),
                service.join_team("t1", identity("u2")),
                return_exceptions=True,
            )

        results = run(join_twice())
        assert sum(isinstance(r, AlreadyMemberError) for r in results) == 1
        team = run(container.membership_authority.load_team("t1"))
        assert [m.user_id for m in team.members].count("u2") == 1


class TestChangeRole:
    def test_admin_promotes_member(self, container, store):
        _insert_team(store, "t1", [("u1", "admin"), ("u2", "member")])
        _, outcome = run(container.team_service.update_member_role("t1", identity("u1"), "u2", TeamRole.ADMIN))
        assert _members(container, "t1")["u2"] == "admin"
        assert outcome.activity.metadata == {"member_id": "u2", "old_role": "member", "new_role": "admin"}

    def test_only_admin_cannot_be_demoted(self, container, store):
        _insert_team(store, "t1", [("u1", "admin"), ("u2", "member")])
        with pytest.raises(LastAdminGuardError):
            run(container.team_service.update_member_role("t1", identity("u1"), "u1", TeamRole.MEMBER))

    def test_non_admin_cannot_change_roles(self, container, store):
        _insert_team(store, "t1", [("u1", "admin"), ("u2", "member")])
        with pytest.raises(ForbiddenError):
            run(container.team_service.update_member_role("t1", identity("u2"), "u2", TeamRole.ADMIN))

    def test_unknown_member(self, container, store):
        _insert_team(store, "t1", [("u1", "admin")])
        with pytest.raises(MemberNotFoundError):
            run(container.team_service.update_member_role("t1", identity("u1"), "u3", TeamRole.VIEWER))


class TestTeamLocks:
    def test_unknown_team_leaves_no_lock(self, container):
        async def join_missing():
            try:
                await container.team_service.join_team("missing", identity("u2"))
            except TeamNotFoundError:
                return True
            return False

        assert run(join_missing())
        assert "missing" not in container.membership_authority._team_locks

    def test_lock_is_dropped_after_mutation(self, container, store):
        _insert_team(store, "t1", [("u1", "admin")])
        run(container.team_service.join_team("t1", identity("u2")))
        assert len(container.membership_authority._team_locks) == 0
