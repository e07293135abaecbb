"""
Membership Authority - Team membership checks and invariant enforcement

Every membership mutation goes through ``mutate``: the team is loaded,
changed and written back while holding that team's lock, so concurrent
requests cannot both pass an already-member or last-admin check before
either commits. A rejected mutation raises before anything is written.
"""

import asyncio
import logging
import weakref
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator, Callable, Tuple, TypeVar

from models.team_models import Membership, Team, TeamRole
from repositories.record_store import RecordStore
from services.errors import (
    AlreadyMemberError, ForbiddenError, LastAdminGuardError,
    MemberNotFoundError, TeamNotFoundError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class MembershipAuthority:
    """Answers is-member / is-admin and owns the membership invariants"""

    def __init__(self, record_store: RecordStore):
        self.record_store = record_store
        # Entries vanish once no task holds or awaits the lock
        self._team_locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    def team_lock(self, team_id: str) -> asyncio.Lock:
        """Per-team lock serializing mutations (and message commits) of one team"""
        lock = self._team_locks.get(team_id)
        if lock is None:
            lock = asyncio.Lock()
            self._team_locks[team_id] = lock
        return lock

    async def load_team(self, team_id: str) -> Team:
        record = await self.record_store.find_one("teams", {"id": team_id})
        if not record:
            raise TeamNotFoundError()
        return Team.model_validate(record)

    async def is_member(self, team_id: str, user_id: str) -> bool:
        team = await self.load_team(team_id)
        return team.find_member(user_id) is not None

    async def is_admin(self, team_id: str, user_id: str) -> bool:
        team = await self.load_team(team_id)
        member = team.find_member(user_id)
        return member is not None and member.role == TeamRole.ADMIN

    async def require_member(self, team_id: str, user_id: str, message: str = "Access denied") -> Team:
        team = await self.load_team(team_id)
        if team.find_member(user_id) is None:
            raise ForbiddenError(message)
        return team

    async def require_admin(self, team_id: str, user_id: str, message: str = "Only team admins can do this") -> Team:
        team = await self.load_team(team_id)
        member = team.find_member(user_id)
        if member is None or member.role != TeamRole.ADMIN:
            raise ForbiddenError(message)
        return team

    # =====================
    # AGGREGATE RULES
    # =====================

    @staticmethod
    def add_member(team: Team, user_id: str, role: TeamRole) -> Membership:
        if team.find_member(user_id) is not None:
            raise AlreadyMemberError()
        membership = Membership(user_id=user_id, role=role, joined_at=datetime.now(timezone.utc))
        team.members.append(membership)
        return membership

    @staticmethod
    def remove_member(team: Team, target_user_id: str, requester_id: str) -> Membership:
        """Remove a member; self-leave is always allowed unless it strands the team without an admin"""
        member = team.find_member(target_user_id)
        if member is None:
            raise MemberNotFoundError()

        requester = team.find_member(requester_id)
        requester_is_admin = requester is not None and requester.role == TeamRole.ADMIN
        is_self = target_user_id == requester_id
        if not requester_is_admin and not is_self:
            raise ForbiddenError("Only admins can remove other members")

        if is_self and member.role == TeamRole.ADMIN and team.admin_count() == 1:
            raise LastAdminGuardError()

        team.members = [m for m in team.members if m.user_id != target_user_id]
        return member

    @staticmethod
    def change_role(team: Team, target_user_id: str, new_role: TeamRole, requester_id: str) -> TeamRole:
        """Set a member's role in place and return the previous role"""
        requester = team.find_member(requester_id)
        if requester is None or requester.role != TeamRole.ADMIN:
            raise ForbiddenError("Only team admins can change roles")

        member = team.find_member(target_user_id)
        if member is None:
            raise MemberNotFoundError()

        old_role = TeamRole(member.role)
        new_role = TeamRole(new_role)
        if old_role == TeamRole.ADMIN and new_role != TeamRole.ADMIN and team.admin_count() == 1:
            raise LastAdminGuardError("Cannot demote the only admin. Assign another admin first.")

        member.role = new_role.value
        return old_role

    # =====================
    # ATOMIC MUTATION
    # =====================

    @asynccontextmanager
    async def mutation(self, team_id: str, mutation: Callable[[Team], T]) -> AsyncIterator[Tuple[Team, T]]:
        """
        Apply a membership mutation atomically and keep the team locked

        The body of the ``async with`` runs after the write and before the
        lock is released, so whatever it broadcasts reaches the team room
        in commit order.

        Args:
            team_id: Team ID
            mutation: Callable applying one of the aggregate rules; raising aborts the write

        Yields:
            (updated team, mutation result)
        """
        async with self.team_lock(team_id):
            team = await self.load_team(team_id)
            result = mutation(team)

            record = await self.record_store.update_one(
                "teams",
                {"id": team_id},
                {"members": [m.model_dump() for m in team.members]},
            )
            if record is None:
                raise TeamNotFoundError()

            yield Team.model_validate(record), result

    async def mutate(self, team_id: str, mutation: Callable[[Team], T]) -> Tuple[Team, T]:
        """Apply a membership mutation atomically for one team"""
        async with self.mutation(team_id, mutation) as committed:
            return committed
