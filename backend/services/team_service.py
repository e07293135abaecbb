"""
Team Service - Handles team lifecycle, membership and settings
"""

import logging
import secrets
import string
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Tuple, TypeVar

from models.activity_models import (
    ActivityDetails, MemberJoinedDetails, MemberLeftDetails, RoleChangedDetails,
    TargetEntity, TeamCreatedDetails,
)
from models.api_models import AuthenticatedUserResponse
from models.team_models import (
    Membership, ProjectResponse, Team, TeamMemberResponse, TeamResponse,
    TeamRole, TeamSettings,
)
from repositories.record_store import DuplicateRecordError, RecordStore, utc_now
from services.activity_recorder import ActivityRecorder, AuditOutcome
from services.auth_service import AuthenticationService
from services.errors import (
    DuplicateJoinCodeError, ForbiddenError, TeamError, TeamNotFoundError,
    UserNotFoundError, ValidationError,
)
from services.membership_authority import MembershipAuthority
from utils.logging_config import team_log
from utils.websocket_manager import ServerEvent, WebSocketManager

logger = logging.getLogger(__name__)

JOIN_CODE_ALPHABET = string.ascii_uppercase + string.digits

T = TypeVar("T")


class TeamService:
    """
    Service for managing teams and their members

    Handles:
    - Team creation with a unique join code
    - Invite / join / leave / remove and role changes
    - Team settings
    - Audit entries and room notifications for each change
    """

    def __init__(
        self,
        record_store: RecordStore,
        authority: MembershipAuthority,
        activity_recorder: ActivityRecorder,
        auth_service: AuthenticationService,
        websocket_manager: WebSocketManager,
        join_code_length: int = 6,
        join_code_attempts: int = 10,
    ):
        self.record_store = record_store
        self.authority = authority
        self.activity_recorder = activity_recorder
        self.auth_service = auth_service
        self.websocket_manager = websocket_manager
        self.join_code_length = join_code_length
        self.join_code_attempts = join_code_attempts

    def generate_join_code(self) -> str:
        return "".join(secrets.choice(JOIN_CODE_ALPHABET) for _ in range(self.join_code_length))

    # =====================
    # READS
    # =====================

    async def to_response(self, team: Team) -> TeamResponse:
        return (await self.to_responses([team]))[0]

    async def to_responses(self, teams: List[Team]) -> List[TeamResponse]:
        """Populate creators and member users in one lookup"""
        user_ids = [t.created_by for t in teams] + [m.user_id for t in teams for m in t.members]
        users = await self.auth_service.get_users_by_ids(user_ids)

        responses = []
        for team in teams:
            responses.append(TeamResponse(
                id=team.id,
                name=team.name,
                description=team.description,
                created_by=team.created_by,
                creator=users.get(team.created_by),
                members=[
                    TeamMemberResponse(user_id=m.user_id, role=m.role, joined_at=m.joined_at, user=users.get(m.user_id))
                    for m in team.members
                ],
                member_count=len(team.members),
                settings=team.settings,
                join_code=team.join_code,
                created_at=team.created_at,
                updated_at=team.updated_at,
            ))
        return responses

    async def list_teams(self) -> List[TeamResponse]:
        """Directory of every team"""
        records = await self.record_store.find("teams", {}, sort=[("created_at", -1)])
        return await self.to_responses([Team.model_validate(r) for r in records])

    async def list_user_teams(self, user_id: str) -> List[TeamResponse]:
        """Teams the user belongs to"""
        records = await self.record_store.find("teams", {"members.user_id": user_id}, sort=[("created_at", -1)])
        return await self.to_responses([Team.model_validate(r) for r in records])

    async def get_team(self, team_id: str, caller_id: str) -> TeamResponse:
        team = await self.authority.require_member(
            team_id, caller_id, "Access denied. You are not a member of this team."
        )
        return await self.to_response(team)

    async def list_team_projects(self, team_id: str, caller_id: str) -> List[ProjectResponse]:
        await self.authority.require_member(team_id, caller_id)
        records = await self.record_store.find("projects", {"team_id": team_id}, sort=[("created_at", -1)])
        return [ProjectResponse.model_validate(r) for r in records]

    # =====================
    # CREATE
    # =====================

    async def create_team(
        self,
        name: str,
        description: Optional[str],
        creator: AuthenticatedUserResponse,
    ) -> Tuple[TeamResponse, AuditOutcome]:
        """
        Create a new team with the creator as its only admin

        Args:
            name: Team name (trimmed, must not be empty)
            description: Optional description
            creator: Caller identity

        Returns:
            (team snapshot, audit outcome)
        """
        name = (name or "").strip()
        if not name:
            raise ValidationError("Team name is required")
        description = (description or "").strip() or None

        record: Dict[str, Any] = {
            "name": name,
            "description": description,
            "created_by": creator.user_id,
            "members": [Membership(user_id=creator.user_id, role=TeamRole.ADMIN, joined_at=utc_now()).model_dump()],
            "settings": TeamSettings().model_dump(),
        }

        stored = None
        for attempt in range(1, self.join_code_attempts + 1):
            record["join_code"] = self.generate_join_code()
            try:
                stored = await self.record_store.insert("teams", record)
                break
            except DuplicateRecordError as e:
                if e.field != "join_code":
                    raise
                logger.warning(f"⚠️ Join code collision on attempt {attempt}, regenerating")
        if stored is None:
            team_log.mutation_rejected("CREATE", None, creator.user_id, DuplicateJoinCodeError.kind)
            raise DuplicateJoinCodeError()

        team = Team.model_validate(stored)
        team_log.mutation_success("CREATE", team.id, creator.user_id, join_code=team.join_code)

        outcome = await self.activity_recorder.record_details(
            team.id,
            creator.user_id,
            TeamCreatedDetails(),
            f'{creator.name} created team "{team.name}"',
            target_entity=TargetEntity.TEAM,
            target_id=team.id,
        )
        return await self.to_response(team), outcome

    # =====================
    # MEMBERSHIP
    # =====================

    @asynccontextmanager
    async def _mutation(
        self, action: str, team_id: str, actor_id: str, mutation: Callable[[Team], T]
    ) -> AsyncIterator[Tuple[Team, T]]:
        """Commit a membership change; the team stays locked for the body"""
        try:
            async with self.authority.mutation(team_id, mutation) as committed:
                yield committed
        except TeamError as e:
            team_log.mutation_rejected(action, team_id, actor_id, e.kind)
            raise

    async def _record_and_notify(
        self,
        team: Team,
        actor_id: str,
        details: ActivityDetails,
        description: str,
        event: ServerEvent,
        payload: Dict[str, Any],
    ) -> Tuple[TeamResponse, AuditOutcome]:
        """Audit a committed membership change and push it to the team room (caller holds the team lock)"""
        outcome = await self.activity_recorder.record_details(
            team.id, actor_id, details, description, target_entity=TargetEntity.TEAM, target_id=team.id
        )
        response = await self.to_response(team)

        # Notifications are best-effort; the change is already committed
        try:
            await self.websocket_manager.broadcast_to_room(
                team.id, event, {"team_id": team.id, **payload, "activity": outcome.activity}
            )
            await self.websocket_manager.broadcast_to_room(team.id, ServerEvent.TEAM_UPDATED, response)
        except Exception as e:
            logger.warning(f"⚠️ Failed to notify team {team.id} of {event.value}: {e}")

        return response, outcome

    async def invite_member(
        self,
        team_id: str,
        inviter: AuthenticatedUserResponse,
        email: str,
        role: TeamRole = TeamRole.MEMBER,
    ) -> Tuple[TeamResponse, AuditOutcome]:
        """Add an existing user, found by email, to the team"""
        try:
            await self.authority.require_admin(team_id, inviter.user_id, "Only team admins can invite members")
            user = await self.auth_service.find_user_by_email(email)
            if not user:
                raise UserNotFoundError()
        except TeamError as e:
            team_log.mutation_rejected("INVITE", team_id, inviter.user_id, e.kind)
            raise

        role = TeamRole(role)

        def apply(team: Team) -> Membership:
            # Re-check on the locked snapshot; the inviter may have been demoted meanwhile
            member = team.find_member(inviter.user_id)
            if member is None or member.role != TeamRole.ADMIN:
                raise ForbiddenError("Only team admins can invite members")
            return self.authority.add_member(team, user["id"], role)

        async with self._mutation("INVITE", team_id, inviter.user_id, apply) as (team, membership):
            team_log.mutation_success(
                "INVITE", team_id, inviter.user_id, member_id=membership.user_id, role=role.value
            )
            return await self._record_and_notify(
                team,
                inviter.user_id,
                MemberJoinedDetails(invited_user=user["id"], role=role),
                f"{inviter.name} invited {user.get('name', email)} to the team",
                ServerEvent.MEMBER_JOINED,
                {"member_id": user["id"], "role": role.value},
            )

    async def join_team(self, team_id: str, caller: AuthenticatedUserResponse) -> Tuple[TeamResponse, AuditOutcome]:
        """Self-join with the team's default role"""

        def apply(team: Team) -> Membership:
            return self.authority.add_member(team, caller.user_id, TeamRole(team.settings.default_role))

        async with self._mutation("JOIN", team_id, caller.user_id, apply) as (team, membership):
            team_log.mutation_success("JOIN", team_id, caller.user_id, role=membership.role)
            return await self._record_and_notify(
                team,
                caller.user_id,
                MemberJoinedDetails(role=membership.role),
                f"{caller.name} joined the team",
                ServerEvent.MEMBER_JOINED,
                {"member_id": caller.user_id, "role": membership.role},
            )

    async def join_by_code(self, join_code: str, caller: AuthenticatedUserResponse) -> Tuple[TeamResponse, AuditOutcome]:
        code = (join_code or "").strip().upper()
        if not code:
            raise ValidationError("Join code is required")
        record = await self.record_store.find_one("teams", {"join_code": code})
        if not record:
            team_log.mutation_rejected("JOIN", None, caller.user_id, TeamNotFoundError.kind)
            raise TeamNotFoundError("No team matches this join code")
        return await self.join_team(record["id"], caller)

    async def update_member_role(
        self,
        team_id: str,
        requester: AuthenticatedUserResponse,
        member_id: str,
        role: TeamRole,
    ) -> Tuple[TeamResponse, AuditOutcome]:
        """Change a member's role (admins only, never demoting the last admin)"""
        new_role = TeamRole(role)
        users = await self.auth_service.get_users_by_ids([member_id])
        member_name = users[member_id].name if member_id in users else "a member"

        async with self._mutation(
            "ROLE_CHANGE",
            team_id,
            requester.user_id,
            lambda t: self.authority.change_role(t, member_id, new_role, requester.user_id),
        ) as (team, old_role):
            team_log.mutation_success(
                "ROLE_CHANGE", team_id, requester.user_id,
                member_id=member_id, old_role=old_role.value, new_role=new_role.value,
            )
            return await self._record_and_notify(
                team,
                requester.user_id,
                RoleChangedDetails(member_id=member_id, old_role=old_role, new_role=new_role),
                f"{requester.name} changed {member_name}'s role from {old_role.value} to {new_role.value}",
                ServerEvent.MEMBER_ROLE_UPDATED,
                {"member_id": member_id, "old_role": old_role.value, "new_role": new_role.value},
            )

    async def remove_member(
        self,
        team_id: str,
        requester: AuthenticatedUserResponse,
        member_id: str,
    ) -> Tuple[TeamResponse, AuditOutcome]:
        """Remove a member, or leave when member_id is the requester"""
        is_self = member_id == requester.user_id
        if is_self:
            details = MemberLeftDetails(member_id=member_id)
            description = f"{requester.name} left the team"
        else:
            users = await self.auth_service.get_users_by_ids([member_id])
            member_name = users[member_id].name if member_id in users else "a member"
            details = MemberLeftDetails(member_id=member_id, removed_by=requester.user_id)
            description = f"{requester.name} removed {member_name} from the team"

        async with self._mutation(
            "REMOVE",
            team_id,
            requester.user_id,
            lambda t: self.authority.remove_member(t, member_id, requester.user_id),
        ) as (team, _removed):
            team_log.mutation_success("REMOVE", team_id, requester.user_id, member_id=member_id, self_leave=is_self)
            result = await self._record_and_notify(
                team,
                requester.user_id,
                details,
                description,
                ServerEvent.MEMBER_LEFT,
                {"member_id": member_id, "removed_by": None if is_self else requester.user_id},
            )
            # Former members stop receiving the room's traffic
            await self.websocket_manager.evict_user(team_id, member_id)
            return result

    # =====================
    # SETTINGS
    # =====================

    async def update_settings(
        self,
        team_id: str,
        requester: AuthenticatedUserResponse,
        settings: TeamSettings,
    ) -> TeamResponse:
        """Replace team settings (admins only); not audited"""
        async with self.authority.team_lock(team_id):
            team = await self.authority.load_team(team_id)
            member = team.find_member(requester.user_id)
            if member is None or member.role != TeamRole.ADMIN:
                team_log.mutation_rejected("SETTINGS", team_id, requester.user_id, ForbiddenError.kind)
                raise ForbiddenError("Only team admins can update settings")

            record = await self.record_store.update_one("teams", {"id": team_id}, {"settings": settings.model_dump()})
            if record is None:
                raise TeamNotFoundError()

        team_log.mutation_success("SETTINGS", team_id, requester.user_id)
        return await self.to_response(Team.model_validate(record))
