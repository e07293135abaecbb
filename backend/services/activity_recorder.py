"""
Activity Recorder - Append-only team audit trail

Audit writes are best-effort and run after the business mutation has
committed: a failed write is logged and surfaced as a warning, and never
rolls back or fails the operation that triggered it.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError as PydanticValidationError

from models.activity_models import (
    Activity, ActivityAction, ActivityDetails, ActivityResponse, TargetEntity,
    activity_details_adapter,
)
from models.api_models import Pagination
from repositories.record_store import DESCENDING_SORT, RecordStore
from services.auth_service import AuthenticationService
from services.errors import InvalidActionError, ValidationError
from services.membership_authority import MembershipAuthority
from utils.logging_config import team_log
from utils.websocket_manager import ServerEvent, WebSocketManager

logger = logging.getLogger(__name__)


@dataclass
class AuditOutcome:
    """Result of a best-effort audit write"""
    activity: Optional[Activity] = None
    warning: Optional[str] = None

    @property
    def warnings(self) -> List[str]:
        return [self.warning] if self.warning else []


class ActivityRecorder:
    """Writes and lists team activities"""

    def __init__(
        self,
        record_store: RecordStore,
        authority: MembershipAuthority,
        auth_service: AuthenticationService,
        websocket_manager: WebSocketManager,
    ):
        self.record_store = record_store
        self.authority = authority
        self.auth_service = auth_service
        self.websocket_manager = websocket_manager

    @staticmethod
    def build_details(action: str, metadata: Optional[Dict[str, Any]] = None) -> ActivityDetails:
        """Validate an action name and its metadata into the typed variant"""
        if action not in ActivityAction._value2member_map_:
            raise InvalidActionError(f"Unknown activity action: {action}")
        try:
            return activity_details_adapter.validate_python({**(metadata or {}), "action": action})
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid metadata for {action}: {e.errors()[0]['msg']}")

    async def record(
        self,
        team_id: str,
        actor_id: str,
        action: str,
        description: str,
        metadata: Optional[Dict[str, Any]] = None,
        target_entity: Optional[TargetEntity] = None,
        target_id: Optional[str] = None,
    ) -> AuditOutcome:
        """Validate then record; only validation errors raise"""
        details = self.build_details(action, metadata)
        return await self.record_details(team_id, actor_id, details, description, target_entity, target_id)

    async def record_details(
        self,
        team_id: str,
        actor_id: str,
        details: ActivityDetails,
        description: str,
        target_entity: Optional[TargetEntity] = None,
        target_id: Optional[str] = None,
    ) -> AuditOutcome:
        try:
            record = await self.record_store.insert("activities", {
                "team_id": team_id,
                "user_id": actor_id,
                "action": details.action,
                "description": description,
                "target_entity": TargetEntity(target_entity).value if target_entity else None,
                "target_id": target_id,
                "metadata": details.metadata(),
            })
        except Exception as e:
            team_log.audit_failed(team_id, details.action, str(e))
            return AuditOutcome(warning=f"Activity '{details.action}' could not be recorded")

        activity = Activity.model_validate(record)
        await self.websocket_manager.broadcast_to_room(team_id, ServerEvent.NEW_ACTIVITY, activity)
        return AuditOutcome(activity=activity)

    async def list_activities(
        self, team_id: str, caller_id: str, page: int = 1, limit: int = 20
    ) -> Tuple[List[ActivityResponse], Pagination]:
        """Newest-first activity feed for members"""
        if page < 1 or limit < 1:
            raise ValidationError("page and limit must be positive")
        await self.authority.require_member(team_id, caller_id)

        filter = {"team_id": team_id}
        records = await self.record_store.find(
            "activities", filter, sort=DESCENDING_SORT, skip=(page - 1) * limit, limit=limit
        )
        total = await self.record_store.count("activities", filter)

        users = await self.auth_service.get_users_by_ids(r["user_id"] for r in records)
        activities = [ActivityResponse(**r, user=users.get(r["user_id"])) for r in records]
        return activities, Pagination.build(page, limit, total)
