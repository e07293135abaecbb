"""
Discussion Service - Team chat messages

Messages are committed and broadcast while holding the team's lock, so the
order members see ``new_message`` events matches the order messages were
stored and paged back.
"""

import logging
from typing import List, Optional, Tuple

from models.activity_models import MessageSentDetails, TargetEntity
from models.api_models import AuthenticatedUserResponse, Pagination
from models.message_models import Message, MessageAttachment, MessageResponse, MessageType
from repositories.record_store import DESCENDING_SORT, RecordStore
from services.activity_recorder import ActivityRecorder, AuditOutcome
from services.auth_service import AuthenticationService
from services.errors import NotFoundError, ValidationError
from services.membership_authority import MembershipAuthority
from utils.websocket_manager import ServerEvent, WebSocketManager

logger = logging.getLogger(__name__)


class DiscussionService:
    """Lists and posts team messages"""

    def __init__(
        self,
        record_store: RecordStore,
        authority: MembershipAuthority,
        activity_recorder: ActivityRecorder,
        auth_service: AuthenticationService,
        websocket_manager: WebSocketManager,
        max_length: int = 10000,
    ):
        self.record_store = record_store
        self.authority = authority
        self.activity_recorder = activity_recorder
        self.auth_service = auth_service
        self.websocket_manager = websocket_manager
        self.max_length = max_length

    async def _populate(self, messages: List[Message]) -> List[MessageResponse]:
        user_ids = [m.user_id for m in messages] + [uid for m in messages for uid in m.mentions]
        users = await self.auth_service.get_users_by_ids(user_ids)
        return [
            MessageResponse(
                **m.model_dump(),
                author=users.get(m.user_id),
                mentioned_users=[users[uid] for uid in m.mentions if uid in users],
            )
            for m in messages
        ]

    async def list_messages(
        self, team_id: str, caller_id: str, page: int = 1, limit: int = 50
    ) -> Tuple[List[MessageResponse], Pagination]:
        """
        Get one page of team messages

        Page 1 holds the newest messages; each page is returned oldest-first
        so it can be appended to a chat view as-is.

        Args:
            team_id: Team ID
            caller_id: Requesting user (must be a member)
            page: 1-based page number
            limit: Page size

        Returns:
            (messages, pagination)
        """
        if page < 1 or limit < 1:
            raise ValidationError("page and limit must be positive")
        await self.authority.require_member(team_id, caller_id)

        filter = {"team_id": team_id}
        records = await self.record_store.find(
            "messages", filter, sort=DESCENDING_SORT, skip=(page - 1) * limit, limit=limit
        )
        records.reverse()
        total = await self.record_store.count("messages", filter)

        messages = await self._populate([Message.model_validate(r) for r in records])
        return messages, Pagination.build(page, limit, total)

    async def send_message(
        self,
        team_id: str,
        author: AuthenticatedUserResponse,
        content: str,
        mentions: Optional[List[str]] = None,
        attachments: Optional[List[MessageAttachment]] = None,
        parent_message_id: Optional[str] = None,
    ) -> Tuple[MessageResponse, AuditOutcome]:
        """Post a message to the team chat and notify the team room"""
        content = (content or "").strip()
        if not content:
            raise ValidationError("Message content cannot be empty")
        if len(content) > self.max_length:
            raise ValidationError(f"Message content cannot exceed {self.max_length} characters")

        await self.authority.require_member(team_id, author.user_id)

        if parent_message_id:
            parent = await self.record_store.find_one("messages", {"id": parent_message_id, "team_id": team_id})
            if not parent:
                raise NotFoundError("Parent message not found")

        async with self.authority.team_lock(team_id):
            record = await self.record_store.insert("messages", {
                "team_id": team_id,
                "user_id": author.user_id,
                "content": content,
                "type": MessageType.TEXT.value,
                "attachments": [a.model_dump() for a in attachments or []],
                "mentions": list(dict.fromkeys(mentions or [])),
                "parent_message_id": parent_message_id,
                "is_edited": False,
            })
            message = (await self._populate([Message.model_validate(record)]))[0]
            await self.websocket_manager.broadcast_to_room(team_id, ServerEvent.NEW_MESSAGE, message)

        logger.info(f"💬 Message {message.id} posted to team {team_id} by {author.user_id}")

        outcome = await self.activity_recorder.record_details(
            team_id,
            author.user_id,
            MessageSentDetails(message_id=message.id),
            f"{author.name} sent a message in team chat",
            target_entity=TargetEntity.MESSAGE,
            target_id=message.id,
        )
        return message, outcome
