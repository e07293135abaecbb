"""
Realtime API - WebSocket endpoint for team rooms

Clients join one team room at a time, exchange typing indicators and
receive the events the team services broadcast to that room.
"""

import logging
from typing import Any, Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from config import settings
from services.errors import TeamNotFoundError
from services.service_container import ServiceContainer
from utils.auth_middleware import websocket_token
from utils.websocket_manager import ClientEvent, RoomConnection, ServerEvent

logger = logging.getLogger(__name__)

router = APIRouter(tags=["realtime"])


class TypingIndicator(BaseModel):
    """typing_start / typing_stop payload (camelCase on the wire)"""
    model_config = ConfigDict(populate_by_name=True)

    team_id: Optional[str] = Field(None, alias="teamId")
    user_id: Optional[str] = Field(None, alias="userId")
    user_name: Optional[str] = Field(None, alias="userName")


def _team_id_from(data: Any) -> Optional[str]:
    if isinstance(data, str):
        return data.strip() or None
    if isinstance(data, dict):
        return data.get("teamId") or data.get("team_id")
    return None


async def handle_client_event(container: ServiceContainer, connection: RoomConnection, frame: Any):
    """Dispatch one client frame"""
    ws_manager = container.websocket_manager

    if not isinstance(frame, dict):
        await connection.send(ServerEvent.ERROR.value, {"message": "Frames must be JSON objects"})
        return

    event = frame.get("type")
    data = frame.get("data")

    if event == ClientEvent.JOIN_TEAM_ROOM:
        team_id = _team_id_from(data)
        if not team_id:
            await connection.send(ServerEvent.ERROR.value, {"message": "Team ID is required"})
            return

        if settings.REALTIME_ENFORCE_MEMBERSHIP:
            try:
                allowed = await container.membership_authority.is_member(team_id, connection.user_id)
            except TeamNotFoundError:
                allowed = False
            if not allowed:
                logger.warning(f"⛔ User {connection.user_id} refused room {team_id}: not a member")
                await connection.send(ServerEvent.ERROR.value, {"message": "Not a member of this team"})
                return

        ws_manager.join_team_room(connection, team_id)
        await connection.send(ServerEvent.JOINED_TEAM_ROOM.value, {"team_id": team_id})

    elif event == ClientEvent.LEAVE_TEAM_ROOM:
        team_id = ws_manager.leave_team_room(connection)
        await connection.send(ServerEvent.LEFT_TEAM_ROOM.value, {"team_id": team_id})

    elif event in (ClientEvent.TYPING_START, ClientEvent.TYPING_STOP):
        try:
            indicator = TypingIndicator.model_validate(data or {})
        except PydanticValidationError:
            await connection.send(ServerEvent.ERROR.value, {"message": "Invalid typing payload"})
            return

        team_id = indicator.team_id or connection.team_id
        if not team_id:
            await connection.send(ServerEvent.ERROR.value, {"message": "Team ID is required"})
            return
        if settings.REALTIME_ENFORCE_MEMBERSHIP and team_id != connection.team_id:
            await connection.send(ServerEvent.ERROR.value, {"message": "Join the team room before typing in it"})
            return

        # Identity comes from the authenticated socket, never the payload
        started = event == ClientEvent.TYPING_START
        payload = {"userId": connection.user_id}
        if started:
            payload["userName"] = connection.user_name or indicator.user_name
        await ws_manager.relay_typing(connection, team_id, payload, started=started)

    elif event == ClientEvent.HEARTBEAT:
        await connection.send(ServerEvent.HEARTBEAT_ACK.value)

    else:
        await connection.send(ServerEvent.ERROR.value, {"message": f"Unknown event: {event}"})


@router.websocket("/api/ws/teams")
async def team_rooms_websocket(websocket: WebSocket):
    """
    WebSocket endpoint for team rooms

    Requires the bearer token as ``?token=`` or an Authorization header
    """
    container: ServiceContainer = websocket.app.state.container

    token = websocket_token(websocket)
    if not token:
        logger.error("❌ Team WebSocket missing token")
        await websocket.close(code=4001, reason="Missing token")
        return

    user = await container.auth_service.get_current_user(token)
    if not user:
        logger.error("❌ Team WebSocket invalid token")
        await websocket.close(code=4003, reason="Invalid token")
        return

    ws_manager = container.websocket_manager
    connection = await ws_manager.connect(websocket, user.user_id, user.name)

    try:
        while True:
            try:
                frame = await websocket.receive_json()
            except (ValueError, KeyError, TypeError):
                # Undecodable text or a binary frame
                await connection.send(ServerEvent.ERROR.value, {"message": "Invalid JSON"})
                continue
            await handle_client_event(container, connection, frame)
    except WebSocketDisconnect:
        logger.info(f"🔌 Team WebSocket disconnected for user {user.user_id}")
    finally:
        ws_manager.disconnect(connection)
