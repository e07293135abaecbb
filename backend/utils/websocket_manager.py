"""
WebSocket connection manager for team rooms

Each connection sits in at most one team room. Joining a room leaves the
previous one; joining twice or leaving a room you are not in is a no-op.
Broadcasts are at-most-once: a socket that is gone or not in the room at
send time misses the event, and clients refetch over HTTP on reconnect.
"""

import asyncio
import logging
import uuid
import weakref
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from fastapi import WebSocket
from fastapi.encoders import jsonable_encoder

from utils.logging_config import realtime_log

logger = logging.getLogger(__name__)


class ClientEvent(str, Enum):
    """Events accepted from clients"""
    JOIN_TEAM_ROOM = "join_team_room"
    LEAVE_TEAM_ROOM = "leave_team_room"
    TYPING_START = "typing_start"
    TYPING_STOP = "typing_stop"
    HEARTBEAT = "heartbeat"


class ServerEvent(str, Enum):
    """Events emitted by the server"""
    NEW_MESSAGE = "new_message"
    MESSAGE_UPDATED = "message_updated"  # reserved for message edits
    MESSAGE_DELETED = "message_deleted"  # reserved for message deletes
    MEMBER_JOINED = "member_joined"
    MEMBER_LEFT = "member_left"
    MEMBER_ROLE_UPDATED = "member_role_updated"
    TEAM_UPDATED = "team_updated"
    NEW_ACTIVITY = "new_activity"
    USER_TYPING = "user_typing"
    USER_STOP_TYPING = "user_stop_typing"
    JOINED_TEAM_ROOM = "joined_team_room"
    LEFT_TEAM_ROOM = "left_team_room"
    HEARTBEAT_ACK = "heartbeat_ack"
    ERROR = "error"


@dataclass(eq=False)
class RoomConnection:
    """A connected socket and the room it is currently in"""
    websocket: WebSocket
    user_id: str
    connection_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    team_id: Optional[str] = None
    user_name: Optional[str] = None

    async def send(self, event: str, data: Any = None):
        await self.websocket.send_json({"type": event, "data": jsonable_encoder(data)})


class WebSocketManager:
    """Owns the room table; join/leave/broadcast are its only mutations"""

    def __init__(self):
        self.connections: Dict[str, RoomConnection] = {}
        self.room_connections: Dict[str, Dict[str, RoomConnection]] = {}
        self._room_locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    async def connect(self, websocket: WebSocket, user_id: str, user_name: Optional[str] = None) -> RoomConnection:
        """Accept a new WebSocket connection"""
        await websocket.accept()
        connection = RoomConnection(websocket=websocket, user_id=user_id, user_name=user_name)
        self.connections[connection.connection_id] = connection
        realtime_log.connected(connection.connection_id, user_id)
        return connection

    def disconnect(self, connection: RoomConnection):
        """Forget a connection and drop it from its room"""
        team_id = self.leave_team_room(connection)
        self.connections.pop(connection.connection_id, None)
        realtime_log.disconnected(connection.connection_id, team_id)

    def join_team_room(self, connection: RoomConnection, team_id: str):
        """Move a connection into a team room, leaving any previous room"""
        if connection.team_id == team_id:
            return
        self.leave_team_room(connection)
        self.room_connections.setdefault(team_id, {})[connection.connection_id] = connection
        connection.team_id = team_id
        realtime_log.room_changed(connection.connection_id, team_id, joined=True)

    def leave_team_room(self, connection: RoomConnection) -> Optional[str]:
        """Remove a connection from its room; returns the room it left"""
        team_id = connection.team_id
        if team_id is None:
            return None

        room = self.room_connections.get(team_id)
        if room is not None:
            room.pop(connection.connection_id, None)
            if not room:
                del self.room_connections[team_id]
                logger.debug(f"🧹 Cleaned up empty room {team_id}")

        connection.team_id = None
        realtime_log.room_changed(connection.connection_id, team_id, joined=False)
        return team_id

    def _room_lock(self, team_id: str) -> asyncio.Lock:
        lock = self._room_locks.get(team_id)
        if lock is None:
            lock = asyncio.Lock()
            self._room_locks[team_id] = lock
        return lock

    async def broadcast_to_room(
        self,
        team_id: str,
        event: str,
        data: Any = None,
        exclude: Optional[RoomConnection] = None,
    ) -> int:
        """
        Send an event to every connection in a team room

        Sends for one room are serialized so every socket sees events in
        the order they were broadcast. A failed send drops that
        connection; it never raises into the caller.

        Returns:
            Number of connections the event was delivered to
        """
        event_name = event.value if isinstance(event, Enum) else event
        if not self.room_connections.get(team_id):
            logger.debug(f"📡 No recipients for {event_name} in room {team_id}")
            return 0

        async with self._room_lock(team_id):
            recipients: List[RoomConnection] = [
                conn for conn in self.room_connections.get(team_id, {}).values()
                if conn is not exclude
            ]
            sent = 0
            for connection in recipients:
                try:
                    await connection.send(event_name, data)
                    sent += 1
                except Exception as e:
                    logger.warning(
                        f"⚠️ Dropping connection {connection.connection_id} in room {team_id} after failed send: {e}"
                    )
                    self.disconnect(connection)

        if sent:
            realtime_log.broadcast(team_id, event_name, sent)
        else:
            logger.debug(f"📡 No recipients for {event_name} in room {team_id}")
        return sent

    async def relay_typing(self, connection: RoomConnection, team_id: str, payload: Dict[str, Any], started: bool) -> int:
        """Relay a typing indicator to everyone else in the room"""
        event = ServerEvent.USER_TYPING if started else ServerEvent.USER_STOP_TYPING
        return await self.broadcast_to_room(team_id, event, payload, exclude=connection)

    async def evict_user(self, team_id: str, user_id: str) -> int:
        """Take every connection of a user out of a team room and tell each socket it left"""
        evicted = [
            conn for conn in self.room_connections.get(team_id, {}).values()
            if conn.user_id == user_id
        ]
        for connection in evicted:
            self.leave_team_room(connection)
            try:
                await connection.send(ServerEvent.LEFT_TEAM_ROOM.value, {"team_id": team_id})
            except Exception as e:
                logger.warning(f"⚠️ Could not notify evicted connection {connection.connection_id}: {e}")
                self.disconnect(connection)
        if evicted:
            logger.info(f"🚪 Evicted {len(evicted)} connection(s) of user {user_id} from room {team_id}")
        return len(evicted)

    def get_connection_count(self) -> int:
        """Get the number of active connections"""
        return len(self.connections)

    def get_room_count(self) -> int:
        return len(self.room_connections)

    def get_room_connection_count(self, team_id: str) -> int:
        """Get the number of connections in a specific room"""
        return len(self.room_connections.get(team_id, {}))
