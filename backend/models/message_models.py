"""
Message Models - Team discussion messages
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from models.team_models import UserSummary


class MessageType(str, Enum):
    TEXT = "text"
    FILE = "file"
    SYSTEM = "system"


class MessageAttachment(BaseModel):
    filename: str
    url: str
    file_type: Optional[str] = None
    size: Optional[int] = Field(None, ge=0)


class Message(BaseModel):
    """Message as persisted in the ``messages`` collection"""
    model_config = ConfigDict(use_enum_values=True, validate_default=True)

    id: str
    team_id: str
    user_id: str
    content: str
    type: MessageType = MessageType.TEXT
    attachments: List[MessageAttachment] = Field(default_factory=list)
    mentions: List[str] = Field(default_factory=list)
    parent_message_id: Optional[str] = None
    is_edited: bool = False
    created_at: datetime
    updated_at: datetime


class SendMessageRequest(BaseModel):
    content: str = Field(..., description="Message content")
    mentions: List[str] = Field(default_factory=list, description="Mentioned user IDs")
    attachments: List[MessageAttachment] = Field(default_factory=list)
    parent_message_id: Optional[str] = None


class MessageResponse(Message):
    """Message with its author and mentions populated"""
    author: Optional[UserSummary] = None
    mentioned_users: List[UserSummary] = Field(default_factory=list)
