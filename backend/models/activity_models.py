"""
Activity Models - Append-only team audit entries

Each action carries its own metadata shape: ``ActivityDetails`` is a union
discriminated on ``action``, so a ``role_changed`` entry always has
``member_id``/``old_role``/``new_role`` and nothing else.
"""

from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from models.team_models import TeamRole, UserSummary


class ActivityAction(str, Enum):
    TEAM_CREATED = "team_created"
    MEMBER_JOINED = "member_joined"
    MEMBER_LEFT = "member_left"
    ROLE_CHANGED = "role_changed"
    PROJECT_CREATED = "project_created"
    PROJECT_UPDATED = "project_updated"
    TASK_CREATED = "task_created"
    TASK_COMPLETED = "task_completed"
    MESSAGE_SENT = "message_sent"
    FILE_UPLOADED = "file_uploaded"


class TargetEntity(str, Enum):
    TEAM = "team"
    PROJECT = "project"
    TASK = "task"
    MESSAGE = "message"
    FILE = "file"


# === METADATA VARIANTS ===

class _Details(BaseModel):
    model_config = ConfigDict(extra="forbid")

    def metadata(self) -> Dict[str, Any]:
        """Metadata as stored on the activity record (without the tag)"""
        return self.model_dump(mode="json", exclude={"action"}, exclude_none=True)


class TeamCreatedDetails(_Details):
    action: Literal["team_created"] = "team_created"


class MemberJoinedDetails(_Details):
    action: Literal["member_joined"] = "member_joined"
    invited_user: Optional[str] = None
    role: Optional[TeamRole] = None


class MemberLeftDetails(_Details):
    action: Literal["member_left"] = "member_left"
    member_id: str
    removed_by: Optional[str] = None


class RoleChangedDetails(_Details):
    action: Literal["role_changed"] = "role_changed"
    member_id: str
    old_role: TeamRole
    new_role: TeamRole


class ProjectCreatedDetails(_Details):
    action: Literal["project_created"] = "project_created"
    project_id: Optional[str] = None


class ProjectUpdatedDetails(_Details):
    action: Literal["project_updated"] = "project_updated"
    project_id: Optional[str] = None


class TaskCreatedDetails(_Details):
    action: Literal["task_created"] = "task_created"
    task_id: Optional[str] = None
    project_id: Optional[str] = None


class TaskCompletedDetails(_Details):
    action: Literal["task_completed"] = "task_completed"
    task_id: Optional[str] = None
    project_id: Optional[str] = None


class MessageSentDetails(_Details):
    action: Literal["message_sent"] = "message_sent"
    message_id: str


class FileUploadedDetails(_Details):
    action: Literal["file_uploaded"] = "file_uploaded"
    filename: Optional[str] = None
    url: Optional[str] = None


ActivityDetails = Annotated[
    Union[
        TeamCreatedDetails,
        MemberJoinedDetails,
        MemberLeftDetails,
        RoleChangedDetails,
        ProjectCreatedDetails,
        ProjectUpdatedDetails,
        TaskCreatedDetails,
        TaskCompletedDetails,
        MessageSentDetails,
        FileUploadedDetails,
    ],
    Field(discriminator="action"),
]

activity_details_adapter = TypeAdapter(ActivityDetails)


# === RECORD ===

class Activity(BaseModel):
    """Activity as persisted in the ``activities`` collection"""
    model_config = ConfigDict(use_enum_values=True, validate_default=True)

    id: str
    team_id: str
    user_id: str
    action: ActivityAction
    description: str
    target_entity: Optional[TargetEntity] = None
    target_id: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    updated_at: Optional[datetime] = None

    @property
    def details(self) -> ActivityDetails:
        return activity_details_adapter.validate_python({"action": ActivityAction(self.action).value, **self.metadata})


class ActivityResponse(Activity):
    user: Optional[UserSummary] = None
