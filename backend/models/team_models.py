"""
Team Models - Pydantic models for teams and their embedded memberships
"""

from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, EmailStr, Field
from enum import Enum


class TeamRole(str, Enum):
    """Team member roles"""
    ADMIN = "admin"
    MEMBER = "member"
    VIEWER = "viewer"


class DefaultRole(str, Enum):
    """Roles a self-joining member may receive"""
    MEMBER = "member"
    VIEWER = "viewer"


class TeamVisibility(str, Enum):
    PUBLIC = "public"
    PRIVATE = "private"


# === AGGREGATE ===

class Membership(BaseModel):
    """A user's place in a team; no identity outside its team"""
    model_config = ConfigDict(use_enum_values=True, validate_default=True)

    user_id: str
    role: TeamRole = TeamRole.MEMBER
    joined_at: datetime


class TeamSettings(BaseModel):
    model_config = ConfigDict(use_enum_values=True, validate_default=True)

    allow_member_invites: bool = False
    default_role: DefaultRole = DefaultRole.MEMBER
    visibility: TeamVisibility = TeamVisibility.PRIVATE


class Team(BaseModel):
    """Team aggregate as persisted in the ``teams`` collection"""
    model_config = ConfigDict(use_enum_values=True, validate_default=True)

    id: str
    name: str
    description: Optional[str] = None
    created_by: str
    members: List[Membership] = Field(default_factory=list)
    settings: TeamSettings = Field(default_factory=TeamSettings)
    join_code: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def find_member(self, user_id: str) -> Optional[Membership]:
        return next((m for m in self.members if m.user_id == user_id), None)

    def admin_count(self) -> int:
        return sum(1 for m in self.members if m.role == TeamRole.ADMIN)


# === REQUEST MODELS ===

class CreateTeamRequest(BaseModel):
    """Request to create a new team"""
    name: str = Field(..., max_length=255, description="Team name")
    description: Optional[str] = Field(None, max_length=1000, description="Team description")


class InviteMemberRequest(BaseModel):
    """Request to invite a user by email"""
    email: EmailStr
    role: TeamRole = Field(TeamRole.MEMBER, description="Role given to the invited user")


class JoinByCodeRequest(BaseModel):
    join_code: str = Field(..., min_length=1, max_length=32)


class UpdateMemberRoleRequest(BaseModel):
    """Request to update member role"""
    role: TeamRole = Field(..., description="New role")


# === RESPONSE MODELS ===

class UserSummary(BaseModel):
    """Public user fields joined onto teams, messages and analytics"""
    id: str
    name: str
    email: Optional[str] = None
    avatar: Optional[str] = None


class TeamMemberResponse(BaseModel):
    user_id: str
    role: TeamRole
    joined_at: datetime
    user: Optional[UserSummary] = None


class TeamResponse(BaseModel):
    """Team snapshot returned by the API and broadcast as ``team_updated``"""
    id: str
    name: str
    description: Optional[str] = None
    created_by: str
    creator: Optional[UserSummary] = None
    members: List[TeamMemberResponse] = Field(default_factory=list)
    member_count: int = 0
    settings: TeamSettings
    join_code: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ProjectResponse(BaseModel):
    id: str
    team_id: str
    name: str
    description: Optional[str] = None
    status: Optional[str] = None
    progress: Optional[int] = None
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
