"""
Teams API - REST endpoints for teams, membership, discussion, activity and analytics

Domain errors raised by the services are turned into the error envelope by
the handlers registered in main.py.
"""

import logging

from fastapi import APIRouter, Depends, Query

from api.dependencies import (
    get_activity_recorder, get_analytics_service, get_discussion_service, get_team_service,
)
from config import settings
from models.api_models import AuthenticatedUserResponse, envelope
from models.message_models import SendMessageRequest
from models.team_models import (
    CreateTeamRequest, InviteMemberRequest, JoinByCodeRequest, TeamSettings,
    UpdateMemberRoleRequest,
)
from services.activity_recorder import ActivityRecorder
from services.analytics_service import AnalyticsService
from services.discussion_service import DiscussionService
from services.team_service import TeamService
from utils.auth_middleware import get_current_user

logger = logging.getLogger(__name__)

router = APIRouter(tags=["teams"])


# =====================
# TEAM ENDPOINTS
# =====================

@router.get("/api/teams")
async def list_teams(
    current_user: AuthenticatedUserResponse = Depends(get_current_user),
    team_service: TeamService = Depends(get_team_service),
):
    """Team directory"""
    teams = await team_service.list_teams()
    return envelope(teams)


@router.get("/api/teams/my-teams")
async def list_my_teams(
    current_user: AuthenticatedUserResponse = Depends(get_current_user),
    team_service: TeamService = Depends(get_team_service),
):
    """List all teams the user is a member of"""
    teams = await team_service.list_user_teams(current_user.user_id)
    return envelope(teams)


@router.post("/api/teams", status_code=201)
async def create_team(
    request: CreateTeamRequest,
    current_user: AuthenticatedUserResponse = Depends(get_current_user),
    team_service: TeamService = Depends(get_team_service),
):
    """Create a new team"""
    team, outcome = await team_service.create_team(request.name, request.description, current_user)
    logger.info(f"✅ Team {team.id} created by {current_user.user_id}")
    return envelope(team, message="Team created successfully", warnings=outcome.warnings)


@router.post("/api/teams/join-code")
async def join_team_by_code(
    request: JoinByCodeRequest,
    current_user: AuthenticatedUserResponse = Depends(get_current_user),
    team_service: TeamService = Depends(get_team_service),
):
    """Join a team using its join code"""
    team, outcome = await team_service.join_by_code(request.join_code, current_user)
    return envelope(team, message="Successfully joined team", warnings=outcome.warnings)


@router.get("/api/teams/{team_id}")
async def get_team(
    team_id: str,
    current_user: AuthenticatedUserResponse = Depends(get_current_user),
    team_service: TeamService = Depends(get_team_service),
):
    """Get team details (members only)"""
    team = await team_service.get_team(team_id, current_user.user_id)
    return envelope(team)


@router.put("/api/teams/{team_id}/settings")
async def update_team_settings(
    team_id: str,
    request: TeamSettings,
    current_user: AuthenticatedUserResponse = Depends(get_current_user),
    team_service: TeamService = Depends(get_team_service),
):
    """Update team settings (admin only)"""
    team = await team_service.update_settings(team_id, current_user, request)
    return envelope(team, message="Team settings updated")


@router.get("/api/teams/{team_id}/projects")
async def list_team_projects(
    team_id: str,
    current_user: AuthenticatedUserResponse = Depends(get_current_user),
    team_service: TeamService = Depends(get_team_service),
):
    projects = await team_service.list_team_projects(team_id, current_user.user_id)
    return envelope(projects)


# =====================
# MEMBER MANAGEMENT ENDPOINTS
# =====================

@router.post("/api/teams/{team_id}/invite")
async def invite_member(
    team_id: str,
    request: InviteMemberRequest,
    current_user: AuthenticatedUserResponse = Depends(get_current_user),
    team_service: TeamService = Depends(get_team_service),
):
    """Invite an existing user to the team by email (admin only)"""
    team, outcome = await team_service.invite_member(team_id, current_user, request.email, request.role)
    return envelope(team, message="Member invited successfully", warnings=outcome.warnings)


@router.post("/api/teams/{team_id}/join")
async def join_team(
    team_id: str,
    current_user: AuthenticatedUserResponse = Depends(get_current_user),
    team_service: TeamService = Depends(get_team_service),
):
    """Join a team with its default role"""
    team, outcome = await team_service.join_team(team_id, current_user)
    return envelope(team, message="Successfully joined team", warnings=outcome.warnings)


@router.put("/api/teams/{team_id}/members/{member_id}/role")
async def update_member_role(
    team_id: str,
    member_id: str,
    request: UpdateMemberRoleRequest,
    current_user: AuthenticatedUserResponse = Depends(get_current_user),
    team_service: TeamService = Depends(get_team_service),
):
    """Update member role (admin only)"""
    team, outcome = await team_service.update_member_role(team_id, current_user, member_id, request.role)
    return envelope(team, message="Member role updated successfully", warnings=outcome.warnings)


@router.delete("/api/teams/{team_id}/members/{member_id}")
async def remove_member(
    team_id: str,
    member_id: str,
    current_user: AuthenticatedUserResponse = Depends(get_current_user),
    team_service: TeamService = Depends(get_team_service),
):
    """Remove a member (admin) or leave the team (self)"""
    _, outcome = await team_service.remove_member(team_id, current_user, member_id)
    message = "Left team successfully" if member_id == current_user.user_id else "Member removed successfully"
    return envelope(message=message, warnings=outcome.warnings)


# =====================
# DISCUSSION ENDPOINTS
# =====================

@router.get("/api/teams/{team_id}/messages")
async def list_team_messages(
    team_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(settings.MESSAGES_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    current_user: AuthenticatedUserResponse = Depends(get_current_user),
    discussion_service: DiscussionService = Depends(get_discussion_service),
):
    """Get team messages, one page at a time (page 1 is the newest)"""
    messages, pagination = await discussion_service.list_messages(team_id, current_user.user_id, page, limit)
    return envelope(messages, pagination=pagination)


@router.post("/api/teams/{team_id}/messages", status_code=201)
async def send_team_message(
    team_id: str,
    request: SendMessageRequest,
    current_user: AuthenticatedUserResponse = Depends(get_current_user),
    discussion_service: DiscussionService = Depends(get_discussion_service),
):
    """Send a message to the team chat"""
    message, outcome = await discussion_service.send_message(
        team_id,
        current_user,
        request.content,
        mentions=request.mentions,
        attachments=request.attachments,
        parent_message_id=request.parent_message_id,
    )
    return envelope(message, message="Message sent successfully", warnings=outcome.warnings)


# =====================
# ACTIVITY / ANALYTICS ENDPOINTS
# =====================

@router.get("/api/teams/{team_id}/activities")
async def list_team_activities(
    team_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(settings.ACTIVITIES_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    current_user: AuthenticatedUserResponse = Depends(get_current_user),
    activity_recorder: ActivityRecorder = Depends(get_activity_recorder),
):
    """Get the team activity feed, newest first"""
    activities, pagination = await activity_recorder.list_activities(team_id, current_user.user_id, page, limit)
    return envelope(activities, pagination=pagination)


@router.get("/api/teams/{team_id}/analytics")
async def get_team_analytics(
    team_id: str,
    current_user: AuthenticatedUserResponse = Depends(get_current_user),
    analytics_service: AnalyticsService = Depends(get_analytics_service),
):
    analytics = await analytics_service.compute_analytics(team_id, current_user.user_id)
    return envelope(analytics)
