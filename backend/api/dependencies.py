"""
FastAPI dependencies resolving services from the app's service container
"""

from fastapi import Request

from services.activity_recorder import ActivityRecorder
from services.analytics_service import AnalyticsService
from services.discussion_service import DiscussionService
from services.service_container import ServiceContainer
from services.team_service import TeamService


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


def get_team_service(request: Request) -> TeamService:
    return get_container(request).team_service


def get_discussion_service(request: Request) -> DiscussionService:
    return get_container(request).discussion_service


def get_activity_recorder(request: Request) -> ActivityRecorder:
    return get_container(request).activity_recorder


def get_analytics_service(request: Request) -> AnalyticsService:
    return get_container(request).analytics_service
