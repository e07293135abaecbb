"""
Analytics Models - Derived per-team rollups (never persisted)
"""

from datetime import datetime
from typing import List

from pydantic import BaseModel, Field

from models.team_models import UserSummary


class AnalyticsOverview(BaseModel):
    total_members: int
    admin_count: int
    recent_activities: int
    total_messages: int
    total_projects: int
    total_tasks: int
    completed_tasks: int
    completion_rate: float = Field(..., description="Percent of completed tasks, one decimal; 0 when no tasks")


class MemberActivity(BaseModel):
    user: UserSummary
    activity_count: int
    last_activity: datetime


class ActivityTrendPoint(BaseModel):
    date: str  # ISO calendar date
    count: int


class TaskStatusBreakdown(BaseModel):
    completed: int
    pending: int


class AnalyticsCharts(BaseModel):
    activity_trend: List[ActivityTrendPoint]
    task_status: TaskStatusBreakdown


class TeamAnalytics(BaseModel):
    overview: AnalyticsOverview
    member_activity: List[MemberActivity]
    charts: AnalyticsCharts
