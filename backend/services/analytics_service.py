"""
Analytics Service - Per-team rollups computed on demand

Nothing here is persisted; every call re-reads the team, its activity
trail, messages, projects and tasks.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from models.analytics_models import (
    ActivityTrendPoint, AnalyticsCharts, AnalyticsOverview, MemberActivity,
    TaskStatusBreakdown, TeamAnalytics,
)
from repositories.record_store import RecordStore
from services.auth_service import AuthenticationService
from services.membership_authority import MembershipAuthority

logger = logging.getLogger(__name__)

COMPLETED_TASK_STATUS = "completed"


class AnalyticsService:
    """Computes team analytics for members"""

    def __init__(
        self,
        record_store: RecordStore,
        authority: MembershipAuthority,
        auth_service: AuthenticationService,
        recent_days: int = 7,
        trend_days: int = 7,
    ):
        self.record_store = record_store
        self.authority = authority
        self.auth_service = auth_service
        self.recent_days = recent_days
        self.trend_days = trend_days

    async def compute_analytics(
        self, team_id: str, caller_id: str, now: Optional[datetime] = None
    ) -> TeamAnalytics:
        """
        Compute overview counts, per-member activity and the daily trend

        Args:
            team_id: Team ID
            caller_id: Requesting user (must be a member)
            now: Reference time, defaults to the current UTC time

        Returns:
            TeamAnalytics
        """
        team = await self.authority.require_member(team_id, caller_id)
        now = now or datetime.now(timezone.utc)

        recent_activities = await self.record_store.count(
            "activities",
            {"team_id": team_id, "created_at": {"$gte": now - timedelta(days=self.recent_days)}},
        )
        total_messages = await self.record_store.count("messages", {"team_id": team_id})
        total_projects = await self.record_store.count("projects", {"team_id": team_id})

        total_tasks = completed_tasks = 0
        project_ids = await self.record_store.distinct("projects", "id", {"team_id": team_id})
        if project_ids:
            total_tasks = await self.record_store.count("tasks", {"project_id": {"$in": project_ids}})
            completed_tasks = await self.record_store.count(
                "tasks", {"project_id": {"$in": project_ids}, "status": COMPLETED_TASK_STATUS}
            )

        completion_rate = round(completed_tasks / total_tasks * 100, 1) if total_tasks else 0.0

        overview = AnalyticsOverview(
            total_members=len(team.members),
            admin_count=team.admin_count(),
            recent_activities=recent_activities,
            total_messages=total_messages,
            total_projects=total_projects,
            total_tasks=total_tasks,
            completed_tasks=completed_tasks,
            completion_rate=completion_rate,
        )

        logger.debug(f"📊 Computed analytics for team {team_id}: {total_tasks} tasks, {recent_activities} recent")

        return TeamAnalytics(
            overview=overview,
            member_activity=await self._member_activity(team_id),
            charts=AnalyticsCharts(
                activity_trend=await self._activity_trend(team_id, now),
                task_status=TaskStatusBreakdown(completed=completed_tasks, pending=total_tasks - completed_tasks),
            ),
        )

    async def _member_activity(self, team_id: str) -> List[MemberActivity]:
        """Activity count and latest activity per user, most active first"""
        counts: Dict[str, int] = {}
        latest: Dict[str, datetime] = {}
        for record in await self.record_store.find("activities", {"team_id": team_id}):
            user_id = record["user_id"]
            counts[user_id] = counts.get(user_id, 0) + 1
            if user_id not in latest or record["created_at"] > latest[user_id]:
                latest[user_id] = record["created_at"]

        # Users that no longer exist are left out
        users = await self.auth_service.get_users_by_ids(counts)
        rows = [
            MemberActivity(user=users[user_id], activity_count=count, last_activity=latest[user_id])
            for user_id, count in counts.items()
            if user_id in users
        ]
        rows.sort(key=lambda r: (r.activity_count, r.last_activity), reverse=True)
        return rows

    async def _activity_trend(self, team_id: str, now: datetime) -> List[ActivityTrendPoint]:
        """Activity counts for the last N UTC calendar days, oldest first, today included"""
        today = now.astimezone(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)
        trend = []
        for offset in range(self.trend_days - 1, -1, -1):
            day_start = today - timedelta(days=offset)
            count = await self.record_store.count(
                "activities",
                {"team_id": team_id, "created_at": {"$gte": day_start, "$lt": day_start + timedelta(days=1)}},
            )
            trend.append(ActivityTrendPoint(date=day_start.date().isoformat(), count=count))
        return trend
