"""
Service Container for the teams backend
Wires one record store, one websocket manager and the team services around them
"""

import asyncio
import logging
from typing import Any, Dict, Optional

from config import settings
from repositories.record_store import InMemoryRecordStore, MongoRecordStore, RecordStore
from services.activity_recorder import ActivityRecorder
from services.analytics_service import AnalyticsService
from services.auth_service import AuthenticationService
from services.discussion_service import DiscussionService
from services.membership_authority import MembershipAuthority
from services.team_service import TeamService
from utils.websocket_manager import WebSocketManager

logger = logging.getLogger(__name__)


class ServiceContainer:
    """
    Centralized service container implementing dependency injection pattern.
    Every service shares the same record store, membership authority (and
    its per-team locks) and websocket manager.
    """

    def __init__(self, record_store: Optional[RecordStore] = None):
        self._initialized = False
        self._initialization_lock = asyncio.Lock()

        # Core shared instances
        self.record_store: Optional[RecordStore] = record_store
        self.websocket_manager: Optional[WebSocketManager] = None
        self.auth_service: Optional[AuthenticationService] = None
        self.membership_authority: Optional[MembershipAuthority] = None

        # Service instances
        self.activity_recorder: Optional[ActivityRecorder] = None
        self.team_service: Optional[TeamService] = None
        self.discussion_service: Optional[DiscussionService] = None
        self.analytics_service: Optional[AnalyticsService] = None

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @staticmethod
    def _create_record_store() -> RecordStore:
        if settings.RECORD_STORE == "memory":
            logger.warning("⚠️ Using in-memory record store; data is lost on restart")
            return InMemoryRecordStore()
        if settings.RECORD_STORE == "mongo":
            return MongoRecordStore(settings.MONGODB_URL, settings.MONGODB_DATABASE)
        raise ValueError(f"Unknown RECORD_STORE: {settings.RECORD_STORE}")

    async def initialize(self) -> None:
        """Initialize all services in dependency order"""
        async with self._initialization_lock:
            if self._initialized:
                return

            logger.info("🔧 Initializing Service Container...")
            try:
                if self.record_store is None:
                    self.record_store = self._create_record_store()
                await self._retry_with_backoff(self.record_store.initialize, f"{self.record_store.kind} record store")

                self.websocket_manager = WebSocketManager()
                self.auth_service = AuthenticationService(self.record_store)
                self.membership_authority = MembershipAuthority(self.record_store)

                self.activity_recorder = ActivityRecorder(
                    self.record_store, self.membership_authority, self.auth_service, self.websocket_manager
                )
                self.team_service = TeamService(
                    self.record_store,
                    self.membership_authority,
                    self.activity_recorder,
                    self.auth_service,
                    self.websocket_manager,
                    join_code_length=settings.JOIN_CODE_LENGTH,
                    join_code_attempts=settings.JOIN_CODE_MAX_ATTEMPTS,
                )
                self.discussion_service = DiscussionService(
                    self.record_store,
                    self.membership_authority,
                    self.activity_recorder,
                    self.auth_service,
                    self.websocket_manager,
                    max_length=settings.MESSAGE_MAX_LENGTH,
                )
                self.analytics_service = AnalyticsService(
                    self.record_store,
                    self.membership_authority,
                    self.auth_service,
                    recent_days=settings.RECENT_ACTIVITY_DAYS,
                    trend_days=settings.ACTIVITY_TREND_DAYS,
                )

                self._initialized = True
                logger.info("✅ Service Container initialized successfully")
            except Exception as e:
                logger.error(f"❌ Service Container initialization failed: {e}")
                raise

    async def _retry_with_backoff(self, func, service_name: str, max_retries: int = 5,
                                  base_delay: float = 2, max_delay: float = 30) -> Any:
        """Retry service initialization with exponential backoff"""
        for attempt in range(max_retries):
            try:
                return await func()
            except Exception as e:
                delay = min(base_delay * (2 ** attempt), max_delay)
                if attempt < max_retries - 1:
                    logger.warning(f"🔄 {service_name} initialization attempt {attempt + 1} failed: {e}")
                    logger.info(f"⏱️  Retrying {service_name} in {delay} seconds...")
                    await asyncio.sleep(delay)
                else:
                    logger.error(f"❌ {service_name} failed after {max_retries} attempts: {e}")
                    raise

    async def close(self) -> None:
        """Gracefully close shared resources"""
        logger.info("🔄 Shutting down Service Container...")
        if self.record_store is not None:
            try:
                await self.record_store.close()
            except Exception as e:
                logger.error(f"❌ Error closing record store: {e}")
        self._initialized = False
        logger.info("✅ Service Container shutdown complete")

    def get_stats(self) -> Dict[str, Any]:
        """Get container statistics"""
        return {
            "initialized": self._initialized,
            "record_store": self.record_store.kind if self.record_store else None,
            "websocket_connections": self.websocket_manager.get_connection_count() if self.websocket_manager else 0,
            "team_rooms": self.websocket_manager.get_room_count() if self.websocket_manager else 0,
        }
