"""
Logging configuration for the Project Pilot teams backend
Structured logging - dual format for machine parsing and human debugging
"""

import logging
import sys
from pathlib import Path
from typing import Any, List, Optional

import structlog
from config import settings


def log_structured(component: str, action: str, status: str, **kwargs) -> str:
    """
    Create structured log message with dual format

    Format: COMPONENT:ACTION:STATUS:key=value:key=value | Human description
    """
    structured_parts = [component.upper(), action.upper(), status.upper()]

    if kwargs:
        structured_parts.extend(f"{k}={v}" for k, v in kwargs.items() if v is not None)

    structured = ":".join(structured_parts)

    status_emoji = {
        "SUCCESS": "✅", "ERROR": "❌", "WARNING": "⚠️",
        "START": "🔄", "COMPLETE": "✅", "FAIL": "❌",
        "INIT": "🔧", "REJECTED": "⛔", "SENT": "📡",
    }.get(status.upper(), "ℹ️")

    human_parts = [f"{status_emoji} {component}"]

    action_desc = {
        "CREATE": "creating", "INVITE": "inviting", "JOIN": "joining",
        "REMOVE": "removing", "ROLE": "changing role", "SETTINGS": "updating settings",
        "AUDIT": "recording activity", "BROADCAST": "broadcasting",
        "CONNECT": "connecting", "DISCONNECT": "disconnecting", "ROOM": "room change",
    }.get(action.upper(), action.lower())

    human_parts.append(action_desc)

    if kwargs:
        context_parts = []
        for k, v in kwargs.items():
            if v is None:
                continue
            if k == "team":
                context_parts.append(f"team {v}")
            elif k == "user":
                context_parts.append(f"user {v}")
            elif k == "count":
                context_parts.append(f"{v} recipients")
            elif k == "error":
                context_parts.append(f"error: {v}")
            else:
                context_parts.append(f"{k}: {v}")

        if context_parts:
            human_parts.append(f"({', '.join(context_parts)})")

    return f"{structured} | {' '.join(human_parts)}"


class ComponentLogger:
    """Base class for component-specific structured loggers"""

    def __init__(self, component_name: str):
        self.component = component_name
        self.logger = logging.getLogger(f"structured.{component_name}")

    def _log(self, level: str, action: str, status: str, **kwargs):
        kwargs.pop("component", None)
        message = log_structured(self.component, action, status, **kwargs)
        getattr(self.logger, level.lower())(message)

    def info(self, action: str, status: str, **kwargs):
        self._log("INFO", action, status, **kwargs)

    def error(self, action: str, status: str, **kwargs):
        self._log("ERROR", action, status, **kwargs)

    def warning(self, action: str, status: str, **kwargs):
        self._log("WARNING", action, status, **kwargs)


class TeamLogger(ComponentLogger):
    """Structured logger for team membership and audit operations"""

    def __init__(self):
        super().__init__("TEAM")

    def mutation_success(self, action: str, team_id: str, user_id: str, **kwargs):
        self.info(action, "SUCCESS", team=team_id, user=user_id, **kwargs)

    def mutation_rejected(self, action: str, team_id: str, user_id: str, reason: str):
        self.warning(action, "REJECTED", team=team_id, user=user_id, reason=reason)

    def audit_failed(self, team_id: str, action: str, error: str):
        self.warning("AUDIT", "FAIL", team=team_id, activity=action, error=error)


class RealtimeLogger(ComponentLogger):
    """Structured logger for websocket rooms"""

    def __init__(self):
        super().__init__("REALTIME")

    def connected(self, connection_id: str, user_id: str):
        self.info("CONNECT", "SUCCESS", connection=connection_id, user=user_id)

    def disconnected(self, connection_id: str, team_id: Optional[str] = None):
        self.info("DISCONNECT", "COMPLETE", connection=connection_id, team=team_id)

    def room_changed(self, connection_id: str, team_id: Optional[str], joined: bool):
        self.info("ROOM", "JOIN" if joined else "LEAVE", connection=connection_id, team=team_id)

    def broadcast(self, team_id: str, event: str, count: int):
        self.info("BROADCAST", "SENT", team=team_id, event=event, count=count)


# Global structured logger instances
team_log = TeamLogger()
realtime_log = RealtimeLogger()


def setup_logging():
    """Configure structured logging for the application"""

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer()
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handlers: List[Any] = [logging.StreamHandler(sys.stdout)]
    if settings.LOGS_DIR:
        logs_dir = Path(settings.LOGS_DIR)
        logs_dir.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(logs_dir / "teams.log"))

    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=handlers,
    )

    # Set specific log levels for noisy libraries
    logging.getLogger("pymongo").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)

    logger = structlog.get_logger(__name__)
    logger.info("logging_configured", level=settings.LOG_LEVEL, logs_dir=settings.LOGS_DIR or None)
