"""
Configuration settings for the Project Pilot teams backend
"""

from typing import List
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings"""

    # API Configuration
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    LOGS_DIR: str = ""  # Empty = console logging only

    # CORS - Allow all origins for development and reverse proxies
    CORS_ORIGINS: List[str] = ["*"]

    # Authentication Configuration
    JWT_SECRET_KEY: str = "project-pilot-jwt-secret-key-change-in-production"
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRATION_MINUTES: int = 1440  # 24 hours

    # Record Store
    RECORD_STORE: str = "mongo"  # mongo|memory
    MONGODB_URL: str = "mongodb://localhost:27017"
    MONGODB_DATABASE: str = "project_pilot"

    # Teams
    JOIN_CODE_LENGTH: int = 6
    JOIN_CODE_MAX_ATTEMPTS: int = 10  # Regeneration attempts on a join code collision

    # Discussion / Activity feed pagination
    MESSAGES_PAGE_SIZE: int = 50
    ACTIVITIES_PAGE_SIZE: int = 20
    MAX_PAGE_SIZE: int = 100
    MESSAGE_MAX_LENGTH: int = 10000

    # Analytics windows (days)
    RECENT_ACTIVITY_DAYS: int = 7
    ACTIVITY_TREND_DAYS: int = 7

    # Realtime
    REALTIME_ENFORCE_MEMBERSHIP: bool = False  # Check team membership on join_team_room

    class Config:
        env_file = ".env"
        case_sensitive = True


# Global settings instance
settings = Settings()
