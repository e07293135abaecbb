"""
Authentication Service - Resolves bearer JWTs to caller identities

Login, registration and password handling live outside this service; it
only verifies tokens and looks users up in the ``users`` collection.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional

import jwt

from config import settings
from models.api_models import AuthenticatedUserResponse
from models.team_models import UserSummary
from repositories.record_store import RecordStore

logger = logging.getLogger(__name__)


class AuthenticationService:
    """Identity provider backed by the record store"""

    def __init__(self, record_store: RecordStore):
        self.record_store = record_store

    def create_access_token(self, user_id: str, expires_minutes: Optional[int] = None) -> str:
        """Mint a signed token for a user (tooling and tests)"""
        now = datetime.now(timezone.utc)
        expiration = now + timedelta(minutes=expires_minutes or settings.JWT_EXPIRATION_MINUTES)
        payload = {
            "user_id": user_id,
            "exp": int(expiration.timestamp()),
            "iat": int(now.timestamp()),
        }
        return jwt.encode(payload, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)

    def verify_jwt_token(self, token: str) -> Optional[Dict[str, Any]]:
        """Verify and decode JWT token"""
        try:
            return jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
        except jwt.ExpiredSignatureError:
            logger.warning("JWT token has expired")
            return None
        except jwt.InvalidTokenError as e:
            logger.warning(f"Invalid JWT token: {e}")
            return None

    async def get_current_user(self, token: str) -> Optional[AuthenticatedUserResponse]:
        """Resolve a bearer token to the caller identity, or None"""
        payload = self.verify_jwt_token(token)
        if not payload or not payload.get("user_id"):
            return None

        user = await self.record_store.find_one("users", {"id": payload["user_id"]})
        if not user:
            logger.warning(f"❌ Token references unknown user {payload['user_id']}")
            return None

        return AuthenticatedUserResponse(
            user_id=user["id"],
            name=user.get("name", ""),
            email=user.get("email", ""),
            role=user.get("role", "member"),
            avatar=user.get("avatar"),
        )

    async def find_user_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        return await self.record_store.find_one("users", {"email": email.strip().lower()})

    async def get_users_by_ids(self, user_ids: Iterable[str]) -> Dict[str, UserSummary]:
        """Load user summaries keyed by id; unknown ids are omitted"""
        ids: List[str] = list(dict.fromkeys(uid for uid in user_ids if uid))
        if not ids:
            return {}
        users = await self.record_store.find("users", {"id": {"$in": ids}})
        return {
            u["id"]: UserSummary(id=u["id"], name=u.get("name", ""), email=u.get("email"), avatar=u.get("avatar"))
            for u in users
        }
