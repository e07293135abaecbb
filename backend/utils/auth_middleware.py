"""
Authentication Middleware - Protects endpoints and provides user context
"""

import logging
from typing import Optional

from fastapi import Depends, HTTPException, Request, WebSocket
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from models.api_models import AuthenticatedUserResponse

logger = logging.getLogger(__name__)

# JWT Bearer token security scheme
security = HTTPBearer(auto_error=False)


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> AuthenticatedUserResponse:
    """Dependency to get current authenticated user"""
    if not credentials:
        raise HTTPException(status_code=401, detail="Authentication required")

    auth_service = request.app.state.container.auth_service
    current_user = await auth_service.get_current_user(credentials.credentials)
    if not current_user:
        raise HTTPException(status_code=401, detail="Invalid or expired token")

    return current_user


def websocket_token(websocket: WebSocket) -> Optional[str]:
    """Bearer credential for a websocket: ?token= or an Authorization header"""
    token = websocket.query_params.get("token")
    if token:
        return token

    authorization = websocket.headers.get("authorization", "")
    if authorization.lower().startswith("bearer "):
        return authorization.split(" ", 1)[1].strip() or None
    return None
