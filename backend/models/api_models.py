"""
API Models - Caller identity and the shared response envelope
"""

import math
from typing import Any, Dict, List, Optional

from pydantic import BaseModel


class AuthenticatedUserResponse(BaseModel):
    """Caller identity resolved from a bearer credential"""
    user_id: str
    name: str
    email: str
    role: str = "member"
    avatar: Optional[str] = None


class Pagination(BaseModel):
    current: int
    pages: int
    total: int
    limit: int

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> "Pagination":
        return cls(current=page, pages=math.ceil(total / limit) if limit else 0, total=total, limit=limit)


class ErrorResponse(BaseModel):
    success: bool = False
    error: str
    error_kind: str
    errors: Optional[List[Dict[str, Any]]] = None


def envelope(
    data: Any = None,
    message: Optional[str] = None,
    warnings: Optional[List[str]] = None,
    pagination: Optional[Pagination] = None,
) -> Dict[str, Any]:
    """Wrap a successful result; warnings carry best-effort audit failures"""
    body: Dict[str, Any] = {"success": True, "data": data}
    if message:
        body["message"] = message
    if pagination is not None:
        body["pagination"] = pagination.model_dump()
    if warnings:
        body["warnings"] = warnings
    return body
