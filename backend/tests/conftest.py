"""Shared fixtures for the teams backend tests.

Every test gets its own in-memory record store seeded with four users,
a service container built around it and (for API tests) a TestClient
used as a context manager so HTTP calls and websocket sessions share
one event loop.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

from main import create_app
from models.api_models import AuthenticatedUserResponse
from repositories.record_store import InMemoryRecordStore
from services.service_container import ServiceContainer


USERS = {
    "u1": {"name": "Ada Admin", "email": "ada@example.com"},
    "u2": {"name": "Ben Member", "email": "ben@example.com"},
    "u3": {"name": "Cleo Outsider", "email": "cleo@example.com"},
    "u4": {"name": "Dev Viewer", "email": "dev@example.com"},
}


def run(coro):
    """Drive one coroutine to completion."""
    return asyncio.run(coro)


def seed_users(store: InMemoryRecordStore) -> None:
    async def _seed():
        for user_id, fields in USERS.items():
            await store.insert("users", {"id": user_id, "avatar": None, **fields})

    run(_seed())


def identity(user_id: str) -> AuthenticatedUserResponse:
    """Caller identity as the auth dependency would resolve it."""
    return AuthenticatedUserResponse(user_id=user_id, **USERS[user_id])


def team_record(team_id: str, members, **overrides) -> dict:
    """A raw teams record; members is a list of (user_id, role)."""
    joined = datetime(2026, 1, 1, tzinfo=timezone.utc)
    record = {
        "id": team_id,
        "name": f"Team {team_id}",
        "description": None,
        "created_by": members[0][0],
        "members": [{"user_id": uid, "role": role, "joined_at": joined} for uid, role in members],
        "settings": {"allow_member_invites": False, "default_role": "member", "visibility": "private"},
        "join_code": None,
    }
    record.update(overrides)
    return record


@pytest.fixture
def store():
    store = InMemoryRecordStore()
    seed_users(store)
    return store


@pytest.fixture
def container(store):
    container = ServiceContainer(record_store=store)
    run(container.initialize())
    return container


@pytest.fixture
def client(container):
    app = create_app(container)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def tokens(container):
    return {user_id: container.auth_service.create_access_token(user_id) for user_id in USERS}


@pytest.fixture
def auth(tokens):
    """auth("u1") -> Authorization headers for that user."""

    def _headers(user_id: str) -> dict:
        return {"Authorization": f"Bearer {tokens[user_id]}"}

    return _headers
