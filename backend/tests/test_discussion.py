"""Tests for team chat: membership checks, paging order and the message audit entry."""

from __future__ import annotations

import pytest

from conftest import identity, run, team_record
from services.errors import ForbiddenError, NotFoundError, ValidationError


@pytest.fixture
def team(store):
    run(store.insert("teams", team_record("t1", [("u1", "admin"), ("u2", "member")])))
    return "t1"


def _send(container, team_id, user_id, content, **kwargs):
    message, _ = run(container.discussion_service.send_message(team_id, identity(user_id), content, **kwargs))
    return message


class TestListMessages:
    def test_non_member_is_forbidden(self, container, team):
        with pytest.raises(ForbiddenError):
            run(container.discussion_service.list_messages(team, "u3"))

    def test_pages_are_chronological(self, container, team):
        for n in range(5):
            _send(container, team, "u1", f"message {n}")

        messages, pagination = run(container.discussion_service.list_messages(team, "u2", page=1, limit=2))
        assert [m.content for m in messages] == ["message 3", "message 4"]
        assert pagination.total == 5
        assert pagination.pages == 3
        assert pagination.current == 1

        last_page, _ = run(container.discussion_service.list_messages(team, "u2", page=3, limit=2))
        assert [m.content for m in last_page] == ["message 0"]

    def test_sent_message_appears_once(self, container, team):
        sent = _send(container, team, "u2", "hello team")
        messages, _ = run(container.discussion_service.list_messages(team, "u1"))
        assert [m.id for m in messages].count(sent.id) == 1

    def test_page_beyond_the_end_is_empty(self, container, team):
        _send(container, team, "u1", "only one")
        messages, pagination = run(container.discussion_service.list_messages(team, "u1", page=4, limit=10))
        assert messages == []
        assert pagination.total == 1


class TestSendMessage:
    def test_content_is_trimmed_and_author_populated(self, container, team):
        message = _send(container, team, "u1", "  hi  ", mentions=["u2", "u2", "ghost"])
        assert message.content == "hi"
        assert message.type == "text"
        assert message.author.name == "Ada Admin"
        assert message.mentions == ["u2", "ghost"]
        assert [u.id for u in message.mentioned_users] == ["u2"]

    def test_empty_content(self, container, team):
        with pytest.raises(ValidationError):
            _send(container, team, "u1", "   ")

    def test_too_long(self, container, team):
        container.discussion_service.max_length = 10
        with pytest.raises(ValidationError):
            _send(container, team, "u1", "x" * 11)

    def test_non_member_cannot_send(self, container, team, store):
        with pytest.raises(ForbiddenError):
            _send(container, team, "u3", "let me in")
        assert run(store.count("messages", {})) == 0

    def test_records_message_sent(self, container, team):
        message, outcome = run(container.discussion_service.send_message(team, identity("u2"), "status update"))
        assert outcome.activity.action == "message_sent"
        assert outcome.activity.target_entity == "message"
        assert outcome.activity.target_id == message.id
        assert outcome.activity.metadata == {"message_id": message.id}

    def test_reply_requires_parent_in_team(self, container, team):
        parent = _send(container, team, "u1", "question?")
        reply = _send(container, team, "u2", "answer", parent_message_id=parent.id)
        assert reply.parent_message_id == parent.id

        with pytest.raises(NotFoundError):
            _send(container, team, "u2", "orphan", parent_message_id="missing")


class TestMessagesApi:
    def test_send_and_list(self, client, auth, team):
        resp = client.post(f"/api/teams/{team}/messages", json={"content": "hello"}, headers=auth("u1"))
        assert resp.status_code == 201
        assert resp.json()["data"]["author"]["id"] == "u1"

        listed = client.get(f"/api/teams/{team}/messages?page=1&limit=10", headers=auth("u2")).json()
        assert [m["content"] for m in listed["data"]] == ["hello"]
        assert listed["pagination"] == {"current": 1, "pages": 1, "total": 1, "limit": 10}

    def test_empty_content_is_400(self, client, auth, team):
        resp = client.post(f"/api/teams/{team}/messages", json={"content": ""}, headers=auth("u1"))
        assert resp.status_code == 400
        assert resp.json()["error_kind"] == "validation_error"

    def test_non_member_listing_is_403(self, client, auth, team):
        resp = client.get(f"/api/teams/{team}/messages", headers=auth("u3"))
        assert resp.status_code == 403
        assert "data" not in resp.json()

    def test_limit_above_maximum(self, client, auth, team):
        resp = client.get(f"/api/teams/{team}/messages?limit=1000", headers=auth("u1"))
        assert resp.status_code == 400
