"""Structured exceptions for team, discussion and activity operations."""

from __future__ import annotations


class TeamError(Exception):
    """Base exception for all team domain errors.

    Carries a stable ``kind`` string and the HTTP status the API layer
    answers with. The message is safe to show to the caller.
    """

    kind = "team_error"
    status_code = 400

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ValidationError(TeamError):
    """400: bad input shape or content."""
    kind = "validation_error"
    status_code = 400


class ForbiddenError(TeamError):
    """403: authenticated but not a member / not an admin."""
    kind = "forbidden"
    status_code = 403


class NotFoundError(TeamError):
    """404: team, member, message or user absent."""
    kind = "not_found"
    status_code = 404


class TeamNotFoundError(NotFoundError):
    def __init__(self, message: str = "Team not found") -> None:
        super().__init__(message)


class MemberNotFoundError(NotFoundError):
    def __init__(self, message: str = "Member not found in team") -> None:
        super().__init__(message)


class UserNotFoundError(NotFoundError):
    def __init__(self, message: str = "User not found") -> None:
        super().__init__(message)


class ConflictError(TeamError):
    """400: state conflicts with the request."""
    kind = "conflict"
    status_code = 400


class AlreadyMemberError(ConflictError):
    def __init__(self, message: str = "User is already a team member") -> None:
        super().__init__(message)


class DuplicateJoinCodeError(ConflictError):
    def __init__(self, message: str = "Could not generate a unique join code") -> None:
        super().__init__(message)


class LastAdminGuardError(TeamError):
    """400: the change would leave the team without an admin."""
    kind = "last_admin_guard"
    status_code = 400

    def __init__(
        self,
        message: str = "Cannot leave team as the only admin. Assign another admin first.",
    ) -> None:
        super().__init__(message)


class InvalidActionError(TeamError):
    """400: activity action outside the closed action set."""
    kind = "invalid_action"
    status_code = 400
