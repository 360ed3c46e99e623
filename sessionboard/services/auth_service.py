"""Bearer token authentication and event-role authorization."""

from __future__ import annotations

import secrets
from typing import Iterable, Optional

from sessionboard.domain.models import EventRecord
from sessionboard.repository.data_repository import DataRepository, hash_token
from sessionboard.utils.config import Settings, get_settings
from sessionboard.utils.logger import get_logger


logger = get_logger(__name__)


class AuthenticationError(Exception):
    """Base authentication failure."""


class MissingTokenError(AuthenticationError):
    """Raised when no bearer token accompanies the request."""


class InvalidTokenError(AuthenticationError):
    """Raised when provided token does not belong to any user."""


class AuthorizationError(Exception):
    """Base failure for event-scoped access checks."""


class EventNotFoundError(AuthorizationError):
    """Raised when no event matches the requested slug."""


class EventAccessDeniedError(AuthorizationError):
    """Raised when the user lacks the required role on the event."""


class AuthService:
    """Resolves API tokens to users and checks their role on an event."""

    def __init__(
        self,
        repository: Optional[DataRepository] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or DataRepository(self._settings)

    def authenticate(self, bearer_token: Optional[str]) -> str:
        if not bearer_token:
            raise MissingTokenError("Authorization header with Bearer token is required")
        token_hash = hash_token(bearer_token)
        match = self._repository.find_user_by_token_hash(token_hash)
        if match is None:
            raise InvalidTokenError("Invalid bearer token")
        user_id, stored_hash = match
        if not secrets.compare_digest(stored_hash, token_hash):
            raise InvalidTokenError("Invalid bearer token")
        return user_id

    def require_event_role(
        self,
        *,
        slug: str,
        user_id: str,
        roles: Iterable[str],
    ) -> EventRecord:
        """Return the event when the user holds one of ``roles`` on it."""
        event = self._repository.get_event_by_slug(slug)
        if event is None:
            raise EventNotFoundError("Event not found")
        allowed = set(roles)
        role = self._repository.get_member_role(event.id, user_id)
        if role is None or role not in allowed:
            logger.warning(
                "Event access denied | slug=%s | user_id=%s | role=%s",
                slug,
                user_id,
                role,
            )
            raise EventAccessDeniedError("Forbidden")
        return event
