"""Bulk moderation of session proposals: approve, reject, retrack or delete."""

from __future__ import annotations

from typing import Optional, Sequence

from sessionboard.domain.models import BatchResult
from sessionboard.repository.data_repository import DataRepository
from sessionboard.services.auth_service import AuthService, EventAccessDeniedError
from sessionboard.utils.config import Settings, get_settings
from sessionboard.utils.logger import get_logger


logger = get_logger(__name__)

BATCH_ACTIONS = ("approve", "reject", "assign_track", "delete")
_STATUS_BY_ACTION = {"approve": "approved", "reject": "rejected"}


class BatchValidationError(Exception):
    """Raised when a batch request is malformed or names foreign rows."""

    def __init__(self, message: str, invalid_ids: Optional[list[str]] = None) -> None:
        super().__init__(message)
        self.invalid_ids = invalid_ids or []


class SessionBatchService:
    """Applies one moderation action to many sessions of an event at once.

    Approving is how proposals become eligible for the auto-scheduler, and
    ``assign_track`` feeds its track-spread scoring.
    """

    def __init__(
        self,
        repository: Optional[DataRepository] = None,
        auth_service: Optional[AuthService] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or DataRepository(self._settings)
        self._auth_service = auth_service or AuthService(
            repository=self._repository,
            settings=self._settings,
        )

    def _validate_request(self, event_id: str, action: str, session_ids: Sequence[str]) -> list[str]:
        if action not in BATCH_ACTIONS:
            raise BatchValidationError("Invalid action")
        if not session_ids:
            raise BatchValidationError("session_ids must be a non-empty array")
        limit = self._settings.batch_max_sessions
        if len(session_ids) > limit:
            raise BatchValidationError(f"Cannot operate on more than {limit} sessions at once")

        unique_ids = list(dict.fromkeys(session_ids))
        valid_ids = self._repository.filter_session_ids(event_id, unique_ids)
        invalid_ids = [session_id for session_id in unique_ids if session_id not in valid_ids]
        if invalid_ids:
            raise BatchValidationError(
                "Some sessions not found in this event",
                invalid_ids=invalid_ids,
            )
        return unique_ids

    def apply_action(
        self,
        *,
        slug: str,
        user_id: str,
        action: str,
        session_ids: Sequence[str],
        reason: Optional[str] = None,
        track_id: Optional[str] = None,
    ) -> BatchResult:
        event = self._auth_service.require_event_role(
            slug=slug,
            user_id=user_id,
            roles=self._settings.moderation_roles,
        )
        unique_ids = self._validate_request(event.id, action, session_ids)

        if action in _STATUS_BY_ACTION:
            affected = self._repository.set_session_status(
                event.id,
                unique_ids,
                _STATUS_BY_ACTION[action],
            )
            if action == "reject" and reason:
                logger.info(
                    "Sessions rejected with reason | slug=%s | sessions=%s | reason=%s",
                    slug,
                    len(unique_ids),
                    reason,
                )
        elif action == "assign_track":
            track_id = track_id or None
            if track_id and not self._repository.filter_track_ids(event.id, [track_id]):
                raise BatchValidationError("Track not found")
            affected = self._repository.set_session_track(event.id, unique_ids, track_id)
        else:
            role = self._repository.get_member_role(event.id, user_id)
            if role not in self._settings.delete_roles:
                logger.warning(
                    "Batch delete denied | slug=%s | user_id=%s | role=%s",
                    slug,
                    user_id,
                    role,
                )
                raise EventAccessDeniedError("Only owners and admins can delete sessions")
            affected = self._repository.delete_sessions(event.id, unique_ids)

        result = BatchResult(action=action, affected=affected)
        logger.info(
            "Session batch completed | slug=%s | action=%s | affected=%s",
            slug,
            action,
            affected,
        )
        return result
