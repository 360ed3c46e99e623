"""Greedy auto-scheduling of approved sessions into venue time slots.

Sessions are processed by vote count (highest first) and each one takes its
highest-scoring free slot. A slot's score for a session sums:

- duration match: +8 exact, +4 within tolerance, +1 otherwise
- time preference: +10 weekday and half-day, +3 weekday only
- capacity fit (votes as expected attendance): +5 comfortable, +3 tight,
  +2 unknown capacity, +0 over capacity
- track spread: +3 no same-track session in the same time range, +1 no track
- primary venue: +2 for sessions with more than 20 votes

Occupied and break slots score -1 and are never chosen.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import date, datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional, Sequence

from sessionboard.domain.constraints import (
    ScoringConfig,
    scoring_config_from_settings,
    validate_scoring_config,
)
from sessionboard.domain.models import (
    ApplyResult,
    AssignmentRequest,
    AutoScheduleResult,
    PublishStatus,
    ScheduleAssignment,
    ScheduleStats,
    Session,
    SlotScore,
    TimeSlot,
    UnassignedSession,
    Venue,
)
from sessionboard.repository.data_repository import (
    DataRepository,
    RepositoryError,
    SessionAlreadyScheduledError,
)
from sessionboard.services.auth_service import AuthService
from sessionboard.utils.config import Settings, get_settings
from sessionboard.utils.logger import get_logger


logger = get_logger(__name__)

INELIGIBLE_SCORE = -1
UNASSIGNED_REASON = "No available slots match session requirements"
TRACK_CONFLICT_WARNING = "Track conflict: same track scheduled at same time"

_WEEKDAY_NAMES = (
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
)


class SchedulingError(Exception):
    """Base exception for schedule preview/apply failures."""


class ScheduleValidationError(SchedulingError):
    """Raised when an apply request is malformed or references foreign rows."""

    def __init__(self, message: str, invalid_ids: Optional[list[str]] = None) -> None:
        super().__init__(message)
        self.invalid_ids = invalid_ids or []


def _parse_instant(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed


def get_slot_duration(slot: TimeSlot) -> int:
    """Slot length in whole minutes."""
    delta = _parse_instant(slot.end_time) - _parse_instant(slot.start_time)
    return int(round(delta.total_seconds() / 60))


def get_day_preferences(day_date: str) -> tuple[str, str]:
    """Preference tags matching a calendar day, e.g. 2024-02-20 -> tuesday_am/pm."""
    day_name = _WEEKDAY_NAMES[date.fromisoformat(day_date[:10]).weekday()]
    return f"{day_name}_am", f"{day_name}_pm"


def is_am(instant: str) -> bool:
    return _parse_instant(instant).astimezone(timezone.utc).hour < 12


def _preference_day(tag: str) -> str:
    # Tags compare case-sensitively: "Monday_AM" never matches a Monday slot.
    return tag.replace("_am", "").replace("_pm", "")


def time_range_key(slot: TimeSlot) -> str:
    return f"{slot.start_time}-{slot.end_time}"


def score_slot(
    session: Session,
    slot: TimeSlot,
    venue: Venue,
    occupied_slots: set[str],
    track_assignments_in_range: dict[str, set[str]],
    config: Optional[ScoringConfig] = None,
) -> SlotScore:
    """Score one placement; -1 means the slot cannot take the session."""
    config = config or ScoringConfig()
    if slot.id in occupied_slots or slot.is_break:
        return SlotScore(score=INELIGIBLE_SCORE)

    score = 0
    warnings: list[str] = []

    slot_duration = get_slot_duration(slot)
    if session.duration == slot_duration:
        score += config.duration_exact
    else:
        if abs(session.duration - slot_duration) <= config.duration_tolerance_minutes:
            score += config.duration_close
        else:
            score += config.duration_far
        warnings.append(
            f"Duration mismatch: session is {session.duration}min, slot is {slot_duration}min"
        )

    if session.time_preferences and slot.day_date:
        slot_day = _preference_day(get_day_preferences(slot.day_date)[0])
        half = "_am" if is_am(slot.start_time) else "_pm"
        same_day = [
            tag for tag in session.time_preferences if _preference_day(tag) == slot_day
        ]
        if any(tag.endswith(half) for tag in same_day):
            score += config.preference_exact
        elif same_day:
            score += config.preference_day_only

    if venue.capacity:
        expected_attendance = session.total_votes
        if expected_attendance <= venue.capacity * config.capacity_comfortable_ratio:
            score += config.capacity_comfortable
        elif expected_attendance <= venue.capacity:
            score += config.capacity_tight
        else:
            warnings.append(
                f"Capacity warning: {session.total_votes} expected, {venue.capacity} capacity"
            )
    else:
        score += config.capacity_unknown

    if session.track_id:
        tracks_in_range = track_assignments_in_range.get(time_range_key(slot), set())
        if session.track_id in tracks_in_range:
            warnings.append(TRACK_CONFLICT_WARNING)
        else:
            score += config.track_spread
    else:
        score += config.track_neutral

    if venue.is_primary and session.total_votes > config.primary_venue_min_votes:
        score += config.primary_venue_bonus

    return SlotScore(score=score, warnings=tuple(warnings))


def _round_half_up(value: float) -> float:
    return float(Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def compute_stats(
    total_sessions: int,
    assignments: Sequence[ScheduleAssignment],
    unassigned: Sequence[UnassignedSession],
) -> ScheduleStats:
    if assignments:
        average_score = sum(item.score for item in assignments) / len(assignments)
    else:
        average_score = 0.0
    return ScheduleStats(
        total_sessions=total_sessions,
        assigned=len(assignments),
        unassigned=len(unassigned),
        average_score=_round_half_up(average_score),
    )


def auto_schedule(
    sessions: Iterable[Session],
    time_slots: Iterable[TimeSlot],
    venues: Iterable[Venue],
    config: Optional[ScoringConfig] = None,
) -> AutoScheduleResult:
    """Assign approved, unscheduled sessions to free slots in vote order.

    Equal votes keep input order; equal slot scores keep slot input order.
    """
    config = config or ScoringConfig()
    # sorted() is stable, so ties keep their submission order.
    sessions_to_schedule = sorted(
        (
            session
            for session in sessions
            if session.status == "approved" and not session.time_slot_id
        ),
        key=lambda session: session.total_votes,
        reverse=True,
    )
    venue_by_id = {venue.id: venue for venue in venues}
    available_slots = [
        slot
        for slot in time_slots
        if not slot.is_break and slot.venue_id and slot.venue_id in venue_by_id
    ]

    occupied_slots: set[str] = set()
    track_assignments_in_range: dict[str, set[str]] = defaultdict(set)
    assignments: list[ScheduleAssignment] = []
    unassigned: list[UnassignedSession] = []

    for session in sessions_to_schedule:
        best_slot: Optional[TimeSlot] = None
        best = SlotScore(score=INELIGIBLE_SCORE)

        for slot in available_slots:
            if slot.id in occupied_slots:
                continue
            candidate = score_slot(
                session,
                slot,
                venue_by_id[slot.venue_id],
                occupied_slots,
                track_assignments_in_range,
                config,
            )
            if candidate.score > best.score:
                best = candidate
                best_slot = slot

        if best_slot is None or best.score < 0:
            unassigned.append(
                UnassignedSession(
                    session_id=session.id,
                    session_title=session.title,
                    reason=UNASSIGNED_REASON,
                )
            )
            continue

        occupied_slots.add(best_slot.id)
        if session.track_id:
            track_assignments_in_range[time_range_key(best_slot)].add(session.track_id)
        assignments.append(
            ScheduleAssignment(
                session_id=session.id,
                session_title=session.title,
                slot_id=best_slot.id,
                venue_id=best_slot.venue_id,
                score=best.score,
                warnings=best.warnings,
            )
        )

    stats = compute_stats(len(sessions_to_schedule), assignments, unassigned)
    logger.info(
        (
            "Auto-schedule completed | sessions=%s | slots=%s | assigned=%s | "
            "unassigned=%s | average_score=%.2f"
        ),
        stats.total_sessions,
        len(available_slots),
        stats.assigned,
        stats.unassigned,
        stats.average_score,
    )
    return AutoScheduleResult(assignments=assignments, unassigned=unassigned, stats=stats)


class AutoScheduleService:
    """Preview, apply and publish event schedules built by ``auto_schedule``."""

    def __init__(
        self,
        repository: Optional[DataRepository] = None,
        auth_service: Optional[AuthService] = None,
        settings: Optional[Settings] = None,
        scoring_config: Optional[ScoringConfig] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or DataRepository(self._settings)
        self._auth_service = auth_service or AuthService(
            repository=self._repository,
            settings=self._settings,
        )
        self._scoring_config = scoring_config or scoring_config_from_settings(self._settings)
        validate_scoring_config(self._scoring_config)

    def preview_schedule(self, *, slug: str, user_id: str) -> AutoScheduleResult:
        event = self._auth_service.require_event_role(
            slug=slug,
            user_id=user_id,
            roles=self._settings.admin_roles,
        )
        sessions = self._repository.list_sessions(event.id)
        time_slots = self._repository.list_time_slots(event.id)
        venues = self._repository.list_venues(event.id)
        logger.info(
            "Auto-schedule preview requested | slug=%s | sessions=%s | slots=%s | venues=%s",
            slug,
            len(sessions),
            len(time_slots),
            len(venues),
        )
        return auto_schedule(sessions, time_slots, venues, self._scoring_config)

    def _validate_references(
        self,
        event_id: str,
        assignments: Sequence[AssignmentRequest],
    ) -> None:
        session_ids = [item.session_id for item in assignments]
        slot_ids = [item.slot_id for item in assignments]
        venue_ids = [item.venue_id for item in assignments if item.venue_id]

        valid_sessions = self._repository.filter_session_ids(event_id, session_ids)
        valid_slots = self._repository.filter_time_slot_ids(event_id, slot_ids)
        valid_venues = self._repository.filter_venue_ids(event_id, venue_ids)

        invalid_ids = sorted(
            {sid for sid in session_ids if sid not in valid_sessions}
            | {sid for sid in slot_ids if sid not in valid_slots}
            | {vid for vid in venue_ids if vid not in valid_venues}
        )
        if invalid_ids:
            raise ScheduleValidationError(
                "Some assignments have invalid session or slot IDs",
                invalid_ids=invalid_ids,
            )

    def apply_schedule(
        self,
        *,
        slug: str,
        user_id: str,
        assignments: Sequence[AssignmentRequest],
    ) -> ApplyResult:
        """Persist assignments one by one, collecting failures instead of aborting."""
        event = self._auth_service.require_event_role(
            slug=slug,
            user_id=user_id,
            roles=self._settings.admin_roles,
        )
        if not assignments:
            raise ScheduleValidationError("No assignments provided")

        self._validate_references(event.id, assignments)
        slot_venues = self._repository.get_slot_venue_ids(
            event.id,
            [item.slot_id for item in assignments],
        )

        applied = 0
        errors: list[str] = []
        for item in assignments:
            venue_id = item.venue_id or slot_venues.get(item.slot_id)
            try:
                self._repository.schedule_session(
                    event_id=event.id,
                    session_id=item.session_id,
                    slot_id=item.slot_id,
                    venue_id=venue_id,
                )
            except SessionAlreadyScheduledError as exc:
                errors.append(str(exc))
            except RepositoryError as exc:
                errors.append(f"Failed to schedule session {item.session_id}: {exc}")
            else:
                applied += 1

        if applied:
            try:
                self._repository.mark_schedule_changed(event.id)
            except RepositoryError as exc:
                logger.exception("Failed to record schedule change | slug=%s", slug)
                errors.append(f"Failed to record schedule change: {exc}")
        result = ApplyResult(applied=applied, total=len(assignments), errors=errors)
        logger.info(
            "Auto-schedule applied | slug=%s | applied=%s | total=%s | errors=%s",
            slug,
            result.applied,
            result.total,
            len(result.errors),
        )
        return result

    def publish_schedule(self, *, slug: str, user_id: str) -> PublishStatus:
        event = self._auth_service.require_event_role(
            slug=slug,
            user_id=user_id,
            roles=self._settings.admin_roles,
        )
        scheduled = self._repository.count_scheduled_sessions(event.id)
        published_at = self._repository.mark_schedule_published(event.id)
        logger.info(
            "Schedule published | slug=%s | scheduled_sessions=%s",
            slug,
            scheduled,
        )
        return PublishStatus(
            schedule_published_at=published_at,
            last_schedule_change_at=event.last_schedule_change_at,
            has_unpublished_changes=False,
            scheduled_sessions=scheduled,
        )

    def get_publish_status(self, *, slug: str, user_id: str) -> PublishStatus:
        event = self._auth_service.require_event_role(
            slug=slug,
            user_id=user_id,
            roles=self._settings.admin_roles,
        )
        published_at = event.schedule_published_at
        changed_at = event.last_schedule_change_at
        has_unpublished_changes = published_at is None or (
            changed_at is not None and _parse_instant(changed_at) > _parse_instant(published_at)
        )
        return PublishStatus(
            schedule_published_at=published_at,
            last_schedule_change_at=changed_at,
            has_unpublished_changes=has_unpublished_changes,
            scheduled_sessions=self._repository.count_scheduled_sessions(event.id),
        )
