"""Domain models for session scheduling, publishing and import."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional


@dataclass(frozen=True)
class Session:
    id: str
    title: str
    duration: int
    total_votes: int
    status: str
    time_slot_id: Optional[str] = None
    venue_id: Optional[str] = None
    track_id: Optional[str] = None
    time_preferences: Optional[tuple[str, ...]] = None


@dataclass(frozen=True)
class TimeSlot:
    id: str
    start_time: str
    end_time: str
    is_break: bool = False
    venue_id: Optional[str] = None
    day_date: Optional[str] = None
    slot_type: Optional[str] = None


@dataclass(frozen=True)
class Venue:
    id: str
    name: str
    capacity: Optional[int] = None
    is_primary: bool = False


@dataclass(frozen=True)
class SlotScore:
    score: int
    warnings: tuple[str, ...] = ()


@dataclass(frozen=True)
class ScheduleAssignment:
    session_id: str
    session_title: str
    slot_id: str
    venue_id: str
    score: int
    warnings: tuple[str, ...] = ()


@dataclass(frozen=True)
class UnassignedSession:
    session_id: str
    session_title: str
    reason: str


@dataclass(frozen=True)
class ScheduleStats:
    total_sessions: int
    assigned: int
    unassigned: int
    average_score: float


@dataclass(frozen=True)
class AutoScheduleResult:
    assignments: list[ScheduleAssignment]
    unassigned: list[UnassignedSession]
    stats: ScheduleStats


@dataclass(frozen=True)
class AssignmentRequest:
    """Placement submitted for persistence, usually taken from a preview."""

    session_id: str
    slot_id: str
    venue_id: Optional[str] = None


@dataclass(frozen=True)
class ApplyResult:
    applied: int
    total: int
    errors: list[str] = field(default_factory=list)

    @property
    def message(self) -> str:
        return f"Applied {self.applied} of {self.total} assignments"


@dataclass(frozen=True)
class EventRecord:
    id: str
    slug: str
    name: str
    schedule_published_at: Optional[str] = None
    last_schedule_change_at: Optional[str] = None


@dataclass(frozen=True)
class PublishStatus:
    schedule_published_at: Optional[str]
    last_schedule_change_at: Optional[str]
    has_unpublished_changes: bool
    scheduled_sessions: int


@dataclass(frozen=True)
class ImportRowResult:
    row_number: int
    title: str
    success: bool
    session_id: Optional[str] = None
    errors: tuple[str, ...] = ()


@dataclass(frozen=True)
class ImportReport:
    imported: int
    rejected: int
    rows: list[ImportRowResult]


@dataclass(frozen=True)
class BatchResult:
    action: str
    affected: int

    @property
    def message(self) -> str:
        noun = "session" if self.affected == 1 else "sessions"
        return f"{self.action} completed for {self.affected} {noun}"
