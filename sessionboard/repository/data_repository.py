"""Repository layer responsible for all database access."""

from __future__ import annotations

import hashlib
import json
import secrets
import sqlite3
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Optional, Sequence

from sessionboard.domain.models import EventRecord, Session, TimeSlot, Venue
from sessionboard.utils.config import Settings, get_settings
from sessionboard.utils.logger import get_logger


logger = get_logger(__name__)


class RepositoryError(RuntimeError):
    """Raised when a storage operation fails."""


class SessionNotFoundError(RepositoryError):
    """Raised when a session row vanished or belongs to another event."""


class SessionAlreadyScheduledError(RepositoryError):
    """Raised when a session already holds a time slot."""


def hash_token(raw_token: str) -> str:
    return hashlib.sha256(raw_token.encode("utf-8")).hexdigest()


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _new_id() -> str:
    return str(uuid.uuid4())


def _decode_preferences(raw: Optional[str]) -> Optional[tuple[str, ...]]:
    if raw is None:
        return None
    try:
        values = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Ignoring malformed time_preferences payload | raw=%s", raw)
        return None
    if not isinstance(values, list):
        return None
    return tuple(str(value) for value in values)


class DataRepository:
    """Encapsulates SQLite access so business logic stays storage-agnostic."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self._settings = settings or get_settings()
        self._db_path = Path(self._settings.database_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def database_path(self) -> Path:
        return self._db_path

    def _connect(self) -> sqlite3.Connection:
        connection = sqlite3.connect(self._db_path)
        connection.row_factory = sqlite3.Row
        connection.execute("PRAGMA foreign_keys = ON;")
        return connection

    def initialize_database(self) -> None:
        """Create all persistence artifacts before API startup."""
        try:
            with self._connect() as conn:
                cursor = conn.cursor()

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS Users (
                        id TEXT PRIMARY KEY,
                        display_name TEXT NOT NULL,
                        api_token_hash TEXT NOT NULL UNIQUE,
                        created_at DATETIME DEFAULT CURRENT_TIMESTAMP
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS Events (
                        id TEXT PRIMARY KEY,
                        slug TEXT NOT NULL UNIQUE,
                        name TEXT NOT NULL,
                        timezone TEXT NOT NULL DEFAULT 'UTC',
                        schedule_published_at TEXT,
                        last_schedule_change_at TEXT,
                        created_at DATETIME DEFAULT CURRENT_TIMESTAMP
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS EventMembers (
                        event_id TEXT NOT NULL,
                        user_id TEXT NOT NULL,
                        role TEXT NOT NULL
                            CHECK (role IN ('owner', 'admin', 'moderator', 'attendee')),
                        PRIMARY KEY (event_id, user_id),
                        FOREIGN KEY (event_id) REFERENCES Events(id) ON DELETE CASCADE,
                        FOREIGN KEY (user_id) REFERENCES Users(id) ON DELETE CASCADE
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS Tracks (
                        id TEXT PRIMARY KEY,
                        event_id TEXT NOT NULL,
                        name TEXT NOT NULL,
                        FOREIGN KEY (event_id) REFERENCES Events(id) ON DELETE CASCADE
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS Venues (
                        id TEXT PRIMARY KEY,
                        event_id TEXT NOT NULL,
                        name TEXT NOT NULL,
                        capacity INTEGER,
                        is_primary INTEGER NOT NULL DEFAULT 0 CHECK (is_primary IN (0,1)),
                        FOREIGN KEY (event_id) REFERENCES Events(id) ON DELETE CASCADE
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS TimeSlots (
                        id TEXT PRIMARY KEY,
                        event_id TEXT NOT NULL,
                        venue_id TEXT,
                        start_time TEXT NOT NULL,
                        end_time TEXT NOT NULL,
                        is_break INTEGER NOT NULL DEFAULT 0 CHECK (is_break IN (0,1)),
                        day_date TEXT,
                        slot_type TEXT,
                        FOREIGN KEY (event_id) REFERENCES Events(id) ON DELETE CASCADE,
                        FOREIGN KEY (venue_id) REFERENCES Venues(id) ON DELETE SET NULL
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS Sessions (
                        id TEXT PRIMARY KEY,
                        event_id TEXT NOT NULL,
                        title TEXT NOT NULL,
                        description TEXT,
                        host_name TEXT,
                        format TEXT NOT NULL DEFAULT 'talk',
                        duration INTEGER NOT NULL DEFAULT 60,
                        total_votes INTEGER NOT NULL DEFAULT 0 CHECK (total_votes >= 0),
                        status TEXT NOT NULL DEFAULT 'pending'
                            CHECK (status IN ('pending', 'approved', 'rejected', 'scheduled')),
                        time_slot_id TEXT,
                        venue_id TEXT,
                        track_id TEXT,
                        time_preferences TEXT,
                        created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
                        FOREIGN KEY (event_id) REFERENCES Events(id) ON DELETE CASCADE,
                        FOREIGN KEY (time_slot_id) REFERENCES TimeSlots(id) ON DELETE SET NULL,
                        FOREIGN KEY (venue_id) REFERENCES Venues(id) ON DELETE SET NULL,
                        FOREIGN KEY (track_id) REFERENCES Tracks(id) ON DELETE SET NULL
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE INDEX IF NOT EXISTS idx_sessions_event_status
                    ON Sessions(event_id, status);
                    """
                )
                cursor.execute(
                    """
                    CREATE INDEX IF NOT EXISTS idx_time_slots_event_start
                    ON TimeSlots(event_id, start_time);
                    """
                )
                conn.commit()
            logger.info("Database initialized at %s", self._db_path)
        except sqlite3.Error as exc:
            raise RuntimeError(f"Database initialization failed: {exc}") from exc

    def seed_demo_event(self) -> Optional[str]:
        """Seed a small demo event only when no events exist.

        Returns the demo owner's raw API token when a seed happened.
        """
        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                cursor.execute("SELECT COUNT(*) AS count FROM Events;")
                if int(cursor.fetchone()["count"]) > 0:
                    logger.info("Events already present; skipping demo seed")
                    return None
        except sqlite3.Error as exc:
            raise RuntimeError(f"Demo data seeding failed: {exc}") from exc

        raw_token = self._settings.demo_admin_token or secrets.token_urlsafe(32)
        user_id = self.create_user("Demo Organizer", raw_token=raw_token)[0]
        event_id = self.create_event(slug="demo-unconf", name="Demo Unconference")
        self.add_event_member(event_id, user_id, "owner")

        technical = self.create_track(event_id, "Technical")
        governance = self.create_track(event_id, "Governance")
        main_hall = self.create_venue(event_id, "Main Hall", capacity=120, is_primary=True)
        side_room = self.create_venue(event_id, "Side Room", capacity=30)

        for venue_id in (main_hall, side_room):
            self.create_time_slot(
                event_id,
                start_time="2026-03-03T09:00:00+00:00",
                end_time="2026-03-03T10:00:00+00:00",
                venue_id=venue_id,
                day_date="2026-03-03",
                slot_type="session",
            )
            self.create_time_slot(
                event_id,
                start_time="2026-03-03T10:00:00+00:00",
                end_time="2026-03-03T10:30:00+00:00",
                venue_id=venue_id,
                is_break=True,
                day_date="2026-03-03",
                slot_type="break",
            )
            self.create_time_slot(
                event_id,
                start_time="2026-03-03T14:00:00+00:00",
                end_time="2026-03-03T15:30:00+00:00",
                venue_id=venue_id,
                day_date="2026-03-03",
                slot_type="session",
            )

        self.create_session(
            event_id,
            title="Introduction to Web3",
            duration=60,
            total_votes=42,
            status="approved",
            track_id=technical,
            time_preferences=["tuesday_am"],
        )
        self.create_session(
            event_id,
            title="Building DApps Workshop",
            duration=90,
            total_votes=18,
            status="approved",
            track_id=technical,
            time_preferences=["tuesday_pm"],
            format="workshop",
        )
        self.create_session(
            event_id,
            title="Community Governance Discussion",
            duration=60,
            total_votes=9,
            status="approved",
            track_id=governance,
            format="discussion",
        )
        logger.info("Demo event seeded | slug=demo-unconf | owner_id=%s", user_id)
        return raw_token

    # --- Users and membership ---

    def create_user(self, display_name: str, raw_token: Optional[str] = None) -> tuple[str, str]:
        """Insert a user and return (user_id, raw_token); the raw token is not stored."""
        user_id = _new_id()
        token = raw_token or secrets.token_urlsafe(32)
        with self._connect() as conn:
            conn.execute(
                "INSERT INTO Users (id, display_name, api_token_hash) VALUES (?, ?, ?);",
                (user_id, display_name, hash_token(token)),
            )
            conn.commit()
        return user_id, token

    def find_user_by_token_hash(self, token_hash: str) -> Optional[tuple[str, str]]:
        """Return (user_id, stored_hash) for a token hash."""
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT id, api_token_hash FROM Users WHERE api_token_hash = ?;",
                (token_hash,),
            )
            row = cursor.fetchone()
            if row is None:
                return None
            return str(row["id"]), str(row["api_token_hash"])

    def add_event_member(self, event_id: str, user_id: str, role: str) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO EventMembers (event_id, user_id, role)
                VALUES (?, ?, ?)
                ON CONFLICT(event_id, user_id) DO UPDATE SET role = excluded.role;
                """,
                (event_id, user_id, role),
            )
            conn.commit()

    def get_member_role(self, event_id: str, user_id: str) -> Optional[str]:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT role FROM EventMembers WHERE event_id = ? AND user_id = ?;",
                (event_id, user_id),
            )
            row = cursor.fetchone()
            if row is None:
                return None
            return str(row["role"])

    # --- Events ---

    def create_event(self, slug: str, name: str, timezone_name: str = "UTC") -> str:
        event_id = _new_id()
        with self._connect() as conn:
            conn.execute(
                "INSERT INTO Events (id, slug, name, timezone) VALUES (?, ?, ?, ?);",
                (event_id, slug, name, timezone_name),
            )
            conn.commit()
        return event_id

    def get_event_by_slug(self, slug: str) -> Optional[EventRecord]:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                SELECT id, slug, name, schedule_published_at, last_schedule_change_at
                FROM Events
                WHERE slug = ?;
                """,
                (slug,),
            )
            row = cursor.fetchone()
            if row is None:
                return None
            return EventRecord(
                id=str(row["id"]),
                slug=str(row["slug"]),
                name=str(row["name"]),
                schedule_published_at=row["schedule_published_at"],
                last_schedule_change_at=row["last_schedule_change_at"],
            )

    def mark_schedule_changed(self, event_id: str, changed_at: Optional[str] = None) -> None:
        try:
            with self._connect() as conn:
                conn.execute(
                    "UPDATE Events SET last_schedule_change_at = ? WHERE id = ?;",
                    (changed_at or utc_now_iso(), event_id),
                )
                conn.commit()
        except sqlite3.Error as exc:
            raise RepositoryError(str(exc)) from exc

    def mark_schedule_published(self, event_id: str, published_at: Optional[str] = None) -> str:
        timestamp = published_at or utc_now_iso()
        with self._connect() as conn:
            conn.execute(
                "UPDATE Events SET schedule_published_at = ? WHERE id = ?;",
                (timestamp, event_id),
            )
            conn.commit()
        return timestamp

    # --- Tracks, venues, slots ---

    def create_track(self, event_id: str, name: str) -> str:
        track_id = _new_id()
        with self._connect() as conn:
            conn.execute(
                "INSERT INTO Tracks (id, event_id, name) VALUES (?, ?, ?);",
                (track_id, event_id, name),
            )
            conn.commit()
        return track_id

    def get_track_ids_by_name(self, event_id: str) -> dict[str, str]:
        """Map lower-cased track names to ids for case-insensitive lookups."""
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT id, name FROM Tracks WHERE event_id = ? ORDER BY rowid ASC;",
                (event_id,),
            )
            return {
                str(row["name"]).strip().lower(): str(row["id"])
                for row in cursor.fetchall()
            }

    def create_venue(
        self,
        event_id: str,
        name: str,
        capacity: Optional[int] = None,
        is_primary: bool = False,
    ) -> str:
        venue_id = _new_id()
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO Venues (id, event_id, name, capacity, is_primary)
                VALUES (?, ?, ?, ?, ?);
                """,
                (venue_id, event_id, name, capacity, int(is_primary)),
            )
            conn.commit()
        return venue_id

    def list_venues(self, event_id: str) -> list[Venue]:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                SELECT id, name, capacity, is_primary
                FROM Venues
                WHERE event_id = ?
                ORDER BY rowid ASC;
                """,
                (event_id,),
            )
            return [
                Venue(
                    id=str(row["id"]),
                    name=str(row["name"]),
                    capacity=None if row["capacity"] is None else int(row["capacity"]),
                    is_primary=bool(row["is_primary"]),
                )
                for row in cursor.fetchall()
            ]

    def create_time_slot(
        self,
        event_id: str,
        *,
        start_time: str,
        end_time: str,
        venue_id: Optional[str] = None,
        is_break: bool = False,
        day_date: Optional[str] = None,
        slot_type: Optional[str] = None,
    ) -> str:
        slot_id = _new_id()
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO TimeSlots (
                    id, event_id, venue_id, start_time, end_time, is_break, day_date, slot_type
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?);
                """,
                (slot_id, event_id, venue_id, start_time, end_time, int(is_break), day_date, slot_type),
            )
            conn.commit()
        return slot_id

    def list_time_slots(self, event_id: str) -> list[TimeSlot]:
        """Return slots earliest first; equal scores resolve to this order."""
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                SELECT id, start_time, end_time, is_break, venue_id, day_date, slot_type
                FROM TimeSlots
                WHERE event_id = ?
                ORDER BY start_time ASC, rowid ASC;
                """,
                (event_id,),
            )
            return [
                TimeSlot(
                    id=str(row["id"]),
                    start_time=str(row["start_time"]),
                    end_time=str(row["end_time"]),
                    is_break=bool(row["is_break"]),
                    venue_id=row["venue_id"],
                    day_date=row["day_date"],
                    slot_type=row["slot_type"],
                )
                for row in cursor.fetchall()
            ]

    # --- Sessions ---

    def create_session(
        self,
        event_id: str,
        *,
        title: str,
        duration: int = 60,
        total_votes: int = 0,
        status: str = "pending",
        track_id: Optional[str] = None,
        time_preferences: Optional[Sequence[str]] = None,
        description: Optional[str] = None,
        host_name: Optional[str] = None,
        format: str = "talk",
        time_slot_id: Optional[str] = None,
        venue_id: Optional[str] = None,
    ) -> str:
        session_id = _new_id()
        encoded_preferences = (
            json.dumps(list(time_preferences)) if time_preferences is not None else None
        )
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO Sessions (
                    id, event_id, title, description, host_name, format, duration,
                    total_votes, status, time_slot_id, venue_id, track_id, time_preferences
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
                """,
                (
                    session_id,
                    event_id,
                    title,
                    description,
                    host_name,
                    format,
                    duration,
                    total_votes,
                    status,
                    time_slot_id,
                    venue_id,
                    track_id,
                    encoded_preferences,
                ),
            )
            conn.commit()
        return session_id

    def list_sessions(self, event_id: str) -> list[Session]:
        """Return every session of an event in submission order."""
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                SELECT
                    id, title, duration, total_votes, status,
                    time_slot_id, venue_id, track_id, time_preferences
                FROM Sessions
                WHERE event_id = ?
                ORDER BY rowid ASC;
                """,
                (event_id,),
            )
            return [self._row_to_session(row) for row in cursor.fetchall()]

    def get_session(self, session_id: str) -> Optional[Session]:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                SELECT
                    id, title, duration, total_votes, status,
                    time_slot_id, venue_id, track_id, time_preferences
                FROM Sessions
                WHERE id = ?;
                """,
                (session_id,),
            )
            row = cursor.fetchone()
            if row is None:
                return None
            return self._row_to_session(row)

    @staticmethod
    def _row_to_session(row: sqlite3.Row) -> Session:
        return Session(
            id=str(row["id"]),
            title=str(row["title"]),
            duration=int(row["duration"]),
            total_votes=int(row["total_votes"]),
            status=str(row["status"]),
            time_slot_id=row["time_slot_id"],
            venue_id=row["venue_id"],
            track_id=row["track_id"],
            time_preferences=_decode_preferences(row["time_preferences"]),
        )

    def _filter_ids(self, table: str, event_id: str, ids: Iterable[str]) -> set[str]:
        unique_ids = sorted(set(ids))
        if not unique_ids:
            return set()
        placeholders = ",".join("?" for _ in unique_ids)
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                f"SELECT id FROM {table} WHERE event_id = ? AND id IN ({placeholders});",
                (event_id, *unique_ids),
            )
            return {str(row["id"]) for row in cursor.fetchall()}

    def filter_session_ids(self, event_id: str, session_ids: Iterable[str]) -> set[str]:
        """Return the subset of ids that are sessions of this event."""
        return self._filter_ids("Sessions", event_id, session_ids)

    def filter_time_slot_ids(self, event_id: str, slot_ids: Iterable[str]) -> set[str]:
        return self._filter_ids("TimeSlots", event_id, slot_ids)

    def filter_venue_ids(self, event_id: str, venue_ids: Iterable[str]) -> set[str]:
        return self._filter_ids("Venues", event_id, venue_ids)

    def filter_track_ids(self, event_id: str, track_ids: Iterable[str]) -> set[str]:
        return self._filter_ids("Tracks", event_id, track_ids)

    def get_slot_venue_ids(self, event_id: str, slot_ids: Iterable[str]) -> dict[str, Optional[str]]:
        unique_ids = sorted(set(slot_ids))
        if not unique_ids:
            return {}
        placeholders = ",".join("?" for _ in unique_ids)
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                f"""
                SELECT id, venue_id
                FROM TimeSlots
                WHERE event_id = ? AND id IN ({placeholders});
                """,
                (event_id, *unique_ids),
            )
            return {str(row["id"]): row["venue_id"] for row in cursor.fetchall()}

    def schedule_session(
        self,
        *,
        event_id: str,
        session_id: str,
        slot_id: str,
        venue_id: Optional[str],
    ) -> None:
        """Place one session in a slot; only unscheduled sessions are updated."""
        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                cursor.execute(
                    """
                    UPDATE Sessions
                    SET status = 'scheduled', venue_id = ?, time_slot_id = ?
                    WHERE id = ? AND event_id = ? AND time_slot_id IS NULL;
                    """,
                    (venue_id, slot_id, session_id, event_id),
                )
                if cursor.rowcount == 1:
                    conn.commit()
                    return
                cursor.execute(
                    "SELECT time_slot_id FROM Sessions WHERE id = ? AND event_id = ?;",
                    (session_id, event_id),
                )
                row = cursor.fetchone()
        except sqlite3.Error as exc:
            raise RepositoryError(str(exc)) from exc

        if row is None:
            raise SessionNotFoundError(f"Session {session_id} no longer exists")
        raise SessionAlreadyScheduledError(f"Session {session_id} is already scheduled")

    def count_scheduled_sessions(self, event_id: str) -> int:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                SELECT COUNT(*) AS count
                FROM Sessions
                WHERE event_id = ? AND status = 'scheduled' AND time_slot_id IS NOT NULL;
                """,
                (event_id,),
            )
            return int(cursor.fetchone()["count"])

    # --- Batch moderation ---

    def _update_sessions(self, sql: str, params: tuple, session_ids: Sequence[str]) -> int:
        unique_ids = sorted(set(session_ids))
        if not unique_ids:
            return 0
        placeholders = ",".join("?" for _ in unique_ids)
        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                cursor.execute(sql.format(placeholders=placeholders), (*params, *unique_ids))
                conn.commit()
                return int(cursor.rowcount)
        except sqlite3.Error as exc:
            raise RepositoryError(str(exc)) from exc

    def set_session_status(self, event_id: str, session_ids: Sequence[str], status: str) -> int:
        """Set ``status`` on the given sessions of one event; returns rows touched."""
        return self._update_sessions(
            "UPDATE Sessions SET status = ? WHERE event_id = ? AND id IN ({placeholders});",
            (status, event_id),
            session_ids,
        )

    def set_session_track(
        self,
        event_id: str,
        session_ids: Sequence[str],
        track_id: Optional[str],
    ) -> int:
        return self._update_sessions(
            "UPDATE Sessions SET track_id = ? WHERE event_id = ? AND id IN ({placeholders});",
            (track_id, event_id),
            session_ids,
        )

    def delete_sessions(self, event_id: str, session_ids: Sequence[str]) -> int:
        return self._update_sessions(
            "DELETE FROM Sessions WHERE event_id = ? AND id IN ({placeholders});",
            (event_id,),
            session_ids,
        )
