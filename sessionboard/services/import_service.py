"""Bulk creation of approved sessions from an admin-supplied CSV file."""

from __future__ import annotations

import io
from typing import Optional

import pandas as pd

from sessionboard.domain.models import ImportReport, ImportRowResult
from sessionboard.repository.data_repository import DataRepository
from sessionboard.services.auth_service import AuthService
from sessionboard.utils.config import Settings, get_settings
from sessionboard.utils.logger import get_logger


logger = get_logger(__name__)

REQUIRED_COLUMNS = ("title", "host_name")


class ImportValidationError(Exception):
    """Raised when the CSV payload as a whole cannot be imported."""


def _cell(row: pd.Series, column: str) -> str:
    if column not in row.index:
        return ""
    value = row[column]
    if pd.isna(value):
        return ""
    return str(value).strip()


def parse_sessions_csv(csv_text: str, max_rows: int) -> pd.DataFrame:
    """Load CSV text into a string-typed frame with lower-cased headers."""
    if not csv_text or not csv_text.strip():
        raise ImportValidationError("CSV must have a header row and at least one data row")
    try:
        frame = pd.read_csv(
            io.StringIO(csv_text),
            dtype=str,
            keep_default_na=False,
            skipinitialspace=True,
        )
    except (pd.errors.ParserError, pd.errors.EmptyDataError) as exc:
        raise ImportValidationError("Failed to parse CSV file") from exc

    frame.columns = [str(column).strip().lower() for column in frame.columns]
    missing = [column for column in REQUIRED_COLUMNS if column not in frame.columns]
    if missing:
        raise ImportValidationError(f"Missing required columns: {', '.join(missing)}")
    if frame.empty:
        raise ImportValidationError("CSV must have a header row and at least one data row")
    if len(frame) > max_rows:
        raise ImportValidationError(f"CSV exceeds the limit of {max_rows} rows")
    return frame


class SessionImportService:
    """Validates CSV rows and stores the valid ones as approved sessions."""

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

    def _parse_duration(self, raw: str) -> int:
        try:
            duration = int(float(raw))
        except (ValueError, OverflowError):
            return self._settings.import_default_duration
        return duration or self._settings.import_default_duration

    def import_csv(self, *, slug: str, user_id: str, csv_text: str) -> ImportReport:
        event = self._auth_service.require_event_role(
            slug=slug,
            user_id=user_id,
            roles=self._settings.import_roles,
        )
        frame = parse_sessions_csv(csv_text, self._settings.import_max_rows)
        track_ids = self._repository.get_track_ids_by_name(event.id)

        rows: list[ImportRowResult] = []
        # Row numbers count the header as line 1.
        for offset, (_, row) in enumerate(frame.iterrows(), start=2):
            title = _cell(row, "title")
            host_name = _cell(row, "host_name")
            description = _cell(row, "description") or None
            session_format = (
                _cell(row, "format").lower() or self._settings.import_default_format
            )
            raw_duration = _cell(row, "duration")
            duration = (
                self._parse_duration(raw_duration)
                if raw_duration
                else self._settings.import_default_duration
            )
            track_name = _cell(row, "track")

            errors: list[str] = []
            if not title:
                errors.append("Title is required")
            if not host_name:
                errors.append("Host name is required")
            if session_format not in self._settings.import_valid_formats:
                errors.append(
                    f'Invalid format "{session_format}". '
                    f"Valid: {', '.join(self._settings.import_valid_formats)}"
                )
            if duration not in self._settings.import_valid_durations:
                errors.append(
                    f"Invalid duration {duration}. "
                    f"Valid: {', '.join(str(item) for item in self._settings.import_valid_durations)}"
                )
            track_id = None
            if track_name:
                track_id = track_ids.get(track_name.lower())
                if track_id is None:
                    errors.append(f'Unknown track "{track_name}"')

            if errors:
                rows.append(
                    ImportRowResult(
                        row_number=offset,
                        title=title,
                        success=False,
                        errors=tuple(errors),
                    )
                )
                continue

            session_id = self._repository.create_session(
                event.id,
                title=title,
                description=description,
                host_name=host_name,
                format=session_format,
                duration=duration,
                status="approved",
                track_id=track_id,
            )
            rows.append(
                ImportRowResult(
                    row_number=offset,
                    title=title,
                    success=True,
                    session_id=session_id,
                )
            )

        imported = sum(1 for item in rows if item.success)
        report = ImportReport(imported=imported, rejected=len(rows) - imported, rows=rows)
        logger.info(
            "Session CSV import completed | slug=%s | imported=%s | rejected=%s",
            slug,
            report.imported,
            report.rejected,
        )
        return report
