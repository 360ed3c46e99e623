"""Environment-driven application settings."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path


PROJECT_ROOT = Path(__file__).resolve().parents[2]


def _env_str(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip()


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {value!r}") from exc


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return float(value)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {value!r}") from exc


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    app_name: str
    app_version: str
    database_path: Path
    log_level: str
    seed_demo_data: bool
    demo_admin_token: str

    # Auto-scheduler scoring weights
    scoring_duration_exact: int
    scoring_duration_close: int
    scoring_duration_far: int
    scoring_duration_tolerance_minutes: int
    scoring_preference_exact: int
    scoring_preference_day_only: int
    scoring_capacity_comfortable: int
    scoring_capacity_tight: int
    scoring_capacity_unknown: int
    scoring_capacity_comfortable_ratio: float
    scoring_track_spread: int
    scoring_track_neutral: int
    scoring_primary_venue_bonus: int
    scoring_primary_venue_min_votes: int

    admin_roles: tuple[str, ...]
    import_roles: tuple[str, ...]
    import_max_rows: int
    import_valid_formats: tuple[str, ...]
    import_valid_durations: tuple[int, ...]
    import_default_format: str
    import_default_duration: int
    moderation_roles: tuple[str, ...]
    delete_roles: tuple[str, ...]
    batch_max_sessions: int


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Build settings once per process; tests clear the cache to re-read env."""
    return Settings(
        app_name=_env_str("SESSIONBOARD_APP_NAME", "Sessionboard Scheduling API"),
        app_version=_env_str("SESSIONBOARD_APP_VERSION", "1.0.0"),
        database_path=Path(
            _env_str(
                "SESSIONBOARD_DATABASE_PATH",
                str(PROJECT_ROOT / "data" / "sessionboard.db"),
            )
        ),
        log_level=_env_str("SESSIONBOARD_LOG_LEVEL", "INFO"),
        seed_demo_data=_env_bool("SESSIONBOARD_SEED_DEMO_DATA", False),
        demo_admin_token=_env_str("SESSIONBOARD_DEMO_ADMIN_TOKEN", ""),
        scoring_duration_exact=_env_int("SESSIONBOARD_SCORING_DURATION_EXACT", 8),
        scoring_duration_close=_env_int("SESSIONBOARD_SCORING_DURATION_CLOSE", 4),
        scoring_duration_far=_env_int("SESSIONBOARD_SCORING_DURATION_FAR", 1),
        scoring_duration_tolerance_minutes=_env_int(
            "SESSIONBOARD_SCORING_DURATION_TOLERANCE_MINUTES", 15
        ),
        scoring_preference_exact=_env_int("SESSIONBOARD_SCORING_PREFERENCE_EXACT", 10),
        scoring_preference_day_only=_env_int("SESSIONBOARD_SCORING_PREFERENCE_DAY_ONLY", 3),
        scoring_capacity_comfortable=_env_int("SESSIONBOARD_SCORING_CAPACITY_COMFORTABLE", 5),
        scoring_capacity_tight=_env_int("SESSIONBOARD_SCORING_CAPACITY_TIGHT", 3),
        scoring_capacity_unknown=_env_int("SESSIONBOARD_SCORING_CAPACITY_UNKNOWN", 2),
        scoring_capacity_comfortable_ratio=_env_float(
            "SESSIONBOARD_SCORING_CAPACITY_COMFORTABLE_RATIO", 0.7
        ),
        scoring_track_spread=_env_int("SESSIONBOARD_SCORING_TRACK_SPREAD", 3),
        scoring_track_neutral=_env_int("SESSIONBOARD_SCORING_TRACK_NEUTRAL", 1),
        scoring_primary_venue_bonus=_env_int("SESSIONBOARD_SCORING_PRIMARY_VENUE_BONUS", 2),
        scoring_primary_venue_min_votes=_env_int(
            "SESSIONBOARD_SCORING_PRIMARY_VENUE_MIN_VOTES", 20
        ),
        admin_roles=("owner", "admin"),
        import_roles=("owner", "admin", "moderator"),
        import_max_rows=_env_int("SESSIONBOARD_IMPORT_MAX_ROWS", 500),
        import_valid_formats=("talk", "workshop", "discussion", "panel", "demo"),
        import_valid_durations=(15, 30, 60, 90),
        import_default_format="talk",
        import_default_duration=60,
        moderation_roles=("owner", "admin", "moderator"),
        delete_roles=("owner", "admin"),
        batch_max_sessions=_env_int("SESSIONBOARD_BATCH_MAX_SESSIONS", 100),
    )
