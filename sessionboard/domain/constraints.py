"""Scoring weights and thresholds for the auto-scheduler."""

from __future__ import annotations

from dataclasses import dataclass

from sessionboard.utils.config import Settings


@dataclass(frozen=True)
class ScoringConfig:
    duration_exact: int = 8
    duration_close: int = 4
    duration_far: int = 1
    duration_tolerance_minutes: int = 15
    preference_exact: int = 10
    preference_day_only: int = 3
    capacity_comfortable: int = 5
    capacity_tight: int = 3
    capacity_unknown: int = 2
    capacity_comfortable_ratio: float = 0.7
    track_spread: int = 3
    track_neutral: int = 1
    primary_venue_bonus: int = 2
    primary_venue_min_votes: int = 20


def scoring_config_from_settings(settings: Settings) -> ScoringConfig:
    return ScoringConfig(
        duration_exact=settings.scoring_duration_exact,
        duration_close=settings.scoring_duration_close,
        duration_far=settings.scoring_duration_far,
        duration_tolerance_minutes=settings.scoring_duration_tolerance_minutes,
        preference_exact=settings.scoring_preference_exact,
        preference_day_only=settings.scoring_preference_day_only,
        capacity_comfortable=settings.scoring_capacity_comfortable,
        capacity_tight=settings.scoring_capacity_tight,
        capacity_unknown=settings.scoring_capacity_unknown,
        capacity_comfortable_ratio=settings.scoring_capacity_comfortable_ratio,
        track_spread=settings.scoring_track_spread,
        track_neutral=settings.scoring_track_neutral,
        primary_venue_bonus=settings.scoring_primary_venue_bonus,
        primary_venue_min_votes=settings.scoring_primary_venue_min_votes,
    )


def validate_scoring_config(config: ScoringConfig) -> None:
    # Every term must stay >= 0 so that -1 remains the only "ineligible" score.
    weights = {
        "duration_exact": config.duration_exact,
        "duration_close": config.duration_close,
        "duration_far": config.duration_far,
        "preference_exact": config.preference_exact,
        "preference_day_only": config.preference_day_only,
        "capacity_comfortable": config.capacity_comfortable,
        "capacity_tight": config.capacity_tight,
        "capacity_unknown": config.capacity_unknown,
        "track_spread": config.track_spread,
        "track_neutral": config.track_neutral,
        "primary_venue_bonus": config.primary_venue_bonus,
    }
    for name, value in weights.items():
        if value < 0:
            raise ValueError(f"{name} must be >= 0")
    if config.duration_tolerance_minutes < 0:
        raise ValueError("duration_tolerance_minutes must be >= 0")
    if not 0.0 < config.capacity_comfortable_ratio <= 1.0:
        raise ValueError("capacity_comfortable_ratio must be in (0, 1]")
    if config.primary_venue_min_votes < 0:
        raise ValueError("primary_venue_min_votes must be >= 0")
