"""Tests for scoring configuration validation and settings mapping."""

from __future__ import annotations

from dataclasses import replace

import pytest

from sessionboard.domain.constraints import (
    ScoringConfig,
    scoring_config_from_settings,
    validate_scoring_config,
)
from sessionboard.utils.config import get_settings


def valid_config(**overrides) -> ScoringConfig:
    """Return the default ScoringConfig, optionally overriding fields."""
    return replace(ScoringConfig(), **overrides)


def test_default_config_passes() -> None:
    validate_scoring_config(valid_config())


def test_defaults_from_settings_match_documented_weights() -> None:
    get_settings.cache_clear()
    assert scoring_config_from_settings(get_settings()) == ScoringConfig()


@pytest.mark.parametrize(
    "field_name",
    [
        "duration_exact",
        "duration_close",
        "duration_far",
        "preference_exact",
        "preference_day_only",
        "capacity_comfortable",
        "capacity_tight",
        "capacity_unknown",
        "track_spread",
        "track_neutral",
        "primary_venue_bonus",
    ],
)
def test_negative_weight_raises(field_name: str) -> None:
    with pytest.raises(ValueError, match=field_name):
        validate_scoring_config(valid_config(**{field_name: -1}))


def test_negative_tolerance_raises() -> None:
    with pytest.raises(ValueError):
        validate_scoring_config(valid_config(duration_tolerance_minutes=-5))


def test_zero_tolerance_passes() -> None:
    validate_scoring_config(valid_config(duration_tolerance_minutes=0))


def test_comfortable_ratio_zero_raises() -> None:
    with pytest.raises(ValueError):
        validate_scoring_config(valid_config(capacity_comfortable_ratio=0.0))


def test_comfortable_ratio_above_one_raises() -> None:
    with pytest.raises(ValueError):
        validate_scoring_config(valid_config(capacity_comfortable_ratio=1.2))


def test_comfortable_ratio_one_passes() -> None:
    """Exact upper boundary must pass."""
    validate_scoring_config(valid_config(capacity_comfortable_ratio=1.0))


def test_negative_primary_vote_threshold_raises() -> None:
    with pytest.raises(ValueError):
        validate_scoring_config(valid_config(primary_venue_min_votes=-1))


def test_settings_read_scoring_overrides_from_environment(monkeypatch) -> None:
    monkeypatch.setenv("SESSIONBOARD_SCORING_DURATION_EXACT", "12")
    monkeypatch.setenv("SESSIONBOARD_SCORING_CAPACITY_COMFORTABLE_RATIO", "0.5")
    get_settings.cache_clear()
    try:
        config = scoring_config_from_settings(get_settings())
    finally:
        get_settings.cache_clear()
    assert config.duration_exact == 12
    assert config.capacity_comfortable_ratio == 0.5


def test_settings_reject_non_numeric_environment(monkeypatch) -> None:
    monkeypatch.setenv("SESSIONBOARD_SCORING_TRACK_SPREAD", "lots")
    get_settings.cache_clear()
    try:
        with pytest.raises(ValueError, match="SESSIONBOARD_SCORING_TRACK_SPREAD"):
            get_settings()
    finally:
        get_settings.cache_clear()
