from __future__ import annotations

from dataclasses import replace

import pytest

from sessionboard.domain.models import AssignmentRequest
from sessionboard.repository.data_repository import DataRepository, RepositoryError
from sessionboard.services.auth_service import (
    AuthService,
    EventAccessDeniedError,
    EventNotFoundError,
    InvalidTokenError,
    MissingTokenError,
)
from sessionboard.services.scheduling_service import (
    AutoScheduleService,
    ScheduleValidationError,
)
from sessionboard.utils.config import get_settings


SLUG = "devconf"


def _build_test_settings(tmp_path, filename: str):
    base = get_settings()
    return replace(base, database_path=tmp_path / filename, seed_demo_data=False)


def _build_service(tmp_path, filename: str):
    settings = _build_test_settings(tmp_path, filename)
    repository = DataRepository(settings)
    repository.initialize_database()
    auth_service = AuthService(repository=repository, settings=settings)
    service = AutoScheduleService(
        repository=repository,
        auth_service=auth_service,
        settings=settings,
    )
    return repository, auth_service, service


def _seed_event(repository: DataRepository) -> dict[str, str]:
    owner_id, owner_token = repository.create_user("Owner")
    event_id = repository.create_event(SLUG, "DevConf")
    repository.add_event_member(event_id, owner_id, "owner")

    hall = repository.create_venue(event_id, "Hall", capacity=100, is_primary=True)
    room = repository.create_venue(event_id, "Room", capacity=20)
    morning = repository.create_time_slot(
        event_id,
        start_time="2026-03-02T09:00:00+00:00",
        end_time="2026-03-02T10:00:00+00:00",
        venue_id=hall,
        day_date="2026-03-02",
    )
    afternoon = repository.create_time_slot(
        event_id,
        start_time="2026-03-02T14:00:00+00:00",
        end_time="2026-03-02T15:00:00+00:00",
        venue_id=room,
        day_date="2026-03-02",
    )
    repository.create_time_slot(
        event_id,
        start_time="2026-03-02T10:00:00+00:00",
        end_time="2026-03-02T10:30:00+00:00",
        venue_id=hall,
        is_break=True,
        day_date="2026-03-02",
    )
    popular = repository.create_session(
        event_id,
        title="Popular talk",
        total_votes=40,
        status="approved",
        time_preferences=["monday_am"],
    )
    niche = repository.create_session(
        event_id,
        title="Niche talk",
        total_votes=4,
        status="approved",
        time_preferences=["monday_pm"],
    )
    repository.create_session(event_id, title="Pending talk", total_votes=99, status="pending")
    return {
        "event_id": event_id,
        "owner_id": owner_id,
        "owner_token": owner_token,
        "hall": hall,
        "room": room,
        "morning": morning,
        "afternoon": afternoon,
        "popular": popular,
        "niche": niche,
    }


def test_authenticate_resolves_token_to_user(tmp_path):
    repository, auth_service, _ = _build_service(tmp_path, "auth.db")
    seeded = _seed_event(repository)

    assert auth_service.authenticate(seeded["owner_token"]) == seeded["owner_id"]
    with pytest.raises(InvalidTokenError):
        auth_service.authenticate("not-a-token")
    with pytest.raises(MissingTokenError):
        auth_service.authenticate(None)


def test_preview_places_sessions_by_votes_and_preference(tmp_path):
    repository, _, service = _build_service(tmp_path, "preview.db")
    seeded = _seed_event(repository)

    result = service.preview_schedule(slug=SLUG, user_id=seeded["owner_id"])

    placements = {item.session_id: item for item in result.assignments}
    assert placements[seeded["popular"]].slot_id == seeded["morning"]
    assert placements[seeded["popular"]].venue_id == seeded["hall"]
    # 8 duration + 10 preference + 5 capacity + 1 no track + 2 primary venue
    assert placements[seeded["popular"]].score == 26
    assert placements[seeded["niche"]].slot_id == seeded["afternoon"]
    assert result.unassigned == []
    assert result.stats.total_sessions == 2

    # Preview is read-only.
    assert repository.get_session(seeded["popular"]).time_slot_id is None


def test_preview_requires_admin_role(tmp_path):
    repository, _, service = _build_service(tmp_path, "preview_roles.db")
    seeded = _seed_event(repository)
    moderator_id, _ = repository.create_user("Moderator")
    repository.add_event_member(seeded["event_id"], moderator_id, "moderator")
    outsider_id, _ = repository.create_user("Outsider")

    with pytest.raises(EventAccessDeniedError):
        service.preview_schedule(slug=SLUG, user_id=moderator_id)
    with pytest.raises(EventAccessDeniedError):
        service.preview_schedule(slug=SLUG, user_id=outsider_id)
    with pytest.raises(EventNotFoundError):
        service.preview_schedule(slug="missing", user_id=seeded["owner_id"])


def test_apply_persists_preview_assignments(tmp_path):
    repository, _, service = _build_service(tmp_path, "apply.db")
    seeded = _seed_event(repository)

    preview = service.preview_schedule(slug=SLUG, user_id=seeded["owner_id"])
    result = service.apply_schedule(
        slug=SLUG,
        user_id=seeded["owner_id"],
        assignments=[
            AssignmentRequest(
                session_id=item.session_id,
                slot_id=item.slot_id,
                venue_id=item.venue_id,
            )
            for item in preview.assignments
        ],
    )

    assert result.applied == result.total == 2
    assert result.errors == []
    assert result.message == "Applied 2 of 2 assignments"
    popular = repository.get_session(seeded["popular"])
    assert popular.status == "scheduled"
    assert popular.time_slot_id == seeded["morning"]
    assert popular.venue_id == seeded["hall"]
    assert repository.count_scheduled_sessions(seeded["event_id"]) == 2

    # Scheduled sessions drop out of the next preview.
    again = service.preview_schedule(slug=SLUG, user_id=seeded["owner_id"])
    assert again.stats.total_sessions == 0


def test_apply_without_venue_uses_slot_venue(tmp_path):
    repository, _, service = _build_service(tmp_path, "apply_venue.db")
    seeded = _seed_event(repository)

    result = service.apply_schedule(
        slug=SLUG,
        user_id=seeded["owner_id"],
        assignments=[AssignmentRequest(session_id=seeded["niche"], slot_id=seeded["afternoon"])],
    )

    assert result.applied == 1
    assert repository.get_session(seeded["niche"]).venue_id == seeded["room"]


def test_apply_rejects_empty_batch(tmp_path):
    repository, _, service = _build_service(tmp_path, "apply_empty.db")
    seeded = _seed_event(repository)

    with pytest.raises(ScheduleValidationError, match="No assignments provided"):
        service.apply_schedule(slug=SLUG, user_id=seeded["owner_id"], assignments=[])


def test_apply_rejects_whole_batch_with_foreign_references(tmp_path):
    repository, _, service = _build_service(tmp_path, "apply_foreign.db")
    seeded = _seed_event(repository)
    other_event = repository.create_event("otherconf", "OtherConf")
    foreign_slot = repository.create_time_slot(
        other_event,
        start_time="2026-03-02T09:00:00+00:00",
        end_time="2026-03-02T10:00:00+00:00",
    )

    with pytest.raises(ScheduleValidationError) as excinfo:
        service.apply_schedule(
            slug=SLUG,
            user_id=seeded["owner_id"],
            assignments=[
                AssignmentRequest(session_id=seeded["popular"], slot_id=seeded["morning"]),
                AssignmentRequest(session_id=seeded["niche"], slot_id=foreign_slot),
            ],
        )

    assert excinfo.value.invalid_ids == [foreign_slot]
    assert repository.get_session(seeded["popular"]).time_slot_id is None


def test_apply_reports_already_scheduled_session_and_continues(tmp_path):
    repository, _, service = _build_service(tmp_path, "apply_double.db")
    seeded = _seed_event(repository)
    service.apply_schedule(
        slug=SLUG,
        user_id=seeded["owner_id"],
        assignments=[AssignmentRequest(session_id=seeded["popular"], slot_id=seeded["morning"])],
    )

    result = service.apply_schedule(
        slug=SLUG,
        user_id=seeded["owner_id"],
        assignments=[
            AssignmentRequest(session_id=seeded["popular"], slot_id=seeded["afternoon"]),
            AssignmentRequest(session_id=seeded["niche"], slot_id=seeded["afternoon"]),
        ],
    )

    assert result.applied == 1
    assert result.total == 2
    assert result.errors == [f"Session {seeded['popular']} is already scheduled"]
    assert repository.get_session(seeded["popular"]).time_slot_id == seeded["morning"]
    assert repository.get_session(seeded["niche"]).time_slot_id == seeded["afternoon"]


def test_apply_itemizes_storage_failures(tmp_path, monkeypatch):
    repository, _, service = _build_service(tmp_path, "apply_failure.db")
    seeded = _seed_event(repository)
    original = repository.schedule_session

    def flaky_schedule_session(*, event_id, session_id, slot_id, venue_id):
        if session_id == seeded["popular"]:
            raise RepositoryError("database is locked")
        return original(
            event_id=event_id,
            session_id=session_id,
            slot_id=slot_id,
            venue_id=venue_id,
        )

    monkeypatch.setattr(repository, "schedule_session", flaky_schedule_session)
    result = service.apply_schedule(
        slug=SLUG,
        user_id=seeded["owner_id"],
        assignments=[
            AssignmentRequest(session_id=seeded["popular"], slot_id=seeded["morning"]),
            AssignmentRequest(session_id=seeded["niche"], slot_id=seeded["afternoon"]),
        ],
    )

    assert result.applied == 1
    assert result.errors == [
        f"Failed to schedule session {seeded['popular']}: database is locked"
    ]


def test_publish_status_tracks_unpublished_changes(tmp_path):
    repository, _, service = _build_service(tmp_path, "publish.db")
    seeded = _seed_event(repository)
    owner_id = seeded["owner_id"]

    initial = service.get_publish_status(slug=SLUG, user_id=owner_id)
    assert initial.schedule_published_at is None
    assert initial.has_unpublished_changes is True

    service.apply_schedule(
        slug=SLUG,
        user_id=owner_id,
        assignments=[AssignmentRequest(session_id=seeded["popular"], slot_id=seeded["morning"])],
    )
    published = service.publish_schedule(slug=SLUG, user_id=owner_id)
    assert published.scheduled_sessions == 1
    assert published.schedule_published_at is not None

    repository.mark_schedule_published(seeded["event_id"], "2026-03-01T10:00:00+00:00")
    repository.mark_schedule_changed(seeded["event_id"], "2026-03-01T09:00:00+00:00")
    assert service.get_publish_status(slug=SLUG, user_id=owner_id).has_unpublished_changes is False

    repository.mark_schedule_changed(seeded["event_id"], "2026-03-01T11:00:00+00:00")
    status = service.get_publish_status(slug=SLUG, user_id=owner_id)
    assert status.has_unpublished_changes is True
    assert status.scheduled_sessions == 1


def test_apply_bumps_last_schedule_change(tmp_path):
    repository, _, service = _build_service(tmp_path, "apply_change.db")
    seeded = _seed_event(repository)

    service.apply_schedule(
        slug=SLUG,
        user_id=seeded["owner_id"],
        assignments=[AssignmentRequest(session_id=seeded["niche"], slot_id=seeded["afternoon"])],
    )

    assert repository.get_event_by_slug(SLUG).last_schedule_change_at is not None


def test_apply_reports_failed_change_stamp_without_losing_writes(tmp_path, monkeypatch):
    repository, _, service = _build_service(tmp_path, "apply_stamp.db")
    seeded = _seed_event(repository)

    def broken_mark_schedule_changed(event_id, changed_at=None):
        raise RepositoryError("disk I/O error")

    monkeypatch.setattr(repository, "mark_schedule_changed", broken_mark_schedule_changed)
    result = service.apply_schedule(
        slug=SLUG,
        user_id=seeded["owner_id"],
        assignments=[AssignmentRequest(session_id=seeded["niche"], slot_id=seeded["afternoon"])],
    )

    assert result.applied == 1
    assert result.errors == ["Failed to record schedule change: disk I/O error"]
    assert repository.get_session(seeded["niche"]).time_slot_id == seeded["afternoon"]
