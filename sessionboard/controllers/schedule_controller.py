"""HTTP controller layer for auto-schedule preview/apply and publishing."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from sessionboard.controllers.dependencies import get_current_user_id, get_schedule_service
from sessionboard.domain.models import AssignmentRequest, AutoScheduleResult, PublishStatus
from sessionboard.services.auth_service import EventAccessDeniedError, EventNotFoundError
from sessionboard.services.scheduling_service import AutoScheduleService, ScheduleValidationError
from sessionboard.utils.logger import get_logger


logger = get_logger(__name__)

router = APIRouter(prefix="/api/v1/events/{slug}/admin", tags=["schedule"])


class CamelModel(BaseModel):
    """Serializes as camelCase on the wire while accepting either casing."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ScheduleAssignmentResponse(CamelModel):
    session_id: str
    session_title: str
    slot_id: str
    venue_id: str
    score: int = Field(ge=0)
    warnings: list[str]


class UnassignedSessionResponse(CamelModel):
    session_id: str
    session_title: str
    reason: str


class ScheduleStatsResponse(CamelModel):
    total_sessions: int = Field(ge=0)
    assigned: int = Field(ge=0)
    unassigned: int = Field(ge=0)
    average_score: float = Field(ge=0.0)


class AutoScheduleResponse(CamelModel):
    assignments: list[ScheduleAssignmentResponse]
    unassigned: list[UnassignedSessionResponse]
    stats: ScheduleStatsResponse

    @classmethod
    def from_result(cls, result: AutoScheduleResult) -> "AutoScheduleResponse":
        return cls(
            assignments=[
                ScheduleAssignmentResponse(
                    session_id=item.session_id,
                    session_title=item.session_title,
                    slot_id=item.slot_id,
                    venue_id=item.venue_id,
                    score=item.score,
                    warnings=list(item.warnings),
                )
                for item in result.assignments
            ],
            unassigned=[
                UnassignedSessionResponse(
                    session_id=item.session_id,
                    session_title=item.session_title,
                    reason=item.reason,
                )
                for item in result.unassigned
            ],
            stats=ScheduleStatsResponse(
                total_sessions=result.stats.total_sessions,
                assigned=result.stats.assigned,
                unassigned=result.stats.unassigned,
                average_score=result.stats.average_score,
            ),
        )


class AssignmentInput(CamelModel):
    """Apply accepts preview rows as-is; score and warnings are ignored."""

    session_id: str = Field(min_length=1)
    slot_id: str = Field(min_length=1)
    venue_id: Optional[str] = None


class ApplyScheduleRequest(CamelModel):
    assignments: list[AssignmentInput] = Field(default_factory=list)


class ApplyScheduleResponse(CamelModel):
    success: bool = True
    applied: int = Field(ge=0)
    total: int = Field(ge=0)
    errors: Optional[list[str]] = None
    message: str


class PublishStatusResponse(CamelModel):
    schedule_published_at: Optional[str] = None
    last_schedule_change_at: Optional[str] = None
    has_unpublished_changes: bool
    scheduled_sessions: int = Field(ge=0)


class PublishScheduleResponse(CamelModel):
    success: bool = True
    published_at: str
    scheduled_sessions: int = Field(ge=0)
    message: str


def _raise_access_error(exc: Exception) -> None:
    if isinstance(exc, EventNotFoundError):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail=str(exc),
    ) from exc


def _publish_status_response(result: PublishStatus) -> PublishStatusResponse:
    return PublishStatusResponse(
        schedule_published_at=result.schedule_published_at,
        last_schedule_change_at=result.last_schedule_change_at,
        has_unpublished_changes=result.has_unpublished_changes,
        scheduled_sessions=result.scheduled_sessions,
    )


@router.get(
    "/auto-schedule",
    response_model=AutoScheduleResponse,
    status_code=status.HTTP_200_OK,
)
async def preview_auto_schedule(
    slug: str,
    user_id: str = Depends(get_current_user_id),
    service: AutoScheduleService = Depends(get_schedule_service),
) -> AutoScheduleResponse:
    """Dry run: propose placements without writing anything."""
    try:
        result = service.preview_schedule(slug=slug, user_id=user_id)
        return AutoScheduleResponse.from_result(result)
    except (EventNotFoundError, EventAccessDeniedError) as exc:
        _raise_access_error(exc)
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected auto-schedule preview failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to generate schedule preview",
        ) from exc


@router.post(
    "/auto-schedule",
    response_model=ApplyScheduleResponse,
    response_model_exclude_none=True,
    status_code=status.HTTP_200_OK,
)
async def apply_auto_schedule(
    slug: str,
    payload: ApplyScheduleRequest,
    user_id: str = Depends(get_current_user_id),
    service: AutoScheduleService = Depends(get_schedule_service),
) -> ApplyScheduleResponse:
    """Persist submitted placements; per-assignment failures are itemized."""
    try:
        result = service.apply_schedule(
            slug=slug,
            user_id=user_id,
            assignments=[
                AssignmentRequest(
                    session_id=item.session_id,
                    slot_id=item.slot_id,
                    venue_id=item.venue_id,
                )
                for item in payload.assignments
            ],
        )
        return ApplyScheduleResponse(
            applied=result.applied,
            total=result.total,
            errors=result.errors or None,
            message=result.message,
        )
    except (EventNotFoundError, EventAccessDeniedError) as exc:
        _raise_access_error(exc)
    except ScheduleValidationError as exc:
        detail: str | dict[str, object] = str(exc)
        if exc.invalid_ids:
            detail = {"message": str(exc), "invalid_ids": exc.invalid_ids}
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=detail,
        ) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected auto-schedule apply failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to apply schedule",
        ) from exc


@router.get(
    "/publish-schedule",
    response_model=PublishStatusResponse,
    status_code=status.HTTP_200_OK,
)
async def get_publish_status(
    slug: str,
    user_id: str = Depends(get_current_user_id),
    service: AutoScheduleService = Depends(get_schedule_service),
) -> PublishStatusResponse:
    try:
        result = service.get_publish_status(slug=slug, user_id=user_id)
        return _publish_status_response(result)
    except (EventNotFoundError, EventAccessDeniedError) as exc:
        _raise_access_error(exc)
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected publish status failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to load publish status",
        ) from exc


@router.post(
    "/publish-schedule",
    response_model=PublishScheduleResponse,
    status_code=status.HTTP_200_OK,
)
async def publish_schedule(
    slug: str,
    user_id: str = Depends(get_current_user_id),
    service: AutoScheduleService = Depends(get_schedule_service),
) -> PublishScheduleResponse:
    try:
        result = service.publish_schedule(slug=slug, user_id=user_id)
        return PublishScheduleResponse(
            published_at=result.schedule_published_at or "",
            scheduled_sessions=result.scheduled_sessions,
            message=(
                f"Schedule published with {result.scheduled_sessions} scheduled sessions"
            ),
        )
    except (EventNotFoundError, EventAccessDeniedError) as exc:
        _raise_access_error(exc)
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected schedule publish failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to publish schedule",
        ) from exc
