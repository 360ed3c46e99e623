"""Controller layer for session bulk import and batch moderation."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import Field

from sessionboard.controllers.dependencies import (
    get_batch_service,
    get_current_user_id,
    get_import_service,
)
from sessionboard.controllers.schedule_controller import CamelModel
from sessionboard.services.auth_service import EventAccessDeniedError, EventNotFoundError
from sessionboard.services.batch_service import BatchValidationError, SessionBatchService
from sessionboard.services.import_service import ImportValidationError, SessionImportService
from sessionboard.utils.logger import get_logger


logger = get_logger(__name__)

router = APIRouter(prefix="/api/v1/events/{slug}/admin", tags=["sessions"])
batch_router = APIRouter(prefix="/api/v1/events/{slug}", tags=["sessions"])


class ImportRowResponse(CamelModel):
    row_number: int = Field(ge=2)
    title: str
    success: bool
    session_id: Optional[str] = None
    errors: list[str]


class ImportReportResponse(CamelModel):
    imported: int = Field(ge=0)
    rejected: int = Field(ge=0)
    rows: list[ImportRowResponse]


class SessionBatchRequest(CamelModel):
    action: str = ""
    session_ids: list[str] = Field(default_factory=list)
    reason: Optional[str] = None
    track_id: Optional[str] = None


class SessionBatchResponse(CamelModel):
    success: bool = True
    action: str
    affected: int = Field(ge=0)
    message: str


@router.post(
    "/sessions/import",
    response_model=ImportReportResponse,
    status_code=status.HTTP_200_OK,
)
async def import_sessions(
    slug: str,
    request: Request,
    user_id: str = Depends(get_current_user_id),
    service: SessionImportService = Depends(get_import_service),
) -> ImportReportResponse:
    """Create approved sessions from a ``text/csv`` request body."""
    try:
        csv_text = (await request.body()).decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="CSV body must be UTF-8 encoded",
        ) from exc

    try:
        report = service.import_csv(slug=slug, user_id=user_id, csv_text=csv_text)
        return ImportReportResponse(
            imported=report.imported,
            rejected=report.rejected,
            rows=[
                ImportRowResponse(
                    row_number=row.row_number,
                    title=row.title,
                    success=row.success,
                    session_id=row.session_id,
                    errors=list(row.errors),
                )
                for row in report.rows
            ],
        )
    except EventNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    except EventAccessDeniedError as exc:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=str(exc),
        ) from exc
    except ImportValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected session import failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to import sessions",
        ) from exc


@batch_router.patch(
    "/sessions/batch",
    response_model=SessionBatchResponse,
    status_code=status.HTTP_200_OK,
)
async def batch_update_sessions(
    slug: str,
    payload: SessionBatchRequest,
    user_id: str = Depends(get_current_user_id),
    service: SessionBatchService = Depends(get_batch_service),
) -> SessionBatchResponse:
    """Approve, reject, retrack or delete many sessions in one call."""
    try:
        result = service.apply_action(
            slug=slug,
            user_id=user_id,
            action=payload.action,
            session_ids=payload.session_ids,
            reason=payload.reason,
            track_id=payload.track_id,
        )
        return SessionBatchResponse(
            action=result.action,
            affected=result.affected,
            message=result.message,
        )
    except EventNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    except EventAccessDeniedError as exc:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=str(exc),
        ) from exc
    except BatchValidationError as exc:
        detail: str | dict[str, object] = str(exc)
        if exc.invalid_ids:
            detail = {"message": str(exc), "invalid_ids": exc.invalid_ids}
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=detail,
        ) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected session batch failure | action=%s", payload.action)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update sessions",
        ) from exc
