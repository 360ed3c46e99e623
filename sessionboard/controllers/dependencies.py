"""Shared FastAPI dependency providers for controller layer."""

from __future__ import annotations

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from sessionboard.services.auth_service import AuthenticationError, AuthService
from sessionboard.services.batch_service import SessionBatchService
from sessionboard.services.import_service import SessionImportService
from sessionboard.services.scheduling_service import AutoScheduleService


bearer_scheme = HTTPBearer(auto_error=False)


def get_auth_service(request: Request) -> AuthService:
    service = getattr(request.app.state, "auth_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Auth service is not initialized",
        )
    return service


def get_schedule_service(request: Request) -> AutoScheduleService:
    service = getattr(request.app.state, "schedule_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Schedule service is not initialized",
        )
    return service


def get_import_service(request: Request) -> SessionImportService:
    service = getattr(request.app.state, "import_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Import service is not initialized",
        )
    return service


def get_batch_service(request: Request) -> SessionBatchService:
    service = getattr(request.app.state, "batch_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Batch service is not initialized",
        )
    return service


async def get_current_user_id(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    auth_service: AuthService = Depends(get_auth_service),
) -> str:
    try:
        return auth_service.authenticate(
            credentials.credentials if credentials is not None else None
        )
    except AuthenticationError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(exc),
            headers={"WWW-Authenticate": "Bearer"},
        ) from exc
