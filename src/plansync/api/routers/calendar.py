"""Calendar connection endpoints: authorize, connect, status, disconnect."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from plansync.api.deps import get_connection_service, get_user_id
from plansync.api.models import ConnectRequest
from plansync.connections import (
    AuthorizationStart,
    CalendarConnectionService,
    ConnectionStatus,
)

router = APIRouter(prefix="/api/calendar", tags=["calendar"])


@router.get("/{provider}/authorize", response_model=AuthorizationStart)
async def authorize(
    provider: str,
    user_id: str = Depends(get_user_id),
    service: CalendarConnectionService = Depends(get_connection_service),
) -> AuthorizationStart:
    return service.authorize(user_id, provider)


@router.post("/{provider}/connect", response_model=ConnectionStatus)
async def connect(
    provider: str,
    body: ConnectRequest,
    user_id: str = Depends(get_user_id),
    service: CalendarConnectionService = Depends(get_connection_service),
) -> ConnectionStatus:
    """Complete the OAuth grant with the ``code`` and ``state`` from the callback."""
    return await service.connect(user_id, provider, code=body.code, state=body.state)


@router.get("/{provider}/status", response_model=ConnectionStatus)
async def status(
    provider: str,
    user_id: str = Depends(get_user_id),
    service: CalendarConnectionService = Depends(get_connection_service),
) -> ConnectionStatus:
    return await service.status(user_id, provider)


@router.post("/{provider}/disconnect", response_model=ConnectionStatus)
async def disconnect(
    provider: str,
    user_id: str = Depends(get_user_id),
    service: CalendarConnectionService = Depends(get_connection_service),
) -> ConnectionStatus:
    return await service.disconnect(user_id, provider)
