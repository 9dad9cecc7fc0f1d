"""Request bodies and the shared error envelope for the HTTP API."""

from __future__ import annotations

from pydantic import BaseModel, Field

from plansync.models import CalendarDate, CamelModel

# Browser offsets span UTC-12 (720) to UTC+14 (-840).
_MIN_OFFSET_MINUTES = -14 * 60
_MAX_OFFSET_MINUTES = 12 * 60


class ErrorDetail(BaseModel):
    """Machine-readable error code plus a human-readable message."""

    code: str
    message: str


class ErrorResponse(BaseModel):
    """Standard error envelope: ``{"error": {"code": ..., "message": ...}}``."""

    error: ErrorDetail


class DailyPlanRequest(CamelModel):
    date: CalendarDate | None = None
    sync_to_calendar: bool = False
    timezone_offset: int = Field(default=0, ge=_MIN_OFFSET_MINUTES, le=_MAX_OFFSET_MINUTES)
    provider: str | None = None


class WeeklyPlanRequest(CamelModel):
    week_start: CalendarDate | None = None
    sync_to_calendar: bool = False
    timezone_offset: int = Field(default=0, ge=_MIN_OFFSET_MINUTES, le=_MAX_OFFSET_MINUTES)
    provider: str | None = None


class ConnectRequest(CamelModel):
    code: str = Field(min_length=1)
    state: str = Field(min_length=1)
