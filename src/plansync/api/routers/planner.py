"""Generate-and-sync endpoints for daily and weekly plans."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from plansync.api.deps import get_planner_service, get_user_id
from plansync.api.models import DailyPlanRequest, WeeklyPlanRequest
from plansync.response import DailyPlanResponse, WeeklyPlanResponse
from plansync.service import PlannerService

router = APIRouter(prefix="/api/planner", tags=["planner"])


@router.post("/daily/generate-and-sync", response_model=DailyPlanResponse)
async def generate_daily_plan(
    body: DailyPlanRequest,
    user_id: str = Depends(get_user_id),
    service: PlannerService = Depends(get_planner_service),
) -> DailyPlanResponse:
    """Generate today's (or ``date``'s) plan and optionally push it to the calendar."""
    return await service.generate_and_sync_daily(
        user_id,
        body.date,
        sync=body.sync_to_calendar,
        timezone_offset_minutes=body.timezone_offset,
        provider=body.provider,
    )


@router.post("/weekly/generate-and-sync", response_model=WeeklyPlanResponse)
async def generate_weekly_plan(
    body: WeeklyPlanRequest,
    user_id: str = Depends(get_user_id),
    service: PlannerService = Depends(get_planner_service),
) -> WeeklyPlanResponse:
    """Generate a plan for the week starting at ``weekStart`` and optionally sync it."""
    return await service.generate_and_sync_weekly(
        user_id,
        body.week_start,
        sync=body.sync_to_calendar,
        timezone_offset_minutes=body.timezone_offset,
        provider=body.provider,
    )
