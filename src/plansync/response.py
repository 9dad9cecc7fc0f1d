"""Build the caller-facing result of a generate-and-sync request."""

from __future__ import annotations

from typing import Generic, TypeVar

from pydantic import Field

from plansync.models import CamelModel, DailyPlan, SyncedEventRef, WeeklyPlan
from plansync.sync import SyncResult

PlanT = TypeVar("PlanT")


class PlanResponse(CamelModel, Generic[PlanT]):
    """Generated plan plus the outcome of the optional calendar sync.

    ``synced_to_calendar`` is true only when a sync was attempted and every
    actionable block produced an event.  ``sync_error`` is set only when a
    sync was attempted and did not complete.
    """

    success: bool = True
    plan: PlanT
    synced_to_calendar: bool = False
    synced_events: list[SyncedEventRef] = Field(default_factory=list)
    sync_error: str | None = None
    provider: str | None = None
    message: str = ""


DailyPlanResponse = PlanResponse[DailyPlan]
WeeklyPlanResponse = PlanResponse[WeeklyPlan]


def _message(kind: str, sync_result: SyncResult | None) -> str:
    label = "Daily" if kind == "daily" else "Weekly"
    if sync_result is None:
        return f"{label} plan generated successfully!"
    count = len(sync_result.events)
    if sync_result.succeeded:
        if count == 0:
            return f"{label} plan generated. No actionable blocks to add to your calendar."
        return f"{label} plan generated and {count} events synced to calendar!"
    if count == 0:
        return f"{label} plan generated but calendar sync failed. No events were created."
    return (
        f"{label} plan generated but calendar sync stopped early. "
        f"{count} events were added to your calendar."
    )


def assemble_response(
    plan: DailyPlan | WeeklyPlan,
    sync_result: SyncResult | None,
) -> PlanResponse:
    """Combine a plan and an optional sync result into one of three outcomes.

    - ``sync_result is None``: sync skipped; no events, no error.
    - completed run: ``synced_to_calendar`` true with every event.
    - any other terminal state: ``synced_to_calendar`` false with the events
      created before the failure and a non-empty error string.

    The plan object is passed through untouched in every case.
    """
    kind = "weekly" if isinstance(plan, WeeklyPlan) else "daily"
    response_cls = WeeklyPlanResponse if kind == "weekly" else DailyPlanResponse

    if sync_result is None:
        return response_cls(plan=plan, message=_message(kind, None))

    if sync_result.succeeded:
        return response_cls(
            plan=plan,
            synced_to_calendar=True,
            synced_events=list(sync_result.events),
            provider=sync_result.provider,
            message=_message(kind, sync_result),
        )

    return response_cls(
        plan=plan,
        synced_to_calendar=False,
        synced_events=list(sync_result.events),
        sync_error=sync_result.error or "Calendar sync failed",
        provider=sync_result.provider,
        message=_message(kind, sync_result),
    )
