"""Validation boundary between the planning collaborator and the rest of the service."""

from __future__ import annotations

import logging
import time
from collections.abc import Awaitable, Mapping, Sequence
from datetime import date, timedelta
from typing import Any

from pydantic import ValidationError

from plansync.config import DEFAULT_WEEKLY_SPAN_DAYS
from plansync.core.metrics import record_planning_duration, record_planning_failure
from plansync.errors import NoWorkItemsError, PlanningUnavailableError, summarize_error
from plansync.models import DailyPlan, SchedulingPreferences, WeeklyPlan, WorkItem
from plansync.planning.base import PlanGenerator

logger = logging.getLogger(__name__)


def _validation_summary(exc: ValidationError) -> str:
    first = exc.errors()[0] if exc.errors() else {}
    location = ".".join(str(part) for part in first.get("loc", ()))
    message = first.get("msg", "invalid value")
    suffix = f" (+{exc.error_count() - 1} more)" if exc.error_count() > 1 else ""
    return f"{location}: {message}{suffix}" if location else f"{message}{suffix}"


class PlanGeneratorAdapter:
    """Calls a ``PlanGenerator`` and turns its raw output into validated plans.

    Failures of any kind (collaborator exceptions, non-mapping replies,
    payloads that do not validate, weekly plans with the wrong dates) are
    reported as ``PlanningUnavailableError``.  Nothing is retried.
    """

    def __init__(
        self,
        generator: PlanGenerator,
        *,
        weekly_span_days: int = DEFAULT_WEEKLY_SPAN_DAYS,
    ) -> None:
        self._generator = generator
        self._weekly_span_days = weekly_span_days

    @property
    def weekly_span_days(self) -> int:
        return self._weekly_span_days

    async def generate_daily_plan(
        self,
        work_items: Sequence[WorkItem],
        preferences: SchedulingPreferences,
        plan_date: date,
    ) -> DailyPlan:
        if not work_items:
            raise NoWorkItemsError()

        pending = self._generator.generate_daily(work_items, preferences, plan_date)
        raw = await self._call("daily", pending)
        try:
            plan = DailyPlan.model_validate(raw)
        except ValidationError as exc:
            record_planning_failure("daily")
            raise PlanningUnavailableError(
                f"Planning returned an invalid daily plan: {_validation_summary(exc)}"
            ) from exc

        logger.info(
            "Daily plan generated: date=%s blocks=%d actionable=%d",
            plan_date.isoformat(),
            len(plan.time_blocks),
            plan.actionable_count,
        )
        return plan

    async def generate_weekly_plan(
        self,
        work_items: Sequence[WorkItem],
        preferences: SchedulingPreferences,
        week_start: date,
    ) -> WeeklyPlan:
        if not work_items:
            raise NoWorkItemsError()

        pending = self._generator.generate_weekly(
            work_items, preferences, week_start, self._weekly_span_days
        )
        raw = await self._call("weekly", pending)
        try:
            plan = WeeklyPlan.model_validate(raw)
        except ValidationError as exc:
            record_planning_failure("weekly")
            raise PlanningUnavailableError(
                f"Planning returned an invalid weekly plan: {_validation_summary(exc)}"
            ) from exc

        self._check_week_span(plan, week_start)
        logger.info(
            "Weekly plan generated: week_start=%s days=%d actionable=%d",
            week_start.isoformat(),
            len(plan.days),
            plan.actionable_count,
        )
        return plan

    async def _call(self, kind: str, pending: Awaitable[Any]) -> Mapping[str, Any]:
        started = time.perf_counter()
        try:
            raw = await pending
        except PlanningUnavailableError:
            record_planning_failure(kind)
            raise
        except Exception as exc:
            record_planning_failure(kind)
            logger.warning("Planning collaborator failed (%s): %s", kind, summarize_error(exc))
            raise PlanningUnavailableError(
                f"Planning service failed: {summarize_error(exc)}"
            ) from exc
        finally:
            record_planning_duration(kind, (time.perf_counter() - started) * 1000)

        if not isinstance(raw, Mapping):
            record_planning_failure(kind)
            raise PlanningUnavailableError(
                f"Planning returned {type(raw).__name__} instead of a JSON object"
            )
        return raw

    def _check_week_span(self, plan: WeeklyPlan, week_start: date) -> None:
        expected = [week_start + timedelta(days=offset) for offset in range(self._weekly_span_days)]
        actual = [day.date for day in plan.days]
        if actual != expected:
            record_planning_failure("weekly")
            raise PlanningUnavailableError(
                f"Weekly plan must cover {self._weekly_span_days} consecutive days from "
                f"{week_start.isoformat()}, got {len(actual)} day(s): "
                f"{', '.join(day.isoformat() for day in actual[:10]) or 'none'}"
            )
