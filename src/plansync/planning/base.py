"""Planning collaborator interface.

A ``PlanGenerator`` turns work items and preferences into a raw plan mapping
(camelCase keys, the shape of ``DailyPlan`` / ``WeeklyPlan`` on the wire).
It does not validate its own output; ``PlanGeneratorAdapter`` does.
"""

from __future__ import annotations

import abc
from collections.abc import Mapping, Sequence
from datetime import date
from typing import Any

from plansync.models import SchedulingPreferences, WorkItem


class PlanGenerator(abc.ABC):
    """Opaque source of time-blocked plans."""

    @property
    @abc.abstractmethod
    def name(self) -> str:
        """Short identifier used in logs (e.g., ``gemini``)."""
        ...

    @abc.abstractmethod
    async def generate_daily(
        self,
        work_items: Sequence[WorkItem],
        preferences: SchedulingPreferences,
        plan_date: date,
    ) -> Mapping[str, Any]:
        """Return a raw single-day plan for *plan_date*."""
        ...

    @abc.abstractmethod
    async def generate_weekly(
        self,
        work_items: Sequence[WorkItem],
        preferences: SchedulingPreferences,
        week_start: date,
        span_days: int,
    ) -> Mapping[str, Any]:
        """Return a raw plan covering *span_days* consecutive dates from *week_start*."""
        ...

    async def shutdown(self) -> None:
        """Release resources held by the generator."""
        return None
