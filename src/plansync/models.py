"""Domain models for plans, work items, credentials and sync results.

Plan-shaped models (``TimeBlock``, ``DailyPlan``, ``WeeklyPlan`` and the
response envelopes built on them) use camelCase aliases on the wire because
that is the shape the planning collaborator emits and the dashboard consumes.
Python code always uses the snake_case attribute names.
"""

from __future__ import annotations

import re
from datetime import date, datetime
from enum import StrEnum
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationInfo,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

# Alias so ``WeeklyDay.date`` does not shadow the type in its own annotation.
CalendarDate = date

_WALL_CLOCK_PATTERN = re.compile(r"^\s*(\d{1,2}):(\d{2})\s*$")

BREAK_BLOCK_TYPE = "break"


def parse_wall_clock(value: str) -> tuple[int, int]:
    """Parse an ``HH:MM`` wall-clock string into ``(hour, minute)``.

    Raises ``ValueError`` when the string is malformed or out of range.
    """
    match = _WALL_CLOCK_PATTERN.match(value) if isinstance(value, str) else None
    if match is None:
        raise ValueError(f"Expected an HH:MM time, got {value!r}")
    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        raise ValueError(f"Time out of range: {value!r}")
    return hour, minute


def _normalize_wall_clock(value: Any) -> str:
    hour, minute = parse_wall_clock(value)
    return f"{hour:02d}:{minute:02d}"


def _minutes_of_day(value: str) -> int:
    hour, minute = parse_wall_clock(value)
    return hour * 60 + minute


def _clamp_score(value: Any) -> Any:
    if isinstance(value, bool) or not isinstance(value, int | float):
        return value
    return max(0, min(100, round(value)))


class CamelModel(BaseModel):
    """Base model that accepts and emits camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Work items and preferences
# ---------------------------------------------------------------------------


class Priority(StrEnum):
    """Ordered work-item priority."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {
    Priority.LOW: 0,
    Priority.MEDIUM: 1,
    Priority.HIGH: 2,
    Priority.URGENT: 3,
}


class WorkItem(CamelModel):
    """A pending unit of work owned by a user."""

    id: str
    title: str
    description: str = ""
    priority: Priority = Priority.MEDIUM
    estimated_minutes: int | None = Field(default=None, ge=0)
    due_at: datetime | None = None

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> Any:
        return str(value) if value is not None else value

    @field_validator("description", mode="before")
    @classmethod
    def _coerce_description(cls, value: Any) -> Any:
        return "" if value is None else value


def sort_work_items(items: list[WorkItem]) -> list[WorkItem]:
    """Order work items by priority (highest first), then earliest due date.

    Items without a due date sort after dated items of the same priority.
    """
    return sorted(
        items,
        key=lambda item: (
            -item.priority.rank,
            item.due_at is None,
            item.due_at.timestamp() if item.due_at is not None else 0.0,
        ),
    )


class SchedulingPreferences(CamelModel):
    """A user's stated scheduling preferences for one planning call."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    work_start: str = "09:00"
    work_end: str = "17:00"
    timezone: str = "UTC"
    work_days_per_week: int = Field(default=5, ge=1, le=7)
    break_minutes: int = Field(default=60, ge=0)
    deep_work_preference: str = "morning"

    @field_validator("work_start", "work_end", mode="before")
    @classmethod
    def _normalize_hours(cls, value: Any) -> str:
        return _normalize_wall_clock(value)

    @model_validator(mode="after")
    def _validate_window(self) -> SchedulingPreferences:
        if _minutes_of_day(self.work_start) >= _minutes_of_day(self.work_end):
            raise ValueError("work_start must be before work_end")
        return self


# ---------------------------------------------------------------------------
# Plans
# ---------------------------------------------------------------------------


class TimeBlock(CamelModel):
    """One contiguous wall-clock interval within a plan."""

    type: str = "task"
    start_time: str
    end_time: str
    task_id: str | None = None
    task_title: str | None = None
    notes: str | None = None

    @field_validator("type", mode="before")
    @classmethod
    def _normalize_type(cls, value: Any) -> Any:
        if value is None:
            return "task"
        if isinstance(value, str):
            return value.strip().lower() or "task"
        return value

    @field_validator("start_time", "end_time", mode="before")
    @classmethod
    def _normalize_time(cls, value: Any, info: ValidationInfo) -> str:
        try:
            return _normalize_wall_clock(value)
        except ValueError as exc:
            raise ValueError(f"{info.field_name}: {exc}") from exc

    @field_validator("task_id", mode="before")
    @classmethod
    def _coerce_task_id(cls, value: Any) -> Any:
        if value is None or isinstance(value, str):
            return value
        return str(value)

    @field_validator("task_title", "notes")
    @classmethod
    def _strip_optional(cls, value: str | None) -> str | None:
        if value is None:
            return None
        stripped = value.strip()
        return stripped or None

    @model_validator(mode="after")
    def _validate_block(self) -> TimeBlock:
        if _minutes_of_day(self.start_time) >= _minutes_of_day(self.end_time):
            raise ValueError(
                f"Block start {self.start_time} must be before end {self.end_time}"
            )
        if self.type == BREAK_BLOCK_TYPE:
            # Breaks are schedule padding and never point at a work item.
            self.task_id = None
            self.task_title = None
        return self

    @property
    def is_actionable(self) -> bool:
        """True for non-break blocks that name a work item."""
        return self.type != BREAK_BLOCK_TYPE and bool(self.task_title)


class DailyPlan(CamelModel):
    """A single day's schedule."""

    summary: str = ""
    estimated_productivity: int = Field(default=0, ge=0, le=100)
    time_blocks: list[TimeBlock] = Field(default_factory=list)
    tips: list[str] = Field(default_factory=list)

    @field_validator("estimated_productivity", mode="before")
    @classmethod
    def _clamp_productivity(cls, value: Any) -> Any:
        return 0 if value is None else _clamp_score(value)

    @field_validator("summary", mode="before")
    @classmethod
    def _coerce_summary(cls, value: Any) -> Any:
        return "" if value is None else value

    @property
    def actionable_count(self) -> int:
        return sum(1 for block in self.time_blocks if block.is_actionable)


class WeeklyDay(CamelModel):
    """One calendar date inside a weekly plan."""

    date: CalendarDate
    day_name: str = ""
    tasks_count: int | None = None
    plan: DailyPlan

    @model_validator(mode="after")
    def _default_day_name(self) -> WeeklyDay:
        if not self.day_name.strip():
            self.day_name = self.date.strftime("%A")
        return self


class WeeklyPlan(CamelModel):
    """A multi-day schedule with aggregate figures."""

    summary: str = ""
    days: list[WeeklyDay] = Field(default_factory=list)
    total_tasks: int = 0
    total_estimated_hours: float = 0.0
    balance_score: int = Field(default=0, ge=0, le=100)
    weekly_goals: list[str] = Field(default_factory=list)

    @field_validator("balance_score", mode="before")
    @classmethod
    def _clamp_balance(cls, value: Any) -> Any:
        return 0 if value is None else _clamp_score(value)

    @field_validator("summary", mode="before")
    @classmethod
    def _coerce_summary(cls, value: Any) -> Any:
        return "" if value is None else value

    @property
    def actionable_count(self) -> int:
        return sum(day.plan.actionable_count for day in self.days)


# ---------------------------------------------------------------------------
# Credentials and sync results
# ---------------------------------------------------------------------------


class CalendarCredential(BaseModel):
    """Stored OAuth state for one user's connection to one calendar provider."""

    user_id: str
    provider: str
    connected: bool = False
    account_id: str | None = None
    account_email: str | None = None
    access_token: str | None = Field(default=None, repr=False)
    refresh_token: str | None = Field(default=None, repr=False)
    token_expires_at: datetime | None = None
    last_synced_at: datetime | None = None

    def disconnected(self) -> CalendarCredential:
        """Return the cleared form stored after an explicit disconnect."""
        return CalendarCredential(user_id=self.user_id, provider=self.provider)


class SyncedEventRef(CamelModel):
    """Link between a synced plan block and the remote event it produced."""

    task_title: str
    start_time: str
    end_time: str
    event_id: str
    provider: str
    day_name: str | None = None
    web_link: str | None = None
