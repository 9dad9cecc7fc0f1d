"""Shared fakes and fixtures for the plansync test suite.

The fakes implement the real interfaces (``TaskStore``, ``PreferenceStore``,
``CredentialRepository``, ``PlanGenerator``, ``CalendarProvider``) in memory,
so tests exercise the production token, planning and sync code paths without
a database or network.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from datetime import UTC, date, datetime, timedelta
from typing import Any

import pytest

from plansync.errors import EventCreationError, RefreshFailedError
from plansync.models import (
    CalendarCredential,
    SchedulingPreferences,
    WorkItem,
)
from plansync.planning.base import PlanGenerator
from plansync.providers.base import (
    CalendarProvider,
    CreatedEvent,
    EventRequest,
    ProviderProfile,
    TokenGrant,
)
from plansync.stores import CredentialRepository, PreferenceStore, TaskStore

NOW = datetime(2025, 1, 13, 8, 0, tzinfo=UTC)
PLAN_DATE = date(2025, 1, 13)  # a Monday
USER_ID = "user-1"


def fixed_clock() -> datetime:
    return NOW


# ---------------------------------------------------------------------------
# Payload builders
# ---------------------------------------------------------------------------


def block_payload(
    start: str,
    end: str,
    title: str | None,
    *,
    block_type: str = "deep-work",
    notes: str | None = None,
    task_id: str | None = None,
) -> dict[str, Any]:
    payload: dict[str, Any] = {"startTime": start, "endTime": end, "type": block_type}
    if title is not None:
        payload["taskTitle"] = title
    if notes is not None:
        payload["notes"] = notes
    if task_id is not None:
        payload["taskId"] = task_id
    return payload


def daily_payload(actionable: int = 3, *, with_break: bool = True) -> dict[str, Any]:
    """A daily plan with *actionable* hour-long task blocks from 09:00.

    When *with_break* is set, a break block is inserted after the first task.
    """
    blocks: list[dict[str, Any]] = []
    hour = 9
    for index in range(actionable):
        blocks.append(block_payload(f"{hour:02d}:00", f"{hour + 1:02d}:00", f"Task {index + 1}"))
        hour += 1
        if with_break and index == 0:
            blocks.append(
                block_payload(f"{hour:02d}:00", f"{hour:02d}:15", None, block_type="break")
            )
            hour += 1
    return {
        "summary": "A focused day",
        "timeBlocks": blocks,
        "tips": ["Start with the hardest task"],
        "estimatedProductivity": 85,
    }


def weekly_payload(
    week_start: date = PLAN_DATE,
    *,
    days: int = 7,
    blocks_per_day: int = 1,
) -> dict[str, Any]:
    """A weekly plan with *blocks_per_day* actionable blocks on every day."""
    day_entries = []
    for offset in range(days):
        current = week_start + timedelta(days=offset)
        blocks = [
            block_payload(
                f"{9 + index:02d}:00",
                f"{10 + index:02d}:00",
                f"{current.strftime('%a')} task {index + 1}",
            )
            for index in range(blocks_per_day)
        ]
        day_entries.append(
            {
                "date": current.isoformat(),
                "dayName": current.strftime("%A"),
                "tasksCount": blocks_per_day,
                "plan": {"summary": "Day focus", "timeBlocks": blocks, "tips": []},
            }
        )
    return {
        "summary": "A balanced week",
        "days": day_entries,
        "totalTasks": days * blocks_per_day,
        "totalEstimatedHours": float(days * blocks_per_day),
        "weeklyGoals": ["Ship the release"],
        "balanceScore": 80,
    }


def make_work_items(count: int = 3) -> list[WorkItem]:
    return [WorkItem(id=str(index), title=f"Task {index}") for index in range(1, count + 1)]


def make_credential(
    *,
    provider: str = "outlook",
    expires_at: datetime | None = NOW + timedelta(hours=1),
    refresh_token: str | None = "refresh-1",
    connected: bool = True,
) -> CalendarCredential:
    return CalendarCredential(
        user_id=USER_ID,
        provider=provider,
        connected=connected,
        account_id="acct-1",
        account_email="user@example.com",
        access_token="access-1",
        refresh_token=refresh_token,
        token_expires_at=expires_at,
    )


# ---------------------------------------------------------------------------
# In-memory collaborators
# ---------------------------------------------------------------------------


class FakeTaskStore(TaskStore):
    def __init__(self, items: Sequence[WorkItem] = ()) -> None:
        self.items = list(items)
        self.calls: list[str] = []

    async def list_pending_work_items(self, user_id: str) -> list[WorkItem]:
        self.calls.append(user_id)
        return list(self.items)


class FakePreferenceStore(PreferenceStore):
    def __init__(self, preferences: SchedulingPreferences | None = None) -> None:
        self.preferences = preferences or SchedulingPreferences()

    async def get_preferences(self, user_id: str) -> SchedulingPreferences:
        return self.preferences


class InMemoryCredentialRepository(CredentialRepository):
    """Stores copies so callers cannot mutate the "database" by accident."""

    def __init__(self, *credentials: CalendarCredential) -> None:
        self.rows: dict[tuple[str, str], CalendarCredential] = {}
        self.save_tokens_calls: list[dict[str, Any]] = []
        self.save_tokens_error: Exception | None = None
        self.get_error: Exception | None = None
        for credential in credentials:
            self.rows[(credential.user_id, credential.provider)] = credential.model_copy()

    async def get(self, user_id: str, provider: str) -> CalendarCredential | None:
        if self.get_error is not None:
            raise self.get_error
        row = self.rows.get((user_id, provider))
        return row.model_copy() if row is not None else None

    async def save(self, credential: CalendarCredential) -> None:
        self.rows[(credential.user_id, credential.provider)] = credential.model_copy()

    async def save_tokens(
        self,
        user_id: str,
        provider: str,
        *,
        access_token: str,
        refresh_token: str | None,
        token_expires_at: datetime,
    ) -> None:
        self.save_tokens_calls.append(
            {
                "access_token": access_token,
                "refresh_token": refresh_token,
                "token_expires_at": token_expires_at,
            }
        )
        if self.save_tokens_error is not None:
            raise self.save_tokens_error
        row = self.rows[(user_id, provider)]
        row.access_token = access_token
        if refresh_token is not None:
            row.refresh_token = refresh_token
        row.token_expires_at = token_expires_at

    async def mark_synced(self, user_id: str, provider: str, synced_at: datetime) -> None:
        row = self.rows.get((user_id, provider))
        if row is not None:
            row.last_synced_at = synced_at

    async def clear(self, user_id: str, provider: str) -> None:
        self.rows[(user_id, provider)] = CalendarCredential(user_id=user_id, provider=provider)


class FakePlanGenerator(PlanGenerator):
    def __init__(
        self,
        *,
        daily: Any = None,
        weekly: Any = None,
        error: Exception | None = None,
    ) -> None:
        self.daily = daily if daily is not None else daily_payload()
        self.weekly = weekly if weekly is not None else weekly_payload()
        self.error = error
        self.daily_calls: list[tuple[list[WorkItem], SchedulingPreferences, date]] = []
        self.weekly_calls: list[tuple[list[WorkItem], SchedulingPreferences, date, int]] = []

    @property
    def name(self) -> str:
        return "fake"

    async def generate_daily(
        self,
        work_items: Sequence[WorkItem],
        preferences: SchedulingPreferences,
        plan_date: date,
    ) -> Mapping[str, Any]:
        self.daily_calls.append((list(work_items), preferences, plan_date))
        if self.error is not None:
            raise self.error
        return self.daily

    async def generate_weekly(
        self,
        work_items: Sequence[WorkItem],
        preferences: SchedulingPreferences,
        week_start: date,
        span_days: int,
    ) -> Mapping[str, Any]:
        self.weekly_calls.append((list(work_items), preferences, week_start, span_days))
        if self.error is not None:
            raise self.error
        return self.weekly


class FakeCalendarProvider(CalendarProvider):
    """Records created events; can fail on the Nth creation or on refresh."""

    def __init__(
        self,
        name: str = "outlook",
        *,
        fail_on_event: int | None = None,
        refresh_grant: TokenGrant | None = None,
        refresh_error: Exception | None = None,
        configured: bool = True,
    ) -> None:
        self._name = name
        self._configured = configured
        self.fail_on_event = fail_on_event
        self.refresh_grant = refresh_grant or TokenGrant(
            access_token="access-2", refresh_token="refresh-2", expires_in=3600
        )
        self.refresh_error = refresh_error
        self.created: list[tuple[str, EventRequest]] = []
        self.refresh_calls: list[str] = []
        self.exchanged_codes: list[str] = []

    @property
    def name(self) -> str:
        return self._name

    @property
    def is_configured(self) -> bool:
        return self._configured

    def authorization_url(self, state: str) -> str:
        return f"https://login.example.com/authorize?state={state}"

    async def exchange_code(self, code: str) -> TokenGrant:
        self.exchanged_codes.append(code)
        return TokenGrant(access_token="access-new", refresh_token="refresh-new", expires_in=3600)

    async def get_profile(self, access_token: str) -> ProviderProfile:
        return ProviderProfile(account_id="acct-9", email="new@example.com")

    async def refresh_access_token(self, refresh_token: str) -> TokenGrant:
        self.refresh_calls.append(refresh_token)
        if self.refresh_error is not None:
            raise self.refresh_error
        return self.refresh_grant

    async def create_event(self, access_token: str, request: EventRequest) -> CreatedEvent:
        attempt = len(self.created) + 1
        if self.fail_on_event is not None and attempt == self.fail_on_event:
            raise EventCreationError(
                provider=self._name,
                status_code=503,
                message="Service temporarily unavailable",
            )
        self.created.append((access_token, request))
        web_link = f"https://cal.example.com/{attempt}"
        return CreatedEvent(event_id=f"evt-{attempt}", web_link=web_link)

    async def shutdown(self) -> None:
        return None


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def provider() -> FakeCalendarProvider:
    return FakeCalendarProvider()


@pytest.fixture
def credential() -> CalendarCredential:
    return make_credential()


@pytest.fixture
def repository(credential: CalendarCredential) -> InMemoryCredentialRepository:
    return InMemoryCredentialRepository(credential)


@pytest.fixture
def refresh_failure() -> RefreshFailedError:
    return RefreshFailedError("Failed to refresh outlook access token: invalid_grant")
