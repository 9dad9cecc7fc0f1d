"""Tests for PlannerService generate-and-sync entry points."""

from __future__ import annotations

from datetime import UTC, date, datetime

import pytest

from conftest import (
    PLAN_DATE,
    USER_ID,
    FakeCalendarProvider,
    FakePlanGenerator,
    FakePreferenceStore,
    FakeTaskStore,
    InMemoryCredentialRepository,
    daily_payload,
    fixed_clock,
    make_credential,
    make_work_items,
    weekly_payload,
)
from plansync.errors import NoWorkItemsError, PlanningUnavailableError, UnknownProviderError
from plansync.planning.adapter import PlanGeneratorAdapter
from plansync.service import PlannerService
from plansync.sync import CalendarSyncOrchestrator
from plansync.tokens import TokenManager

pytestmark = pytest.mark.unit


def _service(
    *,
    repository: InMemoryCredentialRepository,
    provider: FakeCalendarProvider | None = None,
    generator: FakePlanGenerator | None = None,
    task_store: FakeTaskStore | None = None,
    clock=fixed_clock,
) -> PlannerService:
    provider = provider or FakeCalendarProvider()
    providers = {provider.name: provider}
    token_manager = TokenManager(repository, providers, clock=clock)
    return PlannerService(
        task_store=task_store or FakeTaskStore(make_work_items()),
        preference_store=FakePreferenceStore(),
        credential_repository=repository,
        planner=PlanGeneratorAdapter(generator or FakePlanGenerator()),
        orchestrator=CalendarSyncOrchestrator(token_manager, providers, repository, clock=clock),
        providers=["outlook", "google"],
        clock=clock,
    )


# ============================================================================
# Daily
# ============================================================================


class TestGenerateAndSyncDaily:
    async def test_without_sync_returns_plan_only(self, repository, provider):
        service = _service(repository=repository, provider=provider)

        response = await service.generate_and_sync_daily(USER_ID, PLAN_DATE)

        assert response.plan.summary == "A focused day"
        assert response.synced_to_calendar is False
        assert response.sync_error is None
        assert provider.created == []

    async def test_with_sync_creates_events(self, repository, provider):
        service = _service(repository=repository, provider=provider)

        response = await service.generate_and_sync_daily(USER_ID, PLAN_DATE, sync=True)

        assert response.synced_to_calendar is True
        assert len(response.synced_events) == 3
        assert response.provider == "outlook"

    async def test_not_connected_skips_sync_without_error(self, provider):
        repository = InMemoryCredentialRepository(make_credential(connected=False))
        service = _service(repository=repository, provider=provider)

        response = await service.generate_and_sync_daily(USER_ID, PLAN_DATE, sync=True)

        assert response.synced_to_calendar is False
        assert response.sync_error is None
        assert response.synced_events == []
        assert provider.created == []

    async def test_missing_credential_skips_sync(self, provider):
        service = _service(repository=InMemoryCredentialRepository(), provider=provider)
        response = await service.generate_and_sync_daily(USER_ID, PLAN_DATE, sync=True)
        assert response.sync_error is None
        assert response.synced_to_calendar is False

    async def test_no_work_items_never_plans(self, repository):
        generator = FakePlanGenerator()
        service = _service(
            repository=repository, generator=generator, task_store=FakeTaskStore([])
        )

        with pytest.raises(NoWorkItemsError):
            await service.generate_and_sync_daily(USER_ID, PLAN_DATE, sync=True)
        assert generator.daily_calls == []

    async def test_unknown_provider_fails_before_planning(self, repository):
        generator = FakePlanGenerator()
        service = _service(repository=repository, generator=generator)

        with pytest.raises(UnknownProviderError):
            await service.generate_and_sync_daily(
                USER_ID, PLAN_DATE, sync=True, provider="icloud"
            )
        assert generator.daily_calls == []

    async def test_unknown_provider_ignored_without_sync(self, repository, provider):
        service = _service(repository=repository, provider=provider)

        response = await service.generate_and_sync_daily(USER_ID, PLAN_DATE, provider="icloud")

        assert response.plan.summary == "A focused day"
        assert response.synced_to_calendar is False
        assert provider.created == []

    async def test_planning_failure_fails_request(self, repository, provider):
        generator = FakePlanGenerator(error=PlanningUnavailableError("quota exceeded"))
        service = _service(repository=repository, provider=provider, generator=generator)

        with pytest.raises(PlanningUnavailableError):
            await service.generate_and_sync_daily(USER_ID, PLAN_DATE, sync=True)
        assert provider.created == []

    async def test_sync_failure_still_returns_plan(self, repository):
        provider = FakeCalendarProvider(fail_on_event=2)
        service = _service(repository=repository, provider=provider)

        response = await service.generate_and_sync_daily(USER_ID, PLAN_DATE, sync=True)

        assert response.success is True
        assert response.plan.actionable_count == 3
        assert response.synced_to_calendar is False
        assert len(response.synced_events) == 1
        assert "1 of 3" in response.sync_error

    async def test_credential_lookup_failure_is_reported_as_sync_error(self, repository):
        repository.get_error = ConnectionError("credential store offline")
        service = _service(repository=repository)

        response = await service.generate_and_sync_daily(USER_ID, PLAN_DATE, sync=True)

        assert response.synced_to_calendar is False
        assert "credential store offline" in response.sync_error
        assert response.plan.summary == "A focused day"

    async def test_defaults_to_local_today(self, repository):
        generator = FakePlanGenerator()

        def late_evening_utc() -> datetime:
            return datetime(2025, 1, 13, 20, 0, tzinfo=UTC)

        service = _service(repository=repository, generator=generator, clock=late_evening_utc)

        # UTC+10: 20:00 UTC is already 06:00 the next morning.
        await service.generate_and_sync_daily(USER_ID, timezone_offset_minutes=-600)

        assert generator.daily_calls[0][2] == date(2025, 1, 14)

    async def test_provider_name_is_normalized(self, repository):
        service = _service(repository=repository)
        response = await service.generate_and_sync_daily(
            USER_ID, PLAN_DATE, sync=True, provider=" Outlook "
        )
        assert response.provider == "outlook"


# ============================================================================
# Weekly
# ============================================================================


class TestGenerateAndSyncWeekly:
    async def test_with_sync_creates_event_per_day(self, repository, provider):
        service = _service(repository=repository, provider=provider)

        response = await service.generate_and_sync_weekly(USER_ID, PLAN_DATE, sync=True)

        assert response.synced_to_calendar is True
        assert len(response.plan.days) == 7
        assert [event.day_name for event in response.synced_events][0] == "Monday"
        assert len(provider.created) == 7

    async def test_week_start_is_passed_to_planner(self, repository):
        week_start = date(2025, 1, 20)
        generator = FakePlanGenerator(weekly=weekly_payload(week_start))
        service = _service(repository=repository, generator=generator)

        response = await service.generate_and_sync_weekly(USER_ID, week_start)

        assert generator.weekly_calls[0][2] == week_start
        assert response.plan.days[0].date == week_start

    async def test_no_work_items(self, repository):
        generator = FakePlanGenerator()
        service = _service(
            repository=repository, generator=generator, task_store=FakeTaskStore([])
        )
        with pytest.raises(NoWorkItemsError):
            await service.generate_and_sync_weekly(USER_ID, PLAN_DATE)
        assert generator.weekly_calls == []

    async def test_daily_payload_on_weekly_plan_is_rejected(self, repository):
        generator = FakePlanGenerator(weekly=daily_payload())
        service = _service(repository=repository, generator=generator)
        with pytest.raises(PlanningUnavailableError):
            await service.generate_and_sync_weekly(USER_ID, PLAN_DATE)
