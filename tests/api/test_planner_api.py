"""Tests for the generate-and-sync HTTP endpoints.

The app is built without running its lifespan; the planner service
dependency is overridden with one wired to in-memory fakes.
"""

from __future__ import annotations

import httpx
import pytest
from fastapi import FastAPI

from conftest import (
    USER_ID,
    FakeCalendarProvider,
    FakePlanGenerator,
    FakePreferenceStore,
    FakeTaskStore,
    InMemoryCredentialRepository,
    fixed_clock,
    make_credential,
    make_work_items,
)
from plansync.api.app import create_app
from plansync.api.deps import get_planner_service
from plansync.api.models import ErrorResponse
from plansync.config import PlanSyncConfig
from plansync.core.logging import get_user_context
from plansync.errors import PlanningUnavailableError
from plansync.planning.adapter import PlanGeneratorAdapter
from plansync.service import PlannerService
from plansync.sync import CalendarSyncOrchestrator
from plansync.tokens import TokenManager

pytestmark = pytest.mark.unit

HEADERS = {"X-User-Id": USER_ID}


def _planner_service(
    *,
    provider: FakeCalendarProvider,
    generator: FakePlanGenerator | None = None,
    task_store: FakeTaskStore | None = None,
) -> PlannerService:
    repository = InMemoryCredentialRepository(make_credential())
    providers = {provider.name: provider}
    token_manager = TokenManager(repository, providers, clock=fixed_clock)
    return PlannerService(
        task_store=task_store or FakeTaskStore(make_work_items()),
        preference_store=FakePreferenceStore(),
        credential_repository=repository,
        planner=PlanGeneratorAdapter(generator or FakePlanGenerator()),
        orchestrator=CalendarSyncOrchestrator(
            token_manager, providers, repository, clock=fixed_clock
        ),
        providers=["outlook", "google"],
        clock=fixed_clock,
    )


def _app(service: PlannerService) -> FastAPI:
    app = create_app(PlanSyncConfig())
    app.dependency_overrides[get_planner_service] = lambda: service
    return app


async def _post(app: FastAPI, path: str, body: dict, headers=HEADERS) -> httpx.Response:
    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app), base_url="http://test"
    ) as client:
        return await client.post(path, json=body, headers=headers)


# ============================================================================
# Daily
# ============================================================================


class TestDailyEndpoint:
    async def test_plan_without_sync(self):
        provider = FakeCalendarProvider()
        app = _app(_planner_service(provider=provider))

        resp = await _post(app, "/api/planner/daily/generate-and-sync", {"date": "2025-01-13"})

        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert body["syncedToCalendar"] is False
        assert body["syncedEvents"] == []
        assert body["syncError"] is None
        assert body["plan"]["summary"] == "A focused day"
        assert body["plan"]["timeBlocks"][0]["startTime"] == "09:00"
        assert provider.created == []

    async def test_plan_with_sync(self):
        provider = FakeCalendarProvider()
        app = _app(_planner_service(provider=provider))

        resp = await _post(
            app,
            "/api/planner/daily/generate-and-sync",
            {"date": "2025-01-13", "syncToCalendar": True, "timezoneOffset": -600},
        )

        body = resp.json()
        assert resp.status_code == 200
        assert body["syncedToCalendar"] is True
        assert [event["eventId"] for event in body["syncedEvents"]] == [
            "evt-1",
            "evt-2",
            "evt-3",
        ]
        assert body["provider"] == "outlook"
        assert body["message"] == "Daily plan generated and 3 events synced to calendar!"

    async def test_sync_failure_is_still_200(self):
        provider = FakeCalendarProvider(fail_on_event=2)
        app = _app(_planner_service(provider=provider))

        resp = await _post(
            app,
            "/api/planner/daily/generate-and-sync",
            {"date": "2025-01-13", "syncToCalendar": True},
        )

        body = resp.json()
        assert resp.status_code == 200
        assert body["syncedToCalendar"] is False
        assert len(body["syncedEvents"]) == 1
        assert "1 of 3" in body["syncError"]

    async def test_no_work_items_is_400(self):
        service = _planner_service(provider=FakeCalendarProvider(), task_store=FakeTaskStore([]))
        resp = await _post(_app(service), "/api/planner/daily/generate-and-sync", {})

        assert resp.status_code == 400
        parsed = ErrorResponse.model_validate(resp.json())
        assert parsed.error.code == "NO_WORK_ITEMS"
        assert "No pending tasks" in parsed.error.message

    async def test_planning_failure_is_502(self):
        generator = FakePlanGenerator(error=PlanningUnavailableError("Planning model quota hit"))
        service = _planner_service(provider=FakeCalendarProvider(), generator=generator)

        resp = await _post(_app(service), "/api/planner/daily/generate-and-sync", {})

        assert resp.status_code == 502
        assert resp.json()["error"]["code"] == "PLANNING_UNAVAILABLE"

    async def test_unknown_provider_is_404(self):
        service = _planner_service(provider=FakeCalendarProvider())
        resp = await _post(
            _app(service),
            "/api/planner/daily/generate-and-sync",
            {"syncToCalendar": True, "provider": "icloud"},
        )
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "UNKNOWN_PROVIDER"

    async def test_missing_user_header_is_401(self):
        service = _planner_service(provider=FakeCalendarProvider())
        resp = await _post(
            _app(service), "/api/planner/daily/generate-and-sync", {}, headers={}
        )
        assert resp.status_code == 401

    async def test_user_id_is_bound_to_log_context(self):
        seen: list[str | None] = []

        class RecordingTaskStore(FakeTaskStore):
            async def list_pending_work_items(self, user_id: str):
                seen.append(get_user_context())
                return await super().list_pending_work_items(user_id)

        service = _planner_service(
            provider=FakeCalendarProvider(), task_store=RecordingTaskStore(make_work_items())
        )
        resp = await _post(_app(service), "/api/planner/daily/generate-and-sync", {})

        assert resp.status_code == 200
        assert seen == [USER_ID]

    async def test_out_of_range_offset_is_422(self):
        service = _planner_service(provider=FakeCalendarProvider())
        resp = await _post(
            _app(service), "/api/planner/daily/generate-and-sync", {"timezoneOffset": 900}
        )
        assert resp.status_code == 422

    async def test_snake_case_body_is_accepted(self):
        provider = FakeCalendarProvider()
        app = _app(_planner_service(provider=provider))
        resp = await _post(
            app,
            "/api/planner/daily/generate-and-sync",
            {"date": "2025-01-13", "sync_to_calendar": True},
        )
        assert resp.json()["syncedToCalendar"] is True


# ============================================================================
# Weekly
# ============================================================================


class TestWeeklyEndpoint:
    async def test_weekly_with_sync(self):
        provider = FakeCalendarProvider()
        app = _app(_planner_service(provider=provider))

        resp = await _post(
            app,
            "/api/planner/weekly/generate-and-sync",
            {"weekStart": "2025-01-13", "syncToCalendar": True},
        )

        body = resp.json()
        assert resp.status_code == 200
        assert len(body["plan"]["days"]) == 7
        assert body["plan"]["days"][0]["dayName"] == "Monday"
        assert body["syncedEvents"][0]["dayName"] == "Monday"
        assert body["syncedEvents"][-1]["dayName"] == "Sunday"
        assert body["message"] == "Weekly plan generated and 7 events synced to calendar!"

    async def test_weekly_plan_with_wrong_span_is_502(self):
        generator = FakePlanGenerator()
        service = _planner_service(provider=FakeCalendarProvider(), generator=generator)
        resp = await _post(
            _app(service), "/api/planner/weekly/generate-and-sync", {"weekStart": "2025-01-14"}
        )
        assert resp.status_code == 502
        assert resp.json()["error"]["code"] == "PLANNING_UNAVAILABLE"


class TestHealth:
    async def test_health(self):
        app = create_app(PlanSyncConfig())
        async with httpx.AsyncClient(
            transport=httpx.ASGITransport(app=app), base_url="http://test"
        ) as client:
            resp = await client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}
