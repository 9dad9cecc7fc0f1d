"""The two produced entry points: generate a plan, then optionally sync it."""

from __future__ import annotations

import logging
from collections.abc import Callable, Collection
from datetime import UTC, date, datetime, timedelta

from plansync.errors import (
    ERROR_MESSAGE_LIMIT,
    NoWorkItemsError,
    UnknownProviderError,
    summarize_error,
)
from plansync.models import CalendarCredential, WorkItem
from plansync.planning.adapter import PlanGeneratorAdapter
from plansync.response import PlanResponse, assemble_response
from plansync.stores import CredentialRepository, PreferenceStore, TaskStore
from plansync.sync import CalendarSyncOrchestrator, SyncResult, SyncState

logger = logging.getLogger(__name__)


class PlannerService:
    """Generate-and-sync orchestration for daily and weekly plans.

    Planning failures fail the request.  Everything after a plan exists
    (credential lookup, token refresh, event creation) is reported inside the
    response instead.
    """

    def __init__(
        self,
        *,
        task_store: TaskStore,
        preference_store: PreferenceStore,
        credential_repository: CredentialRepository,
        planner: PlanGeneratorAdapter,
        orchestrator: CalendarSyncOrchestrator,
        providers: Collection[str],
        default_provider: str = "outlook",
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._task_store = task_store
        self._preference_store = preference_store
        self._credentials = credential_repository
        self._planner = planner
        self._orchestrator = orchestrator
        self._providers = frozenset(providers)
        self._default_provider = default_provider
        self._clock = clock or (lambda: datetime.now(UTC))

    @property
    def default_provider(self) -> str:
        return self._default_provider

    def _resolve_provider(self, provider: str | None) -> str:
        name = (provider or self._default_provider).strip().lower()
        if name not in self._providers:
            raise UnknownProviderError(name)
        return name

    def _local_today(self, timezone_offset_minutes: int) -> date:
        # Browser offsets are UTC minus local time.
        return (self._clock() - timedelta(minutes=timezone_offset_minutes)).date()

    async def _load_work_items(self, user_id: str) -> list[WorkItem]:
        work_items = await self._task_store.list_pending_work_items(user_id)
        if not work_items:
            raise NoWorkItemsError()
        return work_items

    async def _connected_credential(
        self, user_id: str, provider: str
    ) -> tuple[CalendarCredential | None, SyncResult | None]:
        """Return the connected credential, or a failed result if it cannot be read."""
        try:
            credential = await self._credentials.get(user_id, provider)
        except Exception as exc:
            logger.warning(
                "Credential lookup failed: user=%s provider=%s error=%s",
                user_id,
                provider,
                summarize_error(exc),
            )
            message = f"Calendar sync could not start: {summarize_error(exc)}"
            failed = SyncResult(
                provider=provider,
                state=SyncState.ABORTED,
                error=message[:ERROR_MESSAGE_LIMIT],
            )
            return None, failed

        if credential is None or not credential.connected:
            logger.info(
                "Sync skipped, calendar not connected: user=%s provider=%s", user_id, provider
            )
            return None, None
        return credential, None

    async def generate_and_sync_daily(
        self,
        user_id: str,
        plan_date: date | None = None,
        *,
        sync: bool = False,
        timezone_offset_minutes: int = 0,
        provider: str | None = None,
    ) -> PlanResponse:
        provider_name = self._resolve_provider(provider) if sync else None
        plan_date = plan_date or self._local_today(timezone_offset_minutes)

        work_items = await self._load_work_items(user_id)
        preferences = await self._preference_store.get_preferences(user_id)
        plan = await self._planner.generate_daily_plan(work_items, preferences, plan_date)

        sync_result: SyncResult | None = None
        if sync:
            credential, sync_result = await self._connected_credential(user_id, provider_name)
            if credential is not None:
                sync_result = await self._orchestrator.sync_daily(
                    credential, plan_date, plan, timezone_offset_minutes
                )
        return assemble_response(plan, sync_result)

    async def generate_and_sync_weekly(
        self,
        user_id: str,
        week_start: date | None = None,
        *,
        sync: bool = False,
        timezone_offset_minutes: int = 0,
        provider: str | None = None,
    ) -> PlanResponse:
        provider_name = self._resolve_provider(provider) if sync else None
        week_start = week_start or self._local_today(timezone_offset_minutes)

        work_items = await self._load_work_items(user_id)
        preferences = await self._preference_store.get_preferences(user_id)
        plan = await self._planner.generate_weekly_plan(work_items, preferences, week_start)

        sync_result: SyncResult | None = None
        if sync:
            credential, sync_result = await self._connected_credential(user_id, provider_name)
            if credential is not None:
                sync_result = await self._orchestrator.sync_weekly(
                    credential, plan, timezone_offset_minutes
                )
        return assemble_response(plan, sync_result)
