"""Project a generated plan onto an external calendar.

One orchestrator run walks a small state machine::

    not_started -> token_acquired -> syncing -> completed
                                             -> partially_failed
               -> aborted

Events are created strictly one at a time in plan order (days outer, blocks
inner).  The first creation failure stops the run; events already created
stay on the calendar and are reported.  No run ever raises: every failure is
summarized into ``SyncResult.error`` so the caller can still return the plan.

Re-running a sync for the same plan creates a second copy of every event.
There is no deduplication against previously created events.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from enum import StrEnum

from opentelemetry import trace

from plansync.core.metrics import record_event_created, record_sync_outcome
from plansync.core.telemetry import get_tracer, record_span_error
from plansync.errors import ERROR_MESSAGE_LIMIT, ProviderNotConfiguredError, summarize_error
from plansync.materialize import actionable_blocks, materialize
from plansync.models import (
    CalendarCredential,
    DailyPlan,
    SyncedEventRef,
    TimeBlock,
    WeeklyPlan,
)
from plansync.providers.base import CalendarProvider, EventRequest
from plansync.stores import CredentialRepository
from plansync.tokens import TokenManager

logger = logging.getLogger(__name__)

DAILY_TITLE_PREFIX = "[Plan]"
DAILY_DESCRIPTION = "Part of your daily plan"


class SyncState(StrEnum):
    NOT_STARTED = "not_started"
    TOKEN_ACQUIRED = "token_acquired"
    SYNCING = "syncing"
    COMPLETED = "completed"
    PARTIALLY_FAILED = "partially_failed"
    ABORTED = "aborted"


@dataclass
class SyncResult:
    """Outcome of one orchestrator run."""

    provider: str
    state: SyncState = SyncState.NOT_STARTED
    events: list[SyncedEventRef] = field(default_factory=list)
    error: str | None = None
    attempted: int = 0

    @property
    def succeeded(self) -> bool:
        return self.state == SyncState.COMPLETED


@dataclass(frozen=True)
class _PendingEvent:
    plan_date: date
    block: TimeBlock
    day_name: str | None = None

    @property
    def title(self) -> str:
        if self.day_name is None:
            return f"{DAILY_TITLE_PREFIX} {self.block.task_title}"
        return f"[{self.day_name}] {self.block.task_title}"

    @property
    def description(self) -> str:
        if self.block.notes:
            return self.block.notes
        if self.day_name is None:
            return DAILY_DESCRIPTION
        return f"Part of your weekly plan for {self.day_name}"


def _daily_events(plan_date: date, plan: DailyPlan) -> Iterator[_PendingEvent]:
    for block in actionable_blocks(plan.time_blocks):
        yield _PendingEvent(plan_date=plan_date, block=block)


def _weekly_events(plan: WeeklyPlan) -> Iterator[_PendingEvent]:
    for day in plan.days:
        for block in actionable_blocks(day.plan.time_blocks):
            yield _PendingEvent(plan_date=day.date, block=block, day_name=day.day_name)


def _bounded(message: str) -> str:
    return message[:ERROR_MESSAGE_LIMIT]


class CalendarSyncOrchestrator:
    """Creates one calendar event per actionable plan block."""

    def __init__(
        self,
        token_manager: TokenManager,
        providers: Mapping[str, CalendarProvider],
        repository: CredentialRepository,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._token_manager = token_manager
        self._providers = providers
        self._repository = repository
        self._clock = clock or (lambda: datetime.now(UTC))

    async def sync_daily(
        self,
        credential: CalendarCredential,
        plan_date: date,
        plan: DailyPlan,
        timezone_offset_minutes: int = 0,
    ) -> SyncResult:
        """Create events for every actionable block of a daily plan."""
        pending = list(_daily_events(plan_date, plan))
        return await self._run(credential, pending, timezone_offset_minutes, kind="daily")

    async def sync_weekly(
        self,
        credential: CalendarCredential,
        plan: WeeklyPlan,
        timezone_offset_minutes: int = 0,
    ) -> SyncResult:
        """Create events for every actionable block of every day of a weekly plan.

        Each block is materialized against its own day's date; titles are
        tagged with the day name.
        """
        pending = list(_weekly_events(plan))
        return await self._run(credential, pending, timezone_offset_minutes, kind="weekly")

    async def _run(
        self,
        credential: CalendarCredential,
        pending: list[_PendingEvent],
        timezone_offset_minutes: int,
        *,
        kind: str,
    ) -> SyncResult:
        result = SyncResult(provider=credential.provider)
        tracer = get_tracer()
        with tracer.start_as_current_span("plansync.sync") as span:
            span.set_attribute("plansync.sync.kind", kind)
            span.set_attribute("plansync.sync.provider", credential.provider)
            span.set_attribute("plansync.sync.pending", len(pending))

            await self._execute(credential, pending, timezone_offset_minutes, result, span)

            span.set_attribute("plansync.sync.state", result.state.value)
            span.set_attribute("plansync.sync.created", len(result.events))

        record_sync_outcome(credential.provider, result.state.value)
        if result.state == SyncState.COMPLETED:
            await self._mark_synced(credential)
            logger.info(
                "Calendar sync completed: user=%s provider=%s kind=%s events=%d",
                credential.user_id,
                credential.provider,
                kind,
                len(result.events),
            )
        else:
            logger.warning(
                "Calendar sync %s: user=%s provider=%s kind=%s events=%d/%d error=%s",
                result.state.value,
                credential.user_id,
                credential.provider,
                kind,
                len(result.events),
                len(pending),
                result.error,
            )
        return result

    async def _execute(
        self,
        credential: CalendarCredential,
        pending: list[_PendingEvent],
        timezone_offset_minutes: int,
        result: SyncResult,
        span: trace.Span,
    ) -> None:
        provider = self._providers.get(credential.provider)
        try:
            if provider is None:
                raise ProviderNotConfiguredError(
                    f"No calendar provider registered for {credential.provider!r}"
                )
            access_token = await self._token_manager.ensure_valid_access_token(credential)
        except Exception as exc:
            record_span_error(span, exc)
            result.state = SyncState.ABORTED
            result.error = _bounded(f"Calendar sync could not start: {summarize_error(exc)}")
            return

        result.state = SyncState.TOKEN_ACQUIRED
        logger.debug(
            "Access token ready: user=%s provider=%s pending=%d",
            credential.user_id,
            credential.provider,
            len(pending),
        )
        if not pending:
            result.state = SyncState.COMPLETED
            return

        result.state = SyncState.SYNCING

        for item in pending:
            result.attempted += 1
            start_at, end_at = materialize(item.plan_date, item.block, timezone_offset_minutes)
            request = EventRequest(
                title=item.title,
                description=item.description,
                start_at=start_at,
                end_at=end_at,
            )
            try:
                created = await provider.create_event(access_token, request)
            except Exception as exc:
                record_span_error(span, exc)
                result.state = SyncState.PARTIALLY_FAILED
                result.error = _bounded(
                    f"Calendar sync stopped after {len(result.events)} of {len(pending)} "
                    f"events: {summarize_error(exc)}"
                )
                return

            record_event_created(credential.provider)
            result.events.append(
                SyncedEventRef(
                    task_title=item.block.task_title or "",
                    start_time=item.block.start_time,
                    end_time=item.block.end_time,
                    event_id=created.event_id,
                    provider=credential.provider,
                    day_name=item.day_name,
                    web_link=created.web_link,
                )
            )

        result.state = SyncState.COMPLETED

    async def _mark_synced(self, credential: CalendarCredential) -> None:
        synced_at = self._clock()
        try:
            await self._repository.mark_synced(credential.user_id, credential.provider, synced_at)
        except Exception:
            logger.warning(
                "Failed to record last sync time: user=%s provider=%s",
                credential.user_id,
                credential.provider,
                exc_info=True,
            )
            return
        credential.last_synced_at = synced_at
