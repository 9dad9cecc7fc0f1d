"""Record-store interfaces and their asyncpg implementations.

Tasks and preferences are owned by the surrounding product and are only read
here.  Calendar credentials are owned by this service: one row per
``(user_id, provider)`` in ``calendar_credentials``.

Note: raw token values are never logged by any store method.
"""

from __future__ import annotations

import abc
import json
import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from plansync.models import (
    CalendarCredential,
    Priority,
    SchedulingPreferences,
    WorkItem,
    sort_work_items,
)

if TYPE_CHECKING:
    import asyncpg

logger = logging.getLogger(__name__)

_CREDENTIALS_TABLE = "calendar_credentials"

CREDENTIALS_TABLE_DDL = f"""
CREATE TABLE IF NOT EXISTS {_CREDENTIALS_TABLE} (
    user_id           TEXT NOT NULL,
    provider          TEXT NOT NULL,
    connected         BOOLEAN NOT NULL DEFAULT false,
    account_id        TEXT,
    account_email     TEXT,
    access_token      TEXT,
    refresh_token     TEXT,
    token_expires_at  TIMESTAMPTZ,
    last_synced_at    TIMESTAMPTZ,
    created_at        TIMESTAMPTZ NOT NULL DEFAULT now(),
    updated_at        TIMESTAMPTZ NOT NULL DEFAULT now(),
    PRIMARY KEY (user_id, provider)
)
"""


# ---------------------------------------------------------------------------
# Interfaces
# ---------------------------------------------------------------------------


class TaskStore(abc.ABC):
    """Read-only access to a user's work items."""

    @abc.abstractmethod
    async def list_pending_work_items(self, user_id: str) -> list[WorkItem]:
        """Return pending work items, highest priority first."""
        ...


class PreferenceStore(abc.ABC):
    """Read-only access to a user's scheduling preferences."""

    @abc.abstractmethod
    async def get_preferences(self, user_id: str) -> SchedulingPreferences:
        """Return preferences, falling back to defaults when none are stored."""
        ...


class CredentialRepository(abc.ABC):
    """Persistence for per-user, per-provider calendar credentials."""

    @abc.abstractmethod
    async def get(self, user_id: str, provider: str) -> CalendarCredential | None:
        """Return the stored credential, or ``None`` if the user never connected."""
        ...

    @abc.abstractmethod
    async def save(self, credential: CalendarCredential) -> None:
        """Insert or fully replace a credential (connect and disconnect)."""
        ...

    @abc.abstractmethod
    async def save_tokens(
        self,
        user_id: str,
        provider: str,
        *,
        access_token: str,
        refresh_token: str | None,
        token_expires_at: datetime,
    ) -> None:
        """Persist the outcome of a token refresh."""
        ...

    @abc.abstractmethod
    async def mark_synced(self, user_id: str, provider: str, synced_at: datetime) -> None:
        """Record the time of the last completed sync."""
        ...

    @abc.abstractmethod
    async def clear(self, user_id: str, provider: str) -> None:
        """Null every field of the credential and mark it disconnected."""
        ...


# ---------------------------------------------------------------------------
# asyncpg implementations
# ---------------------------------------------------------------------------


def _row_to_work_item(row: Any) -> WorkItem | None:
    priority_raw = (row["priority"] or Priority.MEDIUM.value).lower()
    try:
        priority = Priority(priority_raw)
    except ValueError:
        logger.warning("Unknown task priority %r on task %s; using medium", priority_raw, row["id"])
        priority = Priority.MEDIUM
    try:
        return WorkItem(
            id=str(row["id"]),
            title=row["title"],
            description=row["description"] or "",
            priority=priority,
            estimated_minutes=row["estimated_minutes"],
            due_at=row["due_at"],
        )
    except ValidationError:
        logger.warning("Skipping malformed task row %s", row["id"], exc_info=True)
        return None


class PostgresTaskStore(TaskStore):
    """Reads pending rows from the product's ``tasks`` table."""

    def __init__(self, pool: asyncpg.Pool) -> None:
        self.pool = pool

    async def list_pending_work_items(self, user_id: str) -> list[WorkItem]:
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT id, title, description, priority, estimated_minutes, due_at
                FROM tasks
                WHERE user_id = $1 AND status = 'pending'
                """,
                user_id,
            )
        items = [item for item in (_row_to_work_item(row) for row in rows) if item is not None]
        return sort_work_items(items)


class PostgresPreferenceStore(PreferenceStore):
    """Reads the JSON ``preferences`` column from the product's ``users`` table."""

    def __init__(self, pool: asyncpg.Pool) -> None:
        self.pool = pool

    async def get_preferences(self, user_id: str) -> SchedulingPreferences:
        async with self.pool.acquire() as conn:
            raw = await conn.fetchval("SELECT preferences FROM users WHERE id = $1", user_id)

        if raw is None:
            return SchedulingPreferences()
        if isinstance(raw, str):
            try:
                raw = json.loads(raw)
            except json.JSONDecodeError:
                logger.warning("User %s has non-JSON preferences; using defaults", user_id)
                return SchedulingPreferences()
        if not isinstance(raw, dict):
            return SchedulingPreferences()

        # The product stores working hours as a nested {"start", "end"} object.
        data = dict(raw)
        working_hours = data.pop("workingHours", None)
        if isinstance(working_hours, dict):
            data.setdefault("workStart", working_hours.get("start"))
            data.setdefault("workEnd", working_hours.get("end"))
        data = {key: value for key, value in data.items() if value is not None}

        try:
            return SchedulingPreferences.model_validate(data)
        except ValidationError:
            logger.warning("User %s has invalid preferences; using defaults", user_id)
            return SchedulingPreferences()


class PostgresCredentialRepository(CredentialRepository):
    """Calendar credentials in the ``calendar_credentials`` table."""

    def __init__(self, pool: asyncpg.Pool) -> None:
        self.pool = pool

    async def get(self, user_id: str, provider: str) -> CalendarCredential | None:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                SELECT user_id, provider, connected, account_id, account_email,
                       access_token, refresh_token, token_expires_at, last_synced_at
                FROM {_CREDENTIALS_TABLE}
                WHERE user_id = $1 AND provider = $2
                """,
                user_id,
                provider,
            )
        if row is None:
            return None
        return CalendarCredential(**dict(row))

    async def save(self, credential: CalendarCredential) -> None:
        async with self.pool.acquire() as conn:
            await conn.execute(
                f"""
                INSERT INTO {_CREDENTIALS_TABLE}
                    (user_id, provider, connected, account_id, account_email,
                     access_token, refresh_token, token_expires_at, last_synced_at)
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
                ON CONFLICT (user_id, provider) DO UPDATE SET
                    connected        = EXCLUDED.connected,
                    account_id       = EXCLUDED.account_id,
                    account_email    = EXCLUDED.account_email,
                    access_token     = EXCLUDED.access_token,
                    refresh_token    = EXCLUDED.refresh_token,
                    token_expires_at = EXCLUDED.token_expires_at,
                    last_synced_at   = EXCLUDED.last_synced_at,
                    updated_at       = now()
                """,
                credential.user_id,
                credential.provider,
                credential.connected,
                credential.account_id,
                credential.account_email,
                credential.access_token,
                credential.refresh_token,
                credential.token_expires_at,
                credential.last_synced_at,
            )
        logger.info(
            "Calendar credential saved: user=%s provider=%s connected=%r",
            credential.user_id,
            credential.provider,
            credential.connected,
        )

    async def save_tokens(
        self,
        user_id: str,
        provider: str,
        *,
        access_token: str,
        refresh_token: str | None,
        token_expires_at: datetime,
    ) -> None:
        async with self.pool.acquire() as conn:
            await conn.execute(
                f"""
                UPDATE {_CREDENTIALS_TABLE}
                SET access_token     = $3,
                    refresh_token    = COALESCE($4, refresh_token),
                    token_expires_at = $5,
                    updated_at       = now()
                WHERE user_id = $1 AND provider = $2
                """,
                user_id,
                provider,
                access_token,
                refresh_token,
                token_expires_at,
            )

    async def mark_synced(self, user_id: str, provider: str, synced_at: datetime) -> None:
        async with self.pool.acquire() as conn:
            await conn.execute(
                f"""
                UPDATE {_CREDENTIALS_TABLE}
                SET last_synced_at = $3, updated_at = now()
                WHERE user_id = $1 AND provider = $2
                """,
                user_id,
                provider,
                synced_at,
            )

    async def clear(self, user_id: str, provider: str) -> None:
        await self.save(CalendarCredential(user_id=user_id, provider=provider))
