"""Access-token lifecycle for connected calendar credentials.

``TokenManager.ensure_valid_access_token`` hands the sync orchestrator a
usable bearer token.  The stored access token is returned as-is while its
expiry is comfortably in the future; otherwise the refresh token is exchanged
with the provider and the result is written back through the credential
repository before the in-memory credential is updated.

Refreshes for one ``(user_id, provider)`` pair are serialized by an
in-process ``asyncio.Lock``.  A caller that waited on the lock reloads the
credential first and reuses the token a concurrent caller just stored.
Processes do not coordinate, so cross-process refresh races remain
last-write-wins.
"""

from __future__ import annotations

import asyncio
import logging
import weakref
from collections.abc import Callable, Mapping
from datetime import UTC, datetime, timedelta

from plansync.core.metrics import record_token_refresh
from plansync.errors import (
    CredentialPersistError,
    NotConnectedError,
    ProviderNotConfiguredError,
    RefreshFailedError,
    RefreshUnavailableError,
    summarize_error,
)
from plansync.models import CalendarCredential
from plansync.providers.base import CalendarProvider
from plansync.stores import CredentialRepository

logger = logging.getLogger(__name__)

DEFAULT_REFRESH_MARGIN = timedelta(minutes=5)


def _utc_now() -> datetime:
    return datetime.now(UTC)


def _as_aware(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=UTC)


class TokenManager:
    """Returns valid access tokens, refreshing and persisting them when needed."""

    def __init__(
        self,
        repository: CredentialRepository,
        providers: Mapping[str, CalendarProvider],
        *,
        refresh_margin: timedelta = DEFAULT_REFRESH_MARGIN,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._repository = repository
        self._providers = providers
        self._refresh_margin = refresh_margin
        self._clock = clock or _utc_now
        self._locks: weakref.WeakValueDictionary[tuple[str, str], asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    @property
    def refresh_margin(self) -> timedelta:
        return self._refresh_margin

    def needs_refresh(self, credential: CalendarCredential) -> bool:
        """True when the stored access token is missing, expired, or expiring soon.

        A token is reused only when its expiry is strictly after
        ``now + refresh_margin``.
        """
        if not credential.access_token or credential.token_expires_at is None:
            return True
        expires_at = _as_aware(credential.token_expires_at)
        return expires_at <= self._clock() + self._refresh_margin

    def _lock_for(self, credential: CalendarCredential) -> asyncio.Lock:
        key = (credential.user_id, credential.provider)
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    async def ensure_valid_access_token(self, credential: CalendarCredential | None) -> str:
        """Return a bearer token for *credential*, refreshing it if necessary.

        Raises
        ------
        NotConnectedError
            The user has no connected credential for this provider.
        RefreshUnavailableError
            A refresh is required but no refresh token is stored.
        RefreshFailedError
            The provider rejected the refresh.  The stored credential is
            left untouched.
        CredentialPersistError
            The refresh succeeded but the new tokens could not be stored.
        """
        if credential is None or not credential.connected:
            raise NotConnectedError("Calendar is not connected")

        if credential.access_token and not self.needs_refresh(credential):
            return credential.access_token

        lock = self._lock_for(credential)
        async with lock:
            latest = await self._repository.get(credential.user_id, credential.provider)
            if latest is not None:
                if not latest.connected:
                    raise NotConnectedError("Calendar was disconnected")
                if latest.access_token and not self.needs_refresh(latest):
                    # A concurrent request refreshed while we waited.
                    self._apply(credential, latest)
                    return latest.access_token
                source = latest
            else:
                source = credential

            return await self._refresh(credential, source)

    async def _refresh(self, credential: CalendarCredential, source: CalendarCredential) -> str:
        refresh_token = source.refresh_token
        if not refresh_token:
            raise RefreshUnavailableError(
                "Access token expired and no refresh token is stored. "
                "Please reconnect your calendar."
            )

        provider = self._providers.get(credential.provider)
        if provider is None:
            raise ProviderNotConfiguredError(
                f"No calendar provider registered for {credential.provider!r}"
            )

        try:
            grant = await provider.refresh_access_token(refresh_token)
        except RefreshFailedError:
            record_token_refresh(credential.provider, ok=False)
            raise
        except Exception as exc:
            record_token_refresh(credential.provider, ok=False)
            raise RefreshFailedError(
                f"Failed to refresh {credential.provider} access token: {summarize_error(exc)}"
            ) from exc

        expires_at = self._clock() + timedelta(seconds=grant.expires_in)
        # Providers that do not rotate refresh tokens omit them from the grant.
        next_refresh_token = grant.refresh_token or refresh_token

        try:
            await self._repository.save_tokens(
                credential.user_id,
                credential.provider,
                access_token=grant.access_token,
                refresh_token=next_refresh_token,
                token_expires_at=expires_at,
            )
        except Exception as exc:
            record_token_refresh(credential.provider, ok=False)
            raise CredentialPersistError(
                f"Refreshed {credential.provider} tokens could not be saved: "
                f"{summarize_error(exc)}"
            ) from exc

        credential.access_token = grant.access_token
        credential.refresh_token = next_refresh_token
        credential.token_expires_at = expires_at
        record_token_refresh(credential.provider, ok=True)
        logger.info(
            "Refreshed calendar access token: user=%s provider=%s expires_at=%s",
            credential.user_id,
            credential.provider,
            expires_at.isoformat(),
        )
        return grant.access_token

    @staticmethod
    def _apply(credential: CalendarCredential, latest: CalendarCredential) -> None:
        credential.access_token = latest.access_token
        credential.refresh_token = latest.refresh_token
        credential.token_expires_at = latest.token_expires_at
