"""Connect, inspect and disconnect a user's external calendar.

The connect flow is a standard OAuth 2.0 authorization-code grant:

1. ``authorize()`` issues a one-time CSRF ``state`` bound to the user and
   provider, and returns the provider's consent URL.
2. The provider redirects the browser back to the product with ``code`` and
   ``state``; the product forwards both to ``connect()``.
3. ``connect()`` consumes the state, exchanges the code, reads the account
   profile and stores a connected credential.

State tokens live in process memory with a 10 minute TTL.  A multi-process
deployment must pin the callback to the process that issued the state.
"""

from __future__ import annotations

import logging
import secrets
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from plansync.errors import OAuthStateError, UnknownProviderError
from plansync.models import CalendarCredential, CamelModel
from plansync.providers.base import CalendarProvider
from plansync.stores import CredentialRepository

logger = logging.getLogger(__name__)

STATE_TTL_SECONDS = 600


class AuthorizationStart(CamelModel):
    """Where to send the user to grant calendar access."""

    provider: str
    authorization_url: str
    state: str


class ConnectionStatus(CamelModel):
    """Public view of a stored credential (never includes tokens)."""

    provider: str
    configured: bool
    connected: bool = False
    account_email: str | None = None
    last_synced_at: datetime | None = None


@dataclass(frozen=True)
class _PendingState:
    user_id: str
    provider: str
    expires_at: float


class OAuthStateStore:
    """One-time CSRF state tokens keyed by value, with monotonic expiry."""

    def __init__(
        self,
        ttl_seconds: float = STATE_TTL_SECONDS,
        *,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl_seconds = ttl_seconds
        self._monotonic = monotonic
        self._states: dict[str, _PendingState] = {}

    def issue(self, user_id: str, provider: str) -> str:
        """Generate and remember a state token for *user_id* and *provider*."""
        self._evict_expired()
        state = secrets.token_urlsafe(32)
        self._states[state] = _PendingState(
            user_id=user_id,
            provider=provider,
            expires_at=self._monotonic() + self._ttl_seconds,
        )
        return state

    def consume(self, state: str, *, user_id: str, provider: str) -> bool:
        """Validate and remove *state*.

        Returns True only if the token exists, has not expired, and was issued
        to the same user for the same provider.  The token is removed either
        way.
        """
        self._evict_expired()
        pending = self._states.pop(state, None)
        if pending is None:
            return False
        if self._monotonic() >= pending.expires_at:
            return False
        return pending.user_id == user_id and pending.provider == provider

    def clear(self) -> None:
        self._states.clear()

    def __len__(self) -> int:
        return len(self._states)

    def _evict_expired(self) -> None:
        now = self._monotonic()
        expired = [key for key, pending in self._states.items() if now >= pending.expires_at]
        for key in expired:
            del self._states[key]


class CalendarConnectionService:
    """Connect-flow operations on top of the providers and credential repository."""

    def __init__(
        self,
        repository: CredentialRepository,
        providers: Mapping[str, CalendarProvider],
        *,
        state_store: OAuthStateStore | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._repository = repository
        self._providers = providers
        self._state_store = state_store or OAuthStateStore()
        self._clock = clock or (lambda: datetime.now(UTC))

    @property
    def state_store(self) -> OAuthStateStore:
        return self._state_store

    def _provider(self, name: str) -> CalendarProvider:
        provider = self._providers.get(name)
        if provider is None:
            raise UnknownProviderError(name)
        return provider

    def authorize(self, user_id: str, provider_name: str) -> AuthorizationStart:
        provider = self._provider(provider_name)
        state = self._state_store.issue(user_id, provider_name)
        url = provider.authorization_url(state)
        return AuthorizationStart(provider=provider_name, authorization_url=url, state=state)

    async def connect(
        self,
        user_id: str,
        provider_name: str,
        *,
        code: str,
        state: str,
    ) -> ConnectionStatus:
        """Finish the OAuth grant and store a connected credential.

        Raises ``OAuthStateError`` for a missing, expired, reused or foreign
        state.  Provider failures during the exchange propagate as
        ``ProviderRequestError``.
        """
        provider = self._provider(provider_name)
        if not state or not self._state_store.consume(
            state, user_id=user_id, provider=provider_name
        ):
            raise OAuthStateError("Invalid or expired OAuth state")

        grant = await provider.exchange_code(code)
        profile = await provider.get_profile(grant.access_token)
        if grant.refresh_token is None:
            logger.warning(
                "Calendar connected without a refresh token: user=%s provider=%s",
                user_id,
                provider_name,
            )

        credential = CalendarCredential(
            user_id=user_id,
            provider=provider_name,
            connected=True,
            account_id=profile.account_id,
            account_email=profile.email,
            access_token=grant.access_token,
            refresh_token=grant.refresh_token,
            token_expires_at=self._clock() + timedelta(seconds=grant.expires_in),
        )
        await self._repository.save(credential)
        logger.info("Calendar connected: user=%s provider=%s", user_id, provider_name)
        return self._status_from(provider, credential)

    async def status(self, user_id: str, provider_name: str) -> ConnectionStatus:
        provider = self._provider(provider_name)
        credential = await self._repository.get(user_id, provider_name)
        return self._status_from(provider, credential)

    async def disconnect(self, user_id: str, provider_name: str) -> ConnectionStatus:
        """Forget every stored token and account detail for the provider.

        Remote grants are not revoked; the user can do that from their
        provider account page.
        """
        provider = self._provider(provider_name)
        await self._repository.clear(user_id, provider_name)
        logger.info("Calendar disconnected: user=%s provider=%s", user_id, provider_name)
        return self._status_from(provider, None)

    @staticmethod
    def _status_from(
        provider: CalendarProvider, credential: CalendarCredential | None
    ) -> ConnectionStatus:
        if credential is None or not credential.connected:
            return ConnectionStatus(provider=provider.name, configured=provider.is_configured)
        return ConnectionStatus(
            provider=provider.name,
            configured=provider.is_configured,
            connected=True,
            account_email=credential.account_email,
            last_synced_at=credential.last_synced_at,
        )
