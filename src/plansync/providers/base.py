"""Calendar provider contract and the shared OAuth/HTTP plumbing.

This module defines:
- ``TokenGrant``, ``ProviderProfile``, ``EventRequest``, ``CreatedEvent``:
  provider-agnostic request/response shapes
- ``CalendarProvider``: the interface the token manager, sync orchestrator and
  connect flow depend on
- ``OAuthCalendarProvider``: an httpx-backed base with the token-endpoint and
  bearer-request helpers the concrete providers share
"""

from __future__ import annotations

import abc
import logging
from datetime import UTC, datetime
from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict, Field, field_validator

from plansync.config import ProviderConfig
from plansync.errors import (
    ProviderNotConfiguredError,
    ProviderRequestError,
    RefreshFailedError,
)

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_LIFETIME_SECONDS = 3600


# ---------------------------------------------------------------------------
# Shapes
# ---------------------------------------------------------------------------


class TokenGrant(BaseModel):
    """Result of an authorization-code or refresh-token exchange."""

    model_config = ConfigDict(frozen=True)

    access_token: str = Field(min_length=1, repr=False)
    refresh_token: str | None = Field(default=None, repr=False)
    expires_in: int = DEFAULT_TOKEN_LIFETIME_SECONDS


class ProviderProfile(BaseModel):
    """Remote account identity returned after connecting."""

    account_id: str
    email: str | None = None
    display_name: str | None = None


class EventRequest(BaseModel):
    """A calendar event to create, with absolute UTC boundaries."""

    title: str = Field(min_length=1)
    description: str = ""
    start_at: datetime
    end_at: datetime

    @field_validator("start_at", "end_at")
    @classmethod
    def _ensure_aware(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)


class CreatedEvent(BaseModel):
    """Provider reference to a newly created event."""

    event_id: str
    web_link: str | None = None


def format_utc(value: datetime) -> str:
    """Format an aware instant as ``YYYY-MM-DDTHH:MM:SS`` in UTC (no offset suffix)."""
    normalized = value if value.tzinfo is not None else value.replace(tzinfo=UTC)
    return normalized.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%S")


def coerce_expires_in_seconds(value: Any) -> int:
    if isinstance(value, bool):
        return DEFAULT_TOKEN_LIFETIME_SECONDS
    if isinstance(value, int | float):
        return int(value) if value > 0 else DEFAULT_TOKEN_LIFETIME_SECONDS
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip()) or DEFAULT_TOKEN_LIFETIME_SECONDS
    return DEFAULT_TOKEN_LIFETIME_SECONDS


def safe_error_message(response: httpx.Response) -> str:
    """Extract a short human-readable error from a provider error response."""
    try:
        payload = response.json()
    except ValueError:
        payload = None

    if isinstance(payload, dict):
        error_payload = payload.get("error")
        if isinstance(error_payload, dict):
            message = error_payload.get("message")
            if isinstance(message, str) and message.strip():
                return " ".join(message.split())[:200]
        description = payload.get("error_description")
        if isinstance(description, str) and description.strip():
            return " ".join(description.split())[:200]
        if isinstance(error_payload, str) and error_payload.strip():
            return " ".join(error_payload.split())[:200]

    raw_text = response.text.strip()
    if raw_text:
        return " ".join(raw_text.split())[:200]
    return "Request failed without an error payload"


# ---------------------------------------------------------------------------
# Provider contract
# ---------------------------------------------------------------------------


class CalendarProvider(abc.ABC):
    """Interface for one external calendar service."""

    @property
    @abc.abstractmethod
    def name(self) -> str:
        """Provider identifier (e.g., ``outlook``)."""
        ...

    @property
    @abc.abstractmethod
    def is_configured(self) -> bool:
        """True when OAuth client credentials are available."""
        ...

    @abc.abstractmethod
    def authorization_url(self, state: str) -> str:
        """Return the consent URL the user visits to connect their calendar."""
        ...

    @abc.abstractmethod
    async def exchange_code(self, code: str) -> TokenGrant:
        """Exchange an authorization code for tokens."""
        ...

    @abc.abstractmethod
    async def get_profile(self, access_token: str) -> ProviderProfile:
        """Return the connected account's identity."""
        ...

    @abc.abstractmethod
    async def refresh_access_token(self, refresh_token: str) -> TokenGrant:
        """Exchange a refresh token for a new access token.

        Raises ``RefreshFailedError`` when the provider rejects the exchange.
        """
        ...

    @abc.abstractmethod
    async def create_event(self, access_token: str, request: EventRequest) -> CreatedEvent:
        """Create one calendar event.

        Raises ``EventCreationError`` when the provider rejects the request.
        """
        ...

    @abc.abstractmethod
    async def shutdown(self) -> None:
        """Release provider resources."""
        ...


class OAuthCalendarProvider(CalendarProvider):
    """Shared httpx plumbing for OAuth 2.0 calendar providers."""

    token_url: str

    def __init__(
        self,
        config: ProviderConfig,
        http_client: httpx.AsyncClient | None = None,
        *,
        timeout_seconds: float = 30.0,
    ) -> None:
        self._config = config
        self._owns_http_client = http_client is None
        self._http_client = http_client or httpx.AsyncClient(timeout=timeout_seconds)

    @property
    def name(self) -> str:
        return self._config.name

    @property
    def is_configured(self) -> bool:
        return self._config.is_configured

    def _require_configured(self) -> None:
        if not self.is_configured:
            raise ProviderNotConfiguredError(
                f"{self.name} calendar is not configured (missing OAuth client id/secret)"
            )

    def _client_params(self) -> dict[str, str]:
        self._require_configured()
        return {
            "client_id": self._config.client_id or "",
            "client_secret": self._config.client_secret or "",
        }

    async def _post_token_form(self, data: dict[str, str], *, action: str) -> dict[str, Any]:
        """POST to the token endpoint and return the decoded JSON payload.

        Transport errors, non-2xx statuses and malformed payloads all raise
        ``ProviderRequestError``.
        """
        try:
            response = await self._http_client.post(
                self.token_url,
                data=data,
                headers={"Accept": "application/json"},
            )
        except httpx.HTTPError as exc:
            raise ProviderRequestError(
                provider=self.name, status_code=None, message=f"{action} request failed: {exc}"
            ) from exc

        if response.status_code < 200 or response.status_code >= 300:
            raise ProviderRequestError(
                provider=self.name,
                status_code=response.status_code,
                message=f"{action} failed: {safe_error_message(response)}",
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise ProviderRequestError(
                provider=self.name,
                status_code=response.status_code,
                message=f"{action} returned invalid JSON",
            ) from exc

        if not isinstance(payload, dict):
            raise ProviderRequestError(
                provider=self.name,
                status_code=response.status_code,
                message=f"{action} returned an unexpected payload shape",
            )
        return payload

    def _grant_from_payload(self, payload: dict[str, Any], *, action: str) -> TokenGrant:
        access_token = payload.get("access_token")
        if not isinstance(access_token, str) or not access_token.strip():
            raise ProviderRequestError(
                provider=self.name,
                status_code=None,
                message=f"{action} response is missing a non-empty access_token",
            )
        refresh_token = payload.get("refresh_token")
        if not isinstance(refresh_token, str) or not refresh_token.strip():
            refresh_token = None
        return TokenGrant(
            access_token=access_token.strip(),
            refresh_token=refresh_token.strip() if refresh_token else None,
            expires_in=coerce_expires_in_seconds(payload.get("expires_in")),
        )

    def _refresh_form(self, refresh_token: str) -> dict[str, str]:
        return {
            **self._client_params(),
            "refresh_token": refresh_token,
            "grant_type": "refresh_token",
        }

    def _code_form(self, code: str) -> dict[str, str]:
        return {
            **self._client_params(),
            "code": code,
            "redirect_uri": self._config.redirect_uri or "",
            "grant_type": "authorization_code",
        }

    async def exchange_code(self, code: str) -> TokenGrant:
        payload = await self._post_token_form(self._code_form(code), action="Code exchange")
        return self._grant_from_payload(payload, action="Code exchange")

    async def refresh_access_token(self, refresh_token: str) -> TokenGrant:
        try:
            payload = await self._post_token_form(
                self._refresh_form(refresh_token), action="Token refresh"
            )
            return self._grant_from_payload(payload, action="Token refresh")
        except ProviderRequestError as exc:
            raise RefreshFailedError(
                f"Failed to refresh {self.name} access token: {exc.message}"
            ) from exc

    async def _request_json(
        self,
        method: str,
        url: str,
        *,
        access_token: str,
        json_body: dict[str, Any] | None = None,
        error_cls: type[ProviderRequestError] = ProviderRequestError,
    ) -> dict[str, Any]:
        """Send an authenticated request and return the JSON object body."""
        headers = {"Authorization": f"Bearer {access_token}", "Accept": "application/json"}
        try:
            response = await self._http_client.request(
                method, url, json=json_body, headers=headers
            )
        except httpx.HTTPError as exc:
            raise error_cls(provider=self.name, status_code=None, message=str(exc)) from exc

        if response.status_code < 200 or response.status_code >= 300:
            raise error_cls(
                provider=self.name,
                status_code=response.status_code,
                message=safe_error_message(response),
            )

        if response.status_code == 204:
            return {}

        try:
            payload = response.json()
        except ValueError as exc:
            raise error_cls(
                provider=self.name,
                status_code=response.status_code,
                message="Provider returned invalid JSON for a successful response",
            ) from exc

        if not isinstance(payload, dict):
            raise error_cls(
                provider=self.name,
                status_code=response.status_code,
                message="Provider returned an unexpected JSON payload shape",
            )
        return payload

    async def shutdown(self) -> None:
        if self._owns_http_client:
            await self._http_client.aclose()
