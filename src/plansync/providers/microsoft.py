"""Microsoft Graph (Outlook) calendar provider."""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import urlencode

import httpx

from plansync.config import ProviderConfig
from plansync.errors import EventCreationError, ProviderRequestError
from plansync.providers.base import (
    CreatedEvent,
    EventRequest,
    OAuthCalendarProvider,
    ProviderProfile,
    TokenGrant,
    format_utc,
)

logger = logging.getLogger(__name__)

GRAPH_API_BASE_URL = "https://graph.microsoft.com/v1.0"
MICROSOFT_LOGIN_BASE_URL = "https://login.microsoftonline.com"


def build_graph_event_body(request: EventRequest) -> dict[str, Any]:
    """Translate an ``EventRequest`` into a Graph ``event`` resource."""
    return {
        "subject": request.title,
        "body": {"contentType": "HTML", "content": request.description},
        "start": {"dateTime": format_utc(request.start_at), "timeZone": "UTC"},
        "end": {"dateTime": format_utc(request.end_at), "timeZone": "UTC"},
    }


class MicrosoftGraphProvider(OAuthCalendarProvider):
    """Outlook calendar via Microsoft Graph ``/me/calendar/events``."""

    def __init__(
        self,
        config: ProviderConfig,
        http_client: httpx.AsyncClient | None = None,
        *,
        timeout_seconds: float = 30.0,
    ) -> None:
        super().__init__(config, http_client, timeout_seconds=timeout_seconds)
        self.token_url = f"{MICROSOFT_LOGIN_BASE_URL}/{config.tenant}/oauth2/v2.0/token"

    @property
    def _scope(self) -> str:
        return " ".join(self._config.scopes)

    def authorization_url(self, state: str) -> str:
        self._require_configured()
        params = {
            "client_id": self._config.client_id,
            "response_type": "code",
            "redirect_uri": self._config.redirect_uri or "",
            "response_mode": "query",
            "scope": self._scope,
            "state": state,
        }
        return (
            f"{MICROSOFT_LOGIN_BASE_URL}/{self._config.tenant}/oauth2/v2.0/authorize?"
            f"{urlencode(params)}"
        )

    def _code_form(self, code: str) -> dict[str, str]:
        return {**super()._code_form(code), "scope": self._scope}

    def _refresh_form(self, refresh_token: str) -> dict[str, str]:
        return {**super()._refresh_form(refresh_token), "scope": self._scope}

    async def get_profile(self, access_token: str) -> ProviderProfile:
        payload = await self._request_json(
            "GET", f"{GRAPH_API_BASE_URL}/me", access_token=access_token
        )
        account_id = payload.get("id")
        if not isinstance(account_id, str) or not account_id:
            raise ProviderRequestError(
                provider=self.name, status_code=200, message="Profile response is missing an id"
            )
        return ProviderProfile(
            account_id=account_id,
            email=payload.get("userPrincipalName") or payload.get("mail"),
            display_name=payload.get("displayName"),
        )

    async def refresh_access_token(self, refresh_token: str) -> TokenGrant:
        grant = await super().refresh_access_token(refresh_token)
        logger.debug("Refreshed Outlook access token (expires_in=%d)", grant.expires_in)
        return grant

    async def create_event(self, access_token: str, request: EventRequest) -> CreatedEvent:
        payload = await self._request_json(
            "POST",
            f"{GRAPH_API_BASE_URL}/me/calendar/events",
            access_token=access_token,
            json_body=build_graph_event_body(request),
            error_cls=EventCreationError,
        )
        event_id = payload.get("id")
        if not isinstance(event_id, str) or not event_id:
            raise EventCreationError(
                provider=self.name,
                status_code=200,
                message="Graph returned a created event without an id",
            )
        return CreatedEvent(event_id=event_id, web_link=payload.get("webLink"))
