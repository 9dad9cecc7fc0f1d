"""Google Calendar provider."""

from __future__ import annotations

from typing import Any
from urllib.parse import urlencode

from plansync.errors import EventCreationError, ProviderRequestError
from plansync.providers.base import (
    CreatedEvent,
    EventRequest,
    OAuthCalendarProvider,
    ProviderProfile,
    format_utc,
)

GOOGLE_OAUTH_AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_OAUTH_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_CALENDAR_API_BASE_URL = "https://www.googleapis.com/calendar/v3"
GOOGLE_USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"
GOOGLE_PRIMARY_CALENDAR_ID = "primary"


def build_google_event_body(request: EventRequest) -> dict[str, Any]:
    """Translate an ``EventRequest`` into a Google Calendar ``events.insert`` body."""
    return {
        "summary": request.title,
        "description": request.description,
        "start": {"dateTime": format_utc(request.start_at), "timeZone": "UTC"},
        "end": {"dateTime": format_utc(request.end_at), "timeZone": "UTC"},
    }


class GoogleCalendarProvider(OAuthCalendarProvider):
    """Google Calendar via the v3 REST API on the user's primary calendar.

    Google does not rotate refresh tokens on refresh, so grants returned by
    ``refresh_access_token`` usually carry ``refresh_token=None``.
    """

    token_url = GOOGLE_OAUTH_TOKEN_URL

    def authorization_url(self, state: str) -> str:
        self._require_configured()
        params = {
            "client_id": self._config.client_id,
            "redirect_uri": self._config.redirect_uri or "",
            "response_type": "code",
            "scope": " ".join(self._config.scopes),
            "access_type": "offline",
            # Force consent so Google issues a refresh token on every connect.
            "prompt": "consent",
            "state": state,
        }
        return f"{GOOGLE_OAUTH_AUTHORIZE_URL}?{urlencode(params)}"

    async def get_profile(self, access_token: str) -> ProviderProfile:
        payload = await self._request_json("GET", GOOGLE_USERINFO_URL, access_token=access_token)
        account_id = payload.get("id")
        if account_id is None or account_id == "":
            raise ProviderRequestError(
                provider=self.name, status_code=200, message="Profile response is missing an id"
            )
        return ProviderProfile(
            account_id=str(account_id),
            email=payload.get("email"),
            display_name=payload.get("name"),
        )

    async def create_event(self, access_token: str, request: EventRequest) -> CreatedEvent:
        payload = await self._request_json(
            "POST",
            f"{GOOGLE_CALENDAR_API_BASE_URL}/calendars/{GOOGLE_PRIMARY_CALENDAR_ID}/events",
            access_token=access_token,
            json_body=build_google_event_body(request),
            error_cls=EventCreationError,
        )
        event_id = payload.get("id")
        if not isinstance(event_id, str) or not event_id:
            raise EventCreationError(
                provider=self.name,
                status_code=200,
                message="Google Calendar returned a created event without an id",
            )
        return CreatedEvent(event_id=event_id, web_link=payload.get("htmlLink"))
