"""Exception hierarchy for plan generation and calendar sync.

Two families:

- Request-level errors (``NoWorkItemsError``, ``PlanningUnavailableError``,
  ``UnknownProviderError``, ``OAuthStateError``) fail the whole request and are
  mapped to HTTP error envelopes by ``plansync.api.middleware``.
- ``CalendarError`` and its subclasses are local to synchronization.  The sync
  orchestrator catches them and reports a summarized string in the response;
  they never fail a request whose plan was generated.
"""

from __future__ import annotations

import re

ERROR_MESSAGE_LIMIT = 200

_SECRET_KEYS = r"client_secret|refresh_token|access_token|id_token"


class PlanSyncError(Exception):
    """Base class for all plansync errors."""


class NoWorkItemsError(PlanSyncError):
    """Raised when a user has no pending work items to plan."""

    def __init__(self, message: str = "No pending tasks found. Create some tasks first!") -> None:
        super().__init__(message)


class PlanningUnavailableError(PlanSyncError):
    """Raised when the planning collaborator fails or returns an unusable plan."""


class UnknownProviderError(PlanSyncError):
    """Raised when a request names a calendar provider that does not exist."""

    def __init__(self, provider: str) -> None:
        self.provider = provider
        super().__init__(f"Unknown calendar provider: {provider}")


class OAuthStateError(PlanSyncError):
    """Raised when an OAuth ``state`` value is missing, unknown, or expired."""


# ---------------------------------------------------------------------------
# Sync-local errors
# ---------------------------------------------------------------------------


class CalendarError(PlanSyncError):
    """Base error for calendar provider and credential failures."""


class NotConnectedError(CalendarError):
    """Raised when the user has no connected calendar for the provider."""


class RefreshUnavailableError(CalendarError):
    """Raised when a refresh is required but no refresh token is stored."""


class RefreshFailedError(CalendarError):
    """Raised when the provider rejects or fails a refresh-token exchange."""


class CredentialPersistError(CalendarError):
    """Raised when refreshed tokens could not be written back to the store."""


class ProviderNotConfiguredError(CalendarError):
    """Raised when a provider is known but has no OAuth client configuration."""


class ProviderRequestError(CalendarError):
    """Raised when a calendar provider API request fails."""

    def __init__(self, *, provider: str, status_code: int | None, message: str) -> None:
        self.provider = provider
        self.status_code = status_code
        self.message = message
        if status_code is None:
            super().__init__(f"{provider} request failed: {message}")
        else:
            super().__init__(f"{provider} request failed ({status_code}): {message}")


class EventCreationError(ProviderRequestError):
    """Raised when the provider fails to create a calendar event."""


# ---------------------------------------------------------------------------
# Message sanitizing
# ---------------------------------------------------------------------------


def redact_secrets(message: str) -> str:
    """Redact token-like values from an error message.

    Covers ``key=value``, ``key: value`` and quoted JSON/dict styles, plus
    bare ``Bearer`` credentials.
    """
    redacted = re.sub(r"(?i)\b(bearer)\s+[A-Za-z0-9._~+/=-]+", r"\1 [REDACTED]", message)
    redacted = re.sub(
        rf"""(?i)(['"]?(?:{_SECRET_KEYS})['"]?\s*:\s*)(['"]).*?\2""",
        r'\1"[REDACTED]"',
        redacted,
    )
    redacted = re.sub(
        rf"(?i)\b({_SECRET_KEYS})\s*=\s*([^\s,;&]+)",
        r"\1=[REDACTED]",
        redacted,
    )
    redacted = re.sub(
        rf"(?i)\b({_SECRET_KEYS})\s*:\s*(?!\"\[REDACTED\])([^\s,;]+)",
        r"\1: [REDACTED]",
        redacted,
    )
    return redacted


def summarize_error(exc: BaseException, *, limit: int = ERROR_MESSAGE_LIMIT) -> str:
    """Return a short, single-line, secret-free description of *exc*."""
    raw = str(exc) or type(exc).__name__
    return " ".join(redact_secrets(raw).split())[:limit]
