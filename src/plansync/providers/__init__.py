"""Calendar provider implementations and registry."""

from __future__ import annotations

import httpx

from plansync.config import PlanSyncConfig, ProviderConfig
from plansync.errors import UnknownProviderError
from plansync.providers.base import (
    CalendarProvider,
    CreatedEvent,
    EventRequest,
    OAuthCalendarProvider,
    ProviderProfile,
    TokenGrant,
)
from plansync.providers.google import GoogleCalendarProvider
from plansync.providers.microsoft import MicrosoftGraphProvider

_PROVIDER_CLASSES: dict[str, type[OAuthCalendarProvider]] = {
    "outlook": MicrosoftGraphProvider,
    "google": GoogleCalendarProvider,
}


def build_provider(
    config: ProviderConfig,
    http_client: httpx.AsyncClient | None = None,
    *,
    timeout_seconds: float = 30.0,
) -> CalendarProvider:
    """Instantiate the provider class registered for ``config.name``."""
    provider_cls = _PROVIDER_CLASSES.get(config.name)
    if provider_cls is None:
        raise UnknownProviderError(config.name)
    return provider_cls(config, http_client, timeout_seconds=timeout_seconds)


def build_providers(
    config: PlanSyncConfig,
    http_client: httpx.AsyncClient | None = None,
) -> dict[str, CalendarProvider]:
    """Build every known provider from the service configuration.

    Unconfigured providers are still registered so callers get a
    ``ProviderNotConfiguredError`` rather than an unknown-provider error.
    """
    return {
        name: build_provider(
            provider_config,
            http_client,
            timeout_seconds=config.sync.http_timeout_seconds,
        )
        for name, provider_config in config.providers.items()
    }


__all__ = [
    "CalendarProvider",
    "CreatedEvent",
    "EventRequest",
    "GoogleCalendarProvider",
    "MicrosoftGraphProvider",
    "ProviderProfile",
    "TokenGrant",
    "build_provider",
    "build_providers",
]
