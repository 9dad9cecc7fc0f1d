"""Service wiring and FastAPI dependencies.

``init_dependencies()`` builds the object graph once at startup (database
pool, record stores, calendar providers, planning collaborator, services) and
``shutdown_dependencies()`` tears it down.  Route handlers receive services
through the ``get_*`` dependency functions; tests replace them with
``app.dependency_overrides``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta

import httpx
from fastapi import Header, HTTPException

from plansync.config import PlanSyncConfig
from plansync.connections import CalendarConnectionService
from plansync.core.logging import set_user_context
from plansync.db import Database
from plansync.planning import GeminiPlanGenerator, PlanGeneratorAdapter
from plansync.providers import CalendarProvider, build_providers
from plansync.service import PlannerService
from plansync.stores import (
    PostgresCredentialRepository,
    PostgresPreferenceStore,
    PostgresTaskStore,
)
from plansync.sync import CalendarSyncOrchestrator
from plansync.tokens import TokenManager

logger = logging.getLogger(__name__)


@dataclass
class _Resources:
    database: Database
    http_client: httpx.AsyncClient
    providers: dict[str, CalendarProvider]
    generator: GeminiPlanGenerator
    planner_service: PlannerService
    connection_service: CalendarConnectionService


_resources: _Resources | None = None


async def init_dependencies(config: PlanSyncConfig) -> None:
    """Build the service graph from *config*.  Safe to call once per process."""
    global _resources  # noqa: PLW0603

    if _resources is not None:
        return

    database = Database(config.database)
    pool = await database.connect()
    repository = PostgresCredentialRepository(pool)

    http_client = httpx.AsyncClient(timeout=config.sync.http_timeout_seconds)
    providers = build_providers(config, http_client)
    for name, provider in providers.items():
        if not provider.is_configured:
            logger.warning("Calendar provider %s has no OAuth client configured", name)

    generator = GeminiPlanGenerator(
        config.planning.api_key,
        model=config.planning.model,
        timeout_seconds=config.planning.timeout_seconds,
    )
    token_manager = TokenManager(
        repository,
        providers,
        refresh_margin=timedelta(seconds=config.sync.refresh_margin_seconds),
    )
    planner_service = PlannerService(
        task_store=PostgresTaskStore(pool),
        preference_store=PostgresPreferenceStore(pool),
        credential_repository=repository,
        planner=PlanGeneratorAdapter(
            generator, weekly_span_days=config.planning.weekly_span_days
        ),
        orchestrator=CalendarSyncOrchestrator(token_manager, providers, repository),
        providers=providers.keys(),
        default_provider=config.sync.default_provider,
    )
    connection_service = CalendarConnectionService(repository, providers)

    _resources = _Resources(
        database=database,
        http_client=http_client,
        providers=providers,
        generator=generator,
        planner_service=planner_service,
        connection_service=connection_service,
    )
    logger.info(
        "Dependencies initialized: providers=%s default=%s model=%s",
        ",".join(sorted(providers)),
        config.sync.default_provider,
        config.planning.model,
    )


async def shutdown_dependencies() -> None:
    """Close provider clients, the planning client and the database pool."""
    global _resources  # noqa: PLW0603

    if _resources is None:
        return
    resources, _resources = _resources, None

    for provider in resources.providers.values():
        await provider.shutdown()
    await resources.generator.shutdown()
    await resources.http_client.aclose()
    await resources.database.close()


def get_planner_service() -> PlannerService:
    """FastAPI dependency: the process-wide ``PlannerService``."""
    if _resources is None:
        raise RuntimeError("PlannerService not initialized; call init_dependencies() first")
    return _resources.planner_service


def get_connection_service() -> CalendarConnectionService:
    """FastAPI dependency: the process-wide ``CalendarConnectionService``."""
    if _resources is None:
        raise RuntimeError(
            "CalendarConnectionService not initialized; call init_dependencies() first"
        )
    return _resources.connection_service


async def get_user_id(x_user_id: str | None = Header(default=None, alias="X-User-Id")) -> str:
    """FastAPI dependency: the authenticated caller's id from ``X-User-Id``.

    Authentication happens upstream; this service trusts the header.
    """
    user_id = (x_user_id or "").strip()
    if not user_id:
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    set_user_context(user_id)
    return user_id
