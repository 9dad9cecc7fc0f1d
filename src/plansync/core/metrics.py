"""OpenTelemetry metrics instruments for planning and calendar sync.

Instruments are created lazily from the global MeterProvider, so callers do
not need to pass a Meter instance around.  Without
OTEL_EXPORTER_OTLP_ENDPOINT every recording is a silent no-op.

Instruments
-----------
  plansync.planning.duration_ms        Histogram (label: kind=daily|weekly)
      Wall time of one planning collaborator call.

  plansync.planning.failures_total     Counter (label: kind)
      Planning calls that failed or returned an unusable plan.

  plansync.sync.events_created_total   Counter (label: provider)
      Remote calendar events created from plan blocks.

  plansync.sync.outcomes_total         Counter (labels: provider, state)
      Finished sync runs by terminal state.

  plansync.token.refresh_total         Counter (labels: provider, result=ok|failed)
      Access-token refresh attempts.
"""

from __future__ import annotations

import logging
import os

from opentelemetry import metrics

logger = logging.getLogger(__name__)

_METER_NAME = "plansync"


def init_metrics(service_name: str = "plansync") -> metrics.Meter:
    """Initialize OpenTelemetry metrics for the process.

    When OTEL_EXPORTER_OTLP_ENDPOINT is set, configures a MeterProvider with a
    periodic OTLP gRPC exporter.  Otherwise the no-op provider is used.
    """
    endpoint = os.environ.get("OTEL_EXPORTER_OTLP_ENDPOINT")

    if not endpoint:
        logger.info("OTEL_EXPORTER_OTLP_ENDPOINT not set, using no-op meter")
        return metrics.get_meter(_METER_NAME)

    from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
    from opentelemetry.sdk.metrics import MeterProvider
    from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
    from opentelemetry.sdk.resources import Resource

    resource = Resource.create({"service.name": service_name})
    reader = PeriodicExportingMetricReader(
        OTLPMetricExporter(endpoint=endpoint), export_interval_millis=15_000
    )
    metrics.set_meter_provider(MeterProvider(resource=resource, metric_readers=[reader]))
    logger.info("Metrics initialized: service=%s, endpoint=%s", service_name, endpoint)

    return metrics.get_meter(_METER_NAME)


def get_meter() -> metrics.Meter:
    """Return a Meter from the current global provider (no-op before init)."""
    return metrics.get_meter(_METER_NAME)


# ---------------------------------------------------------------------------
# Instruments
# ---------------------------------------------------------------------------


def _planning_duration_ms() -> metrics.Histogram:
    return get_meter().create_histogram(
        name="plansync.planning.duration_ms",
        description="Planning collaborator call duration in milliseconds",
        unit="ms",
    )


def _planning_failures_total() -> metrics.Counter:
    return get_meter().create_counter(
        name="plansync.planning.failures_total",
        description="Planning calls that failed or returned an unusable plan",
        unit="calls",
    )


def _sync_events_created_total() -> metrics.Counter:
    return get_meter().create_counter(
        name="plansync.sync.events_created_total",
        description="Calendar events created from plan blocks",
        unit="events",
    )


def _sync_outcomes_total() -> metrics.Counter:
    return get_meter().create_counter(
        name="plansync.sync.outcomes_total",
        description="Finished calendar sync runs by terminal state",
        unit="runs",
    )


def _token_refresh_total() -> metrics.Counter:
    return get_meter().create_counter(
        name="plansync.token.refresh_total",
        description="Calendar access-token refresh attempts",
        unit="refreshes",
    )


# ---------------------------------------------------------------------------
# Recording helpers
# ---------------------------------------------------------------------------


def record_planning_duration(kind: str, duration_ms: float) -> None:
    _planning_duration_ms().record(duration_ms, {"kind": kind})


def record_planning_failure(kind: str) -> None:
    _planning_failures_total().add(1, {"kind": kind})


def record_event_created(provider: str) -> None:
    _sync_events_created_total().add(1, {"provider": provider})


def record_sync_outcome(provider: str, state: str) -> None:
    _sync_outcomes_total().add(1, {"provider": provider, "state": state})


def record_token_refresh(provider: str, *, ok: bool) -> None:
    _token_refresh_total().add(1, {"provider": provider, "result": "ok" if ok else "failed"})
