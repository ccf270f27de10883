"""OpenTelemetry instruments for pipeline outcomes, latency and sink failures."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from opentelemetry import metrics
from opentelemetry.metrics import Counter, Histogram
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import ConsoleMetricExporter, MetricReader, PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource

from rca_service.core.config import Settings, settings

_logger = logging.getLogger(__name__)

SERVICE_NAME = "rca-service"


@dataclass
class _Instruments:
    provider: MeterProvider
    pipeline_runs: Counter
    pipeline_duration: Histogram
    distribution_failures: Counter


_instruments: _Instruments | None = None


def _build_reader(config: Settings) -> MetricReader:
    exporter = config.otel_exporter.lower().strip()
    if exporter == "prometheus":
        try:
            from opentelemetry.exporter.prometheus import PrometheusMetricReader  # type: ignore
        except ImportError as exc:  # pragma: no cover - optional dependency
            raise RuntimeError("otel_exporter=prometheus requires the 'prometheus' extra") from exc
        return PrometheusMetricReader()
    if exporter == "otlp":
        try:
            from opentelemetry.exporter.otlp.proto.http.metric_exporter import OTLPMetricExporter  # type: ignore
        except ImportError as exc:  # pragma: no cover - optional dependency
            raise RuntimeError("otel_exporter=otlp requires the 'otlp' extra") from exc
        options = {"endpoint": config.otel_otlp_endpoint} if config.otel_otlp_endpoint else {}
        return PeriodicExportingMetricReader(OTLPMetricExporter(**options))
    if exporter != "console":
        _logger.warning("Unknown otel_exporter %r; exporting metrics to the console", exporter)
    return PeriodicExportingMetricReader(ConsoleMetricExporter())


def configure_metrics(config: Settings | None = None) -> None:
    """Install the meter provider once, when ``otel_enabled`` is set."""

    global _instruments

    config = config or settings
    if not config.otel_enabled or _instruments is not None:
        return

    provider = MeterProvider(
        metric_readers=[_build_reader(config)],
        resource=Resource.create({"service.name": SERVICE_NAME}),
    )
    metrics.set_meter_provider(provider)
    meter = metrics.get_meter("rca_service")
    _instruments = _Instruments(
        provider=provider,
        pipeline_runs=meter.create_counter(
            "rca.pipeline.runs", unit="1", description="Pipeline runs by terminal outcome"
        ),
        pipeline_duration=meter.create_histogram(
            "rca.pipeline.duration", unit="s", description="Detached pipeline execution time"
        ),
        distribution_failures=meter.create_counter(
            "rca.distribution.failures", unit="1", description="Failed report deliveries per sink"
        ),
    )


def record_pipeline_outcome(outcome: str) -> None:
    if _instruments is not None:
        _instruments.pipeline_runs.add(1, {"outcome": outcome})


def record_pipeline_duration(seconds: float) -> None:
    if _instruments is not None:
        _instruments.pipeline_duration.record(max(seconds, 0.0))


def increment_distribution_failure(sink: str) -> None:
    if _instruments is not None:
        _instruments.distribution_failures.add(1, {"sink": sink})


def collect_prometheus_metrics() -> tuple[bytes, str]:
    try:
        from prometheus_client import CONTENT_TYPE_LATEST, generate_latest  # type: ignore
    except ImportError as exc:  # pragma: no cover - optional dependency
        raise RuntimeError("The /metrics endpoint requires the 'prometheus' extra") from exc
    return generate_latest(), CONTENT_TYPE_LATEST


def shutdown_metrics() -> None:
    global _instruments
    if _instruments is None:
        return
    instruments, _instruments = _instruments, None
    try:
        instruments.provider.shutdown()
    except Exception:  # pragma: no cover
        _logger.exception("Failed to shut down the meter provider")
