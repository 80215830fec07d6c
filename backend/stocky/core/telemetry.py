"""OpenTelemetry wiring for the API and its upstream provider calls."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from fastapi import FastAPI
from opentelemetry import metrics, trace
from opentelemetry._logs import set_logger_provider
from opentelemetry.exporter.otlp.proto.grpc._log_exporter import OTLPLogExporter
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
from opentelemetry.instrumentation.logging import LoggingInstrumentor
from opentelemetry.sdk._logs import LoggerProvider
from opentelemetry.sdk._logs.export import BatchLogRecordProcessor
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.sdk.trace.sampling import ParentBased, TraceIdRatioBased
from opentelemetry.semconv.resource import ResourceAttributes

from stocky import __version__
from stocky.config import AppSettings

logger = logging.getLogger(__name__)

# Readiness probes are not traced
EXCLUDED_URLS = "/health"
METRIC_EXPORT_INTERVAL_MS = 15_000

_initialised = False


@dataclass(frozen=True)
class TelemetryProviders:
    tracer_provider: TracerProvider
    meter_provider: MeterProvider
    logger_provider: LoggerProvider


def service_resource(settings: AppSettings) -> Resource:
    """Resource attributes shared by every exported signal."""

    return Resource.create(
        {
            ResourceAttributes.SERVICE_NAME: settings.telemetry_service_name or settings.app_name,
            ResourceAttributes.SERVICE_NAMESPACE: "stocky",
            ResourceAttributes.SERVICE_VERSION: __version__,
            ResourceAttributes.DEPLOYMENT_ENVIRONMENT: settings.environment,
        }
    )


def exporter_options(settings: AppSettings) -> dict[str, Any]:
    options: dict[str, Any] = {"insecure": settings.telemetry_otlp_insecure}
    if settings.telemetry_otlp_endpoint:
        options["endpoint"] = settings.telemetry_otlp_endpoint
    return options


def build_providers(settings: AppSettings) -> TelemetryProviders:
    resource = service_resource(settings)
    options = exporter_options(settings)

    tracer_provider = TracerProvider(
        resource=resource,
        sampler=ParentBased(TraceIdRatioBased(settings.telemetry_sample_ratio)),
    )
    tracer_provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(**options)))

    reader = PeriodicExportingMetricReader(
        OTLPMetricExporter(**options),
        export_interval_millis=METRIC_EXPORT_INTERVAL_MS,
    )
    meter_provider = MeterProvider(resource=resource, metric_readers=[reader])

    logger_provider = LoggerProvider(resource=resource)
    logger_provider.add_log_record_processor(BatchLogRecordProcessor(OTLPLogExporter(**options)))

    return TelemetryProviders(tracer_provider, meter_provider, logger_provider)


def setup_telemetry(app: FastAPI, settings: AppSettings) -> bool:
    """Export traces, metrics and logs over OTLP when enabled.

    Instruments inbound FastAPI requests and outbound httpx calls so upstream
    latency shows up under the request that caused it. Only the first enabled
    call per process takes effect. Returns whether telemetry is active.
    """

    global _initialised  # noqa: PLW0603 - process-wide providers

    if _initialised:
        return True
    if not settings.telemetry_enabled:
        logger.info("Telemetry disabled via configuration")
        return False

    providers = build_providers(settings)
    trace.set_tracer_provider(providers.tracer_provider)
    metrics.set_meter_provider(providers.meter_provider)
    set_logger_provider(providers.logger_provider)

    FastAPIInstrumentor.instrument_app(
        app,
        tracer_provider=providers.tracer_provider,
        meter_provider=providers.meter_provider,
        excluded_urls=EXCLUDED_URLS,
    )
    HTTPXClientInstrumentor().instrument(tracer_provider=providers.tracer_provider)
    LoggingInstrumentor().instrument(set_logging_format=False)

    _initialised = True
    logger.info("Telemetry exporting to %s", settings.telemetry_otlp_endpoint or "the default OTLP endpoint")
    return True


__all__ = ["TelemetryProviders", "build_providers", "exporter_options", "service_resource", "setup_telemetry"]
