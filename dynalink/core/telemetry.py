"""OpenTelemetry instrumentation for the dynalink service."""

import logging
from contextlib import suppress
from typing import Optional, Tuple

from opentelemetry import trace, metrics
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter as OTLPGrpcSpanExporter
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter as OTLPHttpSpanExporter
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter as OTLPGrpcMetricExporter
from opentelemetry.exporter.otlp.proto.http.metric_exporter import OTLPMetricExporter as OTLPHttpMetricExporter
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.redis import RedisInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.sdk.trace.sampling import ParentBasedTraceIdRatio

from dynalink.core.config import settings

logger = logging.getLogger(__name__)


def setup_telemetry(app=None, db_engine=None) -> Tuple[Optional[TracerProvider], Optional[MeterProvider]]:
    """Initialize OpenTelemetry providers and instrument the application.

    Args:
        app: FastAPI application to instrument
        db_engine: Async SQLAlchemy engine to instrument

    Returns:
        The tracer and meter providers, or ``(None, None)`` when disabled.
    """
    if not settings.OTEL_ENABLED:
        logger.info("OpenTelemetry instrumentation is disabled")
        return None, None

    try:
        resource = Resource.create({
            "service.name": settings.OTEL_SERVICE_NAME,
            "service.version": settings.APP_VERSION,
            "deployment.environment": settings.ENVIRONMENT.value,
        })

        tracer_provider = _setup_tracing(resource)
        meter_provider = _setup_metrics(resource)
    except Exception as e:
        logger.error(f"Failed to initialize OpenTelemetry: {e}")
        return None, None

    instrument_app(app, db_engine)
    return tracer_provider, meter_provider


def instrument_app(app=None, db_engine=None) -> None:
    """Instrument FastAPI, SQLAlchemy and Redis."""
    if app is not None:
        with suppress(Exception):
            FastAPIInstrumentor.instrument_app(app, excluded_urls="health")
            logger.info("FastAPI instrumentation enabled")

    if db_engine is not None:
        with suppress(Exception):
            SQLAlchemyInstrumentor().instrument(
                engine=db_engine.sync_engine,
                tracer_provider=trace.get_tracer_provider(),
                meter_provider=metrics.get_meter_provider(),
            )
            logger.info("SQLAlchemy instrumentation enabled")

    with suppress(Exception):
        RedisInstrumentor().instrument(tracer_provider=trace.get_tracer_provider())
        logger.info("Redis instrumentation enabled")


def _is_grpc() -> bool:
    return settings.OTEL_EXPORTER_OTLP_PROTOCOL.lower() == "grpc"


def _setup_tracing(resource: Resource) -> TracerProvider:
    """Set up tracing with the provided resource."""
    tracer_provider = TracerProvider(
        resource=resource,
        sampler=ParentBasedTraceIdRatio(float(settings.OTEL_TRACES_SAMPLER_ARG)),
    )
    trace.set_tracer_provider(tracer_provider)

    if _is_grpc():
        otlp_exporter = OTLPGrpcSpanExporter(
            endpoint=settings.OTEL_EXPORTER_OTLP_ENDPOINT,
            insecure=True
        )
    else:
        otlp_exporter = OTLPHttpSpanExporter(
            endpoint=f"{settings.OTEL_EXPORTER_OTLP_ENDPOINT.rstrip('/')}/v1/traces"
        )

    tracer_provider.add_span_processor(BatchSpanProcessor(otlp_exporter))
    logger.info(f"OpenTelemetry tracer configured with {settings.OTEL_EXPORTER_OTLP_PROTOCOL} exporter")

    return tracer_provider


def _setup_metrics(resource: Resource) -> MeterProvider:
    """Set up metrics with the provided resource."""
    if _is_grpc():
        metric_exporter = OTLPGrpcMetricExporter(
            endpoint=settings.OTEL_EXPORTER_OTLP_ENDPOINT,
            insecure=True
        )
    else:
        metric_exporter = OTLPHttpMetricExporter(
            endpoint=f"{settings.OTEL_EXPORTER_OTLP_ENDPOINT.rstrip('/')}/v1/metrics"
        )

    reader = PeriodicExportingMetricReader(
        metric_exporter,
        export_interval_millis=settings.OTEL_METRICS_EXPORT_INTERVAL_MILLIS
    )

    meter_provider = MeterProvider(resource=resource, metric_readers=[reader])
    metrics.set_meter_provider(meter_provider)
    logger.info(f"OpenTelemetry metrics configured with {settings.OTEL_EXPORTER_OTLP_PROTOCOL} exporter")

    return meter_provider


def get_meter(name: str = None) -> metrics.Meter:
    """Get a meter for creating metrics."""
    name = name or settings.OTEL_SERVICE_NAME
    return metrics.get_meter(name)
