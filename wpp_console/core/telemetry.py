"""OpenTelemetry tracing for the console: request, backend and stream spans."""

import logging
from typing import TYPE_CHECKING

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
from opentelemetry.instrumentation.redis import RedisInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from wpp_console.config import settings

if TYPE_CHECKING:
    from fastapi import FastAPI

logger = logging.getLogger(__name__)

_provider: TracerProvider | None = None


def setup_telemetry(app: "FastAPI") -> bool:
    """Export traces over OTLP and trace incoming API requests.

    Returns:
        True if tracing was enabled
    """
    global _provider

    if not settings.OTEL_EXPORTER_OTLP_ENDPOINT:
        logger.info("Telemetry disabled: OTEL_EXPORTER_OTLP_ENDPOINT not configured")
        return False

    try:
        provider = TracerProvider(
            resource=Resource.create(
                {
                    "service.name": settings.OTEL_SERVICE_NAME,
                    "service.version": "1.0.0",
                    "deployment.environment": "development" if settings.DEBUG else "production",
                }
            )
        )
        provider.add_span_processor(
            BatchSpanProcessor(OTLPSpanExporter(endpoint=settings.OTEL_EXPORTER_OTLP_ENDPOINT, insecure=True))
        )
        trace.set_tracer_provider(provider)

        FastAPIInstrumentor.instrument_app(app, tracer_provider=provider, excluded_urls="health,api/docs,api/openapi.json")
    except Exception as e:
        logger.warning(f"Failed to setup telemetry: {e}")
        return False

    _provider = provider
    logger.info(f"Telemetry enabled: exporting to {settings.OTEL_EXPORTER_OTLP_ENDPOINT}")
    return True


def instrument_clients() -> None:
    """Trace calls to the console backend, and to Redis when the journal is on."""
    HTTPXClientInstrumentor().instrument()
    if settings.EVENT_JOURNAL_ENABLED:
        RedisInstrumentor().instrument()
    logger.info("Outbound client instrumentation enabled")


def setup_all_instrumentation(app: "FastAPI") -> None:
    """Enable tracing and client instrumentation when an exporter is configured."""
    if setup_telemetry(app):
        instrument_clients()


def shutdown_telemetry() -> None:
    """Flush pending spans before the process exits."""
    global _provider

    if _provider is None:
        return
    _provider.shutdown()
    _provider = None


def get_tracer(name: str) -> trace.Tracer:
    """Get a tracer for manual spans.

    Returns a no-op tracer until telemetry is set up, so spans can be opened
    unconditionally:

        with get_tracer(__name__).start_as_current_span("ownership.takeover") as span:
            span.set_attribute("chat.id", chat_id)
    """
    return trace.get_tracer(name)
