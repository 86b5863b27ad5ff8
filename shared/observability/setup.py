import os
import logging
import structlog
from fastapi import FastAPI
from prometheus_fastapi_instrumentator import Instrumentator

# OpenTelemetry
from opentelemetry import trace
from opentelemetry.sdk.resources import Resource, SERVICE_NAME, SERVICE_VERSION
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor

LOG_LEVEL = os.getenv("STORE_OPS_LOG_LEVEL", "INFO").upper()


def add_otel_ids(logger, log_method, event_dict):
    """Stamps the active trace/span on each log line so a sync cycle can be followed end to end."""
    span = trace.get_current_span()
    if span.is_recording():
        ctx = span.get_span_context()
        event_dict["trace_id"] = trace.format_trace_id(ctx.trace_id)
        event_dict["span_id"] = trace.format_span_id(ctx.span_id)
    return event_dict


def configure_logging(level: int = None):
    if level is None:
        level = logging.getLevelName(LOG_LEVEL)
        if not isinstance(level, int):
            level = logging.INFO
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            add_otel_ids,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def bind_store_context(store_id: str, manager_id: str = None):
    """Every later log line from this process carries the store (and manager) it serves."""
    structlog.contextvars.bind_contextvars(store_id=str(store_id))
    if manager_id is not None:
        structlog.contextvars.bind_contextvars(manager_id=str(manager_id))


def configure_tracing(app: FastAPI, service_name: str, service_version: str = "1.0.0"):
    provider = TracerProvider(resource=Resource.create({SERVICE_NAME: service_name, SERVICE_VERSION: service_version}))
    trace.set_tracer_provider(provider)

    otlp_endpoint = os.getenv("OTLP_ENDPOINT", "http://localhost:4317")
    provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=otlp_endpoint, insecure=True)))

    # Server spans for push-relay deliveries
    FastAPIInstrumentor.instrument_app(app, excluded_urls="health,metrics")

    # Client spans for every backend call: polls, transitions, scans, token refresh
    HTTPXClientInstrumentor().instrument()


def configure_metrics(app: FastAPI):
    # Webhook latency plus the storeops_* counters, scraped from /metrics
    Instrumentator(excluded_handlers=["/health", "/metrics"]).instrument(app).expose(app, include_in_schema=False)


def setup_observability(app: FastAPI, service_name: str):
    """
    Logging, tracing and metrics for the store-ops agent.
    Called once while the webhook app is built, before the sync engine starts.
    """
    configure_logging()
    configure_tracing(app, service_name)
    configure_metrics(app)
