"""
Distributed Tracing with OpenTelemetry.

Spans for the two exactly-once workflows (redeem, scan) carry a
`ticketing.outcome` attribute: "success" or the rejecting exception's class
name, so rejected redemptions can be filtered in the trace backend.
"""

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.trace import Span, Status, StatusCode

from app.config import settings
from app.exceptions import TicketingError

ATTRIBUTE_PREFIX = "ticketing."
TRACER_NAME = "app.services"

# Paths the FastAPI instrumentation ignores
EXCLUDED_URLS = "health,metrics,v1/status"


def setup_tracing() -> None:
    """Install a TracerProvider exporting to the OTLP collector."""
    if not settings.tracing_enabled:
        return

    resource = Resource.create(
        {
            "service.name": settings.service_name,
            "service.version": settings.api_version,
        }
    )
    provider = TracerProvider(resource=resource)
    provider.add_span_processor(
        BatchSpanProcessor(
            OTLPSpanExporter(endpoint=settings.otlp_endpoint, insecure=settings.otlp_insecure)
        )
    )
    trace.set_tracer_provider(provider)


def instrument_fastapi(app: Any) -> None:
    if not settings.tracing_enabled:
        return

    FastAPIInstrumentor.instrument_app(app, excluded_urls=EXCLUDED_URLS)


def instrument_sqlalchemy(engine: Any) -> None:
    """Trace queries of an async engine (instrumented through its sync core)."""
    if not settings.tracing_enabled:
        return

    SQLAlchemyInstrumentor().instrument(engine=engine.sync_engine)


def span_attributes(**attributes: Any) -> dict[str, str | int | float | bool]:
    """Prefix attribute names and drop empty values; non-primitive values become strings."""
    result: dict[str, str | int | float | bool] = {}
    for key, value in attributes.items():
        if value is None:
            continue
        if not isinstance(value, (str, int, float, bool)):
            value = str(value)
        result[f"{ATTRIBUTE_PREFIX}{key}"] = value
    return result


@contextmanager
def trace_operation(operation_name: str, **attributes: Any) -> Iterator[Span]:
    """
    Run a workflow step inside its own span.

    Usage:
        with trace_operation("ticket_scan", ticket_id=ticket_id) as span:
            ...

    Domain rejections (TicketingError) are recorded as the span's outcome.
    Anything else also marks the span as failed.
    """
    tracer = trace.get_tracer(TRACER_NAME)
    with tracer.start_as_current_span(
        operation_name,
        attributes=span_attributes(**attributes),
        record_exception=False,
        set_status_on_exception=False,
    ) as span:
        try:
            yield span
        except TicketingError as exc:
            span.set_attribute(f"{ATTRIBUTE_PREFIX}outcome", type(exc).__name__)
            raise
        except Exception as exc:
            span.set_attribute(f"{ATTRIBUTE_PREFIX}outcome", type(exc).__name__)
            span.set_status(Status(StatusCode.ERROR, str(exc)))
            span.record_exception(exc)
            raise
        span.set_attribute(f"{ATTRIBUTE_PREFIX}outcome", "success")
