"""Spans for push fan-out and retry processing, exported over OTLP HTTP."""

from contextlib import contextmanager
from typing import Iterator

from fastapi import FastAPI
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from promopush.common.config import CommonSettings
from promopush.common.logging import retry_id_ctx, trace_id_ctx, user_id_ctx


tracer = trace.get_tracer("promopush")


def setup_tracing(config: CommonSettings) -> None:
    """Install an OTLP exporter for `config.service_name`.

    With tracing disabled (local runs, tests) the no-op global provider stays.
    """

    if not config.tracing_enabled:
        return
    provider = TracerProvider(resource=Resource.create({"service.name": config.service_name}))
    provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=config.otel_exporter_otlp_endpoint)))
    trace.set_tracer_provider(provider)


@contextmanager
def push_span(name: str, attributes: dict | None = None) -> Iterator[trace.Span]:
    """Start a span tagged with the trigger trace id and current user/retry ids."""

    tags = {
        "promopush.trace_id": trace_id_ctx.get(),
        "promopush.user_id": user_id_ctx.get(),
        "promopush.retry_id": retry_id_ctx.get(),
    }
    tags.update(attributes or {})
    with tracer.start_as_current_span(name, attributes={key: value for key, value in tags.items() if value != ""}) as span:
        yield span


def instrument_app(app: FastAPI) -> None:
    FastAPIInstrumentor.instrument_app(app)
