"""Logging and tracing setup for the Shoelace process."""

from __future__ import annotations

import logging
from typing import Dict, Optional

import structlog
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.sdk.trace.sampling import ParentBased, TraceIdRatioBased

# Probes and scrapes would otherwise dominate the sampled traces.
UNTRACED_PATHS = "healthz,metrics"

_tracer_provider: Optional[TracerProvider] = None


def resolve_level(level: str | int | None) -> int:
    if isinstance(level, int):
        return level
    numeric = logging.getLevelName(str(level or "INFO").strip().upper())
    return numeric if isinstance(numeric, int) else logging.INFO


def configure_logging(service_name: str, level: str | int | None = None) -> None:
    """Route structlog through stdlib logging as one JSON object per line.

    Safe to call again, e.g. from tests or when the level changes; only the
    first call installs a root handler.
    """

    numeric_level = resolve_level(level)
    root = logging.getLogger()
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(message)s"))
        root.addHandler(handler)
    root.setLevel(numeric_level)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.dict_tracebacks,
            structlog.processors.EventRenamer("message"),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    structlog.contextvars.bind_contextvars(service=service_name)


def parse_otlp_headers(headers: str | None) -> Dict[str, str]:
    """Parse ``key=value,key=value`` exporter headers, skipping malformed pairs."""
    pairs = (item.partition("=") for item in (headers or "").split(","))
    return {key.strip(): value.strip() for key, _, value in pairs if key.strip() and value.strip()}


def configure_tracing(
    service_name: str,
    endpoint: Optional[str] = None,
    headers: Optional[str] = None,
    sampler_ratio: float = 1.0,
) -> TracerProvider:
    """Install the process tracer provider on first call and return it.

    Spans are exported over OTLP/HTTP only when ``endpoint`` is set. Origin
    fetches made with httpx are traced as client spans.
    """

    global _tracer_provider
    if _tracer_provider is not None:
        return _tracer_provider

    ratio = max(0.0, min(1.0, sampler_ratio))
    provider = TracerProvider(
        resource=Resource.create({"service.name": service_name}),
        sampler=ParentBased(TraceIdRatioBased(ratio)),
    )
    if endpoint:
        exporter = OTLPSpanExporter(endpoint=endpoint, headers=parse_otlp_headers(headers))
        provider.add_span_processor(BatchSpanProcessor(exporter))

    trace.set_tracer_provider(provider)
    HTTPXClientInstrumentor().instrument(tracer_provider=provider)
    _tracer_provider = provider
    return provider


def instrument_fastapi_app(app) -> None:
    FastAPIInstrumentor.instrument_app(
        app,
        tracer_provider=_tracer_provider or trace.get_tracer_provider(),
        excluded_urls=UNTRACED_PATHS,
    )
