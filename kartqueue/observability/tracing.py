"""OpenTelemetry spans around queue transactions and order fulfilment."""

from __future__ import annotations

from typing import Optional

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

_provider: Optional[TracerProvider] = None


def configure_tracer(
    service_name: str,
    otlp_endpoint: Optional[str] = None,
    environment: Optional[str] = None,
) -> TracerProvider:
    """Install the process-wide tracer provider once and return it.

    Spans are always recorded; they are only exported when ``otlp_endpoint``
    is set. Later calls return the provider installed first.
    """

    global _provider
    if _provider is not None:
        return _provider

    attributes = {"service.name": service_name}
    if environment:
        attributes["deployment.environment"] = environment
    provider = TracerProvider(resource=Resource.create(attributes))
    if otlp_endpoint:
        provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=otlp_endpoint, insecure=True)))

    trace.set_tracer_provider(provider)
    _provider = provider
    return provider


def get_tracer(name: str) -> trace.Tracer:
    return trace.get_tracer(name)
