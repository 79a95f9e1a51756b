"""
OpenTelemetry tracing.

Every process (API, worker, cleaner) installs its own provider under its own
service name. Until then spans go to the no-op provider.
"""

import logging

from fastapi import FastAPI
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.trace import Tracer

from jobqueue import __version__
from jobqueue.config import get_settings

logger = logging.getLogger(__name__)

TRACER_NAME = "jobqueue"


def setup_tracing(component: str | None = None) -> None:
    """
    Install the tracer provider for this process.

    Args:
        component: Appended to the configured service name, e.g. "worker".
    """
    settings = get_settings()
    service_name = settings.otel_service_name
    if component:
        service_name = f"{service_name}-{component}"

    provider = TracerProvider(
        resource=Resource.create(
            {"service.name": service_name, "service.version": __version__}
        )
    )

    endpoint = settings.otel_exporter_otlp_endpoint
    if endpoint:
        provider.add_span_processor(
            BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint, insecure=True))
        )
    else:
        logger.debug("No OTLP endpoint, spans are not exported")

    trace.set_tracer_provider(provider)


def instrument_fastapi(app: FastAPI) -> None:
    FastAPIInstrumentor.instrument_app(app)


def get_tracer() -> Tracer:
    """Tracer for queue spans (claims and job execution)."""
    return trace.get_tracer(TRACER_NAME, __version__)
