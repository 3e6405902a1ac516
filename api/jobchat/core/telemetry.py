from __future__ import annotations

from dataclasses import dataclass
import logging
import os

from fastapi import FastAPI
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
from opentelemetry.sdk.resources import DEPLOYMENT_ENVIRONMENT, SERVICE_NAME, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.sdk.trace.sampling import TraceIdRatioBased

from jobchat.core.config import Settings

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"
CORRELATED_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s trace_id=%(trace_id)s span_id=%(span_id)s %(message)s"

logger = logging.getLogger(__name__)
_httpx_instrumentor = HTTPXClientInstrumentor()


@dataclass(slots=True)
class TelemetryRuntime:
    enabled: bool
    provider: TracerProvider | None


class TraceContextFilter(logging.Filter):
    """Stamps the active span's trace and span ids onto each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        context = trace.get_current_span().get_span_context()
        record.trace_id = format(context.trace_id, "032x") if context.is_valid else "-"
        record.span_id = format(context.span_id, "016x") if context.is_valid else "-"
        return True


def configure_api_logging(settings: Settings) -> None:
    root = logging.getLogger()
    if root.handlers:
        return
    handler = logging.StreamHandler()
    if settings.otel_log_correlation:
        handler.addFilter(TraceContextFilter())
        handler.setFormatter(logging.Formatter(CORRELATED_LOG_FORMAT))
    else:
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)
    root.setLevel(logging.INFO)


def setup_api_telemetry(app: FastAPI, settings: Settings) -> TelemetryRuntime:
    if not settings.otel_enabled:
        return TelemetryRuntime(enabled=False, provider=None)

    resource = Resource.create({SERVICE_NAME: settings.otel_service_name, DEPLOYMENT_ENVIRONMENT: settings.environment})
    provider = TracerProvider(resource=resource, sampler=TraceIdRatioBased(settings.otel_trace_sample_ratio))
    exporter = _build_exporter(settings)
    if exporter is not None:
        provider.add_span_processor(BatchSpanProcessor(exporter))
    trace.set_tracer_provider(provider)

    FastAPIInstrumentor.instrument_app(app, tracer_provider=provider, excluded_urls="healthz")
    # Auth lookups go through httpx; instrument once per process.
    if not _httpx_instrumentor.is_instrumented_by_opentelemetry:
        _httpx_instrumentor.instrument(tracer_provider=provider)
    return TelemetryRuntime(enabled=True, provider=provider)


def shutdown_api_telemetry(app: FastAPI, runtime: TelemetryRuntime) -> None:
    if not runtime.enabled:
        return
    FastAPIInstrumentor.uninstrument_app(app)
    if _httpx_instrumentor.is_instrumented_by_opentelemetry:
        _httpx_instrumentor.uninstrument()
    if runtime.provider is not None:
        runtime.provider.force_flush()
        runtime.provider.shutdown()


def _build_exporter(settings: Settings) -> OTLPSpanExporter | None:
    if settings.otel_exporter_otlp_endpoint:
        return OTLPSpanExporter(
            endpoint=settings.otel_exporter_otlp_endpoint,
            headers=parse_headers(settings.otel_exporter_otlp_headers) or None,
        )
    if os.getenv("OTEL_EXPORTER_OTLP_TRACES_ENDPOINT") or os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT"):
        # The exporter reads endpoint and headers from the standard OTEL_* variables.
        return OTLPSpanExporter()
    logger.info("no OTLP endpoint configured; spans for %s are not exported", settings.otel_service_name)
    return None


def parse_headers(raw: str | None) -> dict[str, str]:
    """Parse ``key=value,key2=value2`` into a dict, dropping items without a key."""
    pairs = (item.partition("=") for item in (raw or "").split(","))
    return {key.strip(): value.strip() for key, separator, value in pairs if separator and key.strip()}
