"""Tracing and log setup shared by the API process and the sync worker."""

from __future__ import annotations

from dataclasses import dataclass
import logging
import os
from typing import TYPE_CHECKING, Literal

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
from opentelemetry.sdk.resources import DEPLOYMENT_ENVIRONMENT, SERVICE_NAME, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.sdk.trace.sampling import TraceIdRatioBased

from talentmatch.core.config import Settings

if TYPE_CHECKING:
    from fastapi import FastAPI

ProcessRole = Literal["api", "worker"]

LOG_FORMAT = (
    "%(asctime)s %(levelname)s %(name)s role=%(process_role)s "
    "trace_id=%(trace_id)s span_id=%(span_id)s %(message)s"
)

_BASE_LOG_RECORD_FACTORY = logging.getLogRecordFactory()
_HTTPX_INSTRUMENTOR = HTTPXClientInstrumentor()
_process_role: ProcessRole | None = None


@dataclass(slots=True)
class TelemetryRuntime:
    role: ProcessRole
    provider: TracerProvider | None = None
    app: FastAPI | None = None

    @property
    def enabled(self) -> bool:
        return self.provider is not None


def service_name(settings: Settings, role: ProcessRole) -> str:
    return f"{settings.otel_service_name}-{role}"


def configure_logging(settings: Settings, role: ProcessRole) -> None:
    _install_log_correlation(role)
    root = logging.getLogger()
    root.setLevel(settings.log_level.upper())
    if root.handlers:
        return
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)


def setup_telemetry(settings: Settings, role: ProcessRole, app: FastAPI | None = None) -> TelemetryRuntime:
    if not settings.otel_enabled:
        return TelemetryRuntime(role=role)

    if settings.otel_log_correlation:
        _install_log_correlation(role)

    provider = TracerProvider(
        resource=Resource.create(
            {
                SERVICE_NAME: service_name(settings, role),
                DEPLOYMENT_ENVIRONMENT: settings.environment,
                "talentmatch.role": role,
                "talentmatch.matcher_base_url": settings.matcher_base_url,
            }
        ),
        sampler=TraceIdRatioBased(settings.otel_trace_sample_ratio),
    )
    exporter = _build_exporter(settings, role)
    if exporter is not None:
        provider.add_span_processor(BatchSpanProcessor(exporter))
    trace.set_tracer_provider(provider)
    # Every call to the matching service goes through httpx.
    _HTTPX_INSTRUMENTOR.instrument(tracer_provider=provider)

    if app is not None:
        FastAPIInstrumentor.instrument_app(app, tracer_provider=provider, excluded_urls="healthz")
    return TelemetryRuntime(role=role, provider=provider, app=app)


def shutdown_telemetry(runtime: TelemetryRuntime) -> None:
    if runtime.provider is None:
        return
    if runtime.app is not None:
        FastAPIInstrumentor.uninstrument_app(runtime.app)
    _HTTPX_INSTRUMENTOR.uninstrument()
    runtime.provider.force_flush()
    runtime.provider.shutdown()


def _build_exporter(settings: Settings, role: ProcessRole) -> OTLPSpanExporter | None:
    endpoint = (
        settings.otel_exporter_otlp_endpoint
        or os.getenv("OTEL_EXPORTER_OTLP_TRACES_ENDPOINT")
        or os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT")
    )
    if not endpoint:
        logging.getLogger(__name__).info(
            "no OTLP endpoint configured; %s spans stay in-process",
            service_name(settings, role),
        )
        return None

    headers = parse_headers(settings.otel_exporter_otlp_headers or os.getenv("OTEL_EXPORTER_OTLP_HEADERS"))
    return OTLPSpanExporter(endpoint=endpoint, headers=headers or None)


def parse_headers(raw: str | None) -> dict[str, str]:
    """Parses ``key=value`` pairs separated by commas; items without ``=`` are skipped."""
    if not raw:
        return {}
    parsed: dict[str, str] = {}
    for item in raw.split(","):
        key, separator, value = item.partition("=")
        if separator and key.strip():
            parsed[key.strip()] = value.strip()
    return parsed


def _install_log_correlation(role: ProcessRole) -> None:
    global _process_role
    if _process_role is not None:
        _process_role = role
        return
    _process_role = role

    def record_factory(*args: object, **kwargs: object) -> logging.LogRecord:
        record = _BASE_LOG_RECORD_FACTORY(*args, **kwargs)
        context = trace.get_current_span().get_span_context()
        record.process_role = _process_role
        record.trace_id = format(context.trace_id, "032x") if context.is_valid else "0" * 32
        record.span_id = format(context.span_id, "016x") if context.is_valid else "0" * 16
        return record

    logging.setLogRecordFactory(record_factory)
