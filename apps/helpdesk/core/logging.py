"""Logging and tracing setup for the helpdesk service.

Log records from every handler carry ``service`` and ``environment`` fields so
the default format can tell deployments apart. Tracing state lives in a
:class:`Telemetry` object owned by the application lifespan; the ticket
service gets its tracer from it instead of the global provider.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from logging.config import dictConfig
from typing import Any

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from apps.helpdesk.core.config import Settings

APP_LOGGER = "apps.helpdesk"

# Modules that log ticket and settings activity.
HELPDESK_LOGGERS = (
    "apps.helpdesk.main",
    "apps.helpdesk.tickets.service",
    "apps.helpdesk.services.settings",
)

# Emit a debug line per scrape, so they never go below INFO.
METRICS_LOGGERS = ("apps.helpdesk.metrics.exporters",)

QUIET_LOGGERS = ("sqlalchemy.engine", "sqlalchemy.pool", "aiosqlite", "asyncio")


class ServiceContextFilter(logging.Filter):
    """Stamp records with the service name and deployment environment."""

    def __init__(self, service: str, environment: str) -> None:
        super().__init__()
        self.service = service
        self.environment = environment

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "service"):
            record.service = self.service
        if not hasattr(record, "environment"):
            record.environment = self.environment
        return True


def parse_headers(header_string: str | None) -> dict[str, str]:
    """Parse ``key=value,key2=value2`` OTLP header strings."""

    if not header_string:
        return {}
    headers: dict[str, str] = {}
    for item in header_string.split(","):
        key, sep, value = item.partition("=")
        if not sep or not key.strip():
            continue
        headers[key.strip()] = value.strip()
    return headers


def logging_config(settings: Settings) -> dict[str, Any]:
    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    loggers: dict[str, dict[str, Any]] = {APP_LOGGER: {"level": level}}
    for name in HELPDESK_LOGGERS:
        loggers[name] = {"level": level}
    for name in METRICS_LOGGERS:
        loggers[name] = {"level": max(level, logging.INFO)}
    for name in QUIET_LOGGERS:
        loggers[name] = {"level": max(level, logging.WARNING)}

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {
            "service_context": {
                "()": ServiceContextFilter,
                "service": settings.otel_service_name,
                "environment": settings.environment,
            }
        },
        "formatters": {"default": {"format": settings.log_format}},
        "handlers": {
            "default": {
                "class": "logging.StreamHandler",
                "formatter": "default",
                "filters": ["service_context"],
                "level": level,
            }
        },
        "root": {"handlers": ["default"], "level": level},
        "loggers": loggers,
    }


def configure_logging(settings: Settings) -> logging.Logger:
    """Apply :func:`logging_config` and return the application logger."""

    dictConfig(logging_config(settings))
    return logging.getLogger(APP_LOGGER)


@dataclass(slots=True)
class Telemetry:
    """Tracer provider owned by one application instance."""

    provider: TracerProvider | None = None

    def tracer(self, name: str) -> trace.Tracer:
        if self.provider is None:
            return trace.get_tracer(name)
        return self.provider.get_tracer(name)

    def shutdown(self) -> None:
        if self.provider is not None:
            self.provider.shutdown()
            self.provider = None


def start_telemetry(settings: Settings) -> Telemetry:
    """Build an OTLP-exporting tracer provider when tracing is enabled."""

    if not settings.otel_enabled:
        return Telemetry()

    exporter_kwargs: dict[str, object] = {}
    if settings.otel_exporter_otlp_endpoint:
        exporter_kwargs["endpoint"] = settings.otel_exporter_otlp_endpoint
    headers = parse_headers(settings.otel_exporter_otlp_headers)
    if headers:
        exporter_kwargs["headers"] = headers

    provider = TracerProvider(
        resource=Resource(
            attributes={
                "service.name": settings.otel_service_name,
                "deployment.environment": settings.environment,
            }
        )
    )
    provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(**exporter_kwargs)))
    logging.getLogger(APP_LOGGER).info("Tracing enabled for %s", settings.otel_service_name)
    return Telemetry(provider)
