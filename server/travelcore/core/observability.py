"""Observability setup for OpenTelemetry, metrics, and structured logging."""

import logging

from opentelemetry import trace, metrics
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from prometheus_client import Counter, Histogram, Gauge, generate_latest, CollectorRegistry
import structlog

from .config import settings

SERVICE_NAME = "travelcore"

# Prometheus metrics
REGISTRY = CollectorRegistry()

# Request metrics
REQUEST_COUNT = Counter(
    'http_requests_total',
    'Total HTTP requests',
    ['method', 'endpoint', 'status_code'],
    registry=REGISTRY
)

REQUEST_DURATION = Histogram(
    'http_request_duration_seconds',
    'HTTP request duration in seconds',
    ['method', 'endpoint'],
    registry=REGISTRY
)

# Capacity ledger
BOOKINGS_CREATED = Counter(
    'bookings_created_total',
    'Total bookings created (seats reserved)',
    registry=REGISTRY
)

BOOKINGS_CANCELLED = Counter(
    'bookings_cancelled_total',
    'Total bookings cancelled (seats released)',
    registry=REGISTRY
)

SEATS_RESERVED = Counter(
    'seats_reserved_total',
    'Total seats reserved across all departures',
    registry=REGISTRY
)

CAPACITY_REJECTIONS = Counter(
    'capacity_rejections_total',
    'Reservations or releases rejected by the capacity ledger',
    ['reason'],
    registry=REGISTRY
)

# Notification fan-out
NOTIFICATIONS_PERSISTED = Counter(
    'notifications_persisted_total',
    'Notifications written by fan-out',
    ['type'],
    registry=REGISTRY
)

FAN_OUT_FAILURES = Counter(
    'notification_fan_out_failures_total',
    'Fan-outs aborted because notifications could not be stored',
    registry=REGISTRY
)

PUSH_DELIVERIES = Counter(
    'realtime_push_total',
    'Real-time pushes attempted during fan-out',
    ['outcome'],
    registry=REGISTRY
)

EMAIL_DELIVERIES = Counter(
    'email_deliveries_total',
    'Outbound emails attempted',
    ['outcome'],
    registry=REGISTRY
)

# Real-time channel
WEBSOCKET_CONNECTIONS = Gauge(
    'realtime_connections_active',
    'Number of live WebSocket connections',
    registry=REGISTRY
)


def setup_structured_logging():
    """Configure structured logging with structlog."""

    def add_trace_context(logger, method_name, event_dict):
        """Add trace context to log events."""
        span = trace.get_current_span()
        if span and span.is_recording():
            ctx = span.get_span_context()
            event_dict['trace_id'] = format(ctx.trace_id, '032x')
            event_dict['span_id'] = format(ctx.span_id, '016x')
        return event_dict

    logging.basicConfig(
        level=getattr(logging, settings.log_level),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

    # Configure structlog
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            add_trace_context,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer() if settings.debug else structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, settings.log_level)
        ),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def _resource() -> Resource:
    return Resource.create({
        "service.name": SERVICE_NAME,
        "service.version": "1.0.0",
        "environment": settings.environment,
    })


def setup_tracing():
    """Setup OpenTelemetry tracing."""
    trace.set_tracer_provider(TracerProvider(resource=_resource()))

    # Setup OTLP exporter (if OTLP endpoint is configured)
    if settings.otlp_endpoint:
        otlp_exporter = OTLPSpanExporter(endpoint=settings.otlp_endpoint)
        span_processor = BatchSpanProcessor(otlp_exporter)
        trace.get_tracer_provider().add_span_processor(span_processor)

    return trace.get_tracer(__name__)


def setup_metrics():
    """Setup OpenTelemetry metrics."""
    if settings.otlp_endpoint:
        otlp_exporter = OTLPMetricExporter(endpoint=settings.otlp_endpoint)
        reader = PeriodicExportingMetricReader(exporter=otlp_exporter, export_interval_millis=60000)
        metrics.set_meter_provider(MeterProvider(resource=_resource(), metric_readers=[reader]))

    return metrics.get_meter(__name__)


def instrument_fastapi(app):
    """Instrument FastAPI with OpenTelemetry."""
    FastAPIInstrumentor.instrument_app(app)


def instrument_sqlalchemy():
    """Instrument SQLAlchemy with OpenTelemetry."""
    SQLAlchemyInstrumentor().instrument()


class MetricsCollector:
    """Collector for business metrics."""

    @staticmethod
    def record_booking_created(traveller_count: int):
        """Record a successful seat reservation."""
        BOOKINGS_CREATED.inc()
        SEATS_RESERVED.inc(traveller_count)

    @staticmethod
    def record_booking_cancelled():
        """Record a booking cancellation."""
        BOOKINGS_CANCELLED.inc()

    @staticmethod
    def record_capacity_rejection(reason: str):
        """Record a ledger rejection, labelled by error code."""
        CAPACITY_REJECTIONS.labels(reason=reason).inc()

    @staticmethod
    def record_notifications_persisted(notification_type: str, count: int):
        NOTIFICATIONS_PERSISTED.labels(type=notification_type).inc(count)

    @staticmethod
    def record_fan_out_failure():
        FAN_OUT_FAILURES.inc()

    @staticmethod
    def record_push(outcome: str):
        """Record a push outcome: delivered, offline or failed."""
        PUSH_DELIVERIES.labels(outcome=outcome).inc()

    @staticmethod
    def record_email(outcome: str):
        """Record an email outcome: sent, failed, timeout or disabled."""
        EMAIL_DELIVERIES.labels(outcome=outcome).inc()

    @staticmethod
    def connection_opened():
        WEBSOCKET_CONNECTIONS.inc()

    @staticmethod
    def connection_closed():
        WEBSOCKET_CONNECTIONS.dec()


def get_prometheus_metrics():
    """Get Prometheus metrics for the /metrics endpoint."""
    return generate_latest(REGISTRY)


# Global metrics collector instance
metrics_collector = MetricsCollector()


class StructuredLogger:
    """Structured logger with business context."""

    def __init__(self, name: str, logger=None):
        self.logger = logger if logger is not None else structlog.get_logger(name)
        self.name = name

    def info(self, message: str, **kwargs):
        """Log info message with context."""
        self.logger.info(message, **kwargs)

    def warning(self, message: str, **kwargs):
        """Log warning message with context."""
        self.logger.warning(message, **kwargs)

    def error(self, message: str, **kwargs):
        """Log error message with context."""
        self.logger.error(message, **kwargs)

    def debug(self, message: str, **kwargs):
        """Log debug message with context."""
        self.logger.debug(message, **kwargs)

    def with_context(self, **kwargs):
        """Add context to logger."""
        return StructuredLogger(self.name, self.logger.bind(**kwargs))


def get_logger(name: str) -> StructuredLogger:
    """Get a structured logger instance."""
    return StructuredLogger(name)
