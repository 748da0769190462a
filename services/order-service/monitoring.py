"""Monitoring and observability setup.

Instruments are created against the global OpenTelemetry API at import time.
Until init_telemetry() installs SDK providers they are no-ops, so the order
core can record spans and metrics unconditionally.
"""
import logging
from opentelemetry import trace, metrics
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter

from config import OTEL_ENABLED, OTEL_EXPORTER_OTLP_ENDPOINT, SERVICE_NAME

logger = logging.getLogger(__name__)


def init_tracing() -> None:
    """Install the OTLP span exporter."""
    resource = Resource.create({"service.name": SERVICE_NAME})

    tracer_provider = TracerProvider(resource=resource)
    otlp_span_exporter = OTLPSpanExporter(
        endpoint=OTEL_EXPORTER_OTLP_ENDPOINT,
        insecure=True
    )
    tracer_provider.add_span_processor(BatchSpanProcessor(otlp_span_exporter))
    trace.set_tracer_provider(tracer_provider)

    logger.info(f"Tracing initialized with endpoint: {OTEL_EXPORTER_OTLP_ENDPOINT}")


def init_metrics() -> None:
    """Install the OTLP metric exporter."""
    resource = Resource.create({"service.name": SERVICE_NAME})

    otlp_metric_exporter = OTLPMetricExporter(
        endpoint=OTEL_EXPORTER_OTLP_ENDPOINT,
        insecure=True
    )
    otlp_metric_reader = PeriodicExportingMetricReader(
        otlp_metric_exporter,
        export_interval_millis=5000
    )

    meter_provider = MeterProvider(
        resource=resource,
        metric_readers=[otlp_metric_reader]
    )
    metrics.set_meter_provider(meter_provider)

    logger.info("Metrics initialized with OTLP exporter")


def init_telemetry() -> bool:
    """
    Initialize tracing and metrics export when enabled.

    Returns:
        True if exporters were installed
    """
    if not OTEL_ENABLED:
        logger.info("OpenTelemetry export disabled")
        return False

    init_tracing()
    init_metrics()
    return True


meter = metrics.get_meter(__name__)

# Order placement metrics
orders_placed_counter = meter.create_counter(
    "grocery.orders.placed",
    description="Total number of orders created from carts",
    unit="1"
)

order_rejections_counter = meter.create_counter(
    "grocery.orders.rejected",
    description="Order operations rejected, by reason",
    unit="1"
)

order_amount_histogram = meter.create_histogram(
    "grocery.orders.amount",
    description="Order total amount",
    unit="USD"
)

orders_cancelled_counter = meter.create_counter(
    "grocery.orders.cancelled",
    description="Total number of cancelled orders",
    unit="1"
)

# Inventory contention metrics
stock_units_reserved_counter = meter.create_counter(
    "grocery.stock.units_reserved",
    description="Units of stock decremented by successful reservations",
    unit="1"
)

stock_conflicts_counter = meter.create_counter(
    "grocery.stock.conflicts",
    description="Transactions aborted by the store due to concurrent demand",
    unit="1"
)
