"""OpenTelemetry instrumentation for jiraflow."""

from dataclasses import dataclass

from opentelemetry import metrics, trace
from opentelemetry.exporter.otlp.proto.http.metric_exporter import OTLPMetricExporter
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from jiraflow.logger import get_logger

logger = get_logger(__name__)

_initialized = False
_tracer: trace.Tracer | None = None
_transition_counter: metrics.Counter | None = None
_confirm_histogram: metrics.Histogram | None = None


@dataclass
class TransitionMetrics:
    """Measurements from one Execute interaction."""

    outcome: str
    issue_key: str
    transition_name: str = ""
    duration_ms: int = 0  # submit -> observed status; 0 unless applied
    confirmed: bool = False
    polls: int = 0


def init_telemetry(
    endpoint: str,
    service_name: str,
    service_version: str | None = None,
) -> None:
    """Initialize OpenTelemetry tracing and metrics.

    Does nothing when endpoint is empty or telemetry is already initialized.

    Args:
        endpoint: OTLP/HTTP endpoint URL (e.g., http://localhost:4318)
        service_name: Service name for telemetry
        service_version: Optional service version
    """
    global _initialized, _tracer, _transition_counter, _confirm_histogram

    if _initialized or not endpoint:
        return

    resource_attrs = {"service.name": service_name}
    if service_version:
        resource_attrs["service.version"] = service_version
    resource = Resource.create(resource_attrs)

    trace_provider = TracerProvider(resource=resource)
    trace_provider.add_span_processor(
        BatchSpanProcessor(OTLPSpanExporter(endpoint=f"{endpoint}/v1/traces"))
    )
    trace.set_tracer_provider(trace_provider)
    _tracer = trace.get_tracer(__name__)

    metric_reader = PeriodicExportingMetricReader(
        OTLPMetricExporter(endpoint=f"{endpoint}/v1/metrics"), export_interval_millis=10000
    )
    metrics.set_meter_provider(MeterProvider(resource=resource, metric_readers=[metric_reader]))
    meter = metrics.get_meter(__name__)

    _transition_counter = meter.create_counter(
        "jiraflow.transitions",
        unit="1",
        description="Execute interactions by outcome",
    )
    _confirm_histogram = meter.create_histogram(
        "jiraflow.confirm.duration",
        unit="ms",
        description="Time from submitting a transition to observing the new status",
    )

    _initialized = True
    logger.info(f"OpenTelemetry initialized: endpoint={endpoint}, service={service_name}")


def get_tracer() -> trace.Tracer:
    """Get the global tracer, or a no-op tracer if not initialized."""
    return _tracer or trace.get_tracer(__name__)


def record_transition(data: TransitionMetrics) -> None:
    """Record one Execute interaction. No-op until init_telemetry() ran."""
    if not _initialized:
        return

    attributes = {"outcome": data.outcome, "issue.key": data.issue_key}
    if data.transition_name:
        attributes["transition"] = data.transition_name

    if _transition_counter:
        _transition_counter.add(1, attributes)

    if _confirm_histogram and data.outcome == "applied" and data.duration_ms > 0:
        _confirm_histogram.record(
            data.duration_ms, {**attributes, "confirmed": data.confirmed, "polls": data.polls}
        )


def reset_telemetry() -> None:
    """Reset module state (for testing only)."""
    global _initialized, _tracer, _transition_counter, _confirm_histogram
    _initialized = False
    _tracer = None
    _transition_counter = None
    _confirm_histogram = None
