"""OpenTelemetry tracing for the attachment pipeline.

The pipeline opens its spans through ``trace.get_tracer`` unconditionally.
They are no-ops until :func:`setup_telemetry` installs a tracer provider.
"""

import atexit
import socket
import uuid
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as get_version
from typing import TYPE_CHECKING, Optional

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, SimpleSpanProcessor
from opentelemetry.semconv.resource import ResourceAttributes

from chatfiles.config import TelemetryConfig

if TYPE_CHECKING:
    from opentelemetry.trace import Tracer

_MISSING_EXPORTERS_MSG = (
    "Telemetry is enabled but no exporters are configured. "
    "Set endpoint or console_export=True to export traces."
)


def _instance_id(telemetry_config: TelemetryConfig) -> str:
    if telemetry_config.service_instance_id:
        return telemetry_config.service_instance_id
    return f"{socket.gethostname()}-{str(uuid.uuid4())[:8]}"


def _resource_attributes(app_name: str, telemetry_config: TelemetryConfig) -> dict[str, str]:
    attrs = {
        ResourceAttributes.SERVICE_NAME: app_name,
        ResourceAttributes.SERVICE_INSTANCE_ID: _instance_id(telemetry_config),
    }
    try:
        attrs[ResourceAttributes.SERVICE_VERSION] = get_version("chatfiles")
    except PackageNotFoundError:
        pass
    if telemetry_config.deployment_environment:
        attrs[ResourceAttributes.DEPLOYMENT_ENVIRONMENT] = telemetry_config.deployment_environment
    return attrs


def _add_exporters(provider: TracerProvider, telemetry_config: TelemetryConfig) -> None:
    if telemetry_config.endpoint:
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter

        otlp = OTLPSpanExporter(
            endpoint=telemetry_config.endpoint, timeout=telemetry_config.timeout
        )
        provider.add_span_processor(BatchSpanProcessor(otlp))

    if telemetry_config.console_export:
        from opentelemetry.sdk.trace.export import ConsoleSpanExporter

        provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))


def setup_telemetry(app_name: str, telemetry_config: TelemetryConfig) -> Optional["Tracer"]:
    """Install a global tracer provider exporting the pipeline spans.

    Args:
        app_name: Service name reported with every span
        telemetry_config: Telemetry configuration specifying endpoint and export options

    Returns:
        OpenTelemetry tracer instance if enabled, None otherwise

    Raises:
        ValueError: If telemetry is enabled without any exporter
    """
    if not telemetry_config.enabled:
        return None

    if not telemetry_config.endpoint and not telemetry_config.console_export:
        raise ValueError(_MISSING_EXPORTERS_MSG)

    resource = Resource.create(_resource_attributes(app_name, telemetry_config))
    provider = TracerProvider(resource=resource)
    _add_exporters(provider, telemetry_config)

    trace.set_tracer_provider(provider)
    atexit.register(provider.shutdown)

    return provider.get_tracer("chatfiles")
