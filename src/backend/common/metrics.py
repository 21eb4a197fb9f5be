# SPDX-FileCopyrightText: 2025 robot-visual-perception
#
# SPDX-License-Identifier: MIT
import logging
import os
from dataclasses import dataclass
from typing import Optional

from opentelemetry import metrics
from opentelemetry.exporter.otlp.proto.http.metric_exporter import OTLPMetricExporter
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from opentelemetry.semconv.resource import ResourceAttributes


_configured = False
_meter: Optional[metrics.Meter] = None


def configure_metrics(
    service_name: str,
    service_version: str,
    environment: str | None = None,
) -> metrics.Meter:
    """
    Configure OpenTelemetry metrics and return a Meter instance.

    This sets up:
      - MeterProvider with OTLP HTTP exporter (if an endpoint is configured)
      - Respect for ENVIRONMENT / OTEL_EXPORTER_OTLP* env vars

    Args:
        service_name: Name of the service (e.g., "calibrator")
        service_version: Version of the service
        environment: Deployment environment (e.g., "development", "production")

    Returns:
        Meter instance for creating metrics
    """
    global _configured, _meter
    if _configured and _meter is not None:
        return _meter

    env = (
        os.getenv("ENVIRONMENT", "development") if environment is None else environment
    )
    resource = Resource.create(
        {
            ResourceAttributes.SERVICE_NAME: service_name,
            ResourceAttributes.SERVICE_VERSION: service_version,
            ResourceAttributes.DEPLOYMENT_ENVIRONMENT: env,
        }
    )

    otlp_endpoint = os.getenv("OTEL_EXPORTER_OTLP_METRICS_ENDPOINT") or os.getenv(
        "OTEL_EXPORTER_OTLP_ENDPOINT"
    )
    if otlp_endpoint:
        try:
            reader = PeriodicExportingMetricReader(
                OTLPMetricExporter(endpoint=otlp_endpoint), export_interval_millis=5000
            )
            meter_provider = MeterProvider(resource=resource, metric_readers=[reader])
        except Exception as err:  # pragma: no cover
            logging.getLogger(__name__).warning(
                "OTLP metrics exporter setup failed; metrics disabled",
                extra={"error": str(err)},
            )
            meter_provider = MeterProvider(resource=resource)
    else:
        # no endpoint, nothing is exported
        meter_provider = MeterProvider(resource=resource)

    metrics.set_meter_provider(meter_provider)
    _meter = metrics.get_meter(service_name, service_version)
    _configured = True

    return _meter


def get_meter() -> metrics.Meter:
    """Get the configured Meter instance.

    Raises:
        RuntimeError: If metrics have not been configured yet
    """
    if _meter is None:
        raise RuntimeError("Metrics not configured. Call configure_metrics() first.")
    return _meter


@dataclass(frozen=True)
class GateInstruments:
    """Instruments the sample gate records into on every tick."""

    ticks: metrics.Counter
    motion_score: metrics.Histogram
    recalibration_duration: metrics.Histogram
    persistence_failures: metrics.Counter


def create_gate_instruments(meter: Optional[metrics.Meter] = None) -> GateInstruments:
    """Create the gate instruments on ``meter`` (the configured one by default)."""
    meter = meter or get_meter()
    return GateInstruments(
        ticks=meter.create_counter(
            "calibration.gate.ticks",
            unit="1",
            description="Processed frames by gate outcome",
        ),
        motion_score=meter.create_histogram(
            "calibration.gate.motion_score",
            unit="1",
            description="Mean absolute difference between consecutive frames",
        ),
        recalibration_duration=meter.create_histogram(
            "calibration.recalibration.duration",
            unit="s",
            description="Time spent recalibrating (and cleaning) after an admission",
        ),
        persistence_failures=meter.create_counter(
            "calibration.persistence.failures",
            unit="1",
            description="Failed writes of the calibration model",
        ),
    )
