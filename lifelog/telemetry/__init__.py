"""Lifelog multi-source telemetry collection pipeline.

This package reads from permission-gated platform sources (biometrics,
calendar, motion sensors, location), buckets the samples into one-hour
windows, reduces each bucket per metric policy and uploads the resulting
hourly records.

Subpackages:
    adapters/   Source adapters (health families, calendar, motion, location)

Core modules:
    base           MetricKind, Sample, SourceAdapter ABC and fetch results
    date_range     Resolve presets / explicit bounds into a TimeRange
    permissions    PermissionCache
    collector      Concurrent fan-out with per-source timeouts
    bucketing      HourBucketer
    aggregator     MetricAggregator (sum / average / passthrough / snapshot)
    formatter      RecordFormatter (HourlyRecord wire schema)
    uploader       Backend POST
    service        Single-flight CollectionService
    config_loader  Load/validate/hot-reload telemetry_config.yaml
"""

from lifelog.telemetry.base import (
    AggregationPolicy,
    FetchResult,
    FetchStatus,
    MetricKind,
    Sample,
    SourceAdapter,
    TimeRange,
)
from lifelog.telemetry.config_loader import TelemetryConfig, get_telemetry_config
from lifelog.telemetry.date_range import Period, resolve_range
from lifelog.telemetry.errors import (
    CapabilityUnavailableError,
    PermissionDeniedError,
    UploadError,
)
from lifelog.telemetry.permissions import PermissionCache
from lifelog.telemetry.service import CollectionService, RunResult, RunState, RunStatus

__all__ = [
    "AggregationPolicy",
    "CapabilityUnavailableError",
    "CollectionService",
    "FetchResult",
    "FetchStatus",
    "MetricKind",
    "Period",
    "PermissionCache",
    "PermissionDeniedError",
    "RunResult",
    "RunState",
    "RunStatus",
    "Sample",
    "SourceAdapter",
    "TelemetryConfig",
    "TimeRange",
    "UploadError",
    "get_telemetry_config",
    "resolve_range",
]
