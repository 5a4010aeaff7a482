"""Single-flight collection service.

``CollectionService`` owns the pipeline for one host application:

    resolve range → collect (fan-out) → bucket → aggregate → format → upload

Only one run executes at a time per service instance.  A run requested while
another is in flight returns immediately with ``RunStatus.BUSY`` and performs
no work.  The guard is released on every exit path, including exceptions.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone, tzinfo
from enum import Enum

from lifelog.models.telemetry import HourlyRecord
from lifelog.telemetry.adapters import build_default_adapters
from lifelog.telemetry.aggregator import MetricAggregator
from lifelog.telemetry.base import MetricKind, SourceAdapter, TimeRange
from lifelog.telemetry.bucketing import HourBucketer
from lifelog.telemetry.capabilities import (
    BiometricSource,
    CalendarSource,
    LocationSource,
    MotionSensorSource,
)
from lifelog.telemetry.collector import CollectionReport, ParallelCollector
from lifelog.telemetry.config_loader import TelemetryConfig, get_telemetry_config
from lifelog.telemetry.date_range import Period, RangeRequest, resolve_range
from lifelog.telemetry.errors import UploadError
from lifelog.telemetry.formatter import RecordFormatter
from lifelog.telemetry.permissions import PermissionCache
from lifelog.telemetry.uploader import Uploader

logger = logging.getLogger("lifelog.telemetry.service")


class RunState(str, Enum):
    IDLE = "idle"
    COLLECTING = "collecting"
    FORMATTING = "formatting"
    UPLOADING = "uploading"


class RunStatus(str, Enum):
    SUCCESS = "success"
    BUSY = "busy"
    PRECONDITION_FAILED = "precondition_failed"
    UPLOAD_FAILED = "upload_failed"


@dataclass
class RunResult:
    """Outcome of one ``collect`` / ``collect_and_upload`` call.

    Attributes:
        status:          Terminal status of the run.
        time_range:      Resolved range (None if the run never got that far).
        records:         Formatted hourly records (empty for BUSY / PRECONDITION_FAILED).
        report:          Per-kind fetch results from the collector.
        uploaded:        True once the backend accepted the records.
        error:           Human-readable reason for non-success statuses.
        elapsed_seconds: For BUSY, how long the in-flight run has been going.
    """

    status: RunStatus
    time_range: TimeRange | None = None
    records: list[HourlyRecord] = field(default_factory=list)
    report: CollectionReport | None = None
    uploaded: bool = False
    error: str | None = None
    elapsed_seconds: float | None = None

    @property
    def ok(self) -> bool:
        return self.status is RunStatus.SUCCESS


class CollectionService:
    """Injectable owner of the permission cache and the run guard.

    Usage::

        service = CollectionService(biometric=health_bridge, calendar=calendar_bridge)
        result = await service.collect_and_upload("user-123", Period.TODAY)
        if result.status is RunStatus.BUSY:
            ...
        await service.aclose()
    """

    def __init__(
        self,
        biometric: BiometricSource | None = None,
        calendar: CalendarSource | None = None,
        motion: MotionSensorSource | None = None,
        location: LocationSource | None = None,
        uploader: Uploader | None = None,
        config: TelemetryConfig | None = None,
        tz: tzinfo = timezone.utc,
    ) -> None:
        self._config = config or get_telemetry_config()
        self._tz = tz
        self.permissions = PermissionCache()
        self._adapters: list[SourceAdapter] = build_default_adapters(
            self.permissions,
            biometric=biometric,
            calendar=calendar,
            motion=motion,
            location=location,
            config=self._config,
            tz=tz,
        )
        self._collector = ParallelCollector(self._adapters, self._config)
        self._bucketer = HourBucketer(self._config.bucketing.max_buckets, tz)
        self._aggregator = MetricAggregator()
        self._formatter = RecordFormatter()
        self._uploader = uploader

        self._guard = threading.Lock()
        self._state = RunState.IDLE
        self._started_at: float | None = None

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def state(self) -> RunState:
        return self._state

    @property
    def in_progress(self) -> bool:
        return self._guard.locked()

    @property
    def adapters(self) -> list[SourceAdapter]:
        return list(self._adapters)

    def authorized_kinds(self) -> list[MetricKind]:
        return self.permissions.authorized_kinds()

    def clear_permissions(self) -> None:
        self.permissions.clear()

    # ------------------------------------------------------------------
    # Runs
    # ------------------------------------------------------------------

    async def collect(
        self, uid: str | None, period: RangeRequest = Period.TODAY, now: datetime | None = None
    ) -> RunResult:
        """Run the pipeline up to formatting, without uploading."""
        return await self._run(uid, period, now, upload=False)

    async def collect_and_upload(
        self, uid: str | None, period: RangeRequest = Period.TODAY, now: datetime | None = None
    ) -> RunResult:
        """Run the full pipeline and ship the records to the backend."""
        return await self._run(uid, period, now, upload=True)

    def build_records(
        self, report: CollectionReport, collected_at: datetime | None = None
    ) -> list[HourlyRecord]:
        """Bucket, aggregate and format one collection report."""
        samples = report.samples
        buckets = self._bucketer.bucketize(report.time_range, samples)
        aggregates = self._aggregator.aggregate(buckets)
        snapshots = self._aggregator.snapshots(samples)
        return self._formatter.format(aggregates, snapshots, collected_at)

    async def _run(
        self, uid: str | None, period: RangeRequest, now: datetime | None, upload: bool
    ) -> RunResult:
        if not self._guard.acquire(blocking=False):
            started = self._started_at
            elapsed = time.monotonic() - started if started is not None else 0.0
            logger.info(
                "Collection already in progress (%s, %.1fs elapsed); rejecting request",
                self._state.value, elapsed,
            )
            return RunResult(
                status=RunStatus.BUSY,
                error="collection already in progress",
                elapsed_seconds=elapsed,
            )

        try:
            self._started_at = time.monotonic()
            self._state = RunState.COLLECTING

            uid = (uid or "").strip()
            if not uid:
                logger.warning("Collection aborted: no user id")
                return RunResult(
                    status=RunStatus.PRECONDITION_FAILED, error="missing user id"
                )

            time_range = resolve_range(period, now, self._tz)
            logger.info(
                "Collection run started for %s: %s → %s",
                uid, time_range.start.isoformat(), time_range.end.isoformat(),
            )
            report = await self._collector.collect(time_range)

            self._state = RunState.FORMATTING
            records = self.build_records(report, now)

            result = RunResult(
                status=RunStatus.SUCCESS, time_range=time_range, records=records, report=report
            )
            if upload:
                self._state = RunState.UPLOADING
                uploader = self._uploader or Uploader()
                self._uploader = uploader
                try:
                    await uploader.upload(uid, records)
                except UploadError as exc:
                    logger.warning("Upload failed: %s", exc)
                    result.status = RunStatus.UPLOAD_FAILED
                    result.error = str(exc)
                else:
                    result.uploaded = True

            logger.info(
                "Collection run finished: %s, %d records, %d degraded sources, %.2fs",
                result.status.value,
                len(records),
                len(report.degraded),
                time.monotonic() - self._started_at,
            )
            return result
        finally:
            self._state = RunState.IDLE
            self._started_at = None
            self._guard.release()

    async def aclose(self) -> None:
        """Stop background sensor tasks owned by the adapters."""
        for adapter in self._adapters:
            await adapter.aclose()
