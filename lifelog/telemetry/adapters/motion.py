"""Motion sensor (gyroscope) adapter.

The platform exposes gyroscope data only through a callback subscription.
``SensorReadingCache`` owns that subscription in a background task and keeps
the most recent reading; the adapter only ever pulls a snapshot from it.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import math
import threading
from datetime import datetime, timezone, tzinfo
from typing import Any

from lifelog.telemetry.base import (
    GyroscopeReading,
    MetricKind,
    Sample,
    SourceAdapter,
    TimeRange,
    parse_timestamp,
)
from lifelog.telemetry.capabilities import MotionSensorSource
from lifelog.telemetry.config_loader import TelemetryConfig, get_telemetry_config
from lifelog.telemetry.errors import CapabilityUnavailableError
from lifelog.telemetry.permissions import PermissionCache

logger = logging.getLogger("lifelog.telemetry.adapters.motion")


class SensorReadingCache:
    """Latest-value cache fed by a sensor subscription.

    ``start()`` spawns a task that subscribes and holds the subscription until
    ``stop()``; the sensor callback (which may fire on a foreign thread) only
    swaps in the newest reading.

    Usage::

        cache = SensorReadingCache(motion_source, MetricKind.GYROSCOPE, interval_ms=100)
        cache.start()
        reading = await cache.wait_for_reading(timeout=2.0)
        ...
        await cache.stop()
    """

    def __init__(
        self,
        source: MotionSensorSource,
        kind: MetricKind,
        interval_ms: int = 100,
        tz: tzinfo = timezone.utc,
    ) -> None:
        self._source = source
        self._kind = kind
        self._interval_ms = interval_ms
        self._tz = tz
        self._latest: Sample | None = None
        self._lock = threading.Lock()
        self._generation = 0
        self._task: asyncio.Task | None = None
        self._stop_event: asyncio.Event | None = None
        self._first_reading: asyncio.Event | None = None
        self._loop: asyncio.AbstractEventLoop | None = None

    @property
    def running(self) -> bool:
        if self._task is None or self._task.done():
            return False
        return self._loop is not None and not self._loop.is_closed()

    def start(self) -> None:
        """Begin maintaining the latest reading.  Idempotent within one event loop.

        Starting on a new loop (or after the previous subscription died)
        resubscribes and discards the reading held from before.
        """
        loop = asyncio.get_running_loop()
        if self.running:
            if self._loop is loop:
                return
            self._signal_stop()
        with self._lock:
            self._generation += 1
            self._latest = None
            generation = self._generation
        self._loop = loop
        self._stop_event = asyncio.Event()
        self._first_reading = asyncio.Event()
        self._task = loop.create_task(self._run(generation), name=f"sensor-{self._kind.value}")

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None or task.done():
            return
        if self._loop is not asyncio.get_running_loop():
            self._signal_stop()
            return
        if self._stop_event is not None:
            self._stop_event.set()
        await task

    def _signal_stop(self) -> None:
        loop, stop_event = self._loop, self._stop_event
        if loop is not None and stop_event is not None and not loop.is_closed():
            loop.call_soon_threadsafe(stop_event.set)

    async def _run(self, generation: int) -> None:
        stop_event = self._stop_event
        if stop_event is None:
            return
        try:
            subscription = self._source.subscribe(
                self._kind,
                self._interval_ms,
                functools.partial(self._on_reading, generation),
            )
        except Exception as exc:
            logger.warning("%s subscription failed: %s", self._kind.value, exc)
            return
        logger.debug("Subscribed to %s every %dms", self._kind.value, self._interval_ms)
        try:
            await stop_event.wait()
        finally:
            subscription.unsubscribe()
            logger.debug("Unsubscribed from %s", self._kind.value)

    def _on_reading(self, generation: int, data: dict[str, Any]) -> None:
        sample = self.normalize_reading(data)
        if sample is None:
            return
        with self._lock:
            # late callback from a replaced subscription
            if generation != self._generation:
                return
            self._latest = sample
            loop, first_reading = self._loop, self._first_reading
        if loop is not None and first_reading is not None and not loop.is_closed():
            loop.call_soon_threadsafe(first_reading.set)

    def normalize_reading(self, data: dict[str, Any]) -> Sample | None:
        """Map a raw ``{x, y, z, timestamp}`` callback payload to a Sample."""
        if not isinstance(data, dict):
            return None
        reading = GyroscopeReading(
            x=SourceAdapter._safe_float(data.get("x")),
            y=SourceAdapter._safe_float(data.get("y")),
            z=SourceAdapter._safe_float(data.get("z")),
        )
        at = parse_timestamp(data.get("timestamp"), self._tz) or datetime.now(self._tz)
        return Sample(kind=self._kind, value=reading, start=at, end=at)

    def latest_reading(self) -> Sample | None:
        """Most recent reading, or None if the sensor has not reported yet."""
        with self._lock:
            return self._latest

    async def wait_for_reading(self, timeout: float) -> Sample | None:
        """Return the latest reading, waiting up to ``timeout`` for the first one."""
        latest = self.latest_reading()
        if latest is not None or self._first_reading is None:
            return latest
        try:
            await asyncio.wait_for(self._first_reading.wait(), timeout)
        except asyncio.TimeoutError:
            logger.warning("No %s reading within %.1fs", self._kind.value, timeout)
        return self.latest_reading()

    def rotation_rate_degrees(self) -> dict[str, float] | None:
        """Latest rotation rate converted from rad/s to deg/s."""
        latest = self.latest_reading()
        if latest is None or not isinstance(latest.value, GyroscopeReading):
            return None
        factor = 180 / math.pi
        return {
            "x": latest.value.x * factor,
            "y": latest.value.y * factor,
            "z": latest.value.z * factor,
        }

    def is_rotating(self, threshold: float = 0.1) -> bool:
        latest = self.latest_reading()
        if latest is None or not isinstance(latest.value, GyroscopeReading):
            return False
        return latest.value.magnitude > threshold


class MotionAdapter(SourceAdapter):
    """Gyroscope snapshot source.  No permission prompt is involved."""

    SOURCE_ID = "motion"
    DISPLAY_NAME = "Motion Sensors"
    KINDS = (MetricKind.GYROSCOPE,)
    TIMEOUT_KEY = "motion"

    def __init__(
        self,
        motion: MotionSensorSource,
        permissions: PermissionCache,
        tz: tzinfo = timezone.utc,
        config: TelemetryConfig | None = None,
    ) -> None:
        super().__init__(permissions, tz)
        self._motion = motion
        self._config = config or get_telemetry_config()
        self.cache = SensorReadingCache(
            motion, MetricKind.GYROSCOPE, self._config.motion.interval_ms, tz
        )

    async def is_available(self) -> bool:
        return bool(await self._motion.is_available())

    async def _request_authorization(self, kind: MetricKind) -> bool:
        return True

    async def _fetch_samples(self, kind: MetricKind, time_range: TimeRange) -> list[Sample]:
        if not await self._motion.is_available():
            raise CapabilityUnavailableError("gyroscope not available on this device")

        if not self.cache.running:
            self.cache.start()
        latest = await self.cache.wait_for_reading(
            self._config.motion.first_reading_timeout_seconds
        )
        if latest is not None:
            logger.debug(
                "Gyroscope magnitude %.3f rad/s (rotating=%s)",
                latest.value.magnitude,  # type: ignore[union-attr]
                self.cache.is_rotating(self._config.motion.rotation_threshold_rad_s),
            )
        return [latest] if latest is not None else []

    async def aclose(self) -> None:
        await self.cache.stop()
