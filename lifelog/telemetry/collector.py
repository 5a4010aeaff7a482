"""Concurrent fan-out / fan-in over every source adapter.

One collection pass:
1. Probe each adapter's ``is_available()`` once (bounded by the availability timeout)
2. Issue one ``fetch`` per enabled (adapter, kind) pair concurrently
3. Bound each fetch by the adapter's per-source timeout
4. Assemble the per-kind report consumed by the hour bucketer

No single source can fail the batch: adapters already degrade permission and
platform errors to empty results, and a timeout degrades the same way.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Sequence

from lifelog.telemetry.base import (
    FetchResult,
    FetchStatus,
    MetricKind,
    Sample,
    SourceAdapter,
    TimeRange,
)
from lifelog.telemetry.config_loader import TelemetryConfig, get_telemetry_config

logger = logging.getLogger("lifelog.telemetry.collector")


@dataclass
class CollectionReport:
    """Everything one collection pass produced.

    Attributes:
        time_range: The range every adapter was asked for.
        results:    One FetchResult per collected kind, in adapter order.
    """

    time_range: TimeRange
    results: dict[MetricKind, FetchResult] = field(default_factory=dict)

    @property
    def samples(self) -> dict[MetricKind, list[Sample]]:
        """Raw samples per kind; degraded kinds map to an empty list."""
        return {kind: list(result.samples) for kind, result in self.results.items()}

    def status_of(self, kind: MetricKind) -> FetchStatus | None:
        result = self.results.get(kind)
        return result.status if result else None

    @property
    def degraded(self) -> list[FetchResult]:
        return [r for r in self.results.values() if not r.ok]


class ParallelCollector:
    """Fan out one fetch per (adapter, kind) and wait for all of them.

    Usage::

        collector = ParallelCollector(adapters)
        report = await collector.collect(time_range)
        report.samples[MetricKind.STEP_COUNT]
    """

    def __init__(
        self,
        adapters: Sequence[SourceAdapter],
        config: TelemetryConfig | None = None,
    ) -> None:
        seen: dict[MetricKind, str] = {}
        for adapter in adapters:
            for kind in adapter.kinds:
                if kind in seen:
                    raise ValueError(
                        f"{kind.value} is served by both '{seen[kind]}' and '{adapter.SOURCE_ID}'"
                    )
                seen[kind] = adapter.SOURCE_ID
        self._adapters = list(adapters)
        self._config = config or get_telemetry_config()

    @property
    def adapters(self) -> list[SourceAdapter]:
        return list(self._adapters)

    async def collect(self, time_range: TimeRange) -> CollectionReport:
        """Collect every enabled kind from every adapter for ``time_range``.

        Returns:
            CollectionReport with exactly one FetchResult per enabled kind.
        """
        availability = await asyncio.gather(*(self._probe(a) for a in self._adapters))

        pending = []
        for adapter, available in zip(self._adapters, availability):
            for kind in adapter.kinds:
                if not self._config.is_enabled(kind):
                    continue
                if available:
                    pending.append(self._fetch(adapter, kind, time_range))
                else:
                    pending.append(self._unavailable(adapter, kind))

        logger.debug("Collector: fanning out %d fetches", len(pending))
        results = await asyncio.gather(*pending)

        report = CollectionReport(time_range=time_range)
        for result in results:
            report.results[result.kind] = result
            logger.info(
                "Collector: %-24s %-11s %d samples",
                result.kind.value, result.status.value, len(result.samples),
            )
        return report

    async def _probe(self, adapter: SourceAdapter) -> bool:
        timeout = self._config.timeouts.availability_seconds
        try:
            available = await asyncio.wait_for(adapter.is_available(), timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "%s: availability check timed out after %gs", adapter.DISPLAY_NAME, timeout
            )
            return False
        except Exception as exc:
            logger.warning("%s: availability check failed: %s", adapter.DISPLAY_NAME, exc)
            return False
        if not available:
            logger.info("%s: not available on this device", adapter.DISPLAY_NAME)
        return bool(available)

    async def _unavailable(self, adapter: SourceAdapter, kind: MetricKind) -> FetchResult:
        return FetchResult.degraded(
            kind, adapter.SOURCE_ID, FetchStatus.UNAVAILABLE, "capability not available"
        )

    async def _fetch(
        self, adapter: SourceAdapter, kind: MetricKind, time_range: TimeRange
    ) -> FetchResult:
        timeout = self._config.timeouts.seconds_for(adapter.TIMEOUT_KEY)
        try:
            return await asyncio.wait_for(adapter.fetch(kind, time_range), timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "%s: fetching %s timed out after %gs", adapter.DISPLAY_NAME, kind.value, timeout
            )
            return FetchResult.degraded(
                kind, adapter.SOURCE_ID, FetchStatus.UNAVAILABLE, f"timed out after {timeout:g}s"
            )
