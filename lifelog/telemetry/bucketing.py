"""Partition a time range into one-hour buckets and assign samples to them.

Bucket boundaries are walked in UTC from the local top-of-hour of the range
start, so every bucket is exactly one hour long even across DST changes; the
bucket key is the wall-clock (year, month, day, hour) in the local timezone.

Assignment rules:
    Sum / Average kinds    → only the bucket containing ``sample.start``
    IntervalPassthrough    → every bucket whose window overlaps ``[start, end)``
                             (a zero-length interval is treated as a point)
    ScalarSnapshot         → never bucketed; attached to every record instead
"""

from __future__ import annotations

import bisect
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Mapping, Sequence

from lifelog.telemetry.base import AggregationPolicy, MetricKind, Sample, TimeRange, policy_for

logger = logging.getLogger("lifelog.telemetry.bucketing")

HOUR = timedelta(hours=1)
DEFAULT_MAX_BUCKETS = 168

BucketKey = tuple[int, int, int, int]


@dataclass
class HourBucket:
    """One ``[start, end)`` hour window and the samples assigned to it.

    Attributes:
        key:     Local wall-clock (year, month, day, hour).
        start:   Window start (UTC).
        end:     Window end, always ``start + 1h``.
        samples: Samples per kind, in source order.
    """

    key: BucketKey
    start: datetime
    end: datetime
    samples: dict[MetricKind, list[Sample]] = field(default_factory=dict)

    def add(self, sample: Sample) -> None:
        self.samples.setdefault(sample.kind, []).append(sample)

    def samples_for(self, kind: MetricKind) -> list[Sample]:
        return self.samples.get(kind, [])


def _overlap(
    start_a: datetime, end_a: datetime, start_b: datetime, end_b: datetime
) -> timedelta:
    """Return how long two half-open intervals overlap (zero if disjoint)."""
    overlap_start = max(start_a, start_b)
    overlap_end = min(end_a, end_b)
    return max(timedelta(0), overlap_end - overlap_start)


class HourBucketer:
    """Build hour buckets for a range and distribute samples into them."""

    def __init__(self, max_buckets: int = DEFAULT_MAX_BUCKETS, tz: tzinfo = timezone.utc) -> None:
        if max_buckets < 1:
            raise ValueError("max_buckets must be at least 1")
        self._max_buckets = max_buckets
        self._tz = tz

    @property
    def max_buckets(self) -> int:
        return self._max_buckets

    def bucket_range(self, time_range: TimeRange) -> list[HourBucket]:
        """Return consecutive empty buckets covering ``time_range``.

        The walk starts at the local top of the hour containing
        ``time_range.start`` and stops at ``end`` or after ``max_buckets``
        buckets, whichever comes first.  A zero-length range still yields the
        bucket containing its start.
        """
        local_start = time_range.start.astimezone(self._tz)
        cursor = local_start.replace(minute=0, second=0, microsecond=0).astimezone(timezone.utc)

        buckets: list[HourBucket] = []
        while len(buckets) < self._max_buckets and (cursor < time_range.end or not buckets):
            local = cursor.astimezone(self._tz)
            key = (local.year, local.month, local.day, local.hour)
            buckets.append(HourBucket(key=key, start=cursor, end=cursor + HOUR))
            cursor += HOUR

        if cursor < time_range.end:
            logger.info(
                "Range %s → %s exceeds %d hourly buckets; truncating at %s",
                time_range.start.isoformat(),
                time_range.end.isoformat(),
                self._max_buckets,
                cursor.isoformat(),
            )
        return buckets

    def assign(
        self,
        buckets: Sequence[HourBucket],
        samples: Mapping[MetricKind, Sequence[Sample]],
    ) -> None:
        """Distribute samples into ``buckets`` in place.

        Samples falling outside every bucket are dropped.
        """
        if not buckets:
            return
        starts = [b.start for b in buckets]

        for kind, kind_samples in samples.items():
            policy = policy_for(kind)
            if policy is AggregationPolicy.SCALAR_SNAPSHOT:
                continue
            placed = 0
            for sample in kind_samples:
                if policy is AggregationPolicy.INTERVAL_PASSTHROUGH and not sample.is_point:
                    placed += self._assign_interval(buckets, starts, sample)
                else:
                    placed += self._assign_point(buckets, starts, sample)
            logger.debug(
                "Bucketed %s: %d samples → %d placements", kind.value, len(kind_samples), placed
            )

    def bucketize(
        self,
        time_range: TimeRange,
        samples: Mapping[MetricKind, Sequence[Sample]],
    ) -> list[HourBucket]:
        """``bucket_range`` followed by ``assign``."""
        buckets = self.bucket_range(time_range)
        self.assign(buckets, samples)
        return buckets

    @staticmethod
    def _assign_point(
        buckets: Sequence[HourBucket], starts: list[datetime], sample: Sample
    ) -> int:
        idx = bisect.bisect_right(starts, sample.start) - 1
        if idx < 0 or sample.start >= buckets[idx].end:
            return 0
        buckets[idx].add(sample)
        return 1

    @staticmethod
    def _assign_interval(
        buckets: Sequence[HourBucket], starts: list[datetime], sample: Sample
    ) -> int:
        # First bucket that could overlap is the one containing sample.start
        idx = max(bisect.bisect_right(starts, sample.start) - 1, 0)
        placed = 0
        while idx < len(buckets) and buckets[idx].start < sample.end:
            bucket = buckets[idx]
            if _overlap(sample.start, sample.end, bucket.start, bucket.end) > timedelta(0):
                bucket.add(sample)
                placed += 1
            idx += 1
        return placed
