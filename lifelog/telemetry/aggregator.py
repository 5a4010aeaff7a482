"""Per-bucket metric reduction.

Each MetricKind has one fixed AggregationPolicy (see ``base.AGGREGATION_POLICIES``):

    SUM                  → total of sample values, rounded to an integer
    AVERAGE              → arithmetic mean, rounded to an integer (empty → 0)
    INTERVAL_PASSTHROUGH → the bucket's samples, unmodified, sorted by start
    SCALAR_SNAPSHOT      → latest sample of the whole run (not per bucket)

Rounding is half-up, so a mean of 70.5 bpm reports 71.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Mapping, Sequence

from lifelog.telemetry.base import (
    AGGREGATION_POLICIES,
    AggregationPolicy,
    MetricKind,
    Sample,
    policy_for,
)
from lifelog.telemetry.bucketing import BucketKey, HourBucket

logger = logging.getLogger("lifelog.telemetry.aggregator")

# Snapshot fields reported with two decimals instead of an integer
PRECISE_KINDS: frozenset[MetricKind] = frozenset(
    {MetricKind.GYROSCOPE, MetricKind.HEIGHT, MetricKind.BODY_MASS}
)


def round_half_up(value: float, ndigits: int = 0) -> float:
    """Round like a person would: 0.5 goes up, not to the nearest even."""
    quantum = Decimal(1).scaleb(-ndigits)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def round_metric(kind: MetricKind, value: float) -> int | float:
    if kind in PRECISE_KINDS:
        return round_half_up(value, 2)
    return int(round_half_up(value))


@dataclass
class BucketAggregate:
    """Reduced metrics for one hour bucket.

    Attributes:
        key:       Local (year, month, day, hour) of the bucket.
        start:     Bucket window start.
        end:       Bucket window end.
        values:    Rounded value per SUM / AVERAGE kind (0 when no samples).
        intervals: Passthrough samples per INTERVAL kind, sorted by start.
    """

    key: BucketKey
    start: datetime
    end: datetime
    values: dict[MetricKind, int] = field(default_factory=dict)
    intervals: dict[MetricKind, list[Sample]] = field(default_factory=dict)


class MetricAggregator:
    """Apply each kind's aggregation policy to hour buckets."""

    def sum(self, samples: Sequence[Sample]) -> float:
        return sum(s.numeric_value for s in samples)

    def mean(self, samples: Sequence[Sample]) -> float:
        if not samples:
            return 0.0
        return self.sum(samples) / len(samples)

    def passthrough(self, samples: Sequence[Sample]) -> list[Sample]:
        # Stable sort keeps source order for intervals sharing a start
        return sorted(samples, key=lambda s: s.start)

    def reduce(self, kind: MetricKind, samples: Sequence[Sample]) -> int | float | list[Sample]:
        """Reduce one kind's samples within a single bucket."""
        policy = policy_for(kind)
        if policy is AggregationPolicy.SUM:
            return round_metric(kind, self.sum(samples))
        if policy is AggregationPolicy.AVERAGE:
            return round_metric(kind, self.mean(samples))
        if policy is AggregationPolicy.INTERVAL_PASSTHROUGH:
            return self.passthrough(samples)
        raise ValueError(f"{kind.value} is a snapshot kind and is not reduced per bucket")

    def aggregate_bucket(self, bucket: HourBucket) -> BucketAggregate:
        aggregate = BucketAggregate(key=bucket.key, start=bucket.start, end=bucket.end)
        for kind, policy in AGGREGATION_POLICIES.items():
            if policy is AggregationPolicy.SCALAR_SNAPSHOT:
                continue
            reduced = self.reduce(kind, bucket.samples_for(kind))
            if policy is AggregationPolicy.INTERVAL_PASSTHROUGH:
                aggregate.intervals[kind] = reduced  # type: ignore[assignment]
            else:
                aggregate.values[kind] = reduced  # type: ignore[assignment]
        return aggregate

    def aggregate(self, buckets: Sequence[HourBucket]) -> list[BucketAggregate]:
        return [self.aggregate_bucket(b) for b in buckets]

    def snapshots(
        self, samples: Mapping[MetricKind, Sequence[Sample]]
    ) -> dict[MetricKind, Sample | None]:
        """Latest sample per SCALAR_SNAPSHOT kind across the whole run."""
        latest: dict[MetricKind, Sample | None] = {}
        for kind, policy in AGGREGATION_POLICIES.items():
            if policy is not AggregationPolicy.SCALAR_SNAPSHOT:
                continue
            kind_samples = samples.get(kind) or []
            latest[kind] = max(kind_samples, key=lambda s: s.start) if kind_samples else None
        logger.debug(
            "Snapshots: %s",
            ", ".join(f"{k.value}={'yes' if v else 'none'}" for k, v in latest.items()),
        )
        return latest
