"""Tests for per-bucket metric reduction."""

from __future__ import annotations

import pytest

from lifelog.telemetry.aggregator import MetricAggregator, round_half_up, round_metric
from lifelog.telemetry.base import AGGREGATION_POLICIES, AggregationPolicy, MetricKind, TimeRange
from lifelog.telemetry.bucketing import HourBucketer
from lifelog.telemetry.tests.conftest import at, make_sample


@pytest.fixture
def aggregator() -> MetricAggregator:
    return MetricAggregator()


class TestRounding:
    def test_half_up(self) -> None:
        assert round_half_up(70.5) == 71
        assert round_half_up(2.5) == 3
        assert round_half_up(1.005, 2) == 1.01

    def test_integer_kinds(self) -> None:
        assert round_metric(MetricKind.STEP_COUNT, 349.6) == 350
        assert isinstance(round_metric(MetricKind.HEART_RATE, 72.2), int)

    def test_precise_kinds_keep_two_decimals(self) -> None:
        assert round_metric(MetricKind.GYROSCOPE, 0.123456) == 0.12
        assert round_metric(MetricKind.BODY_MASS, 71.456) == 71.46


class TestPolicyTable:
    def test_every_kind_has_a_policy(self) -> None:
        assert set(AGGREGATION_POLICIES) == set(MetricKind)

    @pytest.mark.parametrize(
        ("kind", "policy"),
        [
            (MetricKind.STEP_COUNT, AggregationPolicy.SUM),
            (MetricKind.WATER, AggregationPolicy.SUM),
            (MetricKind.HEART_RATE_VARIABILITY, AggregationPolicy.AVERAGE),
            (MetricKind.WORKOUT, AggregationPolicy.INTERVAL_PASSTHROUGH),
            (MetricKind.GYROSCOPE, AggregationPolicy.SCALAR_SNAPSHOT),
        ],
    )
    def test_policy(self, kind: MetricKind, policy: AggregationPolicy) -> None:
        assert AGGREGATION_POLICIES[kind] is policy


class TestBucketReduction:
    def test_sum_of_steps(self, aggregator: MetricAggregator) -> None:
        r = TimeRange(start=at(9), end=at(11))
        steps = [
            make_sample(MetricKind.STEP_COUNT, 100, at(9, 1)),
            make_sample(MetricKind.STEP_COUNT, 250, at(9, 30)),
            make_sample(MetricKind.STEP_COUNT, 0, at(9, 59)),
            make_sample(MetricKind.STEP_COUNT, 999, at(10, 0)),
        ]
        buckets = HourBucketer().bucketize(r, {MetricKind.STEP_COUNT: steps})
        first, second = aggregator.aggregate(buckets)
        assert first.values[MetricKind.STEP_COUNT] == 350
        assert second.values[MetricKind.STEP_COUNT] == 999

    def test_average_heart_rate(self, aggregator: MetricAggregator) -> None:
        r = TimeRange(start=at(9), end=at(11))
        hr = [
            make_sample(MetricKind.HEART_RATE, 60, at(9, 0)),
            make_sample(MetricKind.HEART_RATE, 80, at(9, 30)),
        ]
        buckets = HourBucketer().bucketize(r, {MetricKind.HEART_RATE: hr})
        first, second = aggregator.aggregate(buckets)
        assert first.values[MetricKind.HEART_RATE] == 70
        assert second.values[MetricKind.HEART_RATE] == 0

    def test_mean_of_nothing_is_zero(self, aggregator: MetricAggregator) -> None:
        assert aggregator.mean([]) == 0.0

    def test_every_numeric_kind_present(self, aggregator: MetricAggregator) -> None:
        [empty] = aggregator.aggregate(HourBucketer().bucket_range(TimeRange(at(9), at(10))))
        numeric = {
            k for k, p in AGGREGATION_POLICIES.items()
            if p in (AggregationPolicy.SUM, AggregationPolicy.AVERAGE)
        }
        assert set(empty.values) == numeric
        assert all(v == 0 for v in empty.values.values())
        assert all(v == [] for v in empty.intervals.values())

    def test_passthrough_sorted_by_start(self, aggregator: MetricAggregator) -> None:
        late = make_sample(MetricKind.CALENDAR_EVENT, "late", at(9, 45), at(9, 50))
        early = make_sample(MetricKind.CALENDAR_EVENT, "early", at(9, 10), at(9, 20))
        assert aggregator.passthrough([late, early]) == [early, late]

    def test_snapshot_kind_not_reduced(self, aggregator: MetricAggregator) -> None:
        with pytest.raises(ValueError):
            aggregator.reduce(MetricKind.GYROSCOPE, [])


class TestSnapshots:
    def test_latest_sample_wins(self, aggregator: MetricAggregator) -> None:
        older = make_sample(MetricKind.BODY_MASS, 72.0, at(7))
        newer = make_sample(MetricKind.BODY_MASS, 71.2, at(8))
        snaps = aggregator.snapshots({MetricKind.BODY_MASS: [newer, older]})
        assert snaps[MetricKind.BODY_MASS] is newer

    def test_missing_snapshot_is_none(self, aggregator: MetricAggregator) -> None:
        snaps = aggregator.snapshots({})
        assert snaps == {
            MetricKind.GYROSCOPE: None,
            MetricKind.LOCATION: None,
            MetricKind.HEIGHT: None,
            MetricKind.BODY_MASS: None,
        }
