"""Tests for the concurrent collector: fan-out, isolation and timeouts."""

from __future__ import annotations

import asyncio
import time

import pytest

from lifelog.telemetry.adapters import build_default_adapters
from lifelog.telemetry.adapters.health import HeartAdapter, StepCountAdapter
from lifelog.telemetry.base import FetchStatus, MetricKind
from lifelog.telemetry.collector import ParallelCollector
from lifelog.telemetry.config_loader import TelemetryConfig
from lifelog.telemetry.errors import PermissionDeniedError
from lifelog.telemetry.tests.conftest import FakeBiometricSource, FakeCalendarSource


class TestParallelCollector:
    @pytest.mark.asyncio
    async def test_one_result_per_kind(
        self, permissions, today_range, telemetry_config, biometric_samples
    ) -> None:
        adapters = build_default_adapters(
            permissions, biometric=FakeBiometricSource(biometric_samples), config=telemetry_config
        )
        report = await ParallelCollector(adapters, telemetry_config).collect(today_range)

        expected = {kind for a in adapters for kind in a.kinds}
        assert set(report.results) == expected
        assert all(r.ok for r in report.results.values())
        assert len(report.samples[MetricKind.STEP_COUNT]) == 4
        assert report.samples[MetricKind.WATER] == []

    @pytest.mark.asyncio
    async def test_denied_source_does_not_abort_batch(
        self, permissions, today_range, telemetry_config, biometric_samples
    ) -> None:
        adapters = build_default_adapters(
            permissions,
            biometric=FakeBiometricSource(biometric_samples),
            calendar=FakeCalendarSource(grant=PermissionDeniedError("no calendar")),
            config=telemetry_config,
        )
        report = await ParallelCollector(adapters, telemetry_config).collect(today_range)

        assert report.status_of(MetricKind.CALENDAR_EVENT) is FetchStatus.DENIED
        assert report.samples[MetricKind.CALENDAR_EVENT] == []
        assert report.status_of(MetricKind.STEP_COUNT) is FetchStatus.OK
        assert [r.kind for r in report.degraded] == [MetricKind.CALENDAR_EVENT]

    @pytest.mark.asyncio
    async def test_unavailable_adapter_skips_fetches(
        self, permissions, today_range, telemetry_config
    ) -> None:
        source = FakeBiometricSource(available=False)
        adapters = [StepCountAdapter(source, permissions)]
        report = await ParallelCollector(adapters, telemetry_config).collect(today_range)

        assert report.status_of(MetricKind.STEP_COUNT) is FetchStatus.UNAVAILABLE
        assert source.fetch_calls == []
        assert source.authorization_requests == []

    @pytest.mark.asyncio
    async def test_fetches_run_concurrently(
        self, permissions, today_range, telemetry_config
    ) -> None:
        delays = {
            MetricKind.HEART_RATE: 0.2,
            MetricKind.RESTING_HEART_RATE: 0.2,
            MetricKind.HEART_RATE_VARIABILITY: 0.2,
            MetricKind.WALKING_HEART_RATE_AVERAGE: 0.2,
        }
        adapters = [HeartAdapter(FakeBiometricSource(delays=delays), permissions)]

        started = time.monotonic()
        report = await ParallelCollector(adapters, telemetry_config).collect(today_range)
        elapsed = time.monotonic() - started

        assert len(report.results) == 4
        # Bounded by the slowest fetch, not the sum of all four
        assert elapsed < 0.6

    @pytest.mark.asyncio
    async def test_stuck_fetch_times_out_as_unavailable(
        self, permissions, today_range, telemetry_config: TelemetryConfig
    ) -> None:
        telemetry_config.timeouts.per_source["health"] = 0.05
        source = FakeBiometricSource(delays={MetricKind.STEP_COUNT: 5})
        report = await ParallelCollector(
            [StepCountAdapter(source, permissions)], telemetry_config
        ).collect(today_range)

        result = report.results[MetricKind.STEP_COUNT]
        assert result.status is FetchStatus.UNAVAILABLE
        assert result.detail == "timed out after 0.05s"

    @pytest.mark.asyncio
    async def test_hanging_availability_probe(
        self, permissions, today_range, telemetry_config: TelemetryConfig
    ) -> None:
        telemetry_config.timeouts.availability_seconds = 0.05
        source = FakeBiometricSource()

        async def never_answers() -> bool:
            await asyncio.sleep(5)
            return True

        source.is_available = never_answers  # type: ignore[method-assign]
        report = await ParallelCollector(
            [StepCountAdapter(source, permissions)], telemetry_config
        ).collect(today_range)
        assert report.status_of(MetricKind.STEP_COUNT) is FetchStatus.UNAVAILABLE

    @pytest.mark.asyncio
    async def test_disabled_kinds_are_skipped(
        self, permissions, today_range, telemetry_config: TelemetryConfig
    ) -> None:
        telemetry_config.disabled_kinds = [MetricKind.RESTING_HEART_RATE]
        source = FakeBiometricSource()
        report = await ParallelCollector(
            [HeartAdapter(source, permissions)], telemetry_config
        ).collect(today_range)

        assert MetricKind.RESTING_HEART_RATE not in report.results
        assert MetricKind.RESTING_HEART_RATE not in source.fetch_calls

    def test_duplicate_kind_owners_rejected(self, permissions, telemetry_config) -> None:
        source = FakeBiometricSource()
        with pytest.raises(ValueError, match="StepCount"):
            ParallelCollector(
                [StepCountAdapter(source, permissions), StepCountAdapter(source, permissions)],
                telemetry_config,
            )
