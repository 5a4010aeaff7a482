"""Shared fixtures and fake platform collaborators for telemetry pipeline tests."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Sequence

import pytest

from lifelog.telemetry.base import MetricKind, Sample, TimeRange
from lifelog.telemetry.config_loader import TelemetryConfig, load_telemetry_config
from lifelog.telemetry.permissions import PermissionCache

# Canonical test identity and clock
TEST_UID = "user-8f3a2c"
TEST_NOW = datetime(2026, 2, 23, 14, 30, tzinfo=timezone.utc)
TEST_DAY = datetime(2026, 2, 23, tzinfo=timezone.utc)


def ms(dt: datetime) -> str:
    """Epoch-milliseconds string, as the platform bridges and the wire format use."""
    return str(int(dt.timestamp() * 1000))


def at(hour: int, minute: int = 0, day: datetime = TEST_DAY) -> datetime:
    return day + timedelta(hours=hour, minutes=minute)


def make_sample(
    kind: MetricKind,
    value: Any,
    start: datetime,
    end: datetime | None = None,
) -> Sample:
    return Sample(kind=kind, value=value, start=start, end=end or start)


# ---------------------------------------------------------------------------
# Fake capability collaborators
# ---------------------------------------------------------------------------


class FakeBiometricSource:
    """In-memory BiometricSource.

    Args:
        samples:   Raw platform dicts returned per kind.
        available: Result of is_available().
        grant:     Result of request_authorization(), or an exception to raise.
        errors:    Exceptions raised by fetch_samples() per kind.
        delays:    Seconds fetch_samples() sleeps per kind before answering.
    """

    def __init__(
        self,
        samples: dict[MetricKind, list[dict[str, Any]]] | None = None,
        available: bool = True,
        grant: bool | Exception = True,
        errors: dict[MetricKind, Exception] | None = None,
        delays: dict[MetricKind, float] | None = None,
    ) -> None:
        self.samples = samples or {}
        self.available = available
        self.grant = grant
        self.errors = errors or {}
        self.delays = delays or {}
        self.authorization_requests: list[list[MetricKind]] = []
        self.fetch_calls: list[MetricKind] = []

    async def is_available(self) -> bool:
        return self.available

    async def request_authorization(self, kinds: Sequence[MetricKind]) -> bool:
        self.authorization_requests.append(list(kinds))
        await asyncio.sleep(0)
        if isinstance(self.grant, Exception):
            raise self.grant
        return self.grant

    async def fetch_samples(
        self, kind: MetricKind, start: datetime, end: datetime
    ) -> list[dict[str, Any]]:
        self.fetch_calls.append(kind)
        if kind in self.delays:
            await asyncio.sleep(self.delays[kind])
        if kind in self.errors:
            raise self.errors[kind]
        return list(self.samples.get(kind, []))


class FakeCalendarSource:
    def __init__(
        self,
        events: list[dict[str, Any]] | None = None,
        calendars: list[dict[str, Any]] | None = None,
        already_granted: bool = False,
        grant: bool | Exception = True,
    ) -> None:
        self.events = events or []
        self.calendars = calendars if calendars is not None else [{"id": "cal-home"}]
        self.already_granted = already_granted
        self.grant = grant
        self.permission_requests = 0
        self.event_queries: list[list[str]] = []

    async def check_permission(self) -> bool:
        return self.already_granted

    async def request_permission(self) -> bool:
        self.permission_requests += 1
        if isinstance(self.grant, Exception):
            raise self.grant
        return self.grant

    async def list_calendars(self) -> list[dict[str, Any]]:
        return list(self.calendars)

    async def list_events(
        self, calendar_ids: Sequence[str], start: datetime, end: datetime
    ) -> list[dict[str, Any]]:
        self.event_queries.append(list(calendar_ids))
        return list(self.events)


class FakeSubscription:
    def __init__(self) -> None:
        self.unsubscribed = False

    def unsubscribe(self) -> None:
        self.unsubscribed = True


class FakeMotionSource:
    """Delivers ``readings`` to the callback as soon as someone subscribes."""

    def __init__(self, readings: list[dict[str, Any]] | None = None, available: bool = True) -> None:
        self.readings = readings or []
        self.available = available
        self.subscriptions: list[FakeSubscription] = []
        self.callback: Callable[[dict[str, Any]], None] | None = None

    async def is_available(self) -> bool:
        return self.available

    def subscribe(
        self,
        kind: MetricKind,
        interval_ms: int,
        callback: Callable[[dict[str, Any]], None],
    ) -> FakeSubscription:
        self.callback = callback
        subscription = FakeSubscription()
        self.subscriptions.append(subscription)
        for reading in self.readings:
            callback(reading)
        return subscription


class FakeLocationSource:
    def __init__(self, location: dict[str, Any] | None = None, grant: bool = True) -> None:
        self.location = location
        self.grant = grant
        self.requests: list[tuple[float, float]] = []

    async def request_permission(self) -> bool:
        return self.grant

    async def current_location(
        self, timeout_seconds: float, maximum_age_seconds: float
    ) -> dict[str, Any] | None:
        self.requests.append((timeout_seconds, maximum_age_seconds))
        return self.location


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def telemetry_config() -> TelemetryConfig:
    """Load the real bundled telemetry config for tests."""
    return load_telemetry_config()


@pytest.fixture
def permissions() -> PermissionCache:
    return PermissionCache()


@pytest.fixture
def today_range() -> TimeRange:
    """00:00 → 14:30 UTC on the test day (15 hourly buckets)."""
    return TimeRange(start=TEST_DAY, end=TEST_NOW)


@pytest.fixture
def biometric_samples() -> dict[MetricKind, list[dict[str, Any]]]:
    """A realistic morning of HealthKit bridge output, mixed field spellings."""
    return {
        MetricKind.STEP_COUNT: [
            {"value": 100, "startDate": ms(at(9, 5)), "endDate": ms(at(9, 10))},
            {"value": 250, "startDate": ms(at(9, 40)), "endDate": ms(at(9, 50))},
            {"value": 0, "startDate": ms(at(9, 55))},
            {"value": 400, "startDate": ms(at(10, 15))},
        ],
        MetricKind.HEART_RATE: [
            {"value": 60, "startDate": ms(at(9, 0))},
            {"value": 80, "startDate": ms(at(9, 30))},
        ],
        MetricKind.ACTIVE_ENERGY: [
            {"kilocalories": 12.4, "startDate": ms(at(9, 0))},
            {"kilocalories": 8.3, "startDate": ms(at(9, 20))},
        ],
        MetricKind.SLEEP: [
            {
                "value": "ASLEEP",
                "startDate": ms(at(1, 30)),
                "endDate": ms(at(3, 15)),
                "category": "core",
            },
        ],
        MetricKind.BODY_MASS: [
            {"value": 71.456, "startDate": ms(at(7, 0))},
            {"value": 71.2, "startDate": ms(at(8, 0))},
        ],
    }
