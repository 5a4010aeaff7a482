"""Interfaces of the platform collaborators the pipeline consumes.

The core never implements these; the host application passes in objects
that satisfy them (a HealthKit bridge, a calendar bridge, a sensor bridge).
Every method may raise ``PermissionDeniedError`` or
``CapabilityUnavailableError`` from ``lifelog.telemetry.errors``.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Callable, Protocol, Sequence

from lifelog.telemetry.base import MetricKind


class BiometricSource(Protocol):
    """Health / activity store (HealthKit and friends)."""

    async def is_available(self) -> bool: ...

    async def request_authorization(self, kinds: Sequence[MetricKind]) -> bool:
        """Prompt for read access; True when granted."""
        ...

    async def fetch_samples(
        self, kind: MetricKind, start: datetime, end: datetime
    ) -> list[dict[str, Any]]:
        """Return raw sample dicts in the platform's own field naming."""
        ...


class CalendarSource(Protocol):
    async def check_permission(self) -> bool: ...

    async def request_permission(self) -> bool: ...

    async def list_calendars(self) -> list[dict[str, Any]]: ...

    async def list_events(
        self, calendar_ids: Sequence[str], start: datetime, end: datetime
    ) -> list[dict[str, Any]]: ...


class Subscription(Protocol):
    def unsubscribe(self) -> None: ...


class MotionSensorSource(Protocol):
    async def is_available(self) -> bool: ...

    def subscribe(
        self,
        kind: MetricKind,
        interval_ms: int,
        callback: Callable[[dict[str, Any]], None],
    ) -> Subscription: ...


class LocationSource(Protocol):
    async def request_permission(self) -> bool: ...

    async def current_location(
        self, timeout_seconds: float, maximum_age_seconds: float
    ) -> dict[str, Any] | None: ...
