"""Base classes and canonical data models for the Lifelog telemetry pipeline.

Every source adapter must subclass SourceAdapter and return canonical
``Sample`` objects.  These types are the single source of truth consumed by
the collector, the hour bucketer, the aggregator and the record formatter.

Source-specific field names (``value`` / ``kilocalories`` / ``quantity`` ...)
are mapped onto the canonical shape exactly once, inside the adapter's
normalization step.  Nothing downstream of an adapter ever sees a raw
platform dict.
"""

from __future__ import annotations

import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone, tzinfo
from enum import Enum
from typing import TYPE_CHECKING, Union

from lifelog.telemetry.errors import CapabilityUnavailableError, PermissionDeniedError

if TYPE_CHECKING:
    from lifelog.telemetry.permissions import PermissionCache

logger = logging.getLogger("lifelog.telemetry")


# ---------------------------------------------------------------------------
# Metric kinds and aggregation policies
# ---------------------------------------------------------------------------


class MetricKind(str, Enum):
    """Tagged category of health / motion / calendar data."""

    STEP_COUNT = "StepCount"
    HEART_RATE = "HeartRate"
    RESTING_HEART_RATE = "RestingHeartRate"
    HEART_RATE_VARIABILITY = "HeartRateVariability"
    WALKING_HEART_RATE_AVERAGE = "WalkingHeartRateAverage"
    ACTIVE_ENERGY = "ActiveEnergyBurned"
    BASAL_ENERGY = "BasalEnergyBurned"
    FLIGHTS_CLIMBED = "FlightsClimbed"
    DISTANCE = "DistanceWalkingRunning"
    ENERGY_CONSUMED = "EnergyConsumed"
    PROTEIN = "Protein"
    CARBOHYDRATES = "Carbohydrates"
    SUGAR = "Sugar"
    WATER = "Water"
    SLEEP = "SleepAnalysis"
    MINDFUL_SESSION = "MindfulSession"
    ACTIVITY_SUMMARY = "ActivitySummary"
    WORKOUT = "Workout"
    HEIGHT = "Height"
    BODY_MASS = "BodyMass"
    CALENDAR_EVENT = "CalendarEvent"
    GYROSCOPE = "Gyroscope"
    LOCATION = "Location"


class AggregationPolicy(str, Enum):
    """Reduction rule applied to a metric kind inside one hour bucket."""

    SUM = "sum"
    AVERAGE = "average"
    INTERVAL_PASSTHROUGH = "interval_passthrough"
    SCALAR_SNAPSHOT = "scalar_snapshot"


AGGREGATION_POLICIES: dict[MetricKind, AggregationPolicy] = {
    MetricKind.STEP_COUNT: AggregationPolicy.SUM,
    MetricKind.ACTIVE_ENERGY: AggregationPolicy.SUM,
    MetricKind.BASAL_ENERGY: AggregationPolicy.SUM,
    MetricKind.FLIGHTS_CLIMBED: AggregationPolicy.SUM,
    MetricKind.DISTANCE: AggregationPolicy.SUM,
    MetricKind.ENERGY_CONSUMED: AggregationPolicy.SUM,
    MetricKind.PROTEIN: AggregationPolicy.SUM,
    MetricKind.CARBOHYDRATES: AggregationPolicy.SUM,
    MetricKind.SUGAR: AggregationPolicy.SUM,
    MetricKind.WATER: AggregationPolicy.SUM,
    MetricKind.HEART_RATE: AggregationPolicy.AVERAGE,
    MetricKind.RESTING_HEART_RATE: AggregationPolicy.AVERAGE,
    MetricKind.HEART_RATE_VARIABILITY: AggregationPolicy.AVERAGE,
    MetricKind.WALKING_HEART_RATE_AVERAGE: AggregationPolicy.AVERAGE,
    MetricKind.SLEEP: AggregationPolicy.INTERVAL_PASSTHROUGH,
    MetricKind.MINDFUL_SESSION: AggregationPolicy.INTERVAL_PASSTHROUGH,
    MetricKind.CALENDAR_EVENT: AggregationPolicy.INTERVAL_PASSTHROUGH,
    MetricKind.WORKOUT: AggregationPolicy.INTERVAL_PASSTHROUGH,
    MetricKind.ACTIVITY_SUMMARY: AggregationPolicy.INTERVAL_PASSTHROUGH,
    MetricKind.GYROSCOPE: AggregationPolicy.SCALAR_SNAPSHOT,
    MetricKind.LOCATION: AggregationPolicy.SCALAR_SNAPSHOT,
    MetricKind.HEIGHT: AggregationPolicy.SCALAR_SNAPSHOT,
    MetricKind.BODY_MASS: AggregationPolicy.SCALAR_SNAPSHOT,
}


def policy_for(kind: MetricKind) -> AggregationPolicy:
    """Return the fixed aggregation policy for a metric kind."""
    return AGGREGATION_POLICIES[kind]


# ---------------------------------------------------------------------------
# Structured sample payloads (one per interval / snapshot kind)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SleepSegment:
    """One sleep-analysis segment.

    Attributes:
        value:    Platform sleep value ("ASLEEP", "INBED", "CORE", ... or a number).
        category: Optional platform category value.
    """

    value: str | float = 0
    category: str | None = None


@dataclass(frozen=True)
class MindfulEntry:
    value: float = 0


@dataclass(frozen=True)
class CalendarEntry:
    """A calendar event.  Bounds live on the enclosing Sample."""

    id: str
    title: str = ""
    all_day: bool = False
    location: str = ""
    notes: str = ""


@dataclass(frozen=True)
class ActivitySummaryEntry:
    """Daily activity ring summary.

    Attributes:
        active_energy_burned:      Active kcal for the day.
        active_energy_burned_goal: Move goal (kcal).
        exercise_time:             Exercise minutes.
        exercise_time_goal:        Exercise goal (minutes).
        stand_hours:               Stand hours.
        stand_hours_goal:          Stand goal (hours).
    """

    active_energy_burned: float = 0
    active_energy_burned_goal: float = 0
    exercise_time: float = 0
    exercise_time_goal: float = 0
    stand_hours: float = 0
    stand_hours_goal: float = 0


@dataclass(frozen=True)
class WorkoutEntry:
    id: str = ""
    activity_name: str = ""
    calories: float = 0
    distance: float = 0


@dataclass(frozen=True)
class GyroscopeReading:
    """Raw rotation rate in rad/s around each device axis."""

    x: float = 0.0
    y: float = 0.0
    z: float = 0.0

    @property
    def magnitude(self) -> float:
        return math.sqrt(self.x * self.x + self.y * self.y + self.z * self.z)


@dataclass(frozen=True)
class LocationReading:
    latitude: float
    longitude: float
    accuracy: float | None = None
    altitude: float | None = None
    speed: float | None = None
    heading: float | None = None
    address: str | None = None


SamplePayload = Union[
    SleepSegment,
    MindfulEntry,
    CalendarEntry,
    ActivitySummaryEntry,
    WorkoutEntry,
    GyroscopeReading,
    LocationReading,
]


# ---------------------------------------------------------------------------
# Canonical sample and time range
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Sample:
    """One raw reading or interval from a source.

    Point samples have ``start == end``; interval samples (sleep segments,
    calendar events, mindful sessions, workouts) have ``end > start``.
    Both bounds are timezone-aware.

    Attributes:
        kind:  Metric kind this sample belongs to.
        value: Numeric reading, or a structured payload for interval / snapshot kinds.
        start: Start of the reading.
        end:   End of the reading (``>= start``).
    """

    kind: MetricKind
    value: float | SamplePayload
    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        if self.end < self.start:
            raise ValueError(
                f"Sample end {self.end.isoformat()} precedes start {self.start.isoformat()}"
            )

    @property
    def is_point(self) -> bool:
        return self.start == self.end

    @property
    def numeric_value(self) -> float:
        """The value as a float; structured payloads count as 0."""
        if isinstance(self.value, (int, float)) and not isinstance(self.value, bool):
            return float(self.value)
        return 0.0


@dataclass(frozen=True)
class TimeRange:
    """Normalized ``[start, end)`` interval.  Invariant: ``start <= end``."""

    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        if self.end < self.start:
            raise ValueError("TimeRange start must not be after end")

    @property
    def duration(self) -> timedelta:
        return self.end - self.start


# ---------------------------------------------------------------------------
# Fetch results
# ---------------------------------------------------------------------------


class FetchStatus(str, Enum):
    """Side-channel reason code attached to every per-source fetch."""

    OK = "ok"
    DENIED = "denied"
    UNAVAILABLE = "unavailable"
    ERROR = "error"


class Authorization(str, Enum):
    GRANTED = "granted"
    DENIED = "denied"


@dataclass
class FetchResult:
    """Outcome of one ``SourceAdapter.fetch`` call.

    Anything other than ``OK`` always carries an empty sample list, so the
    collector can treat the source as "no data".

    Attributes:
        kind:    Metric kind requested.
        source:  Adapter SOURCE_ID.
        status:  Reason code.
        samples: Normalized samples (empty unless status is OK).
        detail:  Human-readable reason for non-OK results.
    """

    kind: MetricKind
    source: str
    status: FetchStatus = FetchStatus.OK
    samples: list[Sample] = field(default_factory=list)
    detail: str | None = None

    @property
    def ok(self) -> bool:
        return self.status is FetchStatus.OK

    @classmethod
    def degraded(
        cls, kind: MetricKind, source: str, status: FetchStatus, detail: str | None = None
    ) -> FetchResult:
        return cls(kind=kind, source=source, status=status, samples=[], detail=detail)


# ---------------------------------------------------------------------------
# Abstract base adapter
# ---------------------------------------------------------------------------


class SourceAdapter(ABC):
    """Abstract base class for all permission-gated data sources.

    Each adapter wraps one capability collaborator it does not own and
    exposes a uniform surface to the collector.

    Subclasses must implement:
        - _request_authorization()
        - _fetch_samples()

    Optional overrides:
        - is_available()   (default True)
        - aclose()         (default no-op)
    """

    #: Unique slug used in logs and fetch reports.
    SOURCE_ID: str = "unknown"

    #: Human-readable name for logging.
    DISPLAY_NAME: str = "Unknown Source"

    #: Metric kinds this adapter can fetch.
    KINDS: tuple[MetricKind, ...] = ()

    #: Config key in ``timeouts`` used by the collector for this adapter.
    TIMEOUT_KEY: str = "health"

    def __init__(self, permissions: PermissionCache, tz: tzinfo = timezone.utc) -> None:
        self._permissions = permissions
        self._tz = tz

    @property
    def kinds(self) -> tuple[MetricKind, ...]:
        return self.KINDS

    async def is_available(self) -> bool:
        """Return False when the platform lacks the capability altogether."""
        return True

    async def aclose(self) -> None:
        """Release any background resources held by the adapter."""

    async def ensure_authorized(self, kind: MetricKind) -> Authorization:
        """Make sure ``kind`` is authorized, prompting only when not yet granted.

        A grant is recorded in the permission cache; a denial is not, so the
        next run asks again.

        Raises:
            CapabilityUnavailableError: If the capability cannot be queried at all.
        """
        if self._permissions.is_authorized(kind):
            return Authorization.GRANTED

        async with self._permissions.lock_for(kind):
            # A concurrent fetch for the same kind may have been granted meanwhile
            if self._permissions.is_authorized(kind):
                return Authorization.GRANTED
            try:
                granted = await self._request_authorization(kind)
            except PermissionDeniedError:
                granted = False
            if granted:
                self._permissions.grant(kind)

        if granted:
            logger.debug("%s: %s authorized", self.DISPLAY_NAME, kind.value)
            return Authorization.GRANTED

        logger.warning("%s: permission for %s denied", self.DISPLAY_NAME, kind.value)
        return Authorization.DENIED

    async def fetch(self, kind: MetricKind, time_range: TimeRange) -> FetchResult:
        """Fetch normalized samples for ``kind`` inside ``time_range``.

        Never raises for permission, availability or platform errors; those
        degrade to an empty result tagged with a reason code.
        """
        try:
            if await self.ensure_authorized(kind) is Authorization.DENIED:
                return FetchResult.degraded(
                    kind, self.SOURCE_ID, FetchStatus.DENIED, "permission denied"
                )
            samples = await self._fetch_samples(kind, time_range)
        except PermissionDeniedError as exc:
            logger.warning("%s: %s denied: %s", self.DISPLAY_NAME, kind.value, exc)
            return FetchResult.degraded(kind, self.SOURCE_ID, FetchStatus.DENIED, str(exc))
        except CapabilityUnavailableError as exc:
            logger.info("%s: %s unavailable: %s", self.DISPLAY_NAME, kind.value, exc)
            return FetchResult.degraded(
                kind, self.SOURCE_ID, FetchStatus.UNAVAILABLE, str(exc)
            )
        except Exception as exc:
            if _looks_like_denial(exc):
                logger.warning("%s: %s denied: %s", self.DISPLAY_NAME, kind.value, exc)
                return FetchResult.degraded(kind, self.SOURCE_ID, FetchStatus.DENIED, str(exc))
            logger.warning(
                "%s: fetching %s failed: %s", self.DISPLAY_NAME, kind.value, exc
            )
            return FetchResult.degraded(kind, self.SOURCE_ID, FetchStatus.ERROR, str(exc))

        return FetchResult(kind=kind, source=self.SOURCE_ID, samples=samples)

    @abstractmethod
    async def _request_authorization(self, kind: MetricKind) -> bool:
        """Ask the underlying capability for read access to ``kind``.

        Returns:
            True if access was granted.
        """

    @abstractmethod
    async def _fetch_samples(self, kind: MetricKind, time_range: TimeRange) -> list[Sample]:
        """Query the capability and normalize its response into Samples."""

    # ------------------------------------------------------------------
    # Shared helpers available to all adapters
    # ------------------------------------------------------------------

    @staticmethod
    def _safe_float(value: object, default: float = 0.0) -> float:
        """Safely coerce a value to float, returning ``default`` on failure."""
        if value is None or isinstance(value, bool):
            return default
        try:
            result = float(value)  # type: ignore[arg-type]
        except (TypeError, ValueError):
            return default
        if math.isnan(result) or math.isinf(result):
            return default
        return result

    def _parse_timestamp(self, value: object) -> datetime | None:
        """Parse an ISO-8601 string, epoch milliseconds, date or datetime.

        Naive values are interpreted in the adapter's local timezone.
        Returns None if the value is missing or unparseable.
        """
        return parse_timestamp(value, self._tz)

    def _make_sample(
        self,
        kind: MetricKind,
        value: float | SamplePayload,
        start_raw: object,
        end_raw: object = None,
    ) -> Sample | None:
        """Build a Sample from raw bounds, clamping a missing or inverted end."""
        start = self._parse_timestamp(start_raw)
        if start is None:
            logger.debug("%s: dropping %s sample without a start", self.DISPLAY_NAME, kind.value)
            return None
        end = self._parse_timestamp(end_raw) or start
        if end < start:
            end = start
        return Sample(kind=kind, value=value, start=start, end=end)


def parse_timestamp(value: object, tz: tzinfo = timezone.utc) -> datetime | None:
    """Parse a loosely-typed timestamp into an aware datetime.

    Accepts aware/naive datetimes, dates (midnight), epoch milliseconds
    (int, float or digit string) and ISO-8601 strings.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        dt = datetime(value.year, value.month, value.day)
    elif isinstance(value, (int, float)):
        if math.isnan(value) or math.isinf(value):
            return None
        try:
            return datetime.fromtimestamp(value / 1000.0, tz=tz)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.lstrip("-").isdigit():
            return parse_timestamp(int(text), tz)
        try:
            dt = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            logger.debug("Could not parse timestamp string: %r", value)
            return None
    else:
        return None

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=tz)
    return dt


def _looks_like_denial(exc: Exception) -> bool:
    """HealthKit reports denials as error code 5 or an 'authorization' message."""
    if getattr(exc, "code", None) == 5:
        return True
    message = str(exc)
    return "Code=5" in message or "authorization" in message.lower()
