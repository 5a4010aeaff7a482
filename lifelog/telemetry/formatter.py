"""Turn aggregated hour buckets into fixed-schema ``HourlyRecord`` objects.

One record is emitted per bucket, in bucket order.  Snapshot kinds
(gyroscope, height, body mass, location) are identical on every record of a
run.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Mapping, Sequence

from lifelog.models.base import epoch_ms
from lifelog.models.telemetry import (
    ActivitySummaryItem,
    CalendarEventItem,
    HourlyRecord,
    LocationItem,
    MindfulItem,
    SleepItem,
    WorkoutItem,
)
from lifelog.telemetry.aggregator import BucketAggregate, round_metric
from lifelog.telemetry.base import (
    ActivitySummaryEntry,
    CalendarEntry,
    GyroscopeReading,
    LocationReading,
    MetricKind,
    MindfulEntry,
    Sample,
    SleepSegment,
    WorkoutEntry,
)

logger = logging.getLogger("lifelog.telemetry.formatter")

# SUM / AVERAGE kinds → HourlyRecord field
VALUE_FIELDS: dict[MetricKind, str] = {
    MetricKind.STEP_COUNT: "step_count",
    MetricKind.BASAL_ENERGY: "basal_energy_burned",
    MetricKind.ACTIVE_ENERGY: "active_energy_burned",
    MetricKind.FLIGHTS_CLIMBED: "flights_climbed",
    MetricKind.DISTANCE: "distance_walking_running",
    MetricKind.HEART_RATE: "heart_rate",
    MetricKind.RESTING_HEART_RATE: "resting_heart_rate",
    MetricKind.HEART_RATE_VARIABILITY: "heart_rate_variability",
    MetricKind.WALKING_HEART_RATE_AVERAGE: "walking_heart_rate_average",
    MetricKind.ENERGY_CONSUMED: "energy_consumed",
    MetricKind.PROTEIN: "protein",
    MetricKind.CARBOHYDRATES: "carbohydrates",
    MetricKind.SUGAR: "sugar",
    MetricKind.WATER: "water",
}


# ---------------------------------------------------------------------------
# Interval entry builders
# ---------------------------------------------------------------------------


def _sleep_item(sample: Sample) -> SleepItem:
    segment = sample.value if isinstance(sample.value, SleepSegment) else SleepSegment()
    return SleepItem(
        start_date=epoch_ms(sample.start),
        end_date=epoch_ms(sample.end),
        value=segment.value,
        category=segment.category,
    )


def _mindful_item(sample: Sample) -> MindfulItem:
    entry = sample.value if isinstance(sample.value, MindfulEntry) else MindfulEntry()
    return MindfulItem(
        start_date=epoch_ms(sample.start), end_date=epoch_ms(sample.end), value=entry.value
    )


def _calendar_item(sample: Sample) -> CalendarEventItem:
    entry = sample.value if isinstance(sample.value, CalendarEntry) else CalendarEntry(id="")
    return CalendarEventItem(
        id=entry.id,
        title=entry.title,
        start_date=epoch_ms(sample.start),
        end_date=epoch_ms(sample.end),
        all_day=entry.all_day,
        location=entry.location,
        notes=entry.notes,
    )


def _activity_item(sample: Sample) -> ActivitySummaryItem:
    entry = (
        sample.value if isinstance(sample.value, ActivitySummaryEntry) else ActivitySummaryEntry()
    )
    return ActivitySummaryItem(
        date=epoch_ms(sample.start),
        active_energy_burned=entry.active_energy_burned,
        active_energy_burned_goal=entry.active_energy_burned_goal,
        exercise_time=entry.exercise_time,
        exercise_time_goal=entry.exercise_time_goal,
        stand_hours=entry.stand_hours,
        stand_hours_goal=entry.stand_hours_goal,
    )


def _workout_item(sample: Sample) -> WorkoutItem:
    entry = sample.value if isinstance(sample.value, WorkoutEntry) else WorkoutEntry()
    return WorkoutItem(
        id=entry.id,
        activity_name=entry.activity_name,
        start_date=epoch_ms(sample.start),
        end_date=epoch_ms(sample.end),
        calories=entry.calories,
        distance=entry.distance,
    )


# INTERVAL_PASSTHROUGH kinds → (HourlyRecord field, entry builder)
INTERVAL_FIELDS: dict[MetricKind, tuple[str, Callable[[Sample], Any]]] = {
    MetricKind.ACTIVITY_SUMMARY: ("activity_summary", _activity_item),
    MetricKind.SLEEP: ("sleep_analysis", _sleep_item),
    MetricKind.MINDFUL_SESSION: ("mindful_session", _mindful_item),
    MetricKind.CALENDAR_EVENT: ("calendar_events", _calendar_item),
    MetricKind.WORKOUT: ("workouts", _workout_item),
}


# ---------------------------------------------------------------------------
# Formatter
# ---------------------------------------------------------------------------


class RecordFormatter:
    """Emit one HourlyRecord per BucketAggregate."""

    def snapshot_fields(self, snapshots: Mapping[MetricKind, Sample | None]) -> dict[str, Any]:
        """Record fields shared by every bucket of a run."""
        fields: dict[str, Any] = {"gyroscope": 0.0}

        gyro = snapshots.get(MetricKind.GYROSCOPE)
        if gyro is not None and isinstance(gyro.value, GyroscopeReading):
            fields["gyroscope"] = round_metric(MetricKind.GYROSCOPE, gyro.value.magnitude)

        for kind, name in ((MetricKind.HEIGHT, "height"), (MetricKind.BODY_MASS, "body_mass")):
            sample = snapshots.get(kind)
            if sample is not None:
                fields[name] = round_metric(kind, sample.numeric_value)

        loc = snapshots.get(MetricKind.LOCATION)
        if loc is not None and isinstance(loc.value, LocationReading):
            reading = loc.value
            fields["location"] = LocationItem(
                latitude=reading.latitude,
                longitude=reading.longitude,
                accuracy=reading.accuracy,
                altitude=reading.altitude,
                speed=reading.speed,
                heading=reading.heading,
                timestamp=epoch_ms(loc.start),
                address=reading.address,
            )
        return fields

    def format_bucket(
        self,
        aggregate: BucketAggregate,
        shared: Mapping[str, Any],
        collected_at: datetime,
    ) -> HourlyRecord:
        fields: dict[str, Any] = {
            "timestamp": epoch_ms(collected_at),
            "start_date": epoch_ms(aggregate.start),
            "end_date": epoch_ms(aggregate.end),
        }
        for kind, name in VALUE_FIELDS.items():
            fields[name] = aggregate.values.get(kind, 0)
        for kind, (name, build) in INTERVAL_FIELDS.items():
            fields[name] = [build(s) for s in aggregate.intervals.get(kind, [])]
        fields.update(shared)
        return HourlyRecord(**fields)

    def format(
        self,
        aggregates: Sequence[BucketAggregate],
        snapshots: Mapping[MetricKind, Sample | None] | None = None,
        collected_at: datetime | None = None,
    ) -> list[HourlyRecord]:
        """Format every bucket of a run.

        Args:
            aggregates:   Reduced buckets, in chronological order.
            snapshots:    Latest sample per snapshot kind (None where absent).
            collected_at: Collection instant stamped on every record (defaults to now).
        """
        collected_at = collected_at or datetime.now(timezone.utc)
        shared = self.snapshot_fields(snapshots or {})
        records = [self.format_bucket(a, shared, collected_at) for a in aggregates]
        logger.debug("Formatted %d hourly records", len(records))
        return records
