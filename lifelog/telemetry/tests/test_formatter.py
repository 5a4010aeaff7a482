"""Tests for HourlyRecord formatting and the wire shape."""

from __future__ import annotations

from datetime import timedelta

import pytest

from lifelog.telemetry.aggregator import MetricAggregator
from lifelog.telemetry.base import (
    CalendarEntry,
    GyroscopeReading,
    LocationReading,
    MetricKind,
    SleepSegment,
    TimeRange,
    WorkoutEntry,
)
from lifelog.telemetry.bucketing import HourBucketer
from lifelog.telemetry.formatter import RecordFormatter
from lifelog.telemetry.tests.conftest import TEST_DAY, TEST_NOW, at, make_sample, ms


def build(time_range, samples, collected_at=TEST_NOW):
    aggregator = MetricAggregator()
    buckets = HourBucketer().bucketize(time_range, samples)
    return RecordFormatter().format(
        aggregator.aggregate(buckets), aggregator.snapshots(samples), collected_at
    )


class TestRecordShape:
    @pytest.mark.parametrize("hours", [1, 6, 24, 168, 500])
    def test_one_record_per_hour(self, hours: int) -> None:
        r = TimeRange(start=TEST_DAY, end=TEST_DAY + timedelta(hours=hours))
        records = build(r, {})
        assert len(records) == min(hours, 168)
        for prev, cur in zip(records, records[1:]):
            assert int(cur.start_date) == int(prev.end_date)
        for rec in records:
            assert int(rec.end_date) - int(rec.start_date) == 3_600_000

    def test_timestamps_are_epoch_ms_strings(self) -> None:
        [rec] = build(TimeRange(at(9), at(10)), {})
        assert rec.start_date == ms(at(9))
        assert rec.end_date == ms(at(10))
        assert rec.timestamp == ms(TEST_NOW)

    def test_wire_names(self) -> None:
        [rec] = build(TimeRange(at(9), at(10)), {})
        wire = rec.to_wire()
        assert {"timestamp", "startDate", "endDate", "step_count", "sleep_analysis",
                "calendar_events", "workouts", "gyroscope"} <= set(wire)
        assert wire["step_count"] == 0
        assert wire["calendar_events"] == []
        assert wire["gyroscope"] == 0.0
        # No snapshot readings → optional fields omitted
        assert "location" not in wire
        assert "height" not in wire


class TestNestedEntries:
    def test_sleep_segment_entries(self) -> None:
        segment = make_sample(
            MetricKind.SLEEP, SleepSegment("ASLEEP", "core"), at(23, 30), at(25, 15)
        )
        records = build(TimeRange(at(22), at(26)), {MetricKind.SLEEP: [segment]})
        counts = [len(r.sleep_analysis) for r in records]
        assert counts == [0, 1, 1, 1]
        entry = records[1].sleep_analysis[0].to_wire()
        assert entry == {
            "startDate": ms(at(23, 30)),
            "endDate": ms(at(25, 15)),
            "value": "ASLEEP",
            "category": "core",
        }

    def test_sleep_without_category_omits_it(self) -> None:
        segment = make_sample(MetricKind.SLEEP, SleepSegment(2.0), at(1), at(2))
        [rec] = build(TimeRange(at(1), at(2)), {MetricKind.SLEEP: [segment]})
        assert "category" not in rec.sleep_analysis[0].to_wire()

    def test_calendar_event_entry(self) -> None:
        event = make_sample(
            MetricKind.CALENDAR_EVENT,
            CalendarEntry(id="evt-1", title="Standup", location="Room 4"),
            at(9, 30),
            at(9, 45),
        )
        [rec] = build(TimeRange(at(9), at(10)), {MetricKind.CALENDAR_EVENT: [event]})
        assert rec.to_wire()["calendar_events"] == [
            {
                "id": "evt-1",
                "title": "Standup",
                "startDate": ms(at(9, 30)),
                "endDate": ms(at(9, 45)),
                "allDay": False,
                "location": "Room 4",
                "notes": "",
            }
        ]

    def test_interval_strings_pass_through_untouched(self) -> None:
        event = make_sample(
            MetricKind.CALENDAR_EVENT,
            CalendarEntry(id="evt-2", title="  1:1 ", location=" ", notes="agenda\n"),
            at(9),
            at(9, 30),
        )
        segment = make_sample(MetricKind.SLEEP, SleepSegment(" INBED "), at(9), at(9, 20))
        [rec] = build(
            TimeRange(at(9), at(10)),
            {MetricKind.CALENDAR_EVENT: [event], MetricKind.SLEEP: [segment]},
        )
        wire = rec.to_wire()
        assert wire["calendar_events"][0]["title"] == "  1:1 "
        assert wire["calendar_events"][0]["location"] == " "
        assert wire["calendar_events"][0]["notes"] == "agenda\n"
        assert wire["sleep_analysis"][0]["value"] == " INBED "

    def test_workout_entry(self) -> None:
        workout = make_sample(
            MetricKind.WORKOUT,
            WorkoutEntry(id="w-1", activity_name="Running", calories=310.2, distance=5012),
            at(7),
            at(7, 45),
        )
        [rec] = build(TimeRange(at(7), at(8)), {MetricKind.WORKOUT: [workout]})
        entry = rec.to_wire()["workouts"][0]
        assert entry["activityName"] == "Running"
        assert entry["calories"] == 310.2


class TestSnapshots:
    def test_gyroscope_magnitude_on_every_record(self) -> None:
        gyro = make_sample(MetricKind.GYROSCOPE, GyroscopeReading(0.1, 0.2, 0.2), at(14))
        records = build(TimeRange(at(9), at(12)), {MetricKind.GYROSCOPE: [gyro]})
        assert [r.gyroscope for r in records] == [0.3, 0.3, 0.3]

    def test_body_mass_and_location(self) -> None:
        samples = {
            MetricKind.BODY_MASS: [make_sample(MetricKind.BODY_MASS, 71.456, at(8))],
            MetricKind.LOCATION: [
                make_sample(
                    MetricKind.LOCATION,
                    LocationReading(latitude=37.77, longitude=-122.42, accuracy=12.5),
                    at(14),
                )
            ],
        }
        [rec] = build(TimeRange(at(9), at(10)), samples)
        wire = rec.to_wire()
        assert wire["body_mass"] == 71.46
        assert wire["location"] == {
            "latitude": 37.77,
            "longitude": -122.42,
            "accuracy": 12.5,
            "timestamp": ms(at(14)),
        }
