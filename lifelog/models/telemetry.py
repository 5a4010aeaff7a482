"""Pydantic models for the upload wire format: hourly records and nested entries.

All timestamps are strings of integer milliseconds since the Unix epoch.
Field names follow the backend contract; nested entries use camelCase aliases.
"""

from __future__ import annotations

from pydantic import Field

from lifelog.models.base import LifelogBase


# ---------- Nested interval entries ----------

class ActivitySummaryItem(LifelogBase):
    date: str
    active_energy_burned: float = Field(default=0, alias="activeEnergyBurned")
    active_energy_burned_goal: float = Field(default=0, alias="activeEnergyBurnedGoal")
    exercise_time: float = Field(default=0, alias="exerciseTime")
    exercise_time_goal: float = Field(default=0, alias="exerciseTimeGoal")
    stand_hours: float = Field(default=0, alias="standHours")
    stand_hours_goal: float = Field(default=0, alias="standHoursGoal")


class SleepItem(LifelogBase):
    start_date: str = Field(alias="startDate")
    end_date: str = Field(alias="endDate")
    value: str | float = 0
    category: str | None = None


class MindfulItem(LifelogBase):
    start_date: str = Field(alias="startDate")
    end_date: str = Field(alias="endDate")
    value: float = 0


class CalendarEventItem(LifelogBase):
    id: str
    title: str = ""
    start_date: str = Field(alias="startDate")
    end_date: str = Field(alias="endDate")
    all_day: bool = Field(default=False, alias="allDay")
    location: str = ""
    notes: str = ""


class WorkoutItem(LifelogBase):
    id: str = ""
    activity_name: str = Field(default="", alias="activityName")
    start_date: str = Field(alias="startDate")
    end_date: str = Field(alias="endDate")
    calories: float = 0
    distance: float = 0


class LocationItem(LifelogBase):
    latitude: float
    longitude: float
    accuracy: float | None = None
    altitude: float | None = None
    speed: float | None = None
    heading: float | None = None
    timestamp: str
    address: str | None = None


# ---------- Hourly record ----------

class HourlyRecord(LifelogBase):
    """One aggregated hour.  ``start_date``/``end_date`` are the bucket bounds."""

    timestamp: str
    start_date: str = Field(alias="startDate")
    end_date: str = Field(alias="endDate")

    step_count: int = 0
    basal_energy_burned: int = 0
    active_energy_burned: int = 0
    flights_climbed: int = 0
    distance_walking_running: int = 0

    heart_rate: int = 0
    resting_heart_rate: int = 0
    heart_rate_variability: int = 0
    walking_heart_rate_average: int = 0

    energy_consumed: int = 0
    protein: int = 0
    carbohydrates: int = 0
    sugar: int = 0
    water: int = 0

    activity_summary: list[ActivitySummaryItem] = Field(default_factory=list)
    sleep_analysis: list[SleepItem] = Field(default_factory=list)
    mindful_session: list[MindfulItem] = Field(default_factory=list)
    calendar_events: list[CalendarEventItem] = Field(default_factory=list)
    workouts: list[WorkoutItem] = Field(default_factory=list)

    gyroscope: float = 0.0
    height: float | None = None
    body_mass: float | None = None
    location: LocationItem | None = None


class UploadPayload(LifelogBase):
    uid: str = Field(min_length=1)
    data: list[HourlyRecord] = Field(default_factory=list)
