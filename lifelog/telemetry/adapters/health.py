"""Biometric (HealthKit-style) adapters, one per metric family.

All families share one ``BiometricSource`` collaborator; they differ only in
the kinds they own.  Raw platform dicts use several spellings for the same
field (``value`` / ``quantity`` / ``kilocalories``, ``startDate`` / ``date``),
which ``normalize_sample()`` maps onto the canonical ``Sample`` shape.
"""

from __future__ import annotations

import logging
from datetime import timezone, tzinfo
from typing import Any

from lifelog.telemetry.base import (
    ActivitySummaryEntry,
    MetricKind,
    MindfulEntry,
    Sample,
    SleepSegment,
    SourceAdapter,
    TimeRange,
    WorkoutEntry,
)
from lifelog.telemetry.capabilities import BiometricSource
from lifelog.telemetry.permissions import PermissionCache

logger = logging.getLogger("lifelog.telemetry.adapters.health")

# Field spellings seen across HealthKit bridge versions, in priority order
_VALUE_KEYS = ("value", "quantity", "kilocalories")
_START_KEYS = ("startDate", "start", "date")
_END_KEYS = ("endDate", "end")


def _first(raw: dict[str, Any], keys: tuple[str, ...]) -> Any:
    for key in keys:
        value = raw.get(key)
        if value not in (None, ""):
            return value
    return None


def _ensure_list(results: Any) -> list[dict[str, Any]]:
    """Bridges return a list, a single dict, or nothing at all."""
    if results is None:
        return []
    if isinstance(results, dict):
        return [results]
    if isinstance(results, (list, tuple)):
        return [r for r in results if isinstance(r, dict)]
    return []


class HealthKitAdapter(SourceAdapter):
    """Base adapter for one family of biometric metrics.

    Subclasses only declare SOURCE_ID, DISPLAY_NAME and KINDS.
    """

    TIMEOUT_KEY = "health"

    def __init__(
        self,
        biometric: BiometricSource,
        permissions: PermissionCache,
        tz: tzinfo = timezone.utc,
    ) -> None:
        super().__init__(permissions, tz)
        self._biometric = biometric

    async def is_available(self) -> bool:
        return bool(await self._biometric.is_available())

    async def _request_authorization(self, kind: MetricKind) -> bool:
        return bool(await self._biometric.request_authorization([kind]))

    async def _fetch_samples(self, kind: MetricKind, time_range: TimeRange) -> list[Sample]:
        results = await self._biometric.fetch_samples(kind, time_range.start, time_range.end)
        records = _ensure_list(results)

        samples: list[Sample] = []
        for raw in records:
            sample = self.normalize_sample(kind, raw)
            if sample is not None:
                samples.append(sample)

        logger.debug(
            "%s: %s → %d raw, %d normalized",
            self.DISPLAY_NAME, kind.value, len(records), len(samples),
        )
        return samples

    # ------------------------------------------------------------------
    # Normalization
    # ------------------------------------------------------------------

    def normalize_sample(self, kind: MetricKind, raw: dict[str, Any]) -> Sample | None:
        """Convert one platform dict to a canonical Sample.

        Pure function with no I/O.  Missing or malformed values become
        0; a record without a parseable start is dropped.
        """
        if kind is MetricKind.SLEEP:
            category = raw.get("category") or raw.get("categoryValue")
            value = raw.get("value") or raw.get("categoryValue") or 0
            payload: Any = SleepSegment(
                value=value if isinstance(value, str) else self._safe_float(value),
                category=str(category) if category is not None else None,
            )
        elif kind is MetricKind.MINDFUL_SESSION:
            payload = MindfulEntry(value=self._safe_float(raw.get("value")))
        elif kind is MetricKind.ACTIVITY_SUMMARY:
            payload = self._normalize_activity_summary(raw)
            start = _first(raw, ("dateComponents",) + _START_KEYS)
            return self._make_sample(kind, payload, start, _first(raw, _END_KEYS))
        elif kind is MetricKind.WORKOUT:
            payload = WorkoutEntry(
                id=str(raw.get("id") or raw.get("uuid") or ""),
                activity_name=str(raw.get("activityName") or raw.get("activityType") or ""),
                calories=self._safe_float(raw.get("calories", raw.get("totalEnergyBurned"))),
                distance=self._safe_float(raw.get("distance", raw.get("totalDistance"))),
            )
        else:
            payload = self._safe_float(_first(raw, _VALUE_KEYS))

        return self._make_sample(kind, payload, _first(raw, _START_KEYS), _first(raw, _END_KEYS))

    def _normalize_activity_summary(self, raw: dict[str, Any]) -> ActivitySummaryEntry:
        f = self._safe_float
        return ActivitySummaryEntry(
            active_energy_burned=f(raw.get("activeEnergyBurned", raw.get("activeEnergy"))),
            active_energy_burned_goal=f(raw.get("activeEnergyBurnedGoal")),
            exercise_time=f(raw.get("appleExerciseTime", raw.get("exerciseTime"))),
            exercise_time_goal=f(raw.get("appleExerciseTimeGoal", raw.get("exerciseTimeGoal"))),
            stand_hours=f(raw.get("appleStandHours", raw.get("standHours"))),
            stand_hours_goal=f(raw.get("appleStandHoursGoal", raw.get("standHoursGoal"))),
        )


# ---------------------------------------------------------------------------
# Families
# ---------------------------------------------------------------------------


class StepCountAdapter(HealthKitAdapter):
    SOURCE_ID = "steps"
    DISPLAY_NAME = "Step Count"
    KINDS = (MetricKind.STEP_COUNT,)


class HeartAdapter(HealthKitAdapter):
    SOURCE_ID = "heart"
    DISPLAY_NAME = "Heart Rate"
    KINDS = (
        MetricKind.HEART_RATE,
        MetricKind.RESTING_HEART_RATE,
        MetricKind.HEART_RATE_VARIABILITY,
        MetricKind.WALKING_HEART_RATE_AVERAGE,
    )


class EnergyAdapter(HealthKitAdapter):
    SOURCE_ID = "energy"
    DISPLAY_NAME = "Energy Burned"
    KINDS = (MetricKind.ACTIVE_ENERGY, MetricKind.BASAL_ENERGY)


class BodyCompositionAdapter(HealthKitAdapter):
    SOURCE_ID = "body"
    DISPLAY_NAME = "Body Composition"
    KINDS = (MetricKind.HEIGHT, MetricKind.BODY_MASS)


class NutritionAdapter(HealthKitAdapter):
    SOURCE_ID = "nutrition"
    DISPLAY_NAME = "Nutrition"
    KINDS = (
        MetricKind.ENERGY_CONSUMED,
        MetricKind.PROTEIN,
        MetricKind.CARBOHYDRATES,
        MetricKind.SUGAR,
        MetricKind.WATER,
    )


class ActivityAdapter(HealthKitAdapter):
    SOURCE_ID = "activity"
    DISPLAY_NAME = "Activity & Workouts"
    KINDS = (
        MetricKind.ACTIVITY_SUMMARY,
        MetricKind.WORKOUT,
        MetricKind.FLIGHTS_CLIMBED,
        MetricKind.DISTANCE,
    )


class SleepAdapter(HealthKitAdapter):
    SOURCE_ID = "sleep"
    DISPLAY_NAME = "Sleep Analysis"
    KINDS = (MetricKind.SLEEP,)


class MindfulnessAdapter(HealthKitAdapter):
    SOURCE_ID = "mindfulness"
    DISPLAY_NAME = "Mindfulness"
    KINDS = (MetricKind.MINDFUL_SESSION,)


HEALTH_FAMILIES: tuple[type[HealthKitAdapter], ...] = (
    StepCountAdapter,
    HeartAdapter,
    EnergyAdapter,
    BodyCompositionAdapter,
    NutritionAdapter,
    ActivityAdapter,
    SleepAdapter,
    MindfulnessAdapter,
)
