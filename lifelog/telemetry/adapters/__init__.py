"""Source adapters for the Lifelog telemetry pipeline.

Each adapter implements the SourceAdapter ABC and handles:
- Lazy, cached permission requests against its capability
- Fetching raw records for the kinds it owns
- Normalizing platform-specific dicts into canonical Samples

Available adapters:
    StepCountAdapter, HeartAdapter, EnergyAdapter, BodyCompositionAdapter,
    NutritionAdapter, ActivityAdapter, SleepAdapter, MindfulnessAdapter
                       biometric families over one BiometricSource
    CalendarAdapter    calendar events
    MotionAdapter      gyroscope snapshot (SensorReadingCache)
    LocationAdapter    device location snapshot
"""

from __future__ import annotations

from datetime import timezone, tzinfo

from lifelog.telemetry.adapters.calendar import CalendarAdapter
from lifelog.telemetry.adapters.health import (
    HEALTH_FAMILIES,
    ActivityAdapter,
    BodyCompositionAdapter,
    EnergyAdapter,
    HealthKitAdapter,
    HeartAdapter,
    MindfulnessAdapter,
    NutritionAdapter,
    SleepAdapter,
    StepCountAdapter,
)
from lifelog.telemetry.adapters.location import LocationAdapter
from lifelog.telemetry.adapters.motion import MotionAdapter, SensorReadingCache
from lifelog.telemetry.base import SourceAdapter
from lifelog.telemetry.capabilities import (
    BiometricSource,
    CalendarSource,
    LocationSource,
    MotionSensorSource,
)
from lifelog.telemetry.config_loader import TelemetryConfig, get_telemetry_config
from lifelog.telemetry.permissions import PermissionCache

__all__ = [
    "ActivityAdapter",
    "BodyCompositionAdapter",
    "CalendarAdapter",
    "EnergyAdapter",
    "HealthKitAdapter",
    "HeartAdapter",
    "LocationAdapter",
    "MindfulnessAdapter",
    "MotionAdapter",
    "NutritionAdapter",
    "SensorReadingCache",
    "SleepAdapter",
    "StepCountAdapter",
    "build_default_adapters",
    "get_adapter",
]

# Registry: source_id → adapter class
ADAPTER_REGISTRY: dict[str, type[SourceAdapter]] = {
    **{cls.SOURCE_ID: cls for cls in HEALTH_FAMILIES},
    CalendarAdapter.SOURCE_ID: CalendarAdapter,
    MotionAdapter.SOURCE_ID: MotionAdapter,
    LocationAdapter.SOURCE_ID: LocationAdapter,
}


def get_adapter(source_id: str) -> type[SourceAdapter]:
    """Return the adapter class for a given source slug.

    Args:
        source_id: e.g. 'steps', 'heart', 'calendar', 'motion'

    Returns:
        The adapter class (not an instance).

    Raises:
        KeyError: If the source_id is not registered.
    """
    if source_id not in ADAPTER_REGISTRY:
        raise KeyError(
            f"No adapter registered for source '{source_id}'. "
            f"Available: {list(ADAPTER_REGISTRY)}"
        )
    return ADAPTER_REGISTRY[source_id]


def build_default_adapters(
    permissions: PermissionCache,
    biometric: BiometricSource | None = None,
    calendar: CalendarSource | None = None,
    motion: MotionSensorSource | None = None,
    location: LocationSource | None = None,
    config: TelemetryConfig | None = None,
    tz: tzinfo = timezone.utc,
) -> list[SourceAdapter]:
    """Instantiate every adapter whose capability collaborator was supplied.

    All adapters share ``permissions``, so a grant made by one run is seen
    by every later run of the same service.
    """
    config = config or get_telemetry_config()
    adapters: list[SourceAdapter] = []
    if biometric is not None:
        adapters.extend(cls(biometric, permissions, tz) for cls in HEALTH_FAMILIES)
    if calendar is not None:
        adapters.append(CalendarAdapter(calendar, permissions, tz, config))
    if motion is not None:
        adapters.append(MotionAdapter(motion, permissions, tz, config))
    if location is not None:
        adapters.append(LocationAdapter(location, permissions, tz, config))
    return adapters
