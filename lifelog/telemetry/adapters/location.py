"""Device location snapshot adapter."""

from __future__ import annotations

import logging
import math
from datetime import datetime, timezone, tzinfo
from typing import Any

from lifelog.telemetry.base import LocationReading, MetricKind, Sample, SourceAdapter, TimeRange
from lifelog.telemetry.capabilities import LocationSource
from lifelog.telemetry.config_loader import TelemetryConfig, get_telemetry_config
from lifelog.telemetry.permissions import PermissionCache

logger = logging.getLogger("lifelog.telemetry.adapters.location")


def _optional_float(value: Any) -> float | None:
    """Like ``_safe_float`` but keeps "missing" distinct from 0."""
    if value is None or isinstance(value, bool):
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    return result if math.isfinite(result) else None


class LocationAdapter(SourceAdapter):
    SOURCE_ID = "location"
    DISPLAY_NAME = "Location"
    KINDS = (MetricKind.LOCATION,)
    TIMEOUT_KEY = "location"

    def __init__(
        self,
        location: LocationSource,
        permissions: PermissionCache,
        tz: tzinfo = timezone.utc,
        config: TelemetryConfig | None = None,
    ) -> None:
        super().__init__(permissions, tz)
        self._location = location
        self._config = config or get_telemetry_config()

    async def _request_authorization(self, kind: MetricKind) -> bool:
        return bool(await self._location.request_permission())

    async def _fetch_samples(self, kind: MetricKind, time_range: TimeRange) -> list[Sample]:
        raw = await self._location.current_location(
            self._config.location.timeout_seconds,
            self._config.location.maximum_age_seconds,
        )
        if not isinstance(raw, dict):
            logger.info("Location: no fix available")
            return []
        sample = self.normalize_location(raw)
        return [sample] if sample is not None else []

    def normalize_location(self, raw: dict[str, Any]) -> Sample | None:
        """Convert a platform position dict to a LOCATION Sample.

        Accepts both flat dicts and the ``{"coords": {...}}`` shape.  A fix
        without latitude or longitude is dropped.
        """
        coords = raw.get("coords") if isinstance(raw.get("coords"), dict) else raw
        latitude = _optional_float(coords.get("latitude"))
        longitude = _optional_float(coords.get("longitude"))
        if latitude is None or longitude is None:
            logger.debug("Location: dropping fix without coordinates")
            return None

        address = raw.get("address")
        reading = LocationReading(
            latitude=latitude,
            longitude=longitude,
            accuracy=_optional_float(coords.get("accuracy")),
            altitude=_optional_float(coords.get("altitude")),
            speed=_optional_float(coords.get("speed")),
            heading=_optional_float(coords.get("heading")),
            address=str(address) if address else None,
        )
        at = self._parse_timestamp(raw.get("rawTimestamp", raw.get("timestamp")))
        if at is None:
            at = datetime.now(self._tz)
        return Sample(kind=MetricKind.LOCATION, value=reading, start=at, end=at)
