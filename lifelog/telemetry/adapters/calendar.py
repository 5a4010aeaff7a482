"""Calendar events adapter.

Reads events from every configured calendar (or every calendar the device
lists when none are configured).  Permission is checked before it is
requested, so an already-granted calendar never shows a prompt.
"""

from __future__ import annotations

import logging
from datetime import timezone, tzinfo
from typing import Any

from lifelog.telemetry.base import CalendarEntry, MetricKind, Sample, SourceAdapter, TimeRange
from lifelog.telemetry.capabilities import CalendarSource
from lifelog.telemetry.config_loader import TelemetryConfig, get_telemetry_config
from lifelog.telemetry.permissions import PermissionCache

logger = logging.getLogger("lifelog.telemetry.adapters.calendar")


class CalendarAdapter(SourceAdapter):
    SOURCE_ID = "calendar"
    DISPLAY_NAME = "Calendar"
    KINDS = (MetricKind.CALENDAR_EVENT,)
    TIMEOUT_KEY = "calendar"

    def __init__(
        self,
        calendar: CalendarSource,
        permissions: PermissionCache,
        tz: tzinfo = timezone.utc,
        config: TelemetryConfig | None = None,
    ) -> None:
        super().__init__(permissions, tz)
        self._calendar = calendar
        self._config = config or get_telemetry_config()

    async def _request_authorization(self, kind: MetricKind) -> bool:
        if await self._calendar.check_permission():
            return True
        return bool(await self._calendar.request_permission())

    async def _calendar_ids(self) -> list[str]:
        configured = self._config.calendar.calendar_ids
        if configured:
            return list(configured)
        calendars = await self._calendar.list_calendars() or []
        return [str(c["id"]) for c in calendars if isinstance(c, dict) and c.get("id")]

    async def _fetch_samples(self, kind: MetricKind, time_range: TimeRange) -> list[Sample]:
        calendar_ids = await self._calendar_ids()
        if not calendar_ids:
            logger.info("Calendar: no calendars to read from")
            return []

        events = await self._calendar.list_events(calendar_ids, time_range.start, time_range.end)
        samples = [
            s for s in (self.normalize_event(e) for e in events or [] if isinstance(e, dict))
            if s is not None
        ]
        logger.debug(
            "Calendar: %d events from %d calendars", len(samples), len(calendar_ids)
        )
        return samples

    def normalize_event(self, raw: dict[str, Any]) -> Sample | None:
        """Convert a platform event dict to a CALENDAR_EVENT Sample."""
        entry = CalendarEntry(
            id=str(raw.get("id") or ""),
            title=str(raw.get("title") or ""),
            all_day=bool(raw.get("allDay", False)),
            location=str(raw.get("location") or ""),
            notes=str(raw.get("notes") or ""),
        )
        return self._make_sample(
            MetricKind.CALENDAR_EVENT, entry, raw.get("startDate"), raw.get("endDate")
        )
