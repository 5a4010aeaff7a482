"""Resolve a requested collection period into a normalized ``TimeRange``.

A request is either a named preset (``Period``) or an explicit pair of
bounds.  Explicit bounds that fail to parse fall back to documented
defaults (start → today 00:00 local, end → now) and an inverted pair is
swapped, so resolution never raises and always returns ``start <= end``.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import datetime, timedelta, timezone, tzinfo
from enum import Enum
from typing import Any, Union

from lifelog.telemetry.base import TimeRange, parse_timestamp

logger = logging.getLogger("lifelog.telemetry.date_range")


class Period(str, Enum):
    TODAY = "today"
    YESTERDAY = "yesterday"
    LAST_7_DAYS = "last_7_days"
    LAST_30_DAYS = "last_30_days"
    THIS_WEEK = "this_week"
    THIS_MONTH = "this_month"


#: A preset, a preset name, ``{"start": ..., "end": ...}`` or a ``(start, end)`` pair.
RangeRequest = Union[Period, str, Mapping[str, Any], tuple, None]


def _midnight(dt: datetime) -> datetime:
    return dt.replace(hour=0, minute=0, second=0, microsecond=0)


def _preset_range(period: Period, now: datetime) -> TimeRange:
    today = _midnight(now)

    if period is Period.YESTERDAY:
        start = today - timedelta(days=1)
        end = start.replace(hour=23, minute=59, second=59)
    elif period is Period.LAST_7_DAYS:
        start, end = now - timedelta(days=7), now
    elif period is Period.LAST_30_DAYS:
        start, end = now - timedelta(days=30), now
    elif period is Period.THIS_WEEK:
        # weekday(): Monday == 0
        start, end = today - timedelta(days=now.weekday()), now
    elif period is Period.THIS_MONTH:
        start, end = today.replace(day=1), now
    else:
        start, end = today, now

    return TimeRange(start=start, end=end)


def _explicit_bounds(request: Mapping[str, Any] | tuple) -> tuple[Any, Any]:
    if isinstance(request, tuple):
        if len(request) != 2:
            return None, None
        return request[0], request[1]
    start = request.get("start", request.get("startDate"))
    end = request.get("end", request.get("endDate"))
    return start, end


def _explicit_range(
    raw_start: Any, raw_end: Any, now: datetime, tz: tzinfo
) -> TimeRange:
    start = parse_timestamp(raw_start, tz)
    end = parse_timestamp(raw_end, tz)

    if start is None:
        logger.info("Invalid or missing start %r, defaulting to today 00:00", raw_start)
        start = _midnight(now)
    if end is None:
        logger.info("Invalid or missing end %r, defaulting to now", raw_end)
        end = now

    if end < start:
        logger.info("End %s precedes start %s, swapping", end.isoformat(), start.isoformat())
        start, end = end, start

    return TimeRange(start=start, end=end)


def resolve_range(
    request: RangeRequest = Period.TODAY,
    now: datetime | None = None,
    tz: tzinfo = timezone.utc,
) -> TimeRange:
    """Normalize a requested period into ``[start, end)``.

    Args:
        request: Preset, preset name, mapping with ``start``/``end``
                 (or ``startDate``/``endDate``) keys, or a 2-tuple of bounds.
        now:     Reference instant (defaults to the current time).
        tz:      Local timezone for calendar rules and naive inputs.

    Returns:
        TimeRange with ``start <= end``.  Unknown presets resolve as TODAY.
    """
    current = now.astimezone(tz) if now is not None else datetime.now(tz)

    if isinstance(request, (Mapping, tuple)):
        raw_start, raw_end = _explicit_bounds(request)
        return _explicit_range(raw_start, raw_end, current, tz)

    if request is None:
        period = Period.TODAY
    elif isinstance(request, Period):
        period = request
    else:
        try:
            period = Period(str(request).strip().lower())
        except ValueError:
            logger.info("Unknown period %r, defaulting to today", request)
            period = Period.TODAY

    return _preset_range(period, current)
