"""Lifelog collector: logging setup and service factory for host applications.

Typical use from a host app::

    from lifelog.main import configure_logging, create_service

    configure_logging()
    service = create_service(biometric=health_bridge, calendar=calendar_bridge)
    result = await service.collect_and_upload(uid, "today")
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from zoneinfo import ZoneInfo

from lifelog.config import Settings, get_settings
from lifelog.telemetry.capabilities import (
    BiometricSource,
    CalendarSource,
    LocationSource,
    MotionSensorSource,
)
from lifelog.telemetry.config_loader import get_telemetry_config, load_telemetry_config
from lifelog.telemetry.service import CollectionService
from lifelog.telemetry.uploader import Uploader

logger = logging.getLogger("lifelog")


# ---------- Logging ----------

def configure_logging(settings: Settings | None = None) -> None:
    settings = settings or get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stdout,
    )


# ---------- Service factory ----------

def create_service(
    biometric: BiometricSource | None = None,
    calendar: CalendarSource | None = None,
    motion: MotionSensorSource | None = None,
    location: LocationSource | None = None,
    settings: Settings | None = None,
) -> CollectionService:
    """Build a CollectionService wired from Settings.

    Only the capabilities passed in get adapters; a host without a motion
    sensor bridge simply omits ``motion``.
    """
    settings = settings or get_settings()
    if settings.telemetry_config_path:
        config = load_telemetry_config(Path(settings.telemetry_config_path))
    else:
        config = get_telemetry_config()

    logger.info(
        "Creating %s v%s [%s] → %s",
        settings.app_name,
        settings.app_version,
        settings.environment,
        settings.backend_url,
    )
    return CollectionService(
        biometric=biometric,
        calendar=calendar,
        motion=motion,
        location=location,
        uploader=Uploader(settings=settings),
        config=config,
        tz=ZoneInfo(settings.timezone),
    )
