"""Load, validate, and hot-reload the telemetry pipeline configuration.

The config lives in ``telemetry_config.yaml`` alongside this module.  At
startup it is loaded once and cached.  Call ``reload_telemetry_config()`` to
re-read from disk after an update without a restart.

Usage::

    from lifelog.telemetry.config_loader import get_telemetry_config

    config = get_telemetry_config()
    config.bucketing.max_buckets          # 168
    config.timeouts.seconds_for("health") # 25.0
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from lifelog.telemetry.base import MetricKind

logger = logging.getLogger("lifelog.telemetry.config")

# Path to the YAML file sitting next to this module
_CONFIG_PATH = Path(__file__).parent / "telemetry_config.yaml"


# ---------------------------------------------------------------------------
# Typed config sections
# ---------------------------------------------------------------------------


@dataclass
class BucketingConfig:
    max_buckets: int = 168


@dataclass
class TimeoutConfig:
    """Per-source timeouts in seconds, keyed by adapter TIMEOUT_KEY."""

    availability_seconds: float = 5.0
    per_source: dict[str, float] = field(default_factory=dict)

    def seconds_for(self, key: str) -> float | None:
        """Return the timeout for a source key, or None for "wait forever"."""
        return self.per_source.get(key)


@dataclass
class MotionConfig:
    interval_ms: int = 100
    first_reading_timeout_seconds: float = 2.0
    rotation_threshold_rad_s: float = 0.1


@dataclass
class CalendarConfig:
    calendar_ids: list[str] = field(default_factory=list)


@dataclass
class LocationConfig:
    timeout_seconds: float = 15.0
    maximum_age_seconds: float = 60.0


@dataclass
class TelemetryConfig:
    """Complete, validated telemetry configuration.

    Attributes:
        version:        Config schema version string.
        bucketing:      Hour bucket cap.
        timeouts:       Availability probe and per-source fetch timeouts.
        motion:         Motion sensor sampling settings.
        calendar:       Calendars to read events from.
        location:       Location fix settings.
        disabled_kinds: Kinds excluded from the fan-out.
    """

    version: str
    bucketing: BucketingConfig
    timeouts: TimeoutConfig
    motion: MotionConfig
    calendar: CalendarConfig
    location: LocationConfig
    disabled_kinds: list[MetricKind] = field(default_factory=list)
    _raw: dict = field(default_factory=dict, repr=False)

    def is_enabled(self, kind: MetricKind) -> bool:
        return kind not in self.disabled_kinds


# ---------------------------------------------------------------------------
# Loader / validation
# ---------------------------------------------------------------------------


class ConfigValidationError(ValueError):
    """Raised when telemetry_config.yaml fails validation."""


def _load_yaml(path: Path) -> dict:
    """Read and parse a YAML file.

    Raises:
        FileNotFoundError: If the file does not exist.
        ConfigValidationError: If the YAML is malformed.
    """
    if not path.exists():
        raise FileNotFoundError(f"Telemetry config not found: {path}")

    with path.open("r", encoding="utf-8") as fh:
        try:
            return yaml.safe_load(fh) or {}
        except yaml.YAMLError as exc:
            raise ConfigValidationError(f"YAML parse error in {path}: {exc}") from exc


def _validate_and_build(raw: dict) -> TelemetryConfig:
    """Validate the raw YAML dict and construct a TelemetryConfig.

    Every problem is collected before raising, so one pass reports them all.

    Raises:
        ConfigValidationError: If any field is missing or invalid.
    """
    errors: list[str] = []

    def _positive(section: dict, key: str, default: float, name: str) -> float:
        value = section.get(key, default)
        try:
            number = float(value)
        except (TypeError, ValueError):
            errors.append(f"{name}.{key} must be a number, got {value!r}")
            return default
        if number <= 0:
            errors.append(f"{name}.{key} must be positive, got {number}")
        return number

    version = str(raw.get("version", "1.0"))

    # ── Bucketing ──
    b_raw = raw.get("bucketing") or {}
    max_buckets = _positive(b_raw, "max_buckets", 168, "bucketing")
    if max_buckets != int(max_buckets):
        errors.append(f"bucketing.max_buckets must be an integer, got {max_buckets}")
    bucketing = BucketingConfig(max_buckets=int(max_buckets))

    # ── Timeouts ──
    t_raw = raw.get("timeouts") or {}
    availability = _positive(t_raw, "availability_seconds", 5.0, "timeouts")
    per_source: dict[str, float] = {}
    for key in t_raw:
        if key == "availability_seconds":
            continue
        if not key.endswith("_seconds"):
            errors.append(f"timeouts.{key} must end with '_seconds'")
            continue
        per_source[key[: -len("_seconds")]] = _positive(t_raw, key, 0.0, "timeouts")
    timeouts = TimeoutConfig(availability_seconds=availability, per_source=per_source)

    # ── Motion ──
    m_raw = raw.get("motion") or {}
    motion = MotionConfig(
        interval_ms=int(_positive(m_raw, "interval_ms", 100, "motion")),
        first_reading_timeout_seconds=_positive(
            m_raw, "first_reading_timeout_seconds", 2.0, "motion"
        ),
        rotation_threshold_rad_s=_positive(m_raw, "rotation_threshold_rad_s", 0.1, "motion"),
    )

    # ── Calendar ──
    c_raw = raw.get("calendar") or {}
    calendar_ids = c_raw.get("calendar_ids") or []
    if not isinstance(calendar_ids, list):
        errors.append("calendar.calendar_ids must be a list")
        calendar_ids = []
    calendar = CalendarConfig(calendar_ids=[str(c) for c in calendar_ids])

    # ── Location ──
    l_raw = raw.get("location") or {}
    location = LocationConfig(
        timeout_seconds=_positive(l_raw, "timeout_seconds", 15.0, "location"),
        maximum_age_seconds=_positive(l_raw, "maximum_age_seconds", 60.0, "location"),
    )

    # ── Collection ──
    col_raw = raw.get("collection") or {}
    disabled_kinds: list[MetricKind] = []
    for value in col_raw.get("disabled_kinds") or []:
        try:
            disabled_kinds.append(MetricKind(value))
        except ValueError:
            errors.append(f"collection.disabled_kinds: unknown metric kind {value!r}")

    if errors:
        raise ConfigValidationError(
            f"telemetry_config.yaml has {len(errors)} validation error(s):\n"
            + "\n".join(f"  • {e}" for e in errors)
        )

    return TelemetryConfig(
        version=version,
        bucketing=bucketing,
        timeouts=timeouts,
        motion=motion,
        calendar=calendar,
        location=location,
        disabled_kinds=disabled_kinds,
        _raw=raw,
    )


def load_telemetry_config(path: Path | None = None) -> TelemetryConfig:
    """Load and validate the telemetry config from disk.

    Args:
        path: Override path to YAML. Uses the bundled telemetry_config.yaml by default.
    """
    target = path or _CONFIG_PATH
    raw = _load_yaml(target)
    config = _validate_and_build(raw)
    logger.info("Loaded telemetry config v%s from %s", config.version, target)
    return config


# ---------------------------------------------------------------------------
# Global singleton with hot-reload support
# ---------------------------------------------------------------------------

_config: TelemetryConfig | None = None
_config_lock = threading.Lock()


def get_telemetry_config() -> TelemetryConfig:
    """Return the global TelemetryConfig singleton, loading it on first call.

    Thread-safe.  Use ``reload_telemetry_config()`` to refresh after YAML changes.
    """
    global _config
    if _config is None:
        with _config_lock:
            if _config is None:  # double-checked locking
                _config = load_telemetry_config()
    return _config


def reload_telemetry_config(path: Path | None = None) -> TelemetryConfig:
    """Reload the config from disk and replace the global singleton.

    If validation fails, the old config is retained and the error is re-raised.

    Raises:
        ConfigValidationError: If the new config is invalid.
        FileNotFoundError:     If the config file is missing.
    """
    global _config
    new_config = load_telemetry_config(path)  # validate before acquiring lock
    with _config_lock:
        old_version = _config.version if _config else "none"
        _config = new_config
    logger.info(
        "Reloaded telemetry config: %s → %s",
        old_version,
        new_config.version,
    )
    return new_config
