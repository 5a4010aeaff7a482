"""Shared Pydantic base models and utilities."""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def epoch_ms(dt: datetime) -> str:
    """Render an aware datetime as a string of integer milliseconds since the epoch."""
    return str(int(round(dt.timestamp() * 1000)))


class LifelogBase(BaseModel):
    """Base model with shared config for all Lifelog wire schemas."""

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
    )

    def to_wire(self) -> dict:
        """Serialize with wire (alias) names, leaving out unset optionals."""
        return self.model_dump(by_alias=True, exclude_none=True)
