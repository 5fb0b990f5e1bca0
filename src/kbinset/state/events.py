"""Normalized obstruction events.

Every notification source converts its inputs into these events. Only the
controller is allowed to fold them into inset state.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from datetime import UTC, datetime
from enum import StrEnum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator


class ObstructionKind(StrEnum):
    SHOWN = "shown"
    HIDDEN = "hidden"


def clamp_height(value: Any) -> float:
    """Coerce *value* to a usable inset height.

    Negative, NaN, infinite and non-numeric values collapse to ``0.0``;
    a layout inset is never meaningfully negative.
    """
    if isinstance(value, bool):
        return 0.0
    try:
        height = float(value)
    except (TypeError, ValueError, OverflowError):
        return 0.0
    if not math.isfinite(height) or height < 0:
        return 0.0
    return height


class _ObstructionBase(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    observed_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @field_validator("observed_at")
    @classmethod
    def _ensure_tz_aware(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value


class ObstructionShown(_ObstructionBase):
    """An overlay (keyboard) is about to cover ``height`` points of the view."""

    kind: Literal["shown"] = "shown"
    height: float = 0.0

    @field_validator("height", mode="before")
    @classmethod
    def _clamp(cls, value: Any) -> float:
        return clamp_height(value)


class ObstructionHidden(_ObstructionBase):
    """The overlay is about to go away."""

    kind: Literal["hidden"] = "hidden"


ObstructionEvent = Annotated[
    ObstructionShown | ObstructionHidden,
    Field(discriminator="kind"),
]

_EVENT_ADAPTER: TypeAdapter[ObstructionShown | ObstructionHidden] = TypeAdapter(ObstructionEvent)


def parse_obstruction_event(data: Mapping[str, Any]) -> ObstructionShown | ObstructionHidden:
    """Validate a raw mapping (``{"kind": "shown", "height": 300}``) into an event."""
    return _EVENT_ADAPTER.validate_python(dict(data))
