"""
Brush configuration received from the host.

Values coming from the control panel are validated here so that the brush
engine only ever sees a legal radius, strength and mode. Numeric fields are
clamped into range; unknown modes and non-finite numbers are rejected.
"""

import math
from typing import Any, Dict

from pydantic import BaseModel, Field, field_validator

from ..core.brush import BrushMode


# Slider limits of the control panel
MIN_BRUSH_SIZE = 1.0
MAX_BRUSH_SIZE = 50.0
MIN_BRUSH_STRENGTH = 0.0
MAX_BRUSH_STRENGTH = 100.0

FALLOFF_EXPONENT = 2.0


def _finite(value: Any) -> float:
    number = float(value)
    # NaN survives min/max clamping
    if not math.isfinite(number):
        raise ValueError(f"Expected a finite number, got {value}")
    return number


class BrushConfig(BaseModel):
    """Brush settings as exposed to the user."""

    mode: BrushMode = Field(default=BrushMode.RAISE, description="Brush mode: raise, lower, flatten, smooth")
    size: float = Field(default=10.0, description="Brush radius in world units")
    strength: float = Field(default=50.0, description="Brush strength in percent (0-100)")
    falloff: float = Field(default=FALLOFF_EXPONENT, description="Falloff exponent (fixed)")

    @field_validator("mode", mode="before")
    @classmethod
    def _normalize_mode(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("size", mode="before")
    @classmethod
    def _clamp_size(cls, value: Any) -> float:
        return min(max(_finite(value), MIN_BRUSH_SIZE), MAX_BRUSH_SIZE)

    @field_validator("strength", mode="before")
    @classmethod
    def _clamp_strength(cls, value: Any) -> float:
        return min(max(_finite(value), MIN_BRUSH_STRENGTH), MAX_BRUSH_STRENGTH)

    @field_validator("falloff", mode="before")
    @classmethod
    def _fixed_falloff(cls, value: Any) -> float:
        return FALLOFF_EXPONENT

    @property
    def radius(self) -> float:
        """Brush radius in world units."""
        return self.size

    @property
    def normalized_strength(self) -> float:
        """Strength mapped from percent to [0, 1]."""
        return self.strength / MAX_BRUSH_STRENGTH

    def updated(self, changes: Dict[str, Any]) -> "BrushConfig":
        """
        Return a new config with the given fields replaced.

        Fields not present in ``changes`` keep their current values. Raises
        ``pydantic.ValidationError`` when a field cannot be coerced (for
        example an unknown mode); in that case nothing is changed.
        """
        data = self.model_dump()
        data.update({key: value for key, value in changes.items() if value is not None})
        return BrushConfig.model_validate(data)
