"""
Circular brush strokes applied to a heightfield.

A stroke touches every sample strictly inside its radius (measured in the XZ
plane, ignoring elevation) and weights each one with a quadratic falloff that
is 1 at the center and 0 at the rim. The host calls ``apply_stroke`` once per
tick while the brush is held, so effects compound tick over tick.
"""

from enum import Enum
from typing import Optional, Tuple, Union
from dataclasses import dataclass

import numpy as np
import structlog

from .heightfield import HeightField

logger = structlog.get_logger()

DEFAULT_FALLOFF_EXPONENT = 2.0
DEFAULT_BLEND_RATE = 0.1


class BrushMode(str, Enum):
    """Brush modes offered by the control panel."""

    RAISE = "raise"
    LOWER = "lower"
    FLATTEN = "flatten"
    SMOOTH = "smooth"


@dataclass(frozen=True)
class BrushStroke:
    """One tick worth of brush input."""

    center: Tuple[float, float]  # world (x, z)
    radius: float
    strength: float  # [0, 1]
    mode: BrushMode = BrushMode.RAISE
    target_height: Optional[float] = None  # flatten only
    falloff_exponent: float = DEFAULT_FALLOFF_EXPONENT

    def __post_init__(self):
        if not self.radius > 0:
            raise ValueError(f"Brush radius must be positive, got {self.radius}")
        if not 0.0 <= self.strength <= 1.0:
            raise ValueError(f"Brush strength must be within [0, 1], got {self.strength}")
        if self.mode == BrushMode.FLATTEN and self.target_height is None:
            raise ValueError("Flatten strokes need a target height")


def falloff(
    distance: Union[float, np.ndarray],
    radius: float,
    exponent: float = DEFAULT_FALLOFF_EXPONENT,
) -> Union[float, np.ndarray]:
    """
    Brush weight at ``distance`` from the center: ``1 - (d / r) ** exponent``.

    Exactly 1 at the center, exactly 0 at the rim, and 0 anywhere beyond.
    """
    weight = 1.0 - np.power(np.asarray(distance, dtype=np.float64) / radius, exponent)
    weight = np.maximum(weight, 0.0)
    if np.ndim(weight) == 0:
        return float(weight)
    return weight


class BrushEngine:
    """
    Applies brush strokes to a HeightField.

    Args:
        unit: Height change of a full-influence raise or lower tick
        blend_rate: Fraction of the influence used as the per-tick blend
            factor by flatten and smooth
    """

    def __init__(self, unit: float = 1.0, blend_rate: float = DEFAULT_BLEND_RATE):
        self.unit = unit
        self.blend_rate = blend_rate

    def apply_stroke(self, field: HeightField, stroke: BrushStroke) -> int:
        """
        Apply one stroke in place.

        Returns:
            Number of samples inside the footprint. The field version is only
            bumped when this is non-zero.
        """
        x, z = stroke.center
        footprint = field.footprint(x, z, stroke.radius)
        touched = footprint.count
        if touched == 0:
            return 0

        window = field.window(footprint)
        influence = falloff(footprint.distances, stroke.radius, stroke.falloff_exponent) * stroke.strength

        if stroke.mode == BrushMode.RAISE:
            updated = window + influence * self.unit
        elif stroke.mode == BrushMode.LOWER:
            updated = window - influence * self.unit
        elif stroke.mode == BrushMode.FLATTEN:
            updated = self._blend_toward(window, stroke.target_height, influence)
        elif stroke.mode == BrushMode.SMOOTH:
            # Pass A: plain mean over the disc, pass B: blend toward it
            mean = float(np.mean(window[footprint.mask]))
            updated = self._blend_toward(window, mean, influence)
        else:
            raise ValueError(f"Unknown brush mode: {stroke.mode}")

        field.write_window(footprint, updated)
        return touched

    def _blend_toward(self, heights: np.ndarray, target: float, influence: np.ndarray) -> np.ndarray:
        # heights * (1 - blend) + target * blend in step form; never passes target
        blend = influence * self.blend_rate
        return heights + (target - heights) * blend
