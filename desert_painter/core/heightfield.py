"""
Heightfield storage for the sculpted terrain.

The field is a square grid of ``(resolution + 1) ** 2`` elevation samples
spanning ``size`` world units, centered on the origin. Row index follows the
world z axis and column index follows world x, so sample ``(row, col)`` sits
at ``x = -size/2 + col * spacing`` and ``z = -size/2 + row * spacing``.
"""

from typing import Callable, Optional, Tuple
from dataclasses import dataclass

import numpy as np
import structlog

logger = structlog.get_logger()

# Generator signature for HeightField.fill: (xs, zs) -> array of shape (len(zs), len(xs))
FieldGenerator = Callable[[np.ndarray, np.ndarray], np.ndarray]


@dataclass
class Footprint:
    """Samples of a field lying strictly inside a disc in the XZ plane."""

    row_slice: slice
    col_slice: slice
    mask: np.ndarray       # bool, shape of the window
    distances: np.ndarray  # distance of every window sample to the disc center

    @property
    def count(self) -> int:
        return int(np.count_nonzero(self.mask))


class HeightField:
    """
    Mutable elevation grid with a fixed affine world mapping.

    Resolution, size and sample count never change after construction; a
    different resolution means a new field. Every public mutation clamps the
    written values to ``[-max_height, max_height]`` and bumps ``version`` so
    that readers can detect stale copies.
    """

    def __init__(self, resolution: int, size: float, max_height: float):
        """
        Initialize an all-zero heightfield.

        Args:
            resolution: Number of grid segments per side (samples per side minus one)
            size: World side length
            max_height: Absolute elevation clamp
        """
        if int(resolution) < 1:
            raise ValueError(f"Resolution must be at least 1, got {resolution}")
        if size <= 0:
            raise ValueError(f"Size must be positive, got {size}")
        if max_height <= 0:
            raise ValueError(f"Max height must be positive, got {max_height}")

        self.resolution = int(resolution)
        self.size = float(size)
        self.max_height = float(max_height)
        self.spacing = self.size / self.resolution
        self.origin = -self.size / 2

        samples_per_side = self.resolution + 1
        self._heights = np.zeros((samples_per_side, samples_per_side), dtype=np.float64)
        self.version = 0

    @property
    def samples_per_side(self) -> int:
        return self.resolution + 1

    @property
    def shape(self) -> Tuple[int, int]:
        return self._heights.shape

    @property
    def sample_count(self) -> int:
        return self._heights.size

    @property
    def heights(self) -> np.ndarray:
        """Read-only view of the live samples (rows follow z, columns follow x)."""
        view = self._heights.view()
        view.flags.writeable = False
        return view

    def height_range(self) -> Tuple[float, float]:
        """Current (min, max) elevation over all samples."""
        return float(self._heights.min()), float(self._heights.max())

    @property
    def x_axis(self) -> np.ndarray:
        """World x coordinate of every column."""
        return self.origin + np.arange(self.samples_per_side) * self.spacing

    @property
    def z_axis(self) -> np.ndarray:
        """World z coordinate of every row."""
        return self.origin + np.arange(self.samples_per_side) * self.spacing

    def snapshot(self) -> np.ndarray:
        """Copy of the samples, safe to read while the field keeps changing."""
        return self._heights.copy()

    def _check_index(self, row: int, col: int) -> None:
        n = self.samples_per_side
        if not (0 <= row < n and 0 <= col < n):
            raise IndexError(f"Sample ({row}, {col}) outside {n}x{n} heightfield")

    def _clamp(self, values):
        return np.clip(values, -self.max_height, self.max_height)

    def get(self, row: int, col: int) -> float:
        """Elevation of one sample. Raises IndexError outside the grid."""
        self._check_index(row, col)
        return float(self._heights[row, col])

    def set(self, row: int, col: int, value: float) -> float:
        """
        Write one sample, clamped to the height limit.

        Returns:
            The value actually stored
        """
        self._check_index(row, col)
        if not np.isfinite(value):
            raise ValueError(f"Height must be finite, got {value}")
        stored = float(self._clamp(value))
        self._heights[row, col] = stored
        self.version += 1
        return stored

    def world_to_sample(self, x: float, z: float) -> Tuple[float, float]:
        """Fractional (row, col) of a world position. May lie outside the grid."""
        return ((z - self.origin) / self.spacing, (x - self.origin) / self.spacing)

    def sample_to_world(self, row: int, col: int) -> Tuple[float, float]:
        """World (x, z) of a sample."""
        self._check_index(row, col)
        return (self.origin + col * self.spacing, self.origin + row * self.spacing)

    def nearest_sample(self, x: float, z: float) -> Optional[Tuple[int, int]]:
        """Nearest grid sample to a world position, or None when off the grid."""
        row, col = self.world_to_sample(x, z)
        row, col = int(np.floor(row + 0.5)), int(np.floor(col + 0.5))
        n = self.samples_per_side
        if 0 <= row < n and 0 <= col < n:
            return row, col
        return None

    def fill(self, generator: FieldGenerator) -> None:
        """
        Overwrite every sample from a generator.

        The generator receives the world x axis (one value per column) and
        world z axis (one value per row) and must return an array of shape
        ``(len(zs), len(xs))``. Values are clamped on write.
        """
        values = np.asarray(generator(self.x_axis, self.z_axis), dtype=np.float64)
        if values.shape != self._heights.shape:
            raise ValueError(
                f"Generator returned shape {values.shape}, expected {self._heights.shape}"
            )
        if not np.all(np.isfinite(values)):
            raise ValueError("Generator returned non-finite heights")
        self._heights[:, :] = self._clamp(values)
        self.version += 1
        low, high = self.height_range()
        logger.debug("Heightfield filled", resolution=self.resolution, min_height=low, max_height=high)

    def footprint(self, x: float, z: float, radius: float) -> Footprint:
        """
        Samples strictly within ``radius`` of world ``(x, z)``.

        The candidate window comes straight from the affine inverse of the
        disc's bounding box, so the cost scales with the brush area rather
        than the grid size.
        """
        empty = np.zeros((0, 0))
        if not np.all(np.isfinite((x, z, radius))):
            return Footprint(slice(0, 0), slice(0, 0), empty.astype(bool), empty)

        n = self.samples_per_side
        row_c, col_c = self.world_to_sample(x, z)
        reach = radius / self.spacing

        row_lo = max(int(np.floor(row_c - reach)), 0)
        row_hi = min(int(np.ceil(row_c + reach)) + 1, n)
        col_lo = max(int(np.floor(col_c - reach)), 0)
        col_hi = min(int(np.ceil(col_c + reach)) + 1, n)

        if row_lo >= row_hi or col_lo >= col_hi:
            return Footprint(slice(0, 0), slice(0, 0), empty.astype(bool), empty)

        xs = self.origin + np.arange(col_lo, col_hi) * self.spacing
        zs = self.origin + np.arange(row_lo, row_hi) * self.spacing
        dx = xs[np.newaxis, :] - x
        dz = zs[:, np.newaxis] - z
        distances = np.sqrt(dx * dx + dz * dz)

        return Footprint(
            row_slice=slice(row_lo, row_hi),
            col_slice=slice(col_lo, col_hi),
            mask=distances < radius,
            distances=distances,
        )

    def window(self, footprint: Footprint) -> np.ndarray:
        """Copy of the samples under a footprint's window."""
        return self._heights[footprint.row_slice, footprint.col_slice].copy()

    def write_window(self, footprint: Footprint, values: np.ndarray) -> None:
        """Write back the masked samples of a footprint window, clamped."""
        target = self._heights[footprint.row_slice, footprint.col_slice]
        target[footprint.mask] = self._clamp(values[footprint.mask])
        self.version += 1

    def __repr__(self) -> str:
        return (
            f"HeightField(resolution={self.resolution}, size={self.size}, "
            f"max_height={self.max_height}, version={self.version})"
        )
