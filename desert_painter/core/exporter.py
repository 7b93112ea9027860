"""
Grayscale heightmap export.

The current elevations are linearly normalized so that the lowest sample
becomes black and the highest white, then written as an opaque RGBA PNG with
the gray value replicated over the three color channels.
"""

import time
from pathlib import Path
from typing import Optional, Union
from dataclasses import dataclass

import numpy as np
import structlog
from PIL import Image

from .heightfield import HeightField

logger = structlog.get_logger()


class HeightmapExportError(RuntimeError):
    """Raised when a heightmap cannot be written."""


@dataclass(frozen=True)
class HeightmapImage:
    """Normalized snapshot of a heightfield."""

    gray: np.ndarray  # uint8, shape (rows, cols)
    min_height: float
    max_height: float

    @property
    def shape(self):
        return self.gray.shape

    @property
    def rgba(self) -> np.ndarray:
        """Gray replicated over R, G and B with opaque alpha."""
        rows, cols = self.gray.shape
        pixels = np.empty((rows, cols, 4), dtype=np.uint8)
        pixels[..., 0] = self.gray
        pixels[..., 1] = self.gray
        pixels[..., 2] = self.gray
        pixels[..., 3] = 255
        return pixels


def normalize_heights(heights: np.ndarray) -> HeightmapImage:
    """
    Map elevations linearly onto 0-255.

    A flat field has no range to normalize over; it is treated as spanning
    ``[min, min + 1]`` and exports as black.
    """
    low = float(heights.min())
    high = float(heights.max())
    if low == high:
        high = low + 1

    normalized = (heights - low) / (high - low)
    # Half rounds up
    gray = np.floor(normalized * 255 + 0.5).astype(np.uint8)
    return HeightmapImage(gray=gray, min_height=low, max_height=high)


class HeightmapExporter:
    """Snapshots heightfields and writes them as PNG files."""

    def __init__(self, prefix: str = "terrain-heightmap"):
        self.prefix = prefix

    def export(self, heightfield: HeightField) -> HeightmapImage:
        """Normalized image of the field. Works on a copy of the samples."""
        return normalize_heights(heightfield.snapshot())

    def filename_for(self, directory: Path, timestamp_ms: Optional[int] = None) -> Path:
        """``<prefix>-<unix-ms>.png`` in ``directory``, skipping names already taken."""
        stamp = int(time.time() * 1000) if timestamp_ms is None else int(timestamp_ms)
        path = directory / f"{self.prefix}-{stamp}.png"
        while path.exists():
            stamp += 1
            path = directory / f"{self.prefix}-{stamp}.png"
        return path

    def save(self, image: HeightmapImage, directory: Union[str, Path]) -> Path:
        """
        Write an exported image as a lossless PNG.

        Raises:
            HeightmapExportError: If the directory or file cannot be written
        """
        directory = Path(directory)
        try:
            directory.mkdir(parents=True, exist_ok=True)
            path = self.filename_for(directory)
            Image.fromarray(image.rgba).save(path, format="PNG")
        except OSError as e:
            raise HeightmapExportError(f"Could not write heightmap to {directory}: {e}") from e

        logger.info(
            "Heightmap exported",
            path=str(path),
            width=image.shape[1],
            height=image.shape[0],
            min_height=image.min_height,
            max_height=image.max_height,
        )
        return path

    def export_to_file(self, heightfield: HeightField, directory: Union[str, Path]) -> Path:
        """Export and save in one call."""
        return self.save(self.export(heightfield), directory)
