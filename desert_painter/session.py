"""
Editing session.

The session is the single owner of the sculpted heightfield. It holds the
current brush configuration, turns host input into brush strokes once per
tick and keeps a version counter that renderers compare against to decide
when to rebuild geometry.
"""

from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union
from dataclasses import dataclass

import structlog
from pydantic import ValidationError

from .config import BrushConfig, Settings, settings as default_settings
from .core.brush import BrushEngine, BrushMode, BrushStroke
from .core.exporter import HeightmapExporter, HeightmapExportError
from .core.heightfield import HeightField
from .core.noise_generator import NoiseParameters, NoiseTerrainGenerator, TerrainLayer
from .core.projector import CameraState, CursorProjector

logger = structlog.get_logger()

FieldListener = Callable[[HeightField, int], None]


@dataclass
class PointerState:
    """Pointer position in canvas pixels and whether the brush is held."""

    x: float
    y: float
    active: bool = False


class EditingSession:
    """
    Owns one heightfield and everything that mutates it.

    All mutation happens inside ``tick``/``stroke_at``/``regenerate``; callers
    running the session from several threads must serialize those calls.
    """

    def __init__(
        self,
        config: Optional[Settings] = None,
        generator: Optional[NoiseTerrainGenerator] = None,
        engine: Optional[BrushEngine] = None,
        projector: Optional[CursorProjector] = None,
        exporter: Optional[HeightmapExporter] = None,
    ):
        self.config = config if config is not None else default_settings
        self.generator = generator if generator is not None else NoiseTerrainGenerator(
            NoiseParameters.dunes(seed=self.config.terrain_seed)
        )
        self.engine = engine if engine is not None else BrushEngine(
            unit=self.config.brush_unit, blend_rate=self.config.brush_blend_rate
        )
        self.projector = projector if projector is not None else CursorProjector()
        self.exporter = exporter if exporter is not None else HeightmapExporter(self.config.export_prefix)

        self.field: Optional[HeightField] = None
        self.brush = BrushConfig()
        self.seed = self.config.terrain_seed
        self.version = 0
        self._listeners: List[FieldListener] = []
        self._stroke_active = False
        self._flatten_target: Optional[float] = None

    # Field lifecycle

    @property
    def has_terrain(self) -> bool:
        return self.field is not None

    def layers(self) -> List[TerrainLayer]:
        """Layer family for the current seed and terrain settings."""
        return self.generator.build_layers(
            count=self.config.terrain_layers,
            base_size=self.config.terrain_size,
            resolution=self.resolution,
            base_height=self.config.base_height,
            seed=self.seed,
        )

    @property
    def resolution(self) -> int:
        if self.field is not None:
            return self.field.resolution
        return self.config.terrain_resolution

    def regenerate(self, seed: Optional[int] = None, resolution: Optional[int] = None) -> HeightField:
        """
        Replace the editable field with freshly generated dunes.

        The previous field (and every edit made to it) is discarded.
        """
        if seed is not None:
            self.seed = seed
        # Nearest layer of the family, at the requested resolution
        near = TerrainLayer(
            index=0,
            size=self.config.terrain_size,
            resolution=resolution or self.config.terrain_resolution,
            height_scale=self.config.base_height,
            noise_scale=1.0,
            seed=self.seed,
        )

        self.field = self.generator.generate_layer(near, self.config.max_height)
        self.end_stroke()
        logger.info("Terrain regenerated", seed=self.seed, resolution=self.field.resolution)
        self._notify()
        return self.field

    def backdrop(self, index: int) -> HeightField:
        """Generate a decorative backdrop layer. Never editable."""
        layers = self.layers()
        if not 0 <= index < len(layers):
            raise IndexError(f"Layer {index} outside 0..{len(layers) - 1}")
        return self.generator.generate_layer(layers[index], self.config.max_height)

    # Brush

    def update_brush(self, changes: Dict[str, Any]) -> BrushConfig:
        """
        Apply a brush configuration update from the host.

        Out-of-range numbers are clamped. An invalid update is logged and
        re-raised and leaves the current configuration untouched.
        """
        try:
            updated = self.brush.updated(changes)
        except ValidationError as e:
            logger.warning("Rejected brush configuration", changes=changes, errors=e.error_count())
            raise

        if updated.mode != self.brush.mode:
            self.end_stroke()
        self.brush = updated
        logger.debug("Brush updated", mode=updated.mode.value, size=updated.size, strength=updated.strength)
        return updated

    def end_stroke(self) -> None:
        """Forget the current stroke, e.g. when the pointer is released."""
        self._stroke_active = False
        self._flatten_target = None

    def _stroke_target(self, x: float, z: float) -> float:
        if self._flatten_target is None:
            nearest = self.field.nearest_sample(x, z)
            # Off the grid, flatten toward the reference plane
            self._flatten_target = self.field.get(*nearest) if nearest is not None else 0.0
        return self._flatten_target

    def stroke_at(self, x: float, z: float) -> bool:
        """
        Apply the configured brush at a world position.

        Returns:
            True if any sample was touched
        """
        if self.field is None:
            logger.debug("Stroke ignored, no terrain")
            return False

        target = self._stroke_target(x, z) if self.brush.mode == BrushMode.FLATTEN else None
        stroke = BrushStroke(
            center=(x, z),
            radius=self.brush.radius,
            strength=self.brush.normalized_strength,
            mode=self.brush.mode,
            target_height=target,
            falloff_exponent=self.brush.falloff,
        )
        self._stroke_active = True

        touched = self.engine.apply_stroke(self.field, stroke)
        if touched:
            self._notify()
        return touched > 0

    def tick(self, pointer: PointerState, camera: CameraState) -> bool:
        """
        One simulation step.

        Projects the pointer and applies a stroke while the pointer is
        active. Parallel rays and off-terrain points skip the tick.

        Returns:
            True if the field changed
        """
        if not pointer.active:
            if self._stroke_active:
                self.end_stroke()
            return False

        point = self.projector.project(pointer.x, pointer.y, camera)
        if point is None:
            return False
        return self.stroke_at(point[0], point[2])

    # Observers

    def subscribe(self, listener: FieldListener) -> None:
        """Call ``listener(field, version)`` after every change of the field."""
        self._listeners.append(listener)

    def unsubscribe(self, listener: FieldListener) -> None:
        self._listeners.remove(listener)

    def _notify(self) -> None:
        self.version += 1
        for listener in self._listeners:
            listener(self.field, self.version)

    # Export

    def export(self, directory: Union[str, Path, None] = None) -> Optional[Path]:
        """
        Write the current terrain as a grayscale PNG.

        Returns:
            Path of the written file, or None when there is no terrain yet

        Raises:
            HeightmapExportError: If the file cannot be written. The session
                stays usable.
        """
        if self.field is None:
            logger.warning("Export requested before terrain was generated")
            return None

        directory = directory if directory is not None else self.config.export_dir
        try:
            return self.exporter.export_to_file(self.field, directory)
        except HeightmapExportError as e:
            logger.error("Heightmap export failed", directory=str(directory), error=str(e))
            raise
