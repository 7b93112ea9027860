"""FastAPI main application."""

import logging
import threading
from typing import List, Optional

import numpy as np
import structlog
from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field, ValidationError

from .. import __version__
from ..config import settings
from ..core.brush import BrushMode
from ..core.exporter import HeightmapExportError
from ..core.projector import CameraState
from ..session import EditingSession, PointerState

# Configure logging
logging.basicConfig(level=settings.log_level.upper(), format="%(message)s")

structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.JSONRenderer()
        if settings.log_format == "json"
        else structlog.dev.ConsoleRenderer(colors=False),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger()

# Initialize FastAPI app
app = FastAPI(
    title="Desert Painter API",
    description="Real-time dune sculpting: brush strokes, procedural terrain and heightmap export",
    version=__version__,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# One editing session per process. Sync endpoints run in a thread pool, so
# every access goes through the lock.
_session = EditingSession(settings)
_session_lock = threading.Lock()


def get_session() -> EditingSession:
    """Dependency returning the process-wide editing session."""
    return _session


# Request/Response models
class RegenerateRequest(BaseModel):
    """Request to build a new terrain."""

    seed: Optional[int] = Field(None, ge=0, description="Noise seed, keeps the current seed when omitted")
    resolution: Optional[int] = Field(None, ge=1, le=2048, description="Grid segments per side")


class TerrainSummary(BaseModel):
    """Shape and range of the editable terrain."""

    resolution: int
    samples_per_side: int
    size: float
    max_height: float
    seed: int
    version: int
    lowest: float
    highest: float


class HeightsResponse(BaseModel):
    """Full elevation array for geometry reconstruction."""

    resolution: int
    samples_per_side: int
    size: float
    version: int
    changed: bool = Field(description="False when the caller's version is current and heights are omitted")
    heights: Optional[List[float]] = Field(None, description="Row-major samples, rows follow z")


class LayerInfo(BaseModel):
    """Descriptor of one terrain layer."""

    index: int
    size: float
    resolution: int
    height_scale: float
    noise_scale: float
    seed: int
    lod_resolutions: List[int]


class BrushUpdate(BaseModel):
    """Partial brush configuration update from the control panel."""

    mode: Optional[str] = Field(None, description="raise, lower, flatten or smooth")
    size: Optional[float] = Field(None, allow_inf_nan=False, description="Brush radius in world units")
    strength: Optional[float] = Field(None, allow_inf_nan=False, description="Strength in percent (0-100)")
    falloff: Optional[float] = Field(None, allow_inf_nan=False, description="Falloff exponent (fixed at 2)")


class BrushResponse(BaseModel):
    """Current brush configuration."""

    mode: BrushMode
    size: float
    strength: float
    falloff: float


class PointerModel(BaseModel):
    x: float = Field(allow_inf_nan=False, description="Pointer x in canvas pixels")
    y: float = Field(allow_inf_nan=False, description="Pointer y in canvas pixels")
    active: bool = Field(False, description="Whether the brush is held down")


class CameraModel(BaseModel):
    """Camera state reported by the renderer."""

    view: List[float] = Field(min_length=16, max_length=16, description="World-to-camera matrix")
    projection: List[float] = Field(min_length=16, max_length=16, description="Projection matrix")
    width: float = Field(gt=0, description="Canvas width in pixels")
    height: float = Field(gt=0, description="Canvas height in pixels")
    column_major: bool = Field(False, description="Matrices given column by column (three.js order)")

    def to_state(self) -> CameraState:
        order = "F" if self.column_major else "C"
        return CameraState(
            view=_matrix(self.view, order),
            projection=_matrix(self.projection, order),
            width=self.width,
            height=self.height,
        )


def _matrix(values: List[float], order: str):
    return np.array(values, dtype=np.float64).reshape((4, 4), order=order)


class TickRequest(BaseModel):
    pointer: PointerModel
    camera: CameraModel


class StrokeRequest(BaseModel):
    x: float = Field(allow_inf_nan=False, description="World x of the brush center")
    z: float = Field(allow_inf_nan=False, description="World z of the brush center")


class EditResponse(BaseModel):
    """Result of a tick or stroke."""

    applied: bool = Field(description="Whether the terrain changed")
    version: int


class ExportResponse(BaseModel):
    path: str
    filename: str


def _require_terrain(session: EditingSession) -> None:
    if session.field is None:
        raise HTTPException(status_code=409, detail="No terrain generated yet")


def _summary(session: EditingSession) -> TerrainSummary:
    heightfield = session.field
    lowest, highest = heightfield.height_range()
    return TerrainSummary(
        resolution=heightfield.resolution,
        samples_per_side=heightfield.samples_per_side,
        size=heightfield.size,
        max_height=heightfield.max_height,
        seed=session.seed,
        version=session.version,
        lowest=lowest,
        highest=highest,
    )


@app.get("/")
def root():
    """Service information."""
    return {"name": "Desert Painter API", "version": __version__}


@app.get("/health")
def health():
    """Liveness check."""
    return {"status": "ok"}


@app.post("/terrain/regenerate", response_model=TerrainSummary)
def regenerate_terrain(request: RegenerateRequest, session: EditingSession = Depends(get_session)):
    """Discard the current terrain and generate a new one."""
    logger.info("Terrain regeneration requested", seed=request.seed, resolution=request.resolution)
    with _session_lock:
        session.regenerate(seed=request.seed, resolution=request.resolution)
        return _summary(session)


@app.get("/terrain", response_model=TerrainSummary)
def get_terrain(session: EditingSession = Depends(get_session)):
    """Summary of the editable terrain."""
    with _session_lock:
        _require_terrain(session)
        return _summary(session)


@app.get("/terrain/heights", response_model=HeightsResponse)
def get_heights(since_version: Optional[int] = None, session: EditingSession = Depends(get_session)):
    """
    Elevation samples for the renderer.

    Pass the last version seen as ``since_version`` to skip the payload when
    nothing changed.
    """
    with _session_lock:
        _require_terrain(session)
        heightfield = session.field
        changed = since_version is None or since_version != session.version
        return HeightsResponse(
            resolution=heightfield.resolution,
            samples_per_side=heightfield.samples_per_side,
            size=heightfield.size,
            version=session.version,
            changed=changed,
            heights=heightfield.snapshot().ravel().tolist() if changed else None,
        )


@app.get("/terrain/layers", response_model=List[LayerInfo])
def get_layers(session: EditingSession = Depends(get_session)):
    """Layer family used for near-field detail and backdrops."""
    with _session_lock:
        return [
            LayerInfo(
                index=layer.index,
                size=layer.size,
                resolution=layer.resolution,
                height_scale=layer.height_scale,
                noise_scale=layer.noise_scale,
                seed=layer.seed,
                lod_resolutions=layer.lod_resolutions(),
            )
            for layer in session.layers()
        ]


@app.get("/brush", response_model=BrushResponse)
def get_brush(session: EditingSession = Depends(get_session)):
    """Current brush configuration."""
    with _session_lock:
        return BrushResponse(**session.brush.model_dump())


@app.put("/brush", response_model=BrushResponse)
def update_brush(update: BrushUpdate, session: EditingSession = Depends(get_session)):
    """Update the brush. Numbers are clamped into range; unknown modes are rejected."""
    with _session_lock:
        try:
            brush = session.update_brush(update.model_dump(exclude_none=True))
        except ValidationError as e:
            raise HTTPException(
                status_code=422, detail=[{"loc": err["loc"], "msg": err["msg"]} for err in e.errors()]
            )
    return BrushResponse(**brush.model_dump())


@app.post("/tick", response_model=EditResponse)
def tick(request: TickRequest, session: EditingSession = Depends(get_session)):
    """Run one simulation tick with the current pointer and camera."""
    try:
        camera = request.camera.to_state()
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))

    pointer = PointerState(x=request.pointer.x, y=request.pointer.y, active=request.pointer.active)
    with _session_lock:
        try:
            applied = session.tick(pointer, camera)
        except (np.linalg.LinAlgError, ValueError) as e:
            logger.warning("Tick rejected, degenerate camera", error=str(e))
            raise HTTPException(status_code=422, detail=f"Degenerate camera: {e}")
        return EditResponse(applied=applied, version=session.version)


@app.post("/stroke", response_model=EditResponse)
def stroke(request: StrokeRequest, session: EditingSession = Depends(get_session)):
    """Apply the brush once at a world position."""
    with _session_lock:
        _require_terrain(session)
        applied = session.stroke_at(request.x, request.z)
        return EditResponse(applied=applied, version=session.version)


@app.post("/stroke/end")
def end_stroke(session: EditingSession = Depends(get_session)):
    """Mark the end of a continuous stroke."""
    with _session_lock:
        session.end_stroke()
    return {"status": "ok"}


@app.post("/export", response_model=ExportResponse)
def export_heightmap(session: EditingSession = Depends(get_session)):
    """Write the current terrain as a grayscale PNG."""
    with _session_lock:
        try:
            path = session.export()
        except HeightmapExportError as e:
            raise HTTPException(status_code=500, detail=str(e))

    if path is None:
        raise HTTPException(status_code=409, detail="No terrain generated yet")
    return ExportResponse(path=str(path), filename=path.name)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=settings.api_host, port=settings.api_port)
