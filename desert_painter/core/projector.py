"""
Cursor to world projection.

Pointer pixels are turned into a camera ray and intersected with the
horizontal reference plane ``y = 0``. The plane ignores the actual terrain
displacement, so on steep dunes the brush center can sit slightly off the
visible surface under the cursor.
"""

import math
from typing import NamedTuple, Optional, Sequence, Tuple
from dataclasses import dataclass

import numpy as np
import structlog

logger = structlog.get_logger()

PARALLEL_EPSILON = 1e-12


class Ray(NamedTuple):
    origin: np.ndarray
    direction: np.ndarray  # unit length


def _normalize(vector: np.ndarray) -> np.ndarray:
    length = np.linalg.norm(vector)
    if length == 0:
        raise ValueError("Cannot normalize a zero-length vector")
    return vector / length


def look_at(position: Sequence[float], target: Sequence[float], up: Sequence[float] = (0.0, 1.0, 0.0)) -> np.ndarray:
    """World-to-camera matrix for a camera at ``position`` facing ``target``."""
    eye = np.asarray(position, dtype=np.float64)
    forward = _normalize(np.asarray(target, dtype=np.float64) - eye)
    up = np.asarray(up, dtype=np.float64)

    right = np.cross(forward, up)
    if np.linalg.norm(right) < 1e-9:
        # Looking straight along the up vector
        right = np.cross(forward, np.array([0.0, 0.0, -1.0]))
    right = _normalize(right)
    true_up = np.cross(right, forward)

    view = np.identity(4)
    view[0, :3] = right
    view[1, :3] = true_up
    view[2, :3] = -forward
    view[:3, 3] = -view[:3, :3] @ eye
    return view


def perspective_matrix(fov: float, aspect: float, near: float, far: float) -> np.ndarray:
    """OpenGL-style perspective projection, ``fov`` is vertical in degrees."""
    f = 1.0 / math.tan(math.radians(fov) / 2)
    projection = np.zeros((4, 4))
    projection[0, 0] = f / aspect
    projection[1, 1] = f
    projection[2, 2] = (far + near) / (near - far)
    projection[2, 3] = 2 * far * near / (near - far)
    projection[3, 2] = -1.0
    return projection


def orthographic_matrix(left: float, right: float, top: float, bottom: float, near: float, far: float) -> np.ndarray:
    """OpenGL-style orthographic projection."""
    projection = np.identity(4)
    projection[0, 0] = 2 / (right - left)
    projection[1, 1] = 2 / (top - bottom)
    projection[2, 2] = -2 / (far - near)
    projection[0, 3] = -(right + left) / (right - left)
    projection[1, 3] = -(top + bottom) / (top - bottom)
    projection[2, 3] = -(far + near) / (far - near)
    return projection


@dataclass
class CameraState:
    """Camera matrices and canvas size as reported by the renderer."""

    view: np.ndarray        # 4x4 world -> camera
    projection: np.ndarray  # 4x4 camera -> clip
    width: float
    height: float

    def __post_init__(self):
        self.view = np.asarray(self.view, dtype=np.float64).reshape(4, 4)
        self.projection = np.asarray(self.projection, dtype=np.float64).reshape(4, 4)
        if not (np.all(np.isfinite(self.view)) and np.all(np.isfinite(self.projection))):
            raise ValueError("Camera matrices must be finite")
        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"Viewport must have a positive size, got {self.width}x{self.height}")

    @classmethod
    def perspective(
        cls,
        position: Sequence[float],
        target: Sequence[float],
        width: float,
        height: float,
        fov: float = 75.0,
        near: float = 0.1,
        far: float = 10000.0,
    ) -> "CameraState":
        return cls(
            view=look_at(position, target),
            projection=perspective_matrix(fov, width / height, near, far),
            width=width,
            height=height,
        )

    @classmethod
    def orthographic(
        cls,
        position: Sequence[float],
        target: Sequence[float],
        width: float,
        height: float,
        half_extent: float,
        near: float = 0.1,
        far: float = 10000.0,
    ) -> "CameraState":
        aspect = width / height
        return cls(
            view=look_at(position, target),
            projection=orthographic_matrix(
                -half_extent * aspect, half_extent * aspect, half_extent, -half_extent, near, far
            ),
            width=width,
            height=height,
        )

    @property
    def is_orthographic(self) -> bool:
        return self.projection[3, 3] == 1.0

    @property
    def camera_to_world(self) -> np.ndarray:
        return np.linalg.inv(self.view)

    @property
    def position(self) -> np.ndarray:
        return self.camera_to_world[:3, 3]


class CursorProjector:
    """Maps pointer pixels to points on the ``y = 0`` plane."""

    @staticmethod
    def to_ndc(pointer_x: float, pointer_y: float, camera: CameraState) -> Tuple[float, float]:
        """Pixel coordinates (origin top-left) to normalized device coordinates."""
        return (pointer_x / camera.width) * 2 - 1, -(pointer_y / camera.height) * 2 + 1

    def ray(self, pointer_x: float, pointer_y: float, camera: CameraState) -> Ray:
        """Camera ray through a pointer position."""
        ndc_x, ndc_y = self.to_ndc(pointer_x, pointer_y, camera)
        clip_to_world = np.linalg.inv(camera.projection @ camera.view)

        def unproject(depth: float) -> np.ndarray:
            point = clip_to_world @ np.array([ndc_x, ndc_y, depth, 1.0])
            return point[:3] / point[3]

        if camera.is_orthographic:
            origin = unproject(-1.0)
            direction = -camera.camera_to_world[:3, 2]
        else:
            origin = camera.position
            direction = unproject(0.5) - origin
        return Ray(origin=origin, direction=_normalize(direction))

    def project(self, pointer_x: float, pointer_y: float, camera: CameraState) -> Optional[Tuple[float, float, float]]:
        """
        World point under the pointer on the reference plane.

        Returns:
            ``(x, 0.0, z)``, or None when the ray is parallel to the plane or
            the plane lies behind the camera
        """
        origin, direction = self.ray(pointer_x, pointer_y, camera)
        if abs(direction[1]) < PARALLEL_EPSILON:
            return None

        t = -origin[1] / direction[1]
        if t < 0:
            return None

        hit = origin + t * direction
        return float(hit[0]), 0.0, float(hit[2])
