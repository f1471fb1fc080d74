# ABOUTME: Per-frame camera state and view matrix helpers
# ABOUTME: Right-handed look-at and a pure frame-time orbit camera

import math
from dataclasses import dataclass
from typing import Sequence

import numpy as np

FOV_Y_DEGREES = 60.0
# Negative because the camera looks down -z: points in front have z < 0
PROJECTION_K = -1.0 / math.tan(math.radians(FOV_Y_DEGREES / 2))


@dataclass
class CameraState:
    """
    Camera parameters supplied once per frame.

    Attributes:
        view: (4, 4) world-to-camera matrix acting on column vectors
        aspect_ratio: viewport width / height
    """
    view: np.ndarray
    aspect_ratio: float

    def __post_init__(self):
        self.view = np.asarray(self.view, dtype=np.float64)
        if self.view.shape != (4, 4):
            raise ValueError(f"View matrix must be 4x4, got {self.view.shape}")
        if not np.all(np.isfinite(self.view)):
            raise ValueError("View matrix must be finite")
        self.aspect_ratio = float(self.aspect_ratio)
        if not self.aspect_ratio > 0:
            raise ValueError(f"Aspect ratio must be positive, got {self.aspect_ratio}")

    @property
    def rotation(self) -> np.ndarray:
        """Upper-left 3x3 block W."""
        return self.view[:3, :3]

    @property
    def translation(self) -> np.ndarray:
        """Translation column t."""
        return self.view[:3, 3]


def look_at(eye: Sequence[float], target: Sequence[float],
            up: Sequence[float] = (0.0, 1.0, 0.0)) -> np.ndarray:
    """
    World-to-camera matrix for a camera at `eye` looking at `target`.

    Raises:
        ValueError: If eye and target coincide or up is parallel to the view direction
    """
    eye = np.asarray(eye, dtype=np.float64)
    target = np.asarray(target, dtype=np.float64)
    up = np.asarray(up, dtype=np.float64)

    forward = target - eye
    distance = np.linalg.norm(forward)
    if distance < 1e-12:
        raise ValueError("Camera eye and target must differ")
    forward /= distance

    side = np.cross(forward, up)
    side_length = np.linalg.norm(side)
    if side_length < 1e-12:
        raise ValueError("Up vector must not be parallel to the view direction")
    side /= side_length
    true_up = np.cross(side, forward)

    view = np.eye(4)
    view[0, :3] = side
    view[1, :3] = true_up
    view[2, :3] = -forward
    view[:3, 3] = -view[:3, :3] @ eye
    return view


def orbit_camera(frame_time: float, aspect_ratio: float,
                 radius: float = 3.0, height: float = 0.5, speed: float = 0.5,
                 target: Sequence[float] = (0.0, 0.0, 0.0)) -> CameraState:
    """
    Camera circling `target` around the +Y axis.

    Pure function of frame_time (seconds); angular speed is in radians per second.
    """
    angle = frame_time * speed
    target = np.asarray(target, dtype=np.float64)
    eye = target + np.array([radius * math.sin(angle), height, radius * math.cos(angle)])
    return CameraState(view=look_at(eye, target), aspect_ratio=aspect_ratio)
