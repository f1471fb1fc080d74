# ABOUTME: Frame renderer that draws a packed splat buffer for a given camera
# ABOUTME: Holds the read-only buffer, runs projection and rasterization, writes PNGs

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Sequence, Union

import numpy as np
from PIL import Image

from .buffer_layout import SPLAT_STRIDE, unpack_splats
from .camera import CameraState
from .projection import project_splats
from .rasterizer import DEFAULT_BACKGROUND, SplatRasterizer


@dataclass(frozen=True)
class DrawCall:
    """Instanced draw parameters for the packed buffer."""
    instance_count: int
    vertices_per_instance: int = 4
    topology: str = 'triangle-strip'
    blend: str = 'src-alpha/one-minus-src-alpha'
    depth_test: bool = False


class SplatRenderer:
    """
    Render a packed splat buffer.

    The buffer is decoded once at construction and never modified; only the
    camera changes from frame to frame.
    """

    def __init__(self, buffer: bytes, width: int, height: int,
                 background: Sequence[float] = DEFAULT_BACKGROUND,
                 depth_sort: bool = False):
        """
        Initialize renderer.

        Args:
            buffer: Packed splat records
            width: Output image width in pixels
            height: Output image height in pixels
            background: Clear color
            depth_sort: Composite back to front instead of in buffer order
        """
        self.logger = logging.getLogger('splat_renderer')
        self.buffer = bytes(buffer)
        self.splats = unpack_splats(self.buffer)
        for array in self.splats.to_dict().values():
            array.setflags(write=False)

        self.rasterizer = SplatRasterizer(width, height, background=background,
                                          depth_sort=depth_sort)
        self.logger.debug("Renderer ready: %d splats (%d bytes), %dx%d",
                          self.count, len(self.buffer), width, height)

    @property
    def count(self) -> int:
        return len(self.buffer) // SPLAT_STRIDE

    @property
    def aspect_ratio(self) -> float:
        return self.rasterizer.aspect_ratio

    @property
    def draw_call(self) -> DrawCall:
        return DrawCall(instance_count=self.count)

    def render(self, camera: CameraState) -> np.ndarray:
        """
        Render one frame.

        Args:
            camera: View matrix and aspect ratio for this frame

        Returns:
            (H, W, 3) float32 image
        """
        projected = project_splats(self.splats, camera)
        self.logger.debug("Projected %d splats, %d visible", projected.count, projected.visible_count)
        return self.rasterizer.rasterize(projected)

    def render_frame(self, frame_time: float,
                     camera_fn: Callable[[float, float], CameraState]) -> np.ndarray:
        """Render the frame at `frame_time` using camera_fn(frame_time, aspect_ratio)."""
        return self.render(camera_fn(frame_time, self.aspect_ratio))


def to_uint8(image: np.ndarray) -> np.ndarray:
    """Clamp a float image to [0, 1] and quantize to 8 bits."""
    return (np.clip(image, 0.0, 1.0) * 255.0 + 0.5).astype(np.uint8)


def save_image(image: np.ndarray, path: Union[str, Path]) -> Path:
    """Save a float RGB image as PNG."""
    path = Path(path)
    Image.fromarray(to_uint8(image)).save(path)
    return path
