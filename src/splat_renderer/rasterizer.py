# ABOUTME: Per-pixel coverage stage for projected gaussian splats
# ABOUTME: Evaluates 2D gaussian density and composites source-over into a framebuffer

import logging
from typing import Sequence

import numpy as np

from .projection import ProjectedSplats

DEFAULT_BACKGROUND = (0.1, 0.2, 0.3)


def gaussian_density(delta: np.ndarray, inv_cov: np.ndarray) -> np.ndarray:
    """
    Unnormalized 2D gaussian exp(-0.5 d^T inv_cov d).

    Args:
        delta: (..., 2) offsets from the center
        inv_cov: (2, 2) or (..., 2, 2) inverse covariance

    Returns:
        (...) density, 1.0 at the center
    """
    power = np.einsum('...i,...ij,...j->...', delta, inv_cov, delta)
    return np.exp(-0.5 * power)


def shade(pixels: np.ndarray, center: np.ndarray, inv_cov: np.ndarray,
          color: np.ndarray, opacity: float) -> np.ndarray:
    """
    RGBA output of one splat at the given pixel positions.

    Args:
        pixels: (..., 2) pixel positions in NDC
        center: (2,) projected center
        inv_cov: (2, 2) inverse screen-space covariance
        color: (3,) RGB color
        opacity: peak opacity

    Returns:
        (..., 4) RGBA with alpha = opacity * density
    """
    alpha = opacity * gaussian_density(pixels - center, inv_cov)
    rgb = np.broadcast_to(color, alpha.shape + (3,))
    return np.concatenate([rgb, alpha[..., None]], axis=-1)


def blend_over(dst_rgb: np.ndarray, src_rgb: np.ndarray, src_alpha: np.ndarray) -> np.ndarray:
    """Source-over compositing: src * a + dst * (1 - a)."""
    src_alpha = np.asarray(src_alpha)[..., None]
    return src_rgb * src_alpha + dst_rgb * (1.0 - src_alpha)


class SplatRasterizer:
    """
    Software rasterizer for projected splats.

    Pixel centers are mapped to NDC with x to the right and y up; row 0 is the
    top of the image. Each visible splat covers the pixels whose centers fall
    inside its 3-sigma quad and is blended source-over in submission order
    with no depth test. With depth_sort enabled, splats are instead composited
    back to front by camera-space depth.
    """

    def __init__(self, width: int, height: int,
                 background: Sequence[float] = DEFAULT_BACKGROUND,
                 depth_sort: bool = False):
        if width <= 0 or height <= 0:
            raise ValueError(f"Viewport must have positive size, got {width}x{height}")
        self.width = int(width)
        self.height = int(height)
        self.background = np.asarray(background, dtype=np.float32)
        self.depth_sort = depth_sort
        self.logger = logging.getLogger('splat_renderer')

        # Pixel-center NDC coordinates along each axis
        self._xs = (np.arange(self.width) + 0.5) * 2.0 / self.width - 1.0
        self._ys = 1.0 - (np.arange(self.height) + 0.5) * 2.0 / self.height

    @property
    def aspect_ratio(self) -> float:
        return self.width / self.height

    def clear(self) -> np.ndarray:
        """Framebuffer filled with the background color."""
        return np.tile(self.background, (self.height, self.width, 1))

    def draw_order(self, projected: ProjectedSplats) -> np.ndarray:
        """Indices of visible splats in the order they are composited."""
        indices = np.flatnonzero(projected.visible)
        if self.depth_sort:
            # Most negative z is farthest away; stable keeps submission order on ties
            order = np.argsort(projected.depths[indices], kind='stable')
            indices = indices[order]
        return indices

    def pixel_bounds(self, center: np.ndarray, radius: np.ndarray):
        """
        Column and row ranges of pixel centers inside a quad, clipped to the viewport.

        Returns:
            (col_start, col_stop, row_start, row_stop) half-open ranges; empty
            when the quad misses the viewport.
        """
        x_min, x_max = center[0] - radius[0], center[0] + radius[0]
        y_min, y_max = center[1] - radius[1], center[1] + radius[1]

        col_start = max(0, int(np.ceil((x_min + 1.0) * self.width / 2.0 - 0.5)))
        col_stop = min(self.width, int(np.floor((x_max + 1.0) * self.width / 2.0 - 0.5)) + 1)
        row_start = max(0, int(np.ceil((1.0 - y_max) * self.height / 2.0 - 0.5)))
        row_stop = min(self.height, int(np.floor((1.0 - y_min) * self.height / 2.0 - 0.5)) + 1)
        return col_start, col_stop, row_start, row_stop

    def rasterize(self, projected: ProjectedSplats, framebuffer: np.ndarray = None) -> np.ndarray:
        """
        Composite projected splats into a framebuffer.

        Args:
            projected: Output of project_splats for this frame
            framebuffer: Optional (H, W, 3) buffer to draw into; cleared if None

        Returns:
            (H, W, 3) float32 framebuffer
        """
        if framebuffer is None:
            framebuffer = self.clear()

        drawn = 0
        for i in self.draw_order(projected):
            col_start, col_stop, row_start, row_stop = self.pixel_bounds(
                projected.centers[i], projected.radii[i]
            )
            if col_start >= col_stop or row_start >= row_stop:
                continue

            xs = self._xs[col_start:col_stop]
            ys = self._ys[row_start:row_stop]
            pixels = np.stack(np.meshgrid(xs, ys), axis=-1)  # (rows, cols, 2)

            rgba = shade(pixels, projected.centers[i], projected.inv_covariances[i],
                         projected.colors[i], projected.opacities[i])

            region = framebuffer[row_start:row_stop, col_start:col_stop]
            framebuffer[row_start:row_stop, col_start:col_stop] = blend_over(
                region, rgba[..., :3], rgba[..., 3]
            )
            drawn += 1

        self.logger.debug("Rasterized %d of %d splats", drawn, projected.count)
        return framebuffer
