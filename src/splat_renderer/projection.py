# ABOUTME: Per-instance geometry stage projecting 3D gaussians to screen-space ellipses
# ABOUTME: Jacobian-linearized covariance projection, 3-sigma quads, 2x2 inverse covariance

"""
Projection of gaussian splats into normalized device coordinates.

Every primitive is handled independently, so the whole stage is a batched
map over instances. Given a splat with mean mu, rotation R and scale s, and
a view matrix with rotation block W and translation t:

    p      = W mu + t
    Sigma3 = R diag(s)^2 R^T
    pp     = (p.x k / ar / p.z, p.y k / p.z)
    J      = [[k/(p.z ar), 0, -p.x k/(ar p.z^2)],
              [0,        k/p.z, -p.y k/p.z^2]]
    Sigma2 = J W Sigma3 W^T J^T

with k = -1 / tan(30 deg). Primitives at or behind the camera, or whose
projected covariance has a non-positive determinant, are culled.
"""

import logging
from dataclasses import dataclass

import numpy as np

from .camera import CameraState, PROJECTION_K
from .gaussian_splat import SplatCloud, covariance_matrix

logger = logging.getLogger('splat_renderer')

# Coverage cutoff in standard deviations
SIGMA_EXTENT = 3.0
DEFAULT_NEAR = 1e-4

# Triangle-strip order of the unit quad corners
QUAD_CORNERS = np.array([[-1.0, -1.0], [1.0, -1.0], [-1.0, 1.0], [1.0, 1.0]])


def covariance_3d(rotations: np.ndarray, scales: np.ndarray) -> np.ndarray:
    """(N, 3, 3) covariances R S S^T R^T."""
    return covariance_matrix(rotations, scales)


def projection_jacobian(points: np.ndarray, aspect_ratio: float,
                        k: float = PROJECTION_K) -> np.ndarray:
    """
    Jacobian of the perspective map at camera-space points.

    Args:
        points: (N, 3) camera-space positions
        aspect_ratio: viewport width / height
        k: projection constant

    Returns:
        (N, 2, 3) Jacobians
    """
    points = np.asarray(points, dtype=np.float64)
    x, y, z = points[:, 0], points[:, 1], points[:, 2]
    jacobian = np.zeros((len(points), 2, 3))
    jacobian[:, 0, 0] = k / (z * aspect_ratio)
    jacobian[:, 0, 2] = -x * k / (aspect_ratio * z * z)
    jacobian[:, 1, 1] = k / z
    jacobian[:, 1, 2] = -y * k / (z * z)
    return jacobian


def project_covariance(cov3d: np.ndarray, jacobian: np.ndarray,
                       view_rotation: np.ndarray) -> np.ndarray:
    """(N, 2, 2) screen-space covariances J W Sigma3 W^T J^T."""
    t = jacobian @ view_rotation
    return t @ cov3d @ np.swapaxes(t, -1, -2)


def invert_covariance_2d(cov2d: np.ndarray) -> np.ndarray:
    """
    Closed-form inverse of 2x2 covariances with the determinant clamped at zero.

    A clamped determinant of zero yields inf/NaN entries; callers cull those.
    """
    det = np.maximum(0.0, cov2d[:, 0, 0] * cov2d[:, 1, 1] - cov2d[:, 0, 1] * cov2d[:, 1, 0])
    adjugate = np.empty_like(cov2d)
    adjugate[:, 0, 0] = cov2d[:, 1, 1]
    adjugate[:, 0, 1] = -cov2d[:, 1, 0]
    adjugate[:, 1, 0] = -cov2d[:, 0, 1]
    adjugate[:, 1, 1] = cov2d[:, 0, 0]
    with np.errstate(divide='ignore', invalid='ignore'):
        return adjugate / det[:, None, None]


@dataclass
class ProjectedSplats:
    """
    Screen-space ellipses for one frame.

    Attributes:
        centers: (N, 2) projected centers in NDC
        radii: (N, 2) 3-sigma half extents along the screen axes
        covariances: (N, 2, 2) screen-space covariances
        inv_covariances: (N, 2, 2) inverses (NaN for culled primitives)
        colors: (N, 3) RGB colors
        opacities: (N,) peak opacities
        depths: (N,) camera-space z (negative in front of the camera)
        visible: (N,) False for culled primitives
    """
    centers: np.ndarray
    radii: np.ndarray
    covariances: np.ndarray
    inv_covariances: np.ndarray
    colors: np.ndarray
    opacities: np.ndarray
    depths: np.ndarray
    visible: np.ndarray

    @property
    def count(self) -> int:
        return len(self.centers)

    @property
    def visible_count(self) -> int:
        return int(np.count_nonzero(self.visible))

    def quad_vertices(self) -> np.ndarray:
        """(N, 4, 2) quad corners center + corner * radius, triangle-strip order."""
        return self.centers[:, None, :] + QUAD_CORNERS[None, :, :] * self.radii[:, None, :]


def project_splats(cloud: SplatCloud, camera: CameraState,
                   near: float = DEFAULT_NEAR) -> ProjectedSplats:
    """
    Project every splat for the given camera.

    Args:
        cloud: Splats to project
        camera: View matrix and aspect ratio for this frame
        near: Primitives with camera-space z > -near are culled

    Returns:
        ProjectedSplats in the same order as the input
    """
    w = camera.rotation
    points = cloud.positions.astype(np.float64) @ w.T + camera.translation
    z = points[:, 2]
    in_front = z < -near

    # Culled rows may divide by zero; they are masked out below
    with np.errstate(divide='ignore', invalid='ignore', over='ignore'):
        k = PROJECTION_K
        ar = camera.aspect_ratio
        centers = np.stack([points[:, 0] * k / ar / z, points[:, 1] * k / z], axis=1)

        cov3d = covariance_3d(cloud.rotations, cloud.scales)
        jacobian = projection_jacobian(points, ar)
        cov2d = project_covariance(cov3d, jacobian, w)

        radii = SIGMA_EXTENT * np.sqrt(np.stack([cov2d[:, 0, 0], cov2d[:, 1, 1]], axis=1))
        inv_cov = invert_covariance_2d(cov2d)

    finite = (np.all(np.isfinite(inv_cov), axis=(1, 2))
              & np.all(np.isfinite(centers), axis=1)
              & np.all(np.isfinite(radii), axis=1))
    visible = in_front & finite

    inv_cov[~visible] = np.nan

    culled = len(visible) - int(np.count_nonzero(visible))
    if culled:
        logger.debug("Culled %d of %d splats (behind camera or degenerate covariance)",
                     culled, len(visible))

    return ProjectedSplats(
        centers=centers,
        radii=radii,
        covariances=cov2d,
        inv_covariances=inv_cov,
        colors=cloud.colors.astype(np.float64),
        opacities=cloud.opacities.astype(np.float64),
        depths=z,
        visible=visible,
    )
