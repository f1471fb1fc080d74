# ABOUTME: Data structures for oriented anisotropic gaussian splats
# ABOUTME: Stores position, rotation, scale, color and opacity with invariant checks

import numpy as np
from dataclasses import dataclass
from typing import Iterator, Sequence

# float32 round-off allowed when checking R @ R.T == I
ORTHONORMAL_TOLERANCE = 1e-4


def _check_rotations(rotations: np.ndarray) -> None:
    identity = np.eye(3)
    products = rotations.astype(np.float64) @ np.swapaxes(rotations, -1, -2).astype(np.float64)
    if not np.allclose(products, identity, atol=ORTHONORMAL_TOLERANCE):
        raise ValueError("Rotation must be orthonormal (R @ R.T == I)")


def _check_common(scales: np.ndarray, colors: np.ndarray, opacities: np.ndarray) -> None:
    if not np.all(np.isfinite(scales)) or np.any(scales <= 0):
        raise ValueError("Scale components must be strictly positive")
    if not np.all(np.isfinite(colors)):
        raise ValueError("Colors must be finite")
    if np.any(~np.isfinite(opacities)) or np.any(opacities < 0) or np.any(opacities > 1):
        raise ValueError("Opacity must lie in [0, 1]")


def covariance_matrix(rotation: np.ndarray, scale: np.ndarray) -> np.ndarray:
    """Sigma = R S S^T R^T with S = diag(scale); works on single or stacked inputs."""
    rotation = np.asarray(rotation, dtype=np.float64)
    scale = np.asarray(scale, dtype=np.float64)
    m = rotation * scale[..., None, :]
    return m @ np.swapaxes(m, -1, -2)


@dataclass
class GaussianSplat:
    """
    A single 3D gaussian primitive.

    Attributes:
        position: (3,) mean of the gaussian in world space
        rotation: (3, 3) orthonormal matrix whose columns are the principal axes
        scale: (3,) standard deviation along each principal axis
        color: (3,) RGB color
        opacity: peak alpha at the center, in [0, 1]
    """
    position: np.ndarray
    rotation: np.ndarray
    scale: np.ndarray
    color: np.ndarray
    opacity: float

    def __post_init__(self):
        self.position = np.asarray(self.position, dtype=np.float32).reshape(3)
        self.rotation = np.asarray(self.rotation, dtype=np.float32).reshape(3, 3)
        self.scale = np.asarray(self.scale, dtype=np.float32).reshape(3)
        self.color = np.asarray(self.color, dtype=np.float32).reshape(3)
        self.opacity = float(self.opacity)

        if not np.all(np.isfinite(self.position)):
            raise ValueError("Position must be finite")
        _check_rotations(self.rotation)
        _check_common(self.scale, self.color, np.array([self.opacity]))

    @property
    def covariance(self) -> np.ndarray:
        """3x3 world-space covariance."""
        return covariance_matrix(self.rotation, self.scale)


@dataclass
class SplatCloud:
    """
    Ordered collection of gaussian splats in struct-of-arrays form.

    Values are stored as float32, the precision of the packed buffer.

    Attributes:
        positions: (N, 3) array of gaussian centers
        rotations: (N, 3, 3) array of orthonormal rotation matrices
        scales: (N, 3) array of per-axis standard deviations
        colors: (N, 3) array of RGB colors
        opacities: (N,) array of opacity values [0-1]
    """
    positions: np.ndarray
    rotations: np.ndarray
    scales: np.ndarray
    colors: np.ndarray
    opacities: np.ndarray

    def __post_init__(self):
        self.positions = np.asarray(self.positions, dtype=np.float32)
        self.rotations = np.asarray(self.rotations, dtype=np.float32)
        self.scales = np.asarray(self.scales, dtype=np.float32)
        self.colors = np.asarray(self.colors, dtype=np.float32)
        self.opacities = np.asarray(self.opacities, dtype=np.float32)

        n = len(self.positions)
        if self.positions.shape != (n, 3):
            raise ValueError("Positions must be (N, 3)")
        if self.rotations.shape != (n, 3, 3):
            raise ValueError("Rotations must be (N, 3, 3)")
        if self.scales.shape != (n, 3):
            raise ValueError("Scales must be (N, 3)")
        if self.colors.shape != (n, 3):
            raise ValueError("Colors must be (N, 3)")
        if self.opacities.shape != (n,):
            raise ValueError("Opacities must be (N,)")

        if n == 0:
            return
        if not np.all(np.isfinite(self.positions)):
            raise ValueError("Positions must be finite")
        _check_rotations(self.rotations)
        _check_common(self.scales, self.colors, self.opacities)

    @property
    def count(self) -> int:
        """Return number of gaussians."""
        return len(self.positions)

    def __len__(self) -> int:
        return self.count

    def __getitem__(self, index: int) -> GaussianSplat:
        return GaussianSplat(
            position=self.positions[index],
            rotation=self.rotations[index],
            scale=self.scales[index],
            color=self.colors[index],
            opacity=self.opacities[index],
        )

    def __iter__(self) -> Iterator[GaussianSplat]:
        for i in range(self.count):
            yield self[i]

    def covariances(self) -> np.ndarray:
        """(N, 3, 3) world-space covariances."""
        return covariance_matrix(self.rotations, self.scales)

    def subset(self, indices: np.ndarray) -> 'SplatCloud':
        """Create a subset of gaussians by indices."""
        return SplatCloud(
            positions=self.positions[indices],
            rotations=self.rotations[indices],
            scales=self.scales[indices],
            colors=self.colors[indices],
            opacities=self.opacities[indices],
        )

    @classmethod
    def from_splats(cls, splats: Sequence[GaussianSplat]) -> 'SplatCloud':
        """Stack individual splats, keeping their order."""
        return cls(
            positions=np.array([s.position for s in splats], dtype=np.float32).reshape(-1, 3),
            rotations=np.array([s.rotation for s in splats], dtype=np.float32).reshape(-1, 3, 3),
            scales=np.array([s.scale for s in splats], dtype=np.float32).reshape(-1, 3),
            colors=np.array([s.color for s in splats], dtype=np.float32).reshape(-1, 3),
            opacities=np.array([s.opacity for s in splats], dtype=np.float32),
        )

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            'positions': self.positions,
            'rotations': self.rotations,
            'scales': self.scales,
            'colors': self.colors,
            'opacities': self.opacities,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'SplatCloud':
        """Create from dictionary."""
        return cls(
            positions=data['positions'],
            rotations=data['rotations'],
            scales=data['scales'],
            colors=data['colors'],
            opacities=data['opacities'],
        )
