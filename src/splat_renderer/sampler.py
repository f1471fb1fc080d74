# ABOUTME: Area-weighted surface sampler that turns a mesh into gaussian splats
# ABOUTME: Weighted face selection, folded barycentric points, normal-aligned frames

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np

from .gaussian_splat import SplatCloud
from .mesh_model import MeshModel

SAMPLING_POLICIES = ('random', 'per_face')


@dataclass
class SamplerConfig:
    """
    Appearance and placement settings shared by every generated splat.

    Attributes:
        policy: 'random' draws exactly N faces weighted by area,
                'per_face' gives each face round(area / total * N) splats
        scale: per-axis standard deviation; the third axis lies along the normal
        color: RGB color [0-1]
        opacity: peak opacity [0-1]
        seed: seed for the generator when none is passed to the sampler
    """
    policy: str = 'random'
    scale: Tuple[float, float, float] = (0.01, 0.01, 0.002)
    color: Tuple[float, float, float] = (0.9, 0.9, 0.9)
    opacity: float = 0.01
    seed: Optional[int] = None

    def __post_init__(self):
        if self.policy not in SAMPLING_POLICIES:
            raise ValueError(f"Invalid sampling policy: {self.policy}. Must be one of {SAMPLING_POLICIES}")

        self.scale = tuple(float(s) for s in self.scale)
        if len(self.scale) != 3 or any(not np.isfinite(s) or s <= 0 for s in self.scale):
            raise ValueError(f"Splat scale must be three positive values, got {self.scale}")

        self.color = tuple(float(c) for c in self.color)
        if len(self.color) != 3 or any(not 0.0 <= c <= 1.0 for c in self.color):
            raise ValueError(f"Splat color must be three values in [0, 1], got {self.color}")

        if not 0.0 <= self.opacity <= 1.0:
            raise ValueError(f"Splat opacity must be in [0, 1], got {self.opacity}")


@dataclass
class SurfaceSamples:
    """
    Points drawn on a mesh surface.

    Attributes:
        positions: (N, 3) sampled points
        face_indices: (N,) face each point was drawn from
        barycentrics: (N, 3) weights of the face's three corners, summing to 1
    """
    positions: np.ndarray
    face_indices: np.ndarray
    barycentrics: np.ndarray

    @property
    def count(self) -> int:
        return len(self.positions)


def select_faces(weights: np.ndarray, draws: np.ndarray) -> np.ndarray:
    """
    Map uniform draws in [0, total) to face indices.

    Picks the first face whose cumulative weight exceeds the draw, scanning
    faces in order. Draws at or past the cumulative total (float round-off)
    land on the last face with positive weight, so zero-area faces are never
    selected.
    """
    weights = np.asarray(weights, dtype=np.float64)
    cumulative = np.cumsum(weights)
    indices = np.searchsorted(cumulative, draws, side='right')
    positive = np.flatnonzero(weights > 0)
    last = positive[-1] if len(positive) else len(cumulative) - 1
    return np.minimum(indices, last)


def fold_barycentric(u: np.ndarray, v: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Reflect (u, v) back into the triangle when u + v > 1."""
    u = np.asarray(u, dtype=np.float64)
    v = np.asarray(v, dtype=np.float64)
    outside = u + v > 1.0
    return np.where(outside, 1.0 - u, u), np.where(outside, 1.0 - v, v)


def orientation_frames(normals: np.ndarray) -> np.ndarray:
    """
    Build right-handed orthonormal frames whose third column is the normal.

    Columns 0 and 1 span the tangent plane. Zero-length normals get the
    identity frame.

    Args:
        normals: (N, 3) array, any length

    Returns:
        (N, 3, 3) rotation matrices
    """
    normals = np.asarray(normals, dtype=np.float64)
    lengths = np.linalg.norm(normals, axis=1)
    degenerate = lengths < 1e-12

    forward = normals / np.where(degenerate, 1.0, lengths)[:, None]

    # Helper up vector, switched to +X when the normal is close to +/-Y
    helper = np.tile([0.0, 1.0, 0.0], (len(normals), 1))
    near_up = np.abs(forward[:, 1]) > 0.999
    helper[near_up] = [1.0, 0.0, 0.0]

    right = np.cross(helper, forward)
    right /= np.maximum(np.linalg.norm(right, axis=1, keepdims=True), 1e-12)
    up = np.cross(forward, right)

    frames = np.stack([right, up, forward], axis=2)
    frames[degenerate] = np.eye(3)
    return frames


class SplatSampler:
    """
    Generate gaussian splats distributed over a mesh surface by area.

    Randomness comes only from the generator handed in (or seeded from the
    config), so a given seed reproduces the same splat sequence.
    """

    def __init__(self, config: Optional[SamplerConfig] = None,
                 rng: Optional[np.random.Generator] = None):
        self.config = config or SamplerConfig()
        self.rng = rng if rng is not None else np.random.default_rng(self.config.seed)
        self.logger = logging.getLogger('splat_renderer')

    def face_counts(self, mesh: MeshModel, count: int) -> np.ndarray:
        """Per-face splat counts for the 'per_face' policy, rounding half up."""
        weights = np.linalg.norm(mesh.normals, axis=1)
        return np.floor(weights / weights.sum() * count + 0.5).astype(np.int64)

    def sample_points(self, mesh: MeshModel, count: int) -> SurfaceSamples:
        """
        Draw points uniformly by area over the mesh surface.

        Args:
            mesh: Mesh to sample
            count: Target number of points

        Returns:
            SurfaceSamples in generation order

        Raises:
            ValueError: If count is not positive, or per-face rounding leaves
                every face without a splat
        """
        if count <= 0:
            raise ValueError(f"Splat count must be positive, got {count}")

        # |normal| = 2 * area; the factor of 2 cancels out in relative weights
        weights = np.linalg.norm(mesh.normals, axis=1)

        if self.config.policy == 'random':
            total = np.cumsum(weights)[-1]
            draws = self.rng.random(count) * total
            face_indices = select_faces(weights, draws)
        else:
            counts = self.face_counts(mesh, count)
            face_indices = np.repeat(np.arange(mesh.face_count), counts)
            if len(face_indices) == 0:
                raise ValueError(
                    f"Per-face rounding of {count} splats over {mesh.face_count} faces "
                    f"gives every face zero splats; request more splats or use the "
                    f"'random' policy"
                )
            if len(face_indices) != count:
                self.logger.debug("Per-face rounding produced %d splats (requested %d)",
                                  len(face_indices), count)

        n = len(face_indices)
        u, v = fold_barycentric(self.rng.random(n), self.rng.random(n))
        barycentrics = np.stack([1.0 - u - v, u, v], axis=1)

        triangles = mesh.triangles[face_indices]  # (n, 3, 3)
        positions = np.einsum('ni,nij->nj', barycentrics, triangles)

        return SurfaceSamples(positions=positions, face_indices=face_indices,
                              barycentrics=barycentrics)

    def generate(self, mesh: MeshModel, count: int) -> SplatCloud:
        """
        Generate splats lying flat on the mesh surface.

        Args:
            mesh: Mesh to sample
            count: Target number of splats (exact for the 'random' policy)

        Returns:
            SplatCloud in generation order
        """
        samples = self.sample_points(mesh, count)
        n = samples.count

        rotations = orientation_frames(mesh.normals[samples.face_indices])

        cloud = SplatCloud(
            positions=samples.positions,
            rotations=rotations,
            scales=np.tile(self.config.scale, (n, 1)),
            colors=np.tile(self.config.color, (n, 1)),
            opacities=np.full(n, self.config.opacity),
        )
        self.logger.debug("Generated %d splats from %d faces (%s policy)",
                          n, mesh.face_count, self.config.policy)
        return cloud
