# ABOUTME: Triangle mesh container consumed by the splat sampler
# ABOUTME: Computes per-face cross-product normals and validates mesh input

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Union

import numpy as np
import trimesh

logger = logging.getLogger('splat_renderer')


def face_normals(vertices: np.ndarray, faces: np.ndarray) -> np.ndarray:
    """
    Raw (non-normalized) face normals.

    Each normal is (V1 - V0) x (V2 - V0), so its magnitude is twice the
    triangle's area.
    """
    v0 = vertices[faces[:, 0]]
    v1 = vertices[faces[:, 1]]
    v2 = vertices[faces[:, 2]]
    return np.cross(v1 - v0, v2 - v0)


@dataclass(frozen=True)
class MeshModel:
    """
    Passive triangle mesh data.

    Attributes:
        vertices: (V, 3) array of object-space positions
        faces: (F, 3) array of vertex indices, one triangle per row
        normals: (F, 3) array of raw cross-product normals (|n| = 2 * area)
    """
    vertices: np.ndarray
    faces: np.ndarray
    normals: np.ndarray

    def __post_init__(self):
        vertices = np.array(self.vertices, dtype=np.float64)
        faces = np.array(self.faces, dtype=np.int64)
        normals = np.array(self.normals, dtype=np.float64)

        _validate(vertices, faces)

        if normals.shape != faces.shape:
            raise ValueError(
                f"Expected one normal per face: {len(normals)} normals for {len(faces)} faces"
            )
        if not np.any(np.linalg.norm(normals, axis=1) > 0):
            raise ValueError(
                "Mesh has zero total surface area. "
                "Every face is degenerate, so no face can be sampled."
            )

        for array in (vertices, faces, normals):
            array.setflags(write=False)

        # Frozen dataclass: bypass __setattr__ to store the validated copies
        object.__setattr__(self, 'vertices', vertices)
        object.__setattr__(self, 'faces', faces)
        object.__setattr__(self, 'normals', normals)

    @classmethod
    def from_arrays(cls, vertices, faces) -> 'MeshModel':
        """Build a mesh model, computing normals from the face edges."""
        vertices = np.asarray(vertices, dtype=np.float64)
        faces = np.asarray(faces, dtype=np.int64)
        _validate(vertices, faces)
        return cls(vertices=vertices, faces=faces, normals=face_normals(vertices, faces))

    @classmethod
    def from_trimesh(cls, mesh: trimesh.Trimesh) -> 'MeshModel':
        """Adapt a trimesh mesh."""
        return cls.from_arrays(mesh.vertices, mesh.faces)

    @property
    def face_count(self) -> int:
        return len(self.faces)

    @property
    def face_areas(self) -> np.ndarray:
        return np.linalg.norm(self.normals, axis=1) * 0.5

    @property
    def total_area(self) -> float:
        return float(self.face_areas.sum())

    @property
    def triangles(self) -> np.ndarray:
        """(F, 3, 3) array of triangle corner positions."""
        return self.vertices[self.faces]

    @property
    def bounds(self) -> np.ndarray:
        """(2, 3) array of the min and max corners."""
        return np.array([self.vertices.min(axis=0), self.vertices.max(axis=0)])


def _validate(vertices: np.ndarray, faces: np.ndarray) -> None:
    """
    Validate mesh arrays.

    Raises:
        ValueError: If the mesh cannot be sampled
    """
    if vertices.ndim != 2 or vertices.shape[1] != 3 or len(vertices) == 0:
        raise ValueError("Mesh has no vertices")

    if faces.size == 0:
        raise ValueError(
            "Mesh has no faces (point clouds are not supported). "
            "Please provide a mesh with faces."
        )

    if faces.ndim != 2 or faces.shape[1] != 3:
        raise ValueError(f"Faces must be (F, 3) vertex index triples, got shape {faces.shape}")

    if np.any(~np.isfinite(vertices)):
        raise ValueError(
            "Mesh contains NaN or Inf vertex coordinates. "
            "Please check your mesh file for corruption."
        )

    if faces.min() < 0 or faces.max() >= len(vertices):
        raise ValueError(
            f"Face index out of range: indices must lie in [0, {len(vertices) - 1}], "
            f"got [{faces.min()}, {faces.max()}]"
        )


def load_mesh(path: Union[str, Path], normalize: bool = True) -> MeshModel:
    """
    Load a mesh file into a MeshModel.

    Args:
        path: Path to mesh file (.obj, .ply, .stl, .off, .glb, ...)
        normalize: Center on the vertex mean and scale so coordinates lie in [-1, 1]

    Returns:
        Validated mesh model

    Raises:
        FileNotFoundError: If file doesn't exist
        ValueError: If mesh is invalid or degenerate
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Mesh file not found: {path}")

    mesh = trimesh.load(str(path), force='mesh', process=False)
    vertices = np.array(mesh.vertices, dtype=np.float64)
    faces = np.array(mesh.faces, dtype=np.int64)

    _validate(vertices, faces)

    if normalize:
        vertices -= vertices.mean(axis=0)
        scale = np.abs(vertices).max()
        if scale < 1e-8:
            raise ValueError(
                "Cannot normalize mesh: all vertices are at the same point after centering. "
                "This indicates a degenerate mesh."
            )
        vertices /= scale

    model = MeshModel.from_arrays(vertices, faces)
    logger.debug("Loaded mesh %s: %d vertices, %d faces (area %.4f)",
                 path.name, len(model.vertices), model.face_count, model.total_area)
    return model
