# ABOUTME: Package initialization for the gaussian splat renderer
# ABOUTME: Exports the sampler, buffer layout, projection and rendering entry points

from .mesh_model import MeshModel, load_mesh
from .gaussian_splat import GaussianSplat, SplatCloud
from .sampler import SamplerConfig, SplatSampler
from .buffer_layout import pack_splats, unpack_splats, SPLAT_STRIDE, FLOATS_PER_SPLAT
from .camera import CameraState, look_at, orbit_camera
from .projection import ProjectedSplats, project_splats
from .rasterizer import SplatRasterizer
from .renderer import SplatRenderer, DrawCall
from .ply_io import save_ply, load_ply

__version__ = "0.1.0"

__all__ = [
    "MeshModel",
    "load_mesh",
    "GaussianSplat",
    "SplatCloud",
    "SamplerConfig",
    "SplatSampler",
    "pack_splats",
    "unpack_splats",
    "SPLAT_STRIDE",
    "FLOATS_PER_SPLAT",
    "CameraState",
    "look_at",
    "orbit_camera",
    "ProjectedSplats",
    "project_splats",
    "SplatRasterizer",
    "SplatRenderer",
    "DrawCall",
    "save_ply",
    "load_ply",
]
