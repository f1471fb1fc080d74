# ABOUTME: Fixed binary record layout for packed gaussian splats
# ABOUTME: Packs splats and per-frame camera uniforms into little-endian float32 bytes

"""
Packed splat buffer.

Each splat is 24 float32 values (96 bytes) in 16-byte aligned groups:

    [0:4]   position.xyz, pad
    [4:8]   rotation row 0, pad
    [8:12]  rotation row 1, pad
    [12:16] rotation row 2, pad
    [16:20] scale.xyz, pad
    [20:24] color.rgb, opacity

Records are laid out back to back in instance order.
"""

import logging
from pathlib import Path
from typing import Union

import numpy as np

from .gaussian_splat import SplatCloud

logger = logging.getLogger('splat_renderer')

FLOAT_DTYPE = np.dtype('<f4')
FLOATS_PER_SPLAT = 24
SPLAT_STRIDE = FLOATS_PER_SPLAT * FLOAT_DTYPE.itemsize  # 96 bytes

POSITION_OFFSET = 0
ROTATION_OFFSETS = (4, 8, 12)
SCALE_OFFSET = 16
COLOR_OFFSET = 20
OPACITY_OFFSET = 23


def splats_to_records(cloud: SplatCloud) -> np.ndarray:
    """Lay splats out as an (N, 24) float32 array; padding slots are zero."""
    records = np.zeros((cloud.count, FLOATS_PER_SPLAT), dtype=FLOAT_DTYPE)
    records[:, POSITION_OFFSET:POSITION_OFFSET + 3] = cloud.positions
    for row, offset in enumerate(ROTATION_OFFSETS):
        records[:, offset:offset + 3] = cloud.rotations[:, row, :]
    records[:, SCALE_OFFSET:SCALE_OFFSET + 3] = cloud.scales
    records[:, COLOR_OFFSET:COLOR_OFFSET + 3] = cloud.colors
    records[:, OPACITY_OFFSET] = cloud.opacities
    return records


def records_to_splats(records: np.ndarray) -> SplatCloud:
    """Inverse of splats_to_records. Padding slots are ignored."""
    records = np.asarray(records, dtype=FLOAT_DTYPE).reshape(-1, FLOATS_PER_SPLAT)
    rotations = np.stack(
        [records[:, offset:offset + 3] for offset in ROTATION_OFFSETS], axis=1
    )
    return SplatCloud(
        positions=records[:, POSITION_OFFSET:POSITION_OFFSET + 3].copy(),
        rotations=rotations,
        scales=records[:, SCALE_OFFSET:SCALE_OFFSET + 3].copy(),
        colors=records[:, COLOR_OFFSET:COLOR_OFFSET + 3].copy(),
        opacities=records[:, OPACITY_OFFSET].copy(),
    )


def pack_splats(cloud: SplatCloud) -> bytes:
    """Serialize splats into the packed buffer format."""
    return splats_to_records(cloud).tobytes()


def unpack_splats(data: bytes) -> SplatCloud:
    """
    Parse a packed buffer back into splats.

    Raises:
        ValueError: If the byte length is not a whole number of records
    """
    if len(data) % SPLAT_STRIDE != 0:
        raise ValueError(
            f"Buffer length {len(data)} is not a multiple of the {SPLAT_STRIDE}-byte splat stride"
        )
    records = np.frombuffer(data, dtype=FLOAT_DTYPE).reshape(-1, FLOATS_PER_SPLAT)
    return records_to_splats(records)


def pack_view_uniform(view: np.ndarray) -> bytes:
    """4x4 view matrix as 16 column-major float32 values (mat4x4<f32> layout)."""
    view = np.asarray(view, dtype=np.float64)
    if view.shape != (4, 4):
        raise ValueError(f"View matrix must be 4x4, got {view.shape}")
    return view.astype(FLOAT_DTYPE).tobytes(order='F')


def pack_aspect_uniform(aspect_ratio: float) -> bytes:
    """Aspect ratio as a single float32."""
    return np.array([aspect_ratio], dtype=FLOAT_DTYPE).tobytes()


def write_buffer(cloud: SplatCloud, path: Union[str, Path]) -> Path:
    """Write the packed buffer to disk."""
    path = Path(path)
    data = pack_splats(cloud)
    path.write_bytes(data)
    logger.info("Wrote %d splats to %s (%d bytes, stride %d)",
                cloud.count, path, len(data), SPLAT_STRIDE)
    return path


def read_buffer(path: Union[str, Path]) -> SplatCloud:
    """Read a packed buffer written by write_buffer."""
    return unpack_splats(Path(path).read_bytes())
