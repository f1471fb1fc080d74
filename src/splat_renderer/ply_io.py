# ABOUTME: PLY file I/O for gaussian splats in the common 3DGS layout
# ABOUTME: Log-space scales, logit opacity, SH DC colors and (w, x, y, z) quaternions

import gzip
import logging
from pathlib import Path
from typing import Union

import numpy as np
from scipy.spatial.transform import Rotation

from .gaussian_splat import SplatCloud

logger = logging.getLogger('splat_renderer')

# Zeroth-order spherical harmonics basis constant
SH_C0 = 0.28209479177387814

PLY_PROPERTIES = (
    'x', 'y', 'z',
    'nx', 'ny', 'nz',
    'f_dc_0', 'f_dc_1', 'f_dc_2',
    'opacity',
    'scale_0', 'scale_1', 'scale_2',
    'rot_0', 'rot_1', 'rot_2', 'rot_3',
)

# Keeps the logit finite for opacities of exactly 0 or 1
_OPACITY_EPS = 1e-6


def _open(path: Path, mode: str, compress: bool):
    return gzip.open(path, mode) if compress else open(path, mode)


def save_ply(cloud: SplatCloud, filepath: Union[str, Path], compress: bool = False) -> Path:
    """
    Save gaussian splats to a binary PLY file.

    Args:
        cloud: Splats to save
        filepath: Output PLY file path (.ply or .ply.gz)
        compress: If True, compress with gzip (also implied by a .gz suffix)

    File Format:
        17 little-endian float32 properties per vertex (68 bytes)
        - Position (x, y, z)
        - Normal (nx, ny, nz): the splat's shortest axis
        - SH DC (f_dc_0..2): (rgb - 0.5) / C0
        - Opacity: logit of the linear opacity
        - Scales (scale_0..2): LOG SPACE
        - Rotation (rot_0..3): quaternion (w, x, y, z)
    """
    filepath = Path(filepath)
    if filepath.suffix == '.gz':
        compress = True

    n = cloud.count
    data = np.zeros((n, len(PLY_PROPERTIES)), dtype='<f4')
    data[:, 0:3] = cloud.positions
    data[:, 3:6] = cloud.rotations[:, :, 2]
    data[:, 6:9] = (cloud.colors - 0.5) / SH_C0
    opacity = np.clip(cloud.opacities.astype(np.float64), _OPACITY_EPS, 1.0 - _OPACITY_EPS)
    data[:, 9] = np.log(opacity / (1.0 - opacity))
    data[:, 10:13] = np.log(cloud.scales)
    if n:
        quats_xyzw = Rotation.from_matrix(cloud.rotations.astype(np.float64)).as_quat()
        data[:, 13] = quats_xyzw[:, 3]
        data[:, 14:17] = quats_xyzw[:, :3]

    header = [
        'ply',
        'format binary_little_endian 1.0',
        'comment Generated by splat-renderer',
        'comment Scales: LOG SPACE, opacity: logit, rotation: quaternion (w, x, y, z)',
        f'element vertex {n}',
    ]
    header.extend(f'property float {name}' for name in PLY_PROPERTIES)
    header.append('end_header')

    with _open(filepath, 'wb', compress) as f:
        f.write(('\n'.join(header) + '\n').encode('ascii'))
        f.write(data.tobytes())

    logger.info("Saved %d gaussians to %s%s", n, filepath, " (gzip compressed)" if compress else "")
    return filepath


def load_ply(filepath: Union[str, Path]) -> SplatCloud:
    """
    Load gaussian splats from a PLY file written by save_ply.

    Args:
        filepath: Input PLY file path (.ply or .ply.gz)

    Returns:
        SplatCloud

    Raises:
        ValueError: If the file is not a binary little-endian float PLY with the expected properties
    """
    filepath = Path(filepath)
    compress = filepath.suffix == '.gz'

    with _open(filepath, 'rb', compress) as f:
        if f.readline().strip() != b'ply':
            raise ValueError(f"Not a PLY file: {filepath}")

        vertex_count = 0
        properties = []
        while True:
            line = f.readline()
            if not line:
                raise ValueError(f"Unterminated PLY header: {filepath}")
            parts = line.decode('ascii').split()
            if not parts or parts[0] == 'comment':
                continue
            if parts[0] == 'format' and parts[1] != 'binary_little_endian':
                raise ValueError(f"Unsupported PLY format: {parts[1]}")
            if parts[:2] == ['element', 'vertex']:
                vertex_count = int(parts[2])
            elif parts[0] == 'property':
                if parts[1] != 'float':
                    raise ValueError(f"Unsupported property type: {parts[1]} {parts[2]}")
                properties.append(parts[2])
            elif parts[0] == 'end_header':
                break

        missing = set(PLY_PROPERTIES) - set(properties)
        if missing:
            raise ValueError(f"PLY file is missing properties: {sorted(missing)}")

        payload = f.read(vertex_count * len(properties) * 4)

    data = np.frombuffer(payload, dtype='<f4').reshape(vertex_count, len(properties))
    column = {name: data[:, i] for i, name in enumerate(properties)}

    def stack(*names):
        return np.stack([column[name] for name in names], axis=1).astype(np.float64)

    if vertex_count:
        quats_wxyz = stack('rot_0', 'rot_1', 'rot_2', 'rot_3')
        rotations = Rotation.from_quat(quats_wxyz[:, [1, 2, 3, 0]]).as_matrix()
    else:
        rotations = np.zeros((0, 3, 3))

    cloud = SplatCloud(
        positions=stack('x', 'y', 'z'),
        rotations=rotations,
        scales=np.exp(stack('scale_0', 'scale_1', 'scale_2')),
        colors=stack('f_dc_0', 'f_dc_1', 'f_dc_2') * SH_C0 + 0.5,
        opacities=1.0 / (1.0 + np.exp(-column['opacity'].astype(np.float64))),
    )
    logger.debug("Loaded %d gaussians from %s", cloud.count, filepath)
    return cloud
