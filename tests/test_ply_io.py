# ABOUTME: Tests for PLY export and import of splat clouds
# ABOUTME: Plain and gzip round trips, header layout and malformed input

import gzip
import pytest
import numpy as np
import sys
from pathlib import Path
from scipy.spatial.transform import Rotation

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from splat_renderer.gaussian_splat import SplatCloud
from splat_renderer.ply_io import PLY_PROPERTIES, load_ply, save_ply


@pytest.fixture
def cloud():
    rng = np.random.default_rng(11)
    n = 40
    return SplatCloud(
        positions=rng.normal(size=(n, 3)),
        rotations=Rotation.from_rotvec(rng.normal(size=(n, 3))).as_matrix(),
        scales=rng.uniform(0.001, 0.1, size=(n, 3)),
        colors=rng.random((n, 3)),
        opacities=rng.uniform(0.05, 0.95, size=n),
    )


def assert_clouds_close(loaded, cloud):
    assert loaded.count == cloud.count
    np.testing.assert_allclose(loaded.positions, cloud.positions, atol=1e-6)
    np.testing.assert_allclose(loaded.rotations, cloud.rotations, atol=1e-5)
    np.testing.assert_allclose(loaded.scales, cloud.scales, rtol=1e-5)
    np.testing.assert_allclose(loaded.colors, cloud.colors, atol=1e-5)
    np.testing.assert_allclose(loaded.opacities, cloud.opacities, atol=1e-5)


class TestPlyIO:
    """PLY export."""

    def test_round_trip(self, cloud, tmp_path):
        path = save_ply(cloud, tmp_path / "splats.ply")
        assert_clouds_close(load_ply(path), cloud)

    def test_gzip_round_trip(self, cloud, tmp_path):
        path = save_ply(cloud, tmp_path / "splats.ply.gz")
        with gzip.open(path, 'rb') as f:
            assert f.readline().strip() == b'ply'
        assert_clouds_close(load_ply(path), cloud)

    def test_header(self, cloud, tmp_path):
        path = save_ply(cloud, tmp_path / "splats.ply")
        data = path.read_bytes()
        header, _, payload = data.partition(b'end_header\n')

        assert b'format binary_little_endian 1.0' in header
        assert f'element vertex {cloud.count}'.encode() in header
        for name in PLY_PROPERTIES:
            assert f'property float {name}\n'.encode() in header
        assert len(payload) == cloud.count * len(PLY_PROPERTIES) * 4

    def test_normal_is_shortest_axis(self, cloud, tmp_path):
        path = save_ply(cloud, tmp_path / "splats.ply")
        payload = path.read_bytes().partition(b'end_header\n')[2]
        data = np.frombuffer(payload, dtype='<f4').reshape(cloud.count, len(PLY_PROPERTIES))
        np.testing.assert_allclose(data[:, 3:6], cloud.rotations[:, :, 2], atol=1e-7)

    def test_extreme_opacity_stays_finite(self, tmp_path):
        cloud = SplatCloud(
            positions=np.zeros((2, 3)),
            rotations=np.tile(np.eye(3), (2, 1, 1)),
            scales=np.full((2, 3), 0.01),
            colors=np.full((2, 3), 0.5),
            opacities=np.array([0.0, 1.0]),
        )
        loaded = load_ply(save_ply(cloud, tmp_path / "edge.ply"))
        np.testing.assert_allclose(loaded.opacities, [0.0, 1.0], atol=1e-5)

    def test_not_a_ply(self, tmp_path):
        path = tmp_path / "bogus.ply"
        path.write_bytes(b"solid cube\nendsolid\n")
        with pytest.raises(ValueError, match="Not a PLY"):
            load_ply(path)

    def test_ascii_ply_rejected(self, tmp_path):
        path = tmp_path / "ascii.ply"
        path.write_bytes(b"ply\nformat ascii 1.0\nelement vertex 0\nend_header\n")
        with pytest.raises(ValueError, match="Unsupported PLY format"):
            load_ply(path)

    def test_missing_properties(self, tmp_path):
        path = tmp_path / "points.ply"
        path.write_bytes(b"ply\nformat binary_little_endian 1.0\nelement vertex 0\n"
                         b"property float x\nproperty float y\nproperty float z\nend_header\n")
        with pytest.raises(ValueError, match="missing properties"):
            load_ply(path)

    def test_truncated_header(self, tmp_path):
        path = tmp_path / "cut.ply"
        path.write_bytes(b"ply\nformat binary_little_endian 1.0\nelement vertex 3\n")
        with pytest.raises(ValueError, match="Unterminated"):
            load_ply(path)
