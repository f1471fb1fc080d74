# ABOUTME: Tests for the frame renderer driven by a packed splat buffer
# ABOUTME: Renders a sampled sphere and checks coverage, determinism and PNG output

import pytest
import numpy as np
import trimesh
import sys
from pathlib import Path
from PIL import Image

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from splat_renderer.buffer_layout import pack_splats
from splat_renderer.camera import CameraState, look_at, orbit_camera
from splat_renderer.mesh_model import MeshModel
from splat_renderer.rasterizer import DEFAULT_BACKGROUND
from splat_renderer.renderer import DrawCall, SplatRenderer, save_image, to_uint8
from splat_renderer.sampler import SamplerConfig, SplatSampler


@pytest.fixture(scope="module")
def sphere_buffer():
    mesh = MeshModel.from_trimesh(trimesh.creation.icosphere(subdivisions=2, radius=1.0))
    sampler = SplatSampler(SamplerConfig(scale=(0.05, 0.05, 0.01), opacity=0.5, seed=3))
    return pack_splats(sampler.generate(mesh, 2000))


@pytest.fixture
def renderer(sphere_buffer):
    return SplatRenderer(sphere_buffer, 64, 48)


def front_camera(aspect_ratio):
    return CameraState(view=look_at([0.0, 0.0, 3.0], [0.0, 0.0, 0.0]), aspect_ratio=aspect_ratio)


class TestSplatRenderer:
    """Rendering a packed buffer."""

    def test_draw_call(self, renderer):
        assert renderer.count == 2000
        assert renderer.draw_call == DrawCall(instance_count=2000)
        assert renderer.draw_call.vertices_per_instance == 4
        assert renderer.draw_call.topology == 'triangle-strip'
        assert not renderer.draw_call.depth_test

    def test_render_shape(self, renderer):
        image = renderer.render(front_camera(renderer.aspect_ratio))
        assert image.shape == (48, 64, 3)
        assert image.dtype == np.float32

    def test_sphere_covers_center_not_corners(self, renderer):
        image = renderer.render(front_camera(renderer.aspect_ratio))
        background = np.array(DEFAULT_BACKGROUND)

        assert np.abs(image[24, 32] - background).max() > 0.1
        for row, col in [(0, 0), (0, 63), (47, 0), (47, 63)]:
            np.testing.assert_allclose(image[row, col], background, rtol=1e-6)

    def test_buffer_is_read_only(self, renderer):
        with pytest.raises(ValueError):
            renderer.splats.positions[0, 0] = 5.0

    def test_deterministic(self, renderer):
        camera = front_camera(renderer.aspect_ratio)
        np.testing.assert_array_equal(renderer.render(camera), renderer.render(camera))

    def test_render_frame_uses_camera_fn(self, renderer):
        calls = []

        def camera_fn(frame_time, aspect_ratio):
            calls.append((frame_time, aspect_ratio))
            return orbit_camera(frame_time, aspect_ratio)

        image = renderer.render_frame(1.5, camera_fn)
        assert calls == [(1.5, 64 / 48)]
        np.testing.assert_array_equal(image, renderer.render(orbit_camera(1.5, 64 / 48)))

    def test_camera_behind_everything(self, renderer):
        # Looking away from the sphere: nothing is in front of the camera
        view = look_at([0.0, 0.0, 3.0], [0.0, 0.0, 6.0])
        image = renderer.render(CameraState(view=view, aspect_ratio=renderer.aspect_ratio))
        np.testing.assert_allclose(image, renderer.rasterizer.clear())

    def test_empty_buffer(self):
        renderer = SplatRenderer(b'', 8, 8)
        assert renderer.count == 0
        image = renderer.render(front_camera(1.0))
        np.testing.assert_allclose(image, renderer.rasterizer.clear())


class TestImageOutput:

    def test_to_uint8_clamps(self):
        image = np.array([[[-0.5, 0.5, 2.0]]])
        np.testing.assert_array_equal(to_uint8(image), [[[0, 128, 255]]])

    def test_save_image(self, renderer, tmp_path):
        image = renderer.render(front_camera(renderer.aspect_ratio))
        path = save_image(image, tmp_path / "frame.png")

        assert path.exists()
        with Image.open(path) as loaded:
            assert loaded.size == (64, 48)
            assert loaded.mode == 'RGB'
            np.testing.assert_array_equal(np.asarray(loaded), to_uint8(image))
