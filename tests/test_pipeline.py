"""
Tests for the render pipeline, its configuration and the command-line entry point.
"""

import pytest
import numpy as np
import trimesh
from pathlib import Path
from PIL import Image

# Add src to path
import sys
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from splat_renderer.buffer_layout import SPLAT_STRIDE, read_buffer
from splat_renderer.cli import build_parser, main
from splat_renderer.pipeline import Pipeline, RenderConfig
from splat_renderer.ply_io import load_ply


@pytest.fixture
def sphere_obj(tmp_path):
    """Icosphere written as an OBJ file."""
    path = tmp_path / "sphere.obj"
    trimesh.creation.icosphere(subdivisions=2).export(path)
    return path


def small_config(input_file, output_dir, **overrides):
    options = dict(num_splats=500, seed=42, width=32, height=24, splat_opacity=0.3)
    options.update(overrides)
    return RenderConfig(input_file=input_file, output_dir=output_dir, **options)


class TestRenderConfig:
    """Tests for RenderConfig dataclass."""

    def test_defaults(self, sphere_obj, tmp_path):
        """Test config creation with valid OBJ file."""
        output_dir = tmp_path / "output"
        config = RenderConfig(input_file=sphere_obj, output_dir=output_dir)

        assert config.input_file == sphere_obj
        assert output_dir.exists()  # Should be created
        assert config.num_splats == 100000
        assert config.policy == 'random'
        assert config.background == (0.1, 0.2, 0.3)
        assert config.aspect_ratio == pytest.approx(800 / 600)

    def test_string_paths(self, sphere_obj, tmp_path):
        """Test that string paths are converted."""
        config = RenderConfig(input_file=str(sphere_obj), output_dir=str(tmp_path / "out"))
        assert isinstance(config.input_file, Path)
        assert isinstance(config.output_dir, Path)

    def test_nonexistent_file(self, tmp_path):
        """Test config raises error for nonexistent file."""
        with pytest.raises(FileNotFoundError):
            RenderConfig(input_file=tmp_path / "missing.obj", output_dir=tmp_path / "out")

    def test_invalid_extension(self, tmp_path):
        """Test config raises error for unsupported file type."""
        invalid_file = tmp_path / "test.txt"
        invalid_file.write_text("test")
        with pytest.raises(ValueError, match="Unsupported file type"):
            RenderConfig(input_file=invalid_file, output_dir=tmp_path / "out")

    @pytest.mark.parametrize("overrides, message", [
        ({'num_splats': 0}, "Splat count must be positive"),
        ({'policy': 'stratified'}, "Invalid sampling policy"),
        ({'splat_scale': (0.01, 0.0, 0.01)}, "Splat scale"),
        ({'splat_opacity': 1.5}, "Splat opacity"),
        ({'splat_color': (1.2, 0.0, 0.0)}, "Splat color"),
        ({'background': (0.0, 0.0)}, "Background"),
        ({'width': 0}, "Image size"),
        ({'num_frames': 0}, "At least one frame"),
        ({'frame_interval': 0.0}, "Frame interval"),
        ({'orbit_radius': -1.0}, "Orbit radius"),
    ])
    def test_invalid_values(self, sphere_obj, tmp_path, overrides, message):
        """Test each validation rule."""
        with pytest.raises(ValueError, match=message):
            RenderConfig(input_file=sphere_obj, output_dir=tmp_path / "out", **overrides)


class TestPipeline:
    """Tests for the full mesh-to-frames run."""

    def test_run_writes_outputs(self, sphere_obj, tmp_path):
        """Test buffer, PLY and frame files are produced."""
        output_dir = tmp_path / "output"
        config = small_config(sphere_obj, output_dir, num_frames=2, export_ply=True)

        output_files = Pipeline(config).run()
        names = [f.name for f in output_files]

        assert names == [
            "sphere_splats.bin",
            "sphere_splats.ply",
            "sphere_frame_0000.png",
            "sphere_frame_0001.png",
        ]
        assert all(f.exists() for f in output_files)
        assert (output_dir / "sphere_splats.bin").stat().st_size == 500 * SPLAT_STRIDE

        with Image.open(output_dir / "sphere_frame_0000.png") as frame:
            assert frame.size == (32, 24)

    def test_buffer_matches_ply(self, sphere_obj, tmp_path):
        """Test the packed buffer and PLY export describe the same splats."""
        output_dir = tmp_path / "output"
        Pipeline(small_config(sphere_obj, output_dir, export_ply=True)).run()

        from_buffer = read_buffer(output_dir / "sphere_splats.bin")
        from_ply = load_ply(output_dir / "sphere_splats.ply")
        np.testing.assert_allclose(from_ply.positions, from_buffer.positions, atol=1e-6)
        np.testing.assert_allclose(from_ply.opacities, from_buffer.opacities, atol=1e-5)

    def test_compressed_ply(self, sphere_obj, tmp_path):
        """Test gzip PLY naming."""
        output_dir = tmp_path / "output"
        output_files = Pipeline(small_config(sphere_obj, output_dir, export_ply=True,
                                             compress=True)).run()
        assert output_dir / "sphere_splats.ply.gz" in output_files

    def test_seed_is_reproducible(self, sphere_obj, tmp_path):
        """Test the same seed yields byte-identical buffers."""
        first = tmp_path / "first"
        second = tmp_path / "second"
        Pipeline(small_config(sphere_obj, first)).run()
        Pipeline(small_config(sphere_obj, second)).run()

        assert (first / "sphere_splats.bin").read_bytes() == (second / "sphere_splats.bin").read_bytes()

    def test_splats_lie_on_normalized_mesh(self, sphere_obj, tmp_path):
        """Test normalized output fits inside [-1, 1]^3."""
        output_dir = tmp_path / "output"
        Pipeline(small_config(sphere_obj, output_dir)).run()

        splats = read_buffer(output_dir / "sphere_splats.bin")
        assert np.abs(splats.positions).max() <= 1.0 + 1e-5

    def test_timing_stats_recorded(self, sphere_obj, tmp_path):
        """Test each stage is timed."""
        pipeline = Pipeline(small_config(sphere_obj, tmp_path / "output", num_frames=3))
        pipeline.run()

        names = [stat.name for stat in pipeline.timing_stats]
        assert names == ["Mesh loading", "Splat sampling", "Buffer packing", "Frame rendering"]
        assert len(pipeline.timing_stats[-1].substeps) == 3

    def test_per_face_policy_too_few_splats_fails(self, sphere_obj, tmp_path):
        """Test no empty buffer is written when per-face rounding drops every face."""
        output_dir = tmp_path / "output"
        config = small_config(sphere_obj, output_dir, num_splats=5, policy='per_face')
        with pytest.raises(ValueError, match="every face zero splats"):
            Pipeline(config).run()
        assert not (output_dir / "sphere_splats.bin").exists()

    def test_frames_render_from_written_buffer(self, sphere_obj, tmp_path, monkeypatch):
        """Test the renderer is fed the bytes of the buffer file."""
        from splat_renderer.pipeline import orchestrator

        seen = []
        original = orchestrator.SplatRenderer

        def recording_renderer(buffer, *args, **kwargs):
            seen.append(buffer)
            return original(buffer, *args, **kwargs)

        monkeypatch.setattr(orchestrator, "SplatRenderer", recording_renderer)
        output_dir = tmp_path / "output"
        Pipeline(small_config(sphere_obj, output_dir)).run()

        assert seen == [(output_dir / "sphere_splats.bin").read_bytes()]

    def test_failure_propagates(self, tmp_path):
        """Test loader errors surface to the caller."""
        broken = tmp_path / "broken.obj"
        broken.write_text("v 0 0 0\nv 1 0 0\nv 2 0 0\nf 1 2 3\n")
        with pytest.raises(ValueError, match="surface area"):
            Pipeline(small_config(broken, tmp_path / "output")).run()


class TestCLI:
    """Tests for the splat-render entry point."""

    def test_parser_defaults(self):
        args = build_parser().parse_args(["mesh.obj", "out"])
        assert args.splats == 100000
        assert args.policy == 'random'
        assert args.scale == [0.01, 0.01, 0.002]
        assert args.fps == 60.0
        assert not args.depth_sort

    def test_success_exit_code(self, sphere_obj, tmp_path):
        output_dir = tmp_path / "cli_out"
        with pytest.raises(SystemExit) as exc_info:
            main([str(sphere_obj), str(output_dir), "--splats", "200", "--seed", "1",
                  "--width", "16", "--height", "12", "--quiet"])

        assert exc_info.value.code == 0
        assert (output_dir / "sphere_splats.bin").stat().st_size == 200 * SPLAT_STRIDE
        assert (output_dir / "sphere_frame_0000.png").exists()

    def test_missing_input_exit_code(self, tmp_path):
        with pytest.raises(SystemExit) as exc_info:
            main([str(tmp_path / "missing.obj"), str(tmp_path / "out"), "--quiet"])
        assert exc_info.value.code == 1

    def test_invalid_fps_exit_code(self, sphere_obj, tmp_path):
        with pytest.raises(SystemExit) as exc_info:
            main([str(sphere_obj), str(tmp_path / "out"), "--fps", "0", "--quiet"])
        assert exc_info.value.code == 1
