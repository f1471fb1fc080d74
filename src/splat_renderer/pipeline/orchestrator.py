# ABOUTME: Main pipeline orchestrator
# ABOUTME: Coordinates mesh loading, splat sampling, buffer packing and frame rendering

import logging
import time
import traceback
from typing import List
from pathlib import Path

from ..buffer_layout import write_buffer
from ..camera import orbit_camera
from ..gaussian_splat import SplatCloud
from ..mesh_model import MeshModel, load_mesh
from ..ply_io import save_ply
from ..renderer import SplatRenderer, save_image
from ..sampler import SamplerConfig, SplatSampler
from ..utils.logging_utils import Timer
from .config import RenderConfig


class Pipeline:
    """Main pipeline: mesh -> splats -> packed buffer -> rendered frames."""

    def __init__(self, config: RenderConfig):
        """Initialize pipeline with configuration."""
        self.config = config
        self.logger = logging.getLogger('splat_renderer')
        self.timing_stats = []  # Track timing for each stage

        self.sampler = SplatSampler(SamplerConfig(
            policy=config.policy,
            scale=config.splat_scale,
            color=config.splat_color,
            opacity=config.splat_opacity,
            seed=config.seed,
        ))

    def run(self) -> List[Path]:
        """Execute the complete pipeline."""
        start_time = time.time()

        self.logger.info("="*70)
        self.logger.info("GAUSSIAN SPLAT RENDERER")
        self.logger.info("="*70)
        self.logger.info("Input: %s", self.config.input_file)
        self.logger.info("Output: %s", self.config.output_dir)
        self.logger.info("Splats: %d (%s policy)", self.config.num_splats, self.config.policy)
        self.logger.info("Frames: %d at %dx%d", self.config.num_frames,
                         self.config.width, self.config.height)
        self.logger.info("="*70)

        try:
            mesh = self._load_mesh()
            splats = self._generate_splats(mesh)
            output_files = self._pack(splats)
            output_files.extend(self._render_frames(output_files[0].read_bytes()))

            self._print_summary(start_time, output_files)
            return output_files

        except Exception as e:
            self.logger.error("")
            self.logger.error("PIPELINE FAILED: %s", e)
            self.logger.debug("Traceback:\n%s", traceback.format_exc())
            raise

    def _load_mesh(self) -> MeshModel:
        with Timer("Mesh loading", self.logger) as timer:
            mesh = load_mesh(self.config.input_file, normalize=self.config.normalize_mesh)

        self.timing_stats.append(timer.to_stats())
        self.logger.info("Loaded %d vertices, %d faces (surface area %.4f)",
                         len(mesh.vertices), mesh.face_count, mesh.total_area)
        return mesh

    def _generate_splats(self, mesh: MeshModel) -> SplatCloud:
        with Timer("Splat sampling", self.logger, unit='splats') as timer:
            splats = self.sampler.generate(mesh, self.config.num_splats)
            timer.count(splats.count)

        self.timing_stats.append(timer.to_stats())
        self.logger.info("Generated %d splats", splats.count)
        return splats

    def _pack(self, splats: SplatCloud):
        """Write the packed buffer (and optional PLY); the buffer file comes first."""
        output_files = []
        base_name = self.config.input_file.stem

        with Timer("Buffer packing", self.logger, items=splats.count, unit='splats') as timer:
            buffer_path = self.config.output_dir / f"{base_name}_splats.bin"
            write_buffer(splats, buffer_path)
            output_files.append(buffer_path)

            if self.config.export_ply:
                ext = '.ply.gz' if self.config.compress else '.ply'
                ply_path = self.config.output_dir / f"{base_name}_splats{ext}"
                output_files.append(save_ply(splats, ply_path, compress=self.config.compress))

        self.timing_stats.append(timer.to_stats())
        return output_files

    def _render_frames(self, buffer: bytes) -> List[Path]:
        renderer = SplatRenderer(
            buffer,
            self.config.width,
            self.config.height,
            background=self.config.background,
            depth_sort=self.config.depth_sort,
        )
        config = self.config

        def camera_fn(frame_time, aspect_ratio):
            return orbit_camera(frame_time, aspect_ratio, radius=config.orbit_radius,
                                height=config.orbit_height, speed=config.orbit_speed)

        output_files = []
        base_name = self.config.input_file.stem
        frame_times = []

        with Timer("Frame rendering", self.logger, unit='frames') as timer:
            for frame in range(self.config.num_frames):
                frame_start = time.perf_counter()
                frame_time = frame * self.config.frame_interval
                image = renderer.render_frame(frame_time, camera_fn)

                frame_path = self.config.output_dir / f"{base_name}_frame_{frame:04d}.png"
                output_files.append(save_image(image, frame_path))
                frame_times.append(time.perf_counter() - frame_start)
                timer.count()
                self.logger.debug("Frame %d (t=%.3fs) -> %s", frame, frame_time, frame_path.name)

        stats = timer.to_stats()
        for frame, elapsed in enumerate(frame_times):
            stats.add_substep(f"Frame {frame}", elapsed)
        self.timing_stats.append(stats)

        slowest = stats.slowest_substep()
        if slowest is not None and len(frame_times) > 1:
            self.logger.debug("Slowest frame: %s (%.3fs)", slowest.name, slowest.elapsed)
        return output_files

    def _print_summary(self, start_time: float, output_files: List[Path]):
        """Print performance summary."""
        total_time = time.time() - start_time

        self.logger.info("")
        self.logger.info("="*70)
        self.logger.info("PIPELINE COMPLETE in %.1fs", total_time)
        self.logger.info("="*70)
        self.logger.info("")

        if self.timing_stats:
            self.logger.info("TIMING BREAKDOWN:")
            for stat in self.timing_stats:
                self.logger.info(stat.format_tree(total_time))
            self.logger.info("")

        self.logger.info("OUTPUT FILES:")
        for f in output_files:
            size_mb = f.stat().st_size / 1e6
            self.logger.info("  %s (%.2f MB)", f.name, size_mb)

        self.logger.info("")
        self.logger.info("="*70)
