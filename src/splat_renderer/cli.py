# ABOUTME: Command-line interface for the splat renderer
# ABOUTME: Maps flags onto RenderConfig and runs the pipeline

import argparse
import sys
import traceback

from .pipeline import Pipeline, RenderConfig
from .utils.logging_utils import setup_logging


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Gaussian Splat Renderer - Render a triangle mesh as a cloud of 3D gaussian splats',
        epilog="""
Examples:
  splat-render bunny.obj ./output
  splat-render bunny.obj ./output --splats 20000 --seed 7 --width 640 --height 480

  # Orbit animation, 120 frames at 30 fps, composited back to front
  splat-render model.ply ./frames --frames 120 --fps 30 --depth-sort

  # Also export a standard 3DGS PLY
  splat-render model.obj ./output --export-ply --compress
        """,
        formatter_class=argparse.RawDescriptionHelpFormatter
    )

    parser.add_argument('input', type=str,
                        help='Input mesh file (.obj, .ply, .stl, .off, .glb, .gltf)')
    parser.add_argument('output_dir', type=str,
                        help='Output directory for the packed buffer and rendered frames')

    # Sampling
    parser.add_argument('--splats', type=int, default=100000,
                        help='Number of splats to sample. Default: 100000')
    parser.add_argument('--policy', type=str, default='random',
                        choices=['random', 'per_face'],
                        help='Sampling policy. Default: random (exact count, area-weighted)')
    parser.add_argument('--seed', type=int, default=None,
                        help='Random seed for reproducible splat sequences')
    parser.add_argument('--scale', type=float, nargs=3, default=[0.01, 0.01, 0.002],
                        metavar=('TX', 'TY', 'N'),
                        help='Splat standard deviations (tangent, tangent, normal). Default: 0.01 0.01 0.002')
    parser.add_argument('--color', type=float, nargs=3, default=[0.9, 0.9, 0.9],
                        metavar=('R', 'G', 'B'), help='Splat color. Default: 0.9 0.9 0.9')
    parser.add_argument('--opacity', type=float, default=0.01,
                        help='Peak splat opacity. Default: 0.01')
    parser.add_argument('--no-normalize', action='store_true',
                        help='Keep mesh coordinates instead of centering and scaling into [-1, 1]')

    # Rendering
    parser.add_argument('--width', type=int, default=800, help='Image width. Default: 800')
    parser.add_argument('--height', type=int, default=600, help='Image height. Default: 600')
    parser.add_argument('--background', type=float, nargs=3, default=[0.1, 0.2, 0.3],
                        metavar=('R', 'G', 'B'), help='Clear color. Default: 0.1 0.2 0.3')
    parser.add_argument('--depth-sort', action='store_true',
                        help='Composite splats back to front instead of in sampling order')
    parser.add_argument('--frames', type=int, default=1, help='Number of frames to render. Default: 1')
    parser.add_argument('--fps', type=float, default=60.0,
                        help='Frame rate driving the orbit camera. Default: 60')
    parser.add_argument('--orbit-radius', type=float, default=3.0,
                        help='Camera distance from the origin. Default: 3.0')
    parser.add_argument('--orbit-height', type=float, default=0.5,
                        help='Camera height above the orbit plane. Default: 0.5')
    parser.add_argument('--orbit-speed', type=float, default=0.5,
                        help='Orbit angular speed in radians per second. Default: 0.5')

    # Outputs
    parser.add_argument('--export-ply', action='store_true',
                        help='Also write the splats as a 3DGS PLY file')
    parser.add_argument('--compress', action='store_true',
                        help='Gzip the PLY export (.ply.gz)')

    parser.add_argument('--verbose', action='store_true',
                        help='Enable verbose logging (DEBUG level)')
    parser.add_argument('--quiet', action='store_true',
                        help='Quiet mode - only show warnings and errors')
    parser.add_argument('--log-file', type=str, default=None,
                        help='Also write a full DEBUG log to this file')
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)

    logger = setup_logging(verbose=args.verbose, quiet=args.quiet, log_file=args.log_file)

    try:
        if args.fps <= 0:
            raise ValueError("Frame rate must be positive")

        config = RenderConfig(
            input_file=args.input,
            output_dir=args.output_dir,
            num_splats=args.splats,
            policy=args.policy,
            seed=args.seed,
            splat_scale=tuple(args.scale),
            splat_color=tuple(args.color),
            splat_opacity=args.opacity,
            normalize_mesh=not args.no_normalize,
            width=args.width,
            height=args.height,
            background=tuple(args.background),
            depth_sort=args.depth_sort,
            num_frames=args.frames,
            frame_interval=1.0 / args.fps,
            orbit_radius=args.orbit_radius,
            orbit_height=args.orbit_height,
            orbit_speed=args.orbit_speed,
            export_ply=args.export_ply,
            compress=args.compress,
        )

        output_files = Pipeline(config).run()

        logger.info("")
        logger.info("Success! Generated %d files:", len(output_files))
        for f in output_files:
            logger.info("   - %s", f)

        sys.exit(0)

    except FileNotFoundError as e:
        logger.error("File not found: %s", e)
        sys.exit(1)
    except ValueError as e:
        logger.error("Invalid configuration: %s", e)
        sys.exit(1)
    except Exception as e:
        logger.error("Render failed: %s", e)
        if args.verbose:
            traceback.print_exc()
        sys.exit(1)


if __name__ == '__main__':
    main()
