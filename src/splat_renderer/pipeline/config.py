# ABOUTME: Configuration dataclass for the render pipeline
# ABOUTME: Validates user inputs and provides defaults

from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

from ..sampler import SAMPLING_POLICIES

SUPPORTED_EXTENSIONS = {'.obj', '.ply', '.stl', '.off', '.glb', '.gltf'}


@dataclass
class RenderConfig:
    """Configuration for the mesh-to-splat render pipeline."""

    input_file: Path
    output_dir: Path
    num_splats: int = 100000
    policy: str = 'random'  # 'random' or 'per_face'
    seed: Optional[int] = None  # Fresh entropy if None
    splat_scale: Tuple[float, float, float] = (0.01, 0.01, 0.002)
    splat_color: Tuple[float, float, float] = (0.9, 0.9, 0.9)
    splat_opacity: float = 0.01
    normalize_mesh: bool = True

    # Rendering
    width: int = 800
    height: int = 600
    background: Tuple[float, float, float] = (0.1, 0.2, 0.3)
    depth_sort: bool = False  # Back-to-front compositing instead of buffer order

    # Orbit camera
    num_frames: int = 1
    frame_interval: float = 1.0 / 60.0  # Seconds between frames
    orbit_radius: float = 3.0
    orbit_height: float = 0.5
    orbit_speed: float = 0.5  # Radians per second

    # Extra outputs
    export_ply: bool = False
    compress: bool = False  # Gzip the PLY export

    def __post_init__(self):
        """Validate configuration after initialization."""
        self.input_file = Path(self.input_file)
        self.output_dir = Path(self.output_dir)

        if not self.input_file.exists():
            raise FileNotFoundError(f"Input not found: {self.input_file}")

        if self.input_file.suffix.lower() not in SUPPORTED_EXTENSIONS:
            raise ValueError(
                f"Unsupported file type: {self.input_file.suffix}\n"
                f"Supported: {sorted(SUPPORTED_EXTENSIONS)}"
            )

        if self.num_splats <= 0:
            raise ValueError(f"Splat count must be positive, got {self.num_splats}")

        if self.policy not in SAMPLING_POLICIES:
            raise ValueError(f"Invalid sampling policy: {self.policy}")

        if len(self.splat_scale) != 3 or any(s <= 0 for s in self.splat_scale):
            raise ValueError(f"Splat scale must be three positive values, got {self.splat_scale}")

        if not 0.0 <= self.splat_opacity <= 1.0:
            raise ValueError(f"Splat opacity must be in [0, 1], got {self.splat_opacity}")

        for name, color in (('Splat color', self.splat_color), ('Background', self.background)):
            if len(color) != 3 or any(not 0.0 <= c <= 1.0 for c in color):
                raise ValueError(f"{name} must be three values in [0, 1], got {color}")

        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"Image size must be positive, got {self.width}x{self.height}")

        if self.num_frames < 1:
            raise ValueError("At least one frame required")

        if self.frame_interval <= 0:
            raise ValueError("Frame interval must be positive")

        if self.orbit_radius <= 0:
            raise ValueError("Orbit radius must be positive")

        self.output_dir.mkdir(parents=True, exist_ok=True)

    @property
    def aspect_ratio(self) -> float:
        return self.width / self.height
