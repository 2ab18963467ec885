"""
Configuration management for GazeHeat.

All pipeline configuration with sensible defaults.
Uses dataclasses for type safety and validation.
"""

from dataclasses import dataclass, field
from typing import Optional, Tuple
import os
from pathlib import Path


@dataclass
class CameraConfig:
    """Camera capture configuration."""

    camera_index: int = 0
    frame_width: int = 640
    frame_height: int = 480
    target_fps: int = 30
    warmup_frames: int = 5  # Frames to skip after camera init


@dataclass
class GazeConfig:
    """Gaze estimation configuration."""

    # Pupil strategy: "offset", "brightness" or "iris"
    pupil_locator: str = "offset"

    # Landmark-offset pupil heuristic (fraction of eye width / height)
    pupil_inward_ratio: float = 0.1
    pupil_downward_ratio: float = 0.1

    # Half inter-pupil vector is scaled by this before being added to the midpoint
    parallax_gain: float = 0.5

    # Exponential smoothing: screen = previous * w + current * (1 - w)
    previous_weight: float = 0.3

    # Eye width/height ratio that maps to a full aspect factor
    expected_aspect_ratio: float = 3.0

    # Confidence reported when an eye is missing
    fallback_confidence: float = 0.1

    # Detections scored below this by the landmark model are dropped
    min_detection_score: float = 0.5


@dataclass
class RecordingConfig:
    """Sample recording configuration."""

    # Gaze points at or below this confidence are not recorded
    min_gaze_confidence: float = 0.0


@dataclass
class HeatmapConfig:
    """Density aggregation and heatmap rendering configuration."""

    grid_size: int = 20

    base_radius: float = 30.0
    radius_gain: float = 20.0

    base_alpha: float = 0.3
    alpha_gain: float = 0.5
    max_alpha: float = 0.8

    # Gaussian sigma of the post-process blur (pixels)
    blur_radius: float = 10.0

    # Opacity of the heatmap layer when composited onto a page capture
    capture_opacity: float = 0.7

    mouse_label: str = "Mouse movement"
    gaze_label: str = "Gaze movement"


@dataclass
class AnalysisConfig:
    """Batch, remote and attention analysis configuration."""

    # Local batch analysis of a recorded video
    batch_fps: float = 30.0

    # Remote face analysis of a recorded video
    remote_fps: float = 5.0
    remote_max_duration_s: float = 3.0
    remote_jpeg_quality: int = 70

    # Attention report
    top_elements: int = 5
    hesitation_window: int = 10
    hesitation_radius: float = 30.0


@dataclass
class RemoteConfig:
    """Face-analysis service configuration."""

    endpoint_url: Optional[str] = field(
        default_factory=lambda: os.getenv("GAZEHEAT_FACE_API_URL")
    )
    api_key: Optional[str] = field(
        default_factory=lambda: os.getenv("GAZEHEAT_FACE_API_KEY")
    )
    timeout_s: float = 30.0


@dataclass
class StorageConfig:
    """Export location configuration."""

    output_dir: Path = field(default_factory=lambda: Path.cwd() / "gazeheat_output")

    log_filename: str = "gazeheat.log"

    # Enable file logging (OFF by default)
    enable_file_logging: bool = False

    def __post_init__(self):
        self.output_dir = Path(self.output_dir)

    @property
    def log_path(self) -> Path:
        """Get full path to log file."""
        return self.output_dir / self.log_filename


@dataclass
class AppConfig:
    """Main application configuration."""

    camera: CameraConfig = field(default_factory=CameraConfig)
    gaze: GazeConfig = field(default_factory=GazeConfig)
    recording: RecordingConfig = field(default_factory=RecordingConfig)
    heatmap: HeatmapConfig = field(default_factory=HeatmapConfig)
    analysis: AnalysisConfig = field(default_factory=AnalysisConfig)
    remote: RemoteConfig = field(default_factory=RemoteConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)

    # Viewport the gaze estimate is mapped into (pixels)
    viewport_size: Tuple[int, int] = (1280, 720)

    version: str = "0.1.0"

    # Log level from environment or default to WARNING
    log_level: str = field(
        default_factory=lambda: os.getenv("GAZEHEAT_LOG_LEVEL", "WARNING")
    )

    def __post_init__(self):
        """Validate configuration after initialization."""
        self._validate()

    def _validate(self):
        """Validate configuration parameters."""
        if not 0.0 <= self.gaze.previous_weight < 1.0:
            raise ValueError("previous_weight must be in [0.0, 1.0)")

        if self.gaze.pupil_locator not in ("offset", "brightness", "iris"):
            raise ValueError(f"Unknown pupil locator: {self.gaze.pupil_locator}")

        if not 0.0 <= self.gaze.pupil_inward_ratio <= 0.5:
            raise ValueError("pupil_inward_ratio must be between 0.0 and 0.5")

        if not 0.0 <= self.gaze.pupil_downward_ratio <= 0.5:
            raise ValueError("pupil_downward_ratio must be between 0.0 and 0.5")

        if self.gaze.expected_aspect_ratio <= 0:
            raise ValueError("expected_aspect_ratio must be positive")

        if not 0.0 < self.gaze.fallback_confidence <= 1.0:
            raise ValueError("fallback_confidence must be in (0.0, 1.0]")

        if not 0.0 <= self.recording.min_gaze_confidence < 1.0:
            raise ValueError("min_gaze_confidence must be in [0.0, 1.0)")

        if self.heatmap.grid_size < 1:
            raise ValueError("grid_size must be at least 1")

        if self.heatmap.blur_radius < 0:
            raise ValueError("blur_radius must be non-negative")

        if self.camera.target_fps < 1 or self.camera.target_fps > 60:
            raise ValueError("target_fps must be between 1 and 60")

        if self.analysis.batch_fps <= 0 or self.analysis.remote_fps <= 0:
            raise ValueError("analysis frame rates must be positive")

        width, height = self.viewport_size
        if width <= 0 or height <= 0:
            raise ValueError("viewport_size must be positive")


def get_default_config() -> AppConfig:
    """
    Get default application configuration.

    Returns:
        AppConfig instance with default values
    """
    return AppConfig()
