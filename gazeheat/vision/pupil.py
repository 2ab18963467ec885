"""
Pupil locating strategies.

Each strategy turns one eye's landmark region into a pupil position in
frame pixels. They are interchangeable behind PupilLocator so the gaze
estimator does not care which data (pixels, landmarks, iris model) is
available.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Optional

import numpy as np

from gazeheat.core.config import GazeConfig
from gazeheat.vision.landmarks import EyeRegion


class EyeSide(Enum):
    """Which eye, in image coordinates (LEFT has the smaller x)."""

    LEFT = "left"
    RIGHT = "right"


class PupilLocator(ABC):
    """Locate the pupil of one eye."""

    name = "base"

    @abstractmethod
    def locate(
        self, eye: EyeRegion, side: EyeSide, frame: Optional[np.ndarray] = None
    ) -> np.ndarray:
        """
        Args:
            eye: Non-empty landmark region of the eye
            side: Which eye this is
            frame: RGB(A) frame the landmarks refer to, if available

        Returns:
            (x, y) pupil position in frame pixels
        """


class BrightnessPupilLocator(PupilLocator):
    """
    Darkest pixel inside the eye's bounding box.

    Brightness is the mean of R, G and B. Ties resolve to the first pixel in
    row-major order.
    """

    name = "brightness"

    def locate(self, eye, side, frame=None):
        if frame is None:
            raise ValueError("Brightness pupil locator needs the frame pixels")

        height, width = frame.shape[:2]
        x_min, y_min, x_max, y_max = eye.bounds

        x0 = max(int(np.floor(x_min)), 0)
        y0 = max(int(np.floor(y_min)), 0)
        x1 = min(int(np.floor(x_max)), width - 1)
        y1 = min(int(np.floor(y_max)), height - 1)

        if x1 < x0 or y1 < y0:
            return eye.centroid

        region = frame[y0:y1 + 1, x0:x1 + 1, :3].astype(np.float64)
        brightness = region.sum(axis=2) / 3.0

        row, col = np.unravel_index(int(np.argmin(brightness)), brightness.shape)
        return np.array([x0 + col, y0 + row], dtype=np.float64)


class LandmarkOffsetPupilLocator(PupilLocator):
    """
    Fixed offset from the eye centroid.

    The pupil is placed inward_ratio of the eye width toward the nose and
    downward_ratio of the eye height down.
    """

    name = "offset"

    def __init__(self, inward_ratio: float = 0.1, downward_ratio: float = 0.1):
        self._inward_ratio = inward_ratio
        self._downward_ratio = downward_ratio

    def locate(self, eye, side, frame=None):
        centroid = eye.centroid
        inward = 1.0 if side == EyeSide.LEFT else -1.0
        return np.array(
            [
                centroid[0] + inward * self._inward_ratio * eye.width,
                centroid[1] + self._downward_ratio * eye.height,
            ],
            dtype=np.float64,
        )


class IrisPupilLocator(PupilLocator):
    """Iris centre from the landmark model, offset heuristic without one."""

    name = "iris"

    def __init__(self, fallback: Optional[PupilLocator] = None):
        self._fallback = fallback or LandmarkOffsetPupilLocator()

    def locate(self, eye, side, frame=None):
        if eye.iris is not None:
            return np.asarray(eye.iris, dtype=np.float64)[:2]
        return self._fallback.locate(eye, side, frame)


def create_pupil_locator(name: str, config: Optional[GazeConfig] = None) -> PupilLocator:
    """
    Build a pupil locator by name.

    Args:
        name: "offset", "brightness" or "iris"
        config: Source of the offset ratios (defaults if omitted)
    """
    config = config or GazeConfig()
    offset = LandmarkOffsetPupilLocator(
        inward_ratio=config.pupil_inward_ratio,
        downward_ratio=config.pupil_downward_ratio,
    )

    if name == "offset":
        return offset
    if name == "brightness":
        return BrightnessPupilLocator()
    if name == "iris":
        return IrisPupilLocator(fallback=offset)
    raise ValueError(f"Unknown pupil locator: {name}")
