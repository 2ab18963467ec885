"""
Screen-space gaze estimation from eye landmarks.

Converts one frame's left/right eye landmarks into a smoothed viewport
coordinate with a heuristic confidence score.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Sequence, Tuple, Union

import numpy as np

from gazeheat.core.config import GazeConfig
from gazeheat.core.state import StateMachine, TrackingState
from gazeheat.vision.landmarks import EyeDetection, EyeRegion
from gazeheat.vision.pupil import EyeSide, PupilLocator, create_pupil_locator
from gazeheat.utils.logger import get_logger

logger = get_logger(__name__)

EyeInput = Union[EyeRegion, Sequence, np.ndarray, None]


@dataclass
class GazePoint:
    """
    Estimated gaze position for one frame.

    x, y are viewport pixels; left_eye / right_eye are the pupil positions
    in frame pixels (None for the fallback point).
    """

    x: float
    y: float
    confidence: float  # 0-1
    left_eye: Optional[Tuple[float, float]] = None
    right_eye: Optional[Tuple[float, float]] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_array(self) -> np.ndarray:
        return np.array([self.x, self.y], dtype=np.float64)


def _as_region(eye: EyeInput) -> Optional[EyeRegion]:
    if eye is None:
        return None
    if isinstance(eye, EyeRegion):
        return eye
    return EyeRegion.from_points(eye)


def eye_aspect_ratio(eye: EyeRegion) -> float:
    """Width over height of the eye's bounding box, 0 for a flat box."""
    height = eye.height
    if height <= 0:
        return 0.0
    return eye.width / height


class GazeEstimator:
    """
    Estimate where on the viewport the user is looking.

    Pipeline per frame:
    1. Locate both pupils with the configured PupilLocator
    2. Scale the pupil midpoint from frame space to viewport space, displaced
       by half the inter-pupil vector times parallax_gain
    3. Blend with the previous point: previous * 0.3 + current * 0.7
    4. Score confidence from the eye aspect ratios and their symmetry

    Limitations:
    - No calibration; the frame-to-viewport mapping is a plain scale
    - Confidence is a geometric heuristic, not a detector probability
    """

    def __init__(
        self,
        config: GazeConfig,
        viewport_size: Tuple[int, int],
        frame_size: Tuple[int, int],
        locator: Optional[PupilLocator] = None,
        state_machine: Optional[StateMachine] = None,
    ):
        """
        Initialize gaze estimator.

        Args:
            config: Gaze configuration
            viewport_size: (width, height) of the target viewport in pixels
            frame_size: (width, height) of frames when no frame is passed
            locator: Pupil strategy (defaults to config.pupil_locator)
            state_machine: Tracking state; track() only emits while TRACKING
        """
        self._config = config
        self._viewport_size = viewport_size
        self._frame_size = frame_size
        self._locator = locator or create_pupil_locator(config.pupil_locator, config)
        self._state_machine = state_machine
        self._last_point: Optional[GazePoint] = None

        logger.info(
            f"GazeEstimator initialized: locator={self._locator.name}, "
            f"viewport={viewport_size[0]}x{viewport_size[1]}"
        )

    def estimate(
        self,
        left_eye: EyeInput,
        right_eye: EyeInput,
        previous: Optional[GazePoint] = None,
        frame: Optional[np.ndarray] = None,
    ) -> GazePoint:
        """
        Estimate the gaze point for one frame.

        Args:
            left_eye: Landmarks of the image-left eye
            right_eye: Landmarks of the image-right eye
            previous: Previous estimate, for smoothing
            frame: RGB frame the landmarks refer to

        Returns:
            GazePoint; a low-confidence viewport-centre point if an eye is missing
        """
        left = _as_region(left_eye)
        right = _as_region(right_eye)

        if left is None or right is None or left.is_empty or right.is_empty:
            return self._fallback_point()

        left_pupil = self._locator.locate(left, EyeSide.LEFT, frame)
        right_pupil = self._locator.locate(right, EyeSide.RIGHT, frame)

        raw_x, raw_y = self._to_viewport(left_pupil, right_pupil, frame)

        if previous is not None:
            w = self._config.previous_weight
            x = previous.x * w + raw_x * (1.0 - w)
            y = previous.y * w + raw_y * (1.0 - w)
        else:
            x, y = raw_x, raw_y

        confidence = self._confidence(left, right)

        return GazePoint(
            x=float(x),
            y=float(y),
            confidence=confidence,
            left_eye=(float(left_pupil[0]), float(left_pupil[1])),
            right_eye=(float(right_pupil[0]), float(right_pupil[1])),
            metadata={
                "pupil_locator": self._locator.name,
                "raw": (float(raw_x), float(raw_y)),
                "smoothed": previous is not None,
            },
        )

    def estimate_detection(
        self, detection: EyeDetection, frame: Optional[np.ndarray] = None
    ) -> GazePoint:
        """Estimate from a detection, smoothing against the last estimate."""
        point = self.estimate(detection.left_eye, detection.right_eye, self._last_point, frame)
        if not point.metadata.get("fallback"):
            self._last_point = point
        return point

    def track(
        self, detection: EyeDetection, frame: Optional[np.ndarray] = None
    ) -> Optional[GazePoint]:
        """
        Estimate only while tracking is active.

        Returns:
            GazePoint, or None when the tracking state is not TRACKING
        """
        if self._state_machine is not None and not self._state_machine.is_in(TrackingState.TRACKING):
            return None
        return self.estimate_detection(detection, frame)

    def _to_viewport(
        self, left_pupil: np.ndarray, right_pupil: np.ndarray, frame: Optional[np.ndarray]
    ) -> Tuple[float, float]:
        if frame is not None:
            frame_height, frame_width = frame.shape[:2]
        else:
            frame_width, frame_height = self._frame_size

        viewport_width, viewport_height = self._viewport_size
        scale = np.array(
            [viewport_width / frame_width, viewport_height / frame_height],
            dtype=np.float64,
        )

        midpoint = (left_pupil + right_pupil) / 2.0
        half_span = (right_pupil - left_pupil) / 2.0
        screen = (midpoint + half_span * self._config.parallax_gain) * scale

        return (float(screen[0]), float(screen[1]))

    def _confidence(self, left: EyeRegion, right: EyeRegion) -> float:
        ratio_left = eye_aspect_ratio(left)
        ratio_right = eye_aspect_ratio(right)

        aspect_factor = min(
            1.0, ((ratio_left + ratio_right) / 2.0) / self._config.expected_aspect_ratio
        )
        symmetry_factor = 1.0 - abs(ratio_left - ratio_right) / 2.0

        return float(np.clip(min(aspect_factor, symmetry_factor), 0.0, 1.0))

    def _fallback_point(self) -> GazePoint:
        viewport_width, viewport_height = self._viewport_size
        logger.debug("Eye landmarks missing, returning viewport centre")
        return GazePoint(
            x=viewport_width / 2.0,
            y=viewport_height / 2.0,
            confidence=self._config.fallback_confidence,
            metadata={"fallback": True, "pupil_locator": self._locator.name},
        )

    @property
    def last_point(self) -> Optional[GazePoint]:
        return self._last_point

    @property
    def locator(self) -> PupilLocator:
        return self._locator

    def reset(self):
        """Forget the smoothing history."""
        self._last_point = None
