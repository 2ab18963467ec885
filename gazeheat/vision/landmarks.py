"""
Eye landmark extraction.

Two extractors share one interface: a MediaPipe Face Mesh backed extractor
and a model-free fallback that searches fixed regions of the frame.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional, Tuple

import numpy as np

from gazeheat.core.errors import ModelLoadError
from gazeheat.utils.logger import get_logger

logger = get_logger(__name__)


# MediaPipe Face Mesh indices for the six-point eye contour, ordered
# outer corner, upper lid (2), inner corner, lower lid (2).
# See: https://github.com/google/mediapipe/blob/master/mediapipe/modules/face_geometry/data/canonical_face_model_uv_visualization.png
IMAGE_LEFT_EYE_INDICES = [33, 160, 158, 133, 153, 144]
IMAGE_LEFT_IRIS_INDEX = 468

IMAGE_RIGHT_EYE_INDICES = [362, 385, 387, 263, 373, 380]
IMAGE_RIGHT_IRIS_INDEX = 473


@dataclass
class EyeRegion:
    """Landmark points of one eye, in frame pixel coordinates."""

    points: np.ndarray  # Shape: (N, 2)
    iris: Optional[np.ndarray] = None  # Shape: (2,)

    @classmethod
    def from_points(cls, points, iris=None) -> "EyeRegion":
        array = np.asarray(points, dtype=np.float64).reshape(-1, 2)
        iris_array = None if iris is None else np.asarray(iris, dtype=np.float64)
        return cls(points=array, iris=iris_array)

    @property
    def is_empty(self) -> bool:
        return self.points is None or len(self.points) == 0

    @property
    def centroid(self) -> np.ndarray:
        return self.points.mean(axis=0)

    @property
    def bounds(self) -> Tuple[float, float, float, float]:
        """(x_min, y_min, x_max, y_max)"""
        x_min, y_min = self.points.min(axis=0)
        x_max, y_max = self.points.max(axis=0)
        return (float(x_min), float(y_min), float(x_max), float(y_max))

    @property
    def width(self) -> float:
        x_min, _, x_max, _ = self.bounds
        return x_max - x_min

    @property
    def height(self) -> float:
        _, y_min, _, y_max = self.bounds
        return y_max - y_min


@dataclass
class EyeDetection:
    """One detected face reduced to its two eyes."""

    score: float
    left_eye: EyeRegion
    right_eye: EyeRegion


class LandmarkExtractor(ABC):
    """Returns zero or more eye detections per RGB frame."""

    def open(self):
        """Acquire model resources. Raises ModelLoadError on failure."""

    @abstractmethod
    def detect(self, image: np.ndarray) -> List[EyeDetection]:
        """Detect eyes in an RGB image (H, W, 3)."""

    def close(self):
        """Release model resources. Safe to call multiple times."""

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


class MediaPipeLandmarkExtractor(LandmarkExtractor):
    """
    Eye landmarks from MediaPipe Face Mesh.

    refine_landmarks=True adds the iris centres used by the iris pupil
    locator.
    """

    def __init__(
        self,
        min_detection_confidence: float = 0.5,
        min_tracking_confidence: float = 0.5,
        max_num_faces: int = 1,
    ):
        self._min_detection_confidence = min_detection_confidence
        self._min_tracking_confidence = min_tracking_confidence
        self._max_num_faces = max_num_faces
        self._face_mesh = None

    def open(self):
        """
        Load the Face Mesh model.

        Raises:
            ModelLoadError: If mediapipe or its model assets are unavailable
        """
        if self._face_mesh is not None:
            return

        try:
            import mediapipe as mp

            self._face_mesh = mp.solutions.face_mesh.FaceMesh(
                max_num_faces=self._max_num_faces,
                refine_landmarks=True,
                min_detection_confidence=self._min_detection_confidence,
                min_tracking_confidence=self._min_tracking_confidence,
            )
        except Exception as e:
            self._face_mesh = None
            raise ModelLoadError(f"Failed to load face landmark model: {e}") from e

        logger.info("MediaPipe Face Mesh loaded")

    def detect(self, image: np.ndarray) -> List[EyeDetection]:
        if self._face_mesh is None:
            raise ModelLoadError("Landmark model is not loaded; call open() first")

        if image is None or image.size == 0:
            return []

        results = self._face_mesh.process(image)
        if not results.multi_face_landmarks:
            return []

        height, width = image.shape[:2]
        detections = []
        for face_landmarks in results.multi_face_landmarks:
            normalized = np.array(
                [[lm.x, lm.y] for lm in face_landmarks.landmark],
                dtype=np.float64,
            )
            detections.append(self._to_detection(normalized, width, height))

        return detections

    @staticmethod
    def _to_detection(normalized: np.ndarray, width: int, height: int) -> EyeDetection:
        landmarks = normalized * np.array([width, height], dtype=np.float64)
        left_eye = EyeRegion(
            points=landmarks[IMAGE_LEFT_EYE_INDICES],
            iris=landmarks[IMAGE_LEFT_IRIS_INDEX] if len(landmarks) > IMAGE_LEFT_IRIS_INDEX else None,
        )
        right_eye = EyeRegion(
            points=landmarks[IMAGE_RIGHT_EYE_INDICES],
            iris=landmarks[IMAGE_RIGHT_IRIS_INDEX] if len(landmarks) > IMAGE_RIGHT_IRIS_INDEX else None,
        )

        # Face Mesh gives no per-face score; faces it returns already passed
        # min_detection_confidence
        return EyeDetection(score=1.0, left_eye=left_eye, right_eye=right_eye)

    def close(self):
        if self._face_mesh is not None:
            self._face_mesh.close()
            self._face_mesh = None
            logger.info("MediaPipe Face Mesh closed")


class HeuristicEyeRegionExtractor(LandmarkExtractor):
    """
    Model-free fallback: the upper third of the frame, split in halves.

    Meant to be paired with the brightness pupil locator, which searches
    each region for its darkest pixel.
    """

    def __init__(self, region_height_fraction: float = 1.0 / 3.0):
        self._region_height_fraction = region_height_fraction

    def detect(self, image: np.ndarray) -> List[EyeDetection]:
        if image is None or image.size == 0:
            return []

        height, width = image.shape[:2]
        region_height = int(height * self._region_height_fraction)
        half_width = width // 2
        if region_height < 1 or half_width < 1:
            return []

        return [
            EyeDetection(
                score=1.0,
                left_eye=self._box(0, 0, half_width, region_height),
                right_eye=self._box(half_width, 0, half_width, region_height),
            )
        ]

    @staticmethod
    def _box(x: int, y: int, w: int, h: int) -> EyeRegion:
        # Corners are inclusive pixel positions
        return EyeRegion.from_points(
            [[x, y], [x + w - 1, y], [x + w - 1, y + h - 1], [x, y + h - 1]]
        )


def create_landmark_extractor(kind: str, min_detection_confidence: float = 0.5) -> LandmarkExtractor:
    """
    Build a landmark extractor by name.

    Args:
        kind: "mediapipe" or "heuristic"
    """
    if kind == "mediapipe":
        return MediaPipeLandmarkExtractor(
            min_detection_confidence=min_detection_confidence,
            min_tracking_confidence=min_detection_confidence,
        )
    if kind == "heuristic":
        return HeuristicEyeRegionExtractor()
    raise ValueError(f"Unknown landmark extractor: {kind}")
