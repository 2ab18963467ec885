"""
Offline gaze analysis of a recorded video.

Walks the file at a fixed frame rate and runs every decoded frame through
the heuristic eye-region extractor and the brightness pupil locator.
"""

from pathlib import Path
from typing import Callable, Dict, List, Optional, Union

from gazeheat.core.config import AppConfig
from gazeheat.utils.logger import get_logger
from gazeheat.vision.camera import VideoFileSampler
from gazeheat.vision.gaze_estimator import GazeEstimator
from gazeheat.vision.landmarks import HeuristicEyeRegionExtractor, LandmarkExtractor
from gazeheat.vision.pupil import BrightnessPupilLocator, PupilLocator

logger = get_logger(__name__)

ProgressCallback = Callable[[int, int], None]


def _point(position) -> Optional[Dict[str, float]]:
    if position is None:
        return None
    return {"x": float(position[0]), "y": float(position[1])}


class BatchVideoAnalyzer:
    """
    Sequential frame-by-frame analysis of a video file.

    Each seek completes before the next one is issued. stop() may be called
    from a progress callback or another thread; the loop checks it before
    every frame.
    """

    def __init__(
        self,
        config: Optional[AppConfig] = None,
        sampler_factory: Callable[[Union[str, Path]], VideoFileSampler] = VideoFileSampler,
        extractor: Optional[LandmarkExtractor] = None,
        locator: Optional[PupilLocator] = None,
    ):
        self._config = config or AppConfig()
        self._sampler_factory = sampler_factory
        self._extractor = extractor or HeuristicEyeRegionExtractor()
        self._locator = locator or BrightnessPupilLocator()
        self._is_analyzing = False
        self._stop_requested = False

    @property
    def is_analyzing(self) -> bool:
        return self._is_analyzing

    def stop(self):
        """Request cancellation; the current frame finishes first."""
        self._stop_requested = True

    def analyze(self, path: Union[str, Path], progress: Optional[ProgressCallback] = None) -> List[dict]:
        """
        Analyze a video file.

        Args:
            path: Video file to analyze
            progress: Called with (processed, total) after each seek point

        Returns:
            One record per frame with a detection:
            {timestamp, leftEye, rightEye, screenX, screenY, confidence}

        Raises:
            CameraError: If the file cannot be opened
        """
        if self._is_analyzing:
            raise RuntimeError("Analysis already in progress")

        self._is_analyzing = True
        self._stop_requested = False
        records: List[dict] = []

        sampler = self._sampler_factory(path)
        try:
            sampler.open()
            self._extractor.open()

            estimator = GazeEstimator(
                self._config.gaze,
                viewport_size=self._config.viewport_size,
                frame_size=sampler.frame_size,
                locator=self._locator,
            )

            seek_points = sampler.seek_points(self._config.analysis.batch_fps)
            total = len(seek_points)
            logger.info(f"Analyzing {total} frames from {path}")

            for processed, time_s in enumerate(seek_points, start=1):
                if self._stop_requested:
                    logger.info(f"Analysis cancelled after {processed - 1}/{total} frames")
                    break

                frame = sampler.seek(time_s)
                if frame is not None:
                    record = self._analyze_frame(estimator, frame.image, frame.timestamp_ms)
                    if record is not None:
                        records.append(record)

                if progress is not None:
                    progress(processed, total)

        finally:
            self._extractor.close()
            sampler.close()
            self._is_analyzing = False

        logger.info(f"Analysis finished: {len(records)} gaze records")
        return records

    def _analyze_frame(self, estimator: GazeEstimator, image, timestamp_ms: int) -> Optional[dict]:
        detections = self._extractor.detect(image)
        if not detections:
            return None

        point = estimator.estimate_detection(detections[0], image)
        return {
            "timestamp": timestamp_ms,
            "leftEye": _point(point.left_eye),
            "rightEye": _point(point.right_eye),
            "screenX": point.x,
            "screenY": point.y,
            "confidence": point.confidence,
        }
