"""
Central controller orchestrating the live tracking pipeline.

camera -> landmark extraction -> gaze estimation -> sample recording,
plus mouse events, all on the thread that calls run().
"""

import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

import numpy as np

from gazeheat.analytics.attention import AttentionAnalyzer, AttentionReport
from gazeheat.analytics.heatmap import (
    HeatmapRenderer,
    RealtimeHeatmap,
    canvas_size_for,
    capture_label,
)
from gazeheat.core.config import AppConfig
from gazeheat.core.errors import DeviceUnavailableError, GazeHeatError, ModelLoadError
from gazeheat.core.state import (
    ErrorInfo,
    StateMachine,
    TrackingState,
    recording_state_machine,
    tracking_state_machine,
)
from gazeheat.recording.elements import PageLayout
from gazeheat.recording.mouse_listener import MouseListener
from gazeheat.recording.recorder import SampleRecorder
from gazeheat.storage.schema import Session, Viewport
from gazeheat.storage.session_store import SessionStore
from gazeheat.utils.logger import get_logger
from gazeheat.utils.timing import FPSCounter, FrameRateLimiter, now_ms
from gazeheat.vision.camera import Camera, Frame
from gazeheat.vision.gaze_estimator import GazeEstimator, GazePoint
from gazeheat.vision.landmarks import LandmarkExtractor, create_landmark_extractor

logger = get_logger(__name__)

# Consecutive failed camera reads before the loop gives up
MAX_READ_FAILURES = 30


@dataclass
class FrameProcessingResult:
    """Result of processing a single frame."""

    face_detected: bool
    gaze: Optional[GazePoint] = None
    recorded: bool = False
    fps: float = 0.0


class Controller:
    """
    Central controller for GazeHeat.

    Owns the tracking and recording state machines and the resources of a
    tracking run. Camera, landmark extractor and mouse listener are
    acquired by start_tracking() and released by stop_tracking(), on a
    failed start, and whenever run() exits.
    """

    def __init__(
        self,
        config: AppConfig,
        layout: Optional[PageLayout] = None,
        camera: Optional[Camera] = None,
        extractor: Optional[LandmarkExtractor] = None,
        mouse_listener: Optional[MouseListener] = None,
        store: Optional[SessionStore] = None,
        live_heatmap: bool = False,
    ):
        """
        Initialize controller.

        Args:
            config: Application configuration
            layout: Page the samples are recorded against
            camera: Frame source (default: live camera from config)
            extractor: Landmark extractor (default: MediaPipe)
            mouse_listener: Mouse source, or None to record gaze only
            store: Output store (default: config.storage.output_dir)
            live_heatmap: Keep a fading gaze heatmap updated every frame
        """
        self._config = config
        self._layout = layout or PageLayout(viewport=Viewport(*config.viewport_size))

        self._tracking = tracking_state_machine()
        self._recording = recording_state_machine()

        self._camera = camera or Camera(config.camera)
        self._extractor = extractor or create_landmark_extractor(
            "mediapipe", config.gaze.min_detection_score
        )
        self._mouse_listener = mouse_listener
        self._store = store

        self._recorder = SampleRecorder(
            self._layout, config.recording, state_machine=self._recording
        )
        self._renderer = HeatmapRenderer(config.heatmap)
        self._analyzer = AttentionAnalyzer(config.analysis)
        self._live_heatmap: Optional[RealtimeHeatmap] = (
            RealtimeHeatmap(self.viewport_size) if live_heatmap else None
        )

        self._estimator: Optional[GazeEstimator] = None
        self._fps_counter = FPSCounter()
        self._stop_requested = False

        logger.info(
            f"Controller initialized for {self.viewport_size[0]}x{self.viewport_size[1]}"
        )

    # Tracking

    def start_tracking(self) -> bool:
        """
        Acquire camera, landmark model and mouse listener.

        Returns:
            True if tracking started, False if not allowed from the current state

        Raises:
            CameraError: If the camera or mouse cannot be opened
            ModelLoadError: If the landmark model cannot be loaded
        """
        if not self._tracking.can_transition_to(TrackingState.TRACKING):
            logger.warning(f"Cannot start tracking from state {self._tracking.current_state}")
            return False

        try:
            self._camera.open()
            self._extractor.open()
            if self._mouse_listener is not None:
                self._mouse_listener.start()
        except GazeHeatError as e:
            self._release()
            self._tracking.set_error(
                ErrorInfo(
                    error_type=type(e).__name__,
                    message=str(e),
                    recoverable=not isinstance(e, ModelLoadError),
                )
            )
            logger.error(f"Tracking failed to start: {e}")
            raise

        self._estimator = GazeEstimator(
            self._config.gaze,
            viewport_size=self.viewport_size,
            frame_size=self._camera.get_frame_size(),
            state_machine=self._tracking,
        )
        self._fps_counter.reset()
        if self._live_heatmap is not None:
            self._live_heatmap.clear()
        self._stop_requested = False

        self._tracking.transition_to(TrackingState.TRACKING)
        logger.info("Tracking started")
        return True

    def stop_tracking(self) -> bool:
        """
        Release tracking resources and return to IDLE (also from ERROR).

        Returns:
            True if a tracking run was stopped
        """
        was_tracking = self._tracking.is_in(TrackingState.TRACKING)
        self._release()

        if not self._tracking.is_in(TrackingState.IDLE):
            self._tracking.transition_to(TrackingState.IDLE)

        if was_tracking:
            logger.info("Tracking stopped")
        return was_tracking

    def stop(self):
        """Ask run() to finish after the current frame."""
        self._stop_requested = True

    def run(
        self,
        max_frames: Optional[int] = None,
        duration_s: Optional[float] = None,
        on_frame: Optional[Callable[[FrameProcessingResult], None]] = None,
    ) -> int:
        """
        Process frames until stopped, out of frames or out of time.

        One frame is read, processed and recorded before the next one is
        requested. Resources are released however the loop exits.

        Returns:
            Number of frames processed
        """
        if not self._tracking.is_in(TrackingState.TRACKING):
            raise RuntimeError("run() requires an active tracking session")

        limiter = FrameRateLimiter(self._config.camera.target_fps)
        started = time.monotonic()
        processed = 0
        read_failures = 0

        try:
            while not self._stop_requested:
                if max_frames is not None and processed >= max_frames:
                    break
                if duration_s is not None and time.monotonic() - started >= duration_s:
                    break

                self.drain_mouse_events()

                frame = self._camera.read_frame()
                if frame is None:
                    read_failures += 1
                    if read_failures >= MAX_READ_FAILURES:
                        raise DeviceUnavailableError(
                            f"Camera stopped delivering frames after {processed} frames"
                        )
                    limiter.wait()
                    continue

                read_failures = 0
                result = self.process_frame(frame)
                processed += 1
                if on_frame is not None:
                    on_frame(result)

                limiter.wait()

            self.drain_mouse_events()

        except GazeHeatError as e:
            self._tracking.set_error(
                ErrorInfo(error_type=type(e).__name__, message=str(e), recoverable=True)
            )
            logger.error(f"Tracking loop failed: {e}")
            raise

        finally:
            self._release()
            if self._tracking.is_in(TrackingState.TRACKING):
                self._tracking.transition_to(TrackingState.IDLE)

        logger.info(f"Tracking loop finished: {processed} frames")
        return processed

    def process_frame(self, frame: Frame) -> FrameProcessingResult:
        """Detect, estimate and record one frame."""
        result = FrameProcessingResult(face_detected=False, fps=self._fps_counter.tick())

        detections = [
            d
            for d in self._extractor.detect(frame.image)
            if d.score >= self._config.gaze.min_detection_score
        ]
        if not detections:
            return result

        result.face_detected = True
        detection = max(detections, key=lambda d: d.score)

        point = self._estimator.track(detection, frame.image) if self._estimator else None
        if point is None or point.metadata.get("fallback"):
            return result

        result.gaze = point
        if self._live_heatmap is not None:
            self._live_heatmap.update(point.x, point.y, point.confidence)
        result.recorded = self._recorder.record_gaze(point) is not None
        return result

    def drain_mouse_events(self) -> int:
        """Record queued mouse events on the calling thread."""
        if self._mouse_listener is None:
            return 0

        events = self._mouse_listener.drain()
        for event in events:
            self._recorder.record_mouse(event)
        return len(events)

    def _release(self):
        if self._mouse_listener is not None:
            self._mouse_listener.stop()
        self._extractor.close()
        self._camera.close()

    # Recording

    def start_recording(self) -> Session:
        return self._recorder.start(
            url=self._layout.url, title=self._layout.title, viewport=Viewport(*self.viewport_size)
        )

    def stop_recording(self) -> Optional[Session]:
        return self._recorder.stop()

    # Outputs

    def render_heatmap(self, session: Optional[Session] = None) -> np.ndarray:
        """RGBA heatmap of a session (default: the current one)."""
        session = session or self._require_session()
        size = canvas_size_for(session.samples, self._layout.document_size)
        return self._renderer.render(session.samples, size)

    def capture(self, background: Optional[np.ndarray] = None) -> Path:
        """Composite the heatmap over a page image and save it as PNG."""
        session = self._require_session()
        stamp = now_ms()
        size = canvas_size_for(session.samples, self._layout.document_size)
        image = self._renderer.compose_capture(
            session.samples,
            background,
            size,
            capture_label(stamp),
        )
        return self._get_store().save_png(image, stamp)

    def save_live_heatmap(self) -> Path:
        """Save the fading gaze heatmap as heatmap_live_<ms>.png."""
        if self._live_heatmap is None:
            raise RuntimeError("Live heatmap is not enabled")
        return self._get_store().save_png(self._live_heatmap.image(), prefix="heatmap_live")

    def save_session(self) -> Path:
        """Stop recording if needed and export the session JSON."""
        self._recorder.stop()
        return self._get_store().save_session(self._require_session())

    def report(self) -> AttentionReport:
        return self._analyzer.analyze(self._require_session().samples)

    def _require_session(self) -> Session:
        session = self._recorder.session
        if session is None:
            raise RuntimeError("No session has been recorded")
        return session

    def _get_store(self) -> SessionStore:
        if self._store is None:
            self._store = SessionStore(self._config.storage)
        return self._store

    def shutdown(self):
        """Clean shutdown of all components."""
        logger.info("Shutting down controller")
        self.stop()
        self.stop_tracking()
        self._recorder.stop()

    # Properties

    @property
    def viewport_size(self):
        viewport = self._layout.viewport
        if viewport.width > 0 and viewport.height > 0:
            return (viewport.width, viewport.height)
        return self._config.viewport_size

    @property
    def tracking_state(self) -> TrackingState:
        return self._tracking.current_state

    @property
    def tracking_state_machine(self) -> StateMachine:
        return self._tracking

    @property
    def recorder(self) -> SampleRecorder:
        return self._recorder

    @property
    def live_heatmap(self) -> Optional[RealtimeHeatmap]:
        """Fading gaze heatmap, or None unless enabled."""
        return self._live_heatmap

    @property
    def error(self) -> Optional[ErrorInfo]:
        """Error information if tracking is in the ERROR state."""
        return self._tracking.error

    @property
    def fps(self) -> float:
        return self._fps_counter.fps
