"""
Sample recording.

Buffers timestamped mouse and gaze samples into the open session, tagging
each with a snapshot of the element under it.
"""

from dataclasses import dataclass
from typing import Optional

from gazeheat.core.config import RecordingConfig
from gazeheat.core.state import RecordingState, StateMachine, recording_state_machine
from gazeheat.recording.elements import ElementResolver
from gazeheat.storage.schema import Sample, SampleSource, Session, Viewport
from gazeheat.utils.timing import SessionClock, now_ms
from gazeheat.vision.gaze_estimator import GazePoint
from gazeheat.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class MouseEvent:
    """Pointer position in viewport (client) coordinates."""

    client_x: float
    client_y: float


class SampleRecorder:
    """
    Records samples while its state machine is RECORDING.

    State transitions:
        IDLE -> RECORDING on start()
        RECORDING -> IDLE on stop(), or on start() of a new session

    Both record methods are silent no-ops while IDLE.
    """

    def __init__(
        self,
        resolver: ElementResolver,
        config: Optional[RecordingConfig] = None,
        state_machine: Optional[StateMachine] = None,
        clock: Optional[SessionClock] = None,
    ):
        self._resolver = resolver
        self._config = config or RecordingConfig()
        self._state_machine = state_machine or recording_state_machine()
        self._clock = clock or SessionClock()
        self._session: Optional[Session] = None

    @property
    def state_machine(self) -> StateMachine:
        return self._state_machine

    @property
    def is_recording(self) -> bool:
        return self._state_machine.is_in(RecordingState.RECORDING)

    @property
    def session(self) -> Optional[Session]:
        """The open session, or the last finished one."""
        return self._session

    def start(self, url: str = "", title: str = "", viewport: Optional[Viewport] = None) -> Session:
        """
        Begin a new session, finishing the current one first.

        Returns:
            The new, empty session
        """
        if self.is_recording:
            logger.info("New session requested while recording; stopping current session")
            self.stop()

        self._session = Session(
            started_at_ms=now_ms(), url=url, title=title, viewport=viewport
        )
        self._clock.start()
        self._state_machine.transition_to(RecordingState.RECORDING)

        logger.info("Recording started")
        return self._session

    def stop(self) -> Optional[Session]:
        """
        Stop recording and finalize the session.

        Returns:
            The finalized session, or None if nothing was recorded
        """
        if not self.is_recording:
            return self._session

        self._state_machine.transition_to(RecordingState.IDLE)
        self._session.finalize()

        logger.info(f"Recording stopped: {len(self._session)} samples")
        return self._session

    def record_mouse(self, event: MouseEvent) -> Optional[Sample]:
        """Record a mouse movement. Returns the sample, or None if idle."""
        if not self.is_recording:
            return None

        return self._append(event.client_x, event.client_y, SampleSource.MOUSE, 1.0)

    def record_gaze(self, point: GazePoint) -> Optional[Sample]:
        """
        Record a gaze point, weighted by its confidence.

        Points at or below min_gaze_confidence are dropped so gaze weights
        stay in (0, 1].
        """
        if not self.is_recording:
            return None

        if point.confidence <= self._config.min_gaze_confidence:
            logger.debug(f"Gaze point dropped: confidence {point.confidence:.2f}")
            return None

        weight = min(float(point.confidence), 1.0)
        return self._append(point.x, point.y, SampleSource.GAZE, weight)

    def _append(self, client_x: float, client_y: float, source: SampleSource, weight: float) -> Sample:
        scroll_x, scroll_y = self._resolver.scroll_offset
        doc_x = client_x + scroll_x
        doc_y = client_y + scroll_y

        sample = Sample(
            x=float(doc_x),
            y=float(doc_y),
            timestamp_ms=self._clock.elapsed_ms(),
            source=source,
            weight=weight,
            target=self._resolver.element_at(doc_x, doc_y),
        )
        self._session.append(sample)
        return sample
