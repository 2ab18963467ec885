"""
Raw mouse movement source.

Uses pynput to observe pointer motion. pynput delivers events on its own
thread; they are queued here and drained by the capture loop so the
recorder is only ever touched from one thread.
"""

import queue
import time
from typing import List, Optional, Tuple

from gazeheat.core.errors import DeviceUnavailableError
from gazeheat.recording.recorder import MouseEvent
from gazeheat.utils.logger import get_logger

logger = get_logger(__name__)


class MouseListener:
    """
    Queue pointer motion as MouseEvents in viewport coordinates.

    Features:
    - Screen to viewport translation via a fixed origin
    - Rate limiting of bursty motion events
    """

    def __init__(
        self,
        origin: Tuple[int, int] = (0, 0),
        min_event_interval: float = 0.01,  # 100 Hz max
        max_queue: int = 10000,
    ):
        """
        Initialize the listener.

        Args:
            origin: Screen position of the viewport's top-left corner
            min_event_interval: Minimum time between queued events (seconds)
            max_queue: Events beyond this are dropped until drained
        """
        self._origin = origin
        self._min_event_interval = min_event_interval
        self._events: "queue.Queue[MouseEvent]" = queue.Queue(maxsize=max_queue)
        self._listener = None
        self._last_event_time: Optional[float] = None

        self._total_events = 0
        self._skipped_events = 0

    def start(self):
        """
        Start listening.

        Raises:
            DeviceUnavailableError: If no input backend is available
        """
        if self._listener is not None:
            return

        try:
            from pynput import mouse

            self._listener = mouse.Listener(on_move=self._on_move)
            self._listener.start()
        except Exception as e:
            self._listener = None
            raise DeviceUnavailableError(f"Mouse input unavailable: {e}") from e

        logger.info("Mouse listener started")

    def _on_move(self, x: float, y: float):
        # Runs on the pynput thread
        current_time = time.perf_counter()
        if (
            self._last_event_time is not None
            and current_time - self._last_event_time < self._min_event_interval
        ):
            self._skipped_events += 1
            return

        event = MouseEvent(client_x=float(x - self._origin[0]), client_y=float(y - self._origin[1]))
        try:
            self._events.put_nowait(event)
        except queue.Full:
            self._skipped_events += 1
            return

        self._last_event_time = current_time
        self._total_events += 1

    def drain(self, limit: Optional[int] = None) -> List[MouseEvent]:
        """Take all queued events (up to limit) in arrival order."""
        events = []
        while limit is None or len(events) < limit:
            try:
                events.append(self._events.get_nowait())
            except queue.Empty:
                break
        return events

    def stop(self):
        """Stop listening. Safe to call multiple times."""
        if self._listener is not None:
            self._listener.stop()
            self._listener = None
            logger.info("Mouse listener stopped")

    @property
    def is_running(self) -> bool:
        return self._listener is not None

    @property
    def statistics(self) -> dict:
        return {
            "total_events": self._total_events,
            "skipped_events": self._skipped_events,
        }
