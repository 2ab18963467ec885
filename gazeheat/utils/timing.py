"""
Timing utilities: session clock, FPS monitoring and capture cadence.
"""

import time
from typing import Callable, Optional


def now_ms() -> int:
    """Wall-clock time in integer milliseconds since the epoch."""
    return int(time.time() * 1000)


class SessionClock:
    """
    Millisecond clock relative to the start of a recording.

    The time source is injectable so tests can drive it deterministically.
    """

    def __init__(self, time_source: Callable[[], float] = time.monotonic):
        self._time_source = time_source
        self._start: Optional[float] = None

    def start(self):
        """Mark the current instant as time zero."""
        self._start = self._time_source()

    def elapsed_ms(self) -> int:
        """Milliseconds since start(), or 0 if the clock was never started."""
        if self._start is None:
            return 0
        return int(round((self._time_source() - self._start) * 1000))

    @property
    def started(self) -> bool:
        return self._start is not None


class FPSCounter:
    """
    Track and calculate frames per second.

    Used to monitor the live detection loop.
    """

    def __init__(self, window_size: int = 30):
        """
        Initialize FPS counter.

        Args:
            window_size: Number of frames to average over
        """
        self._window_size = window_size
        self._frame_times: list[float] = []
        self._last_time: Optional[float] = None

    def tick(self) -> float:
        """
        Register a frame and return current FPS.

        Returns:
            Current FPS (frames per second)
        """
        current_time = time.perf_counter()

        if self._last_time is not None:
            self._frame_times.append(current_time - self._last_time)

            # Keep only last N frames
            if len(self._frame_times) > self._window_size:
                self._frame_times.pop(0)

        self._last_time = current_time

        return self.fps

    @property
    def fps(self) -> float:
        """Current FPS, or 0.0 if no frames recorded."""
        if not self._frame_times:
            return 0.0

        avg_frame_time = sum(self._frame_times) / len(self._frame_times)
        if avg_frame_time <= 0:
            return 0.0

        return 1.0 / avg_frame_time

    def reset(self):
        """Reset FPS counter."""
        self._frame_times.clear()
        self._last_time = None


class FrameRateLimiter:
    """
    Limit frame sampling to a target FPS.

    Call wait() once per loop iteration, after the frame has been processed.
    """

    def __init__(self, target_fps: float):
        """
        Initialize frame rate limiter.

        Args:
            target_fps: Target frames per second
        """
        self._target_fps = target_fps
        self._min_frame_time = 1.0 / target_fps if target_fps > 0 else 0.0
        self._last_frame_time: Optional[float] = None

    def wait(self):
        """Sleep long enough to keep the target frame rate."""
        current_time = time.perf_counter()

        if self._last_frame_time is not None:
            elapsed = current_time - self._last_frame_time
            sleep_time = self._min_frame_time - elapsed

            if sleep_time > 0:
                time.sleep(sleep_time)
                self._last_frame_time = time.perf_counter()
            else:
                self._last_frame_time = current_time
        else:
            self._last_frame_time = current_time

    @property
    def target_fps(self) -> float:
        return self._target_fps

    def reset(self):
        """Reset timing."""
        self._last_frame_time = None
