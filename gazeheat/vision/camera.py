"""
Frame sampling from a live camera or a recorded video file.

Frames are processed in-memory only and handed out as RGB arrays.
"""

import math
import os
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, List, Optional, Tuple, Union

import cv2
import numpy as np

from gazeheat.core.config import CameraConfig
from gazeheat.core.errors import CameraError, DeviceUnavailableError, PermissionDeniedError
from gazeheat.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class Frame:
    """A captured frame with metadata."""

    image: np.ndarray  # RGB format (H, W, 3)
    timestamp_ms: int
    frame_number: int

    @property
    def size(self) -> Tuple[int, int]:
        """(width, height) of the frame."""
        height, width = self.image.shape[:2]
        return (width, height)


def _check_device_permission(camera_index: int):
    """
    Raise PermissionDeniedError if the camera device node exists but is not
    readable by this process. Only meaningful where /dev/videoN nodes exist.
    """
    device = Path(f"/dev/video{camera_index}")
    if device.exists() and not os.access(device, os.R_OK):
        raise PermissionDeniedError(
            f"Permission denied for camera {camera_index} ({device}). "
            "Grant camera access to this user and try again."
        )


class Camera:
    """
    Live camera capture.

    The capture handle is released on close(), on a failed open(), and when
    used as a context manager, on any exception.
    """

    def __init__(self, config: CameraConfig):
        """
        Initialize camera.

        Args:
            config: Camera configuration
        """
        self._config = config
        self._capture: Optional[cv2.VideoCapture] = None
        self._is_open = False
        self._frame_count = 0

    def open(self) -> bool:
        """
        Open camera and configure capture settings.

        Returns:
            True if successful

        Raises:
            PermissionDeniedError: If access to the device was refused
            DeviceUnavailableError: If no camera is present or it is busy
        """
        if self._is_open:
            logger.warning("Camera already open")
            return True

        logger.info(f"Opening camera {self._config.camera_index}")

        try:
            _check_device_permission(self._config.camera_index)

            self._capture = cv2.VideoCapture(self._config.camera_index)

            if not self._capture.isOpened():
                raise DeviceUnavailableError(
                    f"Failed to open camera {self._config.camera_index}. "
                    "Check if camera is connected and not used by another application."
                )

            self._capture.set(cv2.CAP_PROP_FRAME_WIDTH, self._config.frame_width)
            self._capture.set(cv2.CAP_PROP_FRAME_HEIGHT, self._config.frame_height)
            self._capture.set(cv2.CAP_PROP_FPS, self._config.target_fps)

            # Skip first few frames which may be black
            for _ in range(self._config.warmup_frames):
                self._capture.read()

            self._is_open = True
            self._frame_count = 0

            actual_width = int(self._capture.get(cv2.CAP_PROP_FRAME_WIDTH))
            actual_height = int(self._capture.get(cv2.CAP_PROP_FRAME_HEIGHT))
            logger.info(f"Camera opened: {actual_width}x{actual_height}")

            return True

        except CameraError:
            self.close()
            raise

        except Exception as e:
            self.close()
            error_msg = f"Camera initialization failed: {e}"
            logger.error(error_msg)
            raise DeviceUnavailableError(error_msg) from e

    def read_frame(self) -> Optional[Frame]:
        """
        Read a frame from the camera.

        Returns:
            Frame in RGB format, or None if the read failed
        """
        if not self._is_open or self._capture is None:
            logger.warning("Attempted to read from closed camera")
            return None

        ret, frame = self._capture.read()

        if not ret or frame is None:
            logger.warning("Failed to read frame from camera")
            return None

        self._frame_count += 1

        return Frame(
            image=cv2.cvtColor(frame, cv2.COLOR_BGR2RGB),
            timestamp_ms=int(time.time() * 1000),
            frame_number=self._frame_count,
        )

    def get_frame_size(self) -> Tuple[int, int]:
        """(width, height) of captured frames."""
        if self._capture is None or not self._is_open:
            return (self._config.frame_width, self._config.frame_height)

        width = int(self._capture.get(cv2.CAP_PROP_FRAME_WIDTH))
        height = int(self._capture.get(cv2.CAP_PROP_FRAME_HEIGHT))

        return (width, height)

    def close(self):
        """
        Release camera resources.

        Safe to call multiple times.
        """
        if self._capture is not None:
            self._capture.release()
            self._capture = None
            logger.info("Camera closed")

        self._is_open = False

    @property
    def is_open(self) -> bool:
        return self._is_open

    @property
    def frame_count(self) -> int:
        return self._frame_count

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


class VideoFileSampler:
    """
    Random-access frame sampler over a decoded video file.

    Seeks are strictly sequential: seek() returns only once the frame at
    the requested time has been decoded.
    """

    def __init__(self, path: Union[str, Path]):
        self._path = Path(path)
        self._capture: Optional[cv2.VideoCapture] = None
        self._fps = 0.0
        self._frame_total = 0
        self._size: Tuple[int, int] = (0, 0)
        self._frame_count = 0

    def open(self):
        """
        Open the file and read its stream properties.

        Raises:
            CameraError: If the file is missing or cannot be decoded
        """
        if not self._path.exists():
            raise CameraError(f"Video file not found: {self._path}")

        self._capture = cv2.VideoCapture(str(self._path))
        if not self._capture.isOpened():
            self.close()
            raise CameraError(f"Cannot decode video file: {self._path}")

        self._fps = float(self._capture.get(cv2.CAP_PROP_FPS) or 0.0)
        self._frame_total = int(self._capture.get(cv2.CAP_PROP_FRAME_COUNT) or 0)
        self._size = (
            int(self._capture.get(cv2.CAP_PROP_FRAME_WIDTH)),
            int(self._capture.get(cv2.CAP_PROP_FRAME_HEIGHT)),
        )

        logger.info(
            f"Video opened: {self._path.name} {self._size[0]}x{self._size[1]}, "
            f"{self.duration_s:.2f}s"
        )

    @property
    def duration_s(self) -> float:
        if self._fps <= 0:
            return 0.0
        return self._frame_total / self._fps

    @property
    def frame_size(self) -> Tuple[int, int]:
        return self._size

    def seek_points(self, fps: float, max_duration_s: Optional[float] = None) -> List[float]:
        """
        Seek times (seconds) for sampling the file at a fixed rate.

        Args:
            fps: Samples per second
            max_duration_s: Stop before this time, if given

        Returns:
            List of times i / fps for each whole frame in the covered duration
        """
        duration = self.duration_s
        if max_duration_s is not None:
            duration = min(duration, max_duration_s)
        total = int(math.floor(duration * fps))
        return [i / fps for i in range(total)]

    def seek(self, time_s: float) -> Optional[Frame]:
        """
        Decode the frame at the given time.

        Returns:
            Frame in RGB format, or None if nothing could be decoded there
        """
        if self._capture is None:
            raise CameraError("Video file is not open")

        self._capture.set(cv2.CAP_PROP_POS_MSEC, time_s * 1000.0)
        ret, frame = self._capture.read()
        if not ret or frame is None:
            logger.debug(f"No frame decoded at {time_s:.3f}s")
            return None

        self._frame_count += 1
        return Frame(
            image=cv2.cvtColor(frame, cv2.COLOR_BGR2RGB),
            timestamp_ms=int(round(time_s * 1000)),
            frame_number=self._frame_count,
        )

    def iter_frames(self, fps: float, max_duration_s: Optional[float] = None) -> Iterator[Frame]:
        """Yield decoded frames at each seek point, skipping undecodable ones."""
        for time_s in self.seek_points(fps, max_duration_s):
            frame = self.seek(time_s)
            if frame is not None:
                yield frame

    def close(self):
        """Release the decoder. Safe to call multiple times."""
        if self._capture is not None:
            self._capture.release()
            self._capture = None

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
