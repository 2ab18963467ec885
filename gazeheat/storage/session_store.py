"""
Export and import of session artifacts.

Privacy & Security:
- Local-only storage
- Path traversal protection
- Schema validation before save and after load
- Atomic writes (temp file + replace)
"""

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, List, Optional, Union

import cv2
import numpy as np

from gazeheat.core.config import StorageConfig
from gazeheat.core.errors import SessionStoreError
from gazeheat.storage.schema import Session
from gazeheat.utils.logger import get_logger
from gazeheat.utils.timing import now_ms

logger = get_logger(__name__)


def iso_stamp(timestamp_ms: int) -> str:
    """UTC ISO-8601 time with ':' and '.' replaced, safe for file names."""
    moment = datetime.fromtimestamp(timestamp_ms // 1000, tz=timezone.utc)
    text = moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{timestamp_ms % 1000:03d}Z"
    return text.replace(":", "-").replace(".", "-")


class SessionStore:
    """
    Writes session JSON, heatmap PNGs and analysis results into one
    output directory.

    File names:
        heatmap_data_<ms>.json          recorded session
        heatmap_<ms>.png                heatmap capture
        heatmap_live_<ms>.png           live gaze heatmap
        eye-tracking-data-<iso>.json    batch video analysis
        eye-tracking-remote-<iso>.json  remote face analysis
    """

    def __init__(self, config: StorageConfig):
        """
        Initialize the store.

        Raises:
            SessionStoreError: If the output directory is unusable
        """
        self._config = config

        try:
            self._output_dir = Path(config.output_dir).resolve(strict=False)
            self._output_dir.mkdir(parents=True, exist_ok=True)
        except (RuntimeError, OSError) as e:
            raise SessionStoreError(f"Invalid output path: {e}")

        logger.info(f"SessionStore initialized: {self._output_dir}")

    @property
    def output_dir(self) -> Path:
        return self._output_dir

    def save_session(self, session: Session, stamp_ms: Optional[int] = None) -> Path:
        """
        Save a finalized session as heatmap_data_<ms>.json.

        Raises:
            SessionStoreError: If the session is still open, invalid, or the write fails
        """
        if not session.finalized:
            raise SessionStoreError("Session must be stopped before it is saved")

        try:
            session.validate()
        except ValueError as e:
            raise SessionStoreError(f"Invalid session data: {e}") from e

        stamp = stamp_ms if stamp_ms is not None else now_ms()
        path = self._write_json(f"heatmap_data_{stamp}.json", session.to_dict())
        logger.info(f"Session saved: {len(session)} samples -> {path.name}")
        return path

    def load_session(self, path: Union[str, Path]) -> Session:
        """
        Load an exported session from any path.

        Raises:
            SessionStoreError: If the file is missing, corrupted or invalid
        """
        path = Path(path)
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)

            session = Session.from_dict(data)
            session.validate()

            logger.info(f"Session loaded: {len(session)} samples from {path.name}")
            return session

        except json.JSONDecodeError as e:
            error_msg = f"Corrupted session file: {e}"
            logger.error(error_msg)
            raise SessionStoreError(error_msg) from e

        except (KeyError, TypeError, ValueError) as e:
            error_msg = f"Invalid session data: {e}"
            logger.error(error_msg)
            raise SessionStoreError(error_msg) from e

        except OSError as e:
            error_msg = f"Failed to load session: {e}"
            logger.error(error_msg)
            raise SessionStoreError(error_msg) from e

    def save_png(
        self, image: np.ndarray, stamp_ms: Optional[int] = None, prefix: str = "heatmap"
    ) -> Path:
        """
        Save an RGB or RGBA image as <prefix>_<ms>.png.

        Raises:
            SessionStoreError: If encoding or the write fails
        """
        stamp = stamp_ms if stamp_ms is not None else now_ms()

        if image.ndim == 3 and image.shape[2] == 4:
            bgr = cv2.cvtColor(image, cv2.COLOR_RGBA2BGRA)
        else:
            bgr = cv2.cvtColor(image, cv2.COLOR_RGB2BGR)

        ok, buffer = cv2.imencode(".png", bgr)
        if not ok:
            raise SessionStoreError("Failed to encode heatmap PNG")

        path = self._write_bytes(f"{prefix}_{stamp}.png", buffer.tobytes())
        logger.info(f"Heatmap saved: {path.name}")
        return path

    def save_detections(self, records: List[dict], stamp_ms: Optional[int] = None) -> Path:
        """Save batch analysis records as eye-tracking-data-<iso>.json."""
        stamp = stamp_ms if stamp_ms is not None else now_ms()
        path = self._write_json(f"eye-tracking-data-{iso_stamp(stamp)}.json", records)
        logger.info(f"Detections saved: {len(records)} records -> {path.name}")
        return path

    def save_remote_results(self, results: List[dict], stamp_ms: Optional[int] = None) -> Path:
        """Save remote analysis records as eye-tracking-remote-<iso>.json."""
        stamp = stamp_ms if stamp_ms is not None else now_ms()
        path = self._write_json(f"eye-tracking-remote-{iso_stamp(stamp)}.json", results)
        logger.info(f"Remote results saved: {len(results)} records -> {path.name}")
        return path

    def _write_json(self, filename: str, data: Any) -> Path:
        text = json.dumps(data, indent=2, ensure_ascii=False)
        return self._write_bytes(filename, text.encode("utf-8"))

    def _write_bytes(self, filename: str, payload: bytes) -> Path:
        path = self._output_dir / filename
        if not self._is_safe_path(path):
            raise SessionStoreError(f"Path traversal detected: {filename}")

        temp_path = path.with_suffix(path.suffix + ".tmp")
        try:
            with open(temp_path, "wb") as f:
                f.write(payload)
            temp_path.replace(path)
        except OSError as e:
            error_msg = f"Failed to write {filename}: {e}"
            logger.error(error_msg)
            raise SessionStoreError(error_msg) from e

        return path

    def _is_safe_path(self, path: Path) -> bool:
        try:
            resolved = path.resolve(strict=False)
            return resolved.parent == self._output_dir
        except (RuntimeError, OSError):
            return False
