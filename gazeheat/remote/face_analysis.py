"""
Remote face analysis of a recorded video.

Frames are sampled at a low rate, JPEG encoded and sent one at a time to a
face-analysis service; eye direction and head pose of the first face are
kept per frame.
"""

import base64
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Protocol, Union

import cv2
import numpy as np
import requests

from gazeheat.core.config import AnalysisConfig, RemoteConfig
from gazeheat.core.errors import RemoteAnalysisError
from gazeheat.utils.logger import get_logger
from gazeheat.vision.camera import VideoFileSampler

logger = get_logger(__name__)


class FaceAnalysisService(Protocol):
    """Anything that can analyze one base64-encoded JPEG."""

    def detect_faces(self, image_b64: str) -> Dict[str, Any]:
        """Return the service response, with a "FaceDetails" list."""
        ...


class HttpFaceAnalysisService:
    """
    JSON-over-HTTP face analysis client.

    Posts {"Image": {"Bytes": <b64>}, "Attributes": ["ALL"]} to the
    configured endpoint. Request signing, if any, is the job of the gateway
    behind the endpoint; an API key is sent as a bearer token when set.
    """

    def __init__(self, config: RemoteConfig, session: Optional[requests.Session] = None):
        if not config.endpoint_url:
            raise RemoteAnalysisError(
                "No face analysis endpoint configured. Set GAZEHEAT_FACE_API_URL."
            )
        self._config = config
        self._session = session or requests.Session()

    def detect_faces(self, image_b64: str) -> Dict[str, Any]:
        headers = {"Content-Type": "application/json"}
        if self._config.api_key:
            headers["Authorization"] = f"Bearer {self._config.api_key}"

        payload = {"Image": {"Bytes": image_b64}, "Attributes": ["ALL"]}

        try:
            response = self._session.post(
                self._config.endpoint_url,
                json=payload,
                headers=headers,
                timeout=self._config.timeout_s,
            )
            response.raise_for_status()
            return response.json()
        except requests.HTTPError as e:
            status = e.response.status_code if e.response is not None else "?"
            raise RemoteAnalysisError(f"Face analysis request rejected ({status}): {e}") from e
        except requests.RequestException as e:
            raise RemoteAnalysisError(f"Face analysis request failed: {e}") from e
        except ValueError as e:
            raise RemoteAnalysisError(f"Face analysis returned invalid JSON: {e}") from e

    def close(self):
        self._session.close()


def encode_jpeg_b64(image: np.ndarray, quality: int = 70) -> str:
    """Encode an RGB frame as base64 JPEG."""
    bgr = cv2.cvtColor(image, cv2.COLOR_RGB2BGR)
    ok, buffer = cv2.imencode(".jpg", bgr, [cv2.IMWRITE_JPEG_QUALITY, int(quality)])
    if not ok:
        raise RemoteAnalysisError("Failed to encode frame as JPEG")
    return base64.b64encode(buffer.tobytes()).decode("ascii")


@dataclass
class RemoteFailure:
    timestamp: int
    error: str

    def to_dict(self) -> dict:
        return {"timestamp": self.timestamp, "error": self.error}


@dataclass
class RemoteAnalysisResult:
    """Per-frame face records plus the frames that failed."""

    results: List[dict] = field(default_factory=list)
    failures: List[RemoteFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


class RemoteVideoAnalyzer:
    """Analyze a short video clip through a FaceAnalysisService."""

    def __init__(
        self,
        service: FaceAnalysisService,
        config: Optional[AnalysisConfig] = None,
        sampler_factory: Callable[[Union[str, Path]], VideoFileSampler] = VideoFileSampler,
    ):
        self._service = service
        self._config = config or AnalysisConfig()
        self._sampler_factory = sampler_factory

    def analyze(self, path: Union[str, Path]) -> RemoteAnalysisResult:
        """
        Analyze at most remote_max_duration_s of the file at remote_fps.

        A frame whose request fails is recorded in failures; results from
        other frames are kept.

        Raises:
            CameraError: If the file cannot be opened
        """
        result = RemoteAnalysisResult()

        sampler = self._sampler_factory(path)
        try:
            sampler.open()
            for frame in sampler.iter_frames(
                self._config.remote_fps, self._config.remote_max_duration_s
            ):
                try:
                    image_b64 = encode_jpeg_b64(frame.image, self._config.remote_jpeg_quality)
                    response = self._service.detect_faces(image_b64)
                except RemoteAnalysisError as e:
                    logger.warning(f"Frame at {frame.timestamp_ms} ms failed: {e}")
                    result.failures.append(RemoteFailure(frame.timestamp_ms, str(e)))
                    continue

                details = response.get("FaceDetails") or []
                if not details:
                    continue

                face = details[0]
                result.results.append(
                    {
                        "timestamp": frame.timestamp_ms,
                        "eyeDirection": face.get("EyeDirection"),
                        "confidence": face.get("Confidence"),
                        "pose": face.get("Pose"),
                    }
                )
        finally:
            sampler.close()

        logger.info(
            f"Remote analysis finished: {len(result.results)} faces, "
            f"{len(result.failures)} failed frames"
        )
        return result
