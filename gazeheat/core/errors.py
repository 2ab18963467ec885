"""
Error taxonomy for GazeHeat.

A face that is not found in a frame is not an error: extractors return an
empty detection list and the frame is skipped.
"""


class GazeHeatError(Exception):
    """Base class for all GazeHeat errors."""

    pass


class CameraError(GazeHeatError):
    """Camera-related errors."""

    pass


class PermissionDeniedError(CameraError):
    """Access to the camera (or input device) was refused."""

    pass


class DeviceUnavailableError(CameraError):
    """No device present, or the device is busy."""

    pass


class ModelLoadError(GazeHeatError):
    """Landmark model assets are missing or could not be loaded."""

    pass


class RemoteAnalysisError(GazeHeatError):
    """The face-analysis service failed (transport, auth or payload)."""

    pass


class SessionFinalizedError(GazeHeatError):
    """A sample was appended to a session that has already been serialized."""

    pass


class SessionStoreError(GazeHeatError):
    """Session export or import errors."""

    pass
