"""
Tests for state machines and configuration validation.
"""

import pytest

from gazeheat.core.config import AnalysisConfig, AppConfig, GazeConfig, HeatmapConfig, RecordingConfig
from gazeheat.core.state import (
    ErrorInfo,
    RecordingState,
    TrackingState,
    recording_state_machine,
    tracking_state_machine,
)


class TestTrackingStateMachine:
    @pytest.fixture
    def machine(self):
        return tracking_state_machine()

    def test_starts_idle(self, machine):
        assert machine.current_state == TrackingState.IDLE
        assert machine.error is None

    def test_start_and_stop(self, machine):
        assert machine.transition_to(TrackingState.TRACKING)
        assert machine.transition_to(TrackingState.IDLE)
        assert machine.previous_state == TrackingState.TRACKING

    def test_error_requires_reset_through_idle(self, machine):
        machine.transition_to(TrackingState.TRACKING)

        assert machine.set_error(ErrorInfo("CameraError", "unplugged"))
        assert machine.current_state == TrackingState.ERROR
        assert machine.error.message == "unplugged"
        assert not machine.can_transition_to(TrackingState.TRACKING)

        assert machine.transition_to(TrackingState.IDLE)
        assert machine.error is None

    def test_invalid_transition_rejected(self, machine):
        machine.set_error(ErrorInfo("ModelLoadError", "missing", recoverable=False))

        assert not machine.transition_to(TrackingState.TRACKING)
        assert machine.current_state == TrackingState.ERROR

    def test_reset(self, machine):
        machine.set_error(ErrorInfo("CameraError", "busy"))
        machine.reset()

        assert machine.current_state == TrackingState.IDLE
        assert machine.error is None


class TestRecordingStateMachine:
    def test_cycle(self):
        machine = recording_state_machine()

        assert machine.transition_to(RecordingState.RECORDING)
        assert machine.is_in(RecordingState.RECORDING)
        assert machine.transition_to(RecordingState.IDLE)

    def test_no_error_state(self):
        machine = recording_state_machine()

        assert not machine.set_error(ErrorInfo("X", "y"))
        assert machine.current_state == RecordingState.IDLE


class TestAppConfig:
    """Tests for AppConfig validation."""

    def test_defaults_are_valid(self):
        config = AppConfig()

        assert config.gaze.previous_weight == pytest.approx(0.3)
        assert config.heatmap.grid_size == 20
        assert config.analysis.top_elements == 5

    @pytest.mark.parametrize(
        "overrides",
        [
            {"gaze": GazeConfig(previous_weight=1.0)},
            {"gaze": GazeConfig(pupil_locator="laser")},
            {"gaze": GazeConfig(pupil_inward_ratio=0.9)},
            {"gaze": GazeConfig(expected_aspect_ratio=0)},
            {"gaze": GazeConfig(fallback_confidence=0.0)},
            {"recording": RecordingConfig(min_gaze_confidence=1.0)},
            {"heatmap": HeatmapConfig(grid_size=0)},
            {"heatmap": HeatmapConfig(blur_radius=-1)},
            {"analysis": AnalysisConfig(batch_fps=0)},
            {"viewport_size": (0, 720)},
        ],
    )
    def test_invalid_values(self, overrides):
        with pytest.raises(ValueError):
            AppConfig(**overrides)

    def test_log_level_from_environment(self, monkeypatch):
        monkeypatch.setenv("GAZEHEAT_LOG_LEVEL", "DEBUG")

        assert AppConfig().log_level == "DEBUG"

    def test_remote_endpoint_from_environment(self, monkeypatch):
        monkeypatch.setenv("GAZEHEAT_FACE_API_URL", "https://faces.example.com/detect")
        monkeypatch.delenv("GAZEHEAT_FACE_API_KEY", raising=False)

        config = AppConfig()

        assert config.remote.endpoint_url == "https://faces.example.com/detect"
        assert config.remote.api_key is None
