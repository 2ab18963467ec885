"""
Tests for the live tracking controller.
"""

import pytest
import numpy as np

from gazeheat.core.config import AppConfig, CameraConfig, StorageConfig
from gazeheat.core.controller import Controller
from gazeheat.core.errors import DeviceUnavailableError, ModelLoadError
from gazeheat.core.state import TrackingState
from gazeheat.recording.elements import PageLayout
from gazeheat.recording.recorder import MouseEvent
from gazeheat.storage.schema import ElementRef, Rect, SampleSource, Viewport
from gazeheat.storage.session_store import SessionStore
from gazeheat.vision.camera import Frame
from gazeheat.vision.landmarks import EyeDetection, EyeRegion, LandmarkExtractor

LEFT_EYE = [[100, 100], [130, 95], [150, 95], [160, 100], [150, 105], [130, 105]]
RIGHT_EYE = [[x + 200, y] for x, y in LEFT_EYE]


class FakeCamera:
    def __init__(self, fail_open=None, frames=None):
        self.fail_open = fail_open
        self.frames = frames
        self.is_open = False
        self.open_calls = 0
        self.reads = 0

    def open(self):
        self.open_calls += 1
        if self.fail_open is not None:
            raise self.fail_open
        self.is_open = True
        return True

    def read_frame(self):
        self.reads += 1
        if self.frames is not None and self.reads > self.frames:
            return None
        return Frame(np.zeros((480, 640, 3), dtype=np.uint8), self.reads * 33, self.reads)

    def get_frame_size(self):
        return (640, 480)

    def close(self):
        self.is_open = False


class FakeExtractor(LandmarkExtractor):
    def __init__(self, fail_open=False, score=1.0, fail_on_detect=False):
        self.fail_open = fail_open
        self.score = score
        self.fail_on_detect = fail_on_detect
        self.loaded = False

    def open(self):
        if self.fail_open:
            raise ModelLoadError("face model missing")
        self.loaded = True

    def detect(self, image):
        if self.fail_on_detect:
            raise DeviceUnavailableError("camera unplugged")
        return [
            EyeDetection(
                score=self.score,
                left_eye=EyeRegion.from_points(LEFT_EYE),
                right_eye=EyeRegion.from_points(RIGHT_EYE),
            )
        ]

    def close(self):
        self.loaded = False


class FakeListener:
    def __init__(self):
        self.running = False
        self.pending = [MouseEvent(10, 10), MouseEvent(20, 20)]

    def start(self):
        self.running = True

    def drain(self, limit=None):
        events, self.pending = self.pending, []
        return events

    def stop(self):
        self.running = False


@pytest.fixture
def config():
    return AppConfig(camera=CameraConfig(target_fps=60))


@pytest.fixture
def layout():
    return PageLayout(
        [ElementRef("NAV", "Menu", rect=Rect(0, 0, 1280, 60))],
        viewport=Viewport(1280, 720),
        url="https://example.com",
        title="Example",
    )


@pytest.fixture
def parts():
    return FakeCamera(), FakeExtractor(), FakeListener()


@pytest.fixture
def controller(config, layout, parts, tmp_path):
    camera, extractor, listener = parts
    return Controller(
        config,
        layout=layout,
        camera=camera,
        extractor=extractor,
        mouse_listener=listener,
        store=SessionStore(StorageConfig(output_dir=tmp_path)),
    )


class TestTrackingLifecycle:
    """Acquire and release of tracking resources."""

    def test_start_acquires_resources(self, controller, parts):
        camera, extractor, listener = parts

        assert controller.start_tracking()

        assert controller.tracking_state == TrackingState.TRACKING
        assert camera.is_open and extractor.loaded and listener.running

    def test_stop_releases_resources(self, controller, parts):
        camera, extractor, listener = parts
        controller.start_tracking()

        assert controller.stop_tracking()

        assert controller.tracking_state == TrackingState.IDLE
        assert not camera.is_open and not extractor.loaded and not listener.running

    def test_camera_failure_releases_and_records_error(self, config, layout):
        camera = FakeCamera(fail_open=DeviceUnavailableError("busy"))
        extractor = FakeExtractor()
        controller = Controller(config, layout=layout, camera=camera, extractor=extractor)

        with pytest.raises(DeviceUnavailableError):
            controller.start_tracking()

        assert controller.tracking_state == TrackingState.ERROR
        assert controller.error.error_type == "DeviceUnavailableError"
        assert controller.error.recoverable
        assert not camera.is_open

    def test_model_failure_is_not_recoverable(self, config, layout):
        camera = FakeCamera()
        controller = Controller(config, layout=layout, camera=camera, extractor=FakeExtractor(fail_open=True))

        with pytest.raises(ModelLoadError):
            controller.start_tracking()

        assert not controller.error.recoverable
        assert not camera.is_open

    def test_error_cleared_by_stop(self, config, layout):
        controller = Controller(
            config, layout=layout, camera=FakeCamera(fail_open=DeviceUnavailableError("busy")), extractor=FakeExtractor()
        )
        with pytest.raises(DeviceUnavailableError):
            controller.start_tracking()

        controller.stop_tracking()

        assert controller.tracking_state == TrackingState.IDLE
        assert controller.error is None

    def test_start_from_error_refused(self, config, layout):
        camera = FakeCamera(fail_open=DeviceUnavailableError("busy"))
        controller = Controller(config, layout=layout, camera=camera, extractor=FakeExtractor())
        with pytest.raises(DeviceUnavailableError):
            controller.start_tracking()

        assert controller.start_tracking() is False
        assert camera.open_calls == 1


class TestRun:
    """Tests for the frame loop."""

    def test_records_gaze_and_mouse(self, controller):
        controller.start_recording()
        controller.start_tracking()

        processed = controller.run(max_frames=3)

        session = controller.recorder.session
        assert processed == 3
        assert len(session.samples_of(SampleSource.GAZE)) == 3
        assert len(session.samples_of(SampleSource.MOUSE)) == 2
        assert session.samples_of(SampleSource.MOUSE)[0].target.tag_name == "NAV"

    def test_resources_released_after_run(self, controller, parts):
        camera, extractor, listener = parts
        controller.start_tracking()

        controller.run(max_frames=1)

        assert controller.tracking_state == TrackingState.IDLE
        assert not camera.is_open and not extractor.loaded and not listener.running

    def test_stop_from_callback(self, controller):
        controller.start_tracking()

        processed = controller.run(max_frames=100, on_frame=lambda result: controller.stop())

        assert processed == 1

    def test_not_recording_records_nothing(self, controller):
        controller.start_tracking()
        controller.run(max_frames=2)

        assert controller.recorder.session is None

    def test_low_score_detection_ignored(self, config, layout):
        controller = Controller(config, layout=layout, camera=FakeCamera(), extractor=FakeExtractor(score=0.1))
        controller.start_recording()
        controller.start_tracking()

        controller.run(max_frames=2)

        assert len(controller.recorder.session) == 0

    def test_failure_inside_loop(self, config, layout):
        camera = FakeCamera()
        controller = Controller(config, layout=layout, camera=camera, extractor=FakeExtractor(fail_on_detect=True))
        controller.start_tracking()

        with pytest.raises(DeviceUnavailableError):
            controller.run(max_frames=5)

        assert controller.tracking_state == TrackingState.ERROR
        assert not camera.is_open

    def test_camera_stops_delivering(self, config, layout):
        controller = Controller(config, layout=layout, camera=FakeCamera(frames=2), extractor=FakeExtractor())
        controller.start_tracking()

        with pytest.raises(DeviceUnavailableError):
            controller.run()

        assert controller.tracking_state == TrackingState.ERROR

    def test_run_requires_tracking(self, controller):
        with pytest.raises(RuntimeError):
            controller.run(max_frames=1)

    def test_live_heatmap_off_by_default(self, controller):
        controller.start_tracking()
        controller.run(max_frames=1)

        assert controller.live_heatmap is None
        with pytest.raises(RuntimeError):
            controller.save_live_heatmap()

    def test_live_heatmap_updated(self, config, layout, tmp_path):
        controller = Controller(
            config,
            layout=layout,
            camera=FakeCamera(),
            extractor=FakeExtractor(),
            store=SessionStore(StorageConfig(output_dir=tmp_path)),
            live_heatmap=True,
        )
        controller.start_tracking()
        controller.run(max_frames=1)

        assert controller.live_heatmap.image()[..., 3].max() > 0
        path = controller.save_live_heatmap()
        assert path.name.startswith("heatmap_live_") and path.suffix == ".png"


class TestOutputs:
    def test_save_and_capture(self, controller, tmp_path):
        controller.start_recording()
        controller.start_tracking()
        controller.run(max_frames=2)

        session_path = controller.save_session()
        png_path = controller.capture()

        assert session_path.parent == tmp_path.resolve()
        assert session_path.name.startswith("heatmap_data_")
        assert png_path.name.startswith("heatmap_") and png_path.suffix == ".png"
        assert controller.recorder.session.finalized

    def test_render_heatmap_covers_document(self, controller):
        controller.start_recording()
        controller.stop_recording()

        image = controller.render_heatmap()

        assert image.shape == (720, 1280, 4)

    def test_report(self, controller):
        controller.start_recording()
        controller.drain_mouse_events()

        report = controller.report()

        assert report.mouse_samples == 2
        assert report.top[0].element.tag_name == "NAV"

    def test_outputs_require_session(self, controller):
        with pytest.raises(RuntimeError):
            controller.report()
