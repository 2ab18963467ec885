"""
Tests for heatmap rendering.
"""

import pytest
import numpy as np

from gazeheat.analytics.heatmap import (
    HeatmapRenderer,
    RealtimeHeatmap,
    canvas_size_for,
    capture_label,
)
from gazeheat.core.config import HeatmapConfig
from gazeheat.storage.schema import Sample, SampleSource


def sample(x, y, source=SampleSource.MOUSE, weight=1.0):
    return Sample(x=x, y=y, timestamp_ms=0, source=source, weight=weight)


@pytest.fixture
def samples():
    return [
        sample(200, 150),
        sample(205, 152),
        sample(320, 220, SampleSource.GAZE, 0.6),
        sample(330, 230, SampleSource.GAZE, 0.9),
    ]


class TestHeatmapRenderer:
    """Tests for HeatmapRenderer.render."""

    def test_output_shape_and_type(self, samples):
        image = HeatmapRenderer().render(samples, (400, 300))

        assert image.shape == (300, 400, 4)
        assert image.dtype == np.uint8

    def test_deterministic(self, samples):
        renderer = HeatmapRenderer()

        first = renderer.render(samples, (400, 300))
        second = renderer.render(list(samples), (400, 300))

        assert np.array_equal(first, second)

    def test_no_nan(self, samples):
        canvas = HeatmapRenderer().render_canvas(samples + [sample(-40, -40)], (400, 300))

        assert np.isfinite(canvas).all()
        assert canvas.min() >= 0.0
        assert canvas[..., 3].max() <= 1.0 + 1e-6

    def test_empty_samples_only_legend(self):
        image = HeatmapRenderer().render([], (400, 300))

        assert image[200, 300, 3] == 0
        # Legend background rgba(0, 0, 0, 0.7)
        assert abs(int(image[15, 100, 3]) - 178) <= 1
        assert tuple(image[15, 100, :3]) == (0, 0, 0)

    def test_without_legend_empty_is_transparent(self):
        image = HeatmapRenderer().render([], (400, 300), legend=False)

        assert image[..., 3].max() == 0

    def test_mouse_is_red_gaze_is_blue(self, samples):
        image = HeatmapRenderer().render(samples, (400, 300), legend=False)

        mouse_px = image[150, 200]
        gaze_px = image[225, 325]
        assert mouse_px[3] > 0 and gaze_px[3] > 0
        assert mouse_px[0] > mouse_px[2]
        assert gaze_px[2] > gaze_px[0]

    def test_gradient_geometry_without_blur(self):
        renderer = HeatmapRenderer(HeatmapConfig(blur_radius=0))
        image = renderer.render([sample(200, 150)], (400, 300), legend=False)

        # density 1: radius 50, alpha 0.8
        assert 195 <= image[150, 200, 3] <= 205
        assert image[150, 256, 3] == 0
        assert image[150, 230, 3] > 0

    def test_denser_cells_draw_larger(self):
        renderer = HeatmapRenderer(HeatmapConfig(blur_radius=0))
        samples = [sample(100, 100)] * 4 + [sample(300, 100)]

        image = renderer.render(samples, (400, 200), legend=False)

        # Dense sample: radius 50; sparse (density 0.25): radius 35
        assert image[100, 100 + 45, 3] > 0
        assert image[100, 300 + 45, 3] == 0

    def test_blur_spreads_beyond_radius(self):
        renderer = HeatmapRenderer(HeatmapConfig(blur_radius=10))
        image = renderer.render([sample(200, 150)], (400, 300), legend=False)

        assert image[150, 256, 3] > 0


class TestCapture:
    def test_white_page_without_samples(self):
        image = HeatmapRenderer().compose_capture([], None, (400, 300), "Captured: now")

        assert image.shape == (300, 400, 3)
        assert tuple(image[250, 350]) == (255, 255, 255)
        # Legend box starts at (20, 20)
        assert image[25, 200].max() < 255

    def test_background_is_kept(self):
        page = np.zeros((300, 400, 3), dtype=np.uint8)
        page[..., 1] = 200

        image = HeatmapRenderer().compose_capture([], page, (400, 300), "x")

        assert tuple(image[250, 350]) == (0, 200, 0)

    def test_heatmap_blended_over_page(self):
        page = np.full((300, 400, 3), 255, dtype=np.uint8)

        image = HeatmapRenderer().compose_capture([sample(300, 200)], page, (400, 300), "x")

        pixel = image[200, 300]
        assert pixel[0] == 255
        assert pixel[2] < 255

    def test_capture_label(self):
        assert capture_label(0).startswith("Captured: ")


class TestRealtimeHeatmap:
    def test_update_draws_and_fades(self):
        live = RealtimeHeatmap((200, 100))

        live.update(50, 50, 1.0)
        image = live.image()

        assert image[50, 50, 3] > 200
        assert image[50, 50, 2] > image[50, 50, 0]
        # Fade wash: white at 10%
        assert image[90, 190, 3] in (25, 26)
        assert tuple(image[90, 190, :3]) == (255, 255, 255)

    def test_confidence_caps_alpha(self):
        live = RealtimeHeatmap((200, 100))
        live.update(100, 50, 0.3)

        assert live.image()[50, 100, 3] < 0.4 * 255

    def test_clear(self):
        live = RealtimeHeatmap((200, 100))
        live.update(50, 50, 1.0)
        live.clear()

        assert live.image()[..., 3].max() == 0


class TestCanvasSize:
    def test_covers_samples(self):
        assert canvas_size_for([sample(500.2, 20)], (400, 300)) == (502, 300)

    def test_minimum(self):
        assert canvas_size_for([], (0, 0)) == (1, 1)
