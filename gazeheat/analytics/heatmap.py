"""
Heatmap rendering.

Draws one radial gradient per sample, sized and shaded by the density of
its grid cell, blurs the result into a continuous field and stamps a
legend on top. All drawing happens on a premultiplied float RGBA canvas
with source-over compositing.
"""

from datetime import datetime
from typing import Iterable, Optional, Sequence, Tuple

import cv2
import numpy as np

from gazeheat.analytics.density import aggregate
from gazeheat.core.config import HeatmapConfig
from gazeheat.storage.schema import Sample, SampleSource
from gazeheat.utils.logger import get_logger

logger = get_logger(__name__)

# (offset, (r, g, b), alpha multiplier)
ColorStop = Tuple[float, Tuple[int, int, int], float]

MOUSE_STOPS: Sequence[ColorStop] = (
    (0.0, (255, 0, 0), 1.0),
    (0.5, (255, 100, 0), 0.5),
    (1.0, (255, 200, 0), 0.0),
)
GAZE_STOPS: Sequence[ColorStop] = (
    (0.0, (0, 0, 255), 1.0),
    (1.0, (0, 0, 255), 0.0),
)
REALTIME_STOPS: Sequence[ColorStop] = (
    (0.0, (0, 128, 255), 1.0),
    (0.6, (0, 128, 255), 0.5),
    (1.0, (0, 128, 255), 0.0),
)

MOUSE_SWATCH = (255, 0, 0)
GAZE_SWATCH = (0, 0, 255)

LEGEND_FONT = cv2.FONT_HERSHEY_SIMPLEX
LEGEND_FONT_SCALE = 0.45


def new_canvas(canvas_size: Tuple[int, int]) -> np.ndarray:
    """Transparent premultiplied RGBA canvas for (width, height)."""
    width, height = canvas_size
    return np.zeros((height, width, 4), dtype=np.float32)


def composite(canvas: np.ndarray, coverage: np.ndarray, rgb: Tuple[int, int, int], alpha: float):
    """
    Source-over a solid color onto the canvas.

    Args:
        canvas: Premultiplied RGBA float canvas, modified in place
        coverage: Per-pixel coverage in [0, 1], shape (H, W)
        rgb: Color (0-255)
        alpha: Alpha in [0, 1]
    """
    src_alpha = (coverage * alpha).astype(np.float32)
    color = np.asarray(rgb, dtype=np.float32) / 255.0

    canvas[..., :3] = color * src_alpha[..., None] + canvas[..., :3] * (1.0 - src_alpha[..., None])
    canvas[..., 3] = src_alpha + canvas[..., 3] * (1.0 - src_alpha)


def draw_radial_gradient(
    canvas: np.ndarray,
    center: Tuple[float, float],
    radius: float,
    stops: Sequence[ColorStop],
    alpha: float,
):
    """
    Fill a disc with a radial gradient, source-over.

    Color and alpha are interpolated linearly between stops by the distance
    from the centre over the radius.
    """
    if radius <= 0:
        return

    height, width = canvas.shape[:2]
    cx, cy = center

    x0 = max(int(np.floor(cx - radius)), 0)
    x1 = min(int(np.ceil(cx + radius)) + 1, width)
    y0 = max(int(np.floor(cy - radius)), 0)
    y1 = min(int(np.ceil(cy + radius)) + 1, height)
    if x0 >= x1 or y0 >= y1:
        return

    ys, xs = np.mgrid[y0:y1, x0:x1]
    distance = np.hypot(xs + 0.5 - cx, ys + 0.5 - cy)
    t = distance / radius
    inside = t <= 1.0

    offsets = [stop[0] for stop in stops]
    src_rgb = np.empty(t.shape + (3,), dtype=np.float32)
    for channel in range(3):
        src_rgb[..., channel] = np.interp(t, offsets, [stop[1][channel] / 255.0 for stop in stops])
    src_alpha = np.interp(t, offsets, [stop[2] * alpha for stop in stops]).astype(np.float32)
    src_alpha = np.where(inside, src_alpha, 0.0).astype(np.float32)

    target = canvas[y0:y1, x0:x1]
    target[..., :3] = src_rgb * src_alpha[..., None] + target[..., :3] * (1.0 - src_alpha[..., None])
    target[..., 3] = src_alpha + target[..., 3] * (1.0 - src_alpha)


def draw_legend(
    canvas: np.ndarray,
    origin: Tuple[int, int],
    size: Tuple[int, int],
    labels: Tuple[str, str],
    extra_lines: Sequence[str] = (),
    swatch_colors: Tuple[Tuple[int, int, int], Tuple[int, int, int]] = (MOUSE_SWATCH, GAZE_SWATCH),
):
    """Stamp the two-swatch legend box (and optional text lines) onto the canvas."""
    height, width = canvas.shape[:2]
    ox, oy = origin
    legend_width, legend_height = size

    box = np.zeros((height, width), dtype=np.float32)
    box[oy:oy + legend_height, ox:ox + legend_width] = 1.0
    composite(canvas, box, (0, 0, 0), 0.7)

    rows = [(labels[0], swatch_colors[0]), (labels[1], swatch_colors[1])]
    for i, (label, color) in enumerate(rows):
        swatch_y = oy + 15 + 25 * i
        swatch = np.zeros((height, width), dtype=np.uint8)
        cv2.circle(swatch, (ox + 15, swatch_y), 8, 255, thickness=-1, lineType=cv2.LINE_AA)
        composite(canvas, swatch.astype(np.float32) / 255.0, color, 0.8)
        _draw_text(canvas, label, (ox + 30, swatch_y + 5))

    for i, line in enumerate(extra_lines):
        _draw_text(canvas, line, (ox + 30, oy + 70 + 20 * i))


def _draw_text(canvas: np.ndarray, text: str, position: Tuple[int, int]):
    height, width = canvas.shape[:2]
    mask = np.zeros((height, width), dtype=np.uint8)
    cv2.putText(mask, text, position, LEGEND_FONT, LEGEND_FONT_SCALE, 255, 1, cv2.LINE_AA)
    composite(canvas, mask.astype(np.float32) / 255.0, (255, 255, 255), 1.0)


def canvas_size_for(samples: Iterable[Sample], minimum: Tuple[int, int] = (0, 0)) -> Tuple[int, int]:
    """(width, height) covering `minimum` and every sample position."""
    width, height = minimum
    for sample in samples:
        width = max(width, int(np.ceil(sample.x)) + 1)
        height = max(height, int(np.ceil(sample.y)) + 1)
    return (max(width, 1), max(height, 1))


def to_rgba8(canvas: np.ndarray) -> np.ndarray:
    """Convert a premultiplied float canvas to straight-alpha uint8 RGBA."""
    alpha = canvas[..., 3:4]
    rgb = np.divide(canvas[..., :3], alpha, out=np.zeros_like(canvas[..., :3]), where=alpha > 0)
    out = np.concatenate([rgb, alpha], axis=2)
    return np.clip(np.round(out * 255.0), 0, 255).astype(np.uint8)


class HeatmapRenderer:
    """
    Render mixed mouse/gaze samples as a blurred density heatmap.

    Per sample: radius = 30 + density * 20 and
    alpha = min(0.3 + density * 0.5, 0.8), where density is the normalized
    weight of the sample's grid cell within its own source. Mouse samples
    ramp red to yellow, gaze samples are blue.
    """

    def __init__(self, config: Optional[HeatmapConfig] = None):
        self._config = config or HeatmapConfig()

    def render_canvas(
        self, samples: Iterable[Sample], canvas_size: Tuple[int, int], legend: bool = True
    ) -> np.ndarray:
        """Render to a premultiplied float RGBA canvas."""
        config = self._config
        samples = list(samples)
        grid = aggregate(samples, config.grid_size)
        canvas = new_canvas(canvas_size)

        for sample in samples:
            density = grid.density_at(sample)
            radius = config.base_radius + density * config.radius_gain
            alpha = min(config.base_alpha + density * config.alpha_gain, config.max_alpha)
            stops = MOUSE_STOPS if sample.source == SampleSource.MOUSE else GAZE_STOPS
            draw_radial_gradient(canvas, (sample.x, sample.y), radius, stops, alpha)

        if config.blur_radius > 0 and canvas.size:
            canvas = cv2.GaussianBlur(canvas, (0, 0), sigmaX=config.blur_radius, sigmaY=config.blur_radius)

        if legend and canvas.size:
            draw_legend(canvas, (10, 10), (200, 60), (config.mouse_label, config.gaze_label))

        logger.debug(f"Rendered {len(samples)} samples into {len(grid)} density cells")
        return canvas

    def render(
        self, samples: Iterable[Sample], canvas_size: Tuple[int, int], legend: bool = True
    ) -> np.ndarray:
        """
        Render samples into an RGBA image.

        Args:
            samples: Mouse and gaze samples in document coordinates
            canvas_size: (width, height) in pixels

        Returns:
            uint8 array (height, width, 4), straight alpha
        """
        return to_rgba8(self.render_canvas(samples, canvas_size, legend))

    def compose_capture(
        self,
        samples: Iterable[Sample],
        background: Optional[np.ndarray],
        canvas_size: Tuple[int, int],
        stamp: str,
    ) -> np.ndarray:
        """
        Composite the heatmap over a page image and stamp legend and time.

        Args:
            samples: Samples to render
            background: RGB page image, or None for a white page
            canvas_size: (width, height) of the capture
            stamp: Text for the capture-time line of the legend

        Returns:
            uint8 RGB image (height, width, 3)
        """
        width, height = canvas_size
        page = np.ones((height, width, 3), dtype=np.float32)
        if background is not None:
            h = min(height, background.shape[0])
            w = min(width, background.shape[1])
            page[:h, :w] = background[:h, :w, :3].astype(np.float32) / 255.0

        heat = self.render_canvas(samples, canvas_size, legend=False)
        opacity = self._config.capture_opacity

        canvas = np.ones((height, width, 4), dtype=np.float32)
        canvas[..., :3] = heat[..., :3] * opacity + page * (1.0 - heat[..., 3:4] * opacity)

        draw_legend(
            canvas,
            (20, 20),
            (300, 80),
            (self._config.mouse_label, self._config.gaze_label),
            extra_lines=(stamp,),
        )

        return np.clip(np.round(canvas[..., :3] * 255.0), 0, 255).astype(np.uint8)


class RealtimeHeatmap:
    """
    Fading live gaze trail.

    Each update washes the canvas with 10% white and adds a gradient of
    radius 50 at the new gaze point, alpha min(0.8, confidence).
    """

    def __init__(self, canvas_size: Tuple[int, int], radius: float = 50.0, fade: float = 0.1):
        self._canvas = new_canvas(canvas_size)
        self._radius = radius
        self._fade = fade

    def update(self, x: float, y: float, confidence: float):
        coverage = np.ones(self._canvas.shape[:2], dtype=np.float32)
        composite(self._canvas, coverage, (255, 255, 255), self._fade)
        draw_radial_gradient(
            self._canvas, (x, y), self._radius, REALTIME_STOPS, min(0.8, confidence)
        )

    def image(self) -> np.ndarray:
        return to_rgba8(self._canvas)

    def clear(self):
        self._canvas[...] = 0.0


def capture_label(stamp_ms: int) -> str:
    """Legend line of a capture, in local time."""
    return f"Captured: {datetime.fromtimestamp(stamp_ms / 1000.0):%Y-%m-%d %H:%M:%S}"
