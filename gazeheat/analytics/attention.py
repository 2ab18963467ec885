"""
Element attention analysis.

Ranks the page elements that drew the most samples and detects spots where
the gaze lingered.
"""

from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Dict, Iterable, List, Optional, Tuple

from gazeheat.core.config import AnalysisConfig
from gazeheat.storage.schema import ElementRef, Sample, SampleSource
from gazeheat.utils.logger import get_logger

logger = get_logger(__name__)

ElementSignature = Tuple[str, str, Optional[str], Optional[str]]


@dataclass
class AttentionEntry:
    """One ranked (element, source) group."""

    element: ElementRef
    source: SampleSource
    count: int
    # Samples on the same element, ignoring source
    source_breakdown: Dict[SampleSource, int] = field(default_factory=dict)

    @property
    def signature(self) -> ElementSignature:
        return self.element.signature

    def to_dict(self) -> dict:
        return {
            "element": self.element.to_dict(),
            "source": self.source.value,
            "count": self.count,
            "breakdown": {s.value: n for s, n in self.source_breakdown.items()},
        }


@dataclass
class AttentionReport:
    """Top elements plus session totals."""

    total_samples: int
    gaze_samples: int
    mouse_samples: int
    duration_ms: int
    top: List[AttentionEntry] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "totalSamples": self.total_samples,
            "gazeSamples": self.gaze_samples,
            "mouseSamples": self.mouse_samples,
            "durationMs": self.duration_ms,
            "topElements": [entry.to_dict() for entry in self.top],
        }


@dataclass(frozen=True)
class Hesitation:
    """Gaze point preceded by a run of gaze points clustered around it."""

    x: float
    y: float
    timestamp_ms: int
    duration_ms: int


class AttentionAnalyzer:
    """Group samples by element and rank the groups by sample count."""

    def __init__(self, config: Optional[AnalysisConfig] = None):
        self._config = config or AnalysisConfig()

    def analyze(self, samples: Iterable[Sample], top_n: Optional[int] = None) -> AttentionReport:
        """
        Build an attention report.

        Samples without a target count towards the totals but are not
        grouped. Ties keep first-occurrence order.

        Args:
            samples: Session samples in recording order
            top_n: Number of entries to keep (default from config)

        Returns:
            AttentionReport
        """
        if top_n is None:
            top_n = self._config.top_elements

        samples = list(samples)
        groups: Dict[Tuple[ElementSignature, SampleSource], AttentionEntry] = {}
        per_element: Dict[ElementSignature, Dict[SampleSource, int]] = {}

        for sample in samples:
            if sample.target is None:
                continue

            signature = sample.target.signature
            key = (signature, sample.source)
            entry = groups.get(key)
            if entry is None:
                entry = AttentionEntry(element=sample.target, source=sample.source, count=0)
                groups[key] = entry
            entry.count += 1

            breakdown = per_element.setdefault(signature, {})
            breakdown[sample.source] = breakdown.get(sample.source, 0) + 1

        # sorted() is stable, so insertion order breaks ties
        ranked = sorted(groups.values(), key=lambda e: e.count, reverse=True)[:top_n]
        for entry in ranked:
            entry.source_breakdown = dict(per_element[entry.signature])

        gaze_count = sum(1 for s in samples if s.source == SampleSource.GAZE)
        duration = 0
        if samples:
            timestamps = [s.timestamp_ms for s in samples]
            duration = max(timestamps) - min(timestamps)

        report = AttentionReport(
            total_samples=len(samples),
            gaze_samples=gaze_count,
            mouse_samples=len(samples) - gaze_count,
            duration_ms=duration,
            top=ranked,
        )
        logger.debug(f"Attention report: {len(groups)} element groups, {len(ranked)} kept")
        return report

    def find_hesitations(
        self,
        samples: Iterable[Sample],
        window: Optional[int] = None,
        radius: Optional[float] = None,
    ) -> List[Hesitation]:
        """
        Find gaze points where the previous `window` gaze points all lie
        within `radius` pixels of it on both axes.
        """
        window = window if window is not None else self._config.hesitation_window
        radius = radius if radius is not None else self._config.hesitation_radius

        history: Deque[Sample] = deque(maxlen=window)
        found = []
        for sample in samples:
            if sample.source != SampleSource.GAZE:
                continue

            if len(history) == window and all(
                abs(p.x - sample.x) < radius and abs(p.y - sample.y) < radius
                for p in history
            ):
                found.append(
                    Hesitation(
                        x=sample.x,
                        y=sample.y,
                        timestamp_ms=sample.timestamp_ms,
                        duration_ms=sample.timestamp_ms - history[0].timestamp_ms,
                    )
                )
            history.append(sample)

        return found


def describe_element(element: ElementRef) -> str:
    label = f"<{element.tag_name.lower()}>"
    if element.text:
        label += f" {element.text.strip()[:40]!r}"
    if element.href:
        label += f" href={element.href}"
    elif element.src:
        label += f" src={element.src}"
    return label


def format_report(report: AttentionReport, hesitations: Optional[List[Hesitation]] = None) -> str:
    """Plain-text summary for the terminal."""
    lines = [
        "Session summary",
        f"  Total samples: {report.total_samples}",
        f"  Gaze samples:  {report.gaze_samples}",
        f"  Mouse samples: {report.mouse_samples}",
        f"  Duration:      {report.duration_ms / 1000.0:.1f} s",
        "",
        "Top elements",
    ]

    if not report.top:
        lines.append("  (no samples landed on an element)")

    for rank, entry in enumerate(report.top, start=1):
        breakdown = ", ".join(
            f"{source.value} {count}" for source, count in entry.source_breakdown.items()
        )
        lines.append(
            f"  {rank}. {describe_element(entry.element)} [{entry.source.value}] "
            f"{entry.count} samples ({breakdown})"
        )

    if hesitations:
        lines.append("")
        lines.append(f"Hesitations: {len(hesitations)}")
        for h in hesitations[:5]:
            lines.append(f"  ({h.x:.0f}, {h.y:.0f}) at {h.timestamp_ms} ms for {h.duration_ms} ms")

    return "\n".join(lines)
