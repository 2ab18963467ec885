"""
Session data schema and serialization.

A session holds one recording's worth of mouse and gaze samples plus the
page metadata needed to interpret them. Element snapshots are plain values
captured at sample time, never live references.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from gazeheat.core.errors import SessionFinalizedError
from gazeheat.utils.logger import get_logger

logger = get_logger(__name__)

TEXT_SNIPPET_LENGTH = 100


class SampleSource(str, Enum):
    """Origin of a spatial sample."""

    MOUSE = "mouse"
    GAZE = "gaze"


@dataclass(frozen=True)
class Rect:
    """Axis-aligned box in document coordinates (pixels)."""

    x: float
    y: float
    width: float
    height: float

    def contains(self, px: float, py: float) -> bool:
        return self.x <= px < self.x + self.width and self.y <= py < self.y + self.height

    def to_dict(self) -> Dict[str, float]:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Rect":
        return cls(
            x=float(data.get("x", 0.0)),
            y=float(data.get("y", 0.0)),
            width=float(data.get("width", 0.0)),
            height=float(data.get("height", 0.0)),
        )


@dataclass(frozen=True)
class ElementRef:
    """
    Structural fingerprint of the page element under a sample point.

    The text is truncated to TEXT_SNIPPET_LENGTH characters on construction.
    """

    tag_name: str
    text: str = ""
    href: Optional[str] = None
    src: Optional[str] = None
    rect: Rect = field(default_factory=lambda: Rect(0.0, 0.0, 0.0, 0.0))

    def __post_init__(self):
        if self.text and len(self.text) > TEXT_SNIPPET_LENGTH:
            object.__setattr__(self, "text", self.text[:TEXT_SNIPPET_LENGTH])

    @property
    def signature(self) -> Tuple[str, str, Optional[str], Optional[str]]:
        """Identity used to group samples by element."""
        return (self.tag_name, self.text, self.href, self.src)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tagName": self.tag_name,
            "text": self.text,
            "href": self.href,
            "src": self.src,
            "rect": self.rect.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ElementRef":
        return cls(
            tag_name=data.get("tagName", ""),
            text=data.get("text") or "",
            href=data.get("href"),
            src=data.get("src"),
            rect=Rect.from_dict(data.get("rect") or {}),
        )


@dataclass(frozen=True)
class Sample:
    """
    One recorded spatial observation.

    Mouse samples always weigh 1.0; gaze samples weigh their confidence.
    """

    x: float
    y: float
    timestamp_ms: int
    source: SampleSource
    weight: float = 1.0
    target: Optional[ElementRef] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "x": self.x,
            "y": self.y,
            "timestamp": self.timestamp_ms,
            "source": self.source.value,
            "weight": self.weight,
            "metadata": self.target.to_dict() if self.target is not None else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Sample":
        metadata = data.get("metadata")
        return cls(
            x=float(data["x"]),
            y=float(data["y"]),
            timestamp_ms=int(data.get("timestamp", 0)),
            source=SampleSource(data.get("source", SampleSource.MOUSE.value)),
            # Older exports carry the gaze confidence instead of a weight
            weight=float(data.get("weight", data.get("confidence", 1.0))),
            target=ElementRef.from_dict(metadata) if metadata else None,
        )

    def validate(self) -> bool:
        """
        Validate the weight invariant.

        Returns:
            True if valid, raises ValueError if invalid
        """
        if self.source == SampleSource.MOUSE and self.weight != 1.0:
            raise ValueError("Mouse samples must have weight 1.0")

        if self.source == SampleSource.GAZE and not 0.0 < self.weight <= 1.0:
            raise ValueError("Gaze sample weight must be in (0, 1]")

        if self.timestamp_ms < 0:
            raise ValueError("Timestamp must be non-negative")

        return True


@dataclass(frozen=True)
class Viewport:
    """Page dimensions (pixels)."""

    width: int
    height: int


class Session:
    """
    One recording: ordered samples plus page metadata.

    Samples are append-only while the session is open. finalize() freezes
    the session; it is called before the session is serialized.
    """

    def __init__(
        self,
        started_at_ms: int,
        url: str = "",
        title: str = "",
        viewport: Optional[Viewport] = None,
        samples: Optional[List[Sample]] = None,
    ):
        self.started_at_ms = started_at_ms
        self.url = url
        self.title = title
        self.viewport = viewport or Viewport(0, 0)
        self._samples: List[Sample] = list(samples or [])
        self._finalized = False

    def append(self, sample: Sample):
        if self._finalized:
            raise SessionFinalizedError("Cannot append to a finalized session")
        self._samples.append(sample)

    def finalize(self):
        if not self._finalized:
            self._finalized = True
            logger.debug(f"Session finalized with {len(self._samples)} samples")

    @property
    def finalized(self) -> bool:
        return self._finalized

    @property
    def samples(self) -> Tuple[Sample, ...]:
        return tuple(self._samples)

    def samples_of(self, source: SampleSource) -> List[Sample]:
        return [s for s in self._samples if s.source == source]

    def __len__(self) -> int:
        return len(self._samples)

    def to_dict(self) -> Dict[str, Any]:
        """
        Serialize to the export format.

        Mouse and gaze samples are written to separate arrays; each entry
        carries its position in the session so from_dict() restores the
        original interleaving.
        """
        mouse_data = []
        gaze_data = []
        for index, sample in enumerate(self._samples):
            entry = {"index": index, **sample.to_dict()}
            if sample.source == SampleSource.MOUSE:
                mouse_data.append(entry)
            else:
                gaze_data.append(entry)

        return {
            "timestamp": self.started_at_ms,
            "url": self.url,
            "title": self.title,
            "mouseData": mouse_data,
            "gazeData": gaze_data,
            "dimensions": {
                "width": self.viewport.width,
                "height": self.viewport.height,
            },
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Session":
        """Parse an exported session. The result is already finalized."""
        entries = []
        for position, raw in enumerate(data.get("mouseData", [])):
            raw = {"source": SampleSource.MOUSE.value, **raw}
            entries.append((raw.get("index", position), raw))
        offset = len(entries)
        for position, raw in enumerate(data.get("gazeData", [])):
            raw = {"source": SampleSource.GAZE.value, **raw}
            entries.append((raw.get("index", offset + position), raw))

        entries.sort(key=lambda item: item[0])

        dimensions = data.get("dimensions", {})
        session = cls(
            started_at_ms=int(data.get("timestamp", 0)),
            url=data.get("url", ""),
            title=data.get("title", ""),
            viewport=Viewport(
                int(dimensions.get("width", 0)), int(dimensions.get("height", 0))
            ),
            samples=[Sample.from_dict(raw) for _, raw in entries],
        )
        session.finalize()
        return session

    def validate(self) -> bool:
        """
        Validate session contents.

        Returns:
            True if valid, raises ValueError if invalid
        """
        if self.viewport.width < 0 or self.viewport.height < 0:
            raise ValueError("Invalid viewport dimensions")

        for i, sample in enumerate(self._samples):
            try:
                sample.validate()
            except ValueError as e:
                raise ValueError(f"Invalid sample {i}: {e}")

        return True
