"""
Page element lookup.

The recorder asks an ElementResolver which element lies under a sample
point. PageLayout answers from a static snapshot of element boxes, e.g.
exported from a browser alongside the recording.
"""

import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Tuple, Union

from gazeheat.storage.schema import ElementRef, Viewport
from gazeheat.utils.logger import get_logger

logger = get_logger(__name__)


class ElementResolver(Protocol):
    """Hit-testing collaborator used by the recorder."""

    @property
    def scroll_offset(self) -> Tuple[float, float]:
        """Current (scroll_x, scroll_y) of the page."""
        ...

    def element_at(self, x: float, y: float) -> Optional[ElementRef]:
        """Topmost element at document coordinates, or None."""
        ...


class PageLayout:
    """
    Static element layout in document coordinates.

    Elements are kept in paint order: later elements are on top.
    """

    def __init__(
        self,
        elements: Optional[List[ElementRef]] = None,
        scroll: Tuple[float, float] = (0.0, 0.0),
        viewport: Optional[Viewport] = None,
        url: str = "",
        title: str = "",
        origin: Tuple[int, int] = (0, 0),
    ):
        self._elements: List[ElementRef] = list(elements or [])
        self._scroll = scroll
        # Screen position of the viewport's top-left corner
        self.origin = origin
        self.viewport = viewport or Viewport(0, 0)
        self.url = url
        self.title = title

    @property
    def scroll_offset(self) -> Tuple[float, float]:
        return self._scroll

    def scroll_to(self, x: float, y: float):
        self._scroll = (x, y)

    def add(self, element: ElementRef):
        self._elements.append(element)

    @property
    def elements(self) -> List[ElementRef]:
        return list(self._elements)

    def element_at(self, x: float, y: float) -> Optional[ElementRef]:
        for element in reversed(self._elements):
            if element.rect.contains(x, y):
                return element
        return None

    @property
    def document_size(self) -> Tuple[int, int]:
        """Smallest (width, height) covering the viewport and every element."""
        width = self.viewport.width
        height = self.viewport.height
        for element in self._elements:
            width = max(width, int(element.rect.x + element.rect.width))
            height = max(height, int(element.rect.y + element.rect.height))
        return (width, height)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PageLayout":
        scroll = data.get("scroll") or {}
        viewport = data.get("viewport") or {}
        origin = data.get("origin") or {}
        return cls(
            elements=[ElementRef.from_dict(e) for e in data.get("elements", [])],
            scroll=(float(scroll.get("x", 0.0)), float(scroll.get("y", 0.0))),
            viewport=Viewport(int(viewport.get("width", 0)), int(viewport.get("height", 0))),
            url=data.get("url", ""),
            title=data.get("title", ""),
            origin=(int(origin.get("x", 0)), int(origin.get("y", 0))),
        )

    @classmethod
    def load(cls, path: Union[str, Path]) -> "PageLayout":
        """
        Load a layout JSON file.

        Raises:
            ValueError: If the file is not valid layout JSON
        """
        with open(path, "r", encoding="utf-8") as f:
            try:
                data = json.load(f)
            except json.JSONDecodeError as e:
                raise ValueError(f"Invalid layout file {path}: {e}") from e

        layout = cls.from_dict(data)
        logger.info(f"Page layout loaded: {len(layout.elements)} elements")
        return layout
