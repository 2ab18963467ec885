"""
Spatial density aggregation.

Samples are binned into a square grid, separately per source, so mouse and
gaze densities are each normalized against their own maximum.
"""

import math
from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, Tuple

from gazeheat.storage.schema import Sample, SampleSource

CellKey = Tuple[int, int, SampleSource]


@dataclass
class DensityCell:
    """Accumulated samples of one source in one grid bucket."""

    count: int = 0
    total_weight: float = 0.0


class DensityGrid:
    """
    Mapping of (grid_x, grid_y, source) -> DensityCell.

    Built fresh for each render; never persisted.
    """

    def __init__(self, grid_size: int = 20):
        if grid_size < 1:
            raise ValueError("grid_size must be at least 1")
        self.grid_size = grid_size
        self._cells: Dict[CellKey, DensityCell] = {}
        self._max_weight: Dict[SampleSource, float] = {}

    def key_for(self, x: float, y: float, source: SampleSource) -> CellKey:
        return (
            int(math.floor(x / self.grid_size)),
            int(math.floor(y / self.grid_size)),
            source,
        )

    def add(self, sample: Sample):
        key = self.key_for(sample.x, sample.y, sample.source)
        cell = self._cells.get(key)
        if cell is None:
            cell = DensityCell()
            self._cells[key] = cell
        cell.count += 1
        cell.total_weight += sample.weight

        if cell.total_weight > self._max_weight.get(sample.source, 0.0):
            self._max_weight[sample.source] = cell.total_weight

    def max_weight(self, source: SampleSource) -> float:
        """Largest cell weight of a source; 0.0 if it has no samples."""
        return self._max_weight.get(source, 0.0)

    def density(self, key: CellKey) -> float:
        """
        Normalized density of a cell in [0, 1].

        Absent cells, and sources whose max weight is 0, have density 0.
        """
        cell = self._cells.get(key)
        if cell is None:
            return 0.0
        max_weight = self.max_weight(key[2])
        if max_weight <= 0.0:
            return 0.0
        return cell.total_weight / max_weight

    def density_at(self, sample: Sample) -> float:
        """Density of the cell a sample falls into."""
        return self.density(self.key_for(sample.x, sample.y, sample.source))

    def cells_of(self, source: SampleSource) -> Dict[Tuple[int, int], DensityCell]:
        return {(gx, gy): cell for (gx, gy, s), cell in self._cells.items() if s == source}

    def normalized(self, source: SampleSource) -> Dict[Tuple[int, int], float]:
        """{(grid_x, grid_y): density} for one source."""
        return {
            (gx, gy): self.density((gx, gy, s))
            for (gx, gy, s) in self._cells
            if s == source
        }

    def __getitem__(self, key: CellKey) -> DensityCell:
        return self._cells[key]

    def __contains__(self, key) -> bool:
        return key in self._cells

    def __iter__(self) -> Iterator[CellKey]:
        return iter(self._cells)

    def __len__(self) -> int:
        return len(self._cells)

    def items(self):
        return self._cells.items()


def aggregate(samples: Iterable[Sample], grid_size: int = 20) -> DensityGrid:
    """
    Bin samples into a density grid.

    Args:
        samples: Samples of any source
        grid_size: Cell edge length in pixels

    Returns:
        DensityGrid keyed by (floor(x/grid_size), floor(y/grid_size), source)
    """
    grid = DensityGrid(grid_size)
    for sample in samples:
        grid.add(sample)
    return grid
