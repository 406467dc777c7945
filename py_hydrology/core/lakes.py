"""
Lake detection by priority flood.

Water spreads inward from the sea (or from the lowest cells on maps without
water). Each cell receives the lowest level water must reach before it can
escape, its spill height. Cells whose spill height is above both their own
height and sea level would pond and are grouped into lakes.
"""

import heapq
import math
from dataclasses import dataclass, field
from typing import List, Optional

import numpy as np
import structlog

from .options import HydrologyOptions
from .state import NO_CELL, SimulationState

logger = structlog.get_logger()


@dataclass
class Lake:
    """A connected region of ponding cells sharing one spill height."""

    id: int
    spill: float
    cells: List[int] = field(default_factory=list)
    outlet: Optional[int] = None  # None when the lake has no outlet (endorheic)

    @property
    def endorheic(self) -> bool:
        return self.outlet is None


@dataclass
class LakeStats:
    """Summary of a lake detection run."""

    lakes: int = 0
    cells_in_lakes: int = 0
    endorheic: int = 0
    message: str = ""


class LakeDetector:
    """Finds lakes, their spill heights and outlets on the raw height field."""

    def __init__(self, state: SimulationState, options: Optional[HydrologyOptions] = None):
        self.state = state
        self.options = options or HydrologyOptions()
        self.lakes: List[Lake] = []
        self.predecessor = np.full(state.n_cells, NO_CELL, dtype=np.int64)
        self.visit_order = np.full(state.n_cells, -1, dtype=np.int64)

    def raw_heights(self) -> np.ndarray:
        """Input heights; invalid cells read as +inf so they never pond."""
        state = self.state
        return np.where(state.valid, state.graph.heights, np.inf)

    def seeds(self, heights: np.ndarray) -> List[int]:
        """
        Cells the flood starts from.

        All water cells, or when there are none, the lowest
        ``lake_fallback_fraction`` of valid cells (at least one), ordered by
        height then id.
        """
        state = self.state
        opts = self.options

        water = np.flatnonzero(state.valid & (heights < opts.sea_level))
        if len(water):
            return [int(c) for c in water]

        valid = np.flatnonzero(state.valid)
        if len(valid) == 0:
            return []

        count = max(1, int(math.floor(len(valid) * opts.lake_fallback_fraction)))
        lowest = valid[np.argsort(heights[valid], kind="stable")][:count]
        logger.info("No water cells, seeding flood from lowest cells", seeds=count)
        return [int(c) for c in lowest]

    def flood(self) -> np.ndarray:
        """
        Compute spill heights with a min-heap priority flood.

        Returns:
            Spill height per cell; unreachable cells get +inf.
        """
        state = self.state
        self.predecessor[:] = NO_CELL
        self.visit_order[:] = -1
        heights = self.raw_heights()
        spill = np.full(state.n_cells, np.inf, dtype=np.float64)
        visited = np.zeros(state.n_cells, dtype=bool)

        queue = []
        for cell_id in self.seeds(heights):
            spill[cell_id] = heights[cell_id]
            visited[cell_id] = True
            heapq.heappush(queue, (heights[cell_id], cell_id))

        order = 0
        while queue:
            level, cell_id = heapq.heappop(queue)
            self.visit_order[cell_id] = order
            order += 1

            for neighbor in state.neighbors[cell_id]:
                if visited[neighbor]:
                    continue
                visited[neighbor] = True
                spill[neighbor] = max(heights[neighbor], level)
                self.predecessor[neighbor] = cell_id
                heapq.heappush(queue, (spill[neighbor], neighbor))

        unreachable = int((state.valid & ~visited).sum())
        if unreachable:
            logger.info("Cells unreachable from water", cells=unreachable)
        return spill

    def detect(self) -> LakeStats:
        """
        Run the flood, group ponding cells into lakes and find their outlets.

        Only ``spill_height``, ``is_lake``, ``lake_id`` and ``lake_outlet`` on
        the state are written.

        Returns:
            LakeStats; the lakes themselves are kept on ``self.lakes``.
        """
        state = self.state
        opts = self.options
        eps = opts.lake_epsilon
        heights = self.raw_heights()

        spill = self.flood()
        state.spill_height[:] = np.where(state.valid, spill, 0.0)

        with np.errstate(invalid="ignore"):
            member = state.valid & (spill > heights + eps) & (spill > opts.sea_level + eps)

        state.is_lake[:] = False
        state.lake_id[:] = NO_CELL
        state.lake_outlet[:] = NO_CELL
        self.lakes = []

        for start in np.flatnonzero(member):
            if state.lake_id[start] != NO_CELL:
                continue
            lake = Lake(id=len(self.lakes), spill=float(spill[start]))
            self._grow(lake, int(start), member, spill)
            lake.outlet = self._find_outlet(lake, member, spill)
            self.lakes.append(lake)

            for cell_id in lake.cells:
                state.is_lake[cell_id] = True
                state.lake_outlet[cell_id] = NO_CELL if lake.outlet is None else lake.outlet

        endorheic = sum(1 for lake in self.lakes if lake.endorheic)
        stats = LakeStats(
            lakes=len(self.lakes),
            cells_in_lakes=int(member.sum()),
            endorheic=endorheic,
        )
        if endorheic:
            stats.message = f"{endorheic} lake(s) without outlet"
            logger.info("Endorheic lakes found", count=endorheic)
        elif not self.lakes:
            stats.message = "no lakes"

        logger.info("Lakes detected", lakes=stats.lakes, cells_in_lakes=stats.cells_in_lakes)
        return stats

    def _grow(self, lake: Lake, start: int, member: np.ndarray, spill: np.ndarray) -> None:
        """Flood fill over member cells whose spill matches the lake's."""
        state = self.state
        state.lake_id[start] = lake.id
        stack = [start]

        while stack:
            cell_id = stack.pop()
            lake.cells.append(cell_id)
            for neighbor in state.neighbors[cell_id]:
                if not member[neighbor] or state.lake_id[neighbor] != NO_CELL:
                    continue
                if not self._same_spill(spill[neighbor], lake.spill):
                    continue
                state.lake_id[neighbor] = lake.id
                stack.append(neighbor)

        lake.cells.sort()

    def _find_outlet(self, lake: Lake, member: np.ndarray, spill: np.ndarray) -> Optional[int]:
        """First predecessor, in flood order, that is dry land at the lake's spill."""
        candidates = []
        for cell_id in lake.cells:
            pred = int(self.predecessor[cell_id])
            if pred == NO_CELL or member[pred]:
                continue
            if self._same_spill(spill[pred], lake.spill):
                candidates.append(pred)

        if not candidates:
            return None
        return min(candidates, key=lambda c: (self.visit_order[c], c))

    def _same_spill(self, a: float, b: float) -> bool:
        if math.isinf(a) and math.isinf(b):
            return True
        return abs(a - b) <= self.options.lake_epsilon
