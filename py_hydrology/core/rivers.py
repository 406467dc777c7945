"""
River point tracing.

Walks land cells from the highest down, following the routed successors,
and records the ordered point samples that river geometry is built from:
a source where a river starts, a course point for every cell it enters and
an estuary or delta points where it reaches water.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import numpy as np
import structlog

from .options import HydrologyOptions
from .state import NO_CELL, SimulationState

logger = structlog.get_logger()

SOURCE = "source"
COURSE = "course"
DELTA = "delta"
ESTUARY = "estuary"


@dataclass
class RiverPoint:
    """One sample on a river polyline."""

    river: int
    cell: int  # Owning land cell
    x: float
    y: float
    kind: str  # "source", "course", "delta" or "estuary"
    pour: Optional[int] = None  # Water cell receiving the river, outlets only

    def to_dict(self) -> Dict:
        return {
            "river": self.river,
            "cell": self.cell,
            "x": self.x,
            "y": self.y,
            "kind": self.kind,
            "pour": self.pour,
        }


class RiverTracer:
    """Assigns river ids along flow paths and collects their point samples."""

    def __init__(self, state: SimulationState, options: Optional[HydrologyOptions] = None):
        self.state = state
        self.options = options or HydrologyOptions()
        self.river_of = np.full(state.n_cells, NO_CELL, dtype=np.int64)
        self.points: List[RiverPoint] = []
        self.rivers_count = 0
        self._lengths: Dict[int, int] = {}

    def water_mask(self) -> np.ndarray:
        """Cells a river ends in: sea cells, and lakes under the lakes sink model."""
        state = self.state
        water = state.is_water(self.options.sea_level)
        if self.options.sink_model == "lakes":
            water = water | state.is_lake
        return water

    def trace(self) -> List[RiverPoint]:
        """
        Follow successors from the highest land cell down and emit points.

        A cell whose flux exceeds ``source_flux_threshold`` and carries no
        river yet starts one. River ids are handed down to land successors;
        when two rivers meet the one with more points keeps its id. A river
        draining into water ends in one estuary point, or splits into a delta
        when its flux exceeds ``delta_flux_threshold`` and it borders two or
        more water cells.

        Returns:
            Point samples in emission order.
        """
        state = self.state
        opts = self.options
        graph = state.graph
        water = self.water_mask()

        land = np.flatnonzero(state.valid & ~water)
        order = land[np.argsort(-state.heights[land], kind="stable")]

        for cell_id in order:
            cell_id = int(cell_id)
            target = int(state.down[cell_id])
            if target == NO_CELL:
                continue

            if state.flux[cell_id] > opts.source_flux_threshold and self.river_of[cell_id] == NO_CELL:
                river = self._new_river()
                self.river_of[cell_id] = river
                self._emit(river, cell_id, graph.point(cell_id), SOURCE)

            river = int(self.river_of[cell_id])

            if not water[target]:
                if river != NO_CELL:
                    current = int(self.river_of[target])
                    if current == NO_CELL or self._lengths[river] >= self._lengths[current]:
                        self.river_of[target] = river
                if self.river_of[target] != NO_CELL:
                    self._emit(int(self.river_of[target]), target, graph.point(target), COURSE)
                continue

            if river != NO_CELL:
                self._outlet(cell_id, river, target, water)

        logger.info("Rivers traced", rivers=self.rivers_count, points=len(self.points))
        return self.points

    def _outlet(self, cell_id: int, river: int, target: int, water: np.ndarray) -> None:
        state = self.state
        graph = state.graph
        pours = self._pours(cell_id, water)

        if state.flux[cell_id] > self.options.delta_flux_threshold and len(pours) > 1:
            for index, (pour, mid) in enumerate(pours):
                if index == 0:
                    self._emit(river, cell_id, mid, DELTA, pour)
                else:
                    branch = self._new_river()
                    self._emit(branch, cell_id, graph.point(cell_id), COURSE)
                    self._emit(branch, cell_id, mid, DELTA, pour)
            return

        mx, my = graph.edge_midpoint(cell_id, target)
        cx, cy = graph.point(cell_id)
        mouth = (mx + (mx - cx) / 10.0, my + (my - cy) / 10.0)
        self._emit(river, cell_id, mouth, ESTUARY, target)

    def _pours(self, cell_id: int, water: np.ndarray) -> List[Tuple[int, Tuple[float, float]]]:
        """Water neighbors of a cell with the midpoint of the shared edge."""
        graph = self.state.graph
        return [
            (neighbor, graph.edge_midpoint(cell_id, neighbor))
            for neighbor in self.state.neighbors[cell_id]
            if water[neighbor]
        ]

    def _new_river(self) -> int:
        river = self.rivers_count
        self.rivers_count += 1
        self._lengths[river] = 0
        return river

    def _emit(self, river: int, cell_id: int, xy: Tuple[float, float], kind: str, pour: Optional[int] = None) -> None:
        self.points.append(RiverPoint(river, cell_id, float(xy[0]), float(xy[1]), kind, pour))
        self._lengths[river] += 1
