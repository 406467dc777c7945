"""
Water body classification and feature markup.

This module handles:
- Adjacency between water polygons (shared-edge hashing, neighbor lists or
  centroid proximity through a KD-tree)
- Connected water components classified as ocean, sea or lake
- Per-cell feature labels for water bodies and islands
"""

import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import numpy as np
import structlog
from scipy.spatial import cKDTree

from .graph import CellGraph, GraphValidation, edge_key, ring_edges
from .options import HydrologyOptions
from .state import NO_CELL, SimulationState

logger = structlog.get_logger()

OCEAN = "ocean"
SEA = "sea"
LAKE = "lake"
ISLAND = "Island"


@dataclass
class WaterComponent:
    """A connected body of water polygons."""

    id: int
    kind: str  # "ocean", "sea" or "lake"
    indices: List[int]
    area: float
    area_fraction: float
    touches_border: bool


@dataclass
class WaterClassification:
    """Components plus a cell to kind lookup."""

    components: List[WaterComponent] = field(default_factory=list)
    kinds: Dict[int, str] = field(default_factory=dict)
    component_of: Dict[int, int] = field(default_factory=dict)
    water_cells: int = 0

    def count(self, kind: str) -> int:
        return sum(1 for c in self.components if c.kind == kind)

    @property
    def oceans(self) -> int:
        return self.count(OCEAN)

    @property
    def inland(self) -> int:
        return len(self.components) - self.oceans


@dataclass
class FeatureSummary:
    """Counts produced by feature markup."""

    islands: int = 0
    lakes: int = 0
    seas: int = 0
    oceans: int = 0


class WaterComponentClassifier:
    """Groups water polygons into components and names their kind."""

    def __init__(
        self,
        graph: CellGraph,
        options: Optional[HydrologyOptions] = None,
        validation: Optional[GraphValidation] = None,
    ):
        self.graph = graph
        self.options = options or HydrologyOptions()
        self.validation = validation if validation is not None else graph.validate()

    def water_cells(self) -> np.ndarray:
        """Valid cells with raw height below sea level, ascending id."""
        heights = np.where(self.validation.valid, self.graph.heights, np.inf)
        return np.flatnonzero(heights < self.options.sea_level)

    def build_adjacency(self, water: np.ndarray) -> Dict[int, List[int]]:
        """Adjacency between water cells using the configured mode."""
        mode = self.options.adjacency
        if mode == "proximity":
            adjacency = self._proximity_adjacency(water)
        elif mode == "neighbors":
            adjacency = self._neighbor_adjacency(water, water)
        else:
            adjacency = self._edge_adjacency(water)

        for neighbors in adjacency.values():
            neighbors.sort()
        return adjacency

    def classify(self) -> WaterClassification:
        """
        Flood fill water components and classify each one.

        Returns:
            WaterClassification with components in discovery order.
        """
        opts = self.options
        graph = self.graph
        water = self.water_cells()
        result = WaterClassification(water_cells=len(water))
        if len(water) == 0:
            logger.info("No water cells to classify")
            return result

        adjacency = self.build_adjacency(water)
        map_area = graph.map_area
        nominal_area = map_area / graph.n_cells if graph.n_cells else 0.0

        for start in water:
            start = int(start)
            if start in result.component_of:
                continue

            component_id = len(result.components)
            result.component_of[start] = component_id
            stack = [start]
            members = []

            while stack:
                cell_id = stack.pop()
                members.append(cell_id)
                for neighbor in adjacency.get(cell_id, []):
                    if neighbor not in result.component_of:
                        result.component_of[neighbor] = component_id
                        stack.append(neighbor)

            members.sort()
            area = 0.0
            for cell_id in members:
                cell_area = graph.polygon_area(cell_id)
                area += cell_area if cell_area > 0 else nominal_area

            fraction = area / map_area if map_area > 0 else 0.0
            border = any(graph.touches_border(c, opts.border_epsilon) for c in members)

            component = WaterComponent(
                id=component_id,
                kind=self._kind(area, fraction, border),
                indices=members,
                area=area,
                area_fraction=fraction,
                touches_border=border,
            )
            result.components.append(component)
            for cell_id in members:
                result.kinds[cell_id] = component.kind

        logger.info(
            "Water bodies classified",
            water_cells=result.water_cells,
            oceans=result.oceans,
            inland=result.inland,
        )
        return result

    def _kind(self, area: float, fraction: float, border: bool) -> str:
        opts = self.options
        if border:
            return OCEAN
        if opts.sea_area is not None:
            return SEA if area >= opts.sea_area else LAKE
        return SEA if fraction >= opts.sea_fraction else LAKE

    def _edge_adjacency(self, water: np.ndarray) -> Dict[int, List[int]]:
        """Water polygons are adjacent when they share a quantized edge."""
        decimals = self.options.quantize_decimals
        owners: Dict[tuple, List[int]] = {}
        ringless = []

        for cell_id in water:
            cell_id = int(cell_id)
            ring = self.graph.ring(cell_id)
            if len(ring) < 3:
                ringless.append(cell_id)
                continue
            seen = set()
            for start, end in ring_edges(ring):
                key = edge_key(start, end, decimals)
                if key[0] == key[1] or key in seen:
                    continue
                seen.add(key)
                owners.setdefault(key, []).append(cell_id)

        adjacency: Dict[int, List[int]] = {int(c): [] for c in water}
        for cells in owners.values():
            for a in cells:
                for b in cells:
                    if a != b and b not in adjacency[a]:
                        adjacency[a].append(b)

        if ringless:
            fallback = self._neighbor_adjacency(np.array(ringless, dtype=np.int64), water)
            for a, neighbors in fallback.items():
                for b in neighbors:
                    if b not in adjacency[a]:
                        adjacency[a].append(b)
                    if a not in adjacency[b]:
                        adjacency[b].append(a)

        return adjacency

    def _neighbor_adjacency(self, cells: np.ndarray, water: np.ndarray) -> Dict[int, List[int]]:
        is_water = np.zeros(self.graph.n_cells, dtype=bool)
        is_water[water] = True
        neighbors = self.validation.neighbors
        return {
            int(c): [n for n in neighbors[c] if is_water[n]]
            for c in cells
        }

    def _proximity_adjacency(self, water: np.ndarray) -> Dict[int, List[int]]:
        """Water centroids within ``proximity_radius_k`` cell spacings are adjacent."""
        graph = self.graph
        adjacency: Dict[int, List[int]] = {int(c): [] for c in water}
        if len(water) < 2:
            return adjacency

        if graph.map_area > 0 and graph.n_cells:
            spacing = math.sqrt(graph.map_area / graph.n_cells)
        else:
            spacing = 1.0
        radius = self.options.proximity_radius_k * spacing

        centroids = np.array([graph.centroid(int(c)) for c in water], dtype=np.float64)
        tree = cKDTree(centroids)
        for i, j in sorted(tree.query_pairs(radius)):
            a, b = int(water[i]), int(water[j])
            adjacency[a].append(b)
            adjacency[b].append(a)

        return adjacency


def mark_features(
    state: SimulationState,
    classification: WaterClassification,
    options: Optional[HydrologyOptions] = None,
) -> FeatureSummary:
    """
    Label every valid cell with the feature it belongs to.

    Water cells take their component kind ("Ocean", "Sea" or "Lake"). Land
    cells are flood filled over neighbors into islands labelled "Island".

    Returns:
        FeatureSummary with island and water body counts.
    """
    options = options or HydrologyOptions()
    graph = state.graph
    raw = np.where(state.valid, graph.heights, np.inf)
    land = state.valid & (raw >= options.sea_level)

    for cell_id, kind in classification.kinds.items():
        state.feature[cell_id] = kind.capitalize()

    island_of = np.full(state.n_cells, NO_CELL, dtype=np.int64)
    islands = 0
    for start in np.flatnonzero(land):
        if island_of[start] != NO_CELL:
            continue
        island_of[start] = islands
        stack = [int(start)]
        while stack:
            cell_id = stack.pop()
            state.feature[cell_id] = ISLAND
            for neighbor in state.neighbors[cell_id]:
                if land[neighbor] and island_of[neighbor] == NO_CELL:
                    island_of[neighbor] = islands
                    stack.append(neighbor)
        islands += 1

    summary = FeatureSummary(
        islands=islands,
        lakes=classification.count(LAKE),
        seas=classification.count(SEA),
        oceans=classification.oceans,
    )
    logger.info(
        "Features marked",
        islands=summary.islands,
        lakes=summary.lakes,
        seas=summary.seas,
        oceans=summary.oceans,
    )
    return summary
