"""
Cell graph input contract for the hydrology pipeline.

The graph is supplied by the caller (Voronoi construction happens elsewhere).
Cell ids are list indices: cell ``i`` has position ``points[i]``, neighbor ids
``neighbors[i]``, height ``heights[i]`` and optionally a polygon ring
``polygons[i]``.
"""

import math
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np
import structlog

logger = structlog.get_logger()

Point = Tuple[float, float]
Ring = List[Point]


@dataclass
class Diagnostic:
    """A non-fatal problem found while processing the graph."""

    stage: str
    message: str
    cell: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"stage": self.stage, "message": self.message, "cell": self.cell}


@dataclass
class GraphValidation:
    """Result of checking a graph before a run."""

    valid: np.ndarray                 # bool mask of usable cells
    neighbors: List[List[int]]        # neighbor lists with bad ids removed
    precipitation: np.ndarray         # finite, non-negative precipitation
    diagnostics: List[Diagnostic] = field(default_factory=list)


@dataclass
class CellGraph:
    """
    Irregular planar cell graph with scalar fields.

    Attributes:
        points: ``(n, 2)`` plotting coordinates of cell centers
        neighbors: neighbor id list per cell (``None`` marks missing data)
        heights: height per cell, nominally in [0, 1]
        precipitation: precipitation per cell (defaults to zeros)
        polygons: closed or open polygon ring per cell, optional
        width: map width; derived from geometry when 0
        height: map height; derived from geometry when 0
        flux: optional pre-set flux used instead of precipitation as input
        border_flags: optional per-cell "touches map edge" flags
        diagnostics: problems found while building the graph, reported by ``validate``
    """

    points: np.ndarray
    neighbors: List[Optional[List[int]]]
    heights: np.ndarray
    precipitation: Optional[np.ndarray] = None
    polygons: Optional[List[Optional[Ring]]] = None
    width: float = 0.0
    height: float = 0.0
    flux: Optional[np.ndarray] = None
    border_flags: Optional[np.ndarray] = None
    diagnostics: List[Diagnostic] = field(default_factory=list)

    def __post_init__(self):
        self.points = np.asarray(self.points, dtype=np.float64).reshape(-1, 2)
        self.heights = np.asarray(self.heights, dtype=np.float64)
        if self.precipitation is not None:
            self.precipitation = np.asarray(self.precipitation, dtype=np.float64)
        if self.flux is not None:
            self.flux = np.asarray(self.flux, dtype=np.float64)
        if self.border_flags is not None:
            self.border_flags = np.asarray(self.border_flags, dtype=bool)
        if not self.width or not self.height:
            self.width, self.height = self._derive_bounds()

    @classmethod
    def from_cells(
        cls,
        cells: Iterable[Dict[str, Any]],
        width: float = 0.0,
        height: float = 0.0,
    ) -> "CellGraph":
        """
        Build a graph from per-cell records.

        Each record needs ``x``, ``y``, ``height`` and ``neighbors``; it may
        carry ``precipitation``, ``polygon``, ``flux`` and ``border``.
        Records with a unique in-range ``id`` are placed at it. The rest fill
        the free slots in input order; an ``id`` that had to be moved is
        reported as a diagnostic.
        """
        cells = list(cells)
        n = len(cells)
        ordered: List[Optional[Dict[str, Any]]] = [None] * n
        diagnostics: List[Diagnostic] = []
        unplaced = []

        for cell in cells:
            index = _as_index(cell.get("id"))
            if index is not None and 0 <= index < n and ordered[index] is None:
                ordered[index] = cell
            else:
                unplaced.append(cell)

        free = (i for i, cell in enumerate(ordered) if cell is None)
        for cell, index in zip(unplaced, free):
            ordered[index] = cell
            if cell.get("id") is not None:
                diagnostics.append(Diagnostic("graph", "duplicate or out-of-range id", index))

        has_flux = any(c.get("flux") is not None for c in cells)
        has_border = any(c.get("border") is not None for c in cells)

        return cls(
            points=np.array([[c.get("x", 0.0), c.get("y", 0.0)] for c in ordered], dtype=np.float64),
            neighbors=[c.get("neighbors") for c in ordered],
            heights=np.array([_as_float(c.get("height")) for c in ordered], dtype=np.float64),
            precipitation=np.array([_as_float(c.get("precipitation"), 0.0) for c in ordered]),
            polygons=[c.get("polygon") for c in ordered],
            width=width,
            height=height,
            flux=np.array([_as_float(c.get("flux"), 0.0) for c in ordered]) if has_flux else None,
            border_flags=np.array([bool(c.get("border")) for c in ordered]) if has_border else None,
            diagnostics=diagnostics,
        )

    @property
    def n_cells(self) -> int:
        return len(self.heights)

    @property
    def map_area(self) -> float:
        return float(self.width * self.height)

    def point(self, cell_id: int) -> Point:
        """Plotting coordinate of a cell."""
        x, y = self.points[cell_id]
        return float(x), float(y)

    def ring(self, cell_id: int) -> Ring:
        """Polygon ring of a cell without the closing duplicate, or ``[]``."""
        if self.polygons is None or cell_id >= len(self.polygons):
            return []
        poly = self.polygons[cell_id]
        if not poly or len(poly) < 2:
            return []
        ring = [(float(p[0]), float(p[1])) for p in poly]
        if len(ring) > 2 and ring[0] == ring[-1]:
            ring = ring[:-1]
        return ring

    def polygon_area(self, cell_id: int) -> float:
        """Absolute ring area using the shoelace formula."""
        ring = self.ring(cell_id)
        if len(ring) < 3:
            return 0.0

        area = 0.0
        n = len(ring)
        for i in range(n):
            j = (i + 1) % n
            area += ring[i][0] * ring[j][1]
            area -= ring[j][0] * ring[i][1]

        return abs(area) / 2.0

    def centroid(self, cell_id: int) -> Point:
        """Vertex mean of the ring, or the cell point when there is none."""
        ring = self.ring(cell_id)
        if not ring:
            return self.point(cell_id)
        xs, ys = zip(*ring)
        return sum(xs) / len(ring), sum(ys) / len(ring)

    def touches_border(self, cell_id: int, epsilon: float = 0.5) -> bool:
        """
        Whether a cell lies on the map edge.

        Border flags win when given. Otherwise any ring vertex within
        ``epsilon`` of the bounds counts; a cell without a ring is tested by
        its point against the larger of ``epsilon`` and half the nominal
        cell spacing.
        """
        if self.border_flags is not None and cell_id < len(self.border_flags):
            return bool(self.border_flags[cell_id])

        ring = self.ring(cell_id)
        margin = epsilon
        if not ring:
            ring = [self.point(cell_id)]
            if self.n_cells and self.map_area > 0:
                margin = max(epsilon, 0.5 * math.sqrt(self.map_area / self.n_cells))

        for x, y in ring:
            if x <= margin or y <= margin or x >= self.width - margin or y >= self.height - margin:
                return True
        return False

    def edge_midpoint(self, a: int, b: int, decimals: int = 3) -> Point:
        """
        Midpoint of the edge shared by two neighboring cells.

        Ring vertices are matched after rounding so that tiny coordinate
        jitter between adjacent polygons still matches. Falls back to the
        mean of the two cell points when no shared edge is found.
        """
        edges_a = {}
        for start, end in ring_edges(self.ring(a)):
            edges_a[edge_key(start, end, decimals)] = (start, end)

        mids = []
        for start, end in ring_edges(self.ring(b)):
            shared = edges_a.get(edge_key(start, end, decimals))
            if shared is not None:
                (x1, y1), (x2, y2) = shared
                mids.append(((x1 + x2) / 2.0, (y1 + y2) / 2.0))

        if mids:
            return (
                sum(m[0] for m in mids) / len(mids),
                sum(m[1] for m in mids) / len(mids),
            )

        (ax, ay), (bx, by) = self.point(a), self.point(b)
        return (ax + bx) / 2.0, (ay + by) / 2.0

    def validate(self) -> GraphValidation:
        """
        Check per-cell data and clean neighbor lists.

        Cells with non-finite heights or missing neighbor data are marked
        invalid. Neighbor ids that are out of range, self references or point
        at invalid cells are dropped. Non-finite or negative precipitation is
        replaced by 0. Every problem becomes a diagnostic; nothing raises.
        """
        n = self.n_cells
        diagnostics: List[Diagnostic] = list(self.diagnostics)
        valid = np.isfinite(self.heights)

        for cell_id in np.flatnonzero(~valid):
            diagnostics.append(Diagnostic("graph", "non-finite height", int(cell_id)))

        raw_neighbors = list(self.neighbors or [])
        for cell_id in range(n):
            if cell_id >= len(raw_neighbors) or raw_neighbors[cell_id] is None:
                if valid[cell_id]:
                    diagnostics.append(Diagnostic("graph", "missing neighbor data", cell_id))
                valid[cell_id] = False

        neighbors: List[List[int]] = [[] for _ in range(n)]
        for cell_id in range(n):
            if not valid[cell_id]:
                continue
            kept = []
            dropped = 0
            for neighbor in raw_neighbors[cell_id]:
                if neighbor is None:
                    dropped += 1
                    continue
                neighbor = int(neighbor)
                if neighbor == cell_id or not 0 <= neighbor < n or not valid[neighbor]:
                    dropped += 1
                    continue
                if neighbor not in kept:
                    kept.append(neighbor)
            if dropped:
                diagnostics.append(
                    Diagnostic("graph", f"dropped {dropped} invalid neighbor id(s)", cell_id)
                )
            neighbors[cell_id] = kept

        if self.precipitation is None:
            precipitation = np.zeros(n, dtype=np.float64)
        else:
            precipitation = np.zeros(n, dtype=np.float64)
            count = min(n, len(self.precipitation))
            precipitation[:count] = self.precipitation[:count]
            bad = ~np.isfinite(precipitation)
            for cell_id in np.flatnonzero(bad):
                diagnostics.append(Diagnostic("graph", "non-finite precipitation", int(cell_id)))
            precipitation[bad] = 0.0
            precipitation = np.maximum(precipitation, 0.0)

        for diagnostic in diagnostics:
            logger.warning("Graph input problem", cell=diagnostic.cell, problem=diagnostic.message)

        return GraphValidation(
            valid=valid,
            neighbors=neighbors,
            precipitation=precipitation,
            diagnostics=diagnostics,
        )

    def _derive_bounds(self) -> Tuple[float, float]:
        xs: List[float] = []
        ys: List[float] = []
        for poly in self.polygons or []:
            for p in poly or []:
                xs.append(float(p[0]))
                ys.append(float(p[1]))
        if not xs and len(self.points):
            finite = self.points[np.all(np.isfinite(self.points), axis=1)]
            xs = finite[:, 0].tolist()
            ys = finite[:, 1].tolist()
        if not xs:
            return 0.0, 0.0
        return max(max(xs), 0.0), max(max(ys), 0.0)


def quantize(point: Sequence[float], decimals: int) -> Tuple[float, float]:
    """Round a vertex so nearly coincident coordinates share a key."""
    return round(float(point[0]), decimals), round(float(point[1]), decimals)


def edge_key(start: Point, end: Point, decimals: int) -> Tuple[Point, Point]:
    a = quantize(start, decimals)
    b = quantize(end, decimals)
    return (a, b) if a <= b else (b, a)


def ring_edges(ring: Ring):
    n = len(ring)
    if n < 2:
        return
    for i in range(n):
        yield ring[i], ring[(i + 1) % n]


def _as_index(value) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _as_float(value, default: float = math.nan) -> float:
    if value is None:
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default
