"""Graph builders shared by the hydrology tests."""

from typing import List, Optional, Sequence

import numpy as np
from py_hydrology.core.graph import CellGraph


def make_grid_graph(
    heights: Sequence[Sequence[float]],
    precipitation: Optional[Sequence[Sequence[float]]] = None,
) -> CellGraph:
    """
    Square grid of unit cells.

    Cell ``r * cols + c`` covers ``[c, c + 1] x [r, r + 1]``; neighbors are the
    4-connected cells in the order up, left, right, down.
    """
    heights = np.asarray(heights, dtype=np.float64)
    rows, cols = heights.shape

    points = []
    polygons = []
    neighbors: List[List[int]] = []
    for r in range(rows):
        for c in range(cols):
            points.append((c + 0.5, r + 0.5))
            polygons.append([(c, r), (c + 1, r), (c + 1, r + 1), (c, r + 1)])
            cell_neighbors = []
            for dr, dc in ((-1, 0), (0, -1), (0, 1), (1, 0)):
                nr, nc = r + dr, c + dc
                if 0 <= nr < rows and 0 <= nc < cols:
                    cell_neighbors.append(nr * cols + nc)
            neighbors.append(cell_neighbors)

    if precipitation is None:
        precip = np.zeros(rows * cols)
    else:
        precip = np.asarray(precipitation, dtype=np.float64).reshape(-1)

    return CellGraph(
        points=np.array(points),
        neighbors=neighbors,
        heights=heights.reshape(-1),
        precipitation=precip,
        polygons=polygons,
        width=float(cols),
        height=float(rows),
    )


def make_plus_graph(heights: Sequence[float], precipitation: Sequence[float]) -> CellGraph:
    """
    Five unit cells in a plus shape: center 0, then north, west, east, south.

    The arms only neighbor the center.
    """
    points = [(1.5, 1.5), (1.5, 0.5), (0.5, 1.5), (2.5, 1.5), (1.5, 2.5)]
    polygons = []
    for x, y in points:
        x0, y0 = x - 0.5, y - 0.5
        polygons.append([(x0, y0), (x0 + 1, y0), (x0 + 1, y0 + 1), (x0, y0 + 1)])

    return CellGraph(
        points=np.array(points),
        neighbors=[[1, 2, 3, 4], [0], [0], [0], [0]],
        heights=np.asarray(heights, dtype=np.float64),
        precipitation=np.asarray(precipitation, dtype=np.float64),
        polygons=polygons,
        width=3.0,
        height=3.0,
    )


def make_chain_graph(heights: Sequence[float], precipitation: Optional[Sequence[float]] = None) -> CellGraph:
    """A single row of unit cells."""
    precip = None if precipitation is None else [list(precipitation)]
    return make_grid_graph([list(heights)], precip)

