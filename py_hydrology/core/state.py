"""
Per-run mutable simulation state.

Every derived per-cell field lives here with its default declared upfront.
The orchestrator creates one state per run and hands it to each stage in turn;
stages write only the fields they own.
"""

from dataclasses import dataclass, field
from typing import List, Optional

import numpy as np

from .graph import CellGraph, Diagnostic, GraphValidation

NO_CELL = -1


@dataclass
class SimulationState:
    """Working fields for one hydrology run."""

    graph: CellGraph
    valid: np.ndarray
    neighbors: List[List[int]]
    precipitation: np.ndarray
    heights: np.ndarray               # working heights, raised by depression resolution
    flux: np.ndarray
    down: np.ndarray                  # successor cell id, NO_CELL for sinks and water
    is_river: np.ndarray
    river_in_degree: np.ndarray
    q: np.ndarray                     # discharge on river cells, 0 elsewhere
    spill_height: np.ndarray
    lake_id: np.ndarray
    is_lake: np.ndarray
    lake_outlet: np.ndarray
    is_mouth: np.ndarray
    feature: List[str]
    diagnostics: List[Diagnostic] = field(default_factory=list)

    @classmethod
    def from_graph(cls, graph: CellGraph, validation: Optional[GraphValidation] = None) -> "SimulationState":
        """Allocate a fresh state for ``graph`` with every field at its default."""
        if validation is None:
            validation = graph.validate()

        n = graph.n_cells
        heights = np.where(validation.valid, graph.heights, 0.0).astype(np.float64)

        return cls(
            graph=graph,
            valid=validation.valid.copy(),
            neighbors=validation.neighbors,
            precipitation=validation.precipitation,
            heights=heights,
            flux=np.zeros(n, dtype=np.float64),
            down=np.full(n, NO_CELL, dtype=np.int64),
            is_river=np.zeros(n, dtype=bool),
            river_in_degree=np.zeros(n, dtype=np.int64),
            q=np.zeros(n, dtype=np.float64),
            spill_height=np.zeros(n, dtype=np.float64),
            lake_id=np.full(n, NO_CELL, dtype=np.int64),
            is_lake=np.zeros(n, dtype=bool),
            lake_outlet=np.full(n, NO_CELL, dtype=np.int64),
            is_mouth=np.zeros(n, dtype=bool),
            feature=[""] * n,
            diagnostics=list(validation.diagnostics),
        )

    @property
    def n_cells(self) -> int:
        return len(self.heights)

    def is_water(self, sea_level: float) -> np.ndarray:
        """Valid cells whose working height is below sea level."""
        return self.valid & (self.heights < sea_level)

    def is_land(self, sea_level: float) -> np.ndarray:
        return self.valid & (self.heights >= sea_level)

    def report(self, stage: str, message: str, cell: Optional[int] = None) -> Diagnostic:
        """Record a diagnostic against this run."""
        diagnostic = Diagnostic(stage, message, cell)
        self.diagnostics.append(diagnostic)
        return diagnostic
