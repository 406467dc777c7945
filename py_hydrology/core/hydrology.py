"""
Hydrology system for river generation and water flow simulation.

This module implements the full pipeline over a cell graph:
- Depression resolution (or lake outlets as the sink model)
- Flow routing and discharge accumulation
- River channel selection and point tracing
- Lake detection with spill heights and outlets
- Water body classification and feature markup
- Smooth river geometry
"""

import math
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

import structlog

from .alea_prng import AleaPRNG
from .channels import ChannelSelector, ChannelStats
from .depressions import DepressionResolver, DepressionStats
from .flow import FlowRouter, FlowStats
from .graph import CellGraph, Diagnostic
from .lakes import Lake, LakeDetector, LakeStats
from .options import HydrologyOptions
from .river_geometry import BezierSegment, RiverGeometryBuilder
from .rivers import RiverPoint, RiverTracer
from .state import SimulationState
from .water import FeatureSummary, WaterClassification, WaterComponentClassifier, mark_features

logger = structlog.get_logger()

__all__ = ["Hydrology", "HydrologyOptions", "HydrologyResult"]


def _finite(value) -> Optional[float]:
    """Plain float, or None for infinite and NaN values which JSON cannot hold."""
    value = float(value)
    return value if math.isfinite(value) else None


@dataclass
class HydrologyResult:
    """Everything a hydrology run produces. Owned by the caller."""

    state: Optional[SimulationState] = None
    depressions: Optional[DepressionStats] = None
    flow: FlowStats = field(default_factory=FlowStats)
    channels: ChannelStats = field(default_factory=ChannelStats)
    lake_stats: LakeStats = field(default_factory=LakeStats)
    lakes: List[Lake] = field(default_factory=list)
    water: WaterClassification = field(default_factory=WaterClassification)
    features: FeatureSummary = field(default_factory=FeatureSummary)
    river_points: List[RiverPoint] = field(default_factory=list)
    segments: List[BezierSegment] = field(default_factory=list)
    diagnostics: List[Diagnostic] = field(default_factory=list)

    @property
    def n_cells(self) -> int:
        return self.state.n_cells if self.state is not None else 0

    def cells(self) -> List[Dict[str, Any]]:
        """Derived per-cell fields as plain values."""
        state = self.state
        if state is None:
            return []
        return [
            {
                "id": i,
                "valid": bool(state.valid[i]),
                "height": float(state.heights[i]),
                "flux": float(state.flux[i]),
                "down": int(state.down[i]),
                "is_river": bool(state.is_river[i]),
                "river_in_degree": int(state.river_in_degree[i]),
                "q": float(state.q[i]),
                "spill_height": _finite(state.spill_height[i]),
                "lake_id": int(state.lake_id[i]),
                "is_lake": bool(state.is_lake[i]),
                "lake_outlet": int(state.lake_outlet[i]),
                "is_mouth": bool(state.is_mouth[i]),
                "feature": state.feature[i],
            }
            for i in range(state.n_cells)
        ]

    def to_dict(self, include_cells: bool = True) -> Dict[str, Any]:
        """JSON-friendly export of the run."""
        data: Dict[str, Any] = {
            "n_cells": self.n_cells,
            "stats": {
                "depressions": asdict(self.depressions) if self.depressions else None,
                "flow": asdict(self.flow),
                "channels": asdict(self.channels),
                "lakes": asdict(self.lake_stats),
                "features": asdict(self.features),
                "water": {
                    "water_cells": self.water.water_cells,
                    "oceans": self.water.oceans,
                    "inland": self.water.inland,
                },
            },
            "lakes": [
                {"id": lake.id, "spill": _finite(lake.spill), "cells": lake.cells, "outlet": lake.outlet}
                for lake in self.lakes
            ],
            "water_components": [
                {
                    "id": c.id,
                    "kind": c.kind,
                    "indices": c.indices,
                    "area": c.area,
                    "area_fraction": c.area_fraction,
                    "touches_border": c.touches_border,
                }
                for c in self.water.components
            ],
            "river_points": [p.to_dict() for p in self.river_points],
            "segments": [s.to_dict() for s in self.segments],
            "diagnostics": [d.to_dict() for d in self.diagnostics],
        }
        if include_cells:
            data["cells"] = self.cells()
        return data


class Hydrology:
    """Runs the hydrology stages in order over one cell graph."""

    def __init__(self, graph: Optional[CellGraph], options: Optional[HydrologyOptions] = None):
        """
        Initialize hydrology system.

        Args:
            graph: CellGraph with heights and precipitation populated
            options: Hydrology calculation options
        """
        self.graph = graph
        self.options = options or HydrologyOptions()
        self.state: Optional[SimulationState] = None
        self.rng: Optional[AleaPRNG] = None

    def run_full_simulation(self) -> HydrologyResult:
        """
        Run the complete hydrology simulation pipeline.

        This executes all steps in order:
        1. Validate the graph and allocate a fresh state
        2. Resolve depressions, or detect lakes first for the lakes sink model
        3. Route flow and accumulate flux
        4. Select river channels and trace river points
        5. Detect lakes (resolve model) and classify water bodies
        6. Build river geometry

        Returns:
            HydrologyResult; empty with zero counts when there is no graph.
        """
        opts = self.options

        if self.graph is None or self.graph.n_cells == 0:
            logger.warning("Hydrology run skipped, graph is empty")
            return HydrologyResult(
                diagnostics=[Diagnostic("graph", "graph is missing or has no cells")],
            )

        logger.info(
            "Starting full hydrology simulation",
            cells=self.graph.n_cells,
            sink_model=opts.sink_model,
            flux_method=opts.flux_method,
        )

        validation = self.graph.validate()
        self.state = state = SimulationState.from_graph(self.graph, validation)
        self.rng = AleaPRNG(opts.seed)
        result = HydrologyResult(state=state)

        lake_detector = LakeDetector(state, opts)
        if opts.sink_model == "lakes":
            result.lake_stats = lake_detector.detect()
        else:
            result.depressions = DepressionResolver(state, opts).resolve()

        result.flow = FlowRouter(state, opts).route()
        result.channels = ChannelSelector(state, opts).select()
        result.river_points = RiverTracer(state, opts).trace()

        if opts.sink_model != "lakes":
            result.lake_stats = lake_detector.detect()
        result.lakes = lake_detector.lakes

        result.water = WaterComponentClassifier(self.graph, opts, validation).classify()
        result.features = mark_features(state, result.water, opts)

        builder = RiverGeometryBuilder(self.rng, state.flux, opts)
        result.segments = builder.build(result.river_points)
        result.diagnostics = state.diagnostics

        logger.info(
            "Hydrology simulation completed",
            rivers=result.channels.segments,
            lakes=result.lake_stats.lakes,
            segments=len(result.segments),
            diagnostics=len(result.diagnostics),
        )
        return result
