"""
Depression resolution.

Raises land cells that sit at or below their lowest neighbor so that every
land cell has somewhere lower to drain to. Works on the working heights in
the simulation state; water cells and the input graph are never modified.
"""

from dataclasses import dataclass
from typing import Optional

import numpy as np
import structlog

from .options import HydrologyOptions
from .state import SimulationState

logger = structlog.get_logger()


@dataclass
class DepressionStats:
    """Outcome of a depression resolution run."""

    passes: int = 0
    total_lifts: int = 0
    last_lift_count: int = 0
    converged: bool = True


class DepressionResolver:
    """Iteratively lifts pits to just above their lowest neighbor."""

    def __init__(self, state: SimulationState, options: Optional[HydrologyOptions] = None):
        self.state = state
        self.options = options or HydrologyOptions()

    def resolve(self) -> DepressionStats:
        """
        Lift pits until a pass changes nothing or the pass cap is reached.

        Returns:
            DepressionStats with pass and lift counts. ``converged`` is False
            when the cap was hit with lifts still happening; the remaining
            flats are left for lake detection.
        """
        state = self.state
        opts = self.options
        heights = state.heights

        land = np.flatnonzero(state.is_land(opts.sea_level))
        stats = DepressionStats()
        if len(land) == 0:
            return stats

        for _ in range(opts.max_depression_iterations):
            # Low cells first so lifted pits push their neighbors in the same pass
            order = land[np.argsort(heights[land], kind="stable")]
            lifts = 0

            for cell_id in order:
                neighbors = state.neighbors[cell_id]
                if not neighbors:
                    continue

                min_height = min(heights[n] for n in neighbors)
                if heights[cell_id] <= min_height + opts.depression_margin:
                    lifted = min_height + opts.depression_epsilon
                    if lifted > heights[cell_id]:
                        heights[cell_id] = lifted
                        lifts += 1

            stats.passes += 1
            stats.total_lifts += lifts
            stats.last_lift_count = lifts
            if lifts == 0:
                break

        stats.converged = stats.last_lift_count == 0
        if not stats.converged:
            logger.warning(
                "Depression resolution hit iteration cap",
                passes=stats.passes,
                remaining=stats.last_lift_count,
            )
            state.report(
                "depressions",
                f"iteration cap reached with {stats.last_lift_count} lifts in the last pass",
            )

        logger.info(
            "Depressions resolved",
            passes=stats.passes,
            total_lifts=stats.total_lifts,
            converged=stats.converged,
        )
        return stats
