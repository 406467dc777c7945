"""
River channel selection.

Marks land cells as river cells using a flux threshold derived from the map
itself, so that rivers appear regardless of map size or precipitation scale.
Steep headwaters just below the threshold are included as well.
"""

import math
from dataclasses import dataclass
from typing import Optional

import numpy as np
import structlog

from .options import HydrologyOptions
from .state import NO_CELL, SimulationState

logger = structlog.get_logger()


@dataclass
class ChannelStats:
    """Counts over the selected river network."""

    segments: int = 0  # River cells
    sources: int = 0  # River cells without river parents
    confluences: int = 0  # River cells with two or more river parents
    mouths: int = 0  # River cells draining to water, a non-river cell or nowhere
    threshold: float = 0.0
    relaxed: bool = False  # Whether the safety net lowered the threshold


class ChannelSelector:
    """Classifies land cells into river channels from accumulated flux."""

    def __init__(self, state: SimulationState, options: Optional[HydrologyOptions] = None):
        self.state = state
        self.options = options or HydrologyOptions()

    def candidates(self) -> np.ndarray:
        """Land cells eligible to carry a channel; lake cells are excluded under the lakes sink model."""
        land = self.state.is_land(self.options.sea_level)
        if self.options.sink_model == "lakes":
            land = land & ~self.state.is_lake
        return land

    def compute_threshold(self) -> float:
        """Lower-index quantile of positive land flux, floored by ``channel_floor``."""
        opts = self.options
        flux = self.state.flux[self.candidates()]
        positive = np.sort(flux[flux > 0])
        if len(positive) == 0:
            return opts.channel_floor

        index = int(math.floor(opts.channel_percentile * (len(positive) - 1)))
        return max(float(positive[index]), opts.channel_floor)

    def downhill_slope(self) -> np.ndarray:
        """Height drop from each cell to its successor, 0 without one."""
        state = self.state
        slope = np.zeros(state.n_cells, dtype=np.float64)
        has_down = state.down != NO_CELL
        slope[has_down] = state.heights[has_down] - state.heights[state.down[has_down]]
        return slope

    def classify(self, threshold: float) -> ChannelStats:
        """Mark river cells for ``threshold`` and derive network counts."""
        state = self.state
        opts = self.options
        flux = state.flux

        candidates = self.candidates()
        steep = (flux >= opts.near_threshold_ratio * threshold) & (self.downhill_slope() >= opts.steep_slope)
        is_river = candidates & ((flux >= threshold) | steep)

        state.is_river[:] = is_river
        state.q[:] = np.where(is_river, flux, 0.0)

        in_degree = np.zeros(state.n_cells, dtype=np.int64)
        river_cells = np.flatnonzero(is_river)
        downs = state.down[river_cells]
        feeding = downs != NO_CELL
        feeding[feeding] = is_river[downs[feeding]]
        np.add.at(in_degree, downs[feeding], 1)
        state.river_in_degree[:] = in_degree

        water = state.heights < opts.sea_level
        mouth = np.zeros(state.n_cells, dtype=bool)
        for cell_id in river_cells:
            down = state.down[cell_id]
            if down == NO_CELL or not is_river[down] or water[down]:
                mouth[cell_id] = True
        state.is_mouth[:] = mouth

        return ChannelStats(
            segments=int(is_river.sum()),
            sources=int((is_river & (in_degree == 0)).sum()),
            confluences=int((is_river & (in_degree >= 2)).sum()),
            mouths=int(mouth.sum()),
            threshold=float(threshold),
        )

    def select(self) -> ChannelStats:
        """
        Classify channels, relaxing the threshold once if too few sources exist.

        The minimum source count grows with the square root of the cell count.
        When it is not met, the threshold drops to the k-th largest land flux
        and the cells are classified again.

        Returns:
            ChannelStats for the final classification.
        """
        state = self.state
        opts = self.options

        threshold = self.compute_threshold()
        stats = self.classify(threshold)

        n_cells = int(state.valid.sum())
        min_sources = max(opts.min_sources_floor, int(math.floor(math.sqrt(n_cells) / 4)))
        land_flux = np.sort(state.flux[self.candidates()])[::-1]

        if stats.sources < min_sources and len(land_flux):
            k = min(opts.safety_top_k, len(land_flux))
            relaxed = min(threshold, float(land_flux[k - 1]))
            logger.info(
                "Too few river sources, relaxing threshold",
                sources=stats.sources,
                min_sources=min_sources,
                threshold=round(threshold, 6),
                relaxed_threshold=round(relaxed, 6),
            )
            stats = self.classify(relaxed)
            stats.relaxed = True

        logger.info(
            "Rivers selected",
            segments=stats.segments,
            sources=stats.sources,
            confluences=stats.confluences,
            mouths=stats.mouths,
            threshold=round(stats.threshold, 6),
        )
        return stats
