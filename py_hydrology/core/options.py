"""Tunable parameters for a hydrology run."""

from dataclasses import dataclass
from typing import Optional, Union

FLUX_METHODS = ("topological", "relaxation")
SINK_MODELS = ("resolve", "lakes")
ADJACENCY_MODES = ("edges", "neighbors", "proximity")


@dataclass
class HydrologyOptions:
    """Hydrology calculation options. Heights are on the [0, 1] scale."""

    sea_level: float = 0.2  # Cells below this height are water
    seed: Union[int, str] = "hydrology"  # Seed for the run's single PRNG

    # Depression resolution
    depression_epsilon: float = 0.01  # Lift above the lowest neighbor
    depression_margin: float = 0.0  # Required drop to a neighbor before a cell counts as draining
    max_depression_iterations: int = 100  # Cap on resolution passes

    # Flow routing
    base_runoff: float = 0.02  # Flux every land cell starts with
    flux_method: str = "topological"  # "topological" (exact) or "relaxation"
    relaxation_passes: int = 64  # Passes for the relaxation method
    relaxation_fraction: float = 0.5  # Share of pending water pushed per pass
    sink_model: str = "resolve"  # "resolve" raises pits, "lakes" drains through lake outlets

    # Channel selection
    channel_percentile: float = 0.80  # Quantile of positive land flux used as threshold
    channel_floor: float = 0.02  # Minimum threshold
    near_threshold_ratio: float = 0.8  # Share of threshold a steep cell needs
    steep_slope: float = 0.10  # Downhill drop that counts as steep
    safety_top_k: int = 50  # Relaxed threshold uses the k-th largest land flux
    min_sources_floor: int = 8  # Lower bound on the expected source count

    # Lake detection
    lake_epsilon: float = 1e-6  # Tolerance for spill comparisons
    lake_fallback_fraction: float = 0.01  # Lowest cells seeded when there is no water

    # Water body classification
    adjacency: str = "edges"  # "edges", "neighbors" or "proximity"
    quantize_decimals: int = 1  # Vertex rounding for edge hashing
    proximity_radius_k: float = 1.2  # Search radius as a multiple of cell spacing
    border_epsilon: float = 0.5  # Distance from the map edge that counts as touching
    sea_area: Optional[float] = None  # Absolute area that makes an inland body a sea
    sea_fraction: float = 0.004  # Share of the map area that makes an inland body a sea

    # River tracing
    source_flux_threshold: float = 0.6  # Flux needed to start a river
    delta_flux_threshold: float = 15.0  # Flux needed to split a mouth into a delta

    # River geometry
    meander_min: float = 0.4  # Smallest meander offset
    meander_range: float = 0.3  # Random part of the meander offset
    catmull_rom_alpha: float = 1.0  # Chord length exponent
    width_flux_divisor: float = 30.0  # Flux per unit of stroke width
    width_saturation: float = 0.5  # Widths above this are damped
    min_shadow_width: float = 0.1  # Smallest shadow stroke
    default_flux: float = 0.02  # Flux assumed for segments without an owner cell

    def __post_init__(self):
        if self.flux_method not in FLUX_METHODS:
            raise ValueError(f"flux_method must be one of {FLUX_METHODS}, got {self.flux_method!r}")
        if self.sink_model not in SINK_MODELS:
            raise ValueError(f"sink_model must be one of {SINK_MODELS}, got {self.sink_model!r}")
        if self.adjacency not in ADJACENCY_MODES:
            raise ValueError(f"adjacency must be one of {ADJACENCY_MODES}, got {self.adjacency!r}")
        if not 0.0 <= self.channel_percentile <= 1.0:
            raise ValueError("channel_percentile must be within [0, 1]")
        if not 0.0 < self.relaxation_fraction <= 1.0:
            raise ValueError("relaxation_fraction must be within (0, 1]")
        if not 0.0 <= self.lake_fallback_fraction <= 1.0:
            raise ValueError("lake_fallback_fraction must be within [0, 1]")
        if self.max_depression_iterations < 0 or self.relaxation_passes < 0:
            raise ValueError("iteration counts must not be negative")
        if self.safety_top_k < 1:
            raise ValueError("safety_top_k must be at least 1")
        if self.depression_epsilon <= 0:
            raise ValueError("depression_epsilon must be positive")
        if self.width_flux_divisor <= 0:
            raise ValueError("width_flux_divisor must be positive")
        if self.quantize_decimals < 0:
            raise ValueError("quantize_decimals must not be negative")
