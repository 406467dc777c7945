"""
Core hydrology stages.
"""

from .alea_prng import AleaPRNG
from .graph import CellGraph, Diagnostic
from .hydrology import Hydrology, HydrologyResult
from .options import HydrologyOptions
from .state import NO_CELL, SimulationState

__all__ = ['AleaPRNG', 'CellGraph', 'Diagnostic', 'Hydrology', 'HydrologyResult',
           'HydrologyOptions', 'NO_CELL', 'SimulationState']
