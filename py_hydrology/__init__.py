"""
Terrain hydrology over irregular cell graphs.
"""

__version__ = "0.1.0"
