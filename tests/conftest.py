"""Fixtures for the hydrology tests."""

import numpy as np
import pytest

from helpers import make_chain_graph, make_grid_graph


@pytest.fixture
def ramp_graph():
    """Four cells falling to water on the left, precipitation 1 on each."""
    return make_chain_graph([0.1, 0.3, 0.5, 0.7], [1.0, 1.0, 1.0, 1.0])


@pytest.fixture
def cross_graph():
    """3x3 grid with water corners and a land cross."""
    return make_grid_graph([
        [0.1, 0.5, 0.1],
        [0.5, 0.5, 0.5],
        [0.1, 0.5, 0.1],
    ])


@pytest.fixture
def valley_graph():
    """8x8 terrain rising from an ocean row towards the south, with a central valley."""
    rows, cols = 8, 8
    heights = np.zeros((rows, cols))
    for r in range(rows):
        for c in range(cols):
            if r == 0:
                heights[r, c] = 0.1
            else:
                heights[r, c] = 0.25 + 0.07 * r + 0.015 * abs(c - 3.4)
    precipitation = np.full((rows, cols), 0.5)
    return make_grid_graph(heights, precipitation)
