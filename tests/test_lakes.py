"""Tests for priority-flood lake detection."""

import math

import numpy as np
import pytest

from helpers import make_chain_graph, make_grid_graph
from py_hydrology.core.graph import CellGraph
from py_hydrology.core.lakes import Lake, LakeDetector
from py_hydrology.core.options import HydrologyOptions
from py_hydrology.core.state import NO_CELL, SimulationState


class TestLakeDetector:
    """Test spill heights, lake grouping and outlets."""

    @pytest.fixture
    def basin_graph(self):
        """Water column on the left, one pit at row 1, column 2."""
        return make_grid_graph([
            [0.1, 0.6, 0.6, 0.6],
            [0.1, 0.6, 0.3, 0.6],
            [0.1, 0.6, 0.6, 0.6],
        ])

    def test_enclosed_pit_forms_one_lake(self, basin_graph):
        state = SimulationState.from_graph(basin_graph)
        detector = LakeDetector(state)

        stats = detector.detect()

        assert stats.lakes == 1
        assert stats.cells_in_lakes == 1
        assert stats.endorheic == 0

        lake = detector.lakes[0]
        assert isinstance(lake, Lake)
        assert lake.cells == [6]
        assert lake.spill == pytest.approx(0.6)
        assert lake.outlet is not None
        assert lake.outlet in state.neighbors[6]
        assert not state.is_lake[lake.outlet]

    def test_state_fields_written(self, basin_graph):
        state = SimulationState.from_graph(basin_graph)
        LakeDetector(state).detect()

        assert state.is_lake.sum() == 1
        assert state.lake_id[6] == 0
        assert state.lake_outlet[6] != NO_CELL
        assert state.spill_height[6] == pytest.approx(0.6)
        assert state.spill_height[0] == pytest.approx(0.1)
        assert (state.lake_id[~state.is_lake] == NO_CELL).all()

    def test_heights_never_mutated(self, basin_graph):
        state = SimulationState.from_graph(basin_graph)
        before = state.heights.copy()

        LakeDetector(state).detect()

        assert np.array_equal(state.heights, before)
        assert basin_graph.heights[6] == 0.3

    def test_second_detect_starts_fresh(self, basin_graph):
        state = SimulationState.from_graph(basin_graph)
        detector = LakeDetector(state)
        detector.detect()
        assert detector.predecessor[6] != NO_CELL

        # Cut the pit off so the next flood cannot reach it
        for cell_id in state.neighbors[6]:
            state.neighbors[cell_id] = [n for n in state.neighbors[cell_id] if n != 6]
        state.neighbors[6] = []

        stats = detector.detect()

        assert detector.predecessor[6] == NO_CELL
        assert detector.visit_order[6] == -1
        assert stats.endorheic == 1
        assert detector.lakes[0].cells == [6]
        assert detector.lakes[0].outlet is None

    def test_outlet_matches_spill_through_chain(self):
        graph = make_chain_graph([0.1, 0.5, 0.3, 0.6, 0.7])
        state = SimulationState.from_graph(graph)
        detector = LakeDetector(state)

        detector.detect()

        assert [lake.cells for lake in detector.lakes] == [[2]]
        assert detector.lakes[0].outlet == 1

    def test_adjacent_pits_share_one_lake(self):
        graph = make_chain_graph([0.1, 0.5, 0.3, 0.35, 0.6])
        state = SimulationState.from_graph(graph)
        detector = LakeDetector(state)

        stats = detector.detect()

        assert stats.lakes == 1
        assert detector.lakes[0].cells == [2, 3]
        assert detector.lakes[0].outlet == 1

    def test_unreachable_region_is_endorheic(self):
        graph = CellGraph(
            points=[(0, 0), (1, 0), (5, 5), (6, 5)],
            neighbors=[[1], [0], [3], [2]],
            heights=[0.1, 0.5, 0.6, 0.3],
        )
        state = SimulationState.from_graph(graph)
        detector = LakeDetector(state)

        stats = detector.detect()

        assert stats.lakes == 1
        assert stats.endorheic == 1
        assert "without outlet" in stats.message
        lake = detector.lakes[0]
        assert lake.cells == [2, 3]
        assert lake.outlet is None
        assert lake.endorheic
        assert math.isinf(lake.spill)

    def test_fallback_seeding_without_water(self):
        graph = make_chain_graph([0.3, 0.6, 0.4, 0.7])
        state = SimulationState.from_graph(graph)
        detector = LakeDetector(state)

        assert detector.seeds(detector.raw_heights()) == [0]

        stats = detector.detect()

        assert stats.lakes == 1
        assert detector.lakes[0].cells == [2]
        assert detector.lakes[0].outlet == 1

    def test_no_lakes_on_monotonic_slope(self, ramp_graph):
        state = SimulationState.from_graph(ramp_graph)
        stats = LakeDetector(state).detect()

        assert stats.lakes == 0
        assert stats.message == "no lakes"
        assert not state.is_lake.any()

    def test_water_cells_never_form_lakes(self):
        options = HydrologyOptions(sea_level=0.5)
        graph = make_chain_graph([0.1, 0.45, 0.3, 0.6])
        state = SimulationState.from_graph(graph)

        stats = LakeDetector(state, options).detect()

        assert stats.lakes == 0
