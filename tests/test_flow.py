"""Tests for flow routing and flux accumulation."""

import numpy as np
import pytest

from helpers import make_chain_graph, make_grid_graph
from py_hydrology.core.depressions import DepressionResolver
from py_hydrology.core.flow import FlowRouter
from py_hydrology.core.lakes import LakeDetector
from py_hydrology.core.options import HydrologyOptions
from py_hydrology.core.state import NO_CELL, SimulationState


class TestFlowRouter:
    """Test successor assignment and both accumulation methods."""

    def test_successors_follow_steepest_descent(self, ramp_graph):
        state = SimulationState.from_graph(ramp_graph)
        sinks = FlowRouter(state).assign_successors()

        assert state.down.tolist() == [NO_CELL, 0, 1, 2]
        assert sinks == 0

    def test_water_never_has_successor(self):
        graph = make_chain_graph([0.15, 0.1, 0.5])
        state = SimulationState.from_graph(graph)
        FlowRouter(state).assign_successors()

        assert state.down[0] == NO_CELL
        assert state.down[1] == NO_CELL
        assert state.down[2] == 1

    def test_equal_lowest_neighbors_pick_first(self):
        graph = make_chain_graph([0.5, 0.8, 0.5])
        state = SimulationState.from_graph(graph)
        sinks = FlowRouter(state).assign_successors()

        assert state.down[1] == 0
        # Both ends only see a higher neighbor
        assert state.down[0] == NO_CELL
        assert state.down[2] == NO_CELL
        assert sinks == 2

    def test_topological_accumulation(self, ramp_graph):
        state = SimulationState.from_graph(ramp_graph)
        stats = FlowRouter(state).route()

        assert state.flux.tolist() == pytest.approx([3.06, 3.06, 2.04, 1.02])
        assert stats.method == "topological"
        assert stats.exact
        assert stats.total_input == pytest.approx(3.06)
        assert stats.total_emitted == pytest.approx(stats.total_input)
        assert stats.residual == 0.0

    def test_preset_flux_replaces_precipitation(self, ramp_graph):
        ramp_graph.flux = np.array([0.0, 2.0, 0.0, 0.0])
        state = SimulationState.from_graph(ramp_graph)
        stats = FlowRouter(state).route()

        assert stats.total_input == pytest.approx(2.06)
        assert state.flux[3] == pytest.approx(0.02)

    def test_relaxation_conserves_water(self, ramp_graph):
        state = SimulationState.from_graph(ramp_graph)
        options = HydrologyOptions(flux_method="relaxation", relaxation_passes=200)
        stats = FlowRouter(state, options).route()

        assert not stats.exact
        assert stats.total_emitted + stats.residual == pytest.approx(stats.total_input)
        assert stats.residual < 1e-6
        assert state.flux.tolist() == pytest.approx([3.06, 3.06, 2.04, 1.02], rel=1e-4)

    def test_relaxation_with_few_passes_reports_residual(self, ramp_graph):
        state = SimulationState.from_graph(ramp_graph)
        options = HydrologyOptions(flux_method="relaxation", relaxation_passes=2)
        stats = FlowRouter(state, options).route()

        assert stats.residual > 0
        assert stats.total_emitted + stats.residual == pytest.approx(stats.total_input)

    def test_routing_invariants_on_random_terrain(self):
        rng = np.random.default_rng(7)
        heights = rng.uniform(0.0, 1.0, size=(9, 9))
        graph = make_grid_graph(heights, np.full((9, 9), 0.3))
        state = SimulationState.from_graph(graph)
        options = HydrologyOptions()

        DepressionResolver(state, options).resolve()
        stats = FlowRouter(state, options).route()

        for cell_id, down in enumerate(state.down):
            if down == NO_CELL:
                continue
            assert down in state.neighbors[cell_id]
            assert state.heights[down] <= state.heights[cell_id]
            assert state.heights[cell_id] >= options.sea_level
            # Flux never drops going downhill
            assert state.flux[down] >= state.flux[cell_id]

        assert stats.total_emitted == pytest.approx(stats.total_input)

    def test_lakes_sink_model_drains_through_outlet(self):
        graph = make_chain_graph([0.1, 0.5, 0.3, 0.6, 0.7], [1.0] * 5)
        state = SimulationState.from_graph(graph)
        options = HydrologyOptions(sink_model="lakes")

        LakeDetector(state, options).detect()
        stats = FlowRouter(state, options).route()

        assert state.is_lake.tolist() == [False, False, True, False, False]
        assert state.lake_outlet[2] == 1
        # The lake cell is terminal and the outlet skips its own lake
        assert state.down[2] == NO_CELL
        assert state.down[1] == 0
        assert state.down[3] == 2
        assert state.flux.tolist() == pytest.approx([4.08, 4.08, 3.06, 2.04, 1.02])
        assert stats.exact
        assert stats.total_emitted == pytest.approx(stats.total_input)

    def test_invalid_cells_receive_no_flow(self):
        graph = make_chain_graph([0.1, 0.3, float("nan"), 0.7], [1.0] * 4)
        state = SimulationState.from_graph(graph)
        FlowRouter(state).route()

        assert state.down[2] == NO_CELL
        assert state.flux[2] == 0.0
        assert 2 not in state.down.tolist()
