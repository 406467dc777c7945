"""Tests for river point tracing."""

import pytest

from helpers import make_plus_graph
from py_hydrology.core.flow import FlowRouter
from py_hydrology.core.graph import CellGraph
from py_hydrology.core.options import HydrologyOptions
from py_hydrology.core.rivers import RiverTracer
from py_hydrology.core.state import SimulationState


def trace(graph, options=None):
    options = options or HydrologyOptions()
    state = SimulationState.from_graph(graph)
    FlowRouter(state, options).route()
    tracer = RiverTracer(state, options)
    points = tracer.trace()
    return tracer, points


class TestRiverTracer:
    """Test source, course, estuary and delta emission."""

    def test_plus_graph_source_and_estuary(self):
        # Center is wet, north arm is sea
        graph = make_plus_graph([0.5, 0.1, 0.6, 0.7, 0.8], [2.0, 0.0, 0.0, 0.0, 0.0])
        tracer, points = trace(graph)

        assert [p.kind for p in points] == ["source", "estuary"]

        source, estuary = points
        assert source.cell == 0
        assert (source.x, source.y) == (1.5, 1.5)
        assert estuary.cell == 0
        assert estuary.pour == 1
        # Shared edge midpoint (1.5, 1.0) nudged a tenth further seaward
        assert (estuary.x, estuary.y) == pytest.approx((1.5, 0.95))
        assert tracer.rivers_count == 1

    def test_plus_graph_delta(self):
        # North and west arms are sea and the center carries heavy flux
        graph = make_plus_graph([0.5, 0.1, 0.1, 0.7, 0.8], [20.0, 0.0, 0.0, 0.0, 0.0])
        tracer, points = trace(graph)

        deltas = [p for p in points if p.kind == "delta"]
        assert len(deltas) == 2
        assert {p.pour for p in deltas} == {1, 2}
        assert len({p.river for p in deltas}) == 2
        assert (deltas[0].x, deltas[0].y) == pytest.approx((1.5, 1.0))
        assert (deltas[1].x, deltas[1].y) == pytest.approx((1.0, 1.5))
        assert tracer.rivers_count == 2

        branch = [p for p in points if p.river == deltas[1].river]
        assert [p.kind for p in branch] == ["course", "delta"]

    def test_below_delta_threshold_single_estuary(self):
        graph = make_plus_graph([0.5, 0.1, 0.1, 0.7, 0.8], [5.0, 0.0, 0.0, 0.0, 0.0])
        _, points = trace(graph)

        assert [p.kind for p in points] == ["source", "estuary"]

    def test_course_points_follow_successors(self, ramp_graph):
        _, points = trace(ramp_graph)

        assert [p.kind for p in points] == ["source", "course", "course", "estuary"]
        assert [p.cell for p in points] == [3, 2, 1, 1]
        assert {p.river for p in points} == {0}

    def test_dry_cells_start_no_river(self, ramp_graph):
        ramp_graph.precipitation[:] = 0.0
        _, points = trace(ramp_graph)

        assert points == []

    def test_longer_river_keeps_its_id(self):
        graph = CellGraph(
            points=[(0, 0), (1, 0), (2, 1), (2, -1)],
            neighbors=[[1], [0, 2, 3], [1], [1]],
            heights=[0.1, 0.3, 0.5, 0.5],
            precipitation=[1.0, 1.0, 1.0, 1.0],
        )
        tracer, points = trace(graph)

        assert tracer.rivers_count == 2
        assert tracer.river_of[1] == 0
        assert [(p.river, p.kind, p.cell) for p in points] == [
            (0, "source", 2),
            (0, "course", 1),
            (1, "source", 3),
            (0, "course", 1),
            (0, "estuary", 1),
        ]
