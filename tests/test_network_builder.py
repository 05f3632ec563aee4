"""
Tests for network construction.
"""

import numpy as np
import pytest

from spanflow.core.deadline import Deadline
from spanflow.core.errors import DeadlineExceeded, InputShapeError
from spanflow.core.grid import Node, NodeRole, build_nodes
from spanflow.network.builder import NetworkBuilder, ServiceFlowGraph


def masks(shape, supply_cells, demand_cells):
    supply = np.zeros(shape, dtype=bool)
    demand = np.zeros(shape, dtype=bool)
    for cell in supply_cells:
        supply[cell] = True
    for cell in demand_cells:
        demand[cell] = True
    return supply, demand


class TestBuildNodes:
    """Node instantiation from classification masks."""

    def test_supply_first_row_major(self):
        supply, demand = masks((3, 3), [(2, 0), (0, 1)], [(1, 1)])
        nodes = build_nodes(supply, demand)

        assert [n.position for n in nodes] == [(0, 1), (2, 0), (1, 1)]
        assert [n.role for n in nodes] == [NodeRole.SUPPLY, NodeRole.SUPPLY, NodeRole.DEMAND]
        assert [n.id for n in nodes] == [0, 1, 2]

    def test_nodes_are_immutable(self):
        node = Node(id=0, position=(1, 1), role=NodeRole.SUPPLY)
        with pytest.raises(AttributeError):
            node.id = 3


class TestNetworkBuilder:
    """Edges from overlapping flow-path intensity."""

    def test_edge_when_intensity_overlaps_both(self):
        supply, demand = masks((1, 5), [(0, 0)], [(0, 4)])
        intensity = np.array([[2.0, 2.0, 2.0, 2.0, 4.0]])
        graph = NetworkBuilder(radius=1).build(intensity, supply, demand)

        assert graph.n_edges == 1
        # Union of windows: cells 0, 1, 3, 4
        assert graph.connections[0, 1] == pytest.approx((2 + 2 + 2 + 4) / 4)

    def test_no_edge_without_overlap(self):
        supply, demand = masks((1, 7), [(0, 0)], [(0, 6)])
        intensity = np.zeros((1, 7))
        intensity[0, 0] = 1.0
        graph = NetworkBuilder(radius=1).build(intensity, supply, demand)
        assert graph.n_edges == 0

    def test_only_supply_to_demand(self):
        rng = np.random.default_rng(0)
        supply, demand = masks((6, 6), [(0, 0), (1, 4), (5, 1)], [(3, 3), (5, 5)])
        graph = NetworkBuilder(radius=2).build(rng.random((6, 6)), supply, demand)

        n_supply = len(graph.supply_nodes)
        assert np.all(graph.connections[n_supply:, :] == 0)
        assert np.all(graph.connections[:, :n_supply] == 0)
        assert graph.n_edges == 6

    @pytest.mark.parametrize("supply_cells,demand_cells", [([], [(1, 1)]), ([(1, 1)], []), ([], [])])
    def test_empty_sets_give_edgeless_graph(self, supply_cells, demand_cells):
        supply, demand = masks((3, 3), supply_cells, demand_cells)
        graph = NetworkBuilder().build(np.ones((3, 3)), supply, demand)

        assert graph.n_edges == 0
        assert graph.n_nodes == len(supply_cells) + len(demand_cells)
        assert graph.is_degenerate

    def test_shape_mismatch(self):
        supply, demand = masks((3, 3), [(0, 0)], [(2, 2)])
        with pytest.raises(InputShapeError):
            NetworkBuilder().build(np.ones((4, 4)), supply, demand)

    def test_nan_intensity_ignored(self):
        supply, demand = masks((1, 3), [(0, 0)], [(0, 2)])
        intensity = np.array([[np.nan, 1.0, np.nan]])
        graph = NetworkBuilder(radius=1).build(intensity, supply, demand)
        assert graph.connections[0, 1] == pytest.approx(1.0)

    @pytest.mark.parametrize("seed,radius", [(0, 0), (1, 1), (2, 2), (3, 4)])
    def test_matches_direct_union_mean(self, seed, radius):
        rng = np.random.default_rng(seed)
        shape = (12, 15)
        intensity = rng.random(shape)
        intensity[rng.random(shape) < 0.6] = 0.0
        intensity[rng.random(shape) < 0.05] = np.nan
        supply = rng.random(shape) < 0.08
        demand = (rng.random(shape) < 0.08) & ~supply

        graph = NetworkBuilder(radius=radius).build(intensity, supply, demand)

        positive = np.nan_to_num(intensity) > 0
        nodes = build_nodes(supply, demand)
        expected = np.zeros((len(nodes), len(nodes)))
        for s in (n for n in nodes if n.role is NodeRole.SUPPLY):
            for d in (n for n in nodes if n.role is NodeRole.DEMAND):
                s_win = np.zeros(shape, dtype=bool)
                d_win = np.zeros(shape, dtype=bool)
                (r, c), (rr, cc) = s.position, d.position
                s_win[max(r - radius, 0):r + radius + 1, max(c - radius, 0):c + radius + 1] = True
                d_win[max(rr - radius, 0):rr + radius + 1, max(cc - radius, 0):cc + radius + 1] = True
                if (s_win & positive).any() and (d_win & positive).any():
                    expected[s.id, d.id] = intensity[(s_win | d_win) & positive].mean()

        np.testing.assert_allclose(graph.connections, expected, atol=1e-12)

    def test_overlapping_windows_not_double_counted(self):
        supply, demand = masks((1, 3), [(0, 0)], [(0, 1)])
        intensity = np.array([[1.0, 1.0, 7.0]])
        graph = NetworkBuilder(radius=1).build(intensity, supply, demand)
        assert graph.connections[0, 1] == pytest.approx(3.0)

    def test_cancelled_deadline(self):
        deadline = Deadline()
        deadline.cancel()
        supply, demand = masks((3, 3), [(0, 0)], [(2, 2)])
        with pytest.raises(DeadlineExceeded):
            NetworkBuilder(deadline=deadline).build(np.ones((3, 3)), supply, demand)


class TestServiceFlowGraph:
    """Immutability and structural invariants."""

    def test_connections_read_only(self):
        graph = ServiceFlowGraph.bipartite([[1.0, 2.0]])
        with pytest.raises(ValueError):
            graph.connections[0, 1] = 5.0

    def test_frozen(self):
        graph = ServiceFlowGraph.bipartite([[1.0]])
        with pytest.raises(AttributeError):
            graph.nodes = ()

    def test_rejects_demand_to_supply(self):
        nodes = (
            Node(id=0, position=(0, 0), role=NodeRole.SUPPLY),
            Node(id=1, position=(0, 1), role=NodeRole.DEMAND),
        )
        with pytest.raises(ValueError):
            ServiceFlowGraph(nodes=nodes, connections=np.array([[0.0, 0.0], [1.0, 0.0]]))

    def test_rejects_negative_strength(self):
        with pytest.raises(ValueError):
            ServiceFlowGraph.bipartite([[-1.0]])

    def test_shape_checked(self):
        nodes = (Node(id=0, position=(0, 0), role=NodeRole.SUPPLY),)
        with pytest.raises(InputShapeError):
            ServiceFlowGraph(nodes=nodes, connections=np.zeros((2, 2)))

    def test_bipartite_layout(self):
        graph = ServiceFlowGraph.bipartite(np.ones((2, 3)))
        assert graph.n_nodes == 5
        assert graph.n_edges == 6
        assert len(graph.supply_nodes) == 2
        assert len(graph.demand_nodes) == 3
        assert sorted(graph.edges())[0] == (0, 2, 1.0)

    def test_undirected_view_symmetric(self):
        graph = ServiceFlowGraph.bipartite([[1.0, 0.0], [2.0, 3.0]])
        np.testing.assert_array_equal(graph.undirected(), graph.undirected().T)
