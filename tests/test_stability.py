"""
Tests for robustness and vulnerability.
"""

import numpy as np
import pytest

from spanflow.network.builder import ServiceFlowGraph
from spanflow.network.stability import (
    network_efficiency,
    network_robustness,
    network_vulnerability,
)


class TestRobustness:
    """Targeted removal by strength-weighted degree."""

    def test_star_collapses_after_hub(self):
        graph = ServiceFlowGraph.bipartite(np.ones((1, 3)))
        result = network_robustness(graph)

        assert result.removal_order[0] == 0
        assert result.node_removal[0] == pytest.approx(0.25)
        assert result.critical_fraction == pytest.approx(0.25)

    def test_full_bipartite_curve(self):
        graph = ServiceFlowGraph.bipartite(np.ones((3, 3)))
        result = network_robustness(graph)

        np.testing.assert_array_equal(result.removal_order, np.arange(6))
        np.testing.assert_allclose(result.node_removal, [5 / 6, 4 / 6, 1 / 6, 1 / 6, 1 / 6, 0.0])
        assert result.critical_fraction == pytest.approx(0.5)

    def test_removal_order_follows_strength(self):
        # Strengths: s0 = 2, s1 = 5, d0 = 6, d1 = 1
        graph = ServiceFlowGraph.bipartite([[1.0, 1.0], [5.0, 0.0]])

        np.testing.assert_array_equal(network_robustness(graph).removal_order, [2, 1, 0, 3])
        np.testing.assert_array_equal(
            network_robustness(graph, weighted=False).removal_order, [0, 2, 1, 3]
        )

    def test_custom_threshold(self):
        graph = ServiceFlowGraph.bipartite(np.ones((3, 3)))
        assert network_robustness(graph, threshold=0.8).critical_fraction == pytest.approx(2 / 6)

    def test_empty_graph(self):
        graph = ServiceFlowGraph.bipartite(np.zeros((0, 0)))
        result = network_robustness(graph)
        assert np.isnan(result.critical_fraction)
        assert result.node_removal.size == 0


class TestVulnerability:
    """Relative efficiency loss per node."""

    def test_star(self):
        graph = ServiceFlowGraph.bipartite(np.ones((1, 3)))
        np.testing.assert_allclose(network_vulnerability(graph), [1.0, 0.0, 0.0, 0.0])

    def test_weak_edge_raises_efficiency_when_removed(self):
        graph = ServiceFlowGraph.bipartite([[1.0, 0.1]])
        vulnerability = network_vulnerability(graph)

        # Removing the weakly linked demand node leaves only the short edge
        assert vulnerability[2] < 0
        assert vulnerability[0] == pytest.approx(1.0)

    def test_zero_efficiency(self):
        graph = ServiceFlowGraph.bipartite(np.zeros((2, 2)))
        np.testing.assert_array_equal(network_vulnerability(graph), 0.0)

    def test_efficiency_policy(self):
        strength = ServiceFlowGraph.bipartite([[2.0]]).connections
        assert network_efficiency(strength, "inverse_strength") == pytest.approx(2.0)
        assert network_efficiency(strength, "strength_as_distance") == pytest.approx(0.5)
