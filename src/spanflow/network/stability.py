"""
Network stability: robustness to targeted node removal and per-node
vulnerability measured as loss of global efficiency.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import numpy as np

from spanflow.core.constants import DEFAULT_ROBUSTNESS_THRESHOLD
from spanflow.core.deadline import Deadline
from spanflow.network.builder import ServiceFlowGraph
from spanflow.network.metrics import (
    degree_centrality,
    floyd_warshall,
    global_efficiency,
    largest_component_size,
    strength_to_distance,
)


@dataclass
class RobustnessResult:
    """Outcome of removing nodes in descending degree order.

    Attributes
    ----------
    removal_order : np.ndarray
        Node ids in the order they were removed
    node_removal : np.ndarray
        Largest-component size / intact node count after each removal
    critical_fraction : float
        Smallest removed fraction pushing that ratio below ``threshold``
        (NaN for an empty graph)
    threshold : float
    """

    removal_order: np.ndarray
    node_removal: np.ndarray
    critical_fraction: float
    threshold: float


def network_robustness(
    graph: ServiceFlowGraph,
    threshold: float = DEFAULT_ROBUSTNESS_THRESHOLD,
    weighted: bool = True,
) -> RobustnessResult:
    """Targeted-attack robustness curve.

    Nodes are removed one at a time by descending degree centrality, ties
    in node order. The degree sums connection strengths unless
    ``weighted`` is False.
    """
    n = graph.n_nodes
    if n == 0:
        return RobustnessResult(
            removal_order=np.zeros(0, dtype=int),
            node_removal=np.zeros(0),
            critical_fraction=float("nan"),
            threshold=threshold,
        )

    order = np.argsort(-degree_centrality(graph.connections, weighted), kind="stable")
    curve = np.zeros(n)
    for i in range(1, n + 1):
        keep = np.sort(order[i:])
        remaining = graph.connections[np.ix_(keep, keep)]
        curve[i - 1] = largest_component_size(remaining) / n

    below = np.nonzero(curve < threshold)[0]
    critical = (below[0] + 1) / n if below.size else float("nan")
    return RobustnessResult(
        removal_order=order,
        node_removal=curve,
        critical_fraction=float(critical),
        threshold=threshold,
    )


def network_efficiency(strength: np.ndarray, policy: str = "inverse_strength",
                       deadline: Optional[Deadline] = None) -> float:
    distance = strength_to_distance(strength, policy)
    return global_efficiency(floyd_warshall(distance, deadline))


def network_vulnerability(
    graph: ServiceFlowGraph,
    policy: str = "inverse_strength",
    deadline: Optional[Deadline] = None,
) -> np.ndarray:
    """Relative drop in global efficiency when each node is removed alone.

    Returns zeros when the intact graph has zero efficiency.
    """
    n = graph.n_nodes
    vulnerability = np.zeros(n)
    shortest = floyd_warshall(strength_to_distance(graph.connections, policy), deadline)
    intact = global_efficiency(shortest)
    if intact == 0:
        return vulnerability

    off_diagonal = ~np.eye(n, dtype=bool)
    for i in range(n):
        if deadline is not None:
            deadline.check("vulnerability")
        keep = np.array([j for j in range(n) if j != i], dtype=int)
        through = shortest[:, i, None] + shortest[None, i, :]
        on_path = np.isfinite(shortest) & np.isclose(through, shortest) & off_diagonal
        on_path[i, :] = False
        on_path[:, i] = False
        if on_path.any():
            efficiency_i = network_efficiency(graph.connections[np.ix_(keep, keep)], policy, deadline)
        else:
            # No shortest path runs through i, so the other distances stand
            efficiency_i = global_efficiency(shortest[np.ix_(keep, keep)])
        vulnerability[i] = (intact - efficiency_i) / intact
    return vulnerability
