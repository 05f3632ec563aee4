"""
Topological descriptors of a service flow graph.

Module-level functions operate on plain matrices so they can be reused by
the stability and multilayer analyses; :class:`GraphMetrics` applies them
to a :class:`ServiceFlowGraph` and collects the results.

Conventions
-----------
- Shortest paths and betweenness use the directed graph. Under the
  "inverse_strength" policy an edge of strength w has length 1/w; under
  "strength_as_distance" its length is w itself.
- Clustering, components and eigenvector centrality use the undirected
  view A + A^T.
- Graphs with fewer than two nodes or no edges yield neutral values
  (0, or NaN where no value is defined) and a DegenerateGraphWarning.
"""

from __future__ import annotations

import heapq
import warnings
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, List, Optional

import numpy as np

from spanflow.core.constants import DEFAULT_SEED
from spanflow.core.deadline import Deadline
from spanflow.core.errors import DegenerateGraphWarning, NumericInstabilityError
from spanflow.core.params import MetricsConfig
from spanflow.logger import get_logger

if TYPE_CHECKING:
    from spanflow.network.builder import ServiceFlowGraph
    from spanflow.network.communities import CommunityPartition
    from spanflow.network.stability import RobustnessResult

logger = get_logger(__name__)

# Relative tolerance when counting equal-length shortest paths
_PATH_TOL = 1e-12


# =============================================================================
# SHORTEST PATHS
# =============================================================================


def strength_to_distance(strength: np.ndarray, policy: str = "inverse_strength") -> np.ndarray:
    """Convert a strength matrix into edge lengths (Inf where no edge).

    Parameters
    ----------
    strength : np.ndarray
        Non-negative connection strengths [n, n]
    policy : str
        "inverse_strength" (length = 1/w) or "strength_as_distance"
        (length = w)

    Returns
    -------
    np.ndarray
        Edge lengths with a zero diagonal
    """
    distance = np.full(strength.shape, np.inf)
    has_edge = strength > 0
    if policy == "inverse_strength":
        distance[has_edge] = 1.0 / strength[has_edge]
    elif policy == "strength_as_distance":
        distance[has_edge] = strength[has_edge]
    else:
        raise ValueError(f"Unknown weight policy '{policy}'")
    np.fill_diagonal(distance, 0.0)
    return distance


def floyd_warshall(distance: np.ndarray, deadline: Optional[Deadline] = None) -> np.ndarray:
    """All-pairs shortest path lengths.

    Parameters
    ----------
    distance : np.ndarray
        Edge lengths, Inf where no edge, zero diagonal
    deadline : Deadline, optional
        Checked once per intermediate node

    Returns
    -------
    np.ndarray
        Shortest path lengths, Inf for unreachable pairs
    """
    dist = np.array(distance, dtype=float, copy=True)
    n = dist.shape[0]
    for k in range(n):
        if deadline is not None:
            deadline.check("floyd-warshall")
        np.minimum(dist, dist[:, k:k + 1] + dist[k:k + 1, :], out=dist)
    return dist


def average_path_length(shortest: np.ndarray) -> float:
    """Mean finite off-diagonal shortest path length (NaN if none)."""
    n = shortest.shape[0]
    off_diagonal = ~np.eye(n, dtype=bool)
    finite = shortest[off_diagonal & np.isfinite(shortest)]
    return float(finite.mean()) if finite.size else float("nan")


def global_efficiency(shortest: np.ndarray) -> float:
    """Mean of 1/d over reachable ordered pairs (0 if none)."""
    n = shortest.shape[0]
    if n < 2:
        return 0.0
    off_diagonal = ~np.eye(n, dtype=bool)
    reachable = shortest[off_diagonal & np.isfinite(shortest) & (shortest > 0)]
    return float(np.mean(1.0 / reachable)) if reachable.size else 0.0


def betweenness_centrality(distance: np.ndarray, deadline: Optional[Deadline] = None) -> np.ndarray:
    """Brandes betweenness on a directed weighted graph.

    Counts the fraction of shortest s -> t paths passing through each node,
    normalised by (n-1)(n-2).

    Parameters
    ----------
    distance : np.ndarray
        Edge lengths, Inf where no edge

    Returns
    -------
    np.ndarray
        Betweenness per node (zeros for n < 3)
    """
    n = distance.shape[0]
    centrality = np.zeros(n)
    if n < 3:
        return centrality

    successors = [
        [(int(j), float(distance[i, j])) for j in np.nonzero(np.isfinite(distance[i]))[0] if j != i]
        for i in range(n)
    ]

    for s in range(n):
        if deadline is not None:
            deadline.check("betweenness")
        stack: List[int] = []
        preds: List[List[int]] = [[] for _ in range(n)]
        sigma = np.zeros(n)
        sigma[s] = 1.0
        dist = np.full(n, np.inf)
        dist[s] = 0.0
        settled = np.zeros(n, dtype=bool)

        counter = 0
        heap = [(0.0, counter, s)]
        while heap:
            d, _, v = heapq.heappop(heap)
            if settled[v]:
                continue
            settled[v] = True
            stack.append(v)
            for w, length in successors[v]:
                candidate = d + length
                tol = _PATH_TOL * max(1.0, abs(candidate))
                if candidate < dist[w] - tol:
                    dist[w] = candidate
                    sigma[w] = sigma[v]
                    preds[w] = [v]
                    counter += 1
                    heapq.heappush(heap, (candidate, counter, w))
                elif abs(candidate - dist[w]) <= tol and not settled[w]:
                    sigma[w] += sigma[v]
                    preds[w].append(v)

        delta = np.zeros(n)
        while stack:
            w = stack.pop()
            for v in preds[w]:
                delta[v] += sigma[v] / sigma[w] * (1.0 + delta[w])
            if w != s:
                centrality[w] += delta[w]

    return centrality / ((n - 1) * (n - 2))


# =============================================================================
# COMPONENTS
# =============================================================================


class UnionFind:
    """Disjoint-set forest with path compression and union by rank."""

    def __init__(self, n: int):
        self.parent = list(range(n))
        self.rank = [0] * n
        self.n_sets = n

    def find(self, x: int) -> int:
        root = x
        while self.parent[root] != root:
            root = self.parent[root]
        while self.parent[x] != root:
            self.parent[x], x = root, self.parent[x]
        return root

    def union(self, a: int, b: int) -> bool:
        ra, rb = self.find(a), self.find(b)
        if ra == rb:
            return False
        if self.rank[ra] < self.rank[rb]:
            ra, rb = rb, ra
        self.parent[rb] = ra
        if self.rank[ra] == self.rank[rb]:
            self.rank[ra] += 1
        self.n_sets -= 1
        return True


def connected_components(adjacency: np.ndarray) -> np.ndarray:
    """Component label per node of the undirected view of ``adjacency``.

    Labels are consecutive integers in order of first appearance.
    """
    n = adjacency.shape[0]
    uf = UnionFind(n)
    rows, cols = np.nonzero((adjacency + adjacency.T) > 0)
    for i, j in zip(rows, cols):
        uf.union(int(i), int(j))

    labels = np.empty(n, dtype=int)
    seen: Dict[int, int] = {}
    for i in range(n):
        root = uf.find(i)
        labels[i] = seen.setdefault(root, len(seen))
    return labels


def largest_component_size(adjacency: np.ndarray) -> int:
    if adjacency.shape[0] == 0:
        return 0
    return int(np.bincount(connected_components(adjacency)).max())


# =============================================================================
# LOCAL STRUCTURE AND CENTRALITY
# =============================================================================


def clustering_coefficient(adjacency: np.ndarray) -> float:
    """Mean neighbour-triangle ratio over nodes with at least two neighbours.

    Computed on the undirected binary view; 0 when no node qualifies.
    """
    binary = ((adjacency + adjacency.T) > 0).astype(float)
    np.fill_diagonal(binary, 0.0)
    degree = binary.sum(axis=1)
    eligible = degree >= 2
    if not eligible.any():
        return 0.0
    triangles = np.sum((binary @ binary) * binary, axis=1) / 2.0
    possible = degree * (degree - 1) / 2.0
    return float(np.mean(triangles[eligible] / possible[eligible]))


def degree_centrality(adjacency: np.ndarray, weighted: bool = True) -> np.ndarray:
    """(in + out) degree divided by 2(n-1).

    Parameters
    ----------
    adjacency : np.ndarray
        Directed strength matrix
    weighted : bool
        Sum connection strengths (default) rather than count edges

    Returns
    -------
    np.ndarray
        Per-node centrality; zeros for fewer than two nodes
    """
    n = adjacency.shape[0]
    if n < 2:
        return np.zeros(n)
    weights = np.array(adjacency, dtype=float) if weighted else (adjacency > 0).astype(float)
    np.fill_diagonal(weights, 0.0)
    return (weights.sum(axis=0) + weights.sum(axis=1)) / (2.0 * (n - 1))


def eigenvector_centrality(
    adjacency: np.ndarray,
    max_iter: int = 1000,
    tol: float = 1e-9,
) -> np.ndarray:
    """Principal eigenvector of A + A^T, normalised to a maximum of 1.

    Power iteration runs on A + A^T + I; the shift keeps bipartite graphs,
    whose spectrum is symmetric, from oscillating.

    Raises
    ------
    NumericInstabilityError
        If the iteration does not converge within ``max_iter`` steps
    """
    n = adjacency.shape[0]
    symmetric = adjacency + adjacency.T
    if n == 0 or not np.any(symmetric > 0):
        return np.zeros(n)

    shifted = symmetric + np.eye(n)
    x = np.full(n, 1.0 / np.sqrt(n))
    for iteration in range(1, max_iter + 1):
        y = shifted @ x
        norm = np.linalg.norm(y)
        if norm == 0 or not np.isfinite(norm):
            raise NumericInstabilityError("Power iteration degenerated", iteration)
        y /= norm
        if np.max(np.abs(y - x)) < tol:
            return y / y.max()
        x = y

    raise NumericInstabilityError(
        f"Eigenvector centrality did not converge in {max_iter} iterations", max_iter
    )


# =============================================================================
# AGGREGATE
# =============================================================================


@dataclass
class NetworkMetrics:
    """Topological descriptors of one graph.

    Attributes
    ----------
    n_nodes, n_edges : int
    density : float
        edges / (n(n-1))
    avg_path_length : float
        Mean finite shortest path length (NaN if none or skipped)
    clustering : float
    connectivity : float
        1 - components / n
    n_components : int
    global_efficiency : float
    degree, betweenness, eigenvector : np.ndarray
        Per-node centralities
    communities : CommunityPartition, optional
    robustness : RobustnessResult, optional
    vulnerability : np.ndarray
        Relative efficiency loss per single-node removal
    weight_policy : str
    degenerate : bool
    """

    n_nodes: int
    n_edges: int
    density: float
    avg_path_length: float
    clustering: float
    connectivity: float
    n_components: int
    global_efficiency: float
    degree: np.ndarray
    betweenness: np.ndarray
    eigenvector: np.ndarray
    communities: Optional["CommunityPartition"] = None
    robustness: Optional["RobustnessResult"] = None
    vulnerability: np.ndarray = field(default_factory=lambda: np.zeros(0))
    weight_policy: str = "inverse_strength"
    degenerate: bool = False

    def scalars(self) -> Dict[str, float]:
        """Scalar descriptors as a flat dictionary."""
        values = {
            "n_nodes": self.n_nodes,
            "n_edges": self.n_edges,
            "density": self.density,
            "avg_path_length": self.avg_path_length,
            "clustering": self.clustering,
            "connectivity": self.connectivity,
            "n_components": self.n_components,
            "global_efficiency": self.global_efficiency,
        }
        if self.communities is not None:
            values["n_communities"] = self.communities.n_communities
            values["modularity"] = self.communities.modularity
        if self.robustness is not None:
            values["critical_fraction"] = self.robustness.critical_fraction
        return values


class GraphMetrics:
    """Computes NetworkMetrics for a ServiceFlowGraph.

    Parameters
    ----------
    config : MetricsConfig, optional
        Weight policy, iteration caps and size limits
    seed : int
        Seed for community detection
    deadline : Deadline, optional
        Checked inside all-pairs and iterative steps
    """

    def __init__(
        self,
        config: Optional[MetricsConfig] = None,
        seed: int = DEFAULT_SEED,
        deadline: Optional[Deadline] = None,
    ):
        self.config = config if config is not None else MetricsConfig()
        self.seed = seed
        self.deadline = deadline if deadline is not None else Deadline.never()

    def density(self, graph: ServiceFlowGraph) -> float:
        n = graph.n_nodes
        if n < 2:
            return 0.0
        return graph.n_edges / (n * (n - 1))

    def connectivity(self, graph: ServiceFlowGraph) -> float:
        n = graph.n_nodes
        if n == 0:
            return 0.0
        n_components = int(connected_components(graph.connections).max()) + 1
        return 1.0 - n_components / n

    def shortest_paths(self, graph: ServiceFlowGraph) -> np.ndarray:
        distance = strength_to_distance(graph.connections, self.config.weight_policy)
        return floyd_warshall(distance, self.deadline)

    def all_pairs_allowed(self, graph: ServiceFlowGraph) -> bool:
        return graph.n_nodes <= self.config.max_nodes_all_pairs

    def eigenvector(self, graph: ServiceFlowGraph) -> np.ndarray:
        """Eigenvector centrality, falling back to zeros on non-convergence."""
        try:
            return eigenvector_centrality(
                graph.connections,
                max_iter=self.config.eigen_max_iter,
                tol=self.config.eigen_tol,
            )
        except NumericInstabilityError as e:
            logger.warning(f"{e}; using zero eigenvector centrality")
            return np.zeros(graph.n_nodes)

    def compute(self, graph: ServiceFlowGraph) -> NetworkMetrics:
        """Compute all descriptors for ``graph``.

        Returns
        -------
        NetworkMetrics
        """
        # Import here to avoid circular imports
        from spanflow.network.communities import CommunityDetector
        from spanflow.network.stability import network_robustness, network_vulnerability

        n = graph.n_nodes
        if graph.is_degenerate:
            warnings.warn(
                f"Degenerate graph ({n} nodes, {graph.n_edges} edges); metrics are neutral",
                DegenerateGraphWarning,
            )

        labels = connected_components(graph.connections)
        n_components = int(labels.max()) + 1 if n else 0

        if self.all_pairs_allowed(graph):
            distance = strength_to_distance(graph.connections, self.config.weight_policy)
            shortest = floyd_warshall(distance, self.deadline)
            avg_length = average_path_length(shortest)
            efficiency = global_efficiency(shortest)
            betweenness = betweenness_centrality(distance, self.deadline)
            vulnerability = network_vulnerability(graph, self.config.weight_policy, self.deadline)
        else:
            logger.warning(
                f"Graph has {n} nodes (> {self.config.max_nodes_all_pairs}); "
                "skipping all-pairs metrics"
            )
            avg_length = efficiency = float("nan")
            betweenness = np.full(n, np.nan)
            vulnerability = np.full(n, np.nan)

        detector = CommunityDetector(
            max_iterations=self.config.max_community_iterations,
            seed=self.seed,
            deadline=self.deadline,
        )

        metrics = NetworkMetrics(
            n_nodes=n,
            n_edges=graph.n_edges,
            density=self.density(graph),
            avg_path_length=avg_length,
            clustering=clustering_coefficient(graph.connections),
            connectivity=1.0 - n_components / n if n else 0.0,
            n_components=n_components,
            global_efficiency=efficiency,
            degree=degree_centrality(graph.connections, self.config.weighted_degree),
            betweenness=betweenness,
            eigenvector=self.eigenvector(graph),
            communities=detector.detect(graph),
            robustness=network_robustness(
                graph, self.config.robustness_threshold, self.config.weighted_degree
            ),
            vulnerability=vulnerability,
            weight_policy=self.config.weight_policy,
            degenerate=graph.is_degenerate,
        )
        logger.info(
            f"Graph metrics: density={metrics.density:.4f}, "
            f"connectivity={metrics.connectivity:.4f}, components={n_components}"
        )
        return metrics
