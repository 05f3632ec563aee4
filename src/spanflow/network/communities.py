"""
Community detection by two-phase greedy modularity optimisation.

Modularity of a partition of the symmetric strength matrix W = A + A^T is

    Q = (1/2m) * sum_ij (W_ij - k_i k_j / 2m) * delta(c_i, c_j)

with k the weighted degree and 2m the total strength. Starting from
singleton communities, each round

1. moves single nodes to the neighbouring community with the largest
   positive modularity gain (visiting nodes in a seeded random order), then
2. merges the most strongly inter-connected community pairs whenever the
   merge increases Q.

Rounds repeat until neither phase improves Q.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np

from spanflow.core.constants import (
    DEFAULT_MAX_COMMUNITY_ITERATIONS,
    DEFAULT_SEED,
    MODULARITY_GAIN_TOL,
)
from spanflow.core.deadline import Deadline
from spanflow.core.errors import NumericInstabilityError
from spanflow.logger import get_logger

logger = get_logger(__name__)


@dataclass
class CommunityPartition:
    """Community assignment of every node.

    Attributes
    ----------
    membership : np.ndarray
        Community id per node, consecutive from 0 in order of first node
    modularity : float
        Q of the partition (0 for a graph without edges)
    internal_density : np.ndarray
        Directed edge density inside each community (0 for singletons)
    between_strength : np.ndarray
        Summed directed strength from community a to community b
    iterations : int
        Rounds performed
    converged : bool
        False when the singleton fallback was used
    """

    membership: np.ndarray
    modularity: float
    internal_density: np.ndarray
    between_strength: np.ndarray
    iterations: int = 0
    converged: bool = True

    @property
    def n_communities(self) -> int:
        return int(self.membership.max()) + 1 if self.membership.size else 0

    def members(self, community: int) -> np.ndarray:
        return np.nonzero(self.membership == community)[0]


def relabel(membership: np.ndarray) -> np.ndarray:
    """Renumber community ids consecutively in order of first appearance."""
    mapping = {}
    out = np.empty(len(membership), dtype=int)
    for i, label in enumerate(membership):
        out[i] = mapping.setdefault(int(label), len(mapping))
    return out


def modularity(strength: np.ndarray, membership: np.ndarray) -> float:
    """Modularity Q of ``membership`` on the undirected view of ``strength``."""
    W = strength + strength.T
    total = W.sum()
    if total == 0:
        return 0.0
    k = W.sum(axis=1)
    same = membership[:, None] == membership[None, :]
    return float(np.sum((W - np.outer(k, k) / total)[same]) / total)


def community_strength(strength: np.ndarray, membership: np.ndarray) -> np.ndarray:
    """Summed strength between every ordered pair of communities."""
    n_communities = int(membership.max()) + 1 if membership.size else 0
    indicator = np.zeros((len(membership), n_communities))
    indicator[np.arange(len(membership)), membership] = 1.0
    return indicator.T @ strength @ indicator


def internal_density(strength: np.ndarray, membership: np.ndarray) -> np.ndarray:
    n_communities = int(membership.max()) + 1 if membership.size else 0
    binary = (strength > 0).astype(float)
    density = np.zeros(n_communities)
    for c in range(n_communities):
        nodes = np.nonzero(membership == c)[0]
        size = len(nodes)
        if size > 1:
            density[c] = binary[np.ix_(nodes, nodes)].sum() / (size * (size - 1))
    return density


class CommunityDetector:
    """Greedy two-phase modularity optimiser.

    Parameters
    ----------
    max_iterations : int
        Cap on rounds; reaching it without a fixed point raises
        NumericInstabilityError inside :meth:`optimize`
    seed : int
        Seed for the node visiting order
    deadline : Deadline, optional
        Checked once per round
    """

    def __init__(
        self,
        max_iterations: int = DEFAULT_MAX_COMMUNITY_ITERATIONS,
        seed: int = DEFAULT_SEED,
        deadline: Optional[Deadline] = None,
    ):
        self.max_iterations = max_iterations
        self.seed = seed
        self.deadline = deadline if deadline is not None else Deadline.never()

    def _reassign_nodes(self, W, k, total, membership, rng) -> bool:
        """Phase 1: single-node moves. Returns True if any node moved."""
        n = len(membership)
        community_degree = np.bincount(membership, weights=k, minlength=n)
        improved = False

        for i in rng.permutation(n):
            current = membership[i]
            neighbors = np.nonzero(W[i] > 0)[0]
            neighbors = neighbors[neighbors != i]
            if neighbors.size == 0:
                continue

            links = np.bincount(membership[neighbors], weights=W[i, neighbors], minlength=n)
            k_i = k[i]
            best, best_gain = current, MODULARITY_GAIN_TOL
            for candidate in np.unique(membership[neighbors]):
                if candidate == current:
                    continue
                gain = (
                    2.0 * (links[candidate] - links[current]) / total
                    - 2.0 * k_i * (community_degree[candidate] - community_degree[current] + k_i)
                    / total ** 2
                )
                if gain > best_gain:
                    best, best_gain = candidate, gain

            if best != current:
                community_degree[current] -= k_i
                community_degree[best] += k_i
                membership[i] = best
                improved = True

        return improved

    def _merge_communities(self, W, k, total, membership) -> bool:
        """Phase 2: merge strongly connected community pairs that raise Q."""
        labels = np.unique(membership)
        index = {int(c): i for i, c in enumerate(labels)}
        compact = np.array([index[int(c)] for c in membership])
        n_c = len(labels)

        between = community_strength(W, compact)
        np.fill_diagonal(between, 0.0)
        degree = np.bincount(compact, weights=k, minlength=n_c)
        improved = False

        while True:
            flat = int(np.argmax(between))
            a, b = divmod(flat, n_c)
            if between[a, b] <= 0:
                break
            gain = 2.0 * between[a, b] / total - 2.0 * degree[a] * degree[b] / total ** 2
            if gain > MODULARITY_GAIN_TOL:
                compact[compact == b] = a
                degree[a] += degree[b]
                degree[b] = 0.0
                between[a, :] += between[b, :]
                between[:, a] += between[:, b]
                between[b, :] = 0.0
                between[:, b] = 0.0
                between[a, a] = 0.0
                improved = True
            else:
                between[a, b] = between[b, a] = 0.0

        membership[:] = labels[compact]
        return improved

    def optimize(self, strength: np.ndarray) -> Tuple[np.ndarray, int]:
        """Run both phases to a fixed point.

        Returns
        -------
        tuple
            (membership relabelled consecutively, rounds performed)

        Raises
        ------
        NumericInstabilityError
            If ``max_iterations`` rounds pass without reaching a fixed point
        """
        n = strength.shape[0]
        W = strength + strength.T
        total = W.sum()
        membership = np.arange(n)
        if n == 0 or total == 0:
            return membership, 0

        k = W.sum(axis=1)
        rng = np.random.default_rng(self.seed)

        for iteration in range(1, self.max_iterations + 1):
            self.deadline.check("community detection")
            moved = self._reassign_nodes(W, k, total, membership, rng)
            merged = self._merge_communities(W, k, total, membership)
            logger.debug(f"Community round {iteration}: moved={moved}, merged={merged}")
            if not (moved or merged):
                return relabel(membership), iteration

        raise NumericInstabilityError(
            f"Community detection did not reach a fixed point in {self.max_iterations} rounds",
            self.max_iterations,
        )

    def detect(self, graph) -> CommunityPartition:
        """Partition ``graph`` into communities.

        Falls back to singleton communities, with a logged warning, when
        the optimisation does not converge.
        """
        strength = np.asarray(graph.connections, dtype=float)
        converged = True
        try:
            membership, iterations = self.optimize(strength)
        except NumericInstabilityError as e:
            logger.warning(f"{e}; using singleton communities")
            membership, iterations, converged = np.arange(strength.shape[0]), e.iterations, False

        return CommunityPartition(
            membership=membership,
            modularity=modularity(strength, membership),
            internal_density=internal_density(strength, membership),
            between_strength=community_strength(strength, membership),
            iterations=iterations,
            converged=converged,
        )
