"""
Discretisation of flow structure into a supply -> demand graph.

A directed edge s -> d is added when realised flow-path intensity is present
in both the supply cell's and the demand cell's neighbourhood window. Its
strength is the mean positive intensity over the union of the two windows.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator, List, Optional, Sequence, Tuple

import numpy as np

from spanflow.core.constants import DEFAULT_NEIGHBORHOOD_RADIUS
from spanflow.core.deadline import Deadline
from spanflow.core.errors import InputShapeError
from spanflow.core.grid import Node, NodeRole, build_nodes
from spanflow.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class ServiceFlowGraph:
    """Immutable weighted directed supply -> demand graph.

    Attributes
    ----------
    nodes : tuple of Node
        Supply nodes followed by demand nodes; ``nodes[i].id == i``
    connections : np.ndarray
        Read-only strength matrix [n, n]; only supply-row, demand-column
        entries may be non-zero
    """

    nodes: Tuple[Node, ...]
    connections: np.ndarray

    def __post_init__(self):
        """Validate and freeze the connection matrix."""
        nodes = tuple(self.nodes)
        matrix = np.array(self.connections, dtype=float)
        n = len(nodes)
        if matrix.shape != (n, n):
            raise InputShapeError(f"connections shape {matrix.shape} != ({n}, {n})")
        if any(node.id != i for i, node in enumerate(nodes)):
            raise ValueError("Node ids must equal their position in the node list")
        if np.any(~np.isfinite(matrix)) or np.any(matrix < 0):
            raise ValueError("Connection strengths must be finite and non-negative")

        supply = np.array([node.role is NodeRole.SUPPLY for node in nodes], dtype=bool)
        allowed = np.outer(supply, ~supply)
        if np.any(matrix[~allowed] != 0):
            raise ValueError("Only supply -> demand connections are allowed")

        matrix.setflags(write=False)
        object.__setattr__(self, "nodes", nodes)
        object.__setattr__(self, "connections", matrix)

    @classmethod
    def bipartite(cls, weights, positions: Optional[Sequence[Tuple[int, int]]] = None) -> ServiceFlowGraph:
        """Build a graph from an [n_supply, n_demand] strength block.

        Positions default to supply nodes on row 0 and demand nodes on row 1.
        """
        weights = np.atleast_2d(np.asarray(weights, dtype=float))
        n_supply, n_demand = weights.shape
        if positions is None:
            positions = [(0, i) for i in range(n_supply)] + [(1, j) for j in range(n_demand)]
        roles = [NodeRole.SUPPLY] * n_supply + [NodeRole.DEMAND] * n_demand
        nodes = tuple(Node(id=i, position=tuple(p), role=r) for i, (p, r) in enumerate(zip(positions, roles)))

        n = n_supply + n_demand
        matrix = np.zeros((n, n))
        matrix[:n_supply, n_supply:] = weights
        return cls(nodes=nodes, connections=matrix)

    @property
    def n_nodes(self) -> int:
        return len(self.nodes)

    @property
    def n_edges(self) -> int:
        return int(np.count_nonzero(self.connections))

    @property
    def supply_nodes(self) -> List[Node]:
        return [n for n in self.nodes if n.role is NodeRole.SUPPLY]

    @property
    def demand_nodes(self) -> List[Node]:
        return [n for n in self.nodes if n.role is NodeRole.DEMAND]

    @property
    def is_degenerate(self) -> bool:
        return self.n_nodes < 2 or self.n_edges == 0

    def adjacency(self) -> np.ndarray:
        """Binary directed adjacency."""
        return (self.connections > 0).astype(float)

    def undirected(self) -> np.ndarray:
        """Symmetric strength matrix A + A^T."""
        return self.connections + self.connections.T

    def edges(self) -> Iterator[Tuple[int, int, float]]:
        for i, j in zip(*np.nonzero(self.connections)):
            yield int(i), int(j), float(self.connections[i, j])


class NetworkBuilder:
    """Builds a ServiceFlowGraph from a flow-path intensity raster.

    Parameters
    ----------
    radius : int
        Neighbourhood half-width in cells; windows are (2r+1) x (2r+1),
        clipped at the raster edge
    deadline : Deadline, optional
        Checked once per supply node
    """

    def __init__(self, radius: int = DEFAULT_NEIGHBORHOOD_RADIUS, deadline: Optional[Deadline] = None):
        if radius < 0:
            raise ValueError("radius must be non-negative")
        self.radius = radius
        self.deadline = deadline if deadline is not None else Deadline.never()

    def _bounds(self, positions: np.ndarray, shape: Tuple[int, int]) -> np.ndarray:
        """Half-open window bounds [r0, r1, c0, c1] per position, clipped to the raster."""
        rows, cols = shape
        r, c = positions[:, 0], positions[:, 1]
        return np.stack([
            np.maximum(r - self.radius, 0),
            np.minimum(r + self.radius + 1, rows),
            np.maximum(c - self.radius, 0),
            np.minimum(c + self.radius + 1, cols),
        ], axis=1)

    def build(
        self,
        intensity: np.ndarray,
        supply_mask: np.ndarray,
        demand_mask: np.ndarray,
    ) -> ServiceFlowGraph:
        """Build the graph.

        Window sums come from summed-area tables of the positive
        intensity, so each supply/demand pair costs O(1) regardless of the
        raster size; two windows overlap in at most one rectangle.

        Parameters
        ----------
        intensity : np.ndarray
            Flow-path intensity raster
        supply_mask, demand_mask : np.ndarray
            Classification masks defining the node set

        Returns
        -------
        ServiceFlowGraph
            Edgeless when either node set is empty
        """
        if not (intensity.shape == supply_mask.shape == demand_mask.shape):
            raise InputShapeError(
                f"Raster dimensions differ: intensity {intensity.shape}, "
                f"supply {supply_mask.shape}, demand {demand_mask.shape}"
            )

        nodes = build_nodes(supply_mask, demand_mask)
        n = len(nodes)
        matrix = np.zeros((n, n))
        supply = [node for node in nodes if node.role is NodeRole.SUPPLY]
        demand = [node for node in nodes if node.role is NodeRole.DEMAND]

        if not supply or not demand:
            logger.info("Empty supply or demand set: building an edgeless graph")
            return ServiceFlowGraph(nodes=tuple(nodes), connections=matrix)

        values = np.nan_to_num(intensity, nan=0.0)
        positive = values > 0
        value_table = _summed_area(np.where(positive, values, 0.0))
        count_table = _summed_area(positive.astype(float))

        s_bounds = self._bounds(np.array([node.position for node in supply]), intensity.shape)
        d_bounds = self._bounds(np.array([node.position for node in demand]), intensity.shape)
        s_sum, s_cnt = _window_totals(value_table, count_table, *s_bounds.T)
        d_sum, d_cnt = _window_totals(value_table, count_table, *d_bounds.T)
        d_active = d_cnt > 0
        d_ids = np.array([node.id for node in demand])

        for k, s in enumerate(supply):
            self.deadline.check("network construction")
            if s_cnt[k] == 0:
                continue
            r0, r1, c0, c1 = s_bounds[k]
            # Intersection rectangle with every demand window (may be empty)
            o_r0 = np.maximum(r0, d_bounds[:, 0])
            o_r1 = np.maximum(np.minimum(r1, d_bounds[:, 1]), o_r0)
            o_c0 = np.maximum(c0, d_bounds[:, 2])
            o_c1 = np.maximum(np.minimum(c1, d_bounds[:, 3]), o_c0)
            o_sum, o_cnt = _window_totals(value_table, count_table, o_r0, o_r1, o_c0, o_c1)

            total = s_sum[k] + d_sum - o_sum
            count = s_cnt[k] + d_cnt - o_cnt
            matrix[s.id, d_ids[d_active]] = total[d_active] / count[d_active]

        # Summed-area round-off can dip below zero when intensities span many magnitudes
        np.maximum(matrix, 0.0, out=matrix)
        graph = ServiceFlowGraph(nodes=tuple(nodes), connections=matrix)
        logger.info(
            f"Built network: {len(supply)} supply, {len(demand)} demand, {graph.n_edges} edges"
        )
        return graph


def _summed_area(values: np.ndarray) -> np.ndarray:
    """Summed-area table padded with a leading zero row and column."""
    table = np.zeros((values.shape[0] + 1, values.shape[1] + 1))
    table[1:, 1:] = values.cumsum(axis=0).cumsum(axis=1)
    return table


def _window_totals(value_table: np.ndarray, count_table: np.ndarray,
                   r0, r1, c0, c1) -> Tuple[np.ndarray, np.ndarray]:
    """Positive-intensity sum and cell count over half-open rectangles."""

    def total(table):
        return table[r1, c1] - table[r0, c1] - table[r1, c0] + table[r0, c0]

    # Counts are integers; rounding removes summed-area round-off
    return total(value_table), np.rint(total(count_table))
