"""
Flow quantification.

Converts supply/demand potentials and routed costs into flow rasters:

    theoretical = sqrt(supply_potential * demand_potential)
    actual      = theoretical * exp(-k * cost_to_nearest_demand)
    efficiency  = actual / (theoretical + eps), 0 where theoretical is 0

and aggregates them into run-level totals. Unreachable cells carry zero
actual flow and zero efficiency.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Dict, List, Optional, Tuple

import numpy as np

from spanflow.core.constants import (
    CONSERVATION_TOLERANCE,
    DEFAULT_BOTTLENECK_COUNT,
    DEFAULT_DECAY_K,
    DEFAULT_TRANS_THRESHOLD,
    EFFICIENCY_EPSILON,
)
from spanflow.core.grid import Point
from spanflow.core.potentials import Potentials
from spanflow.core.routing import Path
from spanflow.logger import get_logger

logger = get_logger(__name__)

PathMap = Dict[Tuple[Point, Point], Path]


def _safe_ratio(numerator: float, denominator: float) -> float:
    return float(numerator / denominator) if denominator != 0 else 0.0


@dataclass
class FlowField:
    """Per-cell flow rasters for one run.

    Attributes
    ----------
    theoretical : np.ndarray
        Unattenuated flow
    actual : np.ndarray
        Flow after decay along the cheapest route to demand
    efficiency : np.ndarray
        actual / theoretical, in [0, 1]
    cost_to_demand : np.ndarray
        Accumulated cost to the nearest reachable demand cell (Inf if none)
    nearest_demand : np.ndarray
        Flat index of that demand cell, -1 if unreachable
    """

    theoretical: np.ndarray
    actual: np.ndarray
    efficiency: np.ndarray
    cost_to_demand: np.ndarray
    nearest_demand: np.ndarray

    @property
    def blocked(self) -> np.ndarray:
        return self.theoretical - self.actual


@dataclass(frozen=True)
class FlowSummary:
    """Run-level flow totals and ratios (ratios are 0 on a zero denominator)."""

    total_theoretical: float
    total_actual: float
    total_used: float
    total_blocked: float
    delivery_ratio: float
    use_ratio: float
    block_ratio: float

    @classmethod
    def from_totals(cls, theoretical: float, actual: float, used: float) -> FlowSummary:
        delivery_ratio = _safe_ratio(actual, theoretical)
        return cls(
            total_theoretical=float(theoretical),
            total_actual=float(actual),
            total_used=float(used),
            total_blocked=float(theoretical - actual),
            delivery_ratio=delivery_ratio,
            use_ratio=_safe_ratio(used, actual),
            block_ratio=1.0 - delivery_ratio if theoretical != 0 else 0.0,
        )

    def is_conserved(self, tol: float = CONSERVATION_TOLERANCE) -> bool:
        """True if actual + blocked equals theoretical within ``tol``."""
        scale = max(1.0, abs(self.total_theoretical))
        return abs(self.total_actual + self.total_blocked - self.total_theoretical) <= tol * scale

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)


@dataclass(frozen=True)
class FlowStatistics:
    """Descriptive statistics over routed supply-demand pairs."""

    n_pairs: int
    n_reachable: int
    mean_path_length: float
    max_path_length: int
    mean_intensity: float
    max_intensity: float


@dataclass(frozen=True)
class Bottleneck:
    position: Point
    score: float


class FlowQuantifier:
    """Derives flow rasters and summaries from potentials and routed costs.

    Parameters
    ----------
    decay_k : float
        Decay constant k >= 0
    benefit_type : str
        "rival" or "non-rival" use allocation
    trans_threshold : float
        Minimum pair transmission exp(-k * cost) for a pair to feed the
        flow-path intensity raster
    epsilon : float
        Guard added to the efficiency denominator
    """

    def __init__(
        self,
        decay_k: float = DEFAULT_DECAY_K,
        benefit_type: str = "rival",
        trans_threshold: float = DEFAULT_TRANS_THRESHOLD,
        epsilon: float = EFFICIENCY_EPSILON,
    ):
        if decay_k < 0:
            raise ValueError(f"decay_k must be non-negative, got {decay_k}")
        if benefit_type not in ("rival", "non-rival"):
            raise ValueError(f"benefit_type must be 'rival' or 'non-rival', got '{benefit_type}'")
        self.decay_k = decay_k
        self.benefit_type = benefit_type
        self.trans_threshold = trans_threshold
        self.epsilon = epsilon

    @classmethod
    def from_config(cls, config) -> FlowQuantifier:
        return cls(
            decay_k=config.decay_k,
            benefit_type=config.benefit_type,
            trans_threshold=config.trans_threshold,
        )

    # ------------------------------------------------------------------
    # Cell-wise rasters
    # ------------------------------------------------------------------

    @staticmethod
    def theoretical_flow(supply_potential: np.ndarray, demand_potential: np.ndarray) -> np.ndarray:
        """Geometric mean of the two potentials (0 where either is 0 or NaN)."""
        product = np.nan_to_num(supply_potential * demand_potential, nan=0.0)
        return np.sqrt(np.clip(product, 0.0, None))

    def transmission(self, cost) -> np.ndarray:
        """exp(-k * cost), 0 for infinite cost."""
        cost = np.asarray(cost, dtype=float)
        finite = np.isfinite(cost)
        return np.where(finite, np.exp(-self.decay_k * np.where(finite, cost, 0.0)), 0.0)

    def actual_flow(self, theoretical: np.ndarray, cost: np.ndarray) -> np.ndarray:
        return theoretical * self.transmission(cost)

    def flow_efficiency(self, theoretical: np.ndarray, actual: np.ndarray) -> np.ndarray:
        return np.where(theoretical > 0, actual / (theoretical + self.epsilon), 0.0)

    def quantify(
        self,
        potentials: Potentials,
        cost_to_demand: np.ndarray,
        nearest_demand: np.ndarray,
    ) -> FlowField:
        """Build the flow rasters.

        Parameters
        ----------
        potentials : Potentials
            Supply potential and projected demand potential
        cost_to_demand : np.ndarray
            Output of :meth:`PathRouter.cost_distance` over demand cells
        nearest_demand : np.ndarray
            Matching nearest-demand index raster

        Returns
        -------
        FlowField
        """
        theoretical = self.theoretical_flow(potentials.supply_potential, potentials.demand_potential)
        actual = self.actual_flow(theoretical, cost_to_demand)
        efficiency = self.flow_efficiency(theoretical, actual)

        n_unreachable = int(np.sum((theoretical > 0) & ~np.isfinite(cost_to_demand)))
        if n_unreachable:
            logger.info(f"{n_unreachable} supply cells cannot reach any demand cell")

        return FlowField(
            theoretical=theoretical,
            actual=actual,
            efficiency=efficiency,
            cost_to_demand=cost_to_demand,
            nearest_demand=nearest_demand,
        )

    # ------------------------------------------------------------------
    # Pair-level quantities
    # ------------------------------------------------------------------

    def pair_intensity(self, potentials: Potentials, source: Point, destination: Point,
                       path: Path) -> float:
        """Flow carried by one routed pair: sqrt(supply * capacity) * transmission."""
        if not path.reachable:
            return 0.0
        strength = np.sqrt(
            max(potentials.supply_potential[source] * potentials.demand_capacity[destination], 0.0)
        )
        return float(strength * self.transmission(path.cost))

    def used_flow(self, field: FlowField, potentials: Potentials,
                  paths: Optional[PathMap] = None) -> np.ndarray:
        """Flow absorbed by each demand cell, capped by its capacity.

        rival: each supply cell's actual flow goes to its nearest reachable
        demand cell. non-rival: every reachable pair delivers without
        depleting the supply, which requires ``paths``.

        Returns
        -------
        np.ndarray
            Used flow raster, non-zero only on demand cells
        """
        shape = field.actual.shape
        inflow = np.zeros(shape)

        if self.benefit_type == "rival":
            senders = (field.actual > 0) & (field.nearest_demand >= 0)
            np.add.at(inflow.ravel(), field.nearest_demand[senders], field.actual[senders])
        else:
            if paths is None:
                raise ValueError("non-rival allocation requires routed paths")
            for (src, dst), path in paths.items():
                inflow[dst] += self.pair_intensity(potentials, src, dst, path)

        return np.minimum(inflow, potentials.demand_capacity)

    def summarize(self, field: FlowField, used: np.ndarray) -> FlowSummary:
        summary = FlowSummary.from_totals(
            theoretical=float(field.theoretical.sum()),
            actual=float(field.actual.sum()),
            used=float(used.sum()),
        )
        if not summary.is_conserved():
            logger.warning("Flow totals do not balance: actual + blocked != theoretical")
        logger.info(
            f"Flow totals: theoretical={summary.total_theoretical:.4f}, "
            f"actual={summary.total_actual:.4f}, used={summary.total_used:.4f}"
        )
        return summary

    def path_intensity(self, potentials: Potentials, paths: PathMap) -> np.ndarray:
        """Raster of flow carried along routed paths.

        Pairs whose transmission falls below ``trans_threshold`` are left out.
        """
        intensity = np.zeros(potentials.supply_potential.shape)
        for (src, dst), path in paths.items():
            if not path.reachable or self.transmission(path.cost) < self.trans_threshold:
                continue
            value = self.pair_intensity(potentials, src, dst, path)
            if value <= 0:
                continue
            rows, cols = zip(*path.points)
            intensity[rows, cols] += value
        return intensity

    def flow_statistics(self, potentials: Potentials, paths: PathMap) -> FlowStatistics:
        lengths = []
        intensities = []
        for (src, dst), path in paths.items():
            if path.reachable:
                lengths.append(len(path))
                intensities.append(self.pair_intensity(potentials, src, dst, path))

        return FlowStatistics(
            n_pairs=len(paths),
            n_reachable=len(lengths),
            mean_path_length=float(np.mean(lengths)) if lengths else 0.0,
            max_path_length=int(max(lengths)) if lengths else 0,
            mean_intensity=float(np.mean(intensities)) if intensities else 0.0,
            max_intensity=float(max(intensities)) if intensities else 0.0,
        )

    def bottleneck_scores(self, potentials: Potentials, paths: PathMap,
                          resistance: np.ndarray) -> np.ndarray:
        """Score raster: sum over routed paths of pair intensity x cell resistance."""
        scores = np.zeros(resistance.shape)
        weights = np.where(np.isfinite(resistance), resistance, 0.0)
        for (src, dst), path in paths.items():
            value = self.pair_intensity(potentials, src, dst, path)
            if value <= 0:
                continue
            rows, cols = zip(*path.points)
            scores[rows, cols] += value * weights[rows, cols]
        return scores

    def identify_bottlenecks(
        self,
        potentials: Potentials,
        paths: PathMap,
        resistance: np.ndarray,
        top_n: int = DEFAULT_BOTTLENECK_COUNT,
    ) -> List[Bottleneck]:
        """Cells with the highest bottleneck score, strongest first.

        Cells scoring zero are never reported.
        """
        scores = self.bottleneck_scores(potentials, paths, resistance)
        flat = scores.ravel()
        # Stable sort keeps row-major order among equal scores
        order = np.argsort(-flat, kind="stable")
        bottlenecks = []
        for index in order[:top_n]:
            if flat[index] <= 0:
                break
            r, c = np.unravel_index(index, scores.shape)
            bottlenecks.append(Bottleneck(position=(int(r), int(c)), score=float(flat[index])))
        return bottlenecks
