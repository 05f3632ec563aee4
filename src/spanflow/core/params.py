"""
Run configuration for spanflow.

This module contains the SpanConfig and MetricsConfig dataclasses and
functions for reading, writing and validating run configurations.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional, Union

from spanflow.core.constants import (
    DEFAULT_DECAY_K,
    DEFAULT_EIGEN_MAX_ITER,
    DEFAULT_EIGEN_TOL,
    DEFAULT_MAX_COMMUNITY_ITERATIONS,
    DEFAULT_MAX_NODES_ALL_PAIRS,
    DEFAULT_N_WORKERS,
    DEFAULT_NEIGHBORHOOD_RADIUS,
    DEFAULT_ROBUSTNESS_THRESHOLD,
    DEFAULT_SEED,
    DEFAULT_SINK_THRESHOLD,
    DEFAULT_SOURCE_THRESHOLD,
    DEFAULT_TRANS_THRESHOLD,
    DEFAULT_USE_THRESHOLD,
)

BENEFIT_TYPES = ("rival", "non-rival")

# How connection strength enters shortest-path computations:
# - "inverse_strength": distance = 1 / strength (strong links are short)
# - "strength_as_distance": strength is used directly as the distance
WEIGHT_POLICIES = ("inverse_strength", "strength_as_distance")


@dataclass
class MetricsConfig:
    """Options for graph metric computation.

    Attributes
    ----------
    weight_policy : str
        One of WEIGHT_POLICIES
    max_community_iterations : int
        Cap on reassignment/merge rounds in community detection
    max_nodes_all_pairs : int
        Above this node count all-pairs metrics are skipped (reported NaN)
    eigen_max_iter : int
        Power-iteration cap for eigenvector centrality
    eigen_tol : float
        Power-iteration convergence tolerance
    robustness_threshold : float
        Largest-component fraction defining network collapse
    weighted_degree : bool
        Degree centrality (and the robustness removal order) sums connection
        strengths; False counts edges instead
    """

    weight_policy: str = "inverse_strength"
    max_community_iterations: int = DEFAULT_MAX_COMMUNITY_ITERATIONS
    max_nodes_all_pairs: int = DEFAULT_MAX_NODES_ALL_PAIRS
    eigen_max_iter: int = DEFAULT_EIGEN_MAX_ITER
    eigen_tol: float = DEFAULT_EIGEN_TOL
    robustness_threshold: float = DEFAULT_ROBUSTNESS_THRESHOLD
    weighted_degree: bool = True

    def __post_init__(self):
        """Validate metric options."""
        if self.weight_policy not in WEIGHT_POLICIES:
            raise ValueError(
                f"weight_policy must be one of {WEIGHT_POLICIES}, got '{self.weight_policy}'"
            )
        if self.max_community_iterations < 1:
            raise ValueError("max_community_iterations must be >= 1")
        if self.max_nodes_all_pairs < 0:
            raise ValueError("max_nodes_all_pairs must be non-negative")
        if self.eigen_max_iter < 1:
            raise ValueError("eigen_max_iter must be >= 1")
        if self.eigen_tol <= 0:
            raise ValueError("eigen_tol must be positive")
        if not 0.0 < self.robustness_threshold <= 1.0:
            raise ValueError("robustness_threshold must be in (0, 1]")


@dataclass
class SpanConfig:
    """Configuration for one service flow run.

    Attributes
    ----------
    source_threshold, sink_threshold, use_threshold : float
        Classification thresholds in [0, 1], as a fraction of each
        raster's finite maximum
    trans_threshold : float
        Minimum transmission exp(-k * cost) for a routed pair to feed the
        flow-path intensity raster
    decay_k : float
        Decay constant k >= 0
    benefit_type : str
        "rival" or "non-rival"
    flow_model : str
        Registered potential model name (see spanflow.core.potentials)
    connectivity : int
        Router neighbourhood, 8 or 4
    neighborhood_radius : int
        Half-width of the NetworkBuilder overlap window
    n_workers : int
        Routing worker-pool size
    timeout_sec : float, optional
        Deadline for the whole run
    seed : int
        Seed for community detection
    metrics : MetricsConfig
        Graph metric options

    Examples
    --------
    >>> config = SpanConfig(decay_k=0.2, benefit_type="non-rival")
    >>> config.metrics.weight_policy
    'inverse_strength'
    """

    source_threshold: float = DEFAULT_SOURCE_THRESHOLD
    sink_threshold: float = DEFAULT_SINK_THRESHOLD
    use_threshold: float = DEFAULT_USE_THRESHOLD
    trans_threshold: float = DEFAULT_TRANS_THRESHOLD
    decay_k: float = DEFAULT_DECAY_K
    benefit_type: str = "rival"
    flow_model: str = "generic"
    connectivity: int = 8
    neighborhood_radius: int = DEFAULT_NEIGHBORHOOD_RADIUS
    n_workers: int = DEFAULT_N_WORKERS
    timeout_sec: Optional[float] = None
    seed: int = DEFAULT_SEED
    metrics: MetricsConfig = field(default_factory=MetricsConfig)

    def __post_init__(self):
        """Validate configuration."""
        # Import here to avoid circular imports
        from spanflow.core.potentials import available_flow_models

        for name in ("source_threshold", "sink_threshold", "use_threshold", "trans_threshold"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"{name} must be in [0, 1], got {value}")

        if self.decay_k < 0:
            raise ValueError(f"decay_k must be non-negative, got {self.decay_k}")
        if self.benefit_type not in BENEFIT_TYPES:
            raise ValueError(
                f"benefit_type must be one of {BENEFIT_TYPES}, got '{self.benefit_type}'"
            )
        if self.flow_model not in available_flow_models():
            raise ValueError(
                f"Unknown flow_model '{self.flow_model}'. "
                f"Available: {', '.join(available_flow_models())}"
            )
        if self.connectivity not in (4, 8):
            raise ValueError(f"connectivity must be 4 or 8, got {self.connectivity}")
        if self.neighborhood_radius < 0:
            raise ValueError("neighborhood_radius must be non-negative")
        if self.n_workers < 1:
            raise ValueError("n_workers must be >= 1")
        if self.timeout_sec is not None and self.timeout_sec <= 0:
            raise ValueError("timeout_sec must be positive")
        if isinstance(self.metrics, dict):
            self.metrics = MetricsConfig(**self.metrics)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> SpanConfig:
        """Create a config from a plain dictionary, rejecting unknown keys."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown configuration keys: {unknown}")

        values = dict(data)
        if "metrics" in values and isinstance(values["metrics"], dict):
            metric_known = {f.name for f in fields(MetricsConfig)}
            metric_unknown = sorted(set(values["metrics"]) - metric_known)
            if metric_unknown:
                raise ValueError(f"Unknown metrics keys: {metric_unknown}")
            values["metrics"] = MetricsConfig(**values["metrics"])
        return cls(**values)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def read_span_config(filepath: Union[str, Path]) -> SpanConfig:
    """Read a run configuration from a JSON file.

    Parameters
    ----------
    filepath : str or Path
        Path to the JSON file

    Returns
    -------
    SpanConfig
    """
    with open(filepath, "r", encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError(f"Configuration file must contain a JSON object: {filepath}")
    return SpanConfig.from_dict(data)


def write_span_config(config: SpanConfig, filepath: Union[str, Path]) -> None:
    """Write a run configuration to a JSON file."""
    filepath = Path(filepath)
    filepath.parent.mkdir(parents=True, exist_ok=True)
    with open(filepath, "w", encoding="utf-8") as f:
        json.dump(config.to_dict(), f, indent=2)
