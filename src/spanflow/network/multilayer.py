"""
Analysis across several service flow graphs.

Layers are graphs built for different services or time steps over the same
node set, so their connection matrices align element-wise.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np
import pandas as pd

from spanflow.core.errors import InputShapeError
from spanflow.core.params import MetricsConfig
from spanflow.network.builder import ServiceFlowGraph
from spanflow.network.metrics import (
    GraphMetrics,
    average_path_length,
    clustering_coefficient,
    degree_centrality,
)
from spanflow.logger import get_logger

logger = get_logger(__name__)

TOPOLOGY_COLUMNS = ["density", "clustering", "avg_path_length", "connectivity"]


def _check_aligned(layers: Sequence[ServiceFlowGraph]) -> None:
    shapes = {layer.connections.shape for layer in layers}
    if len(shapes) > 1:
        raise InputShapeError(f"Layer connection matrices differ in shape: {sorted(shapes)}")


def interlayer_correlation(layers: Sequence[ServiceFlowGraph]) -> np.ndarray:
    """Pearson correlation between flattened connection matrices.

    Returns
    -------
    np.ndarray
        Symmetric [n_layers, n_layers] matrix with a unit diagonal; NaN for
        pairs involving a constant layer
    """
    _check_aligned(layers)
    n_layers = len(layers)
    correlation = np.eye(n_layers)
    flat = [layer.connections.ravel() for layer in layers]
    for i in range(n_layers):
        for j in range(i + 1, n_layers):
            if flat[i].std() == 0 or flat[j].std() == 0:
                value = float("nan")
            else:
                value = float(np.corrcoef(flat[i], flat[j])[0, 1])
            correlation[i, j] = correlation[j, i] = value
    return correlation


def multiplex_degree(layers: Sequence[ServiceFlowGraph], weighted: bool = True) -> np.ndarray:
    """Degree centrality per node averaged over layers."""
    _check_aligned(layers)
    if not layers:
        return np.zeros(0)
    return np.mean([degree_centrality(layer.connections, weighted) for layer in layers], axis=0)


def topology_time_series(
    layers: Sequence[ServiceFlowGraph],
    times: Optional[Sequence[float]] = None,
    config: Optional[MetricsConfig] = None,
) -> pd.DataFrame:
    """Density, clustering, average path length and connectivity per layer.

    Parameters
    ----------
    layers : sequence of ServiceFlowGraph
        Graphs ordered in time
    times : sequence of float, optional
        Time of each layer (default 0, 1, 2, ...)
    config : MetricsConfig, optional
        Weight policy for path lengths

    Returns
    -------
    pd.DataFrame
        One row per layer with the four metrics and a ``<metric>_rate``
        column holding the change from the previous layer per unit time
        (NaN on the first row)
    """
    if times is None:
        times = np.arange(len(layers), dtype=float)
    times = np.asarray(times, dtype=float)
    if len(times) != len(layers):
        raise ValueError(f"times length ({len(times)}) != number of layers ({len(layers)})")
    if np.any(np.diff(times) <= 0):
        raise ValueError("times must be strictly increasing")

    metrics = GraphMetrics(config)
    rows = []
    for layer in layers:
        rows.append({
            "density": metrics.density(layer),
            "clustering": clustering_coefficient(layer.connections),
            "avg_path_length": average_path_length(metrics.shortest_paths(layer)),
            "connectivity": metrics.connectivity(layer),
        })

    df = pd.DataFrame(rows, columns=TOPOLOGY_COLUMNS)
    df.insert(0, "time", times)
    dt = df["time"].diff()
    for col in TOPOLOGY_COLUMNS:
        df[f"{col}_rate"] = df[col].diff() / dt
    logger.debug(f"Topology time series over {len(layers)} layers")
    return df


@dataclass
class MultilayerResult:
    correlation: np.ndarray
    multiplex_centrality: np.ndarray
    topology: pd.DataFrame


def analyze_layers(
    layers: Sequence[ServiceFlowGraph],
    times: Optional[Sequence[float]] = None,
    config: Optional[MetricsConfig] = None,
) -> MultilayerResult:
    """Correlation, multiplex centrality and topology series for ``layers``."""
    config = config if config is not None else MetricsConfig()
    return MultilayerResult(
        correlation=interlayer_correlation(layers),
        multiplex_centrality=multiplex_degree(layers, config.weighted_degree),
        topology=topology_time_series(layers, times, config),
    )
