"""
Export of run results to pandas DataFrames.
"""

from __future__ import annotations

from typing import Dict

import numpy as np
import pandas as pd

from spanflow.analysis.pipeline import ResultBundle
from spanflow.network.builder import ServiceFlowGraph


def edges_to_dataframe(graph: ServiceFlowGraph) -> pd.DataFrame:
    """One row per directed connection.

    Columns: source, target, source_row, source_col, target_row,
    target_col, strength.
    """
    rows = []
    for i, j, strength in graph.edges():
        src, dst = graph.nodes[i], graph.nodes[j]
        rows.append({
            "source": i,
            "target": j,
            "source_row": src.position[0],
            "source_col": src.position[1],
            "target_row": dst.position[0],
            "target_col": dst.position[1],
            "strength": strength,
        })
    columns = ["source", "target", "source_row", "source_col", "target_row", "target_col", "strength"]
    return pd.DataFrame(rows, columns=columns)


def nodes_to_dataframe(bundle: ResultBundle) -> pd.DataFrame:
    """Node table with centralities, community and vulnerability."""
    graph = bundle.graph
    metrics = bundle.metrics
    n = graph.n_nodes
    community = (
        metrics.communities.membership if metrics.communities is not None
        else np.full(n, -1)
    )
    data = {
        "node": [node.id for node in graph.nodes],
        "row": [node.position[0] for node in graph.nodes],
        "col": [node.position[1] for node in graph.nodes],
        "role": [node.role.value for node in graph.nodes],
        "degree": metrics.degree,
        "betweenness": metrics.betweenness,
        "eigenvector": metrics.eigenvector,
        "community": community,
        "vulnerability": metrics.vulnerability,
    }
    return pd.DataFrame(data)


def summary_to_dataframe(bundle: ResultBundle) -> pd.DataFrame:
    """Scalar results as a two-column (Metric, Value) table."""
    values: Dict[str, float] = {}
    values.update(bundle.summary.to_dict())
    stats = bundle.flow_statistics
    values.update({
        "n_pairs": stats.n_pairs,
        "n_reachable_pairs": stats.n_reachable,
        "mean_path_length": stats.mean_path_length,
        "max_path_length": stats.max_path_length,
        "mean_pair_intensity": stats.mean_intensity,
        "max_pair_intensity": stats.max_intensity,
    })
    values.update(bundle.metrics.scalars())
    moran = bundle.spatial.moran
    values.update({
        "morans_i": moran.I,
        "morans_i_p_value": moran.p_value,
        "n_hot_spots": bundle.spatial.getis_ord.n_hot,
        "n_cold_spots": bundle.spatial.getis_ord.n_cold,
    })
    return pd.DataFrame({"Metric": list(values), "Value": list(values.values())})


def bottlenecks_to_dataframe(bundle: ResultBundle) -> pd.DataFrame:
    return pd.DataFrame(
        [{"row": b.position[0], "col": b.position[1], "score": b.score} for b in bundle.bottlenecks],
        columns=["row", "col", "score"],
    )


def export_bundle_to_dataframes(bundle: ResultBundle) -> Dict[str, pd.DataFrame]:
    """Export a run to DataFrames.

    Returns
    -------
    dict
        Dictionary of DataFrames:
        - 'nodes': node table
        - 'edges': connection table
        - 'summary': scalar metrics
        - 'bottlenecks': top bottleneck cells
    """
    return {
        "nodes": nodes_to_dataframe(bundle),
        "edges": edges_to_dataframe(bundle.graph),
        "summary": summary_to_dataframe(bundle),
        "bottlenecks": bottlenecks_to_dataframe(bundle),
    }
