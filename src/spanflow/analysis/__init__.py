"""
Run orchestration and result export.
"""

from spanflow.analysis.pipeline import ResultBuilder, ResultBundle, SpanAnalysis
from spanflow.analysis.export import (
    edges_to_dataframe,
    export_bundle_to_dataframes,
    nodes_to_dataframe,
    summary_to_dataframe,
)

__all__ = [
    "ResultBuilder",
    "ResultBundle",
    "SpanAnalysis",
    "edges_to_dataframe",
    "export_bundle_to_dataframes",
    "nodes_to_dataframe",
    "summary_to_dataframe",
]
