"""
spanflow - Service Path Attribution Networks in Python

Routes ecosystem service flow from supply to demand cells across a
resistance raster and characterises the resulting flow structure with
network and spatial statistics.
"""

__version__ = "0.1.0"
__author__ = "spanflow Development Team"

from spanflow.core.params import (
    MetricsConfig,
    SpanConfig,
    read_span_config,
    write_span_config,
)
from spanflow.core.grid import GridModel, Node, NodeRole
from spanflow.core.errors import (
    DeadlineExceeded,
    DegenerateGraphWarning,
    InputShapeError,
    NumericInstabilityError,
    SpanError,
)
from spanflow.core.routing import Path, PathRouter
from spanflow.core.flow import FlowField, FlowQuantifier, FlowSummary
from spanflow.network.builder import NetworkBuilder, ServiceFlowGraph
from spanflow.network.metrics import GraphMetrics, NetworkMetrics
from spanflow.spatial.statistics import SpatialStatistics
from spanflow.analysis.pipeline import ResultBundle, SpanAnalysis

__all__ = [
    # Version
    "__version__",
    "__author__",
    # Configuration
    "SpanConfig",
    "MetricsConfig",
    "read_span_config",
    "write_span_config",
    # Inputs
    "GridModel",
    "Node",
    "NodeRole",
    # Errors
    "SpanError",
    "InputShapeError",
    "NumericInstabilityError",
    "DeadlineExceeded",
    "DegenerateGraphWarning",
    # Components
    "PathRouter",
    "Path",
    "FlowQuantifier",
    "FlowField",
    "FlowSummary",
    "NetworkBuilder",
    "ServiceFlowGraph",
    "GraphMetrics",
    "NetworkMetrics",
    "SpatialStatistics",
    # Orchestration
    "SpanAnalysis",
    "ResultBundle",
]
