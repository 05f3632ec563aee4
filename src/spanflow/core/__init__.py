"""
Core module for spanflow.

Contains the grid model, configuration, least-cost routing and flow
quantification.
"""

from spanflow.core.deadline import Deadline
from spanflow.core.errors import (
    DeadlineExceeded,
    DegenerateGraphWarning,
    InputShapeError,
    NumericInstabilityError,
    SpanError,
)
from spanflow.core.params import (
    MetricsConfig,
    SpanConfig,
    read_span_config,
    write_span_config,
)
from spanflow.core.grid import GridModel, Node, NodeRole, build_nodes, classify_cells
from spanflow.core.potentials import (
    Potentials,
    available_flow_models,
    compute_potentials,
    register_flow_model,
)
from spanflow.core.routing import Path, PathCache, PathRouter
from spanflow.core.flow import (
    Bottleneck,
    FlowField,
    FlowQuantifier,
    FlowStatistics,
    FlowSummary,
)

__all__ = [
    "Deadline",
    "SpanError",
    "InputShapeError",
    "NumericInstabilityError",
    "DeadlineExceeded",
    "DegenerateGraphWarning",
    "SpanConfig",
    "MetricsConfig",
    "read_span_config",
    "write_span_config",
    "GridModel",
    "Node",
    "NodeRole",
    "build_nodes",
    "classify_cells",
    "Potentials",
    "available_flow_models",
    "compute_potentials",
    "register_flow_model",
    "Path",
    "PathCache",
    "PathRouter",
    "Bottleneck",
    "FlowField",
    "FlowQuantifier",
    "FlowStatistics",
    "FlowSummary",
]
