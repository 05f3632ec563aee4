"""
Service flow networks: construction, topology metrics, communities,
stability and multilayer analysis.
"""

from spanflow.network.builder import NetworkBuilder, ServiceFlowGraph
from spanflow.network.metrics import (
    GraphMetrics,
    NetworkMetrics,
    UnionFind,
    betweenness_centrality,
    clustering_coefficient,
    connected_components,
    degree_centrality,
    eigenvector_centrality,
    floyd_warshall,
    global_efficiency,
)
from spanflow.network.communities import CommunityDetector, CommunityPartition, modularity
from spanflow.network.stability import (
    RobustnessResult,
    network_robustness,
    network_vulnerability,
)
from spanflow.network.multilayer import (
    MultilayerResult,
    analyze_layers,
    interlayer_correlation,
    topology_time_series,
)

__all__ = [
    "NetworkBuilder",
    "ServiceFlowGraph",
    "GraphMetrics",
    "NetworkMetrics",
    "UnionFind",
    "betweenness_centrality",
    "clustering_coefficient",
    "connected_components",
    "degree_centrality",
    "eigenvector_centrality",
    "floyd_warshall",
    "global_efficiency",
    "CommunityDetector",
    "CommunityPartition",
    "modularity",
    "RobustnessResult",
    "network_robustness",
    "network_vulnerability",
    "MultilayerResult",
    "analyze_layers",
    "interlayer_correlation",
    "topology_time_series",
]
