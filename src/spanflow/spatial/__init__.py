"""
Spatial statistics over rasters and synthetic landscape generation.
"""

from spanflow.spatial.statistics import (
    GetisOrdResult,
    MoranResult,
    SpatialReport,
    SpatialStatistics,
    getis_ord_gi_star,
    morans_i,
    queen_weights,
)
from spanflow.spatial.synthetic import generate_landscape, point_source_landscape

__all__ = [
    "GetisOrdResult",
    "MoranResult",
    "SpatialReport",
    "SpatialStatistics",
    "getis_ord_gi_star",
    "morans_i",
    "queen_weights",
    "generate_landscape",
    "point_source_landscape",
]
