"""
Orchestration of a complete service flow run.

Grid -> PathRouter -> FlowQuantifier -> NetworkBuilder -> {GraphMetrics,
SpatialStatistics}. The components are injected into SpanAnalysis, and
the results of each stage are collected by a ResultBuilder into an
immutable ResultBundle.

Example
-------
>>> from spanflow import SpanAnalysis, SpanConfig
>>> from spanflow.spatial.synthetic import generate_landscape
>>>
>>> grid = generate_landscape(shape=(20, 20), seed=7)
>>> bundle = SpanAnalysis(SpanConfig(decay_k=0.05)).run(grid)
>>> bundle.summary.delivery_ratio
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

import numpy as np

from spanflow.core.deadline import Deadline
from spanflow.core.flow import (
    Bottleneck,
    FlowField,
    FlowQuantifier,
    FlowStatistics,
    FlowSummary,
)
from spanflow.core.grid import GridModel
from spanflow.core.params import SpanConfig
from spanflow.core.potentials import Potentials, compute_potentials
from spanflow.core.routing import PathCache, PathRouter
from spanflow.logger import get_logger
from spanflow.network.builder import NetworkBuilder, ServiceFlowGraph
from spanflow.network.metrics import GraphMetrics, NetworkMetrics
from spanflow.spatial.statistics import SpatialReport, SpatialStatistics

logger = get_logger(__name__)

SPATIAL_FIELDS = ("theoretical", "actual", "efficiency", "path_intensity")


@dataclass(frozen=True)
class ResultBundle:
    """Everything a run produces, for presentation and report collaborators.

    Attributes
    ----------
    config : SpanConfig
    potentials : Potentials
    flow : FlowField
        theoretical / actual / efficiency rasters
    summary : FlowSummary
        Run-level totals and ratios
    used_flow : np.ndarray
        Flow absorbed per demand cell
    path_intensity : np.ndarray
        Flow carried along routed paths
    flow_statistics : FlowStatistics
    bottlenecks : tuple of Bottleneck
    graph : ServiceFlowGraph
    metrics : NetworkMetrics
    spatial : SpatialReport
        Statistics over the raster named by ``spatial_field``
    spatial_field : str
    """

    config: SpanConfig
    potentials: Potentials
    flow: FlowField
    summary: FlowSummary
    used_flow: np.ndarray
    path_intensity: np.ndarray
    flow_statistics: FlowStatistics
    bottlenecks: Tuple[Bottleneck, ...]
    graph: ServiceFlowGraph
    metrics: NetworkMetrics
    spatial: SpatialReport
    spatial_field: str = "actual"

    @property
    def theoretical_flow(self) -> np.ndarray:
        return self.flow.theoretical

    @property
    def actual_flow(self) -> np.ndarray:
        return self.flow.actual

    @property
    def flow_efficiency(self) -> np.ndarray:
        return self.flow.efficiency

    def scalar_summary(self) -> Dict[str, float]:
        return self.summary.to_dict()


class ResultBuilder:
    """Collects stage outputs and assembles a ResultBundle.

    Each stage is recorded exactly once; :meth:`build` fails if any stage
    is missing.
    """

    STAGES = ("flow", "graph", "metrics", "spatial")

    def __init__(self, config: SpanConfig):
        self._config = config
        self._parts: Dict[str, dict] = {}

    def _record(self, stage: str, **values) -> ResultBuilder:
        if stage in self._parts:
            raise ValueError(f"Stage '{stage}' has already been recorded")
        self._parts[stage] = values
        return self

    def with_flow(self, potentials: Potentials, flow: FlowField, summary: FlowSummary,
                  used_flow: np.ndarray, path_intensity: np.ndarray,
                  flow_statistics: FlowStatistics, bottlenecks) -> ResultBuilder:
        return self._record(
            "flow",
            potentials=potentials,
            flow=flow,
            summary=summary,
            used_flow=used_flow,
            path_intensity=path_intensity,
            flow_statistics=flow_statistics,
            bottlenecks=tuple(bottlenecks),
        )

    def with_graph(self, graph: ServiceFlowGraph) -> ResultBuilder:
        return self._record("graph", graph=graph)

    def with_metrics(self, metrics: NetworkMetrics) -> ResultBuilder:
        return self._record("metrics", metrics=metrics)

    def with_spatial(self, spatial: SpatialReport, spatial_field: str) -> ResultBuilder:
        return self._record("spatial", spatial=spatial, spatial_field=spatial_field)

    @property
    def missing(self) -> Tuple[str, ...]:
        return tuple(stage for stage in self.STAGES if stage not in self._parts)

    def build(self) -> ResultBundle:
        if self.missing:
            raise ValueError(f"Cannot build result, missing stages: {', '.join(self.missing)}")
        values = {}
        for stage in self.STAGES:
            values.update(self._parts[stage])
        return ResultBundle(config=self._config, **values)


class SpanAnalysis:
    """Runs the full service flow analysis on a GridModel.

    Components left as None are created for each run from ``config``.

    Parameters
    ----------
    config : SpanConfig, optional
    router : PathRouter, optional
    quantifier : FlowQuantifier, optional
    builder : NetworkBuilder, optional
    graph_metrics : GraphMetrics, optional
    spatial : SpatialStatistics, optional
    spatial_field : str
        Raster analysed by the spatial statistics, one of SPATIAL_FIELDS
    """

    def __init__(
        self,
        config: Optional[SpanConfig] = None,
        router: Optional[PathRouter] = None,
        quantifier: Optional[FlowQuantifier] = None,
        builder: Optional[NetworkBuilder] = None,
        graph_metrics: Optional[GraphMetrics] = None,
        spatial: Optional[SpatialStatistics] = None,
        spatial_field: str = "actual",
    ):
        if spatial_field not in SPATIAL_FIELDS:
            raise ValueError(f"spatial_field must be one of {SPATIAL_FIELDS}, got '{spatial_field}'")
        self.config = config if config is not None else SpanConfig()
        self.router = router
        self.quantifier = quantifier
        self.builder = builder
        self.graph_metrics = graph_metrics
        self.spatial = spatial
        self.spatial_field = spatial_field

    def run(self, grid: GridModel) -> ResultBundle:
        """Execute every stage and return the assembled bundle.

        Raises
        ------
        DeadlineExceeded
            If ``config.timeout_sec`` elapses before the run completes
        """
        config = self.config
        deadline = Deadline(config.timeout_sec)

        router = self.router or PathRouter(config.connectivity, cache=PathCache(), deadline=deadline)
        router.cache.clear()
        quantifier = self.quantifier or FlowQuantifier.from_config(config)
        builder = self.builder or NetworkBuilder(config.neighborhood_radius, deadline=deadline)
        graph_metrics = self.graph_metrics or GraphMetrics(config.metrics, seed=config.seed, deadline=deadline)
        spatial = self.spatial or SpatialStatistics()

        logger.info(f"Starting service flow run on {grid.shape[0]}x{grid.shape[1]} grid")
        result = ResultBuilder(config)

        # Flow
        potentials = compute_potentials(grid, config)
        resistance = grid.effective_resistance(config.sink_threshold)
        cost, nearest = router.cost_distance(resistance, potentials.demand_mask)
        flow = quantifier.quantify(potentials, cost, nearest)
        deadline.check("flow quantification")

        sources = [tuple(int(v) for v in p) for p in np.argwhere(potentials.supply_mask)]
        destinations = [tuple(int(v) for v in p) for p in np.argwhere(potentials.demand_mask)]
        paths = router.route_all(sources, destinations, resistance, n_workers=config.n_workers)

        used = quantifier.used_flow(flow, potentials, paths)
        intensity = quantifier.path_intensity(potentials, paths)
        result.with_flow(
            potentials=potentials,
            flow=flow,
            summary=quantifier.summarize(flow, used),
            used_flow=used,
            path_intensity=intensity,
            flow_statistics=quantifier.flow_statistics(potentials, paths),
            bottlenecks=quantifier.identify_bottlenecks(potentials, paths, resistance),
        )

        # Graph
        graph = builder.build(intensity, potentials.supply_mask, potentials.demand_mask)
        result.with_graph(graph)
        deadline.check("network construction")

        # Graph metrics and spatial statistics share no mutable state
        field_raster = {
            "theoretical": flow.theoretical,
            "actual": flow.actual,
            "efficiency": flow.efficiency,
            "path_intensity": intensity,
        }[self.spatial_field]
        with ThreadPoolExecutor(max_workers=2) as executor:
            metrics_future = executor.submit(graph_metrics.compute, graph)
            spatial_future = executor.submit(spatial.compute, field_raster)
            result.with_metrics(metrics_future.result())
            result.with_spatial(spatial_future.result(), self.spatial_field)

        logger.info(f"Run finished in {deadline.elapsed:.2f}s")
        return result.build()
