"""
Tests for run orchestration and export.
"""

import dataclasses

import numpy as np
import pytest

from spanflow.analysis.export import (
    edges_to_dataframe,
    export_bundle_to_dataframes,
    nodes_to_dataframe,
    summary_to_dataframe,
)
from spanflow.analysis.pipeline import ResultBuilder, SpanAnalysis
from spanflow.core.deadline import Deadline
from spanflow.core.errors import DeadlineExceeded
from spanflow.core.flow import FlowQuantifier
from spanflow.core.params import SpanConfig
from spanflow.core.routing import PathRouter
from spanflow.spatial.synthetic import generate_landscape, point_source_landscape


@pytest.fixture(scope="module")
def bundle():
    grid = generate_landscape(shape=(14, 14), seed=11)
    config = SpanConfig(decay_k=0.05, source_threshold=0.5, use_threshold=0.5, n_workers=2)
    return SpanAnalysis(config).run(grid)


class TestSpanAnalysis:
    """End-to-end runs."""

    def test_bundle_contents(self, bundle):
        assert bundle.theoretical_flow.shape == (14, 14)
        assert bundle.actual_flow.shape == (14, 14)
        assert bundle.flow_efficiency.shape == (14, 14)
        assert bundle.graph.n_nodes == int(bundle.potentials.supply_mask.sum() + bundle.potentials.demand_mask.sum())
        assert bundle.metrics.n_nodes == bundle.graph.n_nodes
        assert bundle.spatial.getis_ord.gi.shape == (14, 14)

    def test_conservation(self, bundle):
        summary = bundle.summary
        assert summary.total_actual + summary.total_blocked == pytest.approx(summary.total_theoretical)
        assert summary.total_theoretical > 0

    def test_efficiency_bounded(self, bundle):
        assert np.all((bundle.flow_efficiency >= 0) & (bundle.flow_efficiency <= 1))

    def test_bundle_is_frozen(self, bundle):
        with pytest.raises(dataclasses.FrozenInstanceError):
            bundle.graph = None

    def test_scalar_summary(self, bundle):
        scalars = bundle.scalar_summary()
        for key in ("total_theoretical", "total_actual", "total_used", "total_blocked",
                    "delivery_ratio", "use_ratio", "block_ratio"):
            assert key in scalars

    def test_single_pair_scenario(self):
        config = SpanConfig(decay_k=0.1, connectivity=4)
        result = SpanAnalysis(config).run(point_source_landscape())

        assert result.actual_flow[0, 0] == pytest.approx(np.exp(-0.8))
        assert result.summary.total_blocked == pytest.approx(0.551, abs=1e-3)
        assert result.graph.n_nodes == 2
        assert result.graph.n_edges == 1

    @pytest.mark.filterwarnings("ignore::UserWarning")
    def test_no_demand_is_not_an_error(self):
        grid = point_source_landscape()
        grid.demand[:] = 0.0
        result = SpanAnalysis().run(grid)

        assert result.summary.total_theoretical == 0.0
        assert result.graph.n_edges == 0
        assert result.metrics.density == 0.0

    def test_injected_quantifier(self):
        grid = generate_landscape(shape=(10, 10), seed=2)
        analysis = SpanAnalysis(SpanConfig(), quantifier=FlowQuantifier(decay_k=0.0))
        result = analysis.run(grid)
        assert result.summary.delivery_ratio == pytest.approx(1.0)

    def test_deadline_propagates(self):
        deadline = Deadline()
        deadline.cancel()
        grid = point_source_landscape(shape=(40, 40))
        analysis = SpanAnalysis(router=PathRouter(deadline=deadline))
        with pytest.raises(DeadlineExceeded):
            analysis.run(grid)

    def test_spatial_field_choice(self):
        with pytest.raises(ValueError):
            SpanAnalysis(spatial_field="supply")

    def test_repeated_runs_identical(self):
        grid = generate_landscape(shape=(10, 10), seed=5)
        analysis = SpanAnalysis(SpanConfig(decay_k=0.05))
        first = analysis.run(grid)
        second = analysis.run(grid)

        np.testing.assert_array_equal(first.actual_flow, second.actual_flow)
        np.testing.assert_array_equal(
            first.metrics.communities.membership, second.metrics.communities.membership
        )


class TestResultBuilder:
    def test_missing_stage(self):
        builder = ResultBuilder(SpanConfig())
        assert builder.missing == ("flow", "graph", "metrics", "spatial")
        with pytest.raises(ValueError, match="missing stages"):
            builder.build()

    def test_stage_recorded_once(self, bundle):
        builder = ResultBuilder(SpanConfig())
        builder.with_graph(bundle.graph)
        with pytest.raises(ValueError):
            builder.with_graph(bundle.graph)


class TestExport:
    """DataFrame export."""

    def test_nodes(self, bundle):
        df = nodes_to_dataframe(bundle)
        assert len(df) == bundle.graph.n_nodes
        assert set(df["role"]) <= {"supply", "demand"}
        assert {"degree", "betweenness", "eigenvector", "community", "vulnerability"} <= set(df.columns)

    def test_edges(self, bundle):
        df = edges_to_dataframe(bundle.graph)
        assert len(df) == bundle.graph.n_edges
        assert (df["strength"] > 0).all()

    def test_summary(self, bundle):
        df = summary_to_dataframe(bundle)
        values = dict(zip(df["Metric"], df["Value"]))
        assert values["total_theoretical"] == pytest.approx(bundle.summary.total_theoretical)
        assert values["density"] == pytest.approx(bundle.metrics.density)
        assert "morans_i" in values

    def test_all_tables(self, bundle):
        tables = export_bundle_to_dataframes(bundle)
        assert set(tables) == {"nodes", "edges", "summary", "bottlenecks"}
        assert len(tables["bottlenecks"]) <= 5
