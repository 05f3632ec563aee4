"""
Tests for the grid model and potential models.
"""

import numpy as np
import pytest

from spanflow.core.errors import InputShapeError
from spanflow.core.grid import GridModel, classify_cells
from spanflow.core.params import SpanConfig
from spanflow.core.potentials import (
    available_flow_models,
    compute_potentials,
    project_nearest,
    register_flow_model,
)


def simple_grid(**kwargs):
    shape = (4, 4)
    supply = np.zeros(shape)
    demand = np.zeros(shape)
    supply[0, 0] = 2.0
    demand[3, 3] = 1.0
    defaults = dict(supply=supply, demand=demand, resistance=np.ones(shape))
    defaults.update(kwargs)
    return GridModel(**defaults)


class TestGridModelValidation:
    """Fail-fast input checks."""

    def test_shape_mismatch(self):
        with pytest.raises(InputShapeError):
            GridModel(supply=np.zeros((3, 3)), demand=np.zeros((3, 4)), resistance=np.ones((3, 3)))

    def test_optional_raster_shape(self):
        with pytest.raises(InputShapeError):
            simple_grid(landcover=np.ones((2, 2)))

    def test_not_2d(self):
        with pytest.raises(InputShapeError):
            GridModel(supply=np.zeros(4), demand=np.zeros(4), resistance=np.ones(4))

    def test_negative_resistance(self):
        resistance = np.ones((4, 4))
        resistance[1, 1] = -0.5
        with pytest.raises(InputShapeError):
            simple_grid(resistance=resistance)

    def test_input_shape_error_is_value_error(self):
        with pytest.raises(ValueError):
            GridModel(supply=np.zeros((2, 2)), demand=np.zeros((3, 3)), resistance=np.ones((2, 2)))

    def test_infinite_resistance_allowed(self):
        resistance = np.ones((4, 4))
        resistance[2, 2] = np.inf
        assert simple_grid(resistance=resistance).shape == (4, 4)

    def test_cell_size(self):
        with pytest.raises(ValueError):
            simple_grid(cell_width=0.0)


class TestClassification:
    def test_threshold_relative_to_max(self):
        raster = np.array([[0.0, 0.05, 0.1], [0.5, 1.0, np.nan]])
        mask = classify_cells(raster, 0.1)
        np.testing.assert_array_equal(mask, [[False, False, True], [True, True, False]])

    def test_zero_threshold_still_requires_positive(self):
        mask = classify_cells(np.array([[0.0, 1.0]]), 0.0)
        np.testing.assert_array_equal(mask, [[False, True]])

    def test_all_zero(self):
        assert not classify_cells(np.zeros((3, 3)), 0.1).any()


class TestSinkResistance:
    def test_sink_adds_normalised_strength(self):
        sink = np.zeros((4, 4))
        sink[1, 1] = 4.0
        sink[2, 2] = 2.0
        grid = simple_grid(sink=sink)
        effective = grid.effective_resistance(sink_threshold=0.1)

        assert effective[1, 1] == pytest.approx(2.0)
        assert effective[2, 2] == pytest.approx(1.5)
        assert effective[0, 0] == 1.0

    def test_no_sink(self):
        grid = simple_grid()
        np.testing.assert_array_equal(grid.effective_resistance(0.1), grid.resistance)


class TestPotentials:
    """Potential model registry."""

    def test_builtin_models(self):
        assert {"generic", "carbon", "proximity"} <= set(available_flow_models())

    def test_generic_projection(self):
        potentials = compute_potentials(simple_grid(), SpanConfig())

        assert potentials.supply_potential[0, 0] == 2.0
        assert potentials.supply_potential.sum() == 2.0
        # Every cell sees the capacity of its nearest demand cell
        np.testing.assert_array_equal(potentials.demand_potential, 1.0)

    def test_carbon_uses_landcover(self):
        landcover = np.full((4, 4), 4.0)
        landcover[0, 0] = 1.0
        grid = simple_grid(landcover=landcover)
        potentials = compute_potentials(grid, SpanConfig(flow_model="carbon"))
        assert potentials.supply_potential[0, 0] == pytest.approx(2.0)

        landcover[0, 0] = 3.0
        potentials = compute_potentials(grid, SpanConfig(flow_model="carbon"))
        assert potentials.supply_potential[0, 0] == pytest.approx(0.8)

    def test_carbon_without_landcover(self):
        potentials = compute_potentials(simple_grid(), SpanConfig(flow_model="carbon"))
        assert potentials.supply_potential[0, 0] == pytest.approx(2.0)

    def test_proximity_decays_with_distance(self):
        demand = np.zeros((4, 4))
        demand[0, 1] = 1.0
        demand[3, 3] = 1.0
        grid = simple_grid(demand=demand)
        potentials = compute_potentials(grid, SpanConfig(flow_model="proximity", decay_k=0.5))

        assert potentials.demand_capacity[0, 1] == pytest.approx(np.exp(-0.5))
        assert potentials.demand_capacity[3, 3] == pytest.approx(np.exp(-0.5 * np.hypot(3, 3)))

    def test_register_custom_model(self):
        def doubled(grid, supply_mask, demand_mask, config):
            return np.where(supply_mask, 2 * grid.supply, 0.0), np.where(demand_mask, grid.demand, 0.0)

        register_flow_model("doubled-test", doubled, overwrite=True)
        potentials = compute_potentials(simple_grid(), SpanConfig(flow_model="doubled-test"))
        assert potentials.supply_potential[0, 0] == 4.0

    def test_duplicate_registration(self):
        with pytest.raises(ValueError):
            register_flow_model("generic", lambda *args: None)

    def test_project_nearest_empty_mask(self):
        values = np.ones((3, 3))
        np.testing.assert_array_equal(project_nearest(values, np.zeros((3, 3), dtype=bool)), 0.0)
