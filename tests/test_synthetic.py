"""
Tests for synthetic landscape generation.
"""

import numpy as np
import pytest

from spanflow.spatial.synthetic import generate_landscape, point_source_landscape


class TestGenerateLandscape:
    """Seeded reproducibility."""

    def test_same_seed_same_landscape(self):
        a = generate_landscape(shape=(15, 20), seed=3)
        b = generate_landscape(shape=(15, 20), seed=3)
        np.testing.assert_array_equal(a.supply, b.supply)
        np.testing.assert_array_equal(a.resistance, b.resistance)

    def test_different_seeds_differ(self):
        a = generate_landscape(seed=1)
        b = generate_landscape(seed=2)
        assert not np.array_equal(a.supply, b.supply)

    def test_global_state_untouched(self):
        np.random.seed(123)
        expected = np.random.random()
        np.random.seed(123)
        generate_landscape(seed=9)
        assert np.random.random() == expected

    def test_value_ranges(self):
        grid = generate_landscape(shape=(30, 30), resistance_range=(2.0, 4.0))
        assert grid.supply.max() == pytest.approx(1.0)
        assert grid.resistance.min() == pytest.approx(2.0)
        assert grid.resistance.max() == pytest.approx(4.0)
        assert set(np.unique(grid.landcover)) <= {1.0, 2.0, 3.0, 4.0, 5.0}

    def test_barriers(self):
        grid = generate_landscape(shape=(30, 30), barrier_fraction=0.2)
        fraction = np.isinf(grid.resistance).mean()
        assert 0.1 < fraction < 0.3

    def test_invalid_barrier_fraction(self):
        with pytest.raises(ValueError):
            generate_landscape(barrier_fraction=1.0)


class TestPointSourceLandscape:
    def test_corners(self):
        grid = point_source_landscape(shape=(5, 5))
        assert grid.supply[0, 0] == 1.0
        assert grid.demand[4, 4] == 1.0
        assert grid.supply.sum() == 1.0
        np.testing.assert_array_equal(grid.resistance, 1.0)
