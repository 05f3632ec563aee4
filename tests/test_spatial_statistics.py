"""
Tests for Moran's I and Getis-Ord Gi*.
"""

import numpy as np
import pytest

from spanflow.core.constants import SIGNIFICANCE_ALPHA
from spanflow.core.errors import InputShapeError
from spanflow.spatial.statistics import (
    MoranResult,
    SpatialStatistics,
    getis_ord_gi_star,
    morans_i,
    queen_weights,
)


def brute_force_gi(raster, window):
    """Direct evaluation of Gi* cell by cell."""
    valid = np.isfinite(raster)
    values = raster[valid]
    n = values.size
    mean = values.mean()
    std = values.std()
    half = window // 2
    rows, cols = raster.shape
    gi = np.full(raster.shape, np.nan)
    for r in range(rows):
        for c in range(cols):
            if not valid[r, c]:
                continue
            block = raster[max(0, r - half):r + half + 1, max(0, c - half):c + half + 1]
            block = block[np.isfinite(block)]
            w = block.size
            denom = std * np.sqrt((n * w - w ** 2) / (n - 1))
            gi[r, c] = (block.sum() - mean * w) / denom if denom > 0 else 0.0
    return gi


class TestQueenWeights:
    def test_neighbour_counts(self):
        W = queen_weights(np.ones((3, 3), dtype=bool))
        degree = np.asarray(W.sum(axis=1)).ravel()
        np.testing.assert_array_equal(degree, [3, 5, 3, 5, 8, 5, 3, 5, 3])
        assert (W != W.T).nnz == 0

    def test_invalid_cells_excluded(self):
        valid = np.ones((3, 3), dtype=bool)
        valid[1, 1] = False
        W = queen_weights(valid)
        assert W.shape == (8, 8)
        assert W.sum() == 24

    def test_single_row(self):
        W = queen_weights(np.ones((1, 4), dtype=bool))
        assert W.sum() == 6


class TestMoransI:
    """Global autocorrelation."""

    def test_shuffled_raster_converges_to_expectation(self):
        rng = np.random.default_rng(0)
        values = np.arange(100, dtype=float)
        trials = [morans_i(rng.permutation(values).reshape(10, 10)).I for _ in range(300)]
        assert np.mean(trials) == pytest.approx(-1 / 99, abs=0.01)

    def test_gradient_is_positive_and_significant(self):
        raster = np.add.outer(np.arange(10.0), np.arange(10.0))
        result = morans_i(raster)

        assert result.I > 0.5
        assert result.z_score > 1.96
        assert result.is_significant()
        assert result.expected == pytest.approx(-1 / 99)

    def test_alternating_columns_negative(self):
        raster = np.tile([0.0, 1.0], (8, 4))
        assert morans_i(raster).I < 0

    def test_constant_raster(self):
        result = morans_i(np.full((6, 6), 3.7))
        assert np.isnan(result.I)
        assert np.isnan(result.p_value)
        assert not result.is_significant()

    def test_significance_uses_default_alpha(self):
        def result(p_value):
            return MoranResult(I=0.2, expected=-0.01, variance=0.01, z_score=2.0, p_value=p_value, n=100)

        assert SIGNIFICANCE_ALPHA == 0.05
        assert result(0.04).is_significant()
        assert not result(0.06).is_significant()
        assert result(0.06).is_significant(alpha=0.1)

    def test_nan_cells_ignored(self):
        raster = np.add.outer(np.arange(6.0), np.arange(6.0))
        raster[2, 3] = np.nan
        result = morans_i(raster)
        assert result.n == 35
        assert np.isfinite(result.I)

    def test_p_value_range(self):
        rng = np.random.default_rng(1)
        result = morans_i(rng.random((12, 12)))
        assert 0.0 <= result.p_value <= 1.0
        assert result.variance > 0

    def test_single_cell(self):
        result = morans_i(np.ones((1, 1)))
        assert result.n == 1
        assert np.isnan(result.I)

    def test_rejects_1d(self):
        with pytest.raises(InputShapeError):
            morans_i(np.arange(5.0))


class TestGetisOrd:
    """Local hot and cold spots."""

    def test_constant_raster_has_no_hotspots(self):
        result = getis_ord_gi_star(np.full((10, 10), 3.7))

        assert result.n_hot == 0
        assert result.n_cold == 0
        np.testing.assert_array_equal(result.gi, 0.0)

    def test_matches_brute_force(self):
        rng = np.random.default_rng(2)
        raster = rng.random((9, 11))
        raster[4, 4] = np.nan
        result = getis_ord_gi_star(raster, window=5)
        np.testing.assert_allclose(result.gi, brute_force_gi(raster, 5), equal_nan=True)

    def test_hot_block(self):
        raster = np.zeros((20, 20))
        raster[8:13, 8:13] = 10.0
        result = getis_ord_gi_star(raster)

        assert result.hot_spots[10, 10]
        assert result.gi[10, 10] > 1.96
        assert result.n_cold == 0
        assert not result.hot_spots[0, 0]

    def test_cold_block(self):
        raster = np.full((20, 20), 10.0)
        raster[8:13, 8:13] = 0.0
        result = getis_ord_gi_star(raster)
        assert result.cold_spots[10, 10]

    def test_nan_cells(self):
        raster = np.ones((5, 5))
        raster[0, 0] = np.nan
        raster[2, 2] = 5.0
        result = getis_ord_gi_star(raster, window=3)
        assert np.isnan(result.gi[0, 0])
        assert not result.hot_spots[0, 0]

    def test_even_window_rejected(self):
        with pytest.raises(ValueError):
            getis_ord_gi_star(np.ones((5, 5)), window=4)


class TestSpatialStatistics:
    def test_compute_report(self):
        raster = np.add.outer(np.arange(8.0), np.arange(8.0))
        report = SpatialStatistics(gi_window=3).compute(raster)

        assert report.moran.I > 0
        assert report.getis_ord.window == 3
        assert report.getis_ord.gi.shape == raster.shape
