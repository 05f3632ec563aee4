"""
Synthetic landscapes for tests and demonstrations.

Every generator takes an explicit seed and draws from its own
``numpy.random.Generator``; global random state is never touched.
"""

from __future__ import annotations

from typing import Optional, Tuple

import numpy as np
from scipy import ndimage

from spanflow.core.constants import DEFAULT_CELL_HEIGHT, DEFAULT_CELL_WIDTH, DEFAULT_SEED
from spanflow.core.grid import GridModel, Point


def _gaussian_patches(rng: np.random.Generator, shape: Tuple[int, int], n_patches: int,
                      radius: float) -> np.ndarray:
    """Sum of Gaussian bumps at random centres, scaled to a maximum of 1."""
    rows, cols = shape
    yy, xx = np.mgrid[0:rows, 0:cols]
    surface = np.zeros(shape)
    for _ in range(n_patches):
        cy, cx = rng.uniform(0, rows), rng.uniform(0, cols)
        amplitude = rng.uniform(0.5, 1.0)
        surface += amplitude * np.exp(-((yy - cy) ** 2 + (xx - cx) ** 2) / (2 * radius ** 2))
    peak = surface.max()
    return surface / peak if peak > 0 else surface


def generate_landscape(
    shape: Tuple[int, int] = (50, 50),
    seed: int = DEFAULT_SEED,
    n_supply_patches: int = 3,
    n_demand_patches: int = 3,
    patch_radius: float = 4.0,
    resistance_range: Tuple[float, float] = (1.0, 5.0),
    barrier_fraction: float = 0.0,
    cell_width: float = DEFAULT_CELL_WIDTH,
    cell_height: float = DEFAULT_CELL_HEIGHT,
) -> GridModel:
    """Random supply/demand patches over a smooth resistance surface.

    Parameters
    ----------
    shape : tuple of int
        (rows, cols)
    seed : int
        Seed for the private random generator
    n_supply_patches, n_demand_patches : int
        Number of Gaussian patches in each raster
    patch_radius : float
        Patch standard deviation in cells
    resistance_range : tuple of float
        (min, max) of the smoothed resistance surface
    barrier_fraction : float
        Fraction of cells made impassable (Inf resistance)
    cell_width, cell_height : float
        Physical cell size

    Returns
    -------
    GridModel
        Includes a landcover raster with classes 1-5
    """
    if not 0.0 <= barrier_fraction < 1.0:
        raise ValueError("barrier_fraction must be in [0, 1)")
    low, high = resistance_range
    if low < 0 or high < low:
        raise ValueError(f"Invalid resistance_range {resistance_range}")

    rng = np.random.default_rng(seed)
    supply = _gaussian_patches(rng, shape, n_supply_patches, patch_radius)
    demand = _gaussian_patches(rng, shape, n_demand_patches, patch_radius)

    noise = ndimage.gaussian_filter(rng.random(shape), sigma=2.0)
    span = noise.max() - noise.min()
    noise = (noise - noise.min()) / span if span > 0 else np.zeros(shape)
    resistance = low + (high - low) * noise

    if barrier_fraction > 0:
        resistance[rng.random(shape) < barrier_fraction] = np.inf

    # Landcover classes follow the resistance bands: forest is easiest to cross
    landcover = 1 + np.minimum((noise * 5).astype(int), 4)

    return GridModel(
        supply=supply,
        demand=demand,
        resistance=resistance,
        landcover=landcover.astype(float),
        cell_width=cell_width,
        cell_height=cell_height,
    )


def point_source_landscape(
    shape: Tuple[int, int] = (5, 5),
    supply_cell: Point = (0, 0),
    demand_cell: Optional[Point] = None,
    supply_value: float = 1.0,
    demand_value: float = 1.0,
    resistance: float = 1.0,
) -> GridModel:
    """Single supply cell and single demand cell on a uniform resistance grid.

    The demand cell defaults to the opposite corner.
    """
    rows, cols = shape
    if demand_cell is None:
        demand_cell = (rows - 1, cols - 1)
    supply = np.zeros(shape)
    demand = np.zeros(shape)
    supply[supply_cell] = supply_value
    demand[demand_cell] = demand_value
    return GridModel(supply=supply, demand=demand, resistance=np.full(shape, float(resistance)))
