"""
Service potential models.

A flow model turns the raw rasters of a GridModel into the supply potential
and demand capacity that feed the generic flow engine. Models are looked up
by the ``flow_model`` name of a SpanConfig.

Built-in models
---------------
generic
    Supply and demand rasters are used unchanged.
carbon
    Supply is weighted by a vegetation factor derived from landcover.
proximity
    Demand capacity decays exponentially with distance to the nearest
    supply cell.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Dict, List, Tuple

import numpy as np
from scipy import ndimage

from spanflow.core.grid import GridModel, classify_cells
from spanflow.logger import get_logger

if TYPE_CHECKING:
    from spanflow.core.params import SpanConfig

logger = get_logger(__name__)

PotentialModel = Callable[
    [GridModel, np.ndarray, np.ndarray, "SpanConfig"], Tuple[np.ndarray, np.ndarray]
]

# Vegetation factor per landcover class:
# 1 forest, 2 grassland, 3 cropland, 4 water, 5 built-up
VEGETATION_FACTORS = {1: 1.0, 2: 0.6, 3: 0.4, 4: 0.0, 5: 0.1}

_FLOW_MODELS: Dict[str, PotentialModel] = {}


def register_flow_model(name: str, model: PotentialModel, overwrite: bool = False) -> None:
    """Register a potential model under ``name``.

    Parameters
    ----------
    name : str
        Key used as ``SpanConfig.flow_model``
    model : callable
        ``model(grid, supply_mask, demand_mask, config)`` returning
        ``(supply_potential, demand_capacity)`` rasters
    overwrite : bool
        Replace an existing registration instead of raising
    """
    if not callable(model):
        raise TypeError(f"Flow model '{name}' must be callable")
    if name in _FLOW_MODELS and not overwrite:
        raise ValueError(f"Flow model '{name}' is already registered")
    _FLOW_MODELS[name] = model


def available_flow_models() -> List[str]:
    return sorted(_FLOW_MODELS)


def get_flow_model(name: str) -> PotentialModel:
    try:
        return _FLOW_MODELS[name]
    except KeyError:
        raise ValueError(
            f"Unknown flow_model '{name}'. Available: {', '.join(available_flow_models())}"
        ) from None


def _masked(raster: np.ndarray, mask: np.ndarray) -> np.ndarray:
    out = np.zeros(raster.shape)
    out[mask] = raster[mask]
    return np.nan_to_num(out, nan=0.0, posinf=0.0, neginf=0.0)


def generic_model(grid, supply_mask, demand_mask, config):
    return _masked(grid.supply, supply_mask), _masked(grid.demand, demand_mask)


def carbon_model(grid, supply_mask, demand_mask, config):
    """Supply weighted by landcover vegetation factor (1.0 without landcover)."""
    supply, capacity = generic_model(grid, supply_mask, demand_mask, config)
    if grid.landcover is None:
        logger.debug("carbon model: no landcover raster, vegetation factor 1.0")
        return supply, capacity

    factor = np.ones(grid.shape)
    for landcover_class, value in VEGETATION_FACTORS.items():
        factor[grid.landcover == landcover_class] = value
    return supply * factor, capacity


def proximity_model(grid, supply_mask, demand_mask, config):
    """Demand capacity decayed by straight-line distance to the nearest supply."""
    supply, capacity = generic_model(grid, supply_mask, demand_mask, config)
    if not supply_mask.any():
        return supply, capacity

    distance = ndimage.distance_transform_edt(~supply_mask)
    return supply, capacity * np.exp(-config.decay_k * distance)


register_flow_model("generic", generic_model)
register_flow_model("carbon", carbon_model)
register_flow_model("proximity", proximity_model)


# ============================================================================
# POTENTIAL FIELDS
# ============================================================================


@dataclass
class Potentials:
    """Classified cells and potential rasters for one run.

    Attributes
    ----------
    supply_mask, demand_mask : np.ndarray
        Boolean classification masks
    supply_potential : np.ndarray
        Model-weighted supply, zero outside supply cells
    demand_capacity : np.ndarray
        Model-weighted demand, zero outside demand cells
    demand_potential : np.ndarray
        Capacity of the nearest demand cell by straight-line distance,
        defined on every cell
    """

    supply_mask: np.ndarray
    demand_mask: np.ndarray
    supply_potential: np.ndarray
    demand_capacity: np.ndarray
    demand_potential: np.ndarray


def project_nearest(values: np.ndarray, mask: np.ndarray,
                    sampling: Tuple[float, float] = (1.0, 1.0)) -> np.ndarray:
    """Give every cell the value of its nearest masked cell.

    Returns zeros when the mask is empty.
    """
    if not mask.any():
        return np.zeros(values.shape)
    _, indices = ndimage.distance_transform_edt(
        ~mask, sampling=sampling, return_indices=True
    )
    return values[indices[0], indices[1]]


def compute_potentials(grid: GridModel, config: SpanConfig) -> Potentials:
    """Classify cells and evaluate the configured potential model.

    Parameters
    ----------
    grid : GridModel
        Raster inputs
    config : SpanConfig
        Run configuration (thresholds and ``flow_model``)

    Returns
    -------
    Potentials
    """
    supply_mask = classify_cells(grid.supply, config.source_threshold)
    demand_mask = classify_cells(grid.demand, config.use_threshold)

    model = get_flow_model(config.flow_model)
    supply_potential, demand_capacity = model(grid, supply_mask, demand_mask, config)

    demand_potential = project_nearest(
        demand_capacity, demand_mask, sampling=(grid.cell_height, grid.cell_width)
    )

    logger.info(
        f"Potentials ({config.flow_model}): {int(supply_mask.sum())} supply cells, "
        f"{int(demand_mask.sum())} demand cells"
    )
    return Potentials(
        supply_mask=supply_mask,
        demand_mask=demand_mask,
        supply_potential=supply_potential,
        demand_capacity=demand_capacity,
        demand_potential=demand_potential,
    )
