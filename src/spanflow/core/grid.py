"""
Grid model and node classification.

This module defines the raster inputs of a service flow run:
- GridModel: equal-shaped supply/demand/resistance rasters plus cell size
- Node / NodeRole: supply and demand nodes instantiated from the rasters
- classify_cells: threshold classification relative to a raster's maximum
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple

import numpy as np

from spanflow.core.constants import DEFAULT_CELL_HEIGHT, DEFAULT_CELL_WIDTH
from spanflow.core.errors import InputShapeError

Point = Tuple[int, int]


class NodeRole(str, Enum):
    SUPPLY = "supply"
    DEMAND = "demand"


@dataclass(frozen=True)
class Node:
    """A supply or demand cell taking part in the flow graph.

    Attributes
    ----------
    id : int
        Index of the node in the graph's connection matrix
    position : tuple of int
        (row, col) grid coordinate
    role : NodeRole
        Supply or demand
    """

    id: int
    position: Point
    role: NodeRole

    @property
    def is_supply(self) -> bool:
        return self.role is NodeRole.SUPPLY


def _as_raster(name: str, values) -> np.ndarray:
    array = np.asarray(values, dtype=float)
    if array.ndim != 2:
        raise InputShapeError(f"{name} raster must be 2-D, got shape {array.shape}")
    return array


@dataclass
class GridModel:
    """Raster inputs for one service flow run.

    All rasters share identical dimensions; NaN marks no-data cells.

    Attributes
    ----------
    supply : np.ndarray
        Service supply strength [rows, cols]
    demand : np.ndarray
        Service demand (use) strength [rows, cols]
    resistance : np.ndarray
        Movement cost per cell, >= 0 (Inf = impassable) [rows, cols]
    landcover : np.ndarray, optional
        Integer landcover classes used by some potential models
    sink : np.ndarray, optional
        Sink strength; sink cells add resistance to passing flow
    cell_width, cell_height : float
        Physical cell size
    """

    supply: np.ndarray
    demand: np.ndarray
    resistance: np.ndarray
    landcover: Optional[np.ndarray] = None
    sink: Optional[np.ndarray] = None
    cell_width: float = DEFAULT_CELL_WIDTH
    cell_height: float = DEFAULT_CELL_HEIGHT

    def __post_init__(self):
        """Validate raster shapes and resistance."""
        self.supply = _as_raster("supply", self.supply)
        self.demand = _as_raster("demand", self.demand)
        self.resistance = _as_raster("resistance", self.resistance)

        rasters = {"supply": self.supply, "demand": self.demand, "resistance": self.resistance}
        if self.landcover is not None:
            self.landcover = _as_raster("landcover", self.landcover)
            rasters["landcover"] = self.landcover
        if self.sink is not None:
            self.sink = _as_raster("sink", self.sink)
            rasters["sink"] = self.sink

        shapes = {name: r.shape for name, r in rasters.items()}
        if len(set(shapes.values())) != 1:
            raise InputShapeError(f"Raster dimensions differ: {shapes}")
        if self.supply.size == 0:
            raise InputShapeError("Rasters must not be empty")

        if np.any(self.resistance < 0):
            raise InputShapeError("Resistance must be >= 0 everywhere (Inf marks impassable)")
        if self.cell_width <= 0 or self.cell_height <= 0:
            raise ValueError("cell_width and cell_height must be positive")

    @property
    def shape(self) -> Tuple[int, int]:
        return self.supply.shape

    def effective_resistance(self, sink_threshold: float) -> np.ndarray:
        """Resistance with normalised sink strength added on sink cells.

        Parameters
        ----------
        sink_threshold : float
            Classification threshold for sink cells

        Returns
        -------
        np.ndarray
            Resistance raster; equal to ``resistance`` when no sink raster
            is present
        """
        if self.sink is None:
            return self.resistance.copy()

        mask = classify_cells(self.sink, sink_threshold)
        peak = _finite_max(self.sink)
        extra = np.zeros(self.shape)
        if peak > 0:
            extra[mask] = self.sink[mask] / peak
        return self.resistance + extra


def _finite_max(raster: np.ndarray) -> float:
    finite = raster[np.isfinite(raster)]
    return float(finite.max()) if finite.size else 0.0


def classify_cells(raster: np.ndarray, threshold: float) -> np.ndarray:
    """Boolean mask of cells at or above ``threshold`` times the raster maximum.

    Cells must also be strictly positive; NaN cells are never classified.

    Parameters
    ----------
    raster : np.ndarray
        Values to classify
    threshold : float
        Fraction in [0, 1] of the finite maximum

    Returns
    -------
    np.ndarray
        Boolean mask with the raster's shape
    """
    peak = _finite_max(raster)
    if peak <= 0:
        return np.zeros(raster.shape, dtype=bool)
    with np.errstate(invalid="ignore"):
        return np.isfinite(raster) & (raster > 0) & (raster / peak >= threshold)


def build_nodes(supply_mask: np.ndarray, demand_mask: np.ndarray) -> List[Node]:
    """Instantiate supply nodes, then demand nodes, each in row-major order."""
    nodes: List[Node] = []
    for role, mask in ((NodeRole.SUPPLY, supply_mask), (NodeRole.DEMAND, demand_mask)):
        for r, c in np.argwhere(mask):
            nodes.append(Node(id=len(nodes), position=(int(r), int(c)), role=role))
    return nodes
