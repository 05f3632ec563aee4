"""
Least-cost routing over a resistance raster.

Movement is 8-connected by default (4-connected optionally). Stepping into
a cell costs that cell's resistance; the start cell is not charged and no
diagonal distance scaling is applied. Cells with Inf or NaN resistance
cannot be entered. An unreachable destination is a normal outcome and is
reported as an empty Path with infinite cost.

The search is A* with a zero heuristic, which makes it Dijkstra's
algorithm and keeps it optimal for any non-negative resistance. Ties are
broken by discovery order so results are deterministic.
"""

from __future__ import annotations

import heapq
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np

from spanflow.core.constants import DEFAULT_N_WORKERS, NEIGHBORS_4, NEIGHBORS_8
from spanflow.core.deadline import Deadline
from spanflow.core.grid import Point
from spanflow.logger import get_logger

logger = get_logger(__name__)

# Heap pops between deadline checks
_DEADLINE_STRIDE = 1024

Heuristic = Callable[[Point, Point], float]


def zero_heuristic(cell: Point, goal: Point) -> float:
    return 0.0


@dataclass(frozen=True)
class Path:
    """Ordered cells from source to destination with accumulated cost.

    ``points`` is empty and ``cost`` is Inf when no route exists.
    """

    points: Tuple[Point, ...]
    cost: float

    @property
    def reachable(self) -> bool:
        return bool(self.points) and np.isfinite(self.cost)

    def __len__(self) -> int:
        return len(self.points)


UNREACHABLE = Path(points=(), cost=float("inf"))


class PathCache:
    """Read-through cache of paths keyed by (source, destination).

    Paths are only valid for the resistance raster they were routed on.
    :meth:`bind` keeps a copy of that raster and drops every cached path
    when a different raster (by shape or value) is bound. Shared by
    routing workers within one run; all access is locked.
    """

    def __init__(self):
        self._paths: Dict[Tuple[Point, Point], Path] = {}
        self._raster: Optional[np.ndarray] = None
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def bind(self, resistance: np.ndarray) -> None:
        """Tie the cache to ``resistance``, invalidating paths from any other raster."""
        with self._lock:
            bound = self._raster
            if (
                bound is not None
                and bound.shape == resistance.shape
                and np.array_equal(bound, resistance, equal_nan=True)
            ):
                return
            if self._paths:
                logger.debug(f"Resistance raster changed; dropping {len(self._paths)} cached paths")
            self._paths.clear()
            self._raster = np.array(resistance, dtype=float, copy=True)
            self._raster.setflags(write=False)

    def get(self, source: Point, destination: Point) -> Optional[Path]:
        with self._lock:
            path = self._paths.get((source, destination))
            if path is None:
                self.misses += 1
            else:
                self.hits += 1
            return path

    def put(self, source: Point, destination: Point, path: Path) -> None:
        with self._lock:
            self._paths[(source, destination)] = path

    def clear(self) -> None:
        with self._lock:
            self._paths.clear()
            self.hits = 0
            self.misses = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._paths)

    def __contains__(self, key) -> bool:
        with self._lock:
            return key in self._paths


def _reconstruct(parent: Dict[Point, Optional[Point]], goal: Point) -> Tuple[Point, ...]:
    path = []
    cell: Optional[Point] = goal
    while cell is not None:
        path.append(cell)
        cell = parent[cell]
    path.reverse()
    return tuple(path)


class PathRouter:
    """Least-cost path computation between grid cells.

    Parameters
    ----------
    connectivity : int
        8 (default) or 4 neighbour movement
    cache : PathCache, optional
        Cache shared across calls on the same resistance raster; a fresh
        one is created when omitted
    deadline : Deadline, optional
        Checked periodically during searches

    Examples
    --------
    >>> router = PathRouter()
    >>> path = router.route((0, 0), (4, 4), np.ones((5, 5)))
    >>> path.cost
    4.0
    """

    def __init__(
        self,
        connectivity: int = 8,
        cache: Optional[PathCache] = None,
        deadline: Optional[Deadline] = None,
    ):
        if connectivity not in (4, 8):
            raise ValueError(f"connectivity must be 4 or 8, got {connectivity}")
        self.connectivity = connectivity
        self.offsets = NEIGHBORS_8 if connectivity == 8 else NEIGHBORS_4
        self.cache = cache if cache is not None else PathCache()
        self.deadline = deadline if deadline is not None else Deadline.never()

    # ------------------------------------------------------------------
    # Single searches
    # ------------------------------------------------------------------

    def _neighbors(self, cell: Point, shape: Tuple[int, int]) -> Iterable[Point]:
        rows, cols = shape
        r, c = cell
        for dr, dc in self.offsets:
            rr, cc = r + dr, c + dc
            if 0 <= rr < rows and 0 <= cc < cols:
                yield (rr, cc)

    def _search(
        self,
        source: Point,
        resistance: np.ndarray,
        targets: Optional[set] = None,
        heuristic: Optional[Heuristic] = None,
    ) -> Tuple[Dict[Point, float], Dict[Point, Optional[Point]]]:
        """Settle cells outward from ``source``.

        Stops once every cell in ``targets`` is settled (or the frontier is
        exhausted). A heuristic is only meaningful with a single target.

        Returns
        -------
        tuple
            (settled cost per cell, parent per discovered cell)
        """
        goal = next(iter(targets)) if heuristic is not None and targets else None
        remaining = set(targets) if targets is not None else None

        counter = 0
        frontier: List[Tuple[float, int, Point]] = [(0.0, counter, source)]
        g: Dict[Point, float] = {source: 0.0}
        parent: Dict[Point, Optional[Point]] = {source: None}
        settled: Dict[Point, float] = {}
        pops = 0

        while frontier:
            if pops % _DEADLINE_STRIDE == 0:
                self.deadline.check("routing")
            pops += 1

            _, _, cell = heapq.heappop(frontier)
            if cell in settled:
                continue
            settled[cell] = g[cell]

            if remaining is not None:
                remaining.discard(cell)
                if not remaining:
                    break

            for nb in self._neighbors(cell, resistance.shape):
                if nb in settled:
                    continue
                step = resistance[nb]
                if not np.isfinite(step):
                    continue
                cost = g[cell] + float(step)
                if cost < g.get(nb, float("inf")):
                    g[nb] = cost
                    parent[nb] = cell
                    counter += 1
                    priority = cost + (heuristic(nb, goal) if goal is not None else 0.0)
                    heapq.heappush(frontier, (priority, counter, nb))

        return settled, parent

    def route(
        self,
        source: Point,
        destination: Point,
        resistance: np.ndarray,
        heuristic: Heuristic = zero_heuristic,
    ) -> Path:
        """Minimum-cost path between two cells.

        Parameters
        ----------
        source, destination : tuple of int
            (row, col) grid coordinates
        resistance : np.ndarray
            Non-negative cost raster; Inf/NaN cells are impassable
        heuristic : callable
            Admissible heuristic; the default zero heuristic is always
            admissible

        Returns
        -------
        Path
            Empty path with Inf cost if the destination is unreachable
        """
        source, destination = tuple(source), tuple(destination)
        self.cache.bind(resistance)
        cached = self.cache.get(source, destination)
        if cached is not None:
            return cached

        if source == destination:
            path = Path(points=(source,), cost=0.0)
        else:
            settled, parent = self._search(source, resistance, {destination}, heuristic)
            if destination in settled:
                path = Path(points=_reconstruct(parent, destination), cost=settled[destination])
            else:
                path = UNREACHABLE

        self.cache.put(source, destination, path)
        return path

    def route_many(
        self,
        source: Point,
        destinations: Sequence[Point],
        resistance: np.ndarray,
    ) -> Dict[Point, Path]:
        """Paths from one source to many destinations from a single search tree."""
        source = tuple(source)
        self.cache.bind(resistance)
        result: Dict[Point, Path] = {}
        missing = []
        for dest in destinations:
            dest = tuple(dest)
            cached = self.cache.get(source, dest)
            if cached is not None:
                result[dest] = cached
            else:
                missing.append(dest)

        if missing:
            settled, parent = self._search(source, resistance, set(missing))
            for dest in missing:
                if dest in settled:
                    path = Path(points=_reconstruct(parent, dest), cost=settled[dest])
                else:
                    path = UNREACHABLE
                self.cache.put(source, dest, path)
                result[dest] = path
        return result

    def route_all(
        self,
        sources: Sequence[Point],
        destinations: Sequence[Point],
        resistance: np.ndarray,
        n_workers: int = DEFAULT_N_WORKERS,
    ) -> Dict[Tuple[Point, Point], Path]:
        """Route every (source, destination) pair over a worker pool.

        The resistance raster is only read, so workers share it unlocked.

        Returns
        -------
        dict
            (source, destination) -> Path
        """
        sources = [tuple(s) for s in sources]
        destinations = [tuple(d) for d in destinations]
        paths: Dict[Tuple[Point, Point], Path] = {}
        if not sources or not destinations:
            return paths

        logger.debug(
            f"Routing {len(sources)} x {len(destinations)} pairs on {n_workers} workers"
        )
        with ThreadPoolExecutor(max_workers=n_workers) as executor:
            future_to_source = {
                executor.submit(self.route_many, src, destinations, resistance): src
                for src in sources
            }
            for future in as_completed(future_to_source):
                src = future_to_source[future]
                for dest, path in future.result().items():
                    paths[(src, dest)] = path
        return paths

    # ------------------------------------------------------------------
    # Cost surfaces
    # ------------------------------------------------------------------

    def cost_distance(
        self, resistance: np.ndarray, targets: np.ndarray
    ) -> Tuple[np.ndarray, np.ndarray]:
        """Cost from every cell to its cheapest reachable target.

        A multi-source search run backwards from the target cells, using
        the same step model as :meth:`route`: the cost of travelling from a
        cell to a target is the sum of resistance over every cell entered,
        the target included.

        Parameters
        ----------
        resistance : np.ndarray
            Cost raster
        targets : np.ndarray
            Boolean mask of target cells

        Returns
        -------
        cost : np.ndarray
            Accumulated cost, Inf where no target is reachable
        nearest : np.ndarray
            Flat index of the chosen target, -1 where unreachable
        """
        rows, cols = resistance.shape
        cost = np.full((rows, cols), np.inf)
        nearest = np.full((rows, cols), -1, dtype=int)

        counter = 0
        frontier: List[Tuple[float, int, Point, int]] = []
        for r, c in np.argwhere(targets):
            cell = (int(r), int(c))
            cost[cell] = 0.0
            nearest[cell] = r * cols + c
            heapq.heappush(frontier, (0.0, counter, cell, nearest[cell]))
            counter += 1

        settled = np.zeros((rows, cols), dtype=bool)
        pops = 0
        while frontier:
            pops += 1
            if pops % _DEADLINE_STRIDE == 0:
                self.deadline.check("cost distance")

            g, _, cell, label = heapq.heappop(frontier)
            if settled[cell]:
                continue
            settled[cell] = True

            # Predecessors must step into this cell
            step = resistance[cell]
            if not np.isfinite(step):
                continue
            reached = g + float(step)
            for nb in self._neighbors(cell, (rows, cols)):
                if settled[nb] or reached >= cost[nb]:
                    continue
                cost[nb] = reached
                nearest[nb] = label
                counter += 1
                heapq.heappush(frontier, (reached, counter, nb, label))

        return cost, nearest
