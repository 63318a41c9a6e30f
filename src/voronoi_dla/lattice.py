"""
Resumable on-lattice DLA inside a bounded circular domain.

A ``ClusterGrid`` is a square buffer around a seed cell. Cells farther than
``radius`` from the seed are out of bound and can never be occupied. An
``AggregationEngine`` releases one random walker at a time from a circle
around the seed and advances it one micro-step per ``step()`` call:

1.  **Spawn:** uniform angle on the spawn circle, rounded to a grid cell.
2.  **Stick:** an empty cell with an occupied 4-neighbour becomes occupied.
3.  **Escape:** a walker within one cell of the buffer edge is discarded.
4.  **Walk:** otherwise move by a uniform step in {-1, 0, 1}^2 and clamp.

Growth ends when a walker sticks next to the domain boundary, when the
cluster holds ``max_cells`` cells, or when the walker budget
(``max_iterations``) is used up.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Optional, Tuple

import numpy as np

from .utils import check_positive

NEIGHBORS_4 = ((1, 0), (-1, 0), (0, 1), (0, -1))


class CellState(IntEnum):
    EMPTY = 0
    OCCUPIED = 1
    OUT_OF_BOUND = 2


class TerminationReason(Enum):
    BOUNDARY_REACHED = "boundary_reached"
    ITERATION_CAP_REACHED = "iteration_cap_reached"
    CELL_CAP_REACHED = "cell_cap_reached"
    MANUAL = "manual"


class StepOutcome(Enum):
    WALKING = "walking"
    STUCK = "stuck"
    ESCAPED = "escaped"
    EXPIRED = "expired"
    TERMINATED = "terminated"


# Allowed (old, new) transitions besides no-ops: growth is monotonic.
_TRANSITIONS = {
    (CellState.EMPTY, CellState.OCCUPIED),
    (CellState.EMPTY, CellState.OUT_OF_BOUND),
}


class ClusterGrid:
    """Square cell-state buffer of side ``2*radius + margin`` centred on a seed."""

    def __init__(self, radius: int, margin: int = 5) -> None:
        check_positive("radius", radius)
        check_positive("margin", margin)
        self.radius = int(radius)
        self.margin = int(margin)
        self.side = 2 * self.radius + self.margin
        c = self.radius + self.margin // 2
        self.center = (c, c)

        xs, ys = np.indices((self.side, self.side))
        dist = np.sqrt((xs - c) ** 2 + (ys - c) ** 2)
        self.cells = np.full((self.side, self.side), CellState.EMPTY, dtype=np.uint8)
        self.cells[dist > self.radius] = CellState.OUT_OF_BOUND
        self.cells[c, c] = CellState.OCCUPIED

    # ------------------------------------------------------------------ access
    def in_bounds(self, pos: Tuple[int, int]) -> bool:
        x, y = pos
        return 0 <= x < self.side and 0 <= y < self.side

    def _check(self, pos: Tuple[int, int]) -> Tuple[int, int]:
        x, y = int(pos[0]), int(pos[1])
        if not self.in_bounds((x, y)):
            raise IndexError(f"cell {pos} outside grid of side {self.side}")
        return x, y

    def get(self, pos: Tuple[int, int]) -> CellState:
        x, y = self._check(pos)
        return CellState(int(self.cells[x, y]))

    def set(self, pos: Tuple[int, int], state: CellState) -> None:
        x, y = self._check(pos)
        old = CellState(int(self.cells[x, y]))
        state = CellState(state)
        if old == state:
            return
        if (old, state) not in _TRANSITIONS:
            raise ValueError(f"illegal transition {old.name} -> {state.name} at {(x, y)}")
        self.cells[x, y] = state

    def stick(self, pos: Tuple[int, int]) -> None:
        if self.get(pos) != CellState.EMPTY:
            raise ValueError(f"cannot stick at non-empty cell {pos}")
        self.set(pos, CellState.OCCUPIED)

    def exclude(self, mask: np.ndarray) -> None:
        """Mark every empty cell selected by ``mask`` as out of bound."""
        mask = np.asarray(mask, dtype=bool)
        if mask.shape != self.cells.shape:
            raise ValueError(f"mask shape {mask.shape} != grid shape {self.cells.shape}")
        self.cells[mask & (self.cells == CellState.EMPTY)] = CellState.OUT_OF_BOUND

    # ------------------------------------------------------------------ queries
    def is_occupied(self, pos: Tuple[int, int]) -> bool:
        return self.in_bounds(pos) and self.cells[pos[0], pos[1]] == CellState.OCCUPIED

    def has_occupied_neighbor(self, pos: Tuple[int, int]) -> bool:
        x, y = pos
        return any(self.is_occupied((x + dx, y + dy)) for dx, dy in NEIGHBORS_4)

    def has_out_of_bound_neighbor(self, pos: Tuple[int, int]) -> bool:
        x, y = pos
        for dx, dy in NEIGHBORS_4:
            nx, ny = x + dx, y + dy
            if self.in_bounds((nx, ny)) and self.cells[nx, ny] == CellState.OUT_OF_BOUND:
                return True
        return False

    def near_edge(self, pos: Tuple[int, int]) -> bool:
        x, y = pos
        last = self.side - 1
        return x <= 1 or x >= last or y <= 1 or y >= last

    def distance_from_center(self, pos: Tuple[int, int]) -> float:
        return math.hypot(pos[0] - self.center[0], pos[1] - self.center[1])

    def touches_boundary(self, pos: Tuple[int, int]) -> bool:
        """
        True when ``pos`` lies within one cell of the growth domain's edge:
        the circle of ``radius`` around the seed, an excluded cell, or the
        buffer edge itself.
        """
        return (
            self.distance_from_center(pos) >= self.radius - 1
            or self.has_out_of_bound_neighbor(pos)
            or self.near_edge(pos)
        )

    def clamp(self, pos: Tuple[int, int]) -> Tuple[int, int]:
        last = self.side - 1
        return min(max(0, pos[0]), last), min(max(0, pos[1]), last)

    def occupied_count(self) -> int:
        return int(np.count_nonzero(self.cells == CellState.OCCUPIED))

    def occupied_positions(self) -> np.ndarray:
        """(N, 2) array of occupied cell indices."""
        return np.argwhere(self.cells == CellState.OCCUPIED)

    def snapshot(self) -> np.ndarray:
        return self.cells.copy()


@dataclass
class GrowthParams:
    """Rules for a single region's growth."""

    radius: int = 20
    margin: int = 5
    max_iterations: int = 10_000
    spawn_radius: Optional[int] = None
    max_walker_steps: Optional[int] = None
    max_cells: Optional[int] = None  # includes the seed

    def __post_init__(self) -> None:
        check_positive("radius", self.radius)
        check_positive("margin", self.margin)
        check_positive("max_iterations", self.max_iterations, minimum=0)
        if self.spawn_radius is not None:
            check_positive("spawn_radius", self.spawn_radius, minimum=0)
        if self.max_walker_steps is not None:
            check_positive("max_walker_steps", self.max_walker_steps)
        if self.max_cells is not None:
            check_positive("max_cells", self.max_cells)

    @property
    def effective_spawn_radius(self) -> int:
        return self.radius if self.spawn_radius is None else self.spawn_radius


@dataclass
class WalkerState:
    position: Tuple[int, int]
    steps: int = 0


@dataclass
class GrowthStatus:
    """Per-region counters. ``added_count`` includes the seed."""

    added_count: int = 1
    walker_count: int = 0
    terminal: bool = False
    reason: Optional[TerminationReason] = None

    def copy(self) -> "GrowthStatus":
        return GrowthStatus(self.added_count, self.walker_count, self.terminal, self.reason)


class AggregationEngine:
    """
    Drives random walkers through one ClusterGrid, one micro-step per call.

    The engine is the only writer of its grid. Every public call leaves the
    grid in a consistent state, so callers may stop advancing at any time.
    """

    def __init__(
        self,
        grid: ClusterGrid,
        params: GrowthParams | None = None,
        rng: np.random.Generator | None = None,
    ) -> None:
        self.grid = grid
        self.params = params or GrowthParams(radius=grid.radius, margin=grid.margin)
        self.rng = rng if rng is not None else np.random.default_rng()
        self.status = GrowthStatus()
        self.walker: Optional[WalkerState] = None
        self.last_stuck: Optional[Tuple[int, int]] = None

    @classmethod
    def from_params(
        cls, params: GrowthParams, rng: np.random.Generator | None = None
    ) -> "AggregationEngine":
        return cls(ClusterGrid(params.radius, params.margin), params, rng)

    @property
    def terminal(self) -> bool:
        return self.status.terminal

    # ------------------------------------------------------------------ internals
    def _terminate(self, reason: TerminationReason) -> None:
        self.walker = None
        self.status.terminal = True
        self.status.reason = reason

    def _spawn(self) -> WalkerState:
        r = self.params.effective_spawn_radius
        cx, cy = self.grid.center
        theta = self.rng.uniform(0.0, 2.0 * math.pi)
        # No clamp here: rounding may land one cell outside the nominal circle.
        x = int(round(cx + r * math.cos(theta)))
        y = int(round(cy + r * math.sin(theta)))
        self.status.walker_count += 1
        return WalkerState(position=(x, y))

    def _cell_cap_reached(self) -> bool:
        cap = self.params.max_cells
        return cap is not None and self.status.added_count >= cap

    def _finish_attempt(self, stuck_at: Optional[Tuple[int, int]] = None) -> None:
        self.walker = None
        if stuck_at is not None and self.grid.touches_boundary(stuck_at):
            self._terminate(TerminationReason.BOUNDARY_REACHED)
        elif self._cell_cap_reached():
            self._terminate(TerminationReason.CELL_CAP_REACHED)
        elif self.status.walker_count >= self.params.max_iterations:
            self._terminate(TerminationReason.ITERATION_CAP_REACHED)

    # ------------------------------------------------------------------ public
    def step(self) -> StepOutcome:
        """Advance by one micro-step: at most one stick/escape check and one move."""
        if self.status.terminal:
            return StepOutcome.TERMINATED

        if self.walker is None:
            if self._cell_cap_reached():
                self._terminate(TerminationReason.CELL_CAP_REACHED)
                return StepOutcome.TERMINATED
            if self.status.walker_count >= self.params.max_iterations:
                self._terminate(TerminationReason.ITERATION_CAP_REACHED)
                return StepOutcome.TERMINATED
            self.walker = self._spawn()

        walker = self.walker
        pos = walker.position
        grid = self.grid

        if (
            grid.in_bounds(pos)
            and grid.cells[pos[0], pos[1]] == CellState.EMPTY
            and grid.has_occupied_neighbor(pos)
        ):
            grid.stick(pos)
            self.status.added_count += 1
            self.last_stuck = pos
            self._finish_attempt(stuck_at=pos)
            return StepOutcome.STUCK

        if grid.near_edge(pos):
            self._finish_attempt()
            return StepOutcome.ESCAPED

        budget = self.params.max_walker_steps
        if budget is not None and walker.steps >= budget:
            self._finish_attempt()
            return StepOutcome.EXPIRED

        dx = int(self.rng.integers(-1, 2))
        dy = int(self.rng.integers(-1, 2))
        walker.position = grid.clamp((pos[0] + dx, pos[1] + dy))
        walker.steps += 1
        return StepOutcome.WALKING

    def run(self, max_steps: int | None = None) -> GrowthStatus:
        """Step until terminal, or until ``max_steps`` micro-steps were taken."""
        taken = 0
        while not self.status.terminal:
            if max_steps is not None and taken >= max_steps:
                break
            self.step()
            taken += 1
        return self.status

    def stop(self) -> None:
        """Terminate manually; the partial cluster stays valid."""
        if not self.status.terminal:
            self._terminate(TerminationReason.MANUAL)


__all__ = [
    "CellState",
    "ClusterGrid",
    "GrowthParams",
    "GrowthStatus",
    "WalkerState",
    "TerminationReason",
    "StepOutcome",
    "AggregationEngine",
]
