"""
Unit tests for the cluster grid and the resumable aggregation engine.
"""

from collections import deque

import numpy as np
import pytest

from voronoi_dla import (
    AggregationEngine,
    CellState,
    ClusterGrid,
    ConfigurationError,
    GrowthParams,
    StepOutcome,
    TerminationReason,
)


def test_grid_layout():
    grid = ClusterGrid(radius=5, margin=5)
    assert grid.side == 15
    assert grid.center == (7, 7)
    assert grid.get((7, 7)) == CellState.OCCUPIED
    assert grid.get((12, 7)) == CellState.EMPTY  # exactly on the radius
    assert grid.get((13, 7)) == CellState.OUT_OF_BOUND
    assert grid.get((0, 0)) == CellState.OUT_OF_BOUND
    assert grid.occupied_count() == 1


def test_grid_bounds_checked():
    grid = ClusterGrid(radius=3, margin=5)
    for pos in [(-1, 0), (0, -1), (grid.side, 0), (0, grid.side)]:
        with pytest.raises(IndexError):
            grid.get(pos)
        with pytest.raises(IndexError):
            grid.set(pos, CellState.OCCUPIED)


def test_grid_growth_is_monotonic():
    grid = ClusterGrid(radius=5, margin=5)
    with pytest.raises(ValueError):
        grid.set(grid.center, CellState.EMPTY)
    with pytest.raises(ValueError):
        grid.set((0, 0), CellState.OCCUPIED)
    grid.stick((8, 7))
    with pytest.raises(ValueError):
        grid.stick((8, 7))
    with pytest.raises(ValueError):
        grid.set((8, 7), CellState.EMPTY)
    assert grid.get(grid.center) == CellState.OCCUPIED


def test_exclude_keeps_seed():
    grid = ClusterGrid(radius=4, margin=5)
    grid.exclude(np.ones((grid.side, grid.side), dtype=bool))
    assert grid.get(grid.center) == CellState.OCCUPIED
    assert np.count_nonzero(grid.cells == CellState.EMPTY) == 0


def test_neighbor_checks_ignore_out_of_range():
    grid = ClusterGrid(radius=3, margin=5)
    assert not grid.has_occupied_neighbor((0, 0))
    assert grid.near_edge((0, 5)) and grid.near_edge((5, grid.side - 1))
    assert not grid.near_edge((2, 2))


@pytest.mark.parametrize(
    "kwargs",
    [{"radius": 0}, {"margin": 0}, {"max_iterations": -1}, {"max_walker_steps": 0}, {"max_cells": 0}],
)
def test_invalid_growth_params(kwargs):
    with pytest.raises(ConfigurationError):
        GrowthParams(**kwargs)


def test_zero_iterations_terminates_immediately():
    engine = AggregationEngine.from_params(GrowthParams(radius=5, max_iterations=0), np.random.default_rng(0))
    assert engine.step() is StepOutcome.TERMINATED
    assert engine.status.terminal
    assert engine.status.reason is TerminationReason.ITERATION_CAP_REACHED
    assert engine.status.added_count == 1
    assert engine.status.walker_count == 0
    assert engine.grid.occupied_count() == 1


def test_walker_sticks_next_to_seed(scripted_rng):
    params = GrowthParams(radius=10, margin=5, max_iterations=100)
    # Spawn at angle 0 lands on (22, 12); nine steps left bring it beside the seed.
    rng = scripted_rng(angles=[0.0], steps=[(-1, 0)] * 9)
    engine = AggregationEngine.from_params(params, rng)

    outcomes = [engine.step() for _ in range(10)]
    assert outcomes[:9] == [StepOutcome.WALKING] * 9
    assert outcomes[9] is StepOutcome.STUCK
    assert engine.last_stuck == (13, 12)
    assert engine.grid.get((13, 12)) == CellState.OCCUPIED
    assert engine.status.added_count == 2
    assert engine.status.walker_count == 1
    assert not engine.status.terminal
    assert engine.walker is None


def test_stick_near_domain_boundary_completes_growth(scripted_rng):
    params = GrowthParams(radius=5, margin=5, max_iterations=100)
    grid = ClusterGrid(params.radius, params.margin)
    # Arm from the seed (7, 7) out to distance 3
    for x in (8, 9, 10):
        grid.stick((x, 7))
    rng = scripted_rng(angles=[0.0], steps=[(-1, 0)])
    engine = AggregationEngine(grid, params, rng)

    assert engine.step() is StepOutcome.WALKING  # spawned at (12, 7)
    assert engine.step() is StepOutcome.STUCK  # (11, 7) is 4 cells from the seed
    assert engine.status.added_count == 2
    assert engine.status.terminal
    assert engine.status.reason is TerminationReason.BOUNDARY_REACHED
    assert engine.step() is StepOutcome.TERMINATED


def test_escape_counts_walker_but_not_cell(scripted_rng):
    params = GrowthParams(radius=5, margin=1, max_iterations=3)
    # side 11, center (5, 5): angle 0 spawns on the last column
    rng = scripted_rng(angles=[0.0, 0.0, 0.0])
    engine = AggregationEngine.from_params(params, rng)

    assert engine.step() is StepOutcome.ESCAPED
    assert engine.status.walker_count == 1
    assert engine.status.added_count == 1
    assert not engine.status.terminal

    engine.run()
    assert engine.status.walker_count == 3
    assert engine.status.added_count == 1
    assert engine.status.reason is TerminationReason.ITERATION_CAP_REACHED


def test_walker_step_budget(scripted_rng):
    params = GrowthParams(radius=10, max_iterations=1, max_walker_steps=2)
    rng = scripted_rng(angles=[0.0], steps=[(0, 0), (0, 0)])
    engine = AggregationEngine.from_params(params, rng)

    assert engine.step() is StepOutcome.WALKING
    assert engine.step() is StepOutcome.WALKING
    assert engine.step() is StepOutcome.EXPIRED
    assert engine.status.walker_count == 1
    assert engine.status.added_count == 1
    assert engine.status.reason is TerminationReason.ITERATION_CAP_REACHED


def test_cell_cap_ends_growth(scripted_rng):
    params = GrowthParams(radius=10, margin=5, max_iterations=100, max_cells=2)
    rng = scripted_rng(angles=[0.0], steps=[(-1, 0)] * 9)
    engine = AggregationEngine.from_params(params, rng)

    status = engine.run()
    assert engine.last_stuck == (13, 12)
    assert status.added_count == 2
    assert status.walker_count == 1
    assert status.reason is TerminationReason.CELL_CAP_REACHED
    assert engine.grid.occupied_count() == 2


def test_cell_cap_of_one_keeps_only_the_seed():
    params = GrowthParams(radius=5, max_cells=1)
    engine = AggregationEngine.from_params(params, np.random.default_rng(0))
    assert engine.step() is StepOutcome.TERMINATED
    assert engine.status.reason is TerminationReason.CELL_CAP_REACHED
    assert engine.status.walker_count == 0


def test_spawn_outside_buffer_escapes(scripted_rng):
    params = GrowthParams(radius=5, margin=5, max_iterations=1, spawn_radius=40)
    # side 15, center (7, 7): angle 0 rounds to (47, 7), past the last column
    engine = AggregationEngine.from_params(params, scripted_rng(angles=[0.0]))

    assert engine.step() is StepOutcome.ESCAPED
    assert engine.status.walker_count == 1
    assert engine.status.added_count == 1
    assert engine.status.reason is TerminationReason.ITERATION_CAP_REACHED
    assert engine.grid.occupied_count() == 1


def test_manual_stop_leaves_valid_cluster():
    engine = AggregationEngine.from_params(GrowthParams(radius=10), np.random.default_rng(5))
    status = engine.run(max_steps=5)
    assert not status.terminal
    assert status.walker_count >= 1

    engine.stop()
    assert engine.status.reason is TerminationReason.MANUAL
    assert engine.walker is None
    assert engine.step() is StepOutcome.TERMINATED
    assert engine.grid.get(engine.grid.center) == CellState.OCCUPIED


def _connected_to_seed(grid):
    occupied = grid.cells == CellState.OCCUPIED
    seen = {grid.center}
    queue = deque([grid.center])
    while queue:
        x, y = queue.popleft()
        for dx, dy in ((1, 0), (-1, 0), (0, 1), (0, -1)):
            n = (x + dx, y + dy)
            if grid.in_bounds(n) and occupied[n] and n not in seen:
                seen.add(n)
                queue.append(n)
    return len(seen) == int(occupied.sum())


def test_random_growth_invariants():
    params = GrowthParams(radius=12, margin=5, max_iterations=150)
    engine = AggregationEngine.from_params(params, np.random.default_rng(1))
    out_of_bound = engine.grid.cells == CellState.OUT_OF_BOUND
    previous = engine.grid.cells == CellState.OCCUPIED

    while not engine.terminal:
        outcome = engine.step()
        if outcome is StepOutcome.STUCK:
            current = engine.grid.cells == CellState.OCCUPIED
            assert np.all(current[previous]), "occupied cells must never revert"
            previous = current
        if engine.walker is not None:
            assert engine.grid.in_bounds(engine.walker.position)

    grid = engine.grid
    assert grid.get(grid.center) == CellState.OCCUPIED
    assert grid.occupied_count() == engine.status.added_count
    assert not np.any((grid.cells == CellState.OCCUPIED) & out_of_bound)
    assert _connected_to_seed(grid)
    assert engine.status.walker_count <= params.max_iterations
    assert engine.status.reason in (
        TerminationReason.BOUNDARY_REACHED,
        TerminationReason.ITERATION_CAP_REACHED,
    )


def test_seeded_engines_are_reproducible():
    params = GrowthParams(radius=8, max_iterations=60)
    a = AggregationEngine.from_params(params, np.random.default_rng(99))
    b = AggregationEngine.from_params(params, np.random.default_rng(99))
    a.run()
    b.run()
    assert np.array_equal(a.grid.cells, b.grid.cells)
    assert a.status == b.status
