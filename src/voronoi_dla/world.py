"""
World orchestration: Voronoi partition plus one DLA cluster per region.

The simulator owns N independent (ClusterGrid, AggregationEngine) pairs and
advances them under a selectable schedule. Nothing is shared between regions
except the read-only region map, and each engine draws from its own child
generator, so a region grows the same way whichever schedule is used.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Deque, Dict, Iterator, List, NamedTuple, Optional, Tuple

import numpy as np

from . import utils
from .lattice import (
    AggregationEngine,
    CellState,
    ClusterGrid,
    GrowthParams,
    GrowthStatus,
    StepOutcome,
)
from .utils import ConfigurationError, check_positive
from .voronoi import Site, SiteIndex, generate_sites, partition


class Schedule(Enum):
    SEQUENTIAL = "sequential"  # one region to completion per tick
    ROUND_ROBIN = "round_robin"  # one micro-step per region per tick


# camelCase keys accepted in parameter files
_ALIASES = {
    "gridWidth": "grid_width",
    "gridHeight": "grid_height",
    "voronoiPoints": "voronoi_points",
    "dlaRadius": "radius",
    "maxIterations": "max_iterations",
    "cellLifetime": "cell_lifetime",
    "dlaLifetime": "cell_lifetime",
    "maxActiveCells": "max_active_cells",
    "dlaMaxCells": "max_active_cells",
    "maxWalkerSteps": "max_walker_steps",
    "confineToRegion": "confine_to_region",
    "spawnRadius": "spawn_radius",
    "maxCells": "max_cells",
    "dlaMaxCellsPerRegion": "max_cells",
    "maxParticles": "max_cells",
}


@dataclass
class WorldConfig:
    grid_width: int = 64
    grid_height: int = 64
    voronoi_points: int = 10
    radius: int = 20
    max_iterations: int = 10_000
    margin: int = 5
    seed: Optional[int] = None
    schedule: Schedule = Schedule.ROUND_ROBIN
    confine_to_region: bool = False
    cell_lifetime: Optional[int] = None
    max_active_cells: Optional[int] = None
    max_walker_steps: Optional[int] = None
    spawn_radius: Optional[int] = None
    max_cells: Optional[int] = None

    def __post_init__(self) -> None:
        check_positive("grid_width", self.grid_width)
        check_positive("grid_height", self.grid_height)
        check_positive("voronoi_points", self.voronoi_points)
        check_positive("radius", self.radius)
        check_positive("max_iterations", self.max_iterations, minimum=0)
        check_positive("margin", self.margin)
        for name in ("cell_lifetime", "max_active_cells", "max_walker_steps", "max_cells"):
            value = getattr(self, name)
            if value is not None:
                check_positive(name, value)
        if self.spawn_radius is not None:
            check_positive("spawn_radius", self.spawn_radius, minimum=0)
        try:
            self.schedule = Schedule(self.schedule)
        except ValueError as exc:
            raise ConfigurationError(f"unknown schedule {self.schedule!r}") from exc

    @classmethod
    def from_dict(cls, params: Dict[str, Any]) -> "WorldConfig":
        known = set(cls.__dataclass_fields__)
        kwargs: Dict[str, Any] = {}
        for key, value in params.items():
            name = _ALIASES.get(key, key)
            if name not in known:
                raise ConfigurationError(f"unknown configuration option {key!r}")
            kwargs[name] = value
        return cls(**kwargs)

    def growth_params(self) -> GrowthParams:
        return GrowthParams(
            radius=self.radius,
            margin=self.margin,
            max_iterations=self.max_iterations,
            max_walker_steps=self.max_walker_steps,
            spawn_radius=self.spawn_radius,
            max_cells=self.max_cells,
        )


class CellUpdate(NamedTuple):
    """One record for the renderer. ``ttl`` is in ticks, None for permanent cells."""

    position: Tuple[int, int]
    region_id: int
    state: CellState
    ttl: Optional[int] = None


class EphemeralCells:
    """
    Timed render records for freshly stuck cells.

    Records are appended in tick order and share one lifetime, so the deque is
    also sorted by expiry and expiring is a popleft loop.
    """

    def __init__(self, lifetime: Optional[int] = None, max_active: Optional[int] = None) -> None:
        self.lifetime = lifetime
        self.max_active = max_active
        self._active: Deque[Tuple[Optional[int], CellUpdate]] = deque()

    def __len__(self) -> int:
        return len(self._active)

    def add(self, position: Tuple[int, int], region_id: int, tick: int) -> Tuple[CellUpdate, List[CellUpdate]]:
        """Register a cell; returns its record and any records evicted by the cap."""
        expiry = tick + self.lifetime if self.lifetime is not None else None
        record = CellUpdate(position, region_id, CellState.OCCUPIED, self.lifetime)
        self._active.append((expiry, record))
        evicted = []
        if self.max_active is not None:
            while len(self._active) > self.max_active:
                evicted.append(self._active.popleft()[1])
        return record, evicted

    def expire(self, tick: int) -> List[CellUpdate]:
        expired = []
        if self.lifetime is None:
            return expired
        while self._active and self._active[0][0] <= tick:
            expired.append(self._active.popleft()[1])
        return expired

    def active(self, tick: int) -> List[CellUpdate]:
        """Live records with their remaining ttl at ``tick``."""
        out = []
        for expiry, rec in self._active:
            ttl = None if expiry is None else expiry - tick
            out.append(rec._replace(ttl=ttl))
        return out


@dataclass
class RegionSnapshot:
    region_id: int
    site: Site
    origin: Tuple[int, int]
    cells: np.ndarray
    status: GrowthStatus

    def world_position(self, local: Tuple[int, int]) -> Tuple[int, int]:
        return int(self.origin[0] + local[0]), int(self.origin[1] + local[1])

    def occupied_world_positions(self) -> List[Tuple[int, int]]:
        return [self.world_position(p) for p in np.argwhere(self.cells == CellState.OCCUPIED)]


@dataclass
class WorldFrame:
    """
    What the renderer draws after a tick.

    Apply ``added`` before ``expired``: a record may appear in both when it
    was evicted by the active-cell cap or outlived its ttl before this frame.
    """

    tick: int
    snapshots: List[RegionSnapshot]
    added: List[CellUpdate] = field(default_factory=list)
    expired: List[CellUpdate] = field(default_factory=list)

    def cell_updates(self) -> Iterator[CellUpdate]:
        """Every occupied cluster cell of every region, in world coordinates."""
        for snap in self.snapshots:
            for pos in snap.occupied_world_positions():
                yield CellUpdate(pos, snap.region_id, CellState.OCCUPIED)


class WorldSimulator:
    """
    The Manager Class.

    Responsibilities:
    1. Place sites and compute the region map (once).
    2. Build one growth engine per region.
    3. Advance the engines under the configured schedule.
    """

    def __init__(self, config: WorldConfig | None = None, *, rng: np.random.Generator | None = None) -> None:
        self.config = config or WorldConfig()
        self.rng = rng if rng is not None else utils.make_rng(self.config.seed)

        cfg = self.config
        self.site_index = SiteIndex(
            generate_sites(self.rng, cfg.grid_width, cfg.grid_height, cfg.voronoi_points)
        )
        self.region_map = partition(cfg.grid_width, cfg.grid_height, self.site_index)

        params = cfg.growth_params()
        child_rngs = self.rng.spawn(len(self.site_index))
        self.engines: List[AggregationEngine] = []
        self.origins: List[Tuple[int, int]] = []
        for site, child in zip(self.site_index.sites, child_rngs):
            grid = ClusterGrid(params.radius, params.margin)
            origin = (site.position[0] - grid.center[0], site.position[1] - grid.center[1])
            if cfg.confine_to_region:
                grid.exclude(self._foreign_mask(site.id, origin, grid.side))
            self.engines.append(AggregationEngine(grid, params, child))
            self.origins.append(origin)

        self.tick_count = 0
        self._cursor = 0  # next region for the sequential schedule
        # render records not yet handed out in a frame
        self._pending_added: List[CellUpdate] = []
        self._pending_expired: List[CellUpdate] = []
        self.ephemeral: Optional[EphemeralCells] = None
        if cfg.cell_lifetime is not None or cfg.max_active_cells is not None:
            self.ephemeral = EphemeralCells(cfg.cell_lifetime, cfg.max_active_cells)

    # ------------------------------------------------------------------ setup
    def _foreign_mask(self, region_id: int, origin: Tuple[int, int], side: int) -> np.ndarray:
        """Buffer cells that fall outside the world or inside another region."""
        width, height = self.region_map.shape
        xs, ys = np.indices((side, side))
        wx = xs + origin[0]
        wy = ys + origin[1]
        inside = (wx >= 0) & (wx < width) & (wy >= 0) & (wy < height)
        mask = ~inside
        owner = self.region_map[wx[inside], wy[inside]]
        mask[inside] = owner != region_id
        return mask

    # ------------------------------------------------------------------ state
    @property
    def sites(self) -> Tuple[Site, ...]:
        return self.site_index.sites

    @property
    def done(self) -> bool:
        return all(engine.terminal for engine in self.engines)

    @property
    def statuses(self) -> List[GrowthStatus]:
        return [engine.status.copy() for engine in self.engines]

    def snapshots(self) -> List[RegionSnapshot]:
        return [
            RegionSnapshot(
                region_id=site.id,
                site=site,
                origin=origin,
                cells=engine.grid.snapshot(),
                status=engine.status.copy(),
            )
            for site, origin, engine in zip(self.sites, self.origins, self.engines)
        ]

    # ------------------------------------------------------------------ stepping
    def _step_region(self, region_id: int, stuck: List[Tuple[int, Tuple[int, int]]]) -> None:
        engine = self.engines[region_id]
        if engine.step() is StepOutcome.STUCK:
            x, y = engine.last_stuck
            ox, oy = self.origins[region_id]
            stuck.append((region_id, (ox + x, oy + y)))

    def _advance(self) -> None:
        stuck: List[Tuple[int, Tuple[int, int]]] = []
        if self.config.schedule is Schedule.ROUND_ROBIN:
            for region_id, engine in enumerate(self.engines):
                if not engine.terminal:
                    self._step_region(region_id, stuck)
        else:
            while self._cursor < len(self.engines) and self.engines[self._cursor].terminal:
                self._cursor += 1
            if self._cursor < len(self.engines):
                engine = self.engines[self._cursor]
                while not engine.terminal:
                    self._step_region(self._cursor, stuck)
        self.tick_count += 1
        self._record(stuck)

    def _record(self, stuck: List[Tuple[int, Tuple[int, int]]]) -> None:
        if self.ephemeral is None:
            self._pending_added.extend(
                CellUpdate(pos, region_id, CellState.OCCUPIED) for region_id, pos in stuck
            )
            return
        self._pending_expired.extend(self.ephemeral.expire(self.tick_count))
        for region_id, pos in stuck:
            record, evicted = self.ephemeral.add(pos, region_id, self.tick_count)
            self._pending_added.append(record)
            self._pending_expired.extend(evicted)

    def frame(self) -> WorldFrame:
        """
        Current state plus every render record produced since the last frame.

        Records accumulate across ``run()`` as well, so each stuck cell is
        handed out exactly once.
        """
        added, self._pending_added = self._pending_added, []
        expired, self._pending_expired = self._pending_expired, []
        return WorldFrame(self.tick_count, self.snapshots(), added, expired)

    def tick(self) -> WorldFrame:
        """Advance one tick and return the frame the renderer should draw."""
        self._advance()
        return self.frame()

    def run(self, max_ticks: int | None = None) -> List[GrowthStatus]:
        """
        Advance until every region is terminal (or ``max_ticks`` ran out).

        Render records are kept for the next ``frame()`` or ``tick()`` call.
        """
        ticks = 0
        while not self.done:
            if max_ticks is not None and ticks >= max_ticks:
                break
            self._advance()
            ticks += 1
        return self.statuses

    def stop(self, region_id: int | None = None) -> None:
        """Stop one region, or every region when ``region_id`` is None."""
        targets = self.engines if region_id is None else [self.engines[region_id]]
        for engine in targets:
            engine.stop()

    # ------------------------------------------------------------------ export
    def to_result(self) -> utils.WorldResult:
        clusters = np.stack([engine.grid.snapshot() for engine in self.engines])
        sites = np.array([s.position for s in self.sites], dtype=np.int64)
        meta = {
            "model": "voronoi_dla",
            "grid_width": self.config.grid_width,
            "grid_height": self.config.grid_height,
            "voronoi_points": self.config.voronoi_points,
            "radius": self.config.radius,
            "margin": self.config.margin,
            "max_iterations": self.config.max_iterations,
            "seed": self.config.seed,
            "schedule": self.config.schedule.value,
            "ticks": self.tick_count,
            "origins": np.array(self.origins, dtype=np.int64),
            "added_count": np.array([e.status.added_count for e in self.engines], dtype=np.int64),
            "walker_count": np.array([e.status.walker_count for e in self.engines], dtype=np.int64),
            "reasons": [None if e.status.reason is None else e.status.reason.value for e in self.engines],
        }
        return utils.WorldResult(
            region_map=np.array(self.region_map), clusters=clusters, sites=sites, meta=meta
        )


__all__ = [
    "Schedule",
    "WorldConfig",
    "CellUpdate",
    "EphemeralCells",
    "RegionSnapshot",
    "WorldFrame",
    "WorldSimulator",
]
