"""
Nearest-site (Voronoi) partition of a discrete grid.

Sites are drawn uniformly over the grid; every cell is then assigned to the
site at the smallest Euclidean distance. Distances are compared as exact
integer squared distances, so a tie is a true tie and always resolves to the
lowest site id.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

import numpy as np
from numba import njit

from .utils import ConfigurationError, check_positive


@dataclass(frozen=True)
class Site:
    """A region center. ``color`` is an optional display tag for renderers."""

    id: int
    position: Tuple[int, int]
    color: Optional[Tuple[float, float, float]] = None


def generate_sites(
    rng: np.random.Generator,
    width: int,
    height: int,
    count: int,
    *,
    with_colors: bool = True,
) -> list[Site]:
    """
    Draw ``count`` uniform integer sites in [0, width) x [0, height).

    Duplicate coordinates are allowed; the later duplicate simply ends up with
    an empty region. Colors are pastel (every channel in [0.5, 1.0)) and are
    drawn after all positions so the positions do not depend on the flag.
    """
    check_positive("width", width)
    check_positive("height", height)
    check_positive("voronoi_points", count)

    positions = []
    for _ in range(count):
        x = int(rng.integers(0, width))
        y = int(rng.integers(0, height))
        positions.append((x, y))

    colors: list[Optional[Tuple[float, float, float]]] = [None] * count
    if with_colors:
        colors = [
            tuple(float(c) for c in rng.uniform(0.5, 1.0, size=3)) for _ in range(count)
        ]

    return [Site(id=i, position=pos, color=col) for i, (pos, col) in enumerate(zip(positions, colors))]


class SiteIndex:
    """Answers nearest-site queries over a fixed list of sites."""

    def __init__(self, sites: Sequence[Site]) -> None:
        if len(sites) == 0:
            raise ConfigurationError("SiteIndex needs at least one site")
        self.sites = tuple(sites)
        self.xy = np.array([s.position for s in self.sites], dtype=np.int64).reshape(-1, 2)

    @classmethod
    def random(
        cls, rng: np.random.Generator, width: int, height: int, count: int
    ) -> "SiteIndex":
        return cls(generate_sites(rng, width, height, count))

    def __len__(self) -> int:
        return len(self.sites)

    def __getitem__(self, site_id: int) -> Site:
        return self.sites[site_id]

    def nearest(self, point: Tuple[int, int]) -> int:
        """Id of the closest site; the lowest id wins an exact tie."""
        px, py = int(point[0]), int(point[1])
        d2 = (self.xy[:, 0] - px) ** 2 + (self.xy[:, 1] - py) ** 2
        # argmin returns the first minimiser
        return int(np.argmin(d2))


@njit(cache=True)
def _assign_regions(site_x: np.ndarray, site_y: np.ndarray, width: int, height: int) -> np.ndarray:
    """Brute-force nearest-site labelling, O(cells x sites)."""
    region = np.empty((width, height), dtype=np.int32)
    n_sites = site_x.shape[0]
    for x in range(width):
        for y in range(height):
            best = 0
            dx = x - site_x[0]
            dy = y - site_y[0]
            best_d2 = dx * dx + dy * dy
            for i in range(1, n_sites):
                dx = x - site_x[i]
                dy = y - site_y[i]
                d2 = dx * dx + dy * dy
                if d2 < best_d2:  # strict: earlier sites keep ties
                    best_d2 = d2
                    best = i
            region[x, y] = best
    return region


def partition(grid_width: int, grid_height: int, site_index: SiteIndex) -> np.ndarray:
    """
    Assign every cell of a ``grid_width x grid_height`` grid to its nearest site.

    Returns a read-only int32 array indexed ``[x, y]`` holding site ids.
    """
    check_positive("grid_width", grid_width)
    check_positive("grid_height", grid_height)
    region = _assign_regions(
        np.ascontiguousarray(site_index.xy[:, 0]),
        np.ascontiguousarray(site_index.xy[:, 1]),
        int(grid_width),
        int(grid_height),
    )
    region.flags.writeable = False
    return region


def region_sizes(region_map: np.ndarray, n_sites: int) -> np.ndarray:
    """Number of cells assigned to each site id (zero for shadowed duplicates)."""
    return np.bincount(np.asarray(region_map).ravel(), minlength=n_sites)


__all__ = ["Site", "SiteIndex", "generate_sites", "partition", "region_sizes"]
