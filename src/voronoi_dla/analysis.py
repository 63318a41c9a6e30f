"""
Cluster observables for grown regions.

Sandbox method (static geometry): count mass M(<R) inside radius R around the
seed and fit log(M) = Df * log(R) + C.
"""
from __future__ import annotations

from typing import Any, Dict, List, Tuple

import numpy as np
from scipy.stats import linregress

from .lattice import CellState


def radius_of_gyration(positions: np.ndarray) -> float:
    """Rg = sqrt(<r^2> - <r>^2) of an (N, 2) point set."""
    pos = np.asarray(positions, dtype=np.float64)
    if pos.ndim != 2 or pos.shape[1] != 2:
        raise ValueError(f"Expected positions to be shape (N, 2), got {pos.shape}.")
    if len(pos) == 0:
        raise ValueError("Cannot compute radius of gyration of an empty cluster.")
    cm = pos.mean(axis=0)
    rg_sq = np.mean(np.sum((pos - cm) ** 2, axis=1))
    return float(np.sqrt(max(0.0, rg_sq)))


def sandbox_dimension(
    positions: np.ndarray, center: Tuple[float, float], min_points: int = 3
) -> Tuple[float, float]:
    """
    Mass-radius fractal dimension around ``center``.

    Returns:
        Tuple of (Df, r_squared)

    Raises:
        ValueError: If fewer than ``min_points`` distinct radii are available
    """
    pos = np.asarray(positions, dtype=np.float64)
    r = np.sort(np.hypot(pos[:, 0] - center[0], pos[:, 1] - center[1]))
    radii = np.unique(r[r > 0])
    if len(radii) < min_points:
        raise ValueError(
            f"Too few distinct radii ({len(radii)}) for sandbox analysis; need {min_points}."
        )
    mass = np.searchsorted(r, radii, side="right")
    slope, intercept, r_value, p_value, std_err = linregress(np.log(radii), np.log(mass))
    return float(slope), float(r_value**2)


def summarize_world(world) -> List[Dict[str, Any]]:
    """One summary dict per region of a WorldSimulator."""
    rows = []
    for snap in world.snapshots():
        occupied = np.argwhere(snap.cells == CellState.OCCUPIED)
        row: Dict[str, Any] = {
            "region_id": snap.region_id,
            "site": snap.site.position,
            "added_count": snap.status.added_count,
            "walker_count": snap.status.walker_count,
            "reason": None if snap.status.reason is None else snap.status.reason.value,
            "r_gyration": radius_of_gyration(occupied),
        }
        seed = (snap.site.position[0] - snap.origin[0], snap.site.position[1] - snap.origin[1])
        try:
            row["sandbox_df"], row["sandbox_r2"] = sandbox_dimension(occupied, seed)
        except ValueError:
            # too small to fit
            row["sandbox_df"], row["sandbox_r2"] = float("nan"), float("nan")
        rows.append(row)
    return rows


__all__ = ["radius_of_gyration", "sandbox_dimension", "summarize_world"]
