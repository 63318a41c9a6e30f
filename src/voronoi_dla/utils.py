# src/voronoi_dla/utils.py
from __future__ import annotations

import json
import os
import time
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import numpy as np


class ConfigurationError(ValueError):
    """Raised when simulation parameters are invalid, before anything runs."""


def check_positive(name: str, value, *, minimum: int = 1) -> None:
    """Validate that ``value`` is an int no smaller than ``minimum``."""
    if isinstance(value, bool) or not isinstance(value, (int, np.integer)):
        raise ConfigurationError(f"{name} must be an integer, got {value!r}")
    if value < minimum:
        raise ConfigurationError(f"{name} must be >= {minimum}, got {value}")


def make_rng(seed: int | None = None) -> np.random.Generator:
    """Build the random generator shared by sites and growth engines."""
    return np.random.default_rng(seed)


def now_str() -> str:
    return time.strftime("%Y%m%d-%H%M%S")


@dataclass
class WorldResult:
    """Common container for a finished (or partial) world run."""

    region_map: Optional[np.ndarray] = None
    clusters: Optional[np.ndarray] = None
    sites: Optional[np.ndarray] = None
    meta: Optional[Dict[str, Any]] = None

    def ensure_meta(self) -> Dict[str, Any]:
        if self.meta is None:
            self.meta = {}
        return self.meta


def save_world_result(
    path: str | os.PathLike[str], result: WorldResult, *, overwrite: bool = True
) -> None:
    """Serialize a WorldResult to a compressed .npz file."""
    out_dir = Path(path).parent
    out_dir.mkdir(parents=True, exist_ok=True)
    out: Dict[str, Any] = {}
    if result.region_map is not None:
        out["region_map"] = np.asarray(result.region_map, dtype=np.int32)
    if result.clusters is not None:
        out["clusters"] = np.asarray(result.clusters).astype("uint8")
    if result.sites is not None:
        out["sites"] = np.asarray(result.sites, dtype=np.int64)

    # Arrays in meta go to the top level, everything else stays in meta
    meta = result.meta or {}
    meta_clean = {}
    for key, value in meta.items():
        if isinstance(value, np.ndarray):
            out[key] = value
        else:
            meta_clean[key] = value
    out["meta"] = meta_clean

    if not overwrite and Path(path).exists():
        raise FileExistsError(f"{path} already exists")
    np.savez_compressed(path, **out)


def load_world_result(path: str | os.PathLike[str]) -> WorldResult:
    """Load a world .npz written by save_world_result."""
    data = np.load(path, allow_pickle=True)
    region_map = data["region_map"].astype(np.int32) if "region_map" in data else None
    clusters = data["clusters"].astype(np.uint8) if "clusters" in data else None
    sites = data["sites"].astype(np.int64) if "sites" in data else None
    meta: Dict[str, Any] = {}
    if "meta" in data:
        meta_raw = data["meta"]
        if hasattr(meta_raw, "item"):
            try:
                meta = meta_raw.item()
            except ValueError:
                meta = meta_raw
        else:
            meta = meta_raw
    for key in data.files:
        if key not in {"region_map", "clusters", "sites", "meta"} and key not in meta:
            meta[key] = data[key]
    return WorldResult(region_map=region_map, clusters=clusters, sites=sites, meta=meta)


def load_params(path: str | os.PathLike[str]) -> Dict[str, Any]:
    """
    Load simulation parameters from JSON or TOML.
    """
    path = str(path)
    with open(path, "rb") as fh:
        data = fh.read()
    suffix = Path(path).suffix.lower()
    if suffix in {".json", ""}:
        return json.loads(data.decode("utf-8"))
    if suffix in {".toml", ".tml"}:
        return tomllib.loads(data.decode("utf-8"))
    raise ValueError(f"Unsupported parameter file format: {suffix}")
