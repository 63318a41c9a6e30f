"""
Voronoi-partitioned DLA - Core Models

This package grows one diffusion-limited aggregation cluster per Voronoi region:
- SiteIndex / partition: nearest-site assignment of a 2D grid
- ClusterGrid / AggregationEngine: resumable on-lattice DLA in a circular domain
- WorldSimulator: one engine per region, advanced sequentially or round-robin
"""

from .lattice import (
    AggregationEngine,
    CellState,
    ClusterGrid,
    GrowthParams,
    GrowthStatus,
    StepOutcome,
    TerminationReason,
    WalkerState,
)
from .voronoi import Site, SiteIndex, generate_sites, partition, region_sizes
from .world import (
    CellUpdate,
    EphemeralCells,
    RegionSnapshot,
    Schedule,
    WorldConfig,
    WorldFrame,
    WorldSimulator,
)
from .utils import ConfigurationError
from . import analysis, utils

__all__ = [
    # Simulators
    "WorldSimulator",
    "AggregationEngine",
    # Spatial
    "Site",
    "SiteIndex",
    "generate_sites",
    "partition",
    "region_sizes",
    "ClusterGrid",
    # Configuration classes
    "WorldConfig",
    "GrowthParams",
    "Schedule",
    # State
    "CellState",
    "GrowthStatus",
    "StepOutcome",
    "TerminationReason",
    "WalkerState",
    "CellUpdate",
    "EphemeralCells",
    "RegionSnapshot",
    "WorldFrame",
    # Errors
    "ConfigurationError",
    # Utilities
    "analysis",
    "utils",
]
