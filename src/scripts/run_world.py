#!/usr/bin/env python3
"""
Single World Runner

Partitions a grid into Voronoi regions, grows one DLA cluster per region and
saves the result as .npz.
"""

import argparse
import sys
import time
from pathlib import Path

# Add src to path
SRC = Path(__file__).resolve().parents[1]
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from voronoi_dla import ConfigurationError, Schedule, WorldConfig, WorldSimulator, analysis, utils


def build_config(args) -> WorldConfig:
    """Merge an optional parameter file with explicit command-line options."""
    params = utils.load_params(args.config) if args.config else {}
    overrides = {
        "grid_width": args.width,
        "grid_height": args.height,
        "voronoi_points": args.sites,
        "radius": args.radius,
        "max_iterations": args.max_iterations,
        "margin": args.margin,
        "max_cells": args.max_cells,
        "seed": args.seed,
        "schedule": args.schedule,
    }
    params.update({k: v for k, v in overrides.items() if v is not None})
    if args.confine:
        params["confine_to_region"] = True
    params.setdefault("seed", 42)
    return WorldConfig.from_dict(params)


def add_world_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--config", type=str, default=None, help="JSON/TOML parameter file")
    parser.add_argument("--width", type=int, default=None, help="grid width (default: 64)")
    parser.add_argument("--height", type=int, default=None, help="grid height (default: 64)")
    parser.add_argument("--sites", type=int, default=None, help="number of Voronoi sites (default: 10)")
    parser.add_argument("--radius", type=int, default=None, help="growth radius per region (default: 20)")
    parser.add_argument(
        "--max-iterations", type=int, default=None, help="walker budget per region (default: 10000)"
    )
    parser.add_argument("--margin", type=int, default=None, help="buffer padding (default: 5)")
    parser.add_argument(
        "--max-cells", type=int, default=None, help="cluster size cap per region, seed included"
    )
    parser.add_argument(
        "--schedule",
        choices=[s.value for s in Schedule],
        default=None,
        help="region scheduling policy (default: round_robin)",
    )
    parser.add_argument(
        "--confine", action="store_true", help="keep each cluster inside its own region"
    )


def main():
    parser = argparse.ArgumentParser(
        description="Grow DLA clusters inside Voronoi regions",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    add_world_arguments(parser)
    parser.add_argument("--seed", type=int, default=None, help="Random seed (default: 42)")
    parser.add_argument(
        "--out",
        type=str,
        default=None,
        help="Output .npz file path (auto-generated if not provided)",
    )
    args = parser.parse_args()

    try:
        config = build_config(args)
    except ConfigurationError as e:
        print(f"Invalid configuration: {e}")
        return 2

    print(
        f"Running Voronoi DLA: {config.grid_width}x{config.grid_height}, "
        f"sites={config.voronoi_points}, radius={config.radius}, seed={config.seed}"
    )
    start_time = time.time()
    world = WorldSimulator(config)
    world.run()
    elapsed_time = time.time() - start_time

    if args.out is None:
        output_dir = Path("results")
        output_dir.mkdir(exist_ok=True)
        args.out = str(
            output_dir
            / f"world_P{config.voronoi_points}_R{config.radius}_S{config.seed}_{utils.now_str()}.npz"
        )
    utils.save_world_result(args.out, world.to_result())

    print(f"\n✅ Simulation completed successfully!")
    print(f"   Time elapsed: {elapsed_time:.2f} seconds")
    for row in analysis.summarize_world(world):
        print(
            f"   region {row['region_id']:>3} at {row['site']}: cells={row['added_count']}, "
            f"walkers={row['walker_count']}, Rg={row['r_gyration']:.2f}, "
            f"Df={row['sandbox_df']:.3f}, {row['reason']}"
        )
    print(f"   Output saved to: {args.out}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
