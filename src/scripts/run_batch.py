#!/usr/bin/env python3
"""
Batch World Runner

Generates multiple Voronoi DLA worlds in parallel, one per seed.
"""

import argparse
import json
import sys
import time
from concurrent.futures import ProcessPoolExecutor, as_completed
from pathlib import Path
from typing import Any, Dict

# Add src to path
SRC = Path(__file__).resolve().parents[1]
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from voronoi_dla import WorldConfig, WorldSimulator, utils


def run_single_world(params: Dict[str, Any], seed: int, output_path: str) -> Dict[str, Any]:
    """
    Run a single world and save it.

    Called in worker processes by ProcessPoolExecutor, so it lives at module level.
    """
    config = WorldConfig.from_dict({**params, "seed": seed})
    world = WorldSimulator(config)
    statuses = world.run()
    utils.save_world_result(output_path, world.to_result())
    return {
        "output_path": output_path,
        "seed": seed,
        "cells": int(sum(s.added_count for s in statuses)),
        "walkers": int(sum(s.walker_count for s in statuses)),
        "success": True,
    }


def main():
    parser = argparse.ArgumentParser(
        description="Generate a batch of Voronoi DLA worlds",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--config", type=str, default=None, help="JSON/TOML parameter file")
    parser.add_argument("--count", type=int, required=True, help="Number of worlds to generate")
    parser.add_argument("--jobs", type=int, default=1, help="Number of parallel processes (default: 1)")
    parser.add_argument("--name", type=str, default="batch", help="Batch name (default: 'batch')")
    parser.add_argument(
        "--base-seed",
        type=int,
        default=42,
        help="Base seed (each world gets base_seed + index) (default: 42)",
    )
    args = parser.parse_args()

    params = utils.load_params(args.config) if args.config else {}
    # Fail fast on a bad parameter file before any worker starts
    WorldConfig.from_dict(params)

    first_seed = args.base_seed
    last_seed = args.base_seed + args.count - 1
    timestamp = utils.now_str()
    batch_dir = Path("results") / "batches" / f"{args.name}_S{first_seed}-{last_seed}_{timestamp}"
    batch_dir.mkdir(parents=True, exist_ok=True)

    manifest = {
        "params": params,
        "count": args.count,
        "base_seed": args.base_seed,
        "jobs": args.jobs,
        "timestamp": timestamp,
        "batch_name": args.name,
    }
    manifest_path = batch_dir / "manifest.json"

    print(f"Batch generation started:")
    print(f"  Total worlds: {args.count}")
    print(f"  Parallel jobs: {args.jobs}")
    print(f"  Output directory: {batch_dir}")
    print()

    tasks = [(params, args.base_seed + i, str(batch_dir / f"{args.base_seed + i}.npz")) for i in range(args.count)]

    start_time = time.time()
    results = []
    failed = []

    with ProcessPoolExecutor(max_workers=args.jobs) as executor:
        future_to_task = {executor.submit(run_single_world, *task): task for task in tasks}

        completed = 0
        for future in as_completed(future_to_task):
            completed += 1
            task = future_to_task[future]
            try:
                result = future.result()
                results.append(result)
                print(
                    f"  [{completed}/{args.count}] Completed: seed={result['seed']}, "
                    f"cells={result['cells']}"
                )
            except Exception as e:
                failed.append({"seed": task[1], "error": str(e)})
                print(f"  [{completed}/{args.count}] FAILED: seed={task[1]} - {e}")

    elapsed_time = time.time() - start_time

    manifest["results"] = {
        "total": args.count,
        "successful": len(results),
        "failed": len(failed),
        "elapsed_seconds": elapsed_time,
    }
    manifest["worlds"] = results
    if failed:
        manifest["failures"] = failed

    with open(manifest_path, "w") as f:
        json.dump(manifest, f, indent=2)

    print()
    print("=" * 60)
    print("Batch generation completed!")
    print(f"  Successful: {len(results)}/{args.count}")
    print(f"  Failed: {len(failed)}/{args.count}")
    print(f"  Total time: {elapsed_time:.2f} seconds")
    print(f"  Manifest: {manifest_path}")
    print("=" * 60)

    return 0 if len(failed) == 0 else 1


if __name__ == "__main__":
    sys.exit(main())
