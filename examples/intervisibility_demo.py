#!/usr/bin/env python3
"""
Intervisibility Network Demo -- chuk-mcp-intervisibility

Builds the visibility network between six Lake District summits, then
checks one sightline directly. Demonstrates starting a run, polling its
progress, and reading back pairs and network statistics.

Usage:
    python examples/intervisibility_demo.py

Requirements:
    pip install chuk-mcp-intervisibility
    (Requires network access to Copernicus DEM S3 buckets)
"""

import asyncio
import sys

from tool_runner import ToolRunner

# -- Configuration -----------------------------------------------------------

SITES = [
    {"id": "helvellyn", "name": "Helvellyn", "lat": 54.5271, "lon": -3.0164, "elevation": 950},
    {"id": "scafell", "name": "Scafell Pike", "lat": 54.4542, "lon": -3.2115, "elevation": 978},
    {"id": "skiddaw", "name": "Skiddaw", "lat": 54.6513, "lon": -3.1478, "elevation": 931},
    {"id": "gable", "name": "Great Gable", "lat": 54.4820, "lon": -3.2193, "elevation": 899},
    {"id": "blencathra", "name": "Blencathra", "lat": 54.6397, "lon": -3.0503, "elevation": 868},
    {"id": "coniston", "name": "Old Man of Coniston", "lat": 54.3703, "lon": -3.1209},
]
SOURCE = "cop30"
SCAN_RADIUS_KM = 40.0
POLL_INTERVAL_S = 2.0


# -- Main pipeline -----------------------------------------------------------


async def main() -> None:
    runner = ToolRunner()

    print("=" * 60)
    print("Lake District Summits -- Intervisibility Network")
    print("=" * 60)

    # Step 1: Start the run
    print(f"\nStep 1: Starting run for {len(SITES)} summits...")
    start = await runner.run(
        "iv_run_start", sites=SITES, source=SOURCE, scan_radius_km=SCAN_RADIUS_KM
    )
    if "error" in start:
        print(f"  ERROR: {start['error']}")
        sys.exit(1)
    run_id = start["run_id"]
    print(f"  Run: {run_id}")

    # Step 2: Poll until the run finishes
    print("\nStep 2: Waiting for horizon profiles and pair checks...")
    while True:
        status = await runner.run("iv_run_status", run_id=run_id)
        print(f"  [{status['state']}] {status.get('progress') or ''}")
        if status["state"] in ("completed", "cancelled", "failed"):
            break
        await asyncio.sleep(POLL_INTERVAL_S)

    if status["state"] == "failed":
        print(f"  Run failed: {status.get('error')}")
        sys.exit(1)

    # Step 3: Visible pairs
    print("\nStep 3: Intervisible pairs")
    print(await runner.run_text("iv_run_results", run_id=run_id))

    # Step 4: Network statistics
    print("\nStep 4: Network statistics")
    print(await runner.run_text("iv_run_statistics", run_id=run_id))

    # Step 5: Direct check between two summits
    a, b = SITES[0], SITES[1]
    print(f"\nStep 5: Direct sightline {a['name']} -> {b['name']}")
    los = await runner.run_text(
        "iv_line_of_sight",
        observer=[a["lon"], a["lat"]],
        target=[b["lon"], b["lat"]],
        observer_height_m=1.8,
        use_horizon=True,
        source=SOURCE,
    )
    print(los)

    print("\n" + "=" * 60)
    print("Done.")


if __name__ == "__main__":
    asyncio.run(main())
