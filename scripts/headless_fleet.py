#!/usr/bin/env python3
"""Run the fleet tracker against an in-memory map and print the fleet.

Useful for watching the simulation, location fallback and emergency
countdown without a browser::

    python scripts/headless_fleet.py --ticks 5 --tick-interval 0.5 -v
    python scripts/headless_fleet.py --driver drv-7 --bus PB-210 --mode network --zone ludhiana
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import random
import sys
from pathlib import Path
from typing import Any

# Allow running from repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from fleetsync import FleetConfig, FleetTracker, HeadlessSurface  # noqa: E402
from fleetsync.models import Entity  # noqa: E402


def _section(title: str) -> str:
    return f"\n{'=' * 60}\n  {title}\n{'=' * 60}"


def _row(entity: Entity) -> str:
    occupancy = str(entity.occupancy) if entity.occupancy else "-"
    return (
        f"  {entity.label:<10} {entity.position.lat:>9.5f} {entity.position.lng:>9.5f}"
        f"  hdg={entity.heading:6.1f}  spd={entity.speed:5.1f}  {entity.status:<8} {occupancy:>6}"
    )


async def run(args: argparse.Namespace) -> dict[str, Any]:
    overrides: dict[str, Any] = {"tick_interval": args.tick_interval}
    if args.state:
        overrides["state_path"] = args.state
    config = FleetConfig.from_env(**overrides)
    surface = HeadlessSurface()
    rng = random.Random(args.seed) if args.seed is not None else None

    async with FleetTracker(config, surface=surface, rng=rng) as tracker:
        if args.driver:
            await tracker.start_driver_session(args.driver, args.bus or args.driver, args.mode, zone=args.zone)
        if args.sos:
            tracker.trigger_emergency("headless demo")

        for tick in range(1, args.ticks + 1):
            await asyncio.sleep(config.tick_interval)
            if not args.json_mode:
                print(_section(f"tick {tick}  markers={len(surface.markers)}"))
                for entity in tracker.registry.list():
                    print(_row(entity))
                if tracker.location.degraded:
                    print("  (location degraded: using regional fallback)")

        return {
            "ticks": tracker.simulator.ticks,
            "surface_calls": {op: surface.count(op) for op in ("create", "update", "remove", "pan", "control")},
            "entities": [e.model_dump(mode="json", by_alias=True) for e in tracker.registry.list()],
            "escalation": {"phase": tracker.escalation.phase, "dispatched": tracker.escalation.dispatch_count},
        }


def main() -> None:
    parser = argparse.ArgumentParser(description="Run fleetsync headlessly and print the fleet every tick.")
    parser.add_argument("--ticks", type=int, default=5, help="Number of ticks to observe")
    parser.add_argument("--tick-interval", type=float, default=1.0, help="Seconds between simulation ticks")
    parser.add_argument("--seed", type=int, help="Seed the random source for a reproducible run")
    parser.add_argument("--state", help="Persist the fleet to this JSON file")
    parser.add_argument("--driver", help="Start a driver session with this driver id")
    parser.add_argument("--bus", help="Bus number for the driver session")
    parser.add_argument("--mode", choices=("gps", "network"), default="gps", help="Location mode for the driver")
    parser.add_argument("--zone", help="Approximation zone for network mode")
    parser.add_argument("--sos", action="store_true", help="Trigger the emergency countdown")
    parser.add_argument("--json", action="store_true", dest="json_mode", help="Output a machine-readable summary")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")
    else:
        logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    try:
        summary = asyncio.run(run(args))
    except KeyboardInterrupt:
        return
    if args.json_mode:
        print(json.dumps(summary, indent=2, default=str, ensure_ascii=False))


if __name__ == "__main__":
    main()
