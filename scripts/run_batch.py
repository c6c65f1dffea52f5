#!/usr/bin/env python
"""Monte Carlo batch runner for a single circuit.

Runs ``simulate_race_monte_carlo`` over a generic field on a circuit
from the catalogue and writes the aggregated probabilities to a JSON
file.

Usage
-----
::

    python scripts/run_batch.py --circuit "Circuit de Monaco" --simulations 200
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from pathlib import Path

# Ensure the project root is on the import path.
_project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

from gp_engine.config import load_circuit, load_sim_config  # noqa: E402
from gp_engine.core.car import Car  # noqa: E402
from gp_engine.core.driver import Driver, DriverSkills  # noqa: E402
from gp_engine.core.monte_carlo import simulate_race_monte_carlo  # noqa: E402

logger = logging.getLogger("run_batch")

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

DEFAULT_CIRCUIT: str = "Bahrain International Circuit"
DEFAULT_SIMULATIONS: int = 100
BASE_SEED: int = 2026
RESULTS_PATH: Path = Path(_project_root) / "results" / "latest_batch.json"


def setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def build_field(teams: int) -> list[Driver]:
    """A generic grid of *teams* two-car teams, fastest first."""
    grid: list[Driver] = []
    for i in range(teams):
        car = Car(
            team_name=f"Team {i + 1}",
            overall_pace=95.0 - i * 1.5,
            reliability=92.0 - i,
            tyre_wear_factor=88.0 - i,
        )
        for seat in (1, 2):
            skills = DriverSkills(
                pace=92.0 - i - seat * 0.5,
                racecraft=88.0 - i,
                tyre_management=85.0,
                consistency=88.0 - i * 0.5,
            )
            grid.append(Driver(name=f"T{i + 1} Driver {seat}", skills=skills, car=car))
    return grid


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Run a Monte Carlo batch of races on one circuit",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--circuit", default=DEFAULT_CIRCUIT, help="Circuit name")
    parser.add_argument(
        "--simulations", type=int, default=DEFAULT_SIMULATIONS, help="Number of races"
    )
    parser.add_argument("--teams", type=int, default=10, help="Number of two-car teams")
    parser.add_argument("--seed", type=int, default=BASE_SEED, help="Base seed")
    parser.add_argument("--laps", type=int, default=None, help="Override race distance")
    parser.add_argument("--output", type=Path, default=RESULTS_PATH, help="JSON output path")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    args = parser.parse_args()

    setup_logging(args.verbose)

    track = load_circuit(args.circuit)
    config = load_sim_config()
    grid = build_field(args.teams)
    logger.info("Running %d races at %s", args.simulations, track.name)

    results = simulate_race_monte_carlo(
        track,
        grid,
        simulations=args.simulations,
        base_seed=args.seed,
        laps=args.laps,
        config=config,
    )

    args.output.parent.mkdir(parents=True, exist_ok=True)
    payload = {
        "circuit": track.name,
        "simulations": args.simulations,
        "base_seed": args.seed,
        **{
            key: (
                {name: {str(p): v for p, v in dist.items()} for name, dist in value.items()}
                if key == "finish_distribution"
                else value
            )
            for key, value in results.items()
        },
    }
    with open(args.output, "w", encoding="utf-8") as fh:
        json.dump(payload, fh, indent=2)
    logger.info("Results saved to %s", args.output)

    print(f"\n{'Driver':<16} {'Win %':>7} {'Podium %':>9} {'Exp Pos':>8} {'DNF %':>7}")
    ranking = sorted(results["expected_position"], key=results["expected_position"].get)
    for name in ranking:
        print(
            f"{name:<16} {results['winner_probabilities'][name] * 100:7.1f}"
            f" {results['podium_probabilities'][name] * 100:9.1f}"
            f" {results['expected_position'][name]:8.2f}"
            f" {results['dnf_rate'][name] * 100:7.1f}"
        )


if __name__ == "__main__":
    sys.exit(main() or 0)
