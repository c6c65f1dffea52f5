"""CLI entrypoint for the Grand Prix race engine."""

from __future__ import annotations

import logging
import sys

from gp_engine import __version__
from gp_engine.config import load_circuit, load_sim_config
from gp_engine.core.car import Car
from gp_engine.core.driver import Driver, DriverSkills
from gp_engine.core.race import simulate_race
from gp_engine.core.reporting import classification_frame, event_counts
from gp_engine.core.state import EventKind
from gp_engine.core.team import TeamRatings
from gp_engine.core.traits import Trait

# (team, overall pace, reliability, tyre wear factor)
_SAMPLE_TEAMS: list[tuple[str, float, float, float]] = [
    ("Scuderia Rossa", 96.0, 90.0, 88.0),
    ("Silver Arrow", 95.0, 93.0, 90.0),
    ("Papaya Racing", 94.0, 91.0, 92.0),
    ("Energy Bulls", 93.0, 88.0, 85.0),
    ("Green Lane", 89.0, 87.0, 84.0),
    ("Blue Alpine", 87.0, 85.0, 83.0),
]


def _sample_grid() -> tuple[list[Driver], dict[str, TeamRatings]]:
    grid: list[Driver] = []
    ratings: dict[str, TeamRatings] = {}
    for i, (team, pace, reliability, wear) in enumerate(_SAMPLE_TEAMS):
        car = Car(
            team_name=team,
            overall_pace=pace,
            high_speed_cornering=pace - 2.0,
            medium_speed_cornering=pace - 1.0,
            low_speed_cornering=pace - 3.0,
            power_sensitivity=pace,
            reliability=reliability,
            tyre_wear_factor=wear,
        )
        ratings[team] = TeamRatings(leadership=16.0 - i, innovation=17.0 - i)
        for seat in (1, 2):
            skills = DriverSkills(
                pace=92.0 - i - seat,
                qualifying_pace=90.0 - i,
                racecraft=88.0 - i,
                tyre_management=86.0 + seat - i,
                consistency=90.0 - i,
                wet_weather=85.0,
                trait=Trait.TYRE_WHISPERER if (i, seat) == (2, 1) else None,
            )
            grid.append(
                Driver(
                    name=f"{team.split()[0]} #{seat}",
                    skills=skills,
                    car=car,
                    number=len(grid) + 1,
                )
            )
    return grid, ratings


def main() -> None:
    """Run a demonstration race on the shipped circuit catalogue."""
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    print(f"Grand Prix Race Engine v{__version__}")
    print("=" * 56)

    track = load_circuit("Bahrain International Circuit")
    config = load_sim_config()
    grid, ratings = _sample_grid()

    print(f"\nTrack : {track.name} ({track.laps} laps)")
    print(f"Field : {len(grid)} cars")
    print("-" * 56)

    result = simulate_race(track, grid, team_ratings=ratings, seed=2026, config=config)

    table = classification_frame(result)
    print()
    print(
        table[["position", "driver", "team", "pit_stops", "gap_to_leader", "status"]].to_string(
            index=False, na_rep="-"
        )
    )

    fastest = result.fastest_lap
    if fastest is not None:
        print(f"\nFastest lap: {fastest.driver} {fastest.time:.3f}s (lap {fastest.lap})")
    counts = event_counts(result.event_log)
    overtakes = int(counts.get(EventKind.OVERTAKE.value, 0))
    print(f"Overtakes  : {overtakes}")
    print(f"Retirements: {', '.join(result.dnf_list) or 'none'}")


if __name__ == "__main__":
    sys.exit(main() or 0)
