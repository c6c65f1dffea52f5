"""Monte Carlo race analytics for the Grand Prix engine.

Repeats :func:`~gp_engine.core.race.simulate_race` over a block of
consecutive seeds, records one row per driver per replication and reduces
the table with pandas into per-driver outcome statistics.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

import pandas as pd

from gp_engine.core.driver import Driver
from gp_engine.core.race import RaceResult, simulate_race
from gp_engine.core.team import RaceHistoryEntry, TeamRatings
from gp_engine.core.track import Track
from gp_engine.core.tuning import SimConfig

logger = logging.getLogger(__name__)

# Championship points for positions 1-10.
POINTS_TABLE: list[int] = [25, 18, 15, 12, 10, 8, 6, 4, 2, 1]


def replication_rows(result: RaceResult, run: int) -> list[dict[str, Any]]:
    """Flatten one race into ``run/driver/position/dnf/points`` rows.

    Retired drivers keep their classified position but score no points.
    """
    retired = set(result.dnf_list)
    rows: list[dict[str, Any]] = []
    for index, name in enumerate(result.final_classification):
        dnf = name in retired
        points = 0 if dnf or index >= len(POINTS_TABLE) else POINTS_TABLE[index]
        rows.append(
            {"run": run, "driver": name, "position": index + 1, "dnf": dnf, "points": points}
        )
    return rows


def simulate_race_monte_carlo(
    track: Track,
    grid: list[Driver],
    simulations: int,
    base_seed: int = 42,
    laps: int | None = None,
    team_ratings: Mapping[str, TeamRatings] | None = None,
    race_history: Mapping[str, list[RaceHistoryEntry]] | None = None,
    config: SimConfig | None = None,
) -> dict[str, Any]:
    """Estimate outcome probabilities from repeated seeded races.

    Replication *i* runs with ``seed = base_seed + i``; the same arguments
    therefore always give the same statistics, and the global numpy random
    state is never touched.

    Args:
        track: Circuit to simulate.
        grid: Drivers in qualifying order.
        simulations: Number of replications (>= 1).
        base_seed: Seed of the first replication.
        laps: Race length; defaults to ``track.laps``.
        team_ratings: Personnel ratings keyed by team name.
        race_history: Past winners keyed by circuit name.
        config: Engine probabilities.

    Returns:
        Dictionary keyed by statistic, each a per-driver mapping:
            winner_probabilities  -- share of races won
            podium_probabilities  -- share of top-3 classifications
            expected_position     -- mean classified position
            expected_points       -- mean points per ``POINTS_TABLE``
            finish_distribution   -- ``{position: share}`` for every
                                     position the driver reached
            dnf_rate              -- share of races not finished

    Raises:
        ValueError: If simulations < 1.
    """
    if simulations < 1:
        raise ValueError(f"simulations must be >= 1, got {simulations}")

    rows: list[dict[str, Any]] = []
    for run in range(simulations):
        result = simulate_race(
            track,
            grid,
            team_ratings=team_ratings,
            race_history=race_history,
            laps=laps,
            seed=base_seed + run,
            config=config,
        )
        rows.extend(replication_rows(result, run))
    logger.debug("Completed %d replications at %s", simulations, track.name)

    runs = pd.DataFrame(rows)
    by_driver = runs.groupby("driver")
    names: list[str] = [d.name for d in grid]

    def per_driver(values: pd.Series) -> dict[str, float]:
        return {name: float(values.get(name, 0.0)) for name in names}

    shares = pd.crosstab(runs["driver"], runs["position"], normalize="index")
    distribution: dict[str, dict[int, float]] = {}
    for name in names:
        row = shares.loc[name] if name in shares.index else pd.Series(dtype=float)
        distribution[name] = {int(pos): float(share) for pos, share in row.items() if share > 0}

    return {
        "winner_probabilities": per_driver((runs["position"] == 1).groupby(runs["driver"]).mean()),
        "podium_probabilities": per_driver((runs["position"] <= 3).groupby(runs["driver"]).mean()),
        "expected_position": per_driver(by_driver["position"].mean()),
        "expected_points": per_driver(by_driver["points"].mean()),
        "finish_distribution": distribution,
        "dnf_rate": per_driver(by_driver["dnf"].mean()),
    }
