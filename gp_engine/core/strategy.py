"""Pre-race tyre strategy model and generator.

A :class:`Strategy` is produced once before the race and only consulted
during it: the engine reads the next untaken stop, it never re-plans.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

from numpy.random import Generator

from gp_engine.core.car import Car
from gp_engine.core.team import TeamRatings
from gp_engine.core.track import Track
from gp_engine.core.tyre import COMPOUND_PROPERTIES, TyreCompound


@dataclass(frozen=True)
class PitStop:
    """A planned stop: come in at the end of ``lap`` and fit ``compound``."""

    lap: int
    compound: TyreCompound


@dataclass(frozen=True)
class Strategy:
    """Starting compound plus an ordered list of planned stops.

    Attributes:
        starting_compound: Compound fitted on the grid.
        pit_stops: Planned stops in lap order.
    """

    starting_compound: TyreCompound = TyreCompound.MEDIUM
    pit_stops: tuple[PitStop, ...] = ()

    def next_stop(self, stops_made: int) -> PitStop | None:
        """The next untaken stop, if any."""
        if 0 <= stops_made < len(self.pit_stops):
            return self.pit_stops[stops_made]
        return None


def default_strategy(laps: int, starting_compound: TyreCompound) -> Strategy:
    """Fallback plan for a strategy with no usable stops.

    Long races get a two-stop plan onto Medium then Hard, medium races a
    single stop at half distance onto Hard, short races a single stop at
    55% distance onto Hard.
    """
    last: int = max(1, laps - 1)
    if laps >= 45:
        stops = (
            PitStop(min(last, laps // 3), TyreCompound.MEDIUM),
            PitStop(min(last, (2 * laps) // 3), TyreCompound.HARD),
        )
    elif laps >= 30:
        stops = (PitStop(min(last, laps // 2), TyreCompound.HARD),)
    else:
        stops = (PitStop(min(last, max(1, round(laps * 0.55))), TyreCompound.HARD),)
    return Strategy(starting_compound=starting_compound, pit_stops=stops)


# ---------------------------------------------------------------------------
# Strategy generator
# ---------------------------------------------------------------------------

_ONE_STOP_TRACKS: frozenset[str] = frozenset(
    {
        "Circuit de Monaco",
        "Hungaroring",
        "Circuit Zandvoort",
        "Autodromo Enzo e Dino Ferrari",
        "Marina Bay Street Circuit",
    }
)
_TWO_STOP_TRACKS: frozenset[str] = frozenset(
    {
        "Silverstone Circuit",
        "Bahrain International Circuit",
        "Circuit de Barcelona-Catalunya",
        "Suzuka International Racing Course",
        "Circuit of the Americas",
    }
)

_MIN_STOP_LAP: int = 5
_MIN_STINT_GAP: int = 8


def adjusted_stint_laps(
    track: Track, tyre_management: float, car: Car
) -> dict[TyreCompound, int]:
    """Expected stint length per compound for a driver/car/track."""
    track_factor: float = 1.0 + (3.0 - track.tyre_stress) * 0.1
    driver_factor: float = 1.0 + (tyre_management - 85.0) / 100.0 * 0.5
    car_factor: float = 1.0 + (car.tyre_wear_factor - 85.0) / 100.0 * 0.5
    factor: float = track_factor * driver_factor * car_factor

    laps: dict[TyreCompound, int] = {}
    for compound, props in COMPOUND_PROPERTIES.items():
        if compound.is_dry:
            laps[compound] = math.floor(props.life * factor)
        else:
            laps[compound] = props.life
    return laps


def _jitter(rng: Generator, spread: float) -> float:
    return (rng.random() - 0.5) * spread


def _one_stop_plan(
    stint: dict[TyreCompound, int], grid_position: int, rng: Generator
) -> Strategy:
    # Front-runners sometimes gamble on a Soft start for the launch.
    if grid_position <= 3 and rng.random() < 0.4:
        lap = round(stint[TyreCompound.SOFT] * 0.9 + _jitter(rng, 3.0))
        return Strategy(TyreCompound.SOFT, (PitStop(lap, TyreCompound.HARD),))
    lap = round(stint[TyreCompound.MEDIUM] * 0.95 + _jitter(rng, 4.0))
    return Strategy(TyreCompound.MEDIUM, (PitStop(lap, TyreCompound.HARD),))


def _two_stop_plan(
    stint: dict[TyreCompound, int], grid_position: int, rng: Generator
) -> Strategy:
    if grid_position > 12 and rng.random() < 0.6:
        first = round(stint[TyreCompound.SOFT] * 0.9 + _jitter(rng, 3.0))
        second = round(stint[TyreCompound.MEDIUM] * 0.9 + _jitter(rng, 4.0))
        return Strategy(
            TyreCompound.SOFT,
            (
                PitStop(first, TyreCompound.MEDIUM),
                PitStop(first + second, TyreCompound.SOFT),
            ),
        )
    first = round(stint[TyreCompound.MEDIUM] * 0.9 + _jitter(rng, 4.0))
    second = round(stint[TyreCompound.HARD] * 0.9 + _jitter(rng, 4.0))
    final = TyreCompound.SOFT if rng.random() < 0.6 else TyreCompound.MEDIUM
    return Strategy(
        TyreCompound.MEDIUM,
        (PitStop(first, TyreCompound.HARD), PitStop(first + second, final)),
    )


def generate_strategy(
    track: Track,
    tyre_management: float,
    car: Car,
    ratings: TeamRatings,
    grid_position: int,
    rng: Generator,
    laps: int | None = None,
) -> Strategy:
    """Pick and detail a one-stop or two-stop plan for a driver.

    The two-stop plan is the baseline.  A one-stop plan is only viable
    when a Medium and a Hard stint cover the race distance with a margin,
    and is favoured on tracks where overtaking is hard and tyre stress is
    low.  Weaker strategy departments add more noise to the scores.

    Args:
        track: Circuit to plan for.
        tyre_management: Driver tyre management rating.
        car: The driver's car.
        ratings: Team personnel ratings.
        grid_position: Starting position (1-based).
        rng: Random generator.
        laps: Race distance; defaults to ``track.laps``.

    Returns:
        A :class:`Strategy` with stops between lap 5 and ``laps - 3`` and
        at least 8 laps between stops.
    """
    race_laps: int = laps if laps is not None else track.laps
    stint = adjusted_stint_laps(track, tyre_management, car)

    one_stop: float
    if stint[TyreCompound.MEDIUM] + stint[TyreCompound.HARD] < race_laps * 1.05:
        one_stop = -999.0
    else:
        one_stop = 90.0
        one_stop += (track.overtaking_difficulty - 3.0) * 15.0
        one_stop -= (track.tyre_stress - 3.0) * 15.0
        if track.name in _ONE_STOP_TRACKS:
            one_stop += 25.0

    two_stop: float = 100.0
    two_stop += (track.tyre_stress - 3.0) * 10.0
    two_stop -= (track.overtaking_difficulty - 3.0) * 10.0
    if track.name in _TWO_STOP_TRACKS:
        two_stop += 15.0

    chaos: float = (100.0 - ratings.planning_rating) / 100.0
    one_stop += _jitter(rng, 30.0) * chaos
    two_stop += _jitter(rng, 30.0) * chaos

    if one_stop > two_stop:
        plan = _one_stop_plan(stint, grid_position, rng)
    else:
        plan = _two_stop_plan(stint, grid_position, rng)

    # Keep stops inside a realistic window and apart from each other.
    latest: int = max(_MIN_STOP_LAP, race_laps - 3)
    laps_sorted = sorted(min(latest, max(_MIN_STOP_LAP, s.lap)) for s in plan.pit_stops)
    stops: list[PitStop] = []
    for lap, original in zip(laps_sorted, plan.pit_stops):
        if stops and lap < stops[-1].lap + _MIN_STINT_GAP:
            lap = stops[-1].lap + _MIN_STINT_GAP + int(rng.integers(0, 3))
        stops.append(PitStop(lap, original.compound))
    return Strategy(starting_compound=plan.starting_compound, pit_stops=tuple(stops))
