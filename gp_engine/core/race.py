"""Per-lap race pipeline and full-race runner.

:func:`advance_lap` is the engine's primary operation: a function from
(field, race state, team ratings, race history) to the next field, the
next race state and the lap's ordered events.  Inputs are never mutated;
each lap works on sanitized copies.

Per lap the stages run strictly in this order::

    sanitize -> weather -> per driver {strategy, pit, lap time, tyres}
             -> incidents -> battles -> flags -> finalize

Per-driver work is independent; battles and the finalizer need every
driver's lap to be complete because they work on the sorted field.

:func:`simulate_race` drives a whole race from a qualifying order and
collects the classification, lap times, lap chart and event log.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Mapping
from dataclasses import dataclass, field, replace

import numpy as np
from numpy.random import Generator

from gp_engine.core.battle import resolve_battles
from gp_engine.core.context import LapContext
from gp_engine.core.driver import Driver, DriverStatus, GripAdvantage
from gp_engine.core.energy import MAX_BOOST, BoostState, fuel_burn, regen_amount
from gp_engine.core.flags import advance_flag, opening_flag, standing_restart
from gp_engine.core.incidents import simulate_key_moments, simulate_lap_incidents
from gp_engine.core.physics import MAX_LAP_TIME, MIN_LAP_TIME, lap_noise, lap_time, safe_lap_time
from gp_engine.core.pit import (
    choose_pace_mode,
    choose_pit_tyre,
    end_of_lap_pit_call,
    execute_pit_stop,
    limp_to_pits,
    overcut_attempt,
    safety_car_pit_call,
    weather_pit_call,
)
from gp_engine.core.sanitize import (
    sanitize_field,
    sanitize_race_state,
    sanitize_track,
)
from gp_engine.core.state import (
    RACE_CONTROL,
    EventKind,
    FastestLap,
    Flag,
    LapEvent,
    RaceState,
    Weather,
)
from gp_engine.core.strategy import Strategy, generate_strategy
from gp_engine.core.team import RaceHistoryEntry, TeamRatings
from gp_engine.core.track import Track
from gp_engine.core.tuning import SimConfig
from gp_engine.core.tyre import (
    TyreCompound,
    apply_degradation,
    degradation,
    update_condition,
    update_temperature,
)
from gp_engine.core.weather import (
    generate_master_forecast,
    generate_team_forecasts,
    team_outlook,
    update_weather,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

GRID_GAP: float = 0.2  # seconds between grid slots at the start
START_FUEL: float = 110.0

_HEROICS_MARGIN: float = 4.0
_HEROICS_MAX_BONUS: float = 0.20
_HEROICS_MAX_LAPS: int = 10


# ---------------------------------------------------------------------------
# Result containers
# ---------------------------------------------------------------------------


@dataclass
class LapResult:
    """Output of one engine call.

    Attributes:
        drivers: The field after the lap, in classification order.
        race_state: Race state for the next lap.
        events: The lap's events, flag changes first.
    """

    drivers: list[Driver]
    race_state: RaceState
    events: list[LapEvent] = field(default_factory=list)


@dataclass
class RaceResult:
    """Outcome of a full race simulation.

    Attributes:
        final_classification: Ordered list of driver names.  Finishers are
            sorted by cumulative time; retirements follow, latest first.
        dnf_list: Driver names of entries that did not finish.
        lap_times: Mapping from driver name to the list of per-lap times.
        positions: Mapping from driver name to the position after each lap.
        event_log: ``(lap, event)`` pairs; lap 0 holds the start.
        drivers: Final driver entities.
        race_state: Final race state.
    """

    final_classification: list[str] = field(default_factory=list)
    dnf_list: list[str] = field(default_factory=list)
    lap_times: dict[str, list[float]] = field(default_factory=dict)
    positions: dict[str, list[int]] = field(default_factory=dict)
    event_log: list[tuple[int, LapEvent]] = field(default_factory=list)
    drivers: list[Driver] = field(default_factory=list)
    race_state: RaceState | None = None

    @property
    def winner(self) -> str | None:
        return self.final_classification[0] if self.final_classification else None

    @property
    def fastest_lap(self) -> FastestLap | None:
        return self.race_state.fastest_lap if self.race_state is not None else None


# ---------------------------------------------------------------------------
# Finalizer
# ---------------------------------------------------------------------------


def finalize_positions(drivers: list[Driver]) -> list[Driver]:
    """Sort the field in place and assign contiguous positions.

    Running cars are ordered by cumulative time.  Retired cars follow,
    ordered by descending retirement lap; ties keep their previous order.
    Gaps are measured to the leading running car.

    Returns:
        The same list, sorted.
    """
    def sort_key(driver: Driver) -> tuple[int, float, int]:
        if driver.is_retired:
            return (1, -float(driver.retirement_lap or 0), driver.position)
        return (0, driver.total_time, driver.position)

    drivers.sort(key=sort_key)
    leader = next((d for d in drivers if not d.is_retired), None)
    leader_time = leader.total_time if leader is not None else 0.0
    for i, driver in enumerate(drivers):
        driver.position = i + 1
        if not driver.is_retired:
            driver.gap_to_leader = driver.total_time - leader_time
    return drivers


def serve_outstanding_penalties(drivers: list[Driver]) -> list[LapEvent]:
    """Add every unserved time penalty to the finishers' race times."""
    events: list[LapEvent] = []
    for driver in drivers:
        if driver.is_retired:
            continue
        unserved = driver.unserved_penalties()
        if not unserved:
            continue
        seconds = sum(p.seconds for p in unserved)
        driver.total_time += seconds
        for penalty in unserved:
            penalty.served = True
        events.append(
            LapEvent(
                EventKind.LAP_EVENT,
                driver.name,
                {"message": f"has {seconds:g}s added to their race time.", "seconds": seconds},
            )
        )
    return events


# ---------------------------------------------------------------------------
# Per-driver lap
# ---------------------------------------------------------------------------


def _tick_grip_advantage(driver: Driver) -> None:
    grip = driver.grip_advantage
    if grip is None:
        return
    grip.laps -= 1
    if grip.laps <= 0:
        driver.grip_advantage = None


def _racing_lap(driver: Driver, state: RaceState, ctx: LapContext, noise: float) -> list[LapEvent]:
    skills = driver.skills
    update_temperature(
        driver.tyre,
        pace_mode=driver.pace_mode,
        in_battle=driver.battle is not None,
        tyre_stress=state.track.tyre_stress,
        tyre_management=skills.tyre_management,
        trait=driver.trait,
        air_temp=state.air_temp,
    )
    update_condition(driver.tyre, driver.pace_mode, ctx.rng, ctx.config)
    raw = lap_time(driver, state, ctx, noise)
    driver.lap_time = safe_lap_time(raw, driver, state.track, ctx.rng)

    fastest = state.fastest_lap
    if (
        driver.status is DriverStatus.RACING
        and state.flag is Flag.GREEN
        and (fastest is None or driver.lap_time < fastest.time)
    ):
        state.fastest_lap = FastestLap(driver=driver.name, time=driver.lap_time, lap=state.lap)
        return [LapEvent(EventKind.FASTEST_LAP, driver.name, {"time": driver.lap_time})]
    return []


def simulate_driver_lap(
    driver: Driver, state: RaceState, previous_water: float, ctx: LapContext
) -> list[LapEvent]:
    """Run the strategy, pit, lap-time and tyre stages for one driver.

    Args:
        driver: Sanitized copy; mutated in place.
        state: Race state with this lap's weather already realised.
        previous_water: Standing water before this lap's weather update.
        ctx: Lap context.

    Returns:
        The driver's events for the lap, in order.
    """
    driver.pitted_this_lap = False
    if driver.is_retired:
        return []

    events: list[LapEvent] = []
    noise = lap_noise(driver, state, ctx.rng)
    _tick_grip_advantage(driver)

    ratings = ctx.ratings_for(driver.team_name)
    outlook = team_outlook(state, driver.team_name, ratings.strategy_rating)
    driver.boost.harvest(regen_amount(driver.pace_mode, state.flag))

    overcut_event = overcut_attempt(driver, state, ctx)
    overcutting = overcut_event is not None
    if overcut_event is not None:
        events.append(overcut_event)
    driver.pace_mode = choose_pace_mode(driver, overcutting)

    needs_weather_stop, radio = weather_pit_call(driver, state, outlook, ctx)
    events.extend(radio)
    events.extend(safety_car_pit_call(driver, state, previous_water, outlook, ctx))

    if driver.status is DriverStatus.LIMPING:
        limp_to_pits(driver, state)
    elif driver.status is DriverStatus.IN_PITS:
        events.extend(execute_pit_stop(driver, state, previous_water, outlook, ctx))
        if driver.is_retired:
            return events
    else:
        events.extend(_racing_lap(driver, state, ctx, noise))

    driver.lap_time = min(MAX_LAP_TIME, max(MIN_LAP_TIME, driver.lap_time))
    driver.total_time += driver.lap_time
    driver.fuel = max(0.0, driver.fuel - fuel_burn(driver.pace_mode))
    amount = degradation(
        driver.tyre,
        tyre_stress=state.track.tyre_stress,
        tyre_management=driver.skills.tyre_management,
        car_tyre_wear=driver.car.tyre_wear_factor,
        pace_mode=driver.pace_mode,
        is_wet=state.is_wet,
        trait=driver.trait,
        deg_multiplier=driver.modifier.tyre_deg_multiplier,
    )
    apply_degradation(driver.tyre, amount)

    should_pit, message, radio = end_of_lap_pit_call(
        driver, state, needs_weather_stop, overcutting, ctx
    )
    events.extend(radio)
    if should_pit and driver.status is not DriverStatus.IN_PITS and not driver.pitted_this_lap:
        driver.status = DriverStatus.IN_PITS
        driver.pit_target = choose_pit_tyre(driver, state, previous_water, outlook, ctx)
        events.append(LapEvent(EventKind.PIT_ENTRY, driver.name, {"message": message}))
    return events


# ---------------------------------------------------------------------------
# Lap pipeline
# ---------------------------------------------------------------------------


def _run_lap(drivers: list[Driver], race_state: RaceState, ctx: LapContext) -> LapResult:
    state = sanitize_race_state(race_state.copy())
    field_ = sanitize_field(drivers, state)
    previous_water = state.water_level
    events: list[LapEvent] = []
    proposals: list[Flag] = []

    if state.restarting:
        restart = standing_restart(field_, state, ctx)
        events.extend(restart.events)
        proposals.extend(restart.proposals)

    events.extend(update_weather(state))

    if state.flag is Flag.RED:
        # The field is frozen: no stops, no running, lap times held.
        for driver in field_:
            driver.pitted_this_lap = False
    else:
        for driver in field_:
            events.extend(simulate_driver_lap(driver, state, previous_water, ctx))
        incidents = simulate_lap_incidents(field_, state, ctx)
        events.extend(incidents.events)
        proposals.extend(incidents.proposals)
        events.extend(resolve_battles(field_, state, ctx))

    events = advance_flag(state, proposals, field_) + events

    if state.lap >= state.total_laps:
        events.extend(serve_outstanding_penalties(field_))

    finalize_positions(field_)
    state.lap += 1
    return LapResult(drivers=field_, race_state=state, events=events)


def _recover(drivers: list[Driver], race_state: RaceState) -> LapResult:
    """Re-sanitize the inputs and move on to the next lap."""
    try:
        state = race_state.copy()
    except (AttributeError, TypeError, ValueError):
        state = replace(race_state, master_forecast=[], team_forecasts={})
    state = sanitize_race_state(state)
    field_ = finalize_positions(sanitize_field(list(drivers or []), state))
    state.lap = min(state.total_laps + 1, state.lap + 1)
    event = LapEvent(
        EventKind.LAP_EVENT,
        RACE_CONTROL,
        {"message": "Race Control resets timing systems after a glitch. Race will continue."},
    )
    return LapResult(drivers=field_, race_state=state, events=[event])


def advance_lap(
    drivers: list[Driver],
    race_state: RaceState,
    team_ratings: Mapping[str, TeamRatings] | None = None,
    race_history: Mapping[str, list[RaceHistoryEntry]] | None = None,
    *,
    config: SimConfig | None = None,
    rng: Generator | None = None,
) -> LapResult:
    """Simulate lap ``race_state.lap`` and return the next state.

    The caller's drivers and race state are left untouched.  Any failure
    inside the pipeline is logged and answered with a re-sanitized field
    and a race state whose lap counter has advanced, so a race always
    makes progress.

    Args:
        drivers: Current field.
        race_state: Current race state.
        team_ratings: Personnel ratings keyed by team name; teams without
            a record use generic ratings.
        race_history: Past winners keyed by circuit name.
        config: Engine probabilities; defaults to :class:`SimConfig`.
        rng: Random generator; an unseeded one when omitted.

    Returns:
        A :class:`LapResult` with the field in classification order.
    """
    ctx = LapContext.build(team_ratings, race_history, config, rng)
    try:
        return _run_lap(drivers, race_state, ctx)
    except Exception:
        logger.exception("Lap %s failed; recovering with sanitized state", getattr(race_state, "lap", "?"))
        return _recover(drivers, race_state)


# ---------------------------------------------------------------------------
# Race start
# ---------------------------------------------------------------------------


def new_race_state(
    track: Track,
    rng: Generator | None = None,
    config: SimConfig | None = None,
    laps: int | None = None,
    air_temp: float = 25.0,
    track_temp: float = 40.0,
) -> RaceState:
    """Race state for lap 1 with a freshly generated master forecast."""
    safe_track = sanitize_track(track)
    total_laps: int = laps if laps is not None else safe_track.laps
    generator = rng if rng is not None else np.random.default_rng()
    forecast = generate_master_forecast(safe_track, generator, config, laps=total_laps)
    return RaceState(
        track=safe_track,
        total_laps=total_laps,
        lap=1,
        weather=forecast[0] if forecast else Weather.SUNNY,
        master_forecast=forecast,
        air_temp=air_temp,
        track_temp=track_temp,
    )


def _qualifying_heroics(drivers: list[Driver]) -> list[LapEvent]:
    """Reward drivers who qualified well above their car's expected slot.

    Cars are ranked by overall pace; a car ranked ``r`` is expected to
    start around ``2r - 0.5``.  Beating that by more than four places
    earns a grip advantage for the opening laps.
    """
    paces: dict[str, float] = {}
    for driver in drivers:
        paces[driver.team_name] = max(paces.get(driver.team_name, 0.0), driver.car.overall_pace)
    ranked = sorted(paces, key=lambda team: -paces[team])
    car_rank = {team: i + 1 for i, team in enumerate(ranked)}

    events: list[LapEvent] = []
    for driver in drivers:
        expected = car_rank[driver.team_name] * 2 - 0.5
        delta = expected - driver.starting_position
        if delta <= _HEROICS_MARGIN:
            continue
        bonus = min(_HEROICS_MAX_BONUS, (delta - _HEROICS_MARGIN) * 0.025)
        laps = min(_HEROICS_MAX_LAPS, 3 + math.floor(delta / 3))
        driver.grip_advantage = GripAdvantage(laps=laps, bonus=bonus)
        events.append(
            LapEvent(
                EventKind.QUALIFYING_HEROICS,
                driver.name,
                {"position": driver.starting_position},
            )
        )
    return events


def _grid_entry(driver: Driver, slot: int, state: RaceState) -> Driver:
    entry = driver.copy()
    if state.is_wet:
        heavy = state.weather in (Weather.HEAVY_RAIN, Weather.EXTREME_RAIN)
        compound = TyreCompound.WET if heavy else TyreCompound.INTERMEDIATE
    else:
        compound = entry.strategy.starting_compound
    entry.compounds_used = []
    entry.has_used_wet = False
    entry.fit_tyre(compound)
    entry.position = slot
    entry.starting_position = slot
    entry.fuel = START_FUEL
    entry.status = DriverStatus.RACING
    entry.lap_time = 0.0
    entry.total_time = (slot - 1) * GRID_GAP
    entry.gap_to_leader = 0.0
    entry.pit_count = 0
    entry.penalties = []
    entry.track_limit_warnings = 0
    entry.boost = BoostState(charge=MAX_BOOST)
    entry.grip_advantage = None
    entry.battle = None
    entry.damaged = False
    entry.pit_target = None
    entry.pitted_this_lap = False
    entry.pitted_under_sc = False
    entry.retirement_lap = None
    entry.retirement_reason = None
    return entry


def start_race(
    grid: list[Driver],
    race_state: RaceState,
    team_ratings: Mapping[str, TeamRatings] | None = None,
    *,
    config: SimConfig | None = None,
    rng: Generator | None = None,
) -> LapResult:
    """Line the field up in qualifying order and run the start.

    Fits starting tyres (wet-weather tyres for a wet start), fills fuel,
    spaces the grid 0.2 s apart, derives each team's forecast, awards
    qualifying heroics and runs the start's key-moment pass.  A flag
    raised at the start uses the longer start durations.

    Args:
        grid: Drivers in qualifying order.
        race_state: State from :func:`new_race_state`; not mutated.
        team_ratings: Personnel ratings keyed by team name.
        config: Engine probabilities.
        rng: Random generator.

    Returns:
        The field and race state ready for lap 1, plus the start events.
    """
    ctx = LapContext.build(team_ratings, None, config, rng)
    state = sanitize_race_state(race_state.copy())
    state.team_forecasts = generate_team_forecasts(
        state.master_forecast, ctx.team_ratings, ctx.rng, ctx.config
    )
    entries = [_grid_entry(d, i + 1, state) for i, d in enumerate(grid)]
    field_ = sanitize_field(entries, state)

    events = _qualifying_heroics(field_)
    start = simulate_key_moments(field_, state, ctx)
    events.extend(start.events)
    events = opening_flag(state, start.proposals) + events

    finalize_positions(field_)
    logger.info(
        "Lights out at %s: %d cars, %d laps", state.track.name, len(field_), state.total_laps
    )
    return LapResult(drivers=field_, race_state=state, events=events)


# ---------------------------------------------------------------------------
# Full race
# ---------------------------------------------------------------------------


def simulate_race(
    track: Track,
    grid: list[Driver],
    team_ratings: Mapping[str, TeamRatings] | None = None,
    race_history: Mapping[str, list[RaceHistoryEntry]] | None = None,
    laps: int | None = None,
    seed: int | None = None,
    config: SimConfig | None = None,
    strategies: Mapping[str, Strategy] | None = None,
) -> RaceResult:
    """Simulate a full race lap by lap.

    Drivers without a planned stop (and no entry in *strategies*) get a
    plan from :func:`generate_strategy`.

    Args:
        track: Circuit to race on.
        grid: Drivers in qualifying order.
        team_ratings: Personnel ratings keyed by team name.
        race_history: Past winners keyed by circuit name.
        laps: Race distance; defaults to ``track.laps``.
        seed: Seed for ``np.random.default_rng``; unseeded when ``None``.
        config: Engine probabilities.
        strategies: Pre-built plans keyed by driver name.

    Returns:
        A :class:`RaceResult`.

    Raises:
        ValueError: If *laps* is less than 1 or the grid is empty.
    """
    if laps is not None and laps < 1:
        raise ValueError(f"laps must be >= 1, got {laps}")
    if not grid:
        raise ValueError("grid must contain at least one driver")

    rng = np.random.default_rng(seed)
    cfg = config if config is not None else SimConfig()
    ratings = team_ratings if team_ratings is not None else {}
    plans = strategies if strategies is not None else {}
    state = new_race_state(track, rng, cfg, laps)

    planned: list[Driver] = []
    for slot, driver in enumerate(grid, start=1):
        strategy = plans.get(driver.name)
        if strategy is None and not driver.strategy.pit_stops:
            strategy = generate_strategy(
                state.track,
                driver.skills.tyre_management,
                driver.car,
                ratings.get(driver.team_name, TeamRatings.generic()),
                slot,
                rng,
                laps=state.total_laps,
            )
        planned.append(replace(driver, strategy=strategy) if strategy is not None else driver)

    lap = start_race(planned, state, ratings, config=cfg, rng=rng)
    result = RaceResult(
        lap_times={d.name: [] for d in lap.drivers},
        positions={d.name: [] for d in lap.drivers},
        event_log=[(0, e) for e in lap.events],
    )

    while lap.race_state.lap <= lap.race_state.total_laps:
        lap_number = lap.race_state.lap
        frozen = lap.race_state.flag is Flag.RED
        lap = advance_lap(
            lap.drivers, lap.race_state, ratings, race_history, config=cfg, rng=rng
        )
        result.event_log.extend((lap_number, e) for e in lap.events)
        for driver in lap.drivers:
            if not frozen and driver.retirement_lap is None:
                result.lap_times[driver.name].append(driver.lap_time)
            result.positions[driver.name].append(driver.position)

    result.drivers = lap.drivers
    result.race_state = lap.race_state
    result.final_classification = [d.name for d in lap.drivers]
    result.dnf_list = [d.name for d in lap.drivers if d.is_retired]
    return result
