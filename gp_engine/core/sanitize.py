"""Defensive repair of race and driver state.

Every function here is deterministic, never raises on bad values and is
idempotent: sanitizing an already-sanitized value returns an equal value.
Out-of-range numbers are clamped; missing or non-finite numbers are
replaced by a fixed default.
"""

from __future__ import annotations

import logging
import math
from dataclasses import replace
from enum import Enum
from typing import Any, TypeVar

from gp_engine.core.car import Car, CarLink
from gp_engine.core.driver import (
    Battle,
    Driver,
    DriverSkills,
    DriverStatus,
    GripAdvantage,
    Penalty,
    RetirementReason,
    WeekendModifier,
)
from gp_engine.core.energy import MAX_BOOST, BoostState, PaceMode
from gp_engine.core.physics import MAX_LAP_TIME, MIN_LAP_TIME
from gp_engine.core.state import Flag, RaceState, Weather
from gp_engine.core.strategy import PitStop, Strategy, default_strategy
from gp_engine.core.track import SecondaryCharacteristic, Track, TrackCharacteristic
from gp_engine.core.traits import Trait
from gp_engine.core.tyre import (
    MAX_TYRE_TEMP,
    TYRE_BLANKET_TEMP,
    Tyre,
    TyreCompound,
    TyreCondition,
)

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=Enum)

_MAX_RACE_TIME: float = 1.0e7
_MIN_STOP_GAP: int = 2


# ---------------------------------------------------------------------------
# Primitive clamps
# ---------------------------------------------------------------------------


def clamp_number(
    value: Any,
    fallback: float,
    low: float | None = None,
    high: float | None = None,
) -> float:
    """Clamp *value* into ``[low, high]``.

    Non-numeric, missing and non-finite values become *fallback* (which is
    itself clamped, so the result always lies in range).
    """
    try:
        number = float(value)
    except (TypeError, ValueError):
        number = float(fallback)
    if isinstance(value, bool) or not math.isfinite(number):
        number = float(fallback)
    if low is not None and number < low:
        number = low
    if high is not None and number > high:
        number = high
    return number


def clamp_int(value: Any, fallback: int, low: int | None = None, high: int | None = None) -> int:
    return int(round(clamp_number(value, fallback, low, high)))


def _coerce_enum(value: Any, enum_type: type[E], fallback: E | None) -> E | None:
    if isinstance(value, enum_type):
        return value
    try:
        return enum_type(value)
    except (TypeError, ValueError):
        return fallback


# ---------------------------------------------------------------------------
# Track and race state
# ---------------------------------------------------------------------------


def sanitize_track(track: Track | None) -> Track:
    """Clamp every numeric circuit rating to its documented range.

    Anything that is not a :class:`Track` is replaced by a default circuit.
    """
    if not isinstance(track, Track):
        track = Track(name="Unknown")
    return replace(
        track,
        laps=max(10, clamp_int(track.laps, 50, 0) or 50),
        base_lap_time=clamp_number(track.base_lap_time, 90.0, 60.0, 140.0),
        pit_loss=clamp_number(track.pit_loss, 20.0, 12.0, 40.0),
        tyre_stress=clamp_number(track.tyre_stress, 3.0, 1.0, 6.0),
        brake_wear=clamp_number(track.brake_wear, 3.0, 1.0, 6.0),
        power_sensitivity=clamp_number(track.power_sensitivity, 3.0, 1.0, 6.0),
        overtaking_difficulty=clamp_number(track.overtaking_difficulty, 3.0, 1.0, 6.0),
        drs_effectiveness=clamp_number(track.drs_effectiveness, 2.0, 0.0, 5.0),
        safety_car_probability=clamp_number(track.safety_car_probability, 0.5, 0.0, 1.0),
        vsc_probability=clamp_number(track.vsc_probability, 0.5, 0.0, 1.0),
        wet_session_probability=clamp_number(track.wet_session_probability, 0.2, 0.0, 1.0),
        primary=_coerce_enum(
            track.primary, TrackCharacteristic, TrackCharacteristic.HIGH_SPEED_FLOW
        ),
        secondary=_coerce_enum(track.secondary, SecondaryCharacteristic, None),
        risk_tier=clamp_int(track.risk_tier, 1, 1, 3),
    )


def sanitize_race_state(state: RaceState) -> RaceState:
    """Repair a race state in place and return it.

    The forecast is padded to the race distance with the current weather
    so every lap has an entry.
    """
    state.track = sanitize_track(state.track)
    state.total_laps = clamp_int(state.total_laps, state.track.laps, 1, 300)
    state.lap = clamp_int(state.lap, 1, 0, state.total_laps + 1)
    state.weather = _coerce_enum(state.weather, Weather, Weather.SUNNY)
    state.flag = _coerce_enum(state.flag, Flag, Flag.GREEN)
    state.flag_laps = clamp_int(state.flag_laps, 0, 0, 10)
    if state.flag is Flag.GREEN:
        state.flag_laps = 0
    state.restarting = bool(state.restarting)
    state.water_level = clamp_number(state.water_level, 0.0, 0.0, 100.0)
    state.grip_level = 100.0 - state.water_level
    state.air_temp = clamp_number(state.air_temp, 25.0, -10.0, 60.0)
    state.track_temp = clamp_number(state.track_temp, 40.0, -10.0, 80.0)

    forecast = [_coerce_enum(w, Weather, state.weather) for w in (state.master_forecast or [])]
    if len(forecast) < state.total_laps:
        forecast.extend([state.weather] * (state.total_laps - len(forecast)))
    state.master_forecast = forecast

    team_forecasts: dict[str, list[Weather]] = {}
    for team, team_forecast in (state.team_forecasts or {}).items():
        cleaned = [_coerce_enum(w, Weather, Weather.SUNNY) for w in (team_forecast or [])]
        if cleaned:
            team_forecasts[str(team)] = cleaned
    state.team_forecasts = team_forecasts
    return state


# ---------------------------------------------------------------------------
# Strategy
# ---------------------------------------------------------------------------


def sanitize_strategy(
    strategy: Strategy | None, laps: int, fallback: TyreCompound
) -> Strategy:
    """Repair a plan for a race of *laps* laps.

    Stop laps are clamped to ``[1, laps - 1]``, sorted and spaced at least
    two laps apart; stops pushed past ``laps - 1`` by the spacing are
    dropped.  A plan without any usable stop is replaced by the default
    plan for the race length.
    """
    if not isinstance(strategy, Strategy):
        strategy = Strategy(starting_compound=fallback)
    starting = _coerce_enum(strategy.starting_compound, TyreCompound, fallback)
    last_lap: int = max(1, laps - 1)

    raw_stops = strategy.pit_stops if isinstance(strategy.pit_stops, (tuple, list)) else ()
    stops: list[PitStop] = []
    for stop in raw_stops:
        if not isinstance(stop, PitStop):
            continue
        lap = clamp_int(stop.lap, laps // 2, 1, last_lap)
        stops.append(PitStop(lap, _coerce_enum(stop.compound, TyreCompound, fallback)))
    stops.sort(key=lambda s: s.lap)

    spaced: list[PitStop] = []
    for stop in stops:
        lap = stop.lap
        if spaced and lap < spaced[-1].lap + _MIN_STOP_GAP:
            lap = spaced[-1].lap + _MIN_STOP_GAP
        if lap > last_lap:
            break
        spaced.append(PitStop(lap, stop.compound))

    if not spaced:
        logger.debug("Replacing empty strategy with the default %d-lap plan", laps)
        return default_strategy(laps, starting)
    return Strategy(starting_compound=starting, pit_stops=tuple(spaced))


# ---------------------------------------------------------------------------
# Driver
# ---------------------------------------------------------------------------


def _sanitize_skills(skills: DriverSkills | None) -> DriverSkills:
    if not isinstance(skills, DriverSkills):
        skills = DriverSkills()
    return DriverSkills(
        pace=clamp_number(skills.pace, 80.0, 1.0, 100.0),
        qualifying_pace=clamp_number(skills.qualifying_pace, 80.0, 1.0, 100.0),
        racecraft=clamp_number(skills.racecraft, 80.0, 1.0, 100.0),
        tyre_management=clamp_number(skills.tyre_management, 80.0, 1.0, 100.0),
        consistency=clamp_number(skills.consistency, 80.0, 1.0, 100.0),
        wet_weather=clamp_number(skills.wet_weather, 80.0, 1.0, 100.0),
        aggression=clamp_number(skills.aggression, 50.0, 1.0, 100.0),
        incident_proneness=clamp_number(skills.incident_proneness, 15.0, 1.0, 100.0),
        trait=_coerce_enum(skills.trait, Trait, None),
    )


def _sanitize_car(car: Car | None) -> Car:
    if not isinstance(car, Car):
        car = Car(team_name="Unknown")
    return Car(
        team_name=car.team_name or "Unknown",
        overall_pace=clamp_number(car.overall_pace, 80.0, 40.0, 120.0),
        high_speed_cornering=clamp_number(car.high_speed_cornering, 80.0, 40.0, 120.0),
        medium_speed_cornering=clamp_number(car.medium_speed_cornering, 80.0, 40.0, 120.0),
        low_speed_cornering=clamp_number(car.low_speed_cornering, 80.0, 40.0, 120.0),
        power_sensitivity=clamp_number(car.power_sensitivity, 80.0, 40.0, 120.0),
        reliability=clamp_number(car.reliability, 80.0, 1.0, 100.0),
        tyre_wear_factor=clamp_number(car.tyre_wear_factor, 80.0, 40.0, 120.0),
    )


def _sanitize_modifier(modifier: WeekendModifier | None) -> WeekendModifier:
    if not isinstance(modifier, WeekendModifier):
        return WeekendModifier()
    return WeekendModifier(
        lap_time_delta=clamp_number(modifier.lap_time_delta, 0.0, -5.0, 5.0),
        pit_time_delta=clamp_number(modifier.pit_time_delta, 0.0, -5.0, 5.0),
        tyre_deg_multiplier=clamp_number(modifier.tyre_deg_multiplier, 1.0, 0.5, 2.0),
        pit_mistake_delta=clamp_number(modifier.pit_mistake_delta, 0.0, -20.0, 20.0),
    )


def _sanitize_tyre(tyre: Tyre | None, fallback: TyreCompound, air_temp: float) -> Tyre:
    if not isinstance(tyre, Tyre):
        tyre = Tyre.fresh(fallback)
    return Tyre(
        compound=_coerce_enum(tyre.compound, TyreCompound, fallback),
        wear=clamp_number(tyre.wear, 0.0, 0.0, 100.0),
        age=clamp_int(tyre.age, 0, 0, 200),
        temperature=clamp_number(
            tyre.temperature, max(air_temp, TYRE_BLANKET_TEMP), air_temp, MAX_TYRE_TEMP
        ),
        condition=_coerce_enum(tyre.condition, TyreCondition, TyreCondition.COLD),
    )


def sanitize_driver(
    driver: Driver, track: Track, air_temp: float = 25.0, laps: int | None = None
) -> Driver:
    """Repair a driver entity in place and return it.

    Args:
        driver: Entity to repair (callers pass a copy).
        track: Sanitized track; its base lap time is the lap-time default.
        air_temp: Sanitized ambient temperature; lower tyre temperature
            bound.
        laps: Race distance for strategy repair; defaults to
            ``track.laps``.
    """
    race_laps: int = laps if laps is not None else track.laps
    tyre_fallback = TyreCompound.MEDIUM
    if isinstance(driver.tyre, Tyre) and isinstance(driver.tyre.compound, TyreCompound):
        tyre_fallback = driver.tyre.compound

    driver.skills = _sanitize_skills(driver.skills)
    driver.car = _sanitize_car(driver.car)
    link = driver.car_link if isinstance(driver.car_link, CarLink) else CarLink()
    driver.car_link = CarLink(
        compatibility=clamp_number(link.compatibility, 50.0, 0.0, 100.0),
        adaptation=clamp_number(link.adaptation, 50.0, 0.0, 100.0),
    )
    driver.modifier = _sanitize_modifier(driver.modifier)
    driver.form = clamp_number(driver.form, 0.0, -10.0, 10.0)
    driver.strategy = sanitize_strategy(driver.strategy, race_laps, tyre_fallback)
    driver.tyre = _sanitize_tyre(driver.tyre, tyre_fallback, air_temp)

    driver.fuel = clamp_number(driver.fuel, 105.0, 0.0, 120.0)
    driver.status = _coerce_enum(driver.status, DriverStatus, DriverStatus.RACING)
    driver.lap_time = clamp_number(
        driver.lap_time, track.base_lap_time, MIN_LAP_TIME, MAX_LAP_TIME
    )
    driver.total_time = clamp_number(driver.total_time, 0.0, 0.0, _MAX_RACE_TIME)
    driver.gap_to_leader = clamp_number(driver.gap_to_leader, 0.0, 0.0, _MAX_RACE_TIME)
    driver.position = clamp_int(driver.position, 1, 1)
    driver.starting_position = clamp_int(driver.starting_position, 1, 1)
    driver.pace_mode = _coerce_enum(driver.pace_mode, PaceMode, PaceMode.STANDARD)
    driver.pit_count = clamp_int(driver.pit_count, 0, 0, 20)
    driver.track_limit_warnings = clamp_int(driver.track_limit_warnings, 0, 0, 2)

    used = [
        c for c in (_coerce_enum(c, TyreCompound, None) for c in (driver.compounds_used or []))
        if c is not None
    ]
    used = list(dict.fromkeys(used))
    if driver.tyre.compound not in used:
        used.append(driver.tyre.compound)
    driver.compounds_used = used
    driver.has_used_wet = bool(driver.has_used_wet) or any(c.is_wet for c in used)

    driver.penalties = [
        Penalty(
            seconds=clamp_number(p.seconds, 5.0, 0.0, 60.0),
            reason=str(p.reason),
            served=bool(p.served),
        )
        for p in (driver.penalties or [])
        if isinstance(p, Penalty)
    ]
    boost = driver.boost if isinstance(driver.boost, BoostState) else BoostState()
    driver.boost = BoostState(charge=clamp_number(boost.charge, MAX_BOOST, 0.0, MAX_BOOST))

    grip = driver.grip_advantage
    if isinstance(grip, GripAdvantage):
        driver.grip_advantage = GripAdvantage(
            laps=clamp_int(grip.laps, 0, 0, 10), bonus=clamp_number(grip.bonus, 0.0, 0.0, 1.0)
        )
    else:
        driver.grip_advantage = None
    battle = driver.battle
    if isinstance(battle, Battle) and battle.opponent:
        driver.battle = Battle(opponent=str(battle.opponent), laps=clamp_int(battle.laps, 1, 1, 200))
    else:
        driver.battle = None

    driver.damaged = bool(driver.damaged)
    driver.pit_target = _coerce_enum(driver.pit_target, TyreCompound, None)
    driver.pitted_this_lap = bool(driver.pitted_this_lap)
    driver.pitted_under_sc = bool(driver.pitted_under_sc)
    if driver.status.is_retired:
        driver.retirement_lap = clamp_int(driver.retirement_lap, 0, 0)
        driver.retirement_reason = _coerce_enum(
            driver.retirement_reason, RetirementReason, RetirementReason.MECHANICAL
        )
    return driver


def sanitize_field(drivers: list[Driver], state: RaceState) -> list[Driver]:
    """Sanitize copies of every driver against a sanitized *state*."""
    return [
        sanitize_driver(d.copy(), state.track, state.air_temp, state.total_laps)
        for d in drivers
        if isinstance(d, Driver)
    ]
