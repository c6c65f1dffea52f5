"""Lap time calculator for the race engine.

A lap time is a sum of additive terms over the circuit's reference lap,
scaled by weather and flag multipliers.  Because several terms are
multiplicative, the raw result is always passed through
:func:`safe_lap_time` before it is applied.
"""

from __future__ import annotations

import logging
import math

from numpy.random import Generator

from gp_engine.core.car import Car, car_link_impact
from gp_engine.core.context import LapContext
from gp_engine.core.driver import Driver, DriverStatus
from gp_engine.core.energy import PaceMode
from gp_engine.core.state import Flag, RaceState, Weather
from gp_engine.core.track import SecondaryCharacteristic, Track, TrackCharacteristic
from gp_engine.core.traits import TraitEffect, trait_effect
from gp_engine.core.tyre import TyreCompound, condition_penalty, wear_penalty

logger = logging.getLogger(__name__)

MIN_LAP_TIME: float = 40.0
MAX_LAP_TIME: float = 400.0

_PRIOR_WINNER_BONUS: float = 0.15
_FUEL_TIME_PER_KG: float = 0.03
_CLOSING_LAPS: int = 10

_PACE_MODE_DELTA: dict[PaceMode, float] = {
    PaceMode.PUSHING: -0.3,
    PaceMode.STANDARD: 0.0,
    PaceMode.CONSERVING: 0.4,
}
_FLAG_MULTIPLIER: dict[Flag, float] = {
    Flag.SAFETY_CAR: 1.5,
    Flag.VIRTUAL_SAFETY_CAR: 1.3,
}
_SLICKS_IN_RAIN: dict[Weather, float] = {
    Weather.EXTREME_RAIN: 60.0,
    Weather.HEAVY_RAIN: 45.0,
    Weather.LIGHT_RAIN: 25.0,
}
_WETS_ON_DRY_TRACK: float = 12.0
_EXTREME_MULTIPLIER: float = 1.15
_DAMAGED_MULTIPLIER: float = 1.05


# ---------------------------------------------------------------------------
# Car/track fit
# ---------------------------------------------------------------------------


def race_track_fit(car: Car, track: Track) -> float:
    """Seconds a car gains from suiting the circuit's character.

    The primary characteristic weighs the relevant cornering or power
    rating against a reference car; a High-Speed Aero or Low-Speed
    Technical secondary tag adds half the matching cornering term.
    """
    hs = (car.high_speed_cornering - 85.0) / 5.0
    ms = (car.medium_speed_cornering - 85.0) / 5.0
    ls = (car.low_speed_cornering - 85.0) / 5.0

    primary = track.primary
    if primary is TrackCharacteristic.HIGH_SPEED_AERO:
        fit = hs
    elif primary is TrackCharacteristic.MAX_DOWNFORCE_LOW_SPEED:
        fit = ls
    elif primary is TrackCharacteristic.MAX_DOWNFORCE_MED_SPEED:
        fit = ms
    elif primary is TrackCharacteristic.POWER_SENSITIVE:
        fit = (car.power_sensitivity - 90.0) / 4.0
    elif primary is TrackCharacteristic.POWER_AND_TRACTION:
        fit = (car.low_speed_cornering - 85.0) / 10.0 + (car.power_sensitivity - 90.0) / 8.0
    elif primary is TrackCharacteristic.HIGH_SPEED_FLOW:
        fit = (car.high_speed_cornering - 85.0) / 7.0 + (car.medium_speed_cornering - 85.0) / 7.0
    else:
        fit = 0.0

    if track.secondary is SecondaryCharacteristic.HIGH_SPEED_AERO:
        fit += 0.5 * hs
    elif track.secondary is SecondaryCharacteristic.LOW_SPEED_TECHNICAL:
        fit += 0.5 * ls
    return fit


# ---------------------------------------------------------------------------
# Lap time
# ---------------------------------------------------------------------------


def lap_noise(driver: Driver, state: RaceState, rng: Generator) -> float:
    """Per-lap performance noise.

    Spread shrinks with consistency; recent form shifts the centre, and
    clutch performers find a little extra in the closing laps.
    """
    skills = driver.skills
    noise: float = (1.0 - skills.consistency / 110.0) * (rng.random() - 0.5) * 2.4
    noise += driver.form / 8.0
    if state.lap > state.total_laps - _CLOSING_LAPS:
        noise += trait_effect(driver.trait, TraitEffect.CLOSING_LAPS_DELTA)
    return noise


def wrong_tyre_penalty(compound: TyreCompound, weather: Weather) -> float:
    """Seconds lost running a compound unsuited to the weather."""
    if weather.is_rain:
        if compound.is_dry:
            return _SLICKS_IN_RAIN[weather]
        if compound is TyreCompound.INTERMEDIATE:
            if weather is Weather.EXTREME_RAIN:
                return 25.0
            if weather is Weather.HEAVY_RAIN:
                return 15.0
        if compound is TyreCompound.WET and weather is Weather.LIGHT_RAIN:
            return 6.0
        return 0.0
    return _WETS_ON_DRY_TRACK if compound.is_wet else 0.0


def lap_time(driver: Driver, state: RaceState, ctx: LapContext, noise: float) -> float:
    """Raw lap time of a racing lap, before the safety clamp.

    The tyre's temperature and condition must already be updated for
    the lap.

    Args:
        driver: The driver; read only.
        state: Race state with this lap's weather, water level and flag.
        ctx: Lap context; supplies the race history.
        noise: Pre-rolled :func:`lap_noise` for this lap.

    Returns:
        Lap time in seconds.  May be non-finite for corrupted inputs.
    """
    skills = driver.skills
    track = state.track

    time: float = track.base_lap_time + state.water_level / 10.0
    time -= driver.modifier.lap_time_delta
    if driver.grip_advantage is not None:
        time -= driver.grip_advantage.bonus
    if ctx.won_here_before(driver.name, track.name):
        time -= _PRIOR_WINNER_BONUS

    synergy, drag = car_link_impact(driver.car_link, state.lap)
    time += drag - synergy
    time -= race_track_fit(driver.car, track)

    time += condition_penalty(driver.tyre) + wear_penalty(driver.tyre.wear)
    time += _PACE_MODE_DELTA[driver.pace_mode]
    time += wrong_tyre_penalty(driver.tyre.compound, state.weather)
    time += driver.fuel * _FUEL_TIME_PER_KG

    time -= (skills.pace - 80.0) * 0.016
    time -= max(0.0, skills.qualifying_pace - 80.0) * 0.009
    time += (100.0 - skills.consistency) * 0.013

    if state.is_wet:
        wet_multiplier: float = 1.1 + (100.0 - skills.wet_weather) / 100.0 * 0.3
        wet_multiplier += trait_effect(driver.trait, TraitEffect.WET_PACE_DELTA)
        time *= wet_multiplier
    if state.weather is Weather.EXTREME_RAIN:
        time *= _EXTREME_MULTIPLIER
    time *= _FLAG_MULTIPLIER.get(state.flag, 1.0)
    if driver.status is DriverStatus.DAMAGED:
        time *= _DAMAGED_MULTIPLIER

    time += (100.0 - skills.racecraft) * 0.026
    time += noise
    return time


def fallback_lap_time(driver: Driver, track: Track, rng: Generator) -> float:
    """Skill-based estimate used when the full formula degenerates."""
    def finite(value: float, default: float) -> float:
        return value if math.isfinite(value) else default

    pace = min(120.0, max(40.0, finite(driver.skills.pace, 80.0)))
    car_pace = min(120.0, max(40.0, finite(driver.car.overall_pace, 75.0)))
    wear = min(100.0, max(0.0, finite(driver.tyre.wear, 0.0)))
    stress = min(6.0, max(1.0, finite(track.tyre_stress, 3.0)))
    base = finite(track.base_lap_time, 90.0)

    estimate = (
        base
        + (100.0 - pace) * 0.045
        + (100.0 - car_pace) * 0.025
        + wear * 0.03
        + stress * 0.4
        + (rng.random() - 0.5) * 2.5
    )
    if not math.isfinite(estimate):
        estimate = base
    return min(MAX_LAP_TIME, max(MIN_LAP_TIME, estimate))


def safe_lap_time(raw: float, driver: Driver, track: Track, rng: Generator) -> float:
    """Clamp *raw* to ``[40, 400]``, falling back when it is degenerate."""
    if not isinstance(raw, (int, float)) or not math.isfinite(raw) or raw <= 0.0:
        fallback = fallback_lap_time(driver, track, rng)
        logger.debug("Degenerate lap time %r for %s; using %.3f", raw, driver.name, fallback)
        return fallback
    return min(MAX_LAP_TIME, max(MIN_LAP_TIME, round(float(raw), 3)))
