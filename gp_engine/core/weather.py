"""Weather forecast generation and per-lap track condition model.

The master forecast is built once before the race and is the truth the
engine realises lap by lap.  Each team reads its own copy, which may be
off by a lap or misjudge the intensity of a shower.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass

from numpy.random import Generator

from gp_engine.core.state import RACE_CONTROL, EventKind, LapEvent, RaceState, Weather
from gp_engine.core.team import TeamRatings
from gp_engine.core.track import Track
from gp_engine.core.tuning import SimConfig

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_BUILDUP_LAPS: int = 3
_TAPER_LAPS: int = 4
_MIN_SHOWER_LAPS: int = 8
_SHOWER_LAPS_SPREAD: int = 12
_MAX_HEAVY_LAPS: int = 5

_WATER_RATE: dict[Weather, float] = {
    Weather.EXTREME_RAIN: 25.0,
    Weather.HEAVY_RAIN: 10.0,
    Weather.LIGHT_RAIN: 4.0,
}
_DRYING_RATE: float = 5.0

_TIMING_ERROR_SHARE: float = 0.7
_OVERESTIMATE_CHANCE: float = 0.2


# ---------------------------------------------------------------------------
# Forecast generation
# ---------------------------------------------------------------------------


def generate_master_forecast(
    track: Track,
    rng: Generator,
    config: SimConfig | None = None,
    laps: int | None = None,
) -> list[Weather]:
    """Build the lap-indexed true weather for a race.

    With probability ``1 - wet_session_probability`` the race stays dry,
    possibly with a cloudy spell.  Otherwise a single shower is placed:
    three cloudy build-up laps, 8-19 laps of Light or Heavy rain (at most
    five Heavy laps, with one possible 2-3 lap escalation to Extreme) and
    a four-lap cloudy taper.

    Args:
        track: Circuit; supplies the wet-session probability.
        rng: Random generator.
        config: Engine probabilities.
        laps: Race distance; defaults to ``track.laps``.

    Returns:
        One :class:`Weather` per lap; entry ``i`` is lap ``i + 1``.
    """
    cfg = config if config is not None else SimConfig()
    race_laps: int = laps if laps is not None else track.laps
    forecast: list[Weather] = [Weather.SUNNY] * race_laps

    if rng.random() >= track.wet_session_probability:
        if rng.random() < cfg.cloudy_spell_probability:
            start = int(rng.random() * max(1, race_laps - 10))
            duration = 5 + int(rng.random() * 10)
            for i in range(start, min(race_laps, start + duration)):
                forecast[i] = Weather.CLOUDY
        return forecast

    rain_start: int = int(rng.random() * max(1, race_laps - 15)) + 5
    rain_duration: int = _MIN_SHOWER_LAPS + int(rng.random() * _SHOWER_LAPS_SPREAD)
    rain_end: int = rain_start + rain_duration

    for i in range(max(0, rain_start - _BUILDUP_LAPS), min(race_laps, rain_start)):
        forecast[i] = Weather.CLOUDY

    heavy_laps = 0
    had_extreme = False
    i = rain_start
    while i < min(race_laps, rain_end):
        if rng.random() < cfg.heavy_rain_probability and heavy_laps < _MAX_HEAVY_LAPS:
            forecast[i] = Weather.HEAVY_RAIN
            heavy_laps += 1
            if not had_extreme and rng.random() < cfg.extreme_rain_probability:
                had_extreme = True
                extreme_laps = 2 + int(rng.random() * 2)
                for j in range(i, min(race_laps, i + extreme_laps)):
                    forecast[j] = Weather.EXTREME_RAIN
                i += extreme_laps
                continue
        else:
            forecast[i] = Weather.LIGHT_RAIN
        i += 1

    for i in range(rain_end, min(race_laps, rain_end + _TAPER_LAPS)):
        forecast[i] = Weather.CLOUDY

    logger.debug(
        "Shower forecast for %s: laps %d-%d, %d heavy",
        track.name, rain_start + 1, min(race_laps, rain_end), heavy_laps,
    )
    return forecast


def _shift_rain(master: list[Weather], shift: int) -> list[Weather]:
    """Move every rain lap by *shift* laps; vacated laps read as cloudy."""
    shifted = [Weather.CLOUDY if w.is_rain else w for w in master]
    for i, weather in enumerate(master):
        target = i + shift
        if weather.is_rain and 0 <= target < len(master):
            shifted[target] = weather
    return shifted


def _misread_intensity(master: list[Weather], rng: Generator) -> list[Weather]:
    misread: list[Weather] = []
    for weather in master:
        if weather is Weather.HEAVY_RAIN:
            misread.append(Weather.LIGHT_RAIN)
        elif weather is Weather.LIGHT_RAIN and rng.random() < _OVERESTIMATE_CHANCE:
            misread.append(Weather.HEAVY_RAIN)
        else:
            misread.append(weather)
    return misread


def generate_team_forecasts(
    master: list[Weather],
    team_ratings: Mapping[str, TeamRatings],
    rng: Generator,
    config: SimConfig | None = None,
) -> dict[str, list[Weather]]:
    """Derive each team's believed forecast from the master forecast.

    A team reads the master correctly with probability
    ``0.7 + 0.3 * forecast_skill / 100``.  A miss is a one-lap timing
    shift of the shower (70%) or an intensity misread (30%).
    """
    cfg = config if config is not None else SimConfig()
    forecasts: dict[str, list[Weather]] = {}
    for team_name, ratings in team_ratings.items():
        accuracy: float = 0.7 + ratings.forecast_skill / 100.0 * 0.3
        miss_chance: float = max(0.0, 1.0 - accuracy) * cfg.forecast_error_scale
        if rng.random() >= miss_chance:
            forecasts[team_name] = list(master)
            continue
        if rng.random() < _TIMING_ERROR_SHARE:
            shift = -1 if rng.random() < 0.5 else 1
            forecasts[team_name] = _shift_rain(master, shift)
        else:
            forecasts[team_name] = _misread_intensity(master, rng)
    return forecasts


# ---------------------------------------------------------------------------
# Per-lap weather
# ---------------------------------------------------------------------------


def weather_for_lap(state: RaceState) -> Weather:
    """Weather realised on ``state.lap``; the current weather past the end."""
    index: int = state.lap - 1
    if 0 <= index < len(state.master_forecast):
        return state.master_forecast[index]
    return state.weather


def advance_track_condition(water_level: float, weather: Weather) -> tuple[float, float]:
    """One lap of standing water change.

    Returns:
        ``(water_level, grip_level)``, both in ``[0, 100]``.
    """
    if weather in _WATER_RATE:
        water = min(100.0, water_level + _WATER_RATE[weather])
    else:
        water = max(0.0, water_level - _DRYING_RATE)
    return water, 100.0 - water


def update_weather(state: RaceState) -> list[LapEvent]:
    """Realise the lap's weather on *state* and advance track wetness."""
    events: list[LapEvent] = []
    new_weather = weather_for_lap(state)
    if new_weather is not state.weather:
        events.append(
            LapEvent(
                EventKind.WEATHER_CHANGE,
                RACE_CONTROL,
                {"from": state.weather.value, "to": new_weather.value},
            )
        )
        if new_weather is Weather.EXTREME_RAIN:
            events.append(LapEvent(EventKind.EMERGENCY_WEATHER, RACE_CONTROL))
    state.weather = new_weather
    state.water_level, state.grip_level = advance_track_condition(
        state.water_level, new_weather
    )
    return events


# ---------------------------------------------------------------------------
# Team outlook
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class WeatherOutlook:
    """What a team expects over its look-ahead window.

    Attributes:
        forecast: The team's full believed forecast.
        rain_is_coming: Rain appears in the window.
        track_is_drying: The window is entirely dry.
    """

    forecast: list[Weather]
    rain_is_coming: bool
    track_is_drying: bool


def team_outlook(state: RaceState, team_name: str, strategy_rating: float) -> WeatherOutlook:
    """Read a team's forecast over its look-ahead window.

    Strong strategy departments (rating above 90) look two laps ahead,
    everybody else one.
    """
    look_ahead: int = 2 if strategy_rating > 90 else 1
    forecast = state.forecast_for(team_name)
    window = forecast[state.lap : state.lap + look_ahead]
    return WeatherOutlook(
        forecast=forecast,
        rain_is_coming=any(w.is_rain for w in window),
        track_is_drying=all(not w.is_rain for w in window),
    )
