"""Tests for forecast generation, team forecasts and track wetness."""

import numpy as np

from gp_engine.core.state import EventKind, RaceState, Weather
from gp_engine.core.team import TeamRatings
from gp_engine.core.track import Track
from gp_engine.core.tuning import SimConfig
from gp_engine.core.weather import (
    advance_track_condition,
    generate_master_forecast,
    generate_team_forecasts,
    team_outlook,
    update_weather,
)

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


def _sample_track(wet_session_probability: float) -> Track:
    return Track(name="Test Circuit", laps=50, wet_session_probability=wet_session_probability)


def _sample_state(forecast: list[Weather], lap: int = 1) -> RaceState:
    return RaceState(
        track=_sample_track(0.0),
        total_laps=len(forecast),
        lap=lap,
        weather=forecast[0],
        master_forecast=forecast,
    )


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------


def test_dry_forecast_without_rain_chance() -> None:
    """No wet-session chance and no cloudy spell gives a sunny race."""
    config = SimConfig(cloudy_spell_probability=0.0)
    for seed in range(5):
        forecast = generate_master_forecast(
            _sample_track(0.0), np.random.default_rng(seed), config
        )
        assert len(forecast) == 50
        assert all(w is Weather.SUNNY for w in forecast)


def test_shower_has_buildup_and_limited_heavy_laps() -> None:
    """A shower is preceded by cloud and has at most five Heavy laps."""
    config = SimConfig(heavy_rain_probability=1.0, extreme_rain_probability=0.0)
    for seed in range(10):
        forecast = generate_master_forecast(
            _sample_track(1.0), np.random.default_rng(seed), config
        )
        rain_laps = [i for i, w in enumerate(forecast) if w.is_rain]
        assert rain_laps, f"seed {seed}: a certain shower must produce rain"
        first = rain_laps[0]
        assert forecast[first - 1] is Weather.CLOUDY
        heavy = sum(1 for w in forecast if w is Weather.HEAVY_RAIN)
        assert heavy <= 5, f"seed {seed}: {heavy} heavy laps"
        assert Weather.EXTREME_RAIN not in forecast


def test_extreme_spell_lasts_two_or_three_laps() -> None:
    """An escalation to Extreme rain lasts two or three laps, once."""
    config = SimConfig(heavy_rain_probability=1.0, extreme_rain_probability=1.0)
    for seed in range(10):
        forecast = generate_master_forecast(
            _sample_track(1.0), np.random.default_rng(seed), config
        )
        extreme = [i for i, w in enumerate(forecast) if w is Weather.EXTREME_RAIN]
        assert 2 <= len(extreme) <= 3, f"seed {seed}: {len(extreme)} extreme laps"
        assert extreme == list(range(extreme[0], extreme[0] + len(extreme)))


def test_perfect_forecasters_copy_the_master() -> None:
    """With forecast errors disabled every team sees the true weather."""
    master = [Weather.SUNNY] * 5 + [Weather.LIGHT_RAIN] * 5
    ratings = {"Team A": TeamRatings(), "Team B": TeamRatings(leadership=2.0, innovation=2.0)}
    config = SimConfig(forecast_error_scale=0.0)
    forecasts = generate_team_forecasts(master, ratings, np.random.default_rng(1), config)
    assert forecasts == {"Team A": master, "Team B": master}
    assert forecasts["Team A"] is not master


def test_track_wets_and_dries() -> None:
    """Rain adds standing water by intensity; dry laps remove 5 points."""
    assert advance_track_condition(0.0, Weather.HEAVY_RAIN) == (10.0, 90.0)
    assert advance_track_condition(95.0, Weather.EXTREME_RAIN) == (100.0, 0.0)
    assert advance_track_condition(3.0, Weather.CLOUDY) == (0.0, 100.0)
    assert advance_track_condition(40.0, Weather.SUNNY) == (35.0, 65.0)


def test_update_weather_emits_change_events() -> None:
    """A weather change is announced; Extreme rain adds an emergency."""
    state = _sample_state([Weather.SUNNY, Weather.EXTREME_RAIN, Weather.EXTREME_RAIN], lap=2)
    events = update_weather(state)
    kinds = [e.kind for e in events]
    assert kinds == [EventKind.WEATHER_CHANGE, EventKind.EMERGENCY_WEATHER]
    assert events[0].data == {"from": "Sunny", "to": "Extreme Rain"}
    assert state.weather is Weather.EXTREME_RAIN
    assert state.water_level == 25.0

    state.lap = 3
    assert update_weather(state) == []


def test_strong_strategists_look_further_ahead() -> None:
    """A strategy rating above 90 reads two laps ahead instead of one."""
    state = _sample_state([Weather.SUNNY, Weather.SUNNY, Weather.LIGHT_RAIN, Weather.LIGHT_RAIN])
    assert team_outlook(state, "Team A", 95.0).rain_is_coming
    average = team_outlook(state, "Team A", 75.0)
    assert not average.rain_is_coming
    assert average.track_is_drying
