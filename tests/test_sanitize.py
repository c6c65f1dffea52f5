"""Tests for the state sanitizer."""

import math

from gp_engine.core.car import Car
from gp_engine.core.driver import Driver, DriverSkills, DriverStatus
from gp_engine.core.physics import MAX_LAP_TIME, MIN_LAP_TIME
from gp_engine.core.sanitize import (
    clamp_number,
    sanitize_driver,
    sanitize_field,
    sanitize_race_state,
    sanitize_strategy,
    sanitize_track,
)
from gp_engine.core.state import Flag, RaceState, Weather
from gp_engine.core.strategy import PitStop, Strategy
from gp_engine.core.track import Track
from gp_engine.core.tyre import Tyre, TyreCompound

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


def _sample_track() -> Track:
    return Track(name="Test Circuit", laps=50, base_lap_time=90.0)


def _corrupted_driver() -> Driver:
    skills = DriverSkills(pace=float("nan"), racecraft=250.0, consistency=-40.0)
    car = Car(team_name="Team A", overall_pace=float("inf"), reliability=500.0)
    driver = Driver(name="Driver A", skills=skills, car=car)
    driver.tyre = Tyre(TyreCompound.SOFT, wear=150.0, age=-3, temperature=float("nan"))
    driver.total_time = float("inf")
    driver.lap_time = float("nan")
    driver.fuel = -20.0
    driver.status = "Warp Speed"  # type: ignore[assignment]
    driver.position = -4
    driver.compounds_used = [TyreCompound.SOFT, "Slick", TyreCompound.SOFT]  # type: ignore[list-item]
    return driver


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------


def test_clamp_number_replaces_non_finite() -> None:
    """NaN, infinity and junk fall back; finite values are clamped."""
    assert clamp_number(float("nan"), 5.0, 0.0, 10.0) == 5.0
    assert clamp_number(float("inf"), 5.0, 0.0, 10.0) == 5.0
    assert clamp_number("junk", 5.0) == 5.0
    assert clamp_number(True, 5.0) == 5.0
    assert clamp_number(-3.0, 5.0, 0.0, 10.0) == 0.0
    assert clamp_number(30.0, 5.0, 0.0, 10.0) == 10.0


def test_driver_values_brought_into_range() -> None:
    """Every corrupted field comes back finite and inside its range."""
    track = _sample_track()
    driver = sanitize_driver(_corrupted_driver(), track)

    assert driver.skills.pace == 80.0
    assert driver.skills.racecraft == 100.0
    assert driver.skills.consistency == 1.0
    assert driver.car.overall_pace == 80.0
    assert driver.car.reliability == 100.0
    assert driver.tyre.wear == 100.0
    assert driver.tyre.age == 0
    assert math.isfinite(driver.tyre.temperature)
    assert driver.total_time == 0.0
    assert MIN_LAP_TIME <= driver.lap_time <= MAX_LAP_TIME
    assert driver.fuel == 0.0
    assert driver.status is DriverStatus.RACING
    assert driver.position == 1
    assert driver.compounds_used == [TyreCompound.SOFT]


def test_driver_sanitizer_is_idempotent() -> None:
    """Sanitizing an already-sanitized driver changes nothing."""
    track = _sample_track()
    first = sanitize_driver(_corrupted_driver(), track)
    second = sanitize_driver(first.copy(), track)
    assert second == first


def test_empty_strategy_gets_default_plan() -> None:
    """A driver without planned stops is given the default plan."""
    track = _sample_track()
    driver = sanitize_driver(_corrupted_driver(), track)
    assert len(driver.strategy.pit_stops) == 2
    assert [s.compound for s in driver.strategy.pit_stops] == [
        TyreCompound.MEDIUM,
        TyreCompound.HARD,
    ]


def test_strategy_stops_clamped_and_spaced() -> None:
    """Stop laps are clamped into the race and kept two laps apart."""
    strategy = Strategy(
        TyreCompound.SOFT,
        (
            PitStop(100, TyreCompound.HARD),
            PitStop(0, TyreCompound.MEDIUM),
            PitStop(1, TyreCompound.HARD),
        ),
    )
    repaired = sanitize_strategy(strategy, 50, TyreCompound.MEDIUM)
    laps = [s.lap for s in repaired.pit_stops]
    assert laps == [1, 3, 49]
    assert repaired.starting_compound is TyreCompound.SOFT


def test_strategy_stops_pushed_past_the_end_are_dropped() -> None:
    """Spacing that would push a stop past the last lap drops it."""
    strategy = Strategy(
        TyreCompound.MEDIUM,
        (PitStop(49, TyreCompound.HARD), PitStop(49, TyreCompound.SOFT)),
    )
    repaired = sanitize_strategy(strategy, 50, TyreCompound.MEDIUM)
    assert repaired.pit_stops == (PitStop(49, TyreCompound.HARD),)


def test_track_ratings_clamped() -> None:
    """Out-of-range circuit ratings are clamped, junk enums replaced."""
    track = Track(
        name="Broken Circuit",
        laps=-5,
        base_lap_time=float("nan"),
        tyre_stress=12.0,
        drs_effectiveness=-1.0,
        safety_car_probability=3.0,
        primary="Hovercraft",  # type: ignore[arg-type]
        risk_tier=9,
    )
    safe = sanitize_track(track)
    assert safe.laps >= 10
    assert safe.base_lap_time == 90.0
    assert safe.tyre_stress == 6.0
    assert safe.drs_effectiveness == 0.0
    assert safe.safety_car_probability == 1.0
    assert safe.risk_tier == 3
    assert sanitize_track(safe) == safe


def test_race_state_repaired_and_forecast_padded() -> None:
    """Bad flags reset to Green and the forecast covers every lap."""
    state = RaceState(
        track=_sample_track(),
        total_laps=20,
        lap=99,
        weather=Weather.CLOUDY,
        flag="Chequered",  # type: ignore[arg-type]
        flag_laps=4,
        water_level=250.0,
        master_forecast=[Weather.SUNNY] * 5,
    )
    sanitize_race_state(state)
    assert state.lap == 21
    assert state.flag is Flag.GREEN
    assert state.flag_laps == 0
    assert state.water_level == 100.0
    assert len(state.master_forecast) == 20
    assert state.master_forecast[-1] is Weather.CLOUDY


def test_sanitize_field_works_on_copies() -> None:
    """The caller's drivers are never mutated and junk entries are skipped."""
    track = _sample_track()
    state = sanitize_race_state(RaceState(track=track, total_laps=50))
    original = _corrupted_driver()
    field_ = sanitize_field([original, "not a driver"], state)  # type: ignore[list-item]

    assert len(field_) == 1
    assert field_[0] is not original
    assert original.tyre.wear == 150.0
    assert original.status == "Warp Speed"


def test_grip_tracks_water_after_repair() -> None:
    """Grip is rebuilt from the repaired water level."""
    state = RaceState(
        track=_sample_track(), total_laps=20, water_level=float("nan"), grip_level=0.0
    )
    sanitize_race_state(state)
    assert state.water_level == 0.0
    assert state.grip_level == 100.0

    state.water_level = 35.0
    sanitize_race_state(state)
    assert state.grip_level == 65.0


def test_missing_track_replaced_by_default() -> None:
    """A race state without a circuit gets the default one."""
    state = RaceState(track=None, total_laps=20)  # type: ignore[arg-type]
    sanitize_race_state(state)
    assert isinstance(state.track, Track)
    assert state.track.laps == 50
    assert state.total_laps == 20


def test_race_state_sanitizer_is_idempotent() -> None:
    """Sanitizing an already-sanitized race state changes nothing."""
    state = RaceState(
        track=_sample_track(),
        total_laps=float("nan"),  # type: ignore[arg-type]
        lap=-7,
        weather="Monsoon",  # type: ignore[arg-type]
        flag="Chequered",  # type: ignore[arg-type]
        flag_laps=40,
        water_level=-12.0,
        master_forecast=[Weather.LIGHT_RAIN, "Hail", None, Weather.SUNNY],  # type: ignore[list-item]
        team_forecasts={
            "Team A": [Weather.CLOUDY, "Fog"],  # type: ignore[list-item]
            "Team B": None,  # type: ignore[dict-item]
            7: [Weather.HEAVY_RAIN],  # type: ignore[dict-item]
        },
        air_temp=float("inf"),
    )
    first = sanitize_race_state(state)
    second = sanitize_race_state(first.copy())
    assert second == first
    assert first.total_laps == 50
    assert len(first.master_forecast) == 50
    assert set(first.team_forecasts) == {"Team A", "7"}
