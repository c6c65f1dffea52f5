"""Tests for the per-lap pipeline and the full-race runner."""

from dataclasses import replace

import numpy as np
import pytest

import gp_engine.core.race as race
from gp_engine.core.car import Car
from gp_engine.core.driver import Driver, DriverSkills, DriverStatus, Penalty, RetirementReason
from gp_engine.core.race import (
    RaceResult,
    advance_lap,
    finalize_positions,
    new_race_state,
    serve_outstanding_penalties,
    simulate_race,
    start_race,
)
from gp_engine.core.state import RACE_CONTROL, EventKind, Flag, Weather
from gp_engine.core.strategy import PitStop, Strategy
from gp_engine.core.track import Track
from gp_engine.core.tuning import SimConfig
from gp_engine.core.tyre import TyreCompound, TyreCondition

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

_INCIDENT_KINDS: frozenset[EventKind] = frozenset(
    {
        EventKind.CRASH,
        EventKind.DNF,
        EventKind.SPIN,
        EventKind.MULTI_CRASH,
        EventKind.MECHANICAL_ISSUE,
        EventKind.DAMAGE,
        EventKind.SAFETY_CAR,
        EventKind.VSC,
        EventKind.RED_FLAG,
        EventKind.YELLOW_FLAG,
        EventKind.TIME_PENALTY,
    }
)


def _sample_track(laps: int = 50, wet_session_probability: float = 0.0) -> Track:
    return Track(
        name="Test Circuit",
        laps=laps,
        base_lap_time=90.0,
        pit_loss=20.0,
        tyre_stress=3.0,
        overtaking_difficulty=3.0,
        wet_session_probability=wet_session_probability,
    )


def _make_driver(
    name: str,
    team: str,
    pace: float = 85.0,
    car_pace: float = 85.0,
    reliability: float = 90.0,
    tyre_management: float = 85.0,
) -> Driver:
    return Driver(
        name=name,
        skills=DriverSkills(pace=pace, tyre_management=tyre_management),
        car=Car(
            team_name=team,
            overall_pace=car_pace,
            reliability=reliability,
            tyre_wear_factor=80.0,
        ),
    )


def _make_grid(n: int) -> list[Driver]:
    """Return *n* drivers in two-car teams, fastest first."""
    return [
        _make_driver(
            f"Driver {i + 1}",
            f"Team {i // 2 + 1}",
            pace=92.0 - i * 0.5,
            car_pace=95.0 - (i // 2),
        )
        for i in range(n)
    ]


def _quiet() -> SimConfig:
    return SimConfig.without_incidents()


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------


def test_race_runs() -> None:
    """Race must return a classification with every driver in it."""
    grid = _make_grid(6)
    result = simulate_race(_sample_track(), grid, laps=10, seed=42)
    assert isinstance(result, RaceResult)
    assert sorted(result.final_classification) == sorted(d.name for d in grid)
    assert all(len(p) == 10 for p in result.positions.values())


def test_seed_determinism() -> None:
    """Same seed must produce identical results."""
    grid = _make_grid(8)
    r1 = simulate_race(_sample_track(wet_session_probability=0.5), grid, laps=25, seed=123)
    r2 = simulate_race(_sample_track(wet_session_probability=0.5), grid, laps=25, seed=123)
    assert r1.final_classification == r2.final_classification
    assert r1.dnf_list == r2.dnf_list
    assert r1.lap_times == r2.lap_times
    assert [e for _, e in r1.event_log] == [e for _, e in r2.event_log]


def test_invalid_arguments_rejected() -> None:
    """A race needs at least one lap and one driver."""
    with pytest.raises(ValueError):
        simulate_race(_sample_track(), _make_grid(4), laps=0)
    with pytest.raises(ValueError):
        simulate_race(_sample_track(), [])


def test_quiet_dry_race() -> None:
    """Without incidents or rain, times only grow and the order is by time."""
    rng = np.random.default_rng(7)
    config = _quiet()
    state = new_race_state(_sample_track(), rng, config)
    lap = start_race(_make_grid(20), state, config=config, rng=rng)

    previous = {d.name: d.total_time for d in lap.drivers}
    events = list(lap.events)
    while lap.race_state.lap <= 50:
        lap = advance_lap(lap.drivers, lap.race_state, config=config, rng=rng)
        events.extend(lap.events)
        for driver in lap.drivers:
            assert (
                driver.total_time > previous[driver.name]
            ), f"{driver.name}: cumulative time must grow every lap"
            previous[driver.name] = driver.total_time

    kinds = {e.kind for e in events}
    assert not kinds & _INCIDENT_KINDS, f"unexpected incidents: {kinds & _INCIDENT_KINDS}"
    entries = {e.data["message"] for e in events if e.kind is EventKind.PIT_ENTRY}
    assert entries <= {"", "makes their mandatory final stop!"}, f"unscheduled stops: {entries}"
    conditions = {d.tyre.condition for d in lap.drivers}
    assert TyreCondition.BLISTERING not in conditions

    assert lap.race_state.lap == 51
    totals = [d.total_time for d in lap.drivers]
    assert totals == sorted(totals)
    assert [d.position for d in lap.drivers] == list(range(1, 21))
    for driver in lap.drivers:
        assert not driver.is_retired
        assert driver.mandatory_rule_met, f"{driver.name} never ran two compounds"
        assert driver.pit_count >= 1


def test_event_kinds_are_all_emitted_kinds() -> None:
    """The closed set holds only kinds the engine produces."""
    names = {kind.name for kind in EventKind}
    assert len(names) == 31
    assert not names & {"DRIVER_MISTAKE", "BRILLIANT_LAP"}


def test_mandatory_stop_after_vetoed_plan() -> None:
    """A late planned stop is skipped, then the compound rule forces one."""
    driver = _make_driver("Saver", "Team 1", tyre_management=95.0)
    plan = Strategy(TyreCompound.MEDIUM, (PitStop(45, TyreCompound.HARD),))
    result = simulate_race(
        _sample_track(),
        [driver],
        seed=3,
        config=_quiet(),
        strategies={"Saver": plan},
    )

    entries = [(lap, e) for lap, e in result.event_log if e.kind is EventKind.PIT_ENTRY]
    assert entries, "the driver must stop at least once"
    assert all(lap >= 45 for lap, _ in entries)
    assert any(e.data["message"] == "makes their mandatory final stop!" for _, e in entries)

    final = result.drivers[0]
    assert final.mandatory_rule_met
    assert TyreCompound.HARD in final.compounds_used
    assert final.pit_count == 1


def test_field_switches_to_wets_when_rain_arrives() -> None:
    """Heavy rain from lap 10 brings every car in for wet-weather tyres."""
    rng = np.random.default_rng(11)
    config = _quiet()
    state = new_race_state(_sample_track(laps=30), rng, config)
    state.master_forecast = [Weather.SUNNY] * 9 + [Weather.HEAVY_RAIN] * 10 + [Weather.SUNNY] * 11
    lap = start_race(_make_grid(6), state, config=config, rng=rng)

    log: list[tuple[int, EventKind, str, dict]] = []
    while lap.race_state.lap <= 12:
        lap_number = lap.race_state.lap
        lap = advance_lap(lap.drivers, lap.race_state, config=config, rng=rng)
        log.extend((lap_number, e.kind, e.subject, e.data) for e in lap.events)

    assert (10, EventKind.WEATHER_CHANGE, RACE_CONTROL, {"from": "Sunny", "to": "Heavy Rain"}) in log
    for driver in lap.drivers:
        weather_stops = [
            n
            for n, kind, subject, data in log
            if kind is EventKind.PIT_ENTRY
            and subject == driver.name
            and data["message"] == "is pitting for the correct weather tyres!"
        ]
        assert weather_stops and weather_stops[0] in (9, 10), f"{driver.name}: {weather_stops}"
        assert driver.tyre.compound.is_wet, f"{driver.name} still on {driver.tyre.compound}"


def test_unreliable_cars_retire_more() -> None:
    """Reliability 1 cars break down; reliability 100 cars never do."""
    config = replace(_quiet(), reliability_failure_factor=0.004)
    grid = [
        _make_driver("Fragile 1", "Fragile", reliability=1.0),
        _make_driver("Fragile 2", "Fragile", reliability=1.0),
        _make_driver("Solid 1", "Solid", reliability=100.0),
        _make_driver("Solid 2", "Solid", reliability=100.0),
    ]
    fragile_dnfs = 0
    for seed in range(10):
        result = simulate_race(_sample_track(laps=40), grid, seed=seed, config=config)
        assert "Solid 1" not in result.dnf_list
        assert "Solid 2" not in result.dnf_list
        fragile_dnfs += sum(1 for name in result.dnf_list if name.startswith("Fragile"))
        finishers = len(grid) - len(result.dnf_list)
        assert result.final_classification[finishers:] == result.dnf_list
    assert fragile_dnfs >= 18, f"only {fragile_dnfs} of 20 fragile cars retired"


def test_advance_lap_leaves_inputs_untouched() -> None:
    """The caller's field and race state are never mutated."""
    rng = np.random.default_rng(5)
    state = new_race_state(_sample_track(), rng)
    lap = start_race(_make_grid(6), state, rng=rng)
    totals = [d.total_time for d in lap.drivers]
    wear = [d.tyre.wear for d in lap.drivers]
    current = lap.race_state.lap

    result = advance_lap(lap.drivers, lap.race_state, rng=rng)

    assert [d.total_time for d in lap.drivers] == totals
    assert [d.tyre.wear for d in lap.drivers] == wear
    assert lap.race_state.lap == current
    assert result.race_state.lap == current + 1
    assert all(a is not b for a, b in zip(result.drivers, lap.drivers))


def test_failure_recovers_and_advances(monkeypatch, caplog) -> None:
    """A crash inside the pipeline is logged and the race moves on."""
    rng = np.random.default_rng(9)
    state = new_race_state(_sample_track(), rng, _quiet())
    lap = start_race(_make_grid(4), state, config=_quiet(), rng=rng)

    def _broken(*args, **kwargs):
        raise RuntimeError("battle resolver exploded")

    monkeypatch.setattr(race, "resolve_battles", _broken)
    result = advance_lap(lap.drivers, lap.race_state, config=_quiet(), rng=rng)

    assert result.race_state.lap == lap.race_state.lap + 1
    assert len(result.drivers) == 4
    assert [e.subject for e in result.events] == [RACE_CONTROL]
    assert result.events[0].data["message"] == (
        "Race Control resets timing systems after a glitch. Race will continue."
    )
    assert "recovering" in caplog.text


def test_missing_track_does_not_escape() -> None:
    """A race state that lost its circuit still yields the next lap."""
    rng = np.random.default_rng(9)
    state = new_race_state(_sample_track(), rng, _quiet())
    lap = start_race(_make_grid(4), state, config=_quiet(), rng=rng)

    broken = replace(lap.race_state, track=None)
    result = advance_lap(lap.drivers, broken, config=_quiet(), rng=rng)

    assert isinstance(result.race_state.track, Track)
    assert result.race_state.lap == broken.lap + 1
    assert len(result.drivers) == 4
    assert broken.track is None


def test_red_flag_freezes_then_restarts() -> None:
    """Nobody runs under a Red flag; its expiry leads to a standing restart."""
    rng = np.random.default_rng(4)
    config = _quiet()
    state = new_race_state(_sample_track(), rng, config)
    lap = start_race(_make_grid(6), state, config=config, rng=rng)
    lap.race_state.flag = Flag.RED
    lap.race_state.flag_laps = 2
    totals = {d.name: d.total_time for d in lap.drivers}

    lap = advance_lap(lap.drivers, lap.race_state, config=config, rng=rng)
    assert {d.name: d.total_time for d in lap.drivers} == totals
    assert lap.race_state.flag is Flag.RED

    lap = advance_lap(lap.drivers, lap.race_state, config=config, rng=rng)
    assert lap.race_state.flag is Flag.GREEN
    assert lap.race_state.restarting

    lap = advance_lap(lap.drivers, lap.race_state, config=config, rng=rng)
    messages = [e.data.get("message") for e in lap.events if e.subject == RACE_CONTROL]
    assert "The grid is reformed for a standing restart." in messages
    assert not lap.race_state.restarting


def test_finalize_orders_runners_then_retirements() -> None:
    """Runners by time, then retirements with the latest first."""
    fast = _make_driver("Fast", "Team 1")
    fast.total_time = 90.0
    slow = _make_driver("Slow", "Team 1")
    slow.total_time = 100.0
    early = _make_driver("Early", "Team 2")
    early.retire(DriverStatus.CRASHED, 5, RetirementReason.CRASH)
    late = _make_driver("Late", "Team 2")
    late.retire(DriverStatus.DNF, 10, RetirementReason.MECHANICAL)

    ordered = finalize_positions([slow, early, fast, late])

    assert [d.name for d in ordered] == ["Fast", "Slow", "Late", "Early"]
    assert [d.position for d in ordered] == [1, 2, 3, 4]
    assert slow.gap_to_leader == 10.0


def test_outstanding_penalties_added_at_the_flag() -> None:
    """Unserved penalties are added to the finishers' race time."""
    driver = _make_driver("Offender", "Team 1")
    driver.total_time = 100.0
    driver.penalties.append(Penalty(5.0, "exceeding track limits"))
    retired = _make_driver("Gone", "Team 2")
    retired.penalties.append(Penalty(5.0, "causing a collision"))
    retired.retire(DriverStatus.DNF, 3, RetirementReason.MECHANICAL)

    events = serve_outstanding_penalties([driver, retired])

    assert driver.total_time == 105.0
    assert driver.penalties[0].served
    assert not retired.penalties[0].served
    assert [e.subject for e in events] == ["Offender"]
    assert events[0].data["seconds"] == 5.0


def test_qualifying_heroics_for_a_slow_car_on_pole() -> None:
    """A slow car qualifying far above its level gets an opening grip boost."""
    grid = _make_grid(20)
    grid.insert(0, grid.pop())
    rng = np.random.default_rng(1)
    state = new_race_state(_sample_track(), rng, _quiet())
    lap = start_race(grid, state, config=_quiet(), rng=rng)

    heroics = [e for e in lap.events if e.kind is EventKind.QUALIFYING_HEROICS]
    assert [e.subject for e in heroics] == ["Driver 20"]
    assert heroics[0].data == {"position": 1}
    hero = next(d for d in lap.drivers if d.name == "Driver 20")
    assert hero.grip_advantage is not None
    assert hero.grip_advantage.bonus == pytest.approx(0.2)


def test_fastest_lap_is_the_quickest_green_lap() -> None:
    """The race's fastest lap matches the quickest recorded lap time."""
    result = simulate_race(_sample_track(laps=20), _make_grid(6), seed=21, config=_quiet())
    fastest = result.fastest_lap
    assert fastest is not None
    best = min(t for times in result.lap_times.values() for t in times)
    assert fastest.time == pytest.approx(best)
    assert any(e.kind is EventKind.FASTEST_LAP for _, e in result.event_log)
