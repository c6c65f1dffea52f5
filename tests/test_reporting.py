"""Tests for the pandas views of race results."""

import pandas as pd

import main
from gp_engine.core.car import Car
from gp_engine.core.driver import Driver, DriverSkills
from gp_engine.core.race import simulate_race
from gp_engine.core.reporting import (
    classification_frame,
    event_counts,
    events_frame,
    lap_chart,
    lap_times_frame,
)
from gp_engine.core.track import Track

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


def _sample_result():
    track = Track(name="Test Circuit", laps=12, base_lap_time=90.0, pit_loss=20.0)
    grid = [
        Driver(
            name=f"Driver {i + 1}",
            skills=DriverSkills(pace=88.0 - i),
            car=Car(team_name=f"Team {i // 2 + 1}", overall_pace=90.0 - i),
        )
        for i in range(6)
    ]
    return simulate_race(track, grid, seed=17)


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------


def test_lap_chart_shape() -> None:
    """One row per lap, one column per driver in classification order."""
    result = _sample_result()
    chart = lap_chart(result)
    assert chart.shape == (12, 6)
    assert chart.index.name == "lap"
    assert chart.index[0] == 1
    assert list(chart.columns) == result.final_classification
    assert chart.iloc[-1].tolist() == list(range(1, 7))


def test_classification_frame() -> None:
    """Positions run 1..N and retirements carry no race time."""
    result = _sample_result()
    frame = classification_frame(result)
    assert frame["position"].tolist() == list(range(1, 7))
    assert frame["driver"].tolist() == result.final_classification
    retired = frame[frame["driver"].isin(result.dnf_list)]
    assert retired["total_time"].isna().all()
    assert (frame["pit_stops"] >= 0).all()


def test_lap_times_frame_long_format() -> None:
    """Lap times are listed per driver and lap."""
    result = _sample_result()
    frame = lap_times_frame(result)
    assert list(frame.columns) == ["driver", "lap_index", "lap_time"]
    assert len(frame) == sum(len(t) for t in result.lap_times.values())
    assert (frame["lap_time"] >= 40.0).all()


def test_events_frame_and_counts() -> None:
    """The event log flattens to rows; counts are named and add up."""
    result = _sample_result()
    frame = events_frame(result.event_log)
    assert list(frame.columns) == ["lap", "kind", "subject", "data"]
    assert len(frame) == len(result.event_log)

    counts = event_counts(result.event_log)
    assert counts.name == "count"
    assert counts.sum() == len(result.event_log)


def test_empty_event_log() -> None:
    """No events gives empty frames rather than errors."""
    assert events_frame([]).empty
    counts = event_counts([])
    assert isinstance(counts, pd.Series)
    assert counts.empty


def test_demo_prints_classification_table(capsys) -> None:
    """The demo entry point prints the classification frame."""
    main.main()
    out = capsys.readouterr().out
    assert "position" in out
    assert "pit_stops" in out
    assert "Scuderia #1" in out
    assert "Overtakes" in out
