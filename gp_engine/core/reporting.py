"""Tabular views of race results.

Turns a :class:`~gp_engine.core.race.RaceResult` into pandas frames for
analysis: a lap chart, the final classification and the event log.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

import pandas as pd

from gp_engine.core.race import RaceResult
from gp_engine.core.state import LapEvent

_CLASSIFICATION_COLUMNS: tuple[str, ...] = (
    "position",
    "driver",
    "team",
    "status",
    "total_time",
    "gap_to_leader",
    "pit_stops",
    "compounds",
    "grid",
    "retirement_lap",
)

_EVENT_COLUMNS: tuple[str, ...] = ("lap", "kind", "subject", "data")


def lap_chart(result: RaceResult) -> pd.DataFrame:
    """Position of every driver after each lap.

    Returns:
        DataFrame indexed by lap number (starting at 1) with one column
        per driver, in final classification order.
    """
    columns = [name for name in result.final_classification if name in result.positions]
    if not columns:
        return pd.DataFrame()
    frame = pd.DataFrame({name: result.positions[name] for name in columns})
    frame.index = pd.RangeIndex(1, len(frame) + 1, name="lap")
    return frame


def lap_times_frame(result: RaceResult) -> pd.DataFrame:
    """Per-lap times in long format (``driver``, ``lap_index``, ``lap_time``)."""
    rows: list[dict[str, Any]] = [
        {"driver": name, "lap_index": i + 1, "lap_time": t}
        for name, times in result.lap_times.items()
        for i, t in enumerate(times)
    ]
    return pd.DataFrame(rows, columns=["driver", "lap_index", "lap_time"])


def classification_frame(result: RaceResult) -> pd.DataFrame:
    """Final classification, one row per driver."""
    rows: list[dict[str, Any]] = []
    for driver in result.drivers:
        rows.append(
            {
                "position": driver.position,
                "driver": driver.name,
                "team": driver.team_name,
                "status": driver.status.value,
                "total_time": None if driver.is_retired else round(driver.total_time, 3),
                "gap_to_leader": None if driver.is_retired else round(driver.gap_to_leader, 3),
                "pit_stops": driver.pit_count,
                "compounds": "-".join(c.value for c in driver.compounds_used),
                "grid": driver.starting_position,
                "retirement_lap": driver.retirement_lap,
            }
        )
    frame = pd.DataFrame(rows, columns=list(_CLASSIFICATION_COLUMNS))
    return frame.sort_values("position").reset_index(drop=True)


def events_frame(events: Iterable[tuple[int, LapEvent]]) -> pd.DataFrame:
    """Event log with one row per ``(lap, event)`` pair."""
    rows = [
        {"lap": lap, "kind": event.kind.value, "subject": event.subject, "data": dict(event.data)}
        for lap, event in events
    ]
    return pd.DataFrame(rows, columns=list(_EVENT_COLUMNS))


def event_counts(events: Iterable[tuple[int, LapEvent]]) -> pd.Series:
    """Number of events of each kind, most frequent first."""
    frame = events_frame(events)
    if frame.empty:
        return pd.Series(dtype="int64", name="count")
    counts = frame["kind"].value_counts()
    counts.name = "count"
    return counts
