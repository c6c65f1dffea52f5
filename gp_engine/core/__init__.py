"""Core simulation modules for the Grand Prix race engine."""

from gp_engine.core.battle import resolve_battles
from gp_engine.core.car import Car, CarLink
from gp_engine.core.context import LapContext
from gp_engine.core.driver import (
    Driver,
    DriverSkills,
    DriverStatus,
    RetirementReason,
    WeekendModifier,
)
from gp_engine.core.energy import BoostState, PaceMode
from gp_engine.core.flags import FLAG_PRIORITY, advance_flag, resolve_proposals
from gp_engine.core.incidents import simulate_key_moments, simulate_lap_incidents
from gp_engine.core.monte_carlo import simulate_race_monte_carlo
from gp_engine.core.physics import lap_time, safe_lap_time
from gp_engine.core.race import (
    LapResult,
    RaceResult,
    advance_lap,
    finalize_positions,
    new_race_state,
    simulate_race,
    start_race,
)
from gp_engine.core.reporting import (
    classification_frame,
    event_counts,
    events_frame,
    lap_chart,
    lap_times_frame,
)
from gp_engine.core.sanitize import sanitize_driver, sanitize_field, sanitize_race_state
from gp_engine.core.state import EventKind, Flag, LapEvent, RaceState, Weather
from gp_engine.core.strategy import PitStop, Strategy, generate_strategy
from gp_engine.core.team import RaceHistoryEntry, TeamRatings
from gp_engine.core.track import SecondaryCharacteristic, Track, TrackCharacteristic
from gp_engine.core.traits import Trait
from gp_engine.core.tuning import SimConfig
from gp_engine.core.tyre import Tyre, TyreCompound, TyreCondition

__all__ = [
    "BoostState",
    "Car",
    "CarLink",
    "Driver",
    "DriverSkills",
    "DriverStatus",
    "EventKind",
    "FLAG_PRIORITY",
    "Flag",
    "LapContext",
    "LapEvent",
    "LapResult",
    "PaceMode",
    "PitStop",
    "RaceHistoryEntry",
    "RaceResult",
    "RaceState",
    "RetirementReason",
    "SecondaryCharacteristic",
    "SimConfig",
    "Strategy",
    "TeamRatings",
    "Track",
    "TrackCharacteristic",
    "Trait",
    "Tyre",
    "TyreCompound",
    "TyreCondition",
    "Weather",
    "WeekendModifier",
    "advance_flag",
    "advance_lap",
    "classification_frame",
    "event_counts",
    "events_frame",
    "finalize_positions",
    "generate_strategy",
    "lap_chart",
    "lap_time",
    "lap_times_frame",
    "new_race_state",
    "resolve_battles",
    "resolve_proposals",
    "safe_lap_time",
    "sanitize_driver",
    "sanitize_field",
    "sanitize_race_state",
    "simulate_key_moments",
    "simulate_lap_incidents",
    "simulate_race",
    "simulate_race_monte_carlo",
    "start_race",
]
