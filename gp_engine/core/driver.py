"""Driver race entity for the race engine.

A :class:`Driver` is created from the qualifying order at race start and
updated every lap.  Ratings (skills, car, car link, weekend modifier)
are immutable and shared between lap snapshots; only the per-lap parts
are copied by :meth:`Driver.copy`.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum

from gp_engine.core.car import Car, CarLink
from gp_engine.core.energy import BoostState, PaceMode
from gp_engine.core.strategy import PitStop, Strategy
from gp_engine.core.traits import Trait
from gp_engine.core.tyre import DRY_COMPOUNDS, Tyre, TyreCompound


class DriverStatus(str, Enum):
    RACING = "Racing"
    IN_PITS = "In Pits"
    DAMAGED = "Damaged"
    LIMPING = "Limping"
    CRASHED = "Crashed"
    DNF = "DNF"

    @property
    def is_retired(self) -> bool:
        return self in (DriverStatus.CRASHED, DriverStatus.DNF)


class RetirementReason(str, Enum):
    MECHANICAL = "Mechanical"
    CRASH = "Crash"
    DAMAGE = "Damage"


@dataclass(frozen=True)
class DriverSkills:
    """Driver ratings on a 1-100 scale.

    Attributes:
        pace: Overall race pace.
        qualifying_pace: One-lap sharpness.
        racecraft: Wheel-to-wheel ability.
        tyre_management: Ability to preserve tyres and manage heat.
        consistency: Lap-to-lap repeatability.
        wet_weather: Skill in the rain.
        aggression: Willingness to attack.
        incident_proneness: Tendency to make race-ending mistakes.
        trait: Optional named trait.
    """

    pace: float = 80.0
    qualifying_pace: float = 80.0
    racecraft: float = 80.0
    tyre_management: float = 80.0
    consistency: float = 80.0
    wet_weather: float = 80.0
    aggression: float = 50.0
    incident_proneness: float = 15.0
    trait: Trait | None = None


@dataclass(frozen=True)
class WeekendModifier:
    """Pre-merged weekend/headquarters deltas the engine reads.

    Attributes:
        lap_time_delta: Seconds removed from every racing lap.
        pit_time_delta: Seconds removed from every pit stop.
        tyre_deg_multiplier: Multiplier on tyre degradation.
        pit_mistake_delta: Extra pit-crew mistake chance in percentage
            points.
    """

    lap_time_delta: float = 0.0
    pit_time_delta: float = 0.0
    tyre_deg_multiplier: float = 1.0
    pit_mistake_delta: float = 0.0


@dataclass
class Penalty:
    seconds: float
    reason: str
    served: bool = False


@dataclass
class Battle:
    """An ongoing duel with the car ahead."""

    opponent: str
    laps: int = 1


@dataclass
class GripAdvantage:
    """Temporary lap-time bonus from a well-timed tyre call."""

    laps: int
    bonus: float


@dataclass
class Driver:
    """A driver's race entity.

    Attributes:
        name: Unique driver name.
        skills: Driver ratings.
        car: Car ratings.
        number: Race number.
        car_link: Car/driver link ratings.
        form: Recent form (-10 to 10); feeds the lap noise term.
        modifier: Weekend modifier.
        strategy: Pre-race plan.
        tyre: Fitted tyre set.
        fuel: Fuel load in kg.
        status: Current :class:`DriverStatus`.
        lap_time: Last lap time in seconds.
        total_time: Cumulative race time in seconds.
        gap_to_leader: Gap to the leader in seconds.
        position: Current position (1-based).
        starting_position: Grid slot.
        pace_mode: Current :class:`PaceMode`.
        pit_count: Stops made so far.
        compounds_used: Compounds fitted so far, in first-use order.
        has_used_wet: A wet-type compound has been fitted.
        penalties: Time penalties, served or not.
        track_limit_warnings: Track-limit strikes since the last penalty.
        boost: Boost resource.
        grip_advantage: Active grip advantage window.
        battle: Active battle with the car ahead.
        damaged: Car carries damage that needs repairing.
        pit_target: Compound chosen for the pending stop.
        pitted_this_lap: The driver was in the pit lane this lap.
        pitted_under_sc: Already stopped in the current neutralisation.
        retirement_lap: Lap the driver retired on.
        retirement_reason: Why the driver retired.
    """

    name: str
    skills: DriverSkills
    car: Car
    number: int = 0
    car_link: CarLink = field(default_factory=CarLink)
    form: float = 0.0
    modifier: WeekendModifier = field(default_factory=WeekendModifier)
    strategy: Strategy = field(default_factory=Strategy)
    tyre: Tyre = field(default_factory=Tyre)
    fuel: float = 110.0
    status: DriverStatus = DriverStatus.RACING
    lap_time: float = 0.0
    total_time: float = 0.0
    gap_to_leader: float = 0.0
    position: int = 1
    starting_position: int = 1
    pace_mode: PaceMode = PaceMode.STANDARD
    pit_count: int = 0
    compounds_used: list[TyreCompound] = field(default_factory=list)
    has_used_wet: bool = False
    penalties: list[Penalty] = field(default_factory=list)
    track_limit_warnings: int = 0
    boost: BoostState = field(default_factory=BoostState)
    grip_advantage: GripAdvantage | None = None
    battle: Battle | None = None
    damaged: bool = False
    pit_target: TyreCompound | None = None
    pitted_this_lap: bool = False
    pitted_under_sc: bool = False
    retirement_lap: int | None = None
    retirement_reason: RetirementReason | None = None

    # -- Derived state ------------------------------------------------------

    @property
    def team_name(self) -> str:
        return self.car.team_name

    @property
    def trait(self) -> Trait | None:
        return self.skills.trait

    @property
    def is_retired(self) -> bool:
        return self.status.is_retired

    @property
    def on_slicks(self) -> bool:
        return self.tyre.compound.is_dry

    @property
    def next_planned_stop(self) -> PitStop | None:
        return self.strategy.next_stop(self.pit_count)

    @property
    def has_stops_remaining(self) -> bool:
        return self.pit_count < len(self.strategy.pit_stops)

    @property
    def dry_compounds_used(self) -> set[TyreCompound]:
        return {c for c in self.compounds_used if c in DRY_COMPOUNDS}

    @property
    def mandatory_rule_met(self) -> bool:
        """Two distinct dry compounds, or any wet-type compound, used."""
        return self.has_used_wet or len(self.dry_compounds_used) >= 2

    def unserved_penalties(self) -> list[Penalty]:
        return [p for p in self.penalties if not p.served]

    # -- Transitions --------------------------------------------------------

    def fit_tyre(self, compound: TyreCompound) -> None:
        """Fit a fresh set and record the compound as used."""
        self.tyre = Tyre.fresh(compound)
        if compound not in self.compounds_used:
            self.compounds_used.append(compound)
        if compound.is_wet:
            self.has_used_wet = True

    def retire(self, status: DriverStatus, lap: int, reason: RetirementReason) -> None:
        self.status = status
        self.retirement_lap = lap
        self.retirement_reason = reason
        self.battle = None
        self.pit_target = None

    def copy(self) -> Driver:
        """Snapshot for the next lap.

        Immutable ratings are shared; mutable per-lap state is duplicated.
        """
        # Corrupted members are passed through for the sanitizer to replace.
        return replace(
            self,
            tyre=self.tyre.copy() if isinstance(self.tyre, Tyre) else self.tyre,
            compounds_used=list(self.compounds_used or ()),
            penalties=[replace(p) for p in (self.penalties or ()) if isinstance(p, Penalty)],
            boost=self.boost.copy() if isinstance(self.boost, BoostState) else self.boost,
            grip_advantage=(
                replace(self.grip_advantage)
                if isinstance(self.grip_advantage, GripAdvantage)
                else None
            ),
            battle=replace(self.battle) if isinstance(self.battle, Battle) else None,
        )
