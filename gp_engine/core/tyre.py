"""Tyre compound, thermal and degradation model for the race engine.

Each of the five compounds has a nominal life, an ideal temperature
window and heat generation / dissipation factors.  A :class:`Tyre` is the
per-driver set currently fitted; it is replaced wholesale on every pit
stop.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from numpy.random import Generator

from gp_engine.core.energy import PaceMode
from gp_engine.core.traits import Trait, TraitEffect, trait_effect
from gp_engine.core.tuning import SimConfig

# ---------------------------------------------------------------------------
# Compounds
# ---------------------------------------------------------------------------


class TyreCompound(str, Enum):
    """The five tyre compounds."""

    SOFT = "Soft"
    MEDIUM = "Medium"
    HARD = "Hard"
    INTERMEDIATE = "Intermediate"
    WET = "Wet"

    @property
    def is_dry(self) -> bool:
        """True for slick compounds."""
        return self in DRY_COMPOUNDS

    @property
    def is_wet(self) -> bool:
        """True for Intermediate and Wet."""
        return not self.is_dry


DRY_COMPOUNDS: tuple[TyreCompound, ...] = (
    TyreCompound.SOFT,
    TyreCompound.MEDIUM,
    TyreCompound.HARD,
)
WET_COMPOUNDS: tuple[TyreCompound, ...] = (TyreCompound.INTERMEDIATE, TyreCompound.WET)


@dataclass(frozen=True)
class CompoundProperties:
    """Static characteristics of a compound.

    Attributes:
        life: Nominal life in laps.
        ideal_min: Lower bound of the ideal temperature window.
        ideal_max: Upper bound of the ideal temperature window.
        heat_generation: Multiplier on heat input.
        heat_dissipation: Multiplier on heat shed per lap.
        battle_performance: Relative grip used by the battle resolver.
    """

    life: int
    ideal_min: float
    ideal_max: float
    heat_generation: float
    heat_dissipation: float
    battle_performance: float


COMPOUND_PROPERTIES: dict[TyreCompound, CompoundProperties] = {
    TyreCompound.SOFT: CompoundProperties(18, 90.0, 115.0, 1.2, 1.1, 1.0),
    TyreCompound.MEDIUM: CompoundProperties(35, 100.0, 125.0, 1.0, 1.0, 0.7),
    TyreCompound.HARD: CompoundProperties(50, 110.0, 135.0, 0.8, 0.9, 0.5),
    TyreCompound.INTERMEDIATE: CompoundProperties(30, 40.0, 100.0, 0.9, 1.5, 0.3),
    TyreCompound.WET: CompoundProperties(40, 50.0, 110.0, 1.0, 1.8, 0.1),
}

TYRE_BLANKET_TEMP: float = 80.0
MAX_TYRE_TEMP: float = 150.0


class TyreCondition(str, Enum):
    COLD = "Cold"
    OPTIMAL = "Optimal"
    HOT = "Hot"
    GRAINING = "Graining"
    BLISTERING = "Blistering"


# ---------------------------------------------------------------------------
# Tyre state
# ---------------------------------------------------------------------------


class Tyre:
    """The set of tyres currently fitted to a car.

    Attributes:
        compound: Fitted compound.
        wear: Wear percentage in ``[0, 100]``.
        age: Laps completed on this set.
        temperature: Carcass temperature in degrees Celsius.
        condition: Current :class:`TyreCondition`.
    """

    __slots__ = ("compound", "wear", "age", "temperature", "condition")

    def __init__(
        self,
        compound: TyreCompound = TyreCompound.MEDIUM,
        wear: float = 0.0,
        age: int = 0,
        temperature: float = TYRE_BLANKET_TEMP,
        condition: TyreCondition = TyreCondition.COLD,
    ):
        self.compound: TyreCompound = compound
        self.wear: float = wear
        self.age: int = age
        self.temperature: float = temperature
        self.condition: TyreCondition = condition

    @classmethod
    def fresh(cls, compound: TyreCompound) -> Tyre:
        """A new set straight out of the blankets."""
        return cls(compound=compound)

    @property
    def properties(self) -> CompoundProperties:
        return COMPOUND_PROPERTIES[self.compound]

    def copy(self) -> Tyre:
        return Tyre(self.compound, self.wear, self.age, self.temperature, self.condition)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Tyre):
            return NotImplemented
        return (
            self.compound == other.compound
            and self.wear == other.wear
            and self.age == other.age
            and self.temperature == other.temperature
            and self.condition == other.condition
        )

    def __repr__(self) -> str:
        return (
            f"Tyre({self.compound.value}, wear={self.wear:.1f}, age={self.age}, "
            f"temp={self.temperature:.1f}, {self.condition.value})"
        )


# ---------------------------------------------------------------------------
# Thermal model
# ---------------------------------------------------------------------------

_HEAT_INPUT: dict[PaceMode, float] = {
    PaceMode.PUSHING: 8.0,
    PaceMode.STANDARD: 5.0,
    PaceMode.CONSERVING: 2.0,
}
_BATTLE_HEAT: float = 2.0
_BASE_DISSIPATION: float = 5.0
_CLEAN_AIR_DISSIPATION: float = 2.0

_BLISTERING_MIN_AGE: int = 5


def update_temperature(
    tyre: Tyre,
    *,
    pace_mode: PaceMode,
    in_battle: bool,
    tyre_stress: float,
    tyre_management: float,
    trait: Trait | None,
    air_temp: float,
) -> float:
    """Apply one lap of heating and cooling to *tyre*.

    ``temp += heat_input * generation - dissipation * dissipation_factor``,
    where heat input comes from the pace mode, an active battle and the
    track's tyre stress, scaled down for drivers who manage heat well.
    The result is clamped to ``[air_temp, MAX_TYRE_TEMP]``.

    Returns:
        The new temperature.
    """
    props = tyre.properties
    heat_input: float = _HEAT_INPUT[pace_mode] + tyre_stress
    if in_battle:
        heat_input += _BATTLE_HEAT
    heat_input *= props.heat_generation

    management: float = 1.0 - (tyre_management - 85.0) / 140.0
    management += trait_effect(trait, TraitEffect.HEAT_MANAGEMENT_DELTA)
    heat_input *= management

    dissipation: float = _BASE_DISSIPATION
    if not in_battle:
        dissipation += _CLEAN_AIR_DISSIPATION
    dissipation *= props.heat_dissipation

    tyre.temperature = min(
        MAX_TYRE_TEMP, max(air_temp, tyre.temperature + heat_input - dissipation)
    )
    return tyre.temperature


def update_condition(
    tyre: Tyre, pace_mode: PaceMode, rng: Generator, config: SimConfig
) -> TyreCondition:
    """Derive the tyre condition from its temperature window.

    Cold tyres driven hard may grain; hot, aged tyres may blister, each
    with the chance set in *config*.
    """
    props = tyre.properties
    if tyre.temperature < props.ideal_min:
        condition = TyreCondition.COLD
    elif tyre.temperature > props.ideal_max:
        condition = TyreCondition.HOT
    else:
        condition = TyreCondition.OPTIMAL

    if (
        condition is TyreCondition.COLD
        and pace_mode is PaceMode.PUSHING
        and rng.random() < config.graining_probability
    ):
        condition = TyreCondition.GRAINING
    if (
        condition is TyreCondition.HOT
        and tyre.age > _BLISTERING_MIN_AGE
        and rng.random() < config.blistering_probability
    ):
        condition = TyreCondition.BLISTERING

    tyre.condition = condition
    return condition


def condition_penalty(tyre: Tyre) -> float:
    """Lap-time cost in seconds of running outside the ideal window."""
    props = tyre.properties
    if tyre.condition is TyreCondition.COLD:
        return max(0.0, props.ideal_min - tyre.temperature) * 0.08
    if tyre.condition is TyreCondition.HOT:
        return max(0.0, tyre.temperature - props.ideal_max) * 0.06
    if tyre.condition is TyreCondition.GRAINING:
        return 1.5
    if tyre.condition is TyreCondition.BLISTERING:
        return 2.5
    return 0.0


def wear_penalty(wear: float) -> float:
    """Lap-time cost of wear; grows quadratically beyond 70%."""
    penalty: float = wear / 100.0 * 1.5
    if wear > 70.0:
        penalty += ((wear - 70.0) / 10.0) ** 2 * 0.15
    return penalty


def temperature_grip(tyre: Tyre) -> float:
    """Relative grip from the tyre's position against its ideal window."""
    props = tyre.properties
    if props.ideal_min < tyre.temperature < props.ideal_max:
        return 1.0
    if tyre.temperature <= props.ideal_min:
        return 1.0 - (props.ideal_min - tyre.temperature) * 0.02
    return 1.0 - (tyre.temperature - props.ideal_max) * 0.015


def battle_performance(tyre: Tyre) -> float:
    """Compound performance x temperature grip x wear, used in duels."""
    return (
        tyre.properties.battle_performance
        * temperature_grip(tyre)
        * (1.0 - tyre.wear / 150.0)
    )


# ---------------------------------------------------------------------------
# Degradation
# ---------------------------------------------------------------------------

_DEGRADATION_PACE_FACTOR: dict[PaceMode, float] = {
    PaceMode.PUSHING: 1.2,
    PaceMode.STANDARD: 1.0,
    PaceMode.CONSERVING: 0.7,
}
_WRONG_CONDITIONS_FACTOR: float = 3.5
_WET_TRACK_FACTOR: float = 0.7


def degradation(
    tyre: Tyre,
    *,
    tyre_stress: float,
    tyre_management: float,
    car_tyre_wear: float,
    pace_mode: PaceMode,
    is_wet: bool,
    trait: Trait | None,
    deg_multiplier: float = 1.0,
) -> float:
    """Wear percentage added over one lap.

    ``base = 100 / life * (0.7 + stress / 5 * 0.6)``, scaled by the
    driver's tyre management, the car's tyre-wear rating, the pace mode,
    a x3.5 penalty for the wrong compound family (slicks in the wet or
    wets in the dry), the weekend modifier and the current condition
    (Hot/Blistering x1.5, Cold/Graining x1.3).
    """
    props = tyre.properties
    base: float = 100.0 / props.life * (0.7 + tyre_stress / 5.0 * 0.6)

    driver_factor: float = max(0.55, 1.8 - tyre_management / 90.0)
    driver_factor += trait_effect(trait, TraitEffect.DEGRADATION_DELTA)
    car_factor: float = 1.3 - car_tyre_wear / 100.0

    amount: float = base * driver_factor * car_factor
    amount *= _DEGRADATION_PACE_FACTOR[pace_mode]
    if tyre.compound.is_dry == is_wet:
        amount *= _WRONG_CONDITIONS_FACTOR
    elif is_wet:
        amount *= _WET_TRACK_FACTOR
    amount *= deg_multiplier

    if tyre.condition in (TyreCondition.HOT, TyreCondition.BLISTERING):
        amount *= 1.5
    elif tyre.condition in (TyreCondition.COLD, TyreCondition.GRAINING):
        amount *= 1.3
    return max(0.0, amount)


def apply_degradation(tyre: Tyre, amount: float) -> None:
    """Add *amount* of wear (capped at 100%) and age the set by one lap."""
    tyre.wear = min(100.0, max(0.0, tyre.wear + amount))
    tyre.age += 1


def adjusted_tyre_life(
    compound: TyreCompound,
    tyre_management: float,
    trait: Trait | None,
    *,
    safety_car: bool = False,
) -> float:
    """Laps a fresh set of *compound* would last for this driver.

    The Safety Car branch uses a more generous skill curve than the green
    flag decision.
    """
    if safety_car:
        multiplier: float = 1.6 - tyre_management / 100.0
    else:
        multiplier = max(0.7, 1.8 - tyre_management / 90.0)
    multiplier += trait_effect(trait, TraitEffect.TYRE_LIFE_DELTA)
    return COMPOUND_PROPERTIES[compound].life * multiplier


def laps_left_on_tyre(
    tyre: Tyre,
    tyre_management: float,
    trait: Trait | None,
    *,
    safety_car: bool = False,
) -> float:
    """Remaining life of the fitted set given its wear."""
    life: float = adjusted_tyre_life(
        tyre.compound, tyre_management, trait, safety_car=safety_car
    )
    return life * (1.0 - tyre.wear / 100.0)
