"""Driver traits and their effect table.

A driver carries at most one named trait.  Every formula that a trait
influences reads the effect through :func:`trait_effect`; no other
module compares traits directly.
"""

from __future__ import annotations

from enum import Enum


class Trait(str, Enum):
    """Closed set of named driver traits."""

    RAIN_MASTER = "RAIN_MASTER"
    TYRE_WHISPERER = "TYRE_WHISPERER"
    MR_SATURDAY = "MR_SATURDAY"
    THE_OVERTAKER = "THE_OVERTAKER"
    THE_WALL = "THE_WALL"
    CLUTCH_PERFORMER = "CLUTCH_PERFORMER"
    MR_CONSISTENT = "MR_CONSISTENT"
    ERROR_PRONE = "ERROR_PRONE"
    ROCKET_START = "ROCKET_START"
    DRS_ASSASSIN = "DRS_ASSASSIN"
    NIGHT_OPS = "NIGHT_OPS"
    STRATEGY_SAVANT = "STRATEGY_SAVANT"


class TraitEffect(str, Enum):
    """Quantities a trait can shift.

    Effects ending in ``_DELTA`` or ``_BONUS`` are additive; effects ending
    in ``_MULTIPLIER`` are multiplicative.
    """

    WET_PACE_DELTA = "wet_pace_delta"
    HEAT_MANAGEMENT_DELTA = "heat_management_delta"
    DEGRADATION_DELTA = "degradation_delta"
    TYRE_LIFE_DELTA = "tyre_life_delta"
    ATTACK_BONUS = "attack_bonus"
    DEFENCE_BONUS = "defence_bonus"
    CLOSING_LAPS_DELTA = "closing_laps_delta"
    INCIDENT_MULTIPLIER = "incident_multiplier"
    BATTLE_MISTAKE_MULTIPLIER = "battle_mistake_multiplier"
    START_SKILL_BONUS = "start_skill_bonus"


_MULTIPLICATIVE: frozenset[TraitEffect] = frozenset(
    {TraitEffect.INCIDENT_MULTIPLIER, TraitEffect.BATTLE_MISTAKE_MULTIPLIER}
)

# Traits absent from this table (or effects absent from a trait's entry)
# have no in-race effect.
TRAIT_EFFECTS: dict[Trait, dict[TraitEffect, float]] = {
    Trait.RAIN_MASTER: {TraitEffect.WET_PACE_DELTA: -0.1},
    Trait.TYRE_WHISPERER: {
        TraitEffect.HEAT_MANAGEMENT_DELTA: -0.2,
        TraitEffect.DEGRADATION_DELTA: -0.4,
        TraitEffect.TYRE_LIFE_DELTA: 0.2,
    },
    Trait.THE_OVERTAKER: {TraitEffect.ATTACK_BONUS: 10.0},
    Trait.THE_WALL: {TraitEffect.DEFENCE_BONUS: 10.0},
    Trait.CLUTCH_PERFORMER: {TraitEffect.CLOSING_LAPS_DELTA: -0.1},
    Trait.MR_CONSISTENT: {
        TraitEffect.INCIDENT_MULTIPLIER: 0.5,
        TraitEffect.BATTLE_MISTAKE_MULTIPLIER: 0.5,
    },
    Trait.ERROR_PRONE: {
        TraitEffect.INCIDENT_MULTIPLIER: 1.5,
        TraitEffect.BATTLE_MISTAKE_MULTIPLIER: 1.5,
    },
    Trait.ROCKET_START: {TraitEffect.START_SKILL_BONUS: 0.2},
}


def trait_effect(trait: Trait | None, effect: TraitEffect) -> float:
    """Look up the value of *effect* for *trait*.

    Returns the neutral element when the driver has no trait or the trait
    does not touch this effect: ``1.0`` for multipliers, ``0.0`` otherwise.
    """
    neutral: float = 1.0 if effect in _MULTIPLICATIVE else 0.0
    if trait is None:
        return neutral
    return TRAIT_EFFECTS.get(trait, {}).get(effect, neutral)
