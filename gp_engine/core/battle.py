"""Battle and overtake resolver.

Runs after every driver has a lap time, over the running field sorted by
cumulative time, and only under green flag conditions.  Each adjacent
pair within 1.2 s is resolved from composite attack and defence scores.
Successful passes are made persistent by adjusting cumulative times, so
a pass is never undone by the next sort.
"""

from __future__ import annotations

import logging

from gp_engine.core.context import LapContext
from gp_engine.core.driver import Battle, Driver, DriverStatus
from gp_engine.core.energy import BOOST_ATTACK_COST, BOOST_DEFENCE_COST, PaceMode
from gp_engine.core.state import EventKind, Flag, LapEvent, RaceState
from gp_engine.core.traits import TraitEffect, trait_effect
from gp_engine.core.tyre import battle_performance

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

BATTLE_RANGE: float = 1.2  # seconds; larger gaps end any battle
DRS_RANGE: float = 1.0
CLOSE_BATTLE_RANGE: float = 0.5

_PASS_TIME_DELTA: float = 0.2  # seconds transferred on a successful overtake
_MISTAKE_TIME_LOSS: float = 0.8
_DRS_TRAIN_FACTOR: float = 0.4
_BOOST_ATTACK_GAIN: float = 15.0
_BOOST_DEFENCE_GAIN: float = 12.0


# ---------------------------------------------------------------------------
# Scores
# ---------------------------------------------------------------------------


def attack_score(attacker: Driver, defender: Driver) -> float:
    """Composite attacking prowess, including the tyre advantage."""
    skills = attacker.skills
    score: float = skills.racecraft * 1.4
    score += trait_effect(attacker.trait, TraitEffect.ATTACK_BONUS)
    score += (skills.aggression - 75.0) * 0.3
    score += (attacker.car.overall_pace - 85.0) * 0.5
    if attacker.pace_mode is PaceMode.PUSHING:
        score += 8.0
    elif attacker.pace_mode is PaceMode.CONSERVING:
        score -= 5.0
    tyre_advantage = (battle_performance(attacker.tyre) - battle_performance(defender.tyre)) * 0.2
    score += tyre_advantage * 100.0
    return score


def defence_score(defender: Driver) -> float:
    skills = defender.skills
    score: float = skills.racecraft * 1.2
    score += trait_effect(defender.trait, TraitEffect.DEFENCE_BONUS)
    score += (skills.consistency - 85.0) * 0.45
    score += (defender.car.overall_pace - 85.0) * 0.5
    if defender.pace_mode is PaceMode.CONSERVING:
        score -= 8.0
    return score


def overtake_probability(attack: float, defence: float, difficulty: float) -> float:
    """Pass chance from the score delta and the circuit's difficulty.

    ``0.45 - 0.1 * difficulty + (attack - defence) / 100 * 0.5``, cut by
    30% on circuits rated 4 or harder.
    """
    chance: float = 0.45 - difficulty * 0.1 + (attack - defence) / 100.0 * 0.5
    if difficulty >= 4:
        chance *= 0.7
    return chance


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------


def _long_battle(
    attacker: Driver, defender: Driver, ctx: LapContext
) -> LapEvent:
    scale = ctx.config.battle_mistake_scale
    attacker_mistake = (100.0 - attacker.skills.consistency) * 0.002
    if attacker.skills.aggression > 90:
        attacker_mistake += 0.05
    attacker_mistake *= trait_effect(attacker.trait, TraitEffect.BATTLE_MISTAKE_MULTIPLIER) * scale
    defender_mistake = (100.0 - defender.skills.consistency) * 0.002
    defender_mistake *= trait_effect(defender.trait, TraitEffect.BATTLE_MISTAKE_MULTIPLIER) * scale

    if ctx.chance(attacker_mistake):
        attacker.total_time += _MISTAKE_TIME_LOSS
        attacker.battle = None
        return LapEvent(EventKind.WIDE_MOMENT, attacker.name)
    if ctx.chance(defender_mistake):
        defender.total_time += _MISTAKE_TIME_LOSS
        return LapEvent(EventKind.LOCK_UP, defender.name)
    return LapEvent(
        EventKind.BATTLE, attacker.name, {"target": defender.name, "position": defender.position}
    )


def _resolve_pair(
    ranked: list[Driver], i: int, state: RaceState, ctx: LapContext
) -> tuple[bool, list[LapEvent]]:
    """Resolve the duel between ``ranked[i]`` (ahead) and ``ranked[i + 1]``.

    Returns:
        ``(passed, events)``.
    """
    defender = ranked[i]
    attacker = ranked[i + 1]
    track = state.track
    gap: float = attacker.total_time - defender.total_time

    if gap >= BATTLE_RANGE:
        attacker.battle = None
        return False, []

    attack = attack_score(attacker, defender)
    defence = defence_score(defender)

    if gap < DRS_RANGE:
        drs = track.drs_effectiveness * 4.0
        if i > 0:
            ahead = ranked[i - 1]
            if ahead.status is DriverStatus.RACING and defender.total_time - ahead.total_time < DRS_RANGE:
                drs *= _DRS_TRAIN_FACTOR
        attack += drs

    attacker_boosted = False
    boost_chance = 0.28 + (attack - defence) / 80.0 + attacker.skills.aggression / 250.0
    if attacker.boost.can_deploy(BOOST_ATTACK_COST) and ctx.chance(boost_chance):
        attacker.boost.deploy(BOOST_ATTACK_COST)
        attack += _BOOST_ATTACK_GAIN
        attacker_boosted = True
    if attacker_boosted and defender.boost.can_deploy(BOOST_DEFENCE_COST):
        if ctx.chance(0.5 + defender.skills.racecraft / 250.0):
            defender.boost.deploy(BOOST_DEFENCE_COST)
            defence += _BOOST_DEFENCE_GAIN

    if ctx.chance(overtake_probability(attack, defence, track.overtaking_difficulty)):
        defender_time = defender.total_time
        new_time = max(0.0, defender_time - _PASS_TIME_DELTA)
        if i > 0 and new_time <= ranked[i - 1].total_time:
            # Never jump the car ahead of the defender.
            new_time = (ranked[i - 1].total_time + defender_time) / 2.0
        attacker.total_time = new_time
        defender.total_time = defender_time + _PASS_TIME_DELTA
        attacker.battle = None
        ranked[i], ranked[i + 1] = attacker, defender
        return True, [
            LapEvent(
                EventKind.OVERTAKE,
                attacker.name,
                {"target": defender.name, "position": defender.position},
            )
        ]

    if gap >= CLOSE_BATTLE_RANGE:
        return False, []
    if attacker.battle is not None and attacker.battle.opponent == defender.name:
        attacker.battle.laps += 1
    else:
        attacker.battle = Battle(opponent=defender.name)
    if attacker.battle.laps >= 2:
        return False, [_long_battle(attacker, defender, ctx)]
    return False, []


def resolve_battles(drivers: list[Driver], state: RaceState, ctx: LapContext) -> list[LapEvent]:
    """Resolve adjacent duels over the running field.

    Only pairs where both cars are racing are considered.  After a pass
    the next pair is skipped so a car cannot be re-passed on the same lap.

    Args:
        drivers: The field; mutated in place.
        state: Race state; battles only happen under a green flag.
        ctx: Lap context.

    Returns:
        Battle events in track order.
    """
    if state.flag is not Flag.GREEN:
        return []

    ranked = sorted((d for d in drivers if not d.is_retired), key=lambda d: d.total_time)
    events: list[LapEvent] = []
    i = 0
    while i < len(ranked) - 1:
        if ranked[i].status is DriverStatus.RACING and ranked[i + 1].status is DriverStatus.RACING:
            passed, pair_events = _resolve_pair(ranked, i, state, ctx)
            events.extend(pair_events)
            if passed:
                i += 2
                continue
        i += 1
    return events
