"""Stochastic incident simulator.

Per lap every running car is checked, in order, for track-limit
strikes, minor flavour events, mechanical failure and a driver error.
Incidents never change the flag directly; they return flag proposals
that the flag state machine resolves.  A separate key-moment pass runs
at the start and at every standing restart.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from gp_engine.core.context import LapContext
from gp_engine.core.driver import Driver, DriverStatus, Penalty, RetirementReason
from gp_engine.core.state import RACE_CONTROL, EventKind, Flag, LapEvent, RaceState, Weather
from gp_engine.core.traits import TraitEffect, trait_effect

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_TRACK_LIMIT_STRIKES: int = 3
_TRACK_LIMIT_PENALTY: float = 5.0
_COLLISION_PENALTY: float = 5.0
_TERMINAL_FAILURE_SHARE: float = 0.6

# Driver-error outcome ladder: upper bound of each band of the severity roll.
_SPIN_BAND: float = 0.66
_COLLISION_BAND: float = 0.70
_DAMAGE_BAND: float = 0.85

_SLICKS_IN_RAIN_RISK: dict[Weather, float] = {
    Weather.EXTREME_RAIN: 75.0,
    Weather.HEAVY_RAIN: 25.0,
    Weather.LIGHT_RAIN: 15.0,
}

_RADIO_MESSAGES: tuple[str, ...] = (
    "is told to 'push now, push now!'.",
    "reports 'The tyres are starting to go off'.",
    "is reminded about track limits at turn {turn}.",
    "is told 'Keep it clean, we're looking good.'",
    "asks about the weather forecast.",
)

_PILEUP_SHARE: float = 0.15
_START_ROLL_SHARE: float = 0.80
_PILEUP_CRASH_CHANCE: float = 0.3
_GRID_GAP: float = 0.2


@dataclass
class IncidentReport:
    """Events raised and flags proposed by an incident pass."""

    events: list[LapEvent] = field(default_factory=list)
    proposals: list[Flag] = field(default_factory=list)

    def extend(self, other: IncidentReport) -> None:
        self.events.extend(other.events)
        self.proposals.extend(other.proposals)


# ---------------------------------------------------------------------------
# Per-lap incidents
# ---------------------------------------------------------------------------


def _track_limits(driver: Driver, ctx: LapContext) -> list[LapEvent]:
    if driver.status is not DriverStatus.RACING:
        return []
    if not ctx.chance(ctx.config.track_limit_probability):
        return []
    driver.track_limit_warnings += 1
    if driver.track_limit_warnings >= _TRACK_LIMIT_STRIKES:
        reason = "exceeding track limits"
        driver.penalties.append(Penalty(seconds=_TRACK_LIMIT_PENALTY, reason=reason))
        driver.track_limit_warnings = 0
        return [
            LapEvent(
                EventKind.TIME_PENALTY,
                driver.name,
                {"duration": _TRACK_LIMIT_PENALTY, "reason": reason},
            )
        ]
    return [
        LapEvent(
            EventKind.TRACK_LIMIT_WARNING, driver.name, {"count": driver.track_limit_warnings}
        )
    ]


def _flavour_event(driver: Driver, ctx: LapContext) -> list[LapEvent]:
    if not ctx.chance(ctx.config.flavour_event_probability):
        return []
    if ctx.chance(0.6 - driver.skills.consistency / 200.0):
        kind = EventKind.LOCK_UP if ctx.rng.random() < 0.5 else EventKind.WIDE_MOMENT
        return [LapEvent(kind, driver.name)]
    template = _RADIO_MESSAGES[int(ctx.rng.integers(0, len(_RADIO_MESSAGES)))]
    message = template.format(turn=int(ctx.rng.integers(1, 11)))
    return [LapEvent(EventKind.TEAM_RADIO, driver.name, {"message": message})]


def driver_error_chance(driver: Driver, state: RaceState, factor: float) -> float:
    """Chance of a driver error this lap.

    Scales with incident proneness and the driver's trait, grows
    quadratically with tyre wear above 65%, sharply on slicks in the rain
    and with standing water.
    """
    chance: float = driver.skills.incident_proneness / 100.0 * factor
    chance *= trait_effect(driver.trait, TraitEffect.INCIDENT_MULTIPLIER)

    wear = driver.tyre.wear
    if wear > 65.0:
        chance *= 1.0 + ((wear - 65.0) / 10.0) ** 2
    if state.is_wet and driver.on_slicks:
        chance *= _SLICKS_IN_RAIN_RISK[state.weather]
    elif state.weather is Weather.EXTREME_RAIN:
        chance *= 5.0
    if state.water_level > 30.0:
        chance *= 1.0 + state.water_level / 40.0
    return chance


def simulate_lap_incidents(
    drivers: list[Driver], state: RaceState, ctx: LapContext
) -> IncidentReport:
    """Roll every running car for incidents on ``state.lap``.

    Drivers are mutated in place.  A single crash proposes a Safety Car
    (weighted by the circuit's SC probability, otherwise Yellow); more
    than one proposes a Red flag.

    Returns:
        The lap's incident events and flag proposals.
    """
    report = IncidentReport()
    crashes = 0
    track = state.track

    for driver in drivers:
        if driver.status not in (DriverStatus.RACING, DriverStatus.DAMAGED):
            continue

        report.events.extend(_track_limits(driver, ctx))
        report.events.extend(_flavour_event(driver, ctx))

        failure_chance = (100.0 - driver.car.reliability) * ctx.config.reliability_failure_factor
        if ctx.chance(failure_chance):
            if ctx.rng.random() < _TERMINAL_FAILURE_SHARE:
                driver.retire(DriverStatus.DNF, state.lap, RetirementReason.MECHANICAL)
                report.events.append(
                    LapEvent(EventKind.DNF, driver.name, {"reason": "Mechanical Failure"})
                )
                crashes += 1
            else:
                driver.status = DriverStatus.LIMPING
                driver.damaged = True
                report.events.append(
                    LapEvent(
                        EventKind.MECHANICAL_ISSUE,
                        driver.name,
                        {"message": "is crawling back to the pits!"},
                    )
                )
            continue

        chance = driver_error_chance(driver, state, ctx.config.driver_error_factor)
        if not ctx.chance(chance):
            continue

        severity = ctx.rng.random()
        if severity < _SPIN_BAND:
            driver.total_time += 5.0 + ctx.rng.random() * 5.0
            report.events.append(LapEvent(EventKind.SPIN, driver.name))
            if ctx.chance(track.vsc_probability):
                report.proposals.append(Flag.VIRTUAL_SAFETY_CAR)
        elif severity < _COLLISION_BAND:
            reason = "causing a collision"
            driver.penalties.append(Penalty(seconds=_COLLISION_PENALTY, reason=reason))
            report.events.append(
                LapEvent(
                    EventKind.TIME_PENALTY,
                    driver.name,
                    {"duration": _COLLISION_PENALTY, "reason": reason},
                )
            )
            report.proposals.append(Flag.YELLOW)
        elif severity < _DAMAGE_BAND:
            driver.status = DriverStatus.DAMAGED
            driver.damaged = True
            report.events.append(
                LapEvent(EventKind.DAMAGE, driver.name, {"message": "has picked up some damage!"})
            )
            report.proposals.append(Flag.YELLOW)
        else:
            driver.retire(DriverStatus.CRASHED, state.lap, RetirementReason.CRASH)
            report.events.append(LapEvent(EventKind.CRASH, driver.name))
            crashes += 1
            if ctx.chance(0.30 + track.risk_tier * 0.05):
                report.proposals.append(Flag.RED)

    if crashes and Flag.RED not in report.proposals:
        if crashes > 1:
            report.proposals.append(Flag.RED)
        elif ctx.chance(track.safety_car_probability):
            report.proposals.append(Flag.SAFETY_CAR)
        else:
            report.proposals.append(Flag.YELLOW)

    if report.proposals:
        logger.debug("Lap %d incidents propose %s", state.lap, [f.value for f in report.proposals])
    return report


# ---------------------------------------------------------------------------
# Start / restart
# ---------------------------------------------------------------------------


def _pileup(running: list[Driver], state: RaceState, ctx: LapContext) -> IncidentReport:
    report = IncidentReport()
    field_size = len(running)
    mid_pack = [d for d in running if 4 < d.position < field_size - 4]
    involved_count = 2 + int(ctx.rng.integers(0, 3))
    if not mid_pack:
        return report

    starter = mid_pack[int(ctx.rng.integers(0, len(mid_pack)))]
    involved = [starter]
    for _ in range(involved_count - 1):
        nearby = next(
            (
                d
                for d in running
                if d not in involved and abs(d.position - starter.position) < 4
            ),
            None,
        )
        if nearby is not None:
            involved.append(nearby)

    report.events.append(
        LapEvent(
            EventKind.MULTI_CRASH,
            RACE_CONTROL,
            {"involved": ", ".join(d.name for d in involved)},
        )
    )
    for driver in involved:
        if ctx.rng.random() < _PILEUP_CRASH_CHANCE:
            driver.retire(DriverStatus.CRASHED, state.lap, RetirementReason.CRASH)
        else:
            driver.status = DriverStatus.DAMAGED
            driver.damaged = True
    report.proposals.append(Flag.RED)
    return report


def _start_rolls(running: list[Driver], ctx: LapContext) -> list[LapEvent]:
    events: list[LapEvent] = []
    slots: dict[str, float] = {d.name: float(d.position) for d in running}
    for driver in running:
        roll = ctx.rng.random()
        skill = driver.skills.racecraft / 100.0 - 0.5
        skill += trait_effect(driver.trait, TraitEffect.START_SKILL_BONUS)
        if roll + skill > 0.9:
            gained = 1 + int(ctx.rng.integers(0, 3))
            slots[driver.name] -= gained + 0.5
            events.append(
                LapEvent(
                    EventKind.LAP_EVENT,
                    driver.name,
                    {"message": f"gets a brilliant start, gaining {gained} places!"},
                )
            )
        elif roll - skill < 0.1:
            lost = 1 + int(ctx.rng.integers(0, 3))
            slots[driver.name] += lost + 0.5
            events.append(
                LapEvent(
                    EventKind.LAP_EVENT,
                    driver.name,
                    {"message": f"has a poor start, losing {lost} places!"},
                )
            )

    # Reorder by the shuffled slots and re-space the field.
    reordered = sorted(running, key=lambda d: slots[d.name])
    leader_time = min((d.total_time for d in running), default=0.0)
    for i, driver in enumerate(reordered):
        driver.position = i + 1
        driver.total_time = leader_time + i * _GRID_GAP
        driver.gap_to_leader = i * _GRID_GAP
    return events


def simulate_key_moments(
    drivers: list[Driver], state: RaceState, ctx: LapContext
) -> IncidentReport:
    """Run the start/restart pass over the running cars.

    With ``key_moment_probability`` something happens: a mid-pack pileup
    (15%, needs more than four cars, forces a Red flag) or a round of
    start rolls (65%) where good and poor launches shuffle grid slots.
    """
    report = IncidentReport()
    running = sorted(
        (d for d in drivers if d.status is DriverStatus.RACING), key=lambda d: d.position
    )
    if not running or not ctx.chance(ctx.config.key_moment_probability):
        return report

    event_roll = ctx.rng.random()
    if event_roll < _PILEUP_SHARE and len(running) > 4:
        report.extend(_pileup(running, state, ctx))
    elif event_roll < _START_ROLL_SHARE:
        report.events.extend(_start_rolls(running, ctx))
    return report
