"""Flag state machine.

Incidents propose flags; this module turns the proposals and the running
countdown into the lap's authoritative flag.  Events it raises are meant
to be placed ahead of the rest of the lap's events.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from gp_engine.core.context import LapContext
from gp_engine.core.driver import Driver
from gp_engine.core.incidents import IncidentReport, simulate_key_moments
from gp_engine.core.pit import choose_restart_tyre
from gp_engine.core.state import RACE_CONTROL, EventKind, Flag, LapEvent, RaceState

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

FLAG_PRIORITY: dict[Flag, int] = {
    Flag.GREEN: 0,
    Flag.YELLOW: 1,
    Flag.VIRTUAL_SAFETY_CAR: 2,
    Flag.SAFETY_CAR: 3,
    Flag.RED: 4,
}

FLAG_DURATION: dict[Flag, int] = {
    Flag.RED: 2,
    Flag.SAFETY_CAR: 3,
    Flag.VIRTUAL_SAFETY_CAR: 2,
    Flag.YELLOW: 1,
}

# A red flag thrown at the start takes longer to clear.
START_FLAG_DURATION: dict[Flag, int] = {**FLAG_DURATION, Flag.RED: 5}

RED_FLAG_CUTOFF: int = 5  # no red flags in the final laps

_FLAG_EVENT: dict[Flag, EventKind] = {
    Flag.RED: EventKind.RED_FLAG,
    Flag.SAFETY_CAR: EventKind.SAFETY_CAR,
    Flag.VIRTUAL_SAFETY_CAR: EventKind.VSC,
    Flag.YELLOW: EventKind.YELLOW_FLAG,
}

_RESTART_GAP: float = 0.2


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------


def resolve_proposals(proposals: Iterable[Flag], state: RaceState | None = None) -> Flag | None:
    """Highest-priority proposal, or ``None`` when nothing was proposed.

    With a *state*, a Red proposal inside the final five laps is
    downgraded to a Safety Car.
    """
    flags = [f for f in proposals if f is not Flag.GREEN]
    if not flags:
        return None
    flag = max(flags, key=FLAG_PRIORITY.__getitem__)
    if (
        flag is Flag.RED
        and state is not None
        and state.lap >= state.total_laps - RED_FLAG_CUTOFF
    ):
        return Flag.SAFETY_CAR
    return flag


def _declare(state: RaceState, flag: Flag, durations: dict[Flag, int]) -> LapEvent:
    state.flag = flag
    state.flag_laps = durations[flag]
    if flag is Flag.RED:
        state.restarting = False
    logger.debug("Lap %d: %s flag for %d laps", state.lap, flag.value, state.flag_laps)
    return LapEvent(_FLAG_EVENT[flag], RACE_CONTROL)


def advance_flag(
    state: RaceState, proposals: Iterable[Flag], drivers: list[Driver]
) -> list[LapEvent]:
    """Count down the active flag and apply this lap's proposals.

    An expiring Red flag schedules a standing restart; an expiring Safety
    Car or VSC returns to Green and reopens the cheap pit window for
    everyone.  A proposal outranking the current flag replaces it.

    Args:
        state: Race state; mutated in place.
        proposals: Flags proposed by this lap's incidents.
        drivers: The field; ``pitted_under_sc`` is cleared on expiry.

    Returns:
        Flag events, to be placed first in the lap's event list.
    """
    if state.flag_laps > 0:
        state.flag_laps -= 1

    if state.flag_laps == 0 and state.flag is not Flag.GREEN:
        if state.flag is Flag.RED:
            state.restarting = True
        elif state.flag in (Flag.SAFETY_CAR, Flag.VIRTUAL_SAFETY_CAR):
            for driver in drivers:
                driver.pitted_under_sc = False
        logger.debug("Lap %d: %s period over", state.lap, state.flag.value)
        state.flag = Flag.GREEN

    new_flag = resolve_proposals(proposals, state)
    if new_flag is None or FLAG_PRIORITY[new_flag] <= FLAG_PRIORITY[state.flag]:
        return []
    return [_declare(state, new_flag, FLAG_DURATION)]


def opening_flag(state: RaceState, proposals: Iterable[Flag]) -> list[LapEvent]:
    """Apply flags proposed by the race start, with the longer start durations."""
    new_flag = resolve_proposals(proposals)
    if new_flag is None:
        return []
    return [_declare(state, new_flag, START_FLAG_DURATION)]


# ---------------------------------------------------------------------------
# Standing restart
# ---------------------------------------------------------------------------


def standing_restart(
    drivers: list[Driver], state: RaceState, ctx: LapContext
) -> IncidentReport:
    """Reform the grid after a Red flag and run the restart.

    Every surviving car may switch to a fresh set suited to the track and
    the mandatory compound rule.  Gaps collapse to 0.2 s per position and
    the Safety Car pit window reopens before the key-moment pass runs.
    """
    report = IncidentReport()
    report.events.append(
        LapEvent(
            EventKind.LAP_EVENT,
            RACE_CONTROL,
            {"message": "The grid is reformed for a standing restart."},
        )
    )

    running = sorted((d for d in drivers if not d.is_retired), key=lambda d: d.total_time)
    for driver in running:
        target = choose_restart_tyre(driver, state)
        if target is not driver.tyre.compound:
            driver.fit_tyre(target)
            report.events.append(
                LapEvent(
                    EventKind.LAP_EVENT,
                    driver.name,
                    {"message": f"switches to a fresh set of {target.value} tyres under the Red Flag."},
                )
            )

    leader_time = running[0].total_time if running else 0.0
    for i, driver in enumerate(running):
        driver.position = i + 1
        driver.total_time = leader_time + i * _RESTART_GAP
        driver.gap_to_leader = i * _RESTART_GAP
        driver.pitted_under_sc = False
    state.restarting = False

    report.extend(simulate_key_moments(drivers, state, ctx))
    return report
