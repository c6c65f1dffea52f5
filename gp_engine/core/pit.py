"""Strategy and pit decision engine.

Every racing lap a driver may be called in for one of several reasons,
checked in priority order: damage, the wrong tyres for the weather, the
mandatory compound rule, critically worn tyres, a due strategy stop and
an opportunistic undercut.  Safety Car and VSC periods open a separate,
cheaper pit window.  Stops are executed on the following lap.
"""

from __future__ import annotations

import logging

from gp_engine.core.context import LapContext
from gp_engine.core.driver import (
    Driver,
    DriverStatus,
    GripAdvantage,
    Penalty,
    RetirementReason,
)
from gp_engine.core.energy import PaceMode
from gp_engine.core.state import EventKind, Flag, LapEvent, RaceState, Weather
from gp_engine.core.tyre import (
    COMPOUND_PROPERTIES,
    DRY_COMPOUNDS,
    TyreCompound,
    TyreCondition,
    laps_left_on_tyre,
)
from gp_engine.core.weather import WeatherOutlook

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_SOFT_LIFE: int = COMPOUND_PROPERTIES[TyreCompound.SOFT].life
_MEDIUM_LIFE: int = COMPOUND_PROPERTIES[TyreCompound.MEDIUM].life

_CRITICAL_WEAR: float = 95.0
_SC_WEAR_LIMIT: float = 85.0
_CONSERVE_WEAR: float = 80.0
_END_OF_RACE_WINDOW: int = 10
_MANDATORY_WINDOW: int = 2

# Safety Car pit chance by position: (last position in band, chance).
_SC_PIT_LADDER: tuple[tuple[int, float], ...] = ((1, 0.15), (4, 0.40), (12, 0.75))
_SC_PIT_BACKMARKER: float = 0.95

_LIMP_LAP_PENALTY: float = 45.0
_REPAIR_TIME: float = 25.0
_FAST_STOP_GAIN: float = 0.8
_SLOW_STOP_LOSS: float = 3.0
_DISASTROUS_STOP_LOSS: float = 6.0
_GRIP_ADVANTAGE_LAPS: int = 3


# ---------------------------------------------------------------------------
# Mandatory compound rule
# ---------------------------------------------------------------------------


def _rule_met_with(driver: Driver, compound: TyreCompound) -> bool:
    if driver.has_used_wet or compound.is_wet:
        return True
    return len(driver.dry_compounds_used | {compound}) >= 2


# ---------------------------------------------------------------------------
# Compound choice
# ---------------------------------------------------------------------------


def choose_wet_tyre(
    driver: Driver,
    state: RaceState,
    previous_water: float,
    outlook: WeatherOutlook,
    ctx: LapContext,
) -> TyreCompound:
    """Pick a compound when the track is wet or rain is expected.

    On a drying track (little water, falling, dry window ahead) the
    driver goes back to slicks.  Otherwise Wet beats Intermediate above a
    skill-dependent water threshold or when the team expects heavy rain,
    preferring a compound the driver has not used yet.
    """
    water: float = state.water_level
    threshold: float = (
        55.0
        + (driver.skills.wet_weather - 85.0) * 0.5
        + (ctx.rng.random() - 0.5) * 10.0
    )
    used = driver.compounds_used

    if water < 15.0 and water < previous_water and outlook.track_is_drying:
        unused_slicks = [c for c in DRY_COMPOUNDS if c not in used]
        if state.remaining_laps < _SOFT_LIFE + 2 and TyreCompound.SOFT in unused_slicks:
            return TyreCompound.SOFT
        if TyreCompound.MEDIUM in unused_slicks:
            return TyreCompound.MEDIUM
        return unused_slicks[0] if unused_slicks else TyreCompound.MEDIUM

    believed_now = (
        outlook.forecast[state.lap - 1] if 0 < state.lap <= len(outlook.forecast) else None
    )
    if water > threshold or believed_now is Weather.HEAVY_RAIN:
        ideal, alternative = TyreCompound.WET, TyreCompound.INTERMEDIATE
    else:
        ideal, alternative = TyreCompound.INTERMEDIATE, TyreCompound.WET

    if ideal not in used:
        return ideal
    if alternative not in used:
        return alternative
    return ideal


def choose_dry_tyre(driver: Driver, state: RaceState, mandatory_stop: bool) -> TyreCompound:
    """Pick a slick, favouring the plan and compounds not used yet.

    For a mandatory stop any unused slick beats the plan; otherwise the
    planned compound is kept unless it was already used.
    """
    unused = [c for c in DRY_COMPOUNDS if c not in driver.compounds_used]
    stop = driver.next_planned_stop
    planned: TyreCompound = stop.compound if stop is not None else TyreCompound.HARD

    if mandatory_stop:
        if not unused:
            return planned
        if planned in unused:
            return planned
        for compound in (TyreCompound.MEDIUM, TyreCompound.HARD):
            if compound in unused:
                return compound
        return TyreCompound.SOFT

    if planned in unused:
        return planned
    if unused:
        if state.remaining_laps < _MEDIUM_LIFE + 5 and TyreCompound.MEDIUM in unused:
            return TyreCompound.MEDIUM
        for compound in (TyreCompound.HARD, TyreCompound.MEDIUM, TyreCompound.SOFT):
            if compound in unused:
                return compound
    return planned


def choose_pit_tyre(
    driver: Driver,
    state: RaceState,
    previous_water: float,
    outlook: WeatherOutlook,
    ctx: LapContext,
) -> TyreCompound:
    """Compound to fit at the next stop."""
    window = outlook.forecast[state.lap : state.lap + 2]
    if state.weather is Weather.EXTREME_RAIN or Weather.EXTREME_RAIN in window:
        return TyreCompound.WET
    if state.is_wet or outlook.rain_is_coming:
        return choose_wet_tyre(driver, state, previous_water, outlook, ctx)
    mandatory_stop = (
        state.lap >= state.total_laps - _MANDATORY_WINDOW and not driver.mandatory_rule_met
    )
    return choose_dry_tyre(driver, state, mandatory_stop)


def choose_restart_tyre(driver: Driver, state: RaceState) -> TyreCompound:
    """Compound fitted on the grid for a standing restart."""
    if state.water_level > 5.0 or state.is_wet:
        if state.weather in (Weather.HEAVY_RAIN, Weather.EXTREME_RAIN) or state.water_level > 40.0:
            return TyreCompound.WET
        return TyreCompound.INTERMEDIATE

    remaining: int = state.remaining_laps
    if remaining <= _SOFT_LIFE + 2:
        target = TyreCompound.SOFT
    elif remaining <= _MEDIUM_LIFE + 4:
        target = TyreCompound.MEDIUM
    else:
        target = TyreCompound.HARD

    used = driver.dry_compounds_used
    if not driver.mandatory_rule_met and target in used:
        unused = [c for c in DRY_COMPOUNDS if c not in used]
        if unused:
            if remaining <= _SOFT_LIFE + 2 and TyreCompound.SOFT in unused:
                return TyreCompound.SOFT
            if remaining <= _MEDIUM_LIFE + 4 and TyreCompound.MEDIUM in unused:
                return TyreCompound.MEDIUM
            for compound in (TyreCompound.HARD, TyreCompound.MEDIUM):
                if compound in unused:
                    return compound
            return TyreCompound.SOFT
    return target


# ---------------------------------------------------------------------------
# Pace and opportunistic calls
# ---------------------------------------------------------------------------


def overcut_attempt(driver: Driver, state: RaceState, ctx: LapContext) -> LapEvent | None:
    """Roll for staying out longer than a rival near the planned stop."""
    battle = driver.battle
    stop = driver.next_planned_stop
    if battle is None or stop is None:
        return None
    if battle.laps <= 2 or driver.skills.tyre_management <= 92 or driver.tyre.wear >= 60:
        return None
    if abs(state.lap - stop.lap) > 2:
        return None
    if not ctx.chance(ctx.config.overcut_probability):
        return None
    return LapEvent(
        EventKind.TEAM_RADIO,
        driver.name,
        {"message": "is told 'Stay out, stay out, we're going for the overcut!'"},
    )


def choose_pace_mode(driver: Driver, overcutting: bool) -> PaceMode:
    if driver.status is DriverStatus.IN_PITS or driver.pit_target is not None:
        return PaceMode.PUSHING
    if driver.pitted_this_lap:
        return PaceMode.PUSHING
    if driver.battle is not None and driver.battle.laps > 1 and driver.tyre.wear < 90:
        return PaceMode.PUSHING
    if overcutting:
        return PaceMode.STANDARD
    if driver.tyre.wear > _CONSERVE_WEAR and driver.has_stops_remaining:
        return PaceMode.CONSERVING
    return PaceMode.STANDARD


def weather_pit_call(
    driver: Driver,
    state: RaceState,
    outlook: WeatherOutlook,
    ctx: LapContext,
) -> tuple[bool, list[LapEvent]]:
    """Decide whether the fitted compound is wrong for the weather.

    Returns:
        ``(needs_to_pit, radio_events)``.
    """
    events: list[LapEvent] = []
    on_slicks = driver.on_slicks
    water = state.water_level
    needs_pit = (
        (state.is_wet and on_slicks)
        or (not state.is_wet and not on_slicks and water < 5.0)
        or (outlook.rain_is_coming and on_slicks)
        or (outlook.track_is_drying and not on_slicks and water < 10.0)
    )

    if state.weather is Weather.EXTREME_RAIN and driver.tyre.compound is not TyreCompound.WET:
        needs_pit = True
        events.append(
            LapEvent(
                EventKind.TEAM_RADIO,
                driver.name,
                {"message": "is told 'BOX BOX BOX, a monsoon is hitting us!'"},
            )
        )
    elif (
        state.weather is Weather.HEAVY_RAIN
        and driver.tyre.compound is TyreCompound.INTERMEDIATE
        and ctx.has_ratings(driver.team_name)
    ):
        rating = ctx.ratings_for(driver.team_name).strategy_rating
        chance = 0.2 + water / 100.0 * 0.7 + (rating - 75.0) / 100.0 * 0.2
        if ctx.chance(chance):
            needs_pit = True
            events.append(
                LapEvent(
                    EventKind.TEAM_RADIO,
                    driver.name,
                    {"message": "is told 'Box now for Wets, the rain is too heavy!'"},
                )
            )
    return needs_pit, events


def _sc_pit_chance(position: int) -> float:
    for last_position, chance in _SC_PIT_LADDER:
        if position <= last_position:
            return chance
    return _SC_PIT_BACKMARKER


def safety_car_pit_call(
    driver: Driver,
    state: RaceState,
    previous_water: float,
    outlook: WeatherOutlook,
    ctx: LapContext,
) -> list[LapEvent]:
    """Take a cheap stop while the field is neutralised.

    Only drivers with a reason to stop are considered.  The chance grows
    down the order, for weaker tyre managers and for worn tyres.  On
    success the driver is put in the pit lane and the compound chosen.
    """
    if state.flag not in (Flag.SAFETY_CAR, Flag.VIRTUAL_SAFETY_CAR):
        return []
    if driver.pitted_under_sc or driver.status is not DriverStatus.RACING:
        return []

    remaining: int = state.remaining_laps
    tyre = driver.tyre
    skills = driver.skills
    water = state.water_level

    must_pit_for_weather = (state.is_wet and driver.on_slicks) or (
        not state.is_wet and not driver.on_slicks and water < 5.0
    )
    must_pit_for_wear = tyre.wear > _SC_WEAR_LIMIT or tyre.condition is TyreCondition.BLISTERING
    cannot_make_end = (
        laps_left_on_tyre(tyre, skills.tyre_management, driver.trait, safety_car=True)
        < remaining + 2
    )
    poor_compound = (tyre.compound is TyreCompound.SOFT and remaining > _SOFT_LIFE + 5) or (
        tyre.compound is TyreCompound.MEDIUM and remaining > _MEDIUM_LIFE + 5
    )
    needs_compound = not driver.mandatory_rule_met and cannot_make_end

    if not (
        must_pit_for_weather
        or must_pit_for_wear
        or (cannot_make_end and driver.has_stops_remaining)
        or poor_compound
        or needs_compound
    ):
        return []

    chance = _sc_pit_chance(driver.position)
    chance += (85.0 - skills.tyre_management) * 0.005
    if must_pit_for_wear:
        chance += 0.5
    if not ctx.chance(chance):
        return []

    driver.status = DriverStatus.IN_PITS
    driver.pitted_under_sc = True
    driver.pit_target = choose_pit_tyre(driver, state, previous_water, outlook, ctx)
    return [
        LapEvent(
            EventKind.PIT_ENTRY,
            driver.name,
            {"message": "takes a tactical stop under the SC!"},
        )
    ]


def end_of_lap_pit_call(
    driver: Driver,
    state: RaceState,
    needs_weather_stop: bool,
    overcutting: bool,
    ctx: LapContext,
) -> tuple[bool, str, list[LapEvent]]:
    """Decide at the end of a lap whether to come in next lap.

    Returns:
        ``(should_pit, reason_message, radio_events)``.
    """
    events: list[LapEvent] = []
    remaining: int = state.remaining_laps
    tyre = driver.tyre

    if remaining > 0:
        if driver.status is DriverStatus.DAMAGED:
            return True, "is pitting for repairs!", events
        if needs_weather_stop:
            return True, "is pitting for the correct weather tyres!", events
        if not driver.mandatory_rule_met and remaining <= _MANDATORY_WINDOW:
            return True, "makes their mandatory final stop!", events

    if remaining <= 1:
        return False, "", events

    critical = tyre.wear > _CRITICAL_WEAR or tyre.condition is TyreCondition.BLISTERING
    stop = driver.next_planned_stop
    planned = stop is not None and stop.lap <= state.lap and not overcutting
    undercut = (
        driver.battle is not None
        and driver.battle.laps > 2
        and state.track.overtaking_difficulty > 3
        and ctx.chance(ctx.config.undercut_probability)
    )
    if not (critical or planned or undercut):
        return False, "", events

    laps_left = laps_left_on_tyre(tyre, driver.skills.tyre_management, driver.trait)
    if laps_left >= remaining + 2 and remaining < _END_OF_RACE_WINDOW:
        return False, "", events

    if critical:
        position_factor = max(0.0, (10 - driver.position) / 10.0) * 0.3
        consistency_factor = (driver.skills.consistency - 80.0) / 100.0 * 0.4
        if ctx.chance(0.2 + position_factor + consistency_factor):
            events.append(
                LapEvent(
                    EventKind.TEAM_RADIO,
                    driver.name,
                    {"message": "is told 'Stay out, bring it home, these tyres have to last!'"},
                )
            )
            return False, "", events
        if tyre.condition is TyreCondition.BLISTERING:
            return True, "is forced to pit with blistering tyres!", events
        return True, "is forced to pit with worn tyres!", events

    if undercut:
        return True, "goes for the undercut!", events
    return True, "", events


# ---------------------------------------------------------------------------
# Pit stop execution
# ---------------------------------------------------------------------------


def limp_to_pits(driver: Driver, state: RaceState) -> None:
    """A crippled car crawls round and enters the pit lane."""
    driver.lap_time = state.track.base_lap_time + _LIMP_LAP_PENALTY
    driver.status = DriverStatus.IN_PITS


def _strategy_error(
    driver: Driver,
    wanted: TyreCompound,
    state: RaceState,
    outlook: WeatherOutlook,
) -> TyreCompound:
    believed_now = (
        outlook.forecast[state.lap - 1] if 0 < state.lap <= len(outlook.forecast) else None
    )
    if wanted is TyreCompound.INTERMEDIATE and believed_now is not Weather.HEAVY_RAIN:
        return TyreCompound.WET
    if wanted is TyreCompound.WET and state.water_level < 50.0:
        return TyreCompound.INTERMEDIATE
    if wanted is TyreCompound.MEDIUM:
        return TyreCompound.SOFT
    return wanted


def _pit_crew_outcome(driver: Driver, ctx: LapContext) -> list[LapEvent]:
    crew = ctx.ratings_for(driver.team_name).pit_crew_rating
    scale = ctx.config.pit_crew_outcome_scale
    mistake_delta = driver.modifier.pit_mistake_delta / 100.0

    fast = max(0.0, (crew - 50.0) / 100.0 * 0.4) * scale
    disastrous = max(0.0, (60.0 - crew) / 100.0 * 0.2) * scale + mistake_delta
    slow = ctx.config.slow_stop_probability + mistake_delta

    roll = ctx.rng.random()
    if roll < fast:
        driver.lap_time -= _FAST_STOP_GAIN
        return [LapEvent(EventKind.FAST_PIT_STOP, driver.name)]
    if roll < fast + disastrous:
        driver.lap_time += _DISASTROUS_STOP_LOSS
        return [LapEvent(EventKind.DISASTROUS_PIT_STOP, driver.name)]
    if roll < fast + disastrous + slow:
        driver.lap_time += _SLOW_STOP_LOSS
        return [LapEvent(EventKind.SLOW_PIT_STOP, driver.name)]
    return []


def _pit_lane_speeding(driver: Driver, ctx: LapContext) -> list[LapEvent]:
    skills = driver.skills
    base = ctx.config.pit_speeding_probability
    chance = base * (1.0 + (skills.aggression - 75.0) / 100.0 + (100.0 - skills.consistency) / 100.0)
    if not ctx.chance(chance):
        return []
    seconds = 5.0 if ctx.rng.random() < 0.8 else 10.0
    reason = "speeding in the pit lane"
    driver.penalties.append(Penalty(seconds=seconds, reason=reason))
    return [
        LapEvent(EventKind.TIME_PENALTY, driver.name, {"duration": seconds, "reason": reason})
    ]


def execute_pit_stop(
    driver: Driver,
    state: RaceState,
    previous_water: float,
    outlook: WeatherOutlook,
    ctx: LapContext,
) -> list[LapEvent]:
    """Run a stop for a driver in the pit lane.

    Sets the pit lap time, serves outstanding penalties, repairs damage
    (a failed repair retires the car), rolls the crew's performance and
    pit-lane speeding, fits the new set and may award a grip advantage
    for a well-timed weather call.

    Returns:
        Events in the order they happened.
    """
    events: list[LapEvent] = []
    track = state.track
    driver.pitted_this_lap = True
    driver.lap_time = track.base_lap_time + track.pit_loss - driver.modifier.pit_time_delta

    unserved = driver.unserved_penalties()
    if unserved:
        served = sum(p.seconds for p in unserved)
        driver.lap_time += served
        for penalty in unserved:
            penalty.served = True
        events.append(
            LapEvent(
                EventKind.LAP_EVENT,
                driver.name,
                {"message": f"serves {served:g}s of penalties.", "seconds": served},
            )
        )

    repaired = driver.damaged
    if repaired:
        driver.lap_time += _REPAIR_TIME
        if not ctx.chance(driver.car.reliability / 100.0):
            driver.retire(DriverStatus.DNF, state.lap, RetirementReason.DAMAGE)
            events.append(LapEvent(EventKind.REPAIR_FAILURE, driver.name))
            return events
        driver.damaged = False
        events.append(LapEvent(EventKind.REPAIR_SUCCESS, driver.name))
    else:
        events.extend(_pit_crew_outcome(driver, ctx))
        events.extend(_pit_lane_speeding(driver, ctx))

    stop = driver.next_planned_stop
    if driver.pit_target is not None:
        wanted = driver.pit_target
    elif repaired:
        # Limping cars come in without a prepared set.
        wanted = choose_pit_tyre(driver, state, previous_water, outlook, ctx)
    elif stop is not None:
        wanted = stop.compound
    else:
        wanted = TyreCompound.HARD

    fitted = wanted
    rating = ctx.ratings_for(driver.team_name).strategy_rating
    error_chance = (80.0 - rating) / 100.0 * ctx.config.strategy_error_scale
    if ctx.chance(error_chance):
        substitute = _strategy_error(driver, wanted, state, outlook)
        if substitute is not wanted and (
            _rule_met_with(driver, substitute) or not _rule_met_with(driver, wanted)
        ):
            fitted = substitute
            events.append(
                LapEvent(
                    EventKind.STRATEGY_ERROR,
                    driver.name,
                    {
                        "message": f"gets the wrong tyres! They wanted {wanted.value} "
                        f"but got {fitted.value}!",
                        "wanted": wanted.value,
                        "fitted": fitted.value,
                    },
                )
            )

    was_on_slicks = driver.on_slicks
    driver.fit_tyre(fitted)

    upcoming = state.master_forecast[state.lap : state.lap + 2]
    bonus = 0.15 + (rating - 75.0) * 0.005
    if was_on_slicks and fitted.is_wet and any(w.is_rain for w in upcoming):
        driver.grip_advantage = GripAdvantage(laps=_GRIP_ADVANTAGE_LAPS, bonus=bonus)
        events.append(
            LapEvent(
                EventKind.BRILLIANT_STRATEGY,
                driver.name,
                {"message": f"nails the strategy, pitting for {fitted.value}s just as the rain arrives!"},
            )
        )
    elif (
        not was_on_slicks
        and fitted.is_dry
        and previous_water > 5.0
        and not any(w.is_rain for w in upcoming)
    ):
        driver.grip_advantage = GripAdvantage(laps=_GRIP_ADVANTAGE_LAPS, bonus=bonus)
        events.append(
            LapEvent(
                EventKind.BRILLIANT_STRATEGY,
                driver.name,
                {"message": "makes a brave call to slicks and it pays off as the track dries!"},
            )
        )

    driver.pit_target = None
    driver.status = DriverStatus.RACING
    driver.pit_count += 1
    events.append(LapEvent(EventKind.PIT_EXIT, driver.name, {"tyre": fitted.value}))
    logger.debug("%s pits on lap %d for %s", driver.name, state.lap, fitted.value)
    return events
