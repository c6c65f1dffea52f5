"""Engine probability settings.

Every tunable chance the engine rolls against lives in :class:`SimConfig`
so a race can be made fully deterministic (apart from lap-time noise) by
zeroing them.  The defaults reproduce the shipped tuning in
``data/engine.yaml``.
"""

from __future__ import annotations

from dataclasses import dataclass, fields


@dataclass(frozen=True)
class SimConfig:
    """Probabilities and probability scales used by the engine.

    Attributes:
        track_limit_probability: Chance per driver per lap of a
            track-limit strike.
        flavour_event_probability: Chance per driver per lap of a minor
            mistake or radio message.
        reliability_failure_factor: Failure chance per point of
            ``100 - reliability``.
        driver_error_factor: Base driver-error chance at 100 incident
            proneness.
        key_moment_probability: Chance the start/restart produces a
            key moment.
        slow_stop_probability: Base chance of a slow pit stop.
        pit_crew_outcome_scale: Scale on fast/disastrous stop chances.
        pit_speeding_probability: Base pit-lane speeding chance.
        strategy_error_scale: Scale on the wrong-tyre error chance.
        undercut_probability: Chance to try an undercut from a battle.
        overcut_probability: Chance to try an overcut from a battle.
        battle_mistake_scale: Scale on mistake chances in long battles.
        cloudy_spell_probability: Chance a dry race gets a cloudy spell.
        heavy_rain_probability: Chance a shower lap is heavy.
        extreme_rain_probability: Chance a heavy lap escalates.
        forecast_error_scale: Scale on team forecast miss chances.
        graining_probability: Chance cold tyres driven hard start to grain.
        blistering_probability: Chance hot, aged tyres start to blister.
    """

    track_limit_probability: float = 0.016
    flavour_event_probability: float = 0.08
    reliability_failure_factor: float = 0.0004
    driver_error_factor: float = 0.007
    key_moment_probability: float = 0.8
    slow_stop_probability: float = 0.15
    pit_crew_outcome_scale: float = 1.0
    pit_speeding_probability: float = 0.01
    strategy_error_scale: float = 0.15
    undercut_probability: float = 0.4
    overcut_probability: float = 0.4
    battle_mistake_scale: float = 1.0
    cloudy_spell_probability: float = 0.3
    heavy_rain_probability: float = 0.4
    extreme_rain_probability: float = 0.05
    forecast_error_scale: float = 1.0
    graining_probability: float = 0.15
    blistering_probability: float = 0.1

    def __post_init__(self) -> None:
        """Validate that every setting is a probability."""
        for f in fields(self):
            value = getattr(self, f.name)
            if not isinstance(value, (int, float)) or isinstance(value, bool):
                raise ValueError(f"{f.name} must be numeric, got {type(value).__name__}")
            if not 0.0 <= float(value) <= 1.0:
                raise ValueError(f"{f.name} must be in [0, 1], got {value}")

    @classmethod
    def without_incidents(cls) -> SimConfig:
        """Every incident, pit-crew, tyre and opportunistic chance set to zero."""
        return cls(**{f.name: 0.0 for f in fields(cls)})
