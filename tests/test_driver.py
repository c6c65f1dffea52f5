"""Tests for the driver entity, car link, traits and team ratings."""

from gp_engine.core.car import Car, CarLink, car_link_impact
from gp_engine.core.driver import (
    Driver,
    DriverSkills,
    DriverStatus,
    Penalty,
    RetirementReason,
)
from gp_engine.core.strategy import PitStop, Strategy
from gp_engine.core.team import TeamRatings
from gp_engine.core.traits import Trait, TraitEffect, trait_effect
from gp_engine.core.tyre import TyreCompound

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


def _sample_driver() -> Driver:
    return Driver(
        name="Driver A",
        skills=DriverSkills(),
        car=Car(team_name="Team A"),
        strategy=Strategy(TyreCompound.MEDIUM, (PitStop(20, TyreCompound.HARD),)),
    )


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------


def test_mandatory_rule_needs_two_slicks() -> None:
    """One slick compound is not enough; a second distinct one is."""
    driver = _sample_driver()
    driver.fit_tyre(TyreCompound.MEDIUM)
    assert not driver.mandatory_rule_met
    driver.fit_tyre(TyreCompound.MEDIUM)
    assert not driver.mandatory_rule_met
    driver.fit_tyre(TyreCompound.HARD)
    assert driver.mandatory_rule_met
    assert driver.compounds_used == [TyreCompound.MEDIUM, TyreCompound.HARD]


def test_any_wet_compound_satisfies_rule() -> None:
    """Fitting an Intermediate satisfies the compound rule on its own."""
    driver = _sample_driver()
    driver.fit_tyre(TyreCompound.INTERMEDIATE)
    assert driver.has_used_wet
    assert driver.mandatory_rule_met


def test_next_planned_stop_tracks_pit_count() -> None:
    """The next stop is the first one not yet taken."""
    driver = _sample_driver()
    assert driver.next_planned_stop == PitStop(20, TyreCompound.HARD)
    driver.pit_count = 1
    assert driver.next_planned_stop is None
    assert not driver.has_stops_remaining


def test_retire_records_lap_and_reason() -> None:
    """Retiring sets the status, lap and reason and ends any pending stop."""
    driver = _sample_driver()
    driver.pit_target = TyreCompound.HARD
    driver.retire(DriverStatus.CRASHED, 12, RetirementReason.CRASH)
    assert driver.is_retired
    assert driver.retirement_lap == 12
    assert driver.retirement_reason is RetirementReason.CRASH
    assert driver.pit_target is None


def test_copy_duplicates_per_lap_state() -> None:
    """Mutating a copy must not leak into the original."""
    driver = _sample_driver()
    driver.fit_tyre(TyreCompound.MEDIUM)
    driver.penalties.append(Penalty(5.0, "exceeding track limits"))

    clone = driver.copy()
    clone.tyre.wear = 40.0
    clone.compounds_used.append(TyreCompound.HARD)
    clone.penalties[0].served = True
    clone.boost.deploy(50.0)

    assert driver.tyre.wear == 0.0
    assert driver.compounds_used == [TyreCompound.MEDIUM]
    assert not driver.penalties[0].served
    assert driver.boost.charge == 100.0
    assert clone.skills is driver.skills


def test_car_link_settles_over_the_opening_laps() -> None:
    """A compatible driver gains more synergy as the race goes on."""
    link = CarLink(compatibility=90.0, adaptation=40.0)
    early_bonus, early_drag = car_link_impact(link, 1)
    late_bonus, late_drag = car_link_impact(link, 30)
    assert late_bonus > early_bonus
    assert late_drag < early_drag


def test_trait_effect_neutral_defaults() -> None:
    """No trait, or an unrelated effect, returns the neutral element."""
    assert trait_effect(None, TraitEffect.ATTACK_BONUS) == 0.0
    assert trait_effect(None, TraitEffect.INCIDENT_MULTIPLIER) == 1.0
    assert trait_effect(Trait.NIGHT_OPS, TraitEffect.WET_PACE_DELTA) == 0.0
    assert trait_effect(Trait.ERROR_PRONE, TraitEffect.INCIDENT_MULTIPLIER) == 1.5


def test_generic_team_ratings() -> None:
    """Generic ratings give a mid-table strategy department."""
    ratings = TeamRatings.generic()
    assert ratings.strategy_rating == 75.0
    assert ratings.pit_crew_rating == 62.5
