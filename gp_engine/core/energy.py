"""Pace mode, fuel burn and boost resource model for the race engine.

The boost resource is a consumable per-lap performance reserve.  It is
recharged every racing lap and spent in wheel-to-wheel battles.
"""

from __future__ import annotations

from enum import Enum

from gp_engine.core.state import Flag


class PaceMode(str, Enum):
    """How hard a driver is running on the current lap."""

    PUSHING = "Pushing"
    STANDARD = "Standard"
    CONSERVING = "Conserving"


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

MAX_BOOST: float = 100.0
BOOST_ATTACK_COST: float = 20.0
BOOST_DEFENCE_COST: float = 15.0

_BASE_REGEN: float = 15.0
_CONSERVING_REGEN_BONUS: float = 10.0
_SAFETY_CAR_REGEN: float = 25.0

_BASE_FUEL_BURN: float = 1.8  # kg per lap
_FUEL_BURN_FACTOR: dict[PaceMode, float] = {
    PaceMode.PUSHING: 1.1,
    PaceMode.STANDARD: 1.0,
    PaceMode.CONSERVING: 0.85,
}


# ---------------------------------------------------------------------------
# Boost state
# ---------------------------------------------------------------------------


class BoostState:
    """Tracks a driver's boost charge over the race.

    Harvest and deploy operations are bounded by ``[0, max_charge]``.

    Attributes:
        charge: Current boost charge.
        max_charge: Maximum charge.
    """

    __slots__ = ("charge", "max_charge")

    def __init__(self, charge: float = MAX_BOOST, max_charge: float = MAX_BOOST):
        self.max_charge: float = max_charge
        self.charge: float = charge

    def harvest(self, amount: float) -> float:
        """Add charge, capped at ``max_charge``.

        Returns:
            Actual charge harvested.
        """
        headroom: float = max(0.0, self.max_charge - self.charge)
        actual: float = min(max(0.0, amount), headroom)
        self.charge += actual
        return actual

    def can_deploy(self, amount: float) -> bool:
        """Return True when at least *amount* of charge is available."""
        return self.charge >= amount

    def deploy(self, amount: float) -> float:
        """Spend charge, never going below zero.

        Returns:
            Actual charge deployed.
        """
        actual: float = min(max(0.0, amount), self.charge)
        self.charge -= actual
        return actual

    def copy(self) -> BoostState:
        return BoostState(charge=self.charge, max_charge=self.max_charge)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, BoostState):
            return NotImplemented
        return self.charge == other.charge and self.max_charge == other.max_charge

    def __repr__(self) -> str:
        return f"BoostState(charge={self.charge:.1f}, max_charge={self.max_charge:.1f})"


# ---------------------------------------------------------------------------
# Per-lap helpers
# ---------------------------------------------------------------------------


def regen_amount(pace_mode: PaceMode, flag: Flag) -> float:
    """Boost recharged at the start of a racing lap.

    Conserving drivers recharge faster; a Safety Car period recharges
    every car by a fixed amount.
    """
    if flag is Flag.SAFETY_CAR:
        return _SAFETY_CAR_REGEN
    regen: float = _BASE_REGEN
    if pace_mode is PaceMode.CONSERVING:
        regen += _CONSERVING_REGEN_BONUS
    return regen


def fuel_burn(pace_mode: PaceMode) -> float:
    """Fuel consumed over one lap in the given pace mode."""
    return _BASE_FUEL_BURN * _FUEL_BURN_FACTOR[pace_mode]
