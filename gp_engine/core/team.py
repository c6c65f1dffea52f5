"""Team personnel ratings consumed by the race engine.

Ratings are read-only inputs owned by the off-track layer.  A team with
no record falls back to :meth:`TeamRatings.generic`.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class TeamRatings:
    """Personnel ratings that shape strategy calls and pit work.

    Attributes:
        leadership: Team principal leadership (0-20).
        innovation: Head of technical innovation (0-20).
        financial_acumen: Team principal financial acumen (0-20).
        chassis_facility: Chassis facility level (0-10); drives pit crew
            quality.
    """

    leadership: float = 15.0
    innovation: float = 15.0
    financial_acumen: float = 15.0
    chassis_facility: float = 5.0

    @classmethod
    def generic(cls) -> TeamRatings:
        """Fallback ratings for a team without a personnel record."""
        return cls()

    @property
    def strategy_rating(self) -> float:
        """Strategic rating on a 0-100 scale."""
        return (self.leadership + self.innovation) / 40.0 * 100.0

    @property
    def forecast_skill(self) -> float:
        """Weather-reading skill on a 0-100 scale."""
        return (self.innovation + self.leadership) / 40.0 * 100.0

    @property
    def pit_crew_rating(self) -> float:
        """Pit crew quality; 50 is an average crew."""
        return self.chassis_facility * 5.0 + self.leadership * 2.5

    @property
    def planning_rating(self) -> float:
        """Pre-race planning rating on a 0-100 scale."""
        return (self.leadership + self.financial_acumen + self.innovation) / 60.0 * 100.0


@dataclass(frozen=True)
class RaceHistoryEntry:
    """A past winner at a circuit."""

    winner: str
    year: int | None = None


RaceHistory = dict[str, list[RaceHistoryEntry]]
