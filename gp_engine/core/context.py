"""Per-call context shared by the lap pipeline stages."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field

import numpy as np
from numpy.random import Generator

from gp_engine.core.team import RaceHistoryEntry, TeamRatings
from gp_engine.core.tuning import SimConfig


@dataclass
class LapContext:
    """Read-only collaborators and the random source for one engine call.

    Attributes:
        rng: Random generator every stochastic roll draws from.
        config: Engine probabilities.
        team_ratings: Personnel ratings keyed by team name.
        race_history: Past winners keyed by circuit name.
    """

    rng: Generator
    config: SimConfig = field(default_factory=SimConfig)
    team_ratings: Mapping[str, TeamRatings] = field(default_factory=dict)
    race_history: Mapping[str, list[RaceHistoryEntry]] = field(default_factory=dict)

    @classmethod
    def build(
        cls,
        team_ratings: Mapping[str, TeamRatings] | None = None,
        race_history: Mapping[str, list[RaceHistoryEntry]] | None = None,
        config: SimConfig | None = None,
        rng: Generator | None = None,
    ) -> LapContext:
        """Fill in defaults; an unseeded generator when none is injected."""
        return cls(
            rng=rng if rng is not None else np.random.default_rng(),
            config=config if config is not None else SimConfig(),
            team_ratings=team_ratings if team_ratings is not None else {},
            race_history=race_history if race_history is not None else {},
        )

    def has_ratings(self, team_name: str) -> bool:
        return team_name in self.team_ratings

    def ratings_for(self, team_name: str) -> TeamRatings:
        """Ratings for *team_name*, or generic ratings when it has no record."""
        ratings = self.team_ratings.get(team_name)
        return ratings if ratings is not None else TeamRatings.generic()

    def won_here_before(self, driver_name: str, track_name: str) -> bool:
        return any(entry.winner == driver_name for entry in self.race_history.get(track_name, ()))

    def chance(self, probability: float) -> bool:
        """Roll once against *probability*."""
        return bool(self.rng.random() < probability)
