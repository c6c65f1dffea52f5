"""Race-wide state, flags, weather and the lap event contract."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

from gp_engine.core.track import Track

RACE_CONTROL: str = "Race Control"


class Weather(str, Enum):
    SUNNY = "Sunny"
    CLOUDY = "Cloudy"
    LIGHT_RAIN = "Light Rain"
    HEAVY_RAIN = "Heavy Rain"
    EXTREME_RAIN = "Extreme Rain"

    @property
    def is_rain(self) -> bool:
        return self in (Weather.LIGHT_RAIN, Weather.HEAVY_RAIN, Weather.EXTREME_RAIN)


class Flag(str, Enum):
    GREEN = "Green"
    YELLOW = "Yellow"
    SAFETY_CAR = "Safety Car"
    VIRTUAL_SAFETY_CAR = "Virtual Safety Car"
    RED = "Red"


class EventKind(str, Enum):
    """Closed set of lap event kinds."""

    OVERTAKE = "OVERTAKE"
    PIT_ENTRY = "PIT_ENTRY"
    PIT_EXIT = "PIT_EXIT"
    CRASH = "CRASH"
    DNF = "DNF"
    SPIN = "SPIN"
    WEATHER_CHANGE = "WEATHER_CHANGE"
    RED_FLAG = "RED_FLAG"
    YELLOW_FLAG = "YELLOW_FLAG"
    VSC = "VSC"
    SLOW_PIT_STOP = "SLOW_PIT_STOP"
    MECHANICAL_ISSUE = "MECHANICAL_ISSUE"
    FASTEST_LAP = "FASTEST_LAP"
    BATTLE = "BATTLE"
    SAFETY_CAR = "SAFETY_CAR"
    DAMAGE = "DAMAGE"
    LAP_EVENT = "LAP_EVENT"
    REPAIR_SUCCESS = "REPAIR_SUCCESS"
    REPAIR_FAILURE = "REPAIR_FAILURE"
    MULTI_CRASH = "MULTI_CRASH"
    LOCK_UP = "LOCK_UP"
    WIDE_MOMENT = "WIDE_MOMENT"
    TEAM_RADIO = "TEAM_RADIO"
    TIME_PENALTY = "TIME_PENALTY"
    TRACK_LIMIT_WARNING = "TRACK_LIMIT_WARNING"
    EMERGENCY_WEATHER = "EMERGENCY_WEATHER"
    BRILLIANT_STRATEGY = "BRILLIANT_STRATEGY"
    QUALIFYING_HEROICS = "QUALIFYING_HEROICS"
    FAST_PIT_STOP = "FAST_PIT_STOP"
    DISASTROUS_PIT_STOP = "DISASTROUS_PIT_STOP"
    STRATEGY_ERROR = "STRATEGY_ERROR"


@dataclass(frozen=True)
class LapEvent:
    """One entry of the narrative event stream.

    Attributes:
        kind: Event kind.
        subject: Driver name, or ``"Race Control"`` for race-wide events.
        data: Kind-specific payload.
    """

    kind: EventKind
    subject: str
    data: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class FastestLap:
    driver: str
    time: float
    lap: int


@dataclass
class RaceState:
    """Race-wide state for one lap.

    The engine never mutates a caller's instance; each lap works on a
    :meth:`copy` and returns it.

    Attributes:
        track: Circuit being raced.
        total_laps: Race distance.
        lap: The lap about to be simulated (1-based).
        weather: Weather realised on the current lap.
        flag: Current flag.
        flag_laps: Laps left before the flag expires.
        restarting: A standing restart runs at the start of the next lap.
        water_level: Standing water on track (0-100).
        grip_level: ``100 - water_level``.
        master_forecast: Lap-indexed true weather; entry ``i`` is lap ``i+1``.
        team_forecasts: Per-team believed forecast.
        air_temp: Ambient temperature in degrees Celsius.
        track_temp: Track surface temperature in degrees Celsius.
        fastest_lap: Fastest green-flag lap so far.
    """

    track: Track
    total_laps: int
    lap: int = 1
    weather: Weather = Weather.SUNNY
    flag: Flag = Flag.GREEN
    flag_laps: int = 0
    restarting: bool = False
    water_level: float = 0.0
    grip_level: float = 100.0
    master_forecast: list[Weather] = field(default_factory=list)
    team_forecasts: dict[str, list[Weather]] = field(default_factory=dict)
    air_temp: float = 25.0
    track_temp: float = 40.0
    fastest_lap: FastestLap | None = None

    @property
    def remaining_laps(self) -> int:
        return self.total_laps - self.lap

    @property
    def is_wet(self) -> bool:
        return self.weather.is_rain

    def forecast_for(self, team_name: str) -> list[Weather]:
        """The forecast a team believes, or the master when it has none."""
        return self.team_forecasts.get(team_name) or self.master_forecast

    def copy(self) -> RaceState:
        return replace(
            self,
            master_forecast=list(self.master_forecast),
            team_forecasts={k: list(v) for k, v in self.team_forecasts.items()},
        )
