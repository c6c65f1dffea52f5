"""Car and car/driver link models for the race engine."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Car:
    """Abstract performance ratings of a car.

    Ratings are nominally 40-120 (reliability 1-100); values outside the
    range are clamped by the sanitizer.

    Attributes:
        team_name: Constructor team name.
        overall_pace: Headline pace rating.
        high_speed_cornering: High-speed cornering rating.
        medium_speed_cornering: Medium-speed cornering rating.
        low_speed_cornering: Low-speed cornering rating.
        power_sensitivity: Power unit / straight-line rating.
        reliability: Mechanical reliability (1-100).
        tyre_wear_factor: Tyre friendliness; higher is kinder to tyres.
    """

    team_name: str
    overall_pace: float = 80.0
    high_speed_cornering: float = 80.0
    medium_speed_cornering: float = 80.0
    low_speed_cornering: float = 80.0
    power_sensitivity: float = 80.0
    reliability: float = 80.0
    tyre_wear_factor: float = 80.0

    def __post_init__(self) -> None:
        """Validate car identity."""
        if not self.team_name:
            raise ValueError("team_name must not be empty.")


@dataclass(frozen=True)
class CarLink:
    """How well a driver gels with the car.

    Attributes:
        compatibility: Long-run fit with the car's handling (0-100).
        adaptation: How quickly the driver settles in (0-100).
    """

    compatibility: float = 50.0
    adaptation: float = 50.0


_RACE_RAMP_LAPS: float = 6.0


def car_link_impact(link: CarLink, lap: int) -> tuple[float, float]:
    """Lap-time effect of the car/driver link on a given lap.

    Both terms ramp with laps raced to model a driver settling in.  The
    synergy bonus grows toward ``(compatibility - 50) / 100 * 0.35``
    while the adaptation drag fades out.

    Args:
        link: The driver's car link.
        lap: Current race lap (1-based).

    Returns:
        ``(synergy_bonus, adaptation_drag)`` in seconds.  The bonus is
        subtracted from the lap time and the drag added.
    """
    compatibility: float = min(100.0, max(0.0, link.compatibility))
    adaptation: float = min(100.0, max(0.0, link.adaptation))

    responsiveness: float = 0.55 + adaptation / 100.0 * 0.6
    curve: float = min(1.0, max(0.0, (lap + 1) / _RACE_RAMP_LAPS * responsiveness))

    synergy: float = (compatibility - 50.0) / 100.0 * 0.35 * curve
    drag: float = (1.0 - curve) * (0.08 + (70.0 - adaptation) / 220.0) + max(
        0.0, (55.0 - compatibility) / 400.0
    )
    return synergy, drag
