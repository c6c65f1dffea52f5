"""Circuit model for the race engine."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class TrackCharacteristic(str, Enum):
    """Primary character of a circuit, used for the car/track fit term."""

    HIGH_SPEED_AERO = "High-Speed Aero"
    MAX_DOWNFORCE_LOW_SPEED = "Max Downforce / Low-Speed"
    MAX_DOWNFORCE_MED_SPEED = "Max Downforce / Med-Speed"
    POWER_SENSITIVE = "Power Sensitive"
    POWER_AND_TRACTION = "Power & Traction"
    HIGH_SPEED_FLOW = "High-Speed Flow"


class SecondaryCharacteristic(str, Enum):
    BRAKING_STABILITY = "Braking Stability"
    FRONT_LIMITED = "Front-Limited"
    REAR_LIMITED = "Rear-Limited"
    HIGH_SPEED_FLOW = "High-Speed Flow"
    LOW_SPEED_TECHNICAL = "Low-Speed Technical"
    MECHANICAL_GRIP = "Mechanical Grip"
    KERB_RIDING = "Kerb Riding"
    TRACTION = "Traction"
    HIGH_SPEED_AERO = "High-Speed Aero"
    POWER_AND_TRACTION = "Power & Traction"


@dataclass(frozen=True)
class Track:
    """Static ratings of a circuit.

    Values are not range-checked here; the sanitizer clamps them before
    every lap and the YAML loader validates the catalogue.

    Attributes:
        name: Official circuit name.
        laps: Race distance in laps.
        base_lap_time: Reference lap time in seconds.
        pit_loss: Time lost driving through the pit lane, in seconds.
        tyre_stress: Tyre stress rating (1-6).
        brake_wear: Brake wear rating (1-6).
        power_sensitivity: Power sensitivity rating (1-6).
        overtaking_difficulty: Overtaking difficulty (1-6).
        drs_effectiveness: DRS effectiveness (0-5).
        safety_car_probability: Chance a single crash brings out the SC.
        vsc_probability: Chance a spin brings out the VSC.
        wet_session_probability: Chance the race sees a rain shower.
        primary: Primary :class:`TrackCharacteristic`.
        secondary: Optional :class:`SecondaryCharacteristic`.
        risk_tier: Barrier proximity tier (1-3); raises red-flag odds.
    """

    name: str
    laps: int = 50
    base_lap_time: float = 90.0
    pit_loss: float = 20.0
    tyre_stress: float = 3.0
    brake_wear: float = 3.0
    power_sensitivity: float = 3.0
    overtaking_difficulty: float = 3.0
    drs_effectiveness: float = 2.0
    safety_car_probability: float = 0.5
    vsc_probability: float = 0.5
    wet_session_probability: float = 0.2
    primary: TrackCharacteristic = TrackCharacteristic.HIGH_SPEED_FLOW
    secondary: SecondaryCharacteristic | None = None
    risk_tier: int = 1

    def __post_init__(self) -> None:
        """Validate track identity."""
        if not self.name:
            raise ValueError("Track name must not be empty.")
