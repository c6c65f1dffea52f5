"""Configuration loaders for the Grand Prix race engine."""

from pathlib import Path

import yaml

from gp_engine.core.track import SecondaryCharacteristic, Track, TrackCharacteristic
from gp_engine.core.tuning import SimConfig

DATA_DIR: Path = Path(__file__).resolve().parent.parent / "data"
CIRCUITS_PATH: Path = DATA_DIR / "circuits.yaml"
ENGINE_CONFIG_PATH: Path = DATA_DIR / "engine.yaml"

_REQUIRED_FIELDS: tuple[str, ...] = (
    "name",
    "laps",
    "base_lap_time",
    "pit_loss",
    "tyre_stress",
    "overtaking_difficulty",
    "drs_effectiveness",
    "safety_car_probability",
    "vsc_probability",
    "wet_session_probability",
    "primary",
)

# field -> (low, high) inclusive
_NUMERIC_RANGES: dict[str, tuple[float, float]] = {
    "laps": (10, 300),
    "base_lap_time": (60.0, 140.0),
    "pit_loss": (12.0, 40.0),
    "tyre_stress": (1.0, 6.0),
    "brake_wear": (1.0, 6.0),
    "power_sensitivity": (1.0, 6.0),
    "overtaking_difficulty": (1.0, 6.0),
    "drs_effectiveness": (0.0, 5.0),
    "safety_car_probability": (0.0, 1.0),
    "vsc_probability": (0.0, 1.0),
    "wet_session_probability": (0.0, 1.0),
    "risk_tier": (1, 3),
}


def _read_yaml(path: Path, kind: str) -> dict:
    if not path.exists():
        raise FileNotFoundError(f"{kind} file not found: {path}")
    with open(path, encoding="utf-8") as fh:
        data = yaml.safe_load(fh)
    if not isinstance(data, dict):
        raise ValueError(f"{kind} file {path} must contain a mapping at the top level")
    return data


def load_circuits(path: Path | None = None) -> list[Track]:
    """Load the circuit catalogue from a YAML file.

    Each entry is validated and converted into a :class:`Track` instance.

    Args:
        path: Optional override for the catalogue file path.

    Returns:
        List of :class:`Track` objects in file order.

    Raises:
        FileNotFoundError: If the catalogue file does not exist.
        ValueError: If any circuit entry is missing fields, has
            out-of-range parameter values or unknown characteristics.
    """
    data = _read_yaml(path or CIRCUITS_PATH, "Circuit catalogue")
    circuits: list[dict] = data.get("circuits") or []
    tracks: list[Track] = []

    for idx, entry in enumerate(circuits):
        label = f"Circuit entry {idx} ({entry.get('name', '<unknown>')})"

        # --- Validate required fields ---
        for field in _REQUIRED_FIELDS:
            if field not in entry:
                raise ValueError(f"{label} is missing required field '{field}'")

        # --- Validate numeric ranges ---
        for field, (low, high) in _NUMERIC_RANGES.items():
            if field not in entry:
                continue
            val = entry[field]
            if isinstance(val, bool) or not isinstance(val, (int, float)):
                raise ValueError(
                    f"{label}: '{field}' must be numeric, got {type(val).__name__}"
                )
            if not low <= float(val) <= high:
                raise ValueError(f"{label}: '{field}' must be in [{low}, {high}], got {val}")

        try:
            primary = TrackCharacteristic(entry["primary"])
            secondary = (
                SecondaryCharacteristic(entry["secondary"])
                if entry.get("secondary") is not None
                else None
            )
        except ValueError as exc:
            raise ValueError(f"{label}: {exc}") from exc

        tracks.append(
            Track(
                name=str(entry["name"]),
                laps=int(entry["laps"]),
                base_lap_time=float(entry["base_lap_time"]),
                pit_loss=float(entry["pit_loss"]),
                tyre_stress=float(entry["tyre_stress"]),
                brake_wear=float(entry.get("brake_wear", 3.0)),
                power_sensitivity=float(entry.get("power_sensitivity", 3.0)),
                overtaking_difficulty=float(entry["overtaking_difficulty"]),
                drs_effectiveness=float(entry["drs_effectiveness"]),
                safety_car_probability=float(entry["safety_car_probability"]),
                vsc_probability=float(entry["vsc_probability"]),
                wet_session_probability=float(entry["wet_session_probability"]),
                primary=primary,
                secondary=secondary,
                risk_tier=int(entry.get("risk_tier", 1)),
            )
        )

    return tracks


def load_circuit(name: str, path: Path | None = None) -> Track:
    """Look up a single circuit by name.

    Raises:
        KeyError: If no circuit has that name.
    """
    for track in load_circuits(path):
        if track.name == name:
            return track
    raise KeyError(f"Unknown circuit: {name}")


def load_sim_config(path: Path | None = None) -> SimConfig:
    """Load engine probabilities from a YAML file.

    Keys under ``probabilities`` override the :class:`SimConfig`
    defaults; keys it does not know are rejected.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: On unknown keys or values outside [0, 1].
    """
    data = _read_yaml(path or ENGINE_CONFIG_PATH, "Engine config")
    probabilities: dict = data.get("probabilities") or {}
    known = set(SimConfig.__dataclass_fields__)
    unknown = sorted(set(probabilities) - known)
    if unknown:
        raise ValueError(f"Unknown engine probabilities: {', '.join(unknown)}")
    return SimConfig(**probabilities)
