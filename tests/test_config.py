"""Tests for the circuit catalogue and engine config loaders."""

from pathlib import Path

import pytest
import yaml

from gp_engine.config import load_circuit, load_circuits, load_sim_config
from gp_engine.core.track import TrackCharacteristic
from gp_engine.core.tuning import SimConfig

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


def _sample_entry(**overrides) -> dict:
    entry = {
        "name": "Test Circuit",
        "laps": 50,
        "base_lap_time": 90.0,
        "pit_loss": 20.0,
        "tyre_stress": 3,
        "overtaking_difficulty": 3,
        "drs_effectiveness": 2,
        "safety_car_probability": 0.5,
        "vsc_probability": 0.5,
        "wet_session_probability": 0.2,
        "primary": "High-Speed Flow",
    }
    entry.update(overrides)
    return entry


def _write_catalogue(tmp_path: Path, *entries: dict) -> Path:
    path = tmp_path / "circuits.yaml"
    path.write_text(yaml.safe_dump({"circuits": list(entries)}), encoding="utf-8")
    return path


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------


def test_shipped_catalogue_loads() -> None:
    """The bundled catalogue has eight circuits with unique names."""
    tracks = load_circuits()
    assert len(tracks) == 8
    names = [t.name for t in tracks]
    assert len(set(names)) == len(names)
    for track in tracks:
        assert 10 <= track.laps <= 300
        assert 0.0 <= track.wet_session_probability <= 1.0


def test_load_circuit_by_name() -> None:
    """A single circuit is found by its official name."""
    track = load_circuit("Bahrain International Circuit")
    assert track.laps == 57
    assert track.primary is TrackCharacteristic.POWER_AND_TRACTION
    with pytest.raises(KeyError):
        load_circuit("Nowhere Ring")


def test_custom_catalogue_defaults(tmp_path) -> None:
    """Optional ratings fall back to their defaults."""
    path = _write_catalogue(tmp_path, _sample_entry())
    (track,) = load_circuits(path)
    assert track.name == "Test Circuit"
    assert track.brake_wear == 3.0
    assert track.secondary is None
    assert track.risk_tier == 1


@pytest.mark.parametrize(
    "entry",
    [
        {k: v for k, v in _sample_entry().items() if k != "pit_loss"},
        _sample_entry(laps=5),
        _sample_entry(tyre_stress=9),
        _sample_entry(safety_car_probability=True),
        _sample_entry(primary="Street Circuit"),
        _sample_entry(secondary="Bumpy"),
    ],
)
def test_invalid_entries_rejected(tmp_path, entry: dict) -> None:
    """Missing fields, bad ranges and unknown characteristics fail loudly."""
    path = _write_catalogue(tmp_path, entry)
    with pytest.raises(ValueError):
        load_circuits(path)


def test_missing_file(tmp_path) -> None:
    """A missing file raises FileNotFoundError."""
    with pytest.raises(FileNotFoundError):
        load_circuits(tmp_path / "absent.yaml")
    with pytest.raises(FileNotFoundError):
        load_sim_config(tmp_path / "absent.yaml")


def test_shipped_engine_config_matches_defaults() -> None:
    """The bundled engine config reproduces the built-in tuning."""
    assert load_sim_config() == SimConfig()


def test_engine_config_overrides(tmp_path) -> None:
    """Listed keys override defaults; unknown keys and bad values are rejected."""
    path = tmp_path / "engine.yaml"
    path.write_text("probabilities:\n  key_moment_probability: 0.0\n", encoding="utf-8")
    config = load_sim_config(path)
    assert config.key_moment_probability == 0.0
    assert config.driver_error_factor == SimConfig().driver_error_factor

    path.write_text("probabilities:\n  meteor_strike: 0.1\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_sim_config(path)

    path.write_text("probabilities:\n  undercut_probability: 1.5\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_sim_config(path)
