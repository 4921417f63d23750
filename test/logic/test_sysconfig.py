"""Tests for fleet configuration handling."""

from configparser import ConfigParser
from pathlib import Path

import pytest

from autocal.system.sysconfig import (
    list_available_systems,
    load_run_config,
    package_systems_dir,
    parse_run_config,
    validate_run_config,
)
from autocal.types import ConfigError, RunConfig, UnitId


@pytest.fixture
def temp_config_dir(tmp_path):
    """Create temporary .autocal directory."""
    config_dir = tmp_path / ".autocal"
    config_dir.mkdir()
    return config_dir


@pytest.fixture
def mock_systems_file(temp_config_dir):
    """Create a systems.ini file with one small fleet."""
    systems_file = temp_config_dir / "systems.ini"
    config = ConfigParser()

    config["Bench"] = {
        "host": "10.0.0.5",
        "settle_seconds": "2.5",
        "nsamps": "20",
        "reject_busy_cards": "false",
        "card.main.dsm_id": "3",
        "card.main.dsm_name": "dsm3",
        "card.main.dev_id": "200",
        "card.main.dev_name": "/dev/ncar_a2d0",
        "card.main.type": "ncar_a2d",
        "card.main.cal_file": "/cal/A2D/A2D03200.dat",
        "card.main.sample.1.rate": "10",
        "card.main.sample.1.channels": "1, 0",
        "card.main.sample.2.rate": "1",
        "card.main.sample.2.temperature": "true",
        "card.main.chan.0.gain": "1",
        "card.main.chan.0.bipolar": "true",
        "card.main.chan.0.var": "VIN",
        "card.main.chan.1.gain": "2",
        "card.main.chan.1.bipolar": "false",
    }

    with systems_file.open("w") as f:
        config.write(f)

    return systems_file


def read(path):
    config = ConfigParser()
    config.read(path)
    return config


def test_validate_run_config(mock_systems_file):
    """Test fleet configuration validation."""
    config = read(mock_systems_file)

    is_valid, error_msg = validate_run_config(config, "Bench")
    assert is_valid, f"Valid configuration was marked as invalid: {error_msg}"
    assert error_msg == ""

    del config["Bench"]["card.main.dsm_id"]
    is_valid, error_msg = validate_run_config(config, "Bench")
    assert not is_valid
    assert "missing required fields: dsm_id" in error_msg

    is_valid, error_msg = validate_run_config(config, "Nope")
    assert not is_valid
    assert "No section" in error_msg


@pytest.mark.parametrize(
    "key, value, message",
    [
        ("card.main.chan.0.gain", "3", "invalid gain"),
        ("card.main.chan.0.bipolar", "maybe", "invalid bipolar"),
        ("card.main.chan.0.offset", "1", "unknown channel field"),
        ("card.main.chan.9.gain", "1", "beyond n_channels"),
        ("card.main.sample.1.rate", "0", "invalid rate"),
        ("card.main.sample.1.channels", "0, x", "invalid channel list"),
        ("card.main.dev_id", "two", "invalid dev_id"),
        ("card.main.colour", "red", "unknown fields"),
        ("nsamps", "0", "Invalid nsamps"),
        ("settle_seconds", "soon", "Invalid settle_seconds"),
        ("reject_busy_cards", "perhaps", "Invalid reject_busy_cards"),
    ],
)
def test_validate_run_config_errors(mock_systems_file, key, value, message):
    config = read(mock_systems_file)
    config["Bench"][key] = value
    is_valid, error_msg = validate_run_config(config, "Bench")
    assert not is_valid, f"{key} = {value} should be invalid"
    assert message in error_msg, f"Unexpected error message: {error_msg}"


def test_validate_requires_cards_and_channels(mock_systems_file):
    config = read(mock_systems_file)
    for key in [k for k in config["Bench"] if ".chan." in k]:
        del config["Bench"][key]
    is_valid, error_msg = validate_run_config(config, "Bench")
    assert not is_valid
    assert "has no channels" in error_msg

    config = ConfigParser()
    config["Empty"] = {"nsamps": "10"}
    is_valid, error_msg = validate_run_config(config, "Empty")
    assert not is_valid
    assert "No cards configured" in error_msg


def test_parse_run_config(mock_systems_file):
    config = parse_run_config(read(mock_systems_file), "Bench")
    assert isinstance(config, RunConfig)
    assert config.system_name == "Bench"
    assert config.host == "10.0.0.5"
    assert config.settle_seconds == 2.5
    assert config.nsamps == 20
    assert config.reject_busy_cards is False

    (card,) = config.cards
    assert card.unit == UnitId(3, 200)
    assert card.name == "dsm3:/dev/ncar_a2d0"
    assert card.cal_file == "/cal/A2D/A2D03200.dat"
    assert [(c.channel, c.gain, c.bipolar, c.var_name) for c in card.channels] == [
        (0, 1, True, "VIN"),
        (1, 2, False, ""),
    ]
    values, temperature = card.sample_tags
    assert values.channels == (1, 0)
    assert values.rate == 10.0
    assert not values.is_temperature
    assert temperature.is_temperature
    assert card.temperature_sample_id == 2


def test_parse_invalid_raises(mock_systems_file):
    config = read(mock_systems_file)
    config["Bench"]["card.main.chan.0.gain"] = "8"
    with pytest.raises(ConfigError, match="invalid gain"):
        parse_run_config(config, "Bench")


def test_load_run_config(mock_systems_file, monkeypatch):
    """Test loading from the user file, case-insensitively."""
    monkeypatch.setattr(Path, "home", lambda: mock_systems_file.parent.parent)

    config = load_run_config("bench")
    assert config.system_name == "Bench"

    with pytest.raises(ConfigError, match="System 'NonExistent' not found in:"):
        load_run_config("NonExistent")


def test_load_explicit_path(mock_systems_file):
    config = load_run_config("Bench", path=mock_systems_file)
    assert config.nsamps == 20
    with pytest.raises(ConfigError):
        load_run_config("Mock", path=mock_systems_file)


def test_package_mock_system(temp_config_dir, monkeypatch):
    monkeypatch.setattr(Path, "home", lambda: temp_config_dir.parent)

    config = load_run_config("mock")
    assert config.system_name == "Mock"
    assert [card.unit for card in config.cards] == [UnitId(1, 200), UnitId(2, 200)]
    assert (package_systems_dir() / "mock.ini").exists()
    for card in config.cards:
        assert "/A2D/" in card.cal_file


def test_list_available_systems(mock_systems_file, monkeypatch):
    """Test listing available system configurations."""
    monkeypatch.setattr(Path, "home", lambda: mock_systems_file.parent.parent)

    systems = list_available_systems()
    assert systems["Mock"] == "package"
    assert systems["Bench"] == "user"
