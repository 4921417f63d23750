"""Run configuration handling through INI files.

Each section describes one fleet of acquisition units. Run parameters sit at the
top of the section; every card is described by `card.<name>.*` keys:

[Mock]
host = 127.0.0.1
settle_seconds = 10
nsamps = 100
reject_busy_cards = true

card.a.dsm_id = 1
card.a.dsm_name = dsm1
card.a.dev_id = 200
card.a.dev_name = /dev/ncar_a2d0
card.a.type = ncar_a2d
card.a.cal_file = ~/.autocal/cal_files/A2D/A2D_mock_a.dat

# sample id 1 carries channels 0 and 1 (in that order) at 10 Hz
card.a.sample.1.rate = 10
card.a.sample.1.channels = 0, 1
# sample id 2 carries the board temperature
card.a.sample.2.rate = 1
card.a.sample.2.temperature = true

card.a.chan.0.gain = 1
card.a.chan.0.bipolar = true
card.a.chan.0.var = VIN0

Search order: ~/.autocal/systems.ini, then the package defaults in
autocal/system/systems/<system_name>.ini.
"""

from __future__ import annotations

import os
from configparser import ConfigParser, SectionProxy
from pathlib import Path
from typing import Optional

from loguru import logger

from autocal.types import CardSetup, ChannelSetup, ConfigError, RunConfig, SampleTag, UnitId
from autocal.util.defaults import (
    DEFAULT_HOST_ADDR,
    DEFAULT_RPC_PORT,
    DEFAULT_STREAM_PORT,
    NSAMPS,
    SETTLE_SECONDS,
)

CARD_KEYS = {"dsm_id", "dsm_name", "dev_id", "dev_name", "type", "n_channels", "cal_file"}
REQUIRED_CARD_KEYS = {"dsm_id", "dsm_name", "dev_id", "dev_name"}
VALID_GAINS = {1, 2, 4}


def user_systems_file() -> Path:
    return Path.home() / ".autocal" / "systems.ini"


def package_systems_dir() -> Path:
    return Path(__file__).parent / "systems"


def _card_keys(section: SectionProxy) -> dict[str, dict[str, str]]:
    """Group `card.<name>.<rest>` keys by card name."""
    cards: dict[str, dict[str, str]] = {}
    for key, value in section.items():
        if not key.startswith("card."):
            continue
        parts = key.split(".", 2)
        if len(parts) < 3:
            continue
        cards.setdefault(parts[1], {})[parts[2]] = value
    return cards


def validate_run_config(config: ConfigParser, section: str) -> tuple[bool, str]:
    """Validate a fleet section.

    Returns
    -------
    tuple[bool, str]
        (is_valid, error_message)
    """
    if section not in config:
        return False, f"No section [{section}]"
    sect = config[section]

    for key, conv in (
        ("settle_seconds", float),
        ("nsamps", int),
        ("rpc_port", int),
        ("stream_port", int),
    ):
        if key in sect:
            try:
                value = conv(sect[key])
            except ValueError:
                return False, f"Invalid {key}: {sect[key]}"
            if value < 0 or (key == "nsamps" and value == 0):
                return False, f"Invalid {key}: {sect[key]}"
    if "reject_busy_cards" in sect:
        try:
            sect.getboolean("reject_busy_cards")
        except ValueError:
            return False, f"Invalid reject_busy_cards: {sect['reject_busy_cards']}"

    cards = _card_keys(sect)
    if not cards:
        return False, "No cards configured (card.<name>.* keys)"

    for name, keys in cards.items():
        missing = REQUIRED_CARD_KEYS - set(keys)
        if missing:
            return False, f"Card {name} missing required fields: {', '.join(sorted(missing))}"
        for key in ("dsm_id", "dev_id", "n_channels"):
            if key in keys and not keys[key].strip().isdigit():
                return False, f"Card {name}: invalid {key}: {keys[key]}"
        n_channels = int(keys.get("n_channels", "8"))

        chans = {k for k in keys if k.startswith("chan.")}
        if not chans:
            return False, f"Card {name} has no channels (card.{name}.chan.<n>.gain)"
        for key in chans:
            parts = key.split(".")
            if len(parts) != 3 or not parts[1].isdigit():
                return False, f"Card {name}: invalid channel key {key}"
            if int(parts[1]) >= n_channels:
                return False, f"Card {name}: channel {parts[1]} beyond n_channels {n_channels}"
            if parts[2] == "gain":
                if not keys[key].strip().isdigit() or int(keys[key]) not in VALID_GAINS:
                    return False, f"Card {name}: invalid gain {keys[key]}"
            elif parts[2] == "bipolar":
                if keys[key].strip().lower() not in ConfigParser.BOOLEAN_STATES:
                    return False, f"Card {name}: invalid bipolar {keys[key]}"
            elif parts[2] != "var":
                return False, f"Card {name}: unknown channel field {parts[2]}"

        samples = {k for k in keys if k.startswith("sample.")}
        if not samples:
            return False, f"Card {name} has no sample tags (card.{name}.sample.<id>.rate)"
        for key in samples:
            parts = key.split(".")
            if len(parts) != 3 or not parts[1].isdigit():
                return False, f"Card {name}: invalid sample key {key}"
            if parts[2] == "rate":
                try:
                    if float(keys[key]) <= 0:
                        raise ValueError
                except ValueError:
                    return False, f"Card {name}: invalid rate {keys[key]}"
            elif parts[2] == "channels":
                try:
                    [int(c) for c in keys[key].split(",") if c.strip()]
                except ValueError:
                    return False, f"Card {name}: invalid channel list {keys[key]}"
            elif parts[2] != "temperature":
                return False, f"Card {name}: unknown sample field {parts[2]}"
        unknown = {k for k in keys if "." not in k} - CARD_KEYS
        if unknown:
            return False, f"Card {name}: unknown fields {', '.join(sorted(unknown))}"

    return True, ""


def _parse_card(name: str, keys: dict[str, str]) -> CardSetup:
    n_channels = int(keys.get("n_channels", "8"))

    channels = {}
    for key, value in keys.items():
        if not key.startswith("chan."):
            continue
        _, chn, field = key.split(".")
        entry = channels.setdefault(int(chn), {})
        entry[field] = value
    chan_setups = tuple(
        ChannelSetup(
            channel=chn,
            gain=int(entry.get("gain", "1")),
            bipolar=ConfigParser.BOOLEAN_STATES[entry.get("bipolar", "true").strip().lower()],
            var_name=entry.get("var", ""),
        )
        for chn, entry in sorted(channels.items())
    )

    samples = {}
    for key, value in keys.items():
        if not key.startswith("sample."):
            continue
        _, sid, field = key.split(".")
        samples.setdefault(int(sid), {})[field] = value
    tags = tuple(
        SampleTag(
            sample_id=sid,
            rate=float(entry.get("rate", "1")),
            channels=tuple(int(c) for c in entry.get("channels", "").split(",") if c.strip()),
            is_temperature=ConfigParser.BOOLEAN_STATES.get(
                entry.get("temperature", "false").strip().lower(), False
            ),
        )
        for sid, entry in sorted(samples.items())
    )

    return CardSetup(
        unit=UnitId(int(keys["dsm_id"]), int(keys["dev_id"])),
        dsm_name=keys["dsm_name"],
        dev_name=keys["dev_name"],
        card_type=keys.get("type", ""),
        n_channels=n_channels,
        channels=chan_setups,
        sample_tags=tags,
        cal_file=os.path.expanduser(keys.get("cal_file", "")),
    )


def parse_run_config(config: ConfigParser, section: str) -> RunConfig:
    """Build a RunConfig from a section; raises ConfigError if it is invalid."""
    is_valid, msg = validate_run_config(config, section)
    if not is_valid:
        raise ConfigError(f"Invalid configuration [{section}]: {msg}")
    sect = config[section]
    cards = [_parse_card(name, keys) for name, keys in sorted(_card_keys(sect).items())]
    return RunConfig(
        system_name=section,
        host=sect.get("host", DEFAULT_HOST_ADDR),
        rpc_port=sect.getint("rpc_port", DEFAULT_RPC_PORT),
        stream_port=sect.getint("stream_port", DEFAULT_STREAM_PORT),
        settle_seconds=sect.getfloat("settle_seconds", SETTLE_SECONDS),
        nsamps=sect.getint("nsamps", NSAMPS),
        reject_busy_cards=sect.getboolean("reject_busy_cards", True),
        cards=cards,
    )


def _find_section(config: ConfigParser, system_name: str) -> Optional[str]:
    # Case-insensitive section lookup
    for section in config.sections():
        if section.lower() == system_name.lower():
            return section
    return None


def load_run_config(system_name: str, path: Optional[Path] = None) -> RunConfig:
    """Load a fleet configuration.

    Parameters
    ----------
    system_name : str
        Section name (case-insensitive).
    path : Path, optional
        Read only this INI file instead of the usual search order.

    Raises
    ------
    ConfigError
        If the section is missing or invalid.
    """
    if path is not None:
        candidates = [Path(path)]
    else:
        candidates = [
            user_systems_file(),
            package_systems_dir() / f"{system_name.lower()}.ini",
        ]

    for candidate in candidates:
        if not candidate.exists():
            continue
        config = ConfigParser()
        config.read(candidate)
        section = _find_section(config, system_name)
        if section is not None:
            logger.debug("Loading system {} from {}", section, candidate)
            return parse_run_config(config, section)

    raise ConfigError(
        f"System '{system_name}' not found in: "
        + ", ".join(str(c) for c in candidates)
    )


def list_available_systems() -> dict[str, str]:
    """Map each known system name to its source ('user' or 'package').

    User configurations take precedence over package defaults.
    """
    systems = {}
    if package_systems_dir().exists():
        for file in sorted(package_systems_dir().glob("*.ini")):
            config = ConfigParser()
            config.read(file)
            for section in config.sections():
                systems[section] = "package"

    if user_systems_file().exists():
        config = ConfigParser()
        config.read(user_systems_file())
        for section in config.sections():
            systems[section] = "user"
    return systems
