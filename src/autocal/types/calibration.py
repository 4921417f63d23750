"""Core value types shared by the calibration pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import NamedTuple, Optional

# Coefficients are stored lowest order first: (offset, slope[, c2, c3])
CoefficientSet = tuple[float, ...]

GPDAQ = "gpDAQ"
DMMAT = "dmmat"


class UnitId(NamedTuple):
    """One physical A2D card: (acquisition unit id, card id)."""

    dsm_id: int
    dev_id: int

    def __str__(self):
        return f"{self.dsm_id}:{self.dev_id}"


class FillState(str, Enum):
    """Collection progress per (level, unit, channel)."""

    SKIP = "SKIP"
    PENDING = "PENDING"
    COLLECTING = "COLLECTING"
    FULL = "FULL"


class RunState(str, Enum):
    GATHERING = "GATHERING"
    DONE = "DONE"
    DEAD = "DEAD"


class ErrorKind(str, Enum):
    REMOTE_FAULT = "RemoteFault"
    UNREACHABLE = "Unreachable"
    MISCONFIGURED_CARD = "MisconfiguredCard"
    CARD_BUSY = "CardBusy"
    NO_CARDS_FOUND = "NoCardsFound"
    LEGACY_FILE_CORRUPT = "LegacyFileCorrupt"
    OUT_OF_RANGE_MEASUREMENT = "OutOfRangeMeasurement"
    NAN_MEASUREMENT = "NaNMeasurement"
    FIT_UNDERDETERMINED = "FitUnderdetermined"
    PERSISTENCE_PATH_REJECTED = "PersistencePathRejected"
    PERSISTENCE_FAILED = "PersistenceFailed"
    ALREADY_SAVED = "AlreadySaved"
    ALL_CARDS_DEAD = "AllCardsDead"


def range_code(gain: int, bipolar: bool) -> str:
    """Gain/polarity code used by the catalog and in messages, e.g. '1T', '2F'."""
    return f"{gain}{'T' if bipolar else 'F'}"


def neutral_coefficients(n_coeffs: int = 2) -> CoefficientSet:
    """Identity calibration: offset 0, slope 1, higher orders 0."""
    return (0.0, 1.0) + (0.0,) * (n_coeffs - 2)


@dataclass(frozen=True)
class ChannelSetup:
    channel: int
    gain: int = 1
    bipolar: bool = True
    var_name: str = ""

    @property
    def range_key(self) -> tuple[int, bool]:
        return self.gain, self.bipolar


@dataclass(frozen=True)
class SampleTag:
    """A sample stream id and the channels (in value order) it carries.

    A temperature tag carries the board temperature as its single value.
    """

    sample_id: int
    rate: float
    channels: tuple[int, ...] = ()
    is_temperature: bool = False


@dataclass(frozen=True)
class CardSetup:
    """Per-card attributes, fixed for the duration of a run."""

    unit: UnitId
    dsm_name: str
    dev_name: str
    card_type: str = ""
    n_channels: int = 8
    channels: tuple[ChannelSetup, ...] = ()
    sample_tags: tuple[SampleTag, ...] = ()
    cal_file: str = ""

    def channel(self, chn: int) -> Optional[ChannelSetup]:
        for chan in self.channels:
            if chan.channel == chn:
                return chan
        return None

    @property
    def temperature_sample_id(self) -> Optional[int]:
        for tag in self.sample_tags:
            if tag.is_temperature:
                return tag.sample_id
        return None

    @property
    def n_coefficients(self) -> int:
        # gpDAQ stores a 3rd order calibration
        return 4 if self.card_type == GPDAQ else 2

    @property
    def name(self) -> str:
        return f"{self.dsm_name}:{self.dev_name}"


@dataclass(frozen=True)
class A2DSetup:
    """Live configuration reported back by a card."""

    card: str
    n_channels: int
    gain: tuple[int, ...]
    polarity_flag: tuple[int, ...]  # 0 = bipolar, 1 = unipolar (offset)
    calset_active: tuple[int, ...]
    current_cal_voltage: int


@dataclass
class CardReply:
    """Outcome of one remote-control call."""

    ok: bool
    error: Optional[ErrorKind] = None
    message: str = ""
    setup: Optional[A2DSetup] = None


@dataclass(frozen=True)
class Sample:
    unit: UnitId
    timestamp: float  # seconds since the epoch
    values: tuple[float, ...] = field(default_factory=tuple)
    sample_id: int = 0
