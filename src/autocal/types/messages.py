"""Message types for the card remote-control channel and the sample stream."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from mashumaro.mixins.msgpack import DataClassMessagePackMixin
from mashumaro.types import Discriminator

from .calibration import ErrorKind, UnitId

ACTION_GET_SETUP = "getA2DSetup"
ACTION_TEST_VOLTAGE = "testVoltage"


@dataclass
class Message(DataClassMessagePackMixin):
    """Base class for all messages."""

    def __repr__(self):
        msg = self.__class__.__name__ + "("
        for i, (field, val) in enumerate(self.__dict__.items()):
            if i not in (0, len(self.__dict__)):
                msg += ", "
            msg += f"{field}={val}"
        return msg + ")"


@dataclass(repr=False)
class SensorActionRequest(Message):
    """A request to the remote-control service of one acquisition unit."""

    device: str
    action: str
    state: int = 0
    voltage: int = 0
    calset: int = 0


@dataclass(kw_only=True, repr=False)
class SensorActionReply(Message):
    type: str  # subclass to define

    class Config:
        discriminator = Discriminator(field="type", include_subtypes=True)


@dataclass(kw_only=True, repr=False)
class A2DSetupReply(SensorActionReply):
    type: str = "a2d_setup"
    card: str = ""
    n_channels: int = 0
    gain: list[int] = field(default_factory=list)
    offset: list[int] = field(default_factory=list)
    calset: list[int] = field(default_factory=list)
    vcal: int = -99


@dataclass(kw_only=True, repr=False)
class StatusReply(SensorActionReply):
    type: str = "status"
    value: str = ""


@dataclass(kw_only=True, repr=False)
class FaultReply(SensorActionReply):
    type: str = "fault"
    fault_string: str = ""


@dataclass(kw_only=True, repr=False)
class SampleMessage(Message):
    """One processed sample as published on the sample stream."""

    dsm_id: int
    dev_id: int
    sample_id: int
    timestamp: float
    values: list[float] = field(default_factory=list)


@dataclass(kw_only=True, repr=False)
class Diagnostic(Message):
    """A user-visible report of a recoverable (or run-ending) condition."""

    kind: ErrorKind
    message: str
    unit: Optional[UnitId] = None
    channel: Optional[int] = None
    level: Optional[int] = None
