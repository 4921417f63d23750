from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from autocal.device.device import Device
from autocal.types import (
    ACTION_GET_SETUP,
    ACTION_TEST_VOLTAGE,
    A2DSetupReply,
    CardSetup,
    RemoteFault,
    SensorActionReply,
    SensorActionRequest,
    StatusReply,
    Unreachable,
)
from autocal.util import NO_CAL_VOLTAGE


@dataclass
class MockA2DCard:
    """In-memory state of one simulated A2D card."""

    card: str = ""
    n_channels: int = 8
    gain: list[int] = field(default_factory=lambda: [1] * 8)
    offset: list[int] = field(default_factory=lambda: [0] * 8)  # 0 = bipolar
    calset: list[int] = field(default_factory=lambda: [0] * 8)
    vcal: int = NO_CAL_VOLTAGE
    fault: str = ""  # non-empty -> every request faults with this text

    @classmethod
    def from_setup(cls, setup: CardSetup) -> MockA2DCard:
        """A card running exactly the configuration `setup` expects."""
        n = setup.n_channels
        gain = [1] * n
        offset = [0] * n
        for chan in setup.channels:
            gain[chan.channel] = chan.gain
            offset[chan.channel] = 0 if chan.bipolar else 1
        return cls(
            card=setup.card_type,
            n_channels=n,
            gain=gain,
            offset=offset,
            calset=[0] * n,
        )

    def applied_voltage(self, chn: int) -> Optional[int]:
        """Reference voltage currently routed to `chn`, None if disconnected."""
        if self.vcal == NO_CAL_VOLTAGE or not self.calset[chn]:
            return None
        return self.vcal


class MockCardChannel(Device):  # Protocol compliance checked at use
    """Simulated remote-control service of one acquisition unit."""

    required_config = {"dsm_name": str}

    def __init__(self, dsm_name: str, cards: Optional[dict[str, MockA2DCard]] = None):
        super().__init__(dsm_name=dsm_name)
        self.cards: dict[str, MockA2DCard] = cards if cards is not None else {}
        self.dark = False  # True -> behave as an unreachable unit
        self.requests: list[SensorActionRequest] = []
        self._connected = False

    def open(self):
        self._connected = True
        return True, "MockCardChannel opened"

    def close(self):
        self._connected = False

    def is_connected(self) -> bool:
        return self._connected

    def execute(self, request: SensorActionRequest) -> SensorActionReply:
        self.requests.append(request)
        if self.dark:
            raise Unreachable(f"{self.dsm_name} not responding")
        card = self.cards.get(request.device)
        if card is None:
            raise RemoteFault(f"{self.dsm_name}: no such device {request.device}")
        if card.fault:
            raise RemoteFault(card.fault)

        match request.action:
            case "getA2DSetup":
                return A2DSetupReply(
                    card=card.card,
                    n_channels=card.n_channels,
                    gain=list(card.gain),
                    offset=list(card.offset),
                    calset=list(card.calset),
                    vcal=card.vcal,
                )
            case "testVoltage":
                if request.state:
                    card.vcal = request.voltage
                    card.calset = [
                        1 if request.calset & (1 << i) else 0
                        for i in range(card.n_channels)
                    ]
                else:
                    card.vcal = NO_CAL_VOLTAGE
                    card.calset = [0] * card.n_channels
                return StatusReply(value="ok")
            case _:
                raise RemoteFault(
                    f"unknown action {request.action}, expected "
                    + f"{ACTION_GET_SETUP} or {ACTION_TEST_VOLTAGE}"
                )
