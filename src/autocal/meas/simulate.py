"""A whole simulated fleet: mock cards, their channels, and a matching stream."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from autocal.device.controller import CardController
from autocal.device.mock import MockA2DCard, MockCardChannel
from autocal.meas.stream import SimClock, SimulatedSampleStream
from autocal.types import RunConfig, UnitId


@dataclass
class SimulatedFleet:
    clock: SimClock
    cards: dict[UnitId, MockA2DCard] = field(default_factory=dict)
    channels: dict[str, MockCardChannel] = field(default_factory=dict)

    def connect(self, dsm_name: str) -> MockCardChannel:
        return self.channels[dsm_name]

    def controller(self) -> CardController:
        return CardController(self.connect)

    @classmethod
    def from_config(cls, config: RunConfig, start: float = 1.7e9) -> SimulatedFleet:
        """Cards running exactly the configured setup, one channel per unit name."""
        fleet = cls(clock=SimClock(start))
        for setup in config.cards:
            card = MockA2DCard.from_setup(setup)
            fleet.cards[setup.unit] = card
            channel = fleet.channels.get(setup.dsm_name)
            if channel is None:
                channel = MockCardChannel(setup.dsm_name)
                channel.open()
                fleet.channels[setup.dsm_name] = channel
            channel.cards[setup.dev_name] = card
        return fleet

    def stream(
        self,
        config: RunConfig,
        offsets: Optional[dict[tuple[UnitId, int], float]] = None,
        noise: float = 0.0,
        max_samples: Optional[int] = None,
        seed: Optional[int] = None,
    ) -> SimulatedSampleStream:
        return SimulatedSampleStream(
            config.cards,
            self.cards,
            self.clock,
            offsets=offsets,
            noise=noise,
            max_samples=max_samples,
            seed=seed,
        )
