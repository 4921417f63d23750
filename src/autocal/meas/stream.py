"""Sample streams: ZeroMQ subscriber and an in-memory simulation."""

from __future__ import annotations

import heapq
import time
from typing import Iterator, Optional

import numpy as np
import zmq
from loguru import logger

from autocal.device.mock import MockA2DCard
from autocal.types import CardSetup, Sample, SampleMessage, UnitId
from autocal.util import DEFAULT_HOST_ADDR, DEFAULT_STREAM_PORT, DEFAULT_TIMEOUT


class SimClock:
    """Shared simulated wall clock, seconds since the epoch."""

    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance_to(self, when: float):
        self.now = max(self.now, when)


class SimulatedSampleStream:
    """Synthesises samples that follow the voltage applied to each mock card.

    Every sample tag of every card emits at its own rate. A channel value is the
    card's applied voltage (0 when the reference is off) plus its entry in
    `offsets` plus gaussian noise of width `noise`. Temperature tags emit
    `temperature` plus noise.

    Parameters
    ----------
    setups : list[CardSetup]
        Cards to simulate; their sample tags define the emitted samples.
    cards : dict[UnitId, MockA2DCard]
        Live state of each simulated card, shared with its MockCardChannel.
    clock : SimClock
        Advanced to each sample's timestamp as it is emitted.
    max_samples : int, optional
        Stop after this many samples; endless if None.
    """

    def __init__(
        self,
        setups: list[CardSetup],
        cards: dict[UnitId, MockA2DCard],
        clock: SimClock,
        offsets: Optional[dict[tuple[UnitId, int], float]] = None,
        noise: float = 0.0,
        temperature: float = 25.0,
        max_samples: Optional[int] = None,
        seed: Optional[int] = None,
    ):
        self.setups = list(setups)
        self.cards = cards
        self.clock = clock
        self.offsets = offsets or {}
        self.noise = noise
        self.temperature = temperature
        self.max_samples = max_samples
        self._rng = np.random.default_rng(seed)
        self._closed = False

    def close(self):
        self._closed = True

    def _noise(self) -> float:
        if self.noise <= 0:
            return 0.0
        return float(self._rng.normal(0.0, self.noise))

    def _values(self, setup: CardSetup, tag) -> tuple[float, ...]:
        if tag.is_temperature:
            return (self.temperature + self._noise(),)
        card = self.cards[setup.unit]
        values = []
        for chn in tag.channels:
            applied = card.applied_voltage(chn)
            value = 0.0 if applied is None else float(applied)
            value += self.offsets.get((setup.unit, chn), 0.0)
            values.append(value + self._noise())
        return tuple(values)

    def __iter__(self) -> Iterator[Sample]:
        # (next emission time, tie-break order, card, tag)
        queue = []
        order = 0
        for setup in self.setups:
            for tag in setup.sample_tags:
                heapq.heappush(queue, (self.clock() + 1.0 / tag.rate, order, setup, tag))
                order += 1

        emitted = 0
        while queue and not self._closed:
            if self.max_samples is not None and emitted >= self.max_samples:
                break
            when, order, setup, tag = heapq.heappop(queue)
            # levels may have been applied since this entry was queued
            when = max(when, self.clock())
            self.clock.advance_to(when)
            yield Sample(
                unit=setup.unit,
                timestamp=when,
                values=self._values(setup, tag),
                sample_id=tag.sample_id,
            )
            emitted += 1
            heapq.heappush(queue, (when + 1.0 / tag.rate, order, setup, tag))


class ZmqSampleStream:
    """Subscriber to the processed-sample publisher of the data server.

    Iteration ends when no sample has arrived within `idle_timeout` seconds, or
    after `close()`.
    """

    def __init__(
        self,
        host: str = DEFAULT_HOST_ADDR,
        port: int = DEFAULT_STREAM_PORT,
        idle_timeout: float = 6 * DEFAULT_TIMEOUT,
        context: Optional[zmq.Context] = None,
    ):
        self.host = host
        self.port = port
        self.idle_timeout = idle_timeout
        self._context = context or zmq.Context.instance()
        self._socket: Optional[zmq.Socket] = None
        self._closed = False

    def _open(self):
        self._socket = self._context.socket(zmq.SUB)
        self._socket.setsockopt(zmq.SUBSCRIBE, b"")  # subscribe to all
        self._socket.connect(f"tcp://{self.host}:{self.port}")
        logger.info("Sample stream subscribed to {}:{}", self.host, self.port)

    def close(self):
        self._closed = True
        if self._socket is not None:
            self._socket.setsockopt(zmq.LINGER, 0)
            self._socket.close()
            self._socket = None

    def __iter__(self) -> Iterator[Sample]:
        if self._socket is None:
            self._open()
        last_rx = time.monotonic()
        while not self._closed:
            if not self._socket.poll(1000, zmq.POLLIN):
                if time.monotonic() - last_rx > self.idle_timeout:
                    logger.warning(
                        "No samples from {}:{} for {} s, ending stream",
                        self.host,
                        self.port,
                        self.idle_timeout,
                    )
                    return
                continue
            raw = self._socket.recv()
            last_rx = time.monotonic()
            try:
                msg = SampleMessage.from_msgpack(raw)
            except (ValueError, LookupError, TypeError):
                logger.exception("Undecodable sample message, dropped.")
                continue
            logger.trace("*SAMPLE* (<-): {}", msg)
            yield Sample(
                unit=UnitId(msg.dsm_id, msg.dev_id),
                timestamp=msg.timestamp,
                values=tuple(msg.values),
                sample_id=msg.sample_id,
            )
