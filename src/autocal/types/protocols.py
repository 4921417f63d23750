"""Protocols for the two external collaborators of a calibration run.

The remote-control channel and the sample stream are supplied from outside the
core. Anything implementing these methods can be plugged in: the ZeroMQ
transports in `autocal.device.channel` and `autocal.meas.stream`, the simulated
card in `autocal.device.mock`, or a test double.
"""

from __future__ import annotations

from typing import Callable, Iterator, Protocol, runtime_checkable

from .calibration import Sample
from .messages import SensorActionReply, SensorActionRequest


@runtime_checkable
class CardChannelProtocol(Protocol):
    """Request/reply access to the remote-control service of one unit."""

    execute: Callable[[SensorActionRequest], SensorActionReply]
    """Send a request and wait for the reply.

    Raises:
    - RemoteFault: the service answered with a fault
    - Unreachable: no (decodable) answer within the transport timeout
    """

    close: Callable[[], None]
    """Release the transport."""


@runtime_checkable
class SampleStreamProtocol(Protocol):
    """Ordered delivery of processed samples."""

    __iter__: Callable[[], Iterator[Sample]]
    """Yield samples in arrival order; stop when the stream ends."""

    close: Callable[[], None]
    """Stop delivery and release the transport."""
