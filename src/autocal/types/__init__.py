"""
Value types, wire messages, protocols and exceptions for autocal.

1. Calibration model (calibration.py)
    - Unit/channel identity, fill and run states, card setup, samples.

2. Remote-control and stream messages (messages.py)
    - MessagePack-serialisable request/reply dataclasses.
    - Diagnostics surfaced to the operator.

3. Configuration (config.py)
    - RunConfig: what a run needs from the fleet configuration.

4. Protocols (protocols.py)
    - The remote-control channel and sample stream a run consumes.

Examples
--------
Handling a card reply:
```python
from autocal.types import ErrorKind
reply = controller.query_setup(card)
if not reply.ok and reply.error is ErrorKind.UNREACHABLE:
    print(f"{card.name} is not answering: {reply.message}")
```
"""

from __future__ import annotations

from .calibration import (
    DMMAT,
    GPDAQ,
    A2DSetup,
    CardReply,
    CardSetup,
    ChannelSetup,
    CoefficientSet,
    ErrorKind,
    FillState,
    RunState,
    Sample,
    SampleTag,
    UnitId,
    neutral_coefficients,
    range_code,
)
from .config import RunConfig
from .messages import (
    ACTION_GET_SETUP,
    ACTION_TEST_VOLTAGE,
    A2DSetupReply,
    Diagnostic,
    FaultReply,
    Message,
    SampleMessage,
    SensorActionReply,
    SensorActionRequest,
    StatusReply,
)
from .protocols import CardChannelProtocol, SampleStreamProtocol


# Exceptions
class AutocalError(Exception):
    """Base exception for autocal."""

    pass


class CardCommsError(AutocalError):
    """Base exception for remote-control failures."""

    pass


class RemoteFault(CardCommsError):
    """The card answered but reported an error."""

    pass


class Unreachable(CardCommsError):
    """The card (or its acquisition unit) did not answer."""

    pass


class LegacyFileCorrupt(AutocalError):
    """A prior calibration file could not be parsed."""

    pass


class NoCardsFound(AutocalError):
    """No eligible card was discovered across the whole fleet."""

    pass


class ConfigError(AutocalError):
    """The run configuration is missing or invalid."""

    pass


__all__ = [
    "DMMAT",
    "GPDAQ",
    "A2DSetup",
    "CardReply",
    "CardSetup",
    "ChannelSetup",
    "CoefficientSet",
    "ErrorKind",
    "FillState",
    "RunState",
    "Sample",
    "SampleTag",
    "UnitId",
    "neutral_coefficients",
    "range_code",
    "RunConfig",
    "ACTION_GET_SETUP",
    "ACTION_TEST_VOLTAGE",
    "A2DSetupReply",
    "Diagnostic",
    "FaultReply",
    "Message",
    "SampleMessage",
    "SensorActionReply",
    "SensorActionRequest",
    "StatusReply",
    "CardChannelProtocol",
    "SampleStreamProtocol",
    "AutocalError",
    "CardCommsError",
    "RemoteFault",
    "Unreachable",
    "LegacyFileCorrupt",
    "NoCardsFound",
    "ConfigError",
]
