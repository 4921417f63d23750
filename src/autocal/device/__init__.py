# -*- coding: utf-8 -*-
"""
Remote-control access to A2D cards.

- Device: base class for remote-control endpoints
- ZmqCardChannel: request/reply channel to a real acquisition unit
- CardController: the card commands (query setup, apply test voltage)
- MockA2DCard, MockCardChannel: simulated units for tests and dry runs

Examples
--------
```python
from autocal.device import CardController, ZmqCardChannel
controller = CardController(lambda dsm: ZmqCardChannel(host=dsm))
reply = controller.query_setup(card)
```

See Also
--------
autocal.meas : Level sequencing and sample gathering
"""

from .channel import ZmqCardChannel
from .controller import CardController, channel_mask, describe_mask
from .device import Device
from .mock import MockA2DCard, MockCardChannel

__all__ = [
    "CardController",
    "Device",
    "MockA2DCard",
    "MockCardChannel",
    "ZmqCardChannel",
    "channel_mask",
    "describe_mask",
]
