"""Device base class for remote-control endpoints.

A Device here is one end of a remote-control connection to an acquisition unit:
the ZeroMQ channel talking to a real unit, or the in-memory simulated unit.
It provides:
1. Configuration validation
2. Connection handling
3. Attribute access for metadata
"""

from __future__ import annotations

from typing import Type

from loguru import logger


class Device:
    """Base class for remote-control endpoints.

    Required Methods
    --------------
    All device implementations must override these methods:

    - open(): Connect to the unit
    - close(): Disconnect from the unit
    - is_connected(): Check connection status

    Attributes
    ----------
    required_config : dict[str, Type]
        Required configuration parameters and their types

    Examples
    --------
    ```python
    class MyChannel(Device):
        required_config = {"host": str, "port": int}

        def open(self) -> tuple[bool, str]:
            self._connected = True
            return True, "Connected"
    ```
    """

    required_config: dict[str, Type] = {}  # Required configuration keys

    def __init__(self, **config_kwargs):
        for key, value in config_kwargs.items():
            setattr(self, key, value)
        for key, value in self.required_config.items():
            if not hasattr(self, key):
                logger.error(
                    f"Device {self.__class__.__name__} missing required config key: "
                    + f"{key}"
                )
                raise ValueError(
                    f"Device {self.__class__.__name__} missing required config "
                    + f"key: {key}"
                )
            if not isinstance(getattr(self, key), value):
                logger.error(
                    f"Device {self.__class__.__name__} config key {key} "
                    + f"has wrong type: {type(getattr(self, key))} (expected {value})"
                )
                raise ValueError(
                    f"Device {self.__class__.__name__} config key {key} has "
                    + f"wrong type: {type(getattr(self, key))} (expected {value})"
                )

    def open(self) -> tuple[bool, str]:
        raise NotImplementedError()

    def close(self):
        raise NotImplementedError()

    def is_connected(self) -> bool:
        raise NotImplementedError()
