"""ZeroMQ request/reply channel to the remote-control service of one unit."""

from __future__ import annotations

from typing import Optional

import zmq
from loguru import logger

from autocal.device.device import Device
from autocal.types import (
    FaultReply,
    RemoteFault,
    SensorActionReply,
    SensorActionRequest,
    Unreachable,
)
from autocal.util import DEFAULT_RPC_PORT, DEFAULT_TIMEOUT


class ZmqCardChannel(Device):
    """REQ socket to one acquisition unit.

    Each `execute` is a single attempt bounded by `timeout`; a lost reply leaves
    a REQ socket unusable, so the socket is rebuilt before raising Unreachable.
    """

    required_config = {"host": str, "port": int}

    def __init__(
        self,
        host: str,
        port: int = DEFAULT_RPC_PORT,
        timeout: float = DEFAULT_TIMEOUT,
        context: Optional[zmq.Context] = None,
    ):
        super().__init__(host=host, port=port)
        self.timeout = timeout
        self._context = context or zmq.Context.instance()
        self._socket: Optional[zmq.Socket] = None

    @property
    def address(self) -> str:
        return f"tcp://{self.host}:{self.port}"

    def open(self) -> tuple[bool, str]:
        try:
            self._socket = self._context.socket(zmq.REQ)
            self._socket.connect(self.address)
        except zmq.ZMQError as e:
            logger.exception("Error connecting to {}.", self.address)
            self._socket = None
            return False, f"Error connecting to {self.address}: {e}"
        logger.debug("Remote-control channel open on {}", self.address)
        return True, f"Connected to {self.address}"

    def close(self):
        if self._socket is not None:
            self._socket.setsockopt(zmq.LINGER, 0)
            self._socket.close()
            self._socket = None

    def is_connected(self) -> bool:
        return self._socket is not None

    def execute(self, request: SensorActionRequest) -> SensorActionReply:
        if not self.is_connected():
            ok, msg = self.open()
            if not ok:
                raise Unreachable(msg)

        logger.debug("*REQUEST* ({}->): {}", self.host, request)
        try:
            self._socket.send(request.to_msgpack())
            if not self._socket.poll(int(1000 * self.timeout), zmq.POLLIN):
                raise Unreachable(f"{self.host} not responding")
            raw = self._socket.recv()
        except zmq.ZMQError as e:
            self.close()
            raise Unreachable(f"{self.host}: {e}") from e
        except Unreachable:
            # socket is confused. Close and remove it.
            self.close()
            raise

        try:
            reply = SensorActionReply.from_msgpack(raw)
        except (ValueError, LookupError, TypeError) as e:
            raise Unreachable(f"{self.host}: undecodable reply ({e})") from e
        logger.debug("*REPLY* ({}<-): {}", self.host, reply)

        if isinstance(reply, FaultReply):
            raise RemoteFault(reply.fault_string)
        return reply
