"""Remote-control commands for A2D cards.

The controller turns the two card commands (query the live setup, apply a test
voltage) into `CardReply` values. Transport and card faults never escape as
exceptions: a reply with `ok=False` carries the classified `ErrorKind`, and the
caller decides whether to skip the card.
"""

from __future__ import annotations

from typing import Callable

import zmq
from loguru import logger

from autocal.types import (
    ACTION_GET_SETUP,
    ACTION_TEST_VOLTAGE,
    A2DSetup,
    A2DSetupReply,
    CardChannelProtocol,
    CardReply,
    CardSetup,
    ErrorKind,
    RemoteFault,
    SensorActionRequest,
    Unreachable,
)
from autocal.util import ALL_CHANNELS_MASK


def describe_mask(mask: int, width: int = 8) -> str:
    """Render a channel mask with channel (width-1) leftmost, e.g. '- - - - - - X X'."""
    return " ".join("X" if mask & (1 << i) else "-" for i in range(width - 1, -1, -1))


def channel_mask(channels) -> int:
    mask = 0
    for chn in channels:
        mask |= 1 << chn
    return mask


class CardController:
    """Issues remote-control commands to cards, one channel per acquisition unit.

    Parameters
    ----------
    connect : Callable[[str], CardChannelProtocol]
        Opens the remote-control channel for an acquisition unit, given its
        name. Channels are cached and re-used until `close()`.
    """

    def __init__(self, connect: Callable[[str], CardChannelProtocol]):
        self._connect = connect
        self._channels: dict[str, CardChannelProtocol] = {}

    def _channel(self, dsm_name: str) -> CardChannelProtocol:
        if dsm_name not in self._channels:
            self._channels[dsm_name] = self._connect(dsm_name)
        return self._channels[dsm_name]

    def close(self):
        for name, channel in self._channels.items():
            logger.trace("Closing remote-control channel to {}", name)
            channel.close()
        self._channels.clear()

    def _execute(self, card: CardSetup, request: SensorActionRequest):
        """Run one request; returns the reply, or a failed CardReply."""
        try:
            return self._channel(card.dsm_name).execute(request)
        except RemoteFault as e:
            logger.warning("{} fault on {}: {}", card.name, request.action, e)
            return CardReply(ok=False, error=ErrorKind.REMOTE_FAULT, message=str(e))
        except (Unreachable, zmq.ZMQError, OSError) as e:
            logger.warning("{} not responding to {}: {}", card.name, request.action, e)
            return CardReply(ok=False, error=ErrorKind.UNREACHABLE, message=str(e))

    def query_setup(self, card: CardSetup) -> CardReply:
        """Fetch the gain/polarity/cal-voltage setup the card is running with."""
        request = SensorActionRequest(device=card.dev_name, action=ACTION_GET_SETUP)
        reply = self._execute(card, request)
        if isinstance(reply, CardReply):
            return reply
        if not isinstance(reply, A2DSetupReply):
            return CardReply(
                ok=False,
                error=ErrorKind.REMOTE_FAULT,
                message=f"unexpected reply to {ACTION_GET_SETUP}: {reply}",
            )
        n = reply.n_channels
        short = [
            name
            for name, values in (
                ("gain", reply.gain),
                ("offset", reply.offset),
                ("calset", reply.calset),
            )
            if len(values) < n
        ]
        if short:
            logger.error("{}: short setup reply for {} channels: {}", card.name, n, short)
            return CardReply(
                ok=False,
                error=ErrorKind.REMOTE_FAULT,
                message=f"short setup reply: {', '.join(short)} shorter than {n} channels",
            )
        setup = A2DSetup(
            card=reply.card,
            n_channels=n,
            gain=tuple(reply.gain[:n]),
            polarity_flag=tuple(reply.offset[:n]),
            calset_active=tuple(reply.calset[:n]),
            current_cal_voltage=reply.vcal,
        )
        return CardReply(ok=True, setup=setup)

    def set_test_voltage(
        self, card: CardSetup, mask: int, level: int, enabled: bool = True
    ) -> CardReply:
        """Apply `level` volts to every channel in `mask` (or release them)."""
        logger.info(
            "{} testVoltage state={} voltage={} calset [{}]",
            card.name,
            int(enabled),
            level,
            describe_mask(mask),
        )
        request = SensorActionRequest(
            device=card.dev_name,
            action=ACTION_TEST_VOLTAGE,
            state=int(enabled),
            voltage=level,
            calset=mask,
        )
        reply = self._execute(card, request)
        if isinstance(reply, CardReply):
            return reply
        return CardReply(ok=True)

    def release(self, card: CardSetup) -> CardReply:
        """Leave cal voltages and channels in an open (operational) state."""
        return self.set_test_voltage(card, ALL_CHANNELS_MASK, 0, enabled=False)

    def test_voltage(self, card: CardSetup, channel: int, level: int) -> CardReply:
        """Manually apply one level to a single channel."""
        if not 0 <= channel < card.n_channels:
            raise IndexError(f"{card.name} has no channel {channel}")
        return self.set_test_voltage(card, 1 << channel, level, enabled=True)
