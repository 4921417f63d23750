"""Streaming consumer: routes samples into the calibration store."""

from __future__ import annotations

from typing import Callable, Optional

from loguru import logger

from autocal.meas.store import CalibrationStore
from autocal.types import GPDAQ, CardSetup, FillState, Sample, UnitId
from autocal.util import SETTLE_SECONDS

# gpDAQ reports raw 20 bit counts; full scale is 10 V at gain 1, 5 V at gain 2
GPDAQ_HALF_SCALE_COUNTS = 524288


def to_display_volts(card: CardSetup, chn: int, value: float) -> float:
    """Convert a raw reading into uncalibrated volts for live display."""
    if card.card_type != GPDAQ:
        return value
    chan = card.channel(chn)
    gain = chan.gain if chan is not None else 1
    if gain == 1:
        return -10.0 + 10.0 / GPDAQ_HALF_SCALE_COUNTS * value
    if gain == 2:
        return -5.0 + 5.0 / GPDAQ_HALF_SCALE_COUNTS * value
    return value


class SampleGatherer:
    """Routes each sample of the active level into its buffer.

    Parameters
    ----------
    store : CalibrationStore
        Destination of the samples; its active level and level time are set by
        the LevelStateMachine.
    settle_seconds : float
        Samples stamped earlier than `last_level_time + settle_seconds` are
        dropped.
    on_progress : Callable[[int], None], optional
        Called whenever the progress value grows.
    on_live_value : Callable[[UnitId, int, float], None], optional
        Called with every channel reading (in display volts).
    """

    def __init__(
        self,
        store: CalibrationStore,
        settle_seconds: float = SETTLE_SECONDS,
        on_progress: Optional[Callable[[int], None]] = None,
        on_live_value: Optional[Callable[[UnitId, int, float], None]] = None,
    ):
        self.store = store
        self.settle_seconds = settle_seconds
        self.on_progress = on_progress
        self.on_live_value = on_live_value
        # manual test mode: show live values, buffer nothing
        self.test_mode = False

    def on_sample(self, sample: Sample) -> bool:
        """Route one sample; True if it reached a channel being collected."""
        store = self.store
        if sample.timestamp < store.last_level_time + self.settle_seconds:
            return False

        tag = store.tag(sample.unit, sample.sample_id)
        if tag is None:
            logger.trace("Unknown sample {} from {}", sample.sample_id, sample.unit)
            return False

        if tag.is_temperature:
            if sample.values:
                store.append_temperature(sample.unit, float(sample.values[0]))
            return True

        level = store.active_level
        card = store.card(sample.unit)
        useful = False
        for chn, value in zip(tag.channels, sample.values):
            store.record_live(sample.unit, chn, value)
            if self.on_live_value is not None:
                self.on_live_value(sample.unit, chn, to_display_volts(card, chn, value))

            if level is None:
                continue
            if store.fill_state(level, sample.unit, chn) is not FillState.COLLECTING:
                continue
            useful = True
            if self.test_mode:
                continue

            size = store.append(sample.unit, chn, level, float(value), sample.timestamp)
            if size == store.nsamps:
                logger.debug("{} channel {} FULL at {} V", card.name, chn, level)
            # progress follows the slowest channel at this level
            if size and tag.rate <= store.slowest_rate(level):
                self._update_progress(store.level_index * store.nsamps + size)
        return useful

    def _update_progress(self, value: int):
        before = self.store.progress
        after = self.store.set_progress(value)
        if after > before and self.on_progress is not None:
            self.on_progress(after)

    def is_gathered(self) -> bool:
        """True once the active level has at least one FULL channel and none still collecting.

        SKIP and PENDING channels are ignored: a PENDING channel at the active
        level belongs to a card that refused the level and will never fill.
        """
        level = self.store.active_level
        if level is None:
            return False
        gathered = False
        for _unit, _chn, state in self.store.fill_items(level):
            if state is FillState.COLLECTING:
                return False
            if state is FillState.FULL:
                gathered = True
        return gathered
