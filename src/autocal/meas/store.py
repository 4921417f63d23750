"""Per-run calibration data: fill states, sample buffers, coefficients.

All keys are flat tuples:

- fill state:   (level, unit, channel)
- buffers:      (unit, channel, level)
- coefficients: (unit, channel, gain, bipolar)

The worker loop is the only writer. Accessors used from other threads return
copies (sizes, tuples, scalars), never the live lists.
"""

from __future__ import annotations

import math
import threading
from datetime import datetime
from typing import Iterator, Optional

from loguru import logger

from autocal.meas.catalog import VoltageCatalog
from autocal.types import (
    CardSetup,
    CoefficientSet,
    FillState,
    SampleTag,
    UnitId,
    neutral_coefficients,
)
from autocal.util import NSAMPS

CoefKey = tuple[UnitId, int, int, bool]


class CalibrationStore:
    def __init__(self, nsamps: int = NSAMPS):
        if nsamps < 1:
            raise ValueError(f"nsamps must be positive, got {nsamps}")
        self.nsamps = nsamps
        self._lock = threading.RLock()

        self._cards: dict[UnitId, CardSetup] = {}
        self._tags: dict[tuple[UnitId, int], SampleTag] = {}
        self._fill: dict[tuple[int, UnitId, int], FillState] = {}
        self._buffers: dict[tuple[UnitId, int, int], list[float]] = {}
        self._slowest_rate: dict[int, float] = {}
        self._first_time: dict[tuple[UnitId, int], float] = {}
        self._live: dict[tuple[UnitId, int], float] = {}
        self._temperature: dict[UnitId, list[float]] = {}

        self.legacy_cals: dict[CoefKey, CoefficientSet] = {}
        self.legacy_times: dict[tuple[UnitId, int, bool], datetime] = {}
        self.result_cals: dict[CoefKey, CoefficientSet] = {}
        self.temperature_means: dict[UnitId, float] = {}
        self.records: dict[UnitId, str] = {}

        self.active_level: Optional[int] = None
        self.last_level_time: float = 0.0
        self.level_index: int = 0
        self.progress: int = 0

    # ------------------------------------------------------------------
    # setup
    # ------------------------------------------------------------------

    def register_card(self, card: CardSetup, catalog: VoltageCatalog):
        """Mark every (level, channel) the catalog asks for as PENDING."""
        with self._lock:
            self._cards[card.unit] = card
            for tag in card.sample_tags:
                self._tags[(card.unit, tag.sample_id)] = tag
            if card.temperature_sample_id is not None:
                self._temperature.setdefault(card.unit, [])

            for chan in card.channels:
                levels = catalog.levels_for_channel(card, chan)
                if not levels:
                    logger.warning(
                        "{} channel {} ({}): no voltage levels for this range, skipping",
                        card.name,
                        chan.channel,
                        chan.var_name,
                    )
                rate = min(
                    (
                        tag.rate
                        for tag in card.sample_tags
                        if chan.channel in tag.channels and not tag.is_temperature
                    ),
                    default=math.inf,
                )
                for level in levels:
                    self._fill[(level, card.unit, chan.channel)] = FillState.PENDING
                    self._slowest_rate[level] = min(
                        self._slowest_rate.get(level, math.inf), rate
                    )

    def set_legacy(
        self,
        unit: UnitId,
        cals: dict[tuple[int, int, bool], CoefficientSet],
        times: dict[tuple[int, bool], datetime],
    ):
        with self._lock:
            for (chn, gain, bipolar), coefs in cals.items():
                self.legacy_cals[(unit, chn, gain, bipolar)] = coefs
            for (gain, bipolar), when in times.items():
                self.legacy_times[(unit, gain, bipolar)] = when

    # ------------------------------------------------------------------
    # structure
    # ------------------------------------------------------------------

    @property
    def cards(self) -> dict[UnitId, CardSetup]:
        return dict(sorted(self._cards.items()))

    def card(self, unit: UnitId) -> CardSetup:
        return self._cards[unit]

    def units(self) -> list[UnitId]:
        return sorted(self._cards)

    @property
    def levels(self) -> tuple[int, ...]:
        with self._lock:
            return tuple(sorted({level for level, _, _ in self._fill}))

    @property
    def n_levels(self) -> int:
        return len(self.levels)

    @property
    def max_progress(self) -> int:
        return self.n_levels * self.nsamps

    def units_at(self, level: int) -> list[UnitId]:
        with self._lock:
            return sorted({unit for lvl, unit, _ in self._fill if lvl == level})

    def channels_at(self, level: int, unit: UnitId) -> list[int]:
        """Channels of `unit` that take part in `level`."""
        with self._lock:
            return sorted(
                chn
                for (lvl, u, chn), state in self._fill.items()
                if lvl == level and u == unit and state is not FillState.SKIP
            )

    def fill_items(self, level: int) -> Iterator[tuple[UnitId, int, FillState]]:
        with self._lock:
            items = [
                (unit, chn, state)
                for (lvl, unit, chn), state in sorted(self._fill.items())
                if lvl == level
            ]
        yield from items

    def tag(self, unit: UnitId, sample_id: int) -> Optional[SampleTag]:
        return self._tags.get((unit, sample_id))

    def slowest_rate(self, level: int) -> float:
        return self._slowest_rate.get(level, math.inf)

    # ------------------------------------------------------------------
    # mutation (worker only)
    # ------------------------------------------------------------------

    def set_active_level(self, level: int, when: float, level_index: int):
        with self._lock:
            self.active_level = level
            self.last_level_time = when
            self.level_index = level_index

    def activate(self, level: int, unit: UnitId, channels) -> list[int]:
        """PENDING -> COLLECTING for `channels`; returns the ones that moved."""
        moved = []
        with self._lock:
            for chn in channels:
                key = (level, unit, chn)
                if self._fill.get(key, FillState.SKIP) is FillState.PENDING:
                    self._fill[key] = FillState.COLLECTING
                    self._buffers.setdefault((unit, chn, level), [])
                    moved.append(chn)
        return moved

    def append(self, unit: UnitId, chn: int, level: int, value: float, when: float) -> int:
        """Append to a COLLECTING buffer, returning its size afterwards.

        Values offered past NSAMPS are discarded.
        """
        with self._lock:
            key = (level, unit, chn)
            buf = self._buffers.setdefault((unit, chn, level), [])
            if self._fill.get(key) is not FillState.COLLECTING:
                return len(buf)
            self._first_time.setdefault((unit, chn), when)
            buf.append(value)
            if len(buf) >= self.nsamps:
                self._fill[key] = FillState.FULL
            return len(buf)

    def append_temperature(self, unit: UnitId, value: float) -> int:
        with self._lock:
            buf = self._temperature.setdefault(unit, [])
            if len(buf) < self.nsamps:
                buf.append(value)
            return len(buf)

    def record_live(self, unit: UnitId, chn: int, value: float):
        with self._lock:
            self._live[(unit, chn)] = value

    def set_progress(self, progress: int) -> int:
        """Raise progress to `progress` (never lowers it); returns the new value."""
        with self._lock:
            self.progress = min(max(self.progress, progress), self.max_progress)
            return self.progress

    def set_result(self, unit: UnitId, chn: int, gain: int, bipolar: bool, coefs):
        with self._lock:
            self.result_cals[(unit, chn, gain, bipolar)] = tuple(float(c) for c in coefs)

    def set_temperature_mean(self, unit: UnitId, mean: float):
        with self._lock:
            self.temperature_means[unit] = mean

    def set_record(self, unit: UnitId, record: str):
        with self._lock:
            self.records[unit] = record

    # ------------------------------------------------------------------
    # snapshot accessors
    # ------------------------------------------------------------------

    def fill_state(self, level: int, unit: UnitId, chn: int) -> FillState:
        return self._fill.get((level, unit, chn), FillState.SKIP)

    def buffer(self, unit: UnitId, chn: int, level: int) -> tuple[float, ...]:
        with self._lock:
            return tuple(self._buffers.get((unit, chn, level), ()))

    def buffer_size(self, unit: UnitId, chn: int, level: int) -> int:
        with self._lock:
            return len(self._buffers.get((unit, chn, level), ()))

    def buffers_for(self, unit: UnitId, chn: int) -> dict[int, tuple[float, ...]]:
        """Non-empty buffers of one channel, by ascending level."""
        with self._lock:
            return {
                level: tuple(buf)
                for (u, c, level), buf in sorted(
                    self._buffers.items(), key=lambda item: item[0][2]
                )
                if u == unit and c == chn and buf
            }

    def buffered_channels(self, unit: UnitId) -> list[int]:
        with self._lock:
            return sorted({c for (u, c, _), buf in self._buffers.items() if u == unit and buf})

    def units_with_data(self) -> list[UnitId]:
        with self._lock:
            return sorted({u for (u, _, _), buf in self._buffers.items() if buf})

    def temperature(self, unit: UnitId) -> tuple[float, ...]:
        with self._lock:
            return tuple(self._temperature.get(unit, ()))

    def live_value(self, unit: UnitId, chn: int) -> Optional[float]:
        with self._lock:
            return self._live.get((unit, chn))

    def first_sample_time(self, unit: UnitId, chn: int) -> Optional[float]:
        with self._lock:
            return self._first_time.get((unit, chn))

    def snapshot_result_cals(self) -> dict[CoefKey, CoefficientSet]:
        with self._lock:
            return dict(self.result_cals)

    def snapshot_legacy_cals(self) -> dict[CoefKey, CoefficientSet]:
        with self._lock:
            return dict(self.legacy_cals)

    def coefficients(
        self, unit: UnitId, chn: int, gain: int, bipolar: bool
    ) -> Optional[CoefficientSet]:
        with self._lock:
            return self.result_cals.get((unit, chn, gain, bipolar))

    def temperature_mean(self, unit: UnitId) -> float:
        with self._lock:
            return self.temperature_means.get(unit, math.nan)

    def record(self, unit: UnitId) -> Optional[str]:
        with self._lock:
            return self.records.get(unit)

    def record_units(self) -> list[UnitId]:
        with self._lock:
            return sorted(self.records)

    def legacy(self, unit: UnitId, chn: int) -> CoefficientSet:
        """Legacy coefficients for the range the channel is configured at."""
        card = self._cards[unit]
        chan = card.channel(chn)
        if chan is None:
            return neutral_coefficients(card.n_coefficients)
        with self._lock:
            return self.legacy_cals.get(
                (unit, chn, chan.gain, chan.bipolar),
                neutral_coefficients(card.n_coefficients),
            )

    def result(self, unit: UnitId, chn: int) -> Optional[CoefficientSet]:
        card = self._cards[unit]
        chan = card.channel(chn)
        if chan is None:
            return None
        with self._lock:
            return self.result_cals.get((unit, chn, chan.gain, chan.bipolar))
