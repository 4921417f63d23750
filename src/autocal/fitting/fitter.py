"""Reduce collected buffers to calibration coefficients and result records."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Callable, Optional

import numpy as np
from loguru import logger

from autocal.fitting.fit_model import WeightedLinear
from autocal.types import CoefficientSet, Diagnostic, ErrorKind, UnitId
from autocal.util import OUT_OF_RANGE_VOLTS

if TYPE_CHECKING:
    from autocal.meas.store import CalibrationStore

# ranges written first, in this order; any other exercised range follows
RANGE_ORDER: tuple[tuple[int, bool], ...] = ((1, True), (2, False), (2, True), (4, False))

TIME_FORMAT = "%Y %b %d %H:%M:%S"
NO_TIME = "---- --- -- --:--:--"


def format_timestamp(when: Optional[float]) -> str:
    if when is None:
        return NO_TIME
    return datetime.fromtimestamp(when, tz=timezone.utc).strftime(TIME_FORMAT)


@dataclass(frozen=True)
class LevelStats:
    level: int
    n: int
    mean: float
    variance: float
    minimum: float
    maximum: float

    @property
    def weight(self) -> float:
        # zero (or undefined) variance falls back to unit weight
        if self.variance > 0 and math.isfinite(self.variance):
            return 1.0 / self.variance
        return 1.0

    @classmethod
    def from_values(cls, level: int, values) -> LevelStats:
        data = np.asarray(values, dtype=float)
        n = len(data)
        variance = float(np.var(data, ddof=1)) if n > 1 else 0.0
        return cls(
            level=level,
            n=n,
            mean=float(np.mean(data)),
            variance=variance,
            minimum=float(np.min(data)),
            maximum=float(np.max(data)),
        )


@dataclass
class FitSummary:
    """Outcome of reducing a whole run."""

    units: list[UnitId] = field(default_factory=list)
    n_results: int = 0
    voltage_min: float = math.nan
    voltage_max: float = math.nan


class Fitter:
    """Weighted linear fit of measured mean -> applied level, per channel.

    NaN and out-of-range diagnostics are deduplicated for the lifetime of the
    Fitter: NaN once per (unit, channel, level), out-of-range once per
    (unit, level).
    """

    def __init__(
        self,
        store: CalibrationStore,
        on_diagnostic: Optional[Callable[[Diagnostic], None]] = None,
        out_of_range_volts: float = OUT_OF_RANGE_VOLTS,
    ):
        self.store = store
        self.on_diagnostic = on_diagnostic
        self.out_of_range_volts = out_of_range_volts
        self._nan_seen: set[tuple[UnitId, int, int]] = set()
        self._out_of_range_seen: set[tuple[UnitId, int]] = set()

    def _report(self, diag: Diagnostic):
        logger.warning("{}: {}", diag.kind.value, diag.message)
        if self.on_diagnostic is not None:
            self.on_diagnostic(diag)

    # ------------------------------------------------------------------

    def check_level(self, unit: UnitId, chn: int, level: int, values) -> LevelStats:
        """Statistics of one buffer, reporting NaN and out-of-range data."""
        stats = LevelStats.from_values(level, values)
        card = self.store.card(unit)

        if np.any(np.isnan(np.asarray(values, dtype=float))):
            key = (unit, chn, level)
            if key not in self._nan_seen:
                self._nan_seen.add(key)
                self._report(
                    Diagnostic(
                        kind=ErrorKind.NAN_MEASUREMENT,
                        message=(
                            f"{card.name} channel: {chn} level: {level}v is out of range. "
                            + "You may need to adjust the 2 volt offset potentiometer on this card."
                        ),
                        unit=unit,
                        channel=chn,
                        level=level,
                    )
                )

        if abs(stats.mean - level) > self.out_of_range_volts:
            key = (unit, level)
            if key not in self._out_of_range_seen:
                self._out_of_range_seen.add(key)
                self._report(
                    Diagnostic(
                        kind=ErrorKind.OUT_OF_RANGE_MEASUREMENT,
                        message=(
                            f"defective card? {card.cal_file or card.name} "
                            + f"channel: {chn} level: {level}v. Internal uncalibrated "
                            + f"voltage measures as {stats.mean:.5g}v"
                        ),
                        unit=unit,
                        channel=chn,
                        level=level,
                    )
                )
        return stats

    def fit_channel(self, unit: UnitId, chn: int) -> Optional[CoefficientSet]:
        """Fit one channel over every level it collected; stores and returns the result."""
        card = self.store.card(unit)
        chan = card.channel(chn)
        buffers = self.store.buffers_for(unit, chn)
        stats = [self.check_level(unit, chn, level, values) for level, values in buffers.items()]
        for s in stats:
            logger.debug(
                "{} ch{} level {:>4} | n {:>4} | min {:12.7g} | max {:12.7g} | mean {:12.7g} | weight {:12.7g}",
                card.name,
                chn,
                s.level,
                s.n,
                s.minimum,
                s.maximum,
                s.mean,
                s.weight,
            )
        if chan is None:
            logger.warning("{} channel {} has data but no configuration, not fitted", card.name, chn)
            return None

        model = WeightedLinear()
        model.set_data(
            [s.mean for s in stats],
            [float(s.level) for s in stats],
            [s.weight for s in stats],
        )
        try:
            offset, slope = model.fit()
        except (ValueError, RuntimeError) as e:
            self._report(
                Diagnostic(
                    kind=ErrorKind.FIT_UNDERDETERMINED,
                    message=f"{card.name} channel {chn} not calibrated: {e}",
                    unit=unit,
                    channel=chn,
                )
            )
            return None
        logger.trace("{} ch{}: {}", card.name, chn, model.get_fit_results_txt())

        coefs = (float(offset), float(slope)) + (0.0,) * (card.n_coefficients - 2)
        self.store.set_result(unit, chn, chan.gain, chan.bipolar, coefs)
        logger.info(
            "{} ch{} ({}) {}{}: offset {:.5g} slope {:.5g}",
            card.name,
            chn,
            chan.var_name,
            chan.gain,
            "T" if chan.bipolar else "F",
            offset,
            slope,
        )
        return self.store.coefficients(unit, chn, chan.gain, chan.bipolar)

    def temperature_mean(self, unit: UnitId) -> float:
        values = self.store.temperature(unit)
        mean = float(np.mean(values)) if values else math.nan
        self.store.set_temperature_mean(unit, mean)
        return mean

    def fit_unit(self, unit: UnitId) -> str:
        """Fit every channel of `unit` that collected data and build its record."""
        for chn in self.store.buffered_channels(unit):
            self.fit_channel(unit, chn)
        self.temperature_mean(unit)
        record = self.format_record(unit)
        self.store.set_record(unit, record)
        return record

    def fit_all(self) -> FitSummary:
        summary = FitSummary()
        lows, highs = [], []
        for unit in self.store.units_with_data():
            self.fit_unit(unit)
            summary.units.append(unit)
            for chn in self.store.buffered_channels(unit):
                for values in self.store.buffers_for(unit, chn).values():
                    lows.append(np.min(values))
                    highs.append(np.max(values))
        summary.n_results = len(self.store.snapshot_result_cals())
        if lows:
            summary.voltage_min = float(np.nanmin(lows))
            summary.voltage_max = float(np.nanmax(highs))
        logger.info(
            "Fitted {} card(s): {} result(s), measured min {:.5g} max {:.5g}",
            len(summary.units),
            summary.n_results,
            summary.voltage_min,
            summary.voltage_max,
        )
        return summary

    # ------------------------------------------------------------------

    def exercised_ranges(self, unit: UnitId) -> list[tuple[int, bool]]:
        """(gain, bipolar) ranges with at least one channel that collected data."""
        card = self.store.card(unit)
        ranges = set()
        for chn in self.store.buffered_channels(unit):
            chan = card.channel(chn)
            if chan is not None:
                ranges.add(chan.range_key)
        ordered = [r for r in RANGE_ORDER if r in ranges]
        ordered += sorted(ranges - set(RANGE_ORDER))
        return ordered

    def format_record(self, unit: UnitId) -> str:
        card = self.store.card(unit)
        n_coefs = card.n_coefficients
        buffered = set(self.store.buffered_channels(unit))
        temperature = self.store.temperature_mean(unit)

        lines = ["", "# auto_cal results...", f"# temperature: {temperature:.5g}"]
        header = "#  Date              Gain  Bipolar"
        for ix in range(card.n_channels):
            if n_coefs == 2:
                header += f"  CH{ix}-off   CH{ix}-slope"
            else:
                header += "".join(f"  CH{ix}-c{k}" for k in range(n_coefs))
        lines.append(header)

        neutral = (0.0, 1.0) + (0.0,) * (n_coefs - 2)
        for gain, bipolar in self.exercised_ranges(unit):
            in_range = [
                chn
                for chn in sorted(buffered)
                if card.channel(chn) is not None
                and card.channel(chn).range_key == (gain, bipolar)
            ]
            calibrated = {}
            for chn in in_range:
                coefs = self.store.coefficients(unit, chn, gain, bipolar)
                if coefs is not None:
                    calibrated[chn] = coefs
            # the range is stamped with its first channel's first sample
            when = self.store.first_sample_time(unit, in_range[0])

            row = f"{format_timestamp(when)}{gain:6d}{int(bipolar):9d}"
            for ix in range(card.n_channels):
                coefs = calibrated.get(ix, neutral)
                row += "  " + " ".join(f"{c:9.5g}" for c in coefs)
            lines.append(row)
        return "\n".join(lines) + "\n"
