"""Appending calibration records to the auto_cal calibration files."""

from __future__ import annotations

import os
from typing import TYPE_CHECKING, Callable, Optional

import numpy as np
import simplejson as json
from loguru import logger

from autocal.types import Diagnostic, ErrorKind, UnitId
from autocal.util import APPLIED_CAL_SEGMENT, AUTO_CAL_SEGMENT

if TYPE_CHECKING:
    from autocal.meas.store import CalibrationStore


class NumpyEncoder(json.JSONEncoder):
    """Special json encoder for numpy types"""

    # o = an object to be encoded
    def default(self, o):
        if isinstance(o, np.integer):
            return int(o)
        if isinstance(o, np.floating):
            return float(o)
        if isinstance(o, np.ndarray):
            return o.tolist()
        return json.JSONEncoder.default(self, o)


def auto_cal_path(applied_path: str) -> Optional[str]:
    """Map an as-applied calibration path to its auto_cal twin, None if it has no /A2D/ segment."""
    if APPLIED_CAL_SEGMENT not in applied_path:
        return None
    return applied_path.replace(APPLIED_CAL_SEGMENT, AUTO_CAL_SEGMENT, 1)


class ResultPersister:
    """Appends each card's record once per process.

    Parameters
    ----------
    store : CalibrationStore
        Source of the records built by the Fitter.
    on_diagnostic : Callable[[Diagnostic], None], optional
        Receives path rejections, write failures and repeat saves.
    """

    def __init__(
        self,
        store: CalibrationStore,
        on_diagnostic: Optional[Callable[[Diagnostic], None]] = None,
    ):
        self.store = store
        self.on_diagnostic = on_diagnostic
        self._saved: set[UnitId] = set()

    def _report(self, diag: Diagnostic):
        if diag.kind is ErrorKind.ALREADY_SAVED:
            logger.info(diag.message)
        else:
            logger.error("{}: {}", diag.kind.value, diag.message)
        if self.on_diagnostic is not None:
            self.on_diagnostic(diag)

    def is_saved(self, unit: UnitId) -> bool:
        return unit in self._saved

    def destination(self, unit: UnitId) -> Optional[str]:
        return auto_cal_path(self.store.card(unit).cal_file)

    def save(self, unit: UnitId) -> bool:
        """Append the record of `unit`; True only if this call wrote it."""
        card = self.store.card(unit)
        record = self.store.record(unit)
        if record is None:
            logger.warning("{}: nothing to save, no results", card.name)
            return False

        path = self.destination(unit)
        if path is None:
            self._report(
                Diagnostic(
                    kind=ErrorKind.PERSISTENCE_PATH_REJECTED,
                    message=f"Will not save to {card.cal_file!r}: no {APPLIED_CAL_SEGMENT} segment",
                    unit=unit,
                )
            )
            return False

        if unit in self._saved:
            self._report(
                Diagnostic(
                    kind=ErrorKind.ALREADY_SAVED,
                    message=f"results already saved to: {path}",
                    unit=unit,
                )
            )
            return False

        logger.info("Appending results to: {}", path)
        try:
            os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
            with open(path, "a") as f:
                f.write(record)
        except OSError as e:
            self._report(
                Diagnostic(
                    kind=ErrorKind.PERSISTENCE_FAILED,
                    message=f"failed to save results to: {path}: {e.strerror or e}",
                    unit=unit,
                )
            )
            return False

        self._saved.add(unit)
        return True

    def save_all(self) -> dict[UnitId, bool]:
        return {unit: self.save(unit) for unit in self.store.record_units()}

    def save_summary(self, path: str) -> str:
        """Write a JSON summary of the run (legacy and new coefficients, temperatures)."""
        cards = []
        for unit, card in self.store.cards.items():
            channels = []
            for chan in card.channels:
                result = self.store.result(unit, chan.channel)
                channels.append(
                    {
                        "channel": chan.channel,
                        "var_name": chan.var_name,
                        "gain": chan.gain,
                        "bipolar": chan.bipolar,
                        "legacy": list(self.store.legacy(unit, chan.channel)),
                        "result": list(result) if result is not None else None,
                    }
                )
            temperature = self.store.temperature_mean(unit)
            cards.append(
                {
                    "unit": str(unit),
                    "name": card.name,
                    "card_type": card.card_type,
                    "cal_file": card.cal_file,
                    "auto_cal_file": auto_cal_path(card.cal_file),
                    "saved": unit in self._saved,
                    "temperature": temperature,
                    "channels": channels,
                }
            )
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
        with open(path, "w") as f:
            json.dump(
                {"levels": list(self.store.levels), "cards": cards},
                f,
                cls=NumpyEncoder,
                indent=4,
                allow_nan=True,
            )
        logger.info("Run summary saved to {}", path)
        return path
