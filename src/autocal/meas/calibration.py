"""One calibration run: discovery, level loop, reduction and saving."""

from __future__ import annotations

import threading
import time
from typing import Callable, Iterable, Optional

from loguru import logger

from autocal.calfile import ResultPersister, read_legacy_file
from autocal.device.controller import CardController
from autocal.fitting import Fitter, FitSummary
from autocal.meas.catalog import VoltageCatalog
from autocal.meas.gatherer import SampleGatherer
from autocal.meas.levels import Cursor, LevelStateMachine
from autocal.meas.store import CalibrationStore
from autocal.types import (
    A2DSetup,
    CardReply,
    CardSetup,
    CoefficientSet,
    Diagnostic,
    ErrorKind,
    FillState,
    NoCardsFound,
    RunConfig,
    RunState,
    Sample,
    UnitId,
)
from autocal.util import NO_CAL_VOLTAGE


class CalibrationRun:
    """Owns every piece of per-run state.

    Construct one per run, call `setup()`, then `run(stream)` from a single
    worker thread. `cancel()` and the snapshot accessors may be called from any
    other thread.

    Parameters
    ----------
    config : RunConfig
        The cards to calibrate and the run parameters.
    controller : CardController
        Remote control of the cards.
    catalog : VoltageCatalog, optional
        Level table; the default table if None.
    on_progress, on_diagnostic, on_live_value : callables, optional
        Notifications for a front end. Diagnostics are also kept in
        `diagnostics`.
    clock : Callable[[], float], optional
        Wall clock used to stamp level changes, in the timebase of the samples.
    """

    def __init__(
        self,
        config: RunConfig,
        controller: CardController,
        catalog: Optional[VoltageCatalog] = None,
        on_progress: Optional[Callable[[int], None]] = None,
        on_diagnostic: Optional[Callable[[Diagnostic], None]] = None,
        on_live_value: Optional[Callable[[UnitId, int, float], None]] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config
        self.controller = controller
        self.catalog = catalog or VoltageCatalog()
        self.on_diagnostic = on_diagnostic
        self.diagnostics: list[Diagnostic] = []

        self.store = CalibrationStore(nsamps=config.nsamps)
        self.machine = LevelStateMachine(
            self.store, controller, on_diagnostic=self._diagnostic, clock=clock
        )
        self.gatherer = SampleGatherer(
            self.store,
            settle_seconds=config.settle_seconds,
            on_progress=on_progress,
            on_live_value=on_live_value,
        )
        self.fitter = Fitter(self.store, on_diagnostic=self._diagnostic)
        self.persister = ResultPersister(self.store, on_diagnostic=self._diagnostic)

        self.state = RunState.GATHERING
        self.cursor = Cursor()
        self.summary: Optional[FitSummary] = None
        self._cancel = threading.Event()

    def _diagnostic(self, diag: Diagnostic):
        self.diagnostics.append(diag)
        if self.on_diagnostic is not None:
            self.on_diagnostic(diag)

    def _reject(self, card: CardSetup, kind: ErrorKind, message: str):
        logger.error("{}: {} excluded: {}", kind.value, card.name, message)
        self._diagnostic(Diagnostic(kind=kind, message=f"{card.name}: {message}", unit=card.unit))

    # ------------------------------------------------------------------
    # setup
    # ------------------------------------------------------------------

    def check_setup(self, card: CardSetup, setup: A2DSetup) -> Optional[tuple[ErrorKind, str]]:
        """Compare what the card runs with the configuration; None if they agree."""
        if setup.current_cal_voltage != NO_CAL_VOLTAGE and self.config.reject_busy_cards:
            return (
                ErrorKind.CARD_BUSY,
                f"a calibration voltage ({setup.current_cal_voltage} V) is already active",
            )
        for chan in card.channels:
            chn = chan.channel
            if chn >= setup.n_channels:
                return (
                    ErrorKind.MISCONFIGURED_CARD,
                    f"channel {chn} configured but the card has {setup.n_channels}",
                )
            expected_flag = 0 if chan.bipolar else 1
            if setup.gain[chn] != chan.gain or setup.polarity_flag[chn] != expected_flag:
                return (
                    ErrorKind.MISCONFIGURED_CARD,
                    f"channel {chn} runs gain {setup.gain[chn]} offset flag "
                    + f"{setup.polarity_flag[chn]}, configuration expects gain {chan.gain} "
                    + f"{'bipolar' if chan.bipolar else 'unipolar'}. "
                    + f"Reboot {card.dsm_name} to apply its configuration",
                )
        return None

    def setup(self) -> list[UnitId]:
        """Query every configured card and register those fit to calibrate.

        Raises NoCardsFound if none qualifies.
        """
        for card in self.config.cards:
            logger.info("Querying setup of {}", card.name)
            reply = self.controller.query_setup(card)
            if not reply.ok:
                self._reject(card, reply.error, reply.message)
                continue
            problem = self.check_setup(card, reply.setup)
            if problem is not None:
                self._reject(card, *problem)
                continue

            self.store.register_card(card, self.catalog)
            legacy = read_legacy_file(
                card.cal_file, n_channels=card.n_channels, n_coefs=card.n_coefficients
            )
            self.store.set_legacy(card.unit, legacy.cals, legacy.times)
            if legacy.error is not None:
                self._diagnostic(
                    Diagnostic(
                        kind=ErrorKind.LEGACY_FILE_CORRUPT,
                        message=f"{card.name}: {legacy.error}",
                        unit=card.unit,
                    )
                )

        units = self.store.units()
        if not units:
            self._diagnostic(
                Diagnostic(kind=ErrorKind.NO_CARDS_FOUND, message="no eligible A2D card found")
            )
            raise NoCardsFound("no eligible A2D card found")
        if self.store.n_levels == 0:
            message = "no calibratable channel range on any registered card"
            self._diagnostic(Diagnostic(kind=ErrorKind.NO_CARDS_FOUND, message=message))
            raise NoCardsFound(message)
        logger.info(
            "{} card(s) registered, {} level(s): {}",
            len(units),
            self.store.n_levels,
            list(self.store.levels),
        )
        return units

    # ------------------------------------------------------------------
    # worker
    # ------------------------------------------------------------------

    def cancel(self):
        logger.info("Cancelling calibration...")
        self._cancel.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def _gather(self, samples) -> bool:
        """Pump samples until the active level is gathered; False on cancel or end of stream."""
        while not self.gatherer.is_gathered():
            if self._cancel.is_set():
                return False
            sample = next(samples, None)
            if sample is None:
                logger.warning("Sample stream ended during level {} V", self.store.active_level)
                return False
            self.gatherer.on_sample(sample)
        return True

    def run(self, stream: Iterable[Sample]) -> RunState:
        """Step through every level, then reduce the data. Returns the final state."""
        samples = iter(stream)
        cursor = self.cursor
        if self._cancel.is_set():
            cursor = cursor.finish()
        cursor = self.machine.advance(cursor)
        while cursor.state is RunState.GATHERING:
            logger.info("Gathering at {} V...", cursor.level)
            if not self._gather(samples):
                cursor = cursor.finish()
            cursor = self.machine.advance(cursor)
        self.cursor = cursor
        self.state = cursor.state

        if self.state is RunState.DEAD:
            logger.error("Calibration aborted: no card accepted a voltage level")
            return self.state

        self.summary = self.fitter.fit_all()
        before = self.store.progress
        self.store.set_progress(self.store.max_progress)
        if self.store.progress > before and self.gatherer.on_progress is not None:
            self.gatherer.on_progress(self.store.progress)
        return self.state

    def save_all(self) -> dict[UnitId, bool]:
        return self.persister.save_all()

    # ------------------------------------------------------------------
    # manual testing
    # ------------------------------------------------------------------

    def test_voltage(self, unit: UnitId, chn: int, level: int) -> CardReply:
        """Apply one level to one channel for inspection; nothing is buffered."""
        card = self.store.card(unit)
        self.gatherer.test_mode = True
        return self.controller.test_voltage(card, chn, level)

    def read_live(self, stream: Iterable[Sample], n_samples: int) -> dict[tuple[UnitId, int], float]:
        """Pump `n_samples` samples in test mode and return the latest value per channel."""
        self.gatherer.test_mode = True
        for i, sample in enumerate(stream):
            if i >= n_samples or self._cancel.is_set():
                break
            self.gatherer.on_sample(sample)
        return {
            (unit, chan.channel): value
            for unit, card in self.store.cards.items()
            for chan in card.channels
            if (value := self.store.live_value(unit, chan.channel)) is not None
        }

    def end_test(self):
        """Release every card and leave test mode."""
        for card in self.store.cards.values():
            self.controller.release(card)
        self.gatherer.test_mode = False

    # ------------------------------------------------------------------
    # snapshots
    # ------------------------------------------------------------------

    @property
    def progress(self) -> int:
        return self.store.progress

    @property
    def max_progress(self) -> int:
        return self.store.max_progress

    def fill_state(self, level: int, unit: UnitId, chn: int) -> FillState:
        return self.store.fill_state(level, unit, chn)

    def buffer_size(self, unit: UnitId, chn: int, level: int) -> int:
        return self.store.buffer_size(unit, chn, level)

    def live_value(self, unit: UnitId, chn: int) -> Optional[float]:
        return self.store.live_value(unit, chn)

    def result_cals(self) -> dict:
        return self.store.snapshot_result_cals()

    def legacy_cals(self) -> dict:
        return self.store.snapshot_legacy_cals()

    def result(self, unit: UnitId, chn: int) -> Optional[CoefficientSet]:
        return self.store.result(unit, chn)

    def temperature(self, unit: UnitId) -> float:
        return self.store.temperature_mean(unit)
