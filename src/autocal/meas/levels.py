"""Voltage-level sequencing across every registered card."""

from __future__ import annotations

import time
from dataclasses import dataclass, replace
from typing import Callable, Optional

from loguru import logger

from autocal.device.controller import CardController, channel_mask
from autocal.meas.store import CalibrationStore
from autocal.types import Diagnostic, ErrorKind, RunState, UnitId


@dataclass(frozen=True)
class Cursor:
    """Where the level sequence stands.

    `position` indexes the sorted levels of the store and names the next level
    to activate. `level_index` counts activated levels and drives progress.
    `level` is the level most recently activated.
    """

    position: int = 0
    state: RunState = RunState.GATHERING
    level_index: int = 0
    level: Optional[int] = None

    def finish(self) -> Cursor:
        """Request release of every card on the next advance."""
        return replace(self, state=RunState.DONE)

    def resume(self) -> Cursor:
        return replace(self, state=RunState.GATHERING)


class LevelStateMachine:
    """Applies one level at a time to every card that has channels at it.

    Parameters
    ----------
    store : CalibrationStore
        Registered cards and their fill states.
    controller : CardController
        Issues the test-voltage commands.
    on_diagnostic : Callable[[Diagnostic], None], optional
        Receives card faults and the all-cards-dead report.
    clock : Callable[[], float], optional
        Seconds since the epoch; seeds the settle gate. Defaults to time.time.
    """

    def __init__(
        self,
        store: CalibrationStore,
        controller: CardController,
        on_diagnostic: Optional[Callable[[Diagnostic], None]] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.controller = controller
        self.on_diagnostic = on_diagnostic
        self.clock = clock

    @property
    def n_levels(self) -> int:
        return self.store.n_levels

    def _report(self, diag: Diagnostic):
        logger.error("{}: {}", diag.kind.value, diag.message)
        if self.on_diagnostic is not None:
            self.on_diagnostic(diag)

    def advance(self, cursor: Cursor) -> Cursor:
        """Activate the next level (or release the cards) and return the new cursor."""
        levels = self.store.levels
        position = cursor.position
        state = cursor.state

        if state is RunState.DONE:
            # the second level is common to every range (0 after -10, 1 after 0)
            position = 1
        if position >= len(levels):
            position = 0
            state = RunState.DONE

        if state is RunState.DONE:
            self._release_all()
            level = levels[0] if levels else None
            if level is not None:
                self.store.set_active_level(level, self.clock(), cursor.level_index)
            logger.info("Level sequence DONE; all cards released")
            return Cursor(
                position=position,
                state=RunState.DONE,
                level_index=cursor.level_index,
                level=level,
            )

        level = levels[position]
        logger.info("Activating level {} V ({}/{})", level, position + 1, len(levels))
        alive = self._apply_level(level)
        # the settle gate runs from the end of the command round
        self.store.set_active_level(level, self.clock(), cursor.level_index)

        if not alive:
            self._report(
                Diagnostic(
                    kind=ErrorKind.ALL_CARDS_DEAD,
                    message=f"no card accepted level {level} V",
                    level=level,
                )
            )
            return Cursor(
                position=position,
                state=RunState.DEAD,
                level_index=cursor.level_index,
                level=level,
            )

        return Cursor(
            position=position + 1,
            state=RunState.GATHERING,
            level_index=cursor.level_index + 1,
            level=level,
        )

    def _apply_level(self, level: int) -> bool:
        """Send `level` to every unit with channels at it; True if any accepted."""
        alive = False
        dark_dsms: set[str] = set()
        for unit in self.store.units_at(level):
            card = self.store.card(unit)
            if card.dsm_name in dark_dsms:
                logger.warning("{} skipped: {} is not responding", card.name, card.dsm_name)
                continue
            channels = self.store.channels_at(level, unit)
            reply = self.controller.set_test_voltage(
                card, channel_mask(channels), level, enabled=True
            )
            if not reply.ok:
                if reply.error is ErrorKind.UNREACHABLE:
                    # every other card behind this unit would time out as well
                    dark_dsms.add(card.dsm_name)
                self._report(
                    Diagnostic(
                        kind=reply.error,
                        message=f"{card.name} refused level {level} V: {reply.message}",
                        unit=unit,
                        level=level,
                    )
                )
                continue
            self.store.activate(level, unit, channels)
            alive = True
        return alive

    def _release_all(self):
        for unit in self.store.units():
            self._release(unit)

    def _release(self, unit: UnitId):
        card = self.store.card(unit)
        reply = self.controller.release(card)
        if not reply.ok:
            self._report(
                Diagnostic(
                    kind=reply.error,
                    message=f"{card.name} could not be released: {reply.message}",
                    unit=unit,
                )
            )
