"""Reference-voltage levels per card type and input range."""

from __future__ import annotations

from typing import Iterable, Mapping, Optional

from autocal.types import DMMAT, GPDAQ, CardSetup, ChannelSetup, range_code

# keyed by card type for gpDAQ/dmmat, otherwise by range code ("1T", "2F", ...)
DEFAULT_VOLTAGE_LEVELS: dict[str, tuple[int, ...]] = {
    "--": (),
    GPDAQ: (0, 2),
    DMMAT: (0, 1, 5),
    "4F": (0, 1, 5),
    "2T": (0, 1, 5),
    "2F": (0, 1, 5, 10),
    "1T": (-10, 0, 1, 5, 10),
}

# every level a card can generate; -99 switches the reference off
ALL_KNOWN_LEVELS: tuple[int, ...] = (-99, 0, 1, 2, 5, 10, -10)


class VoltageCatalog:
    """Pure lookup of the levels to apply for a (card type, gain, polarity).

    Parameters
    ----------
    levels : Mapping[str, Iterable[int]], optional
        Level table keyed as described by `key()`. Defaults to
        DEFAULT_VOLTAGE_LEVELS.
    all_levels : Iterable[int], optional
        The reference set offered for manual testing.
    """

    def __init__(
        self,
        levels: Optional[Mapping[str, Iterable[int]]] = None,
        all_levels: Iterable[int] = ALL_KNOWN_LEVELS,
    ):
        if levels is None:
            levels = DEFAULT_VOLTAGE_LEVELS
        self._levels = {k: tuple(sorted(set(v))) for k, v in levels.items()}
        self._all_levels = tuple(all_levels)

    @staticmethod
    def key(card_type: str, gain: int, bipolar: bool) -> str:
        if card_type in (GPDAQ, DMMAT):
            return card_type
        return range_code(gain, bipolar)

    def levels_for(self, card_type: str, gain: int, bipolar: bool) -> tuple[int, ...]:
        """Ascending levels for this range; empty if the range is not calibratable."""
        return self._levels.get(self.key(card_type, gain, bipolar), ())

    def levels_for_channel(self, card: CardSetup, chan: ChannelSetup) -> tuple[int, ...]:
        return self.levels_for(card.card_type, chan.gain, chan.bipolar)

    def all_levels(self) -> tuple[int, ...]:
        return self._all_levels
