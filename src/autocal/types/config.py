"""Configuration types for calibration runs."""

from dataclasses import dataclass, field

from mashumaro import DataClassDictMixin

from autocal.util.defaults import (
    DEFAULT_HOST_ADDR,
    DEFAULT_RPC_PORT,
    DEFAULT_STREAM_PORT,
    NSAMPS,
    SETTLE_SECONDS,
)

from .calibration import CardSetup


@dataclass(kw_only=True)
class RunConfig(DataClassDictMixin):
    """Everything a calibration run needs from the fleet configuration.

    `cards` lists the cards as configured; each is checked against what the card
    itself reports before it takes part in a run.
    """

    system_name: str
    host: str = DEFAULT_HOST_ADDR
    rpc_port: int = DEFAULT_RPC_PORT
    stream_port: int = DEFAULT_STREAM_PORT
    settle_seconds: float = SETTLE_SECONDS
    nsamps: int = NSAMPS
    reject_busy_cards: bool = True
    cards: list[CardSetup] = field(default_factory=list)
