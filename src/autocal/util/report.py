"""Terminal reports of calibration results."""

from __future__ import annotations

import math
import typing
from typing import Optional

from rich.console import Console
from rich.table import Table

if typing.TYPE_CHECKING:
    from autocal.meas.calibration import CalibrationRun
    from autocal.types import Diagnostic


def _coefs(coefs) -> str:
    if coefs is None:
        return "---"
    return " ".join(f"{c:9.5g}" for c in coefs)


def results_table(run: CalibrationRun) -> Table:
    """One row per configured channel: legacy vs new coefficients."""
    table = Table(title=f"auto_cal results: {run.config.system_name}")
    table.add_column("Card")
    table.add_column("Ch", justify="right")
    table.add_column("Variable")
    table.add_column("Range")
    table.add_column("Old (offset slope)", justify="right")
    table.add_column("New (offset slope)", justify="right")
    table.add_column("Temp", justify="right")

    for unit, card in run.store.cards.items():
        temperature = run.temperature(unit)
        temp_txt = "---" if math.isnan(temperature) else f"{temperature:.2f}"
        for chan in card.channels:
            result = run.result(unit, chan.channel)
            table.add_row(
                card.name,
                str(chan.channel),
                chan.var_name or "---",
                f"{chan.gain}{'T' if chan.bipolar else 'F'}",
                _coefs(run.store.legacy(unit, chan.channel)),
                _coefs(result) if result is not None else "[red]not calibrated[/red]",
                temp_txt,
            )
    return table


def print_results(run: CalibrationRun, console: Optional[Console] = None):
    console = console or Console(color_system="standard")
    console.print(results_table(run))
    if run.summary is not None and not math.isnan(run.summary.voltage_min):
        console.print(
            f"Measured range: {run.summary.voltage_min:.5g} .. {run.summary.voltage_max:.5g}"
        )


def format_diagnostic(diag: Diagnostic) -> str:
    where = []
    if diag.unit is not None:
        where.append(f"unit {diag.unit}")
    if diag.channel is not None:
        where.append(f"ch {diag.channel}")
    if diag.level is not None:
        where.append(f"{diag.level} V")
    prefix = f"[{', '.join(where)}] " if where else ""
    return f"{diag.kind.value}: {prefix}{diag.message}"
