"""Reader for the as-applied (legacy) A2D calibration files.

File layout: `#` starts a comment; every other line is

    YYYY Mon DD HH:MM:SS  gain  bipolar  c0 c1 [c0 c1 ...]

with one coefficient group per channel (2 values, 4 for gpDAQ cards). Rows are
in chronological order; the last row at or before "now" for a given
(gain, bipolar) is the one in force.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from loguru import logger

from autocal.types import CoefficientSet, LegacyFileCorrupt, neutral_coefficients

TIME_FORMAT = "%Y %b %d %H:%M:%S"


@dataclass(frozen=True)
class LegacyRow:
    when: datetime
    gain: int
    bipolar: bool
    coefficients: tuple[CoefficientSet, ...]  # one set per channel


@dataclass
class LegacyCalibration:
    """Coefficients in force per (channel, gain, bipolar), and when each range was set."""

    cals: dict[tuple[int, int, bool], CoefficientSet] = field(default_factory=dict)
    times: dict[tuple[int, bool], datetime] = field(default_factory=dict)
    error: Optional[str] = None  # set when reading stopped at a bad row

    def coefficients(
        self, chn: int, gain: int, bipolar: bool, n_coefs: int = 2
    ) -> CoefficientSet:
        return self.cals.get((chn, gain, bipolar), neutral_coefficients(n_coefs))


def parse_row(line: str, n_coefs: int = 2, n_channels: int = 8) -> Optional[LegacyRow]:
    """Parse one line; None for blank lines, comments and rows without a range.

    Raises LegacyFileCorrupt if the line cannot be parsed.
    """
    text = line.split("#", 1)[0].strip()
    if not text:
        return None
    tokens = text.split()
    if len(tokens) < 4:
        raise LegacyFileCorrupt(f"truncated row: {line.strip()!r}")
    try:
        when = datetime.strptime(" ".join(tokens[:4]), TIME_FORMAT).replace(
            tzinfo=timezone.utc
        )
        data = [float(tok) for tok in tokens[4:]]
    except ValueError as e:
        raise LegacyFileCorrupt(f"bad row {line.strip()!r}: {e}") from e

    if len(data) < 2:
        return None
    gain = int(data[0])
    bipolar = int(data[1]) != 0
    values = data[2:]
    n_groups = min(len(values) // n_coefs, n_channels)
    coefficients = tuple(
        tuple(values[i * n_coefs : (i + 1) * n_coefs]) for i in range(n_groups)
    )
    return LegacyRow(when=when, gain=gain, bipolar=bipolar, coefficients=coefficients)


def read_legacy_file(
    path: str,
    n_channels: int = 8,
    n_coefs: int = 2,
    now: Optional[datetime] = None,
) -> LegacyCalibration:
    """Read the coefficients in force at `now` (default: current UTC time).

    A malformed row stops the read; whatever was read before it is kept and
    `error` says why reading stopped. A missing file yields an empty result.
    """
    if now is None:
        now = datetime.now(tz=timezone.utc)
    result = LegacyCalibration()

    if not path or not os.path.exists(path):
        logger.warning("Calibration file {} not found, using neutral coefficients", path)
        return result

    try:
        with open(path, "r") as f:
            for lineno, line in enumerate(f, start=1):
                try:
                    row = parse_row(line, n_coefs=n_coefs, n_channels=n_channels)
                except LegacyFileCorrupt as e:
                    result.error = f"{path}:{lineno}: {e}"
                    logger.warning("Stopped reading {}", result.error)
                    break
                if row is None:
                    continue
                if row.when > now:
                    break
                result.times[(row.gain, row.bipolar)] = row.when
                for chn, coefs in enumerate(row.coefficients):
                    result.cals[(chn, row.gain, row.bipolar)] = coefs
    except (OSError, UnicodeDecodeError) as e:
        result.error = f"{path}: {e}"
        logger.warning("Could not read calibration file {}", result.error)

    logger.debug(
        "Read {} coefficient set(s) for {} range(s) from {}",
        len(result.cals),
        len(result.times),
        path,
    )
    return result
