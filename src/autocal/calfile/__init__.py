"""Calibration files: reading the coefficients in force, appending new results."""

from .persist import NumpyEncoder, ResultPersister, auto_cal_path
from .reader import LegacyCalibration, LegacyRow, parse_row, read_legacy_file

__all__ = [
    "NumpyEncoder",
    "ResultPersister",
    "auto_cal_path",
    "LegacyCalibration",
    "LegacyRow",
    "parse_row",
    "read_legacy_file",
]
