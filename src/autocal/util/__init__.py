# -*- coding: utf-8 -*-
"""
Utility functions and constants for autocal.

- Defaults shared across the package (sample counts, settle time, ports)
- Logging configuration and management

See Also
--------
autocal.util.logging : Logging configuration
autocal.util.defaults : Package-wide constants
"""

from .defaults import (
    ALL_CHANNELS_MASK,
    APPLIED_CAL_SEGMENT,
    AUTO_CAL_SEGMENT,
    DEFAULT_HOST_ADDR,
    DEFAULT_LOGLEVEL,
    DEFAULT_RPC_PORT,
    DEFAULT_STREAM_PORT,
    DEFAULT_TIMEOUT,
    NO_CAL_VOLTAGE,
    NSAMPS,
    OUT_OF_RANGE_VOLTS,
    SETTLE_SECONDS,
    SINGLE_LINE_ERR_LOG,
    TEST_LOGLEVEL,
)
from .logging import (
    clear_log,
    format_error_response,
    get_log_filename,
    log_default_path,
    shutdown_run_log,
    start_run_log,
)

__all__ = [
    "ALL_CHANNELS_MASK",
    "APPLIED_CAL_SEGMENT",
    "AUTO_CAL_SEGMENT",
    "DEFAULT_HOST_ADDR",
    "DEFAULT_LOGLEVEL",
    "DEFAULT_RPC_PORT",
    "DEFAULT_STREAM_PORT",
    "DEFAULT_TIMEOUT",
    "NO_CAL_VOLTAGE",
    "NSAMPS",
    "OUT_OF_RANGE_VOLTS",
    "SETTLE_SECONDS",
    "SINGLE_LINE_ERR_LOG",
    "TEST_LOGLEVEL",
    "clear_log",
    "format_error_response",
    "get_log_filename",
    "log_default_path",
    "shutdown_run_log",
    "start_run_log",
]
