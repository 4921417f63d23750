# -*- coding: utf-8 -*-

DEFAULT_HOST_ADDR = "127.0.0.1"
DEFAULT_RPC_PORT = 30003  # dsm remote-control (SensorAction) port
DEFAULT_STREAM_PORT = 30000  # processed sample stream
DEFAULT_TIMEOUT = 5  # seconds
DEFAULT_LOGLEVEL = "INFO"
TEST_LOGLEVEL = "TRACE"
SINGLE_LINE_ERR_LOG = False  # reformat tracebacks into a single line for diagnostics

NSAMPS = 100  # samples gathered per channel per voltage level
SETTLE_SECONDS = 10.0  # wait after a voltage change before samples are trusted
OUT_OF_RANGE_VOLTS = 1.0  # |mean - level| above this flags a defective card?
NO_CAL_VOLTAGE = -99  # card reports this when no cal voltage is active
ALL_CHANNELS_MASK = 0xFF

APPLIED_CAL_SEGMENT = "/A2D/"
AUTO_CAL_SEGMENT = "/auto_cal/"
