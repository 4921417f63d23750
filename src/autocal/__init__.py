# -*- coding: utf-8 -*-
"""# autocal

Automated calibration of the A2D cards of a fleet of data-acquisition units.

For each card, the internal reference voltage is stepped through the levels of
the card's input ranges while processed samples are gathered per channel and
level. A weighted linear fit of measured value to applied voltage gives new
offset/slope coefficients, appended to the card's auto_cal calibration file.

- `autocal.types`: value types, wire messages, exceptions
- `autocal.device`: remote control of the cards
- `autocal.meas`: level sequencing, sample gathering, calibration runs
- `autocal.fitting`: data reduction
- `autocal.calfile`: calibration files
- `autocal.system`: fleet configuration
- `autocal.cli`: the `autocal` command
"""

from ._version import __version__
