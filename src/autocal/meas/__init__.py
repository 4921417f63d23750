"""
The calibration pipeline.

- `VoltageCatalog`: which reference levels apply to a card range.
- `CalibrationStore`: fill states, buffers and coefficients of one run.
- `LevelStateMachine` / `Cursor`: stepping the reference voltage across cards.
- `SampleGatherer`: routing streamed samples into the store.
- `CalibrationRun`: ties the above together with a Fitter and ResultPersister.
- Streams: `ZmqSampleStream`, and `SimulatedSampleStream` for a `SimulatedFleet`.

Examples
--------
Calibrating a simulated fleet:
```python
from autocal.meas import CalibrationRun, SimulatedFleet
fleet = SimulatedFleet.from_config(config)
run = CalibrationRun(config, fleet.controller(), clock=fleet.clock)
run.setup()
state = run.run(fleet.stream(config))
```
"""

from .calibration import CalibrationRun
from .catalog import ALL_KNOWN_LEVELS, DEFAULT_VOLTAGE_LEVELS, VoltageCatalog
from .gatherer import SampleGatherer, to_display_volts
from .levels import Cursor, LevelStateMachine
from .simulate import SimulatedFleet
from .store import CalibrationStore
from .stream import SimClock, SimulatedSampleStream, ZmqSampleStream

__all__ = [
    "CalibrationRun",
    "ALL_KNOWN_LEVELS",
    "DEFAULT_VOLTAGE_LEVELS",
    "VoltageCatalog",
    "SampleGatherer",
    "to_display_volts",
    "Cursor",
    "LevelStateMachine",
    "SimulatedFleet",
    "CalibrationStore",
    "SimClock",
    "SimulatedSampleStream",
    "ZmqSampleStream",
]
