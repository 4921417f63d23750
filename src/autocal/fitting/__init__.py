"""
Data reduction for calibration runs.

- `WeightedLinear`: weighted least-squares line (offset + slope * x), built on
  the `FitModel` base (set data, guess, fit with scipy, report).
- `Fitter`: per-level statistics, NaN/out-of-range diagnostics, per-channel
  coefficients and the per-card result record.

Examples
--------
```python
from autocal.fitting import WeightedLinear
model = WeightedLinear()
model.set_data(means, levels, weights)
offset, slope = model.fit()
```
"""

from .fit_model import FitModel, WeightedLinear
from .fitter import RANGE_ORDER, Fitter, FitSummary, LevelStats, format_timestamp

__all__ = [
    "FitModel",
    "WeightedLinear",
    "RANGE_ORDER",
    "Fitter",
    "FitSummary",
    "LevelStats",
    "format_timestamp",
]
