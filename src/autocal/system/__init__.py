# -*- coding: utf-8 -*-
"""
Fleet configuration for calibration runs.

A fleet (a "system") is one INI section listing the acquisition units, their
A2D cards and the run parameters. `load_run_config` turns it into the
`RunConfig` a `CalibrationRun` consumes.

Examples
--------
```python
from autocal.system import load_run_config
config = load_run_config("mock")
print([card.name for card in config.cards])
```

See Also
--------
autocal.meas : Calibration runs
"""

from .sysconfig import (
    list_available_systems,
    load_run_config,
    package_systems_dir,
    parse_run_config,
    user_systems_file,
    validate_run_config,
)

__all__ = [
    "list_available_systems",
    "load_run_config",
    "package_systems_dir",
    "parse_run_config",
    "user_systems_file",
    "validate_run_config",
]
