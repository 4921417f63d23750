"""
Command-line interface for autocal.

The CLI is built using the Click framework.

Examples
--------
Calibrating the simulated fleet and saving a summary:
```bash
$ autocal run -n mock --simulate --summary ./mock_run.json
```

Showing the coefficients currently in force for a card:
```bash
$ autocal legacy /path/to/A2D/A2D0001.dat --channels 8
```

CLI Tree
--------

```
$ autocal --tree
cli
└── legacy
└── levels
└── run
└── system
    └── list
    └── show
```

See Also
--------
autocal.meas : The calibration pipeline driven by `autocal run`
"""

from .base import cli, tree_option

__all__ = ["cli", "tree_option"]
