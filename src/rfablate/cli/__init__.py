"""
Command-line interface for rfablate.

This module provides command-line tools for running and supporting an
ablation, including:

- Running the duty cycle with depth feedback on a configured system
- Managing and checking system configurations
- Scanning for VISA instruments
- Serving a mock depth-inference service for bench work

The CLI is built using the Click framework and provides a hierarchical
command structure with consistent help documentation.

Examples
--------
Running on the mock system, ablating N+E then S, stopping N at 5 mm:
```bash
$ rfablate run -n mock -c "N,E" -c S -t N=5 --max-cycles 20
```

Listing available VISA devices:
```bash
$ rfablate visa -m HM8118
```

See Also
--------
rfablate.meas.run : The run a `rfablate run` invocation drives
rfablate.system : System configurations


CLI Tree
--------

```
$ rfablate --tree
cli
└── mock-inference
└── run
└── systems
    └── check
    └── install
    └── list
└── visa
```
"""

from .base import cli

__all__ = ["cli"]
