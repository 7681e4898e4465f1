# -*- coding: utf-8 -*-
"""
Utility functions and constants for rfablate.

- Logging configuration and management (loguru sinks)
- Run data writing (measurement CSV log, run metadata)
- VISA instrument discovery
- Package-wide defaults

Examples
--------
Starting a log for a script:
```python
from rfablate.util import start_log
start_log(log_to_stdout=True, log_level="DEBUG")
```

See Also
--------
rfablate.util.logging : Logging configuration
rfablate.util.save : Data saving functions
"""

from .defaults import (
    DEFAULT_INFERENCE_HOST,
    DEFAULT_INFERENCE_PORT,
    DEFAULT_INFERENCE_TIMEOUT,
    DEFAULT_LOGLEVEL,
    SINGLE_LINE_ERR_LOG,
    TEST_LOGLEVEL,
)
from .logging import (
    clear_log,
    format_error_response,
    get_log_filename,
    log_default_dir,
    log_default_path,
    shutdown_log,
    start_log,
)
from .save import MeasurementLog, get_run_stem, save_run_metadata

__all__ = [
    "DEFAULT_INFERENCE_HOST",
    "DEFAULT_INFERENCE_PORT",
    "DEFAULT_INFERENCE_TIMEOUT",
    "DEFAULT_LOGLEVEL",
    "SINGLE_LINE_ERR_LOG",
    "TEST_LOGLEVEL",
    "clear_log",
    "format_error_response",
    "get_log_filename",
    "log_default_dir",
    "log_default_path",
    "shutdown_log",
    "start_log",
    "MeasurementLog",
    "get_run_stem",
    "save_run_metadata",
]
