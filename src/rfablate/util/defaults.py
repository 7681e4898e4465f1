# -*- coding: utf-8 -*-

import pathlib
import tempfile

TEMP_DIR = tempfile.gettempdir()
USER_DIR = pathlib.Path.home() / ".rfablate"
DEFAULT_LOGLEVEL = "INFO"
TEST_LOGLEVEL = "TRACE"
SINGLE_LINE_ERR_LOG = False  # reformat tracebacks into a single line for err logs

# scheduler
PRE_ABLATION_MS = 5000  # pre-charge settle before the first sweep
SWEEP_REPEATS = 3  # repetitions of the full permutation list per sweep
READY_RETRIES = 100  # meter *OPC? polls before a read is abandoned
DEFAULT_INTERVAL_S = 10  # ablation hold per group, per cycle

# estimator
NOMINAL_COUNT_INTERNAL = 15
NOMINAL_COUNT_EXTERNAL = 30
MOVING_AVG_LEN = 3
ESTIMATOR_REARM_S = 0.05

# depth inference service
DEFAULT_INFERENCE_HOST = "127.0.0.1"
DEFAULT_INFERENCE_PORT = 8860
DEFAULT_INFERENCE_TIMEOUT = 5  # seconds
DEFAULT_INFERENCE_RETRIES = 1
