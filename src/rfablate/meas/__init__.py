"""
The duty-cycle core: ablation groups, the scheduler that alternates
measurement sweeps with ablation pulses, and the depth estimator that closes
the loop.

Run orchestration (building everything from a system and a RunConfig) lives
in `rfablate.meas.run`.
"""

from .averaging import discard_and_average
from .estimator import DepthEstimator
from .groups import AblationGroup, AblationGroupRegistry
from .scheduler import SCHED_STATE, TERMINAL_STATES, DutyCycleScheduler

__all__ = [
    "discard_and_average",
    "DepthEstimator",
    "AblationGroup",
    "AblationGroupRegistry",
    "SCHED_STATE",
    "TERMINAL_STATES",
    "DutyCycleScheduler",
]
