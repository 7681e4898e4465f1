"""
Protocols, role interfaces, messages, configuration and errors.

The rfablate.types package provides:

1. Hardware Abstraction Layer
    - Protocols define required methods for the switch fabric, impedance
      meter and depth-inference roles
    - Interfaces wrap devices for the scheduler and estimator
    - Roles connect devices to their interfaces

2. Messages
    - Measurement: one impedance read, produced by the scheduler
    - DepthRequest / DepthReply: the inference service contract

3. Configuration
    - RunConfig: operator inputs for a run

4. Errors
    - CommsError and its inference subclasses, ValueUnavailable,
      ValidationError

See Also
--------
rfablate.types.roles : Device role definitions
rfablate.types.protocols : Protocol definitions
rfablate.types.interfaces : Interface implementations
"""

from __future__ import annotations

from .config import RunConfig
from .errors import (
    CommsError,
    InferenceTimeout,
    MalformedReply,
    SideMismatchError,
    ValueUnavailable,
)
from .messages import DepthReply, DepthRequest, Measurement, Message
from .roles import (
    DEPTH_INFERENCE,
    IMPEDANCE_METER,
    PREFIX_TO_ROLE,
    SWITCH_FABRIC,
    DepthInference,
    DeviceRole,
    ImpedanceMeter,
    SwitchFabric,
    get_valid_device_types,
)
from .validation import (
    ValidationError,
    validate_device_role_mapping,
    validate_device_states,
    validate_system_roles,
)

__all__ = [
    "RunConfig",
    "CommsError",
    "InferenceTimeout",
    "MalformedReply",
    "SideMismatchError",
    "ValueUnavailable",
    "Message",
    "Measurement",
    "DepthRequest",
    "DepthReply",
    "DeviceRole",
    "SwitchFabric",
    "ImpedanceMeter",
    "DepthInference",
    "SWITCH_FABRIC",
    "IMPEDANCE_METER",
    "DEPTH_INFERENCE",
    "PREFIX_TO_ROLE",
    "get_valid_device_types",
    "ValidationError",
    "validate_device_role_mapping",
    "validate_device_states",
    "validate_system_roles",
]
