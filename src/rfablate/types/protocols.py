"""Device role protocols defining required methods for each role.

Protocols specify the methods a device must implement to fulfil a role. A
device does not inherit from a protocol; the role system checks at runtime
that the required methods exist (see `rfablate.types.roles`).

Three collaborators drive the apparatus:

- SwitchFabricProtocol: the multiplexed electrode matrix. Realises one
  positive/negative column assignment at a time, on either the measurement
  path (LCR meter terminals) or the ablation path (RF generator terminals).
- ImpedanceMeterProtocol: the LCR meter, polled for readiness then read.
- DepthInferenceProtocol: the depth-inference service, one request per
  3-sample window of one face.

See Also
--------
rfablate.types.roles : Role definitions and validation
rfablate.types.interfaces : Interface implementations
rfablate.device : Device implementations
"""

from __future__ import annotations

from typing import TYPE_CHECKING, AbstractSet, Callable, Protocol, Tuple, runtime_checkable

if TYPE_CHECKING:
    from .messages import DepthReply, DepthRequest


@runtime_checkable
class SwitchFabricProtocol(Protocol):
    """Methods required for switch fabric functionality.

    Implementations must debounce before returning from `connect` and must
    leave no path closed other than the ones requested.
    """

    connect: Callable[[AbstractSet[str], AbstractSet[str], bool], bool]
    """Connect positive and negative columns.

    Parameters:
    - positive_columns: columns to route to the positive terminal
    - negative_columns: columns to route to the negative terminal
    - use_ablation_path: True for the RF generator, False for the LCR meter

    Returns:
    - True on success, False if the fabric refused the connection
    """

    disconnect_all: Callable[[], None]
    """Open every path on the fabric."""


@runtime_checkable
class ImpedanceMeterProtocol(Protocol):
    """Methods required for impedance meter functionality."""

    is_ready: Callable[[], bool]
    """Poll the meter once for operation-complete."""

    measure: Callable[[], Tuple[str, str]]
    """Read (magnitude, phase) as raw strings from the meter."""


@runtime_checkable
class DepthInferenceProtocol(Protocol):
    """Methods required for a depth-inference service."""

    infer: Callable[["DepthRequest"], "DepthReply"]
    """Send one request and block (bounded by the implementation's timeout)
    for the reply."""
