"""Role interfaces that wrap devices and provide role-specific functionality.

Interfaces are what the scheduler and the estimator talk to. They delegate to
the wrapped device and add the small amount of logic that belongs to the role
rather than to any particular instrument (bounded ready polling, reply
validation).

Example
-------
    switch = system.get_interface_by_role(SWITCH_FABRIC)
    switch.disconnect_all()
    ok = switch.connect({"c0"}, {"c4"}, use_ablation_path=False)
"""

from __future__ import annotations

from typing import TYPE_CHECKING, AbstractSet, Tuple

from loguru import logger

from rfablate.types.errors import SideMismatchError

if TYPE_CHECKING:
    from rfablate.device.device import Device
    from rfablate.types.messages import DepthReply, DepthRequest
    from rfablate.types.protocols import (
        DepthInferenceProtocol,
        ImpedanceMeterProtocol,
        SwitchFabricProtocol,
    )


class RoleInterface:
    """Base class for role-specific interfaces.

    Attributes
    ----------
    _device : Device
        The wrapped device instance
    """

    def __init__(self, device: Device):
        self._device = device

    @property
    def device(self) -> Device:
        return self._device


class SwitchFabricInterface(RoleInterface):
    """Interface for the electrode switch fabric."""

    def __init__(self, device: SwitchFabricProtocol):
        super().__init__(device)

    def connect(
        self,
        positive_columns: AbstractSet[str],
        negative_columns: AbstractSet[str],
        use_ablation_path: bool,
    ) -> bool:
        """Connect a positive/negative column assignment.

        Parameters
        ----------
        positive_columns : AbstractSet[str]
            Columns routed to the positive terminal
        negative_columns : AbstractSet[str]
            Columns routed to the negative terminal
        use_ablation_path : bool
            Route to the RF generator instead of the LCR meter

        Returns
        -------
        bool
            True if the connection was made
        """
        if positive_columns & negative_columns:
            logger.error(
                "Refusing to connect columns on both terminals: {}",
                sorted(positive_columns & negative_columns),
            )
            return False
        return self._device.connect(
            frozenset(positive_columns), frozenset(negative_columns), use_ablation_path
        )

    def disconnect_all(self) -> None:
        """Open every path on the fabric."""
        self._device.disconnect_all()


class ImpedanceMeterInterface(RoleInterface):
    """Interface for the impedance (LCR) meter."""

    def __init__(self, device: ImpedanceMeterProtocol):
        super().__init__(device)

    def is_ready(self) -> bool:
        return self._device.is_ready()

    def wait_until_ready(self, max_attempts: int) -> bool:
        """Poll `is_ready` up to `max_attempts` times.

        Returns
        -------
        bool
            True as soon as the meter reports ready, False if it never did
        """
        for attempt in range(max_attempts):
            if self._device.is_ready():
                if attempt:
                    logger.trace("Meter ready after {} polls", attempt + 1)
                return True
        return False

    def measure(self) -> Tuple[str, str]:
        """Read (magnitude, phase) raw strings. Check readiness first."""
        return self._device.measure()


class DepthInferenceInterface(RoleInterface):
    """Interface for the depth-inference service."""

    def __init__(self, device: DepthInferenceProtocol):
        super().__init__(device)

    def infer(self, request: DepthRequest) -> DepthReply:
        """Exchange one request/reply with the service.

        Raises
        ------
        SideMismatchError
            If the reply names a different side to the request
        InferenceTimeout
            If the service did not answer in time
        MalformedReply
            If the reply could not be parsed
        """
        reply = self._device.infer(request)
        if reply.side != request.side:
            raise SideMismatchError(request.side, reply.side)
        return reply
