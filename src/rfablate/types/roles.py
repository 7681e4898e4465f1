"""Device role definitions.

A role connects a device to the interface the scheduler and estimator use,
and checks that the device implements the role's protocol.

1. Protocols (protocols.py) - required methods for each role
2. Interfaces (interfaces.py) - what the core talks to
3. Roles (this file) - connect devices to interfaces and validate protocols

Example
-------
    system.add_device_with_role(MockSwitchFabric(), SWITCH_FABRIC)
    switch = system.get_interface_by_role(SWITCH_FABRIC)

See Also
--------
protocols.py : Protocol definitions
interfaces.py : Interface implementations
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Generic, Type, TypeVar, get_args

from loguru import logger

from rfablate.types.interfaces import (
    DepthInferenceInterface,
    ImpedanceMeterInterface,
    RoleInterface,
    SwitchFabricInterface,
)
from rfablate.types.protocols import (
    DepthInferenceProtocol,
    ImpedanceMeterProtocol,
    SwitchFabricProtocol,
)

if TYPE_CHECKING:
    from rfablate.device import Device

D = TypeVar("D", bound="Device")

# Map of device type names to classes
# Populated on first access via get_valid_device_types()
VALID_DEVICE_TYPES = {}


def get_valid_device_types() -> dict[str, Type["Device"]]:
    """Get mapping of device type names to device classes.

    Notes
    -----
    Lazily imports device classes to avoid circular imports. Hardware driver
    packages (niswitch, the VISA backend) are only imported when a device is
    opened, so every type is always listed here.
    """
    global VALID_DEVICE_TYPES

    if not VALID_DEVICE_TYPES:
        from rfablate.device import (
            HM8118,
            MockImpedanceMeter,
            MockSwitchFabric,
            NiPxie2529,
        )
        from rfablate.inference import MockDepthInference, ZmqInferenceClient

        VALID_DEVICE_TYPES.update(
            {
                "MockSwitchFabric": MockSwitchFabric,
                "MockImpedanceMeter": MockImpedanceMeter,
                "MockDepthInference": MockDepthInference,
                "NiPxie2529": NiPxie2529,
                "HM8118": HM8118,
                "ZmqInferenceClient": ZmqInferenceClient,
            }
        )
        logger.trace("Registered device types: {}", list(VALID_DEVICE_TYPES))

    return VALID_DEVICE_TYPES


class DeviceRole(Generic[D]):
    """Base class for device roles.

    Each role specifies a protocol that devices must implement and the
    interface class used to access them.

    Type Parameters
    --------------
    D : Type[Device]
        The device protocol type that can fulfill this role
    """

    interface_class: Type[RoleInterface] = None

    def __init__(self) -> None:
        self.required_type = get_args(self.__class__.__orig_bases__[0])[0]

    def get_interface(self, device: Device) -> RoleInterface:
        """Wrap `device` in this role's interface.

        Raises
        ------
        NotImplementedError
            If role doesn't define an interface class
        """
        if not self.interface_class:
            raise NotImplementedError("Role must define interface_class")
        return self.interface_class(device)

    def validate_device_type(self, device_class: type["Device"]) -> tuple[bool, str]:
        """Validate if a device class can fulfill this role.

        Returns
        -------
        tuple[bool, str]
            (is_valid, error_message), error_message empty if valid
        """
        from typing import ForwardRef

        from rfablate.types.validation import _get_base_classes

        if isinstance(self.required_type, ForwardRef):
            base_classes = _get_base_classes(device_class)
            if self.required_type.__forward_arg__ not in base_classes:
                return False, (
                    f"Role {self} requires device type {self.required_type.__forward_arg__}, "
                    f"got {device_class.__name__}"
                )
        else:
            missing_methods = [
                method_name
                for method_name in self.required_type.__annotations__
                if not hasattr(device_class, method_name)
            ]
            if missing_methods:
                return False, (
                    f"Role {self} requires device implementing {self.required_type.__name__}, "
                    f"but {device_class.__name__} is missing methods: {', '.join(missing_methods)}"
                )
        return True, ""

    def __str__(self) -> str:
        for name, value in globals().items():
            if isinstance(value, DeviceRole) and value is self:
                return name
        return f"{self.__class__.__name__}"

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}()"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, DeviceRole):
            return NotImplemented
        return type(self) == type(other)

    def __hash__(self) -> int:
        return hash(type(self))


class SwitchFabric(DeviceRole[SwitchFabricProtocol]):
    """Electrode switch matrix, shared by the LCR meter and RF generator."""

    interface_class = SwitchFabricInterface


class ImpedanceMeter(DeviceRole[ImpedanceMeterProtocol]):
    """LCR meter read during measurement sweeps."""

    interface_class = ImpedanceMeterInterface


class DepthInference(DeviceRole[DepthInferenceProtocol]):
    """External depth-inference service."""

    interface_class = DepthInferenceInterface


# Singleton instances (use these)
SWITCH_FABRIC = SwitchFabric()
IMPEDANCE_METER = ImpedanceMeter()
DEPTH_INFERENCE = DepthInference()

# Map device prefix in config to role singleton
PREFIX_TO_ROLE = {
    "switch_fabric": SWITCH_FABRIC,
    "impedance_meter": IMPEDANCE_METER,
    "depth_inference": DEPTH_INFERENCE,
}

__all__ = [
    "DeviceRole",
    "SwitchFabric",
    "ImpedanceMeter",
    "DepthInference",
    "SWITCH_FABRIC",
    "IMPEDANCE_METER",
    "DEPTH_INFERENCE",
    "PREFIX_TO_ROLE",
    "get_valid_device_types",
]
