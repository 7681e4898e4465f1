# -*- coding: utf-8 -*-
"""
The experimental system: the devices of one rig, bound to their roles.
"""

from __future__ import annotations

from functools import wraps
from typing import Any, Callable, Optional, ParamSpec, Set, Type, TypeVar

from loguru import logger

from rfablate.device import Device
from rfablate.system.base_config import SystemConfig
from rfablate.system.sysconfig import load_system_config
from rfablate.types import (
    DEPTH_INFERENCE,
    IMPEDANCE_METER,
    SWITCH_FABRIC,
    DeviceRole,
    ValidationError,
    validate_device_role_mapping,
    validate_device_states,
)
from rfablate.types.interfaces import (
    DepthInferenceInterface,
    ImpedanceMeterInterface,
    RoleInterface,
    SwitchFabricInterface,
)

# =============================================================================
# Helpful decorators to enforce/validate behaviour
# =============================================================================

P = ParamSpec("P")
T = TypeVar("T")


def system_requirements(
    required_roles: Set[DeviceRole], optional_roles: Set[DeviceRole] = frozenset()
) -> Callable[[Type[T]], Type[T]]:
    """Decorator to specify required and optional device roles for a system type.

    Examples
    --------
    @system_requirements(
        required_roles={SWITCH_FABRIC, IMPEDANCE_METER},
        optional_roles={DEPTH_INFERENCE}
    )
    class AblationSystem(System):
        pass
    """

    def decorator(cls: Type[T]) -> Type[T]:
        cls._required_roles = set(required_roles)
        cls._optional_roles = set(optional_roles)

        def validate_roles(self, config_roles: Set[DeviceRole]) -> tuple[bool, str]:
            from rfablate.types.validation import validate_system_roles

            is_valid, error_msg = validate_system_roles(
                self._required_roles, self._optional_roles, config_roles
            )
            if not is_valid:
                raise ValueError(
                    f"Invalid roles for {self.__class__.__name__}: {error_msg}"
                )
            return True, ""

        cls.validate_roles = validate_roles
        return cls

    return decorator


def requires_connected_devices(
    *required_roles: DeviceRole,
) -> Callable[[Callable[P, T]], Callable[P, T]]:
    """Decorator to check that required device roles are present and connected.

    Raises
    ------
    ValidationError
        If hardware is not started or devices are not connected
    """

    def decorator(func: Callable[P, T]) -> Callable[P, T]:
        @wraps(func)
        def wrapper(self: System, *args: P.args, **kwargs: P.kwargs) -> T:
            if not self.hardware_started_up:
                raise ValidationError(
                    f"Cannot call {func.__name__}: "
                    "Hardware not started up. Call startup() first."
                )
            for role in required_roles:
                try:
                    device = self.get_device_by_role(role)
                except ValueError as e:
                    raise ValidationError(f"Cannot call {func.__name__}: {str(e)}")
                is_valid, error_msg = validate_device_states(device)
                if not is_valid:
                    raise ValidationError(f"Cannot call {func.__name__}: {error_msg}")
            return func(self, *args, **kwargs)

        return wrapper

    return decorator


# =============================================================================
# System classes
# =============================================================================


class System(object):
    """A set of devices, each bound to one or more roles."""

    _devices: list[Device]

    hardware_started_up: bool = False

    system_name: str
    save_dir: str
    devices_config: dict[DeviceRole, tuple[Type[Device], dict[str, Any]]]
    device_status: dict[str, dict[str, bool | str]]

    def __init__(self, sys_config: str | SystemConfig):
        """
        Parameters
        ----------
        sys_config : str | SystemConfig
            Either a system name to load from config files, or a SystemConfig

        Raises
        ------
        ValueError
            If system configuration is invalid or not found
        """
        self.device_status = dict()
        self._devices = []
        try:
            if isinstance(sys_config, str):
                logger.info(f"Loading system configuration '{sys_config}'")
                config = load_system_config(sys_config)
            else:
                config = sys_config
            self._use_config(config)
            self._init_dev_config(self.devices_config)
        except Exception:
            logger.exception("Error initializing system configuration.")
            raise

    def _use_config(self, sysconfig: SystemConfig):
        for key in sysconfig.__dict__:
            if key[0] != "_":
                setattr(self, key, getattr(sysconfig, key))

    def add_device_with_role(self, device: Device, role: DeviceRole) -> None:
        """Add a device to the system and assign it a role.

        Raises
        ------
        ValueError
            If role is already assigned to a different device
        TypeError
            If device type is incompatible with role
        """
        is_valid, error_msg = role.validate_device_type(type(device))
        if not is_valid:
            raise TypeError(f"Cannot assign role {role}: {error_msg}")

        for existing_device in self._devices:
            if existing_device is not device and existing_device.has_role(role):
                raise ValueError(
                    f"Role {role.__class__.__name__} already assigned to device "
                    f"{existing_device.__class__.__name__}"
                )

        if device not in self._devices:
            self._devices.append(device)
        device._add_role(role)

    def _init_dev_config(
        self, dev_config: dict[DeviceRole, tuple[Type[Device], dict[str, Any]]]
    ) -> None:
        logger.info("Initialising devices.")

        if hasattr(self, "validate_roles"):
            self.validate_roles(set(dev_config.keys()))

        for role, (device_class, config_dict) in dev_config.items():
            device_params = {
                k: v
                for k, v in config_dict.items()
                if not k.startswith("_") and k not in ["role", "type"]
            }
            try:
                device = device_class(**device_params)
            except Exception as e:
                logger.error(f"Failed to initialize {device_class.__name__}: {e}")
                raise
            self.add_device_with_role(device, role)
            logger.info(f"Initialized {device_class.__name__} with role {role}")

        if hasattr(self, "_required_roles"):
            available_devices = {
                role: (type(device), "")
                for device in self._devices
                for role in device.get_roles()
            }
            is_valid, error_msg = validate_device_role_mapping(
                self._required_roles, available_devices
            )
            if not is_valid:
                raise ValueError(
                    f"Missing required roles for {self.__class__.__name__}: {error_msg}"
                )

    def get_metadata(self) -> dict:
        param_dict = {}
        for device in self._devices:
            name = device.__class__.__name__ + "_1"
            while name in param_dict:
                name = name[:-1] + str(int(name[-1]) + 1)
            metadata = device.unroll_metadata()
            if "roles" in metadata:
                metadata["roles"] = [role.__class__.__name__ for role in device.get_roles()]
            param_dict[name] = metadata
        param_dict["system_name"] = self.system_name
        param_dict["system_type"] = self.__class__.__name__
        param_dict["save_dir"] = self.save_dir
        return param_dict

    def connect_devices(self) -> dict[str, dict[str, bool | str]]:
        dev_status: dict[str, dict[str, bool | str]] = dict()
        for device in self._devices:
            ok, msg = device.open()
            name = device.__class__.__name__ + "_1"
            while name in dev_status:
                name = name[:-1] + str(int(name[-1]) + 1)
            dev_status[name] = {"status": ok, "message": msg}
            if not ok:
                logger.error("Could not open {}: {}", device.__class__.__name__, msg)
        self.device_status = dev_status
        return dev_status

    def disconnect_devices(self):
        for device in self._devices:
            try:
                device.close()
            except Exception:
                logger.exception("Error closing {}. Continuing", device.__class__.__name__)

    def startup(self) -> dict[str, dict[str, bool | str]]:
        ret = self.connect_devices()
        self.hardware_started_up = True
        return ret

    def packdown(self):
        self.disconnect_devices()
        self.hardware_started_up = False

    def get_device_by_role(self, role: DeviceRole) -> Device:
        """Get the device that fulfills the specified role.

        Raises
        ------
        ValueError
            If no device fulfills the role
        """
        for device in self._devices:
            if device.has_role(role):
                return device
        raise ValueError(f"No device found for role {role}")

    def get_interface_by_role(self, role: DeviceRole) -> RoleInterface:
        return role.get_interface(self.get_device_by_role(role))

    def has_device_role(self, role: DeviceRole) -> bool:
        return any(d.has_role(role) for d in self._devices)

    def get_device_roles(self) -> set[DeviceRole]:
        return {role for d in self._devices for role in d.get_roles()}


@system_requirements(
    required_roles={SWITCH_FABRIC, IMPEDANCE_METER},
    optional_roles={DEPTH_INFERENCE},
)
class AblationSystem(System):
    """Switch matrix plus LCR meter, optionally a depth-inference service.

    Without a depth-inference device the duty cycle still runs, but no depth
    feedback reaches the ablation groups.
    """

    @requires_connected_devices(SWITCH_FABRIC)
    def switch_fabric(self) -> SwitchFabricInterface:
        return self.get_interface_by_role(SWITCH_FABRIC)

    @requires_connected_devices(IMPEDANCE_METER)
    def impedance_meter(self) -> ImpedanceMeterInterface:
        return self.get_interface_by_role(IMPEDANCE_METER)

    def depth_inference(self) -> Optional[DepthInferenceInterface]:
        if not self.has_device_role(DEPTH_INFERENCE):
            return None
        return self._depth_inference()

    @requires_connected_devices(DEPTH_INFERENCE)
    def _depth_inference(self) -> DepthInferenceInterface:
        return self.get_interface_by_role(DEPTH_INFERENCE)
