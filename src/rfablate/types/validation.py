"""Validation utilities for device roles and states.

Systems declare which roles they require and which are optional; these
helpers check that a configuration fulfils them with suitable devices.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Set, Type

if TYPE_CHECKING:
    from rfablate.device import Device

    from .roles import DeviceRole


def _get_base_classes(cls: Type) -> list[str]:
    """Get names of class and all its base classes."""
    return [cls.__name__] + [base.__name__ for base in cls.__mro__[1:]]


class ValidationError(Exception):
    """Base exception for validation errors."""

    pass


def validate_device_role_mapping(
    roles: Set["DeviceRole"],
    device_config: dict["DeviceRole", tuple[Type["Device"], str]],
    allow_missing: bool = False,
) -> tuple[bool, str]:
    """Validate that device roles map to actual device types.

    Parameters
    ----------
    roles : Set[DeviceRole]
        The roles to validate
    device_config : dict[DeviceRole, tuple[Type[Device], str]]
        Mapping of roles to (device_class, config) tuples
    allow_missing : bool, optional
        If True, missing roles are allowed, by default False

    Returns
    -------
    tuple[bool, str]
        (is_valid, error_message)
    """
    for role in roles:
        if role not in device_config:
            if not allow_missing:
                return False, f"Missing required role: {role}"
            continue

        device_class = device_config[role][0]
        is_valid, error_msg = role.validate_device_type(device_class)
        if not is_valid:
            return False, error_msg

    return True, ""


def validate_system_roles(
    required_roles: Set["DeviceRole"],
    optional_roles: Set["DeviceRole"],
    config_roles: Set["DeviceRole"],
) -> tuple[bool, str]:
    """Validate that a set of roles meets system requirements.

    Returns
    -------
    tuple[bool, str]
        (is_valid, error_message)
    """
    missing_required = required_roles - config_roles
    invalid_roles = config_roles - (required_roles | optional_roles)

    if missing_required:
        return False, f"Missing required roles: {sorted(str(r) for r in missing_required)}"
    if invalid_roles:
        return False, f"Invalid roles: {sorted(str(r) for r in invalid_roles)}"
    return True, ""


def validate_device_states(device: Device) -> tuple[bool, str]:
    if not device.is_connected():
        return False, f"Device {device.__class__.__name__} is not connected"
    return True, ""
