"""Device base class.

Every instrument the scheduler drives (switch matrix, LCR meter, inference
service) inherits from `Device` and implements the methods required by the
roles it is meant to fulfil. Role compliance is checked when the device is
added to a system, not by inheritance.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Set, Type, TypeVar

from loguru import logger

if TYPE_CHECKING:
    from rfablate.types import DeviceRole

D = TypeVar("D", bound="Device")

_METADATA_TYPES = (str, int, float, bool, type(None), list, tuple, dict, set, frozenset)


class Device:
    """Base class for all hardware devices.

    Required Methods
    --------------
    - open(): Connect to the hardware, returns (ok, message)
    - close(): Disconnect from the hardware
    - is_connected(): Check connection status

    Attributes
    ----------
    required_config : dict[str, Type]
        Required configuration parameters and their types
    _roles : Set[DeviceRole[Device]]
        Set of roles this device fulfills

    Examples
    --------
    ```python
    class MySwitch(Device):
        required_config = {"resource": str}

        def open(self):
            self._connected = True
            return True, "Connected"

        def connect(self, positive_columns, negative_columns, use_ablation_path):
            ...

        def disconnect_all(self):
            ...
    ```

    See Also
    --------
    rfablate.types.protocols : Protocol definitions
    rfablate.types.roles : Role definitions
    """

    required_config: dict[str, Type] = {}

    _roles: Set[DeviceRole[Device]]

    def __init__(self, **config_kwargs):
        for key, value in config_kwargs.items():
            setattr(self, key, value)
        for key, value in self.required_config.items():
            if not hasattr(self, key):
                logger.error(
                    f"Device {self.__class__.__name__} missing required config key: "
                    + f"{key}"
                )
                raise ValueError(
                    f"Device {self.__class__.__name__} missing required config "
                    + f"key: {key}"
                )
            if not isinstance(getattr(self, key), value):
                logger.error(
                    f"Device {self.__class__.__name__} config key {key} "
                    + f"has wrong type: {type(getattr(self, key))} (expected {value})"
                )
                raise ValueError(
                    f"Device {self.__class__.__name__} config key {key} has "
                    + f"wrong type: {type(getattr(self, key))} (expected {value})"
                )
        self._roles: Set[DeviceRole[Device]] = set()

    def _add_role(self, role: DeviceRole[D]) -> None:
        """Add a role that this device fulfills.

        Note: This should only be called by AblationSystem.add_device_with_role()
        """
        self._roles.add(role)

    def has_role(self, role: DeviceRole[D]) -> bool:
        return role in self._roles

    def get_roles(self) -> Set[DeviceRole["Device"]]:
        return self._roles.copy()

    def open(self) -> tuple[bool, str]:
        raise NotImplementedError()

    def close(self):
        raise NotImplementedError()

    def is_connected(self) -> bool:
        raise NotImplementedError()

    def get_all_attrs(self):
        """
        Return the managed attributes of the device, i.e. the ones whose name
        starts with a single underscore. Driver handles (sessions, sockets,
        generators) are left out.
        """
        attrs = {}
        for key, value in self.__dict__.items():
            if key[0] == "_" and not key.startswith(f"_{self.__class__.__name__}"):
                if not isinstance(value, _METADATA_TYPES):
                    continue
                if isinstance(value, (set, frozenset)):
                    value = sorted(str(v) for v in value)
                attrs[key[1:]] = value
        return attrs

    def unroll_metadata(self):
        return self.get_all_attrs()
