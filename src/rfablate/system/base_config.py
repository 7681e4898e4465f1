"""Base configuration class for rfablate systems."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Type

from rfablate.device import Device
from rfablate.electrodes import DEFAULT_TOPOLOGY, ElectrodeTopology
from rfablate.types import DeviceRole

if TYPE_CHECKING:
    from .system import AblationSystem


@dataclass
class SystemConfig:
    """System configuration loaded from an INI file.

    Attributes
    ----------
    system_name : str
        Name of the system configuration
    system_type : Type[AblationSystem]
        Type of system to create
    save_dir : str
        Directory for run data
    topology : ElectrodeTopology
        Face to matrix column wiring of this rig
    devices_config : dict[DeviceRole, tuple[Type[Device], dict[str, Any]]]
        Mapping of device roles to (device_class, parameters) tuples
    """

    system_name: str
    system_type: Type["AblationSystem"]
    save_dir: str = "./rfablate_output/"
    topology: ElectrodeTopology = DEFAULT_TOPOLOGY
    devices_config: dict[DeviceRole, tuple[Type[Device], dict[str, Any]]] = field(
        default_factory=dict
    )
