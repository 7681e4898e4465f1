# -*- coding: utf-8 -*-
"""
Hardware device implementations for rfablate.

- Switch fabric: NI PXIe-2529 matrix (NiPxie2529), MockSwitchFabric
- Impedance meter: Hameg HM8118 LCR bridge (HM8118), MockImpedanceMeter

Each device class derives from `Device` and implements the methods of the
roles it fulfils (see rfablate.types.protocols). The depth-inference devices
live in rfablate.inference.

See Also
--------
rfablate.system : System configuration and management
rfablate.types.roles : Device role definitions
"""

from .device import Device
from .hm8118 import HM8118
from .mock import MockImpedanceMeter, MockSwitchFabric
from .ni_switch import NiPxie2529

__all__ = [
    "Device",
    "HM8118",
    "MockImpedanceMeter",
    "MockSwitchFabric",
    "NiPxie2529",
]
