"""
System configuration and device management.

An `AblationSystem` owns the devices of one rig (switch matrix, LCR meter and
optionally a depth-inference service), checks they fulfil the required roles
and hands out role interfaces to the scheduler and estimator.

Examples
--------
```python
from rfablate.system import AblationSystem
system = AblationSystem("mock")
system.startup()
switch = system.switch_fabric()
```

See Also
--------
rfablate.system.sysconfig : INI system configuration files
"""

from .base_config import SystemConfig
from .sysconfig import (
    install_system_config,
    list_available_systems,
    load_system_config,
)
from .system import (
    AblationSystem,
    System,
    requires_connected_devices,
    system_requirements,
)

__all__ = [
    "SystemConfig",
    "install_system_config",
    "list_available_systems",
    "load_system_config",
    "AblationSystem",
    "System",
    "requires_connected_devices",
    "system_requirements",
]
