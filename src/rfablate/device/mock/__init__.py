from .mock_meter import MockImpedanceMeter
from .mock_switch import MockSwitchFabric

__all__ = ["MockImpedanceMeter", "MockSwitchFabric"]
