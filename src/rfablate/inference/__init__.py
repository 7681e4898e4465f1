"""Depth-inference service access.

- ZmqInferenceClient: REQ client with a bounded wait per exchange
- MockDepthInference: in-process stand-in device
- MockDepthServer: stand-in service over ZeroMQ
"""

from .client import ZmqInferenceClient
from .mock import MockDepthInference, MockDepthServer, mock_depth

__all__ = ["ZmqInferenceClient", "MockDepthInference", "MockDepthServer", "mock_depth"]
