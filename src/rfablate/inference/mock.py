"""Stand-in depth-inference service for development and tests.

`mock_depth` maps the fractional drop in impedance magnitude from baseline
onto a depth in mm. `MockDepthInference` evaluates it in-process as a device;
`MockDepthServer` serves the same contract over a ZeroMQ REP socket so the
real client can be exercised end to end.
"""

from __future__ import annotations

import threading
import time
from typing import Optional

import zmq
from loguru import logger

from rfablate.device.device import Device
from rfablate.types.messages import DepthReply, DepthRequest
from rfablate.util.defaults import DEFAULT_INFERENCE_HOST

DEPTH_PER_UNIT_DROP = 50.0  # mm of depth for a 100% drop in |Z|


def mock_depth(request: DepthRequest) -> float:
    if request.baseline_magnitude <= 0:
        return 0.0
    drop = (request.baseline_magnitude - request.magnitude) / request.baseline_magnitude
    return max(0.0, drop * DEPTH_PER_UNIT_DROP)


class MockDepthInference(Device):
    def __init__(self, delay_s=0.0, **config):
        super().__init__(**config)
        self._delay_s = float(delay_s)
        self._connected = False
        self.requests: list[DepthRequest] = []

    def open(self):
        self._connected = True
        return True, "MockDepthInference opened"

    def close(self):
        self._connected = False

    def is_connected(self) -> bool:
        return self._connected

    def infer(self, request: DepthRequest) -> DepthReply:
        self.requests.append(request)
        if self._delay_s:
            time.sleep(self._delay_s)
        return DepthReply(side=request.side, depth=mock_depth(request))


class MockDepthServer:
    """REP server answering depth requests with `mock_depth`.

    Parameters
    ----------
    port : int | None
        Port to bind, a random free port if None (read it back from `.port`).
    delay_s : float
        Sleep before each reply, to provoke client timeouts.
    side_override : str | None
        Reply with this side instead of the requested one.
    """

    def __init__(
        self,
        host: str = DEFAULT_INFERENCE_HOST,
        port: Optional[int] = None,
        delay_s: float = 0.0,
        side_override: Optional[str] = None,
    ):
        self.host = host
        self.port = port
        self.delay_s = delay_s
        self.side_override = side_override
        self.handled = 0
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._context = zmq.Context()
        self._socket = self._context.socket(zmq.REP)
        if port is None:
            self.port = self._socket.bind_to_random_port(f"tcp://{host}")
        else:
            self._socket.bind(f"tcp://{host}:{port}")

    def reply_to(self, raw: bytes) -> bytes:
        try:
            request = DepthRequest.from_payload(raw)
        except (UnicodeDecodeError, ValueError):
            logger.error("Malformed depth request: {!r}", raw)
            return b""
        side = self.side_override or request.side
        return DepthReply(side=side, depth=round(mock_depth(request), 3)).to_payload()

    def serve_forever(self, poll_ms: int = 100):
        logger.info("Mock depth inference serving on tcp://{}:{}", self.host, self.port)
        try:
            while not self._stop.is_set():
                if not self._socket.poll(poll_ms, zmq.POLLIN):
                    continue
                raw = self._socket.recv()
                if self.delay_s:
                    time.sleep(self.delay_s)
                self._socket.send(self.reply_to(raw))
                self.handled += 1
        finally:
            self._socket.setsockopt(zmq.LINGER, 0)
            self._socket.close()
            self._context.term()
            logger.info("Mock depth inference stopped")

    def start(self) -> MockDepthServer:
        self._thread = threading.Thread(target=self.serve_forever, daemon=True)
        self._thread.start()
        return self

    def stop(self, timeout: float = 2.0):
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
        elif not self._socket.closed:
            # never served, serve_forever did not get to close it
            self._socket.setsockopt(zmq.LINGER, 0)
            self._socket.close()
            self._context.term()
