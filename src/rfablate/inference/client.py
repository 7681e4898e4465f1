"""ZeroMQ client for the depth-inference service.

One REQ socket, one request in flight. Every exchange is bounded by
`timeout_s`: if no reply arrives the socket is closed with LINGER 0 and
reopened (a REQ socket cannot send again until it has received), and after
`retries` further attempts `InferenceTimeout` is raised so the caller can hold
its last known depth.
"""

from __future__ import annotations

import zmq
from loguru import logger

from rfablate.device.device import Device
from rfablate.types.errors import InferenceTimeout
from rfablate.types.messages import DepthReply, DepthRequest
from rfablate.util.defaults import (
    DEFAULT_INFERENCE_HOST,
    DEFAULT_INFERENCE_PORT,
    DEFAULT_INFERENCE_RETRIES,
    DEFAULT_INFERENCE_TIMEOUT,
)


class ZmqInferenceClient(Device):
    required_config = {"host": str}

    def __init__(
        self,
        host: str = DEFAULT_INFERENCE_HOST,
        port=DEFAULT_INFERENCE_PORT,
        timeout_s=DEFAULT_INFERENCE_TIMEOUT,
        retries=DEFAULT_INFERENCE_RETRIES,
    ):
        super().__init__(host=host)
        self._port = int(float(port))
        self._timeout_s = float(timeout_s)
        self._retries = int(float(retries))
        self._context = None
        self._socket = None

    @property
    def address(self) -> str:
        return f"tcp://{self.host}:{self._port}"

    def open(self) -> tuple[bool, str]:
        self._context = zmq.Context()
        self._open_socket()
        logger.info("Depth inference client connected to {}", self.address)
        return True, f"Depth inference client connected to {self.address}"

    def close(self):
        if self._socket is not None:
            self._socket.setsockopt(zmq.LINGER, 0)
            self._socket.close()
            self._socket = None
        if self._context is not None:
            self._context.term()
            self._context = None

    def is_connected(self) -> bool:
        return self._socket is not None

    def _open_socket(self):
        self._socket = self._context.socket(zmq.REQ)
        self._socket.connect(self.address)

    def _reset_socket(self):
        # REQ socket is stuck waiting for a reply that may never come
        self._socket.setsockopt(zmq.LINGER, 0)
        self._socket.close()
        self._open_socket()

    def infer(self, request: DepthRequest) -> DepthReply:
        """Send `request` and wait for the reply.

        Raises
        ------
        InferenceTimeout
            If no reply arrived within `timeout_s` on any attempt
        MalformedReply
            If the reply could not be parsed
        """
        payload = request.to_payload()
        retries_left = self._retries + 1
        while retries_left:
            logger.debug("*REQUEST* (inference->): {}", payload)
            self._socket.send(payload)
            if self._socket.poll(int(1000 * self._timeout_s), zmq.POLLIN):
                raw = self._socket.recv()
                logger.debug("*RESPONSE* (inference<-): {}", raw)
                return DepthReply.from_payload(raw)
            retries_left -= 1
            logger.warning("No reply from depth inference service at {}", self.address)
            self._reset_socket()
        raise InferenceTimeout(
            f"No reply from {self.address} within {self._timeout_s}s "
            + f"({self._retries + 1} attempts)"
        )
