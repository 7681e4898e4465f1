"""Message types passed between the scheduler, the estimator and the
depth-inference service."""

from __future__ import annotations

from dataclasses import dataclass

from mashumaro.mixins.msgpack import DataClassMessagePackMixin

from .errors import MalformedReply


@dataclass(frozen=True)
class Message(DataClassMessagePackMixin):
    """Base class for all messages."""

    def __repr__(self):
        msg = self.__class__.__name__ + "("
        msg += ", ".join(f"{k}={v}" for k, v in self.__dict__.items())
        return msg + ")"


@dataclass(frozen=True, repr=False)
class Measurement(Message):
    """One accepted impedance read of one permutation.

    Created by the scheduler after a successful meter read, enqueued once and
    never mutated. `timestamp` is seconds since the run started.
    """

    timestamp: float
    positive_code: str
    negative_code: str
    magnitude: float
    phase: float

    @property
    def side(self) -> str:
        # the face a measurement describes is its negative terminal
        return self.negative_code


@dataclass(frozen=True, repr=False)
class DepthRequest(Message):
    """Request to the depth-inference service.

    Wire format is a comma-joined utf-8 string:
    `time,side,positiveCode,magnitude,phase,baselineMagnitude,baselinePhase`.
    """

    time: float
    side: str
    positive_code: str
    magnitude: float
    phase: float
    baseline_magnitude: float
    baseline_phase: float

    def to_payload(self) -> bytes:
        fields = (
            round(self.time, 3),
            self.side,
            self.positive_code,
            self.magnitude,
            self.phase,
            self.baseline_magnitude,
            self.baseline_phase,
        )
        return ",".join(str(f) for f in fields).encode("utf-8")

    @classmethod
    def from_payload(cls, payload: bytes | str) -> DepthRequest:
        if isinstance(payload, bytes):
            payload = payload.decode("utf-8")
        parts = payload.strip().split(",")
        if len(parts) != 7:
            raise ValueError(f"Expected 7 fields in depth request, got: {payload!r}")
        return cls(
            time=float(parts[0]),
            side=parts[1],
            positive_code=parts[2],
            magnitude=float(parts[3]),
            phase=float(parts[4]),
            baseline_magnitude=float(parts[5]),
            baseline_phase=float(parts[6]),
        )


@dataclass(frozen=True, repr=False)
class DepthReply(Message):
    """Reply from the depth-inference service, wire format `side,depth`."""

    side: str
    depth: float

    def to_payload(self) -> bytes:
        return f"{self.side},{self.depth}".encode("utf-8")

    @classmethod
    def from_payload(cls, payload: bytes | str) -> DepthReply:
        try:
            if isinstance(payload, bytes):
                payload = payload.decode("utf-8")
            side, depth = payload.strip().split(",")
            return cls(side=side.strip(), depth=float(depth))
        except (UnicodeDecodeError, ValueError) as e:
            raise MalformedReply(f"Could not parse depth reply {payload!r}: {e}")
