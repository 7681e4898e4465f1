"""Closed-loop depth estimation from the impedance stream.

Measurements are keyed by side (the negative code of their permutation). The
n-th measurement seen (0-based), with N the nominal count of one sweep:

- n < N: warm-up, discarded.
- N <= n < 2N: baseline, buffered per side. At n == 2N - 1 each side's
  baseline is the triplet average of its last three buffered samples.
- n >= 2N: steady state. Every three samples of a side form a window whose
  triplet average, with the side's baseline, is sent to the inference
  service. The returned depth (1 decimal) enters the side's 3-sample moving
  average and the window is cleared.

After every new depth, single-face ablation groups whose face has reached its
target are deactivated. Groups are never reactivated.
"""

from __future__ import annotations

import asyncio
import queue
import threading
from collections import defaultdict, deque
from typing import TYPE_CHECKING, Mapping, Optional

import numpy as np
from loguru import logger

from rfablate.meas.averaging import discard_and_average
from rfablate.types.errors import (
    InferenceTimeout,
    MalformedReply,
    SideMismatchError,
    ValueUnavailable,
)
from rfablate.types.messages import DepthRequest, Measurement
from rfablate.util.defaults import ESTIMATOR_REARM_S, MOVING_AVG_LEN

if TYPE_CHECKING:
    from rfablate.meas.groups import AblationGroupRegistry
    from rfablate.types.interfaces import DepthInferenceInterface


class DepthEstimator:
    def __init__(
        self,
        measurements: queue.Queue[Measurement],
        registry: AblationGroupRegistry,
        inference: DepthInferenceInterface,
        nominal_count: int,
        targets: Optional[Mapping[str, float]] = None,
        rearm_s: float = ESTIMATOR_REARM_S,
    ):
        if nominal_count < 1:
            raise ValueError(f"nominal_count must be >= 1, got {nominal_count}")
        self.measurements = measurements
        self.registry = registry
        self.inference = inference
        self.nominal_count = nominal_count
        self.targets = dict(targets or {})
        self.rearm_s = rearm_s

        self.count = 0
        self.requests_sent = 0
        self.failed_requests = 0
        self.failed_measurements = 0
        self.baselines: dict[str, tuple[float, float]] = {}
        self._baseline_buffer: dict[str, list[Measurement]] = defaultdict(list)
        self._windows: dict[str, list[Measurement]] = defaultdict(list)
        self._depths: dict[str, deque[float]] = defaultdict(
            lambda: deque(maxlen=MOVING_AVG_LEN)
        )
        self._stop_event = threading.Event()

    @property
    def phase(self) -> str:
        if self.count < self.nominal_count:
            return "WARM_UP"
        if self.count < 2 * self.nominal_count:
            return "BASELINE"
        return "STEADY"

    def current_depth(self, side: str) -> Optional[float]:
        """Moving average of the accepted depths of `side`, None if none yet."""
        depths = self._depths.get(side)
        if not depths:
            return None
        return float(np.mean(depths))

    def get_depths(self) -> dict[str, float]:
        return {side: self.current_depth(side) for side in self._depths if self._depths[side]}

    # ----------------------------------------------------------------------------------

    def process(self, meas: Measurement) -> None:
        idx = self.count
        self.count += 1
        if idx < self.nominal_count:
            return
        if idx < 2 * self.nominal_count:
            self._baseline_buffer[meas.side].append(meas)
            if idx == 2 * self.nominal_count - 1:
                self._compute_baselines()
            return
        self._steady_state(meas)

    def _compute_baselines(self):
        for side, samples in self._baseline_buffer.items():
            recent = samples[-3:]
            mags = [m.magnitude for m in recent]
            phases = [m.phase for m in recent]
            if len(recent) == 3:
                try:
                    baseline = (discard_and_average(mags), discard_and_average(phases))
                except ValueUnavailable:
                    logger.exception("No baseline for side {}.", side)
                    continue
            else:
                logger.warning(
                    "Only {} baseline samples for side {}, using their mean",
                    len(recent),
                    side,
                )
                baseline = (float(np.mean(mags)), float(np.mean(phases)))
            self.baselines[side] = baseline
            logger.info("Baseline for side {}: |Z|={:.4f}, phase={:.4f}", side, *baseline)
        self._baseline_buffer.clear()

    def _steady_state(self, meas: Measurement):
        side = meas.side
        if side not in self.baselines:
            logger.warning("No baseline for side {}, dropping measurement", side)
            return
        window = self._windows[side]
        window.append(meas)
        if len(window) < 3:
            return
        try:
            self._estimate(side, window)
        finally:
            window.clear()

    def _estimate(self, side: str, window: list[Measurement]):
        try:
            magnitude = discard_and_average([m.magnitude for m in window])
            phase = discard_and_average([m.phase for m in window])
        except ValueUnavailable:
            logger.exception("Cannot average window for side {}.", side)
            return
        baseline_magnitude, baseline_phase = self.baselines[side]
        request = DepthRequest(
            time=window[-1].timestamp,
            side=side,
            positive_code=window[-1].positive_code,
            magnitude=magnitude,
            phase=phase,
            baseline_magnitude=baseline_magnitude,
            baseline_phase=baseline_phase,
        )
        self.requests_sent += 1
        try:
            reply = self.inference.infer(request)
        except InferenceTimeout as e:
            self.failed_requests += 1
            logger.warning("{}; holding depth of side {} at {}", e, side, self.current_depth(side))
            return
        except (SideMismatchError, MalformedReply) as e:
            self.failed_requests += 1
            logger.error("Depth estimate for side {} abandoned: {}", side, e)
            return
        self._depths[side].append(round(reply.depth, 1))
        logger.info("Depth side {}: {} (avg {:.2f})", side, reply.depth, self.current_depth(side))
        self._apply_feedback()

    def _apply_feedback(self):
        reached = {}
        for side, target in self.targets.items():
            current = self.current_depth(side)
            if current is not None:
                reached[side] = target - current <= 0
        if any(reached.values()):
            self.registry.deactivate_reached(reached)

    # ----------------------------------------------------------------------------------

    def drain(self) -> int:
        """Process every queued measurement without blocking on the queue."""
        n = 0
        while True:
            try:
                meas = self.measurements.get_nowait()
            except queue.Empty:
                return n
            try:
                self.process(meas)
            except Exception:
                self.failed_measurements += 1
                logger.exception("Error processing {}, dropped.", meas)
            n += 1

    def request_stop(self):
        self._stop_event.set()

    async def run(self):
        """Drain the queue until stopped and empty."""
        logger.info("Depth estimator started (nominal count {})", self.nominal_count)
        while True:
            n = await asyncio.to_thread(self.drain)
            if self._stop_event.is_set() and self.measurements.empty():
                break
            await asyncio.sleep(0 if n else self.rearm_s)
        logger.info(
            "Depth estimator stopped after {} measurements, {} requests ({} failed)",
            self.count,
            self.requests_sent,
            self.failed_requests,
        )

    def get_info(self) -> dict:
        return {
            "phase": self.phase,
            "count": self.count,
            "requests_sent": self.requests_sent,
            "failed_requests": self.failed_requests,
            "failed_measurements": self.failed_measurements,
            "baselines": {k: list(v) for k, v in self.baselines.items()},
            "depths": self.get_depths(),
        }
