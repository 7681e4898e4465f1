"""Duty-cycle scheduler: pre-charge, measurement sweeps and ablation pulses.

States::

    STOPPED --start--> PRE_ABLATION --settle--> IN_MEASUREMENT
    IN_MEASUREMENT --work queued--> IN_ABLATION --queue empty--> IN_MEASUREMENT
    IN_MEASUREMENT --no work / max_cycles--> COMPLETE
    any --stop requested / error--> STOPPED

Each tick does the work of the current state synchronously (hardware calls
block it) and returns how long to wait before the next tick. `run` executes
ticks one at a time in a worker thread and waits out the delay on a
threading event, so ticks never overlap and a stop request cuts a hold short.
COMPLETE and STOPPED are terminal: the switch is opened, the measurement log
closed, and the scheduler cannot be restarted.
"""

from __future__ import annotations

import asyncio
import math
import queue
import threading
import time
import types
from collections import deque
from typing import TYPE_CHECKING, Callable, Optional, Sequence

import numpy as np
from loguru import logger

from rfablate.types.messages import Measurement

if TYPE_CHECKING:
    from rfablate.electrodes import Permutation
    from rfablate.meas.groups import AblationGroup, AblationGroupRegistry
    from rfablate.types.config import RunConfig
    from rfablate.types.interfaces import ImpedanceMeterInterface, SwitchFabricInterface
    from rfablate.util.save import MeasurementLog

SCHED_STATE = types.SimpleNamespace()
SCHED_STATE.STOPPED = "STOPPED"
SCHED_STATE.PRE_ABLATION = "PRE_ABLATION"
SCHED_STATE.IN_MEASUREMENT = "IN_MEASUREMENT"
SCHED_STATE.IN_ABLATION = "IN_ABLATION"
SCHED_STATE.COMPLETE = "COMPLETE"

TERMINAL_STATES = (SCHED_STATE.STOPPED, SCHED_STATE.COMPLETE)


class DutyCycleScheduler:
    state = SCHED_STATE.STOPPED

    def __init__(
        self,
        switch: SwitchFabricInterface,
        meter: ImpedanceMeterInterface,
        permutations: Sequence[Permutation],
        registry: AblationGroupRegistry,
        precharge: Permutation,
        measurements: queue.Queue[Measurement],
        config: RunConfig,
        measurement_log: Optional[MeasurementLog] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        if not permutations:
            raise ValueError("No measurement permutations to sweep")
        self.switch = switch
        self.meter = meter
        self.permutations = tuple(permutations)
        self.registry = registry
        self.precharge = precharge
        self.measurements = measurements
        self.config = config
        self.measurement_log = measurement_log
        self._clock = clock
        self._rng = np.random.default_rng(config.seed)
        self._stop_event = threading.Event()
        self._tick_lock = threading.Lock()
        self._work: deque[tuple[AblationGroup, int]] = deque()
        self._t0: Optional[float] = None
        self._started = False

        self.is_complete = False
        self.cycles = 0  # completed measurement sweeps
        self.measured = 0
        self.skipped = 0
        self.pulses = 0

    # ----------------------------------------------------------------------------------
    # =================================== API ==========================================
    # ----------------------------------------------------------------------------------

    def start(self):
        if self._started:
            raise RuntimeError("Scheduler already started, build a new one for a new run.")
        self._started = True
        self._t0 = self._clock()
        self._stop_event.clear()
        self.registry.activate_all()
        self.state = SCHED_STATE.PRE_ABLATION
        logger.info(
            "Scheduler started: {} permutations x {} repeats, {} ablation groups",
            len(self.permutations),
            self.config.sweep_repeats,
            len(self.registry),
        )

    def request_stop(self):
        """Stop at the next unit of work. In-flight hardware calls complete."""
        logger.info("Stop requested (state {})", self.state)
        self._stop_event.set()

    @property
    def stop_requested(self) -> bool:
        return self._stop_event.is_set()

    def get_state(self) -> str:
        return self.state

    def elapsed(self) -> float:
        if self._t0 is None:
            return 0.0
        return self._clock() - self._t0

    def get_info(self) -> dict:
        return {
            "state": self.state,
            "elapsed_s": self.elapsed(),
            "cycles": self.cycles,
            "measured": self.measured,
            "skipped": self.skipped,
            "pulses": self.pulses,
            "queued_groups": [group.name for group, _ in self._work],
            "is_complete": self.is_complete,
        }

    async def run(self) -> str:
        """Run ticks until a terminal state. Starts the scheduler if needed."""
        if not self._started:
            self.start()
        try:
            while self.state not in TERMINAL_STATES:
                delay = await asyncio.to_thread(self.tick)
                if self.state in TERMINAL_STATES:
                    break
                if delay > 0:
                    await asyncio.to_thread(self._stop_event.wait, delay)
                else:
                    await asyncio.sleep(0)
        finally:
            # a cancelled to_thread keeps running its tick; wait for it before
            # opening the switch so it cannot reconnect a path afterwards
            self._stop_event.set()
            with self._tick_lock:
                if self.state not in TERMINAL_STATES:
                    self._set_state(SCHED_STATE.STOPPED)
                    self._shutdown()
        return self.state

    def tick(self) -> float:
        """Do one unit of work. Returns the delay (s) before the next tick."""
        with self._tick_lock:
            if self.state in TERMINAL_STATES:
                return 0.0
            try:
                next_state, delay = self._router(self.state)
            except Exception:
                logger.exception("Error in scheduler state {}.", self.state)
                next_state, delay = SCHED_STATE.STOPPED, 0.0
            self._set_state(next_state)
            if next_state in TERMINAL_STATES:
                self._shutdown()
                return 0.0
            return delay

    # ----------------------------------------------------------------------------------
    # ============================= STATE MACHINE - STATES =============================
    # ----------------------------------------------------------------------------------

    def _set_state(self, next_state: str):
        if self.state in TERMINAL_STATES and next_state != self.state:
            logger.warning("Scheduler is {}, ignoring move to {}", self.state, next_state)
            return
        if next_state != self.state:
            logger.info("Scheduler state: {} -> {}", self.state, next_state)
        self.state = next_state

    def _router(self, state: str) -> tuple[str, float]:
        match state:
            case SCHED_STATE.PRE_ABLATION:
                return self._state_pre_ablation()
            case SCHED_STATE.IN_MEASUREMENT:
                return self._state_in_measurement()
            case SCHED_STATE.IN_ABLATION:
                return self._state_in_ablation()
            case _:
                return state, 0.0

    def _state_pre_ablation(self) -> tuple[str, float]:
        if self._stop_event.is_set():
            return SCHED_STATE.STOPPED, 0.0
        self.switch.disconnect_all()
        ok = self.switch.connect(
            self.precharge.positive_columns, self.precharge.negative_columns, True
        )
        if not ok:
            logger.error("Could not connect pre-charge permutation, skipping settle")
            return SCHED_STATE.IN_MEASUREMENT, 0.0
        logger.info("Pre-charge connected, settling {} ms", self.config.pre_ablation_ms)
        return SCHED_STATE.IN_MEASUREMENT, self.config.pre_ablation_ms / 1000

    def _state_in_measurement(self) -> tuple[str, float]:
        self.switch.disconnect_all()
        for _ in range(self.config.sweep_repeats):
            for perm in self._sweep_order():
                if self._stop_event.is_set():
                    return SCHED_STATE.STOPPED, 0.0
                self._measure(perm)
        self.switch.disconnect_all()
        self.cycles += 1
        logger.debug("Sweep {} done, {} measurements so far", self.cycles, self.measured)

        if self.config.max_cycles and self.cycles >= self.config.max_cycles:
            logger.info("Reached {} measurement cycles", self.cycles)
            return SCHED_STATE.COMPLETE, 0.0

        self._work.extend(self.registry.collect_work())
        if not self._work:
            logger.info("No ablation groups left to run")
            return SCHED_STATE.COMPLETE, 0.0
        return SCHED_STATE.IN_ABLATION, 0.0

    def _state_in_ablation(self) -> tuple[str, float]:
        if self._stop_event.is_set():
            return SCHED_STATE.STOPPED, 0.0
        if not self._work:
            return SCHED_STATE.IN_MEASUREMENT, 0.0
        group, hold_ms = self._work.popleft()
        self.switch.disconnect_all()
        if self.switch.connect(group.pos_electrodes, group.neg_electrodes, True):
            self.pulses += 1
            logger.info("Ablating {} for {} ms", group.name, hold_ms)
        else:
            logger.error("Could not connect ablation group {}, skipping", group.name)
            hold_ms = 0
        next_state = SCHED_STATE.IN_ABLATION if self._work else SCHED_STATE.IN_MEASUREMENT
        return next_state, hold_ms / 1000

    # ----------------------------------------------------------------------------------
    # ================================== HELPERS =======================================
    # ----------------------------------------------------------------------------------

    def _sweep_order(self) -> list[Permutation]:
        if not self.config.shuffle:
            return list(self.permutations)
        return [self.permutations[i] for i in self._rng.permutation(len(self.permutations))]

    def _measure(self, perm: Permutation) -> Optional[Measurement]:
        self.switch.disconnect_all()
        if not self.switch.connect(perm.positive_columns, perm.negative_columns, False):
            logger.error("Could not connect {}, skipping", perm)
            self.skipped += 1
            return None
        if not self.meter.wait_until_ready(self.config.ready_retries):
            logger.warning("Meter not ready after {} polls on {}", self.config.ready_retries, perm)
            self.skipped += 1
            return None
        raw_mag, raw_phase = self.meter.measure()
        try:
            magnitude, phase = float(raw_mag), float(raw_phase)
        except ValueError:
            logger.error("Unreadable meter values ({!r}, {!r}) on {}", raw_mag, raw_phase, perm)
            self.skipped += 1
            return None
        if not (math.isfinite(magnitude) and math.isfinite(phase)):
            logger.error("Non-finite meter values ({!r}, {!r}) on {}", raw_mag, raw_phase, perm)
            self.skipped += 1
            return None
        meas = Measurement(
            timestamp=self.elapsed(),
            positive_code=perm.positive_label,
            negative_code=perm.negative_label,
            magnitude=magnitude,
            phase=phase,
        )
        self.measurements.put(meas)
        if self.measurement_log is not None:
            self.measurement_log.write(meas)
        self.measured += 1
        logger.trace("Measured {}", meas)
        return meas

    def _shutdown(self):
        self.is_complete = self.state == SCHED_STATE.COMPLETE
        self._work.clear()
        try:
            self.switch.disconnect_all()
        except Exception:
            logger.exception("Error opening switch paths at shutdown.")
        if self.measurement_log is not None:
            self.measurement_log.close()
        logger.info(
            "Scheduler finished in {} after {} cycles ({} measurements, {} pulses)",
            self.state,
            self.cycles,
            self.measured,
            self.pulses,
        )
