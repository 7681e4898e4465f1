from __future__ import annotations

import numpy as np

from rfablate.device.device import Device


class MockImpedanceMeter(Device):
    """LCR meter returning noisy impedance/phase around a drifting mean.

    Each read needs `ready_after` failed `is_ready` polls before the meter
    reports ready, so a value larger than the caller's retry cap means the
    meter never becomes ready.
    """

    def __init__(
        self,
        magnitude=1000.0,
        phase=-10.0,
        noise=1.0,
        drift=-0.5,
        ready_after=0,
        seed=None,
        **config,
    ):
        super().__init__(**config)
        self._magnitude = float(magnitude)
        self._phase = float(phase)
        self._noise = float(noise)
        self._drift = float(drift)
        self._ready_after = int(float(ready_after))
        self._rng = np.random.default_rng(None if seed in (None, "") else int(seed))
        self._polls = 0
        self._connected = False
        self.reads = 0

    def open(self):
        self._connected = True
        return True, "MockImpedanceMeter opened"

    def close(self):
        self._connected = False

    def is_connected(self) -> bool:
        return self._connected

    def is_ready(self) -> bool:
        if self._polls >= self._ready_after:
            return True
        self._polls += 1
        return False

    def measure(self) -> tuple[str, str]:
        self._polls = 0
        self.reads += 1
        mag = self._magnitude + self._drift * self.reads
        mag += self._rng.normal(0, self._noise)
        phase = self._phase + self._rng.normal(0, self._noise / 10)
        return f"{mag:.4f}", f"{phase:.4f}"
