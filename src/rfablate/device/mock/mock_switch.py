from __future__ import annotations

import time
from typing import AbstractSet

from loguru import logger

from rfablate.device.device import Device


class MockSwitchFabric(Device):
    """Switch fabric that records every call.

    `fail_columns` (comma separated in INI files) lists columns whose
    connection is refused, to exercise the skip-on-failure path.
    """

    def __init__(self, fail_columns="", debounce_s=0.0, **config):
        super().__init__(**config)
        if isinstance(fail_columns, str):
            fail_columns = [c.strip() for c in fail_columns.split(",") if c.strip()]
        self._fail_columns = frozenset(fail_columns)
        self._debounce_s = float(debounce_s)
        self._connected = False
        self._closed_paths: tuple[frozenset, frozenset, bool] | None = None
        self.connect_calls: list[tuple[frozenset, frozenset, bool]] = []
        self.disconnect_calls = 0

    def open(self):
        self._connected = True
        return True, "MockSwitchFabric opened"

    def close(self):
        self._closed_paths = None
        self._connected = False

    def is_connected(self) -> bool:
        return self._connected

    @property
    def closed_paths(self):
        """(positive, negative, ablation) currently connected, or None."""
        return self._closed_paths

    def connect(
        self,
        positive_columns: AbstractSet[str],
        negative_columns: AbstractSet[str],
        use_ablation_path: bool,
    ) -> bool:
        call = (frozenset(positive_columns), frozenset(negative_columns), use_ablation_path)
        self.connect_calls.append(call)
        self._closed_paths = None
        if self._fail_columns & (call[0] | call[1]):
            logger.debug("Mock switch refusing {}", sorted(call[0] | call[1]))
            return False
        if self._debounce_s:
            time.sleep(self._debounce_s)
        self._closed_paths = call
        return True

    def disconnect_all(self) -> None:
        self.disconnect_calls += 1
        self._closed_paths = None
