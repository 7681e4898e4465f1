"""NI PXIe-2529 matrix switch, wired as the electrode switch fabric.

Topology "2529/2-Wire 4x32 Matrix". Rows carry the instrument terminals,
columns the electrodes:

- r0 / r1: LCR meter positive / negative
- r2 / r3: RF generator positive / negative
- c31: RF generator relay, closed onto r3 after the electrode paths debounce

The `niswitch` driver is imported on `open()` so the rest of the package
works on machines without NI-SWITCH installed.
"""

from __future__ import annotations

from typing import AbstractSet

from loguru import logger

from rfablate.device.device import Device
from rfablate.electrodes.topology import sort_columns
from rfablate.util import format_error_response

TOPOLOGY = "2529/2-Wire 4x32 Matrix"
LCR_POSITIVE = "r0"
LCR_NEGATIVE = "r1"
RF_POSITIVE = "r2"
RF_NEGATIVE = "r3"
RF_SWITCH = "c31"


class NiPxie2529(Device):
    required_config = {"resource": str}

    def __init__(self, resource: str = "PXI1Slot6", debounce_ms=50, simulate="false"):
        super().__init__(resource=resource)
        self._debounce_ms = int(float(debounce_ms))
        self._simulate = str(simulate).lower() in ("1", "true", "yes")
        self._session = None
        self._niswitch = None

    def open(self) -> tuple[bool, str]:
        try:
            import niswitch

            self._niswitch = niswitch
            self._session = niswitch.Session(
                resource_name=self.resource,
                topology=TOPOLOGY,
                simulate=self._simulate,
                reset_device=True,
            )
            self._session.disconnect_all()
        except ImportError:
            logger.error("niswitch is not installed (pip install rfablate[ni])")
            return False, "niswitch is not installed"
        except Exception:
            logger.exception("Error opening PXIe-2529 session.")
            self._session = None
            return False, f"Error opening PXIe-2529: {format_error_response()}"
        logger.info("Connected to PXIe-2529 at {}", self.resource)
        return True, f"Connected to PXIe-2529 at {self.resource}"

    def close(self):
        if self._session is not None:
            try:
                self._session.disconnect_all()
            finally:
                self._session.close()
                self._session = None

    def is_connected(self) -> bool:
        return self._session is not None

    def disconnect_all(self) -> None:
        self._session.disconnect_all()

    def connect(
        self,
        positive_columns: AbstractSet[str],
        negative_columns: AbstractSet[str],
        use_ablation_path: bool,
    ) -> bool:
        if use_ablation_path:
            pos_row, neg_row = RF_POSITIVE, RF_NEGATIVE
        else:
            pos_row, neg_row = LCR_POSITIVE, LCR_NEGATIVE
        try:
            self._session.disconnect_all()
            self._session.connect_multiple(_connection_list(pos_row, positive_columns))
            self._session.connect_multiple(_connection_list(neg_row, negative_columns))
            self._session.wait_for_debounce(maximum_time_ms=self._debounce_ms)
            if use_ablation_path:
                self._session.connect(RF_NEGATIVE, RF_SWITCH)
                self._session.wait_for_debounce(maximum_time_ms=self._debounce_ms)
        except self._niswitch.Error:
            logger.error("PXIe-2529 connect failed: {}", format_error_response())
            return False
        return True


def _connection_list(row: str, columns: AbstractSet[str]) -> str:
    return ",".join(f"{row}->{col}" for col in sort_columns(columns))
