"""Hameg HM8118 LCR bridge over VISA (serial).

The meter is recalled to stored setup 0 on open, checked with `*OPC?` and set
to the measurement frequency (100 kHz). `XALL?` returns the configured
primary/secondary values, which for setup 0 are impedance magnitude and
phase angle.
"""

import pyvisa
from loguru import logger

from rfablate.device.device import Device
from rfablate.util import format_error_response

EXPECTED_IDN = "HAMEG Instruments, HM8118"
DEFAULT_FREQUENCY = 100000


class HM8118(Device):
    required_config = {"visa_address": str}

    def __init__(
        self,
        visa_address: str = "ASRL3::INSTR",
        frequency=DEFAULT_FREQUENCY,
        timeout_ms=2000,
        open_retries=100,
    ):
        super().__init__(visa_address=visa_address)
        self._frequency = int(float(frequency))
        self._timeout_ms = int(float(timeout_ms))
        self._open_retries = int(float(open_retries))
        self.rm = None
        self.inst = None

    def open(self) -> tuple[bool, str]:
        try:
            self.rm = pyvisa.ResourceManager()
            self.inst = self.rm.open_resource(self.visa_address)
            self.inst.timeout = self._timeout_ms
            self.inst.read_termination = "\r"
            self.inst.write_termination = "\r"
            self.inst.write("*RCL 0")
            if not any(self.is_ready() for _ in range(self._open_retries)):
                raise RuntimeError("HM8118 did not report ready after *RCL 0")
            if not self.set_frequency(self._frequency):
                logger.warning("HM8118 did not confirm frequency {}", self._frequency)
        except Exception:
            logger.exception("Error opening HM8118.")
            self.close()
            return False, f"Error opening HM8118: {format_error_response()}"
        logger.info("Connected to HM8118 at {}", self.visa_address)
        return True, f"Connected to HM8118 at {self.visa_address}"

    def close(self):
        if self.inst is not None:
            self.inst.close()
            self.inst = None
        if self.rm is not None:
            self.rm.close()
            self.rm = None

    def is_connected(self) -> bool:
        return self.inst is not None

    def test_connection(self) -> bool:
        try:
            idn = self.inst.query("*IDN?").strip()
        except pyvisa.errors.VisaIOError:
            logger.error("HM8118 *IDN? failed: {}", format_error_response())
            return False
        logger.debug("HM8118 IDN: {}", idn)
        return idn.startswith(EXPECTED_IDN)

    def is_ready(self) -> bool:
        try:
            return self.inst.query("*OPC?").strip() == "1"
        except pyvisa.errors.VisaIOError:
            return False

    def measure(self) -> tuple[str, str]:
        """Read `XALL?` and split it into (magnitude, phase).

        An IO timeout returns empty strings, which the caller treats as a
        failed read.
        """
        try:
            reply = self.inst.query("XALL?")
        except pyvisa.errors.VisaIOError:
            logger.error("HM8118 XALL? failed: {}", format_error_response())
            return "", ""
        parts = reply.strip().split(",")
        if len(parts) < 2:
            logger.error("Unexpected XALL? reply: {!r}", reply)
            return "", ""
        return parts[0].strip(), parts[1].strip()

    def set_frequency(self, frequency: int) -> bool:
        """Set the test frequency (Hz) and verify it was accepted."""
        self.inst.write(f"FREQ {frequency}")
        reply = self.inst.query("FREQ?").strip()
        try:
            return int(float(reply)) == frequency
        except ValueError:
            return False
