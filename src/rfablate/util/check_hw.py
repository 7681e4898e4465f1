from typing import Callable, Dict, Optional

import pyvisa
from loguru import logger


def list_visa_devices(
    filter_string: Optional[str] = None,
    model_filter: Optional[str] = None,
    detailed: bool = True,
    termination: str = "\n",
    resource_manager: Optional[pyvisa.ResourceManager] = None,
    progress_callback: Optional[Callable[[int, int, str], None]] = None,
) -> Dict[str, Dict[str, str]] | Dict[str, str]:
    """List available VISA devices and query their identification.

    Args:
        filter_string: Optional string to filter resources (e.g., "ASRL" or "USB")
        model_filter: Optional string to filter devices by model name (e.g. "HM8118")
        detailed: If True, return detailed status info. If False, just return IDN strings
        termination: Read/write termination. The HM8118 uses "\\r".
        resource_manager: Optional ResourceManager to use. If None, creates one
        progress_callback: Optional callback function(current, total, message)

    Returns:
        If detailed=True:
            Dictionary mapping VISA addresses to device info dictionaries containing:
            - idn: Full identification string
            - status: Connection/query status ('connected', 'error')
            - error: Error message if query failed
        If detailed=False:
            Dictionary mapping VISA addresses to IDN strings
    """
    owns_rm = False
    if resource_manager is None:
        resource_manager = pyvisa.ResourceManager()
        owns_rm = True

    try:
        devices = {}
        resources = resource_manager.list_resources()
        total_resources = len(resources)

        for idx, resource in enumerate(resources):
            if progress_callback:
                progress_callback(idx, total_resources, f"Scanning {resource}")

            if filter_string and filter_string not in resource:
                continue

            device_info = (
                {"idn": "", "status": "unknown", "error": ""} if detailed else None
            )

            inst = None
            try:
                inst = resource_manager.open_resource(resource)
                inst.timeout = 2000  # ms
                inst.read_termination = termination
                inst.write_termination = termination

                idn = inst.query("*IDN?").strip()
                if idn.count(",") < 3:
                    logger.debug(f"Got non-standard response from {resource}: {idn}")

                if model_filter and model_filter not in idn:
                    continue

                if detailed:
                    device_info["idn"] = idn
                    device_info["status"] = "connected"
                    devices[resource] = device_info
                else:
                    devices[resource] = idn

                logger.debug(f"Found device at {resource}: {idn}")

            except Exception as e:
                if detailed:
                    device_info["status"] = "error"
                    device_info["error"] = str(e)
                    devices[resource] = device_info
                logger.debug(f"Error with resource {resource}: {str(e)}")
            finally:
                if inst is not None:
                    try:
                        inst.close()
                    except Exception:
                        logger.trace(f"Could not close {resource}")

        return devices

    finally:
        if owns_rm:
            resource_manager.close()
