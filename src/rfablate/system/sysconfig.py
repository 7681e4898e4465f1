"""System configuration handling.

Systems are described in INI files, one section per system:

    [bench]
    system_type = AblationSystem
    save_dir = ./output/

    # Electrode wiring (optional, default is the PXIe-2529 applicator)
    internal = N,E,S,W,B,T
    external = X,Y,Z
    face.N = c0,c1,c2,c3

    # Devices, keyed by role prefix
    device.switch_fabric.type = NiPxie2529
    device.switch_fabric.resource = PXI1Slot6

Package defaults live in `rfablate/system/systems/*.ini`; sections in the
user file `~/.rfablate/systems.ini` take precedence.

See Also
--------
rfablate.system.system : AblationSystem
rfablate.types.roles : Device role definitions
"""

from __future__ import annotations

from configparser import ConfigParser
from pathlib import Path

from loguru import logger

from rfablate.electrodes import DEFAULT_TOPOLOGY, ElectrodeTopology
from rfablate.system.base_config import SystemConfig
from rfablate.types import PREFIX_TO_ROLE, get_valid_device_types
from rfablate.util.defaults import USER_DIR

# Populated when needed, system.py imports this module
VALID_SYSTEM_TYPES = {}

PACKAGE_SYSTEMS_DIR = Path(__file__).parent / "systems"


def user_systems_file() -> Path:
    return USER_DIR / "systems.ini"


def _parser() -> ConfigParser:
    config = ConfigParser()
    config.optionxform = str  # face codes are case sensitive
    return config


def _valid_system_types() -> dict:
    if not VALID_SYSTEM_TYPES:
        from rfablate.system.system import AblationSystem

        VALID_SYSTEM_TYPES.update({"AblationSystem": AblationSystem})
    return VALID_SYSTEM_TYPES


def validate_system_config(config: ConfigParser, section: str) -> tuple[bool, str]:
    """Validate system configuration section.

    Returns
    -------
    tuple[bool, str]
        (is_valid, error_message)
    """
    if "system_type" not in config[section] or "save_dir" not in config[section]:
        return False, "Missing required fields: system_type and save_dir"

    system_type = config[section]["system_type"]
    if system_type not in _valid_system_types():
        return False, f"Invalid system type: {system_type}"

    valid_types = get_valid_device_types()
    for key in config[section]:
        if key.startswith("device.") and key.endswith(".type"):
            prefix = key[len("device.") : -(len(".type"))]
            if prefix not in PREFIX_TO_ROLE:
                return False, f"Invalid device prefix: {prefix}"
            dev_type = config[section][key]
            if dev_type not in valid_types:
                return False, f"Invalid device type: {dev_type}"
    return True, ""


def _find_section(config: ConfigParser, system_name: str) -> str | None:
    for section in config.sections():
        if section.lower() == system_name.lower():
            return section
    return None


def load_system_config(system_name: str) -> SystemConfig:
    """Load system configuration from INI file.

    Search order:
    1. ~/.rfablate/systems.ini
    2. rfablate/system/systems/<system_name>.ini, then every other package file

    Raises
    ------
    ValueError
        If the system is not found or its configuration is invalid
    """
    user_file = user_systems_file()
    if user_file.exists():
        config = _parser()
        config.read(user_file)
        section = _find_section(config, system_name)
        if section is not None:
            logger.debug("Loading system '{}' from {}", section, user_file)
            return _create_system_config(config, section)

    package_file = PACKAGE_SYSTEMS_DIR / f"{system_name.lower()}.ini"
    candidates = [package_file] + sorted(
        p for p in PACKAGE_SYSTEMS_DIR.glob("*.ini") if p != package_file
    )
    for path in candidates:
        if not path.exists():
            continue
        config = _parser()
        config.read(path)
        section = _find_section(config, system_name)
        if section is not None:
            logger.debug("Loading system '{}' from {}", section, path)
            return _create_system_config(config, section)

    raise ValueError(
        f"System '{system_name}' not found in:\n"
        f"- User config: {user_file}\n"
        f"- Package config: {PACKAGE_SYSTEMS_DIR}"
    )


def list_available_systems() -> dict[str, str]:
    """Map system names to their source ('package' or 'user').

    User configurations override package defaults of the same name.
    """
    systems = {}
    for path in sorted(PACKAGE_SYSTEMS_DIR.glob("*.ini")):
        config = _parser()
        config.read(path)
        for section in config.sections():
            systems[section] = "package"

    user_file = user_systems_file()
    if user_file.exists():
        config = _parser()
        config.read(user_file)
        for section in config.sections():
            systems[section] = "user"
    return systems


def install_system_config(name: str) -> None:
    """Copy a package system configuration into the user file.

    Raises
    ------
    FileNotFoundError
        If no package configuration has that name
    ValueError
        If the user file already has a system of that name
    """
    source = None
    for path in sorted(PACKAGE_SYSTEMS_DIR.glob("*.ini")):
        config = _parser()
        config.read(path)
        section = _find_section(config, name)
        if section is not None:
            source = (config, section)
            break
    if source is None:
        raise FileNotFoundError(f"Package configuration '{name}' not found")

    user_file = user_systems_file()
    user_config = _parser()
    if user_file.exists():
        user_config.read(user_file)
        if _find_section(user_config, name) is not None:
            raise ValueError(f"System '{name}' already exists in user configuration")

    config, section = source
    user_config[section] = dict(config[section])
    user_file.parent.mkdir(parents=True, exist_ok=True)
    with user_file.open("w") as f:
        user_config.write(f)
    logger.info("Installed system '{}' to {}", section, user_file)


def _split(value: str) -> list[str]:
    return [v.strip() for v in value.split(",") if v.strip()]


def _create_topology(section) -> ElectrodeTopology:
    face_keys = {k[len("face.") :]: _split(v) for k, v in section.items() if k.startswith("face.")}
    if not face_keys and "internal" not in section and "external" not in section:
        return DEFAULT_TOPOLOGY
    columns = {k: tuple(v) for k, v in DEFAULT_TOPOLOGY.columns.items()}
    columns.update({k: tuple(v) for k, v in face_keys.items()})
    internal = _split(section.get("internal", ",".join(DEFAULT_TOPOLOGY.internal)))
    external = _split(section.get("external", ",".join(DEFAULT_TOPOLOGY.external)))
    return ElectrodeTopology(
        columns={f: columns[f] for f in internal + external if f in columns},
        internal=tuple(internal),
        external=tuple(external),
    )


def _create_system_config(config: ConfigParser, system_name: str) -> SystemConfig:
    """Create a SystemConfig instance from a ConfigParser section.

    Raises
    ------
    ValueError
        If configuration is invalid
    """
    is_valid, error_msg = validate_system_config(config, system_name)
    if not is_valid:
        raise ValueError(error_msg)

    section = config[system_name]
    system_type = _valid_system_types()[section["system_type"]]
    system_config = SystemConfig(
        system_name=system_name,
        system_type=system_type,
        save_dir=section["save_dir"],
        topology=_create_topology(section),
    )

    devices: dict[str, dict[str, str]] = {}
    for key in section:
        if key.startswith("device."):
            _, prefix, param = key.split(".", 2)
            devices.setdefault(prefix, {})[param] = section[key]

    device_types = get_valid_device_types()
    for prefix, params in devices.items():
        if "type" not in params:
            logger.warning("No type for device '{}', skipping", prefix)
            continue
        role = PREFIX_TO_ROLE[prefix]
        device_class = device_types[params.pop("type")]
        system_config.devices_config[role] = (device_class, params)

    return system_config
