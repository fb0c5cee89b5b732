"""
Configuration for the OSC bridge.

Configuration is explicit: a ServerConfig is built once at startup (YAML file
plus CLI overrides) and handed to ListenerService; each /start request turns
its JSON body into an immutable ListenerConfig layered over the server's
defaults. Nothing reads a shared mutable "current config".

YAML layout (every section optional):

    server:
      host: 0.0.0.0
      port: 3001
      session_ttl_s: 300
      cleanup_interval_s: 60
      record_batch_size: 100
      record_flush_interval_s: 1.0
    listener:
      local_address: 0.0.0.0
      local_port: 9005
      update_rate: 1
      record_data: false
      record_file_name: recordings/session.csv
      reducer: average          # average | last
    virtual_addresses:
      - address: /muse/alpha_average
        sources: [/muse/elements/alpha_absolute, /muse/elements/alpha_absolute2]
        function: nonZeroAverage
"""

import dataclasses
import os
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

import yaml

from oscbridge import osc
from oscbridge.aggregate import VirtualAddressConfig
from oscbridge.transforms import REDUCE_TRANSFORMS

DEFAULT_RECORD_DIR = "recordings"


@dataclass(frozen=True)
class ListenerConfig:
    """Settings for one UDP listener and its transformer chain."""
    local_address: str = osc.DEFAULT_BIND_ADDRESS
    local_port: int = osc.DEFAULT_OSC_PORT
    update_rate: float = 1.0
    record_data: bool = False
    record_file_name: Optional[str] = None
    reducer: str = "average"
    virtual_addresses: Tuple[VirtualAddressConfig, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        """Client-facing representation (camelCase, as the visualizers expect)."""
        return {
            "localAddress": self.local_address,
            "localPort": self.local_port,
            "updateRate": self.update_rate,
            "recordData": self.record_data,
            "recordFileName": self.record_file_name,
            "reducer": self.reducer,
            "virtualAddresses": [config.to_dict() for config in self.virtual_addresses],
        }

    def with_record_file(self) -> "ListenerConfig":
        """Fill in a timestamped recording path when recording without one."""
        if not self.record_data or self.record_file_name:
            return self
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        path = os.path.join(DEFAULT_RECORD_DIR, f"osc_data_{timestamp}.csv")
        return dataclasses.replace(self, record_file_name=path)


@dataclass(frozen=True)
class ServerConfig:
    """Process-wide settings: HTTP binding, session TTL, recorder batching."""
    host: str = osc.DEFAULT_BIND_ADDRESS
    port: int = osc.DEFAULT_HTTP_PORT
    session_ttl_s: float = 300.0
    cleanup_interval_s: float = 60.0
    record_batch_size: int = 100
    record_flush_interval_s: float = 1.0
    listener: ListenerConfig = field(default_factory=ListenerConfig)


# Request/YAML keys accepted for each ListenerConfig field
_LISTENER_KEYS = {
    "local_address": ("localAddress", "local_address"),
    "local_port": ("localPort", "local_port"),
    "update_rate": ("updateRate", "update_rate"),
    "record_data": ("recordData", "record_data"),
    "record_file_name": ("recordFileName", "record_file_name"),
    "reducer": ("reducer",),
}


def _pick(mapping: Mapping[str, Any], keys: Tuple[str, ...]):
    for key in keys:
        if key in mapping and mapping[key] is not None:
            return True, mapping[key]
    return False, None


def listener_config_from_mapping(data: Optional[Mapping[str, Any]],
                                 defaults: Optional[ListenerConfig] = None) -> ListenerConfig:
    """Layer a request body or YAML section over defaults and validate it.

    Accepts camelCase (HTTP) and snake_case (YAML) keys. Missing or null
    fields keep their default. Virtual addresses always come from defaults;
    clients cannot redefine them per request.

    Raises:
        ValueError: If any provided field is invalid
    """
    base = defaults or ListenerConfig()
    if data is None:
        return base
    if not isinstance(data, Mapping):
        raise ValueError(f"Listener configuration must be an object, got {type(data).__name__}")

    updates = {}
    for field_name, keys in _LISTENER_KEYS.items():
        found, value = _pick(data, keys)
        if found:
            updates[field_name] = value

    if "local_port" in updates:
        updates["local_port"] = _as_int(updates["local_port"], "localPort")
    if "update_rate" in updates:
        updates["update_rate"] = _as_float(updates["update_rate"], "updateRate")
    if "record_data" in updates:
        updates["record_data"] = _as_bool(updates["record_data"], "recordData")

    config = dataclasses.replace(base, **updates)
    validate_listener_config(config)
    return config


def validate_listener_config(config: ListenerConfig) -> None:
    """Validate a ListenerConfig.

    Raises:
        ValueError: If any field is out of range
    """
    if not isinstance(config.local_address, str) or not config.local_address:
        raise ValueError(f"Invalid localAddress: {config.local_address!r}")
    try:
        osc.validate_port(config.local_port)
    except ValueError as e:
        raise ValueError(f"Invalid localPort: {e}") from None
    if config.update_rate <= 0:
        raise ValueError(f"updateRate must be > 0, got {config.update_rate}")
    if config.reducer not in REDUCE_TRANSFORMS:
        choices = ", ".join(sorted(REDUCE_TRANSFORMS))
        raise ValueError(f"Unknown reducer '{config.reducer}' (choose from: {choices})")
    if config.record_file_name is not None and not isinstance(config.record_file_name, str):
        raise ValueError(f"Invalid recordFileName: {config.record_file_name!r}")


def parse_virtual_addresses(entries: Any) -> Tuple[VirtualAddressConfig, ...]:
    """Build VirtualAddressConfig tuples from the YAML list form.

    Raises:
        ValueError: On malformed entries, unknown functions or duplicate addresses
    """
    if entries is None:
        return ()
    if not isinstance(entries, list):
        raise ValueError("'virtual_addresses' must be a list")

    configs = []
    seen = set()
    for index, entry in enumerate(entries):
        if not isinstance(entry, Mapping):
            raise ValueError(f"virtual_addresses[{index}] must be a mapping")
        address = entry.get("address")
        sources = entry.get("sources")
        function_name = entry.get("function", "average")
        osc.validate_address(address)
        if not isinstance(sources, list) or not sources:
            raise ValueError(f"virtual_addresses[{index}] ({address}) needs a non-empty 'sources' list")
        for source in sources:
            osc.validate_address(source)
        if address in seen:
            raise ValueError(f"Duplicate virtual address: {address}")
        seen.add(address)
        configs.append(VirtualAddressConfig.from_names(address, sources, function_name))
    return tuple(configs)


def default_virtual_addresses() -> Tuple[VirtualAddressConfig, ...]:
    """Per-band averages polled by the wave visualizer (/muse/<band>_average)."""
    return tuple(
        VirtualAddressConfig.from_names(
            f"/muse/{band}_average",
            [f"/muse/elements/{band}_absolute", f"/muse/elements/{band}_absolute2"],
            "nonZeroAverage",
        )
        for band in osc.WAVE_CHANNELS
    )


def build_server_config(data: Optional[Mapping[str, Any]]) -> ServerConfig:
    """Validate a parsed YAML document into a ServerConfig.

    Raises:
        ValueError: If any section is invalid
    """
    data = data or {}
    if not isinstance(data, Mapping):
        raise ValueError("Configuration root must be a mapping")

    server_section = data.get("server") or {}
    if not isinstance(server_section, Mapping):
        raise ValueError("'server' section must be a mapping")

    if "virtual_addresses" in data:
        virtual = parse_virtual_addresses(data.get("virtual_addresses"))
    else:
        virtual = default_virtual_addresses()

    listener = listener_config_from_mapping(
        data.get("listener") or {},
        ListenerConfig(virtual_addresses=virtual),
    )

    defaults = ServerConfig()
    config = ServerConfig(
        host=str(server_section.get("host", defaults.host)),
        port=_as_int(server_section.get("port", defaults.port), "server.port"),
        session_ttl_s=_as_float(server_section.get("session_ttl_s", defaults.session_ttl_s),
                                "server.session_ttl_s"),
        cleanup_interval_s=_as_float(server_section.get("cleanup_interval_s", defaults.cleanup_interval_s),
                                     "server.cleanup_interval_s"),
        record_batch_size=_as_int(server_section.get("record_batch_size", defaults.record_batch_size),
                                  "server.record_batch_size"),
        record_flush_interval_s=_as_float(
            server_section.get("record_flush_interval_s", defaults.record_flush_interval_s),
            "server.record_flush_interval_s"),
        listener=listener,
    )
    validate_server_config(config)
    return config


def validate_server_config(config: ServerConfig) -> None:
    """Validate process-wide settings.

    Raises:
        ValueError: If any field is out of range
    """
    try:
        osc.validate_port(config.port)
    except ValueError as e:
        raise ValueError(f"Invalid server.port: {e}") from None
    if config.session_ttl_s <= 0:
        raise ValueError(f"server.session_ttl_s must be > 0, got {config.session_ttl_s}")
    if config.cleanup_interval_s <= 0:
        raise ValueError(f"server.cleanup_interval_s must be > 0, got {config.cleanup_interval_s}")
    if config.record_batch_size < 1:
        raise ValueError(f"server.record_batch_size must be >= 1, got {config.record_batch_size}")
    if config.record_flush_interval_s <= 0:
        raise ValueError(
            f"server.record_flush_interval_s must be > 0, got {config.record_flush_interval_s}")
    validate_listener_config(config.listener)


def load_config(path: Optional[str] = None) -> ServerConfig:
    """Load and validate configuration from a YAML file.

    Args:
        path: Path to YAML file, or None for built-in defaults

    Returns:
        Validated ServerConfig

    Raises:
        FileNotFoundError: If the file doesn't exist
        yaml.YAMLError: If YAML syntax is invalid
        ValueError: If configuration is invalid
    """
    if path is None:
        return build_server_config({})

    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {path}\n"
            f"See config.example.yaml for a template."
        )

    with open(config_path, 'r') as f:
        data = yaml.safe_load(f)

    return build_server_config(data)


def _as_int(value: Any, name: str) -> int:
    if isinstance(value, bool):
        raise ValueError(f"{name} must be an integer, got {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            pass
    raise ValueError(f"{name} must be an integer, got {value!r}")


def _as_float(value: Any, name: str) -> float:
    if isinstance(value, bool):
        raise ValueError(f"{name} must be a number, got {value!r}")
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ValueError(f"{name} must be a number, got {value!r}") from None


def _as_bool(value: Any, name: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "1", "yes", "on"):
        return True
    if isinstance(value, str) and value.strip().lower() in ("false", "0", "no", "off", ""):
        return False
    if isinstance(value, (int, float)):
        return bool(value)
    raise ValueError(f"{name} must be a boolean, got {value!r}")
