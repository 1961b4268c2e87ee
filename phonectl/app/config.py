# phonectl/app/config.py
from __future__ import annotations

from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Mapping, Optional

import yaml

from phonectl.core.errors import ConfigError
from phonectl.protocol.events import DEFAULT_RINGTONE
from phonectl.runtime.event_log import DEFAULT_LOG_LIMIT
from phonectl.runtime.reconnect import ReconnectPolicy


def default_config_path() -> Path:
    # <package>/metadata/device.yml, resolved from this file
    return Path(__file__).resolve().parents[1] / "metadata" / "device.yml"


@dataclass(frozen=True)
class PhoneConfig:
    host: str
    port: int
    path: str = "/"
    open_timeout_s: float = 5.0
    ringtone: str = DEFAULT_RINGTONE
    log_limit: int = DEFAULT_LOG_LIMIT
    kiosk: bool = False
    reconnect: ReconnectPolicy = field(default_factory=ReconnectPolicy)

    @property
    def url(self) -> str:
        path = self.path if self.path.startswith("/") else f"/{self.path}"
        return f"ws://{self.host}:{self.port}{path}"


# keys accepted as CLI/config overrides -> expected type name
_OVERRIDES = {
    "host": "str",
    "port": "int",
    "path": "str",
    "open_timeout_s": "float",
    "ringtone": "str",
    "log_limit": "int",
    "kiosk": "bool",
}


def _cast(value: Any, type_name: str) -> Any:
    if type_name == "str":
        if not isinstance(value, str) or not value:
            raise TypeError(f"Expected non-empty str, got {value!r}")
        return value

    if type_name == "int":
        if isinstance(value, bool) or not isinstance(value, int):
            raise TypeError(f"Expected int, got {type(value).__name__}")
        return value

    if type_name == "float":
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise TypeError(f"Expected float, got {type(value).__name__}")
        return float(value)

    if type_name == "bool":
        if isinstance(value, bool):
            return value
        raise TypeError(f"Expected bool, got {type(value).__name__}")

    raise TypeError(f"Unknown schema type '{type_name}'")


def _field(section: Mapping[str, Any], name: str, type_name: str, default: Any, *, where: str) -> Any:
    if name not in section or section[name] is None:
        return default
    try:
        return _cast(section[name], type_name)
    except TypeError as e:
        raise ConfigError(
            f"Invalid value for '{where}{name}'.",
            hint=str(e),
            details={"field": f"{where}{name}", "value": section[name]},
        ) from None


def _load_yaml(path: Path) -> dict:
    if not path.exists():
        raise ConfigError(
            f"Missing config file: {path}",
            hint="Pass --config <file> or use the packaged default.",
            details={"path": str(path)},
        )
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Config file is not valid YAML: {path}", hint=str(e)) from None

    if not isinstance(data, dict):
        raise ConfigError(f"Config root must be a mapping: {path}")
    return data


def _parse_reconnect(data: Mapping[str, Any]) -> ReconnectPolicy:
    section = data.get("reconnect") or {}
    if not isinstance(section, dict):
        raise ConfigError("'reconnect' must be a mapping")

    defaults = ReconnectPolicy()
    try:
        return ReconnectPolicy(
            base_delay=_field(section, "base_delay", "float", defaults.base_delay, where="reconnect."),
            max_delay=_field(section, "max_delay", "float", defaults.max_delay, where="reconnect."),
            max_attempts=_field(section, "max_attempts", "int", defaults.max_attempts, where="reconnect."),
            jitter=_field(section, "jitter", "float", defaults.jitter, where="reconnect."),
            multiplier=_field(section, "multiplier", "float", defaults.multiplier, where="reconnect."),
        )
    except ValueError as e:
        raise ConfigError("Invalid reconnect policy.", hint=str(e), details=dict(section)) from None


def parse_config(data: Mapping[str, Any]) -> PhoneConfig:
    device = data.get("device")
    if not isinstance(device, dict):
        raise ConfigError("Config is missing 'device' root node")

    host = _field(device, "host", "str", None, where="device.")
    port = _field(device, "port", "int", None, where="device.")
    if host is None or port is None:
        raise ConfigError(
            "Device address is incomplete.",
            hint="Set device.host and device.port in the config file.",
        )

    log_limit = _field(data, "log_limit", "int", DEFAULT_LOG_LIMIT, where="")
    if log_limit < 1:
        raise ConfigError("'log_limit' must be >= 1", details={"log_limit": log_limit})

    return PhoneConfig(
        host=host,
        port=port,
        path=_field(device, "path", "str", "/", where="device."),
        open_timeout_s=_field(device, "open_timeout_s", "float", 5.0, where="device."),
        ringtone=_field(data, "ringtone", "str", DEFAULT_RINGTONE, where=""),
        log_limit=log_limit,
        kiosk=_field(data, "kiosk", "bool", False, where=""),
        reconnect=_parse_reconnect(data),
    )


def apply_overrides(cfg: PhoneConfig, overrides: Optional[Mapping[str, Any]]) -> PhoneConfig:
    """Apply non-None overrides (e.g. from CLI flags) on top of a loaded config."""
    changes = {}
    for name, value in (overrides or {}).items():
        if value is None:
            continue
        if name not in _OVERRIDES:
            raise ConfigError(
                f"Unknown config override '{name}'.",
                hint=f"Valid overrides: {sorted(_OVERRIDES)}",
            )
        changes[name] = _field({name: value}, name, _OVERRIDES[name], None, where="")
    if changes.get("log_limit", 1) < 1:
        raise ConfigError("'log_limit' must be >= 1", details={"log_limit": changes["log_limit"]})
    return replace(cfg, **changes) if changes else cfg


def load_config(
    path: Optional[str | Path] = None,
    overrides: Optional[Mapping[str, Any]] = None,
) -> PhoneConfig:
    cfg_path = Path(path) if path else default_config_path()
    cfg = parse_config(_load_yaml(cfg_path))
    return apply_overrides(cfg, overrides)
