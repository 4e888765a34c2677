"""Persistent runtime settings: storage, network and time-server configuration."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional, Union

log = logging.getLogger(__name__)

# Longest value each text setting may hold (its buffer size less the terminator).
_MAX_TEXT = {
    "hostname": 63,
    "ip_address": 16,
    "netmask": 16,
    "gateway": 16,
    "mac_address": 17,
    "ntp_address": 63,
}

# Names under which settings are exported for persistence, in export order.
_EXPORT_KEYS = {
    "mount_sd_card": "plc/mount_sd_card",
    "plc_autostart": "plc/start_plc_at_boot",
    "hostname": "network/hostname",
    "dhcp_active": "network/dhcp_active",
    "dhcp_timeout_sec": "network/dhcp_timeout_sec",
    "fallback_ip": "network/fallback_ip",
    "ip_address": "network/ip_address",
    "netmask": "network/netmask",
    "gateway": "network/gateway",
    "mac_address": "network/mac_address",
    "ntp_server": "network/ntp_server",
    "ntp_address": "network/ntp_address",
    "ntp_timeout": "network/ntp_timeout",
    "rpc_server_port": "network/rpc_server_port",
}
_IMPORT_KEYS = {key: name for name, key in _EXPORT_KEYS.items()}


@dataclass
class PlcSettings:
    """Every runtime setting with its default value."""

    mount_sd_card: bool = True
    plc_autostart: bool = True
    plc_autostart_source: bool = False
    hostname: str = "default_hostname"
    dhcp_active: bool = True
    dhcp_timeout_sec: int = 0
    fallback_ip: bool = False
    ip_address: str = "0.0.0.0"
    netmask: str = "0.0.0.0"
    gateway: str = "0.0.0.0"
    mac_address: str = "00:00:00:00:00:00"
    ntp_server: bool = False
    ntp_address: str = "pool.ntp.org"
    ntp_timeout: int = 0
    rpc_server_port: int = 0


_FIELD_TYPES = {f.name: type(getattr(PlcSettings(), f.name)) for f in fields(PlcSettings)}


def _coerce(name: str, value: Any) -> Any:
    kind = _FIELD_TYPES[name]
    if kind is bool:
        return bool(value)
    if kind is int:
        return int(value)
    text = str(value)
    return text[: _MAX_TEXT[name]]


class SettingsStore:
    """Holds the settings and keeps them in a JSON file.

    Without a path the settings live in memory only.
    """

    def __init__(self, path: Union[str, os.PathLike, None] = None) -> None:
        self.path: Optional[Path] = Path(path) if path is not None else None
        self.settings = PlcSettings()

    def __repr__(self) -> str:
        return f"SettingsStore(path={self.path!r}, settings={self.settings!r})"

    def apply(self, name: str, value: Any) -> bool:
        """Set the setting called ``name``; unknown names are ignored.

        Returns whether the name was known.
        """
        if name not in _FIELD_TYPES:
            return False
        setattr(self.settings, name, _coerce(name, value))
        return True

    def export(self) -> Dict[str, Any]:
        """The settings under their persistent names."""
        values = asdict(self.settings)
        return {key: values[name] for name, key in _EXPORT_KEYS.items()}

    def load(self) -> None:
        """Read stored settings over the current ones; a missing file changes nothing."""
        if self.path is None:
            return
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            log.info("no settings file at %s", self.path)
            return
        stored = json.loads(raw) if raw.strip() else {}
        if not isinstance(stored, dict):
            raise ValueError(f"settings file {self.path} does not hold a mapping")
        for key, value in stored.items():
            name = _IMPORT_KEYS.get(key)
            if name is not None:
                self.apply(name, value)

    def save(self) -> None:
        """Write the exported settings to the settings file."""
        if self.path is None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(self.export(), indent=2), encoding="utf-8")

    def update(self, **kwargs: Any) -> None:
        """Change settings by name and save them."""
        unknown = sorted(set(kwargs) - set(_FIELD_TYPES))
        if unknown:
            raise TypeError(f"unknown settings: {', '.join(unknown)}")
        for name, value in kwargs.items():
            self.apply(name, value)
        self.save()