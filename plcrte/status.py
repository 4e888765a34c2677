"""Human-readable status texts: PLC state, network address, loaded module, cycle time."""

from __future__ import annotations

import ipaddress
from enum import Enum
from typing import Optional

from .settings import PlcSettings

NSEC_PER_MSEC = 1_000_000
_CYCLE_TEXT_MAX = 19


class PlcStatus(Enum):
    """State of the PLC as reported to the IDE."""

    EMPTY = "Empty"
    STOPPED = "Stopped"
    STARTED = "Started"
    BROKEN = "Broken"
    DISCONNECTED = "Disconnected"


class AddressType(Enum):
    """How an interface address was assigned."""

    ANY = "any"
    AUTOCONF = "autoconf"
    DHCP = "dhcp"
    MANUAL = "manual"
    OVERRIDABLE = "overridable"


_ASSIGNMENT_TEXT = {
    AddressType.AUTOCONF: "Autoconf",
    AddressType.DHCP: "DHCP",
    AddressType.MANUAL: "Static",
    AddressType.OVERRIDABLE: "Fallback",
}


def plc_status(state: int, loader_state: int) -> PlcStatus:
    """Status from the run state (0 stopped, 1 started) and the loader state (0 empty)."""
    if loader_state == 0:
        return PlcStatus.EMPTY
    if state == 0:
        return PlcStatus.STOPPED
    if state == 1:
        return PlcStatus.STARTED
    return PlcStatus.BROKEN


def ip_assignment_method(address_type: Optional[AddressType]) -> str:
    """How the address was assigned; ``---`` when IPv4 is not configured."""
    if address_type is None:
        return "---"
    return _ASSIGNMENT_TEXT.get(address_type, "Unknown")


def describe_ip_address(address: Optional[str], preferred: bool = True) -> str:
    """The IPv4 address as text, or why there is none to show."""
    if address is None:
        return "IPv4 is not configured."
    if not preferred:
        return "No preferred IPv4 address assigned"
    try:
        return str(ipaddress.IPv4Address(address))
    except ValueError:
        return "Invalid address"


def autostart_source(settings: PlcSettings) -> str:
    """Where the PLC program is started from at boot."""
    if not settings.plc_autostart:
        return "no autostart"
    return "FileSystem" if settings.plc_autostart_source else "Flash"


def module_name_text(name: Optional[str]) -> str:
    """The loaded module's name, or a note that none is loaded."""
    return name if name else "no module loaded"


def cycle_time_text(cycle_time_ns: int, tick: int) -> str:
    """Cycle time in milliseconds and the current tick, cut to the display width."""
    text = f"{cycle_time_ns // NSEC_PER_MSEC}ms tick={tick}"
    return text[:_CYCLE_TEXT_MAX]