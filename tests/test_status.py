import pytest

from plcrte.settings import PlcSettings
from plcrte.status import (
    AddressType,
    PlcStatus,
    autostart_source,
    cycle_time_text,
    describe_ip_address,
    ip_assignment_method,
    module_name_text,
    plc_status,
)


@pytest.mark.parametrize(
    "state, loader_state, expected",
    [
        (0, 1, PlcStatus.STOPPED),
        (1, 1, PlcStatus.STARTED),
        (5, 1, PlcStatus.BROKEN),
        (1, 0, PlcStatus.EMPTY),
        (0, 0, PlcStatus.EMPTY),
    ],
)
def test_plc_status(state, loader_state, expected):
    assert plc_status(state, loader_state) is expected


@pytest.mark.parametrize(
    "address_type, expected",
    [
        (AddressType.AUTOCONF, "Autoconf"),
        (AddressType.DHCP, "DHCP"),
        (AddressType.MANUAL, "Static"),
        (AddressType.OVERRIDABLE, "Fallback"),
        (AddressType.ANY, "Unknown"),
        (None, "---"),
    ],
)
def test_ip_assignment_method(address_type, expected):
    assert ip_assignment_method(address_type) == expected


def test_describe_ip_address():
    assert describe_ip_address("192.168.1.20") == "192.168.1.20"
    assert describe_ip_address("192.168.1.20", preferred=False) == (
        "No preferred IPv4 address assigned"
    )
    assert describe_ip_address(None) == "IPv4 is not configured."
    assert describe_ip_address("not-an-ip") == "Invalid address"


def test_autostart_source():
    assert autostart_source(PlcSettings(plc_autostart=False)) == "no autostart"
    assert autostart_source(PlcSettings(plc_autostart_source=True)) == "FileSystem"
    assert autostart_source(PlcSettings(plc_autostart_source=False)) == "Flash"


def test_module_name_text():
    assert module_name_text("plc_program") == "plc_program"
    assert module_name_text(None) == "no module loaded"
    assert module_name_text("") == "no module loaded"


def test_cycle_time_text():
    assert cycle_time_text(20_000_000, 5) == "20ms tick=5"


def test_cycle_time_text_is_cut_to_width():
    text = cycle_time_text(4_294_967_295_000_000, 4_294_967_295)
    assert len(text) == 19
    assert text.startswith("4294967295ms tick=")