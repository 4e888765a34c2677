import json

import pytest

from plcrte.settings import PlcSettings, SettingsStore


def test_defaults_match_firmware():
    s = PlcSettings()
    assert s.hostname == "default_hostname"
    assert s.ntp_address == "pool.ntp.org"
    assert s.mac_address == "00:00:00:00:00:00"
    assert s.mount_sd_card is True
    assert s.plc_autostart_source is False


def test_apply_known_and_unknown():
    store = SettingsStore()
    assert store.apply("dhcp_active", False) is True
    assert store.settings.dhcp_active is False
    assert store.apply("no_such_setting", 1) is False


def test_apply_truncates_text():
    store = SettingsStore()
    store.apply("ip_address", "1" * 40)
    assert len(store.settings.ip_address) == 16
    store.apply("hostname", "h" * 100)
    assert len(store.settings.hostname) == 63


def test_export_keys():
    exported = SettingsStore().export()
    assert exported["plc/start_plc_at_boot"] is True
    assert exported["network/hostname"] == "default_hostname"
    assert "plc/plc_autostart_source" not in exported
    assert len(exported) == 14


def test_save_load_round_trip(tmp_path):
    path = tmp_path / "cfg" / "settings.json"
    store = SettingsStore(path)
    store.update(hostname="plc-test", rpc_server_port=3000, fallback_ip=True)
    again = SettingsStore(path)
    again.load()
    assert again.settings.hostname == "plc-test"
    assert again.settings.rpc_server_port == 3000
    assert again.settings.fallback_ip is True
    assert json.loads(path.read_text())["network/hostname"] == "plc-test"


def test_autostart_source_not_persisted(tmp_path):
    path = tmp_path / "s.json"
    store = SettingsStore(path)
    store.update(plc_autostart_source=True)
    again = SettingsStore(path)
    again.load()
    assert again.settings.plc_autostart_source is False


def test_load_missing_file_keeps_defaults(tmp_path):
    store = SettingsStore(tmp_path / "missing.json")
    store.load()
    assert store.settings == PlcSettings()


def test_update_unknown_raises():
    store = SettingsStore()
    with pytest.raises(TypeError):
        store.update(bogus=1)
    assert store.settings == PlcSettings()


def test_load_rejects_non_mapping(tmp_path):
    path = tmp_path / "bad.json"
    path.write_text("[1, 2]")
    with pytest.raises(ValueError):
        SettingsStore(path).load()