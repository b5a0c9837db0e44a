import json

import pytest

from gpo_applier.catalog import EnumTag, Setting
from gpo_applier.errors import BackupFailed, SettingRejected, StoreUnavailable
from gpo_applier.store import JsonFileStore, Outcome, value_kind


@pytest.fixture
def store(tmp_path):
    return JsonFileStore(tmp_path / "store.json")


def test_ensure_container_is_idempotent(store):
    first = store.ensure_container("CMMC-Defender", "defender baseline")
    second = store.ensure_container("CMMC-Defender", "something else")
    assert first == second
    assert first.created is True
    assert second.created is False
    assert second.description == "defender baseline"
    assert store.container_ids() == ["CMMC-Defender"]


def test_missing_store_directory_is_unavailable(tmp_path):
    store = JsonFileStore(tmp_path / "nope" / "store.json")
    with pytest.raises(StoreUnavailable):
        store.ensure_container("x")


def test_corrupt_store_is_unavailable(tmp_path):
    path = tmp_path / "store.json"
    path.write_text("[1, 2", encoding="utf-8")
    with pytest.raises(StoreUnavailable):
        JsonFileStore(path).ensure_container("x")


def test_link_container_twice_does_not_grow_links(store):
    store.ensure_container("gpo")
    assert store.link_container("gpo", "OU=VDI,DC=corp,DC=local") is True
    assert store.link_container("gpo", "OU=VDI,DC=corp,DC=local") is False
    assert store.links("gpo") == ("OU=VDI,DC=corp,DC=local",)


def test_apply_setting_writes_raw_values(store):
    store.ensure_container("gpo")
    assert store.apply_setting("gpo", Setting("HKLM\\FVE", "Method", EnumTag("XtsAes256", 7))) is Outcome.APPLIED
    assert store.apply_setting("gpo", Setting("HKLM\\FVE", "Path", "C:\\keys")) is Outcome.APPLIED
    assert store.get_value("gpo", "HKLM\\FVE", "Method") == 7
    assert store.get_value("gpo", "HKLM\\FVE", "Path") == "C:\\keys"


def test_later_write_to_same_key_wins(store):
    store.ensure_container("gpo")
    store.apply_setting("gpo", Setting("HKLM\\Log", "MaxSize", 100))
    store.apply_setting("gpo", Setting("HKLM\\Log", "MaxSize", 400))
    assert store.get_value("gpo", "HKLM\\Log", "MaxSize") == 400


def test_later_write_may_change_value_type(store, tmp_path):
    store.ensure_container("gpo")
    store.apply_setting("gpo", Setting("HKLM\\Log", "Retention", 0))
    assert store.apply_setting("gpo", Setting("HKLM\\Log", "Retention", "0")) is Outcome.APPLIED
    assert store.get_value("gpo", "HKLM\\Log", "Retention") == "0"
    doc = json.loads((tmp_path / "store.json").read_text(encoding="utf-8"))
    assert doc["containers"]["gpo"]["settings"]["HKLM\\Log"]["Retention"]["type"] == "String"


def test_out_of_range_dword_is_rejected(store):
    store.ensure_container("gpo")
    store.apply_setting("gpo", Setting("HKLM\\Log", "MaxSize", 100))
    with pytest.raises(SettingRejected) as exc:
        store.apply_setting("gpo", Setting("HKLM\\Log", "MaxSize", 2 ** 32))
    assert "out of DWord range" in exc.value.reason
    assert store.get_value("gpo", "HKLM\\Log", "MaxSize") == 100


def test_apply_to_unknown_container_is_rejected(store):
    store.ensure_container("gpo")
    with pytest.raises(SettingRejected):
        store.apply_setting("other", Setting("HKLM\\X", "A", 1))


def test_backup_writes_snapshot(store, tmp_path):
    store.ensure_container("gpo")
    store.apply_setting("gpo", Setting("HKLM\\X", "A", 1))
    handle = store.backup_container("gpo", tmp_path / "backups")
    assert handle.container_id == "gpo"
    with open(handle.destination, encoding="utf-8") as f:
        snapshot = json.load(f)
    assert snapshot["backup_id"] == handle.backup_id
    assert snapshot["state"]["settings"]["HKLM\\X"]["A"]["value"] == 1


def test_backup_of_unknown_container_fails(store, tmp_path):
    store.ensure_container("gpo")
    with pytest.raises(BackupFailed):
        store.backup_container("missing", tmp_path / "backups")


def test_value_kind():
    assert value_kind(1) == "DWord"
    assert value_kind(EnumTag("X", 2)) == "DWord"
    assert value_kind("s") == "String"
    assert value_kind(2 ** 32 - 1) == "DWord"
    with pytest.raises(SettingRejected):
        value_kind(True)
    with pytest.raises(SettingRejected):
        value_kind(-1)
    with pytest.raises(SettingRejected):
        value_kind(EnumTag("Huge", 2 ** 32))
