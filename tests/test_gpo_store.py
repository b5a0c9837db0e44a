import pytest

from gpo_applier.catalog import EnumTag, Setting
from gpo_applier.errors import BackupFailed, PermissionDenied, SettingRejected, StoreUnavailable
from gpo_applier.gpo_store import GroupPolicyStore, classify_error
from gpo_applier.store import Outcome

NOT_FOUND = ('Get-GPO : A GPO with the display name "CMMC-VDI" could not be found in the "corp.local" domain.')
DENIED = "New-GPO : Access is denied. (Exception from HRESULT: 0x80070005 (E_ACCESSDENIED))"
NO_MODULE = "The term 'Get-GPO' is not recognized as the name of a cmdlet, function, script file, or operable program."


def test_classify_error():
    assert classify_error(NOT_FOUND) == "not_found"
    assert classify_error(DENIED) == "denied"
    assert classify_error(NO_MODULE) == "unavailable"
    assert classify_error("Timeout: command exceeded 120s") == "unavailable"
    assert classify_error("something odd") == "other"


def test_existing_gpo_is_reused(fake_ps):
    fake_ps.add("Get-GPO", True, {"DisplayName": "CMMC-VDI", "Id": "abc", "Description": "vdi"})
    store = GroupPolicyStore(runner=fake_ps)
    container = store.ensure_container("CMMC-VDI", "new description")
    assert container.created is False
    assert container.description == "vdi"
    assert not any(c.startswith("New-GPO") for c in fake_ps.commands)


def test_missing_gpo_is_created(fake_ps):
    fake_ps.add("Get-GPO", False, NOT_FOUND)
    fake_ps.add("New-GPO", True, {"DisplayName": "CMMC-VDI", "Id": "abc"})
    store = GroupPolicyStore(runner=fake_ps)
    container = store.ensure_container("CMMC-VDI", "Horizon agent's lockdown")
    assert container.created is True
    create = [c for c in fake_ps.commands if c.startswith("New-GPO")][0]
    assert "-Name 'CMMC-VDI'" in create
    assert "-Comment 'Horizon agent''s lockdown'" in create


def test_create_without_rights_is_permission_denied(fake_ps):
    fake_ps.add("Get-GPO", False, NOT_FOUND)
    fake_ps.add("New-GPO", False, DENIED)
    with pytest.raises(PermissionDenied):
        GroupPolicyStore(runner=fake_ps).ensure_container("CMMC-VDI")


def test_missing_module_is_store_unavailable(fake_ps):
    fake_ps.add("Get-GPO", False, NO_MODULE)
    with pytest.raises(StoreUnavailable):
        GroupPolicyStore(runner=fake_ps).ensure_container("CMMC-VDI")


def test_domain_is_passed_through(fake_ps):
    fake_ps.add("Get-GPO", True, {"DisplayName": "x", "Id": "1"})
    GroupPolicyStore(runner=fake_ps, domain="corp.local").ensure_container("x")
    assert "-Domain 'corp.local'" in fake_ps.commands[0]


def test_backup(fake_ps, tmp_path):
    fake_ps.add("Backup-GPO", True, {"Id": "42", "BackupDirectory": str(tmp_path)})
    handle = GroupPolicyStore(runner=fake_ps).backup_container("gpo", tmp_path / "backups")
    assert handle.backup_id == "42"
    assert (tmp_path / "backups").is_dir()


def test_backup_rejected(fake_ps, tmp_path):
    fake_ps.add("Backup-GPO", False, "Backup-GPO : The backup directory is read-only.")
    with pytest.raises(BackupFailed):
        GroupPolicyStore(runner=fake_ps).backup_container("gpo", tmp_path / "backups")


def test_link_is_skipped_when_already_linked(fake_ps):
    fake_ps.add("(Get-GPInheritance", True, [{"DisplayName": "Other"}, {"DisplayName": "gpo"}])
    store = GroupPolicyStore(runner=fake_ps)
    assert store.link_container("gpo", "OU=VDI,DC=corp,DC=local") is False
    assert not any(c.startswith("New-GPLink") for c in fake_ps.commands)


def test_link_is_created(fake_ps):
    fake_ps.add("(Get-GPInheritance", True, {"DisplayName": "Other"})
    store = GroupPolicyStore(runner=fake_ps)
    assert store.link_container("gpo", "OU=VDI,DC=corp,DC=local") is True
    link = [c for c in fake_ps.commands if c.startswith("New-GPLink")][0]
    assert "-Target 'OU=VDI,DC=corp,DC=local'" in link


def test_link_denied(fake_ps):
    fake_ps.add("(Get-GPInheritance", True, "")
    fake_ps.add("New-GPLink", False, DENIED)
    with pytest.raises(PermissionDenied):
        GroupPolicyStore(runner=fake_ps).link_container("gpo", "OU=X")


def test_apply_dword_and_string(fake_ps):
    store = GroupPolicyStore(runner=fake_ps)
    assert store.apply_setting("gpo", Setting("HKLM\\FVE", "EncryptionMethodWithXtsOs", EnumTag("XtsAes256", 7))) is Outcome.APPLIED
    assert store.apply_setting("gpo", Setting("HKLM\\Scan", "Root", "\\\\srv\\share")) is Outcome.APPLIED
    dword, string = fake_ps.commands
    assert "-ValueName 'EncryptionMethodWithXtsOs' -Type DWord -Value 7" in dword
    assert "-Type String -Value '\\\\srv\\share'" in string


def test_apply_rejected(fake_ps):
    fake_ps.add("Set-GPRegistryValue", False, "Set-GPRegistryValue : The value is of the wrong type.\nline 2")
    with pytest.raises(SettingRejected) as exc:
        GroupPolicyStore(runner=fake_ps).apply_setting("gpo", Setting("HKLM\\X", "A", 1))
    assert exc.value.reason == "Set-GPRegistryValue : The value is of the wrong type."
