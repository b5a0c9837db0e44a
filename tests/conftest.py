"""Pytest configuration for gpo_applier."""
import logging

import pytest

from gpo_applier.catalog import PolicyCatalog, Setting, always, unless, when
from gpo_applier.config import get_config
from gpo_applier.errors import BackupFailed, PermissionDenied, SettingRejected, StoreUnavailable
from gpo_applier.store import BackupHandle, Container, Outcome, PolicyStore


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Point every run's output (reports, backups, transcript) at tmp_path."""
    monkeypatch.setenv("GPO_APPLIER_HOME", str(tmp_path / "home"))
    monkeypatch.setenv("GPO_APPLIER_LOG_FILE", "false")
    get_config.cache_clear()
    yield
    get_config.cache_clear()
    root = logging.getLogger()
    for handler in list(root.handlers):
        if getattr(handler, "_gpo_applier", False):
            root.removeHandler(handler)
            handler.close()


class RecordingStore(PolicyStore):
    """In-memory store that records every call in order."""

    name = "recording"

    def __init__(self, reject=(), deny_create=False, backup_error=False, lost_at=None):
        self.calls = []
        self.containers = {}
        self.links = {}
        self.values = {}
        self.reject = set(reject)
        self.deny_create = deny_create
        self.backup_error = backup_error
        self.lost_at = lost_at

    def ensure_container(self, id, description=""):
        self.calls.append(("ensure", id))
        if self.deny_create:
            raise PermissionDenied(f"cannot create {id}")
        created = id not in self.containers
        self.containers.setdefault(id, description)
        return Container(id, self.containers[id], created)

    def backup_container(self, id, destination):
        self.calls.append(("backup", id))
        if self.backup_error:
            raise BackupFailed(f"backup of {id} rejected")
        return BackupHandle(id, str(destination), "b-1", "2026-01-01T00:00:00")

    def link_container(self, id, target_scope):
        self.calls.append(("link", id, target_scope))
        scopes = self.links.setdefault(id, set())
        if target_scope in scopes:
            return False
        scopes.add(target_scope)
        return True

    def apply_setting(self, container_id, setting):
        self.calls.append(("apply", setting.name))
        if setting.name == self.lost_at:
            raise StoreUnavailable(f"store went away before {setting.name}")
        if setting.name in self.reject:
            raise SettingRejected(f"{setting.name} refused")
        self.values[(setting.key, setting.name)] = setting.value
        return Outcome.APPLIED


class FakePowerShell:
    """Replaces run_powershell: maps a command prefix to an (ok, result) reply."""

    def __init__(self, replies=None):
        self.replies = list(replies or [])
        self.commands = []

    def add(self, prefix, ok, result):
        self.replies.append((prefix, ok, result))
        return self

    def __call__(self, cmd, timeout=None):
        self.commands.append(cmd)
        for prefix, ok, result in self.replies:
            if cmd.startswith(prefix):
                return ok, result
        return True, ""


@pytest.fixture
def recording_store():
    return RecordingStore()


@pytest.fixture
def fake_ps():
    return FakePowerShell()


@pytest.fixture
def mixed_catalog():
    return PolicyCatalog.build("mixed", [
        Setting("HKLM\\SOFTWARE\\A", "Always1", 1, always()),
        Setting("HKLM\\SOFTWARE\\A", "PersistentOnly", 1, unless("isEphemeralTarget")),
        Setting("HKLM\\SOFTWARE\\B", "VdiOnly", "on", when("isEphemeralTarget")),
        Setting("HKLM\\SOFTWARE\\B", "DcOnly", 2, when("isDomainController")),
        Setting("HKLM\\SOFTWARE\\C", "Always2", "x", always()),
    ])
