"""
gpo_applier

以宣告式目錄（設定 + 適用條件）冪等地套用 Group Policy 登錄設定，
並輸出 TXT / CSV / HTML / PDF 套用報告。
"""

__version__ = "1.0.0"

from .catalog import Context, EnumTag, PolicyCatalog, Setting, always, unless, when
from .errors import (
    BackupFailed,
    InvalidCatalog,
    InvalidContext,
    PermissionDenied,
    PolicyError,
    SettingRejected,
    StoreUnavailable,
)
from .runner import ApplyReport, PolicyRunner, RunState
from .store import BackupHandle, Container, JsonFileStore, Outcome, PolicyStore
from .gpo_store import GroupPolicyStore

__all__ = [
    "Context", "EnumTag", "PolicyCatalog", "Setting", "always", "unless", "when",
    "PolicyError", "InvalidCatalog", "InvalidContext", "StoreUnavailable",
    "PermissionDenied", "BackupFailed", "SettingRejected",
    "ApplyReport", "PolicyRunner", "RunState",
    "PolicyStore", "JsonFileStore", "GroupPolicyStore", "Container", "BackupHandle", "Outcome",
]
