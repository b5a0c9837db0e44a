# gpo_store.py
# 以 Group Policy（GroupPolicy PowerShell 模組）為後端的 PolicyStore
import os
import logging
import datetime

from .errors import BackupFailed, PermissionDenied, SettingRejected, StoreUnavailable
from .store import BackupHandle, Container, Outcome, PolicyStore, raw_value, value_kind
from .utils import ps_quote, run_powershell

logger = logging.getLogger(__name__)

# PowerShell 錯誤訊息分類用的關鍵字（小寫比對）
_UNAVAILABLE_MARKERS = (
    "is not recognized as the name of a cmdlet",
    "module could not be loaded",
    "server is not operational",
    "domain either does not exist or could not be contacted",
)
# run_powershell 本身失敗（逾時、找不到 powershell）時的前綴
_RUNNER_PREFIXES = ("timeout:", "exception:")
_ACCESS_MARKERS = (
    "access is denied",
    "access denied",
    "unauthorizedaccess",
    "e_accessdenied",
)
_NOT_FOUND_MARKERS = (
    "could not be found",
    "was not found",
)


def _first_line(res):
    text = str(res).strip()
    return text.splitlines()[0] if text else ""


def classify_error(res):
    """將 PowerShell 錯誤輸出分類為 'unavailable' / 'denied' / 'not_found' / 'other'"""
    text = str(res).strip().lower()
    if text.startswith(_RUNNER_PREFIXES) or any(m in text for m in _UNAVAILABLE_MARKERS):
        return "unavailable"
    if any(m in text for m in _ACCESS_MARKERS):
        return "denied"
    if any(m in text for m in _NOT_FOUND_MARKERS):
        return "not_found"
    return "other"


def _raise_fatal(res, action, details):
    kind = classify_error(res)
    message = f"{action}: {_first_line(res)}"
    if kind == "denied":
        raise PermissionDenied(message, details=details)
    raise StoreUnavailable(message, details=details)


class GroupPolicyStore(PolicyStore):
    """
    透過 run_powershell 呼叫：
      Get-GPO / New-GPO          -> ensure_container
      Backup-GPO                 -> backup_container
      Get-GPInheritance / New-GPLink -> link_container
      Set-GPRegistryValue        -> apply_setting
    runner 可替換（測試時注入假的 PowerShell）。
    """

    name = "gpo"

    def __init__(self, runner=run_powershell, domain=None):
        self.runner = runner
        self.domain = domain

    def _domain_arg(self):
        return f" -Domain {ps_quote(self.domain)}" if self.domain else ""

    def _get_gpo(self, id):
        ok, res = self.runner(
            f"Get-GPO -Name {ps_quote(id)}{self._domain_arg()} -ErrorAction Stop"
            " | Select-Object DisplayName,Id,Description | ConvertTo-Json -Compress"
        )
        if ok and isinstance(res, dict):
            return res
        if ok or classify_error(res) == "not_found":
            return None
        _raise_fatal(res, f"Get-GPO {id}", {"container": id})

    # ---------- PolicyStore ----------
    def ensure_container(self, id, description=""):
        existing = self._get_gpo(id)
        if existing is not None:
            logger.info("GPO 已存在，沿用: %s (%s)", id, existing.get("Id", ""))
            return Container(id, existing.get("Description") or "", False)

        ok, res = self.runner(
            f"New-GPO -Name {ps_quote(id)} -Comment {ps_quote(description)}{self._domain_arg()} -ErrorAction Stop"
            " | Select-Object DisplayName,Id | ConvertTo-Json -Compress"
        )
        if not ok:
            _raise_fatal(res, f"New-GPO {id}", {"container": id})
        gid = res.get("Id", "") if isinstance(res, dict) else ""
        logger.info("已建立 GPO: %s (%s)", id, gid)
        return Container(id, description, True)

    def backup_container(self, id, destination):
        destination = os.path.abspath(os.fspath(destination))
        try:
            os.makedirs(destination, exist_ok=True)
        except OSError as e:
            raise BackupFailed(f"cannot create backup folder {destination}: {e}", details={"container": id})
        now = datetime.datetime.now()
        comment = f"Backup before policy apply {now.strftime('%Y-%m-%d %H:%M:%S')}"
        ok, res = self.runner(
            f"Backup-GPO -Name {ps_quote(id)} -Path {ps_quote(destination)} -Comment {ps_quote(comment)}"
            f"{self._domain_arg()} -ErrorAction Stop | Select-Object Id,BackupDirectory | ConvertTo-Json -Compress"
        )
        if not ok:
            raise BackupFailed(f"Backup-GPO {id}: {_first_line(res)}", details={"container": id, "destination": destination})
        backup_id = str(res.get("Id", "")) if isinstance(res, dict) else ""
        logger.info("已備份 GPO %s -> %s", id, destination)
        return BackupHandle(id, destination, backup_id, now.isoformat(timespec="seconds"))

    def linked_gpos(self, target_scope):
        ok, res = self.runner(
            f"(Get-GPInheritance -Target {ps_quote(target_scope)}{self._domain_arg()} -ErrorAction Stop).GpoLinks"
            " | Select-Object DisplayName | ConvertTo-Json -Compress"
        )
        if not ok:
            _raise_fatal(res, f"Get-GPInheritance {target_scope}", {"scope": target_scope})
        links = res if isinstance(res, list) else ([res] if isinstance(res, dict) else [])
        return [l.get("DisplayName", "") for l in links if isinstance(l, dict)]

    def link_container(self, id, target_scope):
        if id in self.linked_gpos(target_scope):
            logger.info("GPO %s 已連結到 %s，略過", id, target_scope)
            return False
        ok, res = self.runner(
            f"New-GPLink -Name {ps_quote(id)} -Target {ps_quote(target_scope)} -LinkEnabled Yes"
            f"{self._domain_arg()} -ErrorAction Stop | Out-Null"
        )
        if not ok:
            if "already linked" in str(res).lower():
                return False
            _raise_fatal(res, f"New-GPLink {id} -> {target_scope}", {"container": id, "scope": target_scope})
        logger.info("已將 GPO %s 連結到 %s", id, target_scope)
        return True

    def apply_setting(self, container_id, setting):
        kind = value_kind(setting.value)
        value = raw_value(setting.value)
        value_arg = str(value) if kind == "DWord" else ps_quote(value)
        ok, res = self.runner(
            f"Set-GPRegistryValue -Name {ps_quote(container_id)} -Key {ps_quote(setting.key)}"
            f" -ValueName {ps_quote(setting.name)} -Type {kind} -Value {value_arg}"
            f"{self._domain_arg()} -ErrorAction Stop | Out-Null"
        )
        if not ok:
            raise SettingRejected(
                _first_line(res) or "Set-GPRegistryValue failed",
                details={"container": container_id, "key": setting.key, "name": setting.name},
            )
        return Outcome.APPLIED
