# utils.py
import json
import shutil
import ctypes
import logging
import subprocess

from .config import get_config

logger = logging.getLogger(__name__)

# 套用 GPO 前需要的 cmdlet（GroupPolicy 模組需 RSAT）
REQUIRED_CMDLETS = [
    ("Get-GPO", "GroupPolicy 模組 (需 RSAT/AD 模組)"),
    ("New-GPO", "建立 GPO"),
    ("Backup-GPO", "備份 GPO"),
    ("New-GPLink", "連結 GPO 到 OU"),
    ("Get-GPInheritance", "查詢 OU 連結"),
    ("Set-GPRegistryValue", "寫入 GPO 登錄值"),
]


def run_powershell(cmd, timeout=None):
    """
    以設定中的 PowerShell 執行 cmd。
    成功時 result 為解析後的 JSON（無輸出則為 ""，非 JSON 則為原文）；
    失敗時 ok 為 False，result 為錯誤文字，逾時與無法啟動分別以 "Timeout:" / "Exception:" 開頭。
    """
    ps = get_config().powershell
    timeout = timeout or ps.timeout
    logger.debug("PS> %s", cmd)
    try:
        completed = subprocess.run(
            [ps.executable, "-NoProfile", "-NonInteractive", "-Command", cmd],
            capture_output=True, text=True, timeout=timeout
        )
    except subprocess.TimeoutExpired:
        return False, f"Timeout: command exceeded {timeout}s"
    except OSError as e:
        return False, f"Exception: {e}"

    stdout = (completed.stdout or "").strip()
    stderr = (completed.stderr or "").strip()

    if completed.returncode != 0:
        # 優先回傳 stderr（若有），否則回傳 stdout
        return False, stderr or stdout or f"Return code {completed.returncode}"

    if not stdout:
        return True, ""

    # 嘗試解析 JSON，失敗就回傳原始字串
    try:
        return True, json.loads(stdout)
    except ValueError:
        return True, stdout


def ps_quote(value):
    """PowerShell 單引號字串（內部單引號加倍）"""
    return "'" + str(value).replace("'", "''") + "'"


def is_admin():
    """
    回傳 True 若目前進程以系統管理員權限執行（Windows）
    """
    try:
        return ctypes.windll.shell32.IsUserAnAdmin() != 0
    except (AttributeError, OSError):
        return False


def cmd_exists(cmd_name):
    """
    檢查系統是否能找到指定的可執行檔或命令（簡單檢查）
    """
    return shutil.which(cmd_name) is not None


def cmdlet_exists(name, runner=run_powershell):
    ok, res = runner(f"Get-Command {name} -ErrorAction SilentlyContinue | Select-Object -Property Name | ConvertTo-Json -Compress")
    if not ok:
        return False
    return not (isinstance(res, str) and res.strip() == "")


def environment_check(runner=run_powershell):
    """
    檢查必要環境：是否以 admin 執行、PowerShell 是否存在、GroupPolicy cmdlet 是否可用。
    回傳 (ok, lines)；lines 為給操作人員看的訊息。
    """
    lines = []
    ok = True
    if is_admin():
        lines.append("已偵測到系統管理員權限")
    else:
        lines.append("警告: 建議以系統管理員權限執行以建立/修改 GPO")
    if not cmd_exists(get_config().powershell.executable):
        lines.append(f"缺少: PowerShell ({get_config().powershell.executable})")
        return False, lines
    for cmd, desc in REQUIRED_CMDLETS:
        if cmdlet_exists(cmd, runner):
            lines.append(f"可用: {desc} ({cmd})")
        else:
            ok = False
            lines.append(f"缺少: {desc} ({cmd})")
    if ok:
        lines.append("環境檢查通過，GroupPolicy cmdlet 均可用。")
    else:
        lines.append("建議：安裝 RSAT GroupPolicy 管理工具，或在網域控制站/管理主機上執行。")
    return ok, lines
