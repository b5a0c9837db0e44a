# errors.py
# 套用流程的錯誤分類：致命錯誤（中止整次執行）與可恢復錯誤（記錄後繼續）
from enum import Enum


class ErrorCode(Enum):
    CATALOG_INVALID = "CATALOG_001"
    CONTEXT_INVALID = "CONTEXT_001"
    STORE_UNAVAILABLE = "STORE_001"
    STORE_PERMISSION_DENIED = "STORE_002"
    BACKUP_FAILED = "BACKUP_001"
    SETTING_REJECTED = "SETTING_001"


class PolicyError(Exception):
    """
    所有套用錯誤的基底類別。
    - code: ErrorCode（可搜尋的錯誤代碼）
    - message: 給操作人員看的訊息
    - details: 額外的上下文（容器名稱、設定名稱、PowerShell 輸出等）
    - fatal: True 代表整次執行必須在套用任何設定前中止
    """

    code = None
    fatal = True

    def __init__(self, message, details=None):
        self.message = message
        self.details = details or {}
        super().__init__(f"[{self.code.value}] {message}")

    def to_dict(self):
        return {
            "code": self.code.value,
            "error": type(self).__name__,
            "message": self.message,
            "details": self.details,
            "fatal": self.fatal,
        }


class InvalidCatalog(PolicyError):
    code = ErrorCode.CATALOG_INVALID


class InvalidContext(PolicyError):
    code = ErrorCode.CONTEXT_INVALID


class StoreUnavailable(PolicyError):
    code = ErrorCode.STORE_UNAVAILABLE


class PermissionDenied(PolicyError):
    code = ErrorCode.STORE_PERMISSION_DENIED


class BackupFailed(PolicyError):
    # 預設可恢復；由 PolicyRunner(backup_failure_fatal=True) 決定是否升級為致命
    code = ErrorCode.BACKUP_FAILED
    fatal = False


class SettingRejected(PolicyError):
    code = ErrorCode.SETTING_REJECTED
    fatal = False

    def __init__(self, reason, details=None):
        self.reason = reason
        super().__init__(reason, details)


__all__ = [
    "ErrorCode",
    "PolicyError",
    "InvalidCatalog",
    "InvalidContext",
    "StoreUnavailable",
    "PermissionDenied",
    "BackupFailed",
    "SettingRejected",
]
