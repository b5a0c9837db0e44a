# config.py
# 執行設定：PowerShell、輸出資料夾、日誌（transcript）
# 所有值可由 GPO_APPLIER_* 環境變數覆寫
import os
import logging
import logging.handlers
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PowerShellConfig:
    executable: str = "powershell"
    timeout: int = 120


@dataclass(frozen=True)
class LogConfig:
    level: str = "INFO"
    format: str = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    file_enabled: bool = True
    file_name: str = "gpo_applier.log"
    max_file_size_mb: int = 10
    backup_count: int = 5


@dataclass(frozen=True)
class AppConfig:
    base_dir: Path = field(default_factory=lambda: Path.cwd() / "gpo_applier_output")
    powershell: PowerShellConfig = field(default_factory=PowerShellConfig)
    log: LogConfig = field(default_factory=LogConfig)

    @property
    def reports_dir(self):
        return self.base_dir / "reports"

    @property
    def backups_dir(self):
        return self.base_dir / "backups"

    @property
    def logs_dir(self):
        return self.base_dir / "logs"

    @classmethod
    def from_env(cls):
        base = os.getenv("GPO_APPLIER_HOME")
        powershell = PowerShellConfig(
            executable=os.getenv("GPO_APPLIER_POWERSHELL", "powershell"),
            timeout=int(os.getenv("GPO_APPLIER_PS_TIMEOUT", "120")),
        )
        log = LogConfig(
            level=os.getenv("GPO_APPLIER_LOG_LEVEL", "INFO").upper(),
            file_enabled=os.getenv("GPO_APPLIER_LOG_FILE", "true").lower() == "true",
        )
        if base:
            return cls(base_dir=Path(base), powershell=powershell, log=log)
        return cls(powershell=powershell, log=log)


@lru_cache(maxsize=1)
def get_config():
    return AppConfig.from_env()


def setup_logging(config=None, level=None):
    """
    主控台 + 輪替的 transcript 檔（相當於 PowerShell 腳本的 Start-Transcript）。
    回傳 transcript 檔路徑；未啟用檔案日誌時回傳 None。
    """
    config = config or get_config()
    root = logging.getLogger()
    root.setLevel(level or config.log.level)
    formatter = logging.Formatter(config.log.format)

    for handler in list(root.handlers):
        if getattr(handler, "_gpo_applier", False):
            root.removeHandler(handler)
            handler.close()

    console = logging.StreamHandler()
    console.setFormatter(formatter)
    console._gpo_applier = True
    root.addHandler(console)

    if not config.log.file_enabled:
        return None
    config.logs_dir.mkdir(parents=True, exist_ok=True)
    transcript = config.logs_dir / config.log.file_name
    file_handler = logging.handlers.RotatingFileHandler(
        transcript,
        maxBytes=config.log.max_file_size_mb * 1024 * 1024,
        backupCount=config.log.backup_count,
        encoding="utf-8",
    )
    file_handler.setFormatter(formatter)
    file_handler._gpo_applier = True
    root.addHandler(file_handler)
    logger.debug("transcript: %s", transcript)
    return transcript
