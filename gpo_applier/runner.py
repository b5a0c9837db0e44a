# runner.py
# PolicyRunner：建立/取得容器 -> (備份) -> (連結) -> 依序套用設定 -> 產生報告
import logging
import datetime
from dataclasses import dataclass, field
from enum import Enum

from .catalog import Context
from .errors import BackupFailed, InvalidCatalog, InvalidContext, PolicyError, SettingRejected

logger = logging.getLogger(__name__)


class RunState(Enum):
    INIT = "Init"
    CONTAINER_READY = "ContainerReady"
    BACKED_UP = "BackedUp"
    BACKUP_SKIPPED = "BackupSkipped"
    APPLYING = "Applying"
    REPORTING = "Reporting"
    DONE = "Done"
    ABORTED = "Aborted"


@dataclass
class ApplyReport:
    container_id: str
    catalog_id: str
    attempted: int = 0
    applied: list = field(default_factory=list)   # [(setting, outcome)]
    skipped: list = field(default_factory=list)   # [(setting, reason)]
    failed: list = field(default_factory=list)    # [(setting, error)]
    warnings: list = field(default_factory=list)
    backup: object = None
    linked_scope: str = None
    container_created: bool = False
    context: dict = field(default_factory=dict)
    started_at: str = ""
    finished_at: str = ""
    state: RunState = RunState.DONE

    @property
    def ok(self):
        return not self.failed

    def summary(self):
        return {
            "container": self.container_id,
            "catalog": self.catalog_id,
            "attempted": self.attempted,
            "applied": len(self.applied),
            "skipped": len(self.skipped),
            "failed": len(self.failed),
            "warnings": len(self.warnings),
        }

    def rows(self):
        """(結果, 設定, 說明)：APPLIED、SKIPPED、FAILED 依序排列，報表模組使用"""
        rows = [("APPLIED", s, outcome.value) for s, outcome in self.applied]
        rows += [("SKIPPED", s, reason) for s, reason in self.skipped]
        rows += [("FAILED", s, getattr(err, "reason", str(err))) for s, err in self.failed]
        return rows


class PolicyRunner:
    """
    單次執行 = 單一控制流程；設定依目錄順序逐項套用，不平行化、不重試。
    致命錯誤（InvalidCatalog / InvalidContext / StoreUnavailable / PermissionDenied，
    以及 backup_failure_fatal=True 時的 BackupFailed）直接往外拋，狀態停在 ABORTED，不產生報告。
    套用途中發生的致命錯誤同樣中止，錯誤的 details["applied"] 列出中止前已寫入的設定。
    """

    def __init__(self, store, backup_failure_fatal=False):
        self.store = store
        self.backup_failure_fatal = backup_failure_fatal
        self.state = RunState.INIT
        self.history = []

    def _enter(self, state):
        self.state = state
        self.history.append(state)
        logger.debug("state -> %s", state.value)

    def run(self, catalog, container_id, context=None, description="", target_scope=None,
            backup_requested=False, backup_destination=None):
        self.history = []
        self._enter(RunState.INIT)
        try:
            context = self._check_inputs(catalog, container_id, context, backup_requested, backup_destination)
            report = ApplyReport(
                container_id=container_id,
                catalog_id=catalog.id,
                context=dict(context.flags),
                started_at=datetime.datetime.now().isoformat(timespec="seconds"),
            )
            logger.info(
                "開始套用目錄 %s -> 容器 %s (%d 項設定, 後端 %s)",
                catalog.id, container_id, len(catalog), getattr(self.store, "name", "store"),
            )

            container = self.store.ensure_container(container_id, description)
            report.container_created = container.created
            self._enter(RunState.CONTAINER_READY)

            if backup_requested:
                self._backup(container_id, backup_destination, report)
            else:
                self._enter(RunState.BACKUP_SKIPPED)

            if target_scope:
                self.store.link_container(container_id, target_scope)
                report.linked_scope = target_scope
        except PolicyError:
            self._enter(RunState.ABORTED)
            logger.error("套用中止 (%s)", container_id)
            raise

        self._enter(RunState.APPLYING)
        try:
            self._apply(catalog, container_id, context, report)
        except PolicyError as e:
            # 已寫入的設定不會回復
            e.details.setdefault("applied", [s.label for s, _ in report.applied])
            self._enter(RunState.ABORTED)
            logger.error("套用途中中止 (%s)，已寫入 %d 項: %s", container_id, len(report.applied), e.message)
            raise

        self._enter(RunState.REPORTING)
        report.attempted = len(report.applied) + len(report.skipped) + len(report.failed)
        report.finished_at = datetime.datetime.now().isoformat(timespec="seconds")
        logger.info(
            "完成: 套用 %d / 略過 %d / 失敗 %d",
            len(report.applied), len(report.skipped), len(report.failed),
        )
        self._enter(RunState.DONE)
        return report

    # ---------- 各階段 ----------
    def _check_inputs(self, catalog, container_id, context, backup_requested, backup_destination):
        if catalog is None or not hasattr(catalog, "filter"):
            raise InvalidCatalog("no catalog supplied")
        if not isinstance(container_id, str) or not container_id.strip():
            raise InvalidContext("container id is required")
        if context is None:
            context = Context()
        elif not isinstance(context, Context):
            context = Context(context)
        missing = context.missing(catalog.referenced_flags())
        if missing:
            raise InvalidContext(
                f"context is missing flags used by catalog {catalog.id!r}: {', '.join(missing)}",
                details={"missing": missing},
            )
        if backup_requested and not backup_destination:
            raise InvalidContext("backup requested without a destination")
        return context

    def _backup(self, container_id, destination, report):
        try:
            report.backup = self.store.backup_container(container_id, destination)
        except BackupFailed as e:
            if self.backup_failure_fatal:
                raise
            logger.warning("備份失敗，繼續套用: %s", e.message)
            report.warnings.append(f"backup failed: {e.message}")
            self._enter(RunState.BACKUP_SKIPPED)
            return
        self._enter(RunState.BACKED_UP)

    def _apply(self, catalog, container_id, context, report):
        # 依目錄順序走過所有設定：不適用者記為 skipped，其餘逐項寫入
        for setting in catalog.settings:
            if not setting.applies_when(context):
                reason = f"predicate not met: {setting.applies_when.describe()}"
                report.skipped.append((setting, reason))
                logger.info("略過 %s (%s)", setting.label, reason)
                continue
            try:
                outcome = self.store.apply_setting(container_id, setting)
            except SettingRejected as e:
                report.failed.append((setting, e))
                logger.warning("設定失敗 %s: %s", setting.label, e.reason)
                continue
            report.applied.append((setting, outcome))
            logger.info("已套用 %s = %s", setting.label, setting.value)
