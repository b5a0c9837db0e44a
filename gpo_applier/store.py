# store.py
# PolicyStore：抽象「實際保存設定的後端」（Group Policy、設定檔、遠端 API）
# 本檔另含以 JSON 設定檔為後端的 JsonFileStore
import os
import json
import uuid
import logging
import datetime
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum

from .catalog import EnumTag, value_to_json
from .errors import BackupFailed, PermissionDenied, SettingRejected, StoreUnavailable

logger = logging.getLogger(__name__)


class Outcome(Enum):
    APPLIED = "Applied"


@dataclass(frozen=True)
class Container:
    id: str
    description: str = field(default="", compare=False)
    created: bool = field(default=False, compare=False)
    scopes: tuple = field(default=(), compare=False)


@dataclass(frozen=True)
class BackupHandle:
    container_id: str
    destination: str
    backup_id: str
    created_at: str


DWORD_MAX = 2 ** 32 - 1


def value_kind(value):
    """後端的值型別：整數與列舉寫成 DWord（0..2**32-1），字串寫成 String"""
    if isinstance(value, (int, EnumTag)) and not isinstance(value, bool):
        code = raw_value(value)
        if not 0 <= code <= DWORD_MAX:
            raise SettingRejected(f"value {code} is out of DWord range")
        return "DWord"
    if isinstance(value, str):
        return "String"
    raise SettingRejected(f"unsupported value type {type(value).__name__}")


def raw_value(value):
    return value.code if isinstance(value, EnumTag) else value


class PolicyStore(ABC):
    """
    所有後端需實作的四個操作：
    - ensure_container: 以 id 取得容器，不存在則建立（重複呼叫不會重複建立）
    - backup_container: 變更前快照；失敗丟 BackupFailed
    - link_container: 連結到目標範圍（重複連結為 no-op）
    - apply_setting: 寫入單一設定；後端拒絕時丟 SettingRejected
    """

    name = "store"

    @abstractmethod
    def ensure_container(self, id, description=""):
        raise NotImplementedError

    @abstractmethod
    def backup_container(self, id, destination):
        raise NotImplementedError

    @abstractmethod
    def link_container(self, id, target_scope):
        raise NotImplementedError

    @abstractmethod
    def apply_setting(self, container_id, setting):
        raise NotImplementedError


class JsonFileStore(PolicyStore):
    """
    以單一 JSON 檔保存容器、連結與設定值。
    檔案格式：
        {"containers": {"<id>": {"description": ..., "created_at": ...,
                                 "scopes": [...], "settings": {"<key>": {"<name>": {"type": ..., "value": ...}}}}}}
    """

    name = "file"

    def __init__(self, path):
        self.path = os.fspath(path)

    # ---------- 檔案存取 ----------
    def _load(self):
        parent = os.path.dirname(os.path.abspath(self.path))
        if not os.path.isdir(parent):
            raise StoreUnavailable(f"store directory does not exist: {parent}", details={"path": self.path})
        if not os.path.exists(self.path):
            return {"containers": {}}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                doc = json.load(f)
        except PermissionError as e:
            raise PermissionDenied(f"cannot read store {self.path}: {e}", details={"path": self.path})
        except (OSError, ValueError) as e:
            raise StoreUnavailable(f"cannot read store {self.path}: {e}", details={"path": self.path})
        if not isinstance(doc, dict) or not isinstance(doc.get("containers"), dict):
            raise StoreUnavailable(f"store {self.path} is not a policy store document", details={"path": self.path})
        return doc

    def _save(self, doc):
        tmp = f"{self.path}.tmp"
        try:
            with open(tmp, "w", encoding="utf-8") as f:
                json.dump(doc, f, ensure_ascii=False, indent=2)
            os.replace(tmp, self.path)
        except PermissionError as e:
            raise PermissionDenied(f"cannot write store {self.path}: {e}", details={"path": self.path})
        except OSError as e:
            raise StoreUnavailable(f"cannot write store {self.path}: {e}", details={"path": self.path})

    def _container(self, doc, id):
        entry = doc["containers"].get(id)
        if entry is None:
            raise StoreUnavailable(f"container {id!r} does not exist", details={"container": id})
        return entry

    # ---------- PolicyStore ----------
    def ensure_container(self, id, description=""):
        doc = self._load()
        entry = doc["containers"].get(id)
        created = False
        if entry is None:
            entry = {
                "description": description,
                "created_at": datetime.datetime.now().isoformat(timespec="seconds"),
                "scopes": [],
                "settings": {},
            }
            doc["containers"][id] = entry
            self._save(doc)
            created = True
            logger.info("已建立容器: %s", id)
        else:
            logger.info("容器已存在，沿用: %s", id)
        return Container(id, entry.get("description", ""), created, tuple(entry.get("scopes", [])))

    def backup_container(self, id, destination):
        try:
            entry = self._load()["containers"].get(id)
        except (StoreUnavailable, PermissionDenied) as e:
            raise BackupFailed(f"cannot snapshot {id!r}: {e.message}", details={"container": id})
        if entry is None:
            raise BackupFailed(f"container {id!r} does not exist", details={"container": id})

        now = datetime.datetime.now()
        backup_id = uuid.uuid4().hex[:12]
        filename = f"{id}_{now.strftime('%Y%m%d_%H%M%S')}_{backup_id}.json"
        target = os.path.join(os.fspath(destination), filename)
        try:
            os.makedirs(destination, exist_ok=True)
            with open(target, "w", encoding="utf-8") as f:
                json.dump({"container": id, "backup_id": backup_id, "state": entry}, f, ensure_ascii=False, indent=2)
        except OSError as e:
            raise BackupFailed(f"cannot write backup for {id!r}: {e}", details={"container": id, "destination": str(destination)})
        logger.info("已備份容器 %s -> %s", id, target)
        return BackupHandle(id, target, backup_id, now.isoformat(timespec="seconds"))

    def link_container(self, id, target_scope):
        doc = self._load()
        entry = self._container(doc, id)
        scopes = entry.setdefault("scopes", [])
        if target_scope in scopes:
            logger.info("容器 %s 已連結到 %s，略過", id, target_scope)
            return False
        scopes.append(target_scope)
        self._save(doc)
        logger.info("已將容器 %s 連結到 %s", id, target_scope)
        return True

    def apply_setting(self, container_id, setting):
        doc = self._load()
        try:
            entry = self._container(doc, container_id)
        except StoreUnavailable as e:
            raise SettingRejected(e.message, details={"container": container_id})
        kind = value_kind(setting.value)
        # 同一 key/name 直接覆寫值與型別
        values = entry.setdefault("settings", {}).setdefault(setting.key, {})
        values[setting.name] = {"type": kind, "value": raw_value(setting.value), "source": value_to_json(setting.value)}
        self._save(doc)
        return Outcome.APPLIED

    # ---------- 查詢 ----------
    def links(self, id):
        return tuple(self._container(self._load(), id).get("scopes", []))

    def get_value(self, id, key, name):
        values = self._container(self._load(), id).get("settings", {}).get(key, {})
        item = values.get(name)
        return None if item is None else item["value"]

    def container_ids(self):
        return sorted(self._load()["containers"])
