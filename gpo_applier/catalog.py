# catalog.py
# 設定目錄：有序的設定清單 + 每項設定的適用條件（predicate）
import json
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Annotated, List, Literal, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    StrictInt,
    StrictStr,
    TypeAdapter,
    ValidationError,
    field_validator,
)

from .errors import InvalidCatalog, InvalidContext


# ---------- Context ----------
@dataclass(frozen=True)
class Context:
    """
    單次執行的環境旗標（例如 isEphemeralTarget、isDomainController）。
    建立後不可變；flags 以唯讀 mapping 保存。
    """
    flags: MappingProxyType = field(default_factory=lambda: MappingProxyType({}))

    def __post_init__(self):
        flags = dict(self.flags or {})
        for name, value in flags.items():
            if not isinstance(name, str) or not name:
                raise InvalidContext(f"context flag name must be a non-empty string: {name!r}")
            if not isinstance(value, bool):
                raise InvalidContext(
                    f"context flag {name!r} must be a boolean, got {type(value).__name__}",
                    details={"flag": name},
                )
        object.__setattr__(self, "flags", MappingProxyType(flags))

    @classmethod
    def from_items(cls, mapping=None, **flags):
        merged = dict(mapping or {})
        merged.update(flags)
        return cls(merged)

    def has(self, name):
        return name in self.flags

    def get(self, name, default=False):
        return self.flags.get(name, default)

    def missing(self, names):
        return sorted(n for n in names if n not in self.flags)


# ---------- Predicates ----------
@dataclass(frozen=True)
class Always:
    def __call__(self, context):
        return True

    @property
    def flags(self):
        return frozenset()

    def describe(self):
        return "always"

    def to_dict(self):
        return {"type": "always"}


@dataclass(frozen=True)
class FlagIs:
    flag: str
    expected: bool = True

    def __post_init__(self):
        if not isinstance(self.flag, str) or not self.flag:
            raise InvalidCatalog(f"predicate flag must be a non-empty string: {self.flag!r}")
        if not isinstance(self.expected, bool):
            raise InvalidCatalog(f"predicate on {self.flag!r} expects a boolean, got {self.expected!r}")

    def __call__(self, context):
        # 未提供的旗標視為 False（與 PowerShell switch 未指定時相同）
        return context.get(self.flag, False) is self.expected

    @property
    def flags(self):
        return frozenset([self.flag])

    def describe(self):
        return f"{self.flag} is {'true' if self.expected else 'false'}"

    def to_dict(self):
        return {"type": "flag", "flag": self.flag, "expected": self.expected}


def always():
    return Always()


def when(flag):
    """旗標為 True 時才套用"""
    return FlagIs(flag, True)


def unless(flag):
    """旗標為 False 時才套用（例如非 VDI 主機才啟用 BitLocker）"""
    return FlagIs(flag, False)


# ---------- Values / Settings ----------
@dataclass(frozen=True)
class EnumTag:
    """
    具名列舉值：目錄中以可讀名稱表示，寫入後端時使用 code。
    例：EnumTag("XtsAes256", 7)
    """
    tag: str
    code: int

    def __str__(self):
        return f"{self.tag}({self.code})"


def value_to_json(value):
    if isinstance(value, EnumTag):
        return {"enum": value.tag, "code": value.code}
    return value


@dataclass(frozen=True)
class Setting:
    key: str
    name: str
    value: object
    applies_when: object = field(default_factory=Always)

    @property
    def label(self):
        return f"{self.key}\\{self.name}"

    def to_dict(self):
        return {
            "key": self.key,
            "name": self.name,
            "value": value_to_json(self.value),
            "appliesWhen": self.applies_when.to_dict(),
        }


# ---------- JSON 目錄文件的結構（pydantic） ----------
class AlwaysModel(BaseModel):
    type: Literal["always"]

    def to_predicate(self):
        return Always()


class FlagModel(BaseModel):
    type: Literal["flag"]
    flag: StrictStr = Field(min_length=1)
    expected: StrictBool = True

    def to_predicate(self):
        return FlagIs(self.flag, self.expected)


PredicateModel = Annotated[Union[AlwaysModel, FlagModel], Field(discriminator="type")]


class EnumValueModel(BaseModel):
    enum: StrictStr = Field(min_length=1)
    code: StrictInt


class SettingModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    key: StrictStr
    name: StrictStr
    # bool 不接受（StrictInt 會拒絕 True/False），請用 0/1
    value: Union[StrictInt, StrictStr, EnumValueModel]
    applies_when: Optional[PredicateModel] = Field(default=None, alias="appliesWhen")

    @field_validator("key", "name")
    @classmethod
    def not_blank(cls, v):
        if not v.strip():
            raise ValueError("must be a non-empty string")
        return v

    def to_setting(self):
        value = self.value
        if isinstance(value, EnumValueModel):
            value = EnumTag(value.enum, value.code)
        predicate = self.applies_when.to_predicate() if self.applies_when is not None else Always()
        return Setting(self.key, self.name, value, predicate)


class CatalogModel(BaseModel):
    id: StrictStr = Field(min_length=1)
    description: StrictStr = ""
    settings: List[SettingModel]


_PREDICATE = TypeAdapter(PredicateModel)


def _validation_message(error):
    first = error.errors()[0]
    where = ".".join(str(part) for part in first["loc"]) or "document"
    return f"{where}: {first['msg']}"


def _validate(validate, data, where, details=None):
    try:
        return validate(data)
    except ValidationError as e:
        fields = [".".join(str(part) for part in err["loc"]) for err in e.errors()]
        raise InvalidCatalog(f"{where}: {_validation_message(e)}", details=dict(details or {}, fields=fields)) from e


def predicate_from_dict(data):
    if data is None:
        return Always()
    return _validate(_PREDICATE.validate_python, data, "appliesWhen").to_predicate()


def _setting_from_entry(entry, index):
    where = f"entry {index}"
    if isinstance(entry, Setting):
        if not isinstance(entry.applies_when, (Always, FlagIs)):
            raise InvalidCatalog(f"{where}: unsupported appliesWhen {entry.applies_when!r}", details={"index": index})
        entry = entry.to_dict()
    elif not isinstance(entry, dict):
        raise InvalidCatalog(f"{where}: expected a Setting or a mapping, got {type(entry).__name__}")
    model = _validate(SettingModel.model_validate, entry, where, {"index": index})
    return model.to_setting()


# ---------- Catalog ----------
@dataclass(frozen=True)
class PolicyCatalog:
    id: str
    settings: tuple = ()
    description: str = ""

    @classmethod
    def build(cls, id, entries, description=""):
        if not isinstance(id, str) or not id.strip():
            raise InvalidCatalog("catalog id must be a non-empty string")
        if entries is None:
            raise InvalidCatalog(f"catalog {id!r} has no entries")
        settings = tuple(_setting_from_entry(e, i) for i, e in enumerate(entries))
        return cls(id, settings, description)

    def __len__(self):
        return len(self.settings)

    def __iter__(self):
        return iter(self.settings)

    def filter(self, context):
        """回傳適用於 context 的設定（保持原本順序）"""
        return tuple(s for s in self.settings if s.applies_when(context))

    def referenced_flags(self):
        names = set()
        for s in self.settings:
            names.update(s.applies_when.flags)
        return frozenset(names)

    def duplicates(self):
        """同一 key/name 出現多次的項目；套用時以最後一筆為準"""
        seen, dups = set(), []
        for s in self.settings:
            ident = (s.key.lower(), s.name.lower())
            if ident in seen and ident not in dups:
                dups.append(ident)
            seen.add(ident)
        return dups

    # ---------- 序列化 ----------
    def to_dict(self):
        return {
            "id": self.id,
            "description": self.description,
            "settings": [s.to_dict() for s in self.settings],
        }

    @classmethod
    def from_dict(cls, data):
        doc = _validate(CatalogModel.model_validate, data, "catalog document")
        return cls(doc.id, tuple(s.to_setting() for s in doc.settings), doc.description)

    def dumps(self, indent=2):
        return json.dumps(self.to_dict(), ensure_ascii=False, indent=indent)

    @classmethod
    def loads(cls, text):
        try:
            data = json.loads(text)
        except ValueError as e:
            raise InvalidCatalog(f"catalog is not valid JSON: {e}")
        return cls.from_dict(data)


def load_catalog_file(path):
    try:
        with open(path, "r", encoding="utf-8") as f:
            text = f.read()
    except OSError as e:
        raise InvalidCatalog(f"cannot read catalog file {path}: {e}", details={"path": str(path)})
    return PolicyCatalog.loads(text)


def save_catalog_file(catalog, path):
    with open(path, "w", encoding="utf-8") as f:
        f.write(catalog.dumps())
