from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple


def _str_list(raw: Any, field_name: str) -> Tuple[str, ...]:
    if raw is None:
        return ()
    if not isinstance(raw, list):
        raise ValueError(f"{field_name} must be a list")
    return tuple(str(item) for item in raw if item is not None)


def _opt_str(raw: Any) -> Optional[str]:
    if raw is None:
        return None
    v = str(raw).strip()
    return v or None


@dataclass(frozen=True)
class Document:
    doc_num: str
    doc_type: str
    date_executed: str
    date_recorded: str
    doc_url: str
    consideration_amount: Optional[str] = None
    grantees: Tuple[str, ...] = ()

    @classmethod
    def from_json(cls, raw: Any) -> "Document":
        if not isinstance(raw, dict):
            raise ValueError("document entry must be an object")
        return cls(
            doc_num=str(raw.get("DOC_NUM") or ""),
            doc_type=str(raw.get("DOC_TYPE") or ""),
            date_executed=str(raw.get("DATE_EXECUTED") or ""),
            date_recorded=str(raw.get("DATE_RECORDED") or ""),
            doc_url=str(raw.get("DOC_URL") or ""),
            consideration_amount=_opt_str(raw.get("CONSIDERATION_AMOUNT")),
            grantees=_str_list(raw.get("GRANTEES"), "GRANTEES"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "DOC_NUM": self.doc_num,
            "DOC_TYPE": self.doc_type,
            "DATE_EXECUTED": self.date_executed,
            "DATE_RECORDED": self.date_recorded,
            "DOC_URL": self.doc_url,
            "CONSIDERATION_AMOUNT": self.consideration_amount,
            "GRANTEES": list(self.grantees),
        }


@dataclass(frozen=True)
class PinDocuments:
    """Addresses and recorded documents for one parcel PIN."""

    addresses: Tuple[str, ...] = ()
    docs: Tuple[Document, ...] = ()

    @classmethod
    def empty(cls) -> "PinDocuments":
        return cls()

    @classmethod
    def from_json(cls, raw: Any) -> "PinDocuments":
        if not isinstance(raw, dict):
            raise ValueError("PIN document payload must be an object")
        docs_raw = raw.get("DOCS")
        if docs_raw is None:
            docs_raw = []
        if not isinstance(docs_raw, list):
            raise ValueError("DOCS must be a list")
        return cls(
            addresses=_str_list(raw.get("ADDRESSES"), "ADDRESSES"),
            docs=tuple(Document.from_json(d) for d in docs_raw),
        )

    @property
    def is_empty(self) -> bool:
        return not self.addresses and not self.docs

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ADDRESSES": list(self.addresses),
            "DOCS": [d.to_dict() for d in self.docs],
        }


@dataclass(frozen=True)
class EntityData:
    """Parcels associated with one grantee entity."""

    associated_pins: Tuple[str, ...] = ()
    count: int = 0

    @classmethod
    def empty(cls) -> "EntityData":
        return cls()

    @classmethod
    def from_json(cls, raw: Any) -> "EntityData":
        if not isinstance(raw, dict):
            raise ValueError("entity payload must be an object")
        pins = _str_list(raw.get("ASSOCIATED_PINS"), "ASSOCIATED_PINS")
        count_raw = raw.get("COUNT")
        try:
            count = int(count_raw) if count_raw is not None else len(pins)
        except (TypeError, ValueError, OverflowError):
            raise ValueError("COUNT must be an integer")
        return cls(associated_pins=pins, count=count)

    @property
    def is_empty(self) -> bool:
        return not self.associated_pins

    def to_dict(self) -> Dict[str, Any]:
        return {"ASSOCIATED_PINS": list(self.associated_pins), "COUNT": self.count}


@dataclass(frozen=True)
class EntityMappingTable:
    entries: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_json(cls, raw: Any) -> "EntityMappingTable":
        if not isinstance(raw, dict):
            raise ValueError("entity mapping must be an object")
        return cls(
            entries={
                str(k): str(v) for k, v in raw.items() if k is not None and v
            }
        )
