from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from deed_explorer.records import Document, PinDocuments


NO_ADDRESS_TEXT = "No address information available"
NO_DOCUMENTS_TEXT = "No documents found for this parcel."

_DATE_FORMATS = (
    "%Y-%m-%d",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%d %H:%M:%S",
    "%m/%d/%Y",
    "%Y/%m/%d",
)


def parse_recorded_date(raw: str) -> Optional[datetime]:
    v = (raw or "").strip()
    if not v:
        return None
    try:
        return datetime.fromisoformat(v.replace("Z", "+00:00")).replace(tzinfo=None)
    except ValueError:
        pass
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(v, fmt)
        except ValueError:
            continue
    return None


def format_date(raw: str) -> str:
    dt = parse_recorded_date(raw)
    if dt is None:
        return raw or ""
    return f"{dt.month}/{dt.day}/{dt.year}"


def sort_documents(docs: Tuple[Document, ...]) -> List[Document]:
    """Newest DATE_RECORDED first; undated documents keep their order at the end."""

    dated = [(parse_recorded_date(d.date_recorded), i, d) for i, d in enumerate(docs)]
    with_date = [t for t in dated if t[0] is not None]
    without_date = [t for t in dated if t[0] is None]
    with_date.sort(key=lambda t: t[0], reverse=True)
    return [t[2] for t in with_date] + [t[2] for t in without_date]


@dataclass(frozen=True)
class GranteeLink:
    name: str
    linked: bool

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "linked": self.linked}


@dataclass(frozen=True)
class DocumentRow:
    document: Document
    recorded: str
    grantees: Tuple[GranteeLink, ...] = ()

    @property
    def summary(self) -> str:
        text = self.document.doc_type
        if self.document.consideration_amount:
            text += f" - {self.document.consideration_amount}"
        if self.grantees:
            text += " to " + ", ".join(g.name for g in self.grantees)
        return text

    def to_dict(self) -> Dict[str, Any]:
        return {
            "doc_num": self.document.doc_num,
            "doc_url": self.document.doc_url,
            "doc_type": self.document.doc_type,
            "recorded": self.recorded,
            "consideration": self.document.consideration_amount,
            "summary": self.summary,
            "grantees": [g.to_dict() for g in self.grantees],
        }


@dataclass(frozen=True)
class ParcelPanel:
    pin: str
    addresses: Tuple[str, ...] = ()
    rows: Tuple[DocumentRow, ...] = field(default_factory=tuple)

    @property
    def address_text(self) -> str:
        return ", ".join(self.addresses) if self.addresses else NO_ADDRESS_TEXT

    @property
    def message(self) -> Optional[str]:
        return None if self.rows else NO_DOCUMENTS_TEXT

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pin": self.pin,
            "address": self.address_text,
            "addresses": list(self.addresses),
            "documents_count": len(self.rows),
            "documents": [r.to_dict() for r in self.rows],
            "message": self.message,
        }


async def build_panel(
    pin: str,
    data: PinDocuments,
    grantee_exists: Callable[[str], Awaitable[bool]],
) -> ParcelPanel:
    """Sort the parcel's documents and flag which grantees have entity data."""

    docs = sort_documents(data.docs)
    names = sorted({g for d in docs for g in d.grantees})
    flags = await asyncio.gather(*[grantee_exists(n) for n in names])
    linked = dict(zip(names, flags))
    rows = tuple(
        DocumentRow(
            document=d,
            recorded=format_date(d.date_recorded),
            grantees=tuple(GranteeLink(g, bool(linked.get(g))) for g in d.grantees),
        )
        for d in docs
    )
    return ParcelPanel(pin=pin, addresses=data.addresses, rows=rows)
