"""Shared data models for the inventory and the sync engine."""

from __future__ import annotations

import enum
import re
from dataclasses import dataclass, field, fields
from typing import Any, Optional

UUID_RE = re.compile(r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$")
LABEL_ID_RE = re.compile(r"^[a-zA-Z0-9]{8}$")
COLOR_RE = re.compile(r"^#([0-9A-F]{3}|[0-9A-F]{6})$", re.IGNORECASE)

# Revision markers are regenerated by whichever store imports the document
REVISION_FIELD = "_rev"


def is_valid_id(value: str) -> bool:
    """A record id is either a UUID or an 8-char alphanumeric QR label code."""
    return bool(UUID_RE.match(value) or LABEL_ID_RE.match(value))


def is_valid_color(value: str) -> bool:
    """Empty is allowed; otherwise #RGB or #RRGGBB."""
    if not value:
        return True
    return bool(COLOR_RE.match(value))


def strip_revision(doc: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in doc.items() if k != REVISION_FIELD}


class UsageStatus(str, enum.Enum):
    SUCCESS = "success"
    FAILURE = "failure"


@dataclass
class UsageLog:
    """One print's worth of consumption against a spool."""

    id: str
    timestamp: str  # ISO timestamp
    weight_delta: float  # grams
    print_name: str = ""
    status: UsageStatus = UsageStatus.SUCCESS
    notes: str = ""

    def to_doc(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp,
            "weight_delta": self.weight_delta,
            "print_name": self.print_name,
            "status": self.status.value,
            "notes": self.notes,
        }

    @classmethod
    def from_doc(cls, doc: dict[str, Any]) -> UsageLog:
        return cls(
            id=doc["id"],
            timestamp=doc.get("timestamp", ""),
            weight_delta=float(doc.get("weight_delta", 0.0)),
            print_name=doc.get("print_name", ""),
            status=UsageStatus(doc.get("status", UsageStatus.SUCCESS.value)),
            notes=doc.get("notes", ""),
        )


@dataclass
class Filament:
    """One spool in the inventory, as stored in the filament database."""

    filament: str  # display name
    material: str  # e.g. "PLA", "PETG"
    id: Optional[str] = None
    rev: Optional[str] = None
    brand: str = ""
    color: str = ""  # "#RRGGBB"
    price: float = 0.0
    used_weight: float = 0.0  # grams
    total_weight: float = 1000.0  # grams
    location: str = ""
    comments: str = ""
    usage_history: list[UsageLog] = field(default_factory=list)
    extra: dict[str, Any] = field(default_factory=dict)  # fields we don't model

    @property
    def remaining_weight(self) -> float:
        return self.total_weight - self.used_weight

    def to_doc(self) -> dict[str, Any]:
        doc: dict[str, Any] = dict(self.extra)
        if self.id is not None:
            doc["_id"] = self.id
        if self.rev is not None:
            doc["_rev"] = self.rev
        doc.update({
            "filament": self.filament,
            "material": self.material,
            "brand": self.brand,
            "color": self.color,
            "price": self.price,
            "used_weight": self.used_weight,
            "total_weight": self.total_weight,
            "location": self.location,
            "comments": self.comments,
            "usage_history": [log.to_doc() for log in self.usage_history],
        })
        return doc

    @classmethod
    def from_doc(cls, doc: dict[str, Any]) -> Filament:
        known = {f.name for f in fields(cls)} | {"_id", "_rev"}
        return cls(
            id=doc.get("_id"),
            rev=doc.get("_rev"),
            filament=doc.get("filament", ""),
            material=doc.get("material", ""),
            brand=doc.get("brand") or "",
            color=doc.get("color") or "",
            price=float(doc.get("price") or 0.0),
            used_weight=float(doc.get("used_weight") or 0.0),
            total_weight=float(doc.get("total_weight", 1000.0)),
            location=doc.get("location") or "",
            comments=doc.get("comments") or "",
            usage_history=[UsageLog.from_doc(d) for d in doc.get("usage_history", [])],
            extra={k: v for k, v in doc.items() if k not in known},
        )


@dataclass
class ExportEnvelope:
    """The {regular, local} bundle exchanged with the relay and written to backups."""

    regular: list[dict[str, Any]] = field(default_factory=list)
    local: list[dict[str, Any]] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not self.regular and not self.local

    def to_dict(self) -> dict[str, Any]:
        return {"regular": self.regular, "local": self.local}

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> ExportEnvelope:
        if not data:
            return cls()
        return cls(
            regular=list(data.get("regular") or []),
            local=list(data.get("local") or []),
        )


class SyncStatus(enum.Enum):
    NONE = "none"
    PENDING_VERIFICATION = "pending_verification"
    ENGAGED = "engaged"


@dataclass
class SyncIdentity:
    """Persisted under the `scl-sync` setting."""

    sync_key: str = ""
    email: str = ""
    account_type: str = ""
    last_synced: Optional[str] = None  # ISO timestamp
    needs_verification: bool = False

    @property
    def status(self) -> SyncStatus:
        if self.needs_verification or not self.sync_key:
            return SyncStatus.PENDING_VERIFICATION
        return SyncStatus.ENGAGED

    def to_dict(self) -> dict[str, Any]:
        return {
            "syncKey": self.sync_key,
            "email": self.email,
            "accountType": self.account_type,
            "lastSynced": self.last_synced,
            "needsVerification": self.needs_verification,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SyncIdentity:
        return cls(
            sync_key=data.get("syncKey") or "",
            email=data.get("email") or "",
            account_type=data.get("accountType") or "",
            last_synced=data.get("lastSynced"),
            needs_verification=bool(data.get("needsVerification", False)),
        )


@dataclass
class PullResult:
    """Decoded success payload of a relay pull."""

    token: str  # may differ from the key that was sent
    account_email: str
    account_type: str
    envelope: ExportEnvelope
    timestamp: Optional[str] = None


class SyncOutcome(enum.Enum):
    SUCCESS = "success"
    NOOP = "noop"
    REJECTED = "rejected"  # blocked before any relay call
    PARTIAL = "partial"  # relay succeeded, local import did not
    FAILED = "failed"


@dataclass
class SyncAlert:
    """What an orchestrator operation reports back to the caller."""

    variant: str  # "success", "info", "warning", "danger"
    message: str
    outcome: SyncOutcome = SyncOutcome.SUCCESS

    @property
    def ok(self) -> bool:
        return self.outcome in (SyncOutcome.SUCCESS, SyncOutcome.NOOP)
