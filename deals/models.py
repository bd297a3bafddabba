"""
deals/models.py -- Domain dataclasses for the deal pipeline.

These are pure data containers. Authorization lives in auth/policy.py and the
use cases in deals/service.py.

Notes are held as a tuple. The collection is never mutated in place: the
store appends or removes a note as its own operation and hands back a fresh
Deal.

Stage is an open set of labels with no enforced transition graph. Any stage
may be set at any time by the owner or an admin.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Generic, Optional, TypeVar


class DealStage(str, Enum):
    PROSPECTING = "PROSPECTING"
    LEAD = "LEAD"
    QUALIFIED = "QUALIFIED"
    TERM_SHEET = "TERM_SHEET"
    DUE_DILIGENCE = "DUE_DILIGENCE"
    WON = "WON"
    CLOSED = "CLOSED"
    LOST = "LOST"


class DealType(str, Enum):
    M_AND_A = "M_AND_A"
    IPO = "IPO"
    DEBT = "DEBT"
    EQUITY = "EQUITY"
    ADVISORY = "ADVISORY"
    OTHER = "OTHER"


@dataclass(frozen=True)
class DealNote:
    """A collaborator annotation on a deal. user_id is the author."""

    note_id: str
    user_id: int
    note: str
    created_at: str  # ISO 8601

    @classmethod
    def new(cls, user_id: int, note: str) -> "DealNote":
        return cls(
            note_id=str(uuid.uuid4()),
            user_id=user_id,
            note=note,
            created_at=datetime.now(timezone.utc).isoformat(timespec="microseconds"),
        )


@dataclass
class Deal:
    """A deal in the pipeline.

    deal_value is the sensitive field: only admins may set it or see it.

    id is None before the record is written to the database.
    """

    title: str
    owner_id: int
    sector: Optional[str] = None
    deal_type: Optional[DealType] = None
    stage: DealStage = DealStage.LEAD
    deal_value: Optional[float] = None
    notes: tuple[DealNote, ...] = field(default_factory=tuple)
    id: Optional[int] = None
    created_at: str = ""  # ISO 8601, set by store on insert
    updated_at: str = ""


T = TypeVar("T")


@dataclass(frozen=True)
class Page(Generic[T]):
    """One page of a listing. page is zero-based."""

    items: list[T]
    page: int
    size: int
    total: int
