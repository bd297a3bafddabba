"""
deals/store.py -- SQLAlchemy-backed persistence for deals and their notes.

Uses SQLAlchemy Core (not ORM) so the dataclasses in deals/models.py remain
the authoritative domain representation. Swapping SQLite for PostgreSQL is a
connection string change.

Pattern: Repository + Data Mapper. DealStore is the repository; the
_row_to_* functions are the mappers. This store does no authorization --
deals/service.py consults auth/policy.py before calling it.

Security: all queries use bound parameters. No f-strings in SQL.

Usage:
    store = DealStore("sqlite:///:memory:")
    deal_id = store.create_deal(Deal(title="Acme buyout", owner_id=1))
    store.add_note(deal_id, DealNote.new(user_id=1, note="Called the CFO"))
    deal = store.get_deal(deal_id)
    store.close()
"""

from __future__ import annotations

from collections import defaultdict
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Column, Float, Integer, MetaData, String, Table, Text, and_, func, select
from sqlalchemy.engine import Engine

from auth.store import make_engine
from core.config import get_settings
from deals.models import Deal, DealNote, DealStage, DealType

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_deals = Table(
    "deals",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("title", String(255), nullable=False),
    Column("sector", String(100)),
    Column("deal_type", String(20)),
    Column("stage", String(20), nullable=False, server_default=DealStage.LEAD.value),
    Column("deal_value", Float),  # sensitive, ADMIN only
    Column("owner_id", Integer, nullable=False, index=True),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

_deal_notes = Table(
    "deal_notes",
    metadata,
    Column("note_id", String(36), primary_key=True),
    Column("deal_id", Integer, nullable=False, index=True),
    Column("user_id", Integer, nullable=False),
    Column("note", Text, nullable=False),
    Column("created_at", String(32), nullable=False),
)

# Columns update_deal() may touch.
_MUTABLE_FIELDS = {"title", "sector", "deal_type", "stage", "deal_value"}


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


def _enum_value(value):
    return value.value if hasattr(value, "value") else value


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class DealStore:
    def __init__(self, db_url: str | None = None) -> None:
        self.engine: Engine = make_engine(db_url or get_settings().database_url)
        metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Deals
    # ------------------------------------------------------------------

    def create_deal(self, deal: Deal) -> int:
        """Insert a deal and return its assigned ID. Notes on the argument are ignored."""
        now = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(
                _deals.insert().values(
                    title=deal.title,
                    sector=deal.sector,
                    deal_type=_enum_value(deal.deal_type),
                    stage=_enum_value(deal.stage),
                    deal_value=deal.deal_value,
                    owner_id=deal.owner_id,
                    created_at=now,
                    updated_at=now,
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_deal(self, deal_id: int) -> Optional[Deal]:
        """Return the deal with its notes (oldest first), or None."""
        with self.engine.connect() as conn:
            row = conn.execute(_deals.select().where(_deals.c.id == deal_id)).fetchone()
            if row is None:
                return None
            notes = conn.execute(
                _deal_notes.select().where(_deal_notes.c.deal_id == deal_id).order_by(_deal_notes.c.created_at)
            ).fetchall()
        return _row_to_deal(row, tuple(_row_to_note(n) for n in notes))

    def list_deals(
        self,
        stage: Optional[DealStage] = None,
        sector: Optional[str] = None,
        owner_id: Optional[int] = None,
        offset: int = 0,
        limit: int = 20,
    ) -> tuple[list[Deal], int]:
        """Return (deals, total) for one page, newest first.

        All filters are exact matches and combine with AND. total counts every
        matching deal, not just the returned page.
        """
        conditions = []
        if stage is not None:
            conditions.append(_deals.c.stage == _enum_value(stage))
        if sector is not None:
            conditions.append(_deals.c.sector == sector)
        if owner_id is not None:
            conditions.append(_deals.c.owner_id == owner_id)
        where = and_(*conditions) if conditions else None

        query = _deals.select().order_by(_deals.c.id.desc()).offset(offset).limit(limit)
        count_query = select(func.count()).select_from(_deals)
        if where is not None:
            query = query.where(where)
            count_query = count_query.where(where)

        with self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
            total = conn.execute(count_query).scalar() or 0
            notes_by_deal: dict[int, list[DealNote]] = defaultdict(list)
            ids = [r.id for r in rows]
            if ids:
                note_rows = conn.execute(
                    _deal_notes.select().where(_deal_notes.c.deal_id.in_(ids)).order_by(_deal_notes.c.created_at)
                ).fetchall()
                for n in note_rows:
                    notes_by_deal[n.deal_id].append(_row_to_note(n))
        return [_row_to_deal(r, tuple(notes_by_deal[r.id])) for r in rows], total

    def update_deal(self, deal_id: int, **fields) -> bool:
        """Update mutable deal fields. Returns False if deal_id was not found."""
        unknown = set(fields) - _MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown deal fields: {unknown!r}")
        values = {k: _enum_value(v) for k, v in fields.items()}
        with self.engine.connect() as conn:
            result = conn.execute(_deals.update().where(_deals.c.id == deal_id).values(updated_at=_now_iso(), **values))
            conn.commit()
        return result.rowcount > 0

    def delete_deal(self, deal_id: int) -> bool:
        """Delete a deal and its notes. Returns False if deal_id was not found."""
        with self.engine.begin() as conn:
            conn.execute(_deal_notes.delete().where(_deal_notes.c.deal_id == deal_id))
            result = conn.execute(_deals.delete().where(_deals.c.id == deal_id))
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Notes
    # ------------------------------------------------------------------

    def add_note(self, deal_id: int, note: DealNote) -> None:
        """Append a note and touch the deal's updated_at."""
        with self.engine.begin() as conn:
            conn.execute(
                _deal_notes.insert().values(
                    note_id=note.note_id,
                    deal_id=deal_id,
                    user_id=note.user_id,
                    note=note.note,
                    created_at=note.created_at,
                )
            )
            conn.execute(_deals.update().where(_deals.c.id == deal_id).values(updated_at=_now_iso()))

    def remove_note(self, deal_id: int, note_id: str) -> bool:
        """Remove one note. Returns False if the deal has no such note."""
        with self.engine.begin() as conn:
            result = conn.execute(
                _deal_notes.delete().where(and_(_deal_notes.c.deal_id == deal_id, _deal_notes.c.note_id == note_id))
            )
            if result.rowcount == 0:
                return False
            conn.execute(_deals.update().where(_deals.c.id == deal_id).values(updated_at=_now_iso()))
        return True

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_deal(row, notes: tuple[DealNote, ...]) -> Deal:
    return Deal(
        id=row.id,
        title=row.title,
        sector=row.sector,
        deal_type=DealType(row.deal_type) if row.deal_type else None,
        stage=DealStage(row.stage),
        deal_value=row.deal_value,
        owner_id=row.owner_id,
        notes=notes,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_note(row) -> DealNote:
    return DealNote(
        note_id=row.note_id,
        user_id=row.user_id,
        note=row.note,
        created_at=row.created_at,
    )
