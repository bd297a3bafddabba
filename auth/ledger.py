"""
auth/ledger.py -- Server-side ledger of opaque refresh tokens.

Pattern: Repository + Data Mapper, same shape as auth/store.py.

Every refresh-token value is either ACTIVE or in one of three terminal states
(NOT_FOUND, REVOKED, EXPIRED). Methods report the state as an explicit
TokenState instead of raising, so callers must handle each kind.

Concurrency:
  The security property this module exists for is "a refresh token is spent at
  most once". Two requests presenting the same value must not both rotate it.
  Two layers enforce that:

  1. The revoke is a conditional UPDATE (WHERE revoked = 0 AND expires_at > now)
     and the caller only proceeds when rowcount == 1. The database decides the
     winner even across processes sharing one database.
  2. Within a process, all ledger operations run under one lock. SQLite in
     shared-cache mode answers contention with "table is locked" instead of
     waiting, so serializing here keeps losers on the REVOKED path rather
     than an OperationalError.

  rotate() revokes the presented token and inserts its successor in the same
  transaction: either both happen or neither does.

Timestamps are stored as fixed-width ISO 8601 UTC strings (microsecond
precision, +00:00 suffix) so that string comparison in SQL is chronological.

Layer rule: no imports from api/ or deals/.
"""

from __future__ import annotations

import logging
import secrets
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from sqlalchemy import Column, Integer, MetaData, String, Table, and_
from sqlalchemy.engine import Connection, Engine

from auth.models import RefreshTokenRecord
from auth.store import make_engine
from core.config import get_settings
from core.errors import TokenState

logger = logging.getLogger("dealpipeline.auth.ledger")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_refresh_tokens = Table(
    "refresh_tokens",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("token", String(128), nullable=False, unique=True),
    Column("owner_id", Integer, nullable=False, index=True),
    Column("expires_at", String(32), nullable=False),
    Column("revoked", Integer, nullable=False, server_default="0"),
    Column("created_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _iso(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _now() -> datetime:
    return datetime.now(timezone.utc)


def generate_token_value() -> str:
    """Return a new opaque refresh-token value.

    secrets.token_urlsafe(32) encodes 32 random bytes (256 bits of entropy),
    far beyond brute-force reach.
    """
    return secrets.token_urlsafe(32)


@dataclass(frozen=True)
class LedgerResult:
    """Outcome of a ledger operation.

    state is ACTIVE on success. record is the record the operation produced
    or inspected: the validated record for validate(), the now-revoked record
    for revoke(), the successor for rotate(). It is None on failure, except
    that REVOKED and EXPIRED lookups still carry the record for logging.
    """

    state: TokenState
    record: RefreshTokenRecord | None = None

    @property
    def ok(self) -> bool:
        return self.state is TokenState.ACTIVE


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class RefreshTokenLedger:
    """Persists refresh-token records and their revocation state.

    Usage:
        ledger = RefreshTokenLedger()
        record = ledger.create(user.id)
        result = ledger.validate(record.token)     # LedgerResult(ACTIVE, record)
        result = ledger.rotate(record.token)       # LedgerResult(ACTIVE, successor)
        result = ledger.revoke(record.token)       # LedgerResult(REVOKED, ...)
        ledger.close()
    """

    def __init__(self, db_url: str | None = None, validity: timedelta | None = None) -> None:
        cfg = get_settings()
        self.engine: Engine = make_engine(db_url or cfg.database_url)
        self.validity = validity if validity is not None else timedelta(days=cfg.refresh_token_expire_days)
        self._lock = threading.Lock()
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def create(self, owner_id: int) -> RefreshTokenRecord:
        """Persist and return a fresh ACTIVE record for this identity."""
        with self._lock, self.engine.begin() as conn:
            return self._insert(conn, owner_id)

    def validate(self, token: str) -> LedgerResult:
        """Classify a token value: ACTIVE, NOT_FOUND, REVOKED or EXPIRED.

        Checks run in that order, so a token that is both revoked and expired
        reports REVOKED.
        """
        with self._lock, self.engine.connect() as conn:
            return self._classify(conn, token)

    def revoke(self, token: str) -> LedgerResult:
        """Revoke an ACTIVE token.

        Validates first and fails with the same kinds as validate(): revoking
        an unknown, already-revoked or expired token is an error, not a no-op.
        """
        with self._lock, self.engine.begin() as conn:
            checked = self._classify(conn, token)
            if not checked.ok:
                return checked
            if not self._mark_revoked(conn, checked.record.id):
                return self._classify(conn, token)
        logger.debug("Refresh token %d revoked (owner %d)", checked.record.id, checked.record.owner_id)
        revoked = RefreshTokenRecord(
            id=checked.record.id,
            token=checked.record.token,
            owner_id=checked.record.owner_id,
            expires_at=checked.record.expires_at,
            revoked=True,
            created_at=checked.record.created_at,
        )
        return LedgerResult(TokenState.ACTIVE, revoked)

    def rotate(self, token: str) -> LedgerResult:
        """Revoke an ACTIVE token and create its successor in one transaction.

        On success the result carries the successor record. On failure nothing
        is written and the result carries the presented token's state.
        """
        with self._lock, self.engine.begin() as conn:
            checked = self._classify(conn, token)
            if not checked.ok:
                return checked
            if not self._mark_revoked(conn, checked.record.id):
                return self._classify(conn, token)
            successor = self._insert(conn, checked.record.owner_id)
        logger.debug("Refresh token %d rotated to %d", checked.record.id, successor.id)
        return LedgerResult(TokenState.ACTIVE, successor)

    def close(self) -> None:
        self.engine.dispose()

    # ------------------------------------------------------------------
    # Internals -- callers hold self._lock and an open connection
    # ------------------------------------------------------------------

    def _insert(self, conn: Connection, owner_id: int) -> RefreshTokenRecord:
        now = _now()
        record = RefreshTokenRecord(
            token=generate_token_value(),
            owner_id=owner_id,
            expires_at=_iso(now + self.validity),
            revoked=False,
            created_at=_iso(now),
        )
        result = conn.execute(
            _refresh_tokens.insert().values(
                token=record.token,
                owner_id=record.owner_id,
                expires_at=record.expires_at,
                revoked=0,
                created_at=record.created_at,
            )
        )
        record.id = result.inserted_primary_key[0]
        return record

    def _classify(self, conn: Connection, token: str) -> LedgerResult:
        row = conn.execute(_refresh_tokens.select().where(_refresh_tokens.c.token == token)).fetchone()
        if row is None:
            return LedgerResult(TokenState.NOT_FOUND)
        record = _row_to_record(row)
        if record.revoked:
            return LedgerResult(TokenState.REVOKED, record)
        if record.expires_at <= _iso(_now()):
            return LedgerResult(TokenState.EXPIRED, record)
        return LedgerResult(TokenState.ACTIVE, record)

    def _mark_revoked(self, conn: Connection, record_id: int) -> bool:
        """Flip revoked 0 -> 1 only if the record is still live. True if this call won."""
        result = conn.execute(
            _refresh_tokens.update()
            .where(
                and_(
                    _refresh_tokens.c.id == record_id,
                    _refresh_tokens.c.revoked == 0,
                    _refresh_tokens.c.expires_at > _iso(_now()),
                )
            )
            .values(revoked=1)
        )
        return result.rowcount == 1


# ---------------------------------------------------------------------------
# Row mapper
# ---------------------------------------------------------------------------


def _row_to_record(row) -> RefreshTokenRecord:
    return RefreshTokenRecord(
        id=row.id,
        token=row.token,
        owner_id=row.owner_id,
        expires_at=row.expires_at,
        revoked=bool(row.revoked),
        created_at=row.created_at,
    )
