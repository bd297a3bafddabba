"""Unit tests for auth/ledger.py -- the refresh-token ledger.

Covers:
- create() issues distinct, ACTIVE, high-entropy tokens
- validate() reports NOT_FOUND / REVOKED / EXPIRED / ACTIVE, in that precedence
- revoke() is not idempotent: a second revoke reports REVOKED
- rotate() spends the presented token and returns an ACTIVE successor
- failed operations write nothing
- concurrent rotations of one token: exactly one succeeds
"""

import threading
import time
from datetime import timedelta

from auth.ledger import RefreshTokenLedger, generate_token_value
from core.errors import TokenState


class TestCreateAndValidate:
    def test_created_token_is_active(self, ledger: RefreshTokenLedger) -> None:
        record = ledger.create(owner_id=1)
        result = ledger.validate(record.token)
        assert result.ok
        assert result.state is TokenState.ACTIVE
        assert result.record.owner_id == 1
        assert result.record.revoked is False

    def test_tokens_are_unique(self, ledger: RefreshTokenLedger) -> None:
        tokens = {ledger.create(owner_id=1).token for _ in range(20)}
        assert len(tokens) == 20

    def test_token_value_length(self) -> None:
        # 32 random bytes, base64url without padding
        assert len(generate_token_value()) == 43

    def test_unknown_token_is_not_found(self, ledger: RefreshTokenLedger) -> None:
        result = ledger.validate("never-issued")
        assert result.state is TokenState.NOT_FOUND
        assert result.record is None

    def test_expired_token(self, db_url: str) -> None:
        stale = RefreshTokenLedger(db_url=db_url, validity=timedelta(seconds=-1))
        try:
            record = stale.create(owner_id=1)
            assert stale.validate(record.token).state is TokenState.EXPIRED
        finally:
            stale.close()

    def test_revoked_wins_over_expired(self, db_url: str) -> None:
        """A token that is both revoked and expired reports REVOKED."""
        short = RefreshTokenLedger(db_url=db_url, validity=timedelta(milliseconds=200))
        try:
            record = short.create(owner_id=1)
            assert short.revoke(record.token).ok
            time.sleep(0.3)
            assert short.validate(record.token).state is TokenState.REVOKED
        finally:
            short.close()


class TestRevoke:
    def test_revoke_active_token(self, ledger: RefreshTokenLedger) -> None:
        record = ledger.create(owner_id=3)
        result = ledger.revoke(record.token)
        assert result.ok
        assert result.record.revoked is True
        assert result.record.owner_id == 3
        assert ledger.validate(record.token).state is TokenState.REVOKED

    def test_second_revoke_reports_revoked(self, ledger: RefreshTokenLedger) -> None:
        record = ledger.create(owner_id=3)
        ledger.revoke(record.token)
        assert ledger.revoke(record.token).state is TokenState.REVOKED

    def test_revoke_unknown_token(self, ledger: RefreshTokenLedger) -> None:
        assert ledger.revoke("nope").state is TokenState.NOT_FOUND

    def test_revoke_expired_token(self, db_url: str) -> None:
        stale = RefreshTokenLedger(db_url=db_url, validity=timedelta(seconds=-1))
        try:
            record = stale.create(owner_id=1)
            assert stale.revoke(record.token).state is TokenState.EXPIRED
        finally:
            stale.close()

    def test_revoke_leaves_other_tokens_alone(self, ledger: RefreshTokenLedger) -> None:
        first = ledger.create(owner_id=3)
        second = ledger.create(owner_id=3)
        ledger.revoke(first.token)
        assert ledger.validate(second.token).ok


class TestRotate:
    def test_rotate_returns_active_successor(self, ledger: RefreshTokenLedger) -> None:
        original = ledger.create(owner_id=5)
        result = ledger.rotate(original.token)
        assert result.ok
        successor = result.record
        assert successor.token != original.token
        assert successor.owner_id == 5
        assert ledger.validate(successor.token).ok
        assert ledger.validate(original.token).state is TokenState.REVOKED

    def test_rotated_token_cannot_be_rotated_again(self, ledger: RefreshTokenLedger) -> None:
        original = ledger.create(owner_id=5)
        ledger.rotate(original.token)
        assert ledger.rotate(original.token).state is TokenState.REVOKED

    def test_successor_can_be_rotated(self, ledger: RefreshTokenLedger) -> None:
        token = ledger.create(owner_id=5).token
        for _ in range(3):
            result = ledger.rotate(token)
            assert result.ok
            token = result.record.token

    def test_failed_rotate_creates_nothing(self, db_url: str) -> None:
        stale = RefreshTokenLedger(db_url=db_url, validity=timedelta(seconds=-1))
        try:
            record = stale.create(owner_id=1)
            result = stale.rotate(record.token)
            assert result.state is TokenState.EXPIRED
            assert stale.validate(record.token).state is TokenState.EXPIRED
        finally:
            stale.close()


class TestConcurrentRotation:
    def test_exactly_one_concurrent_rotation_wins(self, ledger: RefreshTokenLedger) -> None:
        """Many threads presenting the same token: one successor, the rest REVOKED."""
        token = ledger.create(owner_id=9).token
        start = threading.Barrier(8)
        results = []
        results_lock = threading.Lock()

        def worker() -> None:
            start.wait()
            outcome = ledger.rotate(token)
            with results_lock:
                results.append(outcome)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        winners = [r for r in results if r.ok]
        losers = [r for r in results if not r.ok]
        assert len(winners) == 1
        assert len(losers) == 7
        assert all(r.state is TokenState.REVOKED for r in losers)
        assert ledger.validate(winners[0].record.token).ok

    def test_concurrent_rotate_and_revoke(self, ledger: RefreshTokenLedger) -> None:
        """Refresh racing logout on the same token: exactly one of them spends it."""
        token = ledger.create(owner_id=9).token
        start = threading.Barrier(2)
        results = {}

        def do(name, op) -> None:
            start.wait()
            results[name] = op(token)

        threads = [
            threading.Thread(target=do, args=("rotate", ledger.rotate)),
            threading.Thread(target=do, args=("revoke", ledger.revoke)),
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert [results["rotate"].ok, results["revoke"].ok].count(True) == 1
        assert ledger.validate(token).state is TokenState.REVOKED
