"""Tests for run_in_transaction: classification, backoff, exhaustion."""
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from novelhub.core.exceptions import TransientStoreConflictError
from novelhub.services.retry import is_transient_store_error, run_in_transaction


class _PgError(Exception):
    def __init__(self, pgcode):
        super().__init__(pgcode)
        self.pgcode = pgcode


def _operational(pgcode):
    return OperationalError("UPDATE novels", {}, _PgError(pgcode))


class TestClassifier:
    def test_stale_data_is_transient(self):
        assert is_transient_store_error(StaleDataError("version mismatch")) is True

    @pytest.mark.parametrize("code", ["40001", "40P01"])
    def test_serialization_and_deadlock(self, code):
        assert is_transient_store_error(_operational(code)) is True

    def test_other_sqlstate_is_not_transient(self):
        assert is_transient_store_error(_operational("42P01")) is False

    def test_integrity_error_is_not_transient(self):
        assert is_transient_store_error(IntegrityError("INSERT", {}, _PgError("23505"))) is False

    def test_plain_exception(self):
        assert is_transient_store_error(ValueError("boom")) is False


class TestRunInTransaction:
    def test_success_commits_once(self):
        db = MagicMock()
        result = run_in_transaction(db, lambda: 42, sleep=lambda _: None)
        assert result == 42
        db.commit.assert_called_once()
        db.rollback.assert_not_called()

    def test_retries_transient_then_succeeds(self):
        db = MagicMock()
        calls = {"n": 0}
        delays = []

        def op():
            calls["n"] += 1
            if calls["n"] < 3:
                raise StaleDataError("conflict")
            return "ok"

        result = run_in_transaction(db, op, base_delay=0.1, jitter=0.0, sleep=delays.append)
        assert result == "ok"
        assert calls["n"] == 3
        assert db.rollback.call_count == 2
        assert delays == pytest.approx([0.1, 0.2])

    def test_exhaustion_raises_typed_error(self):
        db = MagicMock()

        def op():
            raise StaleDataError("conflict")

        with pytest.raises(TransientStoreConflictError) as exc_info:
            run_in_transaction(db, op, operation_name="auto_unlock", max_attempts=3, sleep=lambda _: None)
        assert exc_info.value.detail["attempts"] == 3
        assert isinstance(exc_info.value.__cause__, StaleDataError)
        db.commit.assert_not_called()
        assert db.rollback.call_count == 3

    def test_non_transient_not_retried(self):
        db = MagicMock()
        calls = {"n": 0}

        def op():
            calls["n"] += 1
            raise ValueError("bad input")

        with pytest.raises(ValueError):
            run_in_transaction(db, op, sleep=lambda _: None)
        assert calls["n"] == 1
        db.rollback.assert_called_once()

    def test_commit_failure_is_retried(self):
        db = MagicMock()
        db.commit.side_effect = [_operational("40001"), None]
        assert run_in_transaction(db, lambda: "done", sleep=lambda _: None) == "done"
        assert db.commit.call_count == 2

    def test_jitter_bounded(self):
        db = MagicMock()
        delays = []
        attempts = iter([StaleDataError("x"), None])

        def op():
            exc = next(attempts)
            if exc:
                raise exc
            return True

        run_in_transaction(db, op, base_delay=0.1, jitter=0.05, sleep=delays.append)
        assert 0.1 <= delays[0] <= 0.15
