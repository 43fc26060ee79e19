"""Tests for RentalService: validity, lookups and the rent spend workflow."""
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from novelhub.core.exceptions import (
    InsufficientBalanceError,
    InvalidStateError,
    NotFoundError,
    RentalConflictError,
)
from novelhub.models.contribution_history import ContributionHistory
from novelhub.models.module_rental import ModuleRental
from novelhub.services.rentals.service import RentalService, is_valid

NOW = datetime(2026, 10, 17, 12, 0, tzinfo=timezone.utc)


def _rental(end):
    return SimpleNamespace(id="r1", user_id="u1", module_id="m1", start_time=end - timedelta(hours=24), end_time=end)


def _user(balance=100):
    return SimpleNamespace(id="u1", username="reader", role="user", balance=balance)


def _module(mode="published", module_balance=0, rent_balance=4):
    return SimpleNamespace(
        id="m1", novel_id="n1", title="Tập 1", mode=mode,
        module_balance=module_balance, rent_balance=rent_balance,
    )


def _novel(available=True):
    return SimpleNamespace(id="n1", available_for_rent=available, novel_balance=0, novel_budget=0)


def _service(db, module=None, novel=None, has_paid=True, sink=None, idempotency=None):
    svc = RentalService(db, sink=sink, idempotency=idempotency, now_fn=lambda: NOW)
    svc.repo = MagicMock()
    svc.repo.get_module.return_value = module
    svc.repo.get_novel_for_update.return_value = novel
    svc.repo.has_paid_chapters.return_value = has_paid
    return svc


def _db_with_user(user):
    db = MagicMock()
    db.query.return_value.filter.return_value.with_for_update.return_value.one_or_none.return_value = user
    return db


class TestValidity:
    def test_valid_until_end_inclusive(self):
        assert is_valid(_rental(NOW), NOW) is True
        assert is_valid(_rental(NOW - timedelta(microseconds=1)), NOW) is False
        assert is_valid(_rental(NOW + timedelta(hours=1)), NOW) is True

    def test_missing_ids_return_none(self):
        db = MagicMock()
        svc = RentalService(db)
        assert svc.find_active_rental(None, "m1") is None
        assert svc.find_active_rental("u1", "") is None
        db.query.assert_not_called()

    def test_rental_status_for_expired(self):
        status = RentalService.rental_status(_rental(NOW - timedelta(seconds=1)), NOW)
        assert status == {"has_active_rental": False, "rental": None}

    def test_rental_status_time_remaining(self):
        rental = _rental(NOW + timedelta(minutes=30))
        rental.amount_paid = 4
        status = RentalService.rental_status(rental, NOW)
        assert status["has_active_rental"] is True
        assert status["rental"]["time_remaining_seconds"] == 1800

    def test_rental_counts_zero_filled(self):
        db = MagicMock()
        db.query.return_value.filter.return_value.all.return_value = [("m1",), ("m2",)]
        db.query.return_value.filter.return_value.group_by.return_value.all.return_value = [("m1", 3)]
        assert RentalService(db).rental_counts("n1", now=NOW) == {"m1": 3, "m2": 0}


@patch("novelhub.services.rentals.service.unlock_after_contribution", return_value=[])
class TestRentModule:
    def test_happy_path(self, unlock):
        user = _user(balance=10)
        novel = _novel()
        db = _db_with_user(user)
        sink = MagicMock()
        svc = _service(db, module=_module(rent_balance=4), novel=novel, sink=sink)

        with patch.object(svc, "find_active_rental", return_value=None):
            result = svc.rent_module(user, "m1")

        assert user.balance == 6
        assert result.user_balance == 6
        assert novel.novel_balance == 4
        assert novel.novel_budget == 4
        rental = result.rental
        assert isinstance(rental, ModuleRental)
        assert rental.amount_paid == 4
        assert rental.start_time == NOW
        assert rental.end_time == NOW + timedelta(hours=24)
        history = [c.args[0] for c in db.add.call_args_list if isinstance(c.args[0], ContributionHistory)]
        assert len(history) == 1
        assert history[0].amount == 4
        assert history[0].type == "user"
        assert history[0].note == "Thuê Tập 1 trong 24h"
        db.commit.assert_called_once()
        unlock.assert_called_once_with(db, "n1", sink)
        assert sink.invalidate.call_args.kwargs["event"] == "module_rented"

    def test_existing_valid_rental_rejected(self, unlock):
        user = _user()
        db = _db_with_user(user)
        svc = _service(db, module=_module(), novel=_novel())
        with patch.object(svc, "find_active_rental", return_value=_rental(NOW + timedelta(hours=3))):
            with pytest.raises(RentalConflictError):
                svc.rent_module(user, "m1")
        assert user.balance == 100
        db.commit.assert_not_called()
        unlock.assert_not_called()

    def test_insufficient_balance(self, unlock):
        user = _user(balance=3)
        db = _db_with_user(user)
        svc = _service(db, module=_module(rent_balance=4), novel=_novel())
        with patch.object(svc, "find_active_rental", return_value=None):
            with pytest.raises(InsufficientBalanceError):
                svc.rent_module(user, "m1")
        assert user.balance == 3
        db.rollback.assert_called_once()

    def test_module_missing(self, unlock):
        svc = _service(MagicMock(), module=None)
        with pytest.raises(NotFoundError):
            svc.rent_module(_user(), "m1")

    def test_novel_not_available_for_rent(self, unlock):
        svc = _service(MagicMock(), module=_module(), novel=_novel(available=False))
        with pytest.raises(InvalidStateError):
            svc.rent_module(_user(), "m1")

    def test_no_paid_content(self, unlock):
        svc = _service(MagicMock(), module=_module(), novel=_novel(), has_paid=False)
        with pytest.raises(InvalidStateError):
            svc.rent_module(_user(), "m1")

    def test_paid_module_counts_as_paid_content(self, unlock):
        user = _user()
        db = _db_with_user(user)
        svc = _service(db, module=_module(mode="paid", module_balance=50, rent_balance=5), novel=_novel(), has_paid=False)
        with patch.object(svc, "find_active_rental", return_value=None):
            result = svc.rent_module(user, "m1")
        assert result.rental.amount_paid == 5

    def test_zero_rent_price(self, unlock):
        svc = _service(MagicMock(), module=_module(rent_balance=0), novel=_novel())
        with pytest.raises(InvalidStateError):
            svc.rent_module(_user(), "m1")

    def test_duplicate_idempotency_key(self, unlock):
        idem = MagicMock()
        idem.check_and_set.return_value = False
        svc = _service(MagicMock(), module=_module(), novel=_novel(), idempotency=idem)
        with pytest.raises(RentalConflictError):
            svc.rent_module(_user(), "m1", idempotency_key="k1")
        idem.check_and_set.assert_called_once_with("rent:u1:k1")

    def test_failed_spend_releases_idempotency_key(self, unlock):
        idem = MagicMock()
        idem.check_and_set.return_value = True
        svc = _service(MagicMock(), module=_module(rent_balance=0), novel=_novel(), idempotency=idem)
        with pytest.raises(InvalidStateError):
            svc.rent_module(_user(), "m1", idempotency_key="k1")
        idem.release.assert_called_once_with("rent:u1:k1")


@pytest.fixture
def session():
    engine = create_engine("sqlite://")
    ModuleRental.__table__.create(engine)
    db = sessionmaker(bind=engine)()
    yield db
    db.close()
    engine.dispose()


def _row(rental_id, user_id, module_id, end):
    return ModuleRental(
        id=rental_id, user_id=user_id, module_id=module_id, novel_id="n1", amount_paid=4,
        start_time=end - timedelta(hours=24), end_time=end,
    )


class TestFindActiveRentalQuery:
    """Запрос к реальной сессии: фильтр по паре (user, module), срок и порядок."""

    def test_valid_rental_wins_over_expired(self, session):
        session.add_all([
            _row("expired", "u1", "m1", NOW - timedelta(hours=1)),
            _row("valid", "u1", "m1", NOW + timedelta(hours=5)),
        ])
        session.commit()
        assert RentalService(session).find_active_rental("u1", "m1", now=NOW).id == "valid"

    def test_latest_end_time_picked(self, session):
        session.add_all([
            _row("short", "u1", "m1", NOW + timedelta(hours=2)),
            _row("long", "u1", "m1", NOW + timedelta(hours=20)),
        ])
        session.commit()
        assert RentalService(session).find_active_rental("u1", "m1", now=NOW).id == "long"

    def test_valid_exactly_at_end_time(self, session):
        session.add(_row("edge", "u1", "m1", NOW))
        session.commit()
        assert RentalService(session).find_active_rental("u1", "m1", now=NOW).id == "edge"

    def test_only_exact_pair_matches(self, session):
        session.add_all([
            _row("other_user", "u2", "m1", NOW + timedelta(hours=5)),
            _row("other_module", "u1", "m2", NOW + timedelta(hours=5)),
            _row("expired", "u1", "m1", NOW - timedelta(seconds=1)),
        ])
        session.commit()
        service = RentalService(session)
        assert service.find_active_rental("u1", "m1", now=NOW) is None
        assert service.find_active_rental("u2", "m1", now=NOW).id == "other_user"
        assert service.find_active_rental("u1", "m2", now=NOW).id == "other_module"
