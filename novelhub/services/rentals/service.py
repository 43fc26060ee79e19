"""
Rental ledger: time-bounded grants to read a whole module.

Rows are immutable; validity is derived (now <= end_time). Renewal creates a new
row, so several rows per (user, module) may coexist: the one with the latest
end_time wins.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable

from sqlalchemy import func
from sqlalchemy.orm import Session

from novelhub.core.exceptions import (
    InvalidStateError,
    NotFoundError,
    RentalConflictError,
)
from novelhub.models.contribution_history import ContributionHistory
from novelhub.models.module import Module
from novelhub.models.module_rental import ModuleRental
from novelhub.models.user import User
from novelhub.paywall.audit import record_rental
from novelhub.paywall.config import get_rental_duration
from novelhub.paywall.models import ContentMode, RentalSnapshot
from novelhub.services.balance.service import BalanceService
from novelhub.services.content.repository import ContentRepository
from novelhub.services.idempotency import IdempotencyStore
from novelhub.services.invalidation import InvalidationSink
from novelhub.services.retry import run_in_transaction
from novelhub.services.unlock.service import UnlockedContent, unlock_after_contribution
from novelhub.utils.metrics import rentals_created_total

logger = logging.getLogger(__name__)

RENT_NOTE = "Thuê {title} trong {hours}h"


def is_valid(rental: ModuleRental | RentalSnapshot, now: datetime) -> bool:
    """Rental grants access up to and including end_time."""
    return now <= rental.end_time


@dataclass
class RentResult:
    rental: ModuleRental
    user_balance: int
    unlocked: list[UnlockedContent] = field(default_factory=list)


class RentalService:
    def __init__(
        self,
        db: Session,
        sink: InvalidationSink | None = None,
        idempotency: IdempotencyStore | None = None,
        now_fn: Callable[[], datetime] | None = None,
    ):
        self.db = db
        self.repo = ContentRepository(db)
        self.sink = sink
        self.idempotency = idempotency
        self._now = now_fn or (lambda: datetime.now(timezone.utc))

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def find_active_rental(
        self,
        user_id: str | None,
        module_id: str | None,
        now: datetime | None = None,
    ) -> ModuleRental | None:
        """Among non-expired rentals of (user, module) pick the latest end_time. Bad ids -> None."""
        if not user_id or not module_id:
            return None
        now = now or self._now()
        return (
            self.db.query(ModuleRental)
            .filter(
                ModuleRental.user_id == str(user_id),
                ModuleRental.module_id == str(module_id),
                ModuleRental.end_time >= now,
            )
            .order_by(ModuleRental.end_time.desc())
            .first()
        )

    def lookup_snapshot(self, user_id: str, module_id: str) -> RentalSnapshot | None:
        """Read-only rental lookup passed to evaluate_access."""
        rental = self.find_active_rental(user_id, module_id)
        return RentalSnapshot.model_validate(rental) if rental is not None else None

    def list_active_rentals(self, user_id: str, now: datetime | None = None) -> list[ModuleRental]:
        now = now or self._now()
        return (
            self.db.query(ModuleRental)
            .filter(ModuleRental.user_id == user_id, ModuleRental.end_time >= now)
            .order_by(ModuleRental.start_time.desc())
            .all()
        )

    def rental_counts(self, novel_id: str, now: datetime | None = None) -> dict[str, int]:
        """Active rentals per module of the novel; modules without rentals report 0."""
        now = now or self._now()
        module_ids = [row[0] for row in self.db.query(Module.id).filter(Module.novel_id == novel_id).all()]
        if not module_ids:
            return {}
        rows = (
            self.db.query(ModuleRental.module_id, func.count(ModuleRental.id))
            .filter(ModuleRental.module_id.in_(module_ids), ModuleRental.end_time >= now)
            .group_by(ModuleRental.module_id)
            .all()
        )
        counts = {module_id: count for module_id, count in rows}
        return {module_id: int(counts.get(module_id, 0)) for module_id in module_ids}

    @staticmethod
    def rental_status(rental: ModuleRental | None, now: datetime) -> dict:
        if rental is None or not is_valid(rental, now):
            return {"has_active_rental": False, "rental": None}
        return {
            "has_active_rental": True,
            "rental": {
                "id": rental.id,
                "start_time": rental.start_time,
                "end_time": rental.end_time,
                "time_remaining_seconds": max(0.0, (rental.end_time - now).total_seconds()),
                "amount_paid": rental.amount_paid,
            },
        }

    # ------------------------------------------------------------------
    # Spend
    # ------------------------------------------------------------------

    def rent_module(self, user: User, module_id: str, idempotency_key: str | None = None) -> RentResult:
        """
        Rent a module for one rental period: debit the reader, credit the novel's
        balance and budget, write the rental and its history row in one transaction.
        Rent money is a contribution, so auto-unlock runs after commit.
        """
        if idempotency_key and self.idempotency is not None:
            if not self.idempotency.check_and_set(f"rent:{user.id}:{idempotency_key}"):
                raise RentalConflictError(
                    "Yêu cầu thuê đang được xử lý",
                    {"module_id": module_id, "idempotency_key": idempotency_key},
                )
        try:
            rental, user_balance = run_in_transaction(
                self.db,
                lambda: self._rent(user.id, module_id),
                operation_name="rent_module",
            )
        except Exception:
            if idempotency_key and self.idempotency is not None:
                self.idempotency.release(f"rent:{user.id}:{idempotency_key}")
            raise

        rentals_created_total.inc()
        record_rental(
            rental.id,
            rental.user_id,
            rental.module_id,
            rental.novel_id,
            amount_paid=rental.amount_paid,
            end_time=rental.end_time,
        )
        if self.sink is not None:
            self.sink.invalidate(
                "novel",
                {"novel_id": rental.novel_id, "module_id": module_id, "user_id": user.id},
                event="module_rented",
            )
        unlocked = unlock_after_contribution(self.db, rental.novel_id, self.sink)
        return RentResult(rental=rental, user_balance=user_balance, unlocked=unlocked)

    def _rent(self, user_id: str, module_id: str) -> tuple[ModuleRental, int]:
        module = self.repo.get_module(module_id)
        if module is None:
            raise NotFoundError("Không tìm thấy tập", {"module_id": module_id})
        novel = self.repo.get_novel_for_update(module.novel_id)
        if novel is None:
            raise NotFoundError("Không tìm thấy truyện", {"novel_id": module.novel_id})
        if not novel.available_for_rent:
            raise InvalidStateError("Truyện này hiện không cho thuê", {"novel_id": novel.id})

        is_paid_module = module.mode == ContentMode.PAID.value and (module.module_balance or 0) > 0
        if not is_paid_module and not self.repo.has_paid_chapters(module_id):
            raise InvalidStateError("Tập này không có nội dung trả phí để thuê", {"module_id": module_id})

        price = module.rent_balance or 0
        if price <= 0:
            raise InvalidStateError("Tập này chưa có giá thuê", {"module_id": module_id})

        now = self._now()
        existing = self.find_active_rental(user_id, module_id, now=now)
        if existing is not None:
            raise RentalConflictError(
                "Bạn đã thuê tập này rồi",
                {
                    "end_time": existing.end_time.isoformat(),
                    "time_remaining_seconds": max(0.0, (existing.end_time - now).total_seconds()),
                },
            )

        balances = BalanceService(self.db)
        locked_user = balances.debit_user(user_id, price)
        balances.credit_novel(novel, price)

        duration = get_rental_duration()
        history = ContributionHistory(
            novel_id=novel.id,
            user_id=user_id,
            amount=price,
            note=RENT_NOTE.format(title=module.title, hours=int(duration.total_seconds() // 3600)),
            budget_after=novel.novel_budget,
            balance_after=novel.novel_balance,
            type="user",
        )
        self.db.add(history)
        self.db.flush()

        rental = ModuleRental(
            user_id=user_id,
            module_id=module_id,
            novel_id=novel.id,
            amount_paid=price,
            start_time=now,
            end_time=now + duration,
            contribution_history_id=history.id,
        )
        self.db.add(rental)
        self.db.flush()
        return rental, locked_user.balance or 0
