import logging

from sqlalchemy.orm import Session as DBSession

from novelhub.core.exceptions import InsufficientBalanceError, NotFoundError
from novelhub.models.novel import Novel
from novelhub.models.user import User

logger = logging.getLogger(__name__)


class BalanceService:
    """🌾 balances: the reader's wallet on User, the novel's lifetime balance and unlock budget on Novel."""

    def __init__(self, db: DBSession):
        self.db = db

    def lock_user(self, user_id: str) -> User:
        locked = (
            self.db.query(User)
            .filter(User.id == user_id)
            .with_for_update()
            .one_or_none()
        )
        if locked is None:
            raise NotFoundError("Không tìm thấy người dùng", {"user_id": user_id})
        return locked

    def debit_user(self, user_id: str, amount: int) -> User:
        """Deduct under a row lock. Raises InsufficientBalanceError, never goes negative."""
        locked = self.lock_user(user_id)
        balance = locked.balance or 0
        if balance < amount:
            raise InsufficientBalanceError(
                f"Số dư không đủ. Cần {amount} 🌾, bạn có {balance} 🌾",
                {"user_id": user_id, "balance": balance, "required": amount},
            )
        locked.balance = balance - amount
        self.db.add(locked)
        self.db.flush()
        return locked

    def credit_novel(self, novel: Novel, amount: int) -> Novel:
        """Contribution lands in both the lifetime balance and the unlock budget."""
        novel.novel_balance = (novel.novel_balance or 0) + amount
        novel.novel_budget = (novel.novel_budget or 0) + amount
        self.db.add(novel)
        self.db.flush()
        return novel
