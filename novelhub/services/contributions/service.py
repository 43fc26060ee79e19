import logging
from dataclasses import dataclass, field

from sqlalchemy.orm import Session

from novelhub.core.config import settings
from novelhub.core.exceptions import InvalidStateError, NotFoundError
from novelhub.models.contribution_history import ContributionHistory
from novelhub.models.user import User
from novelhub.paywall.config import get_min_contribution
from novelhub.services.balance.service import BalanceService
from novelhub.services.content.repository import ContentRepository
from novelhub.services.invalidation import InvalidationSink
from novelhub.services.retry import run_in_transaction
from novelhub.services.unlock.service import UnlockedContent, unlock_after_contribution
from novelhub.utils.metrics import contributed_amount_total, contributions_total

logger = logging.getLogger(__name__)


@dataclass
class ContributionResult:
    history: ContributionHistory
    user_balance: int
    novel_budget: int
    novel_balance: int
    unlocked: list[UnlockedContent] = field(default_factory=list)


class ContributionService:
    """Reader contributions to a novel's budget. Every contribution may unlock content."""

    def __init__(self, db: Session, sink: InvalidationSink | None = None):
        self.db = db
        self.repo = ContentRepository(db)
        self.sink = sink

    def contribute(self, user: User, novel_id: str, amount: int, note: str = "") -> ContributionResult:
        minimum = get_min_contribution()
        if amount is None or int(amount) < minimum:
            raise InvalidStateError(
                f"Số lúa đóng góp tối thiểu là {minimum} 🌾",
                {"amount": amount, "min": minimum},
            )
        amount = int(amount)

        def _contribute() -> tuple[ContributionHistory, int, int, int]:
            novel = self.repo.get_novel_for_update(novel_id)
            if novel is None:
                raise NotFoundError("Không tìm thấy truyện", {"novel_id": novel_id})
            balances = BalanceService(self.db)
            locked_user = balances.debit_user(user.id, amount)
            balances.credit_novel(novel, amount)
            history = ContributionHistory(
                novel_id=novel.id,
                user_id=user.id,
                amount=amount,
                note=(note or "").strip()[:500],
                budget_after=novel.novel_budget,
                balance_after=novel.novel_balance,
                type="user",
            )
            self.db.add(history)
            self.db.flush()
            return history, locked_user.balance or 0, novel.novel_budget, novel.novel_balance

        history, user_balance, budget, balance = run_in_transaction(
            self.db, _contribute, operation_name="contribute"
        )
        contributions_total.inc()
        contributed_amount_total.inc(amount)
        logger.info(
            "novel_contribution",
            extra={"novel_id": novel_id, "user_id": user.id, "amount": amount, "budget": budget},
        )
        if self.sink is not None:
            self.sink.broadcast(
                "novel_budget_updated",
                {"novel_id": novel_id, "novel_budget": budget, "novel_balance": balance},
            )

        unlocked = unlock_after_contribution(self.db, novel_id, self.sink)
        return ContributionResult(
            history=history,
            user_balance=user_balance,
            novel_budget=unlocked[-1].budget_after if unlocked else budget,
            novel_balance=balance,
            unlocked=unlocked,
        )

    def history(self, novel_id: str, limit: int | None = None) -> list[ContributionHistory]:
        """Newest first."""
        limit = limit or settings.contribution_history_limit
        return (
            self.db.query(ContributionHistory)
            .filter(ContributionHistory.novel_id == novel_id)
            .order_by(ContributionHistory.created_at.desc())
            .limit(limit)
            .all()
        )
