"""
ContributionHistory: журнал движения бюджета новеллы.
type=user: взнос или аренда (amount > 0); type=system: авто-разблокировка (amount < 0).
"""
from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import Column, DateTime, Integer, String

from novelhub.db.base import Base


class ContributionHistory(Base):
    __tablename__ = "contribution_history"

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    novel_id = Column(String, nullable=False, index=True)
    user_id = Column(String, nullable=True)  # null = system action
    amount = Column(Integer, nullable=False)
    note = Column(String, nullable=False, default="")
    budget_after = Column(Integer, nullable=False, default=0)
    balance_after = Column(Integer, nullable=True)
    type = Column(String, nullable=False, default="user")  # user / system
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
