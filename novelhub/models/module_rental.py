"""
ModuleRental: аренда тома на ограниченное время.
Строка неизменяема после создания; валидность вычисляется (now <= end_time), не хранится.
Продление = новая строка.
"""
from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import CheckConstraint, Column, DateTime, Index, Integer, String

from novelhub.db.base import Base


class ModuleRental(Base):
    __tablename__ = "module_rentals"
    __table_args__ = (
        CheckConstraint("end_time > start_time", name="ck_rental_end_after_start"),
        Index("ix_rentals_user_module_end", "user_id", "module_id", "end_time"),
        Index("ix_rentals_module_end", "module_id", "end_time"),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    user_id = Column(String, nullable=False, index=True)
    module_id = Column(String, nullable=False)
    novel_id = Column(String, nullable=False, index=True)
    amount_paid = Column(Integer, nullable=False, default=0)
    start_time = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    end_time = Column(DateTime(timezone=True), nullable=False)
    contribution_history_id = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
