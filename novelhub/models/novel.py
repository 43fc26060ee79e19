from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB

from novelhub.db.base import Base


class Novel(Base):
    __tablename__ = "novels"

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    title = Column(String, nullable=False)
    author = Column(String, nullable=False, default="")
    description = Column(Text, nullable=False, default="")
    # Ростер проекта: legacy-записи хранят либо user id, либо username.
    active_pj_user = Column(JSONB, nullable=False, default=list)
    novel_balance = Column(Integer, nullable=False, default=0)  # всего получено за всё время
    novel_budget = Column(Integer, nullable=False, default=0)  # доступно для авто-разблокировки
    available_for_rent = Column(Boolean, nullable=False, default=True)
    version_id = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))

    # optimistic concurrency: concurrent budget writes surface as StaleDataError
    __mapper_args__ = {"version_id_col": version_id}
