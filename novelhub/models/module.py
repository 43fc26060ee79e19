from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import Column, DateTime, Integer, String, UniqueConstraint

from novelhub.db.base import Base


class Module(Base):
    """Том новеллы. mode=paid делает все главы тома эффективно платными."""

    __tablename__ = "modules"
    __table_args__ = (UniqueConstraint("novel_id", "order", name="uq_module_novel_order"),)

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    novel_id = Column(String, nullable=False, index=True)
    title = Column(String, nullable=False)
    order = Column(Integer, nullable=False)
    mode = Column(String, nullable=False, default="published")  # published / draft / protected / paid
    module_balance = Column(Integer, nullable=False, default=0)  # цена выкупа тома (только для paid)
    rent_balance = Column(Integer, nullable=False, default=0)  # цена аренды, считается автоматически
    version_id = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))

    __mapper_args__ = {"version_id_col": version_id}
