from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import Boolean, Column, DateTime, Index, Integer, String, Text

from novelhub.db.base import Base


class Chapter(Base):
    __tablename__ = "chapters"
    # order уникален только внутри тома
    __table_args__ = (Index("ix_chapters_module_order", "module_id", "order"),)

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    novel_id = Column(String, nullable=False, index=True)
    module_id = Column(String, nullable=False, index=True)
    title = Column(String, nullable=False)
    content = Column(Text, nullable=False, default="")
    order = Column(Integer, nullable=False)
    mode = Column(String, nullable=False, default="published")  # published / draft / protected / paid
    chapter_balance = Column(Integer, nullable=False, default=0)  # цена, 0 если mode != paid
    originally_draft = Column(Boolean, nullable=False, default=False)
    version_id = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))

    __mapper_args__ = {"version_id_col": version_id}
