from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import Boolean, Column, DateTime, String, UniqueConstraint

from novelhub.db.base import Base


class UserChapterInteraction(Base):
    __tablename__ = "user_chapter_interactions"
    __table_args__ = (UniqueConstraint("user_id", "chapter_id", name="uq_interaction_user_chapter"),)

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    user_id = Column(String, nullable=False, index=True)
    chapter_id = Column(String, nullable=False, index=True)
    novel_id = Column(String, nullable=False)
    liked = Column(Boolean, nullable=False, default=False)
    bookmarked = Column(Boolean, nullable=False, default=False)
    last_read_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
