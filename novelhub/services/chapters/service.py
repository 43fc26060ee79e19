import logging
from datetime import datetime, timezone
from typing import Callable

from sqlalchemy.orm import Session

from novelhub.core.exceptions import NotFoundError
from novelhub.models.chapter import Chapter
from novelhub.models.novel import Novel
from novelhub.models.user import User
from novelhub.models.user_chapter_interaction import UserChapterInteraction
from novelhub.paywall.models import ContentMode, Role
from novelhub.paywall.modes import validate_chapter_change
from novelhub.services.content.permissions import require_novel_staff
from novelhub.services.content.repository import ContentRepository
from novelhub.services.invalidation import InvalidationSink
from novelhub.services.retry import run_in_transaction
from novelhub.services.unlock.service import unlock_after_contribution

logger = logging.getLogger(__name__)


class ChapterService:
    """
    Staff mutations of chapters. Mode/price rules come from validate_chapter_change;
    this layer adds permissions, ordering, rent price upkeep and invalidation.
    """

    def __init__(
        self,
        db: Session,
        sink: InvalidationSink | None = None,
        now_fn: Callable[[], datetime] | None = None,
    ):
        self.db = db
        self.repo = ContentRepository(db)
        self.sink = sink
        self._now = now_fn or (lambda: datetime.now(timezone.utc))

    def _load(self, chapter_id: str) -> tuple[Chapter, Novel]:
        chapter = self.repo.get_chapter(chapter_id)
        if chapter is None:
            raise NotFoundError("Không tìm thấy chương", {"chapter_id": chapter_id})
        novel = self.repo.get_novel(chapter.novel_id)
        if novel is None:
            raise NotFoundError("Không tìm thấy truyện", {"novel_id": chapter.novel_id})
        return chapter, novel

    def create_chapter(
        self,
        actor: User,
        module_id: str,
        *,
        title: str,
        content: str = "",
        mode: str | None = None,
        chapter_balance: int | None = None,
    ) -> Chapter:
        """New chapter goes to the end of the module. Creation never runs auto-unlock."""
        module = self.repo.get_module(module_id)
        if module is None:
            raise NotFoundError("Không tìm thấy tập", {"module_id": module_id})
        novel = self.repo.get_novel(module.novel_id)
        if novel is None:
            raise NotFoundError("Không tìm thấy truyện", {"novel_id": module.novel_id})
        role = require_novel_staff(actor, novel)

        change = validate_chapter_change(
            actor_role=role.value,
            module_mode=module.mode,
            new_mode=mode,
            new_balance=chapter_balance if role == Role.ADMIN else 0,
        )

        def _create() -> Chapter:
            now = self._now()
            chapter = Chapter(
                novel_id=module.novel_id,
                module_id=module_id,
                title=title,
                content=content or "",
                order=self.repo.last_chapter_order(module_id) + 1,
                mode=change.mode.value,
                chapter_balance=change.chapter_balance,
                originally_draft=change.mode == ContentMode.DRAFT,
                created_at=now,
                updated_at=now,
            )
            self.db.add(chapter)
            self.db.flush()
            if change.mode == ContentMode.PAID:
                self.repo.recalculate_rent_balance(self.repo.get_module(module_id))
            return chapter

        chapter = run_in_transaction(self.db, _create, operation_name="create_chapter")
        logger.info(
            "chapter_created",
            extra={"chapter_id": chapter.id, "module_id": module_id, "novel_id": chapter.novel_id, "mode": change.mode.value},
        )
        if self.sink is not None:
            self.sink.invalidate(
                "module",
                {"novel_id": chapter.novel_id, "module_id": module_id, "chapter_id": chapter.id, "title": chapter.title},
                event="new_chapter",
            )
        return chapter

    def update_chapter(
        self,
        actor: User,
        chapter_id: str,
        *,
        title: str | None = None,
        content: str | None = None,
        mode: str | None = None,
        chapter_balance: int | None = None,
    ) -> Chapter:
        chapter, novel = self._load(chapter_id)
        role = require_novel_staff(actor, novel)
        module = self.repo.get_module(chapter.module_id)
        if module is None:
            raise NotFoundError("Không tìm thấy tập", {"module_id": chapter.module_id})

        change = validate_chapter_change(
            actor_role=role.value,
            module_mode=module.mode,
            new_mode=mode,
            new_balance=chapter_balance,
            current_mode=chapter.mode,
            current_balance=chapter.chapter_balance or 0,
        )
        previous_mode = ContentMode(chapter.mode)
        mode_changed = change.mode != previous_mode
        # авто-разблокировку запускает только смена цены админом
        admin_balance_changed = role == Role.ADMIN and change.balance_changed
        bump_novel = change.is_unlock or (change.is_draft_going_public and chapter.originally_draft)

        def _update() -> Chapter:
            row, row_novel = self._load(chapter_id)
            now = self._now()
            if title:
                row.title = title
            if content is not None:
                row.content = content
            row.mode = change.mode.value
            row.chapter_balance = change.chapter_balance
            if change.is_draft_going_public:
                row.updated_at = now
            self.db.add(row)
            if bump_novel:
                row_novel.updated_at = now
                self.db.add(row_novel)
            self.db.flush()
            if mode_changed or change.balance_changed:
                self.repo.recalculate_rent_balance(self.repo.get_module(row.module_id))
            return row

        updated = run_in_transaction(self.db, _update, operation_name="update_chapter")
        logger.info(
            "chapter_updated",
            extra={
                "chapter_id": chapter_id,
                "novel_id": updated.novel_id,
                "mode": change.mode.value,
                "user_id": actor.id,
            },
        )
        if self.sink is not None:
            payload = {"novel_id": updated.novel_id, "module_id": updated.module_id, "chapter_id": chapter_id, "title": updated.title}
            self.sink.invalidate("chapter", payload, event="chapter_updated")
            if change.is_draft_going_public and chapter.originally_draft:
                self.sink.broadcast("new_chapter", payload)

        if admin_balance_changed:
            unlock_after_contribution(self.db, updated.novel_id, self.sink)
        return updated

    def delete_chapter(self, actor: User, chapter_id: str) -> dict:
        chapter, novel = self._load(chapter_id)
        require_novel_staff(actor, novel)
        module_id = chapter.module_id
        novel_id = chapter.novel_id

        def _delete() -> int:
            row, _ = self._load(chapter_id)
            removed = (
                self.db.query(UserChapterInteraction)
                .filter(UserChapterInteraction.chapter_id == chapter_id)
                .delete(synchronize_session=False)
            )
            self.db.delete(row)
            self.db.flush()
            module = self.repo.get_module(module_id)
            if module is not None:
                self.repo.recalculate_rent_balance(module)
            return removed

        removed = run_in_transaction(self.db, _delete, operation_name="delete_chapter")
        logger.info(
            "chapter_deleted",
            extra={"chapter_id": chapter_id, "module_id": module_id, "novel_id": novel_id, "user_id": actor.id},
        )
        if self.sink is not None:
            self.sink.invalidate(
                "module",
                {"novel_id": novel_id, "module_id": module_id, "chapter_id": chapter_id},
                event="chapter_deleted",
            )
        return {"chapter_id": chapter_id, "interactions_removed": removed}
