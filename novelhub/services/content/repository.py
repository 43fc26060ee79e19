"""
ContentRepository: persistence lookups for chapters, modules and novels.
Reads return ORM rows; snapshot helpers convert them for the paywall.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import func
from sqlalchemy.orm import Session

from novelhub.models.chapter import Chapter
from novelhub.models.module import Module
from novelhub.models.novel import Novel
from novelhub.paywall.config import calc_rent_balance
from novelhub.paywall.models import ChapterSnapshot, ContentMode, ModuleSnapshot, NovelSnapshot


class ContentRepository:
    def __init__(self, db: Session):
        self.db = db

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_chapter(self, chapter_id: str) -> Chapter | None:
        return self.db.query(Chapter).filter(Chapter.id == chapter_id).one_or_none()

    def get_module(self, module_id: str) -> Module | None:
        return self.db.query(Module).filter(Module.id == module_id).one_or_none()

    def get_novel(self, novel_id: str) -> Novel | None:
        return self.db.query(Novel).filter(Novel.id == novel_id).one_or_none()

    def get_novel_for_update(self, novel_id: str) -> Novel | None:
        """Row lock on the novel serializes budget spending per novel."""
        return (
            self.db.query(Novel)
            .filter(Novel.id == novel_id)
            .with_for_update()
            .one_or_none()
        )

    def list_modules_ordered(self, novel_id: str) -> list[Module]:
        return (
            self.db.query(Module)
            .filter(Module.novel_id == novel_id)
            .order_by(Module.order.asc())
            .all()
        )

    def list_paid_chapters_ordered(self, novel_id: str) -> list[Chapter]:
        """Paid chapters of the novel in reading order: module order, then chapter order."""
        return (
            self.db.query(Chapter)
            .join(Module, Module.id == Chapter.module_id)
            .filter(
                Chapter.novel_id == novel_id,
                Chapter.mode == ContentMode.PAID.value,
            )
            .order_by(Module.order.asc(), Chapter.order.asc())
            .all()
        )

    def list_paid_chapter_balances(self, module_id: str) -> list[int]:
        rows = (
            self.db.query(Chapter.chapter_balance)
            .filter(
                Chapter.module_id == module_id,
                Chapter.mode == ContentMode.PAID.value,
                Chapter.chapter_balance > 0,
            )
            .all()
        )
        return [row[0] for row in rows]

    def has_paid_chapters(self, module_id: str) -> bool:
        return bool(self.list_paid_chapter_balances(module_id))

    def last_chapter_order(self, module_id: str) -> int:
        value = (
            self.db.query(func.max(Chapter.order))
            .filter(Chapter.module_id == module_id)
            .scalar()
        )
        return int(value or 0)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def update_chapter_mode(self, chapter: Chapter, mode: ContentMode, timestamp: datetime) -> Chapter:
        chapter.mode = mode.value
        if mode != ContentMode.PAID:
            chapter.chapter_balance = 0
        chapter.updated_at = timestamp
        self.db.add(chapter)
        return chapter

    def update_module_mode(self, module: Module, mode: ContentMode, timestamp: datetime) -> Module:
        module.mode = mode.value
        if mode != ContentMode.PAID:
            module.module_balance = 0
        module.updated_at = timestamp
        self.db.add(module)
        return module

    def recalculate_rent_balance(self, module: Module) -> int:
        """rent_balance тома = сумма цен платных глав / делитель. Пишет только при изменении."""
        rent = calc_rent_balance(self.list_paid_chapter_balances(module.id))
        if (module.rent_balance or 0) != rent:
            module.rent_balance = rent
            self.db.add(module)
        return rent

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    @staticmethod
    def chapter_snapshot(chapter: Chapter) -> ChapterSnapshot:
        return ChapterSnapshot.model_validate(chapter)

    @staticmethod
    def module_snapshot(module: Module) -> ModuleSnapshot:
        return ModuleSnapshot.model_validate(module)

    @staticmethod
    def novel_snapshot(novel: Novel) -> NovelSnapshot:
        return NovelSnapshot(
            id=novel.id,
            title=novel.title or "",
            active_pj_user=[str(x) for x in (novel.active_pj_user or []) if x is not None],
        )

    def load_reading_bundle(self, chapter_id: str) -> dict[str, Any] | None:
        """Chapter + its module + novel as snapshots, with chapter content. None if any is missing."""
        chapter = self.get_chapter(chapter_id)
        if chapter is None:
            return None
        module = self.get_module(chapter.module_id)
        novel = self.get_novel(chapter.novel_id)
        if module is None or novel is None:
            return None
        return {
            "chapter": self.chapter_snapshot(chapter),
            "module": self.module_snapshot(module),
            "novel": self.novel_snapshot(novel),
            "content": chapter.content,
            "updated_at": chapter.updated_at,
        }
