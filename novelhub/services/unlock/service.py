"""
Auto-unlock: spends the novel's contribution budget on paid content in reading order.

Walk: modules by order; a paid module is bought first (if affordable), then the paid
chapters inside it by order. The first unaffordable item stops the whole walk, so
unlocked content is always a contiguous prefix of the reading order.
"""
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable

from sqlalchemy.orm import Session

from novelhub.core.celery_app import celery_app
from novelhub.core.exceptions import NotFoundError, TransientStoreConflictError
from novelhub.models.chapter import Chapter
from novelhub.models.contribution_history import ContributionHistory
from novelhub.models.module import Module
from novelhub.models.novel import Novel
from novelhub.paywall.audit import record_unlock
from novelhub.paywall.models import ContentMode
from novelhub.services.content.repository import ContentRepository
from novelhub.services.invalidation import InvalidationSink
from novelhub.services.retry import run_in_transaction
from novelhub.utils.metrics import (
    auto_unlock_duration_seconds,
    auto_unlock_runs_total,
    content_unlocked_total,
)

logger = logging.getLogger(__name__)

RUN_AUTO_UNLOCK_TASK = "novelhub.workers.tasks.unlock.run_auto_unlock"
AUTO_UNLOCK_NOTE = "Mở khóa tự động: {title}"


@dataclass(frozen=True)
class UnlockedContent:
    kind: str  # "module" | "chapter"
    id: str
    novel_id: str
    module_id: str
    title: str
    new_mode: ContentMode
    price: int
    budget_after: int

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "id": self.id,
            "module_id": self.module_id,
            "title": self.title,
            "new_mode": self.new_mode.value,
            "price": self.price,
        }


class AutoUnlockEngine:
    def __init__(
        self,
        db: Session,
        sink: InvalidationSink | None = None,
        now_fn: Callable[[], datetime] | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.db = db
        self.repo = ContentRepository(db)
        self.sink = sink
        self._now = now_fn or (lambda: datetime.now(timezone.utc))
        self._sleep = sleep

    def check_and_unlock_content(self, novel_id: str) -> list[UnlockedContent]:
        """
        Unlock everything the budget can pay for. Returns the unlocked items in reading order.
        Missing novel or empty budget: [] with no writes. A failed batch is rolled back
        and reports nothing.
        """
        started = time.perf_counter()
        try:
            unlocked = run_in_transaction(
                self.db,
                lambda: self._unlock_batch(novel_id),
                operation_name="auto_unlock",
                sleep=self._sleep,
            )
        except TransientStoreConflictError:
            auto_unlock_runs_total.labels(result="exhausted").inc()
            raise
        except Exception:
            auto_unlock_runs_total.labels(result="error").inc()
            logger.exception("auto_unlock_failed", extra={"novel_id": novel_id})
            raise
        finally:
            auto_unlock_duration_seconds.observe(time.perf_counter() - started)

        auto_unlock_runs_total.labels(result="unlocked" if unlocked else "noop").inc()
        if unlocked:
            self._after_commit(novel_id, unlocked)
        return unlocked

    def unlock_novel(self, novel_id: str) -> list[UnlockedContent]:
        """Entry for explicit staff triggers: unknown novel is an error, not a no-op."""
        if self.repo.get_novel(novel_id) is None:
            raise NotFoundError("Không tìm thấy truyện", {"novel_id": novel_id})
        return self.check_and_unlock_content(novel_id)

    # ------------------------------------------------------------------
    # Batch (runs inside run_in_transaction; may be re-run from scratch)
    # ------------------------------------------------------------------

    def _unlock_batch(self, novel_id: str) -> list[UnlockedContent]:
        novel = self.repo.get_novel_for_update(novel_id)
        if novel is None:
            logger.warning("auto_unlock_novel_missing", extra={"novel_id": novel_id})
            return []
        budget = novel.novel_budget or 0
        if budget <= 0:
            return []

        now = self._now()
        unlocked: list[UnlockedContent] = []
        touched_modules: dict[str, Module] = {}

        chapters_by_module: dict[str, list[Chapter]] = {}
        for chapter in self.repo.list_paid_chapters_ordered(novel_id):
            chapters_by_module.setdefault(chapter.module_id, []).append(chapter)

        stopped = False
        for module in self.repo.list_modules_ordered(novel_id):
            if module.mode == ContentMode.PAID.value:
                price = module.module_balance or 0
                if price > budget:
                    break
                budget -= price
                self.repo.update_module_mode(module, ContentMode.PUBLISHED, now)
                self._write_history(novel, module.title, price, budget)
                unlocked.append(
                    UnlockedContent("module", module.id, novel_id, module.id, module.title,
                                    ContentMode.PUBLISHED, price, budget)
                )

            # черновой том не виден читателям, его главы не покупаем
            if module.mode == ContentMode.DRAFT.value:
                continue

            for chapter in chapters_by_module.get(module.id, []):
                price = chapter.chapter_balance or 0
                if price > budget:
                    stopped = True
                    break
                budget -= price
                self.repo.update_chapter_mode(chapter, ContentMode.PUBLISHED, now)
                self._write_history(novel, chapter.title, price, budget)
                touched_modules[module.id] = module
                unlocked.append(
                    UnlockedContent("chapter", chapter.id, novel_id, module.id, chapter.title,
                                    ContentMode.PUBLISHED, price, budget)
                )
            if stopped:
                break

        if not unlocked:
            return []

        self.db.flush()
        for module in touched_modules.values():
            self.repo.recalculate_rent_balance(module)

        novel.novel_budget = budget
        novel.updated_at = now
        self.db.add(novel)
        self.db.flush()
        return unlocked

    def _write_history(self, novel: Novel, title: str, price: int, budget_after: int) -> None:
        self.db.add(
            ContributionHistory(
                novel_id=novel.id,
                user_id=None,
                amount=-price,
                note=AUTO_UNLOCK_NOTE.format(title=title),
                budget_after=budget_after,
                type="system",
            )
        )

    # ------------------------------------------------------------------
    # After commit: audit, metrics, invalidation (never raises)
    # ------------------------------------------------------------------

    def _after_commit(self, novel_id: str, unlocked: list[UnlockedContent]) -> None:
        for item in unlocked:
            record_unlock(novel_id, item.kind, item.id, price=item.price, budget_after=item.budget_after)
            content_unlocked_total.labels(kind=item.kind).inc()

        logger.info(
            "auto_unlock_completed",
            extra={"novel_id": novel_id, "unlocked": len(unlocked), "budget": unlocked[-1].budget_after},
        )
        if self.sink is None:
            return
        for item in unlocked:
            payload = {"novel_id": novel_id, "module_id": item.module_id, "title": item.title}
            if item.kind == "chapter":
                payload["chapter_id"] = item.id
            self._signal(item.kind, payload, f"{item.kind}_unlocked")
        self._signal(
            "novel",
            {"novel_id": novel_id, "novel_budget": unlocked[-1].budget_after},
            "novel_budget_updated",
        )

    def _signal(self, scope: str, payload: dict, event: str) -> None:
        try:
            self.sink.invalidate(scope, payload, event=event)
        except Exception as e:
            logger.warning(
                "auto_unlock_invalidation_failed",
                extra={"novel_id": payload.get("novel_id"), "event": event, "error": str(e)},
            )


def _defer_unlock(novel_id: str) -> None:
    try:
        celery_app.send_task(RUN_AUTO_UNLOCK_TASK, args=[novel_id])
    except Exception:
        logger.exception("auto_unlock_defer_failed", extra={"novel_id": novel_id})


def unlock_after_contribution(
    db: Session,
    novel_id: str,
    sink: InvalidationSink | None = None,
) -> list[UnlockedContent]:
    """
    Run auto-unlock after a committed balance contribution. The contribution itself
    is already durable: any engine failure means "nothing unlocked now", and the run
    is handed to the worker.
    """
    try:
        return AutoUnlockEngine(db, sink=sink).check_and_unlock_content(novel_id)
    except TransientStoreConflictError:
        logger.warning("auto_unlock_deferred", extra={"novel_id": novel_id})
    except Exception:
        logger.exception("auto_unlock_failed", extra={"novel_id": novel_id})
    _defer_unlock(novel_id)
    return []
