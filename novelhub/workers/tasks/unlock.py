"""
Celery tasks: auto-unlock runs handed off by request handlers, and the periodic
rent balance recalculation (repairs drift after bulk edits).
"""
import logging

from novelhub.core.celery_app import celery_app
from novelhub.core.config import settings
from novelhub.core.exceptions import TransientStoreConflictError
from novelhub.db.session import SessionLocal
from novelhub.services.invalidation import InvalidationSink
from novelhub.services.modules.service import ModuleService
from novelhub.services.unlock.service import AutoUnlockEngine

logger = logging.getLogger(__name__)


@celery_app.task(
    bind=True,
    name="novelhub.workers.tasks.unlock.run_auto_unlock",
    max_retries=settings.celery_task_max_retries,
    default_retry_delay=settings.celery_task_retry_delay,
    time_limit=120,
    soft_time_limit=110,
)
def run_auto_unlock(self, novel_id: str) -> dict:
    """Spend the novel budget on paid content. Retried when store conflicts persist."""
    db = SessionLocal()
    try:
        # у воркера нет локального кэша: только рассылка событий
        engine = AutoUnlockEngine(db, sink=InvalidationSink())
        unlocked = engine.check_and_unlock_content(novel_id)
        return {"ok": True, "novel_id": novel_id, "unlocked": [item.to_dict() for item in unlocked]}
    except TransientStoreConflictError as e:
        logger.warning(
            "auto_unlock_task_retry",
            extra={"novel_id": novel_id, "attempt": self.request.retries + 1, "error": str(e)},
        )
        raise self.retry(exc=e)
    finally:
        db.close()


@celery_app.task(
    name="novelhub.workers.tasks.unlock.recalculate_rent_balances",
    time_limit=300,
    soft_time_limit=290,
)
def recalculate_rent_balances() -> dict:
    db = SessionLocal()
    try:
        result = ModuleService(db).recalculate_all_rent_balances()
        logger.info("rent_balances_recalculated", extra={"updated": result["updated"]})
        return {"ok": True, **result}
    except Exception:
        db.rollback()
        logger.exception("rent_balances_recalculation_failed")
        raise
    finally:
        db.close()
