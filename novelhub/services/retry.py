"""
Retryable transaction: commit-with-retry over a SQLAlchemy session.
Classifies store failures, retries transient conflicts with exponential backoff + jitter,
rolls back between attempts. Exhaustion raises TransientStoreConflictError, never a silent drop.
"""
import logging
import random
import time
from typing import Callable, TypeVar

from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from novelhub.core.config import settings
from novelhub.core.exceptions import TransientStoreConflictError
from novelhub.utils.metrics import store_conflict_retries_total

logger = logging.getLogger(__name__)

T = TypeVar("T")

# PostgreSQL SQLSTATE: serialization_failure, deadlock_detected
RETRYABLE_SQLSTATES = frozenset({"40001", "40P01"})


def is_transient_store_error(exc: BaseException) -> bool:
    """
    True for failures a re-run of the same idempotent operation can fix:
    optimistic version conflicts (StaleDataError), serialization failures,
    deadlocks and dropped connections.
    """
    if isinstance(exc, StaleDataError):
        return True
    if isinstance(exc, DBAPIError):
        if exc.connection_invalidated:
            return True
        orig = getattr(exc, "orig", None)
        code = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
        return code in RETRYABLE_SQLSTATES
    return False


def run_in_transaction(
    db: Session,
    operation: Callable[[], T],
    *,
    operation_name: str = "transaction",
    classifier: Callable[[BaseException], bool] = is_transient_store_error,
    max_attempts: int | None = None,
    base_delay: float | None = None,
    jitter: float | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Run operation() and commit. On a classified transient error: rollback, sleep
    base_delay * 2**(attempt-1) + uniform(0, jitter), re-run from scratch.
    Non-transient errors are rolled back and re-raised as is.
    """
    max_attempts = max_attempts or settings.store_retry_max_attempts
    base_delay = settings.store_retry_base_delay_seconds if base_delay is None else base_delay
    jitter = settings.store_retry_jitter_seconds if jitter is None else jitter

    attempt = 0
    while True:
        attempt += 1
        try:
            result = operation()
            db.commit()
            return result
        except Exception as exc:
            db.rollback()
            if not classifier(exc):
                raise
            if attempt >= max_attempts:
                logger.error(
                    "store_conflict_retries_exhausted",
                    extra={
                        "operation": operation_name,
                        "attempt": attempt,
                        "max_attempts": max_attempts,
                        "error": type(exc).__name__,
                    },
                )
                raise TransientStoreConflictError(
                    f"{operation_name} failed after {attempt} attempts",
                    {"operation": operation_name, "attempts": attempt},
                ) from exc

            delay = base_delay * (2 ** (attempt - 1)) + random.uniform(0, jitter)
            store_conflict_retries_total.labels(operation=operation_name).inc()
            logger.warning(
                "store_conflict_retry_scheduled",
                extra={
                    "operation": operation_name,
                    "attempt": attempt,
                    "max_attempts": max_attempts,
                    "delay_seconds": round(delay, 3),
                    "error": type(exc).__name__,
                },
            )
            sleep(delay)
