"""
Аудит платного контента: record_unlock вызывается после коммита авто-разблокировки,
record_rental после коммита аренды. Только структурированный лог для аналитики.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Literal

logger = logging.getLogger(__name__)

UnlockKind = Literal["module", "chapter"]


def record_unlock(
    novel_id: str,
    kind: UnlockKind,
    content_id: str,
    *,
    price: int,
    budget_after: int,
) -> None:
    """Записать событие авто-разблокировки тома/главы из бюджета новеллы."""
    logger.info(
        "paywall_unlock",
        extra={
            "novel_id": novel_id,
            "kind": kind,
            "chapter_id": content_id if kind == "chapter" else None,
            "module_id": content_id if kind == "module" else None,
            "amount": price,
            "budget": budget_after,
        },
    )


def record_rental(
    rental_id: str,
    user_id: str,
    module_id: str,
    novel_id: str,
    *,
    amount_paid: int,
    end_time: datetime,
) -> None:
    """Записать факт аренды тома."""
    logger.info(
        "paywall_rental",
        extra={
            "rental_id": rental_id,
            "user_id": user_id,
            "module_id": module_id,
            "novel_id": novel_id,
            "amount": amount_paid,
            "end_time": end_time.isoformat(),
        },
    )
