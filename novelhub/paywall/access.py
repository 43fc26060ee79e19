"""
Decision только: evaluate_access(...) -> AccessDecision.
Чистая функция над снимками; единственный внешний вызов: read-only rental_lookup,
и только на платных ветках. Отказ является нормальным результатом, а не исключением.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from novelhub.paywall import messages
from novelhub.paywall.models import (
    AccessDecision,
    AccessReason,
    ChapterSnapshot,
    ContentMode,
    ModuleSnapshot,
    NovelSnapshot,
    RentalInfo,
    RentalSnapshot,
    Role,
    Viewer,
)
from novelhub.paywall.roster import is_listed

logger = logging.getLogger(__name__)

RentalLookup = Callable[[str, str], Optional[RentalSnapshot]]


def evaluate_access(
    chapter: ChapterSnapshot,
    module: ModuleSnapshot | None,
    novel: NovelSnapshot | None,
    viewer: Viewer | None,
    *,
    rental_lookup: RentalLookup | None = None,
    now: datetime | None = None,
) -> AccessDecision:
    """
    Решает, отдавать ли текст главы читателю. Первое совпадение выигрывает:

    1. admin / moderator -> доступ всегда;
    2. pj_user из novel.active_pj_user (по id или по username) -> доступ;
    3. paid-том: доступ только по действующей аренде тома (module-rental),
       независимо от режима самой главы;
    4. режим главы: published -> доступ; protected -> только авторизованным;
       draft -> отказ; paid -> действующая аренда тома (rental);
    5. иначе отказ.
    """
    now = now or datetime.now(timezone.utc)
    role = Role.parse(viewer.role) if viewer else None

    # Staff: admin/moderator видят всё
    if role == Role.ADMIN:
        return AccessDecision(granted=True, reason=AccessReason.ADMIN)
    if role == Role.MODERATOR:
        return AccessDecision(granted=True, reason=AccessReason.MODERATOR)

    # Команда проекта: legacy-ростер хранит id или username
    if role == Role.PJ_USER and novel is not None:
        if is_listed(novel.active_pj_user, viewer.id, viewer.username):
            return AccessDecision(granted=True, reason=AccessReason.PJ_USER)

    # Платный том перекрывает любой режим главы
    if module is not None and module.mode == ContentMode.PAID:
        rental = _active_rental(viewer, module.id, rental_lookup, now)
        if rental is not None:
            return _rental_grant(AccessReason.MODULE_RENTAL, rental, now)
        return _deny(messages.paid_module(module.module_balance, module.rent_balance))

    if chapter.mode == ContentMode.PUBLISHED:
        return AccessDecision(granted=True, reason=AccessReason.PUBLISHED)

    if chapter.mode == ContentMode.PROTECTED:
        if viewer is not None:
            return AccessDecision(granted=True, reason=AccessReason.PROTECTED_AUTHENTICATED)
        return _deny(messages.LOGIN_TO_READ_CHAPTER)

    if chapter.mode == ContentMode.DRAFT:
        return _deny(messages.DRAFT_UNAVAILABLE if viewer else messages.LOGIN_TO_ACCESS)

    if chapter.mode == ContentMode.PAID:
        rental = _active_rental(viewer, chapter.module_id, rental_lookup, now)
        if rental is not None:
            return _rental_grant(AccessReason.RENTAL, rental, now)
        return _deny(messages.paid_chapter(chapter.chapter_balance))

    return _deny(messages.NO_PERMISSION if viewer else messages.LOGIN_TO_ACCESS)


def _active_rental(
    viewer: Viewer | None,
    module_id: str | None,
    rental_lookup: RentalLookup | None,
    now: datetime,
) -> RentalSnapshot | None:
    if viewer is None or not module_id or rental_lookup is None:
        return None
    rental = rental_lookup(viewer.id, module_id)
    # lookup мог отдать снимок, истёкший между запросом и решением
    if rental is None or rental.user_id != viewer.id or rental.module_id != module_id:
        return None
    if now > rental.end_time:
        return None
    return rental


def _rental_grant(reason: AccessReason, rental: RentalSnapshot, now: datetime) -> AccessDecision:
    remaining = max(0.0, (rental.end_time - now).total_seconds())
    return AccessDecision(
        granted=True,
        reason=reason,
        rental_info=RentalInfo(end_time=rental.end_time, time_remaining_seconds=remaining),
    )


def _deny(message: str) -> AccessDecision:
    return AccessDecision(granted=False, reason=AccessReason.DENIED, message=message)


def strip_denied_content(payload: dict, decision: AccessDecision) -> dict:
    """Убрать текст главы из ответа при отказе и добавить причину."""
    if decision.granted:
        return {**payload, "access_denied": False}
    stripped = {k: v for k, v in payload.items() if k != "content"}
    stripped["access_denied"] = True
    stripped["access_message"] = decision.message
    return stripped
