"""
Ростер проекта (novel.active_pj_user): legacy-записи хранят либо user id, либо username.
Identifier = UserId | UserName; проверка членства нормализует кандидата в обе формы.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Union


@dataclass(frozen=True)
class UserId:
    value: str


@dataclass(frozen=True)
class UserName:
    value: str


Identifier = Union[UserId, UserName]


def parse_roster(raw: Iterable[object] | None) -> list[Identifier]:
    """
    Разобрать сырой ростер в типизированные идентификаторы.

    По строке нельзя отличить id от ника, поэтому каждая запись даёт обе формы.
    Пустые значения отбрасываются; dict из старых выгрузок читается по _id/id.
    """
    result: list[Identifier] = []
    for item in raw or []:
        if isinstance(item, dict):
            item = item.get("_id") or item.get("id")
        if item is None:
            continue
        text = str(item).strip()
        if not text:
            continue
        result.append(UserId(text))
        result.append(UserName(text))
    return result


def is_member(roster: Iterable[Identifier], user_id: str | None, username: str | None) -> bool:
    """Участник, если совпал по id ИЛИ по username."""
    candidates: set[Identifier] = set()
    if user_id:
        candidates.add(UserId(str(user_id)))
    if username:
        candidates.add(UserName(username))
    if not candidates:
        return False
    return any(ident in candidates for ident in roster)


def is_listed(raw: Iterable[object] | None, user_id: str | None, username: str | None) -> bool:
    return is_member(parse_roster(raw), user_id, username)
