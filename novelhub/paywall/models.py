"""
DTO paywall: снимки сущностей (вход evaluate_access), AccessDecision, RentalInfo.
Снимки неизменяемы: решение о доступе считается по ним без обращения к БД.
"""
from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class ContentMode(str, Enum):
    """Режим видимости главы/тома."""

    PUBLISHED = "published"
    DRAFT = "draft"
    PROTECTED = "protected"
    PAID = "paid"


class Role(str, Enum):
    ADMIN = "admin"
    MODERATOR = "moderator"
    PJ_USER = "pj_user"
    READER = "user"

    @classmethod
    def parse(cls, value: str | None) -> "Role":
        """Неизвестная или пустая роль -> обычный читатель (никогда не исключение)."""
        try:
            return cls(value)
        except ValueError:
            return cls.READER


class AccessReason(str, Enum):
    ADMIN = "admin"
    MODERATOR = "moderator"
    PJ_USER = "pj_user"
    PUBLISHED = "published"
    PROTECTED_AUTHENTICATED = "protected-authenticated"
    RENTAL = "rental"
    MODULE_RENTAL = "module-rental"
    DENIED = "denied"


# ----- Снимки для evaluate_access (единый контракт входа) -----


class ChapterSnapshot(BaseModel):
    id: str
    novel_id: str
    module_id: str
    title: str = ""
    order: int = 0
    mode: ContentMode = ContentMode.PUBLISHED
    chapter_balance: int = 0

    model_config = ConfigDict(frozen=True, from_attributes=True)


class ModuleSnapshot(BaseModel):
    id: str
    novel_id: str
    title: str = ""
    order: int = 0
    mode: ContentMode = ContentMode.PUBLISHED
    module_balance: int = 0
    rent_balance: int = 0

    model_config = ConfigDict(frozen=True, from_attributes=True)


class NovelSnapshot(BaseModel):
    id: str
    title: str = ""
    # Смешанный legacy-ростер: user id или username
    active_pj_user: list[str] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True, from_attributes=True)


class Viewer(BaseModel):
    """Авторизованный читатель. Аноним = None на входе evaluate_access."""

    id: str
    username: str = ""
    role: str = Role.READER.value

    model_config = ConfigDict(frozen=True, from_attributes=True)


class RentalSnapshot(BaseModel):
    id: str
    user_id: str
    module_id: str
    start_time: datetime
    end_time: datetime

    model_config = ConfigDict(frozen=True, from_attributes=True)


# ----- Решение доступа (чистая логика, без I/O) -----


class RentalInfo(BaseModel):
    """Заполняется только если доступ выдан по аренде."""

    end_time: datetime
    time_remaining_seconds: float = Field(..., ge=0)

    model_config = {"frozen": True}


class AccessDecision(BaseModel):
    """Результат evaluate_access: ровно одна причина, message только при отказе."""

    granted: bool
    reason: AccessReason
    message: str | None = Field(
        None,
        description="Текст для читателя при отказе (нужна авторизация / цена)",
    )
    rental_info: RentalInfo | None = Field(
        None,
        description="Срок аренды, если доступ выдан по аренде тома",
    )

    model_config = {"frozen": True}
