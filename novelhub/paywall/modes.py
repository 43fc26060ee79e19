"""
Правила режимов контента: эффективный режим главы и проверки на границе мутаций.
Evaluator и движок авто-разблокировки получают уже провалидированные данные.
"""
from __future__ import annotations

from dataclasses import dataclass

from novelhub.core.exceptions import InvalidStateError, PermissionDeniedError
from novelhub.paywall.models import ContentMode, Role

# Порядок строгости для видимых режимов. draft вне шкалы: это служебное состояние главы.
_STRICTNESS = {
    ContentMode.PUBLISHED: 0,
    ContentMode.PROTECTED: 1,
    ContentMode.PAID: 2,
}


def parse_mode(value: str | ContentMode | None, default: ContentMode = ContentMode.PUBLISHED) -> ContentMode:
    if value is None or value == "":
        return default
    try:
        return ContentMode(value)
    except ValueError as exc:
        raise InvalidStateError(f"Unknown content mode: {value}", {"mode": value}) from exc


def effective_mode(chapter_mode: str | ContentMode, module_mode: str | ContentMode | None) -> ContentMode:
    """
    Платный том делает любую главу эффективно платной (даже draft).
    Иначе берём более строгий из режимов; draft главы сохраняется.
    """
    chapter = ContentMode(chapter_mode)
    module = ContentMode(module_mode) if module_mode else ContentMode.PUBLISHED
    if module == ContentMode.PAID:
        return ContentMode.PAID
    if chapter == ContentMode.DRAFT:
        return ContentMode.DRAFT
    if module == ContentMode.DRAFT:
        return ContentMode.DRAFT
    return chapter if _STRICTNESS[chapter] >= _STRICTNESS[module] else module


@dataclass(frozen=True)
class ChapterChange:
    """Нормализованный результат проверки: что реально записать в главу."""

    mode: ContentMode
    chapter_balance: int
    is_unlock: bool  # paid -> published/protected
    is_draft_going_public: bool
    balance_changed: bool


def validate_chapter_change(
    *,
    actor_role: str,
    module_mode: str | ContentMode,
    new_mode: str | ContentMode | None,
    new_balance: int | None,
    current_mode: str | ContentMode | None = None,
    current_balance: int = 0,
) -> ChapterChange:
    """
    Проверить и нормализовать смену режима/цены главы.
    current_mode=None означает создание главы.

    - paid-глава в paid-томе запрещена (цена уже на уровне тома);
    - paid-глава всегда стоит >= 1;
    - pj_user не может включать/выключать paid;
    - цену задаёт только admin; без новой цены сохраняется текущая;
    - вне paid цена всегда 0.
    """
    role = Role.parse(actor_role)
    current = parse_mode(current_mode) if current_mode is not None else None
    target = parse_mode(new_mode, default=current or ContentMode.PUBLISHED)
    module = parse_mode(module_mode)

    if role == Role.PJ_USER and current is not None and target != current and ContentMode.PAID in (current, target):
        raise PermissionDeniedError(
            "Bạn không có quyền thay đổi chế độ trả phí. Chỉ admin mới có thể thay đổi.",
            {"mode": target.value},
        )

    if target == ContentMode.PAID and module == ContentMode.PAID:
        raise InvalidStateError(
            "Không thể tạo chương trả phí trong tập đã trả phí. Tập trả phí đã bao gồm tất cả chương bên trong.",
            {"mode": target.value},
        )

    if target == ContentMode.PAID:
        if current is None or (role == Role.ADMIN and new_balance is not None):
            balance = int(new_balance or 0)
        else:
            balance = int(current_balance or 0)
        if balance < 1:
            raise InvalidStateError(
                "Số lúa chương tối thiểu là 1 🌾 cho chương trả phí.",
                {"chapter_balance": balance},
            )
    else:
        balance = 0

    return ChapterChange(
        mode=target,
        chapter_balance=balance,
        is_unlock=current == ContentMode.PAID and target in (ContentMode.PUBLISHED, ContentMode.PROTECTED),
        is_draft_going_public=current == ContentMode.DRAFT and target != ContentMode.DRAFT,
        balance_changed=current is not None and balance != int(current_balance or 0),
    )


def validate_module_change(new_mode: str | ContentMode, new_balance: int | None) -> tuple[ContentMode, int]:
    """paid-том требует module_balance >= 1; остальные режимы обнуляют цену."""
    mode = parse_mode(new_mode)
    if mode == ContentMode.PAID:
        balance = int(new_balance or 0)
        if balance < 1:
            raise InvalidStateError(
                "Số lượng lúa cần để mở tập phải tối thiểu là 1 🌾",
                {"module_balance": balance},
            )
        return mode, balance
    return mode, 0
