"""
Централизованный paywall платного контента (внутренняя библиотека).
Decision (evaluate_access) отделён от I/O: на входе неизменяемые снимки, на выходе AccessDecision.
Мутации режимов проходят через validate_chapter_change / validate_module_change.
"""
from novelhub.paywall.access import evaluate_access, strip_denied_content
from novelhub.paywall.audit import record_rental, record_unlock
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
from novelhub.paywall.modes import (
    effective_mode,
    validate_chapter_change,
    validate_module_change,
)

__all__ = [
    "AccessDecision",
    "AccessReason",
    "ChapterSnapshot",
    "ContentMode",
    "ModuleSnapshot",
    "NovelSnapshot",
    "RentalInfo",
    "RentalSnapshot",
    "Role",
    "Viewer",
    "evaluate_access",
    "strip_denied_content",
    "effective_mode",
    "validate_chapter_change",
    "validate_module_change",
    "record_unlock",
    "record_rental",
]
