import logging
from datetime import datetime, timezone
from typing import Callable

from sqlalchemy.orm import Session

from novelhub.core.exceptions import InvalidStateError, NotFoundError, PermissionDeniedError
from novelhub.models.module import Module
from novelhub.models.user import User
from novelhub.paywall.models import ContentMode, Role
from novelhub.paywall.modes import parse_mode, validate_module_change
from novelhub.services.content.permissions import require_novel_staff
from novelhub.services.content.repository import ContentRepository
from novelhub.services.invalidation import InvalidationSink
from novelhub.services.retry import run_in_transaction
from novelhub.services.unlock.service import unlock_after_contribution

logger = logging.getLogger(__name__)


class ModuleService:
    """Module mode/price changes and rent price upkeep."""

    def __init__(
        self,
        db: Session,
        sink: InvalidationSink | None = None,
        now_fn: Callable[[], datetime] | None = None,
    ):
        self.db = db
        self.repo = ContentRepository(db)
        self.sink = sink
        self._now = now_fn or (lambda: datetime.now(timezone.utc))

    def get_module(self, module_id: str) -> Module:
        module = self.repo.get_module(module_id)
        if module is None:
            raise NotFoundError("Không tìm thấy tập", {"module_id": module_id})
        return module

    def update_module(
        self,
        actor: User,
        module_id: str,
        *,
        mode: str | None = None,
        module_balance: int | None = None,
        title: str | None = None,
    ) -> Module:
        """
        Change mode / price / title of a module.
        Only admins toggle paid and set module_balance; a module with paid chapters
        cannot become paid. Admin price changes run auto-unlock after commit.
        """
        module = self.get_module(module_id)
        novel = self.repo.get_novel(module.novel_id)
        if novel is None:
            raise NotFoundError("Không tìm thấy truyện", {"novel_id": module.novel_id})
        role = require_novel_staff(actor, novel)

        current = parse_mode(module.mode)
        target = parse_mode(mode, default=current)
        is_admin = role == Role.ADMIN
        if not is_admin and target != current and ContentMode.PAID in (current, target):
            raise PermissionDeniedError(
                "Bạn không có quyền thay đổi chế độ trả phí. Chỉ admin mới có thể thay đổi.",
                {"module_id": module_id, "mode": target.value},
            )
        requested_balance = module_balance if is_admin and module_balance is not None else module.module_balance
        new_mode, new_balance = validate_module_change(target, requested_balance)

        if new_mode == ContentMode.PAID and current != ContentMode.PAID and self.repo.has_paid_chapters(module_id):
            raise InvalidStateError(
                "Không thể đặt tập thành trả phí khi tập đã có chương trả phí.",
                {"module_id": module_id},
            )

        price_changed = new_mode == ContentMode.PAID and (
            current != ContentMode.PAID or new_balance != (module.module_balance or 0)
        )

        def _apply() -> Module:
            row = self.get_module(module_id)
            row.mode = new_mode.value
            row.module_balance = new_balance
            if title:
                row.title = title
            row.updated_at = self._now()
            self.db.add(row)
            self.db.flush()
            return row

        updated = run_in_transaction(self.db, _apply, operation_name="update_module")
        logger.info(
            "module_updated",
            extra={"module_id": module_id, "novel_id": updated.novel_id, "mode": new_mode.value, "user_id": actor.id},
        )
        if self.sink is not None:
            self.sink.invalidate(
                "module",
                {"novel_id": updated.novel_id, "module_id": module_id, "mode": new_mode.value},
                event="module_updated",
            )

        if is_admin and price_changed:
            unlock_after_contribution(self.db, updated.novel_id, self.sink)
        return updated

    def calculate_rent_balance(self, module_id: str) -> int:
        """Recompute and store rent_balance for one module. Missing module -> 0."""
        module = self.repo.get_module(module_id)
        if module is None:
            logger.warning("rent_balance_module_missing", extra={"module_id": module_id})
            return 0

        def _recalc() -> int:
            row = self.get_module(module_id)
            return self.repo.recalculate_rent_balance(row)

        return run_in_transaction(self.db, _recalc, operation_name="recalculate_rent_balance")

    def recalculate_all_rent_balances(self) -> dict:
        """Admin/beat utility. One module failing does not stop the rest."""
        module_ids = [row[0] for row in self.db.query(Module.id).all()]
        updated = 0
        errors: list[dict] = []
        for module_id in module_ids:
            try:
                self.calculate_rent_balance(module_id)
                updated += 1
            except Exception as e:
                logger.warning("rent_balance_recalculation_failed", extra={"module_id": module_id, "error": str(e)})
                errors.append({"module_id": module_id, "error": str(e)})
        return {"total": len(module_ids), "updated": updated, "errors": errors}
