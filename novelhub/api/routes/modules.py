from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Header
from sqlalchemy.orm import Session

from novelhub.api.deps import get_current_user, get_idempotency_store, get_sink
from novelhub.core.exceptions import NotFoundError
from novelhub.db.session import get_db
from novelhub.models.module_rental import ModuleRental
from novelhub.models.user import User
from novelhub.schemas.modules import (
    ModuleOut,
    ModuleUpdateIn,
    RentalOut,
    RentalStatusOut,
    RentOut,
    RentRecalculationOut,
    UnlockedOut,
)
from novelhub.services.content.permissions import require_admin, require_novel_staff
from novelhub.services.content.repository import ContentRepository
from novelhub.services.idempotency import IdempotencyStore
from novelhub.services.invalidation import InvalidationSink
from novelhub.services.modules.service import ModuleService
from novelhub.services.rentals.service import RentalService


router = APIRouter(prefix="/modules", tags=["modules"])


def _rental_out(rental: ModuleRental, now: datetime) -> RentalOut:
    return RentalOut(
        id=rental.id,
        module_id=rental.module_id,
        novel_id=rental.novel_id,
        amount_paid=rental.amount_paid,
        start_time=rental.start_time,
        end_time=rental.end_time,
        time_remaining_seconds=max(0.0, (rental.end_time - now).total_seconds()),
    )


@router.get("/rentals/active", response_model=list[RentalOut])
def active_rentals(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> list[RentalOut]:
    now = datetime.now(timezone.utc)
    return [_rental_out(r, now) for r in RentalService(db).list_active_rentals(user.id, now=now)]


@router.post("/recalculate-rent-balance", response_model=RentRecalculationOut)
def recalculate_rent_balances(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> RentRecalculationOut:
    require_admin(user)
    return RentRecalculationOut(**ModuleService(db).recalculate_all_rent_balances())


@router.get("/novel/{novel_id}/rental-counts", response_model=dict[str, int])
def rental_counts(
    novel_id: str,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> dict[str, int]:
    novel = ContentRepository(db).get_novel(novel_id)
    if novel is None:
        raise NotFoundError("Không tìm thấy truyện", {"novel_id": novel_id})
    require_novel_staff(user, novel)
    return RentalService(db).rental_counts(novel_id)


@router.put("/{module_id}", response_model=ModuleOut)
def update_module(
    module_id: str,
    body: ModuleUpdateIn,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    sink: InvalidationSink = Depends(get_sink),
) -> ModuleOut:
    module = ModuleService(db, sink=sink).update_module(
        user,
        module_id,
        mode=body.mode.value if body.mode else None,
        module_balance=body.module_balance,
        title=body.title,
    )
    return ModuleOut.model_validate(module)


@router.post("/{module_id}/rent", response_model=RentOut)
def rent_module(
    module_id: str,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    sink: InvalidationSink = Depends(get_sink),
    idempotency: IdempotencyStore = Depends(get_idempotency_store),
    idempotency_key: str | None = Header(default=None, alias="Idempotency-Key"),
) -> RentOut:
    service = RentalService(db, sink=sink, idempotency=idempotency)
    result = service.rent_module(user, module_id, idempotency_key=idempotency_key)
    return RentOut(
        message="Thuê tập thành công",
        rental=_rental_out(result.rental, datetime.now(timezone.utc)),
        user_balance=result.user_balance,
        unlocked=[UnlockedOut(**item.to_dict()) for item in result.unlocked],
    )


@router.get("/{module_id}/rental-status", response_model=RentalStatusOut)
def rental_status(
    module_id: str,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> RentalStatusOut:
    now = datetime.now(timezone.utc)
    service = RentalService(db)
    rental = service.find_active_rental(user.id, module_id, now=now)
    return RentalStatusOut(**service.rental_status(rental, now))
