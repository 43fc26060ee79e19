from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from novelhub.api.deps import get_current_user, get_sink
from novelhub.core.exceptions import NotFoundError
from novelhub.db.session import get_db
from novelhub.models.user import User
from novelhub.schemas.modules import UnlockedOut
from novelhub.schemas.novels import (
    ContributionHistoryOut,
    ContributionIn,
    ContributionOut,
    UnlockRunOut,
)
from novelhub.services.content.permissions import require_admin
from novelhub.services.content.repository import ContentRepository
from novelhub.services.contributions.service import ContributionService
from novelhub.services.invalidation import InvalidationSink
from novelhub.services.unlock.service import AutoUnlockEngine


router = APIRouter(prefix="/novels", tags=["novels"])


@router.post("/{novel_id}/contribute", response_model=ContributionOut)
def contribute(
    novel_id: str,
    body: ContributionIn,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    sink: InvalidationSink = Depends(get_sink),
) -> ContributionOut:
    result = ContributionService(db, sink=sink).contribute(user, novel_id, body.amount, body.note)
    return ContributionOut(
        novel_id=novel_id,
        amount=body.amount,
        user_balance=result.user_balance,
        novel_budget=result.novel_budget,
        novel_balance=result.novel_balance,
        unlocked=[UnlockedOut(**item.to_dict()) for item in result.unlocked],
    )


@router.get("/{novel_id}/contribution-history", response_model=list[ContributionHistoryOut])
def contribution_history(
    novel_id: str,
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
) -> list[ContributionHistoryOut]:
    if ContentRepository(db).get_novel(novel_id) is None:
        raise NotFoundError("Không tìm thấy truyện", {"novel_id": novel_id})
    rows = ContributionService(db).history(novel_id, limit=limit)
    return [ContributionHistoryOut.model_validate(r) for r in rows]


@router.post("/{novel_id}/unlock", response_model=UnlockRunOut)
def run_unlock(
    novel_id: str,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    sink: InvalidationSink = Depends(get_sink),
) -> UnlockRunOut:
    """Admin trigger: spend the current budget now."""
    require_admin(user)
    unlocked = AutoUnlockEngine(db, sink=sink).unlock_novel(novel_id)
    return UnlockRunOut(novel_id=novel_id, unlocked=[UnlockedOut(**item.to_dict()) for item in unlocked])
