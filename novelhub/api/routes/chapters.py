from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from novelhub.api.deps import get_content_cache, get_current_user, get_optional_user, get_sink
from novelhub.core.exceptions import NotFoundError
from novelhub.db.session import get_db
from novelhub.models.user import User
from novelhub.paywall import Viewer, effective_mode, evaluate_access, strip_denied_content
from novelhub.schemas.chapters import ChapterAdminOut, ChapterCreateIn, ChapterOut, ChapterUpdateIn
from novelhub.services.cache import ContentCache
from novelhub.services.chapters.service import ChapterService
from novelhub.services.content.repository import ContentRepository
from novelhub.services.invalidation import InvalidationSink, chapter_key
from novelhub.services.rentals.service import RentalService
from novelhub.utils.metrics import access_decisions_total


router = APIRouter(prefix="/chapters", tags=["chapters"])


@router.get("/{chapter_id}", response_model=ChapterOut)
def read_chapter(
    chapter_id: str,
    db: Session = Depends(get_db),
    user: User | None = Depends(get_optional_user),
    cache: ContentCache = Depends(get_content_cache),
) -> ChapterOut:
    """Chapter with the access decision applied: denied readers get metadata and a message, no text."""
    repo = ContentRepository(db)
    bundle = cache.get_or_load(chapter_key(chapter_id), lambda: repo.load_reading_bundle(chapter_id))
    if bundle is None:
        raise NotFoundError("Không tìm thấy chương", {"chapter_id": chapter_id})

    chapter = bundle["chapter"]
    module = bundle["module"]
    viewer = Viewer.model_validate(user) if user is not None else None
    decision = evaluate_access(
        chapter,
        module,
        bundle["novel"],
        viewer,
        rental_lookup=RentalService(db).lookup_snapshot,
    )
    access_decisions_total.labels(reason=decision.reason.value).inc()

    payload = {
        "id": chapter.id,
        "novel_id": chapter.novel_id,
        "module_id": chapter.module_id,
        "title": chapter.title,
        "order": chapter.order,
        "mode": chapter.mode,
        "effective_mode": effective_mode(chapter.mode, module.mode),
        "chapter_balance": chapter.chapter_balance,
        "content": bundle["content"],
        "updated_at": bundle["updated_at"],
    }
    return ChapterOut(
        **strip_denied_content(payload, decision),
        access_reason=decision.reason,
        rental_info=decision.rental_info,
    )


@router.post("", response_model=ChapterAdminOut, status_code=201)
def create_chapter(
    body: ChapterCreateIn,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    sink: InvalidationSink = Depends(get_sink),
) -> ChapterAdminOut:
    chapter = ChapterService(db, sink=sink).create_chapter(
        user,
        body.module_id,
        title=body.title,
        content=body.content,
        mode=body.mode.value,
        chapter_balance=body.chapter_balance,
    )
    return ChapterAdminOut.model_validate(chapter)


@router.put("/{chapter_id}", response_model=ChapterAdminOut)
def update_chapter(
    chapter_id: str,
    body: ChapterUpdateIn,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    sink: InvalidationSink = Depends(get_sink),
) -> ChapterAdminOut:
    chapter = ChapterService(db, sink=sink).update_chapter(
        user,
        chapter_id,
        title=body.title,
        content=body.content,
        mode=body.mode.value if body.mode else None,
        chapter_balance=body.chapter_balance,
    )
    return ChapterAdminOut.model_validate(chapter)


@router.delete("/{chapter_id}")
def delete_chapter(
    chapter_id: str,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    sink: InvalidationSink = Depends(get_sink),
) -> dict:
    return ChapterService(db, sink=sink).delete_chapter(user, chapter_id)
