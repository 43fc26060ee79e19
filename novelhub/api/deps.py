"""
Shared route dependencies: reader auth from the Bearer token, and the per-app
collaborators (content cache, invalidation sink, idempotency store) kept on app.state.
"""
from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from novelhub.db.session import get_db
from novelhub.models.user import User
from novelhub.services.auth.tokens import ReaderTokenService
from novelhub.services.cache import ContentCache
from novelhub.services.idempotency import IdempotencyStore
from novelhub.services.invalidation import InvalidationSink


def get_content_cache(request: Request) -> ContentCache:
    return request.app.state.content_cache


def get_sink(request: Request) -> InvalidationSink:
    return request.app.state.invalidation_sink


def get_idempotency_store(request: Request) -> IdempotencyStore:
    return request.app.state.idempotency_store


def get_token_service(request: Request) -> ReaderTokenService:
    return request.app.state.token_service


def _bearer_token(request: Request) -> str | None:
    auth = request.headers.get("Authorization", "")
    if auth.startswith("Bearer "):
        return auth[7:].strip() or None
    return None


def get_optional_user(
    request: Request,
    db: Session = Depends(get_db),
    tokens: ReaderTokenService = Depends(get_token_service),
) -> User | None:
    """Anonymous readers are allowed on read routes: no token or a bad token -> None."""
    token = _bearer_token(request)
    if not token:
        return None
    user_id = tokens.verify(token)
    if not user_id:
        return None
    return db.query(User).filter(User.id == user_id).one_or_none()


def get_current_user(user: User | None = Depends(get_optional_user)) -> User:
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Vui lòng đăng nhập",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user
