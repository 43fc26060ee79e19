from fastapi import APIRouter, Depends, Request, Response
import redis
from sqlalchemy import text
from sqlalchemy.orm import Session

from novelhub.core.config import settings
from novelhub.db.session import get_db


router = APIRouter()


@router.get("/health")
def health() -> dict:
    """Liveness probe - always returns 200 if app is running."""
    return {"status": "ok"}


@router.get("/ready")
def readiness(request: Request, response: Response, db: Session = Depends(get_db)) -> dict:
    """Readiness probe - returns 503 if the database or Redis is unavailable."""
    try:
        db.execute(text("SELECT 1"))

        redis_client = redis.Redis.from_url(settings.redis_url, decode_responses=True)
        redis_client.ping()

        cache = getattr(request.app.state, "content_cache", None)
        return {"status": "ready", "cache_entries": len(cache) if cache is not None else 0}
    except Exception as e:
        response.status_code = 503
        return {"status": "not_ready", "error": str(e)}
