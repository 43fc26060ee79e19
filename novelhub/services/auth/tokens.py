"""
Reader bearer tokens signed with itsdangerous.
The token carries only the user id; role and balance are always read from the DB.
"""
import logging

from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from novelhub.core.config import settings

logger = logging.getLogger("auth")


class ReaderTokenService:
    def __init__(self, secret: str | None = None, ttl_seconds: int | None = None) -> None:
        self.serializer = URLSafeTimedSerializer(
            secret or settings.reader_token_secret,
            salt="reader-token",
        )
        self.ttl_seconds = ttl_seconds or settings.reader_token_ttl

    def issue(self, user_id: str) -> str:
        return self.serializer.dumps({"sub": str(user_id)})

    def verify(self, token: str) -> str | None:
        """User id from a valid token; None if tampered or expired."""
        try:
            data = self.serializer.loads(token, max_age=self.ttl_seconds)
        except SignatureExpired:
            logger.info("reader_token_expired")
            return None
        except BadSignature:
            logger.warning("reader_token_invalid")
            return None
        if not isinstance(data, dict) or not data.get("sub"):
            return None
        return str(data["sub"])
