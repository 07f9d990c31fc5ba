"""Security helpers.

Password hashing and the signed session cookie. Session expiry is enforced by
the serializer's embedded timestamp, so a token needs no server-side state.
"""

import logging
from datetime import timedelta

from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer
from passlib.context import CryptContext
from passlib.exc import MissingBackendError

from timekeeper.config import settings

logger = logging.getLogger(__name__)

SESSION_COOKIE = "session_token"

pwd_context = CryptContext(schemes=["argon2"], deprecated="auto")
serializer = URLSafeTimedSerializer(settings.secret_key, salt="timekeeper-session")


def session_max_age() -> int:
    """Session lifetime in seconds."""
    return int(timedelta(hours=settings.session_hours).total_seconds())


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def ensure_password_backend() -> None:
    """Fail startup early when the Argon2 backend is missing."""
    try:
        pwd_context.hash("argon2-backend-check")
    except MissingBackendError as exc:
        raise RuntimeError(
            "Argon2 backend unavailable. Install argon2-cffi in the active virtual environment."
        ) from exc


def verify_password(password: str, hashed_password: str) -> bool:
    return pwd_context.verify(password, hashed_password)


def verify_and_update(password: str, hashed_password: str) -> tuple[bool, str | None]:
    """Verify a password; the second item is a replacement hash when parameters changed."""
    return pwd_context.verify_and_update(password, hashed_password)


def create_session_token(user_id: int) -> str:
    return serializer.dumps({"sub": user_id})


def read_session_token(token: str) -> int | None:
    """Return the user id of a valid token, or None when tampered or expired."""
    try:
        payload = serializer.loads(token, max_age=session_max_age())
    except SignatureExpired:
        logger.debug("Rejected expired session token")
        return None
    except BadSignature:
        logger.warning("Rejected session token with a bad signature")
        return None
    return payload.get("sub")
