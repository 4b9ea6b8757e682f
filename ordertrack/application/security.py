from datetime import datetime, timedelta, timezone
from typing import Optional
import bcrypt
import jwt
from ordertrack.core_settings import get_settings


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, digest: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), digest.encode("utf-8"))
    except ValueError:
        # Malformed stored hash
        return False


def create_access_token(subject: str, role: str, expires_minutes: Optional[int] = None) -> str:
    settings = get_settings()
    now = datetime.now(timezone.utc)
    minutes = expires_minutes or settings.JWT_EXPIRES_MINUTES
    # Fractional iat (RFC 7519 NumericDate allows it, PyJWT accepts it) so a login
    # in the same second as a revocation is not mistaken for an older token
    payload = {
        "sub": subject,
        "role": role,
        "iat": now.timestamp(),
        "exp": now + timedelta(minutes=minutes),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALG)


def decode_access_token(token: str) -> Optional[dict]:
    settings = get_settings()
    try:
        return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALG], leeway=5)
    except jwt.PyJWTError:
        return None


def issued_at(claims: dict) -> Optional[datetime]:
    """Token issue time as naive UTC, comparable with stored timestamps."""
    iat = claims.get("iat")
    if iat is None:
        return None
    return datetime.fromtimestamp(iat, tz=timezone.utc).replace(tzinfo=None)
