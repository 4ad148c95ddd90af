from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import JWTError, jwt
from passlib.context import CryptContext

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


class InvalidTokenError(Exception):
    pass


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def create_access_token(
    *,
    subject: str,
    secret: str,
    alg: str,
    expires_minutes: int,
    extra: Optional[Dict[str, Any]] = None,
) -> str:
    now = datetime.now(timezone.utc)
    expire = now + timedelta(minutes=expires_minutes)
    to_encode: Dict[str, Any] = {
        "sub": subject,
        "iat": int(now.timestamp()),
        "exp": int(expire.timestamp()),
    }
    if extra:
        to_encode.update(extra)
    return jwt.encode(to_encode, secret, algorithm=alg)


def decode_access_token(token: str, *, secret: str, alg: str) -> int:
    """Return the user id carried in ``sub``; raise InvalidTokenError otherwise."""
    try:
        payload = jwt.decode(token, secret, algorithms=[alg])
    except JWTError as exc:
        raise InvalidTokenError("Invalid token") from exc
    sub = payload.get("sub")
    if not sub:
        raise InvalidTokenError("Invalid token")
    try:
        return int(sub)
    except (TypeError, ValueError) as exc:
        raise InvalidTokenError("Invalid token") from exc
