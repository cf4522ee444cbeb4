from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import jwt, JWTError
from helitour.core.config import settings

ALGORITHM = "HS256"


def create_access_token(
    subject: str,
    scope: str = "staff",
    expires_delta: Optional[timedelta] = None,
) -> str:
    """
    Sign a bearer token. `scope` is "staff" for back-office users and
    "customer" for my-page links.
    """
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode = {"exp": expire, "sub": str(subject), "scope": scope}
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=ALGORITHM)


def decode_token(token: str, scope: str = "staff") -> Optional[str]:
    """Returns the subject ID or None if the token is invalid, expired, or for another scope."""
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        return None
    if payload.get("scope") != scope:
        return None
    return payload.get("sub")
