"""Password hashing and bearer token helpers."""
from __future__ import annotations

from datetime import UTC, datetime, timedelta

from jose import JWTError, jwt
from passlib.context import CryptContext

from flare_stage.core.settings import settings

pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=settings.bcrypt_rounds,
)


class TokenError(Exception):
    """Raised when a bearer token cannot be decoded or has expired."""


def hash_password(password: str) -> str:
    """Return a bcrypt hash of the supplied password."""
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Return True if `plain_password` matches `hashed_password`."""
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except ValueError:
        return False


def create_access_token(user_id: int, extra_claims: dict[str, str] | None = None) -> str:
    """Create JWT access token for user authentication."""
    to_encode: dict[str, object] = {"sub": str(user_id)}
    if extra_claims:
        to_encode.update(extra_claims)
    expire = datetime.now(UTC) + timedelta(minutes=settings.access_token_expire_minutes)
    to_encode["exp"] = expire
    encoded_jwt: str = jwt.encode(
        to_encode,
        settings.secret_key,
        algorithm=settings.jwt_algorithm,
    )
    return encoded_jwt


def decode_access_token(token: str) -> int:
    """Return the user id carried by `token`.

    Raises:
        TokenError: If the token is malformed, expired, or has no usable subject.
    """
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError as err:
        raise TokenError("Invalid token") from err

    subject = payload.get("sub")
    if subject is None:
        raise TokenError("Token has no subject")
    try:
        return int(subject)
    except (TypeError, ValueError) as err:
        raise TokenError("Token subject is not a user id") from err
