from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt
from passlib.context import CryptContext

from errors import InvalidTokenError, MissingTokenError

ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = 60


# ----------------------------------------------------------------------------
# Passwords
# ----------------------------------------------------------------------------
class PasswordHasher:
    """bcrypt hashing; verification is the library's constant-time compare."""

    def __init__(self, rounds: int = 12):
        self._context = CryptContext(
            schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=rounds
        )

    def hash(self, password: str) -> str:
        return self._context.hash(password)

    def verify(self, plain_password: str, password_hash: str) -> bool:
        return self._context.verify(plain_password, password_hash)


# ----------------------------------------------------------------------------
# Tokens
# ----------------------------------------------------------------------------
class TokenService:
    def __init__(self, secret_key: str):
        if not secret_key:
            raise ValueError("a signing secret is required")
        self._secret_key = secret_key

    def issue(self, user_id: int, now: Optional[datetime] = None) -> str:
        """Sign a token for ``user_id`` that expires one hour after ``now``."""
        issued_at = now or datetime.now(timezone.utc)
        claims = {
            "sub": str(user_id),
            "iat": issued_at,
            "exp": issued_at + timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES),
        }
        return jwt.encode(claims, self._secret_key, algorithm=ALGORITHM)

    def verify(self, token: Optional[str]) -> int:
        """Return the user id embedded in ``token``."""
        if not token:
            raise MissingTokenError()
        try:
            payload = jwt.decode(token, self._secret_key, algorithms=[ALGORITHM])
        except JWTError as exc:
            raise InvalidTokenError(str(exc)) from exc

        subject = payload.get("sub")
        if subject is None or not str(subject).isdigit():
            raise InvalidTokenError("token has no usable subject")
        return int(subject)
