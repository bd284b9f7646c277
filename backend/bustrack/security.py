"""Password hashing and bearer token issuance."""

import datetime

import jwt
from werkzeug.security import check_password_hash, generate_password_hash

from bustrack.config import Settings
from bustrack.errors import AuthenticationError

ALGORITHM = "HS256"


def hash_password(raw: str) -> str:
    return generate_password_hash(raw, method="scrypt")


def verify_password(password_hash: str, raw: str) -> bool:
    try:
        return check_password_hash(password_hash or "", raw or "")
    except ValueError:
        # Unknown or corrupted hash format
        return False


class TokenIssuer:
    def __init__(self, settings: Settings) -> None:
        self._secret = settings.jwt_secret
        self._ttl = datetime.timedelta(days=settings.jwt_expires_days)

    def mint(self, driver_id: int) -> str:
        now = datetime.datetime.now(datetime.timezone.utc)
        payload = {"sub": str(driver_id), "iat": now, "exp": now + self._ttl}
        return jwt.encode(payload, self._secret, algorithm=ALGORITHM)

    def validate(self, token: str) -> int:
        """Driver id carried by a valid token."""
        try:
            payload = jwt.decode(token, self._secret, algorithms=[ALGORITHM])
        except jwt.ExpiredSignatureError:
            raise AuthenticationError("Token has expired")
        except jwt.InvalidTokenError:
            raise AuthenticationError("Invalid token")
        try:
            return int(payload["sub"])
        except (KeyError, TypeError, ValueError):
            raise AuthenticationError("Invalid token")
