import logging
import os
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from passlib.context import CryptContext

from sweetshop import config
from sweetshop.models import ROLES

logger = logging.getLogger(__name__)

# Fall back to another scheme when the bcrypt backend is unusable
try:
    pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
    pwd_context.hash("test")
except Exception as e:
    logger.warning("bcrypt is not available (%s), using pbkdf2_sha256", e)
    pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def get_secret_key():
    env_key = os.getenv("JWT_SECRET")
    if env_key:
        return env_key

    key_file = ".secret_key"
    if os.path.exists(key_file):
        try:
            with open(key_file, "r", encoding="utf-8") as f:
                return f.read().strip()
        except UnicodeDecodeError:
            logger.warning("Could not read the stored secret key, generating a new one")
            os.remove(key_file)

    new_key = secrets.token_urlsafe(32)
    with open(key_file, "w", encoding="utf-8") as f:
        f.write(new_key)
    if os.name != "nt":
        os.chmod(key_file, 0o600)
    logger.info("Generated a new JWT secret key")
    return new_key


SECRET_KEY = get_secret_key()
ALGORITHM = config.JWT_ALGORITHM
ACCESS_TOKEN_EXPIRE = timedelta(hours=config.JWT_EXPIRE_HOURS)


class TokenError(Exception):
    pass


class TokenExpired(TokenError):
    pass


class TokenInvalid(TokenError):
    pass


@dataclass(frozen=True)
class TokenClaims:
    """Identity carried by a verified bearer token."""
    id: int
    role: str


def verify_password(plain_password, hashed_password):
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password):
    return pwd_context.hash(password)


def create_access_token(user_id: int, role: str, expires_delta: Optional[timedelta] = None) -> str:
    # Only id and role go into the payload
    issued_at = datetime.now(tz=timezone.utc)
    expire = issued_at + (expires_delta if expires_delta is not None else ACCESS_TOKEN_EXPIRE)
    payload = {"id": user_id, "role": role, "iat": issued_at, "exp": expire}
    return jwt.encode(payload, SECRET_KEY, algorithm=ALGORITHM)


def verify_token(token: str) -> TokenClaims:
    """Decode ``token`` and return its claims.

    Raises ``TokenExpired`` when the expiry has passed and ``TokenInvalid``
    for anything else (bad signature, garbage, missing or wrong claims).
    """
    try:
        payload = jwt.decode(
            token,
            SECRET_KEY,
            algorithms=[ALGORITHM],
            options={"require": ["exp", "iat"]},
        )
    except jwt.ExpiredSignatureError as e:
        raise TokenExpired(str(e)) from e
    except jwt.InvalidTokenError as e:
        raise TokenInvalid(str(e)) from e

    user_id = payload.get("id")
    role = payload.get("role")
    if not isinstance(user_id, int) or isinstance(user_id, bool) or role not in ROLES:
        raise TokenInvalid("Token payload is missing id or role")
    return TokenClaims(id=user_id, role=role)
