import time
from typing import Optional

import jwt
from passlib.context import CryptContext

from . import config

# Use pbkdf2_sha256 as default to avoid bcrypt 72-byte limitation in some envs
pwd_context = CryptContext(schemes=["pbkdf2_sha256", "bcrypt"], deprecated="auto")

ALGORITHM = "HS256"


def create_access_token(user_id: int, role: str, expires_delta: Optional[int] = None) -> str:
    settings = config.get_settings()
    now = int(time.time())
    exp = now + (expires_delta or settings.jwt_exp_seconds)
    payload = {"sub": str(user_id), "role": role, "iat": now, "exp": exp}
    return jwt.encode(payload, settings.jwt_secret, algorithm=ALGORITHM)


def decode_access_token(token: str) -> dict:
    """Decode and verify a token. Raises jwt.PyJWTError on bad or expired tokens."""
    return jwt.decode(token, config.get_settings().jwt_secret, algorithms=[ALGORITHM])


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain: str, hashed: str) -> bool:
    return pwd_context.verify(plain, hashed)
