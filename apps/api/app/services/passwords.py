from __future__ import annotations

import bcrypt

from app.core.config import settings
from app.core.errors import InvalidArgumentError

MIN_PASSWORD_LENGTH = 8


def hash_password(plain: str) -> str:
    if not plain:
        raise InvalidArgumentError("password is required", field="password")
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt(rounds=settings.bcrypt_rounds)).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
