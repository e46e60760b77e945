from __future__ import annotations
import os
from datetime import datetime, timedelta, timezone
from typing import Any
import jwt
from picfight.config import settings

JWT_ALG = "HS256"
ACCESS_TTL_MIN = int(os.getenv("ACCESS_TTL_MIN", "60"))

def make_access_token(sub: str, ttl_min: int = ACCESS_TTL_MIN) -> str:
    # sub is the caller's email; identity is issued by an upstream auth service
    now = datetime.now(timezone.utc)
    payload = {
        "sub": sub.strip().lower(),
        "type": "access",
        "iat": now.timestamp(),
        "exp": int((now + timedelta(minutes=ttl_min)).timestamp()),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=JWT_ALG)

def decode_token(token: str) -> dict[str, Any]:
    return jwt.decode(token, settings.jwt_secret, algorithms=[JWT_ALG])
