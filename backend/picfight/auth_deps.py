from __future__ import annotations
from functools import lru_cache
import jwt
from fastapi import Depends, HTTPException
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from redis.asyncio import Redis
from picfight.config import settings
from picfight.security import decode_token
from picfight.services.access import AuthorizationPolicy
from picfight.services.judge_client import Judge, build_judge
from picfight.services.storage import ObjectStorage, get_object_storage
from picfight.services.throttle import SubmitThrottle

security = HTTPBearer()

async def get_current_identity(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> str:
    token = credentials.credentials
    try:
        data = decode_token(token)
    except jwt.PyJWTError:
        raise HTTPException(status_code=401, detail="Invalid token")
    if data.get("type") != "access":
        raise HTTPException(status_code=401, detail="Wrong token type")
    sub = str(data.get("sub") or "").strip().lower()
    if not sub:
        raise HTTPException(status_code=401, detail="Token has no subject")
    return sub

@lru_cache(maxsize=1)
def get_authorization_policy() -> AuthorizationPolicy:
    return AuthorizationPolicy.from_emails(settings.admin_emails)

def get_judge() -> Judge:
    return build_judge()

def get_storage() -> ObjectStorage:
    return get_object_storage()

@lru_cache(maxsize=1)
def get_throttle() -> SubmitThrottle:
    # One instance per process so the in-memory fallback actually remembers attempts
    redis = Redis.from_url(settings.redis_url) if settings.redis_url else None
    return SubmitThrottle(settings.submit_cooldown_seconds, redis=redis)
