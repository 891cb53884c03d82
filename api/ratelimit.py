from __future__ import annotations

import hashlib

from fastapi import Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from core.config import get_settings


def job_caller_key(request: Request) -> str:
    """Bucket job calls by the presented credential, else by client address.

    Scheduled callers rotate addresses but keep their key; only a digest of
    the key is ever stored by the limiter backend.
    """
    auth = request.headers.get("authorization", "")
    scheme, _, credential = auth.partition(" ")
    if scheme.lower() == "bearer" and credential.strip():
        return "cred:" + hashlib.sha256(credential.strip().encode("utf-8")).hexdigest()[:16]
    return "addr:" + get_remote_address(request)


def _limiter_enabled() -> bool:
    settings = get_settings()
    return settings.app_env != "test" and settings.rate_limit_enabled


limiter = Limiter(
    key_func=job_caller_key,
    storage_uri=get_settings().rate_limit_storage_uri,
    enabled=_limiter_enabled(),
)


def rate_limit_exceeded_handler(request: Request, exc: Exception) -> JSONResponse:
    limit = exc.detail if isinstance(exc, RateLimitExceeded) else None
    return JSONResponse(
        status_code=429,
        content={"detail": {"code": "RATE_LIMITED", "path": request.url.path, "limit": limit}},
    )
