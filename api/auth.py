from __future__ import annotations

import base64
import hashlib
import hmac
import json
import time
from dataclasses import dataclass
from typing import Callable, Optional

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from core.config import get_settings


bearer_scheme = HTTPBearer(auto_error=False)

STAFF_ROLES = {"staff", "admin"}


@dataclass(frozen=True)
class AuthPrincipal:
    user_id: str
    role: str
    player_id: Optional[str]
    exp: int

    @property
    def is_staff(self) -> bool:
        return self.role.lower() in STAFF_ROLES


def _b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def _b64url_decode(data: str) -> bytes:
    padding = "=" * ((4 - (len(data) % 4)) % 4)
    return base64.urlsafe_b64decode((data + padding).encode("ascii"))


def _sign(signing_input: str, secret: str) -> str:
    digest = hmac.new(secret.encode("utf-8"), signing_input.encode("ascii"), hashlib.sha256).digest()
    return _b64url_encode(digest)


def issue_access_token(*, user_id: str, role: str, player_id: Optional[str], expires_in_seconds: int) -> str:
    """Mint an HS256 token the same shape the hosting platform issues."""
    settings = get_settings()
    header = {"alg": "HS256", "typ": "JWT"}
    payload = {
        "sub": str(user_id),
        "role": str(role),
        "player_id": player_id,
        "exp": int(time.time()) + int(expires_in_seconds),
    }
    header_b64 = _b64url_encode(json.dumps(header, separators=(",", ":"), sort_keys=True).encode("utf-8"))
    payload_b64 = _b64url_encode(json.dumps(payload, separators=(",", ":"), sort_keys=True).encode("utf-8"))
    signing_input = f"{header_b64}.{payload_b64}"
    signature = _sign(signing_input, settings.jwt_secret)
    return f"{signing_input}.{signature}"


def decode_access_token(token: str) -> AuthPrincipal:
    settings = get_settings()
    try:
        header_b64, payload_b64, signature = token.split(".", 2)
    except ValueError as exc:  # pragma: no cover - trivial parse failure
        raise HTTPException(status_code=401, detail={"code": "INVALID_TOKEN"}) from exc

    signing_input = f"{header_b64}.{payload_b64}"
    expected_sig = _sign(signing_input, settings.jwt_secret)
    if not hmac.compare_digest(signature, expected_sig):
        raise HTTPException(status_code=401, detail={"code": "INVALID_TOKEN"})

    try:
        payload = json.loads(_b64url_decode(payload_b64))
    except Exception as exc:
        raise HTTPException(status_code=401, detail={"code": "INVALID_TOKEN"}) from exc

    exp = int(payload.get("exp") or 0)
    if exp <= int(time.time()):
        raise HTTPException(status_code=401, detail={"code": "TOKEN_EXPIRED"})

    try:
        return AuthPrincipal(
            user_id=str(payload["sub"]),
            role=str(payload["role"]),
            player_id=(str(payload["player_id"]) if payload.get("player_id") is not None else None),
            exp=exp,
        )
    except Exception as exc:
        raise HTTPException(status_code=401, detail={"code": "INVALID_TOKEN"}) from exc


def get_current_principal(credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)) -> AuthPrincipal:
    if credentials is None or not credentials.credentials:
        raise HTTPException(status_code=401, detail={"code": "AUTH_REQUIRED"})
    return decode_access_token(credentials.credentials)


def require_roles(*allowed_roles: str) -> Callable[[AuthPrincipal], AuthPrincipal]:
    allowed = {r.lower() for r in allowed_roles}

    def _dependency(principal: AuthPrincipal = Depends(get_current_principal)) -> AuthPrincipal:
        role = principal.role.lower()
        if role != "admin" and role not in allowed:
            raise HTTPException(
                status_code=403,
                detail={"code": "FORBIDDEN_ROLE", "required_roles": sorted(allowed), "role": principal.role},
            )
        return principal

    return _dependency


require_staff = require_roles("staff")


def require_player_access(player_id: str, principal: AuthPrincipal = Depends(get_current_principal)) -> AuthPrincipal:
    if principal.is_staff:
        return principal
    if principal.player_id is None or principal.player_id != player_id:
        raise HTTPException(
            status_code=403,
            detail={"code": "FORBIDDEN_PLAYER_SCOPE", "player_id": player_id, "principal_player_id": principal.player_id},
        )
    return principal


def require_service_role(credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)) -> None:
    """Scheduled jobs authenticate with the platform's service-role key."""
    expected = get_settings().service_role_key
    supplied = credentials.credentials if credentials is not None else ""
    if not supplied or not hmac.compare_digest(supplied.encode("utf-8"), expected.encode("utf-8")):
        raise HTTPException(status_code=401, detail={"code": "UNAUTHORIZED"})
