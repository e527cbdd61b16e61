from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from fastapi import HTTPException, Request, status

from api.settings import APISettings


AUTH_ERROR_SCHEMA = "api.auth_error.v1"
ALL_SCOPES = ["read", "upload", "verify", "admin"]
PUBLIC_PATHS = ("/v1/health", "/v1/metrics", "/docs", "/openapi.json", "/redoc")


@dataclass(frozen=True)
class Principal:
    key: str
    scopes: List[str]

    def missing(self, required: List[str]) -> List[str]:
        if "admin" in self.scopes:
            return []
        return [r for r in required if r not in self.scopes]


def _parse_keys_csv(s: str) -> List[str]:
    return [x.strip() for x in (s or "").split(",") if x.strip()]


def parse_scopes_map(s: str) -> Dict[str, List[str]]:
    """Parse ``"key1:read,verify;key2:admin"`` into ``{key: [scope, ...]}``."""
    out: Dict[str, List[str]] = {}
    for mapping in (s or "").strip().split(";"):
        k, sep, scopes = mapping.partition(":")
        if sep and k.strip():
            out[k.strip()] = [x.strip() for x in scopes.split(",") if x.strip()]
    return out


def _unauthorized(reason: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"schema": AUTH_ERROR_SCHEMA, "ok": False, "reason": reason},
    )


def _is_public_path(path: str) -> bool:
    return any(path == p or path.startswith(p + "/") for p in PUBLIC_PATHS)


def authenticate_request(request: Request, settings: APISettings) -> Optional[Principal]:
    if not settings.api_auth_enabled or _is_public_path(request.url.path):
        return None

    keys = _parse_keys_csv(settings.api_keys_csv)
    if not keys:
        raise _unauthorized("NO_KEYS_CONFIGURED")

    scheme, _, key = (request.headers.get("authorization", "") or "").strip().partition(" ")
    if not scheme:
        raise _unauthorized("MISSING_AUTH")
    if scheme.lower() != "bearer" or not key.strip():
        raise _unauthorized("BAD_SCHEME")
    key = key.strip()
    if key not in keys:
        raise _unauthorized("BAD_KEY")

    # without an explicit scope map every configured key is fully trusted
    scopes_map = parse_scopes_map(settings.api_key_scopes)
    if not scopes_map:
        return Principal(key=key, scopes=list(ALL_SCOPES))
    return Principal(key=key, scopes=scopes_map.get(key, ["read"]))


def require_scopes(required: List[str], settings_provider: Callable[[], APISettings]):
    def _dep(request: Request) -> None:
        principal = authenticate_request(request, settings_provider())
        if principal is None:
            return
        missing = principal.missing(required)
        if missing:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={
                    "schema": AUTH_ERROR_SCHEMA,
                    "ok": False,
                    "reason": "INSUFFICIENT_SCOPE",
                    "detail": ",".join(missing),
                },
            )

    return _dep
