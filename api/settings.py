from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import List


def _env_bool(k: str, default: bool) -> bool:
    v = (os.getenv(k, "") or "").strip().lower()
    if not v:
        return bool(default)
    return v in ("1", "true", "yes", "y", "on")


def _env_int(k: str, default: int) -> int:
    v = (os.getenv(k, "") or "").strip()
    if not v:
        return int(default)
    try:
        return int(v)
    except ValueError:
        return int(default)


def _env_float(k: str, default: float) -> float:
    v = (os.getenv(k, "") or "").strip()
    if not v:
        return float(default)
    try:
        return float(v)
    except ValueError:
        return float(default)


def _env_str(k: str, default: str) -> str:
    v = os.getenv(k, "")
    return (v if v is not None else default).strip() or default


def _csv(s: str) -> List[str]:
    return [x.strip() for x in (s or "").split(",") if x.strip()]


@dataclass(frozen=True)
class APISettings:
    host: str
    port: int
    max_body_bytes: int
    max_session_bytes: int

    session_backend: str
    session_root: Path
    session_cookie: str
    s3_bucket: str
    s3_prefix: str
    s3_region: str
    s3_endpoint_url: str

    repository_root: Path
    validation_url: str
    verification_url: str
    service_timeout_s: float
    etherscan_api_key: str

    cors_allowed_origins: List[str]
    supported_chains: List[str]

    api_auth_enabled: bool
    api_keys_csv: str
    api_key_scopes: str

    @staticmethod
    def from_env() -> "APISettings":
        return APISettings(
            host=_env_str("SRCV_API_HOST", "127.0.0.1"),
            port=_env_int("SRCV_API_PORT", 8000),
            max_body_bytes=_env_int("SRCV_MAX_BODY_BYTES", 60 * 1024 * 1024),
            max_session_bytes=_env_int("SRCV_MAX_SESSION_BYTES", 50 * 1024 * 1024),
            session_backend=_env_str("SRCV_SESSION_BACKEND", "filesystem").lower(),
            session_root=Path(_env_str("SRCV_SESSION_ROOT", "out/sessions")),
            session_cookie=_env_str("SRCV_SESSION_COOKIE", "srcv_session"),
            s3_bucket=_env_str("SRCV_S3_BUCKET", ""),
            s3_prefix=_env_str("SRCV_S3_PREFIX", ""),
            s3_region=_env_str("SRCV_S3_REGION", ""),
            s3_endpoint_url=_env_str("SRCV_S3_ENDPOINT_URL", ""),
            repository_root=Path(_env_str("SRCV_REPOSITORY_ROOT", "out/repository")),
            validation_url=_env_str("SRCV_VALIDATION_URL", "http://127.0.0.1:5555"),
            verification_url=_env_str("SRCV_VERIFICATION_URL", "http://127.0.0.1:5556"),
            service_timeout_s=_env_float("SRCV_SERVICE_TIMEOUT_S", 120.0),
            etherscan_api_key=_env_str("SRCV_ETHERSCAN_API_KEY", ""),
            cors_allowed_origins=_csv(_env_str("SRCV_CORS_ALLOWED_ORIGINS", "http://localhost:3000")),
            supported_chains=_csv(_env_str("SRCV_SUPPORTED_CHAINS", "")),
            api_auth_enabled=_env_bool("SRCV_API_AUTH_ENABLED", False),
            api_keys_csv=_env_str("SRCV_API_KEYS", ""),
            api_key_scopes=_env_str("SRCV_API_KEY_SCOPES", ""),
        )
