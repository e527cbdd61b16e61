from __future__ import annotations

import time
from pathlib import Path
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

import httpx

from api.models import APIStatusResponse, HealthResponse, SessionDataResponse, VerifyResultResponse
from api.settings import APISettings
from api.storage import build_session_store
from api.versioning import build_meta
from verifier.clients import HttpValidationService, HttpVerificationService, RepositoryMatchReader
from verifier.contract_digest_v1 import verifier_contract_digest_v1
from verifier.errors import BadRequest
from verifier.etherscan import EtherscanSource
from verifier.models import Match, SourceFile
from verifier.service import SessionSnapshot, SessionVerifier


def build_verifier(settings: APISettings) -> SessionVerifier:
    verification = HttpVerificationService(
        settings.verification_url,
        repository=RepositoryMatchReader(settings.repository_root),
        timeout_s=settings.service_timeout_s,
    )
    validation = HttpValidationService(settings.validation_url, timeout_s=settings.service_timeout_s)
    return SessionVerifier(
        store=build_session_store(settings),
        validation=validation,
        verification=verification,
        max_session_bytes=settings.max_session_bytes,
        etherscan=EtherscanSource(
            verification,
            api_key=settings.etherscan_api_key,
            timeout_s=settings.service_timeout_s,
        ),
    )


def health_payload(settings: APISettings) -> Dict[str, Any]:
    return HealthResponse.with_meta(
        host=settings.host,
        port=settings.port,
        session_schema_version=build_meta().session_schema_version,
    ).model_dump(by_alias=True)


def api_status(settings: APISettings) -> Dict[str, Any]:
    contracts = verifier_contract_digest_v1(Path(__file__).resolve().parents[1])

    print(
        f"PASS_API_STATUS backend={settings.session_backend} "
        f"api={build_meta().api_version} contracts={contracts}"
    )

    return APIStatusResponse.with_meta(
        ok=True,
        host=settings.host,
        port=settings.port,
        session_backend=settings.session_backend,
        max_session_bytes=settings.max_session_bytes,
        supported_chains=list(settings.supported_chains),
        contracts_digest=contracts,
        ts_ms=int(time.time() * 1000),
    ).model_dump(by_alias=True)


def session_payload(snapshot: SessionSnapshot) -> Dict[str, Any]:
    return SessionDataResponse.with_meta(
        contracts=snapshot.contracts,
        unused=snapshot.unused,
        files=snapshot.files,
    ).model_dump(by_alias=True)


def result_payload(matches: List[Match]) -> Dict[str, Any]:
    return VerifyResultResponse.with_meta(result=[m.as_dict() for m in matches]).model_dump(by_alias=True)


def files_from_json(files: Optional[Dict[str, str]]) -> List[SourceFile]:
    return [SourceFile(path=str(name), content=str(text).encode("utf-8")) for name, text in (files or {}).items()]


async def fetch_remote_file(url: str, max_bytes: int, timeout_s: float = 30.0) -> SourceFile:
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https"):
        raise BadRequest(f"Unsupported url scheme: {parsed.scheme or 'none'}")

    async with httpx.AsyncClient(timeout=timeout_s, follow_redirects=True) as client:
        try:
            resp = await client.get(url)
        except httpx.HTTPError as e:
            raise BadRequest(f"Could not fetch {url}: {e.__class__.__name__}") from e

    if resp.status_code != 200:
        raise BadRequest(f"Could not fetch {url}: HTTP {resp.status_code}")
    if len(resp.content) > max_bytes:
        raise BadRequest(f"Remote file too large: {len(resp.content)} bytes")

    name = Path(parsed.path).name or "remote_file"
    return SourceFile(path=name, content=resp.content)
