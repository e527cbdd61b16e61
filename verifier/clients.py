from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

import httpx

from verifier.collaborators import ValidationService, VerificationService
from verifier.errors import ValidationFailure, VerificationTransportFailure
from verifier.models import STATUS_PARTIAL, STATUS_PERFECT, ContractCandidate, Match, SourceFile


log = logging.getLogger(__name__)

_MATCH_DIRS = (("full_match", STATUS_PERFECT), ("partial_match", STATUS_PARTIAL))


def _error_text(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text.strip() or f"HTTP {resp.status_code}"
    if isinstance(body, dict):
        return str(body.get("error") or body.get("message") or body)
    return str(body)


def _candidate_from_wire(d: Dict[str, Any]) -> ContractCandidate:
    d2 = dict(d)
    d2.setdefault("id", "")
    return ContractCandidate.from_dict(d2)


class _JsonClient:
    def __init__(self, base_url: str, timeout_s: float = 30.0, client: Optional[httpx.AsyncClient] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout_s = float(timeout_s)
        self._client = client

    async def _post(self, path: str, payload: Dict[str, Any]) -> httpx.Response:
        url = f"{self.base_url}{path}"
        try:
            if self._client is not None:
                return await self._client.post(url, json=payload)
            async with httpx.AsyncClient(timeout=self.timeout_s) as client:
                return await client.post(url, json=payload)
        except httpx.HTTPError as e:
            raise VerificationTransportFailure(f"{e.__class__.__name__} {url}") from e

    async def _post_ok(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        resp = await self._post(path, payload)
        if resp.status_code >= 500:
            raise VerificationTransportFailure(_error_text(resp))
        if resp.status_code >= 400:
            raise ValidationFailure(_error_text(resp))
        return resp.json()


class HttpValidationService(_JsonClient, ValidationService):
    async def check_files(self, files: Sequence[SourceFile]) -> Tuple[List[ContractCandidate], List[str]]:
        out = await self._post_ok("/check-files", {"files": [f.as_dict() for f in files]})
        contracts = [_candidate_from_wire(c) for c in out.get("contracts") or []]
        unused = [str(p) for p in out.get("unused") or []]
        return contracts, unused

    async def expand_with_all_sources(
        self, candidate: ContractCandidate, files: Sequence[SourceFile]
    ) -> ContractCandidate:
        out = await self._post_ok(
            "/use-all-sources",
            {"contract": candidate.as_dict(), "files": [f.as_dict() for f in files]},
        )
        expanded = _candidate_from_wire(out.get("contract") or {})
        expanded.id = candidate.id
        return expanded

    async def fetch_missing_sources(self, candidate: ContractCandidate) -> Dict[str, str]:
        out = await self._post_ok("/fetch-missing", {"contract": candidate.as_dict()})
        return {str(k): str(v) for k, v in (out.get("sources") or {}).items()}


class RepositoryMatchReader:
    """Reads stored matches from ``<root>/contracts/{full_match,partial_match}/<chain>/<address>/``."""

    def __init__(self, root: Path):
        self.root = Path(root)

    def _dir(self, kind: str, chain_id: str, address: str) -> Optional[Path]:
        for a in (address, address.lower()):
            d = self.root / "contracts" / kind / str(chain_id) / a
            if (d / "metadata.json").exists():
                return d
        return None

    def find(self, address: str, chain_id: str, include_partial: bool = False) -> List[Match]:
        out: List[Match] = []
        for kind, status in _MATCH_DIRS:
            if status == STATUS_PARTIAL and not include_partial:
                continue
            d = self._dir(kind, chain_id, address)
            if d is None:
                continue
            ts = datetime.fromtimestamp((d / "metadata.json").stat().st_mtime, tz=timezone.utc)
            out.append(
                Match(
                    status=status,
                    address=address,
                    chain_id=str(chain_id),
                    storage_timestamp=ts.isoformat(),
                )
            )
        return out


class HttpVerificationService(_JsonClient, VerificationService):
    def __init__(
        self,
        base_url: str,
        repository: RepositoryMatchReader,
        timeout_s: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__(base_url, timeout_s=timeout_s, client=client)
        self.repository = repository

    async def verify(self, address: str, chain_id: str, candidate: ContractCandidate) -> Match:
        resp = await self._post(
            "/verify",
            {"address": address, "chainId": chain_id, "contract": candidate.as_dict()},
        )
        if resp.status_code >= 400:
            raise VerificationTransportFailure(_error_text(resp))
        body = resp.json()
        return Match(
            status=body.get("status"),
            address=address,
            chain_id=chain_id,
            message=body.get("message"),
            storage_timestamp=body.get("storageTimestamp"),
        )

    async def verify_create2(
        self,
        candidate: ContractCandidate,
        deployer_address: str,
        salt: str,
        constructor_args: List[Any],
    ) -> Match:
        resp = await self._post(
            "/verify-create2",
            {
                "deployerAddress": deployer_address,
                "salt": salt,
                "constructorArgs": list(constructor_args),
                "contract": candidate.as_dict(),
            },
        )
        if resp.status_code >= 400:
            raise VerificationTransportFailure(_error_text(resp))
        body = resp.json()
        return Match(
            status=body.get("status"),
            address=body.get("address"),
            chain_id=body.get("chainId"),
            message=body.get("message"),
            storage_timestamp=body.get("storageTimestamp"),
        )

    def find_confirmed_matches(self, address: str, chain_id: str) -> List[Match]:
        return self.repository.find(address, chain_id)

    def find_all_matches(self, address: str, chain_id: str) -> List[Match]:
        return self.repository.find(address, chain_id, include_partial=True)

    async def metadata_from_json_input(
        self, compiler_version: str, contract_name: str, json_input: Dict[str, Any]
    ) -> Dict[str, Any]:
        out = await self._post_ok(
            "/metadata",
            {"compilerVersion": compiler_version, "contractName": contract_name, "jsonInput": json_input},
        )
        return dict(out.get("metadata") or {})
