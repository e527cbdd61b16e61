from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx

from verifier.collaborators import VerificationService
from verifier.errors import BadRequest, VerificationTransportFailure
from verifier.models import ContractCandidate, SourceFile, generate_id


log = logging.getLogger(__name__)

ETHERSCAN_HOSTS: Dict[str, str] = {
    "1": "https://api.etherscan.io",
    "3": "https://api-ropsten.etherscan.io",
    "4": "https://api-rinkeby.etherscan.io",
    "5": "https://api-goerli.etherscan.io",
    "42": "https://api-kovan.etherscan.io",
    "11155111": "https://api-sepolia.etherscan.io",
}


@dataclass(frozen=True)
class EtherscanContract:
    contract_name: str
    compiler_version: str
    json_input: Dict[str, Any]
    metadata: Dict[str, Any]

    def sources(self) -> Dict[str, str]:
        out: Dict[str, str] = {}
        for path, src in (self.json_input.get("sources") or {}).items():
            content = (src or {}).get("content")
            if content:
                out[str(path)] = str(content)
        return out

    def to_files(self) -> List[SourceFile]:
        files = [SourceFile(path=p, content=c.encode("utf-8")) for p, c in self.sources().items()]
        files.append(SourceFile(path="metadata.json", content=json.dumps(self.metadata).encode("utf-8")))
        return files

    def to_candidate(self) -> ContractCandidate:
        raw = json.dumps(self.metadata)
        return ContractCandidate(
            id=generate_id(raw),
            name=self.contract_name,
            compiler_version=self.compiler_version,
            compiled_path=next(iter(self.sources()), ""),
            metadata_raw=raw,
            resolved_sources=self.sources(),
        )


def has_multiple_files(source_code: str) -> bool:
    return source_code.startswith("{{") and source_code.endswith("}}")


def parse_multiple_files(source_code: str) -> Dict[str, Any]:
    # explorer wraps standard-json input in an extra pair of braces
    return json.loads(source_code[1:-1])


def single_file_json_input(result: Dict[str, Any], contract_path: str) -> Dict[str, Any]:
    evm_version = str(result.get("EVMVersion") or "")
    settings: Dict[str, Any] = {
        "optimizer": {
            "enabled": str(result.get("OptimizationUsed") or "") == "1",
            "runs": int(result.get("Runs") or 200),
        },
        "outputSelection": {"*": {"*": ["metadata"]}},
        "libraries": {},
    }
    if evm_version and evm_version.lower() != "default":
        settings["evmVersion"] = evm_version
    return {
        "language": "Solidity",
        "sources": {contract_path: {"content": str(result.get("SourceCode") or "")}},
        "settings": settings,
    }


def normalize_compiler_version(v: str) -> str:
    return v[1:] if v.startswith("v") else v


class EtherscanSource:
    def __init__(
        self,
        verification: VerificationService,
        api_key: str = "",
        timeout_s: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.verification = verification
        self.api_key = api_key
        self.timeout_s = float(timeout_s)
        self._client = client

    def _url(self, chain_id: str) -> str:
        host = ETHERSCAN_HOSTS.get(str(chain_id))
        if not host:
            raise BadRequest(f"Etherscan import is not supported for chain {chain_id}")
        return host + "/api"

    async def _get(self, chain_id: str, address: str) -> Dict[str, Any]:
        url = self._url(chain_id)
        params = {
            "module": "contract",
            "action": "getsourcecode",
            "address": address,
            "apikey": self.api_key,
        }
        try:
            if self._client is not None:
                resp = await self._client.get(url, params=params)
            else:
                async with httpx.AsyncClient(timeout=self.timeout_s) as client:
                    resp = await client.get(url, params=params)
        except httpx.HTTPError as e:
            raise VerificationTransportFailure(f"Etherscan request failed: {e.__class__.__name__}") from e

        if resp.status_code >= 400:
            raise VerificationTransportFailure(f"Etherscan responded with HTTP {resp.status_code}")
        try:
            payload = resp.json()
        except ValueError as e:
            raise BadRequest("Etherscan returned an unreadable response") from e
        if not isinstance(payload, dict):
            raise BadRequest("Etherscan returned an unreadable response")
        return payload

    async def fetch(self, chain_id: str, address: str) -> EtherscanContract:
        payload = await self._get(chain_id, address)

        result = payload.get("result")
        if payload.get("message") == "NOTOK" and "Max rate limit reached" in str(result):
            raise BadRequest("Etherscan API rate limit reached, try later")
        if not isinstance(result, list) or not result or not str(result[0].get("SourceCode") or ""):
            raise BadRequest("This contract is not verified on Etherscan")

        first = result[0]
        source_code = str(first.get("SourceCode") or "")
        compiler_version = normalize_compiler_version(str(first.get("CompilerVersion") or ""))
        contract_name = str(first.get("ContractName") or "")

        if has_multiple_files(source_code):
            try:
                json_input = parse_multiple_files(source_code)
            except ValueError as e:
                raise BadRequest("Etherscan returned malformed multi-file sources") from e
            settings = json_input.setdefault("settings", {})
            selection = settings.setdefault("outputSelection", {})
            selection.setdefault("*", {})["*"] = ["metadata"]
        else:
            json_input = single_file_json_input(first, contract_name + ".sol")

        metadata = await self.verification.metadata_from_json_input(compiler_version, contract_name, json_input)
        log.info("PASS_ETHERSCAN_FETCH chain=%s address=%s name=%s", chain_id, address, contract_name)
        return EtherscanContract(
            contract_name=contract_name,
            compiler_version=compiler_version,
            json_input=json_input,
            metadata=metadata,
        )
