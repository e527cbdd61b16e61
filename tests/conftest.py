import json
from typing import Dict, List, Optional, Sequence, Tuple, Union

import pytest

from api.storage import MemorySessionStore
from verifier.collaborators import ValidationService, VerificationService
from verifier.errors import ValidationFailure
from verifier.models import ContractCandidate, Match, SourceFile
from verifier.service import SessionVerifier


ADDRESS = "0x" + "ab" * 20
OTHER_ADDRESS = "0x" + "cd" * 20
CREATE2_ADDRESS = "0x" + "ef" * 20


def metadata_file(name: str, sources: List[str], compiler: Optional[str] = "0.8.20", **extra) -> SourceFile:
    meta: Dict[str, object] = {"contractName": name, "sources": sources}
    if compiler:
        meta["compilerVersion"] = compiler
    meta.update(extra)
    return SourceFile(path="metadata.json", content=json.dumps(meta, sort_keys=True).encode("utf-8"))


def source_file(path: str, text: str = "") -> SourceFile:
    return SourceFile(path=path, content=(text or f"// {path}\ncontract X {{}}\n").encode("utf-8"))


class FakeValidation(ValidationService):
    """Files ending in .json are metadata listing the source paths they need."""

    def __init__(self, remote: Optional[Dict[str, str]] = None, fetch_error: Optional[Exception] = None):
        self.remote = dict(remote or {})
        self.fetch_error = fetch_error
        self.check_calls = 0
        self.expand_calls = 0
        self.fetch_calls = 0

    @staticmethod
    def _parse(f: SourceFile) -> dict:
        try:
            meta = json.loads(f.text())
        except ValueError as e:
            raise ValidationFailure(f"Cannot parse {f.path}") from e
        if not isinstance(meta, dict) or "sources" not in meta:
            raise ValidationFailure(f"{f.path} is not a metadata file")
        return meta

    async def check_files(self, files: Sequence[SourceFile]) -> Tuple[List[ContractCandidate], List[str]]:
        self.check_calls += 1
        by_path = {f.path: f for f in files if not f.path.endswith(".json")}
        used = set()
        out: List[ContractCandidate] = []
        for f in files:
            if not f.path.endswith(".json"):
                continue
            meta = self._parse(f)
            sources = list(meta["sources"])
            resolved = {p: by_path[p].text() for p in sources if p in by_path}
            used.update(resolved)
            out.append(
                ContractCandidate(
                    id="",
                    name=str(meta["contractName"]),
                    compiler_version=meta.get("compilerVersion"),
                    compiled_path=sources[0] if sources else "",
                    metadata_raw=f.text(),
                    resolved_sources=resolved,
                    missing_sources={p for p in sources if p not in resolved},
                    invalid_sources=set(meta.get("invalid") or []),
                )
            )
        unused = sorted(p for p in by_path if p not in used)
        return out, unused

    async def expand_with_all_sources(
        self, candidate: ContractCandidate, files: Sequence[SourceFile]
    ) -> ContractCandidate:
        self.expand_calls += 1
        expanded = ContractCandidate.from_dict(candidate.as_dict())
        expanded.add_sources({f.path: f.text() for f in files if not f.path.endswith(".json")})
        return expanded

    async def fetch_missing_sources(self, candidate: ContractCandidate) -> Dict[str, str]:
        self.fetch_calls += 1
        if self.fetch_error is not None:
            raise self.fetch_error
        return {p: self.remote[p] for p in candidate.missing_sources if p in self.remote}


class FakeVerification(VerificationService):
    def __init__(self, results: Optional[List[Union[Match, Exception]]] = None):
        self.results: List[Union[Match, Exception]] = list(results or [])
        self.stored: Dict[Tuple[str, str], List[Match]] = {}
        self.partial: Dict[Tuple[str, str], List[Match]] = {}
        self.broken_chains: set = set()
        self.calls: List[Tuple[str, str, List[str]]] = []
        self.create2_calls: List[tuple] = []

    def store(self, address: str, chain_id: str, status: str = "perfect") -> None:
        m = Match(status=status, address=address, chain_id=chain_id, storage_timestamp="2024-01-01T00:00:00+00:00")
        target = self.stored if status == "perfect" else self.partial
        target.setdefault((address, chain_id), []).append(m)

    async def verify(self, address: str, chain_id: str, candidate: ContractCandidate) -> Match:
        self.calls.append((address, chain_id, sorted(candidate.resolved_sources)))
        nxt = self.results.pop(0) if self.results else Match(status="perfect")
        if isinstance(nxt, Exception):
            raise nxt
        if nxt.status in ("perfect", "partial"):
            self.store(address, chain_id, nxt.status)
        return nxt

    async def verify_create2(self, candidate, deployer_address, salt, constructor_args) -> Match:
        self.create2_calls.append((deployer_address, salt, list(constructor_args), sorted(candidate.resolved_sources)))
        nxt = self.results.pop(0) if self.results else Match(status="perfect", address=CREATE2_ADDRESS)
        if isinstance(nxt, Exception):
            raise nxt
        return nxt

    def find_confirmed_matches(self, address: str, chain_id: str) -> List[Match]:
        if chain_id in self.broken_chains:
            raise RuntimeError("repository unavailable")
        return list(self.stored.get((address, chain_id), []))

    def find_all_matches(self, address: str, chain_id: str) -> List[Match]:
        return self.find_confirmed_matches(address, chain_id) + list(self.partial.get((address, chain_id), []))

    async def metadata_from_json_input(self, compiler_version, contract_name, json_input):
        return {
            "contractName": contract_name,
            "compilerVersion": compiler_version,
            "sources": sorted(json_input.get("sources") or {}),
        }


@pytest.fixture
def validation():
    return FakeValidation()


@pytest.fixture
def verification():
    return FakeVerification()


@pytest.fixture
def store():
    return MemorySessionStore()


@pytest.fixture
def session_verifier(store, validation, verification):
    return SessionVerifier(store=store, validation=validation, verification=verification)
