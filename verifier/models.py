from __future__ import annotations

import base64
import hashlib
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set


STATUS_PENDING = "pending"
STATUS_VERIFIABLE = "verifiable"
STATUS_PERFECT = "perfect"
STATUS_PARTIAL = "partial"
STATUS_EXTRA_FILE_INPUT_BUG = "extra-file-input-bug"
STATUS_ERROR = "error"
STATUS_FALSE = "false"

CONFIRMED_STATUSES = (STATUS_PERFECT, STATUS_PARTIAL)


def sha256_hex(data: bytes) -> str:
    h = hashlib.sha256()
    h.update(data)
    return h.hexdigest()


def generate_id(raw: str) -> str:
    return sha256_hex(raw.encode("utf-8"))


@dataclass(frozen=True)
class SourceFile:
    path: str
    content: bytes

    @property
    def content_hash(self) -> str:
        return sha256_hex(self.content)

    @property
    def size(self) -> int:
        return len(self.content)

    def text(self) -> str:
        return self.content.decode("utf-8", errors="replace")

    def as_dict(self) -> Dict[str, object]:
        return {
            "path": self.path,
            "content": base64.b64encode(self.content).decode("ascii"),
        }

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> "SourceFile":
        return SourceFile(path=str(d["path"]), content=base64.b64decode(str(d.get("content") or "")))


@dataclass(frozen=True)
class Match:
    status: Optional[str]
    address: Optional[str] = None
    chain_id: Optional[str] = None
    message: Optional[str] = None
    storage_timestamp: Optional[str] = None

    def as_dict(self) -> Dict[str, object]:
        d: Dict[str, object] = {
            "status": self.status,
            "address": self.address,
            "chainId": self.chain_id,
            "message": self.message,
            "storageTimestamp": self.storage_timestamp,
        }
        return {k: v for k, v in d.items() if v is not None}


@dataclass
class ContractCandidate:
    """One compilation target assembled from the files of a session.

    ``resolved_sources`` and ``missing_sources`` partition the source paths the
    metadata asks for; mutate them through ``add_sources`` or
    ``verifier.candidates.merge_candidate`` only.
    """

    id: str
    name: str
    compiler_version: Optional[str] = None
    compiled_path: str = ""
    metadata_raw: str = ""
    resolved_sources: Dict[str, str] = field(default_factory=dict)
    missing_sources: Set[str] = field(default_factory=set)
    invalid_sources: Set[str] = field(default_factory=set)

    address: Optional[str] = None
    chain_id: Optional[str] = None

    status: str = STATUS_PENDING
    status_message: Optional[str] = None
    storage_timestamp: Optional[str] = None

    def add_sources(self, sources: Dict[str, str]) -> int:
        added = 0
        for path, content in sources.items():
            if path not in self.resolved_sources:
                added += 1
            self.resolved_sources[path] = content
            self.missing_sources.discard(path)
        return added

    def set_target(self, address: Optional[str], chain_id: Optional[str]) -> None:
        # a target is never cleared once set
        if address:
            self.address = address
        if chain_id:
            self.chain_id = chain_id

    def record(self, match: Match) -> None:
        self.status = match.status or STATUS_ERROR
        self.status_message = match.message
        self.storage_timestamp = match.storage_timestamp

    def as_dict(self) -> Dict[str, object]:
        return {
            "id": self.id,
            "name": self.name,
            "compilerVersion": self.compiler_version,
            "compiledPath": self.compiled_path,
            "metadataRaw": self.metadata_raw,
            "resolvedSources": dict(self.resolved_sources),
            "missingSources": sorted(self.missing_sources),
            "invalidSources": sorted(self.invalid_sources),
            "address": self.address,
            "chainId": self.chain_id,
            "status": self.status,
            "statusMessage": self.status_message,
            "storageTimestamp": self.storage_timestamp,
        }

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> "ContractCandidate":
        return ContractCandidate(
            id=str(d["id"]),
            name=str(d.get("name") or ""),
            compiler_version=d.get("compilerVersion"),
            compiled_path=str(d.get("compiledPath") or ""),
            metadata_raw=str(d.get("metadataRaw") or ""),
            resolved_sources={str(k): str(v) for k, v in (d.get("resolvedSources") or {}).items()},
            missing_sources=set(d.get("missingSources") or []),
            invalid_sources=set(d.get("invalidSources") or []),
            address=d.get("address"),
            chain_id=d.get("chainId"),
            status=str(d.get("status") or STATUS_PENDING),
            status_message=d.get("statusMessage"),
            storage_timestamp=d.get("storageTimestamp"),
        )


@dataclass
class Session:
    id: str
    files: Dict[str, SourceFile] = field(default_factory=dict)
    candidates: Dict[str, ContractCandidate] = field(default_factory=dict)
    unused: List[str] = field(default_factory=list)

    def total_bytes(self) -> int:
        return sum(f.size for f in self.files.values())

    def all_files(self) -> List[SourceFile]:
        return list(self.files.values())

    def as_dict(self) -> Dict[str, object]:
        return {
            "id": self.id,
            "files": {h: f.as_dict() for h, f in self.files.items()},
            "candidates": {cid: c.as_dict() for cid, c in self.candidates.items()},
            "unused": list(self.unused),
        }

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> "Session":
        return Session(
            id=str(d["id"]),
            files={str(h): SourceFile.from_dict(f) for h, f in (d.get("files") or {}).items()},
            candidates={str(cid): ContractCandidate.from_dict(c) for cid, c in (d.get("candidates") or {}).items()},
            unused=[str(p) for p in (d.get("unused") or [])],
        )
