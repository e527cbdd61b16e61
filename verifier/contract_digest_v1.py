from __future__ import annotations

import hashlib
from pathlib import Path
from typing import Dict


# modules whose behaviour defines what a session verification means
CONTRACT_FILES = [
    "verifier/files.py",
    "verifier/candidates.py",
    "verifier/assembler.py",
    "verifier/gate.py",
    "verifier/orchestrator.py",
    "verifier/lookup.py",
    "api/models.py",
]


def sha256_file(path: Path) -> str:
    h = hashlib.sha256()
    h.update(path.read_bytes())
    return h.hexdigest()


def contract_file_digests(root: Path) -> Dict[str, str]:
    out: Dict[str, str] = {}
    for rel in CONTRACT_FILES:
        p = root / rel
        out[rel] = sha256_file(p) if p.exists() else "MISSING"
    return out


def verifier_contract_digest_v1(root: Path) -> str:
    parts = [f"{rel}:{digest}" for rel, digest in contract_file_digests(root).items()]
    joined = "\n".join(parts).encode("utf-8")
    return hashlib.sha256(joined).hexdigest()
