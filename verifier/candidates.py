from __future__ import annotations

from typing import List

from verifier.errors import describe_incomplete
from verifier.models import ContractCandidate


def merge_candidate(old: ContractCandidate, new: ContractCandidate) -> ContractCandidate:
    """Fold a fresh resolution pass ``new`` into the stored candidate ``old``.

    Every path resolved by either pass stays resolved. The new pass decides
    which paths are still missing and which are invalid, but a path that was
    tracked before is never dropped from the resolved/missing union. Target,
    status and id of ``old`` are kept.
    """
    resolved = dict(old.resolved_sources)
    resolved.update(new.resolved_sources)

    tracked = set(old.resolved_sources) | old.missing_sources
    missing = set(new.missing_sources) | (tracked - set(resolved))
    missing -= set(resolved)

    old.resolved_sources = resolved
    old.missing_sources = missing
    old.invalid_sources = set(new.invalid_sources)

    if new.compiler_version:
        old.compiler_version = new.compiler_version
    if new.name:
        old.name = new.name
    if new.compiled_path:
        old.compiled_path = new.compiled_path
    return old


def is_valid(candidate: ContractCandidate, ignore_missing: bool = False) -> bool:
    return (ignore_missing or not candidate.missing_sources) and not candidate.invalid_sources


def incomplete_paths(candidate: ContractCandidate) -> List[str]:
    return sorted(candidate.invalid_sources) + sorted(candidate.missing_sources)


def describe(candidate: ContractCandidate) -> str:
    return describe_incomplete(candidate.name, incomplete_paths(candidate))
