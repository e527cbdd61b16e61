from __future__ import annotations

from verifier.models import STATUS_PENDING, STATUS_VERIFIABLE, ContractCandidate


def is_verifiable(candidate: ContractCandidate) -> bool:
    return (
        not candidate.missing_sources
        and bool(candidate.address)
        and bool(candidate.chain_id)
        and bool(candidate.compiler_version)
    )


def display_status(candidate: ContractCandidate) -> str:
    # pending/verifiable are derived; any recorded outcome wins
    if candidate.status not in (STATUS_PENDING, STATUS_VERIFIABLE):
        return candidate.status
    return STATUS_VERIFIABLE if is_verifiable(candidate) else STATUS_PENDING
