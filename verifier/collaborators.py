from __future__ import annotations

from typing import Any, Dict, List, Sequence, Tuple

from verifier.candidates import is_valid
from verifier.models import ContractCandidate, Match, Session, SourceFile


class ValidationService:
    """Extracts compiler metadata from raw files and resolves compilation units.

    ``check_files`` raises ``verifier.errors.ValidationFailure`` when the batch
    is structurally unusable.
    """

    async def check_files(self, files: Sequence[SourceFile]) -> Tuple[List[ContractCandidate], List[str]]:
        raise NotImplementedError

    def is_valid(self, candidate: ContractCandidate, ignore_missing: bool = False) -> bool:
        return is_valid(candidate, ignore_missing=ignore_missing)

    async def expand_with_all_sources(
        self, candidate: ContractCandidate, files: Sequence[SourceFile]
    ) -> ContractCandidate:
        raise NotImplementedError

    async def fetch_missing_sources(self, candidate: ContractCandidate) -> Dict[str, str]:
        raise NotImplementedError


class VerificationService:
    """Matches a resolved candidate against deployed bytecode and reads stored results."""

    async def verify(self, address: str, chain_id: str, candidate: ContractCandidate) -> Match:
        raise NotImplementedError

    async def verify_create2(
        self,
        candidate: ContractCandidate,
        deployer_address: str,
        salt: str,
        constructor_args: List[Any],
    ) -> Match:
        raise NotImplementedError

    def find_confirmed_matches(self, address: str, chain_id: str) -> List[Match]:
        raise NotImplementedError

    def find_all_matches(self, address: str, chain_id: str) -> List[Match]:
        raise NotImplementedError

    async def metadata_from_json_input(
        self, compiler_version: str, contract_name: str, json_input: Dict[str, Any]
    ) -> Dict[str, Any]:
        raise NotImplementedError


class SessionStore:
    """Narrow persistence interface; lifecycle and expiry belong to the backend."""

    def load(self, session_id: str) -> Session:
        raise NotImplementedError

    def save(self, session: Session) -> None:
        raise NotImplementedError

    def destroy(self, session_id: str) -> None:
        raise NotImplementedError
