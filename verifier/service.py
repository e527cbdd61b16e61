from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from verifier.assembler import CandidateAssembler
from verifier.candidates import describe, is_valid
from verifier.collaborators import SessionStore, ValidationService, VerificationService
from verifier.errors import (
    BadRequest,
    IncompleteCandidate,
    NotFound,
    ValidationFailure,
    VerificationTransportFailure,
    VerifierError,
)
from verifier.etherscan import EtherscanSource
from verifier.files import MAX_SESSION_BYTES, ContentAddressedFileStore
from verifier.gate import display_status, is_verifiable
from verifier.lookup import check_all_by_addresses, check_by_addresses
from verifier.metrics import FILES_ADDED_TOTAL
from verifier.models import CONFIRMED_STATUSES, STATUS_ERROR, ContractCandidate, Match, Session, SourceFile
from verifier.orchestrator import VerificationOrchestrator


log = logging.getLogger(__name__)


@dataclass(frozen=True)
class VerificationTarget:
    candidate_id: str
    address: str
    chain_id: str


@dataclass
class SessionSnapshot:
    contracts: List[Dict[str, object]] = field(default_factory=list)
    unused: List[str] = field(default_factory=list)
    files: List[str] = field(default_factory=list)

    def as_dict(self) -> Dict[str, object]:
        return {"contracts": list(self.contracts), "unused": list(self.unused), "files": list(self.files)}


def _contract_view(c: ContractCandidate) -> Dict[str, object]:
    return {
        "verificationId": c.id,
        "name": c.name,
        "compiledPath": c.compiled_path,
        "compilerVersion": c.compiler_version,
        "address": c.address,
        "chainId": c.chain_id,
        "files": {
            "found": sorted(c.resolved_sources),
            "missing": sorted(c.missing_sources),
            "invalid": sorted(c.invalid_sources),
        },
        "status": display_status(c),
        "statusMessage": c.status_message,
        "storageTimestamp": c.storage_timestamp,
    }


class SessionVerifier:
    """Entry points exposed to the transport layer.

    Each call loads the session from ``store``, runs to completion and saves it
    back. Calls on one session id are expected to be serialized by the caller.
    """

    def __init__(
        self,
        store: SessionStore,
        validation: ValidationService,
        verification: VerificationService,
        max_session_bytes: int = MAX_SESSION_BYTES,
        etherscan: Optional[EtherscanSource] = None,
    ):
        self.store = store
        self.validation = validation
        self.verification = verification
        self.files = ContentAddressedFileStore(max_session_bytes)
        self.assembler = CandidateAssembler(validation)
        self.orchestrator = VerificationOrchestrator(validation, verification)
        self.etherscan = etherscan or EtherscanSource(verification)

    async def upload_files(self, session_id: str, files: Sequence[SourceFile]) -> int:
        session = self.store.load(session_id)
        new_count = self.files.put(session, files)
        if new_count:
            FILES_ADDED_TOTAL.inc(new_count)
            await self.assembler.assemble(session)
            await self.orchestrator.verify_all(session)
        self.store.save(session)
        return new_count

    async def attach_target_and_verify(self, session_id: str, candidate_id: str, address: str, chain_id: str) -> str:
        session = self.store.load(session_id)
        candidate = session.candidates.get(candidate_id)
        if candidate is None:
            raise NotFound(f"No pending contract with id {candidate_id}")
        candidate.set_target(address, chain_id)
        if is_verifiable(candidate):
            await self.orchestrator.verify(session, candidate)
        self.store.save(session)
        return display_status(candidate)

    async def verify_validated(self, session_id: str, targets: Sequence[VerificationTarget]) -> SessionSnapshot:
        session = self.store.load(session_id)
        if not session.candidates:
            raise BadRequest("There are currently no pending contracts.")

        selected: List[str] = []
        for t in targets:
            candidate = session.candidates.get(t.candidate_id)
            if candidate is None:
                continue
            candidate.set_target(t.address, t.chain_id)
            if is_verifiable(candidate):
                selected.append(t.candidate_id)

        await self.orchestrator.verify_all(session, selected)
        self.store.save(session)
        return self.build_snapshot(session)

    def snapshot(self, session_id: str) -> SessionSnapshot:
        return self.build_snapshot(self.store.load(session_id))

    @staticmethod
    def build_snapshot(session: Session) -> SessionSnapshot:
        return SessionSnapshot(
            contracts=[_contract_view(session.candidates[cid]) for cid in sorted(session.candidates)],
            unused=list(session.unused),
            files=sorted(f.path for f in session.files.values()),
        )

    def reset_session(self, session_id: str) -> None:
        self.store.destroy(session_id)
        log.info("PASS_SESSION_CLEARED session=%s", session_id)

    def batch_status(self, addresses: Sequence[str], chain_ids: Sequence[str]) -> List[Dict[str, object]]:
        return check_by_addresses(self.verification, addresses, chain_ids)

    def batch_status_all(self, addresses: Sequence[str], chain_ids: Sequence[str]) -> List[Dict[str, object]]:
        return check_all_by_addresses(self.verification, addresses, chain_ids)

    async def verify_direct(
        self,
        addresses: Sequence[str],
        chain_id: str,
        files: Sequence[SourceFile],
        chosen_contract: Optional[int] = None,
    ) -> List[Match]:
        """Sessionless verification of one contract out of ``files``."""
        for address in addresses:
            found = self.verification.find_confirmed_matches(address, chain_id)
            if found:
                return list(found)

        if not files:
            raise NotFound("The contract at the provided address and chain has not yet been sourcified.")

        candidate = await self._checked_candidate(files, chosen_contract)
        scratch = Session(id="direct", files={f.content_hash: f for f in files})
        return [await self._verify_addresses(scratch, candidate, addresses, chain_id)]

    async def verify_create2(
        self,
        deployer_address: str,
        salt: str,
        files: Sequence[SourceFile],
        constructor_args: Optional[Sequence[Any]] = None,
        chosen_contract: Optional[int] = None,
    ) -> Match:
        """Verify a contract deployed with CREATE2 by ``deployer_address`` using ``salt``.

        The files go through the same checks as ``verify_direct``; the
        deployed address is derived by the verification service.
        """
        if not files:
            raise BadRequest("Create2 verification needs the contract files")

        candidate = await self._checked_candidate(files, chosen_contract)
        await self.orchestrator.fetch_missing(candidate)
        try:
            match = await self.verification.verify_create2(
                candidate, deployer_address, salt, list(constructor_args or [])
            )
        except VerifierError:
            raise
        except Exception as e:
            raise VerificationTransportFailure(str(e) or e.__class__.__name__) from e
        if match.status == STATUS_ERROR:
            raise VerificationTransportFailure(str(match.message or "verification failed"))
        log.info("PASS_VERIFY_CREATE2 deployer=%s name=%s status=%s", deployer_address, candidate.name, match.status)
        return match

    async def _checked_candidate(
        self, files: Sequence[SourceFile], chosen_contract: Optional[int]
    ) -> ContractCandidate:
        contracts, _unused = await self.validation.check_files(files)

        errors = [describe(c) for c in contracts if not is_valid(c, ignore_missing=True)]
        if errors:
            raise IncompleteCandidate("Invalid or missing sources in:\n" + "\n".join(errors))
        if not contracts:
            raise NotFound("No contract could be assembled from the provided files.")

        candidate = self._choose(contracts, chosen_contract)
        if not candidate.compiler_version:
            raise IncompleteCandidate("Metadata file not specifying a compiler version.")
        return candidate

    @staticmethod
    def _choose(contracts: List[ContractCandidate], chosen: Optional[int]) -> ContractCandidate:
        if chosen is None:
            if len(contracts) != 1:
                names = ", ".join(c.name for c in contracts)
                raise IncompleteCandidate(
                    f"Detected {len(contracts)} contracts ({names}), but can only verify 1 at a time. "
                    "Please choose a main contract and click Verify again.",
                    extra={"contractsToChoose": [{"name": c.name, "path": c.compiled_path} for c in contracts]},
                )
            return contracts[0]
        if not 0 <= int(chosen) < len(contracts):
            raise BadRequest(f"chosenContract {chosen} is out of range")
        return contracts[int(chosen)]

    async def _verify_addresses(
        self, scratch: Session, candidate: ContractCandidate, addresses: Sequence[str], chain_id: str
    ) -> Match:
        """Try ``addresses`` in order and stop at the first confirmed match.

        When none confirms, the outcome for the first address is returned.
        """
        if not addresses:
            raise BadRequest("No address to verify against")
        await self.orchestrator.fetch_missing(candidate)
        first: Optional[Match] = None
        for address in addresses:
            candidate.address = address
            candidate.chain_id = chain_id
            match = await self.orchestrator.attempt(scratch, candidate)
            if match.status == STATUS_ERROR:
                raise VerificationTransportFailure(str(match.message or "verification failed"))
            if match.status in CONFIRMED_STATUSES:
                return match
            if first is None:
                first = match
        return first

    async def verify_from_etherscan(self, chain_id: str, address: str) -> List[Match]:
        contract = await self.etherscan.fetch(chain_id, address)
        candidate = contract.to_candidate()
        scratch = Session(id="etherscan", files={f.content_hash: f for f in contract.to_files()})
        return [await self._verify_addresses(scratch, candidate, [address], chain_id)]

    async def verify_from_etherscan_with_session(self, session_id: str, chain_id: str, address: str) -> SessionSnapshot:
        contract = await self.etherscan.fetch(chain_id, address)

        session = self.store.load(session_id)
        new_count = self.files.put(session, contract.to_files())
        if new_count == 0:
            raise BadRequest("The contract didn't add any new file")
        FILES_ADDED_TOTAL.inc(new_count)

        await self.assembler.assemble(session)
        if not session.candidates:
            self.store.save(session)
            raise ValidationFailure("Unknown error during the Etherscan verification process")

        selected: List[str] = []
        for cid in sorted(session.candidates):
            candidate = session.candidates[cid]
            if not candidate.address:
                candidate.set_target(address, chain_id)
            if is_verifiable(candidate):
                selected.append(cid)

        await self.orchestrator.verify_all(session, selected)
        self.store.save(session)
        return self.build_snapshot(session)


def parse_targets(raw: Sequence[Dict[str, object]]) -> List[VerificationTarget]:
    targets: List[VerificationTarget] = []
    for item in raw:
        cid = str(item.get("verificationId") or "")
        if not cid:
            continue
        targets.append(
            VerificationTarget(
                candidate_id=cid,
                address=str(item.get("address") or ""),
                chain_id=str(item.get("chainId") or ""),
            )
        )
    return targets
