from __future__ import annotations

import logging
from typing import Iterable, List, Optional

from verifier.collaborators import ValidationService, VerificationService
from verifier.gate import is_verifiable
from verifier.metrics import STORED_MATCH_HITS_TOTAL, VERIFICATION_ATTEMPTS_TOTAL, VERIFICATION_RETRIES_TOTAL
from verifier.models import (
    CONFIRMED_STATUSES,
    STATUS_ERROR,
    STATUS_EXTRA_FILE_INPUT_BUG,
    ContractCandidate,
    Match,
    Session,
)


log = logging.getLogger(__name__)


def _error_match(e: Exception) -> Match:
    return Match(status=STATUS_ERROR, message=str(e) or e.__class__.__name__)


class VerificationOrchestrator:
    """Drives one verification pass per verifiable candidate.

    A pass is: best-effort fetch of missing sources, gate check, stored-match
    lookup, first attempt, and at most one expanded retry when the first
    attempt reports ``extra-file-input-bug``.
    """

    def __init__(self, validation: ValidationService, verification: VerificationService):
        self.validation = validation
        self.verification = verification

    async def verify(self, session: Session, candidate: ContractCandidate) -> ContractCandidate:
        await self.fetch_missing(candidate)

        if not is_verifiable(candidate):
            return candidate

        stored = self.stored_match(candidate)
        if stored is not None:
            STORED_MATCH_HITS_TOTAL.inc()
            candidate.record(stored)
            log.info("PASS_VERIFY_STORED id=%s status=%s", candidate.id, candidate.status)
            return candidate

        candidate.record(await self.attempt(session, candidate))
        VERIFICATION_ATTEMPTS_TOTAL.labels(outcome=candidate.status).inc()
        if candidate.status == STATUS_ERROR:
            log.warning("FAIL_VERIFY_CANDIDATE id=%s message=%s", candidate.id, candidate.status_message)
        else:
            log.info("PASS_VERIFY_CANDIDATE id=%s status=%s", candidate.id, candidate.status)
        return candidate

    async def verify_all(self, session: Session, ids: Optional[Iterable[str]] = None) -> List[ContractCandidate]:
        wanted = sorted(session.candidates) if ids is None else [i for i in ids if i in session.candidates]
        out: List[ContractCandidate] = []
        for cid in wanted:
            out.append(await self.verify(session, session.candidates[cid]))
        return out

    async def fetch_missing(self, candidate: ContractCandidate) -> None:
        if self.validation.is_valid(candidate):
            return
        log.info("Attempting fetch of missing sources id=%s name=%s", candidate.id, candidate.name)
        try:
            fetched = await self.validation.fetch_missing_sources(candidate)
        except Exception as e:
            log.error("FAIL_FETCH_MISSING id=%s err=%s", candidate.id, e)
            return
        added = candidate.add_sources(fetched or {})
        if added:
            log.info("PASS_FETCH_MISSING id=%s added=%d", candidate.id, added)

    def stored_match(self, candidate: ContractCandidate) -> Optional[Match]:
        try:
            found = self.verification.find_all_matches(str(candidate.address), str(candidate.chain_id))
        except Exception as e:
            log.error("FAIL_STORED_MATCH_LOOKUP id=%s err=%s", candidate.id, e)
            return None
        # a stored perfect or partial match settles the pair
        confirmed = [m for m in found if m.status in CONFIRMED_STATUSES]
        return confirmed[0] if confirmed else None

    async def attempt(self, session: Session, candidate: ContractCandidate) -> Match:
        match = await self.first_attempt(candidate)
        if match.status == STATUS_EXTRA_FILE_INPUT_BUG:
            match = await self.expanded_attempt(session, candidate)
        return match

    async def first_attempt(self, candidate: ContractCandidate) -> Match:
        try:
            return await self.verification.verify(str(candidate.address), str(candidate.chain_id), candidate)
        except Exception as e:
            return _error_match(e)

    async def expanded_attempt(self, session: Session, candidate: ContractCandidate) -> Match:
        VERIFICATION_RETRIES_TOTAL.inc()
        log.info("Retrying with all session sources id=%s files=%d", candidate.id, len(session.files))
        try:
            expanded = await self.validation.expand_with_all_sources(candidate, session.all_files())
            return await self.verification.verify(str(candidate.address), str(candidate.chain_id), expanded)
        except Exception as e:
            return _error_match(e)
