from __future__ import annotations

import logging
from typing import Dict, List, Tuple

from verifier.candidates import merge_candidate
from verifier.collaborators import ValidationService
from verifier.errors import ValidationFailure
from verifier.models import ContractCandidate, Session, generate_id


log = logging.getLogger(__name__)


class CandidateAssembler:
    def __init__(self, validation: ValidationService):
        self.validation = validation

    async def assemble(self, session: Session) -> Tuple[List[ContractCandidate], List[str]]:
        """Resolve every file of ``session`` into candidates and merge them in.

        Returns the session candidates touched by this pass and the paths the
        validation service could not attribute to any candidate.
        """
        files = session.all_files()
        try:
            produced, unused = await self.validation.check_files(files)
        except ValidationFailure as e:
            paths = [f.path for f in files]
            session.unused = paths
            log.warning("FAIL_ASSEMBLE session=%s files=%d reason=%s", session.id, len(paths), e.message)
            return [], paths

        fresh: Dict[str, ContractCandidate] = {}
        for cand in produced:
            cand.id = generate_id(cand.metadata_raw)
            fresh[cand.id] = cand

        touched: List[ContractCandidate] = []
        for cid, cand in fresh.items():
            existing = session.candidates.get(cid)
            if existing is not None:
                touched.append(merge_candidate(existing, cand))
            else:
                session.candidates[cid] = cand
                touched.append(cand)

        session.unused = list(unused)
        log.info(
            "PASS_ASSEMBLE session=%s candidates=%d unused=%d",
            session.id,
            len(touched),
            len(session.unused),
        )
        return touched, list(unused)
