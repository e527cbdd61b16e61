from __future__ import annotations

import logging
from typing import Dict, Iterable

from verifier.errors import CapacityExceeded
from verifier.models import Session, SourceFile


log = logging.getLogger(__name__)

MAX_SESSION_BYTES = 50 * 1024 * 1024


class ContentAddressedFileStore:
    """Deduplicated, size-capped file set of one session."""

    def __init__(self, max_bytes: int = MAX_SESSION_BYTES):
        self.max_bytes = int(max_bytes)

    def put(self, session: Session, files: Iterable[SourceFile]) -> int:
        fresh: Dict[str, SourceFile] = {}
        for f in files:
            h = f.content_hash
            if h in session.files or h in fresh:
                continue
            fresh[h] = f

        # only content not yet stored counts against the cap
        incoming = sum(f.size for f in fresh.values())
        current = session.total_bytes()
        if current + incoming > self.max_bytes:
            log.warning(
                "FAIL_SESSION_CAPACITY session=%s current=%d incoming=%d cap=%d",
                session.id,
                current,
                incoming,
                self.max_bytes,
            )
            raise CapacityExceeded(
                "Too much session memory used. Delete some files or clear the session.",
                extra={"max_bytes": self.max_bytes},
            )

        session.files.update(fresh)
        if fresh:
            log.info("PASS_SESSION_FILES_ADDED session=%s new=%d total=%d", session.id, len(fresh), len(session.files))
        return len(fresh)
