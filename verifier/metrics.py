from __future__ import annotations

from prometheus_client import Counter


FILES_ADDED_TOTAL = Counter(
    "srcv_files_added_total",
    "Source files admitted into sessions",
)
VERIFICATION_ATTEMPTS_TOTAL = Counter(
    "srcv_verification_attempts_total",
    "Verification attempts by outcome",
    ["outcome"],
)
VERIFICATION_RETRIES_TOTAL = Counter(
    "srcv_verification_retries_total",
    "Expanded-source retries after extra-file-input-bug",
)
STORED_MATCH_HITS_TOTAL = Counter(
    "srcv_stored_match_hits_total",
    "Verifications answered from already stored matches",
)
