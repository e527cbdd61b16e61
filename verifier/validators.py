from __future__ import annotations

import re
from typing import Iterable, List, Optional

from verifier.errors import BadRequest


_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")
_CHAIN_RE = re.compile(r"^[0-9]+$")


def _split_csv(s: str) -> List[str]:
    return [x.strip() for x in (s or "").split(",") if x.strip()]


def is_valid_address(address: str) -> bool:
    return bool(_ADDRESS_RE.match((address or "").strip()))


def validate_addresses(addresses: str) -> List[str]:
    items = _split_csv(addresses)
    invalid = [a for a in items if not is_valid_address(a)]
    if invalid or not items:
        raise BadRequest(f"Invalid addresses: {', '.join(invalid)}")
    return [a.lower() for a in items]


def check_chain_id(chain_id: str, supported: Optional[Iterable[str]] = None) -> str:
    c = str(chain_id or "").strip()
    if not _CHAIN_RE.match(c):
        raise BadRequest(f"Invalid chainId: {chain_id}")
    c = str(int(c))
    allowed = set(supported or [])
    if allowed and c not in allowed:
        raise BadRequest(f"Chain {c} is not supported")
    return c


def validate_chain_ids(chain_ids: str, supported: Optional[Iterable[str]] = None) -> List[str]:
    items = _split_csv(chain_ids)
    valid: List[str] = []
    invalid: List[str] = []
    for c in items:
        try:
            valid.append(check_chain_id(c, supported))
        except BadRequest:
            invalid.append(c)
    if invalid or not items:
        raise BadRequest(f"Invalid chainIds: {', '.join(invalid)}")
    return valid
