from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from verifier.collaborators import VerificationService
from verifier.models import STATUS_FALSE, STATUS_PERFECT


log = logging.getLogger(__name__)


@dataclass
class AddressStatus:
    address: str
    status: str = STATUS_FALSE
    chain_ids: List[str] = field(default_factory=list)
    chain_statuses: Optional[List[Dict[str, str]]] = None

    def as_dict(self) -> Dict[str, object]:
        if self.status == STATUS_FALSE:
            return {"address": self.address, "status": STATUS_FALSE}
        if self.chain_statuses is not None:
            return {"address": self.address, "chainIds": list(self.chain_statuses)}
        return {"address": self.address, "status": self.status, "chainIds": list(self.chain_ids)}


class BatchAddressLookup:
    """Read-only status queries against already stored matches."""

    def __init__(self, verification: VerificationService):
        self.verification = verification

    def lookup(self, addresses: Sequence[str], chain_ids: Sequence[str]) -> Dict[str, AddressStatus]:
        out: Dict[str, AddressStatus] = {}
        for address in addresses:
            entry = AddressStatus(address=address)
            for chain_id in chain_ids:
                try:
                    found = self.verification.find_confirmed_matches(address, chain_id)
                except Exception as e:
                    log.warning("FAIL_LOOKUP address=%s chain=%s err=%s", address, chain_id, e)
                    continue
                if found:
                    entry.status = STATUS_PERFECT
                    entry.chain_ids.append(chain_id)
            out[address] = entry
        return out

    def lookup_all(self, addresses: Sequence[str], chain_ids: Sequence[str]) -> Dict[str, AddressStatus]:
        """Like ``lookup`` but also reports partial matches, with a status per chain."""
        out: Dict[str, AddressStatus] = {}
        for address in addresses:
            entry = AddressStatus(address=address)
            per_chain: List[Dict[str, str]] = []
            for chain_id in chain_ids:
                try:
                    found = self.verification.find_all_matches(address, chain_id)
                except Exception as e:
                    log.warning("FAIL_LOOKUP_ALL address=%s chain=%s err=%s", address, chain_id, e)
                    continue
                if found:
                    per_chain.append({"chainId": chain_id, "status": str(found[0].status)})
                    entry.chain_ids.append(chain_id)
            if per_chain:
                entry.status = per_chain[0]["status"]
                entry.chain_statuses = per_chain
            out[address] = entry
        return out


def check_by_addresses(
    verification: VerificationService, addresses: Sequence[str], chain_ids: Sequence[str]
) -> List[Dict[str, object]]:
    res = BatchAddressLookup(verification).lookup(addresses, chain_ids)
    return [res[a].as_dict() for a in addresses]


def check_all_by_addresses(
    verification: VerificationService, addresses: Sequence[str], chain_ids: Sequence[str]
) -> List[Dict[str, object]]:
    res = BatchAddressLookup(verification).lookup_all(addresses, chain_ids)
    return [res[a].as_dict() for a in addresses]
