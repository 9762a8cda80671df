"""
am-i.exposed - Sanctions Screening
Local, network-free membership check against the OFAC SDN address list.
"""
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set

from amiexposed.config import settings
from amiexposed.core.models import Transaction

logger = logging.getLogger("amiexposed.sanctions")

_BECH32_PREFIXES = ("bc1", "tb1")


def normalize_address(address: str) -> str:
    """Bech32 is case-insensitive, base58 is not."""
    if address.lower().startswith(_BECH32_PREFIXES):
        return address.lower()
    return address


@dataclass
class OfacResult:
    checked: bool
    sanctioned: bool
    matched_addresses: List[str] = field(default_factory=list)
    last_updated: Optional[str] = None

    def to_dict(self) -> Dict:
        return {
            "checked": self.checked,
            "sanctioned": self.sanctioned,
            "matched_addresses": self.matched_addresses,
            "last_updated": self.last_updated,
        }


class SanctionsScreener:
    """
    Holds the denylist in memory.

    Built either from a JSON file (`{"lastUpdated": ..., "addresses": [...]}`)
    or from an explicit address collection.
    """

    def __init__(self, path: Path = None, addresses: Iterable[str] = None, last_updated: str = None):
        self.path = Path(path) if path is not None else None
        self._addresses: Set[str] = set()
        self.last_updated = last_updated
        if addresses is not None:
            self._addresses = {normalize_address(a) for a in addresses}
        else:
            self.reload()

    def __len__(self) -> int:
        return len(self._addresses)

    def reload(self):
        """Re-read the denylist file."""
        path = self.path or settings.OFAC_LIST_PATH
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        self._addresses = {normalize_address(a) for a in data.get("addresses") or []}
        self.last_updated = data.get("lastUpdated")
        logger.info(f"Loaded {len(self._addresses)} sanctioned addresses from {path}")

    def check(self, addresses: Iterable[str]) -> OfacResult:
        matched = [a for a in addresses if a and normalize_address(a) in self._addresses]
        return OfacResult(
            checked=True,
            sanctioned=bool(matched),
            matched_addresses=matched,
            last_updated=self.last_updated,
        )


_default_screener: Optional[SanctionsScreener] = None


def get_default_screener() -> SanctionsScreener:
    global _default_screener
    if _default_screener is None:
        _default_screener = SanctionsScreener()
    return _default_screener


def check_ofac(addresses: Iterable[str]) -> OfacResult:
    return get_default_screener().check(addresses)


def extract_tx_addresses(tx: Transaction) -> List[str]:
    """Input and output addresses of a transaction, deduplicated, in order of appearance."""
    seen: Dict[str, None] = {}
    for vin in tx.vin:
        if vin.prevout is not None and vin.prevout.scriptpubkey_address:
            seen.setdefault(vin.prevout.scriptpubkey_address, None)
    for vout in tx.vout:
        if vout.scriptpubkey_address:
            seen.setdefault(vout.scriptpubkey_address, None)
    return list(seen)
