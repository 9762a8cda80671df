"""
am-i.exposed - First-Degree Cluster Analysis
Walks common-input ownership over an address's transactions, then follows
detected change one hop to show which other addresses chain analysis would
attribute to the same owner.
"""
import logging
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List, Optional, TypeVar

from amiexposed.config import settings
from amiexposed.core.cancel import CancellationToken, sleep
from amiexposed.core.enrich import enrich_prevouts, needs_enrichment
from amiexposed.core.esplora import ApiError, validate_address
from amiexposed.core.heuristics import analyze_change_detection, analyze_coinjoin
from amiexposed.core.heuristics.base import spendable_outputs
from amiexposed.core.models import Transaction

logger = logging.getLogger("amiexposed.cluster")

T = TypeVar("T")

COINJOIN_FINDINGS = ("h4-whirlpool", "h4-coinjoin")


class Throttle:
    """Minimum interval between sequential calls. The wait is cancellable."""

    def __init__(self, interval: float = None, clock: Callable[[], float] = time.monotonic):
        self.interval = settings.CLUSTER_THROTTLE_SECONDS if interval is None else interval
        self._clock = clock
        self._last: Optional[float] = None

    async def __call__(self, fn: Callable[[], Awaitable[T]], token: Optional[CancellationToken] = None) -> T:
        if token is not None:
            token.raise_if_cancelled()
        if self._last is not None:
            wait = self.interval - (self._clock() - self._last)
            if wait > 0:
                await sleep(wait, token)
        self._last = self._clock()
        return await fn()


@dataclass(frozen=True)
class ClusterProgress:
    phase: str  # "inputs" or "change-follow"
    current: int
    total: int

    def to_dict(self) -> Dict:
        return {"phase": self.phase, "current": self.current, "total": self.total}


@dataclass
class ClusterResult:
    target: str
    addresses: List[str] = field(default_factory=list)
    txs_analyzed: int = 0
    coinjoin_tx_count: int = 0
    change_followed: int = 0
    failed_follows: int = 0

    @property
    def size(self) -> int:
        return len(self.addresses)

    def add(self, address: Optional[str]):
        if address and address not in self.addresses:
            self.addresses.append(address)

    def to_dict(self) -> Dict:
        return {
            "target": self.target,
            "addresses": self.addresses,
            "size": self.size,
            "txs_analyzed": self.txs_analyzed,
            "coinjoin_tx_count": self.coinjoin_tx_count,
            "change_followed": self.change_followed,
            "failed_follows": self.failed_follows,
        }


def is_coinjoin(tx: Transaction) -> bool:
    return any(f.id in COINJOIN_FINDINGS and f.score_impact > 0 for f in analyze_coinjoin(tx))


def spends_from(address: str, tx: Transaction) -> bool:
    return any(v.prevout is not None and v.prevout.scriptpubkey_address == address for v in tx.vin)


def change_address(tx: Transaction, exclude: str) -> Optional[str]:
    """Address of the output change detection singles out, if any."""
    for finding in analyze_change_detection(tx):
        index = finding.params.get("change_index")
        if finding.id != "h2-change-detected" or index is None:
            continue
        address = spendable_outputs(tx)[index].scriptpubkey_address
        if address and address != exclude:
            return address
    return None


async def _with_prevouts(api, txs: List[Transaction], token: Optional[CancellationToken]) -> List[Transaction]:
    if needs_enrichment(txs):
        await enrich_prevouts(txs, lambda parent: api.get_transaction(parent, token=token), token=token)
    return txs


def _absorb_inputs(result: ClusterResult, address: str, tx: Transaction) -> bool:
    """CIOH: when `address` spends in `tx`, every co-input joins the cluster."""
    if is_coinjoin(tx):
        result.coinjoin_tx_count += 1
        return False
    if not spends_from(address, tx):
        return False
    for vin in tx.vin:
        if vin.prevout is not None:
            result.add(vin.prevout.scriptpubkey_address)
    return True


async def build_first_degree_cluster(
    target: str,
    txs: List[Transaction],
    api,
    token: Optional[CancellationToken] = None,
    on_progress: Optional[Callable[[ClusterProgress], None]] = None,
    throttle: Optional[Throttle] = None,
) -> ClusterResult:
    """
    Cluster `target` with its co-input addresses, then follow change one hop.

    Only the most recent CLUSTER_MAX_TXS transactions are walked. CoinJoins
    are counted and skipped. A change address whose history cannot be
    fetched is counted in `failed_follows` and the walk continues.
    """
    throttle = throttle or Throttle()
    result = ClusterResult(target=target, addresses=[target])
    change: List[str] = []

    walked = txs[:settings.CLUSTER_MAX_TXS]
    for i, tx in enumerate(walked):
        if token is not None and token.cancelled:
            break
        if on_progress is not None:
            on_progress(ClusterProgress("inputs", i + 1, len(walked)))
        result.txs_analyzed += 1
        if not _absorb_inputs(result, target, tx):
            continue
        found = change_address(tx, target)
        if found and found not in change:
            change.append(found)

    follows = change[:settings.CLUSTER_MAX_CHANGE_FOLLOWS]
    for i, address in enumerate(follows):
        if token is not None and token.cancelled:
            break
        if on_progress is not None:
            on_progress(ClusterProgress("change-follow", i + 1, len(follows)))
        result.add(address)

        try:
            change_txs = await throttle(lambda: api.get_address_txs(address, token=token), token)
        except ApiError as e:
            logger.warning(f"Cluster walk could not follow change {address}: {e}")
            result.failed_follows += 1
            continue

        change_txs = await _with_prevouts(api, change_txs[:settings.CLUSTER_CHANGE_TXS], token)
        result.change_followed += 1
        for ctx in change_txs:
            result.txs_analyzed += 1
            _absorb_inputs(result, address, ctx)

    logger.info(
        f"Cluster for {target}: {result.size} addresses from {result.txs_analyzed} transactions "
        f"({result.coinjoin_tx_count} CoinJoins skipped)"
    )
    return result


async def analyze_cluster(
    api,
    address: str,
    token: Optional[CancellationToken] = None,
    on_progress: Optional[Callable[[ClusterProgress], None]] = None,
    txs: Optional[List[Transaction]] = None,
    throttle: Optional[Throttle] = None,
) -> ClusterResult:
    """Fetch the address history (unless given) and build its cluster."""
    validate_address(address)
    if txs is None:
        txs = await api.get_address_txs(address, token=token)
        txs = await _with_prevouts(api, txs[:settings.CLUSTER_MAX_TXS], token)
    return await build_first_degree_cluster(address, txs, api, token, on_progress, throttle)
