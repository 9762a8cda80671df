"""
am-i.exposed - Prevout Enrichment
Self-hosted explorers backed by romanz/electrs return inputs without their
previous output. This module rebuilds them from the parent transactions.
"""
import asyncio
import logging
from collections import OrderedDict
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, List, Optional, Tuple

from amiexposed.config import settings
from amiexposed.core.cancel import AnalysisCancelled, CancellationToken
from amiexposed.core.esplora import ApiErrorCode
from amiexposed.core.models import Transaction, Vout

logger = logging.getLogger("amiexposed.enrich")

GetTransaction = Callable[[str], Awaitable[Transaction]]


@dataclass
class EnrichResult:
    enriched_count: int = 0
    failed_count: int = 0
    skipped_count: int = 0

    @property
    def error_code(self) -> Optional[ApiErrorCode]:
        """Soft failure: some parents could not be fetched, so some inputs stay unresolved."""
        return ApiErrorCode.ENRICHMENT_FAILURE if self.failed_count else None

    def to_dict(self) -> Dict:
        return {
            "enriched_count": self.enriched_count,
            "failed_count": self.failed_count,
            "skipped_count": self.skipped_count,
            "error_code": self.error_code.value if self.error_code else None,
        }


def needs_enrichment(txs: List[Transaction]) -> bool:
    """
    Check the first non-coinbase input only. Backends either populate every
    prevout or none of them.
    """
    for tx in txs:
        for vin in tx.vin:
            if vin.is_coinbase:
                continue
            return vin.prevout is None
    return False


def count_null_prevouts(txs: List[Transaction]) -> int:
    return sum(
        1
        for tx in txs
        for vin in tx.vin
        if not vin.is_coinbase and vin.prevout is None
    )


async def enrich_prevouts(
    txs: List[Transaction],
    get_transaction: GetTransaction,
    token: Optional[CancellationToken] = None,
    max_parents: int = None,
    concurrency: int = None,
) -> EnrichResult:
    """
    Fill in missing prevouts by fetching parent transactions.

    Mutates `txs` in place. Parents are fetched in batches of `concurrency`;
    a failed fetch is counted and its inputs stay unresolved. Parents beyond
    `max_parents` are reported as skipped.
    """
    max_parents = settings.ENRICH_MAX_PARENTS if max_parents is None else max_parents
    concurrency = settings.ENRICH_CONCURRENCY if concurrency is None else concurrency

    # parent txid -> [(tx, vin index, parent output index)]
    targets: "OrderedDict[str, List[Tuple[Transaction, int, int]]]" = OrderedDict()
    for tx in txs:
        for i, vin in enumerate(tx.vin):
            if vin.is_coinbase or vin.prevout is not None:
                continue
            targets.setdefault(vin.txid, []).append((tx, i, vin.vout))

    if not targets:
        return EnrichResult()

    parent_ids = list(targets)
    to_fetch = parent_ids[:max_parents]
    result = EnrichResult(skipped_count=max(0, len(parent_ids) - max_parents))

    parents: Dict[str, Transaction] = {}
    for start in range(0, len(to_fetch), concurrency):
        if token is not None and token.cancelled:
            break
        batch = to_fetch[start:start + concurrency]
        fetched = await asyncio.gather(*(get_transaction(txid) for txid in batch), return_exceptions=True)
        for txid, outcome in zip(batch, fetched):
            if isinstance(outcome, AnalysisCancelled):
                continue
            if isinstance(outcome, BaseException):
                logger.debug(f"Parent {txid} unavailable: {outcome}")
                result.failed_count += 1
            else:
                parents[txid] = outcome

    for parent_id, refs in targets.items():
        parent = parents.get(parent_id)
        if parent is None:
            continue
        for tx, vin_index, vout_index in refs:
            if vout_index >= len(parent.vout):
                continue
            output = parent.vout[vout_index]
            tx.vin[vin_index].prevout = Vout(
                scriptpubkey=output.scriptpubkey,
                scriptpubkey_asm=output.scriptpubkey_asm,
                scriptpubkey_type=output.scriptpubkey_type,
                scriptpubkey_address=output.scriptpubkey_address or "",
                value=output.value,
            )
            result.enriched_count += 1

    logger.info(
        f"Prevout enrichment: {result.enriched_count} enriched, "
        f"{result.failed_count} failed, {result.skipped_count} skipped"
    )
    return result
