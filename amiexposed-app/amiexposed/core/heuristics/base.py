"""
am-i.exposed - Heuristic Helpers
Shared constants and structural checks used by more than one heuristic.

Heuristics never read each other's findings. When one needs context such as
"this is a CoinJoin" it recomputes it from the transaction with the helpers
below.
"""
from collections import Counter
from typing import Callable, List, Optional, Set, Tuple

from amiexposed.core.models import AddressInfo, Finding, Transaction, Utxo, Vout

SATS_PER_BTC = 100_000_000
DUST_THRESHOLD = 1000  # sats

# Whirlpool pool denominations (sats)
WHIRLPOOL_DENOMS = [50_000, 100_000, 1_000_000, 5_000_000, 50_000_000]

TxHeuristic = Callable[[Transaction, Optional[str]], List[Finding]]
AddressHeuristic = Callable[[AddressInfo, List[Utxo], List[Transaction]], List[Finding]]


def format_btc(sats: int) -> str:
    text = f"{sats / SATS_PER_BTC:.8f}".rstrip("0").rstrip(".")
    return f"{text} BTC"


def format_sats(sats: int) -> str:
    if sats >= SATS_PER_BTC:
        return format_btc(sats)
    return f"{sats:,} sats"


def input_addresses(tx: Transaction) -> Set[str]:
    """Distinct addresses spent by non-coinbase inputs with a known prevout."""
    return {
        vin.prevout.scriptpubkey_address
        for vin in tx.vin
        if not vin.is_coinbase and vin.prevout is not None and vin.prevout.scriptpubkey_address
    }


def spendable_outputs(tx: Transaction) -> List[Vout]:
    return [o for o in tx.vout if o.scriptpubkey_type != "op_return" and o.scriptpubkey_address]


def detect_whirlpool(values: List[int]) -> Optional[int]:
    """Denomination when exactly 5 of 5-8 outputs sit at a Whirlpool pool size."""
    if not 5 <= len(values) <= 8:
        return None
    for denom in WHIRLPOOL_DENOMS:
        if values.count(denom) == 5:
            return denom
    return None


def detect_equal_outputs(values: List[int]) -> Optional[Tuple[int, int]]:
    """(count, value) of the most common output value when it occurs 3+ times."""
    if not values:
        return None
    value, count = Counter(values).most_common(1)[0]
    if count < 3:
        return None
    return count, value


def looks_like_coinjoin(tx: Transaction) -> bool:
    if len(tx.vin) < 2 or len(tx.vout) < 2:
        return False
    values = [o.value for o in tx.vout]
    return detect_whirlpool(values) is not None or detect_equal_outputs(values) is not None


def looks_like_payjoin(tx: Transaction) -> bool:
    """Two inputs from two addresses, two outputs, one paying back an input address."""
    if len(tx.vin) != 2 or len(tx.vout) != 2:
        return False
    inputs = {
        vin.prevout.scriptpubkey_address
        for vin in tx.vin
        if vin.prevout is not None and vin.prevout.scriptpubkey_address
    }
    if len(inputs) != 2:
        return False
    return any(o.scriptpubkey_address in inputs for o in tx.vout if o.scriptpubkey_address)
