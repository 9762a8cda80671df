"""
H1: Round Amount Detection

Change outputs are rarely round. When some outputs are round and others are
not, the round ones are almost certainly payments.
"""
from typing import List, Optional

from amiexposed.core.heuristics.base import SATS_PER_BTC, looks_like_coinjoin
from amiexposed.core.models import Finding, Severity, Transaction

ROUND_BTC_VALUES = {
    round(btc * SATS_PER_BTC)
    for btc in (0.001, 0.002, 0.005, 0.01, 0.02, 0.05, 0.1, 0.2, 0.25, 0.5, 1, 2, 5, 10)
}
ROUND_SAT_MULTIPLES = [1_000, 10_000, 100_000, 1_000_000, 10_000_000]


def is_round_amount(sats: int) -> bool:
    if sats in ROUND_BTC_VALUES:
        return True
    return any(sats >= m and sats % m == 0 for m in ROUND_SAT_MULTIPLES)


def analyze_round_amounts(tx: Transaction, raw_hex: Optional[str] = None) -> List[Finding]:
    outputs = tx.vout
    if len(outputs) < 2:
        return []

    round_count = sum(1 for out in outputs if is_round_amount(out.value))

    # All-round outputs look like a batch or CoinJoin, not a payment/change split
    if round_count == 0 or round_count == len(outputs):
        return []

    title = f"{round_count} round amount output{'s' if round_count > 1 else ''} detected"

    if looks_like_coinjoin(tx):
        return [Finding(
            id="h1-round-amount",
            severity=Severity.LOW,
            title=f"{title} (CoinJoin denomination)",
            description=(
                "Equal round outputs are expected in CoinJoin transactions. "
                "They are the denomination, not a privacy leak."
            ),
            recommendation="No action needed for CoinJoin denominations.",
            score_impact=0,
            params={"count": round_count},
        )]

    impact = min(round_count * 5, 15)
    return [Finding(
        id="h1-round-amount",
        severity=Severity.MEDIUM if impact >= 10 else Severity.LOW,
        title=title,
        description=(
            f"{round_count} of {len(outputs)} outputs are round numbers. "
            "Round payment amounts make it trivial to distinguish payments from change, "
            "revealing the exact amount sent and which output is change."
        ),
        recommendation=(
            "Avoid sending round BTC amounts. Many wallets let you send exact sat amounts. "
            "Even adding a few random sats helps obscure the payment amount."
        ),
        score_impact=-impact,
        params={"count": round_count},
    )]
