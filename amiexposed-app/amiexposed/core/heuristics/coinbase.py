"""Coinbase (block reward) detection. Informational only."""
from typing import List, Optional

from amiexposed.core.models import Finding, Severity, Transaction


def analyze_coinbase(tx: Transaction, raw_hex: Optional[str] = None) -> List[Finding]:
    if len(tx.vin) != 1 or not tx.vin[0].is_coinbase:
        return []
    return [Finding(
        id="coinbase-transaction",
        severity=Severity.LOW,
        title="Coinbase transaction (block reward)",
        description=(
            "This coinbase transaction creates new coins as a block reward. Mining pool payout "
            "addresses are routinely labeled, so the origin of these funds is publicly attributable."
        ),
        recommendation="No action needed. Consider CoinJoin before spending mined coins.",
        score_impact=0,
    )]
