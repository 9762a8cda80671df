"""History coverage: tells the user when transaction-level checks saw only part of the history."""
from typing import List

from amiexposed.core.models import AddressInfo, Finding, Severity, Transaction, Utxo


def analyze_history_coverage(address: AddressInfo, utxos: List[Utxo], txs: List[Transaction]) -> List[Finding]:
    total = address.total_tx_count
    if total == 0 or len(txs) >= total:
        return []

    if not txs:
        return [Finding(
            id="partial-history-unavailable",
            severity=Severity.LOW,
            title="Transaction history unavailable",
            description=(
                f"This address has {total} transactions but none could be retrieved. Findings are "
                "based on address statistics and UTXOs only."
            ),
            recommendation="Retry later or point the scanner at your own explorer instance.",
            score_impact=0,
            params={"total": total},
        )]

    return [Finding(
        id="partial-history-partial",
        severity=Severity.LOW,
        title=f"Analyzed {len(txs)} of {total} transactions",
        description=(
            f"Only the most recent {len(txs)} of {total} transactions were retrieved. Older activity "
            "was not analyzed."
        ),
        recommendation="Findings may understate exposure for long-lived addresses.",
        score_impact=0,
        params={"fetched": len(txs), "total": total},
    )]
