"""Spending patterns of an address: volume, cold storage, counterparties."""
from typing import List, Set

from amiexposed.core.models import AddressInfo, Finding, Severity, Transaction, Utxo


def analyze_spending_pattern(address: AddressInfo, utxos: List[Utxo], txs: List[Transaction]) -> List[Finding]:
    findings: List[Finding] = []
    stats = address.chain_stats

    if stats.tx_count >= 100:
        findings.append(Finding(
            id="spending-high-volume",
            severity=Severity.MEDIUM,
            title=f"High transaction volume ({stats.tx_count:,} transactions)",
            description=(
                f"This address has been involved in {stats.tx_count:,} transactions. High-volume "
                "addresses are more likely to be monitored and associated with services."
            ),
            recommendation="Use HD wallets to spread activity across many addresses.",
            score_impact=-3,
        ))

    if stats.spent_txo_count == 0 and stats.funded_txo_count > 0:
        findings.append(Finding(
            id="spending-never-spent",
            severity=Severity.GOOD,
            title="Address has never spent (cold storage)",
            description=(
                "This address has received funds but never spent them, so no spending patterns "
                "can be analyzed."
            ),
            recommendation="When you do spend from this address, use coin control and consider CoinJoin.",
            score_impact=2,
        ))

    if txs and stats.spent_txo_count > 0:
        counterparties: Set[str] = {
            out.scriptpubkey_address
            for tx in txs
            for out in tx.vout
            if out.scriptpubkey_address and out.scriptpubkey_address != address.address
        }
        if len(counterparties) >= 20:
            findings.append(Finding(
                id="spending-many-counterparties",
                severity=Severity.MEDIUM,
                title=f"Transacted with {len(counterparties)}+ counterparties",
                description=(
                    f"This address has sent or received funds involving {len(counterparties)}+ different "
                    "addresses, a wide exposure surface for clustering."
                ),
                recommendation="Use separate addresses for different transaction partners.",
                score_impact=-2,
                params={"count": len(counterparties)},
            ))

    return findings
