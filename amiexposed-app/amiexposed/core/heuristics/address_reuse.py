"""
H8: Address Reuse Detection

The single biggest privacy failure in Bitcoin: every receive to a reused
address is trivially linkable to every other. Severity scales with the number
of funded outputs (chain + mempool).
"""
from typing import List

from amiexposed.core.models import AddressInfo, Finding, Remediation, RemediationTool, Severity, Transaction, Utxo

# (minimum funded outputs, impact), highest tier first
REUSE_TIERS = [
    (100, -50),
    (50, -45),
    (10, -35),
    (5, -30),
    (3, -25),
    (2, -20),
]


def reuse_impact(funded: int) -> int:
    for minimum, impact in REUSE_TIERS:
        if funded >= minimum:
            return impact
    return 0


def analyze_address_reuse(address: AddressInfo, utxos: List[Utxo], txs: List[Transaction]) -> List[Finding]:
    funded = address.total_funded
    tx_count = address.total_tx_count

    if funded <= 1:
        return [Finding(
            id="h8-no-reuse",
            severity=Severity.GOOD,
            title="No address reuse detected",
            description="This address has only received funds once. Single-use addresses are a core Bitcoin privacy practice.",
            recommendation="Keep using fresh addresses for every receive.",
            score_impact=0,
        )]

    # A batched withdrawal can pay one address several outputs in one transaction
    if tx_count <= 1:
        return [Finding(
            id="h8-batch-receive",
            severity=Severity.LOW,
            title="Multiple UTXOs from a single transaction (batch payment)",
            description=(
                f"This address received {funded} outputs in a single transaction, likely a batched payment. "
                "Only one transaction is involved, so this is not address reuse."
            ),
            recommendation="Use a fresh address for the next receive.",
            score_impact=0,
            params={"total_funded": funded},
        )]

    impact = reuse_impact(funded)
    return [Finding(
        id="h8-address-reuse",
        severity=Severity.HIGH if funded == 2 else Severity.CRITICAL,
        title=f"Address reused across {funded} receives",
        description=(
            f"This address has received funds {funded} times across {tx_count} transactions. "
            "Every transaction to and from this address is trivially linkable by chain analysis."
        ),
        recommendation=(
            "Use a wallet that generates a new address for every receive (HD wallets). "
            "Never share the same address twice."
        ),
        score_impact=impact,
        params={"total_funded": funded, "tx_count": tx_count},
        remediation=Remediation(
            steps=[
                "Stop using this address for future receives.",
                "Generate a fresh receive address in your wallet.",
                "Move remaining funds through a CoinJoin to break the link to your history.",
            ],
            tools=[
                RemediationTool("Sparrow Wallet", "https://sparrowwallet.com"),
                RemediationTool("Wasabi Wallet", "https://wasabiwallet.io"),
            ],
            urgency="immediate" if funded >= 10 else "soon",
        ),
    )]
