"""
H3: Common Input Ownership Heuristic (CIOH)

All inputs of a transaction are assumed to share an owner. CoinJoin and
PayJoin deliberately break that assumption.
"""
from typing import List, Optional

from amiexposed.core.heuristics.base import input_addresses, looks_like_coinjoin, looks_like_payjoin
from amiexposed.core.models import Finding, Remediation, RemediationTool, Severity, Transaction


def _cioh_impact(count: int) -> int:
    if count >= 50:
        return 45
    if count >= 20:
        return 35
    if count >= 10:
        return 25
    if count >= 5:
        return 15
    return count * 3


def analyze_cioh(tx: Transaction, raw_hex: Optional[str] = None) -> List[Finding]:
    count = len(input_addresses(tx))

    if count <= 1:
        return [Finding(
            id="h3-single-input",
            severity=Severity.GOOD,
            title="Single input address",
            description=(
                "This transaction uses a single input address, so the common-input-ownership "
                "heuristic does not apply. No address clustering is possible from inputs alone."
            ),
            recommendation="Keep using single-input transactions when possible.",
            score_impact=0,
        )]

    title = f"{count} input addresses linked by CIOH"

    if looks_like_coinjoin(tx):
        return [Finding(
            id="h3-cioh",
            severity=Severity.LOW,
            title=f"{title} (CoinJoin - expected)",
            description=(
                "Multiple input addresses are linked, but this is expected in a CoinJoin transaction. "
                "Each input typically belongs to a different participant, so CIOH does not apply."
            ),
            recommendation="No action needed.",
            score_impact=0,
            params={"count": count},
        )]

    if looks_like_payjoin(tx):
        return [Finding(
            id="h3-cioh",
            severity=Severity.LOW,
            title=f"{title} (PayJoin - deliberate)",
            description=(
                "Multiple input addresses are linked, but this is expected in a PayJoin transaction. "
                "The receiver contributes an input to break chain analysis."
            ),
            recommendation="No action needed.",
            score_impact=0,
            params={"count": count},
        )]

    impact = _cioh_impact(count)
    if impact >= 25:
        severity = Severity.CRITICAL
    elif impact >= 12:
        severity = Severity.HIGH
    else:
        severity = Severity.MEDIUM

    return [Finding(
        id="h3-cioh",
        severity=severity,
        title=title,
        description=(
            f"This transaction combines inputs from {count} different addresses. "
            f"Chain analysis firms will assume these {count} addresses belong to the same entity."
        ),
        recommendation=(
            "Use coin control to avoid combining UTXOs from different addresses. If consolidation "
            "is necessary, use CoinJoin first to break the link between source addresses."
        ),
        score_impact=-impact,
        params={"count": count},
        remediation=Remediation(
            steps=[
                "Use coin control to select specific UTXOs for each transaction.",
                "Avoid multi-input transactions unless the inputs have been through a CoinJoin.",
                "If you need to consolidate UTXOs, run them through a CoinJoin first.",
            ],
            tools=[
                RemediationTool("Sparrow Wallet (Coin Control)", "https://sparrowwallet.com"),
                RemediationTool("Wasabi Wallet (CoinJoin)", "https://wasabiwallet.io"),
            ],
            urgency="soon" if count >= 5 else "when-convenient",
        ),
    )]
