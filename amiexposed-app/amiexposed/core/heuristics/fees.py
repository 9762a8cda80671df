"""H6: Fee fingerprinting (exact fee rates and RBF signaling)."""
import math
from typing import List, Optional

from amiexposed.core.models import Finding, Severity, Transaction

RBF_MAX_SEQUENCE = 0xFFFFFFFE


def analyze_fees(tx: Transaction, raw_hex: Optional[str] = None) -> List[Finding]:
    findings: List[Finding] = []
    if tx.fee == 0 or tx.weight == 0:
        return findings

    vsize = math.ceil(tx.weight / 4)
    fee_rate = tx.fee / vsize
    rounded = round(fee_rate)

    # 1-5 sat/vB is the crowd during quiet mempools
    if abs(fee_rate - rounded) < 0.05 and rounded > 5:
        findings.append(Finding(
            id="h6-round-fee-rate",
            severity=Severity.LOW,
            title=f"Exact fee rate: {rounded} sat/vB",
            description=(
                f"This transaction uses an exact integer fee rate of {rounded} sat/vB. "
                "Some wallets use round fee rates rather than precise estimates, which can help "
                "identify the wallet used."
            ),
            recommendation="This is a minor signal. Most modern wallets use precise fee estimation.",
            score_impact=-2,
            params={"fee_rate": rounded},
        ))

    if any(not v.is_coinbase and v.sequence < RBF_MAX_SEQUENCE for v in tx.vin):
        findings.append(Finding(
            id="h6-rbf-signaled",
            severity=Severity.LOW,
            title="RBF (Replace-by-Fee) signaled",
            description=(
                "This transaction signals RBF replaceability (nSequence < 0xfffffffe). "
                "RBF is standard across modern wallets and is no longer a meaningful fingerprint."
            ),
            recommendation="RBF is standard practice; this reveals very little about the sender.",
            score_impact=0,
        ))

    return findings
