"""
Dust Output Detection (transaction level)

Outputs under 1000 sats are uneconomical to spend and are the tool of dusting
attacks: spend the dust with other coins and the attacker links them.
"""
from typing import List, Optional

from amiexposed.core.heuristics.base import DUST_THRESHOLD
from amiexposed.core.models import Finding, Remediation, RemediationTool, Severity, Transaction

EXTREME_DUST_THRESHOLD = 600  # below typical minimum relay fee


def analyze_dust_outputs(tx: Transaction, raw_hex: Optional[str] = None) -> List[Finding]:
    dust = [
        o for o in tx.vout
        if 0 < o.value < DUST_THRESHOLD and o.scriptpubkey_type != "op_return"
    ]
    if not dust:
        return []

    extreme = [o for o in dust if o.value < EXTREME_DUST_THRESHOLD]
    total = sum(o.value for o in dust)

    # Classic: 1-in, dust + change. Batch: mostly-dust fan-out.
    is_attack = (
        (len(dust) == 1 and len(tx.vout) == 2 and len(tx.vin) == 1)
        or (len(dust) >= 5 and len(dust) > len(tx.vout) * 0.5)
    )

    if is_attack:
        return [Finding(
            id="dust-attack",
            severity=Severity.HIGH,
            title=f"Possible dust attack ({total} sats)",
            description=(
                f"This transaction sends a tiny amount ({total} sats), a common dusting pattern. "
                "If you received this dust, do NOT spend it with your other UTXOs."
            ),
            recommendation=(
                "Mark this UTXO as 'do not spend' in your wallet. Coin control lets you freeze it."
            ),
            score_impact=-8,
            params={"total_dust_value": total},
            remediation=Remediation(
                steps=[
                    "Freeze this dust UTXO in your wallet's coin control.",
                    "Never include it in a transaction with your other UTXOs.",
                    "If you must clean it up, send it through a CoinJoin or to a separate wallet.",
                ],
                tools=[RemediationTool("Sparrow Wallet (Coin Control)", "https://sparrowwallet.com")],
                urgency="immediate",
            ),
        )]

    plural = "s" if len(dust) > 1 else ""
    return [Finding(
        id="dust-outputs",
        severity=Severity.MEDIUM if extreme else Severity.LOW,
        title=f"{len(dust)} dust output{plural} detected (< {DUST_THRESHOLD} sats)",
        description=(
            f"This transaction contains {len(dust)} output{plural} below {DUST_THRESHOLD} sats "
            f"(total: {total} sats). Tiny outputs may be dust for tracking purposes."
        ),
        recommendation="Use coin control to avoid mixing dust UTXOs with your main UTXOs.",
        score_impact=-5 if extreme else -3,
        params={
            "dust_count": len(dust),
            "threshold": DUST_THRESHOLD,
            "total_dust_value": total,
            "extreme_count": len(extreme),
        },
    )]
