"""
H4: CoinJoin Detection

Whirlpool (5 equal outputs at a pool denomination), WabiSabi and generic
equal-output CoinJoins. This is the strongest positive signal.
"""
from typing import List, Optional

from amiexposed.core.heuristics.base import detect_equal_outputs, detect_whirlpool, format_btc
from amiexposed.core.models import Finding, Severity, Transaction


def analyze_coinjoin(tx: Transaction, raw_hex: Optional[str] = None) -> List[Finding]:
    if len(tx.vin) < 2 or len(tx.vout) < 2:
        return []

    values = [o.value for o in tx.vout]

    denom = detect_whirlpool(values)
    if denom is not None:
        return [Finding(
            id="h4-whirlpool",
            severity=Severity.GOOD,
            title=f"Whirlpool CoinJoin detected ({format_btc(denom)} pool)",
            description=(
                "This transaction matches the Whirlpool CoinJoin pattern: 5 equal outputs at a standard "
                "denomination. Whirlpool breaks deterministic transaction links."
            ),
            recommendation="Remix for multiple rounds for maximum privacy.",
            score_impact=30,
            params={"denomination": denom},
        )]

    equal = detect_equal_outputs(values)
    if equal is None:
        return []

    count, value = equal
    total = len(values)
    is_wabisabi = len(tx.vin) > 20 and total > 20
    if count >= 10:
        impact = 25
    elif count >= 5:
        impact = 20
    else:
        impact = 15

    if is_wabisabi:
        title = f"WabiSabi CoinJoin: {count} equal outputs across {total} total"
        prefix = (
            f"This transaction has {len(tx.vin)} inputs and {total} outputs, consistent with a "
            "WabiSabi (Wasabi Wallet 2.0) CoinJoin. "
        )
    else:
        title = f"Likely CoinJoin: {count} equal outputs of {format_btc(value)}"
        prefix = ""

    return [Finding(
        id="h4-coinjoin",
        severity=Severity.GOOD,
        title=title,
        description=(
            f"{prefix}{count} of {total} outputs have the same value ({format_btc(value)}). "
            "This pattern breaks the link between inputs and outputs."
        ),
        recommendation=(
            "CoinJoin is a strong privacy technique. Use a reputable coordinator and consider "
            "multiple rounds."
        ),
        score_impact=impact,
        params={"count": count, "denomination": value, "total": total},
    )]
