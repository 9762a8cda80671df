"""
H2: Change Detection

Looks for the change output of a simple two-output payment using two
sub-heuristics: the change usually matches the input address type, and the
payment is usually the round one.
"""
from collections import Counter
from typing import List, Optional

from amiexposed.core.detect_input import get_address_type
from amiexposed.core.heuristics.base import looks_like_coinjoin, spendable_outputs
from amiexposed.core.models import Finding, Remediation, RemediationTool, Severity, Transaction, Vout


def _is_round(sats: int) -> bool:
    return sats % 10_000 == 0


def _address_type_signal(tx: Transaction, outputs: List[Vout], votes: Counter, signals: List[str]):
    input_types = {
        get_address_type(vin.prevout.scriptpubkey_address)
        for vin in tx.vin
        if vin.prevout is not None and vin.prevout.scriptpubkey_address
    }
    if len(input_types) != 1:
        return
    input_type = next(iter(input_types))
    t0 = get_address_type(outputs[0].scriptpubkey_address)
    t1 = get_address_type(outputs[1].scriptpubkey_address)
    if t0 == input_type and t1 != input_type:
        votes[0] += 1
        signals.append("change matches input address type")
    elif t1 == input_type and t0 != input_type:
        votes[1] += 1
        signals.append("change matches input address type")


def _round_amount_signal(outputs: List[Vout], votes: Counter, signals: List[str]):
    round0 = _is_round(outputs[0].value)
    round1 = _is_round(outputs[1].value)
    if round0 and not round1:
        votes[1] += 1
        signals.append("non-round output is likely change")
    elif round1 and not round0:
        votes[0] += 1
        signals.append("non-round output is likely change")


def analyze_change_detection(tx: Transaction, raw_hex: Optional[str] = None) -> List[Finding]:
    outputs = spendable_outputs(tx)
    if len(outputs) != 2 or tx.is_coinbase:
        return []

    votes: Counter = Counter()
    signals: List[str] = []
    _address_type_signal(tx, outputs, votes, signals)
    _round_amount_signal(outputs, votes, signals)

    if not signals:
        return []

    agreeing = max(votes[0], votes[1])
    confidence = "medium" if agreeing >= 2 else "low"
    title = f"Change output likely identifiable ({confidence} confidence)"
    params = {"signal_count": len(signals), "confidence": confidence}
    if votes[0] != votes[1]:
        # Index into the spendable outputs
        params["change_index"] = 0 if votes[0] > votes[1] else 1

    if looks_like_coinjoin(tx):
        return [Finding(
            id="h2-change-detected",
            severity=Severity.LOW,
            title=f"{title} (CoinJoin - unreliable)",
            description="Change heuristics are unreliable on CoinJoin transactions.",
            recommendation="No action needed.",
            score_impact=0,
            params=params,
        )]

    if agreeing >= 2:
        extra = "Multiple signals agree, making change identification reliable. "
    elif len(signals) >= 2:
        extra = "However, sub-heuristics disagree on which output is change, reducing confidence. "
    else:
        extra = ""

    return [Finding(
        id="h2-change-detected",
        severity=Severity.MEDIUM if confidence == "medium" else Severity.LOW,
        title=title,
        description=(
            f"{len(signals)} sub-heuristic{'s' if len(signals) > 1 else ''} point to a likely change output: "
            f"{'; '.join(signals)}. {extra}"
            "When the change output is known, the exact payment amount and recipient are revealed."
        ),
        recommendation=(
            "Use wallets with change output randomization. Avoid round payment amounts. "
            "Consider using the same address type for all outputs (Taproot makes this easier)."
        ),
        score_impact=-10 if confidence == "medium" else -5,
        params=params,
        remediation=Remediation(
            steps=[
                "Avoid sending round BTC amounts; use exact amounts so both outputs look similar.",
                "Use a Taproot (bc1p) wallet so all outputs share one script type.",
                "Use coin control to spend the change output in isolation.",
                "Consider PayJoin for your next payment.",
            ],
            tools=[
                RemediationTool("Sparrow Wallet", "https://sparrowwallet.com"),
                RemediationTool("BTCPay Server (PayJoin)", "https://btcpayserver.org"),
            ],
            urgency="when-convenient",
        ),
    )]
