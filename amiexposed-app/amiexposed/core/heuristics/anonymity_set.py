"""
Anonymity Set Analysis

Per-output view of how many outputs share each value. Lighter weight than
CoinJoin detection.
"""
from collections import Counter
from typing import List, Optional

from amiexposed.core.heuristics.base import format_sats
from amiexposed.core.models import Finding, Severity, Transaction


def _set_summary(groups: List[tuple]) -> str:
    grouped = [(value, count) for value, count in groups if count >= 2]
    if not grouped:
        return ""
    parts = ", ".join(f"{count}x {format_sats(value)}" for value, count in grouped[:3])
    suffix = f" and {len(grouped) - 3} more groups" if len(grouped) > 3 else ""
    return f"Equal-value groups: {parts}{suffix}."


def analyze_anonymity_set(tx: Transaction, raw_hex: Optional[str] = None) -> List[Finding]:
    if len(tx.vout) < 2:
        return []

    # Counter keeps first-seen order, so ties resolve to the earliest output
    groups = sorted(Counter(o.value for o in tx.vout).items(), key=lambda item: -item[1])
    max_value, max_count = groups[0]

    if max_count >= 5:
        return [Finding(
            id="anon-set-strong",
            severity=Severity.GOOD,
            title=f"Largest anonymity set: {max_count} outputs",
            description=(
                f"{max_count} outputs share the value {format_sats(max_value)}. An observer cannot "
                f"distinguish which input funded which of these outputs. {_set_summary(groups)}"
            ).strip(),
            recommendation="Strong anonymity sets indicate good privacy.",
            score_impact=5,
            params={"count": max_count, "value": max_value},
        )]

    if max_count >= 2:
        return [Finding(
            id="anon-set-moderate",
            severity=Severity.LOW,
            title=f"Anonymity set: {max_count} equal outputs",
            description=(
                f"{max_count} outputs share the value {format_sats(max_value)}. "
                f"This provides limited ambiguity. {_set_summary(groups)}"
            ).strip(),
            recommendation="For stronger privacy, use CoinJoin to create larger anonymity sets (5+ equal outputs).",
            score_impact=1,
            params={"count": max_count, "value": max_value},
        )]

    return [Finding(
        id="anon-set-none",
        severity=Severity.MEDIUM,
        title="No anonymity set (all outputs unique)",
        description=(
            f"All {len(tx.vout)} outputs have unique values, so each output is trivially "
            "distinguishable."
        ),
        recommendation="Consider using CoinJoin for better privacy.",
        score_impact=-2,
    )]
