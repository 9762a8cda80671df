"""PayJoin (P2EP) detection. The receiver contributes an input, breaking CIOH."""
from typing import List, Optional

from amiexposed.core.heuristics.base import looks_like_payjoin
from amiexposed.core.models import Finding, Severity, Transaction


def analyze_payjoin(tx: Transaction, raw_hex: Optional[str] = None) -> List[Finding]:
    if not looks_like_payjoin(tx):
        return []
    return [Finding(
        id="payjoin-detected",
        severity=Severity.GOOD,
        title="Possible PayJoin (P2EP) transaction",
        description=(
            "This transaction shows signs of a PayJoin: 2 inputs from different addresses with an "
            "output matching an input address. PayJoin deliberately breaks the common-input-ownership "
            "heuristic by having the recipient contribute an input."
        ),
        recommendation=(
            "PayJoin looks like a normal transaction but poisons chain analysis databases."
        ),
        score_impact=3,
    )]
