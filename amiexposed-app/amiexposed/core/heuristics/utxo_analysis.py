"""
H9: UTXO Set Analysis

Dust UTXOs (possible dusting attacks) and large UTXO sets that will link
together via CIOH when spent.
"""
from typing import List

from amiexposed.core.heuristics.base import DUST_THRESHOLD
from amiexposed.core.models import AddressInfo, Finding, Severity, Transaction, Utxo


def analyze_utxos(address: AddressInfo, utxos: List[Utxo], txs: List[Transaction]) -> List[Finding]:
    findings: List[Finding] = []
    if not utxos:
        return findings

    dust = [u for u in utxos if u.value < DUST_THRESHOLD]
    if dust:
        many = len(dust) >= 3
        total = sum(u.value for u in dust)
        findings.append(Finding(
            id="h9-dust-detected",
            severity=Severity.HIGH if many else Severity.MEDIUM,
            title=f"{len(dust)} potential dust UTXO{'s' if len(dust) > 1 else ''} detected",
            description=(
                f"Found {len(dust)} UTXO{'s' if len(dust) > 1 else ''} below {DUST_THRESHOLD} sats "
                f"(total: {total} sats). Spending dust alongside other UTXOs links them together."
            ),
            recommendation="Do NOT spend these dust UTXOs. Freeze them with your wallet's coin control.",
            score_impact=-8 if many else -5,
            params={"dust_count": len(dust), "total_dust": total, "threshold": DUST_THRESHOLD},
        ))

    if len(utxos) >= 20:
        findings.append(Finding(
            id="h9-many-utxos",
            severity=Severity.MEDIUM,
            title=f"Large UTXO set ({len(utxos)} UTXOs)",
            description=(
                f"This address holds {len(utxos)} UTXOs. Spending several in one transaction links "
                "them together via CIOH."
            ),
            recommendation="Use coin control to select specific UTXOs when spending.",
            score_impact=-3,
            params={"utxo_count": len(utxos)},
        ))
    elif len(utxos) >= 5:
        findings.append(Finding(
            id="h9-moderate-utxos",
            severity=Severity.LOW,
            title=f"{len(utxos)} UTXOs on this address",
            description=(
                f"This address has {len(utxos)} UTXOs. Combining them in a single transaction "
                "reveals common ownership."
            ),
            recommendation="Avoid auto-selection that combines all UTXOs.",
            score_impact=-2,
            params={"utxo_count": len(utxos)},
        ))

    if not findings:
        findings.append(Finding(
            id="h9-clean",
            severity=Severity.GOOD,
            title="Clean UTXO set",
            description="No dust UTXOs detected and the UTXO count is manageable.",
            recommendation="Continue practicing good UTXO management.",
            score_impact=2,
        ))

    return findings
