"""Timing analysis: mempool visibility and nLockTime leaks."""
from datetime import datetime, timezone
from typing import List, Optional

from amiexposed.core.models import Finding, Severity, Transaction

LOCKTIME_THRESHOLD = 500_000_000
STALE_LOCKTIME_BLOCKS = 100


def analyze_timing(tx: Transaction, raw_hex: Optional[str] = None) -> List[Finding]:
    findings: List[Finding] = []
    status = tx.status

    if not status.confirmed:
        findings.append(Finding(
            id="timing-unconfirmed",
            severity=Severity.LOW,
            title="Transaction is unconfirmed (mempool visible)",
            description=(
                "This transaction has not been confirmed yet. Anyone monitoring the P2P network could "
                "have seen when it was broadcast, potentially correlating your IP address with it."
            ),
            recommendation="Broadcast sensitive transactions over Tor (Sparrow and Wasabi do this by default).",
            score_impact=-2,
        ))

    if tx.locktime <= 0:
        return findings

    if tx.locktime >= LOCKTIME_THRESHOLD:
        date = datetime.fromtimestamp(tx.locktime, tz=timezone.utc).strftime("%Y-%m-%d")
        findings.append(Finding(
            id="timing-locktime-timestamp",
            severity=Severity.MEDIUM,
            title=f"nLockTime set to timestamp ({date})",
            description=(
                f"This transaction uses nLockTime as a UNIX timestamp ({tx.locktime}), which is unusual "
                "and can reveal when the transaction was created."
            ),
            recommendation="Use wallets that set nLockTime to the current block height rather than a timestamp.",
            score_impact=-3,
            params={"date": date, "locktime": tx.locktime},
        ))
    elif status.confirmed and status.block_height:
        diff = status.block_height - tx.locktime
        if diff > STALE_LOCKTIME_BLOCKS:
            findings.append(Finding(
                id="timing-stale-locktime",
                severity=Severity.LOW,
                title=f"Transaction held for ~{diff} blocks before confirmation",
                description=(
                    f"The nLockTime ({tx.locktime}) is {diff} blocks before the confirmation height "
                    f"({status.block_height}). The transaction was created well before it was broadcast."
                ),
                recommendation="Broadcast transactions promptly after creation.",
                score_impact=-1,
                params={"diff": diff, "locktime": tx.locktime, "block_height": status.block_height},
            ))

    return findings
