"""
am-i.exposed - Pre-Send Destination Check
Risk verdict for an address the user is about to send funds to.
"""
import asyncio
import logging
from typing import List, Optional

from amiexposed.core.cancel import CancellationToken
from amiexposed.core.client import ResilientApiClient, best_effort
from amiexposed.core.esplora import ApiError, validate_address
from amiexposed.core.models import (
    AddressInfo,
    Finding,
    PreSendResult,
    Remediation,
    RiskLevel,
    Severity,
    Transaction,
    Utxo,
)
from amiexposed.core.orchestrator import ProgressCallback, address_run
from amiexposed.core.sanctions import OfacResult, SanctionsScreener, get_default_screener

logger = logging.getLogger("amiexposed.presend")

SUMMARIES = {
    RiskLevel.CRITICAL: "Do NOT send to this address. It poses severe privacy or legal risks.",
    RiskLevel.HIGH: "Ask the recipient for a fresh, unused address before sending.",
    RiskLevel.MEDIUM: "Consider asking the recipient for a fresh address.",
    RiskLevel.LOW: "This destination looks safe to send to.",
}


def sanctioned_finding(result: OfacResult) -> Finding:
    return Finding(
        id="ofac-sanctioned",
        severity=Severity.CRITICAL,
        title="Address is on the OFAC sanctions list",
        description=(
            "This address appears on the U.S. Treasury OFAC Specially Designated Nationals list. "
            "Sending funds to it may violate sanctions law."
        ),
        recommendation="Do not send funds to this address.",
        score_impact=-100,
        params={"matched": ", ".join(result.matched_addresses), "last_updated": result.last_updated},
        remediation=Remediation(
            steps=["Cancel the payment.", "Verify the address with the recipient through another channel."],
            urgency="immediate",
        ),
    )


def risk_from_findings(findings: List[Finding], sanctioned: bool = False) -> RiskLevel:
    if sanctioned:
        return RiskLevel.CRITICAL
    severities = {f.severity for f in findings}
    if Severity.CRITICAL in severities or Severity.HIGH in severities:
        return RiskLevel.HIGH
    if Severity.MEDIUM in severities:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def _sanctioned_result(result: OfacResult, address_info: Optional[AddressInfo] = None) -> PreSendResult:
    return PreSendResult(
        risk_level=RiskLevel.CRITICAL,
        summary=SUMMARIES[RiskLevel.CRITICAL],
        findings=[sanctioned_finding(result)],
        tx_count=address_info.total_tx_count if address_info else 0,
        times_received=address_info.total_funded if address_info else 0,
        total_received=address_info.total_received if address_info else 0,
    )


async def analyze_destination(
    address_info: AddressInfo,
    utxos: List[Utxo],
    txs: List[Transaction],
    on_progress: Optional[ProgressCallback] = None,
    screener: SanctionsScreener = None,
) -> PreSendResult:
    """Screen the address, then run the address heuristics with progress."""
    screener = screener or get_default_screener()
    ofac = screener.check([address_info.address])

    findings = await address_run(address_info, utxos, txs).run(on_progress)
    if ofac.sanctioned:
        findings = [sanctioned_finding(ofac)] + findings

    risk = risk_from_findings(findings, ofac.sanctioned)
    return PreSendResult(
        risk_level=risk,
        summary=SUMMARIES[risk],
        findings=findings,
        tx_count=address_info.total_tx_count,
        times_received=address_info.total_funded,
        total_received=address_info.total_received,
    )


class PreSendRiskAssessor:
    """Screens locally before touching the network; falls back to the screen if the network fails."""

    def __init__(self, api: ResilientApiClient, screener: SanctionsScreener = None):
        self.api = api
        self.screener = screener or get_default_screener()

    async def assess(
        self,
        address: str,
        on_progress: Optional[ProgressCallback] = None,
        token: Optional[CancellationToken] = None,
    ) -> PreSendResult:
        validate_address(address)

        ofac = self.screener.check([address])
        if ofac.sanctioned:
            logger.warning(f"Destination {address} is sanctioned")
            return _sanctioned_result(ofac)

        try:
            address_info, utxos, txs = await asyncio.gather(
                self.api.get_address(address, token=token),
                best_effort(self.api.get_address_utxos(address, token=token), []),
                best_effort(self.api.get_address_txs(address, token=token), []),
            )
        except ApiError:
            # The list may have been reloaded while we were waiting
            ofac = self.screener.check([address])
            if ofac.sanctioned:
                return _sanctioned_result(ofac)
            raise

        if token is not None:
            token.raise_if_cancelled()
        return await analyze_destination(address_info, utxos, txs, on_progress, self.screener)
