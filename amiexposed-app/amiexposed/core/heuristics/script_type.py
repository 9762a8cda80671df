"""
Script Type Mix

Mixed script types make change detection easy; uniform types hide it. Bare
multisig outputs expose every cosigner key.
"""
from typing import List, Optional

from amiexposed.core.models import Finding, Severity, Transaction


def analyze_script_type_mix(tx: Transaction, raw_hex: Optional[str] = None) -> List[Finding]:
    if tx.is_coinbase:
        return []

    findings: List[Finding] = []

    multisig = [o for o in tx.vout if o.scriptpubkey_type == "multisig"]
    if multisig:
        findings.append(Finding(
            id="script-multisig",
            severity=Severity.HIGH,
            title=f"Bare multisig output{'s' if len(multisig) > 1 else ''} detected",
            description=(
                f"This transaction contains {len(multisig)} bare multisig (P2MS) "
                f"output{'s' if len(multisig) > 1 else ''}. Bare multisig exposes all public keys "
                "on-chain, making the signing parties trivial to identify."
            ),
            recommendation="Use P2WSH or Taproot (MuSig2/FROST) multisig instead of bare multisig.",
            score_impact=-8,
            params={"count": len(multisig)},
        ))

    if len(tx.vout) < 2:
        return findings

    input_types = {v.prevout.scriptpubkey_type for v in tx.vin if v.prevout and v.prevout.scriptpubkey_type}
    output_types = {o.scriptpubkey_type for o in tx.vout if o.scriptpubkey_type and o.scriptpubkey_type != "op_return"}
    all_types = sorted(input_types | output_types)

    if len(all_types) == 1:
        findings.append(Finding(
            id="script-uniform",
            severity=Severity.GOOD,
            title="Uniform script types",
            description=(
                "All inputs and outputs use the same script type, so script type mismatch cannot "
                "reveal the change output."
            ),
            recommendation="Continue using wallets that keep consistent address types.",
            score_impact=2,
        ))
        return findings

    if not all_types:
        return findings

    many = len(all_types) >= 3
    findings.append(Finding(
        id="script-mixed",
        severity=Severity.MEDIUM if many else Severity.LOW,
        title=f"{len(all_types)} different script types in transaction",
        description=(
            f"This transaction uses {len(all_types)} different script types ({', '.join(all_types)}). "
            "Mixing script types makes change detection easier and can fingerprint the wallet."
        ),
        recommendation="Use a wallet that keeps the same address format for all outputs.",
        score_impact=-3 if many else -1,
        params={"type_count": len(all_types), "types": ", ".join(all_types)},
    ))
    return findings
