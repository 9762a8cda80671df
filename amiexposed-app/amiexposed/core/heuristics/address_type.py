"""H10: Address type. Taproot has the largest uniform anonymity set; legacy the worst."""
from typing import List

from amiexposed.core.detect_input import get_address_type
from amiexposed.core.models import AddressInfo, Finding, Severity, Transaction, Utxo

_FINDINGS = {
    "p2tr": Finding(
        id="h10-p2tr",
        severity=Severity.GOOD,
        title="Taproot address (P2TR)",
        description=(
            "Taproot addresses provide the best on-chain privacy. All spend conditions look "
            "identical on-chain."
        ),
        recommendation="You are using the most private address type available.",
        score_impact=5,
    ),
    "p2wpkh": Finding(
        id="h10-p2wpkh",
        severity=Severity.LOW,
        title="Native SegWit address (P2WPKH)",
        description=(
            "P2WPKH has a large anonymity set, but Taproot offers stronger privacy because all "
            "spend types look identical."
        ),
        recommendation="Consider upgrading to a Taproot-capable wallet.",
        score_impact=0,
    ),
    "p2wsh": Finding(
        id="h10-p2wsh",
        severity=Severity.LOW,
        title="Native SegWit script address (P2WSH)",
        description="P2WSH reveals its script (often multisig) when spent.",
        recommendation="Taproot multisig (MuSig2) looks like single-sig on-chain.",
        score_impact=0,
    ),
    "p2sh": Finding(
        id="h10-p2sh",
        severity=Severity.MEDIUM,
        title="Pay-to-Script-Hash address (P2SH)",
        description=(
            "P2SH addresses reveal their script type on spend and have a smaller anonymity set "
            "than native SegWit or Taproot."
        ),
        recommendation="Upgrade to a native SegWit (bc1q) or Taproot (bc1p) wallet.",
        score_impact=-3,
    ),
    "p2pkh": Finding(
        id="h10-p2pkh",
        severity=Severity.MEDIUM,
        title="Legacy address (P2PKH)",
        description=(
            "Legacy P2PKH addresses reveal the public key when spent and cost more in fees. "
            "Modern privacy tools primarily use newer address types."
        ),
        recommendation="Upgrade to a native SegWit (bc1q) or Taproot (bc1p) wallet.",
        score_impact=-5,
    ),
}


def analyze_address_type(address: AddressInfo, utxos: List[Utxo], txs: List[Transaction]) -> List[Finding]:
    finding = _FINDINGS.get(get_address_type(address.address))
    return [finding] if finding else []
