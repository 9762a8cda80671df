"""
H11: Wallet Fingerprinting

Transaction metadata that narrows down the wallet software:
- nLockTime: Bitcoin Core sets it to the current height, most others use 0
- nVersion: 1 (legacy) vs 2 (BIP68)
- nSequence: 0xfffffffd (RBF), 0xfffffffe (anti-fee-sniping), 0xffffffff (legacy)
- BIP69 lexicographic input/output ordering (Electrum, Samourai)
- Low-R signatures (Bitcoin Core >= 0.17 grinds for 32-byte R)
"""
import re
from typing import List, Optional

from amiexposed.core.heuristics.base import detect_whirlpool
from amiexposed.core.models import Finding, Severity, Transaction

LOCKTIME_THRESHOLD = 500_000_000

_DER_RE = re.compile(r"30[0-9a-f]{2}02([0-9a-f]{2})", re.IGNORECASE)


def is_bip69(tx: Transaction) -> bool:
    """Inputs sorted by (txid, vout), outputs by (value, scriptpubkey)."""
    inputs = [(v.txid, v.vout) for v in tx.vin]
    outputs = [(o.value, o.scriptpubkey) for o in tx.vout]
    return inputs == sorted(inputs) and outputs == sorted(outputs)


def has_low_r_signatures(raw_hex: str, input_count: int) -> bool:
    """Every DER signature in the raw transaction has a 32-byte R."""
    if input_count == 0:
        return False
    r_lengths = [int(m.group(1), 16) for m in _DER_RE.finditer(raw_hex)]
    if not r_lengths or len(r_lengths) < input_count:
        return False
    return all(r == 0x20 for r in r_lengths)


def analyze_wallet_fingerprint(tx: Transaction, raw_hex: Optional[str] = None) -> List[Finding]:
    signals: List[str] = []
    wallet: Optional[str] = None

    if tx.locktime == 0:
        signals.append("nLockTime=0 (non-Core wallet pattern)")
    elif tx.locktime < LOCKTIME_THRESHOLD:
        signals.append("nLockTime set to block height (Bitcoin Core pattern)")
        wallet = "Bitcoin Core"

    if tx.version == 1:
        signals.append("nVersion=1 (legacy, pre-BIP68)")
    elif tx.version == 2:
        signals.append("nVersion=2 (BIP68 relative locktime support)")

    sequences = [v.sequence for v in tx.vin if not v.is_coinbase]
    if sequences:
        if all(s == 0xFFFFFFFD for s in sequences):
            signals.append("nSequence=0xfffffffd (RBF enabled, Core/Electrum pattern)")
        elif all(s == 0xFFFFFFFE for s in sequences):
            signals.append("nSequence=0xfffffffe (RBF disabled, anti-fee-sniping)")
        elif all(s == 0xFFFFFFFF for s in sequences):
            signals.append("nSequence=0xffffffff (legacy, no locktime/RBF)")

    if (len(tx.vin) > 1 or len(tx.vout) > 1) and is_bip69(tx):
        if detect_whirlpool([o.value for o in tx.vout]) is not None:
            signals.append("BIP69 ordering + Whirlpool pattern (Samourai/Sparrow)")
            wallet = "Samourai/Sparrow"
        elif len(tx.vin) > 20 and len(tx.vout) > 20:
            signals.append("BIP69 ordering + large CoinJoin pattern (Wasabi/WabiSabi)")
            wallet = "Wasabi Wallet"
        else:
            signals.append("BIP69 lexicographic ordering (Electrum/Samourai)")
            wallet = wallet or "Electrum"

    if raw_hex and has_low_r_signatures(raw_hex, len(tx.vin)):
        signals.append("Low-R signatures (Bitcoin Core >= 0.17)")
        wallet = "Bitcoin Core"

    if not signals:
        return []

    if wallet:
        severity, impact = Severity.MEDIUM, -6
        title = f"Wallet fingerprint: likely {wallet}"
    else:
        severity, impact = Severity.LOW, (-4 if len(signals) >= 3 else -2)
        title = f"{len(signals)} wallet fingerprinting signal{'s' if len(signals) > 1 else ''} detected"

    return [Finding(
        id="h11-wallet-fingerprint",
        severity=severity,
        title=title,
        description=(
            f"Transaction metadata reveals wallet characteristics: {'; '.join(signals)}. "
            + (f"These signals are consistent with {wallet}. " if wallet else "")
            + "Wallet identification helps analysts narrow down the software used."
        ),
        recommendation=(
            "Taproot key-path spends all look identical. Using popular wallets with large user "
            "bases reduces the identifying power of fingerprints."
        ),
        score_impact=impact,
        params={"wallet": wallet, "signals": list(signals)},
    )]
