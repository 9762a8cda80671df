"""
am-i.exposed - Input Detection
Normalizes user input and classifies it as a txid, an address or invalid.
"""
import re
from enum import Enum
from typing import Optional
from urllib.parse import urlparse

from amiexposed.core.networks import BitcoinNetwork

MAX_INPUT_LENGTH = 512

# C0/C1 controls, zero-width characters, bidi overrides/isolates, BOM
_INVISIBLE_RANGES = [
    (0x00, 0x1F),
    (0x7F, 0x9F),
    (0x200B, 0x200F),
    (0x202A, 0x202E),
    (0x2060, 0x2069),
    (0xFEFF, 0xFEFF),
]
_INVISIBLE_RE = re.compile(
    "[" + "".join(f"{re.escape(chr(lo))}-{re.escape(chr(hi))}" for lo, hi in _INVISIBLE_RANGES) + "]"
)

_URL_TX_RE = re.compile(r"/tx/([a-fA-F0-9]{64})")
_URL_ADDRESS_RE = re.compile(r"/address/([a-zA-Z0-9]+)")

TXID_RE = re.compile(r"^[a-fA-F0-9]{64}$")

_BECH32 = "[qpzry9x8gf2tvdw0s3jn54khce6mua7l]"
_BASE58 = "[1-9A-HJ-NP-Za-km-z]"


def _address_patterns(hrp: str, p2pkh: str, p2sh: str):
    return [
        re.compile(rf"^{hrp}1p{_BECH32}{{58}}$"),             # taproot
        re.compile(rf"^{hrp}1q(?:{_BECH32}{{38}}|{_BECH32}{{58}})$"),  # v0 pubkey-hash / script-hash
        re.compile(rf"^{p2pkh}{_BASE58}{{25,34}}$"),
        re.compile(rf"^{p2sh}{_BASE58}{{25,34}}$"),
    ]


MAINNET_PATTERNS = _address_patterns("bc", "1", "3")
TESTNET_PATTERNS = _address_patterns("tb", "[mn]", "2")


class InputType(str, Enum):
    TXID = "txid"
    ADDRESS = "address"
    INVALID = "invalid"


def _extract_from_url(text: str) -> Optional[str]:
    """Pull a txid or address out of an explorer URL."""
    try:
        url = urlparse(text)
    except ValueError:
        return None
    if url.scheme not in ("http", "https") or not url.netloc:
        return None

    match = _URL_TX_RE.search(url.path)
    if match:
        return match.group(1)
    match = _URL_ADDRESS_RE.search(url.path)
    if match:
        return match.group(1)
    return None


def clean_input(raw: str) -> str:
    """Strip invisible characters, trim, truncate and unwrap explorer URLs."""
    text = _INVISIBLE_RE.sub("", raw or "").strip()[:MAX_INPUT_LENGTH]
    return _extract_from_url(text) or text


def _is_address(text: str, network: BitcoinNetwork) -> bool:
    patterns = TESTNET_PATTERNS if network.is_test else MAINNET_PATTERNS
    if text[:3].lower() in ("bc1", "tb1"):
        # Bech32 is case-insensitive but must not mix case
        if text != text.lower() and text != text.upper():
            return False
        text = text.lower()
    return any(p.match(text) for p in patterns)


def detect_input_type(text: str, network: BitcoinNetwork = BitcoinNetwork.MAINNET) -> InputType:
    """Classify input. Every string maps to exactly one InputType."""
    value = clean_input(text)
    if TXID_RE.match(value):
        return InputType.TXID
    if _is_address(value, network):
        return InputType.ADDRESS
    return InputType.INVALID


def get_address_type(address: str) -> str:
    """Script type implied by an address prefix: p2tr, p2wpkh, p2wsh, p2sh, p2pkh or unknown."""
    addr = address.lower() if address[:3].lower() in ("bc1", "tb1") else address
    if addr.startswith(("bc1p", "tb1p")):
        return "p2tr"
    if addr.startswith(("bc1q", "tb1q")):
        return "p2wsh" if len(addr) > 50 else "p2wpkh"
    if addr.startswith(("3", "2")):
        return "p2sh"
    if addr.startswith(("1", "m", "n")):
        return "p2pkh"
    return "unknown"
