"""
H7: OP_RETURN Detection

OP_RETURN outputs embed data in the chain forever. Known protocol markers
are called out and cost more than anonymous data.
"""
import re
from typing import List, Optional

from amiexposed.core.models import Finding, Severity, Transaction

PROTOCOL_PREFIXES = [
    ("6f6d6e69", "Omni Layer"),              # "omni"
    ("4f545301", "OpenTimestamps"),          # "OTS\x01"
    ("434e545250525459", "Counterparty"),    # "CNTRPRTY"
    ("56424b", "VeriBlock"),                 # "VBK"
]

_PRINTABLE_RE = re.compile(r"^[\x20-\x7e\n\r\t]+$")


def extract_op_return_data(scriptpubkey: str) -> str:
    """Hex payload after OP_RETURN and its push opcode."""
    if not scriptpubkey.startswith("6a") or len(scriptpubkey) <= 2:
        return ""
    try:
        push = int(scriptpubkey[2:4], 16)
    except ValueError:
        return ""
    if push <= 0x4B:
        offset = 4
    elif push == 0x4C:  # OP_PUSHDATA1
        offset = 6
    elif push == 0x4D:  # OP_PUSHDATA2
        offset = 8
    else:
        offset = 2
    return scriptpubkey[offset:]


def decode_text(data_hex: str) -> Optional[str]:
    if len(data_hex) < 2:
        return None
    try:
        text = bytes.fromhex(data_hex).decode("latin-1")
    except ValueError:
        return None
    return text if _PRINTABLE_RE.match(text) else None


def detect_protocol(scriptpubkey: str, data_hex: str) -> Optional[str]:
    # Runes: OP_RETURN OP_13
    if scriptpubkey.startswith("6a5d"):
        return "Runes"
    for prefix, name in PROTOCOL_PREFIXES:
        if data_hex.startswith(prefix):
            return name
    return None


def analyze_op_return(tx: Transaction, raw_hex: Optional[str] = None) -> List[Finding]:
    outputs = [o for o in tx.vout if o.scriptpubkey_type == "op_return"]
    findings: List[Finding] = []

    for idx, out in enumerate(outputs):
        script = out.scriptpubkey.lower()
        data_hex = extract_op_return_data(script)
        protocol = detect_protocol(script, data_hex)
        text = decode_text(data_hex)

        description = (
            "This transaction embeds data permanently in the blockchain via OP_RETURN. "
            "This data is publicly visible forever."
        )
        if protocol:
            description += f" Detected protocol: {protocol}."
        if text:
            shown = text if len(text) <= 100 else text[:100] + "..."
            description += f' Decoded text: "{shown}".'

        findings.append(Finding(
            id=f"h7-op-return-{idx}" if len(outputs) > 1 else "h7-op-return",
            severity=Severity.MEDIUM if protocol else Severity.LOW,
            title=f"OP_RETURN: {protocol} data embedded" if protocol else "OP_RETURN data embedded in transaction",
            description=description,
            recommendation=(
                "OP_RETURN data is permanent and public. Avoid transactions that embed unnecessary "
                "metadata if privacy is a concern."
            ),
            score_impact=-8 if protocol else -5,
            params={"protocol": protocol} if protocol else None,
        ))

    return findings
