"""
am-i.exposed - Data Model
Findings, heuristic steps, scoring results and the explorer entities they are
computed from.
"""
from dataclasses import asdict, dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Optional


class Severity(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    GOOD = "good"

    @property
    def rank(self) -> int:
        return SEVERITY_ORDER.index(self)


SEVERITY_ORDER = [Severity.CRITICAL, Severity.HIGH, Severity.MEDIUM, Severity.LOW, Severity.GOOD]


class Grade(str, Enum):
    A_PLUS = "A+"
    B = "B"
    C = "C"
    D = "D"
    F = "F"


class AnalysisMode(str, Enum):
    TX = "tx"
    ADDRESS = "address"


class RiskLevel(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


# ============== Findings ==============

@dataclass(frozen=True)
class RemediationTool:
    name: str
    url: str


@dataclass(frozen=True)
class Remediation:
    """Concrete steps a user can take to fix a finding."""
    steps: List[str]
    tools: List[RemediationTool] = field(default_factory=list)
    urgency: str = "when-convenient"  # immediate, soon, when-convenient


@dataclass(frozen=True)
class Finding:
    """A single explained privacy observation. Immutable once produced."""
    id: str
    severity: Severity
    title: str
    description: str
    recommendation: str
    score_impact: int
    params: Optional[Dict[str, Any]] = None
    remediation: Optional[Remediation] = None

    def to_dict(self) -> Dict:
        data = {
            "id": self.id,
            "severity": self.severity.value,
            "title": self.title,
            "description": self.description,
            "recommendation": self.recommendation,
            "score_impact": self.score_impact,
        }
        if self.params is not None:
            data["params"] = dict(self.params)
        if self.remediation is not None:
            data["remediation"] = asdict(self.remediation)
        return data


# ============== Heuristic Steps ==============

class StepStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    DONE = "done"


_ALLOWED_TRANSITIONS = {
    StepStatus.PENDING: {StepStatus.RUNNING},
    StepStatus.RUNNING: {StepStatus.DONE},
    StepStatus.DONE: set(),
}


class InvalidStepTransition(ValueError):
    """Raised when a heuristic step is moved backwards or skips a state."""
    def __init__(self, step_id: str, current: StepStatus, target: StepStatus):
        self.step_id = step_id
        self.current = current
        self.target = target
        super().__init__(f"Step {step_id}: illegal transition {current.value} -> {target.value}")


@dataclass(frozen=True)
class HeuristicStep:
    id: str
    label: str
    status: StepStatus = StepStatus.PENDING
    impact: Optional[int] = None

    def to_dict(self) -> Dict:
        return {
            "id": self.id,
            "label": self.label,
            "status": self.status.value,
            "impact": self.impact,
        }


def transition(step: HeuristicStep, to: StepStatus, impact: Optional[int] = None) -> HeuristicStep:
    """
    Move a step to its next status.

    Only pending -> running -> done is legal. The impact is recorded exactly
    once, on the transition to done.
    """
    if to not in _ALLOWED_TRANSITIONS[step.status]:
        raise InvalidStepTransition(step.id, step.status, to)
    if to is StepStatus.DONE:
        if impact is None:
            raise ValueError(f"Step {step.id}: impact is required when completing")
        return replace(step, status=to, impact=impact)
    if impact is not None:
        raise ValueError(f"Step {step.id}: impact can only be set when completing")
    return replace(step, status=to)


# ============== Results ==============

@dataclass
class ScoringResult:
    score: int
    grade: Grade
    findings: List[Finding]

    def to_dict(self) -> Dict:
        return {
            "score": self.score,
            "grade": self.grade.value,
            "findings": [f.to_dict() for f in self.findings],
        }


@dataclass
class TxAnalysisResult:
    """Per-transaction breakdown entry for an address scan."""
    txid: str
    tx: "Transaction"
    findings: List[Finding]
    score: int
    grade: Grade
    role: str  # sender, receiver, both

    def to_dict(self) -> Dict:
        return {
            "txid": self.txid,
            "score": self.score,
            "grade": self.grade.value,
            "role": self.role,
            "findings": [f.to_dict() for f in self.findings],
        }


@dataclass
class PreSendResult:
    risk_level: RiskLevel
    summary: str
    findings: List[Finding]
    tx_count: int
    times_received: int
    total_received: int

    def to_dict(self) -> Dict:
        return {
            "risk_level": self.risk_level.value,
            "summary": self.summary,
            "findings": [f.to_dict() for f in self.findings],
            "tx_count": self.tx_count,
            "times_received": self.times_received,
            "total_received": self.total_received,
        }


# ============== Explorer Entities ==============
# Field names follow the Esplora JSON shape. Missing fields are tolerated.

@dataclass
class Vout:
    scriptpubkey: str = ""
    scriptpubkey_asm: str = ""
    scriptpubkey_type: str = ""
    scriptpubkey_address: Optional[str] = None
    value: int = 0

    @classmethod
    def from_dict(cls, data: Dict) -> "Vout":
        return cls(
            scriptpubkey=data.get("scriptpubkey") or "",
            scriptpubkey_asm=data.get("scriptpubkey_asm") or "",
            scriptpubkey_type=data.get("scriptpubkey_type") or "",
            scriptpubkey_address=data.get("scriptpubkey_address") or None,
            value=int(data.get("value") or 0),
        )

    def to_dict(self) -> Dict:
        return asdict(self)


@dataclass
class Vin:
    txid: str = ""
    vout: int = 0
    prevout: Optional[Vout] = None
    scriptsig: str = ""
    witness: List[str] = field(default_factory=list)
    is_coinbase: bool = False
    sequence: int = 0xFFFFFFFF

    @classmethod
    def from_dict(cls, data: Dict) -> "Vin":
        prevout = data.get("prevout")
        return cls(
            txid=data.get("txid") or "",
            vout=int(data.get("vout") or 0),
            prevout=Vout.from_dict(prevout) if prevout else None,
            scriptsig=data.get("scriptsig") or "",
            witness=list(data.get("witness") or []),
            is_coinbase=bool(data.get("is_coinbase", False)),
            sequence=int(data["sequence"]) if data.get("sequence") is not None else 0xFFFFFFFF,
        )

    def to_dict(self) -> Dict:
        return {
            "txid": self.txid,
            "vout": self.vout,
            "prevout": self.prevout.to_dict() if self.prevout else None,
            "scriptsig": self.scriptsig,
            "witness": list(self.witness),
            "is_coinbase": self.is_coinbase,
            "sequence": self.sequence,
        }


@dataclass
class TxStatus:
    confirmed: bool = False
    block_height: Optional[int] = None
    block_hash: Optional[str] = None
    block_time: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Optional[Dict]) -> "TxStatus":
        data = data or {}
        return cls(
            confirmed=bool(data.get("confirmed", False)),
            block_height=data.get("block_height"),
            block_hash=data.get("block_hash"),
            block_time=data.get("block_time"),
        )


@dataclass
class Transaction:
    txid: str
    version: int = 2
    locktime: int = 0
    size: int = 0
    weight: int = 0
    fee: int = 0
    vin: List[Vin] = field(default_factory=list)
    vout: List[Vout] = field(default_factory=list)
    status: TxStatus = field(default_factory=TxStatus)

    @property
    def is_coinbase(self) -> bool:
        return any(v.is_coinbase for v in self.vin)

    @classmethod
    def from_dict(cls, data: Dict) -> "Transaction":
        return cls(
            txid=data.get("txid") or "",
            version=int(data.get("version") or 0),
            locktime=int(data.get("locktime") or 0),
            size=int(data.get("size") or 0),
            weight=int(data.get("weight") or 0),
            fee=int(data.get("fee") or 0),
            vin=[Vin.from_dict(v) for v in data.get("vin") or []],
            vout=[Vout.from_dict(v) for v in data.get("vout") or []],
            status=TxStatus.from_dict(data.get("status")),
        )

    def to_dict(self) -> Dict:
        return {
            "txid": self.txid,
            "version": self.version,
            "locktime": self.locktime,
            "size": self.size,
            "weight": self.weight,
            "fee": self.fee,
            "vin": [v.to_dict() for v in self.vin],
            "vout": [v.to_dict() for v in self.vout],
            "status": asdict(self.status),
        }


@dataclass
class AddressStats:
    funded_txo_count: int = 0
    funded_txo_sum: int = 0
    spent_txo_count: int = 0
    spent_txo_sum: int = 0
    tx_count: int = 0

    @classmethod
    def from_dict(cls, data: Optional[Dict]) -> "AddressStats":
        data = data or {}
        return cls(
            funded_txo_count=int(data.get("funded_txo_count") or 0),
            funded_txo_sum=int(data.get("funded_txo_sum") or 0),
            spent_txo_count=int(data.get("spent_txo_count") or 0),
            spent_txo_sum=int(data.get("spent_txo_sum") or 0),
            tx_count=int(data.get("tx_count") or 0),
        )


@dataclass
class AddressInfo:
    address: str
    chain_stats: AddressStats = field(default_factory=AddressStats)
    mempool_stats: AddressStats = field(default_factory=AddressStats)

    @property
    def total_funded(self) -> int:
        return self.chain_stats.funded_txo_count + self.mempool_stats.funded_txo_count

    @property
    def total_tx_count(self) -> int:
        return self.chain_stats.tx_count + self.mempool_stats.tx_count

    @property
    def total_received(self) -> int:
        return self.chain_stats.funded_txo_sum + self.mempool_stats.funded_txo_sum

    @classmethod
    def from_dict(cls, data: Dict) -> "AddressInfo":
        return cls(
            address=data.get("address") or "",
            chain_stats=AddressStats.from_dict(data.get("chain_stats")),
            mempool_stats=AddressStats.from_dict(data.get("mempool_stats")),
        )

    def to_dict(self) -> Dict:
        return asdict(self)


@dataclass
class Utxo:
    txid: str
    vout: int
    value: int
    status: TxStatus = field(default_factory=TxStatus)

    @classmethod
    def from_dict(cls, data: Dict) -> "Utxo":
        return cls(
            txid=data.get("txid") or "",
            vout=int(data.get("vout") or 0),
            value=int(data.get("value") or 0),
            status=TxStatus.from_dict(data.get("status")),
        )

    def to_dict(self) -> Dict:
        return asdict(self)
