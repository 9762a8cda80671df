"""
am-i.exposed - Heuristic Orchestrator
Runs the declared heuristic sets against fetched data and reports progress as
a stream of step events.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import AsyncIterator, Callable, Dict, List, Optional, Union

from amiexposed.config import settings
from amiexposed.core import heuristics as h
from amiexposed.core.heuristics.base import AddressHeuristic, TxHeuristic
from amiexposed.core.models import (
    AddressInfo,
    AnalysisMode,
    Finding,
    HeuristicStep,
    ScoringResult,
    StepStatus,
    Transaction,
    TxAnalysisResult,
    Utxo,
    transition,
)
from amiexposed.core.scoring import calculate_score

logger = logging.getLogger("amiexposed.orchestrator")

ProgressCallback = Callable[[str, Optional[int]], None]


@dataclass(frozen=True)
class Heuristic:
    id: str
    label: str
    fn: Union[TxHeuristic, AddressHeuristic]


TX_HEURISTICS = [
    Heuristic("h1", "Round amounts", h.analyze_round_amounts),
    Heuristic("h2", "Change detection", h.analyze_change_detection),
    Heuristic("h3", "Common input ownership", h.analyze_cioh),
    Heuristic("h4", "CoinJoin detection", h.analyze_coinjoin),
    Heuristic("h5", "Transaction entropy", h.analyze_entropy),
    Heuristic("h6", "Fee fingerprinting", h.analyze_fees),
    Heuristic("h7", "OP_RETURN metadata", h.analyze_op_return),
    Heuristic("h11", "Wallet fingerprinting", h.analyze_wallet_fingerprint),
    Heuristic("anon", "Anonymity sets", h.analyze_anonymity_set),
    Heuristic("pj", "PayJoin detection", h.analyze_payjoin),
    Heuristic("timing", "Timing analysis", h.analyze_timing),
    Heuristic("script", "Script type analysis", h.analyze_script_type_mix),
    Heuristic("dust", "Dust output detection", h.analyze_dust_outputs),
    Heuristic("coinbase", "Coinbase detection", h.analyze_coinbase),
]

ADDRESS_HEURISTICS = [
    Heuristic("h8", "Address reuse", h.analyze_address_reuse),
    Heuristic("h9", "UTXO analysis", h.analyze_utxos),
    Heuristic("h10", "Address type", h.analyze_address_type),
    Heuristic("spending", "Spending patterns", h.analyze_spending_pattern),
    Heuristic("history", "History coverage", h.analyze_history_coverage),
]


def get_tx_heuristic_steps() -> List[HeuristicStep]:
    return [HeuristicStep(x.id, x.label) for x in TX_HEURISTICS]


def get_address_heuristic_steps() -> List[HeuristicStep]:
    return [HeuristicStep(x.id, x.label) for x in ADDRESS_HEURISTICS]


@dataclass(frozen=True)
class StepEvent:
    """A step started (impact None) or finished (impact set)."""
    step_id: str
    status: StepStatus
    impact: Optional[int] = None

    def to_dict(self) -> Dict:
        return {"step_id": self.step_id, "status": self.status.value, "impact": self.impact}


class HeuristicRun:
    """
    One pass over a heuristic set.

    `events()` evaluates each heuristic exactly once, in declared order,
    yielding a RUNNING then a DONE event per step. Findings accumulate in
    `findings` unmodified. A run cannot be replayed.
    """

    def __init__(self, heuristics: List[Heuristic], args: tuple, step_delay: float = None):
        self._heuristics = list(heuristics)
        self._args = args
        self._step_delay = settings.HEURISTIC_STEP_DELAY if step_delay is None else step_delay
        self.steps: Dict[str, HeuristicStep] = {x.id: HeuristicStep(x.id, x.label) for x in self._heuristics}
        self.findings: List[Finding] = []

    async def events(self) -> AsyncIterator[StepEvent]:
        for heuristic in self._heuristics:
            self.steps[heuristic.id] = transition(self.steps[heuristic.id], StepStatus.RUNNING)
            yield StepEvent(heuristic.id, StepStatus.RUNNING)

            # Let consumers render the running state before the step completes
            await asyncio.sleep(self._step_delay)

            found = heuristic.fn(*self._args)
            impact = sum(f.score_impact for f in found)
            self.findings.extend(found)

            self.steps[heuristic.id] = transition(self.steps[heuristic.id], StepStatus.DONE, impact)
            yield StepEvent(heuristic.id, StepStatus.DONE, impact)

    async def run(self, on_progress: Optional[ProgressCallback] = None) -> List[Finding]:
        """Drain the event stream, forwarding each event to `on_progress(step_id, impact)`."""
        async for event in self.events():
            if on_progress is not None:
                on_progress(event.step_id, event.impact)
        return self.findings


def tx_run(tx: Transaction, raw_hex: Optional[str] = None) -> HeuristicRun:
    return HeuristicRun(TX_HEURISTICS, (tx, raw_hex))


def address_run(address: AddressInfo, utxos: List[Utxo], txs: List[Transaction]) -> HeuristicRun:
    return HeuristicRun(ADDRESS_HEURISTICS, (address, utxos, txs))


async def analyze_transaction(
    tx: Transaction,
    raw_hex: Optional[str] = None,
    on_progress: Optional[ProgressCallback] = None,
) -> ScoringResult:
    findings = await tx_run(tx, raw_hex).run(on_progress)
    result = calculate_score(findings, AnalysisMode.TX)
    logger.info(f"Transaction {tx.txid}: score {result.score} ({result.grade.value}), {len(findings)} findings")
    return result


async def analyze_address(
    address: AddressInfo,
    utxos: List[Utxo],
    txs: List[Transaction],
    on_progress: Optional[ProgressCallback] = None,
) -> ScoringResult:
    findings = await address_run(address, utxos, txs).run(on_progress)
    result = calculate_score(findings, AnalysisMode.ADDRESS)
    logger.info(f"Address {address.address}: score {result.score} ({result.grade.value}), {len(findings)} findings")
    return result


def _role(address: str, tx: Transaction) -> str:
    sent = any(v.prevout is not None and v.prevout.scriptpubkey_address == address for v in tx.vin)
    received = any(o.scriptpubkey_address == address for o in tx.vout)
    if sent and received:
        return "both"
    return "sender" if sent else "receiver"


def analyze_transactions_for_address(address: str, txs: List[Transaction]) -> List[TxAnalysisResult]:
    """Score every transaction of an address scan on its own, without progress reporting."""
    results = []
    for tx in txs:
        findings: List[Finding] = []
        for heuristic in TX_HEURISTICS:
            findings.extend(heuristic.fn(tx, None))
        scored = calculate_score(findings, AnalysisMode.TX)
        results.append(TxAnalysisResult(
            txid=tx.txid,
            tx=tx,
            findings=scored.findings,
            score=scored.score,
            grade=scored.grade,
            role=_role(address, tx),
        ))
    return results
