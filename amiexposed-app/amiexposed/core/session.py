"""
am-i.exposed - Analysis Session
Single-flight analysis service: owns the in-flight cancellation token, the
progress state and the staged fetch pipeline.
"""
import asyncio
import logging
import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

from amiexposed.core.cancel import AnalysisCancelled, CancellationToken
from amiexposed.core.client import ResilientApiClient, best_effort, create_api_client
from amiexposed.core.detect_input import InputType, clean_input, detect_input_type
from amiexposed.core.enrich import EnrichResult, enrich_prevouts, needs_enrichment
from amiexposed.core.esplora import ApiError, ApiErrorCode
from amiexposed.core.models import (
    AddressInfo,
    HeuristicStep,
    PreSendResult,
    ScoringResult,
    StepStatus,
    Transaction,
    TxAnalysisResult,
    transition,
)
from amiexposed.core.networks import BitcoinNetwork
from amiexposed.core.orchestrator import (
    analyze_address,
    analyze_transaction,
    analyze_transactions_for_address,
    get_address_heuristic_steps,
    get_tx_heuristic_steps,
)
from amiexposed.core.presend import PreSendRiskAssessor
from amiexposed.core.sanctions import SanctionsScreener

logger = logging.getLogger("amiexposed.session")


class AnalysisPhase(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    ANALYZING = "analyzing"
    COMPLETE = "complete"
    ERROR = "error"


ERROR_MESSAGES = {
    ApiErrorCode.INVALID_INPUT: "Invalid Bitcoin address or transaction ID.",
    ApiErrorCode.NOT_FOUND: (
        "Not found. Check that the address or transaction ID is correct and exists on the selected network."
    ),
    ApiErrorCode.RATE_LIMITED: "Rate limited by the block explorer. Please wait a moment and try again.",
    ApiErrorCode.NETWORK_ERROR: "Network error. Check your internet connection or try again later.",
    ApiErrorCode.API_UNAVAILABLE: "The API is temporarily unavailable. Please try again later.",
}
UNEXPECTED_ERROR = "An unexpected error occurred."
TXID_NOT_ALLOWED = "Pre-send check only works with addresses, not transaction IDs."
INVALID_ADDRESS = "Invalid Bitcoin address."


@dataclass
class AnalysisState:
    phase: AnalysisPhase = AnalysisPhase.IDLE
    query: Optional[str] = None
    input_type: Optional[InputType] = None
    steps: List[HeuristicStep] = field(default_factory=list)
    result: Optional[ScoringResult] = None
    tx_data: Optional[Transaction] = None
    address_data: Optional[AddressInfo] = None
    address_txs: Optional[List[Transaction]] = None
    tx_breakdown: Optional[List[TxAnalysisResult]] = None
    pre_send_result: Optional[PreSendResult] = None
    enrichment: Optional[EnrichResult] = None
    error: Optional[str] = None
    error_code: Optional[ApiErrorCode] = None
    duration_ms: Optional[int] = None

    def to_dict(self) -> Dict:
        return {
            "phase": self.phase.value,
            "query": self.query,
            "input_type": self.input_type.value if self.input_type else None,
            "steps": [s.to_dict() for s in self.steps],
            "result": self.result.to_dict() if self.result else None,
            "tx_data": self.tx_data.to_dict() if self.tx_data else None,
            "address_data": self.address_data.to_dict() if self.address_data else None,
            "address_txs": [t.to_dict() for t in self.address_txs] if self.address_txs else None,
            "tx_breakdown": [t.to_dict() for t in self.tx_breakdown] if self.tx_breakdown else None,
            "pre_send_result": self.pre_send_result.to_dict() if self.pre_send_result else None,
            "enrichment": self.enrichment.to_dict() if self.enrichment else None,
            "error": self.error,
            "error_code": self.error_code.value if self.error_code else None,
            "duration_ms": self.duration_ms,
        }


StateListener = Callable[[AnalysisState], None]
StepListener = Callable[[HeuristicStep], None]


class AnalysisService:
    """
    Runs one analysis at a time.

    Starting an analysis cancels the previous one. Every state write checks
    that it still belongs to the current run, so a superseded run can never
    overwrite a newer one. A cancelled run produces no error state and its
    flow returns None.
    """

    def __init__(
        self,
        network: BitcoinNetwork = BitcoinNetwork.MAINNET,
        api: ResilientApiClient = None,
        screener: SanctionsScreener = None,
        on_state: Optional[StateListener] = None,
        on_step: Optional[StepListener] = None,
    ):
        self.network = network
        self._api = api
        self._owns_api = api is None
        self.screener = screener
        self.on_state = on_state
        self.on_step = on_step
        self.state = AnalysisState()
        self._generation = 0
        self._token: Optional[CancellationToken] = None

    @property
    def api(self) -> ResilientApiClient:
        if self._api is None:
            self._api = create_api_client(self.network)
        return self._api

    # ============== Lifecycle ==============

    def _begin(self) -> Tuple[int, CancellationToken]:
        if self._token is not None:
            self._token.cancel()
        self._generation += 1
        self._token = CancellationToken()
        return self._generation, self._token

    def cancel(self):
        """Abandon the in-flight analysis, if any. State is left as it was."""
        if self._token is not None:
            self._token.cancel()
            self._token = None
        self._generation += 1

    def reset(self):
        self.cancel()
        self._set_state(self._generation, AnalysisState())

    async def aclose(self):
        self.cancel()
        if self._owns_api and self._api is not None:
            await self._api.aclose()
            self._api = None

    # ============== State ==============

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation

    def _set_state(self, generation: int, state: AnalysisState) -> bool:
        if not self._is_current(generation):
            return False
        self.state = state
        if self.on_state is not None:
            self.on_state(state)
        return True

    def _update(self, generation: int, **changes) -> bool:
        if not self._is_current(generation):
            return False
        return self._set_state(generation, replace(self.state, **changes))

    def _progress(self, generation: int) -> Callable[[str, Optional[int]], None]:
        def on_progress(step_id: str, impact: Optional[int] = None):
            if not self._is_current(generation):
                return
            target = StepStatus.RUNNING if impact is None else StepStatus.DONE
            steps = []
            for step in self.state.steps:
                if step.id == step_id:
                    step = transition(step, target, impact)
                    if self.on_step is not None:
                        self.on_step(step)
                steps.append(step)
            self._update(generation, steps=steps)
        return on_progress

    def _final(self, generation: int) -> Optional[AnalysisState]:
        """The run's final state, or None when a newer run has taken over."""
        return self.state if self._is_current(generation) else None

    def _fail(self, generation: int, error: Exception):
        if isinstance(error, ApiError):
            message = ERROR_MESSAGES.get(error.code, error.message or UNEXPECTED_ERROR)
            code = error.code
        else:
            logger.error(f"Analysis of {self.state.query} failed: {error}")
            message = str(error) or UNEXPECTED_ERROR
            code = None
        self._update(generation, phase=AnalysisPhase.ERROR, error=message, error_code=code)

    # ============== Flows ==============

    async def analyze(self, query: str) -> Optional[AnalysisState]:
        """Classify the query and run the transaction or address flow."""
        generation, token = self._begin()
        input_type = detect_input_type(query, self.network)

        if input_type is InputType.INVALID:
            self._set_state(generation, AnalysisState(
                phase=AnalysisPhase.ERROR,
                query=query,
                input_type=InputType.INVALID,
                error=ERROR_MESSAGES[ApiErrorCode.INVALID_INPUT],
                error_code=ApiErrorCode.INVALID_INPUT,
            ))
            return self.state

        value = clean_input(query)
        steps = get_tx_heuristic_steps() if input_type is InputType.TXID else get_address_heuristic_steps()
        self._set_state(generation, AnalysisState(
            phase=AnalysisPhase.FETCHING,
            query=value,
            input_type=input_type,
            steps=steps,
        ))
        started = time.monotonic()

        try:
            if input_type is InputType.TXID:
                await self._analyze_tx(generation, token, value)
            else:
                await self._analyze_address(generation, token, value)
        except AnalysisCancelled:
            logger.info(f"Analysis of {value} cancelled")
            return None
        except Exception as e:
            if token.cancelled:
                return None
            self._fail(generation, e)
            return self._final(generation)

        self._update(generation, duration_ms=int((time.monotonic() - started) * 1000))
        return self._final(generation)

    async def _enrich(self, txs: List[Transaction], token: CancellationToken) -> Optional[EnrichResult]:
        """Rebuild missing prevouts in place. None when the backend already supplied them."""
        if not needs_enrichment(txs):
            return None
        enrichment = await enrich_prevouts(
            txs, lambda parent: self.api.get_transaction(parent, token=token), token=token
        )
        token.raise_if_cancelled()
        if enrichment.error_code is not None:
            logger.warning(f"{enrichment.failed_count} parent transaction(s) unavailable, some inputs stay unresolved")
        return enrichment

    async def _analyze_tx(self, generation: int, token: CancellationToken, txid: str):
        tx, raw_hex = await asyncio.gather(
            self.api.get_transaction(txid, token=token),
            best_effort(self.api.get_tx_hex(txid, token=token), None),
        )
        token.raise_if_cancelled()

        enrichment = await self._enrich([tx], token)

        self._update(generation, phase=AnalysisPhase.ANALYZING, tx_data=tx, enrichment=enrichment)
        result = await analyze_transaction(tx, raw_hex, self._progress(generation))
        token.raise_if_cancelled()
        self._update(generation, phase=AnalysisPhase.COMPLETE, result=result)

    async def _analyze_address(self, generation: int, token: CancellationToken, address: str):
        info, utxos, txs = await asyncio.gather(
            self.api.get_address(address, token=token),
            best_effort(self.api.get_address_utxos(address, token=token), []),
            best_effort(self.api.get_address_txs(address, token=token), []),
        )
        token.raise_if_cancelled()

        enrichment = await self._enrich(txs, token)

        self._update(generation, phase=AnalysisPhase.ANALYZING, address_data=info, enrichment=enrichment)
        result = await analyze_address(info, utxos, txs, self._progress(generation))
        token.raise_if_cancelled()

        breakdown = analyze_transactions_for_address(address, txs) if txs else None
        self._update(
            generation,
            phase=AnalysisPhase.COMPLETE,
            result=result,
            address_txs=txs or None,
            tx_breakdown=breakdown,
        )

    async def check_destination(self, query: str) -> Optional[AnalysisState]:
        """Pre-send check of a destination address."""
        generation, token = self._begin()
        input_type = detect_input_type(query, self.network)

        if input_type is not InputType.ADDRESS:
            self._set_state(generation, AnalysisState(
                phase=AnalysisPhase.ERROR,
                query=query,
                input_type=input_type,
                error=TXID_NOT_ALLOWED if input_type is InputType.TXID else INVALID_ADDRESS,
                error_code=ApiErrorCode.INVALID_INPUT,
            ))
            return self.state

        address = clean_input(query)
        self._set_state(generation, AnalysisState(
            phase=AnalysisPhase.FETCHING,
            query=address,
            input_type=InputType.ADDRESS,
            steps=get_address_heuristic_steps(),
        ))
        started = time.monotonic()

        assessor = PreSendRiskAssessor(self.api, self.screener)
        try:
            pre_send = await assessor.assess(address, self._progress(generation), token=token)
        except AnalysisCancelled:
            logger.info(f"Destination check of {address} cancelled")
            return None
        except Exception as e:
            if token.cancelled:
                return None
            self._fail(generation, e)
            return self._final(generation)

        self._update(
            generation,
            phase=AnalysisPhase.COMPLETE,
            pre_send_result=pre_send,
            duration_ms=int((time.monotonic() - started) * 1000),
        )
        return self._final(generation)
