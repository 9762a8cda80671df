"""Privacy heuristics. Each evaluator is pure and independent of the others."""
from amiexposed.core.heuristics.address_reuse import analyze_address_reuse
from amiexposed.core.heuristics.address_type import analyze_address_type
from amiexposed.core.heuristics.anonymity_set import analyze_anonymity_set
from amiexposed.core.heuristics.change_detection import analyze_change_detection
from amiexposed.core.heuristics.cioh import analyze_cioh
from amiexposed.core.heuristics.coinbase import analyze_coinbase
from amiexposed.core.heuristics.coinjoin import analyze_coinjoin
from amiexposed.core.heuristics.dust import analyze_dust_outputs
from amiexposed.core.heuristics.entropy import analyze_entropy
from amiexposed.core.heuristics.fees import analyze_fees
from amiexposed.core.heuristics.history import analyze_history_coverage
from amiexposed.core.heuristics.op_return import analyze_op_return
from amiexposed.core.heuristics.payjoin import analyze_payjoin
from amiexposed.core.heuristics.round_amount import analyze_round_amounts
from amiexposed.core.heuristics.script_type import analyze_script_type_mix
from amiexposed.core.heuristics.spending import analyze_spending_pattern
from amiexposed.core.heuristics.timing import analyze_timing
from amiexposed.core.heuristics.utxo_analysis import analyze_utxos
from amiexposed.core.heuristics.wallet_fingerprint import analyze_wallet_fingerprint

__all__ = [
    "analyze_address_reuse",
    "analyze_address_type",
    "analyze_anonymity_set",
    "analyze_change_detection",
    "analyze_cioh",
    "analyze_coinbase",
    "analyze_coinjoin",
    "analyze_dust_outputs",
    "analyze_entropy",
    "analyze_fees",
    "analyze_history_coverage",
    "analyze_op_return",
    "analyze_payjoin",
    "analyze_round_amounts",
    "analyze_script_type_mix",
    "analyze_spending_pattern",
    "analyze_timing",
    "analyze_utxos",
    "analyze_wallet_fingerprint",
]
