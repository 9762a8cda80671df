"""
H5: Boltzmann Entropy

Counts how many input-to-output interpretations a transaction admits.

For equal-value outputs the Boltzmann partition formula gives an exact count:
    N = sum over integer partitions (s1..sk) of n of
        n!^2 / (prod(si!^2) * prod(mj!))
where mj are the multiplicities of the distinct part sizes. Small mixed-value
transactions are enumerated (a lower bound); anything larger gets a
structural estimate.
"""
import math
from collections import Counter
from functools import lru_cache
from typing import List, Optional, Tuple

from amiexposed.core.models import Finding, Severity, Transaction

MAX_ENUMERABLE_SIZE = 8
ENUMERATION_LIMIT = 10_000
MAX_EXACT_PARTITION = 50
DISPLAY_CAP_BITS = 64


@lru_cache(maxsize=None)
def boltzmann_equal_outputs(n: int) -> int:
    """
    Interpretation count for n equal inputs and n equal outputs (n=2: 3, n=3: 16, n=4: 131).

    The partition sum has exponential generating function exp(sum x^k / k!^2),
    which gives the recurrence a(n) = 1/n * sum k * C(n,k)^2 * a(n-k).
    """
    counts = [1]
    for m in range(1, n + 1):
        total = sum(k * math.comb(m, k) ** 2 * counts[m - k] for k in range(1, m + 1))
        counts.append(total // m)
    return counts[n]


def _estimate_boltzmann_bits(n: int) -> float:
    # The all-ones partition contributes n!; the rest add roughly 70% more
    return math.log2(math.factorial(n)) + math.log2(1.7)


def _log2_binomial(n: int, k: int) -> float:
    if k < 0 or k > n or k in (0, n):
        return 0.0
    return math.log2(math.comb(n, k))


def _boltzmann_path(inputs: List[int], outputs: List[int]) -> Optional[Tuple[float, str]]:
    """Exact path for all-equal outputs that every counted input can fund."""
    if len(outputs) < 2 or len(inputs) < 2:
        return None
    value = outputs[0]
    if any(v != value for v in outputs):
        return None
    n = len(outputs)
    fundable = [v for v in inputs if v >= value]
    if len(fundable) < n:
        return None

    # Idle inputs add choices of which n of k inputs are active
    correction = _log2_binomial(len(fundable), n) if len(fundable) > n else 0.0
    if n <= MAX_EXACT_PARTITION:
        count = boltzmann_equal_outputs(n)
        base = math.log2(count) if count > 1 else 0.0
        return base + correction, "Boltzmann partition"
    return _estimate_boltzmann_bits(n) + correction, "Boltzmann estimate"


def _count_valid_mappings(inputs: List[int], outputs: List[int]) -> Tuple[int, bool]:
    """
    Assign each output to an input that can still cover it. Returns the count
    (deduplicated across indistinguishable equal-value inputs) and whether the
    enumeration hit its limit.
    """
    if sum(inputs) < sum(outputs):
        return 1, False

    remaining = list(inputs)
    state = {"iterations": 0}

    def enumerate_from(idx: int) -> int:
        if state["iterations"] > ENUMERATION_LIMIT:
            return 0
        if idx == len(outputs):
            state["iterations"] += 1
            return 1
        valid = 0
        out_val = outputs[idx]
        for i in range(len(remaining)):
            if remaining[i] >= out_val:
                remaining[i] -= out_val
                valid += enumerate_from(idx + 1)
                remaining[i] += out_val
                if state["iterations"] > ENUMERATION_LIMIT:
                    break
        return valid

    count = enumerate_from(0)

    duplicate_factor = 1
    for c in Counter(inputs).values():
        if c > 1:
            duplicate_factor *= math.factorial(c)
    count = round(count / duplicate_factor)
    return max(count, 1), state["iterations"] > ENUMERATION_LIMIT


def _structural_estimate(inputs: List[int], outputs: List[int]) -> float:
    max_group = max(Counter(outputs).values()) if outputs else 0
    if max_group >= 2:
        if len(inputs) <= 1:
            return 0.0
        k = min(max_group, len(inputs))
        if k <= MAX_EXACT_PARTITION:
            count = boltzmann_equal_outputs(k)
            return math.log2(count) if count > 1 else 0.0
        return _estimate_boltzmann_bits(k)
    min_dim = min(len(inputs), len(outputs))
    return math.log2(min_dim) if min_dim > 1 else 0.0


def analyze_entropy(tx: Transaction, raw_hex: Optional[str] = None) -> List[Finding]:
    inputs = [
        vin.prevout.value
        for vin in tx.vin
        if not vin.is_coinbase and vin.prevout is not None
    ]
    outputs = [o.value for o in tx.vout if o.scriptpubkey_type != "op_return" and o.value > 0]

    if not inputs:
        return []

    if len(inputs) == 1 and len(outputs) == 1:
        return [Finding(
            id="h5-zero-entropy",
            severity=Severity.LOW,
            title="Zero transaction entropy",
            description=(
                "This transaction has a single input and single output, so there is only one possible "
                "interpretation of the flow of funds."
            ),
            recommendation=(
                "Transactions with more inputs and outputs naturally have higher entropy. "
                "CoinJoin transactions maximize entropy."
            ),
            score_impact=-5,
        )]

    exact = _boltzmann_path(inputs, outputs)
    if exact is not None:
        bits, method = exact
    elif len(inputs) <= MAX_ENUMERABLE_SIZE and len(outputs) <= MAX_ENUMERABLE_SIZE:
        count, truncated = _count_valid_mappings(inputs, outputs)
        bits = math.log2(count) if count > 1 else 0.0
        method = "lower-bound estimate" if truncated else "exact enumeration"
    else:
        bits = _structural_estimate(inputs, outputs)
        method = "structural estimate"

    display = min(bits, DISPLAY_CAP_BITS)
    rounded = round(display, 2)

    if rounded <= 0:
        return [Finding(
            id="h5-low-entropy",
            severity=Severity.MEDIUM,
            title="Very low transaction entropy",
            description=(
                f"This transaction has near-zero entropy ({rounded} bits, via {method}). "
                "There is essentially only one valid interpretation of the fund flow."
            ),
            recommendation="Spend exact amounts to avoid change, or use CoinJoin to add ambiguity.",
            score_impact=-3,
            params={"entropy": rounded, "method": method},
        )]

    impact = 0 if bits < 1 else min(math.floor(bits * 2), 15)
    if impact >= 10:
        severity = Severity.GOOD
    elif impact > 0:
        severity = Severity.LOW
    else:
        severity = Severity.MEDIUM

    interpretations = f"2^{round(display)}" if display > 40 else f"{round(2 ** display):,}"
    return [Finding(
        id="h5-entropy",
        severity=severity,
        title=f"Transaction entropy: {rounded} bits",
        description=(
            f"This transaction has {rounded} bits of entropy (via {method}), meaning there are "
            f"~{interpretations} interpretations of the fund flow. "
            "Higher entropy makes chain analysis less reliable."
        ),
        recommendation=(
            "Good entropy level. Spending exact amounts further improves privacy."
            if bits >= 4 else
            "Spend exact amounts to avoid change outputs, or use CoinJoin for higher entropy."
        ),
        score_impact=impact,
        params={"entropy": rounded, "method": method, "interpretations": interpretations},
    )]
