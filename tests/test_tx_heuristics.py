"""Tests for the transaction-level heuristics."""

from __future__ import annotations

import math
from collections import Counter

import pytest

from amiexposed.core.heuristics import (
    analyze_anonymity_set,
    analyze_change_detection,
    analyze_cioh,
    analyze_coinbase,
    analyze_coinjoin,
    analyze_dust_outputs,
    analyze_entropy,
    analyze_fees,
    analyze_op_return,
    analyze_payjoin,
    analyze_round_amounts,
    analyze_script_type_mix,
    analyze_timing,
    analyze_wallet_fingerprint,
)
from amiexposed.core.heuristics.entropy import boltzmann_equal_outputs
from amiexposed.core.heuristics.op_return import decode_text, extract_op_return_data
from amiexposed.core.heuristics.round_amount import is_round_amount
from amiexposed.core.heuristics.wallet_fingerprint import has_low_r_signatures
from amiexposed.core.models import Severity

from factories import (
    P2PKH,
    P2TR,
    coinbase_vin,
    make_tx,
    make_vin,
    make_vout,
    op_return_vout,
    simple_payment_tx,
    txid,
    whirlpool_tx,
    wpkh,
)


def _one(findings):
    assert len(findings) == 1
    return findings[0]


# ============== H1 round amounts ==============

def test_round_amount_values():
    """Round BTC values and sat multiples count as round."""
    assert is_round_amount(100_000)
    assert is_round_amount(50_000)
    assert is_round_amount(25_000_000)
    assert not is_round_amount(123_456)
    assert not is_round_amount(999)


def test_round_payment_penalized():
    """One round output next to change costs 5."""
    f = _one(analyze_round_amounts(simple_payment_tx()))
    assert f.id == "h1-round-amount"
    assert f.score_impact == -5


def test_round_amount_capped():
    """The penalty caps at 15."""
    tx = make_tx(
        vin=[make_vin(10_000_000)],
        vout=[make_vout(v, wpkh(i)) for i, v in enumerate([100_000, 200_000, 300_000, 400_000, 123_457])],
    )
    assert _one(analyze_round_amounts(tx)).score_impact == -15


def test_all_round_outputs_ignored():
    """All-round outputs give no payment/change split."""
    tx = make_tx(vin=[make_vin()], vout=[make_vout(10_000, wpkh(1)), make_vout(20_000, wpkh(2))])
    assert analyze_round_amounts(tx) == []


# ============== H2 change detection ==============

def test_change_detected_with_agreeing_signals():
    """Address type and round amount both point at the same change output."""
    f = _one(analyze_change_detection(simple_payment_tx()))
    assert f.id == "h2-change-detected"
    assert f.severity is Severity.MEDIUM
    assert f.score_impact == -10
    assert f.params["confidence"] == "medium"


def test_change_single_signal_low():
    """A single signal is low confidence."""
    tx = make_tx(vin=[make_vin(200_000, wpkh(1))], vout=[make_vout(51_234, P2TR), make_vout(123_456, wpkh(2))])
    f = _one(analyze_change_detection(tx))
    assert f.score_impact == -5
    assert f.severity is Severity.LOW


def test_change_needs_two_outputs():
    """Only two-output transactions are analyzed."""
    tx = make_tx(vin=[make_vin()], vout=[make_vout(90_000, wpkh(2))])
    assert analyze_change_detection(tx) == []


# ============== H3 CIOH ==============

def test_single_input_address_good():
    """One input address cannot be clustered."""
    f = _one(analyze_cioh(simple_payment_tx()))
    assert f.id == "h3-single-input"
    assert f.severity is Severity.GOOD
    assert f.score_impact == 0


@pytest.mark.parametrize("count,impact", [(2, -6), (4, -12), (5, -15), (10, -25), (20, -35), (50, -45)])
def test_cioh_tiers(count, impact):
    """The penalty grows with the number of linked addresses."""
    tx = make_tx(
        vin=[make_vin(10_000 + i, wpkh(i), parent=txid(500 + i)) for i in range(count)],
        vout=[make_vout(1_234_567, P2TR), make_vout(7_654, wpkh(999))],
    )
    f = _one(analyze_cioh(tx))
    assert f.id == "h3-cioh"
    assert f.score_impact == impact


def test_cioh_neutral_on_coinjoin():
    """CoinJoin inputs belong to different people."""
    f = _one(analyze_cioh(whirlpool_tx()))
    assert f.id == "h3-cioh"
    assert f.score_impact == 0


def test_cioh_neutral_on_payjoin():
    """PayJoin deliberately breaks CIOH."""
    tx = make_tx(
        vin=[make_vin(40_000, wpkh(1)), make_vin(70_000, wpkh(2))],
        vout=[make_vout(90_000, wpkh(1)), make_vout(19_000, wpkh(3))],
    )
    f = _one(analyze_cioh(tx))
    assert f.score_impact == 0
    assert "PayJoin" in f.title


# ============== H4 CoinJoin ==============

def test_whirlpool_detected():
    """5 equal outputs at a pool denomination is Whirlpool."""
    f = _one(analyze_coinjoin(whirlpool_tx()))
    assert f.id == "h4-whirlpool"
    assert f.severity is Severity.GOOD
    assert f.score_impact == 30


@pytest.mark.parametrize("equal,impact", [(3, 15), (5, 20), (10, 25)])
def test_equal_output_coinjoin(equal, impact):
    """Generic CoinJoins score by the size of the equal-output set."""
    tx = make_tx(
        vin=[make_vin(300_000, wpkh(i), parent=txid(600 + i)) for i in range(equal)],
        vout=[make_vout(123_456, wpkh(100 + i)) for i in range(equal)] + [make_vout(5_555, wpkh(999))],
    )
    f = _one(analyze_coinjoin(tx))
    assert f.id == "h4-coinjoin"
    assert f.score_impact == impact


def test_wabisabi_label():
    """Large rounds are labeled WabiSabi."""
    tx = make_tx(
        vin=[make_vin(300_000, wpkh(i), parent=txid(700 + i)) for i in range(25)],
        vout=[make_vout(123_456, wpkh(100 + i)) for i in range(25)],
    )
    assert "WabiSabi" in _one(analyze_coinjoin(tx)).title


def test_no_coinjoin_for_payment():
    """A plain payment is not a CoinJoin."""
    assert analyze_coinjoin(simple_payment_tx()) == []


# ============== H5 entropy ==============

@pytest.mark.parametrize("n,count", [(1, 1), (2, 3), (3, 16), (4, 131), (5, 1496)])
def test_boltzmann_partition_counts(n, count):
    """Interpretation counts for n equal inputs and outputs."""
    assert boltzmann_equal_outputs(n) == count


def _partition_sum(n):
    """Direct sum over integer partitions of n of n!^2 / (prod si!^2 * prod mj!)."""
    def partitions(k, top):
        if k == 0:
            yield ()
            return
        for part in range(min(k, top), 0, -1):
            for rest in partitions(k - part, part):
                yield (part,) + rest

    total = 0
    for partition in partitions(n, n):
        denom = 1
        for part in partition:
            denom *= math.factorial(part) ** 2
        for multiplicity in Counter(partition).values():
            denom *= math.factorial(multiplicity)
        total += math.factorial(n) ** 2 // denom
    return total


@pytest.mark.parametrize("n", range(1, 11))
def test_boltzmann_matches_partition_sum(n):
    """The closed recurrence agrees with the partition formula."""
    assert boltzmann_equal_outputs(n) == _partition_sum(n)


def test_boltzmann_large_pool():
    """Fifty equal outputs are counted exactly; the all-singletons mapping alone gives 50!."""
    assert boltzmann_equal_outputs(50) > math.factorial(50)


def test_one_in_one_out_zero_entropy():
    """A sweep has exactly one interpretation."""
    tx = make_tx(vin=[make_vin(100_000)], vout=[make_vout(99_000, wpkh(2))])
    f = _one(analyze_entropy(tx))
    assert f.id == "h5-zero-entropy"
    assert f.score_impact == -5


def test_simple_payment_low_entropy():
    """One input funding two outputs has no ambiguity."""
    f = _one(analyze_entropy(simple_payment_tx()))
    assert f.id == "h5-low-entropy"
    assert f.score_impact == -3


def test_whirlpool_entropy_capped():
    """A 5x5 equal-output round earns the maximum entropy bonus."""
    f = _one(analyze_entropy(whirlpool_tx()))
    assert f.id == "h5-entropy"
    assert f.score_impact == 15
    assert f.params["method"] == "Boltzmann partition"


def test_two_equal_outputs_entropy():
    """2x2 equal outputs give log2(3) bits."""
    tx = make_tx(
        vin=[make_vin(60_000, wpkh(1)), make_vin(60_000, wpkh(2))],
        vout=[make_vout(50_000, wpkh(3)), make_vout(50_000, wpkh(4))],
    )
    f = _one(analyze_entropy(tx))
    assert f.params["entropy"] == 1.58
    assert f.score_impact == 3


def test_entropy_needs_known_inputs():
    """Without prevouts there is nothing to compute."""
    tx = make_tx(vin=[make_vin(with_prevout=False)], vout=[make_vout(1_000, wpkh(2))])
    assert analyze_entropy(tx) == []


# ============== H6 fees ==============

def test_round_fee_rate():
    """An exact integer fee rate above 5 sat/vB is a minor fingerprint."""
    tx = make_tx(vin=[make_vin(sequence=0xFFFFFFFF)], vout=[make_vout(1_000, wpkh(2))], fee=2_000, weight=800)
    f = _one(analyze_fees(tx))
    assert f.id == "h6-round-fee-rate"
    assert f.params["fee_rate"] == 10
    assert f.score_impact == -2


def test_low_round_fee_rate_ignored():
    """Rates of 5 sat/vB and below are the crowd."""
    tx = make_tx(vin=[make_vin(sequence=0xFFFFFFFF)], vout=[make_vout(1_000, wpkh(2))], fee=1_000, weight=800)
    assert analyze_fees(tx) == []


def test_rbf_informational():
    """RBF signaling is reported without a penalty."""
    tx = make_tx(vin=[make_vin(sequence=0xFFFFFFFD)], vout=[make_vout(1_000, wpkh(2))], fee=1_234, weight=800)
    f = _one(analyze_fees(tx))
    assert f.id == "h6-rbf-signaled"
    assert f.score_impact == 0


# ============== H7 OP_RETURN ==============

def test_op_return_text():
    """Plain data costs 5 and is decoded."""
    script = "6a0b" + b"hello world".hex()
    assert extract_op_return_data(script) == b"hello world".hex()
    assert decode_text(b"hello world".hex()) == "hello world"

    tx = make_tx(vin=[make_vin()], vout=[op_return_vout(script), make_vout(90_000, wpkh(2))])
    f = _one(analyze_op_return(tx))
    assert f.id == "h7-op-return"
    assert f.score_impact == -5
    assert "hello world" in f.description


def test_op_return_known_protocol():
    """Known protocol markers cost 8."""
    tx = make_tx(vin=[make_vin()], vout=[op_return_vout("6a14" + "6f6d6e69" + "00" * 16)])
    f = _one(analyze_op_return(tx))
    assert f.params == {"protocol": "Omni Layer"}
    assert f.score_impact == -8


def test_op_return_runes():
    """Runes use OP_13 after OP_RETURN."""
    tx = make_tx(vin=[make_vin()], vout=[op_return_vout("6a5d0614c0a2331441")])
    assert _one(analyze_op_return(tx)).params["protocol"] == "Runes"


def test_multiple_op_returns_indexed():
    """Each OP_RETURN output gets its own finding."""
    tx = make_tx(vin=[make_vin()], vout=[op_return_vout("6a0161"), op_return_vout("6a0162")])
    assert [f.id for f in analyze_op_return(tx)] == ["h7-op-return-0", "h7-op-return-1"]


# ============== H11 wallet fingerprint ==============

def test_core_locktime_fingerprint():
    """A block-height nLockTime points to Bitcoin Core."""
    tx = make_tx(vin=[make_vin()], vout=[make_vout(90_000, wpkh(2))], locktime=800_000)
    f = _one(analyze_wallet_fingerprint(tx))
    assert f.params["wallet"] == "Bitcoin Core"
    assert f.score_impact == -6


def test_generic_signals_without_wallet():
    """Signals without a wallet guess cost 4 when there are three or more."""
    tx = make_tx(
        vin=[make_vin(sequence=0xFFFFFFFF)],
        vout=[make_vout(90_000, wpkh(2), scriptpubkey="0014bb"), make_vout(5_000, wpkh(3), scriptpubkey="0014aa")],
    )
    f = _one(analyze_wallet_fingerprint(tx))
    assert f.params["wallet"] is None
    assert len(f.params["signals"]) == 3
    assert f.score_impact == -4


def test_low_r_signatures():
    """Every DER signature must carry a 32-byte R."""
    low_r = "3044" + "0220" + "11" * 32
    high_r = "3045" + "0221" + "00" + "11" * 32
    assert has_low_r_signatures("0200" + low_r, 1)
    assert not has_low_r_signatures("0200" + high_r, 1)
    assert not has_low_r_signatures("0200" + low_r, 2)


# ============== Anonymity set / PayJoin ==============

def test_anonymity_set_moderate():
    """Two equal outputs give a small set."""
    tx = make_tx(vin=[make_vin()], vout=[make_vout(5_000, wpkh(1)), make_vout(5_000, wpkh(2)), make_vout(7_000, wpkh(3))])
    f = _one(analyze_anonymity_set(tx))
    assert f.id == "anon-set-moderate"
    assert f.score_impact == 1


def test_anonymity_set_strong():
    """Five equal outputs are a strong set."""
    f = _one(analyze_anonymity_set(whirlpool_tx()))
    assert f.id == "anon-set-strong"
    assert f.score_impact == 5


def test_anonymity_set_none():
    """Unique outputs are trivially distinguishable."""
    assert _one(analyze_anonymity_set(simple_payment_tx())).score_impact == -2


def test_payjoin_detected():
    """Two inputs, two outputs, one paying an input address."""
    tx = make_tx(
        vin=[make_vin(40_000, wpkh(1)), make_vin(70_000, wpkh(2))],
        vout=[make_vout(90_000, wpkh(1)), make_vout(19_000, wpkh(3))],
    )
    f = _one(analyze_payjoin(tx))
    assert f.id == "payjoin-detected"
    assert f.score_impact == 3


def test_payjoin_requires_distinct_inputs():
    """Both inputs from one address is not a PayJoin."""
    tx = make_tx(
        vin=[make_vin(40_000, wpkh(1)), make_vin(70_000, wpkh(1))],
        vout=[make_vout(90_000, wpkh(1)), make_vout(19_000, wpkh(3))],
    )
    assert analyze_payjoin(tx) == []


# ============== Timing / script / dust / coinbase ==============

def test_unconfirmed_timing():
    """Mempool transactions are visible to network observers."""
    tx = make_tx(vin=[make_vin()], vout=[make_vout(1_000, wpkh(2))], confirmed=False)
    assert [f.id for f in analyze_timing(tx)] == ["timing-unconfirmed"]


def test_timestamp_locktime():
    """A timestamp nLockTime leaks creation time."""
    tx = make_tx(vin=[make_vin()], vout=[make_vout(1_000, wpkh(2))], locktime=1_700_000_000)
    f = _one(analyze_timing(tx))
    assert f.id == "timing-locktime-timestamp"
    assert f.score_impact == -3
    assert f.params["date"] == "2023-11-14"


def test_stale_locktime():
    """A locktime far below the confirmation height shows a delayed broadcast."""
    tx = make_tx(vin=[make_vin()], vout=[make_vout(1_000, wpkh(2))], locktime=800_000, block_height=800_200)
    f = _one(analyze_timing(tx))
    assert f.id == "timing-stale-locktime"
    assert f.params["diff"] == 200
    assert f.score_impact == -1


def test_uniform_script_types():
    """Same script type everywhere hides change."""
    f = _one(analyze_script_type_mix(whirlpool_tx()))
    assert f.id == "script-uniform"
    assert f.score_impact == 2


def test_mixed_script_types():
    """Two script types cost 1, three or more cost 3."""
    two = _one(analyze_script_type_mix(simple_payment_tx()))
    assert two.score_impact == -1

    tx = make_tx(vin=[make_vin(200_000, wpkh(1))], vout=[make_vout(50_000, P2TR), make_vout(60_000, P2PKH)])
    three = _one(analyze_script_type_mix(tx))
    assert three.score_impact == -3
    assert three.severity is Severity.MEDIUM


def test_bare_multisig():
    """Bare multisig exposes every key."""
    tx = make_tx(vin=[make_vin()], vout=[make_vout(10_000, None, kind="multisig")])
    f = _one(analyze_script_type_mix(tx))
    assert f.id == "script-multisig"
    assert f.score_impact == -8


def test_dust_attack_shape():
    """One input paying dust plus change is a dusting pattern."""
    tx = make_tx(vin=[make_vin(50_000)], vout=[make_vout(546, wpkh(1)), make_vout(48_000, wpkh(2))])
    f = _one(analyze_dust_outputs(tx))
    assert f.id == "dust-attack"
    assert f.score_impact == -8


def test_dust_outputs():
    """A few dust outputs in a larger transaction are a milder signal."""
    values = [700, 800, 900] + [50_000 + i for i in range(7)]
    tx = make_tx(vin=[make_vin(1_000_000)], vout=[make_vout(v, wpkh(i)) for i, v in enumerate(values)])
    f = _one(analyze_dust_outputs(tx))
    assert f.id == "dust-outputs"
    assert f.score_impact == -3
    assert f.params["dust_count"] == 3


def test_coinbase_informational():
    """Block rewards are flagged without a penalty."""
    tx = make_tx(vin=[coinbase_vin()], vout=[make_vout(625_000_000, wpkh(1))])
    f = _one(analyze_coinbase(tx))
    assert f.id == "coinbase-transaction"
    assert f.score_impact == 0
    assert analyze_script_type_mix(tx) == []
    assert analyze_change_detection(tx) == []
