"""Tests for the address-level heuristics."""

from __future__ import annotations

import pytest

from amiexposed.core.heuristics import (
    analyze_address_reuse,
    analyze_address_type,
    analyze_history_coverage,
    analyze_spending_pattern,
    analyze_utxos,
)
from amiexposed.core.heuristics.address_reuse import reuse_impact
from amiexposed.core.models import AnalysisMode, Grade, Severity
from amiexposed.core.scoring import calculate_score

from factories import P2PKH, P2SH, P2TR, P2WPKH, make_address, make_tx, make_utxo, make_vin, make_vout, wpkh


def _ids(findings):
    return [f.id for f in findings]


# ============== H8 address reuse ==============

@pytest.mark.parametrize("funded,impact", [
    (1, 0),
    (2, -20),
    (3, -25),
    (4, -25),
    (5, -30),
    (9, -30),
    (10, -35),
    (50, -45),
    (100, -50),
    (5000, -50),
])
def test_reuse_tiers(funded, impact):
    """Penalty grows in steps with funded outputs."""
    assert reuse_impact(funded) == impact


def test_single_receive_is_good():
    """One funded output is not reuse."""
    [f] = analyze_address_reuse(make_address(funded=1, tx_count=1), [], [])
    assert f.id == "h8-no-reuse"
    assert f.severity is Severity.GOOD


def test_two_receives_is_high():
    """The first reuse is high severity."""
    [f] = analyze_address_reuse(make_address(funded=2, tx_count=2), [], [])
    assert f.id == "h8-address-reuse"
    assert f.severity is Severity.HIGH
    assert f.score_impact == -20
    assert f.remediation.urgency == "soon"


def test_heavy_reuse_is_critical():
    """Ten receives is critical with immediate remediation."""
    [f] = analyze_address_reuse(make_address(funded=10, tx_count=10), [], [])
    assert f.severity is Severity.CRITICAL
    assert f.score_impact == -35
    assert f.remediation.urgency == "immediate"


def test_heavy_reuse_grades_c():
    """93 base minus 35 lands at 58."""
    findings = analyze_address_reuse(make_address(funded=10, tx_count=10), [], [])
    result = calculate_score(findings, AnalysisMode.ADDRESS)
    assert result.score == 58
    assert result.grade is Grade.C


def test_mempool_receives_count():
    """Unconfirmed receives count toward reuse."""
    info = make_address(funded=1, tx_count=1, mempool_funded=1, mempool_tx_count=1)
    [f] = analyze_address_reuse(info, [], [])
    assert f.id == "h8-address-reuse"
    assert f.params == {"total_funded": 2, "tx_count": 2}


def test_batch_receive_not_reuse():
    """Several outputs in one transaction is a batch, not reuse."""
    [f] = analyze_address_reuse(make_address(funded=3, tx_count=1), [], [])
    assert f.id == "h8-batch-receive"
    assert f.score_impact == 0


# ============== H9 UTXOs ==============

def test_no_utxos_no_findings():
    """An empty UTXO set says nothing."""
    assert analyze_utxos(make_address(), [], []) == []


def test_clean_utxo_set():
    """Few non-dust UTXOs are rewarded."""
    [f] = analyze_utxos(make_address(), [make_utxo(50_000)], [])
    assert f.id == "h9-clean"
    assert f.score_impact == 2


def test_single_dust_utxo():
    """One dust UTXO costs 5."""
    [f] = analyze_utxos(make_address(), [make_utxo(546), make_utxo(50_000, 2)], [])
    assert f.id == "h9-dust-detected"
    assert f.severity is Severity.MEDIUM
    assert f.score_impact == -5


def test_many_dust_utxos():
    """Three or more dust UTXOs cost 8."""
    utxos = [make_utxo(500 + i, i) for i in range(3)]
    [f] = analyze_utxos(make_address(), utxos, [])
    assert f.severity is Severity.HIGH
    assert f.score_impact == -8
    assert f.params["dust_count"] == 3


def test_moderate_utxo_count():
    """Five UTXOs is a moderate set."""
    utxos = [make_utxo(10_000 + i, i) for i in range(5)]
    assert _ids(analyze_utxos(make_address(), utxos, [])) == ["h9-moderate-utxos"]


def test_large_utxo_count():
    """Twenty UTXOs is a large set."""
    utxos = [make_utxo(10_000 + i, i) for i in range(20)]
    [f] = analyze_utxos(make_address(), utxos, [])
    assert f.id == "h9-many-utxos"
    assert f.score_impact == -3


# ============== H10 address type ==============

@pytest.mark.parametrize("address,id,impact", [
    (P2TR, "h10-p2tr", 5),
    (P2WPKH, "h10-p2wpkh", 0),
    (P2SH, "h10-p2sh", -3),
    (P2PKH, "h10-p2pkh", -5),
])
def test_address_type(address, id, impact):
    """Newer script types score better."""
    [f] = analyze_address_type(make_address(address=address), [], [])
    assert f.id == id
    assert f.score_impact == impact


# ============== Spending pattern ==============

def test_never_spent():
    """Received but never spent looks like cold storage."""
    assert _ids(analyze_spending_pattern(make_address(funded=1, spent=0), [], [])) == ["spending-never-spent"]


def test_high_volume():
    """A hundred transactions is high volume."""
    findings = analyze_spending_pattern(make_address(funded=60, spent=40, tx_count=100), [], [])
    assert _ids(findings) == ["spending-high-volume"]
    assert findings[0].score_impact == -3


def test_many_counterparties():
    """Twenty distinct counterparties widen the exposure surface."""
    txs = [
        make_tx(vin=[make_vin(100_000, P2WPKH)], vout=[make_vout(1_000, wpkh(i)), make_vout(90_000, P2WPKH)])
        for i in range(20)
    ]
    findings = analyze_spending_pattern(make_address(funded=20, spent=20, tx_count=20), [], txs)
    assert _ids(findings) == ["spending-many-counterparties"]
    assert findings[0].params == {"count": 20}


# ============== History coverage ==============

def test_full_history_silent():
    """Nothing to report when every transaction was fetched."""
    tx = make_tx(vin=[make_vin()], vout=[make_vout(1_000, wpkh(2))])
    assert analyze_history_coverage(make_address(tx_count=1), [], [tx]) == []


def test_history_unavailable():
    """No fetched transactions despite a non-zero count."""
    [f] = analyze_history_coverage(make_address(tx_count=3), [], [])
    assert f.id == "partial-history-unavailable"
    assert f.score_impact == 0


def test_history_partial():
    """Fewer fetched transactions than the address has."""
    tx = make_tx(vin=[make_vin()], vout=[make_vout(1_000, wpkh(2))])
    [f] = analyze_history_coverage(make_address(tx_count=300), [], [tx])
    assert f.id == "partial-history-partial"
    assert f.params == {"fetched": 1, "total": 300}
