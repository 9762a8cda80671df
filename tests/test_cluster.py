"""Tests for first-degree cluster analysis."""

from __future__ import annotations

import asyncio

import pytest

from amiexposed.core import cluster
from amiexposed.core.cancel import AnalysisCancelled, CancellationToken
from amiexposed.core.cluster import ClusterProgress, Throttle, analyze_cluster, build_first_degree_cluster, change_address
from amiexposed.core.esplora import ApiError, ApiErrorCode

from conftest import FakeApi
from factories import P2PKH, P2TR, P2WPKH, make_tx, make_vin, make_vout, simple_payment_tx, txid, wpkh


def _spend():
    """The target and one other address pay a round amount, with change to wpkh(4)."""
    return make_tx(
        vin=[make_vin(100_000, P2WPKH, parent=txid(0xA1)), make_vin(80_000, wpkh(3), parent=txid(0xA2))],
        vout=[make_vout(50_000, P2TR), make_vout(123_456, wpkh(4))],
        tx_id=txid(0xC1),
    )


def _receive():
    return make_tx(vin=[make_vin(500_000, P2PKH)], vout=[make_vout(100_000, P2WPKH)], tx_id=txid(0xC2))


def _coinjoin():
    """A Whirlpool round the target takes part in."""
    return make_tx(
        vin=[make_vin(1_000_050, P2WPKH)] + [make_vin(1_000_050, wpkh(20 + i)) for i in range(4)],
        vout=[make_vout(1_000_000, wpkh(30 + i)) for i in range(5)],
        tx_id=txid(0xC4),
    )


def _change_spend():
    return make_tx(
        vin=[make_vin(123_456, wpkh(4)), make_vin(10_000, wpkh(5))],
        vout=[make_vout(130_000, P2TR)],
        tx_id=txid(0xC3),
    )


def _build(txs, api, **kwargs):
    return asyncio.run(build_first_degree_cluster(P2WPKH, txs, api, throttle=Throttle(0), **kwargs))


def test_change_address_from_detection():
    """The output change detection singles out is returned."""
    assert change_address(simple_payment_tx(), exclude=P2WPKH) == wpkh(2)


def test_change_address_none_without_signal():
    """No change is followed when the heuristics cannot tell."""
    tx = make_tx(vin=[make_vin(200_000, P2WPKH)], vout=[make_vout(51_234, P2TR), make_vout(61_234, P2PKH)])
    assert change_address(tx, exclude=P2WPKH) is None


def test_cluster_joins_co_inputs_and_follows_change():
    """Co-inputs of the target's spends and of its change's spends form the cluster."""
    api = FakeApi(address_txs={wpkh(4): [_change_spend()]})
    result = _build([_spend(), _receive(), _coinjoin()], api)

    assert result.addresses == [P2WPKH, wpkh(3), wpkh(4), wpkh(5)]
    assert result.size == 4
    assert result.txs_analyzed == 4
    assert result.coinjoin_tx_count == 1
    assert result.change_followed == 1
    assert api.calls == [("txs", wpkh(4))]


def test_coinjoin_inputs_excluded():
    """CoinJoin co-inputs are never clustered."""
    result = _build([_coinjoin()], FakeApi())
    assert result.addresses == [P2WPKH]
    assert result.coinjoin_tx_count == 1


def test_failed_change_follow_is_partial():
    """A change history that cannot be fetched is counted and skipped."""
    api = FakeApi(address_txs={wpkh(4): ApiError(ApiErrorCode.RATE_LIMITED)})
    result = _build([_spend()], api)
    assert result.failed_follows == 1
    assert result.change_followed == 0
    assert result.addresses == [P2WPKH, wpkh(3), wpkh(4)]


def test_walk_capped_at_fifty_transactions():
    """Only the most recent fifty transactions are walked."""
    progress = []
    result = _build([_receive() for _ in range(60)], FakeApi(), on_progress=progress.append)
    assert result.txs_analyzed == 50
    assert progress[-1] == ClusterProgress("inputs", 50, 50)


def test_cancelled_walk_stops():
    """A cancelled token stops the walk before any transaction."""
    token = CancellationToken()
    token.cancel()
    result = _build([_spend()], FakeApi(), token=token)
    assert result.txs_analyzed == 0
    assert result.addresses == [P2WPKH]


def test_analyze_cluster_enriches_history():
    """Missing prevouts are rebuilt so the target's spends are recognized."""
    parent = make_tx(vin=[make_vin()], vout=[make_vout(100_000, P2WPKH), make_vout(80_000, wpkh(3))], tx_id=txid(0xA1))
    spend = make_tx(
        vin=[make_vin(parent=parent.txid, vout=0, with_prevout=False), make_vin(parent=parent.txid, vout=1, with_prevout=False)],
        vout=[make_vout(170_000, P2TR)],
        tx_id=txid(0xC5),
    )
    api = FakeApi(txs={parent.txid: parent}, address_txs={P2WPKH: [spend]})

    result = asyncio.run(analyze_cluster(api, P2WPKH, throttle=Throttle(0)))
    assert result.addresses == [P2WPKH, wpkh(3)]
    assert ("tx", parent.txid) in api.calls


def test_analyze_cluster_rejects_bad_address():
    """Malformed addresses fail before any fetch."""
    api = FakeApi()
    with pytest.raises(ApiError) as exc:
        asyncio.run(analyze_cluster(api, "nope"))
    assert exc.value.code is ApiErrorCode.INVALID_INPUT
    assert api.calls == []


# ============== Throttle ==============

class Clock:
    def __init__(self):
        self.now = 100.0

    def __call__(self):
        return self.now


def test_throttle_spaces_calls(monkeypatch):
    """Calls closer than the interval wait for the remainder."""
    waits = []

    async def record(delay, token=None):
        waits.append(delay)

    monkeypatch.setattr(cluster, "sleep", record)
    clock = Clock()
    throttle = Throttle(0.2, clock=clock)

    async def call():
        return "ok"

    async def go():
        results = [await throttle(call)]
        clock.now += 0.05
        results.append(await throttle(call))
        clock.now += 1.0
        results.append(await throttle(call))
        return results

    assert asyncio.run(go()) == ["ok", "ok", "ok"]
    assert waits == [pytest.approx(0.15)]


def test_throttle_wait_is_cancellable():
    """Cancelling during the wait skips the call."""
    calls = []

    async def call():
        calls.append(1)

    async def go():
        token = CancellationToken()
        throttle = Throttle(30)
        await throttle(call, token)
        task = asyncio.create_task(throttle(call, token))
        await asyncio.sleep(0)
        token.cancel()
        with pytest.raises(AnalysisCancelled):
            await task

    asyncio.run(go())
    assert calls == [1]
