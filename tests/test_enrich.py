"""Tests for prevout reconstruction from parent transactions."""

from __future__ import annotations

import asyncio

from amiexposed.core.cancel import AnalysisCancelled, CancellationToken
from amiexposed.core.enrich import count_null_prevouts, enrich_prevouts, needs_enrichment
from amiexposed.core.esplora import ApiError, ApiErrorCode

from factories import P2TR, coinbase_vin, make_tx, make_vin, make_vout, txid, wpkh

PARENT = txid(0xA)
MISSING = txid(0xB)


def _parent():
    return make_tx(
        vin=[make_vin(100_000)],
        vout=[make_vout(30_000, wpkh(1)), make_vout(60_000, P2TR)],
        tx_id=PARENT,
    )


def _fetcher(parents, calls=None):
    async def get_transaction(tx_id):
        if calls is not None:
            calls.append(tx_id)
        if tx_id in parents:
            return parents[tx_id]
        raise ApiError(ApiErrorCode.NOT_FOUND)
    return get_transaction


def test_nothing_missing_makes_no_calls():
    """Fully populated transactions are left alone."""
    tx = make_tx(vin=[make_vin(50_000)], vout=[make_vout(40_000, wpkh(2))])
    calls = []
    result = asyncio.run(enrich_prevouts([tx], _fetcher({}, calls)))
    assert result.to_dict() == {"enriched_count": 0, "failed_count": 0, "skipped_count": 0, "error_code": None}
    assert calls == []
    assert not needs_enrichment([tx])


def test_resolvable_parent_copies_output():
    """The referenced parent output becomes the prevout."""
    tx = make_tx(vin=[make_vin(parent=PARENT, vout=1, with_prevout=False)], vout=[make_vout(50_000, wpkh(2))])
    assert needs_enrichment([tx])

    result = asyncio.run(enrich_prevouts([tx], _fetcher({PARENT: _parent()})))
    assert result.enriched_count == 1
    assert result.failed_count == 0
    prevout = tx.vin[0].prevout
    assert prevout.value == 60_000
    assert prevout.scriptpubkey_address == P2TR
    assert prevout.scriptpubkey_type == "v1_p2tr"


def test_unresolvable_parent_counted_as_failed():
    """A parent that cannot be fetched leaves the prevout unset."""
    tx = make_tx(vin=[make_vin(parent=MISSING, with_prevout=False)], vout=[make_vout(50_000, wpkh(2))])
    result = asyncio.run(enrich_prevouts([tx], _fetcher({})))
    assert result.failed_count == 1
    assert result.enriched_count == 0
    assert tx.vin[0].prevout is None
    assert count_null_prevouts([tx]) == 1
    assert result.error_code is ApiErrorCode.ENRICHMENT_FAILURE


def test_parent_fetched_once_for_many_inputs():
    """Inputs sharing a parent trigger a single fetch."""
    tx = make_tx(
        vin=[
            make_vin(parent=PARENT, vout=0, with_prevout=False),
            make_vin(parent=PARENT, vout=1, with_prevout=False),
        ],
        vout=[make_vout(80_000, wpkh(2))],
    )
    calls = []
    result = asyncio.run(enrich_prevouts([tx], _fetcher({PARENT: _parent()}, calls)))
    assert calls == [PARENT]
    assert result.enriched_count == 2
    assert [v.prevout.value for v in tx.vin] == [30_000, 60_000]


def test_parents_beyond_limit_skipped():
    """Only max_parents distinct parents are fetched."""
    tx = make_tx(
        vin=[make_vin(parent=txid(200 + i), with_prevout=False) for i in range(5)],
        vout=[make_vout(10_000, wpkh(2))],
    )
    calls = []
    result = asyncio.run(enrich_prevouts([tx], _fetcher({}, calls), max_parents=3, concurrency=2))
    assert len(calls) == 3
    assert result.skipped_count == 2
    assert result.failed_count == 3


def test_coinbase_inputs_ignored():
    """Coinbase inputs have no parent to fetch."""
    tx = make_tx(vin=[coinbase_vin()], vout=[make_vout(625_000_000, wpkh(3))])
    calls = []
    result = asyncio.run(enrich_prevouts([tx], _fetcher({}, calls)))
    assert calls == []
    assert result.enriched_count == 0
    assert not needs_enrichment([tx])


def test_cancelled_fetches_not_counted_as_failures():
    """Cancellation is not a fetch failure."""
    tx = make_tx(vin=[make_vin(parent=MISSING, with_prevout=False)], vout=[make_vout(50_000, wpkh(2))])

    async def cancelled(tx_id):
        raise AnalysisCancelled()

    result = asyncio.run(enrich_prevouts([tx], cancelled))
    assert result.failed_count == 0
    assert result.enriched_count == 0


def test_stops_between_batches_when_cancelled():
    """No new batch starts once the token is cancelled."""
    tx = make_tx(
        vin=[make_vin(parent=txid(300 + i), with_prevout=False) for i in range(4)],
        vout=[make_vout(10_000, wpkh(2))],
    )

    async def go():
        token = CancellationToken()
        calls = []

        async def get_transaction(tx_id):
            calls.append(tx_id)
            token.cancel()
            raise ApiError(ApiErrorCode.NOT_FOUND)

        await enrich_prevouts([tx], get_transaction, token=token, concurrency=2)
        return calls

    assert len(asyncio.run(go())) == 2
