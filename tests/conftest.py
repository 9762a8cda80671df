"""Shared test fixtures for am-i.exposed tests."""

from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional, Tuple

import httpx
import pytest

from amiexposed.core import esplora
from amiexposed.core.client import create_api_client
from amiexposed.core.esplora import ApiError, ApiErrorCode
from amiexposed.core.sanctions import SanctionsScreener

from factories import SANCTIONED

EXPLORER_URL = "https://explorer.test/api"


@pytest.fixture(autouse=True)
def backoff_delays(monkeypatch) -> List[float]:
    """Replace retry sleeps with a recorder so retry tests run instantly."""
    delays: List[float] = []

    async def record(delay, token):
        if token is not None:
            token.raise_if_cancelled()
        delays.append(delay)

    monkeypatch.setattr(esplora, "_backoff", record)
    return delays


@pytest.fixture
def screener() -> SanctionsScreener:
    return SanctionsScreener(addresses=[SANCTIONED], last_updated="2026-01-01")


class FakeExplorer:
    """Esplora routes served through httpx.MockTransport."""

    def __init__(self):
        # path (without /api) -> (status, json body or text)
        self.routes: Dict[str, Tuple[int, Any]] = {}
        self.calls: List[str] = []

    def add(self, path: str, body: Any, status: int = 200):
        self.routes[path] = (status, body)

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path.startswith("/api"):
            path = path[len("/api"):]
        self.calls.append(path)
        status, body = self.routes.get(path, (404, "Not Found"))
        if isinstance(body, str):
            return httpx.Response(status, text=body)
        return httpx.Response(status, json=body)

    def http(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))

    def factory(self, network):
        return create_api_client(network, http=self.http(), custom_url=EXPLORER_URL)


@pytest.fixture
def explorer() -> FakeExplorer:
    fake = FakeExplorer()
    fake.add("/blocks/tip/height", "850000")
    return fake


class FakeApi:
    """Duck-typed ResilientApiClient backed by dictionaries."""

    def __init__(
        self,
        txs: Optional[Dict[str, Any]] = None,
        hexes: Optional[Dict[str, str]] = None,
        addresses: Optional[Dict[str, Any]] = None,
        utxos: Optional[Dict[str, list]] = None,
        address_txs: Optional[Dict[str, list]] = None,
        gates: Optional[Dict[str, asyncio.Event]] = None,
    ):
        self.txs = txs or {}
        self.hexes = hexes or {}
        self.addresses = addresses or {}
        self.utxos = utxos or {}
        self.address_txs = address_txs or {}
        self.gates = gates or {}
        self.calls: List[Tuple[str, str]] = []

    async def _lookup(self, kind: str, table: Dict[str, Any], key: str):
        self.calls.append((kind, key))
        if key in self.gates:
            await self.gates[key].wait()
        value = table.get(key)
        if isinstance(value, ApiError):
            raise value
        if value is None:
            raise ApiError(ApiErrorCode.NOT_FOUND, "Not found")
        return value

    async def get_transaction(self, txid, token=None):
        return await self._lookup("tx", self.txs, txid)

    async def get_tx_hex(self, txid, token=None):
        return await self._lookup("hex", self.hexes, txid)

    async def get_address(self, address, token=None):
        return await self._lookup("address", self.addresses, address)

    async def get_address_utxos(self, address, token=None):
        return await self._lookup("utxo", self.utxos, address)

    async def get_address_txs(self, address, token=None):
        return await self._lookup("txs", self.address_txs, address)

    async def aclose(self):
        pass
