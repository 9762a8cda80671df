"""
am-i.exposed - Resilient API Client
Ordered explorer backends with an explicit fallback policy.
"""
import logging
from typing import Any, Awaitable, Callable, List, Optional, Sequence, TypeVar

import httpx

from amiexposed.config import settings
from amiexposed.core.cancel import CancellationToken
from amiexposed.core.esplora import ApiError, ApiErrorCode, EsploraBackend
from amiexposed.core.models import AddressInfo, Transaction, Utxo
from amiexposed.core.networks import BitcoinNetwork, get_network_config

logger = logging.getLogger("amiexposed.client")

# Errors that mean "this backend is down", not "this is the answer"
FALLBACK_CODES = frozenset({ApiErrorCode.API_UNAVAILABLE, ApiErrorCode.NETWORK_ERROR})

FallbackPolicy = Callable[[ApiError], bool]
T = TypeVar("T")


def may_fall_back(error: ApiError) -> bool:
    return error.code in FALLBACK_CODES


class ResilientApiClient:
    """
    Tries each backend in order.

    A backend's ApiError is passed to `fallback_policy`; when it returns True
    the next backend is tried, otherwise the error is raised as-is. The last
    backend's error always propagates.
    """

    def __init__(self, backends: Sequence[EsploraBackend], fallback_policy: FallbackPolicy = may_fall_back):
        if not backends:
            raise ValueError("At least one backend is required")
        self.backends: List[EsploraBackend] = list(backends)
        self.fallback_policy = fallback_policy

    @property
    def primary(self) -> EsploraBackend:
        return self.backends[0]

    async def _call(self, method: str, *args, token: Optional[CancellationToken] = None) -> Any:
        last = len(self.backends) - 1
        for i, backend in enumerate(self.backends):
            try:
                return await getattr(backend, method)(*args, token=token)
            except ApiError as e:
                if i == last or not self.fallback_policy(e):
                    raise
                logger.warning(f"{backend.name} failed ({e.code.value}), falling back to {self.backends[i + 1].name}")

    async def get_transaction(self, txid: str, token: Optional[CancellationToken] = None) -> Transaction:
        return await self._call("get_transaction", txid, token=token)

    async def get_tx_hex(self, txid: str, token: Optional[CancellationToken] = None) -> str:
        return await self._call("get_tx_hex", txid, token=token)

    async def get_address(self, address: str, token: Optional[CancellationToken] = None) -> AddressInfo:
        return await self._call("get_address", address, token=token)

    async def get_address_txs(self, address: str, token: Optional[CancellationToken] = None) -> List[Transaction]:
        return await self._call("get_address_txs", address, token=token)

    async def get_address_utxos(self, address: str, token: Optional[CancellationToken] = None) -> List[Utxo]:
        return await self._call("get_address_utxos", address, token=token)

    async def get_tip_height(self, token: Optional[CancellationToken] = None) -> int:
        return await self._call("get_tip_height", token=token)

    async def aclose(self):
        for backend in self.backends:
            await backend.aclose()


def create_api_client(
    network: BitcoinNetwork,
    http: httpx.AsyncClient = None,
    custom_url: str = None,
) -> ResilientApiClient:
    """
    Build the client for a network.

    A custom (self-hosted) URL replaces the public primary and gets no
    fallback, so queries never leak to a third party. Otherwise the secondary
    backend is added only where it differs from the primary.
    """
    custom_url = custom_url if custom_url is not None else settings.MEMPOOL_API_URL
    if custom_url:
        return ResilientApiClient([EsploraBackend(custom_url, http=http, name="custom")])

    config = get_network_config(network)
    backends = [EsploraBackend(config.mempool_base_url, http=http, name="mempool")]
    if config.has_fallback:
        backends.append(EsploraBackend(config.esplora_base_url, http=http, name="esplora"))
    return ResilientApiClient(backends)


async def best_effort(aw: Awaitable[T], default: T) -> T:
    """Await optional data; an ApiError degrades to `default`, cancellation still propagates."""
    try:
        return await aw
    except ApiError as e:
        logger.warning(f"Optional fetch failed ({e.code.value}): {e.message}")
        return default
