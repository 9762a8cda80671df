"""
am-i.exposed - Esplora Client
REST client for mempool.space / Esplora explorer APIs with retry and backoff.
"""
import json
import logging
import re
from enum import Enum
from typing import Any, List, Optional, Sequence

import httpx

from amiexposed.config import settings
from amiexposed.core.cancel import CancellationToken, guard, sleep
from amiexposed.core.models import AddressInfo, Transaction, Utxo

logger = logging.getLogger("amiexposed.esplora")

TXID_RE = re.compile(r"^[a-fA-F0-9]{64}$")
ADDRESS_RE = re.compile(r"^[a-zA-Z0-9]{25,90}$")


class ApiErrorCode(str, Enum):
    INVALID_INPUT = "INVALID_INPUT"
    NOT_FOUND = "NOT_FOUND"
    RATE_LIMITED = "RATE_LIMITED"
    API_UNAVAILABLE = "API_UNAVAILABLE"
    NETWORK_ERROR = "NETWORK_ERROR"
    ENRICHMENT_FAILURE = "ENRICHMENT_FAILURE"


class ApiError(Exception):
    """Explorer API error."""
    def __init__(self, code: ApiErrorCode, message: str = ""):
        self.code = code
        self.message = message or code.value
        super().__init__(f"{code.value}: {self.message}")


# ============== Retry ==============

async def _backoff(delay: float, token: Optional[CancellationToken]):
    await sleep(delay, token)


def _retry_after(response: httpx.Response, cap: float) -> Optional[float]:
    """Seconds requested by a Retry-After header, capped. None if absent or not numeric."""
    value = response.headers.get("retry-after")
    if not value:
        return None
    try:
        seconds = float(value)
    except ValueError:
        return None
    if seconds <= 0:
        return None
    return min(seconds, cap)


async def fetch_with_retry(
    http: httpx.AsyncClient,
    url: str,
    token: Optional[CancellationToken] = None,
    retry_delays: Optional[Sequence[float]] = None,
    retry_after_cap: Optional[float] = None,
) -> httpx.Response:
    """
    GET `url`, retrying transient failures.

    404 fails immediately with NOT_FOUND. 429, 5xx and transport errors are
    retried once per entry in `retry_delays`; a 429 honors Retry-After.
    Cancellation raises AnalysisCancelled without further attempts.
    """
    if retry_delays is None:
        retry_delays = settings.RETRY_DELAYS[:settings.MAX_RETRIES]
    delays = list(retry_delays)
    cap = settings.RETRY_AFTER_CAP if retry_after_cap is None else retry_after_cap
    max_retries = len(delays)

    for attempt in range(max_retries + 1):
        if token is not None:
            token.raise_if_cancelled()
        can_retry = attempt < max_retries

        try:
            response = await guard(http.get(url), token)
        except httpx.TransportError as e:
            if can_retry:
                logger.warning(f"Request to {url} failed (attempt {attempt + 1}/{max_retries + 1}): {e}")
                await _backoff(delays[attempt], token)
                continue
            raise ApiError(ApiErrorCode.NETWORK_ERROR, f"Network error: {e}")

        status = response.status_code
        if response.is_success:
            return response

        if status == 404:
            raise ApiError(ApiErrorCode.NOT_FOUND, "Not found")

        if status == 429:
            if can_retry:
                delay = _retry_after(response, cap) or delays[attempt]
                logger.warning(f"Rate limited by {url}, retrying in {delay}s (attempt {attempt + 1}/{max_retries + 1})")
                await _backoff(delay, token)
                continue
            raise ApiError(ApiErrorCode.RATE_LIMITED, "Rate limited")

        if status >= 500 and can_retry:
            logger.warning(f"HTTP {status} from {url} (attempt {attempt + 1}/{max_retries + 1})")
            await _backoff(delays[attempt], token)
            continue

        raise ApiError(ApiErrorCode.API_UNAVAILABLE, f"HTTP {status}")

    # Unreachable: every branch of the final attempt returns or raises
    raise ApiError(ApiErrorCode.API_UNAVAILABLE, "All retries failed")


# ============== Backend ==============

def validate_txid(txid: str):
    if not TXID_RE.match(txid or ""):
        raise ApiError(ApiErrorCode.INVALID_INPUT, "Invalid transaction ID")


def validate_address(address: str):
    if not ADDRESS_RE.match(address or ""):
        raise ApiError(ApiErrorCode.INVALID_INPUT, "Invalid address")


class EsploraBackend:
    """
    One Esplora-compatible REST endpoint.

    Every method takes an optional cancellation token which is honored between
    retries and during in-flight requests.
    """

    PAGE_SIZE = 25
    MAX_PAGES = 4
    MAX_TXS = 200

    def __init__(self, base_url: str, http: httpx.AsyncClient = None, name: str = None):
        self.base_url = base_url.rstrip("/")
        self.name = name or self.base_url
        self._owns_http = http is None
        self._http = http or httpx.AsyncClient(timeout=settings.REQUEST_TIMEOUT)

    async def aclose(self):
        if self._owns_http:
            await self._http.aclose()

    async def _get(self, path: str, token: Optional[CancellationToken]) -> httpx.Response:
        return await fetch_with_retry(self._http, f"{self.base_url}{path}", token)

    async def _get_json(self, path: str, token: Optional[CancellationToken]) -> Any:
        response = await self._get(path, token)
        try:
            return response.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            raise ApiError(ApiErrorCode.API_UNAVAILABLE, "Invalid JSON response")

    async def get_transaction(self, txid: str, token: Optional[CancellationToken] = None) -> Transaction:
        validate_txid(txid)
        return Transaction.from_dict(await self._get_json(f"/tx/{txid}", token))

    async def get_tx_hex(self, txid: str, token: Optional[CancellationToken] = None) -> str:
        validate_txid(txid)
        response = await self._get(f"/tx/{txid}/hex", token)
        return response.text.strip()

    async def get_address(self, address: str, token: Optional[CancellationToken] = None) -> AddressInfo:
        validate_address(address)
        return AddressInfo.from_dict(await self._get_json(f"/address/{address}", token))

    async def get_address_txs(
        self,
        address: str,
        token: Optional[CancellationToken] = None,
        max_pages: int = None,
    ) -> List[Transaction]:
        """Address history, following /txs/chain pagination while pages are full."""
        validate_address(address)
        max_pages = max_pages or self.MAX_PAGES

        first_page = await self._get_json(f"/address/{address}/txs", token)
        txs = [Transaction.from_dict(t) for t in first_page]

        pages = 1
        page_len = len(first_page)
        while (page_len == self.PAGE_SIZE and pages < max_pages and len(txs) < self.MAX_TXS
               and not (token is not None and token.cancelled)):
            next_page = await self._get_json(f"/address/{address}/txs/chain/{txs[-1].txid}", token)
            if not next_page:
                break
            txs.extend(Transaction.from_dict(t) for t in next_page)
            page_len = len(next_page)
            pages += 1

        logger.debug(f"Fetched {len(txs)} transactions for {address} in {pages} page(s)")
        return txs[:self.MAX_TXS]

    async def get_address_utxos(self, address: str, token: Optional[CancellationToken] = None) -> List[Utxo]:
        validate_address(address)
        return [Utxo.from_dict(u) for u in await self._get_json(f"/address/{address}/utxo", token)]

    async def get_tip_height(self, token: Optional[CancellationToken] = None) -> int:
        response = await self._get("/blocks/tip/height", token)
        try:
            return int(response.text.strip())
        except ValueError:
            raise ApiError(ApiErrorCode.API_UNAVAILABLE, "Invalid tip height response")
