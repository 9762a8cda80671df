"""
am-i.exposed - Analysis API
Endpoints for input classification, privacy analysis, pre-send checks,
cluster analysis and sanctions screening.
"""
import logging
from typing import List, Optional

from fastapi import APIRouter, HTTPException, Query, Request
from pydantic import BaseModel, Field

from amiexposed.config import settings
from amiexposed.core.cluster import analyze_cluster
from amiexposed.core.detect_input import InputType, clean_input, detect_input_type, get_address_type
from amiexposed.core.esplora import ApiError, ApiErrorCode
from amiexposed.core.networks import BitcoinNetwork, get_network_config, parse_network
from amiexposed.core.session import ERROR_MESSAGES, AnalysisPhase, AnalysisService, AnalysisState

logger = logging.getLogger("amiexposed.api.analysis")

router = APIRouter()

ERROR_STATUS = {
    ApiErrorCode.INVALID_INPUT: 400,
    ApiErrorCode.NOT_FOUND: 404,
    ApiErrorCode.RATE_LIMITED: 429,
    ApiErrorCode.NETWORK_ERROR: 502,
    ApiErrorCode.API_UNAVAILABLE: 503,
}


class OfacRequest(BaseModel):
    """Addresses to screen against the sanctions list."""
    addresses: List[str] = Field(..., min_length=1, max_length=1000)


def _network(value: Optional[str]) -> BitcoinNetwork:
    try:
        return parse_network(value or settings.DEFAULT_NETWORK)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


def _service(request: Request, network: BitcoinNetwork) -> AnalysisService:
    factory = request.app.state.api_factory
    return AnalysisService(
        network=network,
        api=factory(network),
        screener=request.app.state.screener,
    )


def _raise_for_state(state: AnalysisState):
    if state.phase is not AnalysisPhase.ERROR:
        return
    status = ERROR_STATUS.get(state.error_code, 500)
    raise HTTPException(status_code=status, detail=state.error)


@router.get("/detect")
async def detect(
    q: str = Query(..., description="Transaction ID, address or explorer URL"),
    network: Optional[str] = Query(None, description="mainnet, testnet4 or signet"),
):
    """
    Classify raw input for a network.

    Returns the cleaned value, its type (txid, address, invalid) and, for
    addresses, the script type.
    """
    net = _network(network)
    value = clean_input(q)
    input_type = detect_input_type(q, net)
    return {
        "query": q,
        "value": value,
        "network": net.value,
        "input_type": input_type.value,
        "address_type": get_address_type(value) if input_type is InputType.ADDRESS else None,
    }


@router.get("/analyze")
async def analyze(
    request: Request,
    q: str = Query(..., description="Transaction ID, address or explorer URL"),
    network: Optional[str] = Query(None, description="mainnet, testnet4 or signet"),
):
    """
    Full privacy analysis of a transaction or address.

    Returns the score, grade and findings, plus the fetched data and a
    per-transaction breakdown for addresses.
    """
    net = _network(network)
    service = _service(request, net)
    try:
        state = await service.analyze(q)
    except Exception as e:
        logger.error(f"Analysis error for {q}: {e}")
        raise HTTPException(status_code=500, detail=str(e))
    finally:
        await service.api.aclose()

    _raise_for_state(state)
    data = state.to_dict()
    data["network"] = net.value
    data["explorer_url"] = get_network_config(net).explorer_url
    return data


@router.get("/check/{address}")
async def check_destination(
    request: Request,
    address: str,
    network: Optional[str] = Query(None, description="mainnet, testnet4 or signet"),
):
    """
    Pre-send check of a destination address.

    Sanctioned addresses are reported as CRITICAL without contacting the
    block explorer.
    """
    net = _network(network)
    service = _service(request, net)
    try:
        state = await service.check_destination(address)
    except Exception as e:
        logger.error(f"Destination check error for {address}: {e}")
        raise HTTPException(status_code=500, detail=str(e))
    finally:
        await service.api.aclose()

    _raise_for_state(state)
    return state.to_dict()


@router.get("/cluster/{address}")
async def cluster(
    request: Request,
    address: str,
    network: Optional[str] = Query(None, description="mainnet, testnet4 or signet"),
):
    """
    First-degree cluster of an address.

    Groups the address with every co-input of its spends, then follows
    detected change one hop. CoinJoin transactions are skipped.
    """
    net = _network(network)
    value = clean_input(address)
    if detect_input_type(value, net) is not InputType.ADDRESS:
        raise HTTPException(status_code=400, detail="Cluster analysis only works with addresses.")

    api = request.app.state.api_factory(net)
    try:
        result = await analyze_cluster(api, value)
    except ApiError as e:
        raise HTTPException(status_code=ERROR_STATUS.get(e.code, 500), detail=ERROR_MESSAGES.get(e.code, e.message))
    finally:
        await api.aclose()

    data = result.to_dict()
    data["network"] = net.value
    return data


@router.post("/ofac")
async def check_ofac(request: Request, body: OfacRequest):
    """Screen addresses against the local OFAC SDN list."""
    result = request.app.state.screener.check(body.addresses)
    if result.sanctioned:
        logger.warning(f"Sanctioned address match: {result.matched_addresses}")
    return result.to_dict()
