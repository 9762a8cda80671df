#!/usr/bin/env python3
"""
am-i.exposed - Bitcoin Privacy Scanner
Main FastAPI Application
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Dict, Optional

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware

from amiexposed.api import analysis
from amiexposed.config import settings
from amiexposed.core.client import create_api_client
from amiexposed.core.networks import BitcoinNetwork, parse_network
from amiexposed.core.probe import BackendProbe
from amiexposed.core.sanctions import SanctionsScreener
from amiexposed.core.session import AnalysisPhase, AnalysisService, AnalysisState

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger("amiexposed")


async def get_health_data(app: FastAPI) -> Dict:
    """Health of the service and its explorer backend. The probe caches its result."""
    probe = await app.state.probe.check()
    return {
        "status": "healthy" if probe.reachable else "degraded",
        "timestamp": datetime.utcnow().isoformat(),
        "network": settings.DEFAULT_NETWORK,
        "components": {
            "explorer": probe.to_dict(),
            "sanctions_list": {
                "addresses": len(app.state.screener),
                "last_updated": app.state.screener.last_updated,
            },
        },
    }


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info("=" * 60)
    logger.info("am-i.exposed Starting Up")
    logger.info("=" * 60)

    if not hasattr(app.state, "api_factory"):
        app.state.api_factory = create_api_client
    if not hasattr(app.state, "screener"):
        app.state.screener = SanctionsScreener()
    logger.info(f"✓ Sanctions list loaded - {len(app.state.screener)} addresses")

    network = parse_network(settings.DEFAULT_NETWORK)
    probe_api = app.state.api_factory(network)
    app.state.probe = BackendProbe(probe_api)
    probe = await app.state.probe.check()
    if probe.reachable:
        logger.info(f"✓ Explorer reachable ({probe.backend}) - Block height: {probe.tip_height}")
    else:
        logger.warning(f"⚠ Explorer not reachable ({probe.backend}): {probe.error}")

    logger.info("=" * 60)
    logger.info("am-i.exposed Ready")
    logger.info(f"API: http://0.0.0.0:{settings.API_PORT}")
    logger.info(f"Docs: http://0.0.0.0:{settings.API_PORT}/docs")
    logger.info("=" * 60)

    yield

    # Cleanup
    logger.info("am-i.exposed shutting down...")
    await probe_api.aclose()


# Create FastAPI app
app = FastAPI(
    title="am-i.exposed",
    description="Bitcoin privacy scanner - score what chain surveillance can infer from a transaction or address",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc"
)

# CORS middleware (LAN only in production)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routers
app.include_router(analysis.router, prefix="/api/v1", tags=["Analysis"])


@app.get("/")
async def root():
    """Root endpoint - basic info."""
    return {
        "service": "am-i.exposed",
        "version": "1.0.0",
        "status": "operational",
        "timestamp": datetime.utcnow().isoformat()
    }


@app.get("/health")
async def health_check():
    """Health check at root level."""
    return await get_health_data(app)


@app.get("/api/v1/health")
async def api_health_check():
    """Health check at API path."""
    return await get_health_data(app)


# ============== WebSocket ==============

def _outcome(state: AnalysisState) -> Dict:
    if state.phase is AnalysisPhase.ERROR:
        return {
            "type": "error",
            "code": state.error_code.value if state.error_code else None,
            "detail": state.error,
        }
    return {"type": "result", "state": state.to_dict()}


async def _run(service: AnalysisService, action: str, query: str, outbox: asyncio.Queue):
    if action == "check":
        state = await service.check_destination(query)
    else:
        state = await service.analyze(query)
    # None: superseded by a newer request or cancelled
    if state is not None:
        await outbox.put(_outcome(state))


async def _pump(websocket: WebSocket, outbox: asyncio.Queue):
    while True:
        message = await outbox.get()
        await websocket.send_json(message)


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """
    Live analysis progress.

    Client sends {"action": "analyze" | "check" | "cancel", "query", "network"}.
    Server streams {"type": "step" | "state" | "result" | "error"} messages.
    One analysis runs per connection; a new request supersedes the previous one.
    """
    await websocket.accept()
    outbox: asyncio.Queue = asyncio.Queue()
    sender = asyncio.create_task(_pump(websocket, outbox))
    services: Dict[BitcoinNetwork, AnalysisService] = {}
    current: Optional[AnalysisService] = None
    running: Optional[asyncio.Task] = None

    def make_service(network: BitcoinNetwork) -> AnalysisService:
        return AnalysisService(
            network=network,
            api=websocket.app.state.api_factory(network),
            screener=websocket.app.state.screener,
            on_state=lambda state: outbox.put_nowait({"type": "state", "phase": state.phase.value}),
            on_step=lambda step: outbox.put_nowait({"type": "step", "step": step.to_dict()}),
        )

    try:
        while True:
            message = await websocket.receive_json()
            action = message.get("action")

            if action == "cancel":
                if current is not None:
                    current.reset()
                continue

            if action not in ("analyze", "check"):
                await outbox.put({"type": "error", "code": "INVALID_INPUT", "detail": f"Unknown action: {action}"})
                continue

            try:
                network = parse_network(message.get("network") or settings.DEFAULT_NETWORK)
            except ValueError as e:
                await outbox.put({"type": "error", "code": "INVALID_INPUT", "detail": str(e)})
                continue

            if current is not None and current.network is not network:
                current.cancel()
            if network not in services:
                services[network] = make_service(network)
            current = services[network]
            running = asyncio.create_task(_run(current, action, message.get("query") or "", outbox))

    except WebSocketDisconnect:
        logger.debug("WebSocket client disconnected")
    except Exception as e:
        logger.warning(f"WebSocket error: {e}")
    finally:
        if running is not None and not running.done():
            running.cancel()
        sender.cancel()
        for service in services.values():
            service.cancel()
            await service.api.aclose()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "amiexposed.main:app",
        host="0.0.0.0",
        port=settings.API_PORT,
        reload=settings.DEBUG
    )
