"""
am-i.exposed - Backend Probe
Memoized reachability check of the configured explorer backend.
"""
import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from amiexposed.config import settings
from amiexposed.core.client import ResilientApiClient
from amiexposed.core.esplora import ApiError

logger = logging.getLogger("amiexposed.probe")


@dataclass
class ProbeResult:
    reachable: bool
    backend: str
    tip_height: Optional[int] = None
    error: Optional[str] = None
    checked_at: float = 0.0

    def to_dict(self) -> Dict:
        return {
            "reachable": self.reachable,
            "backend": self.backend,
            "tip_height": self.tip_height,
            "error": self.error,
            "checked_at": self.checked_at,
        }


class BackendProbe:
    """
    Asks the backend for its tip height.

    The result is cached for `ttl` seconds. Concurrent callers share one
    in-flight probe.
    """

    def __init__(self, api: ResilientApiClient, ttl: float = None, clock: Callable[[], float] = time.monotonic):
        self.api = api
        self.ttl = settings.PROBE_TTL_SECONDS if ttl is None else ttl
        self._clock = clock
        self._cached: Optional[ProbeResult] = None
        self._lock = asyncio.Lock()

    def reset(self):
        self._cached = None

    def _fresh(self) -> bool:
        return self._cached is not None and self._clock() - self._cached.checked_at < self.ttl

    async def check(self) -> ProbeResult:
        if self._fresh():
            return self._cached
        async with self._lock:
            if self._fresh():
                return self._cached
            self._cached = await self._probe()
            return self._cached

    async def _probe(self) -> ProbeResult:
        backend = self.api.primary.name
        try:
            height = await self.api.get_tip_height()
        except ApiError as e:
            logger.warning(f"Backend probe failed: {e.code.value} {e.message}")
            return ProbeResult(reachable=False, backend=backend, error=e.code.value, checked_at=self._clock())
        return ProbeResult(reachable=True, backend=backend, tip_height=height, checked_at=self._clock())
