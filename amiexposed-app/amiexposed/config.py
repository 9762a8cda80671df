"""
am-i.exposed - Configuration
Settings are read from the environment (or a local .env file).
"""
from pathlib import Path
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

DATA_DIR = Path(__file__).parent / "data"


class Settings(BaseSettings):
    """Application settings."""
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # API server
    API_PORT: int = 3000
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Upstream explorer
    DEFAULT_NETWORK: str = "mainnet"
    MEMPOOL_API_URL: Optional[str] = None  # self-hosted mempool/esplora instance
    REQUEST_TIMEOUT: float = 15.0
    MAX_RETRIES: int = 3
    RETRY_DELAYS: List[float] = [1.0, 2.0, 4.0]
    RETRY_AFTER_CAP: float = 10.0

    # Prevout enrichment
    ENRICH_MAX_PARENTS: int = 50
    ENRICH_CONCURRENCY: int = 4

    # First-degree cluster walk
    CLUSTER_MAX_TXS: int = 50
    CLUSTER_MAX_CHANGE_FOLLOWS: int = 10
    CLUSTER_CHANGE_TXS: int = 20
    CLUSTER_THROTTLE_SECONDS: float = 0.2

    # Delay between heuristic steps so progress is visible to streaming clients
    HEURISTIC_STEP_DELAY: float = 0.0

    # Sanctions screening
    OFAC_LIST_PATH: Path = DATA_DIR / "ofac_addresses.json"

    # Health probe cache
    PROBE_TTL_SECONDS: float = 10.0


settings = Settings()
