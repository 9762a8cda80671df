"""
am-i.exposed - Network Configuration
Explorer endpoints per supported Bitcoin network.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional


class BitcoinNetwork(str, Enum):
    MAINNET = "mainnet"
    TESTNET4 = "testnet4"
    SIGNET = "signet"

    @property
    def is_test(self) -> bool:
        return self is not BitcoinNetwork.MAINNET


@dataclass(frozen=True)
class NetworkConfig:
    """Explorer endpoints for one network."""
    mempool_base_url: str
    esplora_base_url: str
    explorer_url: str

    @property
    def has_fallback(self) -> bool:
        return self.esplora_base_url != self.mempool_base_url


NETWORK_CONFIG: Dict[BitcoinNetwork, NetworkConfig] = {
    BitcoinNetwork.MAINNET: NetworkConfig(
        mempool_base_url="https://mempool.space/api",
        esplora_base_url="https://blockstream.info/api",
        explorer_url="https://mempool.space",
    ),
    BitcoinNetwork.TESTNET4: NetworkConfig(
        mempool_base_url="https://mempool.space/testnet4/api",
        esplora_base_url="https://mempool.space/testnet4/api",
        explorer_url="https://mempool.space/testnet4",
    ),
    BitcoinNetwork.SIGNET: NetworkConfig(
        mempool_base_url="https://mempool.space/signet/api",
        esplora_base_url="https://mempool.space/signet/api",
        explorer_url="https://mempool.space/signet",
    ),
}


def parse_network(value: Optional[str]) -> BitcoinNetwork:
    """Parse a network name, raising ValueError for unknown networks."""
    if not value:
        return BitcoinNetwork.MAINNET
    try:
        return BitcoinNetwork(value.lower())
    except ValueError:
        raise ValueError(f"Unknown network: {value}")


def get_network_config(network: BitcoinNetwork) -> NetworkConfig:
    return NETWORK_CONFIG[network]
