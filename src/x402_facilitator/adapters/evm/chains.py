"""
EVM Chain Configuration Registry

Static per-chain configuration for every network the facilitator can settle
on. A ``ChainRegistry`` is built once at process start, optionally applying
one RPC override environment variable per chain, and is read-only afterwards.
It is handed to the settlement executor at construction time; there is no
module-level mutable chain table.

Usage:
    registry = ChainRegistry.from_env()
    config = registry.lookup(8453)
    config.rpc_url      # BASE_RPC_URL if set, else https://mainnet.base.org
"""

import os
from types import MappingProxyType
from typing import Dict, Iterable, Iterator, List, Mapping, Optional

from pydantic import Field

from ...schemas.bases import FrozenModel
from ...engine.exceptions import UnsupportedChainError


class NativeCurrency(FrozenModel):
    """Native gas currency of a chain."""
    name: str
    symbol: str
    decimals: int = Field(default=18, ge=0)


class ChainConfig(FrozenModel):
    """
    EVM blockchain network configuration.

    Attributes:
        chain_id: EIP-155 chain ID.
        name: Human-readable network name.
        network: Legacy x402 v1 network name (e.g. "base-sepolia").
        native_currency: Currency the facilitator pays gas in.
        explorer_url: Block explorer base URL.
        rpc_url: JSON-RPC endpoint actually used for this chain.
        rpc_env_var: Environment variable that overrides ``rpc_url``.
        testnet: Whether the chain is a test network.
    """
    chain_id: int = Field(..., ge=1, description="EIP-155 chain ID")
    name: str = Field(..., description="Human-readable network name")
    network: str = Field(..., description="Legacy x402 v1 network name")
    native_currency: NativeCurrency
    explorer_url: str = Field(..., description="Block explorer URL")
    rpc_url: str = Field(..., min_length=1, description="JSON-RPC endpoint URL")
    rpc_env_var: str = Field(..., description="Environment variable overriding rpc_url")
    testnet: bool = Field(default=False)

    @property
    def caip2(self) -> str:
        """CAIP-2 identifier, e.g. ``eip155:8453``."""
        return f"eip155:{self.chain_id}"

    def tx_url(self, tx_hash: str) -> str:
        """Explorer link for a transaction hash."""
        return f"{self.explorer_url.rstrip('/')}/tx/{tx_hash}"


def _chain(
    chain_id: int,
    name: str,
    network: str,
    currency: str,
    symbol: str,
    explorer_url: str,
    rpc_url: str,
    rpc_env_var: str,
    testnet: bool = False,
) -> ChainConfig:
    return ChainConfig(
        chain_id=chain_id,
        name=name,
        network=network,
        native_currency=NativeCurrency(name=currency, symbol=symbol),
        explorer_url=explorer_url,
        rpc_url=rpc_url,
        rpc_env_var=rpc_env_var,
        testnet=testnet,
    )


# Public fallback endpoints; each one can be replaced via its rpc_env_var.
DEFAULT_CHAINS: List[ChainConfig] = [
    # Mainnets
    _chain(43114, "Avalanche C-Chain", "avalanche", "Avalanche", "AVAX",
           "https://snowtrace.io", "https://api.avax.network/ext/bc/C/rpc", "AVALANCHE_RPC_URL"),
    _chain(8453, "Base", "base", "Ether", "ETH",
           "https://basescan.org", "https://mainnet.base.org", "BASE_RPC_URL"),
    _chain(1, "Ethereum", "ethereum", "Ether", "ETH",
           "https://etherscan.io", "https://eth.llamarpc.com", "ETHEREUM_RPC_URL"),
    _chain(4689, "IoTeX", "iotex", "IOTX", "IOTX",
           "https://iotexscan.io", "https://babel-api.mainnet.iotex.io", "IOTEX_RPC_URL"),
    _chain(3338, "Peaq", "peaq", "PEAQ", "PEAQ",
           "https://peaq.subscan.io", "https://peaq.api.onfinality.io/public", "PEAQ_RPC_URL"),
    _chain(137, "Polygon", "polygon", "POL", "POL",
           "https://polygonscan.com", "https://polygon-rpc.com", "POLYGON_RPC_URL"),
    _chain(1329, "Sei", "sei", "SEI", "SEI",
           "https://seitrace.com", "https://evm-rpc.sei-apis.com", "SEI_RPC_URL"),
    _chain(196, "XLayer", "xlayer", "OKB", "OKB",
           "https://www.okx.com/explorer/xlayer", "https://rpc.xlayer.tech", "XLAYER_RPC_URL"),
    # Testnets
    _chain(43113, "Avalanche Fuji", "avalanche-fuji", "Avalanche", "AVAX",
           "https://testnet.snowtrace.io", "https://api.avax-test.network/ext/bc/C/rpc",
           "AVALANCHE_FUJI_RPC_URL", testnet=True),
    _chain(84532, "Base Sepolia", "base-sepolia", "Ether", "ETH",
           "https://sepolia.basescan.org", "https://sepolia.base.org", "BASE_SEPOLIA_RPC_URL", testnet=True),
    _chain(80002, "Polygon Amoy", "polygon-amoy", "POL", "POL",
           "https://amoy.polygonscan.com", "https://rpc-amoy.polygon.technology",
           "POLYGON_AMOY_RPC_URL", testnet=True),
    _chain(1328, "Sei Testnet", "sei-testnet", "SEI", "SEI",
           "https://testnet.seitrace.com", "https://evm-rpc-testnet.sei-apis.com",
           "SEI_TESTNET_RPC_URL", testnet=True),
    _chain(11155111, "Sepolia", "sepolia", "Sepolia Ether", "ETH",
           "https://sepolia.etherscan.io", "https://rpc.sepolia.org", "SEPOLIA_RPC_URL", testnet=True),
    _chain(195, "XLayer Testnet", "xlayer-testnet", "OKB", "OKB",
           "https://www.okx.com/explorer/xlayer-test", "https://testrpc.xlayer.tech",
           "XLAYER_TESTNET_RPC_URL", testnet=True),
]


class ChainRegistry:
    """
    Immutable chain ID -> ``ChainConfig`` lookup table.

    Built once (normally via :meth:`from_env`) and shared read-only by every
    settlement run. Tests construct registries from hand-made configs.

    Example:
        registry = ChainRegistry.from_env()
        if 8453 in registry:
            config = registry.lookup(8453)
    """

    def __init__(self, chains: Iterable[ChainConfig]):
        """
        Args:
            chains: Chain configurations; chain IDs must be unique.

        Raises:
            ValueError: If two configs share a chain ID.
        """
        table: Dict[int, ChainConfig] = {}
        for config in chains:
            if config.chain_id in table:
                raise ValueError(f"Duplicate chain ID in registry: {config.chain_id}")
            table[config.chain_id] = config
        self._chains: Mapping[int, ChainConfig] = MappingProxyType(table)

    @classmethod
    def from_env(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        chains: Optional[Iterable[ChainConfig]] = None,
    ) -> "ChainRegistry":
        """
        Build the registry, applying per-chain RPC overrides from the environment.

        Args:
            environ: Mapping to read overrides from (defaults to ``os.environ``).
            chains: Base configurations (defaults to ``DEFAULT_CHAINS``).

        Returns:
            ChainRegistry: Registry whose ``rpc_url`` values honour overrides.
        """
        env = os.environ if environ is None else environ
        configured = []
        for config in chains if chains is not None else DEFAULT_CHAINS:
            override = (env.get(config.rpc_env_var) or "").strip()
            if override:
                config = config.model_copy(update={"rpc_url": override})
            configured.append(config)
        return cls(configured)

    def lookup(self, chain_id: int) -> ChainConfig:
        """
        Return the configuration for ``chain_id``.

        Raises:
            UnsupportedChainError: If the chain is not configured.
        """
        if isinstance(chain_id, bool) or not isinstance(chain_id, int):
            raise UnsupportedChainError(chain_id)
        config = self._chains.get(chain_id)
        if config is None:
            raise UnsupportedChainError(chain_id)
        return config

    def get(self, chain_id: int) -> Optional[ChainConfig]:
        return self._chains.get(chain_id)

    def supported_chain_ids(self) -> List[int]:
        return sorted(self._chains)

    def __contains__(self, chain_id: object) -> bool:
        return chain_id in self._chains

    def __iter__(self) -> Iterator[ChainConfig]:
        return iter(self._chains.values())

    def __len__(self) -> int:
        return len(self._chains)

    def __repr__(self) -> str:
        return f"ChainRegistry(chains={self.supported_chain_ids()})"
