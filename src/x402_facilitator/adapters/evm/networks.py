"""
x402 Network Identifier Conversion

x402 version 1 names a network by its numeric EIP-155 chain ID (older
clients also send the legacy name, e.g. ``"base-sepolia"``); version 2 uses
the CAIP-2 identifier ``eip155:<chain_id>``. This module converts between the
two for every supported chain:

    to_v1_network_id("eip155:8453")  -> 8453
    to_v2_network_id(8453)           -> "eip155:8453"
    to_v2_network_id("base")         -> "eip155:8453"

Both directions are defined for every chain in ``DEFAULT_CHAINS`` and
``to_v2_network_id(to_v1_network_id(x)) == x`` for every CAIP-2 id ``x``.
"""

from types import MappingProxyType
from typing import List, Mapping, Optional, Union

from .chains import DEFAULT_CHAINS, ChainConfig
from ...engine.exceptions import UnsupportedNetworkError

CAIP2_NAMESPACE = "eip155"

NetworkId = Union[int, str]

_BY_CHAIN_ID: Mapping[int, ChainConfig] = MappingProxyType(
    {config.chain_id: config for config in DEFAULT_CHAINS}
)
_BY_LEGACY_NAME: Mapping[str, int] = MappingProxyType(
    {config.network: config.chain_id for config in DEFAULT_CHAINS}
)


def parse_caip2(caip2: str) -> int:
    """
    Parse an ``eip155:<chain_id>`` identifier into its integer chain ID.

    Only the syntax is checked here; support is checked by the converters.

    Raises:
        UnsupportedNetworkError: If the namespace is not ``eip155`` or the
            reference is not a positive decimal integer.
    """
    if not isinstance(caip2, str) or not caip2.strip():
        raise UnsupportedNetworkError(f"Invalid CAIP-2 identifier: {caip2!r}")

    parts = caip2.strip().split(":")
    if len(parts) != 2 or parts[0] != CAIP2_NAMESPACE:
        raise UnsupportedNetworkError(
            f"Invalid CAIP-2 format: '{caip2}'. Expected format 'eip155:<chain_id>'"
        )

    reference = parts[1]
    if not reference.isdigit() or reference.startswith("0"):
        raise UnsupportedNetworkError(
            f"Invalid chain reference in '{caip2}': must be a positive integer"
        )
    return int(reference)


def _chain_id_from_v1(network: NetworkId) -> int:
    if isinstance(network, bool):
        raise UnsupportedNetworkError(f"Unsupported v1 network: {network!r}")
    if isinstance(network, int):
        return network
    if isinstance(network, str):
        value = network.strip()
        if value.isdigit():
            return int(value)
        if value.lower() in _BY_LEGACY_NAME:
            return _BY_LEGACY_NAME[value.lower()]
    raise UnsupportedNetworkError(f"Unsupported v1 network: {network!r}")


def to_v1_network_id(caip2: str) -> int:
    """
    Convert a v2 CAIP-2 network identifier to the v1 numeric chain ID.

    Raises:
        UnsupportedNetworkError: Malformed identifier or unsupported chain.
    """
    chain_id = parse_caip2(caip2)
    if chain_id not in _BY_CHAIN_ID:
        raise UnsupportedNetworkError(f"Unsupported network: {caip2}")
    return chain_id


def to_v2_network_id(network: NetworkId) -> str:
    """
    Convert a v1 network (chain ID, digit string or legacy name) to CAIP-2.

    Raises:
        UnsupportedNetworkError: Unknown network.
    """
    chain_id = _chain_id_from_v1(network)
    if chain_id not in _BY_CHAIN_ID:
        raise UnsupportedNetworkError(f"Unsupported network: {network!r}")
    return f"{CAIP2_NAMESPACE}:{chain_id}"


def resolve_chain_id(network: NetworkId) -> int:
    """Chain ID for any supported v1 or v2 network identifier."""
    if isinstance(network, str) and network.strip().startswith(f"{CAIP2_NAMESPACE}:"):
        return to_v1_network_id(network)
    return to_v1_network_id(to_v2_network_id(network))


def get_network(network: NetworkId) -> Optional[ChainConfig]:
    """Default chain configuration for a network identifier, or ``None``."""
    try:
        return _BY_CHAIN_ID[resolve_chain_id(network)]
    except UnsupportedNetworkError:
        return None


def is_valid_network(network: NetworkId) -> bool:
    return get_network(network) is not None


def get_mainnets() -> List[ChainConfig]:
    return [config for config in _BY_CHAIN_ID.values() if not config.testnet]


def get_testnets() -> List[ChainConfig]:
    return [config for config in _BY_CHAIN_ID.values() if config.testnet]


def supported_networks() -> List[str]:
    """CAIP-2 identifiers of every supported chain, sorted by chain ID."""
    return [f"{CAIP2_NAMESPACE}:{chain_id}" for chain_id in sorted(_BY_CHAIN_ID)]
