"""
Network identifier conversion tests (v1 chain IDs / legacy names <-> CAIP-2).
"""

import pytest

from x402_facilitator.adapters.evm.chains import DEFAULT_CHAINS
from x402_facilitator.adapters.evm.networks import (
    get_mainnets,
    get_network,
    get_testnets,
    is_valid_network,
    parse_caip2,
    resolve_chain_id,
    supported_networks,
    to_v1_network_id,
    to_v2_network_id,
)
from x402_facilitator.engine.exceptions import UnsupportedNetworkError


class TestRoundTrip:
    """Both directions are total over the supported chains and lossless."""

    @pytest.mark.parametrize("caip2", supported_networks())
    def test_v2_to_v1_to_v2(self, caip2):
        assert to_v2_network_id(to_v1_network_id(caip2)) == caip2

    @pytest.mark.parametrize("chain_id", [c.chain_id for c in DEFAULT_CHAINS])
    def test_v1_to_v2_to_v1(self, chain_id):
        assert to_v1_network_id(to_v2_network_id(chain_id)) == chain_id

    def test_legacy_names_resolve(self):
        assert to_v2_network_id("base") == "eip155:8453"
        assert to_v2_network_id("base-sepolia") == "eip155:84532"
        assert to_v2_network_id("8453") == "eip155:8453"


class TestRejections:

    @pytest.mark.parametrize("value", [
        "eip155:999999",
        "solana:5eykt4UsFv8P8NJdTREpY1vzqKqZKvdp",
        "eip155:",
        "eip155:08453",
        "eip155:abc",
        "8453",
        "",
    ])
    def test_to_v1_rejects(self, value):
        with pytest.raises(UnsupportedNetworkError):
            to_v1_network_id(value)

    @pytest.mark.parametrize("value", [999999, "unknown-chain", True, None, 3.5])
    def test_to_v2_rejects(self, value):
        with pytest.raises(UnsupportedNetworkError):
            to_v2_network_id(value)

    def test_parse_caip2_accepts_unknown_chain(self):
        assert parse_caip2("eip155:999999") == 999999


class TestLookups:

    def test_get_network(self):
        assert get_network("eip155:137").name == "Polygon"
        assert get_network(137).name == "Polygon"
        assert get_network("polygon").chain_id == 137
        assert get_network("eip155:5") is None

    def test_is_valid_network(self):
        assert is_valid_network("eip155:11155111")
        assert not is_valid_network("eip155:5")

    def test_resolve_chain_id(self):
        assert resolve_chain_id("eip155:8453") == resolve_chain_id(8453) == resolve_chain_id("base")

    def test_mainnets_and_testnets(self):
        assert all(not c.testnet for c in get_mainnets())
        assert all(c.testnet for c in get_testnets())
        assert len(get_mainnets()) + len(get_testnets()) == len(DEFAULT_CHAINS)
