"""Tests for configuration and debug output."""

import pytest

from eacc.config import (
    ARBITRUM_ONE,
    DEFAULT_RPC_URL,
    NETWORK_ADDRESSES,
    ClientConfig,
    IpfsConfig,
    debug,
    get_network_addresses,
    is_network_supported,
)
from eacc.errors import UnsupportedNetwork


class TestNetworks:
    def test_arbitrum_one_supported(self):
        assert is_network_supported(ARBITRUM_ONE)
        assert get_network_addresses(ARBITRUM_ONE) is NETWORK_ADDRESSES[ARBITRUM_ONE]

    def test_unknown_chain(self):
        assert not is_network_supported(1)
        with pytest.raises(UnsupportedNetwork, match="Unsupported network: 1"):
            ClientConfig.for_network(1)


class TestFromEnv:
    def test_defaults(self):
        config = ClientConfig.from_env()

        assert config.chain_id == ARBITRUM_ONE
        assert config.rpc_url == DEFAULT_RPC_URL
        assert config.marketplace_v2_address == NETWORK_ADDRESSES[ARBITRUM_ONE].marketplace_v2
        assert config.ipfs.api_key is None

    def test_overrides(self, monkeypatch):
        """EACC_* variables replace the address book and endpoints."""
        monkeypatch.setenv("EACC_CHAIN_ID", "31337")
        monkeypatch.setenv("EACC_RPC_URL", "http://127.0.0.1:8545")
        monkeypatch.setenv("EACC_MARKETPLACE_V2", "0x" + "11" * 20)
        monkeypatch.setenv("EACC_MARKETPLACE_DATA_V1", "0x" + "12" * 20)
        monkeypatch.setenv("EACC_IPFS_GATEWAY", "https://dweb.link/ipfs/")
        monkeypatch.setenv("EACC_IPFS_TIMEOUT", "5")
        monkeypatch.setenv("PINATA_API_KEY", "key")

        config = ClientConfig.from_env()

        assert config.chain_id == 31337
        assert config.rpc_url == "http://127.0.0.1:8545"
        assert config.marketplace_data_v1_address == "0x" + "12" * 20
        assert config.ipfs.gateway == "https://dweb.link/ipfs/"
        assert config.ipfs.timeout == 5.0
        assert config.ipfs.api_key == "key"

    def test_unknown_chain_without_addresses(self, monkeypatch):
        monkeypatch.setenv("EACC_CHAIN_ID", "5")

        with pytest.raises(UnsupportedNetwork):
            ClientConfig.from_env()

    def test_overridden_chain_fails_network_check(self, monkeypatch):
        """Explicit addresses load, but the client still refuses an unknown chain."""
        monkeypatch.setenv("EACC_CHAIN_ID", "5")
        monkeypatch.setenv("EACC_MARKETPLACE_V2", "0x" + "11" * 20)
        monkeypatch.setenv("EACC_MARKETPLACE_DATA_V1", "0x" + "12" * 20)

        config = ClientConfig.from_env()

        with pytest.raises(UnsupportedNetwork):
            config.check_network()

    def test_ipfs_defaults(self):
        ipfs = IpfsConfig.from_env()

        assert ipfs.gateway == "https://ipfs.io/ipfs/"
        assert ipfs.timeout == 30.0


class TestDebug:
    def test_silent_by_default(self, capsys):
        debug("hello")

        assert capsys.readouterr().out == ""

    def test_prints_when_enabled(self, monkeypatch, capsys):
        monkeypatch.setenv("EACC_DEBUG", "1")

        debug("hello")

        assert capsys.readouterr().out == "[EACC] hello\n"
