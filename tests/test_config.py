"""
Configuration and Entry Point Tests
"""

import logging

import pytest
from pydantic import ValidationError

from iota_offchain.__main__ import main
from iota_offchain.chain_context import NETWORK_RPC_URLS, IotaChainContext
from iota_offchain.config import IotaSettings, get_settings
from iota_offchain.enums import NetworkType

from tests.mocks import COUNTER_ID, PACKAGE_ID, TREASURY_CAP_ID


@pytest.fixture
def contract_env(monkeypatch, tmp_path):
    monkeypatch.setenv("IOTA_PACKAGE_ID", PACKAGE_ID)
    monkeypatch.setenv("IOTA_TREASURY_CAP_ID", TREASURY_CAP_ID)
    monkeypatch.setenv("IOTA_SHARED_COUNTER_ID", COUNTER_ID)
    monkeypatch.setenv("IOTA_KEYSTORE_PATH", str(tmp_path / "missing.keystore"))


class TestSettings:
    """Tests for environment-driven settings"""

    def test_defaults(self):
        settings = IotaSettings(_env_file=None)
        assert settings.network == NetworkType.TESTNET
        assert settings.gas_budget == 50_000_000
        assert settings.initial_shared_version == 6286155

    def test_from_environment(self, monkeypatch, contract_env):
        monkeypatch.setenv("IOTA_NETWORK", "devnet")
        monkeypatch.setenv("IOTA_GAS_BUDGET", "1000")
        settings = get_settings()
        assert settings.network == NetworkType.DEVNET
        assert settings.gas_budget == 1000
        assert settings.has_contract

    def test_invalid_values(self):
        with pytest.raises(ValidationError):
            get_settings(gas_budget=0)
        with pytest.raises(ValidationError):
            get_settings(max_submit_attempts=0)


class TestChainContext:
    """Tests for network configuration"""

    def test_default_endpoint(self):
        context = IotaChainContext(NetworkType.TESTNET)
        assert context.rpc_url == "https://api.testnet.iota.cafe"
        assert context.get_network_info()["network"] == "testnet"

    def test_explicit_endpoint(self):
        context = IotaChainContext("localnet", rpc_url="http://node:9000")
        assert context.rpc_url == "http://node:9000"
        assert NETWORK_RPC_URLS[NetworkType.LOCALNET] != context.rpc_url

    def test_client_is_lazy(self):
        context = IotaChainContext()
        assert context._client is None
        client = context.get_client()
        assert context.get_client() is client
        context.close()
        assert context._client is None

    def test_explorer_url(self):
        url = IotaChainContext(NetworkType.MAINNET).get_explorer_url("0xabc")
        assert "0xabc" in url and "mainnet" in url


class TestEntryPoint:
    """Tests for python -m iota_offchain"""

    def test_missing_contract(self, monkeypatch, caplog):
        for name in ("IOTA_PACKAGE_ID", "IOTA_TREASURY_CAP_ID", "IOTA_SHARED_COUNTER_ID"):
            monkeypatch.setenv(name, "")
        with caplog.at_level(logging.ERROR):
            assert main([]) == 2
        assert "IOTA_PACKAGE_ID" in caplog.text

    def test_missing_keystore(self, contract_env, caplog):
        with caplog.at_level(logging.ERROR):
            assert main(["--two-stage"]) == 1
        assert "Keystore not found" in caplog.text
