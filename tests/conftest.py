"""
Pytest configuration

Shared fixtures: a deterministic keypair and signer, an in-memory ledger with
the token contract's shared objects, and a driver wired to both.
"""

from pathlib import Path

import pytest
from dotenv import load_dotenv

from iota_offchain.driver import ExecutionDriver
from iota_offchain.tokens import FlagContract, TokenOperations
from iota_offchain.types import ObjectInfo
from iota_offchain.wallet import Ed25519Keypair, KeystoreSigner

from tests.mocks import (
    COUNTER_ID,
    PACKAGE_ID,
    TREASURY_CAP_ID,
    FakeClock,
    MockLedgerClient,
    shared_ref,
)


@pytest.fixture(scope="session", autouse=True)
def load_env():
    """Load test environment variables (tests/.env), if present"""
    env_file = Path(__file__).parent / ".env"
    if env_file.exists():
        load_dotenv(env_file)

    yield


# Key fixtures
@pytest.fixture
def keypair():
    """Deterministic Ed25519 keypair"""
    return Ed25519Keypair.from_seed(bytes(range(32)))


@pytest.fixture
def sender(keypair):
    return keypair.address


@pytest.fixture
def signer(keypair):
    return KeystoreSigner([keypair])


# Ledger fixtures
@pytest.fixture
def contract():
    """Token contract with its shared treasury cap and counter"""
    return FlagContract(
        package_id=PACKAGE_ID,
        treasury_cap=shared_ref(TREASURY_CAP_ID),
        counter=shared_ref(COUNTER_ID),
    )


@pytest.fixture
def ledger(contract):
    """Mock ledger that knows the contract's shared objects"""
    client = MockLedgerClient()
    client.add_object(ObjectInfo(contract.treasury_cap, f"0x2::coin::TreasuryCap<{contract.token_type}>"))
    client.add_object(ObjectInfo(contract.counter, f"{PACKAGE_ID}::mintcoin::Counter"))
    return client


@pytest.fixture
def funded_ledger(ledger, sender):
    """Ledger where the sender owns one gas coin"""
    ledger.add_gas_coin(sender, 900)
    return ledger


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def driver(funded_ledger, signer, sender, clock):
    return ExecutionDriver(
        funded_ledger,
        signer,
        sender,
        confirmation_timeout=5.0,
        poll_interval=1.0,
        sleep=clock.sleep,
        clock=clock,
    )


@pytest.fixture
def token_ops(contract, sender, driver):
    return TokenOperations(contract, sender, driver)
