"""
IOTA Offchain Configuration

Network endpoint, key material location and the on-chain identifiers of the
token package. Everything loads from environment variables (prefix ``IOTA_``)
or a .env file; the core never hardcodes identifiers.
"""

from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .enums import NetworkType


# Get the project root directory (two levels up from src/iota_offchain/)
PROJECT_ROOT = Path(__file__).parent.parent.parent


class IotaSettings(BaseSettings):
    """
    Settings for building and submitting transactions

    Network and key settings have sensible testnet defaults; the package and
    object identifiers of the token contract must be provided.
    """

    # ============================================================================
    # Network
    # ============================================================================

    network: NetworkType = NetworkType.TESTNET
    rpc_url: Optional[str] = None  # Defaults to the public node of the network
    request_timeout: float = 30.0

    # ============================================================================
    # Keys
    # ============================================================================

    keystore_path: Path = Path.home() / ".iota" / "iota_config" / "iota.keystore"
    sender_index: int = Field(default=0, ge=0)

    # ============================================================================
    # Execution
    # ============================================================================

    gas_budget: int = Field(default=50_000_000, gt=0)
    confirmation_timeout: float = Field(default=60.0, gt=0)
    poll_interval: float = Field(default=1.0, gt=0)
    max_submit_attempts: int = Field(default=2, ge=1)

    # ============================================================================
    # Token contract
    # ============================================================================

    package_id: str = ""
    treasury_cap_id: str = ""
    shared_counter_id: str = ""
    initial_shared_version: int = 6286155
    mint_count: int = Field(default=3, ge=1)
    split_amount: int = Field(default=5, gt=0)

    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_prefix="IOTA_",
        env_file=str(PROJECT_ROOT / ".env"),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @property
    def has_contract(self) -> bool:
        """Check if the token contract identifiers are configured"""
        return bool(self.package_id and self.treasury_cap_id and self.shared_counter_id)


def get_settings(**overrides) -> IotaSettings:
    """Load settings from the environment, applying explicit overrides"""
    return IotaSettings(**overrides)
