"""
IOTA Chain Context Management

Network configuration and ledger client setup, without console dependencies.
"""

from typing import Optional

from .client import JsonRpcLedgerClient
from .enums import NetworkType


NETWORK_RPC_URLS = {
    NetworkType.MAINNET: "https://api.mainnet.iota.cafe",
    NetworkType.TESTNET: "https://api.testnet.iota.cafe",
    NetworkType.DEVNET: "https://api.devnet.iota.cafe",
    NetworkType.LOCALNET: "http://127.0.0.1:9000",
}


class IotaChainContext:
    """Manages IOTA network configuration and the ledger client"""

    def __init__(
        self,
        network: NetworkType = NetworkType.TESTNET,
        rpc_url: Optional[str] = None,
        request_timeout: float = 30.0,
    ):
        """
        Initialize chain context

        Args:
            network: Network type
            rpc_url: JSON-RPC endpoint, defaults to the public node of the network
            request_timeout: Per-request timeout in seconds
        """
        self.network = NetworkType(network)
        self.rpc_url = rpc_url or NETWORK_RPC_URLS[self.network]
        self.request_timeout = request_timeout
        self.explorer = f"https://explorer.iota.org/?network={self.network.value}"
        self._client: Optional[JsonRpcLedgerClient] = None

    @classmethod
    def from_settings(cls, settings) -> "IotaChainContext":
        return cls(settings.network, settings.rpc_url, settings.request_timeout)

    def get_client(self) -> JsonRpcLedgerClient:
        """Get (and lazily create) the JSON-RPC ledger client"""
        if self._client is None:
            self._client = JsonRpcLedgerClient(self.rpc_url, timeout=self.request_timeout)
        return self._client

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    def get_network_info(self) -> dict:
        """
        Get network configuration information

        Returns:
            Dictionary containing network information
        """
        return {
            "network": self.network.value,
            "rpc_url": self.rpc_url,
            "explorer": self.explorer,
        }

    def get_explorer_url(self, digest: str) -> str:
        """Explorer URL for a transaction digest"""
        return f"https://explorer.iota.org/txblock/{digest}?network={self.network.value}"
