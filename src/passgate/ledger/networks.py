"""Network configuration for PASSGATE.

The cluster name comes from the persisted token config. An explicit RPC
endpoint from the environment always wins over the public cluster URL.
"""

from dataclasses import dataclass

CLUSTER_RPC_URLS = {
    "devnet": "https://api.devnet.solana.com",
    "testnet": "https://api.testnet.solana.com",
    "mainnet-beta": "https://api.mainnet-beta.solana.com",
    "localnet": "http://127.0.0.1:8899",
}

EXPLORER_URL = "https://explorer.solana.com"


@dataclass
class NetworkInfo:
    """Network information derived from runtime config.

    Attributes
    ----------
    cluster : str
        Cluster name (devnet, testnet, mainnet-beta, localnet).
    rpc_endpoint : str
        The RPC endpoint URL.
    """

    cluster: str
    rpc_endpoint: str

    @classmethod
    def for_cluster(cls, cluster: str, rpc_endpoint: str | None = None) -> "NetworkInfo":
        """Build network info for a named cluster.

        Parameters
        ----------
        cluster : str
            Cluster name from the token config.
        rpc_endpoint : str | None
            Optional override for the RPC URL.

        Raises
        ------
        ValueError
            If the cluster is unknown and no endpoint override is given.
        """
        if rpc_endpoint:
            return cls(cluster=cluster, rpc_endpoint=rpc_endpoint)
        try:
            return cls(cluster=cluster, rpc_endpoint=CLUSTER_RPC_URLS[cluster])
        except KeyError:
            raise ValueError(
                f"Unknown cluster {cluster!r}; set PASSGATE_RPC_ENDPOINT explicitly"
            ) from None

    def _cluster_query(self) -> str:
        if self.cluster == "mainnet-beta":
            return ""
        if self.cluster == "localnet":
            return f"?cluster=custom&customUrl={self.rpc_endpoint}"
        return f"?cluster={self.cluster}"

    def get_tx_url(self, signature: str) -> str:
        """Get the explorer URL for a transaction signature."""
        return f"{EXPLORER_URL}/tx/{signature}{self._cluster_query()}"

    def get_address_url(self, address: str) -> str:
        """Get the explorer URL for an account."""
        return f"{EXPLORER_URL}/address/{address}{self._cluster_query()}"
