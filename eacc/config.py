"""
Configuration: network address book, client/IPFS settings, .env loading.

Values come from keyword arguments first, then the environment (a .env file in
the working directory is loaded without overriding existing variables).
"""

import os
from typing import Dict, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

from eacc.errors import UnsupportedNetwork

ARBITRUM_ONE = 42161
ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

DEFAULT_RPC_URL = "https://arb1.arbitrum.io/rpc"
DEFAULT_GATEWAY = "https://ipfs.io/ipfs/"
DEFAULT_IPFS_API = "https://api.pinata.cloud"
DEFAULT_IPFS_TIMEOUT = 30.0


class NetworkAddresses(BaseModel):
    marketplace_v2: str
    marketplace_data_v1: str
    unicrow: str = ZERO_ADDRESS
    unicrow_dispute: str = ZERO_ADDRESS
    unicrow_arbitrator: str = ZERO_ADDRESS
    eacc_token: str = ZERO_ADDRESS


NETWORK_ADDRESSES: Dict[int, NetworkAddresses] = {
    ARBITRUM_ONE: NetworkAddresses(
        marketplace_v2="0x405AcFbD1400A168fDd4aDA2D214e8Ae5FF7a624",
        marketplace_data_v1="0x0191ae69d05F11C7978cCCa2DE15653BaB509d9a",
        eacc_token="0x9Eeab030a17528eFb2aC0F81D76fab8754e461BD",
    ),
}


def load_env() -> None:
    """Load .env from the current directory; existing env vars win."""
    load_dotenv(override=False)


def debug(message: str) -> None:
    """Print a diagnostic line when EACC_DEBUG is set."""
    if os.getenv("EACC_DEBUG"):
        print(f"[EACC] {message}", flush=True)


def is_network_supported(chain_id: int) -> bool:
    return chain_id in NETWORK_ADDRESSES


def get_network_addresses(chain_id: int) -> NetworkAddresses:
    addresses = NETWORK_ADDRESSES.get(chain_id)
    if addresses is None:
        raise UnsupportedNetwork(chain_id)
    return addresses


class IpfsConfig(BaseModel):
    """IPFS gateway (reads) and Pinata API (writes)."""

    gateway: str = Field(DEFAULT_GATEWAY, description="Public gateway prefix, ends with /ipfs/")
    api_endpoint: str = Field(DEFAULT_IPFS_API, description="Pinata API base URL")
    timeout: float = Field(DEFAULT_IPFS_TIMEOUT, description="Default per-request deadline in seconds")
    api_key: Optional[str] = None
    secret_api_key: Optional[str] = None

    @classmethod
    def from_env(cls) -> "IpfsConfig":
        load_env()
        timeout = os.getenv("EACC_IPFS_TIMEOUT", "").strip()
        return cls(
            gateway=os.getenv("EACC_IPFS_GATEWAY") or DEFAULT_GATEWAY,
            api_endpoint=os.getenv("EACC_IPFS_API") or DEFAULT_IPFS_API,
            timeout=float(timeout) if timeout else DEFAULT_IPFS_TIMEOUT,
            api_key=os.getenv("PINATA_API_KEY") or None,
            secret_api_key=os.getenv("PINATA_SECRET_API_KEY") or None,
        )


class ClientConfig(BaseModel):
    marketplace_v2_address: str
    marketplace_data_v1_address: str
    chain_id: Optional[int] = None
    rpc_url: Optional[str] = None
    ipfs: IpfsConfig = Field(default_factory=IpfsConfig)

    def check_network(self) -> None:
        if self.chain_id is not None and not is_network_supported(self.chain_id):
            raise UnsupportedNetwork(self.chain_id)

    @classmethod
    def for_network(cls, chain_id: int = ARBITRUM_ONE, rpc_url: Optional[str] = None, ipfs: Optional[IpfsConfig] = None) -> "ClientConfig":
        addresses = get_network_addresses(chain_id)
        return cls(
            marketplace_v2_address=addresses.marketplace_v2,
            marketplace_data_v1_address=addresses.marketplace_data_v1,
            chain_id=chain_id,
            rpc_url=rpc_url,
            ipfs=ipfs or IpfsConfig(),
        )

    @classmethod
    def from_env(cls) -> "ClientConfig":
        """
        Build config from EACC_* env vars. EACC_MARKETPLACE_V2 / EACC_MARKETPLACE_DATA_V1
        override the address book entry for EACC_CHAIN_ID (default Arbitrum One).
        """
        load_env()
        chain_env = os.getenv("EACC_CHAIN_ID", "").strip()
        chain_id = int(chain_env) if chain_env.isdigit() else ARBITRUM_ONE
        v2 = os.getenv("EACC_MARKETPLACE_V2", "").strip()
        data = os.getenv("EACC_MARKETPLACE_DATA_V1", "").strip()
        if not (v2 and data):
            addresses = get_network_addresses(chain_id)
            v2 = v2 or addresses.marketplace_v2
            data = data or addresses.marketplace_data_v1
        return cls(
            marketplace_v2_address=v2,
            marketplace_data_v1_address=data,
            chain_id=chain_id,
            rpc_url=os.getenv("EACC_RPC_URL") or DEFAULT_RPC_URL,
            ipfs=IpfsConfig.from_env(),
        )
