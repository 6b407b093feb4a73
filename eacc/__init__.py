"""
EACC SDK - Python client for the EACC job marketplace.

Publish, take, deliver and settle jobs on the MarketplaceV2 contract, read
users, arbitrators and reviews from MarketplaceDataV1, and store job content
on IPFS. Job state is derived locally by replaying each job's event log, so
invalid transitions are rejected before anything is signed or sent.

No API keys required for on-chain use: signing key comes from EACC_PRIVATE_KEY
or a node / EIP-1193 provider. Pinata keys are only needed for uploads.
"""

__version__ = "0.1.0"

from eacc.client import Connection, MarketplaceClient
from eacc.config import ARBITRUM_ONE, ClientConfig, IpfsConfig, get_network_addresses, is_network_supported
from eacc.content import POPULAR_GATEWAYS, ContentStore, MemoryContentStore, PinataIpfsStore
from eacc.crypto import compute_address, format_ether, format_units, parse_ether, parse_units
from eacc.errors import (
    ContentNotFound,
    ContentServiceUnavailable,
    ContentStoreError,
    ContentTimeout,
    EACCError,
    InvalidTransition,
    LedgerError,
    LedgerTimeout,
    NetworkError,
    NotConnected,
    Reverted,
    StaleSignature,
    UnsupportedNetwork,
)
from eacc.ledger import LedgerGateway, PendingTx, Query, Receipt, TxRequest, Web3Ledger
from eacc.lifecycle import Action, apply_event, replay, role_of, validate, whitelist_after
from eacc.schema import (
    MECE_TAGS,
    Arbitrator,
    Job,
    JobEvent,
    JobEventType,
    JobRoles,
    JobState,
    JobTerms,
    PublishJobParams,
    RegisterArbitratorParams,
    RegisterUserParams,
    Review,
    Role,
    UpdateJobParams,
    UpdateUserParams,
    User,
    UserRating,
)
from eacc.wallet import Eip1193Signer, KeySigner, NodeSigner, Signer

__all__ = [
    "__version__",
    "MarketplaceClient",
    "Connection",
    "ClientConfig",
    "IpfsConfig",
    "ARBITRUM_ONE",
    "get_network_addresses",
    "is_network_supported",
    "ContentStore",
    "PinataIpfsStore",
    "MemoryContentStore",
    "POPULAR_GATEWAYS",
    "compute_address",
    "format_units",
    "parse_units",
    "format_ether",
    "parse_ether",
    "LedgerGateway",
    "Web3Ledger",
    "Query",
    "TxRequest",
    "PendingTx",
    "Receipt",
    "Signer",
    "KeySigner",
    "NodeSigner",
    "Eip1193Signer",
    "Action",
    "apply_event",
    "replay",
    "role_of",
    "validate",
    "whitelist_after",
    "MECE_TAGS",
    "Job",
    "JobEvent",
    "JobEventType",
    "JobRoles",
    "JobState",
    "JobTerms",
    "Role",
    "User",
    "Arbitrator",
    "UserRating",
    "Review",
    "PublishJobParams",
    "UpdateJobParams",
    "RegisterUserParams",
    "UpdateUserParams",
    "RegisterArbitratorParams",
    "EACCError",
    "NotConnected",
    "UnsupportedNetwork",
    "InvalidTransition",
    "StaleSignature",
    "LedgerError",
    "NetworkError",
    "Reverted",
    "LedgerTimeout",
    "ContentStoreError",
    "ContentNotFound",
    "ContentTimeout",
    "ContentServiceUnavailable",
]
