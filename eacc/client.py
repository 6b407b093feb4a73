"""
MarketplaceClient: one method per marketplace operation.

Every write checks the job lifecycle locally against the replayed job, builds
the exact contract call, submits it once and returns a PendingTx without
waiting for it to be mined. The only local state is a read cache of replayed
jobs, dropped for a job as soon as a write for it is submitted.

    client = MarketplaceClient(ClientConfig.from_env())
    client.connect_with_private_key(os.environ["EACC_PRIVATE_KEY"])
    pending = client.take_job(42)
    client.wait(pending)
"""

import json
from typing import Any, Dict, Iterable, List, Optional, Union

from pydantic import BaseModel, ConfigDict
from web3 import Web3

from eacc import lifecycle
from eacc.codec import (
    BIPS_PER_PERCENT,
    address_arg,
    arbitrator_from_struct,
    bytes32,
    events_from_structs,
    job_from_struct,
    rating_from_struct,
    review_from_struct,
    user_from_struct,
)
from eacc.config import DEFAULT_RPC_URL, ClientConfig, debug
from eacc.content import ContentStore, PinataIpfsStore
from eacc.crypto import signature_bytes, to_address
from eacc.errors import NotConnected, StaleSignature
from eacc.ledger import DEFAULT_WAIT_TIMEOUT, LedgerGateway, PendingTx, Query, Receipt, TxRequest, Web3Ledger
from eacc.lifecycle import Action
from eacc.schema import (
    Arbitrator,
    Job,
    JobEvent,
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
from eacc.wallet import Eip1193Signer, KeySigner, NodeSigner, RequestFn, Signer

MARKETPLACE = "marketplace"
DATA = "data"


class Connection(BaseModel):
    """Signer + ledger pair. Replaced wholesale on reconnect, never mutated."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    signer: Signer
    ledger: LedgerGateway
    chain_id: Optional[int] = None

    @property
    def address(self) -> str:
        return self.signer.address


class MarketplaceClient:
    def __init__(
        self,
        config: Optional[ClientConfig] = None,
        connection: Optional[Connection] = None,
        content: Optional[ContentStore] = None,
        ledger: Optional[LedgerGateway] = None,
    ):
        self.config = config or ClientConfig.from_env()
        self.config.check_network()
        self.content = content if content is not None else PinataIpfsStore(self.config.ipfs)
        self._connection = connection
        self._reader = ledger
        self._jobs: Dict[int, Job] = {}

    # --- Connection ---

    @classmethod
    def with_private_key(cls, private_key: str, rpc_url: Optional[str] = None, config: Optional[ClientConfig] = None) -> "MarketplaceClient":
        client = cls(config or ClientConfig.for_network(rpc_url=rpc_url))
        client.connect_with_private_key(private_key, rpc_url)
        return client

    @property
    def connection(self) -> Optional[Connection]:
        return self._connection

    @property
    def is_connected(self) -> bool:
        return self._connection is not None

    def _rpc_ledger(self, rpc_url: Optional[str], signer: Optional[Signer] = None) -> Web3Ledger:
        return Web3Ledger.from_rpc(
            rpc_url or self.config.rpc_url or DEFAULT_RPC_URL,
            self.config.marketplace_v2_address,
            self.config.marketplace_data_v1_address,
            signer=signer,
        )

    def connect(self, connection: Connection) -> None:
        self._connection = connection
        self._jobs.clear()
        debug(f"connected as {connection.address}")

    def connect_with_private_key(self, private_key: str, rpc_url: Optional[str] = None) -> None:
        self.connect_signer(KeySigner.from_key(private_key), rpc_url)

    def connect_with_mnemonic(self, mnemonic: str, rpc_url: Optional[str] = None, account_path: str = "m/44'/60'/0'/0/0") -> None:
        self.connect_signer(KeySigner.from_mnemonic(mnemonic, account_path), rpc_url)

    def connect_node_account(self, rpc_url: Optional[str] = None, address: Optional[str] = None) -> None:
        ledger = self._rpc_ledger(rpc_url)
        signer = NodeSigner(ledger.w3, address)
        self.connect(Connection(signer=signer, ledger=ledger.with_signer(signer), chain_id=self.config.chain_id))

    def connect_eip1193(self, request: RequestFn, rpc_url: Optional[str] = None) -> None:
        self.connect_signer(Eip1193Signer(request), rpc_url)

    def connect_signer(self, signer: Signer, rpc_url: Optional[str] = None) -> None:
        ledger = self._rpc_ledger(rpc_url, signer=signer)
        self.connect(Connection(signer=signer, ledger=ledger, chain_id=self.config.chain_id))

    def disconnect(self) -> None:
        self._connection = None
        self._jobs.clear()

    def _require_connection(self) -> Connection:
        if self._connection is None:
            raise NotConnected()
        return self._connection

    def _ledger(self) -> LedgerGateway:
        if self._connection is not None:
            return self._connection.ledger
        if self._reader is None:
            self._reader = self._rpc_ledger(None)
        return self._reader

    def _read(self, contract: str, function: str, *args: Any) -> Any:
        return self._ledger().read(Query(contract=contract, function=function, args=args))

    def _submit(self, contract: str, function: str, *args: Any, value: int = 0, job_id: Optional[int] = None) -> PendingTx:
        conn = self._require_connection()
        pending = conn.ledger.submit(TxRequest(contract=contract, function=function, args=args, value=value))
        if job_id is not None:
            self._jobs.pop(job_id, None)
        return pending

    def wait(self, pending: PendingTx, timeout: float = DEFAULT_WAIT_TIMEOUT) -> Receipt:
        return self._require_connection().ledger.wait(pending, timeout=timeout)

    def get_address(self) -> str:
        return self._require_connection().address

    def get_balance(self, address: Optional[str] = None) -> int:
        return self._ledger().balance_of(address or self.get_address())

    # --- Jobs (reads) ---

    def get_job(self, job_id: int) -> Job:
        """Job as stored by the contract (no whitelist; events_length from eventsLength)."""
        struct = self._read(MARKETPLACE, "getJob", job_id)
        return job_from_struct(job_id, struct, events_length=self.get_events_length(job_id))

    def get_jobs(self, index: int = 0, limit: int = 10) -> List[Job]:
        structs = self._read(DATA, "getJobs", index, limit)
        return [job_from_struct(index + i, s) for i, s in enumerate(structs)]

    def get_jobs_length(self) -> int:
        return int(self._read(MARKETPLACE, "jobsLength"))

    def get_events_length(self, job_id: int) -> int:
        return int(self._read(DATA, "eventsLength", job_id))

    def _terms(self, job_id: int) -> JobTerms:
        return job_from_struct(job_id, self._read(MARKETPLACE, "getJob", job_id)).terms()

    def get_events(self, job_id: int, index: int = 0, limit: int = 0) -> List[JobEvent]:
        """Decoded event log. limit=0 reads to the end."""
        if limit <= 0:
            limit = max(self.get_events_length(job_id) - index, 0)
        if limit == 0:
            return []
        structs = self._read(DATA, "getEvents", job_id, index, limit)
        return events_from_structs(structs, self._terms(job_id))

    def job_state(self, job_id: int, refresh: bool = False) -> Job:
        """Job replayed from its full event log, cached until the next write for it."""
        if refresh or job_id not in self._jobs:
            self._jobs[job_id] = lifecycle.replay(self.get_events(job_id), job_id=job_id)
        return self._jobs[job_id]

    def is_worker_whitelisted(self, job_id: int, worker: str) -> bool:
        return bool(self._read(MARKETPLACE, "whitelistWorkers", job_id, to_address(worker)))

    # --- Jobs (writes) ---

    def _check(self, job_id: int, action: Action, **kw: Any) -> Job:
        conn = self._require_connection()
        job = self.job_state(job_id)
        lifecycle.validate(job, action, conn.address, **kw)
        return job

    def _compact(self, content_hash: Optional[str]) -> bytes:
        if not content_hash:
            return bytes32(None)
        if content_hash.startswith("0x") and len(content_hash) == 66:
            return bytes32(content_hash)
        return bytes32(self.content.to_compact(content_hash))

    def publish_job(self, params: PublishJobParams) -> PendingTx:
        conn = self._require_connection()
        terms = params.terms_for(conn.address)
        return self._submit(
            MARKETPLACE,
            "publishJobPost",
            terms.title,
            self._compact(terms.content_hash),
            terms.multiple_applicants,
            list(terms.tags),
            terms.token,
            terms.amount,
            terms.max_time,
            terms.delivery_method,
            address_arg(terms.arbitrator),
            [to_address(w) for w in params.allowed_workers],
        )

    def update_job(self, params: UpdateJobParams) -> PendingTx:
        self._require_connection()
        job = self.job_state(params.job_id)
        terms = JobTerms(
            **{
                **job.terms().model_dump(),
                "title": params.title,
                "content_hash": params.content_hash,
                "tags": params.tags,
                "amount": params.amount,
                "max_time": params.max_time,
                "arbitrator": params.arbitrator,
                "whitelist_workers": params.whitelist_workers,
            }
        )
        lifecycle.validate(job, Action.UPDATE, self.get_address(), terms=terms)
        return self._submit(
            MARKETPLACE,
            "updateJobPost",
            params.job_id,
            terms.title,
            self._compact(terms.content_hash),
            list(terms.tags),
            terms.amount,
            terms.max_time,
            address_arg(terms.arbitrator),
            terms.whitelist_workers,
            job_id=params.job_id,
        )

    def update_job_whitelist(self, job_id: int, allowed: Iterable[str] = (), disallowed: Iterable[str] = ()) -> PendingTx:
        self._check(job_id, Action.UPDATE_WHITELIST)
        return self._submit(
            MARKETPLACE,
            "updateJobWhitelist",
            job_id,
            [to_address(a) for a in allowed],
            [to_address(a) for a in disallowed],
            job_id=job_id,
        )

    def take_job(self, job_id: int, signature: Optional[str] = None, events_length: Optional[int] = None) -> PendingTx:
        """
        Take an open job. Without `signature` the connected signer signs the
        current on-chain events length; a pre-made signature must say which
        length it was made for, and a mismatch raises StaleSignature.
        """
        conn = self._require_connection()
        chain_length = self.get_events_length(job_id)
        job = self.job_state(job_id)
        if job.events_length != chain_length:
            job = self.job_state(job_id, refresh=True)
        if signature is None:
            signature = conn.signer.sign_take(job_id, chain_length)
        elif events_length is not None and events_length != chain_length:
            raise StaleSignature(job_id, chain_length)
        lifecycle.validate(job, Action.TAKE, conn.address, signature=signature)
        return self._submit(MARKETPLACE, "takeJob", job_id, signature_bytes(signature), job_id=job_id)

    def pay_start_job(self, job_id: int, worker: str, value: int = 0) -> PendingTx:
        self._check(job_id, Action.PAY_START, worker=worker)
        return self._submit(MARKETPLACE, "payStartJob", job_id, to_address(worker), value=value, job_id=job_id)

    def deliver_result(self, job_id: int, result_hash: str) -> PendingTx:
        self._check(job_id, Action.DELIVER, result_hash=result_hash)
        return self._submit(MARKETPLACE, "deliverResult", job_id, self._compact(result_hash), job_id=job_id)

    def approve_result(self, job_id: int, rating: int = 0, text: str = "") -> PendingTx:
        self._check(job_id, Action.APPROVE, rating=rating)
        return self._submit(MARKETPLACE, "approveResult", job_id, rating, text, job_id=job_id)

    def review(self, job_id: int, rating: int, text: str = "") -> PendingTx:
        self._check(job_id, Action.REVIEW, rating=rating)
        return self._submit(MARKETPLACE, "review", job_id, rating, text, job_id=job_id)

    def refund(self, job_id: int) -> PendingTx:
        conn = self._require_connection()
        job = self.job_state(job_id)
        now = None
        if lifecycle.role_of(job, conn.address) == Role.CREATOR:
            now = conn.ledger.latest_timestamp()
        lifecycle.validate(job, Action.REFUND, conn.address, now=now)
        return self._submit(MARKETPLACE, "refund", job_id, job_id=job_id)

    def dispute(self, job_id: int, content: Union[bytes, str] = b"", session_key: Union[bytes, str] = b"") -> PendingTx:
        self._check(job_id, Action.DISPUTE)
        if isinstance(content, str):
            content = content.encode("utf-8")
        if isinstance(session_key, str):
            session_key = Web3.to_bytes(hexstr=session_key)
        return self._submit(MARKETPLACE, "dispute", job_id, session_key, content, job_id=job_id)

    def arbitrate(self, job_id: int, buyer_share: int, worker_share: int, reason_hash: Optional[str] = None) -> PendingTx:
        """Split the escrow; shares are percentages adding up to 100."""
        self._check(job_id, Action.ARBITRATE, buyer_share=buyer_share, worker_share=worker_share)
        return self._submit(
            MARKETPLACE,
            "arbitrate",
            job_id,
            buyer_share * BIPS_PER_PERCENT,
            worker_share * BIPS_PER_PERCENT,
            self._compact(reason_hash),
            job_id=job_id,
        )

    def refuse_arbitration(self, job_id: int) -> PendingTx:
        self._check(job_id, Action.REFUSE_ARBITRATION)
        return self._submit(MARKETPLACE, "refuseArbitration", job_id, job_id=job_id)

    def close_job(self, job_id: int) -> PendingTx:
        self._check(job_id, Action.CLOSE)
        return self._submit(MARKETPLACE, "closeJob", job_id, job_id=job_id)

    def reopen_job(self, job_id: int) -> PendingTx:
        self._check(job_id, Action.REOPEN)
        return self._submit(MARKETPLACE, "reopenJob", job_id, job_id=job_id)

    def withdraw_collateral(self, job_id: int) -> PendingTx:
        self._check(job_id, Action.WITHDRAW_COLLATERAL)
        return self._submit(MARKETPLACE, "withdrawCollateral", job_id, job_id=job_id)

    def post_message(self, job_id: int, content_hash: str, recipient: str) -> PendingTx:
        self._check(job_id, Action.POST_MESSAGE, recipient=recipient)
        return self._submit(
            MARKETPLACE, "postThreadMessage", job_id, self._compact(content_hash), to_address(recipient), job_id=job_id
        )

    # --- Users and arbitrators ---

    def register_user(self, params: RegisterUserParams) -> PendingTx:
        return self._submit(DATA, "registerUser", Web3.to_bytes(hexstr=params.pubkey), params.name, params.bio, params.avatar)

    def update_user(self, params: UpdateUserParams) -> PendingTx:
        return self._submit(DATA, "updateUser", params.name, params.bio, params.avatar)

    def register_arbitrator(self, params: RegisterArbitratorParams) -> PendingTx:
        return self._submit(
            DATA, "registerArbitrator", Web3.to_bytes(hexstr=params.pubkey), params.name, params.bio, params.avatar, params.fee
        )

    def update_arbitrator(self, params: UpdateUserParams) -> PendingTx:
        return self._submit(DATA, "updateArbitrator", params.name, params.bio, params.avatar)

    def get_user(self, address: str) -> User:
        return user_from_struct(self._read(DATA, "getUser", to_address(address)))

    def get_users(self, index: int = 0, limit: int = 10) -> List[User]:
        return [user_from_struct(s) for s in self._read(DATA, "getUsers", index, limit)]

    def get_users_length(self) -> int:
        return int(self._read(DATA, "usersLength"))

    def is_user_registered(self, address: str) -> bool:
        return bool(self._read(DATA, "userRegistered", to_address(address)))

    def get_user_rating(self, address: str) -> UserRating:
        return rating_from_struct(self._read(DATA, "getUserRating", to_address(address)))

    def get_user_reviews(self, address: str, index: int = 0, limit: int = 10) -> List[Review]:
        return [review_from_struct(s) for s in self._read(DATA, "getReviews", to_address(address), index, limit)]

    def get_arbitrator(self, address: str) -> Arbitrator:
        return arbitrator_from_struct(self._read(DATA, "getArbitrator", to_address(address)))

    def get_arbitrators(self, index: int = 0, limit: int = 10) -> List[Arbitrator]:
        return [arbitrator_from_struct(s) for s in self._read(DATA, "getArbitrators", index, limit)]

    def get_arbitrators_length(self) -> int:
        return int(self._read(DATA, "arbitratorsLength"))

    def is_arbitrator_registered(self, address: str) -> bool:
        return bool(self._read(DATA, "arbitratorRegistered", to_address(address)))

    # --- Marketplace ---

    def read_mece_tag(self, short_form: str) -> str:
        return self._read(DATA, "readMeceTag", short_form)

    def update_mece_tag(self, short_form: str, long_form: str) -> PendingTx:
        """Add or rename a category tag. The data contract restricts this to its owner."""
        if not short_form or not long_form:
            raise ValueError("short_form and long_form are required")
        return self._submit(DATA, "updateMeceTag", short_form, long_form)

    def remove_mece_tag(self, short_form: str) -> PendingTx:
        if not short_form:
            raise ValueError("short_form is required")
        return self._submit(DATA, "removeMeceTag", short_form)

    def get_marketplace_info(self) -> Dict[str, Any]:
        return {
            "version": int(self._read(MARKETPLACE, "version")),
            "unicrow_address": self._read(MARKETPLACE, "unicrowAddress"),
            "treasury_address": self._read(MARKETPLACE, "treasuryAddress"),
            "marketplace_fee": int(self._read(MARKETPLACE, "unicrowMarketplaceFee")),
            "eacc_token": self._read(MARKETPLACE, "eaccToken"),
            "eacc_tokens_per_token": int(self._read(MARKETPLACE, "eaccTokensPerToken")),
            "marketplace_data": self._read(MARKETPLACE, "marketplaceData"),
        }

    def get_eacc_reward_for_token(self, token: str) -> int:
        return int(self._read(MARKETPLACE, "eaccRewardTokensEnabled", to_address(token)))

    # --- Content ---

    def upload_content(self, content: Union[bytes, str, Dict[str, Any]]) -> str:
        if isinstance(content, (bytes, bytearray)):
            return self.content.put(bytes(content))
        return self.content.put_json(content)

    def fetch_content(self, content_hash: str, timeout: Optional[float] = None) -> str:
        if content_hash.startswith("0x"):
            content_hash = self.content.from_compact(content_hash)
        return self.content.get(content_hash, timeout=timeout).decode("utf-8")

    def fetch_job_content(self, content_hash: str, timeout: Optional[float] = None) -> Any:
        """Job description behind an on-chain content hash: parsed JSON, or the raw text."""
        text = self.fetch_content(content_hash, timeout=timeout)
        try:
            return json.loads(text)
        except json.JSONDecodeError:
            return text

    # --- Signing ---

    def sign_message(self, message: Union[str, bytes]) -> str:
        if isinstance(message, str):
            message = message.encode("utf-8")
        return self._require_connection().signer.sign_message(message)

    def create_job_signature(self, events_length: int, job_id: int) -> str:
        return self._require_connection().signer.sign_take(job_id, events_length)

    def create_eacc_job_signature(self, job_id: int, events_length: int) -> str:
        """EIP-712 JobTaking signature bound to this network's MarketplaceV2."""
        conn = self._require_connection()
        chain_id = conn.chain_id or self.config.chain_id
        if chain_id is None:
            raise ValueError("chain id unknown; connect with a chain id or set EACC_CHAIN_ID")
        return conn.signer.sign_job_taking(job_id, events_length, self.config.marketplace_v2_address, chain_id)
