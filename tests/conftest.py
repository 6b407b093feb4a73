"""Shared fixtures: deterministic accounts, job terms, and an in-memory marketplace."""

import itertools

import pytest
from eth_account import Account
from web3 import Web3

from eacc import lifecycle
from eacc.client import Connection, MarketplaceClient
from eacc.codec import event_to_struct, hex32
from eacc.config import ClientConfig
from eacc.content import MemoryContentStore
from eacc.errors import EACCError, Reverted
from eacc.ledger import LedgerGateway, PendingTx, Receipt
from eacc.lifecycle import Action
from eacc.schema import JobEvent, JobEventType, JobTerms
from eacc.wallet import KeySigner

TOKEN = Web3.to_checksum_address("0x" + "22" * 20)
CONTENT_HASH = "0x" + "ab" * 32
RESULT_HASH = "0x" + "cd" * 32
START_TIME = 1_700_000_000
ONE_ETH = 10**18


def _signer(n: int) -> KeySigner:
    return KeySigner(Account.from_key("0x" + f"{n:02x}" * 32))


@pytest.fixture
def creator():
    return _signer(1)


@pytest.fixture
def worker():
    return _signer(2)


@pytest.fixture
def other_worker():
    return _signer(3)


@pytest.fixture
def arbitrator():
    return _signer(4)


@pytest.fixture
def outsider():
    return _signer(5)


@pytest.fixture
def make_terms(creator, arbitrator):
    """Factory for valid JobTerms; keyword overrides replace defaults."""

    def _make(**overrides):
        values = dict(
            creator=creator.address,
            title="Build a landing page",
            tags=("DS", "react"),
            content_hash=CONTENT_HASH,
            multiple_applicants=True,
            whitelist_workers=False,
            token=TOKEN,
            amount=2 * ONE_ETH,
            max_time=3600,
            delivery_method="ipfs",
            arbitrator=arbitrator.address,
        )
        values.update(overrides)
        return JobTerms(**values)

    return _make


@pytest.fixture
def created(make_terms):
    """Factory for the genesis event of a job."""

    def _created(**overrides):
        return JobEvent.created(make_terms(**overrides), timestamp=START_TIME)

    return _created


def _hex(value):
    return Web3.to_hex(value) if isinstance(value, (bytes, bytearray)) else value


class FakeChain:
    """
    In-memory stand-in for the two marketplace contracts.

    Writes are checked with the same lifecycle rules the contract enforces and
    append events; a rejected write raises Reverted like a failed dry-run.
    """

    def __init__(self):
        self.events = {}
        self.users = {}
        self.now = START_TIME
        self.submitted = []
        self._escrow_ids = itertools.count(1)

    def ledger(self, signer=None):
        return FakeLedger(self, signer)

    def connection(self, signer):
        return Connection(signer=signer, ledger=self.ledger(signer), chain_id=42161)

    def job(self, job_id):
        return lifecycle.replay(self.events[job_id], job_id=job_id)

    def job_struct(self, job_id):
        job = self.job(job_id)
        return (
            int(job.state),
            job.whitelist_workers,
            (job.roles.creator, job.roles.arbitrator or "0x" + "00" * 20, job.roles.worker or "0x" + "00" * 20),
            job.title,
            list(job.tags),
            Web3.to_bytes(hexstr=job.content_hash),
            job.multiple_applicants,
            job.amount,
            job.token,
            job.timestamp,
            job.max_time,
            job.delivery_method,
            job.collateral_owed,
            job.escrow_id,
            Web3.to_bytes(hexstr=job.result_hash) if job.result_hash else b"\x00" * 32,
            job.rating,
            job.disputed,
        )

    # --- reads ---

    def read(self, function, args):
        if function == "getJob":
            return self.job_struct(args[0])
        if function == "jobsLength":
            return len(self.events)
        if function == "eventsLength":
            return len(self.events.get(args[0], []))
        if function == "getEvents":
            job_id, index, limit = args
            return [event_to_struct(e) for e in self.events[job_id][index:index + limit]]
        if function == "whitelistWorkers":
            return args[1] in self.job(args[0]).whitelist
        if function == "userRegistered":
            return args[0] in self.users
        if function == "getUser":
            return self.users[args[0]]
        if function == "getUserRating":
            return (45000, 2)
        raise KeyError(f"FakeChain does not implement {function}")

    # --- writes ---

    def _publish(self, sender, args):
        title, content_hash, multiple, tags, token, amount, max_time, delivery, arbitrator, allowed = args
        terms = JobTerms(
            creator=sender,
            title=title,
            tags=tuple(tags),
            content_hash=hex32(content_hash),
            multiple_applicants=multiple,
            whitelist_workers=bool(allowed),
            token=token,
            amount=amount,
            max_time=max_time,
            delivery_method=delivery,
            arbitrator=arbitrator,
        )
        job_id = len(self.events)
        self.events[job_id] = [JobEvent.created(terms, timestamp=self.now)] + [
            JobEvent(type=JobEventType.WHITELISTED_WORKER_ADDED, actor=w, timestamp=self.now) for w in allowed
        ]

    def _job_call(self, function, args):
        job_id = args[0]
        rest = args[1:]
        if function == "takeJob":
            return Action.TAKE, dict(signature=_hex(rest[0]), escrow_id=next(self._escrow_ids))
        if function == "payStartJob":
            return Action.PAY_START, dict(worker=rest[0], escrow_id=next(self._escrow_ids))
        if function == "deliverResult":
            return Action.DELIVER, dict(result_hash=hex32(rest[0]))
        if function in ("approveResult", "review"):
            action = Action.APPROVE if function == "approveResult" else Action.REVIEW
            return action, dict(rating=rest[0], text=rest[1])
        if function == "arbitrate":
            return Action.ARBITRATE, dict(buyer_share=rest[0] // 100, worker_share=rest[1] // 100, reason_hash=hex32(rest[2]))
        if function == "postThreadMessage":
            return Action.POST_MESSAGE, dict(content_hash=hex32(rest[0]), recipient=rest[1])
        if function == "updateJobWhitelist":
            return Action.UPDATE_WHITELIST, dict(allowed=rest[0], disallowed=rest[1])
        if function == "updateJobPost":
            title, content_hash, tags, amount, max_time, arbitrator, whitelist = rest
            current = self.job(job_id).terms().model_dump()
            current.update(
                title=title,
                content_hash=hex32(content_hash),
                tags=tuple(tags),
                amount=amount,
                max_time=max_time,
                arbitrator=arbitrator,
                whitelist_workers=whitelist,
            )
            return Action.UPDATE, dict(terms=JobTerms(**current))
        simple = {
            "refund": Action.REFUND,
            "dispute": Action.DISPUTE,
            "refuseArbitration": Action.REFUSE_ARBITRATION,
            "closeJob": Action.CLOSE,
            "reopenJob": Action.REOPEN,
            "withdrawCollateral": Action.WITHDRAW_COLLATERAL,
        }
        return simple[function], {}

    def submit(self, sender, request):
        self.submitted.append(request)
        if request.function == "publishJobPost":
            self._publish(sender, request.args)
        elif request.function == "registerUser":
            pubkey, name, bio, avatar = request.args
            self.users[sender] = (sender, pubkey, name, bio, avatar, 0, 0)
        elif request.contract == "marketplace":
            action, kw = self._job_call(request.function, request.args)
            job_id = request.args[0]
            try:
                new_events = lifecycle.propose(self.job(job_id), action, sender, now=self.now, **kw)
            except EACCError as err:
                raise Reverted(str(err)) from err
            self.events[job_id].extend(new_events)
        tx_hash = "0x" + f"{len(self.submitted):064x}"
        return PendingTx(tx_hash=tx_hash, sender=sender, request=request)


class FakeLedger(LedgerGateway):
    def __init__(self, chain, signer=None):
        self.chain = chain
        self.signer = signer

    def read(self, query):
        return self.chain.read(query.function, query.args)

    def submit(self, request):
        return self.chain.submit(self.signer.address, request)

    def wait(self, pending, timeout=120):
        return Receipt(tx_hash=pending.tx_hash, status=1, block_number=len(self.chain.submitted))

    def balance_of(self, address):
        return 5 * ONE_ETH

    def latest_timestamp(self):
        return self.chain.now


@pytest.fixture
def chain():
    return FakeChain()


@pytest.fixture
def client(chain):
    """Client with an in-memory chain and content store, not yet connected."""
    config = ClientConfig.for_network(rpc_url="http://localhost:8545")
    return MarketplaceClient(config, content=MemoryContentStore(), ledger=chain.ledger())


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in (
        "EACC_PRIVATE_KEY",
        "EACC_RPC_URL",
        "EACC_CHAIN_ID",
        "EACC_MARKETPLACE_V2",
        "EACC_MARKETPLACE_DATA_V1",
        "EACC_IPFS_GATEWAY",
        "EACC_IPFS_API",
        "EACC_IPFS_TIMEOUT",
        "PINATA_API_KEY",
        "PINATA_SECRET_API_KEY",
        "EACC_DEBUG",
    ):
        monkeypatch.delenv(name, raising=False)
    # keep a developer's .env out of the tests
    monkeypatch.setattr("eacc.config.load_dotenv", lambda *a, **kw: False)
