"""Tests for contract struct and event data decoding."""

from eth_abi import encode
from web3 import Web3

from eacc.codec import (
    bytes32,
    decode_event_data,
    encode_event_data,
    event_from_struct,
    event_to_struct,
    hex32,
    job_from_struct,
    rating_from_struct,
    user_from_struct,
)
from eacc.config import ZERO_ADDRESS
from eacc.schema import JobEvent, JobEventType, JobState

from conftest import CONTENT_HASH, RESULT_HASH, START_TIME, TOKEN


def job_struct(creator, worker=None, arbitrator=None, **overrides):
    values = dict(
        state=1,
        whitelist_workers=False,
        roles=(creator, arbitrator or ZERO_ADDRESS, worker or ZERO_ADDRESS),
        title="Translate a README",
        tags=["DT", "translation"],
        content_hash=Web3.to_bytes(hexstr=CONTENT_HASH),
        multiple_applicants=True,
        amount=10**18,
        token=TOKEN,
        timestamp=START_TIME,
        max_time=86400,
        delivery_method="ipfs",
        collateral_owed=0,
        escrow_id=9,
        result_hash=b"\x00" * 32,
        rating=0,
        disputed=False,
    )
    values.update(overrides)
    return tuple(values.values())


class TestHelpers:
    def test_hex32_zero_is_unset(self):
        assert hex32(b"\x00" * 32) is None
        assert hex32(None) is None
        assert hex32(Web3.to_bytes(hexstr=CONTENT_HASH)) == CONTENT_HASH

    def test_bytes32_pads(self):
        assert bytes32("0x01") == b"\x00" * 31 + b"\x01"
        assert bytes32(None) == b"\x00" * 32


class TestStructs:
    def test_job_from_struct(self, creator, worker):
        """getJob's tuple maps onto Job with zero addresses as None."""
        job = job_from_struct(3, job_struct(creator.address.lower(), worker.address), events_length=4)

        assert job.id == 3
        assert job.state == JobState.TAKEN
        assert job.roles.creator == creator.address
        assert job.roles.worker == worker.address
        assert job.roles.arbitrator is None
        assert job.content_hash == CONTENT_HASH
        assert job.result_hash is None
        assert job.mece_tag == "DT"
        assert job.events_length == 4

    def test_user_from_struct(self, worker):
        user = user_from_struct((worker.address, b"\x02" + b"\x11" * 32, "alice", "bio", "", 3, 1))

        assert user.address == worker.address
        assert user.public_key.startswith("0x02")
        assert (user.reputation_up, user.reputation_down) == (3, 1)

    def test_rating_from_struct(self):
        rating = rating_from_struct((45000, 2))

        assert rating.average_rating == 45000
        assert rating.number_of_reviews == 2


class TestEventData:
    def test_taken_escrow_id(self):
        assert decode_event_data(JobEventType.TAKEN, encode(["uint256"], [77])) == {"escrow_id": 77}

    def test_rated(self):
        """Rated is a rating byte followed by the review text."""
        assert decode_event_data(JobEventType.RATED, b"\x04great work") == {"rating": 4, "text": "great work"}

    def test_arbitrated_shares_are_percentages(self):
        """Basis points on-chain become percentages."""
        data = (7000).to_bytes(2, "big") + (3000).to_bytes(2, "big") + Web3.to_bytes(hexstr=RESULT_HASH)

        payload = decode_event_data(JobEventType.ARBITRATED, data)

        assert payload == {"buyer_share": 70, "worker_share": 30, "reason_hash": RESULT_HASH}

    def test_message_with_recipient(self, worker):
        data = Web3.to_bytes(hexstr=CONTENT_HASH) + Web3.to_bytes(hexstr=worker.address)

        payload = decode_event_data(JobEventType.OWNER_MESSAGE, data)

        assert payload == {"content_hash": CONTENT_HASH, "recipient": worker.address}

    def test_unknown_layout_kept_raw(self):
        assert decode_event_data(JobEventType.SIGNED, b"\x01\x02") == {"data": "0x0102"}
        assert decode_event_data(JobEventType.CLOSED, b"") == {}

    def test_updated_overlays_terms(self, make_terms):
        """Updated data is decoded on top of the current terms."""
        base = make_terms()
        data = encode(
            ["string", "bytes32", "string[]", "uint256", "uint32", "address", "bool"],
            ["New title", Web3.to_bytes(hexstr=RESULT_HASH), ["DS"], 5, 60, ZERO_ADDRESS, True],
        )

        terms = decode_event_data(JobEventType.UPDATED, data, base)["terms"]

        assert terms["title"] == "New title"
        assert terms["content_hash"] == RESULT_HASH
        assert terms["amount"] == 5
        assert terms["arbitrator"] is None
        assert terms["creator"] == base.creator
        assert terms["token"] == base.token

    def test_updated_undecodable_is_noop(self, make_terms):
        assert decode_event_data(JobEventType.UPDATED, b"\x01\x02\x03", make_terms()) == {}
        assert decode_event_data(JobEventType.UPDATED, b"\x01") == {}

    def test_encode_matches_decode(self):
        event = JobEvent(type=JobEventType.ARBITRATED, payload={"buyer_share": 25, "worker_share": 75, "reason_hash": RESULT_HASH})

        data = encode_event_data(event)

        assert int.from_bytes(data[:2], "big") == 2500
        assert decode_event_data(JobEventType.ARBITRATED, data) == event.payload


class TestEventStructs:
    def test_created_takes_terms_from_base(self, make_terms, creator):
        terms = make_terms()
        struct = (0, Web3.to_bytes(hexstr=creator.address), b"", START_TIME)

        event = event_from_struct(struct, terms)

        assert event.type == JobEventType.CREATED
        assert event.actor == creator.address
        assert event.payload["terms"]["title"] == terms.title

    def test_struct_round_trip(self, worker):
        event = JobEvent(type=JobEventType.DELIVERED, actor=worker.address, payload={"result_hash": RESULT_HASH}, timestamp=START_TIME + 5)

        assert event_from_struct(event_to_struct(event)) == event

    def test_padded_actor(self, worker):
        """Address bytes longer than 20 keep the trailing 20."""
        padded = b"\x00" * 12 + Web3.to_bytes(hexstr=worker.address)

        event = event_from_struct((14, padded, b"", START_TIME))

        assert event.actor == worker.address
