"""
Contract structs <-> schema models.

Job events are stored on-chain as (uint8 type_, bytes address_, bytes data_,
uint32 timestamp_). The data layout per type:

    Taken / Paid        uint256 escrowId (abi)
    Delivered           bytes32 resultHash
    Rated               uint8 rating, utf-8 review text (packed)
    Arbitrated          uint16 buyerShare, uint16 workerShare (basis points), bytes32 reasonHash (packed)
    Updated             abi(title, contentHash, tags, amount, maxTime, arbitrator, whitelistWorkers)
    Worker/OwnerMessage bytes32 contentHash, address recipient (packed, recipient optional)

Anything else is kept as raw hex under payload["data"].
"""

from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError
from web3 import Web3

from eacc.config import ZERO_ADDRESS, debug
from eacc.crypto import to_address
from eacc.schema import (
    Arbitrator,
    Job,
    JobEvent,
    JobEventType,
    JobRoles,
    JobState,
    JobTerms,
    Review,
    User,
    UserRating,
)

BIPS_PER_PERCENT = 100
ZERO_BYTES32 = b"\x00" * 32

UPDATED_TYPES = ["string", "bytes32", "string[]", "uint256", "uint32", "address", "bool"]


def hex32(value: Any) -> Optional[str]:
    """bytes32 -> 0x hex, with the all-zero value meaning unset."""
    if value is None:
        return None
    raw = bytes(value) if isinstance(value, (bytes, bytearray)) else Web3.to_bytes(hexstr=value)
    if raw.strip(b"\x00") == b"":
        return None
    return Web3.to_hex(raw.rjust(32, b"\x00"))


def bytes32(value: Optional[str]) -> bytes:
    if not value:
        return ZERO_BYTES32
    raw = Web3.to_bytes(hexstr=value)
    if len(raw) > 32:
        raise ValueError(f"{value} is longer than 32 bytes")
    return raw.rjust(32, b"\x00")


def address_arg(address: Optional[str]) -> str:
    return to_address(address) or ZERO_ADDRESS


# --- Structs -> models ------------------------------------------------------


def job_from_struct(job_id: int, struct: Sequence[Any], events_length: int = 0) -> Job:
    (
        state,
        whitelist_workers,
        roles,
        title,
        tags,
        content_hash,
        multiple_applicants,
        amount,
        token,
        timestamp,
        max_time,
        delivery_method,
        collateral_owed,
        escrow_id,
        result_hash,
        rating,
        disputed,
    ) = struct
    creator, arbitrator, worker = roles
    return Job(
        id=job_id,
        state=JobState(state),
        roles=JobRoles(creator=to_address(creator), worker=to_address(worker), arbitrator=to_address(arbitrator)),
        title=title,
        tags=tuple(tags),
        content_hash=hex32(content_hash) or "",
        multiple_applicants=bool(multiple_applicants),
        whitelist_workers=bool(whitelist_workers),
        amount=int(amount),
        token=to_address(token) or ZERO_ADDRESS,
        timestamp=int(timestamp),
        max_time=int(max_time),
        delivery_method=delivery_method,
        collateral_owed=int(collateral_owed),
        escrow_id=int(escrow_id),
        result_hash=hex32(result_hash),
        rating=int(rating),
        disputed=bool(disputed),
        events_length=events_length,
    )


def user_from_struct(struct: Sequence[Any]) -> User:
    address, public_key, name, bio, avatar, up, down = struct
    return User(
        address=to_address(address) or ZERO_ADDRESS,
        public_key=Web3.to_hex(public_key) if public_key else "",
        name=name,
        bio=bio,
        avatar=avatar,
        reputation_up=int(up),
        reputation_down=int(down),
    )


def arbitrator_from_struct(struct: Sequence[Any]) -> Arbitrator:
    address, public_key, name, bio, avatar, fee, settled, refused = struct
    return Arbitrator(
        address=to_address(address) or ZERO_ADDRESS,
        public_key=Web3.to_hex(public_key) if public_key else "",
        name=name,
        bio=bio,
        avatar=avatar,
        fee=int(fee),
        settled_count=int(settled),
        refused_count=int(refused),
    )


def rating_from_struct(struct: Sequence[Any]) -> UserRating:
    average, count = struct
    return UserRating(average_rating=int(average), number_of_reviews=int(count))


def review_from_struct(struct: Sequence[Any]) -> Review:
    reviewer, job_id, rating, text, timestamp = struct
    return Review(reviewer=to_address(reviewer) or ZERO_ADDRESS, job_id=int(job_id), rating=int(rating), text=text, timestamp=int(timestamp))


# --- Event data -------------------------------------------------------------


def _decode_updated(data: bytes, base: Optional[JobTerms]) -> Dict[str, Any]:
    if base is None or not data:
        return {}
    try:
        title, content_hash, tags, amount, max_time, arbitrator, whitelist = decode(UPDATED_TYPES, data)
    except DecodingError as err:
        debug(f"Updated event data not decodable, treating as no-op: {err}")
        return {}
    terms = base.model_copy(
        update={
            "title": title,
            "content_hash": hex32(content_hash) or "",
            "tags": tuple(tags),
            "amount": int(amount),
            "max_time": int(max_time),
            "arbitrator": to_address(arbitrator),
            "whitelist_workers": bool(whitelist),
        }
    )
    return {"terms": terms.model_dump()}


def decode_event_data(event_type: JobEventType, data: bytes, base: Optional[JobTerms] = None) -> Dict[str, Any]:
    data = bytes(data)
    if event_type in (JobEventType.TAKEN, JobEventType.PAID):
        return {"escrow_id": decode(["uint256"], data[:32])[0] if len(data) >= 32 else 0}
    if event_type == JobEventType.DELIVERED:
        return {"result_hash": hex32(data[:32])}
    if event_type == JobEventType.RATED:
        return {"rating": data[0] if data else 0, "text": data[1:].decode("utf-8", errors="replace")}
    if event_type == JobEventType.ARBITRATED:
        return {
            "buyer_share": int.from_bytes(data[0:2], "big") // BIPS_PER_PERCENT,
            "worker_share": int.from_bytes(data[2:4], "big") // BIPS_PER_PERCENT,
            "reason_hash": hex32(data[4:36]) or "",
        }
    if event_type == JobEventType.UPDATED:
        return _decode_updated(data, base)
    if event_type in (JobEventType.WORKER_MESSAGE, JobEventType.OWNER_MESSAGE):
        payload: Dict[str, Any] = {"content_hash": hex32(data[:32]) or ""}
        if len(data) >= 52:
            payload["recipient"] = to_address(data[32:52])
        return payload
    return {"data": Web3.to_hex(data)} if data else {}


def encode_event_data(event: JobEvent) -> bytes:
    """Inverse of decode_event_data for the typed layouts."""
    p = event.payload
    t = event.type
    if t in (JobEventType.TAKEN, JobEventType.PAID):
        return encode(["uint256"], [int(p.get("escrow_id", 0))])
    if t == JobEventType.DELIVERED:
        return bytes32(p.get("result_hash"))
    if t == JobEventType.RATED:
        return bytes([int(p.get("rating", 0))]) + p.get("text", "").encode("utf-8")
    if t == JobEventType.ARBITRATED:
        buyer = int(p["buyer_share"]) * BIPS_PER_PERCENT
        worker = int(p["worker_share"]) * BIPS_PER_PERCENT
        return buyer.to_bytes(2, "big") + worker.to_bytes(2, "big") + bytes32(p.get("reason_hash"))
    if t == JobEventType.UPDATED and p.get("terms"):
        terms = JobTerms(**p["terms"])
        return encode(
            UPDATED_TYPES,
            [
                terms.title,
                bytes32(terms.content_hash),
                list(terms.tags),
                terms.amount,
                terms.max_time,
                address_arg(terms.arbitrator),
                terms.whitelist_workers,
            ],
        )
    if t in (JobEventType.WORKER_MESSAGE, JobEventType.OWNER_MESSAGE):
        recipient = to_address(p.get("recipient"))
        return bytes32(p.get("content_hash")) + (Web3.to_bytes(hexstr=recipient) if recipient else b"")
    return Web3.to_bytes(hexstr=p["data"]) if p.get("data") else b""


def event_from_struct(struct: Sequence[Any], base: Optional[JobTerms] = None) -> JobEvent:
    """
    Raw (type_, address_, data_, timestamp_) -> JobEvent.

    `base` supplies the job terms: Created carries them in full and Updated
    overlays its decoded fields onto them.
    """
    type_, address, data, timestamp = struct
    event_type = JobEventType(type_)
    if event_type == JobEventType.CREATED:
        payload = {"terms": base.model_dump()} if base is not None else {}
    else:
        payload = decode_event_data(event_type, data, base)
    actor = to_address(bytes(address)[-20:]) if address else None
    return JobEvent(type=event_type, actor=actor, payload=payload, timestamp=int(timestamp))


def event_to_struct(event: JobEvent) -> Tuple[int, bytes, bytes, int]:
    address = Web3.to_bytes(hexstr=event.actor) if event.actor else b""
    data = b"" if event.type == JobEventType.CREATED else encode_event_data(event)
    return int(event.type), address, data, int(event.timestamp)


def events_from_structs(structs: Iterable[Sequence[Any]], terms: Optional[JobTerms] = None) -> List[JobEvent]:
    return [event_from_struct(s, terms) for s in structs]
