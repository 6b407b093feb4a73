"""
Marketplace schema: jobs, the job event log, user and arbitrator profiles.

Contract: a Job is never stored directly. It is the fold of its ordered event
log (see eacc.lifecycle); the models here are the values that fold produces.
"""

from enum import Enum, IntEnum
from typing import Any, Dict, FrozenSet, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from eacc.crypto import to_address

MECE_TAGS: Dict[str, str] = {
    "DA": "DIGITAL_AUDIO",
    "DV": "DIGITAL_VIDEO",
    "DT": "DIGITAL_TEXT",
    "DS": "DIGITAL_SOFTWARE",
    "DO": "DIGITAL_OTHERS",
    "NDG": "NON_DIGITAL_GOODS",
    "NDS": "NON_DIGITAL_SERVICES",
    "NDO": "NON_DIGITAL_OTHERS",
}

MAX_TITLE_LENGTH = 254


class JobState(IntEnum):
    OPEN = 0
    TAKEN = 1
    CLOSED = 2


class JobEventType(IntEnum):
    CREATED = 0
    TAKEN = 1
    PAID = 2
    UPDATED = 3
    SIGNED = 4
    COMPLETED = 5
    DELIVERED = 6
    CLOSED = 7
    REOPENED = 8
    RATED = 9
    REFUNDED = 10
    DISPUTED = 11
    ARBITRATED = 12
    ARBITRATION_REFUSED = 13
    WHITELISTED_WORKER_ADDED = 14
    WHITELISTED_WORKER_REMOVED = 15
    COLLATERAL_WITHDRAWN = 16
    WORKER_MESSAGE = 17
    OWNER_MESSAGE = 18


class Role(str, Enum):
    CREATOR = "creator"
    WORKER = "worker"
    ARBITRATOR = "arbitrator"
    OUTSIDER = "outsider"


def mece_tags_in(tags) -> Tuple[str, ...]:
    return tuple(t for t in tags if t in MECE_TAGS)


def check_tags(tags) -> Tuple[str, ...]:
    tags = tuple(tags)
    found = mece_tags_in(tags)
    if len(found) != 1:
        raise ValueError(
            f"Tags must contain exactly one MECE tag ({', '.join(MECE_TAGS)}); found {len(found)}"
        )
    return tags


def check_title(title: str) -> str:
    if not 1 <= len(title) <= MAX_TITLE_LENGTH:
        raise ValueError(f"Title must be between 1 and {MAX_TITLE_LENGTH} characters")
    return title


class JobTerms(BaseModel):
    """Terms a job is published with. Carried by the Created event, replaced by Updated."""

    model_config = ConfigDict(frozen=True)

    creator: str = Field(..., description="Job creator address")
    title: str
    tags: Tuple[str, ...] = Field(..., description="Free tags plus exactly one MECE short tag")
    content_hash: str = Field(..., description="bytes32 reference to the job description in the content store")
    multiple_applicants: bool = False
    whitelist_workers: bool = False
    token: str = Field(..., description="ERC20 token the amount is denominated in")
    amount: int = Field(..., description="Escrowed amount in token base units")
    max_time: int = Field(..., description="Seconds the worker has to deliver")
    delivery_method: str = ""
    arbitrator: Optional[str] = Field(None, description="None means no arbitrator")

    @field_validator("creator", "token")
    @classmethod
    def _required_address(cls, v):
        address = to_address(v)
        if address is None:
            raise ValueError("address must be non-zero")
        return address

    @field_validator("arbitrator")
    @classmethod
    def _optional_address(cls, v):
        return to_address(v)

    @field_validator("title")
    @classmethod
    def _title(cls, v):
        return check_title(v)

    @field_validator("tags")
    @classmethod
    def _tags(cls, v):
        return check_tags(v)

    @field_validator("amount")
    @classmethod
    def _amount(cls, v):
        if v <= 0:
            raise ValueError("Amount must be positive")
        return v

    @field_validator("max_time")
    @classmethod
    def _max_time(cls, v):
        if v <= 0:
            raise ValueError("max_time must be positive")
        return v


class JobRoles(BaseModel):
    model_config = ConfigDict(frozen=True)

    creator: str
    worker: Optional[str] = None
    arbitrator: Optional[str] = None


class Job(BaseModel):
    """Materialized view of a job's event log."""

    model_config = ConfigDict(frozen=True)

    id: int
    state: JobState = JobState.OPEN
    roles: JobRoles
    title: str
    tags: Tuple[str, ...]
    content_hash: str
    multiple_applicants: bool
    whitelist_workers: bool
    whitelist: FrozenSet[str] = frozenset()
    amount: int
    token: str
    timestamp: int = 0
    max_time: int
    delivery_method: str = ""
    collateral_owed: int = 0
    escrow_id: int = 0
    result_hash: Optional[str] = None
    rating: int = 0
    disputed: bool = False
    events_length: int = 0
    taken_at: Optional[int] = None
    completed: bool = False
    buyer_share: Optional[int] = None
    worker_share: Optional[int] = None

    @property
    def mece_tag(self) -> str:
        return mece_tags_in(self.tags)[0]

    def terms(self) -> JobTerms:
        return JobTerms(
            creator=self.roles.creator,
            title=self.title,
            tags=self.tags,
            content_hash=self.content_hash,
            multiple_applicants=self.multiple_applicants,
            whitelist_workers=self.whitelist_workers,
            token=self.token,
            amount=self.amount,
            max_time=self.max_time,
            delivery_method=self.delivery_method,
            arbitrator=self.roles.arbitrator,
        )


class JobEvent(BaseModel):
    """One append-only entry of a job's event log."""

    model_config = ConfigDict(frozen=True)

    type: JobEventType
    actor: Optional[str] = Field(None, description="Address the event is about (caller or subject)")
    payload: Dict[str, Any] = Field(default_factory=dict)
    timestamp: int = 0

    @field_validator("actor")
    @classmethod
    def _actor(cls, v):
        return to_address(v)

    @classmethod
    def created(cls, terms: JobTerms, timestamp: int = 0) -> "JobEvent":
        return cls(
            type=JobEventType.CREATED,
            actor=terms.creator,
            payload={"terms": terms.model_dump()},
            timestamp=timestamp,
        )


class User(BaseModel):
    address: str
    public_key: str = ""
    name: str = ""
    bio: str = ""
    avatar: str = ""
    reputation_up: int = 0
    reputation_down: int = 0


class Arbitrator(BaseModel):
    address: str
    public_key: str = ""
    name: str = ""
    bio: str = ""
    avatar: str = ""
    fee: int = Field(0, description="Fee in basis points")
    settled_count: int = 0
    refused_count: int = 0


class UserRating(BaseModel):
    average_rating: int = Field(0, description="Average rating scaled by 10000 on-chain")
    number_of_reviews: int = 0


class Review(BaseModel):
    reviewer: str
    job_id: int
    rating: int
    text: str = ""
    timestamp: int = 0


class PublishJobParams(BaseModel):
    title: str
    content_hash: str
    multiple_applicants: bool
    tags: Tuple[str, ...]
    token: str
    amount: int
    max_time: int
    delivery_method: str = ""
    arbitrator: Optional[str] = None
    allowed_workers: Tuple[str, ...] = ()

    def terms_for(self, creator: str) -> JobTerms:
        return JobTerms(
            creator=creator,
            title=self.title,
            tags=self.tags,
            content_hash=self.content_hash,
            multiple_applicants=self.multiple_applicants,
            whitelist_workers=len(self.allowed_workers) > 0,
            token=self.token,
            amount=self.amount,
            max_time=self.max_time,
            delivery_method=self.delivery_method,
            arbitrator=self.arbitrator,
        )


class UpdateJobParams(BaseModel):
    job_id: int
    title: str
    content_hash: str
    tags: Tuple[str, ...]
    amount: int
    max_time: int
    arbitrator: Optional[str] = None
    whitelist_workers: bool = False


class RegisterUserParams(BaseModel):
    pubkey: str = Field(..., description="Compressed secp256k1 public key (0x hex)")
    name: str
    bio: str = ""
    avatar: str = ""


class UpdateUserParams(BaseModel):
    name: str
    bio: str = ""
    avatar: str = ""


class RegisterArbitratorParams(RegisterUserParams):
    fee: int = Field(..., description="Fee in basis points")
