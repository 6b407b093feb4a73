"""
Job lifecycle: the marketplace state machine as a pure fold over job events.

    replay(events)                 -> Job          (deterministic, order-dependent)
    apply_event(job, event)        -> Transition   (next Job + side effects)
    validate(job, action, caller)  -> None         (raises InvalidTransition / StaleSignature)
    propose(job, action, caller)   -> events the contract would append

States: OPEN -> TAKEN -> CLOSED. A dispute is a sub-state of TAKEN (disputed=True)
that only the arbitrator can leave, by arbitrating (-> CLOSED) or refusing
(back to plain TAKEN). Nothing here touches the network.
"""

from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, NamedTuple, Optional, Tuple

from pydantic import BaseModel, ConfigDict

from eacc.crypto import recover_take_signer, same_address, to_address
from eacc.errors import InvalidTransition, StaleSignature
from eacc.schema import Job, JobEvent, JobEventType, JobRoles, JobState, JobTerms, Role

MAX_RATING = 5
SHARE_TOTAL = 100


class Action(str, Enum):
    TAKE = "take"
    PAY_START = "pay_start"
    DELIVER = "deliver"
    APPROVE = "approve"
    REVIEW = "review"
    REFUND = "refund"
    DISPUTE = "dispute"
    ARBITRATE = "arbitrate"
    REFUSE_ARBITRATION = "refuse_arbitration"
    CLOSE = "close"
    REOPEN = "reopen"
    UPDATE = "update"
    UPDATE_WHITELIST = "update_whitelist"
    WITHDRAW_COLLATERAL = "withdraw_collateral"
    POST_MESSAGE = "post_message"


class EffectKind(str, Enum):
    ESCROW_OPENED = "escrow_opened"
    ESCROW_RELEASED = "escrow_released"
    ESCROW_SPLIT = "escrow_split"
    ESCROW_REFUNDED = "escrow_refunded"
    ARBITRATOR_SETTLED = "arbitrator_settled"
    ARBITRATOR_REFUSED = "arbitrator_refused"
    WORKER_UNWHITELISTED = "worker_unwhitelisted"
    COLLATERAL_OWED = "collateral_owed"
    COLLATERAL_WITHDRAWN = "collateral_withdrawn"


class Effect(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: EffectKind
    address: Optional[str] = None
    amount: int = 0
    detail: Dict[str, Any] = {}


class Transition(NamedTuple):
    job: Job
    effects: Tuple[Effect, ...]


def role_of(job: Job, address: Optional[str]) -> Role:
    if same_address(address, job.roles.creator):
        return Role.CREATOR
    if same_address(address, job.roles.worker):
        return Role.WORKER
    if same_address(address, job.roles.arbitrator):
        return Role.ARBITRATOR
    return Role.OUTSIDER


def timed_out(job: Job, now: Optional[int]) -> bool:
    return now is not None and job.taken_at is not None and now >= job.taken_at + job.max_time


def can_reopen(job: Job) -> bool:
    return job.state == JobState.CLOSED and job.roles.worker is None and not job.completed


# --- Fold -----------------------------------------------------------------


def genesis(job_id: int, event: JobEvent) -> Job:
    if event.type != JobEventType.CREATED:
        raise ValueError(f"Job {job_id} event log must start with Created, got {event.type.name}")
    terms = JobTerms(**event.payload["terms"])
    return Job(
        id=job_id,
        roles=JobRoles(creator=terms.creator, arbitrator=terms.arbitrator),
        title=terms.title,
        tags=terms.tags,
        content_hash=terms.content_hash,
        multiple_applicants=terms.multiple_applicants,
        whitelist_workers=terms.whitelist_workers,
        amount=terms.amount,
        token=terms.token,
        timestamp=event.timestamp,
        max_time=terms.max_time,
        delivery_method=terms.delivery_method,
        events_length=1,
    )


def _whitelist_step(whitelist: FrozenSet[str], event: JobEvent) -> FrozenSet[str]:
    if event.type == JobEventType.WHITELISTED_WORKER_ADDED and event.actor:
        return whitelist | {event.actor}
    if event.type == JobEventType.WHITELISTED_WORKER_REMOVED and event.actor:
        return whitelist - {event.actor}
    return whitelist


def whitelist_after(events: Iterable[JobEvent], initial: FrozenSet[str] = frozenset()) -> FrozenSet[str]:
    """Whitelist obtained by applying add/remove events in order."""
    whitelist = frozenset(initial)
    for event in events:
        whitelist = _whitelist_step(whitelist, event)
    return whitelist


def _assign_worker(job, event):
    updates = {
        "state": JobState.TAKEN,
        "roles": job.roles.model_copy(update={"worker": event.actor}),
        "escrow_id": int(event.payload.get("escrow_id", 0)),
        "taken_at": event.timestamp,
    }
    return updates, [Effect(kind=EffectKind.ESCROW_OPENED, address=event.actor, amount=job.amount)]


def _updated(job, event):
    raw = event.payload.get("terms")
    if not raw:
        return {}, []
    terms = JobTerms(**raw)
    updates = {
        "title": terms.title,
        "tags": terms.tags,
        "content_hash": terms.content_hash,
        "amount": terms.amount,
        "max_time": terms.max_time,
        "whitelist_workers": terms.whitelist_workers,
        "roles": job.roles.model_copy(update={"arbitrator": terms.arbitrator}),
    }
    return updates, []


def _completed(job, event):
    updates = {"state": JobState.CLOSED, "completed": True}
    return updates, [Effect(kind=EffectKind.ESCROW_RELEASED, address=job.roles.worker, amount=job.amount)]


def _closed(job, event):
    updates = {"state": JobState.CLOSED, "collateral_owed": job.amount}
    return updates, [Effect(kind=EffectKind.COLLATERAL_OWED, address=job.roles.creator, amount=job.amount)]


def _reopened(job, event):
    return {"state": JobState.OPEN, "collateral_owed": 0}, []


def _refunded(job, event):
    worker = job.roles.worker
    updates = {
        "state": JobState.OPEN,
        "roles": job.roles.model_copy(update={"worker": None}),
        "whitelist": job.whitelist - {worker} if worker else job.whitelist,
        "escrow_id": 0,
        "taken_at": None,
        "result_hash": None,
    }
    effects = [Effect(kind=EffectKind.ESCROW_REFUNDED, address=job.roles.creator, amount=job.amount)]
    if worker:
        effects.append(Effect(kind=EffectKind.WORKER_UNWHITELISTED, address=worker))
    return updates, effects


def _arbitrated(job, event):
    buyer = int(event.payload.get("buyer_share", 0))
    worker = int(event.payload.get("worker_share", 0))
    updates = {
        "state": JobState.CLOSED,
        "disputed": False,
        "completed": True,
        "buyer_share": buyer,
        "worker_share": worker,
    }
    effects = [
        Effect(kind=EffectKind.ESCROW_SPLIT, amount=job.amount, detail={"buyer_share": buyer, "worker_share": worker}),
        Effect(kind=EffectKind.ARBITRATOR_SETTLED, address=job.roles.arbitrator),
    ]
    return updates, effects


def _whitelist_changed(job, event):
    return {"whitelist": _whitelist_step(job.whitelist, event)}, []


def _collateral_withdrawn(job, event):
    effect = Effect(kind=EffectKind.COLLATERAL_WITHDRAWN, address=job.roles.creator, amount=job.collateral_owed)
    return {"collateral_owed": 0}, [effect]


def _no_change(job, event):
    return {}, []


_APPLY: Dict[JobEventType, Callable] = {
    JobEventType.TAKEN: _assign_worker,
    JobEventType.PAID: _assign_worker,
    JobEventType.UPDATED: _updated,
    JobEventType.SIGNED: _no_change,
    JobEventType.COMPLETED: _completed,
    JobEventType.DELIVERED: lambda job, e: ({"result_hash": e.payload.get("result_hash")}, []),
    JobEventType.CLOSED: _closed,
    JobEventType.REOPENED: _reopened,
    JobEventType.RATED: lambda job, e: ({"rating": int(e.payload.get("rating", 0))}, []),
    JobEventType.REFUNDED: _refunded,
    JobEventType.DISPUTED: lambda job, e: ({"disputed": True}, []),
    JobEventType.ARBITRATED: _arbitrated,
    JobEventType.ARBITRATION_REFUSED: lambda job, e: (
        {"disputed": False},
        [Effect(kind=EffectKind.ARBITRATOR_REFUSED, address=job.roles.arbitrator)],
    ),
    JobEventType.WHITELISTED_WORKER_ADDED: _whitelist_changed,
    JobEventType.WHITELISTED_WORKER_REMOVED: _whitelist_changed,
    JobEventType.COLLATERAL_WITHDRAWN: _collateral_withdrawn,
    JobEventType.WORKER_MESSAGE: _no_change,
    JobEventType.OWNER_MESSAGE: _no_change,
}


def apply_event(job: Job, event: JobEvent) -> Transition:
    if event.type == JobEventType.CREATED:
        raise ValueError(f"Job {job.id} already has a Created event")
    updates, effects = _APPLY[event.type](job, event)
    updates["events_length"] = job.events_length + 1
    return Transition(job=job.model_copy(update=updates), effects=tuple(effects))


def replay(events: Iterable[JobEvent], job_id: int = 0) -> Job:
    events = list(events)
    if not events:
        raise ValueError(f"Job {job_id} has no events")
    job = genesis(job_id, events[0])
    for event in events[1:]:
        job = apply_event(job, event).job
    return job


# --- Validation -------------------------------------------------------------


def _fail(job: Job, action: Action, role: Role, reason: str):
    raise InvalidTransition(job.state, action, role, reason)


def _expect(job: Job, action: Action, role: Role, states=(), roles=(), calm: bool = False):
    if states and job.state not in states:
        _fail(job, action, role, f"job is {job.state.name.lower()}")
    if roles and role not in roles:
        _fail(job, action, role, f"only {' or '.join(r.value for r in roles)} may {action.value}")
    if calm and job.disputed:
        _fail(job, action, role, "job is disputed")


def _check_take(job, action, role, caller, signature=None, **kw):
    _expect(job, action, role, states=(JobState.OPEN,))
    if role == Role.CREATOR:
        _fail(job, action, role, "creator cannot take own job")
    if job.multiple_applicants and job.whitelist_workers and caller not in job.whitelist:
        _fail(job, action, role, "worker not whitelisted")
    if signature is None:
        _fail(job, action, role, "signature required")
    try:
        signer = recover_take_signer(job.events_length, job.id, signature)
    except ValueError:
        signer = None
    if not same_address(signer, caller):
        raise StaleSignature(job.id, job.events_length, signer=signer, expected=caller)


def _check_pay_start(job, action, role, caller, worker=None, **kw):
    _expect(job, action, role, states=(JobState.OPEN,), roles=(Role.CREATOR,))
    if not job.multiple_applicants:
        _fail(job, action, role, "job does not accept multiple applicants")
    try:
        worker = to_address(worker)
    except ValueError:
        worker = None
    if worker is None or same_address(worker, job.roles.creator):
        _fail(job, action, role, "a worker other than the creator is required")


def _check_deliver(job, action, role, caller, result_hash=None, **kw):
    _expect(job, action, role, states=(JobState.TAKEN,), roles=(Role.WORKER,), calm=True)
    if not result_hash:
        _fail(job, action, role, "result hash required")


def _check_rating(job, action, role, rating, low):
    if rating is None or not low <= int(rating) <= MAX_RATING:
        _fail(job, action, role, f"rating must be between {low} and {MAX_RATING}")


def _check_approve(job, action, role, caller, rating=0, **kw):
    _expect(job, action, role, states=(JobState.TAKEN,), roles=(Role.CREATOR,), calm=True)
    if not job.result_hash:
        _fail(job, action, role, "result not delivered")
    _check_rating(job, action, role, rating, 0)


def _check_review(job, action, role, caller, rating=None, **kw):
    _expect(job, action, role, states=(JobState.CLOSED,), roles=(Role.CREATOR,))
    if not job.completed or job.roles.worker is None:
        _fail(job, action, role, "job was not completed")
    if job.rating:
        _fail(job, action, role, "job already rated")
    _check_rating(job, action, role, rating, 1)


def _check_refund(job, action, role, caller, now=None, **kw):
    _expect(job, action, role, states=(JobState.TAKEN,), calm=True)
    if role == Role.WORKER:
        return
    if role == Role.CREATOR and timed_out(job, now):
        return
    _fail(job, action, role, "only the worker may refund before the delivery time elapses")


def _check_dispute(job, action, role, caller, **kw):
    _expect(job, action, role, states=(JobState.TAKEN,), roles=(Role.CREATOR, Role.WORKER))
    if job.disputed:
        _fail(job, action, role, "job already disputed")
    if job.roles.arbitrator is None:
        _fail(job, action, role, "job has no arbitrator")


def _check_arbitrate(job, action, role, caller, buyer_share=None, worker_share=None, **kw):
    _check_refuse(job, action, role, caller)
    for share in (buyer_share, worker_share):
        if share is None or isinstance(share, bool) or not isinstance(share, int) or share < 0:
            _fail(job, action, role, "shares must be whole percentages")
    if buyer_share + worker_share != SHARE_TOTAL:
        _fail(job, action, role, f"shares must add up to {SHARE_TOTAL}")


def _check_refuse(job, action, role, caller, **kw):
    _expect(job, action, role, states=(JobState.TAKEN,), roles=(Role.ARBITRATOR,))
    if not job.disputed:
        _fail(job, action, role, "job is not disputed")


def _check_close(job, action, role, caller, **kw):
    _expect(job, action, role, states=(JobState.OPEN,), roles=(Role.CREATOR,))


def _check_reopen(job, action, role, caller, **kw):
    _expect(job, action, role, states=(JobState.CLOSED,), roles=(Role.CREATOR,))
    if not can_reopen(job):
        _fail(job, action, role, "job was completed")


def _check_update(job, action, role, caller, terms=None, **kw):
    _expect(job, action, role, states=(JobState.OPEN,), roles=(Role.CREATOR,))
    if terms is None or not same_address(terms.creator, job.roles.creator):
        _fail(job, action, role, "updated terms must keep the creator")


def _check_whitelist(job, action, role, caller, **kw):
    _expect(job, action, role, states=(JobState.OPEN,), roles=(Role.CREATOR,))


def _check_withdraw(job, action, role, caller, **kw):
    _expect(job, action, role, states=(JobState.CLOSED,), roles=(Role.CREATOR,))
    if job.collateral_owed <= 0:
        _fail(job, action, role, "no collateral owed")


def _check_message(job, action, role, caller, recipient=None, **kw):
    if recipient is not None and same_address(recipient, caller):
        _fail(job, action, role, "cannot message yourself")


_CHECKS: Dict[Action, Callable] = {
    Action.TAKE: _check_take,
    Action.PAY_START: _check_pay_start,
    Action.DELIVER: _check_deliver,
    Action.APPROVE: _check_approve,
    Action.REVIEW: _check_review,
    Action.REFUND: _check_refund,
    Action.DISPUTE: _check_dispute,
    Action.ARBITRATE: _check_arbitrate,
    Action.REFUSE_ARBITRATION: _check_refuse,
    Action.CLOSE: _check_close,
    Action.REOPEN: _check_reopen,
    Action.UPDATE: _check_update,
    Action.UPDATE_WHITELIST: _check_whitelist,
    Action.WITHDRAW_COLLATERAL: _check_withdraw,
    Action.POST_MESSAGE: _check_message,
}


def validate(job: Job, action: Action, caller: str, **kw: Any) -> None:
    """
    Raise InvalidTransition unless `caller` may perform `action` on `job` now.

    Keyword arguments depend on the action: signature (take), worker (pay_start),
    result_hash (deliver), rating (approve/review), now (refund after timeout),
    buyer_share/worker_share (arbitrate), terms (update), recipient (post_message).
    """
    action = Action(action)
    caller = to_address(caller)
    if caller is None:
        raise ValueError("caller address required")
    _CHECKS[action](job, action, role_of(job, caller), caller, **kw)


def propose(job: Job, action: Action, caller: str, now: int = 0, **kw: Any) -> Tuple[JobEvent, ...]:
    """Validate, then return the events the contract appends for this action."""
    validate(job, action, caller, now=now, **kw)
    action = Action(action)
    caller = to_address(caller)

    def event(event_type, actor=caller, **payload):
        return JobEvent(type=event_type, actor=actor, payload=payload, timestamp=now)

    if action == Action.TAKE:
        return (event(JobEventType.TAKEN, escrow_id=kw.get("escrow_id", 0)),)
    if action == Action.PAY_START:
        return (event(JobEventType.PAID, actor=kw["worker"], escrow_id=kw.get("escrow_id", 0)),)
    if action == Action.DELIVER:
        return (event(JobEventType.DELIVERED, result_hash=kw["result_hash"]),)
    if action == Action.APPROVE:
        events: List[JobEvent] = [event(JobEventType.COMPLETED)]
        if kw.get("rating"):
            events.append(event(JobEventType.RATED, rating=int(kw["rating"]), text=kw.get("text", "")))
        return tuple(events)
    if action == Action.REVIEW:
        return (event(JobEventType.RATED, rating=int(kw["rating"]), text=kw.get("text", "")),)
    if action == Action.REFUND:
        return (event(JobEventType.REFUNDED, actor=job.roles.worker),)
    if action == Action.DISPUTE:
        return (event(JobEventType.DISPUTED, content=kw.get("content", "")),)
    if action == Action.ARBITRATE:
        return (
            event(
                JobEventType.ARBITRATED,
                buyer_share=kw["buyer_share"],
                worker_share=kw["worker_share"],
                reason_hash=kw.get("reason_hash", ""),
            ),
        )
    if action == Action.REFUSE_ARBITRATION:
        return (event(JobEventType.ARBITRATION_REFUSED),)
    if action == Action.CLOSE:
        return (event(JobEventType.CLOSED),)
    if action == Action.REOPEN:
        return (event(JobEventType.REOPENED),)
    if action == Action.UPDATE:
        return (event(JobEventType.UPDATED, terms=kw["terms"].model_dump()),)
    if action == Action.UPDATE_WHITELIST:
        added = [event(JobEventType.WHITELISTED_WORKER_ADDED, actor=a) for a in kw.get("allowed", ())]
        removed = [event(JobEventType.WHITELISTED_WORKER_REMOVED, actor=a) for a in kw.get("disallowed", ())]
        return tuple(added + removed)
    if action == Action.WITHDRAW_COLLATERAL:
        return (event(JobEventType.COLLATERAL_WITHDRAWN),)
    message_type = JobEventType.OWNER_MESSAGE if role_of(job, caller) == Role.CREATOR else JobEventType.WORKER_MESSAGE
    return (event(message_type, content_hash=kw.get("content_hash", ""), recipient=kw.get("recipient")),)
