"""
Minimal JSON ABIs for MarketplaceV2 (job state machine) and MarketplaceDataV1
(users, arbitrators, reviews, job event log). Admin-only functions are left out.
"""

from typing import Any, Dict, List, Sequence, Tuple

Param = Tuple[str, Any]


def _param(name: str, type_: Any) -> Dict[str, Any]:
    if isinstance(type_, list):
        # tuple component list; a trailing "[]" on the name marks a tuple array
        is_array = name.endswith("[]")
        return {
            "name": name[:-2] if is_array else name,
            "type": "tuple[]" if is_array else "tuple",
            "components": [_param(n, t) for n, t in type_],
        }
    return {"name": name, "type": type_}


def _fn(name: str, inputs: Sequence[Param] = (), outputs: Sequence[Param] = (), mutability: str = "view") -> Dict[str, Any]:
    return {
        "name": name,
        "type": "function",
        "stateMutability": mutability,
        "inputs": [_param(n, t) for n, t in inputs],
        "outputs": [_param(n, t) for n, t in outputs],
    }


def _tx(name: str, inputs: Sequence[Param] = (), payable: bool = False) -> Dict[str, Any]:
    return _fn(name, inputs, (), "payable" if payable else "nonpayable")


JOB_ROLES = [("creator", "address"), ("arbitrator", "address"), ("worker", "address")]

# getJob layout on MarketplaceV2 (field order differs from MarketplaceDataV1.getJob)
JOB_POST = [
    ("state", "uint8"),
    ("whitelistWorkers", "bool"),
    ("roles", JOB_ROLES),
    ("title", "string"),
    ("tags", "string[]"),
    ("contentHash", "bytes32"),
    ("multipleApplicants", "bool"),
    ("amount", "uint256"),
    ("token", "address"),
    ("timestamp", "uint32"),
    ("maxTime", "uint32"),
    ("deliveryMethod", "string"),
    ("collateralOwed", "uint256"),
    ("escrowId", "uint256"),
    ("resultHash", "bytes32"),
    ("rating", "uint8"),
    ("disputed", "bool"),
]

JOB_EVENT = [("type_", "uint8"), ("address_", "bytes"), ("data_", "bytes"), ("timestamp_", "uint32")]

USER = [
    ("address_", "address"),
    ("publicKey", "bytes"),
    ("name", "string"),
    ("bio", "string"),
    ("avatar", "string"),
    ("reputationUp", "uint16"),
    ("reputationDown", "uint16"),
]

ARBITRATOR = [
    ("address_", "address"),
    ("publicKey", "bytes"),
    ("name", "string"),
    ("bio", "string"),
    ("avatar", "string"),
    ("fee", "uint16"),
    ("settledCount", "uint16"),
    ("refusedCount", "uint16"),
]

USER_RATING = [("averageRating", "uint16"), ("numberOfReviews", "uint256")]

REVIEW = [
    ("reviewer", "address"),
    ("jobId", "uint256"),
    ("rating", "uint8"),
    ("text", "string"),
    ("timestamp", "uint32"),
]

PAGE = [("index", "uint256"), ("limit", "uint256")]


MARKETPLACE_V2_ABI: List[Dict[str, Any]] = [
    _fn("getJob", [("jobId", "uint256")], [("", JOB_POST)]),
    _fn("jobsLength", outputs=[("", "uint256")]),
    _fn("whitelistWorkers", [("jobId", "uint256"), ("worker", "address")], [("", "bool")]),
    _fn("version", outputs=[("", "uint256")]),
    _fn("unicrowAddress", outputs=[("", "address")]),
    _fn("treasuryAddress", outputs=[("", "address")]),
    _fn("unicrowMarketplaceFee", outputs=[("", "uint16")]),
    _fn("eaccToken", outputs=[("", "address")]),
    _fn("eaccRewardTokensEnabled", [("token", "address")], [("", "uint256")]),
    _fn("eaccTokensPerToken", outputs=[("", "uint256")]),
    _fn("marketplaceData", outputs=[("", "address")]),
    _tx(
        "publishJobPost",
        [
            ("title", "string"),
            ("contentHash", "bytes32"),
            ("multipleApplicants", "bool"),
            ("tags", "string[]"),
            ("token", "address"),
            ("amount", "uint256"),
            ("maxTime", "uint32"),
            ("deliveryMethod", "string"),
            ("arbitrator", "address"),
            ("allowedWorkers", "address[]"),
        ],
    ),
    _tx(
        "updateJobPost",
        [
            ("jobId", "uint256"),
            ("title", "string"),
            ("contentHash", "bytes32"),
            ("tags", "string[]"),
            ("amount", "uint256"),
            ("maxTime", "uint32"),
            ("arbitrator", "address"),
            ("whitelistWorkers", "bool"),
        ],
    ),
    _tx("updateJobWhitelist", [("jobId", "uint256"), ("allowedWorkers", "address[]"), ("disallowedWorkers", "address[]")]),
    _tx("closeJob", [("jobId", "uint256")]),
    _tx("withdrawCollateral", [("jobId", "uint256")]),
    _tx("reopenJob", [("jobId", "uint256")]),
    _tx("takeJob", [("jobId", "uint256"), ("signature", "bytes")]),
    _tx("payStartJob", [("jobId", "uint256"), ("worker", "address")], payable=True),
    _tx("deliverResult", [("jobId", "uint256"), ("resultHash", "bytes32")]),
    _tx("approveResult", [("jobId", "uint256"), ("reviewRating", "uint8"), ("reviewText", "string")]),
    _tx("refund", [("jobId", "uint256")]),
    _tx("dispute", [("jobId", "uint256"), ("sessionKey", "bytes"), ("content", "bytes")]),
    _tx(
        "arbitrate",
        [("jobId", "uint256"), ("buyerShare", "uint16"), ("workerShare", "uint16"), ("reasonHash", "bytes32")],
    ),
    _tx("refuseArbitration", [("jobId", "uint256")]),
    _tx("postThreadMessage", [("jobId", "uint256"), ("contentHash", "bytes32"), ("recipient", "address")]),
    _tx("review", [("jobId", "uint256"), ("reviewRating", "uint8"), ("reviewText", "string")]),
]


MARKETPLACE_DATA_V1_ABI: List[Dict[str, Any]] = [
    _fn("getUser", [("userAddress", "address")], [("", USER)]),
    _fn("getUsers", PAGE, [("[]", USER)]),
    _fn("usersLength", outputs=[("", "uint256")]),
    _fn("userRegistered", [("", "address")], [("", "bool")]),
    _fn("getUserRating", [("userAddress", "address")], [("", USER_RATING)]),
    _fn("publicKeys", [("userAddress", "address")], [("", "bytes")]),
    _fn("getReviews", [("target", "address")] + PAGE, [("[]", REVIEW)]),
    _fn("getArbitrator", [("arbitratorAddress", "address")], [("", ARBITRATOR)]),
    _fn("getArbitrators", PAGE, [("[]", ARBITRATOR)]),
    _fn("arbitratorsLength", outputs=[("", "uint256")]),
    _fn("arbitratorRegistered", [("", "address")], [("", "bool")]),
    _fn("getArbitratorFee", [("", "address")], [("", "uint16")]),
    _fn("getJobs", PAGE, [("[]", JOB_POST)]),
    _fn("jobsLength", outputs=[("", "uint256")]),
    _fn("getEvents", [("jobId", "uint256")] + PAGE, [("[]", JOB_EVENT)]),
    _fn("eventsLength", [("jobId", "uint256")], [("", "uint256")]),
    _fn("readMeceTag", [("shortForm", "string")], [("", "string")]),
    _tx("registerUser", [("pubkey", "bytes"), ("name", "string"), ("bio", "string"), ("avatar", "string")]),
    _tx("updateUser", [("name", "string"), ("bio", "string"), ("avatar", "string")]),
    _tx(
        "registerArbitrator",
        [("pubkey", "bytes"), ("name", "string"), ("bio", "string"), ("avatar", "string"), ("fee", "uint16")],
    ),
    _tx("updateArbitrator", [("name", "string"), ("bio", "string"), ("avatar", "string")]),
    _tx("updateMeceTag", [("shortForm", "string"), ("longForm", "string")]),
    _tx("removeMeceTag", [("shortForm", "string")]),
]

# Query/TxRequest.contract -> ABI
ABIS = {
    "marketplace": MARKETPLACE_V2_ABI,
    "data": MARKETPLACE_DATA_V1_ABI,
}


def function_names(contract: str) -> List[str]:
    return [entry["name"] for entry in ABIS[contract] if entry["type"] == "function"]
