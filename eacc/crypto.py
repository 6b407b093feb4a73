"""
Signature helpers on top of eth-account / web3.

The take-job signature is an EIP-191 personal signature over
keccak256(abi.encodePacked(uint256 eventsLength, uint256 jobId)), so it is only
valid while the job's event log has exactly that many entries. The same pair
can also be signed as EIP-712 typed data under the "EACC Marketplace" domain.
"""

from decimal import Decimal, InvalidOperation, localcontext
from typing import Any, Dict, List, Optional, Tuple, Union

from eth_account import Account
from eth_account.messages import SignableMessage, encode_defunct, encode_typed_data
from eth_keys import keys
from web3 import Web3

from eacc.config import ZERO_ADDRESS

SignatureLike = Union[bytes, str]
TypedFields = Dict[str, List[Dict[str, str]]]

TYPED_DATA_DOMAIN_NAME = "EACC Marketplace"
TYPED_DATA_DOMAIN_VERSION = "2"
JOB_TAKING_TYPES: TypedFields = {
    "JobTaking": [
        {"name": "jobId", "type": "uint256"},
        {"name": "eventsLength", "type": "uint256"},
    ]
}

# EIP712Domain member order
_DOMAIN_FIELDS = (
    ("name", "string"),
    ("version", "string"),
    ("chainId", "uint256"),
    ("verifyingContract", "address"),
    ("salt", "bytes32"),
)

# enough digits for any uint256 amount
_UNIT_PRECISION = 80


def to_address(address: Optional[str]) -> Optional[str]:
    """Checksum an address. None and the zero address both mean "unset"."""
    if address is None:
        return None
    if isinstance(address, (bytes, bytearray)):
        if not address:
            return None
        address = Web3.to_hex(address)
    if not Web3.is_address(address):
        raise ValueError(f"Invalid address: {address!r}")
    checksummed = Web3.to_checksum_address(address)
    if checksummed == ZERO_ADDRESS:
        return None
    return checksummed


def same_address(a: Optional[str], b: Optional[str]) -> bool:
    if a is None or b is None:
        return False
    return a.lower() == b.lower()


def compute_address(public_key: Union[str, bytes]) -> str:
    """
    Checksummed address of a secp256k1 public key.

    Accepts compressed (33 bytes), uncompressed (65 bytes, 0x04 prefix) or
    raw (64 bytes) keys, as hex or bytes.
    """
    raw = public_key if isinstance(public_key, (bytes, bytearray)) else Web3.to_bytes(hexstr=public_key)
    raw = bytes(raw)
    try:
        if len(raw) == 33:
            key = keys.PublicKey.from_compressed_bytes(raw)
        elif len(raw) == 65 and raw[0] == 4:
            key = keys.PublicKey(raw[1:])
        elif len(raw) == 64:
            key = keys.PublicKey(raw)
        else:
            raise ValueError(f"public key must be 33, 64 or 65 bytes, got {len(raw)}")
    except (TypeError, ValueError) as err:
        raise ValueError(f"Invalid public key: {err}") from err
    return key.to_checksum_address()


def take_job_digest(events_length: int, job_id: int) -> bytes:
    return bytes(Web3.solidity_keccak(["uint256", "uint256"], [int(events_length), int(job_id)]))


def signature_bytes(signature: SignatureLike) -> bytes:
    if isinstance(signature, str):
        return bytes(Web3.to_bytes(hexstr=signature))
    return bytes(signature)


def is_valid_signature(signature: Any) -> bool:
    try:
        return len(signature_bytes(signature)) == 65
    except (TypeError, ValueError):
        return False


def recover_signer(message: bytes, signature: SignatureLike) -> str:
    """Address that produced an EIP-191 signature over raw message bytes."""
    if not is_valid_signature(signature):
        raise ValueError("Signature must be 65 bytes")
    try:
        return Account.recover_message(encode_defunct(primitive=message), signature=signature_bytes(signature))
    except Exception as err:
        raise ValueError(f"Cannot recover signer: {err}") from err


def recover_take_signer(events_length: int, job_id: int, signature: SignatureLike) -> str:
    return recover_signer(take_job_digest(events_length, job_id), signature)


def verify_take_signature(events_length: int, job_id: int, signature: SignatureLike, expected: str) -> bool:
    try:
        return same_address(recover_take_signer(events_length, job_id, signature), expected)
    except ValueError:
        return False


def typed_data(domain: Dict[str, Any], types: TypedFields, message: Dict[str, Any], primary_type: Optional[str] = None) -> Dict[str, Any]:
    """
    Full EIP-712 payload, the shape eth_signTypedData_v4 expects.

    `types` holds only the struct types; the EIP712Domain entry is derived from
    the keys present in `domain`. The primary type defaults to the first struct.
    """
    domain_type = [{"name": name, "type": kind} for name, kind in _DOMAIN_FIELDS if name in domain]
    return {
        "types": {"EIP712Domain": domain_type, **types},
        "domain": dict(domain),
        "primaryType": primary_type or next(iter(types)),
        "message": dict(message),
    }


def typed_data_message(payload: Dict[str, Any]) -> SignableMessage:
    return encode_typed_data(full_message=payload)


def job_taking_typed_data(job_id: int, events_length: int, contract_address: str, chain_id: int) -> Dict[str, Any]:
    """Typed-data form of the take-job authorization for MarketplaceV2."""
    domain = {
        "name": TYPED_DATA_DOMAIN_NAME,
        "version": TYPED_DATA_DOMAIN_VERSION,
        "chainId": int(chain_id),
        "verifyingContract": Web3.to_checksum_address(contract_address),
    }
    return typed_data(domain, JOB_TAKING_TYPES, {"jobId": int(job_id), "eventsLength": int(events_length)})


def recover_typed_data_signer(payload: Dict[str, Any], signature: SignatureLike) -> str:
    if not is_valid_signature(signature):
        raise ValueError("Signature must be 65 bytes")
    try:
        return Account.recover_message(typed_data_message(payload), signature=signature_bytes(signature))
    except Exception as err:
        raise ValueError(f"Cannot recover signer: {err}") from err


def verify_typed_data(payload: Dict[str, Any], signature: SignatureLike, expected: str) -> bool:
    try:
        return same_address(recover_typed_data_signer(payload, signature), expected)
    except ValueError:
        return False


def split_signature(signature: SignatureLike) -> Tuple[str, str, int]:
    """(r, s, v) with v normalized to 27/28."""
    raw = signature_bytes(signature)
    if len(raw) != 65:
        raise ValueError("Signature must be 65 bytes")
    v = raw[64]
    if v < 27:
        v += 27
    return Web3.to_hex(raw[:32]), Web3.to_hex(raw[32:64]), v


def join_signature(r: str, s: str, v: int) -> str:
    r_bytes = Web3.to_bytes(hexstr=r).rjust(32, b"\x00")
    s_bytes = Web3.to_bytes(hexstr=s).rjust(32, b"\x00")
    return Web3.to_hex(r_bytes + s_bytes + bytes([v if v >= 27 else v + 27]))


def encode_bytes32_string(text: str) -> str:
    """Right-padded UTF-8 bytes32 (at most 31 bytes so a terminating zero remains)."""
    raw = text.encode("utf-8")
    if len(raw) > 31:
        raise ValueError("bytes32 string must be less than 32 bytes")
    return Web3.to_hex(raw.ljust(32, b"\x00"))


def decode_bytes32_string(value: Union[str, bytes]) -> str:
    raw = value if isinstance(value, (bytes, bytearray)) else Web3.to_bytes(hexstr=value)
    if len(raw) != 32:
        raise ValueError("invalid bytes32 - not 32 bytes long")
    if raw[31] != 0:
        raise ValueError("invalid bytes32 string - no null terminator")
    return bytes(raw).rstrip(b"\x00").decode("utf-8")


def _amount(value: Union[str, int, Decimal]) -> Decimal:
    try:
        amount = Decimal(str(value).strip())
    except InvalidOperation as err:
        raise ValueError(f"Invalid amount: {value!r}") from err
    if not amount.is_finite():
        raise ValueError(f"Invalid amount: {value!r}")
    return amount


def format_units(value: int, decimals: int = 18) -> str:
    """Base units -> decimal string, e.g. format_units(1500000, 6) == "1.5"."""
    with localcontext() as ctx:
        ctx.prec = _UNIT_PRECISION
        return format(Decimal(int(value)).scaleb(-decimals).normalize(), "f")


def parse_units(value: Union[str, int, Decimal], decimals: int = 18) -> int:
    """Decimal string -> base units. More fractional digits than `decimals` is an error."""
    amount = _amount(value)
    with localcontext() as ctx:
        ctx.prec = _UNIT_PRECISION
        scaled = amount.scaleb(decimals)
        if scaled != scaled.to_integral_value():
            raise ValueError(f"{value!r} has more than {decimals} decimals")
        return int(scaled)


def format_ether(value: int) -> str:
    if not value:
        return "0"
    return format(Web3.from_wei(int(value), "ether").normalize(), "f")


def parse_ether(value: Union[str, int, Decimal]) -> int:
    amount = _amount(value)
    if amount.as_tuple().exponent < -18:
        raise ValueError(f"{value!r} has more than 18 decimals")
    return Web3.to_wei(amount, "ether")
