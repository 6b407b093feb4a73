"""
Signers: who signs messages and transactions for the client.

Key is loaded from EACC_PRIVATE_KEY (env) or .env file. Never read/write a key file.
Node-managed accounts (eth_sign / eth_sendTransaction on the RPC node) and
EIP-1193 providers (a `request(method, params)` callable, e.g. a browser bridge)
sign on the other side and never expose a key.
"""

import json
import os
from typing import Any, Callable, Dict, List, Optional

from eth_account import Account
from eth_account.messages import encode_defunct
from eth_account.signers.local import LocalAccount
from web3 import Web3

from eacc.config import load_env
from eacc.crypto import job_taking_typed_data, take_job_digest, to_address, typed_data_message

Account.enable_unaudited_hdwallet_features()

ENV_PRIVATE_KEY = "EACC_PRIVATE_KEY"


def generate_keypair() -> LocalAccount:
    """Generate a new random keypair. Caller must persist via env (never to file)."""
    return Account.create()


def load_key() -> LocalAccount:
    """
    Load key from EACC_PRIVATE_KEY env or .env file.
    Raises RuntimeError if it is not set.
    """
    load_env()
    pk = (os.getenv(ENV_PRIVATE_KEY) or "").strip()
    if not pk:
        raise RuntimeError(
            "Set EACC_PRIVATE_KEY in the environment (never commit it). "
            "Generate one: python -c \"from eth_account import Account; a = Account.create(); print(a.key.hex())\""
        )
    return Account.from_key(pk)


class Signer:
    """Base signer. Subclasses sign EIP-191 messages and submit or sign transactions."""

    #: True when transactions are signed locally and broadcast with eth_sendRawTransaction.
    signs_locally = False

    @property
    def address(self) -> str:
        raise NotImplementedError

    def sign_message(self, message: bytes) -> str:
        """EIP-191 personal signature over raw bytes, 0x hex."""
        raise NotImplementedError

    def sign_transaction(self, tx: Dict[str, Any]) -> bytes:
        raise NotImplementedError(f"{type(self).__name__} cannot sign transactions locally")

    def send_transaction(self, tx: Dict[str, Any]) -> str:
        raise NotImplementedError(f"{type(self).__name__} cannot submit transactions")

    def sign_take(self, job_id: int, events_length: int) -> str:
        """Signature authorizing a take of `job_id` at the given events length."""
        return self.sign_message(take_job_digest(events_length, job_id))

    def sign_typed_data(self, payload: Dict[str, Any]) -> str:
        """EIP-712 signature over a full typed-data payload (see crypto.typed_data), 0x hex."""
        raise NotImplementedError(f"{type(self).__name__} cannot sign typed data")

    def sign_job_taking(self, job_id: int, events_length: int, contract_address: str, chain_id: int) -> str:
        return self.sign_typed_data(job_taking_typed_data(job_id, events_length, contract_address, chain_id))


class KeySigner(Signer):
    """Local keypair. The key never leaves the process."""

    signs_locally = True

    def __init__(self, account: Optional[LocalAccount] = None):
        self._account = account if account is not None else load_key()

    @property
    def address(self) -> str:
        return self._account.address

    @property
    def account(self) -> LocalAccount:
        return self._account

    def sign_message(self, message: bytes) -> str:
        signed = self._account.sign_message(encode_defunct(primitive=message))
        return Web3.to_hex(signed.signature)

    def sign_typed_data(self, payload: Dict[str, Any]) -> str:
        return Web3.to_hex(self._account.sign_message(typed_data_message(payload)).signature)

    def sign_transaction(self, tx: Dict[str, Any]) -> bytes:
        return bytes(self._account.sign_transaction(tx).raw_transaction)

    @classmethod
    def from_key(cls, private_key: str) -> "KeySigner":
        return cls(account=Account.from_key(private_key.strip()))

    @classmethod
    def from_mnemonic(cls, mnemonic: str, account_path: str = "m/44'/60'/0'/0/0") -> "KeySigner":
        return cls(account=Account.from_mnemonic(mnemonic.strip(), account_path=account_path))

    @classmethod
    def generate(cls) -> "KeySigner":
        return cls(account=generate_keypair())


class NodeSigner(Signer):
    """Account unlocked on the RPC node."""

    def __init__(self, w3: Web3, address: Optional[str] = None):
        self._w3 = w3
        if address is None:
            accounts = w3.eth.accounts
            if not accounts:
                raise RuntimeError("RPC node manages no accounts; pass an address or use a private key")
            address = accounts[0]
        self._address = to_address(address)

    @property
    def address(self) -> str:
        return self._address

    def sign_message(self, message: bytes) -> str:
        return Web3.to_hex(self._w3.eth.sign(self._address, data=message))

    def sign_typed_data(self, payload: Dict[str, Any]) -> str:
        return Web3.to_hex(self._w3.eth.sign_typed_data(self._address, payload))

    def send_transaction(self, tx: Dict[str, Any]) -> str:
        return Web3.to_hex(self._w3.eth.send_transaction(tx))


RequestFn = Callable[[str, List[Any]], Any]


class Eip1193Signer(Signer):
    """
    Injected provider, reached through `request(method, params)`.
    The first account returned by eth_requestAccounts is used.
    """

    def __init__(self, request: RequestFn):
        self._request = request
        accounts = request("eth_requestAccounts", [])
        if not accounts:
            raise RuntimeError("Provider returned no accounts; unlock the wallet and retry")
        self._address = to_address(accounts[0])

    @property
    def address(self) -> str:
        return self._address

    def sign_message(self, message: bytes) -> str:
        return self._request("personal_sign", [Web3.to_hex(message), self._address])

    def sign_typed_data(self, payload: Dict[str, Any]) -> str:
        return self._request("eth_signTypedData_v4", [self._address, json.dumps(payload)])

    def send_transaction(self, tx: Dict[str, Any]) -> str:
        payload = {k: Web3.to_hex(v) if isinstance(v, int) else v for k, v in tx.items()}
        return self._request("eth_sendTransaction", [payload])
