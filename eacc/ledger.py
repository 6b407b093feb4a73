"""
Ledger gateway: reads and writes against the two marketplace contracts.

read(Query) -> result, submit(TxRequest) -> PendingTx, wait(PendingTx) -> Receipt.
submit() never waits for the receipt and nothing here retries; errors are
mapped to NetworkError / Reverted / LedgerTimeout with the node's reason.
"""

from contextlib import contextmanager
from typing import Any, Dict, Optional, Tuple

import requests
from pydantic import BaseModel, ConfigDict
from web3 import Web3
from web3.exceptions import ContractLogicError, ProviderConnectionError, TimeExhausted, Web3RPCError

from eacc.config import debug
from eacc.contracts import ABIS
from eacc.errors import LedgerTimeout, NetworkError, NotConnected, Reverted
from eacc.wallet import Signer

DEFAULT_WAIT_TIMEOUT = 120


class Query(BaseModel):
    model_config = ConfigDict(frozen=True)

    contract: str
    function: str
    args: Tuple[Any, ...] = ()


class TxRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    contract: str
    function: str
    args: Tuple[Any, ...] = ()
    value: int = 0
    gas: Optional[int] = None


class PendingTx(BaseModel):
    """Handle for a submitted transaction. Abandon it to cancel waiting."""

    model_config = ConfigDict(frozen=True)

    tx_hash: str
    sender: str
    request: TxRequest


class Receipt(BaseModel):
    model_config = ConfigDict(frozen=True)

    tx_hash: str
    status: int
    block_number: int
    gas_used: int = 0


class LedgerGateway:
    """Capability interface the client depends on."""

    def read(self, query: Query) -> Any:
        raise NotImplementedError

    def submit(self, request: TxRequest) -> PendingTx:
        raise NotImplementedError

    def wait(self, pending: PendingTx, timeout: float = DEFAULT_WAIT_TIMEOUT) -> Receipt:
        raise NotImplementedError

    def balance_of(self, address: str) -> int:
        raise NotImplementedError

    def latest_timestamp(self) -> int:
        raise NotImplementedError


def revert_reason(err: ContractLogicError) -> str:
    reason = getattr(err, "message", None) or str(err)
    prefix = "execution reverted:"
    if reason.lower().startswith(prefix):
        reason = reason[len(prefix):].strip()
    return reason or "execution reverted"


@contextmanager
def mapped_errors(tx_hash: Optional[str] = None):
    """Translate web3 / transport exceptions into the SDK's ledger errors."""
    try:
        yield
    except ContractLogicError as err:
        raise Reverted(revert_reason(err), tx_hash=tx_hash) from err
    except (requests.exceptions.RequestException, ProviderConnectionError, Web3RPCError) as err:
        raise NetworkError(f"Ledger call failed: {err}") from err


class Web3Ledger(LedgerGateway):
    def __init__(
        self,
        w3: Web3,
        marketplace_address: str,
        data_address: str,
        signer: Optional[Signer] = None,
        chain_id: Optional[int] = None,
    ):
        self.w3 = w3
        self.signer = signer
        self._chain_id = chain_id
        self._contracts = {
            "marketplace": w3.eth.contract(address=Web3.to_checksum_address(marketplace_address), abi=ABIS["marketplace"]),
            "data": w3.eth.contract(address=Web3.to_checksum_address(data_address), abi=ABIS["data"]),
        }

    @classmethod
    def from_rpc(cls, rpc_url: str, marketplace_address: str, data_address: str, signer: Optional[Signer] = None, timeout: float = 30) -> "Web3Ledger":
        w3 = Web3(Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": timeout}))
        with mapped_errors():
            if not w3.is_connected():
                raise NetworkError(f"Cannot connect to RPC: {rpc_url}")
        return cls(w3, marketplace_address, data_address, signer=signer)

    def with_signer(self, signer: Signer) -> "Web3Ledger":
        """Same node and contracts, different signer."""
        return Web3Ledger(
            self.w3,
            self._contracts["marketplace"].address,
            self._contracts["data"].address,
            signer=signer,
            chain_id=self._chain_id,
        )

    @property
    def chain_id(self) -> int:
        if self._chain_id is None:
            with mapped_errors():
                self._chain_id = self.w3.eth.chain_id
        return self._chain_id

    def _bound(self, contract: str, function: str, args: Tuple[Any, ...]):
        if contract not in self._contracts:
            raise ValueError(f"Unknown contract {contract!r}; expected one of {sorted(self._contracts)}")
        return getattr(self._contracts[contract].functions, function)(*args)

    def read(self, query: Query) -> Any:
        with mapped_errors():
            return self._bound(query.contract, query.function, query.args).call()

    def submit(self, request: TxRequest) -> PendingTx:
        if self.signer is None:
            raise NotConnected()
        sender = self.signer.address
        fn = self._bound(request.contract, request.function, request.args)
        params: Dict[str, Any] = {"from": sender, "value": request.value}
        with mapped_errors():
            # dry-run first so a revert surfaces with its reason instead of a failed tx
            fn.call(dict(params))
            params["chainId"] = self.chain_id
            if request.gas is not None:
                params["gas"] = request.gas
            if self.signer.signs_locally:
                params["nonce"] = self.w3.eth.get_transaction_count(sender)
                tx = fn.build_transaction(params)
                tx_hash = Web3.to_hex(self.w3.eth.send_raw_transaction(self.signer.sign_transaction(tx)))
            else:
                tx_hash = self.signer.send_transaction(fn.build_transaction(params))
        debug(f"submitted {request.contract}.{request.function} from {sender}: {tx_hash}")
        return PendingTx(tx_hash=tx_hash, sender=sender, request=request)

    def wait(self, pending: PendingTx, timeout: float = DEFAULT_WAIT_TIMEOUT) -> Receipt:
        try:
            with mapped_errors(pending.tx_hash):
                receipt = self.w3.eth.wait_for_transaction_receipt(pending.tx_hash, timeout=timeout)
        except TimeExhausted as err:
            raise LedgerTimeout(pending.tx_hash, timeout) from err
        if receipt["status"] != 1:
            raise Reverted(f"{pending.request.function} failed on-chain", tx_hash=pending.tx_hash)
        return Receipt(
            tx_hash=pending.tx_hash,
            status=receipt["status"],
            block_number=receipt["blockNumber"],
            gas_used=receipt.get("gasUsed", 0),
        )

    def balance_of(self, address: str) -> int:
        with mapped_errors():
            return self.w3.eth.get_balance(Web3.to_checksum_address(address))

    def latest_timestamp(self) -> int:
        with mapped_errors():
            return int(self.w3.eth.get_block("latest")["timestamp"])
