"""
Error taxonomy for the SDK.

Local validation failures (InvalidTransition, StaleSignature) are recoverable by
the caller. Ledger failures (NetworkError, Reverted, LedgerTimeout) are surfaced
with the underlying reason and never retried here. Content store failures are
non-fatal: retry with another gateway or backend.
"""

from typing import Optional


class EACCError(Exception):
    """Base class for every error raised by the SDK."""


class NotConnected(EACCError):
    def __init__(self, message: Optional[str] = None):
        super().__init__(
            message
            or "Wallet not connected. Call connect_with_private_key(), connect_node_account() "
            "or connect_eip1193() first."
        )


class UnsupportedNetwork(EACCError):
    def __init__(self, chain_id: int):
        self.chain_id = chain_id
        super().__init__(f"Unsupported network: {chain_id}")


class InvalidTransition(EACCError):
    """A (state, action, caller role) combination the job lifecycle does not allow."""

    def __init__(self, state, action, role, reason: str = ""):
        self.state = state
        self.action = action
        self.role = role
        self.reason = reason
        state_name = getattr(state, "name", state)
        action_name = getattr(action, "value", action)
        role_name = getattr(role, "value", role)
        msg = f"Cannot {action_name} job in state {state_name} as {role_name}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class StaleSignature(EACCError):
    """Take signature does not match the job's current events length (anti-replay)."""

    def __init__(self, job_id: int, events_length: int, signer: Optional[str] = None, expected: Optional[str] = None):
        self.job_id = job_id
        self.events_length = events_length
        self.signer = signer
        self.expected = expected
        msg = f"Signature for job {job_id} does not match events length {events_length}"
        if signer and expected:
            msg += f" (recovered {signer}, expected {expected})"
        super().__init__(msg + ". Re-sign with the current events length.")


class LedgerError(EACCError):
    """Base class for failures reported by the ledger gateway."""


class NetworkError(LedgerError):
    pass


class Reverted(LedgerError):
    def __init__(self, reason: str, tx_hash: Optional[str] = None):
        self.reason = reason
        self.tx_hash = tx_hash
        self.hint = hint_for(reason)
        msg = f"Transaction reverted: {reason}"
        if tx_hash:
            msg += f" (tx {tx_hash})"
        if self.hint:
            msg += f". {self.hint}"
        super().__init__(msg)


class LedgerTimeout(LedgerError):
    def __init__(self, tx_hash: str, timeout: float):
        self.tx_hash = tx_hash
        self.timeout = timeout
        super().__init__(f"Tx {tx_hash} not mined after {timeout}s. The transaction may still confirm later.")


class ContentStoreError(EACCError):
    """Content store failure. Non-fatal; the caller may retry with another gateway."""


class ContentNotFound(ContentStoreError):
    pass


class ContentTimeout(ContentStoreError):
    pass


class ContentServiceUnavailable(ContentStoreError):
    pass


# Revert reason fragment -> what the user should do about it.
REMEDIATION_HINTS = (
    ("not registered", "Register as a user first (register_user)."),
    ("not whitelisted", "Ask the job creator to whitelist your address."),
    ("invalid signature", "Re-create the take signature with the current events length."),
    ("not open", "The job is no longer open; another worker may have taken it."),
    ("invalid token", "Use a valid ERC20 token address."),
    ("title too short", "Job title must be between 1 and 254 characters."),
    ("mece tag", "Include exactly one MECE tag: DA, DV, DT, DS, DO, NDG, NDS, NDO."),
)


def hint_for(reason: Optional[str]) -> Optional[str]:
    """Remediation hint for a contract revert reason, or None."""
    if not reason:
        return None
    lowered = reason.lower()
    for fragment, hint in REMEDIATION_HINTS:
        if fragment in lowered:
            return hint
    return None
