"""
Synth Removal Error Taxonomy

Every failure the removal protocol can report maps to one exception class.
None of them is retried automatically; the operator re-invokes the command
after fixing the cause.

    RemovalError
    ├── InputError               unknown/protected synth, bad network, bad manifest
    ├── AddressResolutionError   registry entry or ABI source missing
    ├── StateDivergenceError     local address != on-chain address
    ├── NonZeroBalanceError      totalSupply > 0
    ├── TransactionError         submission or confirmation failed
    └── PersistenceError         manifest write failed (local state suspect)

Copyright (c) 2026 Synthetix Publish. All rights reserved.
"""

from __future__ import annotations

from typing import Any, Optional, Tuple


class RemovalError(Exception):
    """Base class for errors that abort a removal run."""

    exit_code = 1
    error_code = "removal_error"

    def __init__(self, message: str, identifier: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.identifier = identifier
        # Outcomes committed earlier in the same run; set by the coordinator.
        self.committed: Tuple[Any, ...] = ()

    def to_dict(self) -> dict:
        return {
            "error": self.error_code,
            "message": self.message,
            "identifier": self.identifier,
            "committed": [getattr(o, "identifier", o) for o in self.committed],
        }


class InputError(RemovalError):
    """Caller input rejected before any chain interaction."""
    error_code = "input_error"


class AddressResolutionError(RemovalError):
    """The local registry lacks an entry (or ABI source) the removal needs."""
    error_code = "address_resolution_error"


class StateDivergenceError(RemovalError):
    """Local registry address disagrees with the on-chain registry."""
    error_code = "state_divergence_error"

    def __init__(self, message: str, identifier: str, deployed: str, local: str):
        super().__init__(message, identifier)
        self.deployed = deployed
        self.local = local


class NonZeroBalanceError(RemovalError):
    """Component still has circulating supply."""
    error_code = "non_zero_balance_error"

    def __init__(self, message: str, identifier: str, total_supply: int):
        super().__init__(message, identifier)
        self.total_supply = total_supply


class TransactionError(RemovalError):
    """A state-changing transaction failed to submit or confirm."""
    error_code = "transaction_error"

    def __init__(
        self,
        message: str,
        identifier: Optional[str] = None,
        tx_hash: Optional[str] = None,
    ):
        super().__init__(message, identifier)
        self.tx_hash = tx_hash


class PersistenceError(RemovalError):
    """
    A manifest could not be written.

    Raised after the on-chain (or deferred) action already happened, so the
    local manifests may now lag the chain.
    """
    exit_code = 2
    error_code = "persistence_error"

    def __init__(self, message: str, path: Optional[str] = None, identifier: Optional[str] = None):
        super().__init__(message, identifier)
        self.path = path

