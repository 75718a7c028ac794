"""
Synth Publish Chain Access

Read-only contract calls and signed transactions against a ledger node.

    ┌─────────────────────────────────────────────────────────────┐
    │                    RemovalCoordinator                        │
    │   call(address, abi, method, args)   send(..., tx_params)    │
    └──────────────────────────────┬──────────────────────────────┘
                                   │  ChainClient protocol
                 ┌─────────────────┴─────────────────┐
                 ▼                                   ▼
        ┌─────────────────┐                 ┌─────────────────┐
        │ Web3ChainClient │                 │ MockChainClient │
        │ HTTP node, local│                 │ in-memory, for  │
        │ key signing     │                 │ tests/dry runs  │
        └─────────────────┘                 └─────────────────┘

Both clients block until the call returns or the transaction is confirmed.
There is no cancellation beyond the transport timeout.

Copyright (c) 2026 Synthetix Publish. All rights reserved.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence, Tuple

from eth_account import Account
from web3 import Web3
from web3.exceptions import TimeExhausted, Web3Exception

from publish.synths.errors import InputError, TransactionError
from publish.synths.observability import PublishLayer, get_logger, timed_operation

logger = get_logger("chain", PublishLayer.CHAIN)


# =============================================================================
# ENCODING HELPERS
# =============================================================================

def to_bytes4(currency_key: str) -> bytes:
    """Encode a currency key as the registry's bytes4 key (zero right-padded)."""
    try:
        raw = currency_key.encode("ascii")
    except UnicodeEncodeError as e:
        raise InputError(
            f"Currency key {currency_key!r} is not ASCII",
            identifier=currency_key,
        ) from e
    if not raw or len(raw) > 4:
        raise InputError(
            f"Currency key {currency_key!r} does not fit in bytes4",
            identifier=currency_key,
        )
    return raw.ljust(4, b"\x00")


def same_address(a: Optional[str], b: Optional[str]) -> bool:
    """Compare hex addresses ignoring checksum casing."""
    if not a or not b:
        return False
    return a.lower() == b.lower()


def from_wei(value: int) -> Decimal:
    return Decimal(value) / Decimal(10 ** 18)


# =============================================================================
# TRANSACTION DATA
# =============================================================================

@dataclass(frozen=True)
class GasPolicy:
    """Gas settings, fixed for a whole run."""
    gas_price_gwei: Decimal
    gas_limit: int

    def __post_init__(self):
        if Decimal(self.gas_price_gwei) <= 0:
            raise InputError(f"Gas price must be positive, got {self.gas_price_gwei}")
        if int(self.gas_limit) <= 0:
            raise InputError(f"Gas limit must be positive, got {self.gas_limit}")

    @property
    def gas_price_wei(self) -> int:
        return int(Decimal(self.gas_price_gwei) * Decimal(10 ** 9))

    def tx_params(self, sender: str) -> Dict[str, Any]:
        return {
            "from": sender,
            "gas": int(self.gas_limit),
            "gasPrice": self.gas_price_wei,
        }


@dataclass
class TransactionReceipt:
    """Confirmed transaction, reduced to what the tooling reports."""
    tx_hash: str
    block_number: int
    status: int
    gas_used: int = 0

    @property
    def succeeded(self) -> bool:
        return self.status == 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tx_hash": self.tx_hash,
            "block_number": self.block_number,
            "status": self.status,
            "gas_used": self.gas_used,
        }


# =============================================================================
# CHAIN CLIENT INTERFACE
# =============================================================================

class ChainClient(Protocol):
    """
    Protocol for ledger access.

    Implementations raise TransactionError for any transport, revert or
    confirmation failure.
    """

    def call(
        self,
        address: str,
        abi: List[Dict[str, Any]],
        method: str,
        args: Sequence[Any] = (),
    ) -> Any:
        """Execute a read-only contract call."""
        ...

    def send(
        self,
        address: str,
        abi: List[Dict[str, Any]],
        method: str,
        args: Sequence[Any],
        tx_params: Dict[str, Any],
    ) -> TransactionReceipt:
        """Submit a transaction and block until it is confirmed."""
        ...


class Signer(Protocol):
    """Anything with an address; eth_account's LocalAccount qualifies."""

    @property
    def address(self) -> str:
        ...


# =============================================================================
# WEB3 CLIENT
# =============================================================================

class Web3ChainClient:
    """
    ChainClient backed by web3.py.

    Transactions are built locally, signed with the loaded key and sent as
    raw transactions, so the node never needs an unlocked account.
    """

    def __init__(
        self,
        provider_url: str = "",
        private_key: Optional[str] = None,
        receipt_timeout: int = 120,
        w3: Optional[Web3] = None,
    ):
        self._w3 = w3 or Web3(Web3.HTTPProvider(provider_url))
        self._account = Account.from_key(private_key) if private_key else None
        self._receipt_timeout = receipt_timeout

    @property
    def account(self):
        """The signing account, or None for a read-only client."""
        return self._account

    def _function(self, address: str, abi: List[Dict[str, Any]], method: str, args: Sequence[Any]):
        contract = self._w3.eth.contract(address=Web3.to_checksum_address(address), abi=abi)
        return getattr(contract.functions, method)(*args)

    @timed_operation(logger, "chain_call")
    def call(
        self,
        address: str,
        abi: List[Dict[str, Any]],
        method: str,
        args: Sequence[Any] = (),
    ) -> Any:
        try:
            return self._function(address, abi, method, args).call()
        except (Web3Exception, ValueError, OSError) as e:
            raise TransactionError(f"Call {method} on {address} failed: {e}") from e

    @timed_operation(logger, "chain_send")
    def send(
        self,
        address: str,
        abi: List[Dict[str, Any]],
        method: str,
        args: Sequence[Any],
        tx_params: Dict[str, Any],
    ) -> TransactionReceipt:
        if self._account is None:
            raise TransactionError(f"Cannot send {method}: no signing key loaded")
        if not same_address(tx_params.get("from"), self._account.address):
            raise TransactionError(
                f"Cannot send {method} from {tx_params.get('from')}: "
                f"loaded key belongs to {self._account.address}"
            )

        tx_hash_hex: Optional[str] = None
        try:
            tx = self._function(address, abi, method, args).build_transaction({
                "from": self._account.address,
                "gas": tx_params["gas"],
                "gasPrice": tx_params["gasPrice"],
                "nonce": self._w3.eth.get_transaction_count(self._account.address),
                "chainId": self._w3.eth.chain_id,
            })
            signed = self._account.sign_transaction(tx)
            tx_hash = self._w3.eth.send_raw_transaction(signed.raw_transaction)
            tx_hash_hex = Web3.to_hex(tx_hash)
            logger.info("Transaction submitted", method=method, tx_hash=tx_hash_hex)
            receipt = self._w3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=self._receipt_timeout
            )
        except TimeExhausted as e:
            raise TransactionError(
                f"Timed out waiting for {method} confirmation", tx_hash=tx_hash_hex
            ) from e
        except (Web3Exception, ValueError, OSError) as e:
            raise TransactionError(f"Sending {method} failed: {e}", tx_hash=tx_hash_hex) from e

        result = TransactionReceipt(
            tx_hash=tx_hash_hex,
            block_number=receipt["blockNumber"],
            status=receipt["status"],
            gas_used=receipt.get("gasUsed", 0),
        )
        if not result.succeeded:
            raise TransactionError(f"{method} reverted", tx_hash=tx_hash_hex)
        return result


# =============================================================================
# MOCK CHAIN CLIENT
# =============================================================================

@dataclass
class RecordedCall:
    """One interaction seen by MockChainClient."""
    kind: str  # "call" or "send"
    address: str
    method: str
    args: Tuple[Any, ...]
    tx_params: Dict[str, Any] = field(default_factory=dict)


class MockChainClient:
    """
    In-memory ChainClient.

    Call results are keyed by (address, method, args). Sends may carry an
    effect callback that mutates the stored results, e.g. clearing a
    registry slot when a removal transaction lands.
    """

    def __init__(self, account: Optional[Signer] = None):
        self.account = account
        self._results: Dict[Tuple[str, str, Tuple[Any, ...]], Any] = {}
        self._effects: Dict[Tuple[str, str], Callable[["MockChainClient", Tuple[Any, ...]], None]] = {}
        self._failing: Dict[Tuple[str, str], str] = {}
        self._block_number = 1000000
        self.history: List[RecordedCall] = []

    @staticmethod
    def _key(address: str, method: str) -> Tuple[str, str]:
        return address.lower(), method

    def set_call(self, address: str, method: str, value: Any, args: Sequence[Any] = ()) -> None:
        """Set the value returned by a read-only call."""
        self._results[self._key(address, method) + (tuple(args),)] = value

    def on_send(
        self,
        address: str,
        method: str,
        effect: Callable[["MockChainClient", Tuple[Any, ...]], None],
    ) -> None:
        self._effects[self._key(address, method)] = effect

    def fail_send(self, address: str, method: str, reason: str = "execution reverted") -> None:
        self._failing[self._key(address, method)] = reason

    @property
    def calls(self) -> List[RecordedCall]:
        return [c for c in self.history if c.kind == "call"]

    @property
    def sends(self) -> List[RecordedCall]:
        return [c for c in self.history if c.kind == "send"]

    def call(
        self,
        address: str,
        abi: List[Dict[str, Any]],
        method: str,
        args: Sequence[Any] = (),
    ) -> Any:
        args = tuple(args)
        self.history.append(RecordedCall("call", address, method, args))
        key = self._key(address, method) + (args,)
        if key not in self._results:
            raise TransactionError(f"Call {method} on {address} failed: no such contract state")
        return self._results[key]

    def send(
        self,
        address: str,
        abi: List[Dict[str, Any]],
        method: str,
        args: Sequence[Any],
        tx_params: Dict[str, Any],
    ) -> TransactionReceipt:
        args = tuple(args)
        self.history.append(RecordedCall("send", address, method, args, dict(tx_params)))
        key = self._key(address, method)
        if key in self._failing:
            raise TransactionError(f"{method} reverted: {self._failing[key]}")

        effect = self._effects.get(key)
        if effect is not None:
            effect(self, args)

        self._block_number += 1
        digest = hashlib.sha256(f"{address}:{method}:{args}:{self._block_number}".encode()).hexdigest()
        return TransactionReceipt(
            tx_hash="0x" + digest,
            block_number=self._block_number,
            status=1,
            gas_used=min(int(tx_params.get("gas", 0)), 50000),
        )
