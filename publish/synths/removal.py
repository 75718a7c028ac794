"""
Synth Removal Protocol

Retires synths from the on-chain registry and from the local deployment
manifests without ever letting the manifests claim more than the chain.

Run-level gates (no chain interaction yet):
    1. empty batch            -> NOOP result
    2. unknown synth          -> InputError
    3. protected synth        -> InputError
    4. operator confirmation  -> CANCELLED result when declined

Per synth, in the order given:

    PENDING ──resolve/divergence/supply──▶ VALIDATED
        │                                     │
        │                    owner == signer  │  owner != signer
        │                          ▼          ▼
        │                      EXECUTED    DEFERRED
        │                          └────┬─────┘
        │                               ▼  manifests rewritten
        └────────── any failure ──▶ ABORTED    COMMITTED

A failure aborts the whole run. Synths committed before it stay committed:
the chain action always precedes the manifest rewrite, and the manifests
are persisted after every synth, so a re-run only ever sees synths that
have not been removed.

Copyright (c) 2026 Synthetix Publish. All rights reserved.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Union

from publish.synths.chain import (
    ChainClient,
    GasPolicy,
    Signer,
    TransactionReceipt,
    from_wei,
    same_address,
    to_bytes4,
)
from publish.synths.errors import (
    InputError,
    NonZeroBalanceError,
    RemovalError,
    StateDivergenceError,
)
from publish.synths.manifest import (
    DEPLOYMENT_FILENAME,
    PRIMARY_ROLE,
    REGISTRY_CONTRACT,
    ContractRef,
    DeploymentManifest,
)
from publish.synths.observability import AuditLogger, PublishLayer, get_logger
from publish.synths.owner_actions import PendingAction, PendingActionLog, removal_action_key

logger = get_logger("removal", PublishLayer.REMOVAL)

DEFAULT_PROTECTED_SYNTHS = frozenset({"XDR", "sUSD"})

ConfirmFn = Callable[[Sequence[str]], bool]


# =============================================================================
# STATES AND OUTCOMES
# =============================================================================

class ComponentState(Enum):
    """Progress of one synth through the removal protocol."""
    PENDING = "pending"
    VALIDATED = "validated"
    EXECUTED = "executed"
    DEFERRED = "deferred"
    COMMITTED = "committed"
    ABORTED = "aborted"

    def is_terminal(self) -> bool:
        return self in {ComponentState.COMMITTED, ComponentState.ABORTED}


class RunStatus(Enum):
    """How a removal run ended when it did not raise."""
    NOOP = "noop"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


@dataclass(frozen=True)
class ExecutedRemoval:
    """The signer owned the registry and removed the synth on-chain."""
    receipt: TransactionReceipt

    @property
    def outcome(self) -> str:
        return "executed"

    def to_dict(self) -> Dict[str, Any]:
        return {"outcome": self.outcome, "receipt": self.receipt.to_dict()}


@dataclass(frozen=True)
class DeferredRemoval:
    """The signer is not the owner; the removal was queued as an owner action."""
    action: PendingAction

    @property
    def outcome(self) -> str:
        return "deferred"

    def to_dict(self) -> Dict[str, Any]:
        return {"outcome": self.outcome, "action": {"key": self.action.key, **self.action.to_dict()}}


RemovalDispatch = Union[ExecutedRemoval, DeferredRemoval]


@dataclass
class StateTransition:
    from_state: ComponentState
    to_state: ComponentState
    timestamp: str
    reason: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "from_state": self.from_state.value,
            "to_state": self.to_state.value,
            "timestamp": self.timestamp,
            "reason": self.reason,
        }


@dataclass
class ComponentOutcome:
    """Record of one synth's trip through the protocol."""
    identifier: str
    state: ComponentState = ComponentState.PENDING
    dispatch: Optional[RemovalDispatch] = None
    dropped_contracts: List[str] = field(default_factory=list)
    transitions: List[StateTransition] = field(default_factory=list)

    def transition(self, to_state: ComponentState, reason: str) -> None:
        if self.state.is_terminal():
            raise RuntimeError(
                f"{self.identifier} already {self.state.value}; cannot move to {to_state.value}"
            )
        self.transitions.append(StateTransition(
            from_state=self.state,
            to_state=to_state,
            timestamp=datetime.now(timezone.utc).isoformat(),
            reason=reason,
        ))
        self.state = to_state

    def to_dict(self) -> Dict[str, Any]:
        return {
            "identifier": self.identifier,
            "state": self.state.value,
            "dispatch": self.dispatch.to_dict() if self.dispatch else None,
            "dropped_contracts": self.dropped_contracts,
            "transitions": [t.to_dict() for t in self.transitions],
        }


@dataclass
class RemovalResult:
    """Result of a run that did not raise."""
    status: RunStatus
    outcomes: List[ComponentOutcome] = field(default_factory=list)
    message: str = ""

    @property
    def removed(self) -> List[str]:
        return [o.identifier for o in self.outcomes if o.state == ComponentState.COMMITTED]

    @property
    def deferred(self) -> List[str]:
        return [o.identifier for o in self.outcomes if isinstance(o.dispatch, DeferredRemoval)]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "message": self.message,
            "removed": self.removed,
            "deferred": self.deferred,
            "outcomes": [o.to_dict() for o in self.outcomes],
        }


# =============================================================================
# COORDINATOR
# =============================================================================

class RemovalCoordinator:
    """
    Drives removal of a batch of synths to a consistent end state.

    Collaborators are injected: the loaded manifest, a chain client, the
    owner action log and a confirmation callback that receives the batch
    and returns True to proceed.
    """

    def __init__(
        self,
        manifest: DeploymentManifest,
        chain: ChainClient,
        actions: PendingActionLog,
        confirm: ConfirmFn,
        protected: Iterable[str] = DEFAULT_PROTECTED_SYNTHS,
        audit: Optional[AuditLogger] = None,
    ):
        self._manifest = manifest
        self._chain = chain
        self._actions = actions
        self._confirm = confirm
        self._protected = frozenset(protected)
        self._audit = audit or AuditLogger(logger)

    def remove_components(
        self,
        identifiers: Sequence[str],
        signer: Signer,
        gas_policy: GasPolicy,
    ) -> RemovalResult:
        """
        Remove synths from the registry contract and the local manifests.

        Raises:
            InputError: unknown or protected synth (nothing touched)
            AddressResolutionError: registry entry or ABI missing locally
            StateDivergenceError: local address differs from the chain's
            NonZeroBalanceError: synth still has supply
            TransactionError: removal transaction failed
            PersistenceError: a manifest could not be written
        """
        batch = self._dedupe(identifiers)
        if not batch:
            logger.info("No synths provided")
            return RemovalResult(RunStatus.NOOP, message="No synths provided")

        self._check_inputs(batch)

        if not self._confirm(batch):
            logger.info("Operation cancelled", synths=batch)
            return RemovalResult(RunStatus.CANCELLED, message="Operation cancelled")

        logger.info(
            "Removing synths",
            synths=batch,
            signer=signer.address,
            gas_price_gwei=str(gas_policy.gas_price_gwei),
            gas_limit=gas_policy.gas_limit,
        )

        committed: List[ComponentOutcome] = []
        for identifier in batch:
            outcome = ComponentOutcome(identifier)
            try:
                self._remove_one(outcome, signer, gas_policy)
            except RemovalError as err:
                if err.identifier is None:
                    err.identifier = identifier
                err.committed = tuple(committed)
                outcome.transition(ComponentState.ABORTED, err.message)
                self._audit.log(
                    actor=signer.address,
                    action="removeSynth",
                    resource_type="synth",
                    resource_id=identifier,
                    outcome="aborted",
                    error=err.error_code,
                    reason=err.message,
                )
                logger.error(
                    err.message,
                    error_code=err.error_code,
                    synth=identifier,
                    committed=[o.identifier for o in committed],
                )
                raise
            committed.append(outcome)

        return RemovalResult(
            RunStatus.COMPLETED,
            committed,
            message=f"Removed {len(committed)} synth(s)",
        )

    # -------------------------------------------------------------------------
    # Run-level gates
    # -------------------------------------------------------------------------

    @staticmethod
    def _dedupe(identifiers: Sequence[str]) -> List[str]:
        seen: List[str] = []
        for identifier in identifiers:
            if identifier in seen:
                logger.warning("Ignoring repeated synth", synth=identifier)
                continue
            seen.append(identifier)
        return seen

    def _check_inputs(self, batch: List[str]) -> None:
        for identifier in batch:
            if not self._manifest.has_component(identifier):
                raise InputError(f"Synth {identifier} not found!", identifier=identifier)
            if identifier in self._protected:
                raise InputError(f"Synth {identifier} cannot be removed", identifier=identifier)
            to_bytes4(identifier)

    # -------------------------------------------------------------------------
    # Per-synth protocol
    # -------------------------------------------------------------------------

    def _remove_one(self, outcome: ComponentOutcome, signer: Signer, gas_policy: GasPolicy) -> None:
        identifier = outcome.identifier
        registry = self._manifest.resolve(REGISTRY_CONTRACT, identifier=identifier)
        contracts = self._manifest.resolve_component(identifier)
        primary = contracts[PRIMARY_ROLE]

        self._check_registry_address(identifier, registry, primary)
        self._check_total_supply(identifier, primary)
        outcome.transition(ComponentState.VALIDATED, "address and supply checks passed")

        outcome.dispatch = self._dispatch(identifier, registry, signer, gas_policy)
        if isinstance(outcome.dispatch, ExecutedRemoval):
            outcome.transition(ComponentState.EXECUTED, f"tx {outcome.dispatch.receipt.tx_hash}")
        else:
            outcome.transition(ComponentState.DEFERRED, f"owner action {outcome.dispatch.action.key}")

        outcome.dropped_contracts = self._manifest.commit_removal(identifier)
        outcome.transition(ComponentState.COMMITTED, "manifests updated")

        self._audit.log(
            actor=signer.address,
            action="removeSynth",
            resource_type="synth",
            resource_id=identifier,
            outcome=outcome.dispatch.outcome,
            registry=registry.address,
            dropped=outcome.dropped_contracts,
        )

    def _check_registry_address(
        self,
        identifier: str,
        registry: ContractRef,
        primary: ContractRef,
    ) -> None:
        deployed = self._chain.call(
            registry.address, registry.abi, "synths", [to_bytes4(identifier)]
        )
        if not same_address(deployed, primary.address):
            raise StateDivergenceError(
                f"Synth address in {registry.name} for {identifier} is different from what's "
                f"in the local {DEPLOYMENT_FILENAME}\ndeployed: {deployed}\nlocal:    {primary.address}",
                identifier=identifier,
                deployed=str(deployed),
                local=primary.address,
            )

    def _check_total_supply(self, identifier: str, primary: ContractRef) -> None:
        total_supply = int(self._chain.call(primary.address, primary.abi, "totalSupply", []))
        if total_supply > 0:
            raise NonZeroBalanceError(
                f"Cannot remove as {primary.name}.totalSupply is non-zero: {from_wei(total_supply)}",
                identifier=identifier,
                total_supply=total_supply,
            )

    def _dispatch(
        self,
        identifier: str,
        registry: ContractRef,
        signer: Signer,
        gas_policy: GasPolicy,
    ) -> RemovalDispatch:
        owner = self._chain.call(registry.address, registry.abi, "owner", [])
        if same_address(owner, signer.address):
            logger.info(f"Invoking {registry.name}.removeSynth(Synth{identifier})...", synth=identifier)
            receipt = self._chain.send(
                registry.address,
                registry.abi,
                "removeSynth",
                [to_bytes4(identifier)],
                gas_policy.tx_params(signer.address),
            )
            logger.info(
                f"Removed {identifier} from {registry.name}",
                synth=identifier,
                tx_hash=receipt.tx_hash,
                block_number=receipt.block_number,
            )
            return ExecutedRemoval(receipt)

        action = self._actions.append(
            key=removal_action_key(registry.name, identifier),
            target=registry.address,
            action=f"removeSynth({identifier})",
        )
        return DeferredRemoval(action)
