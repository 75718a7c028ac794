"""
Synth Publish: deployment maintenance for the synth registry

Keeps a network's local deployment manifests and the on-chain registry in
agreement while synths are retired from the system.

Architecture
────────────

    ┌─────────────────────────────────────────────────────────────────────────┐
    │                                                                          │
    │  SURFACE                                                                 │
    │    cli.py            argparse commands, confirmation prompt, exit codes  │
    │    config.py         YAML/env configuration, networks, connections       │
    │                                                                          │
    │  PROTOCOL                                                                │
    │    removal.py        consistency checks, owner/deferral branch, commit   │
    │                                                                          │
    │  STORAGE & LEDGER                                                        │
    │    manifest.py       deployment.json / config.json / synths.json         │
    │    owner_actions.py  owner-actions.json (deferred privileged calls)      │
    │    schema.py         JSON Schemas for the manifest files                 │
    │    chain.py          web3 client, in-memory client, gas policy           │
    │                                                                          │
    │  AMBIENT                                                                 │
    │    errors.py         error taxonomy and exit codes                       │
    │    observability.py  structured logging and audit trail                  │
    │                                                                          │
    └─────────────────────────────────────────────────────────────────────────┘

Core Concepts
─────────────

    Synth: a removable component, tracked in synths.json and by three
    registry entries (Proxy<KEY>, TokenState<KEY>, Synth<KEY>).

    Registry contract: the Synthetix contract, mapping currency keys to synth
    contracts and holding the owner role.

    Owner action: a privileged call queued for the owner when the signing
    account cannot execute it itself.

Copyright (c) 2026 Synthetix Publish. All rights reserved.
"""

__version__ = "0.3.0"


# Lazy imports keep `--version` and config commands free of web3 import cost
def __getattr__(name):
    """Lazy import submodule exports on first access."""

    if name in ("RemovalCoordinator", "RemovalResult", "RunStatus", "ComponentState",
                "ComponentOutcome", "ExecutedRemoval", "DeferredRemoval"):
        from publish.synths import removal
        return getattr(removal, name)

    if name in ("DeploymentManifest", "ContractRef", "Component", "stringify"):
        from publish.synths import manifest
        return getattr(manifest, name)

    if name in ("PendingAction", "PendingActionLog"):
        from publish.synths import owner_actions
        return getattr(owner_actions, name)

    if name in ("ChainClient", "Web3ChainClient", "MockChainClient", "GasPolicy",
                "TransactionReceipt"):
        from publish.synths import chain
        return getattr(chain, name)

    if name in ("RemovalError", "InputError", "StateDivergenceError", "NonZeroBalanceError",
                "AddressResolutionError", "TransactionError", "PersistenceError"):
        from publish.synths import errors
        return getattr(errors, name)

    raise AttributeError(f"module 'publish.synths' has no attribute '{name}'")


__all__ = [
    "__version__",
    # Protocol
    "RemovalCoordinator",
    "RemovalResult",
    "RunStatus",
    "ComponentState",
    "ComponentOutcome",
    "ExecutedRemoval",
    "DeferredRemoval",
    # Storage
    "DeploymentManifest",
    "ContractRef",
    "Component",
    "PendingAction",
    "PendingActionLog",
    # Ledger
    "ChainClient",
    "Web3ChainClient",
    "MockChainClient",
    "GasPolicy",
    "TransactionReceipt",
    # Errors
    "RemovalError",
    "InputError",
    "StateDivergenceError",
    "NonZeroBalanceError",
    "AddressResolutionError",
    "TransactionError",
    "PersistenceError",
]
