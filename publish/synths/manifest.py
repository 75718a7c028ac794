"""
Synth Publish Deployment Manifest

The local record of a network's deployment, kept as files under
``<deployment-path>/<network>/``:

    deployment.json     contract registry: targets (name -> address, source)
                        and sources (source -> ABI)
    config.json         which contracts the deployer manages, by name
    synths.json         ordered list of synth records

The files act as one logical store. ``commit_removal`` is the only mutation
the removal protocol performs on it: it drops every row belonging to one
synth and rewrites each file in full, immediately.

Copyright (c) 2026 Synthetix Publish. All rights reserved.
"""

from __future__ import annotations

import json
import os
import stat
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from publish.synths.errors import AddressResolutionError, InputError, PersistenceError
from publish.synths.observability import PublishLayer, get_logger
from publish.synths.schema import validate_manifest

logger = get_logger("manifest", PublishLayer.MANIFEST)

CONFIG_FILENAME = "config.json"
DEPLOYMENT_FILENAME = "deployment.json"
SYNTHS_FILENAME = "synths.json"
OWNER_ACTIONS_FILENAME = "owner-actions.json"

# Top-level registry contract: maps currency keys to synth contracts and
# holds the owner role.
REGISTRY_CONTRACT = "Synthetix"

# Contracts deployed per synth; the registry name is role + currency key.
COMPONENT_ROLES = ("Proxy", "TokenState", "Synth")
PRIMARY_ROLE = "Synth"


def stringify(obj: Any) -> str:
    """Serialize a manifest: 2-space indent, sorted keys, trailing newline."""
    return json.dumps(obj, indent=2, sort_keys=True, ensure_ascii=False) + "\n"


def _file_mode(path: Path) -> int:
    """Mode for a rewritten manifest: the existing file's, else 0o666 minus umask."""
    try:
        return stat.S_IMODE(os.stat(path).st_mode)
    except FileNotFoundError:
        umask = os.umask(0)
        os.umask(umask)
        return 0o666 & ~umask


def write_manifest(path: Union[str, Path], obj: Any) -> None:
    """
    Rewrite a manifest file in full.

    Content goes to a temp file in the same directory which then replaces
    the target, so readers never see a partial file. The target keeps its
    permissions; mkstemp alone would leave it at 0600.
    """
    path = Path(path)
    text = stringify(obj)
    tmp_name = None
    try:
        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=str(path.parent))
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
        os.chmod(tmp_name, _file_mode(path))
        os.replace(tmp_name, path)
    except OSError as e:
        if tmp_name and os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise PersistenceError(f"Failed to write {path}: {e}", path=str(path)) from e
    logger.debug("Manifest written", path=str(path), bytes=len(text))


def load_manifest(path: Union[str, Path], kind: str) -> Any:
    """Load and schema-check one manifest file."""
    path = Path(path)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as e:
        raise InputError(f"Manifest not found: {path}") from e
    except json.JSONDecodeError as e:
        raise InputError(f"Manifest {path} is not valid JSON: {e}") from e

    errors = validate_manifest(data, kind)
    if errors:
        raise InputError(f"Manifest {path} is invalid: {'; '.join(errors)}")
    return data


@dataclass(frozen=True)
class ContractRef:
    """A registry entry with its ABI resolved."""
    name: str
    address: str
    source: str
    abi: List[Dict[str, Any]] = field(repr=False, hash=False, compare=False)


@dataclass
class Component:
    """One synth as recorded in synths.json."""
    identifier: str
    metadata: Dict[str, Any] = field(default_factory=dict)

    def related_contracts(self) -> List[str]:
        return related_contract_names(self.identifier)

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.identifier, **self.metadata}


def related_contract_names(identifier: str) -> List[str]:
    return [f"{role}{identifier}" for role in COMPONENT_ROLES]


class DeploymentManifest:
    """
    In-memory view of one network's deployment files.

    Loaded once per invocation and never cached across invocations.
    """

    def __init__(
        self,
        directory: Union[str, Path],
        config: Dict[str, Any],
        deployment: Dict[str, Any],
        synths: List[Dict[str, Any]],
    ):
        self._directory = Path(directory)
        self._config = config
        self._deployment = deployment
        self._synths = synths

    @classmethod
    def load(cls, deployment_path: Union[str, Path], network: str) -> "DeploymentManifest":
        """Load the manifests for ``network`` from a deployment path."""
        directory = Path(deployment_path) / network
        if not directory.is_dir():
            raise InputError(f"No deployment folder for {network}: {directory}")

        manifest = cls(
            directory,
            config=load_manifest(directory / CONFIG_FILENAME, "config"),
            deployment=load_manifest(directory / DEPLOYMENT_FILENAME, "deployment"),
            synths=load_manifest(directory / SYNTHS_FILENAME, "synths"),
        )
        logger.info(
            "Loaded deployment manifests",
            directory=str(directory),
            targets=len(manifest.registry),
            synths=len(manifest.components),
        )
        return manifest

    # Paths

    @property
    def directory(self) -> Path:
        return self._directory

    @property
    def config_file(self) -> Path:
        return self._directory / CONFIG_FILENAME

    @property
    def deployment_file(self) -> Path:
        return self._directory / DEPLOYMENT_FILENAME

    @property
    def synths_file(self) -> Path:
        return self._directory / SYNTHS_FILENAME

    @property
    def owner_actions_file(self) -> Path:
        return self._directory / OWNER_ACTIONS_FILENAME

    # Views

    @property
    def registry(self) -> Dict[str, Dict[str, Any]]:
        return self._deployment["targets"]

    @property
    def sources(self) -> Dict[str, Dict[str, Any]]:
        return self._deployment["sources"]

    @property
    def config(self) -> Dict[str, Any]:
        return self._config

    @property
    def components(self) -> List[Component]:
        return [
            Component(
                identifier=record["name"],
                metadata={k: v for k, v in record.items() if k != "name"},
            )
            for record in self._synths
        ]

    def identifiers(self) -> List[str]:
        return [record["name"] for record in self._synths]

    def has_component(self, identifier: str) -> bool:
        return any(record["name"] == identifier for record in self._synths)

    def component(self, identifier: str) -> Component:
        for c in self.components:
            if c.identifier == identifier:
                return c
        raise InputError(f"Synth {identifier} not found!", identifier=identifier)

    def resolve(self, name: str, identifier: Optional[str] = None) -> ContractRef:
        """Look up a registry entry and its ABI."""
        target = self.registry.get(name)
        if target is None:
            raise AddressResolutionError(
                f"{name} is missing from the local {DEPLOYMENT_FILENAME}",
                identifier=identifier,
            )
        source = self.sources.get(target["source"])
        if source is None:
            raise AddressResolutionError(
                f"Source {target['source']} for {name} is missing from the local {DEPLOYMENT_FILENAME}",
                identifier=identifier,
            )
        return ContractRef(
            name=name,
            address=target["address"],
            source=target["source"],
            abi=source["abi"],
        )

    def resolve_component(self, identifier: str) -> Dict[str, ContractRef]:
        """Resolve every related contract of a synth, keyed by role."""
        return {
            role: self.resolve(f"{role}{identifier}", identifier=identifier)
            for role in COMPONENT_ROLES
        }

    # Persistence

    def save_components(self) -> None:
        write_manifest(self.synths_file, self._synths)

    def save_registry(self) -> None:
        write_manifest(self.deployment_file, self._deployment)

    def save_config(self) -> None:
        write_manifest(self.config_file, self._config)

    def commit_removal(self, identifier: str) -> List[str]:
        """
        Drop a synth from all manifests and persist them.

        The synth list is written first: if a later write fails, the synth
        is already gone from the list and a re-run rejects it instead of
        retrying the removal. Returns the registry names that were dropped.
        """
        if not self.has_component(identifier):
            raise InputError(f"Synth {identifier} not found!", identifier=identifier)

        names = related_contract_names(identifier)
        self._synths[:] = [r for r in self._synths if r["name"] != identifier]
        dropped = [name for name in names if self.registry.pop(name, None) is not None]
        for name in names:
            self._config.pop(name, None)

        self.save_components()
        self.save_registry()
        self.save_config()

        logger.info(
            "Committed synth removal to manifests",
            synth=identifier,
            dropped=dropped,
        )
        return dropped
