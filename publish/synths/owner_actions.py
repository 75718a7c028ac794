"""
Owner action log.

When the signing account is not the registry owner, privileged calls are
recorded in ``owner-actions.json`` for the owner to execute later. Entries
are keyed by a deterministic action key; recording the same key again
overwrites the entry instead of duplicating it.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from publish.synths.manifest import load_manifest, write_manifest
from publish.synths.observability import PublishLayer, get_logger

logger = get_logger("owner_actions", PublishLayer.MANIFEST)


@dataclass
class PendingAction:
    """A privileged call awaiting execution by the owner."""
    key: str
    target: str
    action: str
    complete: bool = False
    link: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "target": self.target,
            "action": self.action,
            "complete": self.complete,
            "link": self.link,
        }

    @classmethod
    def from_dict(cls, key: str, data: Dict[str, Any]) -> "PendingAction":
        return cls(
            key=key,
            target=data["target"],
            action=data["action"],
            complete=bool(data.get("complete", False)),
            link=data.get("link", ""),
        )


def removal_action_key(registry_contract: str, identifier: str) -> str:
    """Key under which a deferred synth removal is recorded."""
    return f"{registry_contract}.removeSynth(Synth{identifier})"


class PendingActionLog:
    """File-backed log of owner actions; every append persists at once."""

    def __init__(
        self,
        path: Union[str, Path],
        actions: Optional[Dict[str, Dict[str, Any]]] = None,
        explorer_link_prefix: str = "",
    ):
        self._path = Path(path)
        self._actions: Dict[str, Dict[str, Any]] = actions if actions is not None else {}
        self._explorer_link_prefix = explorer_link_prefix.rstrip("/")

    @classmethod
    def load(cls, path: Union[str, Path], explorer_link_prefix: str = "") -> "PendingActionLog":
        """Load the log, starting empty when the file does not exist yet."""
        path = Path(path)
        actions = load_manifest(path, "owner-actions") if path.exists() else {}
        return cls(path, actions, explorer_link_prefix)

    @property
    def path(self) -> Path:
        return self._path

    def __len__(self) -> int:
        return len(self._actions)

    def __contains__(self, key: str) -> bool:
        return key in self._actions

    def get(self, key: str) -> Optional[PendingAction]:
        data = self._actions.get(key)
        return PendingAction.from_dict(key, data) if data is not None else None

    def all(self) -> List[PendingAction]:
        return [PendingAction.from_dict(k, v) for k, v in self._actions.items()]

    def pending(self) -> List[PendingAction]:
        return [a for a in self.all() if not a.complete]

    def link_for(self, target: str) -> str:
        if not self._explorer_link_prefix:
            return ""
        return f"{self._explorer_link_prefix}/address/{target}#writeContract"

    def append(self, key: str, target: str, action: str) -> PendingAction:
        """Record (or re-record) an action and persist the log."""
        entry = PendingAction(
            key=key,
            target=target,
            action=action,
            complete=False,
            link=self.link_for(target),
        )
        replaced = key in self._actions
        self._actions[key] = entry.to_dict()
        self.save()
        logger.warning(
            f"Cannot invoke {key} as not owner. Appended to actions.",
            key=key,
            target=target,
            replaced=replaced,
        )
        return entry

    def save(self) -> None:
        write_manifest(self._path, self._actions)
