import hashlib
import json
import os
import pathlib
import sys
from types import SimpleNamespace
from typing import Dict, Iterable, List, Optional

import pytest


# Ensure repo root is on PYTHONPATH for direct package imports (e.g. `import publish.synths`).
_REPO_ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))

from publish.synths.chain import MockChainClient, to_bytes4  # noqa: E402
from publish.synths.config import ConfigManager  # noqa: E402
from publish.synths.observability import configure_logging  # noqa: E402


NETWORK = "kovan"
OWNER = "0x" + "aa" * 20
NOT_OWNER = "0x" + "bb" * 20
ZERO_ADDRESS = "0x" + "00" * 20
SYNTHETIX = "0x" + "5e" * 20
SYNTHS = ["sUSD", "XDR", "sEUR", "sJPY", "iBTC", "sDEFI"]

REGISTRY_ABI = [
    {"type": "function", "name": "owner", "inputs": [], "outputs": [{"type": "address"}]},
    {"type": "function", "name": "synths", "inputs": [{"type": "bytes4"}], "outputs": [{"type": "address"}]},
    {"type": "function", "name": "removeSynth", "inputs": [{"type": "bytes4"}], "outputs": []},
]
SYNTH_ABI = [
    {"type": "function", "name": "totalSupply", "inputs": [], "outputs": [{"type": "uint256"}]},
]


def contract_address(name: str) -> str:
    """Deterministic lower-case address for a registry entry."""
    return "0x" + hashlib.sha256(name.encode()).hexdigest()[:40]


def build_deployment(
    root: pathlib.Path,
    synths: Iterable[str] = SYNTHS,
    network: str = NETWORK,
    omit: Iterable[str] = (),
) -> pathlib.Path:
    """Write config.json, deployment.json and synths.json for ``synths``."""
    directory = root / network
    directory.mkdir(parents=True, exist_ok=True)

    targets: Dict[str, Dict[str, str]] = {
        "Synthetix": {"name": "Synthetix", "address": SYNTHETIX, "source": "Synthetix"},
    }
    config: Dict[str, Dict[str, bool]] = {"Synthetix": {"deploy": False}}
    records: List[Dict[str, str]] = []
    for key in synths:
        for role, source in (("Proxy", "Proxy"), ("TokenState", "TokenState"), ("Synth", "Synth")):
            name = f"{role}{key}"
            targets[name] = {"name": name, "address": contract_address(name), "source": source}
            config[name] = {"deploy": False}
        records.append({"name": key, "asset": key[1:] or key, "sign": "", "desc": f"Synth {key}"})

    for name in omit:
        targets.pop(name, None)

    deployment = {
        "targets": targets,
        "sources": {
            "Synthetix": {"abi": REGISTRY_ABI, "bytecode": "0x"},
            "Synth": {"abi": SYNTH_ABI, "bytecode": "0x"},
            "Proxy": {"abi": [], "bytecode": "0x"},
            "TokenState": {"abi": [], "bytecode": "0x"},
        },
    }

    (directory / "config.json").write_text(json.dumps(config, indent=2) + "\n")
    (directory / "deployment.json").write_text(json.dumps(deployment, indent=2) + "\n")
    (directory / "synths.json").write_text(json.dumps(records, indent=2) + "\n")
    return directory


def make_chain(
    synths: Iterable[str] = SYNTHS,
    owner: str = OWNER,
    supplies: Optional[Dict[str, int]] = None,
    account: Optional[str] = None,
) -> MockChainClient:
    """Mock ledger agreeing with ``build_deployment`` for ``synths``."""
    supplies = supplies or {}
    chain = MockChainClient(account=SimpleNamespace(address=account) if account else None)
    chain.set_call(SYNTHETIX, "owner", owner)
    for key in synths:
        if len(key) <= 4:
            chain.set_call(SYNTHETIX, "synths", contract_address(f"Synth{key}"), [to_bytes4(key)])
        chain.set_call(contract_address(f"Synth{key}"), "totalSupply", supplies.get(key, 0))

    def _remove(mock: MockChainClient, args) -> None:
        mock.set_call(SYNTHETIX, "synths", ZERO_ADDRESS, [args[0]])

    chain.on_send(SYNTHETIX, "removeSynth", _remove)
    return chain


def read_json(path: pathlib.Path):
    return json.loads(path.read_text())


def snapshot_files(directory: pathlib.Path) -> Dict[str, str]:
    return {p.name: p.read_text() for p in sorted(directory.iterdir()) if p.is_file()}


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path, monkeypatch):
    """Fresh configuration per test, with no user or project config files."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.chdir(tmp_path)
    for var in list(os.environ):
        if var.startswith("PUBLISH_"):
            monkeypatch.delenv(var)
    ConfigManager.reset()
    yield
    ConfigManager.reset()
    configure_logging(level="info", fmt="text", stream=sys.stderr)


@pytest.fixture
def deployment_path(tmp_path) -> pathlib.Path:
    root = tmp_path / "deployed"
    build_deployment(root)
    return root


@pytest.fixture
def network_dir(deployment_path) -> pathlib.Path:
    return deployment_path / NETWORK


@pytest.fixture
def owner():
    return SimpleNamespace(address=OWNER)


@pytest.fixture
def not_owner():
    return SimpleNamespace(address=NOT_OWNER)
