"""
Tests for deployment manifest loading, resolution and commit.
"""

import json
import os
import stat

import pytest

from conftest import NETWORK, SYNTHETIX, build_deployment, contract_address, read_json
from publish.synths.errors import AddressResolutionError, InputError, PersistenceError
from publish.synths.manifest import (
    COMPONENT_ROLES,
    DeploymentManifest,
    load_manifest,
    related_contract_names,
    stringify,
    write_manifest,
)
from publish.synths.schema import SCHEMAS, validate_manifest


class TestStringify:
    """Test manifest serialization."""

    def test_sorted_keys_two_space_indent_trailing_newline(self):
        text = stringify({"b": 1, "a": {"d": 2, "c": 3}})
        assert text == '{\n  "a": {\n    "c": 3,\n    "d": 2\n  },\n  "b": 1\n}\n'

    def test_list_order_preserved(self):
        assert json.loads(stringify([{"name": "sJPY"}, {"name": "sEUR"}])) == [
            {"name": "sJPY"},
            {"name": "sEUR"},
        ]


class TestWriteManifest:
    """Test atomic manifest writes."""

    def test_write_replaces_content(self, tmp_path):
        path = tmp_path / "synths.json"
        path.write_text("[]\n")
        write_manifest(path, [{"name": "sEUR"}])
        assert read_json(path) == [{"name": "sEUR"}]

    def test_no_temp_files_left(self, tmp_path):
        directory = tmp_path / "m"
        directory.mkdir()
        write_manifest(directory / "config.json", {})
        assert [p.name for p in directory.iterdir()] == ["config.json"]

    def test_rewrite_keeps_file_mode(self, tmp_path):
        path = tmp_path / "synths.json"
        path.write_text("[]\n")
        os.chmod(path, 0o644)
        write_manifest(path, [{"name": "sEUR"}])
        assert stat.S_IMODE(os.stat(path).st_mode) == 0o644

    def test_new_file_follows_umask(self, tmp_path):
        old = os.umask(0o022)
        try:
            write_manifest(tmp_path / "owner-actions.json", {})
        finally:
            os.umask(old)
        assert stat.S_IMODE(os.stat(tmp_path / "owner-actions.json").st_mode) == 0o644

    def test_failed_write_raises_persistence_error(self, tmp_path):
        with pytest.raises(PersistenceError) as exc_info:
            write_manifest(tmp_path / "missing" / "config.json", {})
        assert exc_info.value.exit_code == 2
        assert exc_info.value.path.endswith("config.json")

    def test_failed_replace_keeps_original(self, tmp_path, monkeypatch):
        import publish.synths.manifest as manifest_module

        directory = tmp_path / "m"
        directory.mkdir()
        path = directory / "config.json"
        path.write_text('{"keep": {}}\n')

        def _refuse(src, dst):
            raise OSError(13, "Permission denied")

        monkeypatch.setattr(manifest_module.os, "replace", _refuse)
        with pytest.raises(PersistenceError):
            write_manifest(path, {})

        assert path.read_text() == '{"keep": {}}\n'
        assert [p.name for p in directory.iterdir()] == ["config.json"]


class TestLoadManifest:
    """Test schema-checked loading."""

    def test_missing_file(self, tmp_path):
        with pytest.raises(InputError, match="not found"):
            load_manifest(tmp_path / "deployment.json", "deployment")

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "synths.json"
        path.write_text("[{")
        with pytest.raises(InputError, match="not valid JSON"):
            load_manifest(path, "synths")

    def test_schema_violation(self, tmp_path):
        path = tmp_path / "deployment.json"
        path.write_text(json.dumps({"targets": {"X": {"address": "nope", "source": "X"}}, "sources": {}}))
        with pytest.raises(InputError, match="invalid"):
            load_manifest(path, "deployment")

    def test_every_kind_has_schema(self):
        assert set(SCHEMAS) == {"config", "deployment", "synths", "owner-actions"}

    def test_validate_reports_paths(self):
        errors = validate_manifest([{"asset": "EUR"}], "synths")
        assert len(errors) == 1
        assert "name" in errors[0]

    def test_validate_unknown_kind(self):
        with pytest.raises(KeyError):
            validate_manifest({}, "nonsense")


class TestDeploymentManifest:
    """Test the in-memory manifest view."""

    def test_load(self, deployment_path):
        manifest = DeploymentManifest.load(deployment_path, NETWORK)
        assert manifest.identifiers() == ["sUSD", "XDR", "sEUR", "sJPY", "iBTC", "sDEFI"]
        assert manifest.has_component("sEUR")
        assert not manifest.has_component("sFOO")
        assert manifest.owner_actions_file.name == "owner-actions.json"

    def test_missing_network_folder(self, deployment_path):
        with pytest.raises(InputError, match="No deployment folder for mainnet"):
            DeploymentManifest.load(deployment_path, "mainnet")

    def test_missing_file_in_folder(self, deployment_path, network_dir):
        (network_dir / "config.json").unlink()
        with pytest.raises(InputError, match="config.json"):
            DeploymentManifest.load(deployment_path, NETWORK)

    def test_component_metadata(self, deployment_path):
        manifest = DeploymentManifest.load(deployment_path, NETWORK)
        component = manifest.component("sEUR")
        assert component.metadata == {"asset": "EUR", "sign": "", "desc": "Synth sEUR"}
        assert component.related_contracts() == ["ProxysEUR", "TokenStatesEUR", "SynthsEUR"]
        assert component.to_dict()["name"] == "sEUR"

    def test_unknown_component(self, deployment_path):
        manifest = DeploymentManifest.load(deployment_path, NETWORK)
        with pytest.raises(InputError):
            manifest.component("sFOO")

    def test_resolve_registry(self, deployment_path):
        manifest = DeploymentManifest.load(deployment_path, NETWORK)
        ref = manifest.resolve("Synthetix")
        assert ref.address == SYNTHETIX
        assert {f["name"] for f in ref.abi} == {"owner", "synths", "removeSynth"}

    def test_resolve_component_by_role(self, deployment_path):
        manifest = DeploymentManifest.load(deployment_path, NETWORK)
        contracts = manifest.resolve_component("sJPY")
        assert tuple(contracts) == COMPONENT_ROLES
        assert contracts["Synth"].address == contract_address("SynthsJPY")
        assert contracts["Proxy"].name == "ProxysJPY"

    def test_resolve_missing_source(self, deployment_path, network_dir):
        deployment = read_json(network_dir / "deployment.json")
        del deployment["sources"]["Synth"]
        (network_dir / "deployment.json").write_text(json.dumps(deployment))

        manifest = DeploymentManifest.load(deployment_path, NETWORK)
        with pytest.raises(AddressResolutionError, match="Source Synth"):
            manifest.resolve_component("sEUR")

    def test_resolve_missing_entry_carries_identifier(self, tmp_path):
        root = tmp_path / "d"
        build_deployment(root, omit=["ProxysEUR"])
        manifest = DeploymentManifest.load(root, NETWORK)
        with pytest.raises(AddressResolutionError) as exc_info:
            manifest.resolve_component("sEUR")
        assert exc_info.value.identifier == "sEUR"


class TestCommitRemoval:
    """Test dropping a synth from every manifest."""

    def test_commit_drops_rows_and_persists(self, deployment_path, network_dir):
        manifest = DeploymentManifest.load(deployment_path, NETWORK)
        dropped = manifest.commit_removal("iBTC")

        assert dropped == related_contract_names("iBTC")
        reloaded = DeploymentManifest.load(deployment_path, NETWORK)
        assert not reloaded.has_component("iBTC")
        for name in dropped:
            assert name not in reloaded.registry
            assert name not in reloaded.config
        assert "Synth" in reloaded.sources

    def test_commit_keeps_other_records_in_order(self, deployment_path, network_dir):
        DeploymentManifest.load(deployment_path, NETWORK).commit_removal("sEUR")
        assert [r["name"] for r in read_json(network_dir / "synths.json")] == [
            "sUSD", "XDR", "sJPY", "iBTC", "sDEFI",
        ]

    def test_commit_writes_synths_first(self, deployment_path, monkeypatch):
        import publish.synths.manifest as manifest_module

        written = []
        original = manifest_module.write_manifest

        def _record(path, obj):
            written.append(path.name)
            original(path, obj)

        monkeypatch.setattr(manifest_module, "write_manifest", _record)
        DeploymentManifest.load(deployment_path, NETWORK).commit_removal("sEUR")
        assert written == ["synths.json", "deployment.json", "config.json"]

    def test_commit_unknown_synth(self, deployment_path):
        manifest = DeploymentManifest.load(deployment_path, NETWORK)
        with pytest.raises(InputError):
            manifest.commit_removal("sFOO")

    def test_commit_with_registry_already_missing_rows(self, tmp_path):
        root = tmp_path / "d"
        build_deployment(root, omit=["TokenStatesEUR"])
        manifest = DeploymentManifest.load(root, NETWORK)
        assert manifest.commit_removal("sEUR") == ["ProxysEUR", "SynthsEUR"]

