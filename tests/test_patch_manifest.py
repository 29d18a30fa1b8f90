"""Tests for patch manifest loader."""

import tempfile

import pytest
import yaml

from vmlcompose.patch_manifest import load_patch_manifest
from vmlcompose.patches import AppendNode, SealScene, SetAttr


def _write_manifest(content: dict) -> str:
    """Write a manifest dict to a temp YAML file, return path."""
    f = tempfile.NamedTemporaryFile(mode="w", suffix=".yaml", delete=False)
    yaml.dump(content, f)
    f.close()
    return f.name


class TestLoadPatchManifest:
    def test_parses_patches(self):
        config = load_patch_manifest(_write_manifest({"patches": [
            {"op": "setAttr", "nodeId": "title", "name": "text", "value": "Hello"},
            {"op": "appendNode", "parentId": "intro", "nodeXml": "<text id='sub'/>", "index": 0},
            {"op": "sealScene", "sceneId": "intro"},
        ]}))
        assert config["patches"] == [
            SetAttr("title", "text", "Hello"),
            AppendNode("intro", "<text id='sub'/>", 0),
            SealScene("intro"),
        ]

    def test_default_flags(self):
        config = load_patch_manifest(_write_manifest({"patches": []}))
        assert config["enforce_sealed"] is False
        assert config["atomic"] is True

    def test_flags(self):
        config = load_patch_manifest(_write_manifest(
            {"patches": [], "enforce_sealed": True, "atomic": False}
        ))
        assert config["enforce_sealed"] is True
        assert config["atomic"] is False


class TestValidation:
    def test_missing_patches(self):
        with pytest.raises(ValueError, match="missing required 'patches'"):
            load_patch_manifest(_write_manifest({"atomic": True}))

    def test_flag_must_be_bool(self):
        with pytest.raises(ValueError, match="'enforce_sealed' must be true or false"):
            load_patch_manifest(_write_manifest({"patches": [], "enforce_sealed": "yes"}))

    def test_missing_op(self):
        with pytest.raises(ValueError, match="Patch 0: missing required field 'op'"):
            load_patch_manifest(_write_manifest({"patches": [{"nodeId": "x"}]}))

    def test_patch_errors_are_numbered(self):
        m = {"patches": [
            {"op": "removeNode", "nodeId": "a"},
            {"op": "removeNode"},
        ]}
        with pytest.raises(ValueError, match="Patch 1: removeNode: missing required field 'nodeId'"):
            load_patch_manifest(_write_manifest(m))

    def test_unknown_op(self):
        with pytest.raises(ValueError, match="Patch 0: Unknown patch op"):
            load_patch_manifest(_write_manifest({"patches": [{"op": "moveNode"}]}))
