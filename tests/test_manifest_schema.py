import json
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from install_context import InstallerError
from manifest_schema import (
    PATCHER,
    PLUGIN,
    PresetError,
    load_manifest,
    manifest_url,
    parse_manifest,
    resolve_preset,
)

MANIFEST = {
    "Presets": {
        "Default": ["ModA", "ModB"],
        "Everything": ["ModB", "ModA", "ModC"],
        "Empty": [],
        "Ghosts": ["NotAMod"],
    },
    "Mods": [
        {
            "Name": "ModA",
            "DisplayName": "Mod A",
            "Namespace": "alice",
            "Type": "plugin",
            "ServerHostOnly": True,
        },
        {
            "Name": "ModB",
            "Namespace": "bob",
            "Type": "Patcher",
            "ExtraIncludes": None,
        },
        {
            "Name": "ModC",
            "Namespace": "carol",
            "Type": "plugin",
            "ExtraIncludes": ["assets\\bundles\\"],
            "Relocations": [{"Pattern": "*.bundle", "Target": "/Bundles/"}],
        },
    ],
}


@pytest.fixture
def manifest():
    return parse_manifest(json.dumps(MANIFEST).encode())


# ── parsing ──────────────────────────────────────────────────────────────────

def test_parse_normalizes_fields(manifest):
    mod_b = manifest.get_mod("ModB")
    assert mod_b.type == PATCHER
    assert mod_b.extra_includes == []
    assert mod_b.server_host_only is False
    assert mod_b.label == "ModB"

    mod_c = manifest.get_mod("ModC")
    assert mod_c.type == PLUGIN
    assert mod_c.extra_includes == ["assets/bundles"]
    assert mod_c.relocations[0].target == "Bundles"
    assert manifest.get_mod("ModA").label == "Mod A"


def test_parse_rejects_duplicate_mods():
    data = {"Presets": {}, "Mods": [
        {"Name": "Dup", "Namespace": "a"},
        {"Name": "Dup", "Namespace": "b"},
    ]}
    with pytest.raises(ValidationError, match="Duplicate mod name"):
        parse_manifest(json.dumps(data).encode())


def test_parse_rejects_escaping_relocation():
    data = {"Mods": [{
        "Name": "Bad", "Namespace": "x", "Type": "plugin",
        "Relocations": [{"Pattern": "*.bundle", "Target": "../../outside"}],
    }]}
    with pytest.raises(ValidationError):
        parse_manifest(json.dumps(data).encode())


@pytest.mark.parametrize("include", ["../../outside", "assets/../../x", "C:/Windows"])
def test_parse_rejects_escaping_include(include):
    data = {"Mods": [{
        "Name": "Bad", "Namespace": "x", "Type": "plugin", "ExtraIncludes": [include],
    }]}
    with pytest.raises(ValidationError, match="inside the package"):
        parse_manifest(json.dumps(data).encode())


@pytest.mark.parametrize("pattern", ["", "../*.dll", "/etc/*", "C:*.dll", "sub/../../*.bundle"])
def test_parse_rejects_escaping_relocation_pattern(pattern):
    data = {"Mods": [{
        "Name": "Bad", "Namespace": "x", "Type": "plugin",
        "Relocations": [{"Pattern": pattern, "Target": "Bundles"}],
    }]}
    with pytest.raises(ValidationError, match="inside the package"):
        parse_manifest(json.dumps(data).encode())


def test_parse_accepts_nested_relocation_pattern():
    data = {"Mods": [{
        "Name": "Ok", "Namespace": "x", "Type": "plugin",
        "Relocations": [{"Pattern": "assets\\*.bundle", "Target": "Bundles"}],
    }]}
    rule = parse_manifest(json.dumps(data).encode()).mods[0].relocations[0]
    assert rule.pattern == "assets/*.bundle"


def test_unknown_type_is_kept():
    data = {"Mods": [{"Name": "Odd", "Namespace": "x", "Type": "Shader"}]}
    assert parse_manifest(json.dumps(data).encode()).mods[0].type == "shader"


# ── preset resolution ────────────────────────────────────────────────────────

def test_preset_drops_server_host_mods_for_clients(manifest):
    mods = resolve_preset(manifest, "Default", server_host=False)
    assert [m.name for m in mods] == ["ModB"]


def test_preset_keeps_server_host_mods_for_hosts(manifest):
    mods = resolve_preset(manifest, "Default", server_host=True)
    assert [m.name for m in mods] == ["ModA", "ModB"]


def test_preset_order_is_kept(manifest):
    mods = resolve_preset(manifest, "Everything", server_host=True)
    assert [m.name for m in mods] == ["ModB", "ModA", "ModC"]


@pytest.mark.parametrize("preset", ["Missing", "Empty", "Ghosts"])
def test_bad_presets_fail(manifest, preset):
    with pytest.raises(PresetError, match=preset):
        resolve_preset(manifest, preset, server_host=True)


def test_unknown_mod_in_preset_is_reported():
    data = {"Presets": {"Default": ["ModA", "Gone"]},
            "Mods": [{"Name": "ModA", "Namespace": "a", "Type": "plugin"}]}
    lines = []
    mods = resolve_preset(parse_manifest(json.dumps(data).encode()), "Default", False, log=lines.append)
    assert [m.name for m in mods] == ["ModA"]
    assert any("Gone" in line for line in lines)


# ── loading ──────────────────────────────────────────────────────────────────

def test_load_local_manifest(tmp_path):
    path = tmp_path / "mods.json"
    path.write_text(json.dumps(MANIFEST), encoding="utf-8")
    assert len(load_manifest(manifest_file=path).mods) == 3


def test_load_missing_file(tmp_path):
    with pytest.raises(InstallerError, match="not found"):
        load_manifest(manifest_file=tmp_path / "nope.json")


def test_load_invalid_json(tmp_path):
    path = tmp_path / "mods.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(InstallerError, match="Invalid mod manifest"):
        load_manifest(manifest_file=path)


def test_load_remote_manifest_uses_branch():
    with patch("downloads.fetch_bytes", return_value=json.dumps(MANIFEST).encode()) as fetch:
        manifest = load_manifest(branch="testing", repo="someone/pack")
    fetch.assert_called_once_with(manifest_url("testing", "someone/pack"))
    assert "/someone/pack/testing/mods.json" in fetch.call_args.args[0]
    assert manifest.get_mod("ModC") is not None


def test_load_rejects_both_sources(tmp_path):
    with pytest.raises(InstallerError):
        load_manifest(branch="main", manifest_file=tmp_path / "mods.json")
